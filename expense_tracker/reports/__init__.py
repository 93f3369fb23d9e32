"""Aggregation engine package."""

from expense_tracker.reports.aggregator import STATUS_LABELS, ExpenseAggregator

__all__ = ["STATUS_LABELS", "ExpenseAggregator"]
