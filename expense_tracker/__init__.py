"""
Project Expense Tracker - Source Package

Business layer for tracking project budgets and expenses.
Admins manage projects and expenses; viewers get a read-only,
role-scoped view; dashboards aggregate spending on demand.

DESIGN PRINCIPLES:
1. Every read is scoped by role before it leaves the package
2. Every mutation is authorized, validated and audited
3. Money is Decimal end to end
4. Storage is injected, never global
"""

__version__ = "1.0.0"
__author__ = "Project Expense Tracker Team"
