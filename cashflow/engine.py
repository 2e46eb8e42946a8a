"""
Entry points of the financial core

Pure functions only; persistence and HTTP live in the module services and routers.
"""

from cashflow.modules.payments.generator import generate_payment_schedule
from cashflow.modules.expenses.generator import generate_accruals
from cashflow.modules.reports.engine import compute_metrics, project_scenario

__all__ = [
    "generate_payment_schedule",
    "generate_accruals",
    "compute_metrics",
    "project_scenario",
]
