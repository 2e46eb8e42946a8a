"""
Services package for Reports module
"""

from .financial import FinancialReportService

__all__ = ["FinancialReportService"]
