"""
Base service class for Reports module

Holds the database session, the engine context for the request and the
calendar helpers shared by report services.
"""

import calendar
from datetime import date
from typing import List, Tuple

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from cashflow.core.context import EngineContext
from cashflow.database.repository import FinanceRepository


class BaseReportService:
    """Base service class for all report services"""

    def __init__(self, db: Session, context: EngineContext):
        self.db = db
        self.context = context
        self.repository = FinanceRepository(db)
        self.converter = context.converter
        self.currency = context.reporting_currency

    @staticmethod
    def _month_bounds(year: int, month: int) -> Tuple[date, date]:
        """First and last day of a month"""
        return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])

    @staticmethod
    def _months_between(start_date: date, end_date: date) -> List[Tuple[int, int]]:
        """(year, month) pairs touched by the range, inclusive"""
        months = []
        current = date(start_date.year, start_date.month, 1)
        last = date(end_date.year, end_date.month, 1)
        while current <= last:
            months.append((current.year, current.month))
            current += relativedelta(months=1)
        return months

    def _default_period(self, months: int = 12) -> Tuple[date, date]:
        """The last `months` calendar months up to the context date"""
        end_date = self.context.as_of
        start = date(end_date.year, end_date.month, 1) - relativedelta(months=months - 1)
        return start, end_date

    def _to_reporting(self, amount, currency):
        """Unrounded conversion to the reporting currency"""
        return self.converter.convert(amount, currency, self.currency, quantize=False)
