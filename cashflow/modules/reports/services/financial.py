"""
Financial Reports Service

Builds monthly aggregates from stored incomes, payments and expenses and
hands them to the metrics engine.

Aggregation rules:
- Income: Income rows by date plus paid Payments by paid date
- Recurring income: recurring Income rows plus paid recurring Payments
- Operational income: income without partner contributions
- Expense: variable Expenses by date plus non-voided AccruedExpenses by due date
- Expense by category: the same expense rows grouped by their category

Each amount is converted to the reporting currency without rounding, the
month is summed, and only the total is rounded.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple
from uuid import UUID
import logging

from dateutil.relativedelta import relativedelta

from .base import BaseReportService
from cashflow.modules.currency import round_money, sum_in_currency
from cashflow.modules.payments.models import PaymentKind
from cashflow.modules.projects.models import Client
from cashflow.modules.reports.engine import FinancialMetricsEngine, compute_mrr_movement, summarize_projection
from cashflow.modules.reports.schemas import (
    Scenario, MonthlyAggregate, ClientRevenue, MRRMovement, MetricsResponse, ProjectionResponse
)

logger = logging.getLogger(__name__)

MonthKey = Tuple[int, int]
UNCATEGORIZED = "Sin categoría"


class FinancialReportService(BaseReportService):
    """Service for metrics and projections"""

    def __init__(self, db, context, burn_window_months: int = 6, concentration_threshold: Decimal = Decimal("30")):
        super().__init__(db, context)
        self.engine = FinancialMetricsEngine(self.converter, burn_window_months, concentration_threshold)

    def _bucket(self, buckets: Dict[MonthKey, list], when: date, amount, currency) -> None:
        buckets[(when.year, when.month)].append((self._to_reporting(amount, currency), self.currency))

    def _total(self, items) -> Decimal:
        return round_money(sum_in_currency(items, self.currency), self.currency)

    def monthly_aggregates(self, start_date: date, end_date: date) -> List[MonthlyAggregate]:
        """One aggregate per calendar month in the range, empty months included"""
        income = defaultdict(list)
        operational = defaultdict(list)
        recurring = defaultdict(list)
        expense = defaultdict(list)

        for item in self.repository.list_incomes(start_date, end_date):
            self._bucket(income, item.date, item.amount, item.currency)
            if not item.is_partner_contribution:
                self._bucket(operational, item.date, item.amount, item.currency)
            if item.is_recurring:
                self._bucket(recurring, item.date, item.amount, item.currency)

        for payment in self.repository.list_paid_payments(start_date, end_date):
            self._bucket(income, payment.paid_date, payment.amount, payment.currency)
            self._bucket(operational, payment.paid_date, payment.amount, payment.currency)
            if payment.kind == PaymentKind.RECURRING:
                self._bucket(recurring, payment.paid_date, payment.amount, payment.currency)

        for item in self.repository.list_expenses(start_date, end_date):
            self._bucket(expense, item.date, item.amount, item.currency)

        for accrued in self.repository.list_accrued_between(start_date, end_date):
            self._bucket(expense, accrued.due_date, accrued.amount, accrued.currency)

        return [
            MonthlyAggregate(
                year=year,
                month=month,
                total_income=self._total(income[(year, month)]),
                total_expense=self._total(expense[(year, month)]),
                recurring_income=self._total(recurring[(year, month)]),
                operational_income=self._total(operational[(year, month)]),
                currency=self.currency,
            )
            for year, month in self._months_between(start_date, end_date)
        ]

    def client_revenue(self, start_date: date, end_date: date) -> List[ClientRevenue]:
        """Revenue per client in the reporting currency"""
        totals: Dict[UUID, list] = defaultdict(list)

        for item in self.repository.list_incomes(start_date, end_date):
            if item.client_id is not None and not item.is_partner_contribution:
                totals[item.client_id].append((self._to_reporting(item.amount, item.currency), self.currency))

        for payment in self.repository.list_paid_payments(start_date, end_date):
            totals[payment.client_id].append((self._to_reporting(payment.amount, payment.currency), self.currency))

        if not totals:
            return []

        names = dict(self.db.query(Client.id, Client.name).filter(Client.id.in_(list(totals))).all())
        return [
            ClientRevenue(
                client_id=client_id,
                name=names.get(client_id, str(client_id)),
                revenue=sum_in_currency(items, self.currency),
                currency=self.currency,
            )
            for client_id, items in totals.items()
        ]

    def expense_by_category(self, start_date: date, end_date: date) -> Dict[str, Decimal]:
        """Unrounded expense per category in the reporting currency"""
        totals: Dict[str, Decimal] = defaultdict(Decimal)

        for item in self.repository.list_expenses(start_date, end_date):
            totals[item.category or UNCATEGORIZED] += self._to_reporting(item.amount, item.currency)

        for accrued in self.repository.list_accrued_between(start_date, end_date):
            totals[accrued.category or UNCATEGORIZED] += self._to_reporting(accrued.amount, accrued.currency)
        return dict(totals)

    def _recurring_by_client(self, year: int, month: int) -> Dict[UUID, Decimal]:
        start, end = self._month_bounds(year, month)
        totals: Dict[UUID, Decimal] = defaultdict(Decimal)

        for item in self.repository.list_incomes(start, end):
            if item.is_recurring and item.client_id is not None:
                totals[item.client_id] += self._to_reporting(item.amount, item.currency)

        for payment in self.repository.list_paid_recurring_payments(start, end):
            totals[payment.client_id] += self._to_reporting(payment.amount, payment.currency)
        return dict(totals)

    def mrr_movement(self, year: int, month: int) -> MRRMovement:
        """New and churned MRR of a month against the month before"""
        previous = date(year, month, 1) - relativedelta(months=1)
        return compute_mrr_movement(
            self._recurring_by_client(previous.year, previous.month),
            self._recurring_by_client(year, month),
        )

    def get_metrics(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        cash_balance: Optional[Decimal] = None
    ) -> MetricsResponse:
        """
        KPIs for the period (default: the last 12 months up to the context date).

        Cash balance defaults to the cumulative net of the period.
        """
        if start_date is None or end_date is None:
            default_start, default_end = self._default_period()
            start_date = start_date or default_start
            end_date = end_date or default_end

        aggregates = self.monthly_aggregates(start_date, end_date)
        movement = self.mrr_movement(end_date.year, end_date.month)
        metrics = self.engine.compute_metrics(
            aggregates,
            self.currency,
            cash_balance=cash_balance,
            client_revenue=self.client_revenue(start_date, end_date),
            new_mrr=movement.new_mrr,
            churned_mrr=movement.churned_mrr,
            category_expense=self.expense_by_category(start_date, end_date),
            active_clients=self.repository.count_active_clients(),
            active_projects=self.repository.count_active_projects(),
        )

        logger.info(f"Métricas calculadas {start_date} a {end_date}: MRR {metrics.mrr} {metrics.currency.value}")
        return MetricsResponse(
            as_of=self.context.as_of,
            period_start=start_date,
            period_end=end_date,
            metrics=metrics,
            aggregates=aggregates,
        )

    def get_projections(
        self,
        scenario: Scenario,
        horizon_months: int,
        history_months: int = 12,
        cash_balance: Optional[Decimal] = None
    ) -> ProjectionResponse:
        """Projection for a scenario from the last `history_months` of history"""
        start_date, end_date = self._default_period(history_months)
        aggregates = self.monthly_aggregates(start_date, end_date)
        points = self.engine.project_scenario(
            aggregates, scenario, horizon_months, self.currency, cash_balance
        )
        return ProjectionResponse(
            as_of=self.context.as_of,
            scenario=scenario,
            horizon_months=horizon_months,
            currency=self.currency,
            points=points,
            summary=summarize_projection(points),
        )
