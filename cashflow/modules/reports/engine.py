"""
Financial metrics and projection engine

Pure functions over monthly aggregates. Aggregates in another currency are
converted (unrounded) to the reporting currency before any arithmetic, and
money results are rounded once, on output. Nothing here reads the database or
the clock, so the same inputs always give the same outputs.
"""

from decimal import Decimal, ROUND_HALF_UP
from datetime import date
from typing import Dict, Hashable, Iterable, List, Mapping, Optional, Tuple, Union

from dateutil.relativedelta import relativedelta

from cashflow.core.exceptions import CurrencyMismatchError
from cashflow.modules.currency import Currency, CurrencyConverter, round_money
from cashflow.modules.reports.schemas import (
    Scenario, MonthlyAggregate, ClientRevenue, ClientConcentration, CategoryExpense, MonthlyVariation,
    MRRMovement, Metrics, ProjectionPoint, ProjectionSummary
)

DEFAULT_BURN_WINDOW_MONTHS = 6
DEFAULT_CONCENTRATION_THRESHOLD = Decimal("30")
CASHFLOW_RISK_MONTHS = Decimal("3")
DEFAULT_CLIENT_LIFETIME_MONTHS = 12
INFINITE_RUNWAY = Decimal("Infinity")

ZERO = Decimal("0")
HUNDRED = Decimal("100")
_RATIO_UNIT = Decimal("0.01")

# (income multiplier, expense multiplier)
SCENARIO_MULTIPLIERS: Dict[Scenario, Tuple[Decimal, Decimal]] = {
    Scenario.OPTIMISTIC: (Decimal("1.15"), Decimal("0.95")),
    Scenario.CONSERVATIVE: (Decimal("1.00"), Decimal("1.00")),
    Scenario.PESSIMISTIC: (Decimal("0.85"), Decimal("1.10")),
    Scenario.COST_CUTTING: (Decimal("1.00"), Decimal("0.90")),
}


def _ratio(value: Decimal) -> Decimal:
    return value.quantize(_RATIO_UNIT, rounding=ROUND_HALF_UP)


def _mean(values: List[Decimal]) -> Decimal:
    if not values:
        return ZERO
    return sum(values, ZERO) / len(values)


def monthly_variation(current: Decimal, previous: Decimal) -> MonthlyVariation:
    """Change between two monthly totals; the percentage is 0 when previous is 0"""
    value = current - previous
    percentage = _ratio(value / previous * HUNDRED) if previous else ZERO
    return MonthlyVariation(value=value, percentage=percentage)


def compute_mrr_movement(
    previous: Mapping[Hashable, Decimal],
    current: Mapping[Hashable, Decimal]
) -> MRRMovement:
    """
    New and churned MRR from per-client recurring revenue of two consecutive months.

    Growth of a client counts as new MRR and a drop counts as churn; a client
    present only in `previous` churns completely.
    """
    new_mrr = ZERO
    churned_mrr = ZERO
    new_clients = 0
    churned_clients = 0

    for client in set(previous) | set(current):
        before = previous.get(client, ZERO)
        after = current.get(client, ZERO)
        delta = after - before
        if delta > 0:
            new_mrr += delta
            if before == 0:
                new_clients += 1
        elif delta < 0:
            churned_mrr -= delta
            if after == 0:
                churned_clients += 1

    return MRRMovement(
        new_mrr=new_mrr,
        churned_mrr=churned_mrr,
        net_new_mrr=new_mrr - churned_mrr,
        new_clients=new_clients,
        churned_clients=churned_clients,
    )


def summarize_projection(points: List[ProjectionPoint]) -> ProjectionSummary:
    """Projected runway and risk flags for a list of projection points"""
    if not points:
        return ProjectionSummary(
            projected_runway=INFINITE_RUNWAY,
            final_balance=ZERO,
            has_negative_balance=False,
            has_cashflow_risk=False,
            has_decreasing_trend=False,
        )

    average_expense = _mean([p.projected_expense for p in points])
    final_balance = points[-1].projected_balance
    if average_expense > 0:
        projected_runway = _ratio(final_balance / average_expense)
    else:
        projected_runway = INFINITE_RUNWAY

    return ProjectionSummary(
        projected_runway=projected_runway,
        final_balance=final_balance,
        has_negative_balance=any(p.projected_balance < 0 for p in points),
        has_cashflow_risk=projected_runway < CASHFLOW_RISK_MONTHS,
        has_decreasing_trend=points[-1].projected_balance < points[0].projected_balance,
    )


class FinancialMetricsEngine:
    """
    KPIs and cash-flow projections from monthly aggregates

    Args:
        converter: Converter for aggregates not already in the reporting
            currency. Without one, such aggregates raise CurrencyMismatchError.
        burn_window_months: Trailing months averaged for burn rate and trend
        concentration_threshold: Top-client share (percent) that raises the
            concentration risk flag
    """

    def __init__(
        self,
        converter: Optional[CurrencyConverter] = None,
        burn_window_months: int = DEFAULT_BURN_WINDOW_MONTHS,
        concentration_threshold: Decimal = DEFAULT_CONCENTRATION_THRESHOLD,
        client_lifetime_months: int = DEFAULT_CLIENT_LIFETIME_MONTHS
    ):
        if burn_window_months < 1:
            raise ValueError("burn_window_months must be at least 1")
        self.converter = converter
        self.burn_window_months = burn_window_months
        self.concentration_threshold = Decimal(concentration_threshold)
        self.client_lifetime_months = client_lifetime_months

    def _convert(self, amount: Decimal, from_currency, to_currency: Currency) -> Decimal:
        if Currency(from_currency) == to_currency:
            return Decimal(amount)
        if self.converter is None:
            raise CurrencyMismatchError(to_currency, from_currency)
        return self.converter.convert(amount, from_currency, to_currency, quantize=False)

    def normalize(self, aggregates: Iterable[MonthlyAggregate], currency: Union[Currency, str]) -> List[MonthlyAggregate]:
        """Aggregates in `currency`, sorted chronologically"""
        currency = Currency(currency)
        normalized = []
        for aggregate in aggregates:
            source = aggregate.currency
            operational = aggregate.operational_income
            normalized.append(MonthlyAggregate(
                year=aggregate.year,
                month=aggregate.month,
                total_income=self._convert(aggregate.total_income, source, currency),
                total_expense=self._convert(aggregate.total_expense, source, currency),
                recurring_income=self._convert(aggregate.recurring_income, source, currency),
                operational_income=None if operational is None else self._convert(operational, source, currency),
                currency=currency,
            ))
        return sorted(normalized, key=lambda a: a.key)

    def _window(self, aggregates: List[MonthlyAggregate]) -> List[MonthlyAggregate]:
        return aggregates[-self.burn_window_months:]

    def burn_rate(self, aggregates: List[MonthlyAggregate]) -> Decimal:
        """Mean monthly expense over the trailing window; 0 without history"""
        return _mean([a.total_expense for a in self._window(aggregates)])

    def trailing_trend(self, aggregates: List[MonthlyAggregate]) -> Tuple[Decimal, Decimal]:
        window = self._window(aggregates)
        return (
            _mean([a.total_income for a in window]),
            _mean([a.total_expense for a in window]),
        )

    @staticmethod
    def runway(cash_balance: Decimal, burn_rate: Decimal, mrr: Decimal) -> Decimal:
        # Sentinel instead of a division when recurring revenue covers the burn
        if burn_rate <= mrr:
            return INFINITE_RUNWAY
        return _ratio(cash_balance / (burn_rate - mrr))

    @staticmethod
    def profit_margin(income: Decimal, expense: Decimal) -> Decimal:
        if income == 0:
            return ZERO
        return _ratio((income - expense) / income * HUNDRED)

    def client_concentration(
        self,
        client_revenue: Iterable[ClientRevenue],
        currency: Union[Currency, str]
    ) -> List[ClientConcentration]:
        """
        Each client's share of the summed client revenue, largest first

        Args:
            client_revenue: Revenue per client, in any supported currency
            currency: Reporting currency
        """
        currency = Currency(currency)
        converted = [
            (item, self._convert(item.revenue, item.currency, currency))
            for item in client_revenue
        ]
        total = sum((amount for _, amount in converted), ZERO)

        shares = [
            ClientConcentration(
                client_id=item.client_id,
                name=item.name,
                revenue=round_money(amount, currency),
                percentage=_ratio(amount / total * HUNDRED) if total else ZERO,
            )
            for item, amount in converted
        ]
        return sorted(shares, key=lambda c: c.percentage, reverse=True)

    @staticmethod
    def expense_by_category(
        category_expense: Mapping[str, Decimal],
        currency: Union[Currency, str]
    ) -> List[CategoryExpense]:
        """Expense per category with its share of the total, largest first"""
        currency = Currency(currency)
        total = sum(category_expense.values(), ZERO)
        breakdown = [
            CategoryExpense(
                category=category,
                total=round_money(amount, currency),
                percentage=_ratio(amount / total * HUNDRED) if total else ZERO,
            )
            for category, amount in category_expense.items()
        ]
        return sorted(breakdown, key=lambda c: (-c.total, c.category))

    def client_kpis(self, operational_income: Decimal, active_clients: int, active_projects: int) -> Tuple[Decimal, Decimal, Decimal]:
        """(average ticket, LTV, projects per client); all 0 without active clients"""
        if active_clients <= 0:
            return ZERO, ZERO, ZERO
        average_ticket = operational_income / active_clients
        return (
            average_ticket,
            average_ticket * self.client_lifetime_months,
            _ratio(Decimal(active_projects) / active_clients),
        )

    def compute_metrics(
        self,
        aggregates: Iterable[MonthlyAggregate],
        reporting_currency: Union[Currency, str],
        cash_balance: Optional[Decimal] = None,
        client_revenue: Optional[Iterable[ClientRevenue]] = None,
        new_mrr: Decimal = ZERO,
        churned_mrr: Decimal = ZERO,
        category_expense: Optional[Mapping[str, Decimal]] = None,
        active_clients: int = 0,
        active_projects: int = 0
    ) -> Metrics:
        """
        Compute KPIs for a run of monthly aggregates

        Args:
            aggregates: Monthly totals, any order, any supported currency
            reporting_currency: Currency of every amount in the result
            cash_balance: Current cash; defaults to the cumulative net of the aggregates
            client_revenue: Revenue per client for concentration
            new_mrr: New MRR for the latest month, in the reporting currency
            churned_mrr: Churned MRR for the latest month, in the reporting currency
            category_expense: Expense per category for the period, in the reporting currency
            active_clients: Clients with active status, for average ticket and LTV
            active_projects: Projects with active status

        Returns:
            Metrics with money rounded to the reporting currency
        """
        currency = Currency(reporting_currency)
        history = self.normalize(aggregates, currency)

        latest = history[-1] if history else None
        previous = history[-2] if len(history) > 1 else None

        mrr = latest.recurring_income if latest else ZERO
        burn_rate = self.burn_rate(history)
        total_income = sum((a.total_income for a in history), ZERO)
        total_expense = sum((a.total_expense for a in history), ZERO)
        margin_income = sum((a.margin_income for a in history), ZERO)
        if cash_balance is None:
            cash_balance = total_income - total_expense

        runway = self.runway(Decimal(cash_balance), burn_rate, mrr)

        concentration = []
        if client_revenue is not None:
            concentration = self.client_concentration(client_revenue, currency)
        top_share = concentration[0].percentage if concentration else ZERO

        categories = self.expense_by_category(category_expense or {}, currency)
        average_ticket, ltv, projects_per_client = self.client_kpis(
            latest.margin_income if latest else ZERO, active_clients, active_projects
        )

        zero_month = MonthlyAggregate(year=1900, month=1, currency=currency)
        current_month = latest or zero_month
        previous_month = previous or zero_month
        income_variation = monthly_variation(current_month.total_income, previous_month.total_income)
        expense_variation = monthly_variation(current_month.total_expense, previous_month.total_expense)

        return Metrics(
            currency=currency,
            period_year=latest.year if latest else None,
            period_month=latest.month if latest else None,
            mrr=round_money(mrr, currency),
            arr=round_money(mrr * 12, currency),
            burn_rate=round_money(burn_rate, currency),
            cash_balance=round_money(cash_balance, currency),
            runway=runway,
            total_income=round_money(total_income, currency),
            total_expense=round_money(total_expense, currency),
            profit_margin=self.profit_margin(margin_income, total_expense),
            income_variation=MonthlyVariation(
                value=round_money(income_variation.value, currency),
                percentage=income_variation.percentage,
            ),
            expense_variation=MonthlyVariation(
                value=round_money(expense_variation.value, currency),
                percentage=expense_variation.percentage,
            ),
            client_concentration=concentration,
            top_client_percentage=top_share,
            concentration_risk=top_share > self.concentration_threshold,
            new_mrr=round_money(new_mrr, currency),
            churned_mrr=round_money(churned_mrr, currency),
            net_new_mrr=round_money(Decimal(new_mrr) - Decimal(churned_mrr), currency),
            expense_by_category=categories,
            top_category=categories[0].category if categories else None,
            active_clients=active_clients,
            active_projects=active_projects,
            projects_per_client=projects_per_client,
            average_ticket=round_money(average_ticket, currency),
            ltv=round_money(ltv, currency),
        )

    def project_scenario(
        self,
        aggregates: Iterable[MonthlyAggregate],
        scenario: Union[Scenario, str],
        horizon_months: int,
        reporting_currency: Optional[Union[Currency, str]] = None,
        cash_balance: Optional[Decimal] = None
    ) -> List[ProjectionPoint]:
        """
        Project income, expense and balance month by month

        The trailing trend (mean income and expense over the burn window) is
        scaled by the scenario multipliers. Months follow the latest
        aggregate. The running balance accumulates unrounded values and starts
        from `cash_balance` or the cumulative net of the aggregates.

        Returns:
            One point per future month; empty without history
        """
        scenario = Scenario(scenario)
        aggregates = list(aggregates)
        if horizon_months < 0:
            raise ValueError("horizon_months must not be negative")
        if not aggregates:
            return []

        currency = Currency(reporting_currency) if reporting_currency else aggregates[0].currency
        history = self.normalize(aggregates, currency)

        income_factor, expense_factor = SCENARIO_MULTIPLIERS[scenario]
        trend_income, trend_expense = self.trailing_trend(history)
        monthly_income = trend_income * income_factor
        monthly_expense = trend_expense * expense_factor

        balance = Decimal(cash_balance) if cash_balance is not None else sum((a.net for a in history), ZERO)
        last = history[-1]
        anchor = date(last.year, last.month, 1)

        points = []
        for k in range(1, horizon_months + 1):
            month = anchor + relativedelta(months=k)
            balance += monthly_income - monthly_expense
            points.append(ProjectionPoint(
                year=month.year,
                month=month.month,
                projected_income=round_money(monthly_income, currency),
                projected_expense=round_money(monthly_expense, currency),
                projected_balance=round_money(balance, currency),
                currency=currency,
            ))
        return points


def compute_metrics(
    aggregates: Iterable[MonthlyAggregate],
    reporting_currency: Union[Currency, str],
    cash_balance: Optional[Decimal] = None,
    client_revenue: Optional[Iterable[ClientRevenue]] = None,
    new_mrr: Decimal = ZERO,
    churned_mrr: Decimal = ZERO,
    converter: Optional[CurrencyConverter] = None,
    category_expense: Optional[Mapping[str, Decimal]] = None,
    active_clients: int = 0,
    active_projects: int = 0
) -> Metrics:
    engine = FinancialMetricsEngine(converter)
    return engine.compute_metrics(
        aggregates, reporting_currency, cash_balance, client_revenue, new_mrr, churned_mrr,
        category_expense, active_clients, active_projects
    )


def project_scenario(
    aggregates: Iterable[MonthlyAggregate],
    scenario: Union[Scenario, str],
    horizon_months: int,
    reporting_currency: Optional[Union[Currency, str]] = None,
    cash_balance: Optional[Decimal] = None,
    converter: Optional[CurrencyConverter] = None
) -> List[ProjectionPoint]:
    engine = FinancialMetricsEngine(converter)
    return engine.project_scenario(aggregates, scenario, horizon_months, reporting_currency, cash_balance)
