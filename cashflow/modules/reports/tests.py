"""
Tests for the Reports module

Covers:
- Metrics engine (MRR, burn rate, runway, margin, concentration, churn)
- Scenario projections and their summary
- Monthly aggregation from stored incomes, payments and expenses
- Metrics and projection endpoints, JSON and CSV
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from cashflow.core.context import EngineContext
from cashflow.core.exceptions import CurrencyMismatchError
from cashflow.modules.currency import Currency, CurrencyConverter
from cashflow.modules.projects.models import Client, ClientStatus
from cashflow.modules.payments.models import Payment, PaymentStatus, PaymentKind
from cashflow.modules.expenses.models import Expense, AccruedExpense, AccruedStatus, SourceType
from cashflow.modules.incomes.models import Income
from cashflow.modules.reports.engine import (
    FinancialMetricsEngine, compute_metrics, project_scenario, compute_mrr_movement,
    monthly_variation, summarize_projection
)
from cashflow.modules.reports.schemas import Scenario, MonthlyAggregate, ClientRevenue
from cashflow.modules.reports.services import FinancialReportService


def month(year, month_, income="0", expense="0", recurring="0", operational=None, currency=Currency.COP):
    return MonthlyAggregate(
        year=year,
        month=month_,
        total_income=Decimal(income),
        total_expense=Decimal(expense),
        recurring_income=Decimal(recurring),
        operational_income=None if operational is None else Decimal(operational),
        currency=currency,
    )


@pytest.fixture
def steady_history():
    """Three months with 1.000.000 income and 800.000 expense"""
    return [month(2024, m, income="1000000", expense="800000") for m in (1, 2, 3)]


# ===== METRICS ENGINE =====

class TestRunway:

    def test_infinite_without_burn(self):
        metrics = compute_metrics([month(2024, 1, income="100000")], Currency.COP)
        assert metrics.burn_rate == Decimal("0")
        assert metrics.runway.is_infinite()
        assert metrics.has_infinite_runway

    def test_infinite_when_mrr_covers_burn(self):
        metrics = compute_metrics(
            [month(2024, 1, income="1000000", expense="400000", recurring="1000000")],
            Currency.COP,
            cash_balance=Decimal("0"),
        )
        assert metrics.runway.is_infinite()

    def test_finite_runway(self):
        runway = FinancialMetricsEngine.runway(Decimal("6000000"), Decimal("1000000"), Decimal("400000"))
        assert runway == Decimal("10.00")

    def test_runway_uses_net_burn(self):
        metrics = compute_metrics(
            [month(2024, 1, income="300000", expense="900000", recurring="300000")],
            Currency.COP,
            cash_balance=Decimal("1000000"),
        )
        # 1.000.000 / (900.000 - 300.000)
        assert metrics.runway == Decimal("1.67")
        assert not metrics.has_infinite_runway


class TestProfitMargin:

    def test_zero_income(self):
        assert FinancialMetricsEngine.profit_margin(Decimal("0"), Decimal("500")) == Decimal("0")

    def test_uses_operational_income(self):
        metrics = compute_metrics(
            [month(2024, 1, income="1000000", operational="800000", expense="600000")],
            Currency.COP,
        )
        assert metrics.profit_margin == Decimal("25.00")

    def test_falls_back_to_total_income(self):
        metrics = compute_metrics([month(2024, 1, income="1000000", expense="600000")], Currency.COP)
        assert metrics.profit_margin == Decimal("40.00")

    def test_negative_margin(self):
        assert FinancialMetricsEngine.profit_margin(Decimal("100"), Decimal("150")) == Decimal("-50.00")


class TestComputeMetrics:

    def test_burn_rate_uses_trailing_window(self):
        history = [month(2024, m, expense=str(m * 100000)) for m in range(1, 9)]
        metrics = compute_metrics(history, Currency.COP)
        # meses 3 a 8
        assert metrics.burn_rate == Decimal("550000")

    def test_custom_burn_window(self):
        history = [month(2024, m, expense=str(m * 100000)) for m in range(1, 9)]
        engine = FinancialMetricsEngine(burn_window_months=2)
        assert engine.compute_metrics(history, Currency.COP).burn_rate == Decimal("750000")

    def test_aggregates_are_sorted(self):
        history = [
            month(2024, 3, income="300", recurring="300"),
            month(2024, 1, income="100", recurring="100"),
            month(2023, 12, income="50", recurring="50"),
        ]
        metrics = compute_metrics(history, Currency.COP)
        assert (metrics.period_year, metrics.period_month) == (2024, 3)
        assert metrics.mrr == Decimal("300")
        assert metrics.arr == Decimal("3600")

    def test_empty_history(self):
        metrics = compute_metrics([], Currency.COP)
        assert metrics.mrr == Decimal("0")
        assert metrics.burn_rate == Decimal("0")
        assert metrics.cash_balance == Decimal("0")
        assert metrics.profit_margin == Decimal("0")
        assert metrics.runway.is_infinite()
        assert metrics.period_year is None
        assert metrics.client_concentration == []

    def test_cash_balance_defaults_to_net(self, steady_history):
        metrics = compute_metrics(steady_history, Currency.COP)
        assert metrics.cash_balance == Decimal("600000")
        assert metrics.total_income == Decimal("3000000")
        assert metrics.total_expense == Decimal("2400000")

    def test_monthly_variation(self):
        metrics = compute_metrics(
            [month(2024, 1, income="1000", expense="500"), month(2024, 2, income="1500", expense="500")],
            Currency.COP,
        )
        assert metrics.income_variation.value == Decimal("500")
        assert metrics.income_variation.percentage == Decimal("50.00")
        assert metrics.expense_variation.percentage == Decimal("0")

    def test_mixed_currencies_are_converted(self):
        history = [
            month(2024, 1, income="400000"),
            month(2024, 2, income="100", expense="50", recurring="100", currency=Currency.USD),
        ]
        metrics = compute_metrics(history, Currency.COP, converter=CurrencyConverter(Decimal("4000")))

        assert metrics.total_income == Decimal("800000")
        assert metrics.total_expense == Decimal("200000")
        assert metrics.mrr == Decimal("400000")

    def test_reporting_in_usd(self):
        history = [month(2024, 1, income="1000", expense="0", recurring="1000")]
        metrics = compute_metrics(history, Currency.USD, converter=CurrencyConverter(Decimal("4000")))
        assert metrics.currency == Currency.USD
        assert metrics.mrr == Decimal("0.25")

    def test_mixed_currencies_without_converter(self):
        history = [month(2024, 1, income="400000"), month(2024, 2, income="100", currency=Currency.USD)]
        with pytest.raises(CurrencyMismatchError):
            compute_metrics(history, Currency.COP)

    def test_churn_figures(self):
        metrics = compute_metrics(
            [month(2024, 1)], Currency.COP, new_mrr=Decimal("80"), churned_mrr=Decimal("50")
        )
        assert metrics.new_mrr == Decimal("80")
        assert metrics.churned_mrr == Decimal("50")
        assert metrics.net_new_mrr == Decimal("30")

    def test_same_inputs_same_output(self, steady_history):
        assert compute_metrics(steady_history, Currency.COP) == compute_metrics(steady_history, Currency.COP)


class TestClientConcentration:

    def test_top_client_over_threshold(self):
        revenue = [
            ClientRevenue(client_id=uuid4(), name="B", revenue=Decimal("200")),
            ClientRevenue(client_id=uuid4(), name="A", revenue=Decimal("800")),
        ]
        metrics = compute_metrics([month(2024, 1, income="1000")], Currency.COP, client_revenue=revenue)

        assert [c.name for c in metrics.client_concentration] == ["A", "B"]
        assert metrics.top_client_percentage == Decimal("80.00")
        assert metrics.concentration_risk

    def test_even_split_has_no_risk(self):
        revenue = [ClientRevenue(name=f"Cliente {i}", revenue=Decimal("250")) for i in range(4)]
        metrics = compute_metrics([month(2024, 1, income="1000")], Currency.COP, client_revenue=revenue)

        assert all(c.percentage == Decimal("25.00") for c in metrics.client_concentration)
        assert not metrics.concentration_risk

    def test_share_of_client_revenue_without_aggregates(self):
        revenue = [
            ClientRevenue(name="A", revenue=Decimal("900")),
            ClientRevenue(name="B", revenue=Decimal("100")),
        ]
        metrics = compute_metrics([], Currency.COP, client_revenue=revenue)

        assert [(c.name, c.percentage) for c in metrics.client_concentration] == [
            ("A", Decimal("90.00")), ("B", Decimal("10.00"))
        ]
        assert metrics.concentration_risk

    def test_partner_contributions_do_not_dilute_share(self):
        history = [month(2024, 1, income="4000", operational="1000")]
        revenue = [ClientRevenue(name="A", revenue=Decimal("1000"))]
        metrics = compute_metrics(history, Currency.COP, client_revenue=revenue)

        assert metrics.top_client_percentage == Decimal("100.00")
        assert metrics.concentration_risk

    def test_zero_revenue(self):
        engine = FinancialMetricsEngine()
        shares = engine.client_concentration([ClientRevenue(name="A", revenue=Decimal("0"))], Currency.COP)
        assert shares[0].percentage == Decimal("0")


class TestCategoryAndClientKpis:

    def test_expense_by_category_sorted_by_total(self):
        metrics = compute_metrics(
            [month(2024, 1, expense="1000")],
            Currency.COP,
            category_expense={"Nómina": Decimal("600"), "Arriendo": Decimal("300"), "Software": Decimal("100")},
        )
        assert [c.category for c in metrics.expense_by_category] == ["Nómina", "Arriendo", "Software"]
        assert [c.percentage for c in metrics.expense_by_category] == [
            Decimal("60.00"), Decimal("30.00"), Decimal("10.00")
        ]
        assert metrics.top_category == "Nómina"

    def test_no_categories(self):
        metrics = compute_metrics([month(2024, 1)], Currency.COP)
        assert metrics.expense_by_category == []
        assert metrics.top_category is None

    def test_client_kpis_use_latest_operational_income(self):
        history = [
            month(2024, 1, income="900000"),
            month(2024, 2, income="1500000", operational="1200000"),
        ]
        metrics = compute_metrics(history, Currency.COP, active_clients=4, active_projects=6)

        assert metrics.average_ticket == Decimal("300000")
        assert metrics.ltv == Decimal("3600000")
        assert metrics.projects_per_client == Decimal("1.50")

    def test_custom_client_lifetime(self):
        engine = FinancialMetricsEngine(client_lifetime_months=24)
        metrics = engine.compute_metrics([month(2024, 1, income="1000")], Currency.COP, active_clients=2)
        assert metrics.average_ticket == Decimal("500")
        assert metrics.ltv == Decimal("12000")

    def test_no_active_clients(self):
        metrics = compute_metrics([month(2024, 1, income="1000")], Currency.COP, active_projects=3)
        assert metrics.average_ticket == Decimal("0")
        assert metrics.ltv == Decimal("0")
        assert metrics.projects_per_client == Decimal("0")


class TestHelpers:

    def test_monthly_variation_from_zero(self):
        variation = monthly_variation(Decimal("100"), Decimal("0"))
        assert variation.value == Decimal("100")
        assert variation.percentage == Decimal("0")

    def test_monthly_variation_decrease(self):
        assert monthly_variation(Decimal("750000"), Decimal("1400000")).percentage == Decimal("-46.43")

    def test_mrr_movement(self):
        movement = compute_mrr_movement(
            {"a": Decimal("100"), "b": Decimal("50")},
            {"a": Decimal("150"), "c": Decimal("30")},
        )
        assert movement.new_mrr == Decimal("80")
        assert movement.churned_mrr == Decimal("50")
        assert movement.net_new_mrr == Decimal("30")
        assert movement.new_clients == 1
        assert movement.churned_clients == 1


# ===== PROJECTIONS =====

class TestProjections:

    def test_conservative(self, steady_history):
        points = project_scenario(steady_history, Scenario.CONSERVATIVE, 3)

        assert [(p.year, p.month) for p in points] == [(2024, 4), (2024, 5), (2024, 6)]
        assert [p.projected_balance for p in points] == [Decimal("800000"), Decimal("1000000"), Decimal("1200000")]
        assert all(p.projected_income == Decimal("1000000") for p in points)
        assert all(p.projected_expense == Decimal("800000") for p in points)

    def test_optimistic(self, steady_history):
        points = project_scenario(steady_history, "optimistic", 1)
        assert points[0].projected_income == Decimal("1150000")
        assert points[0].projected_expense == Decimal("760000")
        assert points[0].projected_balance == Decimal("990000")

    def test_pessimistic(self, steady_history):
        points = project_scenario(steady_history, Scenario.PESSIMISTIC, 3)
        assert [p.projected_balance for p in points] == [Decimal("570000"), Decimal("540000"), Decimal("510000")]

        summary = summarize_projection(points)
        assert summary.final_balance == Decimal("510000")
        assert summary.projected_runway == Decimal("0.58")
        assert summary.has_cashflow_risk
        assert summary.has_decreasing_trend
        assert not summary.has_negative_balance

    def test_cost_cutting(self, steady_history):
        points = project_scenario(steady_history, Scenario.COST_CUTTING, 1)
        assert points[0].projected_expense == Decimal("720000")
        assert points[0].projected_balance == Decimal("880000")

    def test_negative_balance_flag(self):
        history = [month(2024, 1, income="100", expense="500")]
        summary = summarize_projection(project_scenario(history, Scenario.CONSERVATIVE, 2))
        assert summary.has_negative_balance
        assert summary.has_cashflow_risk

    def test_explicit_cash_balance(self, steady_history):
        points = project_scenario(steady_history, Scenario.CONSERVATIVE, 1, cash_balance=Decimal("5000000"))
        assert points[0].projected_balance == Decimal("5200000")

    def test_months_roll_into_next_year(self):
        points = project_scenario([month(2024, 11, income="100")], Scenario.CONSERVATIVE, 3)
        assert [(p.year, p.month) for p in points] == [(2024, 12), (2025, 1), (2025, 2)]

    def test_deterministic(self, steady_history):
        first = project_scenario(steady_history, Scenario.PESSIMISTIC, 6)
        second = project_scenario(steady_history, Scenario.PESSIMISTIC, 6)
        assert first == second

    def test_empty_history(self):
        assert project_scenario([], Scenario.CONSERVATIVE, 6) == []
        summary = summarize_projection([])
        assert summary.projected_runway.is_infinite()
        assert not summary.has_cashflow_risk

    def test_unknown_scenario(self, steady_history):
        with pytest.raises(ValueError):
            project_scenario(steady_history, "euphoric", 3)


# ===== SERVICE =====

@pytest.fixture
def ledger(db_session, sample_project):
    """
    Enero: pago recurrente 1.000.000 (cliente A), ingreso 400.000 (cliente B), gasto 200.000
    Febrero: pago recurrente 250.000 (cliente A), aporte de socios 500.000,
    gasto causado 100.000 y uno anulado de 999.000
    """
    other = Client(id=uuid4(), name="Cliente B")
    db_session.add(other)
    db_session.flush()

    db_session.add_all([
        Payment(
            project_id=sample_project.id, client_id=sample_project.client_id,
            kind=PaymentKind.RECURRING, period_index=0,
            scheduled_date=date(2024, 1, 1), paid_date=date(2024, 1, 10),
            amount=Decimal("1000000"), currency="COP", status=PaymentStatus.PAID,
        ),
        Payment(
            project_id=sample_project.id, client_id=sample_project.client_id,
            kind=PaymentKind.RECURRING, period_index=1,
            scheduled_date=date(2024, 2, 1), paid_date=date(2024, 2, 10),
            amount=Decimal("250000"), currency="COP", status=PaymentStatus.PAID,
        ),
        Payment(
            project_id=sample_project.id, client_id=sample_project.client_id,
            kind=PaymentKind.RECURRING, period_index=2,
            scheduled_date=date(2024, 3, 1),
            amount=Decimal("250000"), currency="COP", status=PaymentStatus.PENDING,
        ),
        Income(
            description="Consultoría", date=date(2024, 1, 20), amount=Decimal("400000"),
            currency="COP", client_id=other.id, is_recurring=False, is_partner_contribution=False,
        ),
        Income(
            description="Aporte de socios", date=date(2024, 2, 3), amount=Decimal("500000"),
            currency="COP", is_recurring=False, is_partner_contribution=True,
        ),
        Expense(
            description="Hosting", date=date(2024, 1, 5), amount=Decimal("200000"),
            currency="COP", category="Tecnología",
        ),
        AccruedExpense(
            source_type=SourceType.RECURRING, source_id=uuid4(), period_index=0,
            description="Arriendo", due_date=date(2024, 2, 15), amount=Decimal("100000"),
            currency="COP", status=AccruedStatus.PENDING,
        ),
        AccruedExpense(
            source_type=SourceType.RECURRING, source_id=uuid4(), period_index=0,
            description="Licencia cancelada", due_date=date(2024, 2, 20), amount=Decimal("999000"),
            currency="COP", status=AccruedStatus.VOIDED,
        ),
    ])
    db_session.commit()
    return {"client_a": sample_project.client_id, "client_b": other.id}


def context(currency=Currency.COP, as_of=date(2024, 2, 29)):
    return EngineContext(exchange_rate=Decimal("4000"), reporting_currency=currency, as_of=as_of)


class TestFinancialReportService:

    def test_monthly_aggregates(self, db_session, ledger):
        service = FinancialReportService(db_session, context())
        january, february = service.monthly_aggregates(date(2024, 1, 1), date(2024, 2, 29))

        assert january.key == (2024, 1)
        assert january.total_income == Decimal("1400000")
        assert january.operational_income == Decimal("1400000")
        assert january.recurring_income == Decimal("1000000")
        assert january.total_expense == Decimal("200000")

        assert february.total_income == Decimal("750000")
        assert february.operational_income == Decimal("250000")
        assert february.recurring_income == Decimal("250000")
        assert february.total_expense == Decimal("100000")

    def test_empty_months_are_included(self, db_session, ledger):
        service = FinancialReportService(db_session, context())
        aggregates = service.monthly_aggregates(date(2023, 11, 1), date(2024, 2, 29))
        assert [a.key for a in aggregates] == [(2023, 11), (2023, 12), (2024, 1), (2024, 2)]
        assert aggregates[0].total_income == Decimal("0")

    def test_metrics(self, db_session, ledger):
        report = FinancialReportService(db_session, context()).get_metrics(date(2024, 1, 1), date(2024, 2, 29))
        metrics = report.metrics

        assert metrics.mrr == Decimal("250000")
        assert metrics.arr == Decimal("3000000")
        assert metrics.burn_rate == Decimal("150000")
        assert metrics.runway.is_infinite()
        assert metrics.cash_balance == Decimal("1850000")
        assert metrics.profit_margin == Decimal("81.82")
        # 1.250.000 de 1.650.000 facturados a clientes; el aporte de socios no cuenta
        assert metrics.top_client_percentage == Decimal("75.76")
        assert metrics.concentration_risk
        assert metrics.client_concentration[0].client_id == ledger["client_a"]
        assert metrics.churned_mrr == Decimal("750000")
        assert metrics.new_mrr == Decimal("0")
        assert metrics.income_variation.percentage == Decimal("-46.43")

    def test_metrics_expense_by_category(self, db_session, ledger):
        report = FinancialReportService(db_session, context()).get_metrics(date(2024, 1, 1), date(2024, 2, 29))
        metrics = report.metrics

        # el causado anulado de 999.000 no cuenta
        assert [(c.category, c.total, c.percentage) for c in metrics.expense_by_category] == [
            ("Tecnología", Decimal("200000"), Decimal("66.67")),
            ("Sin categoría", Decimal("100000"), Decimal("33.33")),
        ]
        assert metrics.top_category == "Tecnología"

    def test_metrics_client_kpis(self, db_session, ledger):
        inactive = Client(id=uuid4(), name="Cliente Inactivo", status=ClientStatus.INACTIVE)
        db_session.add(inactive)
        db_session.commit()

        metrics = FinancialReportService(db_session, context()).get_metrics(
            date(2024, 1, 1), date(2024, 2, 29)
        ).metrics

        assert metrics.active_clients == 2
        assert metrics.active_projects == 1
        assert metrics.projects_per_client == Decimal("0.50")
        # ingreso operacional de febrero entre dos clientes activos
        assert metrics.average_ticket == Decimal("125000")
        assert metrics.ltv == Decimal("1500000")

    def test_metrics_in_usd(self, db_session, ledger):
        report = FinancialReportService(db_session, context(Currency.USD)).get_metrics(
            date(2024, 1, 1), date(2024, 2, 29)
        )
        assert report.metrics.currency == Currency.USD
        assert report.metrics.total_income == Decimal("537.50")
        assert report.aggregates[0].total_income == Decimal("350.00")

    def test_default_period_is_last_twelve_months(self, db_session, ledger):
        report = FinancialReportService(db_session, context()).get_metrics()
        assert report.period_start == date(2023, 3, 1)
        assert report.period_end == date(2024, 2, 29)
        assert len(report.aggregates) == 12

    def test_mrr_movement(self, db_session, ledger):
        movement = FinancialReportService(db_session, context()).mrr_movement(2024, 2)
        assert movement.churned_mrr == Decimal("750000")
        assert movement.churned_clients == 0
        assert movement.net_new_mrr == Decimal("-750000")

    def test_projections(self, db_session, ledger):
        report = FinancialReportService(db_session, context()).get_projections(
            Scenario.CONSERVATIVE, 2, history_months=2
        )
        assert [(p.year, p.month) for p in report.points] == [(2024, 3), (2024, 4)]
        assert report.points[0].projected_income == Decimal("1075000")
        assert report.points[0].projected_expense == Decimal("150000")
        assert [p.projected_balance for p in report.points] == [Decimal("2775000"), Decimal("3700000")]
        assert not report.summary.has_cashflow_risk


# ===== ENDPOINTS =====

class TestReportEndpoints:

    def test_metrics_json(self, client_app, ledger):
        response = client_app.get(
            "/reports/metrics?start_date=2024-01-01&end_date=2024-02-29&as_of=2024-02-29"
        )
        assert response.status_code == 200
        metrics = response.json()["metrics"]
        assert Decimal(metrics["mrr"]) == Decimal("250000")
        assert Decimal(metrics["runway"]).is_infinite()
        assert metrics["concentration_risk"] is True

    def test_metrics_inverted_range(self, client_app):
        response = client_app.get("/reports/metrics?start_date=2024-02-01&end_date=2024-01-01")
        assert response.status_code == 422

    def test_metrics_csv(self, client_app, ledger):
        response = client_app.get(
            "/reports/metrics?start_date=2024-01-01&end_date=2024-02-29&as_of=2024-02-29&export=csv"
        )
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        lines = response.text.strip().splitlines()
        assert lines[0].startswith("Periodo,Ingresos")
        assert lines[1].startswith("2024-01,1400000")

    def test_projections_csv(self, client_app, ledger):
        response = client_app.get(
            "/reports/projections?as_of=2024-02-29&months=2&history_months=2&export=csv"
        )
        assert response.status_code == 200
        lines = response.text.strip().splitlines()
        assert lines[0] == "Periodo,Ingresos proyectados,Gastos proyectados,Balance proyectado,Moneda"
        assert lines[1] == "2024-03,1075000,150000,2775000,COP"

    def test_projections_unknown_scenario(self, client_app):
        response = client_app.get("/reports/projections?scenario=euphoric")
        assert response.status_code == 422


def test_engine_entry_points():
    from cashflow import engine

    assert engine.compute_metrics is compute_metrics
    assert engine.project_scenario is project_scenario
    assert callable(engine.generate_payment_schedule)
    assert callable(engine.generate_accruals)


def test_context_from_settings():
    ctx = EngineContext.from_settings(date(2024, 2, 29))
    assert ctx.as_of == date(2024, 2, 29)
    assert ctx.exchange_rate > 0
    assert ctx.converter.convert(Decimal("1"), Currency.USD, ctx.reporting_currency) > 0
