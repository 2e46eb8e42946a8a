"""
Tests para el módulo de Planes de Pago

Cubren:
- Generación del calendario (cuotas, gracia, descuentos, tipos de plan)
- Validación del plan antes de generar
- Persistencia y regeneración atómica
- Registro de pagos y estado vencido derivado
- Endpoints HTTP
"""

import pytest
from types import SimpleNamespace
from datetime import date
from decimal import Decimal
from uuid import uuid4

from fastapi import HTTPException
from pydantic import TypeAdapter, ValidationError

from cashflow.core.context import EngineContext
from cashflow.core.exceptions import InvalidPlanError
from cashflow.modules.currency import Currency
from cashflow.modules.recurrence import Frequency
from cashflow.modules.payments.models import Payment, PaymentPlan, PaymentStatus, PaymentKind, PlanType
from cashflow.modules.payments.schemas import (
    ImplementationFee, RecurringFee, SingleFeePlan, InstallmentFeePlan, SubscriptionPlan, MixedPlan,
    PaymentPlanData, PaymentPlanIn, MarkPaidRequest
)
from cashflow.modules.payments.generator import (
    PaymentScheduleGenerator, generate_payment_schedule, validate_plan, plan_from_record, effective_status
)
from cashflow.modules.payments.service import PaymentScheduleService


# ===== FIXTURES =====

@pytest.fixture
def project_anchor():
    return SimpleNamespace(start_date=date(2024, 1, 1))


@pytest.fixture
def mixed_plan():
    """Plan mixto: 3 cuotas de 1.000.000 y cobro mensual de 500.000 con 1 periodo de gracia y 2 al 50%"""
    return MixedPlan(
        implementation_fee=ImplementationFee(total=Decimal("3000000"), currency=Currency.COP, installments=3),
        recurring_fee=RecurringFee(
            amount=Decimal("500000"),
            currency=Currency.COP,
            frequency=Frequency.MONTHLY,
            day_of_charge=1,
            grace_periods=1,
            discount_periods=2,
            discount_percentage=Decimal("50"),
        ),
    )


@pytest.fixture
def mixed_plan_payload():
    return {
        "plan_type": "mixed",
        "implementation_fee": {"total": "3000000", "currency": "COP", "installments": 3},
        "recurring_fee": {
            "amount": "500000",
            "currency": "COP",
            "frequency": "Mensual",
            "day_of_charge": 1,
            "grace_periods": 1,
            "discount_periods": 2,
            "discount_percentage": "50",
        },
    }


# ===== GENERADOR =====

class TestImplementationFee:

    def test_single_fee_produces_one_payment_for_total(self, project_anchor):
        plan = SingleFeePlan(implementation_fee=ImplementationFee(total=Decimal("2500000"), installments=4))
        payments = generate_payment_schedule(plan, project_anchor)

        assert len(payments) == 1
        assert payments[0].amount == Decimal("2500000")
        assert payments[0].kind == PaymentKind.IMPLEMENTATION
        assert payments[0].installment_number == 1
        assert payments[0].scheduled_date == date(2024, 1, 1)

    def test_installments_sum_to_total(self, project_anchor):
        plan = InstallmentFeePlan(implementation_fee=ImplementationFee(total=Decimal("1000000"), installments=3))
        payments = generate_payment_schedule(plan, project_anchor)

        assert len(payments) == 3
        assert [p.amount for p in payments] == [Decimal("333333"), Decimal("333333"), Decimal("333334")]
        assert sum(p.amount for p in payments) == Decimal("1000000")
        assert [p.installment_number for p in payments] == [1, 2, 3]
        assert [p.scheduled_date for p in payments] == [date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1)]

    @pytest.mark.parametrize("total,installments", [
        ("100.00", 3), ("999.99", 7), ("1.00", 6), ("12345.67", 12),
    ])
    def test_usd_installments_sum_to_total(self, project_anchor, total, installments):
        plan = InstallmentFeePlan(implementation_fee=ImplementationFee(
            total=Decimal(total), currency=Currency.USD, installments=installments
        ))
        payments = generate_payment_schedule(plan, project_anchor)

        assert len(payments) == installments
        assert sum(p.amount for p in payments) == Decimal(total)
        assert all(p.currency == Currency.USD for p in payments)

    def test_installments_from_month_end_start(self):
        plan = InstallmentFeePlan(implementation_fee=ImplementationFee(total=Decimal("300"), installments=3))
        payments = generate_payment_schedule(plan, SimpleNamespace(start_date=date(2024, 1, 31)))
        assert [p.scheduled_date for p in payments] == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31)]


class TestRecurringFee:

    def test_grace_periods_emit_nothing(self, project_anchor):
        plan = SubscriptionPlan(recurring_fee=RecurringFee(amount=Decimal("1000000"), grace_periods=2))
        payments = generate_payment_schedule(plan, project_anchor)

        assert len(payments) == 10
        assert payments[0].period_index == 2
        assert payments[0].scheduled_date == date(2024, 3, 1)

    def test_discount_window_after_grace(self, project_anchor):
        plan = SubscriptionPlan(recurring_fee=RecurringFee(
            amount=Decimal("1000000"),
            day_of_charge=5,
            grace_periods=2,
            discount_periods=3,
            discount_percentage=Decimal("20"),
        ))
        payments = generate_payment_schedule(plan, project_anchor)
        by_period = {p.period_index: p for p in payments}

        for period in (2, 3, 4):
            assert by_period[period].amount == Decimal("800000")
            assert by_period[period].notes == "Descuento aplicado: 20%"
        for period in range(5, 12):
            assert by_period[period].amount == Decimal("1000000")
            assert by_period[period].notes is None
        assert by_period[2].scheduled_date == date(2024, 3, 5)

    def test_discount_rounded_to_currency(self, project_anchor):
        plan = SubscriptionPlan(recurring_fee=RecurringFee(
            amount=Decimal("333333"), discount_periods=1, discount_percentage=Decimal("50")
        ))
        payments = generate_payment_schedule(plan, project_anchor)
        # 166666.5 -> 166667
        assert payments[0].amount == Decimal("166667")

    def test_discount_rounded_to_cents_for_usd(self, project_anchor):
        plan = SubscriptionPlan(recurring_fee=RecurringFee(
            amount=Decimal("99.99"), currency=Currency.USD, discount_periods=1, discount_percentage=Decimal("15")
        ))
        payments = generate_payment_schedule(plan, project_anchor)
        # 84.9915 -> 84.99
        assert payments[0].amount == Decimal("84.99")
        assert payments[1].amount == Decimal("99.99")

    def test_horizon_counts_grace_periods(self, project_anchor):
        plan = SubscriptionPlan(recurring_fee=RecurringFee(amount=Decimal("100"), grace_periods=1))
        payments = PaymentScheduleGenerator(horizon_periods=3).generate(plan, project_anchor)
        assert [p.period_index for p in payments] == [1, 2]

    def test_weekly_subscription(self, project_anchor):
        plan = SubscriptionPlan(recurring_fee=RecurringFee(amount=Decimal("100"), frequency="Semanal"))
        payments = PaymentScheduleGenerator(horizon_periods=3).generate(plan, project_anchor)
        assert [p.scheduled_date for p in payments] == [date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15)]

    def test_day_of_charge_31_in_february(self):
        plan = SubscriptionPlan(recurring_fee=RecurringFee(amount=Decimal("100"), day_of_charge=31))
        payments = PaymentScheduleGenerator(horizon_periods=3).generate(plan, SimpleNamespace(start_date=date(2024, 1, 31)))
        assert [p.scheduled_date for p in payments] == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31)]


class TestMixedPlan:

    def test_mixed_plan_example(self, project_anchor, mixed_plan):
        payments = generate_payment_schedule(mixed_plan, project_anchor)

        implementation = [p for p in payments if p.kind == PaymentKind.IMPLEMENTATION]
        recurring = [p for p in payments if p.kind == PaymentKind.RECURRING]

        assert [p.amount for p in implementation] == [Decimal("1000000")] * 3
        assert [p.scheduled_date for p in implementation] == [date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1)]

        assert [p.period_index for p in recurring] == list(range(1, 12))
        assert recurring[0].amount == Decimal("250000")
        assert recurring[1].amount == Decimal("250000")
        assert all(p.amount == Decimal("500000") for p in recurring[2:])
        assert recurring[0].scheduled_date == date(2024, 2, 1)

    def test_schedule_is_ordered_by_date(self, project_anchor, mixed_plan):
        payments = generate_payment_schedule(mixed_plan, project_anchor)
        dates = [p.scheduled_date for p in payments]
        assert dates == sorted(dates)
        # a igual fecha la cuota de implementación va primero
        assert payments[1].kind == PaymentKind.IMPLEMENTATION
        assert payments[2].kind == PaymentKind.RECURRING

    def test_generation_is_deterministic(self, project_anchor, mixed_plan):
        assert generate_payment_schedule(mixed_plan, project_anchor) == generate_payment_schedule(mixed_plan, project_anchor)


class TestPlanValidation:

    def test_missing_recurring_fee_raises_before_generation(self, project_anchor):
        plan = PaymentPlanData(
            plan_type=PlanType.MIXED,
            implementation_fee=ImplementationFee(total=Decimal("100")),
        )
        with pytest.raises(InvalidPlanError) as exc:
            PaymentScheduleGenerator().generate(plan, project_anchor)
        assert exc.value.missing == "recurring_fee"

    @pytest.mark.parametrize("plan_type", ["single_fee", "installment_fee", "mixed"])
    def test_implementation_fee_required(self, plan_type):
        with pytest.raises(InvalidPlanError):
            validate_plan(PaymentPlanData(plan_type=plan_type))

    def test_recurring_fee_required(self):
        with pytest.raises(InvalidPlanError):
            validate_plan(PaymentPlanData(plan_type="recurring_subscription"))

    def test_discriminated_union_rejects_incomplete_plan(self):
        adapter = TypeAdapter(PaymentPlanIn)
        with pytest.raises(ValidationError):
            adapter.validate_python({
                "plan_type": "mixed",
                "implementation_fee": {"total": "100"},
            })

    def test_discriminated_union_selects_variant(self, mixed_plan_payload):
        plan = TypeAdapter(PaymentPlanIn).validate_python(mixed_plan_payload)
        assert isinstance(plan, MixedPlan)
        assert plan.recurring_fee.frequency == Frequency.MONTHLY

    def test_unknown_frequency_rejected(self):
        with pytest.raises(ValidationError):
            RecurringFee(amount=Decimal("100"), frequency="Diaria")

    @pytest.mark.parametrize("field,value", [
        ("day_of_charge", 32), ("day_of_charge", 0), ("grace_periods", -1), ("discount_percentage", "101"),
    ])
    def test_recurring_fee_bounds(self, field, value):
        with pytest.raises(ValidationError):
            RecurringFee(amount=Decimal("100"), **{field: value})

    def test_installments_at_least_one(self):
        with pytest.raises(ValidationError):
            ImplementationFee(total=Decimal("100"), installments=0)


class TestEffectiveStatus:

    def test_pending_before_as_of_is_overdue(self):
        payment = SimpleNamespace(status=PaymentStatus.PENDING, scheduled_date=date(2024, 1, 1))
        assert effective_status(payment, date(2024, 1, 2)) == PaymentStatus.OVERDUE

    def test_pending_on_as_of_is_pending(self):
        payment = SimpleNamespace(status=PaymentStatus.PENDING, scheduled_date=date(2024, 1, 2))
        assert effective_status(payment, date(2024, 1, 2)) == PaymentStatus.PENDING

    def test_paid_stays_paid(self):
        payment = SimpleNamespace(status=PaymentStatus.PAID, scheduled_date=date(2024, 1, 1))
        assert effective_status(payment, date(2024, 6, 1)) == PaymentStatus.PAID


# ===== SERVICIO =====

class TestPaymentScheduleService:

    def test_create_plan_persists_schedule(self, db_session, sample_project, mixed_plan):
        service = PaymentScheduleService(db_session)
        result = service.create_plan(sample_project.id, mixed_plan, as_of=date(2024, 1, 1))

        assert result.plan_type == PlanType.MIXED
        assert len(result.payments) == 14
        assert db_session.query(Payment).filter(Payment.project_id == sample_project.id).count() == 14
        assert all(p.status == PaymentStatus.PENDING for p in result.payments)
        assert all(p.client_id == sample_project.client_id for p in result.payments)

    def test_create_plan_twice_conflicts(self, db_session, sample_project, mixed_plan):
        service = PaymentScheduleService(db_session)
        service.create_plan(sample_project.id, mixed_plan, as_of=date(2024, 1, 1))

        with pytest.raises(HTTPException) as exc:
            service.create_plan(sample_project.id, mixed_plan, as_of=date(2024, 1, 1))
        assert exc.value.status_code == 409

    def test_create_plan_for_unknown_project(self, db_session, mixed_plan):
        with pytest.raises(HTTPException) as exc:
            PaymentScheduleService(db_session).create_plan(uuid4(), mixed_plan, as_of=date(2024, 1, 1))
        assert exc.value.status_code == 404

    def test_invalid_plan_writes_nothing(self, db_session, sample_project):
        plan = PaymentPlanData(plan_type=PlanType.RECURRING_SUBSCRIPTION)
        with pytest.raises(HTTPException) as exc:
            PaymentScheduleService(db_session).create_plan(sample_project.id, plan, as_of=date(2024, 1, 1))

        assert exc.value.status_code == 400
        assert db_session.query(Payment).count() == 0
        assert db_session.query(PaymentPlan).count() == 0

    def test_plan_round_trips_through_record(self, db_session, sample_project, mixed_plan):
        PaymentScheduleService(db_session).create_plan(sample_project.id, mixed_plan, as_of=date(2024, 1, 1))
        record = db_session.query(PaymentPlan).filter(PaymentPlan.project_id == sample_project.id).one()

        plan = plan_from_record(record)
        assert isinstance(plan, MixedPlan)
        assert plan.implementation_fee.installments == 3
        assert plan.recurring_fee.frequency == Frequency.MONTHLY
        assert plan.recurring_fee.discount_percentage == Decimal("50")

    def test_regenerate_replaces_pending_and_keeps_paid(self, db_session, sample_project, mixed_plan):
        service = PaymentScheduleService(db_session)
        service.create_plan(sample_project.id, mixed_plan, as_of=date(2024, 1, 1))

        payments = db_session.query(Payment).filter(Payment.project_id == sample_project.id).all()
        first_installment = next(p for p in payments if p.kind == PaymentKind.IMPLEMENTATION and p.period_index == 0)
        first_recurring = next(p for p in payments if p.kind == PaymentKind.RECURRING and p.period_index == 1)
        service.mark_paid(first_installment.id, MarkPaidRequest(paid_date=date(2024, 1, 3)), as_of=date(2024, 1, 3))
        service.mark_paid(first_recurring.id, MarkPaidRequest(paid_date=date(2024, 2, 2)), as_of=date(2024, 2, 2))

        new_plan = SubscriptionPlan(recurring_fee=RecurringFee(amount=Decimal("600000"), day_of_charge=1))
        result = service.regenerate_schedule(sample_project.id, new_plan, as_of=date(2024, 2, 2))

        assert result.removed == 12
        assert result.plan_type == PlanType.RECURRING_SUBSCRIPTION
        assert len(result.payments) == 13

        paid = [p for p in result.payments if p.status == PaymentStatus.PAID]
        assert len(paid) == 2

        recurring = [p for p in result.payments if p.kind == PaymentKind.RECURRING]
        assert sorted(p.period_index for p in recurring) == list(range(12))
        assert all(p.amount == Decimal("600000") for p in recurring if p.status != PaymentStatus.PAID)
        assert next(p for p in recurring if p.period_index == 1).amount == Decimal("250000")

    def test_regenerate_from_stored_plan_with_longer_horizon(self, db_session, sample_project, mixed_plan):
        PaymentScheduleService(db_session).create_plan(sample_project.id, mixed_plan, as_of=date(2024, 1, 1))

        service = PaymentScheduleService(db_session, PaymentScheduleGenerator(18))
        result = service.regenerate_schedule(sample_project.id, None, as_of=date(2024, 1, 1))

        assert result.removed == 14
        assert result.plan_type == PlanType.MIXED
        recurring = [p for p in result.payments if p.kind == PaymentKind.RECURRING]
        assert sorted(p.period_index for p in recurring) == list(range(1, 18))
        assert recurring[-1].scheduled_date == date(2025, 6, 1)
        assert len(result.payments) == 20

    def test_regenerate_is_all_or_nothing(self, db_session, sample_project, mixed_plan):
        service = PaymentScheduleService(db_session)
        service.create_plan(sample_project.id, mixed_plan, as_of=date(2024, 1, 1))

        # cobro registrado sin cerrar su estado: no se retira y choca con el periodo 1 del plan nuevo
        stuck = db_session.query(Payment).filter(
            Payment.project_id == sample_project.id,
            Payment.kind == PaymentKind.RECURRING,
            Payment.period_index == 1
        ).one()
        stuck.paid_date = date(2024, 2, 2)
        db_session.commit()

        new_plan = SubscriptionPlan(recurring_fee=RecurringFee(amount=Decimal("600000"), day_of_charge=1))
        with pytest.raises(HTTPException) as exc:
            service.regenerate_schedule(sample_project.id, new_plan, as_of=date(2024, 2, 2))
        assert exc.value.status_code == 500

        payments = db_session.query(Payment).filter(Payment.project_id == sample_project.id).all()
        assert len(payments) == 14
        assert sum(1 for p in payments if p.kind == PaymentKind.IMPLEMENTATION) == 3
        assert all(p.amount != Decimal("600000") for p in payments)

        record = db_session.query(PaymentPlan).filter(PaymentPlan.project_id == sample_project.id).one()
        assert record.plan_type == PlanType.MIXED
        assert record.implementation_fee_total == Decimal("3000000")
        assert record.recurring_fee_amount == Decimal("500000")

    def test_regenerate_without_plan(self, db_session, sample_project, mixed_plan):
        with pytest.raises(HTTPException) as exc:
            PaymentScheduleService(db_session).regenerate_schedule(sample_project.id, mixed_plan, as_of=date(2024, 1, 1))
        assert exc.value.status_code == 404

    def test_mark_paid_twice(self, db_session, sample_project, mixed_plan):
        service = PaymentScheduleService(db_session)
        service.create_plan(sample_project.id, mixed_plan, as_of=date(2024, 1, 1))
        payment = db_session.query(Payment).first()

        paid = service.mark_paid(payment.id, MarkPaidRequest(paid_date=date(2024, 1, 5), invoice_number="FV-001"), as_of=date(2024, 1, 5))
        assert paid.status == PaymentStatus.PAID
        assert paid.invoice_number == "FV-001"

        with pytest.raises(HTTPException) as exc:
            service.mark_paid(payment.id, MarkPaidRequest(paid_date=date(2024, 1, 6)), as_of=date(2024, 1, 6))
        assert exc.value.status_code == 400

    def test_list_payments_derives_overdue(self, db_session, sample_project, mixed_plan):
        service = PaymentScheduleService(db_session)
        service.create_plan(sample_project.id, mixed_plan, as_of=date(2024, 1, 1))

        payments = service.list_payments(sample_project.id, as_of=date(2024, 2, 15))
        overdue = [p for p in payments if p.status == PaymentStatus.OVERDUE]
        assert len(overdue) == 3
        # el estado guardado no cambia
        assert db_session.query(Payment).filter(Payment.status == PaymentStatus.OVERDUE).count() == 0

    def test_payment_summary(self, db_session, sample_project, mixed_plan):
        service = PaymentScheduleService(db_session)
        service.create_plan(sample_project.id, mixed_plan, as_of=date(2024, 1, 1))
        first = db_session.query(Payment).filter(
            Payment.kind == PaymentKind.IMPLEMENTATION, Payment.period_index == 0
        ).one()
        service.mark_paid(first.id, MarkPaidRequest(paid_date=date(2024, 1, 2)), as_of=date(2024, 1, 2))

        context = EngineContext(exchange_rate=Decimal("4000"), reporting_currency=Currency.COP, as_of=date(2024, 2, 15))
        summary = service.payment_summary(sample_project.id, context)

        assert summary.total_paid == Decimal("1000000")
        assert summary.count_paid == 1
        assert summary.total_overdue == Decimal("1250000")
        assert summary.count_overdue == 2
        assert summary.total_pending == Decimal("5750000")
        assert summary.count_pending == 11
        assert summary.next_payment_date == date(2024, 3, 1)

    def test_payment_summary_in_usd(self, db_session, sample_project, mixed_plan):
        service = PaymentScheduleService(db_session)
        service.create_plan(sample_project.id, mixed_plan, as_of=date(2024, 1, 1))

        context = EngineContext(exchange_rate=Decimal("4000"), reporting_currency=Currency.USD, as_of=date(2023, 12, 1))
        summary = service.payment_summary(sample_project.id, context)

        # 3.000.000 + 2 x 250.000 + 9 x 500.000 = 8.000.000 COP
        assert summary.currency == Currency.USD
        assert summary.total_pending == Decimal("2000.00")


# ===== ENDPOINTS =====

class TestPaymentEndpoints:

    def test_create_plan(self, client_app, sample_project, mixed_plan_payload):
        response = client_app.post(
            f"/projects/{sample_project.id}/payment-plan?as_of=2024-01-01", json=mixed_plan_payload
        )
        assert response.status_code == 201
        data = response.json()
        assert data["plan_type"] == "mixed"
        assert len(data["payments"]) == 14
        assert Decimal(data["payments"][0]["amount"]) == Decimal("1000000")

    def test_create_incomplete_plan(self, client_app, sample_project):
        response = client_app.post(
            f"/projects/{sample_project.id}/payment-plan",
            json={"plan_type": "recurring_subscription"}
        )
        assert response.status_code == 422

    def test_create_plan_unknown_project(self, client_app, mixed_plan_payload):
        response = client_app.post(f"/projects/{uuid4()}/payment-plan", json=mixed_plan_payload)
        assert response.status_code == 404

    def test_regenerate_and_list(self, client_app, sample_project, mixed_plan_payload):
        client_app.post(f"/projects/{sample_project.id}/payment-plan?as_of=2024-01-01", json=mixed_plan_payload)

        response = client_app.put(
            f"/projects/{sample_project.id}/payment-plan?as_of=2024-01-01",
            json={"plan_type": "installment_fee", "implementation_fee": {"total": "900000", "installments": 2}}
        )
        assert response.status_code == 200
        assert response.json()["removed"] == 14

        response = client_app.get(f"/projects/{sample_project.id}/payments?as_of=2024-01-15")
        assert response.status_code == 200
        payments = response.json()
        assert [Decimal(p["amount"]) for p in payments] == [Decimal("450000"), Decimal("450000")]
        assert [p["status"] for p in payments] == ["overdue", "pending"]

    def test_regenerate_without_body_uses_stored_plan(self, client_app, sample_project, mixed_plan_payload):
        client_app.post(f"/projects/{sample_project.id}/payment-plan?as_of=2024-01-01", json=mixed_plan_payload)

        response = client_app.put(f"/projects/{sample_project.id}/payment-plan?as_of=2024-01-01")

        assert response.status_code == 200
        data = response.json()
        assert data["plan_type"] == "mixed"
        assert data["removed"] == 14
        assert len(data["payments"]) == 14

    def test_mark_paid_and_summary(self, client_app, sample_project, mixed_plan_payload):
        created = client_app.post(
            f"/projects/{sample_project.id}/payment-plan?as_of=2024-01-01", json=mixed_plan_payload
        ).json()
        payment_id = created["payments"][0]["id"]

        response = client_app.patch(f"/payments/{payment_id}/paid", json={"paid_date": "2024-01-05"})
        assert response.status_code == 200
        assert response.json()["status"] == "paid"

        response = client_app.get(f"/projects/{sample_project.id}/payments/summary?as_of=2024-01-10")
        assert response.status_code == 200
        assert response.json()["count_paid"] == 1

    def test_mark_unknown_payment(self, client_app):
        response = client_app.patch(f"/payments/{uuid4()}/paid", json={"paid_date": "2024-01-05"})
        assert response.status_code == 404
