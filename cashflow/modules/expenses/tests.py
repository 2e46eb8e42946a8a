"""
Tests para el módulo de Gastos Causados

Cubren:
- Generación idempotente de ocurrencias
- Aislamiento de gastos con frecuencia inválida
- Sincronización y unicidad en base de datos
- Edición de gastos recurrentes y cambios de estado
- Endpoints y tarea periódica
"""

import pytest
from types import SimpleNamespace
from datetime import date
from decimal import Decimal
from uuid import uuid4

from fastapi import HTTPException

from cashflow.core.exceptions import UnknownFrequencyError, DuplicateOccurrenceError
from cashflow.modules.expenses.models import RecurringExpense, AccruedExpense, AccruedStatus
from cashflow.modules.expenses.schemas import (
    AccrualSyncResult, AccruedStatusUpdate, RecurringExpenseUpdate
)
from cashflow.modules.expenses.generator import AccrualGenerator, generate_accruals
from cashflow.modules.expenses.service import AccrualService
from cashflow.modules.expenses import tasks


def make_expense(**overrides):
    data = dict(
        id=uuid4(),
        description="Arriendo oficina",
        amount=Decimal("100000"),
        currency="COP",
        category="Arriendo",
        payment_method="Transferencia",
        frequency="monthly",
        start_date=date(2024, 1, 15),
        end_date=None,
        is_active=True,
        series_start_index=0,
        period_offset=0,
    )
    data.update(overrides)
    return SimpleNamespace(**data)


@pytest.fixture
def rent(db_session):
    expense = RecurringExpense(
        id=uuid4(),
        description="Arriendo oficina",
        amount=Decimal("100000"),
        currency="COP",
        category="Arriendo",
        frequency="Mensual",
        start_date=date(2024, 1, 15),
        is_active=True,
        is_auto_debit=False,
    )
    db_session.add(expense)
    db_session.commit()
    return expense


def accrued_for(db_session, expense):
    return db_session.query(AccruedExpense).filter(
        AccruedExpense.source_id == expense.id
    ).order_by(AccruedExpense.period_index).all()


# ===== GENERADOR =====

class TestAccrualGenerator:

    def test_generates_until_horizon(self):
        drafts = AccrualGenerator(3).generate_up_to(make_expense(), set(), as_of=date(2024, 1, 1))

        assert [d.due_date for d in drafts] == [date(2024, 1, 15), date(2024, 2, 15), date(2024, 3, 15)]
        assert [d.period_index for d in drafts] == [0, 1, 2]
        assert all(d.amount == Decimal("100000") for d in drafts)
        assert drafts[0].description == "Arriendo oficina"

    def test_existing_periods_are_skipped(self):
        expense = make_expense()
        generator = AccrualGenerator(3)
        first = generator.generate_up_to(expense, set(), as_of=date(2024, 1, 1))

        again = generator.generate_up_to(expense, {d.period_index for d in first}, as_of=date(2024, 1, 1))
        assert again == []

    def test_growing_horizon_only_adds_new_periods(self):
        expense = make_expense()
        drafts = AccrualGenerator().generate_up_to(expense, {0, 1, 2}, as_of=date(2024, 1, 1), horizon_months=4)
        assert [(d.period_index, d.due_date) for d in drafts] == [(3, date(2024, 4, 15))]

    def test_past_start_date_backfills(self):
        expense = make_expense(start_date=date(2023, 11, 15))
        drafts = AccrualGenerator(0).generate_up_to(expense, set(), as_of=date(2024, 1, 20))
        assert [d.due_date for d in drafts] == [date(2023, 11, 15), date(2023, 12, 15), date(2024, 1, 15)]

    def test_inactive_expense_generates_nothing(self):
        assert AccrualGenerator().generate_up_to(make_expense(is_active=False), set(), date(2024, 1, 1)) == []

    def test_end_date_limits_generation(self):
        expense = make_expense(end_date=date(2024, 2, 20))
        drafts = AccrualGenerator(6).generate_up_to(expense, set(), as_of=date(2024, 1, 1))
        assert [d.due_date for d in drafts] == [date(2024, 1, 15), date(2024, 2, 15)]

    def test_spanish_frequency(self):
        expense = make_expense(frequency="Trimestral")
        drafts = AccrualGenerator(6).generate_up_to(expense, set(), as_of=date(2024, 1, 1))
        assert [d.due_date for d in drafts] == [date(2024, 1, 15), date(2024, 4, 15)]

    def test_month_end_start_does_not_drift(self):
        expense = make_expense(start_date=date(2024, 1, 31))
        drafts = AccrualGenerator(3).generate_up_to(expense, set(), as_of=date(2024, 1, 1))
        assert [d.due_date for d in drafts] == [date(2024, 1, 31), date(2024, 2, 29), date(2024, 3, 31)]

    def test_unknown_frequency_raises(self):
        with pytest.raises(UnknownFrequencyError):
            AccrualGenerator().generate_up_to(make_expense(frequency="Diaria"), set(), date(2024, 1, 1))

    def test_batch_isolates_failures(self):
        good = make_expense()
        bad = make_expense(frequency="Diaria")

        result = AccrualGenerator(3).generate_batch([bad, good], {}, as_of=date(2024, 1, 1))

        assert len(result.drafts) == 3
        assert all(d.source_id == good.id for d in result.drafts)
        assert len(result.failures) == 1
        assert result.failures[0].expense_id == bad.id
        assert result.failures[0].frequency == "Diaria"

    def test_restart_series_starts_after_as_of(self):
        expense = make_expense(frequency="weekly", start_date=date(2024, 1, 1))

        first, offset = AccrualGenerator.restart_series(expense, {0, 1, 2, 3}, as_of=date(2024, 4, 20))

        # 16 semanas desde el 1 de enero caen hasta el 20 de abril
        assert (first, offset) == (16, -12)

        restarted = make_expense(
            frequency="weekly", start_date=date(2024, 1, 1), series_start_index=first, period_offset=offset
        )
        drafts = AccrualGenerator(1).generate_up_to(restarted, {0, 1, 2, 3}, as_of=date(2024, 4, 20))
        assert [(d.period_index, d.due_date) for d in drafts] == [
            (4, date(2024, 4, 22)), (5, date(2024, 4, 29)), (6, date(2024, 5, 6)),
            (7, date(2024, 5, 13)), (8, date(2024, 5, 20)),
        ]

    def test_restart_series_without_history(self):
        assert AccrualGenerator.restart_series(make_expense(), set(), as_of=date(2024, 4, 20)) == (0, 0)

    def test_negative_horizon_rejected(self):
        with pytest.raises(ValueError):
            AccrualGenerator(-1)

    def test_generate_accruals_entry_point(self):
        drafts = generate_accruals(make_expense(), 1, {0}, as_of=date(2024, 1, 1))
        assert drafts == []
        drafts = generate_accruals(make_expense(), 2, {0}, as_of=date(2024, 1, 1))
        assert [d.period_index for d in drafts] == [1]


# ===== SERVICIO =====

class TestAccrualService:

    def test_sync_is_idempotent(self, db_session, rent):
        service = AccrualService(db_session, AccrualGenerator(3))

        first = service.sync(as_of=date(2024, 1, 1))
        assert first.created == 3
        assert first.expenses_processed == 1
        assert [a.due_date for a in service.repository.list_accrued_expenses(rent.id)] == [
            date(2024, 1, 15), date(2024, 2, 15), date(2024, 3, 15)
        ]

        second = service.sync(as_of=date(2024, 1, 1))
        assert second.created == 0
        assert second.duplicates == 0
        assert len(accrued_for(db_session, rent)) == 3

    def test_stale_batch_counts_duplicates(self, db_session, rent):
        service = AccrualService(db_session, AccrualGenerator(3))
        stale = service.generator.generate_up_to(rent, set(), as_of=date(2024, 1, 1))
        service.sync(as_of=date(2024, 1, 1))

        # una segunda sincronización concurrente que leyó antes de la primera
        result = AccrualSyncResult(as_of=date(2024, 1, 1), horizon_months=3)
        service._insert_all(stale, result)
        db_session.commit()

        assert result.created == 0
        assert result.duplicates == 3
        assert len(accrued_for(db_session, rent)) == 3

    def test_insert_duplicate_raises(self, db_session, rent):
        service = AccrualService(db_session, AccrualGenerator(0))
        draft = service.generator.generate_up_to(rent, set(), as_of=date(2024, 1, 15))[0]
        service._insert(draft)

        with pytest.raises(DuplicateOccurrenceError) as exc:
            service._insert(draft)
        assert exc.value.period_index == 0

    def test_sync_reports_invalid_frequency(self, db_session, rent):
        broken = RecurringExpense(
            id=uuid4(),
            description="Servicio mal configurado",
            amount=Decimal("5000"),
            currency="COP",
            category="Servicios",
            frequency="Diaria",
            start_date=date(2024, 1, 1),
            is_active=True,
            is_auto_debit=False,
        )
        db_session.add(broken)
        db_session.commit()

        result = AccrualService(db_session, AccrualGenerator(3)).sync(as_of=date(2024, 1, 1))

        assert result.created == 3
        assert result.expenses_processed == 2
        assert [f.expense_id for f in result.failures] == [broken.id]

    def test_generate_for_expense(self, db_session, rent):
        service = AccrualService(db_session, AccrualGenerator(3))
        result = service.generate_for_expense(rent.id, as_of=date(2024, 1, 1), horizon_months=1)
        assert result.created == 1

        result = service.generate_for_expense(rent.id, as_of=date(2024, 1, 1), horizon_months=3)
        assert result.created == 2

    def test_generate_for_unknown_expense(self, db_session):
        with pytest.raises(HTTPException) as exc:
            AccrualService(db_session).generate_for_expense(uuid4(), as_of=date(2024, 1, 1))
        assert exc.value.status_code == 404

    def test_update_regenerates_future_pending(self, db_session, rent):
        service = AccrualService(db_session, AccrualGenerator(3))
        service.sync(as_of=date(2024, 1, 1))
        january = accrued_for(db_session, rent)[0]
        service.set_status(january.id, AccruedStatusUpdate(status=AccruedStatus.PAID), as_of=date(2024, 1, 15))

        result = service.update_recurring_expense(
            rent.id, RecurringExpenseUpdate(amount=Decimal("150000")), as_of=date(2024, 1, 20)
        )

        assert result.removed == 2
        assert result.created == 3
        assert result.expense.amount == Decimal("150000")

        rows = accrued_for(db_session, rent)
        assert [r.period_index for r in rows] == [0, 1, 2, 3]
        assert rows[0].amount == Decimal("100000")
        assert rows[0].status == AccruedStatus.PAID
        assert all(r.amount == Decimal("150000") for r in rows[1:])

    def test_frequency_change_does_not_duplicate_periods(self, db_session):
        expense = RecurringExpense(
            id=uuid4(),
            description="Soporte",
            amount=Decimal("80000"),
            currency="COP",
            category="Servicios",
            frequency="monthly",
            start_date=date(2024, 1, 1),
            is_active=True,
        )
        db_session.add(expense)
        db_session.commit()

        service = AccrualService(db_session, AccrualGenerator(3))
        service.sync(as_of=date(2024, 4, 20))
        assert len(accrued_for(db_session, expense)) == 7

        result = service.update_recurring_expense(
            expense.id, RecurringExpenseUpdate(frequency="Semanal"), as_of=date(2024, 4, 20)
        )

        assert result.rule_changed
        assert result.removed == 3
        assert result.created == 13

        rows = accrued_for(db_session, expense)
        assert len({r.period_index for r in rows}) == len(rows)
        # lo causado hasta el corte queda como estaba, sin semanas rellenadas
        assert [r.due_date for r in rows if r.due_date <= date(2024, 4, 20)] == [
            date(2024, 1, 1), date(2024, 2, 1), date(2024, 3, 1), date(2024, 4, 1)
        ]
        assert [(r.period_index, r.due_date) for r in rows[4:6]] == [
            (4, date(2024, 4, 22)), (5, date(2024, 4, 29))
        ]
        assert rows[-1].due_date == date(2024, 7, 15)

        again = service.sync(as_of=date(2024, 4, 20))
        assert again.created == 0
        assert len(accrued_for(db_session, expense)) == len(rows)

    def test_start_date_change_restarts_series(self, db_session, rent):
        service = AccrualService(db_session, AccrualGenerator(3))
        service.sync(as_of=date(2024, 1, 1))

        result = service.update_recurring_expense(
            rent.id, RecurringExpenseUpdate(start_date=date(2024, 1, 5)), as_of=date(2024, 1, 20)
        )

        assert result.rule_changed
        rows = accrued_for(db_session, rent)
        assert [(r.period_index, r.due_date) for r in rows] == [
            (0, date(2024, 1, 15)), (1, date(2024, 2, 5)), (2, date(2024, 3, 5)), (3, date(2024, 4, 5))
        ]

    def test_update_tolerates_occurrences_inserted_meanwhile(self, db_session, rent, monkeypatch):
        service = AccrualService(db_session, AccrualGenerator(3))
        service.sync(as_of=date(2024, 1, 1))
        # lectura desactualizada: otra sincronización ya insertó el periodo 0
        monkeypatch.setattr(service.repository, "accrued_period_keys", lambda source_ids: {})

        result = service.update_recurring_expense(
            rent.id, RecurringExpenseUpdate(amount=Decimal("110000")), as_of=date(2024, 1, 20)
        )

        assert result.removed == 2
        assert result.created == 3
        assert result.duplicates == 1
        assert not result.rule_changed
        assert [r.period_index for r in accrued_for(db_session, rent)] == [0, 1, 2, 3]

    def test_update_rejects_end_before_start(self, db_session, rent):
        with pytest.raises(HTTPException) as exc:
            AccrualService(db_session).update_recurring_expense(
                rent.id, RecurringExpenseUpdate(end_date=date(2023, 12, 31)), as_of=date(2024, 1, 1)
            )
        assert exc.value.status_code == 400

    def test_voided_occurrence_is_not_regenerated(self, db_session, rent):
        service = AccrualService(db_session, AccrualGenerator(3))
        service.sync(as_of=date(2024, 1, 1))
        february = accrued_for(db_session, rent)[1]
        service.set_status(february.id, AccruedStatusUpdate(status=AccruedStatus.VOIDED), as_of=date(2024, 1, 1))

        result = service.sync(as_of=date(2024, 1, 1))
        assert result.created == 0

        rows = accrued_for(db_session, rent)
        assert len(rows) == 3
        assert rows[1].status == AccruedStatus.VOIDED

    def test_set_status_paid_defaults_to_as_of(self, db_session, rent):
        service = AccrualService(db_session, AccrualGenerator(3))
        service.sync(as_of=date(2024, 1, 1))
        accrued = accrued_for(db_session, rent)[0]

        paid = service.set_status(accrued.id, AccruedStatusUpdate(status=AccruedStatus.PAID), as_of=date(2024, 1, 16))
        assert paid.status == AccruedStatus.PAID
        assert paid.paid_date == date(2024, 1, 16)

        reopened = service.set_status(accrued.id, AccruedStatusUpdate(status=AccruedStatus.PENDING), as_of=date(2024, 1, 17))
        assert reopened.paid_date is None

    def test_update_schema_rejects_unknown_frequency(self):
        with pytest.raises(ValueError):
            RecurringExpenseUpdate(frequency="Diaria")

    def test_update_schema_normalizes_frequency(self):
        assert RecurringExpenseUpdate(frequency="Quincenal").frequency == "biweekly"


# ===== ENDPOINTS =====

class TestExpenseEndpoints:

    def test_sync_endpoint(self, client_app, rent):
        response = client_app.post("/expenses/recurring/sync?as_of=2024-01-01")
        assert response.status_code == 200
        data = response.json()
        assert data["created"] == 3
        assert data["failures"] == []

    def test_generate_endpoint(self, client_app, rent):
        response = client_app.post(f"/expenses/recurring/{rent.id}/generate?as_of=2024-01-01&months=2")
        assert response.status_code == 200
        assert response.json()["created"] == 2

    def test_update_endpoint(self, client_app, rent):
        client_app.post("/expenses/recurring/sync?as_of=2024-01-01")
        response = client_app.put(
            f"/expenses/recurring/{rent.id}?as_of=2024-01-01",
            json={"amount": "120000", "frequency": "Mensual"}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["removed"] == 3
        assert data["created"] == 3
        assert data["expense"]["frequency"] == "monthly"

    def test_update_endpoint_invalid_frequency(self, client_app, rent):
        response = client_app.put(f"/expenses/recurring/{rent.id}", json={"frequency": "Diaria"})
        assert response.status_code == 422

    def test_status_endpoint(self, client_app, db_session, rent):
        client_app.post("/expenses/recurring/sync?as_of=2024-01-01")
        accrued = accrued_for(db_session, rent)[0]

        response = client_app.patch(
            f"/expenses/accrued/{accrued.id}/status?as_of=2024-01-20",
            json={"status": "paid"}
        )
        assert response.status_code == 200
        assert response.json()["paid_date"] == "2024-01-20"


# ===== TAREAS =====

def test_sync_task_uses_its_own_session(db_session, rent, monkeypatch):
    rent_id = rent.id
    monkeypatch.setattr(tasks, "SessionLocal", lambda: db_session)

    result = tasks.sync_recurring_expenses.run(as_of="2024-01-01")

    assert result["as_of"] == "2024-01-01"
    assert result["created"] == 3
    assert db_session.query(AccruedExpense).filter(AccruedExpense.source_id == rent_id).count() == 3
