"""
Servicios de negocio para gastos causados

Frontera de integración del generador de gastos:
- Sincronización idempotente de todos los gastos recurrentes activos
- Generación puntual para un gasto
- Edición de un gasto recurrente (retira las ocurrencias pendientes futuras y
  las vuelve a generar)
- Cambio de estado de una ocurrencia (pagada / anulada)

La unicidad (source_type, source_id, period_index) la garantiza la base de
datos. Si dos sincronizaciones corren a la vez, la inserción repetida falla
dentro de su SAVEPOINT y se descarta; no hay bloqueos.
"""

from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import Optional
from uuid import UUID
from datetime import date
import logging

from cashflow.core.exceptions import UnknownFrequencyError, DuplicateOccurrenceError
from cashflow.database.repository import FinanceRepository
from cashflow.modules.expenses.models import RecurringExpense, AccruedExpense, AccruedStatus, SourceType
from cashflow.modules.expenses.schemas import (
    AccruedDraft, AccruedExpenseOut, AccruedStatusUpdate, AccrualSyncResult,
    RecurringExpenseOut, RecurringExpenseUpdate, RecurringExpenseUpdateResult
)
from cashflow.modules.recurrence import parse_frequency
from cashflow.modules.expenses.generator import AccrualGenerator

logger = logging.getLogger(__name__)


class AccrualService:
    """Servicio para materializar gastos recurrentes"""

    def __init__(self, db: Session, generator: Optional[AccrualGenerator] = None):
        self.db = db
        self.repository = FinanceRepository(db)
        self.generator = generator or AccrualGenerator()

    def _get_expense(self, expense_id: UUID) -> RecurringExpense:
        expense = self.db.query(RecurringExpense).filter(RecurringExpense.id == expense_id).first()
        if not expense:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Gasto recurrente no encontrado"
            )
        return expense

    @staticmethod
    def _to_accrued(draft: AccruedDraft) -> AccruedExpense:
        return AccruedExpense(
            source_type=SourceType.RECURRING,
            source_id=draft.source_id,
            period_index=draft.period_index,
            description=draft.description,
            due_date=draft.due_date,
            amount=draft.amount,
            currency=draft.currency.value,
            category=draft.category,
            payment_method=draft.payment_method,
            status=AccruedStatus.PENDING,
        )

    def _insert(self, draft: AccruedDraft) -> AccruedExpense:
        """
        Insertar una ocurrencia dentro de un SAVEPOINT

        Raises:
            DuplicateOccurrenceError: si la llave ya existe
        """
        accrued = self._to_accrued(draft)
        try:
            with self.db.begin_nested():
                self.db.add(accrued)
        except IntegrityError:
            raise DuplicateOccurrenceError(draft.source_id, draft.period_index)
        return accrued

    @staticmethod
    def _same_rule(previous, current) -> bool:
        """Misma frecuencia y misma fecha de inicio"""
        (previous_frequency, previous_start), (frequency, start_date) = previous, current
        if previous_start != start_date:
            return False
        try:
            return parse_frequency(previous_frequency) == parse_frequency(frequency)
        except UnknownFrequencyError:
            return previous_frequency == frequency

    def _insert_all(self, drafts, result: AccrualSyncResult) -> None:
        for draft in drafts:
            try:
                self._insert(draft)
                result.created += 1
            except DuplicateOccurrenceError as e:
                logger.debug(f"Ocurrencia ya existente ignorada: {e}")
                result.duplicates += 1

    def sync(self, as_of: date, horizon_months: Optional[int] = None) -> AccrualSyncResult:
        """
        Materializar las ocurrencias faltantes de todos los gastos activos

        Args:
            as_of: Fecha de corte
            horizon_months: Meses hacia adelante; por defecto el del generador

        Returns:
            Conteo de creadas, duplicadas ignoradas y gastos fallidos
        """
        months = self.generator.horizon_months if horizon_months is None else horizon_months
        result = AccrualSyncResult(as_of=as_of, horizon_months=months)

        try:
            expenses = self.repository.list_recurring_expenses(active_only=True)
            existing = self.repository.accrued_period_keys(e.id for e in expenses)
            batch = self.generator.generate_batch(expenses, existing, as_of, months)

            result.expenses_processed = len(expenses)
            result.failures = batch.failures
            self._insert_all(batch.drafts, result)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error sincronizando gastos recurrentes: {e}")
            raise

        logger.info(
            f"Sincronización de gastos al {as_of}: {result.created} creados, "
            f"{result.duplicates} duplicados, {len(result.failures)} con error"
        )
        return result

    def generate_for_expense(self, expense_id: UUID, as_of: date, horizon_months: Optional[int] = None) -> AccrualSyncResult:
        """Materializar las ocurrencias faltantes de un solo gasto"""
        expense = self._get_expense(expense_id)
        months = self.generator.horizon_months if horizon_months is None else horizon_months
        result = AccrualSyncResult(as_of=as_of, horizon_months=months, expenses_processed=1)

        existing = self.repository.accrued_period_keys([expense.id]).get(expense.id, set())
        try:
            drafts = self.generator.generate_up_to(expense, existing, as_of, months)
        except UnknownFrequencyError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        try:
            self._insert_all(drafts, result)
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error generando gastos causados para {expense_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error generando gastos causados"
            )
        return result

    def update_recurring_expense(
        self,
        expense_id: UUID,
        data: RecurringExpenseUpdate,
        as_of: date,
        horizon_months: Optional[int] = None
    ) -> RecurringExpenseUpdateResult:
        """
        Actualizar un gasto recurrente y resincronizar sus ocurrencias

        Las ocurrencias pendientes con fecha posterior a as_of se retiran y se
        vuelven a generar con los nuevos valores. Las pagadas, las anuladas y
        las ya vencidas no se tocan.

        Si cambia la frecuencia o la fecha de inicio, la serie nueva solo emite
        periodos posteriores a as_of y numera sus índices a continuación de los
        existentes. Las inserciones usan el mismo SAVEPOINT por fila que la
        sincronización: una ocurrencia que el job ya insertó se cuenta como
        duplicada y no hace fallar la edición.
        """
        expense = self._get_expense(expense_id)
        update_data = data.model_dump(exclude_unset=True)

        start_date = update_data.get("start_date", expense.start_date)
        end_date = update_data.get("end_date", expense.end_date)
        if end_date is not None and end_date < start_date:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="La fecha final no puede ser anterior a la fecha de inicio"
            )

        months = self.generator.horizon_months if horizon_months is None else horizon_months
        result = AccrualSyncResult(as_of=as_of, horizon_months=months, expenses_processed=1)

        try:
            previous_rule = (expense.frequency, expense.start_date)
            for field, value in update_data.items():
                if field == "currency" and value is not None:
                    value = value.value
                setattr(expense, field, value)
            rule_changed = not self._same_rule(previous_rule, (expense.frequency, expense.start_date))

            removed = self.db.query(AccruedExpense).filter(
                AccruedExpense.source_type == SourceType.RECURRING,
                AccruedExpense.source_id == expense.id,
                AccruedExpense.status == AccruedStatus.PENDING,
                AccruedExpense.due_date > as_of
            ).delete(synchronize_session=False)
            self.db.flush()

            existing = self.repository.accrued_period_keys([expense.id]).get(expense.id, set())
            if rule_changed:
                expense.series_start_index, expense.period_offset = self.generator.restart_series(
                    expense, existing, as_of
                )
            drafts = self.generator.generate_up_to(expense, existing, as_of, months)
            self._insert_all(drafts, result)

            self.db.commit()
            self.db.refresh(expense)
        except UnknownFrequencyError as e:
            self.db.rollback()
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error actualizando gasto recurrente {expense_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error actualizando el gasto recurrente"
            )

        logger.info(
            f"Gasto recurrente {expense_id} actualizado: {removed} retirados, {result.created} regenerados, "
            f"{result.duplicates} duplicados"
        )
        return RecurringExpenseUpdateResult(
            expense=RecurringExpenseOut.model_validate(expense),
            removed=removed,
            created=result.created,
            duplicates=result.duplicates,
            rule_changed=rule_changed,
        )

    def set_status(self, accrued_id: UUID, data: AccruedStatusUpdate, as_of: date) -> AccruedExpenseOut:
        """Marcar una ocurrencia como pagada, anulada o de nuevo pendiente"""
        accrued = self.db.query(AccruedExpense).filter(AccruedExpense.id == accrued_id).first()
        if not accrued:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Gasto causado no encontrado"
            )

        try:
            accrued.status = data.status
            if data.status == AccruedStatus.PAID:
                accrued.paid_date = data.paid_date or as_of
            else:
                accrued.paid_date = None
            self.db.commit()
            self.db.refresh(accrued)
            return AccruedExpenseOut.model_validate(accrued)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error actualizando gasto causado {accrued_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error actualizando el gasto causado"
            )
