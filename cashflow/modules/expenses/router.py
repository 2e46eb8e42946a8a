"""
Routers FastAPI para gastos recurrentes y causados

- Sincronización manual ("sincronizar ahora") de todos los gastos activos
- Generación puntual y edición de un gasto recurrente
- Cambio de estado de un gasto causado
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID
from datetime import date

from cashflow.core.config import settings
from cashflow.database.database import get_db
from cashflow.modules.expenses.service import AccrualService
from cashflow.modules.expenses.generator import AccrualGenerator
from cashflow.modules.expenses.schemas import (
    AccrualSyncResult, AccruedExpenseOut, AccruedStatusUpdate,
    RecurringExpenseUpdate, RecurringExpenseUpdateResult
)

expenses_router = APIRouter(prefix="/expenses", tags=["Expenses"])


def _service(db: Session) -> AccrualService:
    return AccrualService(db, AccrualGenerator(settings.ACCRUAL_HORIZON_MONTHS))


@expenses_router.post("/recurring/sync", response_model=AccrualSyncResult)
def sync_recurring_expenses(
    as_of: Optional[date] = Query(None, description="Fecha de corte (por defecto hoy)"),
    months: Optional[int] = Query(None, ge=0, le=36, description="Meses hacia adelante"),
    db: Session = Depends(get_db)
):
    """
    Materializar las ocurrencias faltantes de todos los gastos recurrentes activos

    Puede ejecutarse en paralelo con la tarea periódica sin generar duplicados.
    Los gastos con frecuencia inválida se reportan en failures.
    """
    return _service(db).sync(as_of or date.today(), months)


@expenses_router.post("/recurring/{expense_id}/generate", response_model=AccrualSyncResult)
def generate_recurring_expense(
    expense_id: UUID,
    as_of: Optional[date] = Query(None),
    months: int = Query(3, ge=0, le=36),
    db: Session = Depends(get_db)
):
    return _service(db).generate_for_expense(expense_id, as_of or date.today(), months)


@expenses_router.put("/recurring/{expense_id}", response_model=RecurringExpenseUpdateResult)
def update_recurring_expense(
    expense_id: UUID,
    data: RecurringExpenseUpdate,
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db)
):
    """
    Actualizar un gasto recurrente

    Retira las ocurrencias pendientes futuras y las regenera con los nuevos valores.
    """
    return _service(db).update_recurring_expense(expense_id, data, as_of or date.today())


@expenses_router.patch("/accrued/{accrued_id}/status", response_model=AccruedExpenseOut)
def update_accrued_status(
    accrued_id: UUID,
    data: AccruedStatusUpdate,
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db)
):
    return _service(db).set_status(accrued_id, data, as_of or date.today())
