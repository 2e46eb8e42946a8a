"""
Routers FastAPI para planes de pago y pagos

- Plan de pagos: creación y regeneración del calendario de un proyecto
- Pagos: listado con estado efectivo, resumen y registro de pago
"""

from fastapi import APIRouter, Body, Depends, status, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
from datetime import date

from cashflow.core.config import settings
from cashflow.core.context import EngineContext
from cashflow.database.database import get_db
from cashflow.modules.payments.service import PaymentScheduleService
from cashflow.modules.payments.generator import PaymentScheduleGenerator
from cashflow.modules.payments.schemas import (
    PaymentPlanIn, PaymentOut, PaymentScheduleOut, PaymentSummary, MarkPaidRequest
)

projects_router = APIRouter(prefix="/projects", tags=["Payment Plans"])
payments_router = APIRouter(prefix="/payments", tags=["Payments"])


def _service(db: Session) -> PaymentScheduleService:
    return PaymentScheduleService(db, PaymentScheduleGenerator(settings.PAYMENT_HORIZON_PERIODS))


@projects_router.post("/{project_id}/payment-plan", response_model=PaymentScheduleOut, status_code=status.HTTP_201_CREATED)
def create_payment_plan(
    project_id: UUID,
    plan: PaymentPlanIn,
    as_of: Optional[date] = Query(None, description="Fecha de corte (por defecto hoy)"),
    db: Session = Depends(get_db)
):
    """
    Crear el plan de pagos de un proyecto

    Genera en la misma transacción las cuotas de implementación y los cobros
    recurrentes del horizonte configurado.
    """
    return _service(db).create_plan(project_id, plan, as_of or date.today())


@projects_router.put("/{project_id}/payment-plan", response_model=PaymentScheduleOut)
def regenerate_payment_plan(
    project_id: UUID,
    plan: Optional[PaymentPlanIn] = Body(None),
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db)
):
    """
    Reemplazar el plan de pagos y regenerar el calendario

    Los pagos pendientes se retiran y se insertan los nuevos; los pagados se conservan.
    Sin cuerpo se regenera desde el plan guardado con el horizonte configurado.
    """
    return _service(db).regenerate_schedule(project_id, plan, as_of or date.today())


@projects_router.get("/{project_id}/payments", response_model=List[PaymentOut])
def list_project_payments(
    project_id: UUID,
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db)
):
    return _service(db).list_payments(project_id, as_of or date.today())


@projects_router.get("/{project_id}/payments/summary", response_model=PaymentSummary)
def get_payment_summary(
    project_id: UUID,
    as_of: Optional[date] = Query(None),
    db: Session = Depends(get_db)
):
    """Totales pendientes, pagados y vencidos en la moneda de reporte"""
    return _service(db).payment_summary(project_id, EngineContext.from_settings(as_of))


@payments_router.patch("/{payment_id}/paid", response_model=PaymentOut)
def mark_payment_paid(
    payment_id: UUID,
    data: MarkPaidRequest,
    db: Session = Depends(get_db)
):
    """Registrar la fecha de pago y, opcionalmente, el número de factura"""
    return _service(db).mark_paid(payment_id, data, date.today())
