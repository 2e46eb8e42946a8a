"""
Servicios de negocio para planes de pago

Frontera de integración del generador de pagos:
- Crear el plan y su calendario en una sola transacción
- Regenerar el calendario de forma atómica (retira los pendientes, conserva
  los pagados)
- Registrar pagos recibidos
- Listar pagos con su estado efectivo y resumir totales
"""

from fastapi import HTTPException, status
from sqlalchemy.orm import Session
from decimal import Decimal
from typing import List, Optional, Set, Tuple
from uuid import UUID
from datetime import date
import logging

from cashflow.core.context import EngineContext
from cashflow.core.exceptions import InvalidPlanError
from cashflow.database.repository import FinanceRepository
from cashflow.modules.currency import Currency, round_money, sum_in_currency
from cashflow.modules.projects.models import Project
from cashflow.modules.payments.models import PaymentPlan, Payment, PaymentStatus, PaymentKind
from cashflow.modules.payments.schemas import (
    PaymentDraft, PaymentOut, PaymentScheduleOut, PaymentSummary, MarkPaidRequest
)
from cashflow.modules.payments.generator import (
    PaymentScheduleGenerator, effective_status, validate_plan, plan_from_record
)

logger = logging.getLogger(__name__)


class PaymentScheduleService:
    """Servicio para gestión del calendario de pagos de proyectos"""

    def __init__(self, db: Session, generator: Optional[PaymentScheduleGenerator] = None):
        self.db = db
        self.repository = FinanceRepository(db)
        self.generator = generator or PaymentScheduleGenerator()

    def _get_project(self, project_id: UUID) -> Project:
        project = self.db.query(Project).filter(Project.id == project_id).first()
        if not project:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Proyecto no encontrado"
            )
        return project

    def _generate(self, plan, project: Project) -> List[PaymentDraft]:
        try:
            return self.generator.generate(plan, project)
        except InvalidPlanError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    @staticmethod
    def _stored_plan(record: PaymentPlan):
        try:
            return plan_from_record(record)
        except InvalidPlanError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"El plan guardado no es válido: {e}"
            )

    @staticmethod
    def _apply_plan(record: PaymentPlan, plan) -> None:
        """Copiar la variante tipada a la fila plana"""
        record.plan_type = validate_plan(plan)

        fee = getattr(plan, "implementation_fee", None)
        record.implementation_fee_total = fee.total if fee else None
        record.implementation_fee_currency = fee.currency.value if fee else None
        record.implementation_fee_installments = fee.installments if fee else None

        recurring = getattr(plan, "recurring_fee", None)
        record.recurring_fee_amount = recurring.amount if recurring else None
        record.recurring_fee_currency = recurring.currency.value if recurring else None
        record.recurring_fee_frequency = recurring.frequency.value if recurring else None
        record.recurring_fee_day_of_charge = recurring.day_of_charge if recurring else None
        record.recurring_fee_grace_periods = recurring.grace_periods if recurring else 0
        record.recurring_fee_discount_periods = recurring.discount_periods if recurring else 0
        record.recurring_fee_discount_percentage = recurring.discount_percentage if recurring else Decimal("0")

    @staticmethod
    def _to_payment(draft: PaymentDraft, project: Project) -> Payment:
        return Payment(
            project_id=project.id,
            client_id=project.client_id,
            kind=draft.kind,
            period_index=draft.period_index,
            installment_number=draft.installment_number,
            scheduled_date=draft.scheduled_date,
            amount=draft.amount,
            currency=draft.currency.value,
            status=PaymentStatus.PENDING,
            notes=draft.notes,
        )

    def _to_out(self, payment: Payment, as_of: date) -> PaymentOut:
        out = PaymentOut.model_validate(payment)
        return out.model_copy(update={"status": effective_status(payment, as_of)})

    def create_plan(self, project_id: UUID, plan, as_of: date) -> PaymentScheduleOut:
        """
        Crear el plan de pagos de un proyecto y generar su calendario

        El calendario se genera antes de escribir: un plan inválido no deja
        ningún registro.
        """
        project = self._get_project(project_id)
        if project.payment_plan is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="El proyecto ya tiene un plan de pagos; use la regeneración"
            )

        drafts = self._generate(plan, project)

        try:
            record = PaymentPlan(project_id=project.id)
            self._apply_plan(record, plan)
            self.db.add(record)

            payments = [self._to_payment(draft, project) for draft in drafts]
            self.db.add_all(payments)
            self.db.commit()

            logger.info(f"Plan {record.plan_type.value} creado para proyecto {project.id}: {len(payments)} pagos")
            return PaymentScheduleOut(
                project_id=project.id,
                plan_type=record.plan_type,
                payments=[self._to_out(p, as_of) for p in payments],
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error creando plan de pagos para proyecto {project_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error creando el plan de pagos"
            )

    def regenerate_schedule(self, project_id: UUID, plan, as_of: date) -> PaymentScheduleOut:
        """
        Reemplazar el calendario pendiente por el del nuevo plan

        Retira los pagos pendientes sin pagar e inserta el nuevo conjunto en
        una sola transacción. Los pagos ya cobrados se conservan y su periodo
        no se vuelve a emitir. Sin plan nuevo (plan=None) se regenera desde el
        plan guardado, por ejemplo tras ampliar el horizonte.
        """
        project = self._get_project(project_id)
        record = project.payment_plan
        if record is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="El proyecto no tiene plan de pagos"
            )

        if plan is None:
            plan = self._stored_plan(record)
        drafts = self._generate(plan, project)

        try:
            kept = self.db.query(Payment).filter(
                Payment.project_id == project.id,
                Payment.status == PaymentStatus.PAID
            ).all()
            kept_keys: Set[Tuple[PaymentKind, int]] = {(PaymentKind(p.kind), p.period_index) for p in kept}

            removed = self.db.query(Payment).filter(
                Payment.project_id == project.id,
                Payment.status == PaymentStatus.PENDING,
                Payment.paid_date.is_(None)
            ).delete(synchronize_session=False)
            self.db.flush()

            self._apply_plan(record, plan)

            payments = [
                self._to_payment(draft, project)
                for draft in drafts
                if (draft.kind, draft.period_index) not in kept_keys
            ]
            self.db.add_all(payments)
            self.db.commit()
            self.db.expire_all()

            logger.info(
                f"Calendario regenerado para proyecto {project.id}: "
                f"{removed} pendientes retirados, {len(payments)} nuevos, {len(kept)} pagados conservados"
            )
            return PaymentScheduleOut(
                project_id=project.id,
                plan_type=record.plan_type,
                payments=[self._to_out(p, as_of) for p in self.repository.list_payments(project.id)],
                removed=removed,
            )
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error regenerando calendario del proyecto {project_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error regenerando el calendario de pagos"
            )

    def mark_paid(self, payment_id: UUID, data: MarkPaidRequest, as_of: date) -> PaymentOut:
        """Registrar un pago como recibido"""
        payment = self.db.query(Payment).filter(Payment.id == payment_id).first()
        if not payment:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Pago no encontrado"
            )
        if payment.status == PaymentStatus.PAID:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="El pago ya fue registrado como pagado"
            )

        try:
            payment.status = PaymentStatus.PAID
            payment.paid_date = data.paid_date
            if data.invoice_number:
                payment.invoice_number = data.invoice_number
            self.db.commit()
            self.db.refresh(payment)
            return self._to_out(payment, as_of)
        except Exception as e:
            self.db.rollback()
            logger.error(f"Error registrando pago {payment_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Error registrando el pago"
            )

    def list_payments(self, project_id: UUID, as_of: date) -> List[PaymentOut]:
        self._get_project(project_id)
        return [self._to_out(p, as_of) for p in self.repository.list_payments(project_id)]

    def payment_summary(self, project_id: UUID, context: EngineContext) -> PaymentSummary:
        """
        Totales pendientes, pagados y vencidos en la moneda de reporte

        Cada monto se convierte sin redondear y se redondea solo el total.
        """
        self._get_project(project_id)
        converter = context.converter
        currency = context.reporting_currency

        buckets = {s: [] for s in (PaymentStatus.PENDING, PaymentStatus.PAID, PaymentStatus.OVERDUE)}
        next_payment_date = None
        for payment in self.repository.list_payments(project_id):
            state = effective_status(payment, context.as_of)
            converted = converter.convert(payment.amount, payment.currency, currency, quantize=False)
            buckets[state].append((converted, currency))
            if state == PaymentStatus.PENDING:
                if next_payment_date is None or payment.scheduled_date < next_payment_date:
                    next_payment_date = payment.scheduled_date

        def total(state: PaymentStatus) -> Decimal:
            return round_money(sum_in_currency(buckets[state], currency), currency)

        return PaymentSummary(
            project_id=project_id,
            currency=Currency(currency),
            as_of=context.as_of,
            total_pending=total(PaymentStatus.PENDING),
            total_paid=total(PaymentStatus.PAID),
            total_overdue=total(PaymentStatus.OVERDUE),
            count_pending=len(buckets[PaymentStatus.PENDING]),
            count_paid=len(buckets[PaymentStatus.PAID]),
            count_overdue=len(buckets[PaymentStatus.OVERDUE]),
            next_payment_date=next_payment_date,
        )
