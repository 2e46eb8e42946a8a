"""
Generador del calendario de pagos de un proyecto

Convierte un plan de pagos en una lista ordenada de PaymentDraft:
- Fee de implementación: N cuotas mensuales iguales desde el inicio del
  proyecto; la última cuota absorbe el residuo de redondeo.
- Fee recurrente: un cobro por periodo dentro del horizonte, omitiendo los
  periodos de gracia y aplicando el descuento a los periodos siguientes.

Es un cálculo puro: no consulta la base de datos ni el reloj.
"""

from datetime import date
from decimal import Decimal
from typing import List, Optional, Union

from cashflow.core.exceptions import InvalidPlanError
from cashflow.modules.currency import round_money, split_evenly
from cashflow.modules.recurrence import Frequency, nth_occurrence
from cashflow.modules.payments.models import PlanType, PaymentStatus, PaymentKind
from cashflow.modules.payments.schemas import (
    ImplementationFee, RecurringFee, PaymentDraft, PaymentPlanData,
    SingleFeePlan, InstallmentFeePlan, SubscriptionPlan, MixedPlan
)

DEFAULT_HORIZON_PERIODS = 12

# Sub-estructuras obligatorias por tipo de plan
_REQUIRED = {
    PlanType.SINGLE_FEE: ("implementation_fee",),
    PlanType.INSTALLMENT_FEE: ("implementation_fee",),
    PlanType.RECURRING_SUBSCRIPTION: ("recurring_fee",),
    PlanType.MIXED: ("implementation_fee", "recurring_fee"),
}

_VARIANTS = {
    PlanType.SINGLE_FEE: SingleFeePlan,
    PlanType.INSTALLMENT_FEE: InstallmentFeePlan,
    PlanType.RECURRING_SUBSCRIPTION: SubscriptionPlan,
    PlanType.MIXED: MixedPlan,
}


def validate_plan(plan) -> PlanType:
    """
    Verificar que el plan tenga lo que su tipo requiere

    Returns:
        El tipo de plan normalizado

    Raises:
        InvalidPlanError: si falta el fee de implementación o el fee recurrente
    """
    try:
        plan_type = PlanType(plan.plan_type)
    except ValueError:
        raise InvalidPlanError(plan.plan_type, "plan_type")

    for field in _REQUIRED[plan_type]:
        if getattr(plan, field, None) is None:
            raise InvalidPlanError(plan_type.value, field)
    return plan_type


def plan_from_record(record) -> Union[SingleFeePlan, InstallmentFeePlan, SubscriptionPlan, MixedPlan]:
    """Reconstruir la variante tipada a partir de una fila de payment_plans"""
    implementation_fee = None
    if record.implementation_fee_total is not None:
        implementation_fee = ImplementationFee(
            total=record.implementation_fee_total,
            currency=record.implementation_fee_currency or "COP",
            installments=record.implementation_fee_installments or 1,
        )

    recurring_fee = None
    if record.recurring_fee_amount is not None:
        recurring_fee = RecurringFee(
            amount=record.recurring_fee_amount,
            currency=record.recurring_fee_currency or "COP",
            frequency=record.recurring_fee_frequency or Frequency.MONTHLY,
            day_of_charge=record.recurring_fee_day_of_charge,
            grace_periods=record.recurring_fee_grace_periods or 0,
            discount_periods=record.recurring_fee_discount_periods or 0,
            discount_percentage=record.recurring_fee_discount_percentage or Decimal("0"),
        )

    data = PaymentPlanData(
        plan_type=record.plan_type,
        implementation_fee=implementation_fee,
        recurring_fee=recurring_fee,
    )
    plan_type = validate_plan(data)
    fields = {name: getattr(data, name) for name in _REQUIRED[plan_type]}
    return _VARIANTS[plan_type](**fields)


def effective_status(payment, as_of: date) -> PaymentStatus:
    """Un pago pendiente con fecha anterior al corte se reporta como vencido"""
    status = PaymentStatus(payment.status)
    if status == PaymentStatus.PENDING and payment.scheduled_date < as_of:
        return PaymentStatus.OVERDUE
    return status


def _format_percentage(value: Decimal) -> str:
    normalized = Decimal(value).normalize()
    return f"{normalized:f}"


class PaymentScheduleGenerator:
    """Genera los pagos de un plan a partir de la fecha de inicio del proyecto"""

    def __init__(self, horizon_periods: int = DEFAULT_HORIZON_PERIODS):
        if horizon_periods < 0:
            raise ValueError("horizon_periods no puede ser negativo")
        self.horizon_periods = horizon_periods

    def generate(self, plan, project) -> List[PaymentDraft]:
        """
        Generar el calendario completo del plan

        Args:
            plan: Variante de plan (o PaymentPlanData) con plan_type y sus fees
            project: Objeto con start_date

        Returns:
            Lista de PaymentDraft ordenada por fecha programada

        Raises:
            InvalidPlanError: si el plan no tiene la estructura de su tipo.
                Se valida antes de generar cualquier pago.
        """
        plan_type = validate_plan(plan)
        start_date = project.start_date

        drafts: List[PaymentDraft] = []
        if plan_type == PlanType.SINGLE_FEE:
            drafts.extend(self.implementation_payments(plan.implementation_fee, start_date, installments=1))
        elif plan_type == PlanType.INSTALLMENT_FEE:
            drafts.extend(self.implementation_payments(plan.implementation_fee, start_date))
        elif plan_type == PlanType.RECURRING_SUBSCRIPTION:
            drafts.extend(self.recurring_payments(plan.recurring_fee, start_date))
        else:
            drafts.extend(self.implementation_payments(plan.implementation_fee, start_date))
            drafts.extend(self.recurring_payments(plan.recurring_fee, start_date))

        # sort estable: a igual fecha la cuota de implementación va primero
        return sorted(drafts, key=lambda d: d.scheduled_date)

    def implementation_payments(
        self,
        fee: ImplementationFee,
        start_date: date,
        installments: Optional[int] = None
    ) -> List[PaymentDraft]:
        installments = installments or fee.installments
        shares = split_evenly(fee.total, installments, fee.currency)

        return [
            PaymentDraft(
                kind=PaymentKind.IMPLEMENTATION,
                period_index=i,
                installment_number=i + 1,
                scheduled_date=nth_occurrence(start_date, Frequency.MONTHLY, n=i),
                amount=share,
                currency=fee.currency,
            )
            for i, share in enumerate(shares)
        ]

    def recurring_payments(self, fee: RecurringFee, start_date: date) -> List[PaymentDraft]:
        grace_end = fee.grace_periods
        discount_end = fee.grace_periods + fee.discount_periods
        discounted = round_money(
            fee.amount * (Decimal("1") - fee.discount_percentage / Decimal("100")),
            fee.currency
        )

        drafts = []
        for p in range(self.horizon_periods):
            if p < grace_end:
                continue

            amount = fee.amount
            notes = None
            if p < discount_end and fee.discount_percentage > 0:
                amount = discounted
                notes = f"Descuento aplicado: {_format_percentage(fee.discount_percentage)}%"

            drafts.append(PaymentDraft(
                kind=PaymentKind.RECURRING,
                period_index=p,
                scheduled_date=nth_occurrence(start_date, fee.frequency, fee.day_of_charge, p),
                amount=amount,
                currency=fee.currency,
                notes=notes,
            ))
        return drafts


def generate_payment_schedule(plan, project, horizon_periods: int = DEFAULT_HORIZON_PERIODS) -> List[PaymentDraft]:
    """Punto de entrada funcional del generador de pagos"""
    return PaymentScheduleGenerator(horizon_periods).generate(plan, project)
