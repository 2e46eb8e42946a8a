"""
Esquemas Pydantic para planes de pago y pagos

El plan llega como una unión discriminada por plan_type: cada variante declara
como obligatorias las sub-estructuras que su tipo requiere, así un plan
incompleto se rechaza en la frontera HTTP (422) antes de llegar al generador.
"""

from pydantic import BaseModel, Field, ConfigDict, field_validator
from decimal import Decimal
from typing import Optional, List, Literal, Union, Annotated
from uuid import UUID
from datetime import date

from cashflow.core.exceptions import UnknownFrequencyError
from cashflow.modules.currency import Currency
from cashflow.modules.recurrence import Frequency, parse_frequency
from cashflow.modules.payments.models import PlanType, PaymentStatus, PaymentKind


# ===== PLAN =====

class ImplementationFee(BaseModel):
    total: Decimal = Field(..., ge=0, description="Valor total del fee de implementación")
    currency: Currency = Field(Currency.COP, description="Moneda del fee")
    installments: int = Field(1, ge=1, le=120, description="Número de cuotas")


class RecurringFee(BaseModel):
    amount: Decimal = Field(..., ge=0, description="Valor nominal por periodo")
    currency: Currency = Field(Currency.COP, description="Moneda del cobro")
    frequency: Frequency = Field(Frequency.MONTHLY, description="Frecuencia de cobro")
    day_of_charge: Optional[int] = Field(None, ge=1, le=31, description="Día del mes de cobro")
    grace_periods: int = Field(0, ge=0, description="Periodos iniciales sin cobro")
    discount_periods: int = Field(0, ge=0, description="Periodos con descuento tras la gracia")
    discount_percentage: Decimal = Field(Decimal("0"), ge=0, le=100, description="Porcentaje de descuento")

    @field_validator("frequency", mode="before")
    @classmethod
    def normalize_frequency(cls, v):
        try:
            return parse_frequency(v)
        except UnknownFrequencyError as e:
            raise ValueError(str(e))


class SingleFeePlan(BaseModel):
    plan_type: Literal["single_fee"] = "single_fee"
    implementation_fee: ImplementationFee


class InstallmentFeePlan(BaseModel):
    plan_type: Literal["installment_fee"] = "installment_fee"
    implementation_fee: ImplementationFee


class SubscriptionPlan(BaseModel):
    plan_type: Literal["recurring_subscription"] = "recurring_subscription"
    recurring_fee: RecurringFee


class MixedPlan(BaseModel):
    plan_type: Literal["mixed"] = "mixed"
    implementation_fee: ImplementationFee
    recurring_fee: RecurringFee


PaymentPlanIn = Annotated[
    Union[SingleFeePlan, InstallmentFeePlan, SubscriptionPlan, MixedPlan],
    Field(discriminator="plan_type")
]


class PaymentPlanData(BaseModel):
    """Forma sin discriminar de un plan, tal como se lee de la base de datos"""
    plan_type: PlanType
    implementation_fee: Optional[ImplementationFee] = None
    recurring_fee: Optional[RecurringFee] = None


# ===== PAYMENTS =====

class PaymentDraft(BaseModel):
    """Pago generado por el calendario, aún sin persistir"""
    model_config = ConfigDict(frozen=True)

    kind: PaymentKind
    period_index: int
    installment_number: Optional[int] = None
    scheduled_date: date
    amount: Decimal
    currency: Currency
    notes: Optional[str] = None


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    client_id: UUID
    kind: PaymentKind
    period_index: int
    installment_number: Optional[int] = None
    scheduled_date: date
    paid_date: Optional[date] = None
    amount: Decimal
    currency: Currency
    status: PaymentStatus = Field(..., description="Estado efectivo a la fecha de corte")
    invoice_number: Optional[str] = None
    notes: Optional[str] = None


class PaymentScheduleOut(BaseModel):
    project_id: UUID
    plan_type: PlanType
    payments: List[PaymentOut]
    removed: int = Field(0, description="Pagos pendientes retirados al regenerar")


class MarkPaidRequest(BaseModel):
    paid_date: date = Field(..., description="Fecha en que se recibió el pago")
    invoice_number: Optional[str] = Field(None, max_length=100, description="Número de factura")


class PaymentSummary(BaseModel):
    """Totales de pagos de un proyecto expresados en una sola moneda"""
    project_id: UUID
    currency: Currency
    as_of: date
    total_pending: Decimal
    total_paid: Decimal
    total_overdue: Decimal
    count_pending: int
    count_paid: int
    count_overdue: int
    next_payment_date: Optional[date] = None
