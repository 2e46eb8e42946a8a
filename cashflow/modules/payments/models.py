"""
Modelos SQLAlchemy para planes de pago y pagos de proyectos

- PaymentPlan: plan de cobro de un proyecto (fee de implementación y/o fee recurrente)
- Payment: obligación de pago generada a partir del plan

El estado "vencido" no se persiste: se deriva al leer comparando la fecha
programada con la fecha de corte.
"""

from cashflow.database.database import Base
from sqlalchemy import Column, String, ForeignKey, Numeric, Enum, Date, Integer, Text, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from cashflow.common.mixins import BaseMixin
import enum


class PlanType(str, enum.Enum):
    SINGLE_FEE = "single_fee"
    INSTALLMENT_FEE = "installment_fee"
    RECURRING_SUBSCRIPTION = "recurring_subscription"
    MIXED = "mixed"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"  # Solo de lectura, nunca se guarda


class PaymentKind(str, enum.Enum):
    IMPLEMENTATION = "implementation"
    RECURRING = "recurring"


class PaymentPlan(Base, BaseMixin):
    """
    Plan de pagos de un proyecto (uno por proyecto)

    Se guarda plano; plan_from_record lo convierte al esquema tipado y valida
    que tenga la estructura requerida por su tipo.
    """
    __tablename__ = "payment_plans"

    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=False, unique=True, index=True)
    plan_type = Column(Enum(PlanType), nullable=False)

    # Fee de implementación
    implementation_fee_total = Column(Numeric(15, 2), nullable=True)
    implementation_fee_currency = Column(String(3), nullable=True)
    implementation_fee_installments = Column(Integer, nullable=True)

    # Fee recurrente
    recurring_fee_amount = Column(Numeric(15, 2), nullable=True)
    recurring_fee_currency = Column(String(3), nullable=True)
    recurring_fee_frequency = Column(String(20), nullable=True)
    recurring_fee_day_of_charge = Column(Integer, nullable=True)
    recurring_fee_grace_periods = Column(Integer, nullable=False, default=0)
    recurring_fee_discount_periods = Column(Integer, nullable=False, default=0)
    recurring_fee_discount_percentage = Column(Numeric(5, 2), nullable=False, default=0)

    project = relationship("Project", back_populates="payment_plan")


class Payment(Base, BaseMixin):
    """
    Obligación de pago de un proyecto

    period_index es el índice de cuota para implementación y el índice de
    periodo para cobros recurrentes; junto con project_id y kind identifica
    el pago de forma única.
    """
    __tablename__ = "payments"

    project_id = Column(Uuid, ForeignKey("projects.id"), nullable=False, index=True)
    client_id = Column(Uuid, ForeignKey("clients.id"), nullable=False, index=True)

    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="COP")
    scheduled_date = Column(Date, nullable=False, index=True)
    paid_date = Column(Date, nullable=True)
    status = Column(Enum(PaymentStatus), nullable=False, default=PaymentStatus.PENDING, index=True)
    kind = Column(Enum(PaymentKind), nullable=False)
    period_index = Column(Integer, nullable=False)
    installment_number = Column(Integer, nullable=True)
    invoice_number = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    project = relationship("Project", back_populates="payments")
    client = relationship("Client")

    __table_args__ = (
        UniqueConstraint("project_id", "kind", "period_index", name="uq_payment_project_kind_period"),
    )
