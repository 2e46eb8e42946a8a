"""
Modelos SQLAlchemy para gastos

- RecurringExpense: definición de un gasto recurrente
- AccruedExpense: ocurrencia materializada (causada) de un gasto
- Expense: gasto variable registrado manualmente

La llave (source_type, source_id, period_index) de AccruedExpense es única en
base de datos; es el mecanismo que evita duplicados cuando el job periódico y
una sincronización manual corren a la vez.
"""

from cashflow.database.database import Base
from sqlalchemy import (
    Column, String, Numeric, Enum, Date, Integer, Text, Boolean, Uuid, UniqueConstraint, Index
)
from cashflow.common.mixins import BaseMixin
import enum


class SourceType(str, enum.Enum):
    RECURRING = "recurring"
    VARIABLE = "variable"


class AccruedStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    VOIDED = "voided"


class RecurringExpense(Base, BaseMixin):
    __tablename__ = "recurring_expenses"

    description = Column(String(255), nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="COP")
    category = Column(String(100), nullable=False)
    payment_method = Column(String(100), nullable=True)
    # Texto libre: pueden existir valores heredados que no son frecuencias válidas
    frequency = Column(String(20), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_auto_debit = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)
    # Al cambiar la regla, la serie nueva arranca en el periodo n = series_start_index
    # y se guarda como period_index = n + period_offset, después de los ya causados
    series_start_index = Column(Integer, nullable=False, default=0)
    period_offset = Column(Integer, nullable=False, default=0)


class AccruedExpense(Base, BaseMixin):
    __tablename__ = "accrued_expenses"

    source_type = Column(Enum(SourceType), nullable=False, default=SourceType.RECURRING)
    source_id = Column(Uuid, nullable=False, index=True)
    period_index = Column(Integer, nullable=False)
    description = Column(String(255), nullable=True)
    due_date = Column(Date, nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="COP")
    category = Column(String(100), nullable=True)
    payment_method = Column(String(100), nullable=True)
    status = Column(Enum(AccruedStatus), nullable=False, default=AccruedStatus.PENDING)
    paid_date = Column(Date, nullable=True)

    __table_args__ = (
        UniqueConstraint("source_type", "source_id", "period_index", name="uq_accrued_source_period"),
        Index("ix_accrued_expenses_due_date", "due_date"),
    )


class Expense(Base, BaseMixin):
    """Gasto variable"""
    __tablename__ = "expenses"

    description = Column(String(255), nullable=False)
    date = Column(Date, nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="COP")
    category = Column(String(100), nullable=False)
    payment_method = Column(String(100), nullable=True)
