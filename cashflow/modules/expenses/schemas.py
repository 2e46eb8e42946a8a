"""
Esquemas Pydantic para gastos recurrentes y causados
"""

from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List
from uuid import UUID
from datetime import date

from cashflow.core.exceptions import UnknownFrequencyError
from cashflow.modules.currency import Currency
from cashflow.modules.recurrence import parse_frequency
from cashflow.modules.expenses.models import SourceType, AccruedStatus


# ===== RECURRING EXPENSES =====

class RecurringExpenseUpdate(BaseModel):
    description: Optional[str] = Field(None, min_length=1, max_length=255)
    amount: Optional[Decimal] = Field(None, ge=0)
    currency: Optional[Currency] = None
    category: Optional[str] = Field(None, max_length=100)
    payment_method: Optional[str] = Field(None, max_length=100)
    frequency: Optional[str] = Field(None, description="Frecuencia (acepta etiquetas en español)")
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: Optional[bool] = None
    is_auto_debit: Optional[bool] = None
    notes: Optional[str] = None

    @field_validator("frequency")
    @classmethod
    def validate_frequency(cls, v):
        if v is None:
            return v
        try:
            return parse_frequency(v).value
        except UnknownFrequencyError as e:
            raise ValueError(str(e))

    @model_validator(mode="after")
    def validate_dates(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("La fecha final no puede ser anterior a la fecha de inicio")
        return self


class RecurringExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    description: str
    amount: Decimal
    currency: Currency
    category: str
    payment_method: Optional[str] = None
    frequency: str
    start_date: date
    end_date: Optional[date] = None
    is_active: bool
    is_auto_debit: bool
    notes: Optional[str] = None


# ===== ACCRUED EXPENSES =====

class AccruedDraft(BaseModel):
    """Ocurrencia generada, aún sin persistir"""
    model_config = ConfigDict(frozen=True)

    source_id: UUID
    period_index: int
    due_date: date
    amount: Decimal
    currency: Currency
    description: Optional[str] = None
    category: Optional[str] = None
    payment_method: Optional[str] = None


class AccruedExpenseOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    source_type: SourceType
    source_id: UUID
    period_index: int
    description: Optional[str] = None
    due_date: date
    amount: Decimal
    currency: Currency
    category: Optional[str] = None
    payment_method: Optional[str] = None
    status: AccruedStatus
    paid_date: Optional[date] = None


class AccruedStatusUpdate(BaseModel):
    status: AccruedStatus
    paid_date: Optional[date] = Field(None, description="Fecha de pago; por defecto la fecha de corte")


# ===== SYNC =====

class AccrualFailure(BaseModel):
    expense_id: UUID
    frequency: Optional[str] = None
    reason: str


class AccrualBatchResult(BaseModel):
    drafts: List[AccruedDraft] = Field(default_factory=list)
    failures: List[AccrualFailure] = Field(default_factory=list)


class AccrualSyncResult(BaseModel):
    as_of: date
    horizon_months: int
    expenses_processed: int = 0
    created: int = 0
    duplicates: int = 0
    failures: List[AccrualFailure] = Field(default_factory=list)


class RecurringExpenseUpdateResult(BaseModel):
    expense: RecurringExpenseOut
    removed: int = Field(0, description="Ocurrencias pendientes futuras retiradas")
    created: int = Field(0, description="Ocurrencias regeneradas")
    duplicates: int = Field(0, description="Ocurrencias que otra sincronización ya había insertado")
    rule_changed: bool = Field(False, description="La frecuencia o la fecha de inicio cambiaron")
