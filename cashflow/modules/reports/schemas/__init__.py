"""
Pydantic schemas for Reports module

Monthly aggregates feed the metrics engine; every amount in a response is
expressed in the single reporting currency named by its `currency` field.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from cashflow.modules.currency import Currency


class Scenario(str, Enum):
    OPTIMISTIC = "optimistic"
    CONSERVATIVE = "conservative"
    PESSIMISTIC = "pessimistic"
    COST_CUTTING = "cost_cutting"


class MonthlyAggregate(BaseModel):
    """Income and expense totals for one calendar month"""
    year: int = Field(..., ge=1900)
    month: int = Field(..., ge=1, le=12)
    total_income: Decimal = Field(Decimal("0"), description="All income, partner contributions included")
    total_expense: Decimal = Field(Decimal("0"))
    recurring_income: Decimal = Field(Decimal("0"), description="Recurring income used for MRR")
    operational_income: Optional[Decimal] = Field(None, description="Income without partner contributions")
    currency: Currency = Currency.COP

    @property
    def key(self):
        return (self.year, self.month)

    @property
    def net(self) -> Decimal:
        return self.total_income - self.total_expense

    @property
    def margin_income(self) -> Decimal:
        return self.total_income if self.operational_income is None else self.operational_income


class ClientRevenue(BaseModel):
    client_id: Optional[UUID] = None
    name: str
    revenue: Decimal
    currency: Currency = Currency.COP


class ClientConcentration(BaseModel):
    client_id: Optional[UUID] = None
    name: str
    revenue: Decimal
    percentage: Decimal = Field(description="Share of total revenue, 0-100")


class CategoryExpense(BaseModel):
    category: str
    total: Decimal
    percentage: Decimal = Field(description="Share of total expense, 0-100")


class MonthlyVariation(BaseModel):
    value: Decimal = Field(description="Current minus previous month")
    percentage: Decimal = Field(description="Change over previous month; 0 when previous is 0")


class MRRMovement(BaseModel):
    new_mrr: Decimal = Decimal("0")
    churned_mrr: Decimal = Decimal("0")
    net_new_mrr: Decimal = Decimal("0")
    new_clients: int = 0
    churned_clients: int = 0


class Metrics(BaseModel):
    currency: Currency
    period_year: Optional[int] = None
    period_month: Optional[int] = None
    mrr: Decimal
    arr: Decimal
    burn_rate: Decimal
    cash_balance: Decimal
    runway: Decimal = Field(..., allow_inf_nan=True, description="Months of runway; Infinity when MRR covers burn")
    total_income: Decimal
    total_expense: Decimal
    profit_margin: Decimal
    income_variation: MonthlyVariation
    expense_variation: MonthlyVariation
    client_concentration: List[ClientConcentration] = Field(default_factory=list)
    top_client_percentage: Decimal = Decimal("0")
    concentration_risk: bool = False
    new_mrr: Decimal = Decimal("0")
    churned_mrr: Decimal = Decimal("0")
    net_new_mrr: Decimal = Decimal("0")
    expense_by_category: List[CategoryExpense] = Field(default_factory=list)
    top_category: Optional[str] = None
    active_clients: int = 0
    active_projects: int = 0
    projects_per_client: Decimal = Decimal("0")
    average_ticket: Decimal = Field(Decimal("0"), description="Latest month operational income per active client")
    ltv: Decimal = Field(Decimal("0"), description="Average ticket times the expected client lifetime")

    @property
    def has_infinite_runway(self) -> bool:
        return self.runway.is_infinite()


class ProjectionPoint(BaseModel):
    year: int
    month: int
    projected_income: Decimal
    projected_expense: Decimal
    projected_balance: Decimal
    currency: Currency


class ProjectionSummary(BaseModel):
    projected_runway: Decimal = Field(..., allow_inf_nan=True)
    final_balance: Decimal
    has_negative_balance: bool
    has_cashflow_risk: bool = Field(description="Projected runway under 3 months")
    has_decreasing_trend: bool


class MetricsResponse(BaseModel):
    as_of: date
    period_start: date
    period_end: date
    metrics: Metrics
    aggregates: List[MonthlyAggregate]


class ProjectionResponse(BaseModel):
    as_of: date
    scenario: Scenario
    horizon_months: int
    currency: Currency
    points: List[ProjectionPoint]
    summary: ProjectionSummary
