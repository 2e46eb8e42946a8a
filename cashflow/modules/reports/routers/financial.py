"""
Financial Reports Router

Metrics and cash-flow projection endpoints.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from cashflow.core.config import settings
from cashflow.core.context import EngineContext
from cashflow.database.database import get_db
from ..services.financial import FinancialReportService
from ..schemas import Scenario
from ..utils import (
    create_csv_response,
    prepare_monthly_aggregates_csv,
    prepare_projection_csv,
    CSV_HEADERS
)


router = APIRouter(prefix="/reports", tags=["Reports"])


def _service(db: Session, as_of: Optional[date]) -> FinancialReportService:
    return FinancialReportService(
        db,
        EngineContext.from_settings(as_of),
        burn_window_months=settings.BURN_RATE_WINDOW_MONTHS,
        concentration_threshold=settings.CONCENTRATION_RISK_THRESHOLD,
    )


@router.get("/metrics", response_model=None)
def get_metrics(
    start_date: Optional[date] = Query(None, description="Start date (default: 12 months back)"),
    end_date: Optional[date] = Query(None, description="End date (default: as_of)"),
    as_of: Optional[date] = Query(None, description="As of date (default: today)"),
    cash_balance: Optional[Decimal] = Query(None, description="Current cash; default is the period net"),
    export: Optional[str] = Query(None, pattern="^(csv)$", description="Export format: csv"),
    db: Session = Depends(get_db)
):
    """MRR, ARR, burn rate, runway, profit margin, client concentration and churn."""
    if start_date and end_date and end_date < start_date:
        raise HTTPException(422, "end_date must be greater than or equal to start_date")

    report = _service(db, as_of).get_metrics(start_date, end_date, cash_balance)

    if export == "csv":
        filename = f"monthly_aggregates_{report.period_start}_{report.period_end}.csv"
        return create_csv_response(
            prepare_monthly_aggregates_csv(report), filename, CSV_HEADERS["monthly_aggregates"]
        )
    return report


@router.get("/projections", response_model=None)
def get_projections(
    scenario: Scenario = Query(Scenario.CONSERVATIVE, description="Projection scenario"),
    months: int = Query(settings.PROJECTION_HORIZON_MONTHS, ge=1, le=36, description="Months to project"),
    history_months: int = Query(12, ge=1, le=60, description="Months of history used for the trend"),
    as_of: Optional[date] = Query(None, description="As of date (default: today)"),
    cash_balance: Optional[Decimal] = Query(None),
    export: Optional[str] = Query(None, pattern="^(csv)$", description="Export format: csv"),
    db: Session = Depends(get_db)
):
    """Month-by-month projection of income, expense and balance for a scenario."""
    report = _service(db, as_of).get_projections(scenario, months, history_months, cash_balance)

    if export == "csv":
        filename = f"projection_{report.scenario.value}_{report.as_of}.csv"
        return create_csv_response(prepare_projection_csv(report), filename, CSV_HEADERS["projection"])
    return report
