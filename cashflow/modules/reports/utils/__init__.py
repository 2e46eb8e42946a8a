"""
Utilities for Reports module

CSV export of monthly aggregates and projections.
"""

import csv
import io
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List

from fastapi import Response

from cashflow.modules.reports.schemas import MetricsResponse, ProjectionResponse


def create_csv_response(
    data: List[Dict[str, Any]],
    filename: str,
    headers: Dict[str, str] = None
) -> Response:
    """
    Create a CSV response from a list of dictionaries.

    Args:
        data: List of dictionaries with report data
        filename: Name for the CSV file
        headers: Optional mapping of field names to CSV headers

    Returns:
        FastAPI Response with CSV content
    """
    output = io.StringIO()
    fieldnames = list(headers.keys()) if headers else (list(data[0].keys()) if data else [])
    csv_headers = list(headers.values()) if headers else fieldnames

    writer = csv.DictWriter(output, fieldnames=fieldnames, extrasaction="ignore")
    writer.writerow(dict(zip(fieldnames, csv_headers)))
    for row in data:
        writer.writerow({key: format_csv_value(value) for key, value in row.items()})

    csv_content = output.getvalue()
    output.close()

    return Response(
        content=csv_content,
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename={filename}",
            "Content-Type": "text/csv; charset=utf-8"
        }
    )


def format_csv_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Decimal):
        return "Infinity" if value.is_infinite() else str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, bool):
        return "Sí" if value else "No"
    return str(value)


def prepare_monthly_aggregates_csv(report: MetricsResponse) -> List[Dict[str, Any]]:
    return [
        {
            "period": f"{a.year}-{a.month:02d}",
            "total_income": a.total_income,
            "operational_income": a.operational_income,
            "recurring_income": a.recurring_income,
            "total_expense": a.total_expense,
            "net": a.net,
            "currency": a.currency.value,
        }
        for a in report.aggregates
    ]


def prepare_projection_csv(report: ProjectionResponse) -> List[Dict[str, Any]]:
    return [
        {
            "period": f"{p.year}-{p.month:02d}",
            "projected_income": p.projected_income,
            "projected_expense": p.projected_expense,
            "projected_balance": p.projected_balance,
            "currency": p.currency.value,
        }
        for p in report.points
    ]


CSV_HEADERS = {
    "monthly_aggregates": {
        "period": "Periodo",
        "total_income": "Ingresos",
        "operational_income": "Ingresos operacionales",
        "recurring_income": "Ingresos recurrentes",
        "total_expense": "Gastos",
        "net": "Balance",
        "currency": "Moneda",
    },
    "projection": {
        "period": "Periodo",
        "projected_income": "Ingresos proyectados",
        "projected_expense": "Gastos proyectados",
        "projected_balance": "Balance proyectado",
        "currency": "Moneda",
    },
}
