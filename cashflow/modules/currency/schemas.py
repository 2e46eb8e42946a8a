"""
Monedas soportadas y su precisión
"""

from decimal import Decimal
from enum import Enum


class Currency(str, Enum):
    COP = "COP"
    USD = "USD"


# Unidad mínima de cada moneda: COP sin decimales, USD con centavos
CURRENCY_UNITS = {
    Currency.COP: Decimal("1"),
    Currency.USD: Decimal("0.01"),
}
