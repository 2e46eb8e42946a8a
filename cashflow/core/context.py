"""
Contexto de una ejecución del motor

Agrupa la tasa de cambio, la moneda de reporte y la fecha de corte. Se crea
una vez por cálculo y se pasa a cada componente, así un mismo reporte nunca
mezcla tasas ni relojes.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from cashflow.modules.currency import Currency, CurrencyConverter


class EngineContext(BaseModel):
    model_config = ConfigDict(frozen=True)

    exchange_rate: Decimal = Field(..., gt=0, description="COP por USD")
    reporting_currency: Currency = Field(Currency.COP, description="Moneda de reporte")
    as_of: date = Field(..., description="Fecha de corte")

    @property
    def converter(self) -> CurrencyConverter:
        return CurrencyConverter(self.exchange_rate)

    @classmethod
    def from_settings(cls, as_of: Optional[date] = None) -> "EngineContext":
        from cashflow.core.config import settings
        return cls(
            exchange_rate=settings.EXCHANGE_RATE_COP_PER_USD,
            reporting_currency=Currency(settings.REPORTING_CURRENCY),
            as_of=as_of or date.today(),
        )
