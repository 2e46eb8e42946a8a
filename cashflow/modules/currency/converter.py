"""
Conversión de montos entre COP y USD

Todas las operaciones usan Decimal. El redondeo (ROUND_HALF_UP a la unidad
mínima de la moneda destino) se aplica una sola vez sobre el resultado final,
nunca sobre sumas intermedias.
"""

from decimal import Decimal, ROUND_HALF_UP, ROUND_DOWN
from typing import Iterable, List, Tuple, Union

from cashflow.core.exceptions import CurrencyMismatchError
from cashflow.modules.currency.schemas import Currency, CURRENCY_UNITS


def _as_currency(value: Union[Currency, str]) -> Currency:
    return value if isinstance(value, Currency) else Currency(value)


def round_money(amount: Decimal, currency: Union[Currency, str]) -> Decimal:
    """
    Redondear a la unidad mínima de la moneda

    Args:
        amount: Valor sin redondear
        currency: Moneda que define la precisión

    Returns:
        Valor redondeado con ROUND_HALF_UP (redondeo comercial)
    """
    unit = CURRENCY_UNITS[_as_currency(currency)]
    return Decimal(amount).quantize(unit, rounding=ROUND_HALF_UP)


def split_evenly(total: Decimal, parts: int, currency: Union[Currency, str]) -> List[Decimal]:
    """
    Dividir un total en partes iguales a la precisión de la moneda.
    La última parte absorbe el residuo para que la suma sea exactamente el total.
    """
    if parts < 1:
        raise ValueError("parts debe ser mayor o igual a 1")

    unit = CURRENCY_UNITS[_as_currency(currency)]
    total = Decimal(total)
    share = (total / parts).quantize(unit, rounding=ROUND_DOWN)
    shares = [share] * (parts - 1)
    shares.append(total - share * (parts - 1))
    return shares


def sum_in_currency(amounts: Iterable[Tuple[Decimal, Union[Currency, str]]], currency: Union[Currency, str]) -> Decimal:
    """
    Sumar pares (monto, moneda) que ya están en la moneda indicada.

    Raises:
        CurrencyMismatchError: si algún monto no fue convertido antes
    """
    currency = _as_currency(currency)
    total = Decimal("0")
    for amount, amount_currency in amounts:
        if _as_currency(amount_currency) != currency:
            raise CurrencyMismatchError(currency, amount_currency)
        total += Decimal(amount)
    return total


class CurrencyConverter:
    """Convierte montos usando una única tasa COP por USD"""

    def __init__(self, cop_per_usd: Decimal):
        cop_per_usd = Decimal(cop_per_usd)
        if cop_per_usd <= 0:
            raise ValueError("La tasa de cambio debe ser mayor que cero")
        self.cop_per_usd = cop_per_usd

    @classmethod
    def from_settings(cls) -> "CurrencyConverter":
        from cashflow.core.config import settings
        return cls(settings.EXCHANGE_RATE_COP_PER_USD)

    def convert(
        self,
        amount: Decimal,
        from_currency: Union[Currency, str],
        to_currency: Union[Currency, str],
        quantize: bool = True
    ) -> Decimal:
        """
        Convertir un monto entre monedas

        Args:
            amount: Monto en la moneda de origen
            from_currency: Moneda de origen
            to_currency: Moneda destino
            quantize: Si es False retorna el valor sin redondear, útil para
                acumular conversiones y redondear solo el total

        Returns:
            Monto en la moneda destino. Si las monedas son iguales se retorna
            el monto sin modificar.
        """
        from_currency = _as_currency(from_currency)
        to_currency = _as_currency(to_currency)
        amount = Decimal(amount)

        if from_currency == to_currency:
            return amount

        if from_currency == Currency.USD:
            converted = amount * self.cop_per_usd
        else:
            converted = amount / self.cop_per_usd

        if not quantize:
            return converted
        return round_money(converted, to_currency)
