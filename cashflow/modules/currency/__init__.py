from .schemas import Currency, CURRENCY_UNITS
from .converter import CurrencyConverter, round_money, split_evenly, sum_in_currency

__all__ = [
    "Currency", "CURRENCY_UNITS",
    "CurrencyConverter", "round_money", "split_evenly", "sum_in_currency",
]
