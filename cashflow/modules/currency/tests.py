"""
Tests para conversión de monedas y redondeo
"""

import pytest
from decimal import Decimal

from cashflow.core.exceptions import CurrencyMismatchError
from cashflow.modules.currency import (
    Currency, CurrencyConverter, round_money, split_evenly, sum_in_currency
)


@pytest.fixture
def converter():
    return CurrencyConverter(Decimal("4000"))


class TestConvert:

    def test_same_currency_returns_amount_unchanged(self, converter):
        amount = Decimal("10.555")
        assert converter.convert(amount, Currency.COP, Currency.COP) == Decimal("10.555")
        assert converter.convert(amount, "USD", "USD") == Decimal("10.555")

    def test_usd_to_cop(self, converter):
        assert converter.convert(Decimal("100"), Currency.USD, Currency.COP) == Decimal("400000")

    def test_cop_to_usd_rounds_to_cents(self, converter):
        assert converter.convert(Decimal("1000"), Currency.COP, Currency.USD) == Decimal("0.25")
        # 50 / 4000 = 0.0125 -> 0.01
        assert converter.convert(Decimal("50"), Currency.COP, Currency.USD) == Decimal("0.01")
        # 20 / 4000 = 0.005 -> 0.01 (half up)
        assert converter.convert(Decimal("20"), Currency.COP, Currency.USD) == Decimal("0.01")

    def test_unquantized_conversion(self, converter):
        assert converter.convert(Decimal("50"), Currency.COP, Currency.USD, quantize=False) == Decimal("0.0125")

    @pytest.mark.parametrize("amount", ["0", "1", "7", "999", "12345", "3999999", "123456789"])
    def test_round_trip_within_one_cop(self, converter, amount):
        x = Decimal(amount)
        usd = converter.convert(x, Currency.COP, Currency.USD, quantize=False)
        back = converter.convert(usd, Currency.USD, Currency.COP)
        assert abs(back - x) <= Decimal("1")

    @pytest.mark.parametrize("amount", ["0", "19", "21", "12345", "3999999"])
    def test_round_trip_with_rounded_usd_within_half_cent(self, converter, amount):
        x = Decimal(amount)
        usd = converter.convert(x, Currency.COP, Currency.USD)
        back = converter.convert(usd, Currency.USD, Currency.COP)
        # medio centavo de dólar expresado en pesos
        assert abs(back - x) <= Decimal("20")

    def test_from_settings_uses_configured_rate(self):
        assert CurrencyConverter.from_settings().convert(Decimal("1"), Currency.USD, Currency.COP) == Decimal("4000")

    def test_rate_must_be_positive(self):
        with pytest.raises(ValueError):
            CurrencyConverter(Decimal("0"))


class TestRounding:

    def test_round_half_up(self):
        assert round_money(Decimal("2.5"), Currency.COP) == Decimal("3")
        assert round_money(Decimal("0.005"), Currency.USD) == Decimal("0.01")
        assert round_money(Decimal("1.994"), "USD") == Decimal("1.99")

    def test_split_evenly_cop(self):
        shares = split_evenly(Decimal("100"), 3, Currency.COP)
        assert shares == [Decimal("33"), Decimal("33"), Decimal("34")]
        assert sum(shares) == Decimal("100")

    def test_split_evenly_usd(self):
        shares = split_evenly(Decimal("100.00"), 3, Currency.USD)
        assert shares == [Decimal("33.33"), Decimal("33.33"), Decimal("33.34")]
        assert sum(shares) == Decimal("100.00")

    def test_split_single_part(self):
        assert split_evenly(Decimal("2500000"), 1, Currency.COP) == [Decimal("2500000")]

    def test_split_requires_parts(self):
        with pytest.raises(ValueError):
            split_evenly(Decimal("100"), 0, Currency.COP)


class TestSumInCurrency:

    def test_sums_amounts_in_same_currency(self):
        total = sum_in_currency([(Decimal("1"), Currency.COP), (Decimal("2.5"), "COP")], Currency.COP)
        assert total == Decimal("3.5")

    def test_unconverted_amount_raises(self):
        with pytest.raises(CurrencyMismatchError):
            sum_in_currency([(Decimal("1"), Currency.COP), (Decimal("2"), Currency.USD)], Currency.COP)
