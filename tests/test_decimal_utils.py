"""
Unit tests for decimal utility functions.
Ensures accurate numeric handling across edge cases.
"""

from decimal import Decimal

import pytest

from gains_ledger.decimal_utils import (
    ZERO,
    parse_currency,
    parse_quantity,
    round_decimal,
    round_usd,
    safe_divide,
    to_decimal,
)


class TestToDecimal:
    """Test suite for to_decimal helper function."""

    def test_valid_string(self):
        assert to_decimal('123.456') == Decimal('123.456')

    def test_float_goes_through_str(self):
        assert to_decimal(3.14159) == Decimal('3.14159')

    def test_decimal_passes_through(self):
        d = Decimal('999.99')
        assert to_decimal(d) is d

    def test_none_and_garbage_use_default(self):
        assert to_decimal(None) == ZERO
        assert to_decimal('12.34.56') == ZERO
        assert to_decimal('abc', Decimal('-1')) == Decimal('-1')

    def test_nan_and_infinity_use_default(self):
        assert to_decimal('NaN') == ZERO
        assert to_decimal(float('inf')) == ZERO


class TestRounding:
    """ROUND_HALF_UP at cents and satoshis."""

    def test_usd_half_up(self):
        assert round_usd(Decimal('2.675')) == Decimal('2.68')
        assert round_usd(Decimal('-2.675')) == Decimal('-2.68')

    def test_satoshi_precision(self):
        assert round_decimal(Decimal('0.123456785'), 8) == Decimal('0.12345679')


class TestParseCurrency:
    """Broker currency cells."""

    def test_dollar_sign_and_thousands(self):
        assert parse_currency('$1,234.56') == Decimal('1234.56')

    def test_parentheses_are_negative(self):
        assert parse_currency('($200.00)') == Decimal('-200.00')
        assert parse_currency('(1,234.56)') == Decimal('-1234.56')

    def test_minus_sign(self):
        assert parse_currency('-15.5') == Decimal('-15.5')

    def test_blank_and_dash_are_zero(self):
        assert parse_currency('') == ZERO
        assert parse_currency('  ') == ZERO
        assert parse_currency('--') == ZERO
        assert parse_currency(None) == ZERO

    def test_text_raises(self):
        with pytest.raises(ValueError, match='Invalid amount'):
            parse_currency('N/A')


class TestParseQuantity:
    """Quantity cells keep magnitude only."""

    def test_sign_is_dropped(self):
        assert parse_quantity('-0.5') == Decimal('0.5')

    def test_thousands_separator(self):
        assert parse_quantity('1,000.25') == Decimal('1000.25')

    def test_blank_is_zero(self):
        assert parse_quantity('') == ZERO

    def test_text_raises(self):
        with pytest.raises(ValueError, match='Invalid quantity'):
            parse_quantity('lots')


def test_safe_divide_by_zero_is_zero():
    assert safe_divide(Decimal('10'), ZERO) == ZERO
    assert safe_divide(Decimal('10'), Decimal('4')) == Decimal('2.5')
