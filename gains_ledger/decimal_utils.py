import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, getcontext
from typing import Any


# ============================================================================
# PRECISION CONSTANTS (IRS & Crypto Standards)
# ============================================================================

# Bitcoin precision (satoshi = 1e-8 BTC)
SATOSHI = Decimal('0.00000001')

# USD/fiat precision (cents)
USD_PRECISION = Decimal('0.01')

ZERO = Decimal('0')

_CURRENCY_STRIP = re.compile(r'[$,\s]')
_QUANTITY_STRIP = re.compile(r'[,\s]')


# ============================================================================
# TAX COMPLIANCE ROUNDING (IRS ROUND_HALF_UP)
# ============================================================================

def set_transaction_rounding_context() -> None:
    """
    Set global Decimal context for gain/loss calculations.
    Uses ROUND_HALF_UP (0.5 always rounds up) per IRS requirements.
    Call this once at application startup.
    """
    ctx = getcontext()
    ctx.rounding = ROUND_HALF_UP
    ctx.prec = 28  # Support up to 28 significant digits


# Initialize rounding on module load
set_transaction_rounding_context()


# ============================================================================
# DECIMAL COERCION HELPERS
# ============================================================================

def to_decimal(value: Any, default: Decimal = ZERO) -> Decimal:
    """
    Safely coerce any value to a Decimal, preserving precision for financial calculations.

    Args:
        value: Any value to convert. Supports int, float, str, Decimal, None.
        default: Decimal fallback if conversion fails. Defaults to Decimal(0).

    Returns:
        Decimal: Precise numeric value, or default if conversion fails.

    Examples:
        >>> to_decimal('45000.123')
        Decimal('45000.123')
        >>> to_decimal('invalid') == Decimal(0)
        True
        >>> to_decimal(None, Decimal('-1')) == Decimal('-1')
        True

    Note:
        - Floats are coerced via str() to preserve precision
        - NaN and infinity collapse to default
    """
    if value is None:
        return default
    try:
        if isinstance(value, Decimal):
            result = value
        else:
            result = Decimal(str(value).strip())
    except (InvalidOperation, TypeError, ValueError):
        return default
    if result.is_nan() or result.is_infinite():
        return default
    return result


def round_decimal(value: Any, places: int = 8) -> Decimal:
    """Round to a fixed number of places with ROUND_HALF_UP."""
    value = to_decimal(value)
    quantizer = Decimal(10) ** -places
    try:
        return value.quantize(quantizer, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return ZERO


def round_usd(value: Any) -> Decimal:
    return round_decimal(value, 2)


def parse_currency(value: Any) -> Decimal:
    """
    Parse a broker currency cell into a Decimal.

    Strips ``$``, thousands separators and whitespace. Accounting-style
    negatives in parentheses (``(1,234.56)``) become negative values.
    Blank cells are zero.

    Raises:
        ValueError: the cell is non-blank but not a number.
    """
    if value is None:
        return ZERO
    cleaned = _CURRENCY_STRIP.sub('', str(value))
    if cleaned == '' or cleaned in ('-', '--'):
        return ZERO
    negative = cleaned.startswith('(') and cleaned.endswith(')')
    if negative:
        cleaned = cleaned[1:-1]
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {value}")
    if amount.is_nan() or amount.is_infinite():
        raise ValueError(f"Invalid amount: {value}")
    return -amount if negative else amount


def parse_quantity(value: Any) -> Decimal:
    """Parse a quantity cell; sign is dropped. Blank cells are zero."""
    if value is None:
        return ZERO
    cleaned = _QUANTITY_STRIP.sub('', str(value))
    if cleaned == '':
        return ZERO
    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        raise ValueError(f"Invalid quantity: {value}")
    if amount.is_nan() or amount.is_infinite():
        raise ValueError(f"Invalid quantity: {value}")
    return abs(amount)


def safe_divide(numerator: Decimal, denominator: Decimal) -> Decimal:
    if denominator == 0:
        return ZERO
    return numerator / denominator
