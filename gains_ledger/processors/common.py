"""
================================================================================
COMMON - Shared Parsing Utilities for Source Parsers
================================================================================

Header location, alias-based column resolution, footer detection, date
parsing (explicit US/ISO patterns first, pandas as the fallback), placeholder
acquisition-date estimation and symbol helpers.

Dates:
    All parsed dates are naive datetimes in UTC. Offsets present in the
    source (e.g. ``2024-03-01T12:00:00-05:00``) are converted to UTC first.

================================================================================
"""

import logging
import re
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import pandas as pd

from gains_ledger.core.models import CanonicalTransaction, DateFormat, ParseError, ParseResult, RawRow
from gains_ledger.core.validator import TransactionValidator
from gains_ledger.decimal_utils import parse_currency, parse_quantity
from gains_ledger.processors.tabular import TabularReadError
from gains_ledger.utils.constants import (
    ASSET_ALIASES,
    DATE_PLACEHOLDERS,
    FOOTER_MARKERS,
    HEADER_SCAN_ROWS,
    QUANTITY_DECIMALS,
    TWO_DIGIT_YEAR_PIVOT,
)

logger = logging.getLogger("gains_ledger")

_SLASH_DATE = re.compile(r'^(\d{1,2})/(\d{1,2})/(\d{2,4})$')
_ISO_DATE = re.compile(r'^(\d{4})-(\d{1,2})-(\d{1,2})$')
_ISO_DATE_PREFIX = re.compile(r'^(\d{4})-(\d{1,2})-(\d{1,2})')


class RowParseError(ValueError):
    """A single row cannot be turned into a transaction."""

    def __init__(self, message: str, column: Optional[str] = None):
        super().__init__(message)
        self.column = column


# ==========================================
# HEADERS & COLUMNS
# ==========================================

def lower_cells(row: RawRow) -> List[str]:
    return [c.lower().strip() for c in row.cells]


def header_line(cells: Sequence[str]) -> str:
    return ' '.join(c.lower() for c in cells)


def find_column(headers: Sequence[str], aliases: Sequence[str],
                exclude: Sequence[Optional[int]] = ()) -> Optional[int]:
    """
    Resolve a logical field to a header index.

    Aliases are tried in order; for each alias an exact header match beats a
    substring match (so "fees" picks "Fees" over "Total (inclusive of fees)").
    Indexes in ``exclude`` are never returned.
    """
    for alias in aliases:
        candidates = [i for i in range(len(headers)) if i not in exclude]
        for index in candidates:
            if headers[index] == alias:
                return index
        for index in candidates:
            if alias in headers[index]:
                return index
    return None


def resolve_columns(headers: Sequence[str], alias_table: Mapping[str, Sequence[str]]) -> Dict[str, Optional[int]]:
    """
    Resolve every field of an alias table to its own header index.

    Exact header matches are claimed first; the remaining fields then fall
    back to find_column over the unclaimed columns, in table order. A column
    never serves two fields ("Adjustment Code" is not read as an amount).
    """
    columns: Dict[str, Optional[int]] = {}
    claimed = []
    for name, aliases in alias_table.items():
        for alias in aliases:
            exact = [i for i, header in enumerate(headers) if header == alias and i not in claimed]
            if exact:
                columns[name] = exact[0]
                claimed.append(exact[0])
                break
    for name, aliases in alias_table.items():
        if name in columns:
            continue
        index = find_column(headers, aliases, exclude=claimed)
        columns[name] = index
        if index is not None:
            claimed.append(index)
    return {name: columns[name] for name in alias_table}


def find_header_row(rows: Sequence[RawRow], identity_tokens: Sequence[str], date_tokens: Sequence[str],
                    limit: int = HEADER_SCAN_ROWS) -> int:
    """
    Index (into ``rows``) of the first row holding an identity alias and a
    date alias within the first ``limit`` rows; 0 when none does.
    """
    for index, row in enumerate(rows[:limit]):
        cells = lower_cells(row)
        has_identity = any(tok in c for c in cells for tok in identity_tokens)
        has_date = any(tok in c for c in cells for tok in date_tokens)
        if has_identity and has_date:
            return index
    return 0


def guess_header_row(rows: Sequence[RawRow], limit: int = HEADER_SCAN_ROWS) -> Optional[RawRow]:
    """Best-effort header row for format detection: first row naming a date/time column."""
    candidates = [r for r in rows[:limit] if not r.is_blank()]
    for row in candidates:
        cells = lower_cells(row)
        if len([c for c in cells if c]) >= 2 and any('date' in c or 'time' in c for c in cells):
            return row
    return candidates[0] if candidates else None


def detection_text(rows: Sequence[RawRow], header: RawRow) -> str:
    """Preamble and header rows as one lower-cased string, where source-name markers are looked for."""
    return '\n'.join(','.join(r.cells) for r in rows if r.line <= header.line).lower()


def missing_column_errors(columns: Mapping[str, Optional[int]], required: Mapping[str, str],
                          header_row: int) -> List[ParseError]:
    """One ParseError per required field that did not resolve."""
    errors = []
    for name, label in required.items():
        if columns.get(name) is None:
            errors.append(ParseError(row=header_row, column=name, message=f"Could not find {label} column"))
    return errors


def is_footer_row(row: RawRow) -> bool:
    if not row.cells:
        return False
    first = row.cells[0].lower()
    return any(marker in first for marker in FOOTER_MARKERS)


def should_skip(row: RawRow) -> bool:
    return row.is_blank() or is_footer_row(row)


# ==========================================
# DATES
# ==========================================

def _expand_year(year: int) -> int:
    if year < 100:
        year += 2000 if year < TWO_DIGIT_YEAR_PIVOT else 1900
    return year


def _build_date(year: int, month: int, day: int) -> Optional[datetime]:
    try:
        return datetime(_expand_year(year), month, day)
    except ValueError:
        return None


def to_naive_utc(value) -> Optional[datetime]:
    """Convert a pandas/py datetime to a naive UTC datetime."""
    if value is None or value is pd.NaT:
        return None
    ts = pd.Timestamp(value)
    if pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert('UTC').tz_localize(None)
    return ts.to_pydatetime()


def _pandas_parse(text: str, dayfirst: bool = False) -> Optional[datetime]:
    try:
        return to_naive_utc(pd.to_datetime(text, utc=True, dayfirst=dayfirst))
    except (ValueError, TypeError, OverflowError):
        return None


def parse_date(text: str) -> Optional[datetime]:
    """
    Parse a date in the common broker/exchange formats.

    MM/DD/YYYY and MM/DD/YY (two-digit years pivot at 50) and YYYY-MM-DD
    are matched explicitly; anything else (ISO timestamps, ``Jan 5 2024``,
    ``2024-01-15 10:30:45 UTC``) goes through pandas.

    Returns:
        Naive UTC datetime, or None when the text is not a date.
    """
    if text is None:
        return None
    cleaned = str(text).strip()
    if not cleaned:
        return None

    match = _SLASH_DATE.match(cleaned)
    if match:
        return _build_date(int(match.group(3)), int(match.group(1)), int(match.group(2)))

    match = _ISO_DATE.match(cleaned)
    if match:
        return _build_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))

    # Bare numbers are not dates (pandas would read them as epoch offsets)
    if re.match(r'^-?\d+(\.\d+)?$', cleaned):
        return None

    return _pandas_parse(cleaned)


def parse_date_with_format(text: str, date_format: DateFormat) -> Optional[datetime]:
    """Parse with a caller-supplied format hint, falling back to parse_date."""
    if text is None:
        return None
    cleaned = str(text).strip()
    if not cleaned:
        return None

    if date_format is DateFormat.DMY:
        match = _SLASH_DATE.match(cleaned)
        if match:
            return _build_date(int(match.group(3)), int(match.group(2)), int(match.group(1)))
    elif date_format is DateFormat.YMD:
        match = _ISO_DATE_PREFIX.match(cleaned)
        if match:
            return _build_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    elif date_format is DateFormat.ISO:
        parsed = _pandas_parse(cleaned)
        if parsed is not None:
            return parsed

    return parse_date(cleaned)


def is_date_placeholder(text: str) -> bool:
    lowered = (text or '').strip().lower()
    return any(p in lowered for p in DATE_PLACEHOLDERS)


def subtract_years(value: datetime, years: int) -> datetime:
    try:
        return value.replace(year=value.year - years)
    except ValueError:
        # Feb 29 in a non-leap target year
        return value.replace(year=value.year - years, day=28)


def estimate_acquired_date(acquired_text: str, date_sold: datetime, years: int, symbol: str,
                           row_number: int, warnings: List[str]) -> datetime:
    """
    Stand-in acquisition date for a placeholder cell (Various/Inherited/Gifted):
    the sale date minus ``years``. A warning naming the row is recorded.
    """
    warnings.append(
        f'Row {row_number}: "{acquired_text}" date acquired - using sale date minus '
        f'{years} year{"s" if years != 1 else ""} as estimate for {symbol}'
    )
    return subtract_years(date_sold, years)


def require_date(text: str, column: str, label: str) -> datetime:
    parsed = parse_date(text)
    if parsed is None:
        raise RowParseError(f"Invalid {label}: {text}", column)
    return parsed


# ==========================================
# SYMBOLS
# ==========================================

def extract_symbol(description: str, patterns: Sequence[re.Pattern], max_length: int) -> str:
    """Ticker from a description via ``patterns`` (first group), else its leading text."""
    for pattern in patterns:
        match = pattern.search(description)
        if match:
            return match.group(1)
    return description[:max_length].strip()


def normalize_asset_symbol(symbol: str) -> str:
    normalized = (symbol or '').strip().upper()
    return ASSET_ALIASES.get(normalized, normalized)


def format_crypto_quantity(quantity: Decimal, asset: str) -> str:
    places = QUANTITY_DECIMALS.get(asset.upper(), 6)
    return f"{quantity:.{places}f}"


def format_usd(amount: Decimal) -> str:
    return f"${amount:,.2f}"


def surface_annotations(symbol: str, row_number: int, wash_sale: Optional[Decimal],
                        adjustment_code: Optional[str], adjustment_amount: Optional[Decimal],
                        warnings: List[str]) -> None:
    """Warnings for broker-reported wash sales and adjustment codes."""
    if wash_sale:
        warnings.append(f"Row {row_number}: Wash sale disallowed amount of {format_usd(wash_sale)} for {symbol}")
    if adjustment_code:
        message = f'Row {row_number}: Adjustment code "{adjustment_code}" for {symbol}'
        if adjustment_amount:
            message += f" with amount {format_usd(adjustment_amount)}"
        warnings.append(message)


def empty_file_error() -> ParseError:
    return ParseError(row=0, message='CSV file is empty or has no data rows')


def unreadable_file_result(exc: TabularReadError) -> ParseResult:
    """Fatal result for content the CSV reader rejects."""
    logger.warning(f"   [CSV] {exc}")
    return ParseResult.fatal([ParseError(row=exc.line, message=str(exc))])


def row_error(row: RawRow, exc: Exception) -> ParseError:
    column = getattr(exc, 'column', None)
    if isinstance(exc, RowParseError):
        return ParseError(row=row.line, column=column, message=str(exc))
    return ParseError(row=row.line, column=column, message=f"Error parsing row: {exc}")


# ==========================================
# ROW LOOP
# ==========================================

# Anything a malformed cell can raise while a row is being built
ROW_FAILURES = (ValueError, ArithmeticError, IndexError, KeyError, TypeError)


def currency_cell(row: RawRow, index: Optional[int], column: str) -> Decimal:
    try:
        return parse_currency(row.cell(index))
    except ValueError as e:
        raise RowParseError(str(e), column) from e


def quantity_cell(row: RawRow, index: Optional[int], column: str) -> Decimal:
    try:
        return parse_quantity(row.cell(index))
    except ValueError as e:
        raise RowParseError(str(e), column) from e


def checked(tx: CanonicalTransaction) -> CanonicalTransaction:
    """Pass ``tx`` through the value validator; invalid values become a row error."""
    problem = TransactionValidator.first_error(tx)
    if problem:
        raise RowParseError(problem)
    return tx


def collect_rows(rows: Iterable[RawRow], build_row: Callable[[RawRow], object],
                 result: ParseResult, source: str) -> None:
    """
    Build one record per data row into ``result``.

    Blank and footer rows are skipped. ``build_row`` may return None to skip
    a row on purpose; any failure it raises becomes a ParseError for that row
    alone and the loop moves on.
    """
    for row in rows:
        if should_skip(row):
            continue
        try:
            record = build_row(row)
        except ROW_FAILURES as e:
            error = row_error(row, e)
            logger.debug(f"   [{source}] {error}")
            result.errors.append(error)
            continue
        if record is not None:
            result.transactions.append(record)
