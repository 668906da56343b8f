"""
================================================================================
GAIN/LOSS REPORT - Shared Reader for Broker Realized Gain/Loss Exports
================================================================================

Brokers report basis themselves, so every data row becomes one
ReportableTransaction directly; no ledger is involved.

Each broker module describes its export with a BrokerProfile (column
aliases, header markers, placeholder-date offset, ticker patterns) and hands
it to parse_gain_loss_report().

Row Handling:
    1. Header row = first row (within the profile's scan limit) with an
       identity column and a date column
    2. Required columns unresolved -> one ParseError per missing field
    3. Blank rows and footer rows (Total/Subtotal/Account/***) skipped
    4. Placeholder acquisition dates -> sale date minus N years + warning
    5. Wash sale and adjustment cells -> warnings
    6. Any bad cell -> ParseError for that row only

================================================================================
"""

import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from gains_ledger.core.classifier import is_short_term
from gains_ledger.core.models import ParseError, ParseResult, RawRow, ReportableTransaction
from gains_ledger.processors.common import (
    RowParseError,
    collect_rows,
    currency_cell,
    empty_file_error,
    estimate_acquired_date,
    extract_symbol,
    find_header_row,
    is_date_placeholder,
    lower_cells,
    quantity_cell,
    require_date,
    resolve_columns,
    surface_annotations,
    unreadable_file_result,
)
from gains_ledger.processors.tabular import TabularReadError, data_rows, read_rows

logger = logging.getLogger("gains_ledger")

# Values of a covered/box column that mark a noncovered lot
NONCOVERED_MARKERS = ('noncovered', 'non-covered')
NONCOVERED_CODES = ('c', 'f', '3')

REQUIRED_LABELS = {
    'date_acquired': 'Date Acquired',
    'date_sold': 'Date Sold',
    'proceeds': 'Proceeds',
    'cost_basis': 'Cost Basis',
}


@dataclass(frozen=True)
class BrokerProfile:
    name: str
    columns: Mapping[str, Sequence[str]]
    identity_tokens: Tuple[str, ...]
    date_tokens: Tuple[str, ...]
    header_scan_rows: int
    placeholder_years: int
    symbol_patterns: Tuple[re.Pattern, ...] = ()
    symbol_max_length: int = 20
    description_identifies: bool = True  # Description alone may stand in for Symbol


def header_term(value: str) -> Optional[bool]:
    """Short-term flag from a term column, or None when the cell says nothing."""
    value = value.strip().lower()
    if 'short' in value or value == 'st':
        return True
    if 'long' in value or value == 'lt':
        return False
    return None


def header_covered(value: str, default: bool = True) -> bool:
    value = value.strip().lower()
    if any(m in value for m in NONCOVERED_MARKERS) or value in NONCOVERED_CODES:
        return False
    return default


def locate_columns(rows: List[RawRow], profile: BrokerProfile) -> Tuple[int, Dict[str, Optional[int]], List[ParseError]]:
    """Find the header row and resolve columns; errors list the unresolved required fields."""
    header_index = find_header_row(rows, profile.identity_tokens, profile.date_tokens, profile.header_scan_rows)
    header = rows[header_index]
    columns = resolve_columns(lower_cells(header), profile.columns)

    errors = []
    if columns.get('symbol') is None and not (profile.description_identifies and columns.get('description') is not None):
        label = 'Symbol or Description' if profile.description_identifies else 'Symbol'
        errors.append(ParseError(row=header.line, column='symbol', message=f"Could not find {label} column"))
    for name, label in REQUIRED_LABELS.items():
        if columns.get(name) is None:
            errors.append(ParseError(row=header.line, column=name, message=f"Could not find {label} column"))
    return header_index, columns, errors


def _optional_amount(row: RawRow, columns, name: str) -> Optional[Decimal]:
    if columns.get(name) is None:
        return None
    amount = currency_cell(row, columns[name], name)
    return amount if amount != 0 else None


def build_reportable(row: RawRow, columns: Mapping[str, Optional[int]], profile: BrokerProfile,
                     warnings: List[str]) -> ReportableTransaction:
    row_warnings = []
    symbol = row.cell(columns.get('symbol'))
    description = row.cell(columns.get('description'))

    if not symbol and description and profile.description_identifies:
        symbol = extract_symbol(description, profile.symbol_patterns, profile.symbol_max_length)
    if not symbol:
        raise RowParseError("Missing symbol", 'symbol')
    symbol = symbol.strip().upper()

    sold_text = row.cell(columns['date_sold'])
    date_sold = require_date(sold_text, 'date_sold', 'date sold')

    acquired_text = row.cell(columns['date_acquired'])
    if is_date_placeholder(acquired_text):
        date_acquired = estimate_acquired_date(acquired_text, date_sold, profile.placeholder_years,
                                               symbol, row.line, row_warnings)
    else:
        date_acquired = require_date(acquired_text, 'date_acquired', 'date acquired')

    proceeds = currency_cell(row, columns['proceeds'], 'proceeds')
    cost_basis = currency_cell(row, columns['cost_basis'], 'cost_basis')
    if columns.get('gain_loss') is not None and row.cell(columns['gain_loss']):
        gain_loss = currency_cell(row, columns['gain_loss'], 'gain_loss')
    else:
        gain_loss = proceeds - cost_basis

    quantity = Decimal(1)
    if columns.get('quantity') is not None:
        parsed = quantity_cell(row, columns['quantity'], 'quantity')
        if parsed > 0:
            quantity = parsed

    wash_sale = _optional_amount(row, columns, 'wash_sale_disallowed')
    if wash_sale is not None:
        wash_sale = abs(wash_sale)
    adjustment_code = row.cell(columns.get('adjustment_code')) or None
    adjustment_amount = _optional_amount(row, columns, 'adjustment_amount')

    short_term = is_short_term(date_acquired, date_sold)
    if columns.get('term') is not None:
        reported = header_term(row.cell(columns['term']))
        if reported is not None:
            short_term = reported

    covered = True
    if columns.get('covered') is not None:
        covered = header_covered(row.cell(columns['covered']))

    surface_annotations(symbol, row.line, wash_sale, adjustment_code, adjustment_amount, row_warnings)
    warnings.extend(row_warnings)

    return ReportableTransaction(
        symbol=symbol,
        description=description or None,
        date_acquired=date_acquired,
        date_sold=date_sold,
        proceeds=proceeds,
        cost_basis=cost_basis,
        gain_loss=gain_loss,
        is_short_term=short_term,
        is_covered=covered,
        quantity=quantity,
        wash_sale_disallowed=wash_sale,
        adjustment_code=adjustment_code,
        adjustment_amount=adjustment_amount,
    )


def parse_gain_loss_report(content: str, profile: BrokerProfile) -> ParseResult:
    """
    Parse a broker realized gain/loss export.

    Returns:
        ParseResult of ReportableTransactions. Header-level problems return
        no transactions and one ParseError per missing column.
    """
    try:
        rows = read_rows(content)
    except TabularReadError as e:
        return unreadable_file_result(e)
    if len(data_rows(rows)) < 2:
        return ParseResult.fatal([empty_file_error()])

    header_index, columns, errors = locate_columns(rows, profile)
    if errors:
        logger.warning(f"   [{profile.name}] Header row {rows[header_index].line}: {len(errors)} required column(s) missing")
        return ParseResult.fatal(errors)

    logger.info(f"-> Parsing {profile.name} gain/loss report")
    result = ParseResult()
    collect_rows(rows[header_index + 1:],
                 lambda row: build_reportable(row, columns, profile, result.warnings),
                 result, profile.name)
    logger.info(f"   {profile.name}: {len(result.transactions)} rows imported, {len(result.errors)} errors")
    return result


def required_columns_present(header: str) -> bool:
    """Acquired/sold/proceeds/basis coverage shared by the broker detectors."""
    return (
        ('date acquired' in header or 'acquired' in header)
        and ('date sold' in header or 'sold' in header)
        and ('proceeds' in header or 'sales' in header)
        and ('cost' in header or 'basis' in header)
    )
