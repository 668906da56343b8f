"""
================================================================================
COINBASE - Transaction History Import
================================================================================

Reads the Coinbase "Transaction history" export (Timestamp, Transaction Type,
Asset, Quantity Transacted, Spot Price Currency, Spot Price at Transaction,
Subtotal, Total (inclusive of fees), Fees, Notes). Coinbase prefixes the
export with a few lines of account text, so the header row is searched for.

Conversions carry both legs in the Notes column:
    "Converted 0.5 BTC to 10.25 ETH"

parse_transactions() stops at canonical transactions; parse() runs them
through the cost-basis engine and returns Form 8949 rows.

================================================================================
"""

import logging
import re
from decimal import Decimal
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from gains_ledger.core.engine import TransactionEngine, reportables_from
from gains_ledger.core.ledger import Ledger
from gains_ledger.core.models import CanonicalTransaction, CostBasisMethod, ParseResult, RawRow, TransactionType
from gains_ledger.decimal_utils import ZERO, parse_quantity, safe_divide
from gains_ledger.processors.common import (
    RowParseError,
    checked,
    collect_rows,
    currency_cell,
    empty_file_error,
    find_column,
    find_header_row,
    lower_cells,
    missing_column_errors,
    normalize_asset_symbol,
    quantity_cell,
    require_date,
    unreadable_file_result,
)
from gains_ledger.processors.tabular import TabularReadError, data_rows, read_rows

logger = logging.getLogger("gains_ledger")

EXCHANGE = 'Coinbase'
HEADER_SCAN_ROWS = 10

COINBASE_COLUMNS = {
    'timestamp': ('timestamp', 'date', 'time', 'datetime'),
    'transaction_type': ('transaction type', 'type', 'action'),
    'asset': ('asset', 'currency', 'crypto', 'coin', 'symbol'),
    'quantity': ('quantity transacted', 'quantity', 'amount', 'qty'),
    'spot_price_currency': ('spot price currency', 'currency'),
    'spot_price': ('spot price at transaction', 'spot price', 'price', 'price at transaction'),
    'subtotal': ('subtotal', 'sub total', 'amount before fees'),
    'total': ('total (inclusive of fees)', 'total', 'amount with fees'),
    'fees': ('fees', 'fee', 'transaction fee'),
    'notes': ('notes', 'note', 'description', 'memo'),
}

REQUIRED_COLUMNS = {
    'timestamp': 'Timestamp',
    'transaction_type': 'Transaction Type',
    'asset': 'Asset',
    'quantity': 'Quantity',
}

TYPE_MAP = {
    'buy': TransactionType.BUY,
    'advanced trade buy': TransactionType.BUY,
    'purchase': TransactionType.BUY,
    'sell': TransactionType.SELL,
    'advanced trade sell': TransactionType.SELL,
    'convert': TransactionType.CONVERT,
    'conversion': TransactionType.CONVERT,
    'swap': TransactionType.CONVERT,
    'send': TransactionType.SEND,
    'transfer out': TransactionType.SEND,
    'withdrawal': TransactionType.SEND,
    'receive': TransactionType.RECEIVE,
    'transfer in': TransactionType.RECEIVE,
    'deposit': TransactionType.RECEIVE,
    'rewards income': TransactionType.INCOME,
    'staking income': TransactionType.INCOME,
    'staking reward': TransactionType.INCOME,
    'interest': TransactionType.INCOME,
    'earn': TransactionType.INCOME,
    'learning reward': TransactionType.INCOME,
    'coinbase earn': TransactionType.INCOME,
    'fork': TransactionType.AIRDROP,
    'airdrop': TransactionType.AIRDROP,
    'mining': TransactionType.MINING,
}

CONVERT_NOTE = re.compile(r'Converted\s+([\d.,]+)\s+(\w+)\s+to\s+([\d.,]+)\s+(\w+)', re.IGNORECASE)


def map_transaction_type(value: str) -> TransactionType:
    return TYPE_MAP.get((value or '').strip().lower(), TransactionType.OTHER)


def convert_legs(notes: Optional[str]) -> Optional[Tuple[str, Decimal, str, Decimal]]:
    """(from_asset, from_qty, to_asset, to_qty) from a Coinbase convert note."""
    if not notes:
        return None
    match = CONVERT_NOTE.search(notes)
    if not match:
        return None
    return (
        normalize_asset_symbol(match.group(2)),
        parse_quantity(match.group(1)),
        normalize_asset_symbol(match.group(4)),
        parse_quantity(match.group(3)),
    )


# ==========================================
# DETECTION
# ==========================================

def has_markers(preamble: str) -> bool:
    """Source-name markers in the rows up to and including the header."""
    lowered = preamble.lower()
    return ('coinbase' in lowered
            or 'spot price at transaction' in lowered
            or 'total (inclusive of fees)' in lowered)


def has_columns(header: str) -> bool:
    return ('transaction type' in header
            and 'asset' in header
            and ('quantity' in header or 'amount' in header))


def can_parse(preamble: str, header: str) -> bool:
    return has_markers(preamble) or has_columns(header)


# ==========================================
# PARSING
# ==========================================

def resolve_coinbase_columns(headers: Sequence[str]) -> Dict[str, Optional[int]]:
    """Alias resolution with the money columns kept apart from each other."""
    columns = {}
    for name in ('timestamp', 'transaction_type', 'asset', 'quantity', 'spot_price_currency', 'subtotal', 'notes'):
        columns[name] = find_column(headers, COINBASE_COLUMNS[name])
    columns['spot_price'] = find_column(headers, COINBASE_COLUMNS['spot_price'],
                                        exclude=[columns['spot_price_currency']])
    columns['total'] = find_column(headers, COINBASE_COLUMNS['total'], exclude=[columns['subtotal']])
    columns['fees'] = find_column(headers, COINBASE_COLUMNS['fees'], exclude=[columns['total']])
    return columns


def build_transaction(row: RawRow, columns: Mapping[str, Optional[int]],
                      warnings: List[str]) -> Optional[CanonicalTransaction]:
    asset = normalize_asset_symbol(row.cell(columns['asset']))
    if not asset:
        raise RowParseError("Missing asset", 'asset')

    timestamp_text = row.cell(columns['timestamp'])
    timestamp = require_date(timestamp_text, 'timestamp', 'timestamp')

    quantity = quantity_cell(row, columns['quantity'], 'quantity')
    if quantity == 0:
        warnings.append(f"Row {row.line}: Zero quantity for {asset}, skipping")
        return None

    tx_type = map_transaction_type(row.cell(columns['transaction_type']))

    spot_price = currency_cell(row, columns['spot_price'], 'spot_price') if columns['spot_price'] is not None else ZERO
    subtotal = currency_cell(row, columns['subtotal'], 'subtotal') if columns['subtotal'] is not None else ZERO
    total = currency_cell(row, columns['total'], 'total') if columns['total'] is not None else ZERO
    fees = abs(currency_cell(row, columns['fees'], 'fees')) if columns['fees'] is not None else ZERO
    notes = row.cell(columns['notes']) or None

    price = abs(spot_price) or safe_divide(abs(total), quantity)
    if subtotal:
        total_value = abs(subtotal)
    elif total:
        total_value = max(abs(total) - fees, ZERO)
    else:
        total_value = quantity * price

    legs = convert_legs(notes) if tx_type is TransactionType.CONVERT else None
    from_asset, from_qty, to_asset, to_qty = legs or (None, None, None, None)

    return checked(CanonicalTransaction(
        id=f"coinbase-{row.line}",
        timestamp=timestamp,
        type=tx_type,
        asset=asset,
        quantity=quantity,
        price_per_unit=price,
        total_value=total_value,
        fees=fees,
        notes=notes,
        exchange=EXCHANGE,
        convert_from_asset=from_asset,
        convert_from_quantity=from_qty,
        convert_to_asset=to_asset,
        convert_to_quantity=to_qty,
        raw_row=row.cells,
    ))


def parse_transactions(content: str) -> ParseResult:
    """
    Parse a Coinbase export into canonical transactions.

    Returns:
        ParseResult of CanonicalTransactions. A missing required column
        returns no transactions and one ParseError per column.
    """
    try:
        rows = read_rows(content)
    except TabularReadError as e:
        return unreadable_file_result(e)
    if len(data_rows(rows)) < 2:
        return ParseResult.fatal([empty_file_error()])

    header_index = find_header_row(rows, ('timestamp', 'transaction type'), ('asset', 'quantity'),
                                   HEADER_SCAN_ROWS)
    header = rows[header_index]
    columns = resolve_coinbase_columns(lower_cells(header))
    errors = missing_column_errors(columns, REQUIRED_COLUMNS, header.line)
    if errors:
        logger.warning(f"   [Coinbase] Header row {header.line}: {len(errors)} required column(s) missing")
        return ParseResult.fatal(errors)

    logger.info("-> Parsing Coinbase transaction history")
    result = ParseResult()

    def build(row):
        row_warnings = []
        tx = build_transaction(row, columns, row_warnings)
        result.warnings.extend(row_warnings)
        return tx

    collect_rows(rows[header_index + 1:], build, result, EXCHANGE)
    logger.info(f"   Coinbase: {len(result.transactions)} transactions, {len(result.errors)} errors")
    return result


def parse(content: str, method=CostBasisMethod.FIFO, include_fees_in_basis: bool = True,
          lot_selections=None, ledger: Optional[Ledger] = None) -> ParseResult:
    """Parse and resolve cost basis; Coinbase rows are reported as covered."""
    engine = TransactionEngine(method=method, include_fees_in_basis=include_fees_in_basis,
                               lot_selections=lot_selections, is_covered=True, exchange_name=EXCHANGE)
    result, _ = reportables_from(parse_transactions(content), engine, ledger)
    return result
