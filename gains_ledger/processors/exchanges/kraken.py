"""
================================================================================
KRAKEN - Ledger and Trades Export Import
================================================================================

Kraken offers two CSV exports and both are accepted; the header decides:

    Ledger: txid, refid, time, type, subtype, aclass, asset, amount, fee, balance
    Trades: txid, ordertxid, pair, time, type, ordertype, price, cost, fee, vol, ...

Asset Codes:
    Kraken prefixes legacy codes with X (crypto) or Z (fiat) and suffixes
    staked balances (XXBT -> BTC, ZUSD -> USD, DOT.S -> DOT).

Ledger Rows:
    - 'trade' rows become buy or sell by the sign of the amount
    - Fiat legs are dropped unless they are income
    - Ledger exports carry no USD prices; a warning says so

Trade Rows:
    - Pair split on '/' or a known quote suffix (XBTUSDT -> XBT / USDT)
    - Explicit buy/sell wins; otherwise a fiat/stablecoin quote means sell

================================================================================
"""

import logging
from typing import List, Mapping, Optional, Tuple

from gains_ledger.core.engine import TransactionEngine, reportables_from
from gains_ledger.core.ledger import Ledger
from gains_ledger.core.models import CanonicalTransaction, CostBasisMethod, ParseResult, RawRow, TransactionType
from gains_ledger.decimal_utils import ZERO
from gains_ledger.processors.common import (
    RowParseError,
    checked,
    collect_rows,
    currency_cell,
    empty_file_error,
    find_header_row,
    header_line,
    lower_cells,
    missing_column_errors,
    normalize_asset_symbol,
    quantity_cell,
    require_date,
    resolve_columns,
    unreadable_file_result,
)
from gains_ledger.processors.tabular import TabularReadError, data_rows, read_rows
from gains_ledger.utils.constants import FIAT_CURRENCIES, QUOTE_CURRENCIES, USD_QUOTES

logger = logging.getLogger("gains_ledger")

EXCHANGE = 'Kraken'
HEADER_SCAN_ROWS = 10

KRAKEN_LEDGER_COLUMNS = {
    'txid': ('txid', 'transaction id', 'id'),
    'refid': ('refid', 'reference id', 'ref'),
    'time': ('time', 'timestamp', 'datetime', 'date'),
    'type': ('type', 'transaction type'),
    'subtype': ('subtype', 'sub type', 'sub-type'),
    'aclass': ('aclass', 'asset class', 'class'),
    'asset': ('asset', 'currency', 'symbol'),
    'amount': ('amount', 'quantity', 'qty'),
    'fee': ('fee', 'fees'),
    'balance': ('balance', 'running balance'),
}

KRAKEN_TRADES_COLUMNS = {
    'txid': ('txid', 'trade id'),
    'ordertxid': ('ordertxid', 'order id'),
    'pair': ('pair', 'trading pair', 'market'),
    'time': ('time', 'timestamp', 'datetime'),
    'type': ('type', 'side', 'direction'),
    'ordertype': ('ordertype', 'order type'),
    'price': ('price', 'unit price'),
    'cost': ('cost', 'total cost', 'total'),
    'fee': ('fee', 'fees'),
    'vol': ('vol', 'volume', 'quantity', 'amount'),
}

LEDGER_REQUIRED = {'time': 'Time', 'type': 'Type', 'asset': 'Asset', 'amount': 'Amount'}
TRADES_REQUIRED = {'pair': 'Pair', 'time': 'Time', 'vol': 'Volume'}

KRAKEN_ASSET_ALIASES = {
    'XBT': 'BTC',
    'XXBT': 'BTC',
    'XETH': 'ETH',
    'XXRP': 'XRP',
    'XLTC': 'LTC',
    'XXLM': 'XLM',
    'XXDG': 'DOGE',
    'XDG': 'DOGE',
    'ZUSD': 'USD',
    'ZEUR': 'EUR',
    'ZGBP': 'GBP',
}

TYPE_MAP = {
    'trade': TransactionType.BUY,
    'buy': TransactionType.BUY,
    'sell': TransactionType.SELL,
    'deposit': TransactionType.RECEIVE,
    'receive': TransactionType.RECEIVE,
    'withdrawal': TransactionType.SEND,
    'withdraw': TransactionType.SEND,
    'send': TransactionType.SEND,
    'reward': TransactionType.INCOME,
    'earn': TransactionType.INCOME,
    'interest': TransactionType.INCOME,
    'airdrop': TransactionType.AIRDROP,
    'fork': TransactionType.AIRDROP,
    'transfer': TransactionType.OTHER,
    'margin': TransactionType.OTHER,
}

STAKING_INCOME_SUBTYPES = ('reward', 'stakingfromspot')
SELL_QUOTES = ('USD', 'EUR', 'GBP', 'USDT', 'USDC', 'DAI', 'UST')

NO_PRICES_WARNING = (
    "Kraken ledger exports do not include USD prices; values are recorded as zero "
    "and must be enriched before cost basis is meaningful"
)


def normalize_kraken_asset(asset: str) -> str:
    normalized = (asset or '').strip().upper().split('.')[0]
    if normalized in KRAKEN_ASSET_ALIASES:
        return KRAKEN_ASSET_ALIASES[normalized]
    if len(normalized) > 3 and normalized[0] in ('X', 'Z'):
        normalized = normalized[1:]
    return KRAKEN_ASSET_ALIASES.get(normalized) or normalize_asset_symbol(normalized)


def map_kraken_type(value: str, subtype: str = '') -> TransactionType:
    kind = (value or '').strip().lower()
    if kind == 'staking':
        sub = (subtype or '').strip().lower()
        return TransactionType.INCOME if sub in STAKING_INCOME_SUBTYPES else TransactionType.OTHER
    return TYPE_MAP.get(kind, TransactionType.OTHER)


def split_pair(pair: str) -> Tuple[str, str]:
    """(base, quote) in Kraken's raw codes."""
    cleaned = pair.strip().upper()
    if '/' in cleaned:
        base, quote = cleaned.split('/', 1)
        return base, quote
    for quote in QUOTE_CURRENCIES:
        if cleaned.endswith(quote) and len(cleaned) > len(quote):
            return cleaned[:-len(quote)], quote
    middle = (len(cleaned) + 1) // 2
    return cleaned[:middle], cleaned[middle:]


def is_sell(trade_type: str, quote: str) -> bool:
    kind = (trade_type or '').strip().lower()
    if kind == 'sell':
        return True
    if kind == 'buy':
        return False
    return quote in SELL_QUOTES


def detect_export_type(header: str) -> str:
    if 'pair' in header and 'price' in header and 'vol' in header:
        return 'trades'
    return 'ledger'


# ==========================================
# DETECTION
# ==========================================

def has_markers(preamble: str) -> bool:
    """Source-name markers in the rows up to and including the header."""
    lowered = preamble.lower()
    return 'kraken' in lowered or 'refid' in lowered or 'aclass' in lowered or 'ordertxid' in lowered


def has_columns(header: str) -> bool:
    ledger = 'txid' in header and 'type' in header and ('asset' in header or 'amount' in header)
    trades = 'pair' in header and 'price' in header and 'vol' in header
    return ledger or trades


def can_parse(preamble: str, header: str) -> bool:
    return has_markers(preamble) or has_columns(header)


# ==========================================
# ROW BUILDERS
# ==========================================

def build_ledger_transaction(row: RawRow, columns: Mapping[str, Optional[int]],
                             warnings: List[str]) -> Optional[CanonicalTransaction]:
    raw_asset = row.cell(columns['asset'])
    if not raw_asset:
        raise RowParseError("Missing asset", 'asset')
    asset = normalize_kraken_asset(raw_asset)

    timestamp = require_date(row.cell(columns['time']), 'time', 'timestamp')

    amount = currency_cell(row, columns['amount'], 'amount')
    if amount == 0:
        warnings.append(f"Row {row.line}: Zero quantity for {asset}, skipping")
        return None

    type_text = row.cell(columns['type'])
    subtype = row.cell(columns['subtype'])
    tx_type = map_kraken_type(type_text, subtype)
    if type_text.strip().lower() == 'trade':
        tx_type = TransactionType.BUY if amount > 0 else TransactionType.SELL

    if asset in FIAT_CURRENCIES and tx_type is not TransactionType.INCOME:
        return None

    fee = abs(currency_cell(row, columns['fee'], 'fee')) if columns['fee'] is not None else ZERO

    return checked(CanonicalTransaction(
        id=row.cell(columns['txid']) or f"kraken-{row.line}",
        timestamp=timestamp,
        type=tx_type,
        asset=asset,
        quantity=abs(amount),
        fees=fee,
        notes=subtype or None,
        exchange=EXCHANGE,
        raw_row=row.cells,
    ))


def build_trade_transaction(row: RawRow, columns: Mapping[str, Optional[int]],
                            warnings: List[str]) -> Optional[CanonicalTransaction]:
    pair = row.cell(columns['pair'])
    if not pair:
        raise RowParseError("Missing pair", 'pair')

    timestamp = require_date(row.cell(columns['time']), 'time', 'timestamp')

    base_code, quote_code = split_pair(pair)
    asset = normalize_kraken_asset(base_code)
    quote = normalize_kraken_asset(quote_code)

    volume = quantity_cell(row, columns['vol'], 'vol')
    if volume == 0:
        warnings.append(f"Row {row.line}: Zero quantity for {asset}, skipping")
        return None

    price = abs(currency_cell(row, columns['price'], 'price')) if columns['price'] is not None else ZERO
    cost = abs(currency_cell(row, columns['cost'], 'cost')) if columns['cost'] is not None else ZERO
    fee = abs(currency_cell(row, columns['fee'], 'fee')) if columns['fee'] is not None else ZERO

    if quote not in USD_QUOTES:
        warnings.append(f"Row {row.line}: {pair} is quoted in {quote}; amounts are not in USD")

    sell = is_sell(row.cell(columns['type']), quote)
    return checked(CanonicalTransaction(
        id=row.cell(columns['txid']) or f"kraken-trade-{row.line}",
        timestamp=timestamp,
        type=TransactionType.SELL if sell else TransactionType.BUY,
        asset=asset,
        quantity=volume,
        price_per_unit=price,
        total_value=cost or price * volume,
        fees=fee,
        notes=pair,
        exchange=EXCHANGE,
        raw_row=row.cells,
    ))


# ==========================================
# PARSING
# ==========================================

def parse_transactions(content: str) -> ParseResult:
    """
    Parse a Kraken ledger or trades export into canonical transactions.

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

    header_index = find_header_row(rows, ('txid', 'time'), ('type', 'pair', 'asset'), HEADER_SCAN_ROWS)
    header = rows[header_index]
    headers = lower_cells(header)
    export_type = detect_export_type(header_line(headers))

    if export_type == 'trades':
        columns = resolve_columns(headers, KRAKEN_TRADES_COLUMNS)
        required, build_row = TRADES_REQUIRED, build_trade_transaction
    else:
        columns = resolve_columns(headers, KRAKEN_LEDGER_COLUMNS)
        required, build_row = LEDGER_REQUIRED, build_ledger_transaction

    errors = missing_column_errors(columns, required, header.line)
    if errors:
        logger.warning(f"   [Kraken] Header row {header.line}: {len(errors)} required column(s) missing")
        return ParseResult.fatal(errors)

    logger.info(f"-> Parsing Kraken {export_type} export")
    result = ParseResult()

    def build(row):
        row_warnings = []
        tx = build_row(row, columns, row_warnings)
        result.warnings.extend(row_warnings)
        return tx

    collect_rows(rows[header_index + 1:], build, result, EXCHANGE)
    if export_type == 'ledger' and result.transactions:
        result.warnings.append(NO_PRICES_WARNING)
    logger.info(f"   Kraken: {len(result.transactions)} transactions, {len(result.errors)} errors")
    return result


def parse(content: str, method=CostBasisMethod.FIFO, include_fees_in_basis: bool = True,
          lot_selections=None, ledger: Optional[Ledger] = None) -> ParseResult:
    """Parse and resolve cost basis; Kraken does not report basis, so rows are noncovered."""
    engine = TransactionEngine(method=method, include_fees_in_basis=include_fees_in_basis,
                               lot_selections=lot_selections, is_covered=False, exchange_name=EXCHANGE)
    result, _ = reportables_from(parse_transactions(content), engine, ledger)
    return result
