"""
================================================================================
GENERIC CRYPTO - Caller-Mapped Exchange History Import
================================================================================

Imports transaction history from any exchange once the caller has mapped
the CSV columns to logical fields (CryptoColumnMapping). Transaction type
labels are translated through DEFAULT_TYPE_MAP, which the caller can extend
or override.

Type Matching:
    1. Exact label match (custom entries win over defaults)
    2. Substring match, longest key first ("gift received" before "receive")
    3. Anything else -> other

Required fields: Date/Time, Transaction Type, Asset/Symbol, Quantity. An
incomplete mapping returns ONE fatal ParseError naming every unmapped
required field.

================================================================================
"""

import logging
from dataclasses import dataclass, field, fields
from typing import Dict, List, Mapping, Optional, Sequence

from gains_ledger.core.engine import TransactionEngine, reportables_from
from gains_ledger.core.ledger import Ledger
from gains_ledger.core.models import (
    CanonicalTransaction,
    CostBasisMethod,
    CryptoColumnMapping,
    DateFormat,
    ParseError,
    ParseResult,
    RawRow,
    TransactionType,
)
from gains_ledger.decimal_utils import ZERO, safe_divide
from gains_ledger.processors.brokers.generic import FieldDefinition
from gains_ledger.processors.common import (
    RowParseError,
    checked,
    collect_rows,
    currency_cell,
    find_column,
    normalize_asset_symbol,
    parse_date_with_format,
    quantity_cell,
    unreadable_file_result,
)
from gains_ledger.processors.tabular import TabularReadError, data_rows, read_rows

logger = logging.getLogger("gains_ledger")

DEFAULT_EXCHANGE = 'Unknown Exchange'

DEFAULT_TYPE_MAP = {
    'buy': TransactionType.BUY,
    'purchase': TransactionType.BUY,
    'bought': TransactionType.BUY,
    'sell': TransactionType.SELL,
    'sold': TransactionType.SELL,
    'convert': TransactionType.CONVERT,
    'swap': TransactionType.CONVERT,
    'trade': TransactionType.OTHER,  # direction unknown without context
    'send': TransactionType.SEND,
    'withdraw': TransactionType.SEND,
    'withdrawal': TransactionType.SEND,
    'transfer out': TransactionType.SEND,
    'receive': TransactionType.RECEIVE,
    'deposit': TransactionType.RECEIVE,
    'transfer in': TransactionType.RECEIVE,
    'income': TransactionType.INCOME,
    'reward': TransactionType.INCOME,
    'staking': TransactionType.INCOME,
    'interest': TransactionType.INCOME,
    'earn': TransactionType.INCOME,
    'airdrop': TransactionType.AIRDROP,
    'fork': TransactionType.FORK,
    'mining': TransactionType.MINING,
    'gift sent': TransactionType.GIFT_SENT,
    'gift received': TransactionType.GIFT_RECEIVED,
}

CRYPTO_FIELDS = (
    FieldDefinition('timestamp', 'Date/Time', True, 'Transaction date and time'),
    FieldDefinition('transaction_type', 'Transaction Type', True, 'Type of transaction (buy, sell, convert, etc.)'),
    FieldDefinition('asset', 'Asset/Symbol', True, 'Cryptocurrency symbol (BTC, ETH, etc.)'),
    FieldDefinition('quantity', 'Quantity', True, 'Amount of cryptocurrency'),
    FieldDefinition('price_per_unit', 'Price Per Unit', False, 'Price per unit in USD'),
    FieldDefinition('total_value', 'Total Value', False, 'Total USD value of transaction'),
    FieldDefinition('fees', 'Fees', False, 'Transaction fees in USD'),
    FieldDefinition('notes', 'Notes/Description', False, 'Additional transaction notes'),
    FieldDefinition('convert_to_asset', 'Convert To Asset', False, 'For conversions: the asset received'),
    FieldDefinition('convert_to_quantity', 'Convert To Quantity', False, 'For conversions: quantity received'),
)

SUGGESTION_ALIASES = {
    'timestamp': ('timestamp', 'date', 'time', 'datetime'),
    'transaction_type': ('transaction type', 'type', 'action', 'side'),
    'asset': ('asset', 'symbol', 'coin', 'crypto', 'currency'),
    'quantity': ('quantity', 'amount', 'qty', 'volume'),
    'price_per_unit': ('price per unit', 'spot price', 'unit price', 'price'),
    'total_value': ('total value', 'subtotal', 'total', 'value'),
    'fees': ('fees', 'fee', 'commission'),
    'notes': ('notes', 'note', 'description', 'memo'),
    'convert_to_asset': ('convert to asset', 'to asset', 'received asset'),
    'convert_to_quantity': ('convert to quantity', 'to quantity', 'received quantity'),
}


@dataclass
class GenericCryptoParserConfig:
    column_mapping: CryptoColumnMapping = field(default_factory=CryptoColumnMapping)
    skip_header_rows: int = 1
    date_format: DateFormat = DateFormat.MDY
    exchange_name: str = DEFAULT_EXCHANGE
    transaction_type_map: Dict[str, TransactionType] = field(default_factory=dict)
    cost_basis_method: CostBasisMethod = CostBasisMethod.FIFO
    include_fees_in_basis: bool = True


def get_required_crypto_fields() -> List[str]:
    return [f.key for f in CRYPTO_FIELDS if f.required]


def validate_crypto_mapping(mapping: CryptoColumnMapping) -> List[str]:
    """Labels of required fields the mapping leaves unmapped."""
    return [f.label for f in CRYPTO_FIELDS if f.required and getattr(mapping, f.key) is None]


def suggest_crypto_column_mapping(headers: Sequence[str]) -> CryptoColumnMapping:
    lowered = [h.strip().lower() for h in headers]
    taken = []
    values = {}
    for f in fields(CryptoColumnMapping):
        index = find_column(lowered, SUGGESTION_ALIASES[f.name], exclude=taken)
        values[f.name] = index
        if index is not None:
            taken.append(index)
    return CryptoColumnMapping(**values)


def build_type_map(custom: Optional[Mapping[str, TransactionType]] = None) -> Dict[str, TransactionType]:
    merged = dict(DEFAULT_TYPE_MAP)
    for label, kind in (custom or {}).items():
        merged[label.strip().lower()] = kind if isinstance(kind, TransactionType) else TransactionType(kind)
    return merged


def map_transaction_type(value: str, type_map: Mapping[str, TransactionType]) -> TransactionType:
    normalized = (value or '').strip().lower()
    if not normalized:
        return TransactionType.OTHER
    if normalized in type_map:
        return type_map[normalized]
    for key in sorted(type_map, key=len, reverse=True):
        if key in normalized:
            return type_map[key]
    return TransactionType.OTHER


def build_transaction(row: RawRow, config: GenericCryptoParserConfig, type_map: Mapping[str, TransactionType],
                      warnings: List[str]) -> Optional[CanonicalTransaction]:
    mapping = config.column_mapping

    asset = normalize_asset_symbol(row.cell(mapping.asset))
    if not asset:
        raise RowParseError("Missing asset", 'asset')

    timestamp_text = row.cell(mapping.timestamp)
    timestamp = parse_date_with_format(timestamp_text, config.date_format)
    if timestamp is None:
        raise RowParseError(f"Invalid date: {timestamp_text}", 'timestamp')

    quantity = quantity_cell(row, mapping.quantity, 'quantity')
    if quantity == 0:
        warnings.append(f"Row {row.line}: Zero quantity for {asset}, skipping")
        return None

    tx_type = map_transaction_type(row.cell(mapping.transaction_type), type_map)

    price = abs(currency_cell(row, mapping.price_per_unit, 'price_per_unit')) if mapping.price_per_unit is not None else ZERO
    total = abs(currency_cell(row, mapping.total_value, 'total_value')) if mapping.total_value is not None else ZERO
    fees = abs(currency_cell(row, mapping.fees, 'fees')) if mapping.fees is not None else ZERO
    notes = row.cell(mapping.notes) or None

    price = price or safe_divide(total, quantity)
    total = total or price * quantity

    convert = {}
    if tx_type is TransactionType.CONVERT:
        to_asset = normalize_asset_symbol(row.cell(mapping.convert_to_asset)) or None
        to_qty = quantity_cell(row, mapping.convert_to_quantity, 'convert_to_quantity') if mapping.convert_to_quantity is not None else None
        convert = {
            'convert_from_asset': asset,
            'convert_from_quantity': quantity,
            'convert_to_asset': to_asset,
            'convert_to_quantity': to_qty or None,
        }

    return checked(CanonicalTransaction(
        id=f"generic-{row.line}",
        timestamp=timestamp,
        type=tx_type,
        asset=asset,
        quantity=quantity,
        price_per_unit=price,
        total_value=total,
        fees=fees,
        notes=notes,
        exchange=config.exchange_name,
        raw_row=row.cells,
        **convert,
    ))


def incomplete_mapping_error(missing_labels: Sequence[str]) -> ParseError:
    return ParseError(
        row=0,
        message=f"Column mapping is incomplete; required fields not mapped: {', '.join(missing_labels)}",
    )


def parse_transactions(content: str, config: Optional[GenericCryptoParserConfig] = None) -> ParseResult:
    """
    Parse exchange history into canonical transactions using ``config``.

    Args:
        content: Raw CSV text
        config: Column mapping and options

    Returns:
        ParseResult of CanonicalTransactions
    """
    config = config or GenericCryptoParserConfig()

    missing = validate_crypto_mapping(config.column_mapping)
    if missing:
        logger.warning(f"   [Generic Crypto] Mapping incomplete: {', '.join(missing)}")
        return ParseResult.fatal([incomplete_mapping_error(missing)])

    try:
        rows = data_rows(read_rows(content))
    except TabularReadError as e:
        return unreadable_file_result(e)
    if len(rows) <= config.skip_header_rows:
        return ParseResult.fatal([ParseError(row=0, message='CSV file has no data rows after skipping headers')])

    logger.info(f"-> Parsing {config.exchange_name} history with custom column mapping")
    type_map = build_type_map(config.transaction_type_map)
    result = ParseResult()

    def build(row):
        row_warnings = []
        tx = build_transaction(row, config, type_map, row_warnings)
        result.warnings.extend(row_warnings)
        return tx

    collect_rows(rows[config.skip_header_rows:], build, result, 'Generic Crypto')
    return result


def parse(content: str, config: Optional[GenericCryptoParserConfig] = None,
          lot_selections=None, ledger: Optional[Ledger] = None) -> ParseResult:
    """Parse and resolve cost basis with the method named in ``config``."""
    config = config or GenericCryptoParserConfig()
    engine = TransactionEngine(method=config.cost_basis_method,
                               include_fees_in_basis=config.include_fees_in_basis,
                               lot_selections=lot_selections, is_covered=False,
                               exchange_name=config.exchange_name)
    result, _ = reportables_from(parse_transactions(content, config), engine, ledger)
    return result
