"""
================================================================================
GENERIC - Caller-Mapped Gain/Loss Import
================================================================================

Fallback for brokers without a dedicated parser. The caller supplies a
ColumnMapping (logical field -> column index); nothing is guessed at parse
time. suggest_column_mapping() offers a starting point built from the
known broker aliases.

Required fields: Symbol, Date Acquired, Date Sold, Proceeds, Cost Basis.
An incomplete mapping returns ONE fatal ParseError naming every unmapped
required field.

================================================================================
"""

import logging
from dataclasses import dataclass, field, fields
from decimal import Decimal
from typing import List, Optional, Sequence

from gains_ledger.core.classifier import is_short_term
from gains_ledger.core.models import ColumnMapping, DateFormat, ParseError, ParseResult, RawRow, ReportableTransaction
from gains_ledger.processors.common import (
    RowParseError,
    collect_rows,
    currency_cell,
    estimate_acquired_date,
    find_column,
    is_date_placeholder,
    parse_date_with_format,
    quantity_cell,
    surface_annotations,
    unreadable_file_result,
)
from gains_ledger.processors.tabular import TabularReadError, data_rows, read_rows

logger = logging.getLogger("gains_ledger")

PLACEHOLDER_YEARS = 2


@dataclass(frozen=True)
class FieldDefinition:
    key: str
    label: str
    required: bool
    description: str


GENERIC_FIELDS = (
    FieldDefinition('symbol', 'Symbol/Ticker', True, 'Stock ticker symbol (e.g., AAPL, MSFT)'),
    FieldDefinition('description', 'Description', False, 'Security description or name'),
    FieldDefinition('date_acquired', 'Date Acquired', True, 'Date the security was purchased'),
    FieldDefinition('date_sold', 'Date Sold', True, 'Date the security was sold'),
    FieldDefinition('proceeds', 'Proceeds', True, 'Total sale proceeds (quantity x price)'),
    FieldDefinition('cost_basis', 'Cost Basis', True, 'Original purchase cost (quantity x purchase price)'),
    FieldDefinition('gain_loss', 'Gain/Loss', False, 'Realized gain or loss (calculated if not provided)'),
    FieldDefinition('quantity', 'Quantity', False, 'Number of shares sold'),
    FieldDefinition('wash_sale_disallowed', 'Wash Sale Disallowed', False, 'Wash sale loss disallowed amount'),
    FieldDefinition('adjustment_code', 'Adjustment Code', False, 'IRS adjustment code (e.g., W for wash sale)'),
    FieldDefinition('adjustment_amount', 'Adjustment Amount', False, 'Amount of basis adjustment'),
)

# Union of the broker aliases, used only to suggest a mapping
SUGGESTION_ALIASES = {
    'symbol': ('symbol', 'ticker', 'security symbol', 'security'),
    'description': ('description', 'security description', 'security name', 'name', 'investment'),
    'date_acquired': ('date acquired', 'acquired', 'acquisition date', 'purchase date', 'open date'),
    'date_sold': ('date sold', 'sold', 'sale date', 'close date', 'disposal date'),
    'proceeds': ('proceeds', 'sales proceeds', 'sale proceeds', 'gross proceeds'),
    'cost_basis': ('cost basis', 'adjusted cost basis', 'cost', 'basis'),
    'gain_loss': ('gain/loss', 'gain or loss', 'gain (loss)', 'gain loss', 'realized gain/loss'),
    'quantity': ('quantity', 'qty', 'shares', 'units'),
    'wash_sale_disallowed': ('wash sale loss disallowed', 'wash sale', 'disallowed loss'),
    'adjustment_code': ('adjustment code', 'adj code', 'code'),
    'adjustment_amount': ('adjustment amount', 'adj amount', 'adjustment'),
}


@dataclass
class GenericParserConfig:
    column_mapping: ColumnMapping = field(default_factory=ColumnMapping)
    skip_header_rows: int = 1
    date_format: DateFormat = DateFormat.MDY
    default_is_short_term: Optional[bool] = None
    default_is_covered: bool = True


def get_required_fields() -> List[str]:
    return [f.key for f in GENERIC_FIELDS if f.required]


def validate_mapping(mapping: ColumnMapping) -> List[str]:
    """Labels of required fields the mapping leaves unmapped."""
    missing = []
    for definition in GENERIC_FIELDS:
        if definition.required and getattr(mapping, definition.key) is None:
            missing.append(definition.label)
    return missing


def incomplete_mapping_error(missing_labels: Sequence[str]) -> ParseError:
    return ParseError(
        row=0,
        column=None,
        message=f"Column mapping is incomplete; required fields not mapped: {', '.join(missing_labels)}",
    )


def suggest_column_mapping(headers: Sequence[str]) -> ColumnMapping:
    """Best-guess mapping from header text; every field may come back unmapped."""
    lowered = [h.strip().lower() for h in headers]
    taken = []
    values = {}
    for f in fields(ColumnMapping):
        index = find_column(lowered, SUGGESTION_ALIASES[f.name], exclude=taken)
        values[f.name] = index
        if index is not None:
            taken.append(index)
    return ColumnMapping(**values)


def _optional_amount(row: RawRow, index: Optional[int], name: str) -> Optional[Decimal]:
    if index is None:
        return None
    amount = currency_cell(row, index, name)
    return amount if amount != 0 else None


def _date(row: RawRow, index: int, column: str, label: str, date_format: DateFormat):
    text = row.cell(index)
    parsed = parse_date_with_format(text, date_format)
    if parsed is None:
        raise RowParseError(f"Invalid {label}: {text}", column)
    return parsed


def build_reportable(row: RawRow, config: GenericParserConfig, warnings: List[str]) -> ReportableTransaction:
    mapping = config.column_mapping
    row_warnings = []

    symbol = row.cell(mapping.symbol) or row.cell(mapping.description)
    if not symbol:
        raise RowParseError("Missing symbol", 'symbol')
    symbol = symbol.strip().upper()

    date_sold = _date(row, mapping.date_sold, 'date_sold', 'date sold', config.date_format)
    acquired_text = row.cell(mapping.date_acquired)
    if is_date_placeholder(acquired_text):
        date_acquired = estimate_acquired_date(acquired_text, date_sold, PLACEHOLDER_YEARS,
                                               symbol, row.line, row_warnings)
    else:
        date_acquired = _date(row, mapping.date_acquired, 'date_acquired', 'date acquired', config.date_format)

    proceeds = currency_cell(row, mapping.proceeds, 'proceeds')
    cost_basis = currency_cell(row, mapping.cost_basis, 'cost_basis')
    if mapping.gain_loss is not None and row.cell(mapping.gain_loss):
        gain_loss = currency_cell(row, mapping.gain_loss, 'gain_loss')
    else:
        gain_loss = proceeds - cost_basis

    quantity = Decimal(1)
    if mapping.quantity is not None:
        parsed = quantity_cell(row, mapping.quantity, 'quantity')
        if parsed > 0:
            quantity = parsed

    wash_sale = _optional_amount(row, mapping.wash_sale_disallowed, 'wash_sale_disallowed')
    if wash_sale is not None:
        wash_sale = abs(wash_sale)
    adjustment_code = row.cell(mapping.adjustment_code) or None
    adjustment_amount = _optional_amount(row, mapping.adjustment_amount, 'adjustment_amount')

    if config.default_is_short_term is not None:
        short_term = config.default_is_short_term
    else:
        short_term = is_short_term(date_acquired, date_sold)

    description = None
    if mapping.description is not None and mapping.description != mapping.symbol:
        description = row.cell(mapping.description) or None

    surface_annotations(symbol, row.line, wash_sale, adjustment_code, adjustment_amount, row_warnings)
    warnings.extend(row_warnings)

    return ReportableTransaction(
        symbol=symbol,
        description=description,
        date_acquired=date_acquired,
        date_sold=date_sold,
        proceeds=proceeds,
        cost_basis=cost_basis,
        gain_loss=gain_loss,
        is_short_term=short_term,
        is_covered=config.default_is_covered,
        quantity=quantity,
        wash_sale_disallowed=wash_sale,
        adjustment_code=adjustment_code,
        adjustment_amount=adjustment_amount,
    )


def parse(content: str, config: Optional[GenericParserConfig] = None) -> ParseResult:
    """
    Parse a gain/loss CSV using the caller's column mapping.

    Args:
        content: Raw CSV text
        config: Mapping and options; an all-unmapped mapping when omitted

    Returns:
        ParseResult of ReportableTransactions
    """
    config = config or GenericParserConfig()

    missing = validate_mapping(config.column_mapping)
    if missing:
        logger.warning(f"   [Generic] Mapping incomplete: {', '.join(missing)}")
        return ParseResult.fatal([incomplete_mapping_error(missing)])

    try:
        rows = data_rows(read_rows(content))
    except TabularReadError as e:
        return unreadable_file_result(e)
    if len(rows) <= config.skip_header_rows:
        return ParseResult.fatal([ParseError(row=0, message='CSV file has no data rows after skipping headers')])

    logger.info("-> Parsing gain/loss report with custom column mapping")
    result = ParseResult()
    collect_rows(rows[config.skip_header_rows:],
                 lambda row: build_reportable(row, config, result.warnings),
                 result, 'Generic')
    return result
