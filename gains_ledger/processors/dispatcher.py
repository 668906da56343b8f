"""
================================================================================
DISPATCHER - Source Detection and Import Entry Points
================================================================================

Every supported export is a SourceFormat member with exactly one entry in
PARSERS. Detection walks DETECTION_ORDER twice:

    Pass 1: source-name markers in the preamble and header rows
            ("coinbase", "schwab", ...); data rows never count
    Pass 2: characteristic header columns

The first positive match parses the file. When nothing matches, the generic
parser runs with the caller's column mapping: CryptoColumnMapping when one
is given, ColumnMapping otherwise. An explicit ``source`` skips detection.

Entry Points:
    parse_brokerage_csv()       - Form 8949 rows from any supported export
    parse_crypto_transactions() - canonical transactions (crypto sources)
    import_crypto()             - crypto rows plus the closing Ledger
    detect_source()             - detection only
    get_headers() / get_preview_rows() / suggest_*_column_mapping()
                                - column-mapping support

================================================================================
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from gains_ledger.core.engine import TransactionEngine, reportables_from
from gains_ledger.core.ledger import Ledger
from gains_ledger.core.models import (
    CanonicalTransaction,
    ColumnMapping,
    CostBasisMethod,
    CryptoColumnMapping,
    DateFormat,
    ParseResult,
    TransactionType,
)
from gains_ledger.processors.brokers import fidelity, generic, schwab, td_ameritrade
from gains_ledger.processors.brokers.generic import GenericParserConfig, suggest_column_mapping
from gains_ledger.processors.common import detection_text, guess_header_row, header_line
from gains_ledger.processors.exchanges import coinbase, generic_crypto, kraken
from gains_ledger.processors.exchanges.generic_crypto import GenericCryptoParserConfig, suggest_crypto_column_mapping
from gains_ledger.processors.tabular import TabularReadError, read_rows
from gains_ledger.utils.config import DEFAULT_CONFIG
from gains_ledger.utils.constants import HEADER_SCAN_ROWS

logger = logging.getLogger("gains_ledger")

EQUITY = 'equity'
CRYPTO = 'crypto'


class SourceFormat(Enum):
    SCHWAB = 'schwab'
    FIDELITY = 'fidelity'
    TD_AMERITRADE = 'td_ameritrade'
    COINBASE = 'coinbase'
    KRAKEN = 'kraken'
    GENERIC = 'generic'
    GENERIC_CRYPTO = 'generic_crypto'

    @classmethod
    def from_value(cls, value) -> 'SourceFormat':
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower().replace(' ', '_').replace('-', '_')
        for member in cls:
            if member.value == key:
                return member
        raise ValueError(f"Unknown source: {value!r}")


@dataclass
class ImportOptions:
    """Everything a parser may need besides the file content."""
    method: CostBasisMethod = CostBasisMethod.FIFO
    include_fees_in_basis: bool = True
    date_format: DateFormat = DateFormat.MDY
    skip_header_rows: int = 1
    default_is_covered: bool = True
    header_scan_rows: int = HEADER_SCAN_ROWS
    exchange_name: str = generic_crypto.DEFAULT_EXCHANGE
    column_mapping: Optional[ColumnMapping] = None
    crypto_mapping: Optional[CryptoColumnMapping] = None
    transaction_type_map: Dict[str, TransactionType] = field(default_factory=dict)
    lot_selections: Optional[Mapping[str, Sequence[str]]] = None

    @classmethod
    def from_config(cls, config: Optional[dict] = None, **overrides) -> 'ImportOptions':
        """Options from a load_config() dict; keyword overrides win when not None."""
        config = config or DEFAULT_CONFIG
        accounting = config.get('accounting', {})
        importing = config.get('import', {})
        options = cls(
            method=CostBasisMethod.from_value(accounting.get('method', 'FIFO')),
            include_fees_in_basis=bool(accounting.get('include_fees_in_basis', True)),
            date_format=DateFormat.from_value(importing.get('date_format', DateFormat.MDY.value)),
            skip_header_rows=int(importing.get('skip_header_rows', 1)),
            default_is_covered=bool(importing.get('default_is_covered', True)),
            header_scan_rows=int(importing.get('header_scan_rows', HEADER_SCAN_ROWS)),
            exchange_name=importing.get('exchange_name') or generic_crypto.DEFAULT_EXCHANGE,
        )
        for name, value in overrides.items():
            if value is None:
                continue
            if name == 'method':
                value = CostBasisMethod.from_value(value)
            elif name == 'date_format':
                value = DateFormat.from_value(value)
            setattr(options, name, value)
        return options

    def generic_config(self) -> GenericParserConfig:
        return GenericParserConfig(
            column_mapping=self.column_mapping or ColumnMapping(),
            skip_header_rows=self.skip_header_rows,
            date_format=self.date_format,
            default_is_covered=self.default_is_covered,
        )

    def generic_crypto_config(self) -> GenericCryptoParserConfig:
        return GenericCryptoParserConfig(
            column_mapping=self.crypto_mapping or CryptoColumnMapping(),
            skip_header_rows=self.skip_header_rows,
            date_format=self.date_format,
            exchange_name=self.exchange_name,
            transaction_type_map=dict(self.transaction_type_map),
            cost_basis_method=self.method,
            include_fees_in_basis=self.include_fees_in_basis,
        )


@dataclass(frozen=True)
class SourceParser:
    name: str
    kind: str
    parse: Optional[Callable[[str, ImportOptions], ParseResult]] = None
    parse_transactions: Optional[Callable[[str, ImportOptions], ParseResult]] = None
    has_markers: Optional[Callable[[str], bool]] = None
    has_columns: Optional[Callable[[str], bool]] = None
    covered: bool = False
    exchange: Optional[str] = None

    @property
    def detectable(self) -> bool:
        return self.has_markers is not None


PARSERS: Dict[SourceFormat, SourceParser] = {
    SourceFormat.SCHWAB: SourceParser(
        name='Charles Schwab',
        kind=EQUITY,
        parse=lambda content, options: schwab.parse(content),
        has_markers=schwab.has_markers,
        has_columns=schwab.has_columns,
    ),
    SourceFormat.FIDELITY: SourceParser(
        name='Fidelity',
        kind=EQUITY,
        parse=lambda content, options: fidelity.parse(content),
        has_markers=fidelity.has_markers,
        has_columns=fidelity.has_columns,
    ),
    SourceFormat.TD_AMERITRADE: SourceParser(
        name='TD Ameritrade',
        kind=EQUITY,
        parse=lambda content, options: td_ameritrade.parse(content),
        has_markers=td_ameritrade.has_markers,
        has_columns=td_ameritrade.has_columns,
    ),
    SourceFormat.COINBASE: SourceParser(
        name='Coinbase',
        kind=CRYPTO,
        parse_transactions=lambda content, options: coinbase.parse_transactions(content),
        has_markers=coinbase.has_markers,
        has_columns=coinbase.has_columns,
        covered=True,
        exchange=coinbase.EXCHANGE,
    ),
    SourceFormat.KRAKEN: SourceParser(
        name='Kraken',
        kind=CRYPTO,
        parse_transactions=lambda content, options: kraken.parse_transactions(content),
        has_markers=kraken.has_markers,
        has_columns=kraken.has_columns,
        exchange=kraken.EXCHANGE,
    ),
    SourceFormat.GENERIC: SourceParser(
        name='Generic (column mapping)',
        kind=EQUITY,
        parse=lambda content, options: generic.parse(content, options.generic_config()),
    ),
    SourceFormat.GENERIC_CRYPTO: SourceParser(
        name='Generic crypto (column mapping)',
        kind=CRYPTO,
        parse_transactions=lambda content, options: generic_crypto.parse_transactions(
            content, options.generic_crypto_config()),
    ),
}


DETECTION_ORDER = (
    SourceFormat.COINBASE,
    SourceFormat.KRAKEN,
    SourceFormat.TD_AMERITRADE,
    SourceFormat.SCHWAB,
    SourceFormat.FIDELITY,
)


# ==========================================
# DETECTION
# ==========================================

def detect_source(content: str, scan_rows: int = HEADER_SCAN_ROWS) -> Optional[SourceFormat]:
    """
    First source whose markers, then whose header columns, match; None when none do.

    Markers are only looked for up to the header row, so a data row naming a
    company ("COINBASE GLOBAL INC") never routes a broker export elsewhere.
    Content the CSV reader rejects is not detected.
    """
    if not content:
        return None
    try:
        rows = read_rows(content)
    except TabularReadError as e:
        logger.warning(f"   [Detect] {e}")
        return None

    header = guess_header_row(rows, scan_rows)
    if header is None:
        return None

    preamble = detection_text(rows, header)
    for source in DETECTION_ORDER:
        if PARSERS[source].has_markers(preamble):
            logger.debug(f"   [Detect] {source.value} by source marker")
            return source

    line = header_line(header.cells)
    for source in DETECTION_ORDER:
        if PARSERS[source].has_columns(line):
            logger.debug(f"   [Detect] {source.value} by header columns")
            return source
    return None


def resolve_source(content: str, source=None, crypto_mapping: Optional[CryptoColumnMapping] = None,
                   scan_rows: int = HEADER_SCAN_ROWS) -> SourceFormat:
    """Explicit source, else detection, else the generic parser matching the mapping kind."""
    if source is not None:
        return SourceFormat.from_value(source)
    detected = detect_source(content, scan_rows)
    if detected is not None:
        return detected
    return SourceFormat.GENERIC_CRYPTO if crypto_mapping is not None else SourceFormat.GENERIC


def get_source_name(source) -> str:
    return PARSERS[SourceFormat.from_value(source)].name


def supported_sources() -> List[Dict[str, str]]:
    return [{'id': s.value, 'name': p.name, 'kind': p.kind} for s, p in PARSERS.items()]


def is_crypto_source(source) -> bool:
    return PARSERS[SourceFormat.from_value(source)].kind == CRYPTO


# ==========================================
# IMPORT
# ==========================================

@dataclass
class CryptoImport:
    """One crypto import: Form 8949 rows, the closing Ledger and the canonical history."""
    source: SourceFormat
    result: ParseResult
    ledger: Ledger
    transactions: List[CanonicalTransaction]


def _crypto_transactions(chosen: SourceFormat, content: str, options: ImportOptions) -> ParseResult:
    entry = PARSERS[chosen]
    if entry.parse_transactions is None:
        raise ValueError(f"{entry.name} is not a crypto source")
    return entry.parse_transactions(content, options)


def _run_crypto(chosen: SourceFormat, content: str, options: ImportOptions,
                ledger: Optional[Ledger] = None) -> CryptoImport:
    entry = PARSERS[chosen]
    parsed = _crypto_transactions(chosen, content, options)
    engine = TransactionEngine(method=options.method, include_fees_in_basis=options.include_fees_in_basis,
                               lot_selections=options.lot_selections, is_covered=entry.covered,
                               exchange_name=entry.exchange or options.exchange_name)
    result, closing = reportables_from(parsed, engine, ledger)
    return CryptoImport(chosen, result, closing, list(parsed.transactions))


def _crypto_source(content: str, source, options: ImportOptions) -> SourceFormat:
    chosen = resolve_source(content, source, options.crypto_mapping, options.header_scan_rows)
    if chosen is SourceFormat.GENERIC:
        chosen = SourceFormat.GENERIC_CRYPTO
    return chosen


def parse_brokerage_csv(content: str, source=None, column_mapping: Optional[ColumnMapping] = None,
                        crypto_mapping: Optional[CryptoColumnMapping] = None, config: Optional[dict] = None,
                        **overrides) -> ParseResult:
    """
    Parse any supported export into Form 8949 rows.

    Args:
        content: Raw CSV text
        source: SourceFormat (or its value) to skip detection
        column_mapping: Mapping for the generic equity parser
        crypto_mapping: Mapping for the generic crypto parser
        config: load_config() dict; DEFAULT_CONFIG when omitted
        overrides: ImportOptions fields (method, date_format, lot_selections, ...)

    Returns:
        ParseResult of ReportableTransactions

    Raises:
        ValueError: unknown source or cost basis method
    """
    options = ImportOptions.from_config(config, column_mapping=column_mapping,
                                        crypto_mapping=crypto_mapping, **overrides)
    chosen = resolve_source(content, source, crypto_mapping, options.header_scan_rows)
    entry = PARSERS[chosen]
    logger.info(f"-> Importing as {entry.name}")
    if entry.kind == CRYPTO:
        return _run_crypto(chosen, content, options).result
    return entry.parse(content, options)


def parse_crypto_transactions(content: str, source=None, crypto_mapping: Optional[CryptoColumnMapping] = None,
                              config: Optional[dict] = None, **overrides) -> ParseResult:
    """
    Canonical transactions from a crypto export, before cost basis.

    Raises:
        ValueError: the chosen source is an equity source
    """
    options = ImportOptions.from_config(config, crypto_mapping=crypto_mapping, **overrides)
    return _crypto_transactions(_crypto_source(content, source, options), content, options)


def import_crypto(content: str, source=None, crypto_mapping: Optional[CryptoColumnMapping] = None,
                  config: Optional[dict] = None, ledger: Optional[Ledger] = None, **overrides) -> CryptoImport:
    """
    Parse a crypto export and run it through the cost-basis engine.

    ``ledger`` carries open lots in from an earlier import; the returned
    CryptoImport holds the closing Ledger for holdings and the next import.

    Raises:
        ValueError: the chosen source is an equity source
    """
    options = ImportOptions.from_config(config, crypto_mapping=crypto_mapping, **overrides)
    chosen = _crypto_source(content, source, options)
    logger.info(f"-> Importing as {PARSERS[chosen].name}")
    return _run_crypto(chosen, content, options, ledger)


# ==========================================
# COLUMN MAPPING SUPPORT
# ==========================================

def _readable_rows(content: str):
    try:
        return read_rows(content)
    except TabularReadError as e:
        logger.warning(f"   [Columns] {e}")
        return []


def get_headers(content: str) -> List[str]:
    """Cells of the first non-blank row; empty when the content cannot be read."""
    for row in _readable_rows(content):
        if not row.is_blank():
            return list(row.cells)
    return []


def get_preview_rows(content: str, limit: int = 5) -> List[List[str]]:
    """Header row plus up to ``limit`` data rows, blank lines excluded."""
    rows = [list(r.cells) for r in _readable_rows(content) if not r.is_blank()]
    return rows[:limit + 1]


__all__ = [
    'SourceFormat',
    'ImportOptions',
    'PARSERS',
    'DETECTION_ORDER',
    'detect_source',
    'resolve_source',
    'get_source_name',
    'supported_sources',
    'is_crypto_source',
    'parse_brokerage_csv',
    'parse_crypto_transactions',
    'import_crypto',
    'CryptoImport',
    'get_headers',
    'get_preview_rows',
    'suggest_column_mapping',
    'suggest_crypto_column_mapping',
]
