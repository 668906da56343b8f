"""
Source parsers and the import dispatcher.

Import from gains_ledger.processors rather than the individual parser
modules; the dispatcher picks the parser.
"""

from gains_ledger.processors.dispatcher import (
    CryptoImport,
    ImportOptions,
    SourceFormat,
    detect_source,
    get_headers,
    get_preview_rows,
    get_source_name,
    import_crypto,
    is_crypto_source,
    parse_brokerage_csv,
    parse_crypto_transactions,
    suggest_column_mapping,
    suggest_crypto_column_mapping,
    supported_sources,
)

__all__ = [
    "CryptoImport",
    "ImportOptions",
    "SourceFormat",
    "detect_source",
    "get_headers",
    "get_preview_rows",
    "get_source_name",
    "import_crypto",
    "is_crypto_source",
    "parse_brokerage_csv",
    "parse_crypto_transactions",
    "suggest_column_mapping",
    "suggest_crypto_column_mapping",
    "supported_sources",
]
