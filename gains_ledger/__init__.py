"""
================================================================================
GAINS LEDGER - Brokerage and Exchange Import for Form 8949
================================================================================

Turns broker gain/loss reports and crypto exchange histories into
Form 8949 rows with lot-level cost basis.

Package Structure:
    gains_ledger/core/        - Canonical types, ledger, engine, reports
    gains_ledger/processors/  - CSV reader, source parsers, dispatcher
    gains_ledger/utils/       - Logging, configuration, constants
    gains_ledger/cli.py       - Command-line front end

================================================================================
"""

__version__ = "2025.1"
