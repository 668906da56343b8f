"""
================================================================================
UTILS MODULE - Shared Utilities and Helpers
================================================================================

Shared infrastructure used across all application components.

Exported Functions:
    Logging:
        - setup_logging() - Initialize logging infrastructure
        - set_run_context(context) - Set execution context
        - logger - Main application logger

    Configuration:
        - load_config() - Load configuration from configs/config.json

    Constants:
        - File paths, holding-period rule, CSV import markers

Usage:
    from gains_ledger.utils import logger, load_config
    from gains_ledger.utils.constants import LONG_TERM_HOLDING_DAYS

================================================================================
"""

from .logger import setup_logging, set_run_context, logger
from .config import load_config

__all__ = [
    'setup_logging',
    'set_run_context',
    'logger',
    'load_config',
]
