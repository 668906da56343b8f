"""
================================================================================
LOGGER - Unified Logging Configuration
================================================================================

Centralized logging infrastructure for all application contexts.

Logging Contexts:
    - 'cli' - Command-line interface operations
    - 'test' - Unit and integration tests
    - 'imported' - Library/module imports (console only, no log files)

Log Destinations:
    1. File Logs - outputs/logs/{timestamp}.{context}.log
    2. Console Output - stdout
    3. Rotating Backups - 5MB max per file, 5 backup files

Log Format:
    {timestamp} {level} [{context}]: {message}
    Example: 2025-12-16 10:30:45 INFO [cli]: -> Parsing Coinbase export

Usage:
    from gains_ledger.utils.logger import logger, set_run_context

    set_run_context('cli')
    logger.info('Importing brokerage file')

================================================================================
"""

import sys
import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler

logger = logging.getLogger("gains_ledger")
logger.setLevel(logging.INFO)

# Global run context state
_RUN_CONTEXT = 'imported'

# Contexts that never write log files
_CONSOLE_ONLY_CONTEXTS = ('imported', 'test')

_LOG_FORMAT = "%(asctime)s %(levelname)s [%(run_context)s]: %(message)s"


class RunContextFilter(logging.Filter):
    """
    Logging filter that adds run context to all log records
    Allows distinguishing between different execution contexts
    """

    def filter(self, record):
        record.run_context = _RUN_CONTEXT
        return True


def get_run_context() -> str:
    return _RUN_CONTEXT


def set_run_context(context: str):
    """
    Set the execution context for logging

    Args:
        context: String identifier ('cli', 'test', 'imported', ...)
    """
    global _RUN_CONTEXT
    _RUN_CONTEXT = context

    # Clear existing handlers
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()

    # Setup file handler with rotating backups
    if context not in _CONSOLE_ONLY_CONTEXTS:
        from gains_ledger.utils.constants import LOG_DIR

        try:
            LOG_DIR.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
            log_file = LOG_DIR / f"{timestamp}.{context}.log"

            file_handler = RotatingFileHandler(
                str(log_file),
                maxBytes=5_000_000,  # 5MB
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setLevel(logging.INFO)
            file_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
            file_handler.addFilter(RunContextFilter())
            logger.addHandler(file_handler)
        except OSError as e:
            # Read-only working directory: keep console logging only
            sys.stderr.write(f"Log file unavailable ({e}); logging to console only\n")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.WARNING if context == 'test' else logging.INFO)
    console_handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    console_handler.addFilter(RunContextFilter())
    logger.addHandler(console_handler)


def setup_logging(context: str = 'imported'):
    """
    Initialize logging for the application

    Args:
        context: Execution context identifier
    """
    set_run_context(context)
    return logger


# Initialize with default context
set_run_context(_RUN_CONTEXT)
