"""
================================================================================
CONSTANTS - System-Wide Configuration Values
================================================================================

Centralized repository for the hardcoded constants used by the importers
and the cost-basis engine. Organized by functional category.

Constant Categories:
    1. File Paths - Directory and file locations
    2. Gain/Loss Calculation - IRS holding-period rule
    3. CSV Import - Header scanning, footer markers, date placeholders
    4. Asset Symbols - Aliases and fiat currencies

Key Constants:

    LONG_TERM_HOLDING_DAYS = 365
        Held for more than this many days -> long-term

    HEADER_SCAN_ROWS = 20
        Upper bound on rows searched for a header line

    FOOTER_MARKERS = ('total', 'subtotal', 'account', '***')
        First-cell markers of summary/disclaimer rows

Usage:
    from gains_ledger.utils.constants import LONG_TERM_HOLDING_DAYS

Note:
    Values in this file are STATIC. For runtime-configurable settings,
    use configs/config.json via gains_ledger.utils.config.

================================================================================
"""

from pathlib import Path

# ==========================================
# FILE PATHS
# ==========================================
BASE_DIR = Path.cwd()
OUTPUT_DIR = BASE_DIR / 'outputs'
LOG_DIR = OUTPUT_DIR / 'logs'
CONFIG_FILE = BASE_DIR / 'configs' / 'config.json'

CAP_GAINS_FILENAME = 'CAP_GAINS.csv'
HOLDINGS_FILENAME = 'HOLDINGS_SNAPSHOT.csv'

# ==========================================
# GAIN/LOSS CALCULATION CONSTANTS
# ==========================================
LONG_TERM_HOLDING_DAYS = 365  # Held longer than this -> long-term
DECIMAL_PRECISION = 8  # Crypto quantity precision (satoshi level)
USD_PRECISION = 2  # US Dollar rounding precision

# ==========================================
# CSV IMPORT
# ==========================================
HEADER_SCAN_ROWS = 20
FOOTER_MARKERS = ('total', 'subtotal', 'account', '***')

# Acquisition-date cells that stand in for a real date
DATE_PLACEHOLDERS = ('various', 'inherited', 'gifted')

# Two-digit years below this pivot are 20xx, otherwise 19xx
TWO_DIGIT_YEAR_PIVOT = 50

DATE_FORMATS = ('MM/DD/YYYY', 'DD/MM/YYYY', 'YYYY-MM-DD', 'ISO')

# ==========================================
# ASSET SYMBOLS
# ==========================================
ASSET_ALIASES = {
    'BITCOIN': 'BTC',
    'ETHEREUM': 'ETH',
    'LITECOIN': 'LTC',
    'RIPPLE': 'XRP',
    'CARDANO': 'ADA',
    'POLKADOT': 'DOT',
    'DOGECOIN': 'DOGE',
    'SOLANA': 'SOL',
    'POLYGON': 'MATIC',
    'AVALANCHE': 'AVAX',
    'CHAINLINK': 'LINK',
    'UNISWAP': 'UNI',
}

FIAT_CURRENCIES = ('USD', 'EUR', 'GBP', 'CAD', 'AUD', 'JPY', 'CHF')

# Quote currencies recognised at the end of exchange trading pairs, longest first
QUOTE_CURRENCIES = (
    'XXBT', 'XETH', 'ZUSD', 'ZEUR', 'ZGBP', 'ZCAD', 'ZJPY', 'USDT', 'USDC',
    'USD', 'EUR', 'GBP', 'CAD', 'JPY', 'DAI', 'UST', 'XBT', 'BTC', 'ETH',
)

# Quotes priced in (approximately) US dollars
USD_QUOTES = ('USD', 'USDT', 'USDC', 'DAI')

# Display precision per asset; anything else uses 6
QUANTITY_DECIMALS = {
    'BTC': 8,
    'ETH': 8,
    'USDT': 2,
    'USDC': 2,
    'DAI': 2,
}
