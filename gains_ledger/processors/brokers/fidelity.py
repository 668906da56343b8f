"""
Fidelity realized gain/loss and 1099-B exports.

Fidelity files usually open with account information and close with a
disclaimer block; descriptions look like "AAPL - APPLE INC" or
"APPLE INC (AAPL)". Acquisition dates may read Various, Inherited or Gifted.
"""

import re

from gains_ledger.core.models import ParseResult
from gains_ledger.processors.brokers.gain_loss import BrokerProfile, parse_gain_loss_report, required_columns_present

FIDELITY_COLUMNS = {
    'symbol': ('symbol', 'ticker', 'security identifier'),
    'description': ('description', 'security description', 'security name', 'name', 'investment'),
    'date_acquired': ('date acquired', 'acquired', 'acquisition date', 'purchase date', 'open date'),
    'date_sold': ('date sold', 'sold', 'sale date', 'close date', 'disposal date'),
    'quantity': ('quantity', 'qty', 'shares', 'units', 'share quantity'),
    'proceeds': ('proceeds', 'sales proceeds', 'sale proceeds', 'gross proceeds', 'total proceeds'),
    'cost_basis': ('cost basis', 'cost', 'basis', 'cost per share', 'adjusted cost basis', 'total cost'),
    'gain_loss': ('gain/loss', 'gain or loss', 'gain (loss)', 'realized gain/loss', 'short-term gain/loss',
                  'long-term gain/loss', 'total gain/loss'),
    'wash_sale_disallowed': ('wash sale loss disallowed', 'wash sale', 'wash sale adjustment',
                             'disallowed wash sale loss'),
    'term': ('term', 'short term or long term', 'holding period', 'st/lt'),
    'covered': ('type', 'covered', 'covered/noncovered', '1099-b type', 'box', 'reporting category'),
    'adjustment_code': ('code', 'adjustment code', 'adj code'),
    'adjustment_amount': ('adjustment', 'adjustment amount', 'adj amount'),
}

PROFILE = BrokerProfile(
    name='Fidelity',
    columns=FIDELITY_COLUMNS,
    identity_tokens=('symbol', 'description', 'investment'),
    date_tokens=('acquired', 'sold'),
    header_scan_rows=20,
    placeholder_years=2,
    symbol_patterns=(
        re.compile(r'^([A-Z0-9.]+)\s*-'),   # "AAPL - APPLE INC"
        re.compile(r'\(([A-Z0-9.]+)\)'),    # "APPLE INC (AAPL)"
    ),
    symbol_max_length=15,
)


def has_markers(preamble: str) -> bool:
    """Source-name markers in the rows up to and including the header."""
    return 'fidelity' in preamble.lower()


def has_columns(header: str) -> bool:
    if '1099-b' in header:
        return True
    if 'investment' in header and 'date acquired' in header:
        return True
    return required_columns_present(header)


def can_parse(preamble: str, header: str) -> bool:
    return has_markers(preamble) or has_columns(header)


def parse(content: str) -> ParseResult:
    return parse_gain_loss_report(content, PROFILE)
