"""
Charles Schwab realized gain/loss and 1099-B exports.

Typical columns: Symbol, Description, Date Acquired, Date Sold, Quantity,
Proceeds, Cost Basis, Gain/Loss, Term, Covered or Noncovered, Wash Sale Loss
Disallowed, Adjustment Code, Adjustment Amount. Disclaimer rows may precede
the header.
"""

import re

from gains_ledger.core.models import ParseResult
from gains_ledger.processors.brokers.gain_loss import BrokerProfile, parse_gain_loss_report, required_columns_present

SCHWAB_COLUMNS = {
    'symbol': ('symbol', 'security', 'ticker'),
    'description': ('description', 'security description', 'name', 'security name'),
    'date_acquired': ('date acquired', 'acquired date', 'acquisition date', 'open date'),
    'date_sold': ('date sold', 'sold date', 'sale date', 'close date', 'disposal date'),
    'quantity': ('quantity', 'qty', 'shares', 'units', 'number of shares'),
    'proceeds': ('proceeds', 'sales proceeds', 'sale price', 'gross proceeds', 'amount'),
    'cost_basis': ('cost basis', 'cost', 'basis', 'adjusted cost basis', 'adjusted basis', 'original cost'),
    'gain_loss': ('gain/loss', 'gain or loss', 'gain (loss)', 'realized gain/loss', 'gain/loss amount',
                  'short-term gain or loss', 'long-term gain or loss'),
    'wash_sale_disallowed': ('wash sale loss disallowed', 'wash sale', 'wash sale disallowed',
                             'wash sale adjustment', 'disallowed loss', 'wash sale loss'),
    'term': ('term', 'short-term or long-term', 'holding period', 'type'),
    'covered': ('covered', 'covered or noncovered', 'reporting category', 'covered/noncovered', 'box'),
    'adjustment_code': ('adjustment code', 'code', 'adj code'),
    'adjustment_amount': ('adjustment amount', 'adjustment', 'adj amount'),
}

PROFILE = BrokerProfile(
    name='Schwab',
    columns=SCHWAB_COLUMNS,
    identity_tokens=('symbol', 'security'),
    date_tokens=('date acquired', 'date sold', 'acquired date', 'sold date'),
    header_scan_rows=15,
    placeholder_years=1,
    symbol_patterns=(re.compile(r'\(([A-Z]+)\)'),),  # "APPLE INC (AAPL)"
    symbol_max_length=20,
)


def has_markers(preamble: str) -> bool:
    """Source-name markers in the rows up to and including the header."""
    return 'schwab' in preamble.lower()


def has_columns(header: str) -> bool:
    if 'wash sale loss disallowed' in header:
        return True
    if 'covered or noncovered' in header and 'date acquired' in header:
        return True
    return required_columns_present(header)


def can_parse(preamble: str, header: str) -> bool:
    return has_markers(preamble) or has_columns(header)


def parse(content: str) -> ParseResult:
    return parse_gain_loss_report(content, PROFILE)
