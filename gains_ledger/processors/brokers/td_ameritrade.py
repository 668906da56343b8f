"""TD Ameritrade realized gain/loss exports."""

from gains_ledger.core.models import ParseResult
from gains_ledger.processors.brokers.gain_loss import BrokerProfile, parse_gain_loss_report

TD_COLUMNS = {
    'symbol': ('symbol', 'ticker', 'security symbol'),
    'description': ('description', 'security description', 'security name', 'name'),
    'date_acquired': ('date acquired', 'acquisition date', 'open date', 'purchase date', 'acquired'),
    'date_sold': ('date sold', 'sale date', 'close date', 'sold', 'disposal date'),
    'quantity': ('quantity', 'qty', 'shares', 'units'),
    'proceeds': ('proceeds', 'sales proceeds', 'sale proceeds', 'gross proceeds'),
    'cost_basis': ('cost basis', 'cost', 'basis', 'adjusted cost basis', 'adj cost basis'),
    'gain_loss': ('gain/loss', 'gain or loss', 'gain loss', 'gain (loss)', 'realized gain/loss', 'total gain/loss'),
    'wash_sale_disallowed': ('wash sale loss disallowed', 'wash sale', 'wash sale adjustment', 'disallowed loss'),
    'term': ('term', 'holding period', 'short term or long term'),
    'covered': ('covered', 'covered/noncovered', 'covered indicator', 'reporting category'),
}

PROFILE = BrokerProfile(
    name='TD Ameritrade',
    columns=TD_COLUMNS,
    identity_tokens=('symbol', 'security'),
    date_tokens=('date', 'acquired'),
    header_scan_rows=10,
    placeholder_years=1,
    description_identifies=False,
)


def has_markers(preamble: str) -> bool:
    """Source-name markers in the rows up to and including the header."""
    return 'ameritrade' in preamble.lower()


def has_columns(header: str) -> bool:
    return (
        ('date acquired' in header or 'acquisition' in header)
        and ('date sold' in header or 'sale date' in header)
        and ('proceeds' in header or 'sales' in header)
        and ('cost' in header or 'basis' in header)
    )


def can_parse(preamble: str, header: str) -> bool:
    return has_markers(preamble) or has_columns(header)


def parse(content: str) -> ParseResult:
    return parse_gain_loss_report(content, PROFILE)
