"""Holding-period and Form 8949 category rules."""

from datetime import datetime, timedelta

from gains_ledger.core.models import Form8949Category
from gains_ledger.utils.constants import LONG_TERM_HOLDING_DAYS

LONG_TERM_THRESHOLD = timedelta(days=LONG_TERM_HOLDING_DAYS)


def is_short_term(acquired: datetime, sold: datetime) -> bool:
    """Short-term when held for at most LONG_TERM_HOLDING_DAYS (fixed day count, not calendar year)."""
    return (sold - acquired) <= LONG_TERM_THRESHOLD


def get_form8949_category(acquired: datetime, sold: datetime, basis_reported_to_irs: bool) -> Form8949Category:
    """
    Form 8949 box for a disposal.

    Only A/B/D/E are derivable here; C and F ("no 1099-B received") must be
    chosen by the caller.
    """
    if is_short_term(acquired, sold):
        return Form8949Category.A if basis_reported_to_irs else Form8949Category.B
    return Form8949Category.D if basis_reported_to_irs else Form8949Category.E
