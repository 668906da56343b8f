"""
================================================================================
PYTEST CONFIGURATION
================================================================================

Shared fixtures for the test suite.

Global Fixtures:
    - test_run_context: Console-only logging for every test (no log files)
    - dt: Naive UTC datetime factory
    - buy / sell: CanonicalTransaction factories for engine tests

================================================================================
"""
import sys
from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest

# Ensure project root is on sys.path when the package is not installed
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from gains_ledger.core.models import CanonicalTransaction, Lot, TransactionType  # noqa: E402
from gains_ledger.utils.logger import set_run_context  # noqa: E402


@pytest.fixture(autouse=True)
def test_run_context():
    set_run_context('test')
    yield


@pytest.fixture
def dt():
    def _dt(text):
        return datetime.strptime(text, '%Y-%m-%d')
    return _dt


def make_tx(tx_id, when, kind, asset, quantity, price='0', total='0', fees='0', **extra):
    return CanonicalTransaction(
        id=tx_id,
        timestamp=datetime.strptime(when, '%Y-%m-%d'),
        type=kind,
        asset=asset,
        quantity=Decimal(quantity),
        price_per_unit=Decimal(price),
        total_value=Decimal(total),
        fees=Decimal(fees),
        exchange='Test Exchange',
        **extra,
    )


def make_lot(asset, quantity, per_unit, when, origin=None):
    return Lot.create(asset, Decimal(quantity), Decimal(per_unit),
                      datetime.strptime(when, '%Y-%m-%d'), 'Test Exchange', origin)


@pytest.fixture
def buy():
    def _buy(tx_id, when, asset, quantity, price, fees='0'):
        total = str(Decimal(price) * Decimal(quantity))
        return make_tx(tx_id, when, TransactionType.BUY, asset, quantity, price, total, fees)
    return _buy


@pytest.fixture
def sell():
    def _sell(tx_id, when, asset, quantity, price, fees='0'):
        total = str(Decimal(price) * Decimal(quantity))
        return make_tx(tx_id, when, TransactionType.SELL, asset, quantity, price, total, fees)
    return _sell


@pytest.fixture
def two_btc_lots():
    """1 BTC @ $10,000 on 2024-01-01 and 1 BTC @ $30,000 on 2024-06-01."""
    return (
        make_lot('BTC', '1', '10000', '2024-01-01', 'lot-a'),
        make_lot('BTC', '1', '30000', '2024-06-01', 'lot-b'),
    )
