"""Canonical transaction validation tests."""

from decimal import Decimal

from conftest import make_tx
from gains_ledger.core.models import TransactionType
from gains_ledger.core.validator import TransactionValidator


class TestValidateTransaction:
    def test_clean_buy_passes(self):
        tx = make_tx('t1', '2024-01-01', TransactionType.BUY, 'BTC', '0.5', '40000', '20000', '10')
        assert TransactionValidator.validate_transaction(tx) == (True, [])
        assert TransactionValidator.first_error(tx) is None

    def test_zero_quantity_rejected(self):
        tx = make_tx('t1', '2024-01-01', TransactionType.BUY, 'BTC', '0')
        ok, errors = TransactionValidator.validate_transaction(tx)
        assert not ok
        assert any('quantity' in e for e in errors)

    def test_lowercase_asset_rejected(self):
        tx = make_tx('t1', '2024-01-01', TransactionType.BUY, 'btc coin', '1')
        assert 'recognizable symbol' in TransactionValidator.first_error(tx)

    def test_negative_fee_and_absurd_price_reported_together(self):
        tx = make_tx('t1', '2024-01-01', TransactionType.SELL, 'ETH', '1', '999999999', '1', '-1')
        ok, errors = TransactionValidator.validate_transaction(tx)
        assert not ok
        assert len(errors) == 2
        assert '; ' in TransactionValidator.first_error(tx)

    def test_negative_convert_leg_rejected(self):
        tx = make_tx('t1', '2024-01-01', TransactionType.CONVERT, 'ETH', '1',
                     convert_from_asset='ETH', convert_from_quantity=Decimal('-1'),
                     convert_to_asset='BTC', convert_to_quantity=Decimal('0.05'))
        assert 'convert_from_quantity' in TransactionValidator.first_error(tx)
