"""
Tests for the crypto exchange importers: Coinbase, Kraken (ledger and
trades exports) and the caller-mapped generic crypto parser.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from csv_samples import COINBASE_CSV, GENERIC_CRYPTO_CSV, KRAKEN_LEDGER_CSV, KRAKEN_TRADES_CSV
from gains_ledger.core.models import CryptoColumnMapping, DateFormat, Form8949Category, TransactionType
from gains_ledger.processors.exchanges import coinbase, generic_crypto, kraken
from gains_ledger.processors.exchanges.generic_crypto import (
    GenericCryptoParserConfig,
    build_type_map,
    map_transaction_type,
    suggest_crypto_column_mapping,
)


class TestCoinbase:
    """Coinbase transaction history."""

    def test_canonical_transactions(self):
        result = coinbase.parse_transactions(COINBASE_CSV)
        assert result.errors == []
        assert [t.type for t in result.transactions] == [
            TransactionType.BUY, TransactionType.SELL, TransactionType.INCOME, TransactionType.CONVERT,
        ]
        buy = result.transactions[0]
        assert buy.id == 'coinbase-6'
        assert buy.timestamp == datetime(2024, 1, 15, 10, 30)
        assert buy.total_value == Decimal('20000.00')
        assert buy.fees == Decimal('100.00')
        assert buy.price_per_unit == Decimal('40000.00')

    def test_convert_note_gives_both_legs(self):
        convert = coinbase.parse_transactions(COINBASE_CSV).transactions[3]
        assert (convert.convert_from_asset, convert.convert_to_asset) == ('ETH', 'BTC')
        assert convert.convert_from_quantity == Decimal('0.01')
        assert convert.convert_to_quantity == Decimal('0.0005')

    def test_reportables_are_covered(self):
        result = coinbase.parse(COINBASE_CSV)
        sell, convert = result.transactions
        assert sell.proceeds == Decimal('12450.00')
        assert sell.cost_basis == Decimal('10050.00')
        assert sell.category is Form8949Category.A
        assert convert.symbol == 'ETH'
        assert convert.gain_loss == Decimal('2.00')
        assert 'ETH income of $30.00 should be reported as ordinary income' in result.warnings

    def test_missing_required_columns(self):
        result = coinbase.parse_transactions('Timestamp,Transaction Type,Notes\n2024-01-01,Buy,x\n')
        assert result.transactions == []
        assert {e.column for e in result.errors} == {'asset', 'quantity'}

    def test_zero_quantity_row_is_skipped_with_warning(self):
        content = ('Timestamp,Transaction Type,Asset,Quantity Transacted\n'
                   '2024-01-01,Buy,BTC,0\n2024-01-02,Buy,BTC,1\n')
        result = coinbase.parse_transactions(content)
        assert len(result.transactions) == 1
        assert result.warnings == ['Row 2: Zero quantity for BTC, skipping']

    def test_unknown_type_maps_to_other(self):
        assert coinbase.map_transaction_type('Learning Reward') is TransactionType.INCOME
        assert coinbase.map_transaction_type('Mystery') is TransactionType.OTHER


class TestKrakenLedger:
    """Kraken ledger export."""

    def test_trade_legs_and_fiat(self):
        result = kraken.parse_transactions(KRAKEN_LEDGER_CSV)
        assert [(t.id, t.type, t.asset) for t in result.transactions] == [
            ('L2', TransactionType.BUY, 'BTC'),
            ('L4', TransactionType.INCOME, 'DOT'),
        ]

    def test_no_prices_warning(self):
        result = kraken.parse_transactions(KRAKEN_LEDGER_CSV)
        assert result.warnings[-1] == kraken.NO_PRICES_WARNING
        assert all(t.total_value == 0 for t in result.transactions)

    def test_reportables_are_noncovered(self):
        content = KRAKEN_LEDGER_CSV + 'L5,R5,2024-03-01 09:00:00,trade,,currency,XXBT,-0.0100000000,0.0000,0.0100000000\n'
        row, = kraken.parse(content).transactions
        assert row.is_covered is False
        assert row.quantity == Decimal('0.0100000000')


class TestKrakenTrades:
    """Kraken trades export."""

    def test_pairs_and_sides(self):
        result = kraken.parse_transactions(KRAKEN_TRADES_CSV)
        assert [(t.asset, t.type) for t in result.transactions] == [
            ('BTC', TransactionType.BUY),
            ('ETH', TransactionType.BUY),
            ('ETH', TransactionType.SELL),
            ('ETH', TransactionType.SELL),
        ]

    def test_non_usd_quote_warns(self):
        result = kraken.parse_transactions(KRAKEN_TRADES_CSV)
        assert result.warnings == ['Row 5: ETHXBT is quoted in BTC; amounts are not in USD']

    def test_sell_gain(self):
        result = kraken.parse(KRAKEN_TRADES_CSV)
        first = result.transactions[0]
        assert first.proceeds == Decimal('1747.2')
        assert first.cost_basis == Decimal('1502.4')

    @pytest.mark.parametrize('pair, expected', [
        ('XXBTZUSD', ('XXBT', 'ZUSD')),
        ('ETH/USDT', ('ETH', 'USDT')),
        ('SOLUSD', ('SOL', 'USD')),
        ('ADAEUR', ('ADA', 'EUR')),
    ])
    def test_split_pair(self, pair, expected):
        assert kraken.split_pair(pair) == expected

    def test_asset_codes(self):
        assert kraken.normalize_kraken_asset('XXBT') == 'BTC'
        assert kraken.normalize_kraken_asset('ZUSD') == 'USD'
        assert kraken.normalize_kraken_asset('DOT.S') == 'DOT'
        assert kraken.normalize_kraken_asset('XXDG') == 'DOGE'


class TestGenericCrypto:
    """Caller-mapped exchange history."""

    MAPPING = CryptoColumnMapping(timestamp=0, transaction_type=1, asset=2, quantity=3, price_per_unit=4,
                                  fees=5, convert_to_asset=6, convert_to_quantity=7)

    def config(self, **overrides):
        return GenericCryptoParserConfig(column_mapping=self.MAPPING, exchange_name='Acme', **overrides)

    def test_type_labels(self):
        result = generic_crypto.parse_transactions(GENERIC_CRYPTO_CSV, self.config())
        assert [t.type for t in result.transactions] == [
            TransactionType.BUY, TransactionType.SELL, TransactionType.CONVERT, TransactionType.OTHER,
        ]
        assert result.transactions[0].total_value == Decimal('1000')

    def test_reportables(self):
        result = generic_crypto.parse(GENERIC_CRYPTO_CSV, self.config())
        sold, swapped = result.transactions
        assert sold.cost_basis == Decimal('402')
        assert sold.proceeds == Decimal('598')
        assert sold.description == 'SOL - Acme'
        assert swapped.gain_loss == Decimal('119')
        assert "generic-5: SOL transaction of type 'other' ignored" in result.warnings

    def test_custom_type_map(self):
        config = self.config(transaction_type_map={'bridge': TransactionType.SEND})
        result = generic_crypto.parse_transactions(GENERIC_CRYPTO_CSV, config)
        assert result.transactions[3].type is TransactionType.SEND

    def test_longest_label_wins(self):
        type_map = build_type_map()
        assert map_transaction_type('Gift Received', type_map) is TransactionType.GIFT_RECEIVED
        assert map_transaction_type('Staking Reward', type_map) is TransactionType.INCOME
        assert map_transaction_type('', type_map) is TransactionType.OTHER

    def test_incomplete_mapping(self):
        result = generic_crypto.parse_transactions(GENERIC_CRYPTO_CSV, GenericCryptoParserConfig())
        error, = result.errors
        assert error.message == ('Column mapping is incomplete; required fields not mapped: '
                                 'Date/Time, Transaction Type, Asset/Symbol, Quantity')

    def test_day_first_dates(self):
        result = generic_crypto.parse_transactions(GENERIC_CRYPTO_CSV, self.config(date_format=DateFormat.DMY))
        assert result.transactions[0].timestamp == datetime(2024, 5, 1)

    def test_suggested_mapping(self):
        headers = ['Date', 'Action', 'Coin', 'Amount', 'Price', 'Fee', 'To Coin', 'To Amount']
        mapping = suggest_crypto_column_mapping(headers)
        assert (mapping.timestamp, mapping.transaction_type, mapping.asset, mapping.quantity) == (0, 1, 2, 3)
        assert (mapping.price_per_unit, mapping.fees) == (4, 5)
        assert mapping.total_value is None
