"""
Tests for source detection, the parser registry and the import entry points.
"""

from decimal import Decimal

import pytest

from conftest import make_lot
from csv_samples import (
    COINBASE_CSV,
    FIDELITY_CSV,
    GENERIC_CRYPTO_CSV,
    KRAKEN_LEDGER_CSV,
    KRAKEN_TRADES_CSV,
    SCHWAB_CSV,
    TD_CSV,
    UNKNOWN_CSV,
)
from gains_ledger.core.ledger import Ledger
from gains_ledger.core.models import ColumnMapping, CryptoColumnMapping
from gains_ledger.processors.brokers import generic, schwab
from gains_ledger.processors.brokers.generic import GenericParserConfig
from gains_ledger.processors.exchanges import coinbase, generic_crypto, kraken
from gains_ledger.processors.exchanges.generic_crypto import GenericCryptoParserConfig
from gains_ledger.processors.dispatcher import (
    CRYPTO,
    DETECTION_ORDER,
    EQUITY,
    PARSERS,
    ImportOptions,
    SourceFormat,
    detect_source,
    get_headers,
    get_preview_rows,
    get_source_name,
    import_crypto,
    is_crypto_source,
    parse_brokerage_csv,
    parse_crypto_transactions,
    resolve_source,
    supported_sources,
)

CRYPTO_MAPPING = CryptoColumnMapping(timestamp=0, transaction_type=1, asset=2, quantity=3, price_per_unit=4,
                                     fees=5, convert_to_asset=6, convert_to_quantity=7)

COIN_STOCK_CSV = (
    "Symbol,Description,Quantity,Date Acquired,Date Sold,Proceeds,Cost Basis,Gain/Loss\n"
    "COIN,COINBASE GLOBAL INC CL A,10,01/15/2024,06/20/2024,\"2,250.00\",\"1,500.00\",750.00\n"
)

OVERSIZED_CSV = 'Symbol,Date Acquired,Date Sold,Proceeds,Cost Basis\nAAPL,"' + 'x' * 200000 + '",2/1/24,1,1\n'


class TestRegistry:
    """Every source has exactly one usable registry entry."""

    def test_registry_covers_every_source(self):
        assert set(PARSERS) == set(SourceFormat)

    @pytest.mark.parametrize('source', list(SourceFormat))
    def test_entry_can_parse(self, source):
        entry = PARSERS[source]
        assert entry.kind in (EQUITY, CRYPTO)
        if entry.kind == EQUITY:
            assert entry.parse is not None
        else:
            assert entry.parse_transactions is not None

    def test_detection_order_only_holds_detectable_sources(self):
        assert all(PARSERS[s].detectable for s in DETECTION_ORDER)
        assert SourceFormat.GENERIC not in DETECTION_ORDER

    def test_from_value(self):
        assert SourceFormat.from_value('TD-Ameritrade') is SourceFormat.TD_AMERITRADE
        assert SourceFormat.from_value(SourceFormat.KRAKEN) is SourceFormat.KRAKEN
        with pytest.raises(ValueError, match='Unknown source'):
            SourceFormat.from_value('robinhood')

    def test_supported_sources(self):
        listed = {s['id']: s for s in supported_sources()}
        assert listed['coinbase'] == {'id': 'coinbase', 'name': 'Coinbase', 'kind': 'crypto'}
        assert len(listed) == len(SourceFormat)
        assert get_source_name('schwab') == 'Charles Schwab'
        assert is_crypto_source(SourceFormat.GENERIC_CRYPTO)
        assert not is_crypto_source('fidelity')


class TestDetection:
    """Markers first, then header columns."""

    @pytest.mark.parametrize('content, expected', [
        (SCHWAB_CSV, SourceFormat.SCHWAB),
        (FIDELITY_CSV, SourceFormat.FIDELITY),
        (TD_CSV, SourceFormat.TD_AMERITRADE),
        (COINBASE_CSV, SourceFormat.COINBASE),
        (KRAKEN_LEDGER_CSV, SourceFormat.KRAKEN),
        (KRAKEN_TRADES_CSV, SourceFormat.KRAKEN),
    ])
    def test_known_exports(self, content, expected):
        assert detect_source(content) is expected

    def test_header_columns_without_markers(self):
        content = 'Timestamp,Transaction Type,Asset,Quantity\n2024-01-01,Buy,BTC,1\n'
        assert detect_source(content) is SourceFormat.COINBASE

    def test_unknown_content(self):
        assert detect_source(UNKNOWN_CSV) is None
        assert detect_source(GENERIC_CRYPTO_CSV) is None
        assert detect_source('') is None

    def test_resolve_source_fallbacks(self):
        assert resolve_source(UNKNOWN_CSV) is SourceFormat.GENERIC
        assert resolve_source(UNKNOWN_CSV, crypto_mapping=CRYPTO_MAPPING) is SourceFormat.GENERIC_CRYPTO
        assert resolve_source(SCHWAB_CSV, source='fidelity') is SourceFormat.FIDELITY

    def test_company_name_in_data_rows_is_not_a_marker(self):
        detected = detect_source(COIN_STOCK_CSV)
        assert detected is not None
        assert not is_crypto_source(detected)
        result = parse_brokerage_csv(COIN_STOCK_CSV)
        assert result.errors == []
        assert [r.symbol for r in result.transactions] == ['COIN']

    def test_broker_preamble_wins_over_coin_row(self):
        content = 'Charles Schwab & Co. Inc.\n' + COIN_STOCK_CSV
        assert detect_source(content) is SourceFormat.SCHWAB

    def test_marker_in_preamble_still_detects(self):
        content = 'Coinbase account statement\nDate,Type,Coin,Units\n2024-01-01,Buy,BTC,1\n'
        assert detect_source(content) is SourceFormat.COINBASE

    def test_source_module_can_parse(self):
        assert coinbase.can_parse('coinbase transactions', 'date type')
        assert not coinbase.can_parse('symbol,description', 'symbol description')
        assert schwab.can_parse('', 'symbol date sold wash sale loss disallowed')
        assert kraken.can_parse('txid,refid,time', 'txid refid time')

    def test_scan_rows_bound_header_search(self):
        content = 'note\n' * 5 + 'Timestamp,Transaction Type,Asset,Quantity\n2024-01-01,Buy,BTC,1\n'
        assert detect_source(content) is SourceFormat.COINBASE
        assert detect_source(content, scan_rows=3) is None
        config = {'import': {'header_scan_rows': 3}}
        assert ImportOptions.from_config(config).header_scan_rows == 3
        error, = parse_brokerage_csv(content, config=config).errors
        assert 'Column mapping is incomplete' in error.message

    def test_unreadable_content_is_not_detected(self):
        assert detect_source(OVERSIZED_CSV) is None
        assert get_headers(OVERSIZED_CSV) == []
        assert get_preview_rows(OVERSIZED_CSV) == []


class TestUnreadableContent:
    """Content the CSV reader rejects becomes one fatal ParseError."""

    @pytest.mark.parametrize('parse', [
        schwab.parse,
        coinbase.parse_transactions,
        kraken.parse_transactions,
        lambda content: generic.parse(content, GenericParserConfig(
            column_mapping=ColumnMapping(symbol=0, date_acquired=1, date_sold=2, proceeds=3, cost_basis=4))),
        lambda content: generic_crypto.parse_transactions(content, GenericCryptoParserConfig(
            column_mapping=CRYPTO_MAPPING)),
    ])
    def test_parsers_return_fatal_result(self, parse):
        result = parse(OVERSIZED_CSV)
        assert result.transactions == []
        error, = result.errors
        assert error.row == 2
        assert 'field larger than field limit' in error.message

    def test_dispatcher_with_explicit_source(self):
        result = parse_brokerage_csv(OVERSIZED_CSV, source='td_ameritrade')
        assert not result.ok
        assert result.transactions == []


class TestImport:
    """End-to-end imports through the dispatcher."""

    def test_unknown_content_falls_back_to_generic(self):
        result = parse_brokerage_csv(UNKNOWN_CSV)
        error, = result.errors
        assert result.transactions == []
        assert 'Symbol/Ticker, Date Acquired, Date Sold, Proceeds, Cost Basis' in error.message

    def test_generic_with_mapping(self):
        mapping = ColumnMapping(symbol=0, date_acquired=1, date_sold=2, proceeds=3, cost_basis=4)
        row, = parse_brokerage_csv(UNKNOWN_CSV, column_mapping=mapping).transactions
        assert row.symbol == 'AAPL'
        assert row.gain_loss == Decimal('10')

    def test_broker_export(self):
        result = parse_brokerage_csv(SCHWAB_CSV)
        assert len(result.transactions) == 3

    def test_crypto_export_through_engine(self):
        result = parse_brokerage_csv(COINBASE_CSV, method='hifo')
        assert len(result.transactions) == 2
        assert all(r.is_covered for r in result.transactions)

    def test_generic_crypto_by_mapping(self):
        result = parse_brokerage_csv(GENERIC_CRYPTO_CSV, crypto_mapping=CRYPTO_MAPPING)
        assert len(result.transactions) == 2
        assert result.transactions[0].description == 'SOL - Unknown Exchange'

    def test_config_supplies_defaults(self):
        config = {'accounting': {'method': 'LIFO'}, 'import': {'exchange_name': 'Acme'}}
        result = parse_brokerage_csv(GENERIC_CRYPTO_CSV, crypto_mapping=CRYPTO_MAPPING, config=config)
        assert result.transactions[0].description == 'SOL - Acme'

    def test_unknown_method_raises(self):
        with pytest.raises(ValueError):
            parse_brokerage_csv(COINBASE_CSV, method='average')

    def test_parse_crypto_transactions(self):
        result = parse_crypto_transactions(KRAKEN_TRADES_CSV)
        assert len(result.transactions) == 4

    def test_parse_crypto_transactions_rejects_equity_source(self):
        with pytest.raises(ValueError, match='not a crypto source'):
            parse_crypto_transactions(SCHWAB_CSV)

    def test_import_crypto_returns_closing_ledger(self):
        run = import_crypto(COINBASE_CSV)
        assert run.source is SourceFormat.COINBASE
        assert len(run.transactions) == 4
        assert run.ledger.total_quantity('BTC') == Decimal('0.2505')
        assert 'ETH' not in run.ledger

    def test_import_crypto_with_opening_ledger(self):
        opening = Ledger().add_lot(make_lot('SOL', '10', '50', '2023-01-01', 'carried'))
        run = import_crypto(GENERIC_CRYPTO_CSV, crypto_mapping=CRYPTO_MAPPING, ledger=opening)
        sold = run.result.transactions[0]
        assert sold.cost_basis == Decimal('200')
        assert sold.is_short_term is False


class TestOptions:
    """ImportOptions from configuration."""

    def test_defaults(self):
        options = ImportOptions.from_config()
        assert options.method.value == 'fifo'
        assert options.include_fees_in_basis is True

    def test_overrides_win_and_none_is_ignored(self):
        options = ImportOptions.from_config({'accounting': {'method': 'HIFO'}}, method=None, date_format='ISO')
        assert options.method.value == 'hifo'
        assert options.date_format.value == 'ISO'


class TestColumnSupport:
    """Header and preview helpers."""

    def test_headers_skip_leading_blank_lines(self):
        assert get_headers('\n\nA,B\n1,2\n') == ['A', 'B']
        assert get_headers('') == []

    def test_preview_rows(self):
        content = 'A,B\n' + '\n'.join(f'{i},x' for i in range(10))
        preview = get_preview_rows(content, limit=3)
        assert preview == [['A', 'B'], ['0', 'x'], ['1', 'x'], ['2', 'x']]
