"""
Tests for the broker gain/loss parsers (Schwab, Fidelity, TD Ameritrade)
and the caller-mapped generic parser.
"""

from datetime import datetime
from decimal import Decimal

from csv_samples import FIDELITY_CSV, SCHWAB_CSV, TD_CSV
from gains_ledger.core.models import ColumnMapping, DateFormat, Form8949Category
from gains_ledger.processors.brokers import fidelity, generic, schwab, td_ameritrade
from gains_ledger.processors.brokers.generic import GenericParserConfig, suggest_column_mapping, validate_mapping


class TestSchwab:
    """Schwab realized gain/loss export."""

    def test_rows_and_footer(self):
        result = schwab.parse(SCHWAB_CSV)
        assert result.errors == []
        assert [r.symbol for r in result.transactions] == ['AAPL', 'MSFT', 'TSLA']

    def test_term_and_covered_columns(self):
        aapl, msft, tsla = schwab.parse(SCHWAB_CSV).transactions
        assert aapl.category is Form8949Category.D
        assert msft.category is Form8949Category.B
        assert tsla.category is Form8949Category.A

    def test_amounts(self):
        aapl, _, tsla = schwab.parse(SCHWAB_CSV).transactions
        assert aapl.proceeds == Decimal('1750.00')
        assert aapl.cost_basis == Decimal('1500.00')
        assert aapl.quantity == Decimal('10')
        assert aapl.date_acquired == datetime(2023, 1, 15)
        assert tsla.gain_loss == Decimal('-200.00')

    def test_wash_sale_surfaces_as_warning(self):
        result = schwab.parse(SCHWAB_CSV)
        tsla = result.transactions[2]
        assert tsla.wash_sale_disallowed == Decimal('50.00')
        assert result.warnings == ['Row 7: Wash sale disallowed amount of $50.00 for TSLA']

    def test_missing_columns_are_fatal(self):
        result = schwab.parse('Symbol,Date Sold,Proceeds\nAAPL,03/20/2024,100\n')
        assert result.transactions == []
        assert {e.column for e in result.errors} == {'date_acquired', 'cost_basis'}
        assert all(e.row == 1 for e in result.errors)

    def test_one_bad_row_is_isolated(self):
        rows = [f"SYM{i},{i},01/02/2024,02/02/2024,100,90" for i in range(9)]
        rows.insert(4, "BAD,1,01/02/2024,02/02/2024,oops,90")
        content = "Symbol,Quantity,Date Acquired,Date Sold,Proceeds,Cost Basis\n" + "\n".join(rows)
        result = schwab.parse(content)
        assert len(result.transactions) == 9
        error, = result.errors
        assert error.row == 6
        assert error.column == 'proceeds'

    def test_empty_file(self):
        result = schwab.parse('Symbol,Date Acquired\n')
        assert result.errors[0].message == 'CSV file is empty or has no data rows'

    def test_parse_twice_is_identical(self):
        assert schwab.parse(SCHWAB_CSV) == schwab.parse(SCHWAB_CSV)


class TestFidelity:
    """Fidelity export with account preamble and disclaimer footer."""

    def test_symbols_from_descriptions(self):
        result = fidelity.parse(FIDELITY_CSV)
        assert [r.symbol for r in result.transactions] == ['AAPL', 'AAPL']
        assert result.errors == []

    def test_various_date_estimated_two_years_back(self):
        result = fidelity.parse(FIDELITY_CSV)
        various = result.transactions[0]
        assert various.date_acquired == datetime(2022, 3, 20)
        assert various.is_short_term is False
        assert result.warnings == [
            'Row 5: "Various" date acquired - using sale date minus 2 years as estimate for AAPL'
        ]

    def test_reported_gain_is_kept(self):
        second = fidelity.parse(FIDELITY_CSV).transactions[1]
        assert second.gain_loss == Decimal('20.00')
        assert second.is_short_term is True

    def test_adjustment_code_and_amount_columns_stay_apart(self):
        content = (
            "Fidelity Investments\n"
            "Description,Quantity,Date Acquired,Date Sold,Proceeds,Cost Basis,Gain/Loss,"
            "Adjustment Code,Adjustment Amount\n"
            "AAPL - APPLE INC,10,01/02/2023,03/20/2024,1750.00,1500.00,250.00,,\n"
            "MSFT - MICROSOFT CORP,5,06/01/2024,09/15/2024,900.00,1000.00,-100.00,W,50.00\n"
        )
        result = fidelity.parse(content)
        assert result.errors == []
        aapl, msft = result.transactions
        assert aapl.adjustment_code is None
        assert msft.adjustment_code == 'W'
        assert msft.adjustment_amount == Decimal('50.00')
        assert result.warnings == ['Row 4: Adjustment code "W" for MSFT with amount $50.00']


class TestTDAmeritrade:
    """TD Ameritrade export."""

    def test_row(self):
        row, = td_ameritrade.parse(TD_CSV).transactions
        assert row.symbol == 'NVDA'
        assert row.gain_loss == Decimal('1400.00')
        assert row.category is Form8949Category.D

    def test_description_does_not_stand_in_for_symbol(self):
        result = td_ameritrade.parse('Description,Date Acquired,Date Sold,Proceeds,Cost Basis\nX,1/1/24,2/1/24,1,1\n')
        assert result.errors[0].message == 'Could not find Symbol column'


class TestGeneric:
    """Caller-mapped gain/loss import."""

    CONTENT = (
        "Ticker,Bought,Sold,Gross,Basis,Shares\n"
        "aapl,15/01/2023,20/03/2024,1750,1500,10\n"
        "msft,01/06/2024,15/09/2024,2100,2000,\n"
    )

    def mapping(self):
        return ColumnMapping(symbol=0, date_acquired=1, date_sold=2, proceeds=3, cost_basis=4, quantity=5)

    def test_mapped_rows(self):
        config = GenericParserConfig(column_mapping=self.mapping(), date_format=DateFormat.DMY)
        result = generic.parse(self.CONTENT, config)
        aapl, msft = result.transactions
        assert aapl.symbol == 'AAPL'
        assert aapl.date_acquired == datetime(2023, 1, 15)
        assert aapl.gain_loss == Decimal('250')
        assert aapl.is_short_term is False
        assert msft.quantity == Decimal('1')
        assert msft.is_covered is True

    def test_empty_mapping_is_one_fatal_error(self):
        result = generic.parse(self.CONTENT)
        error, = result.errors
        assert result.transactions == []
        assert error.message == (
            'Column mapping is incomplete; required fields not mapped: '
            'Symbol/Ticker, Date Acquired, Date Sold, Proceeds, Cost Basis'
        )

    def test_validate_mapping_lists_missing_labels(self):
        assert validate_mapping(ColumnMapping(symbol=0, date_sold=2, proceeds=3)) == ['Date Acquired', 'Cost Basis']

    def test_header_only_file(self):
        config = GenericParserConfig(column_mapping=self.mapping())
        result = generic.parse("Ticker,Bought,Sold,Gross,Basis,Shares\n", config)
        assert result.errors[0].message == 'CSV file has no data rows after skipping headers'

    def test_suggested_mapping(self):
        headers = ['Symbol', 'Description', 'Date Acquired', 'Date Sold', 'Proceeds', 'Cost Basis', 'Gain/Loss']
        mapping = suggest_column_mapping(headers)
        assert (mapping.symbol, mapping.description, mapping.date_acquired, mapping.date_sold) == (0, 1, 2, 3)
        assert (mapping.proceeds, mapping.cost_basis, mapping.gain_loss) == (4, 5, 6)
        assert mapping.wash_sale_disallowed is None
