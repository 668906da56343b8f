"""
Tests for lot selection and disposal allocation.
Covers FIFO/LIFO/HIFO/SPEC_ID ordering, partial lots and overselling.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from conftest import make_lot
from gains_ledger.core.classifier import is_short_term
from gains_ledger.core.ledger import SPEC_ID_FALLBACK_WARNING, Ledger, allocate_disposal, dispose, sort_lots
from gains_ledger.core.models import AllocationErrorKind, CostBasisMethod


class TestMethodOrdering:
    """Which lot a 1 BTC sale on 2025-02-01 consumes."""

    @pytest.mark.parametrize('method, basis', [
        (CostBasisMethod.FIFO, Decimal('10000')),
        (CostBasisMethod.LIFO, Decimal('30000')),
        (CostBasisMethod.HIFO, Decimal('30000')),
    ])
    def test_single_unit_sale(self, two_btc_lots, method, basis):
        result = allocate_disposal(two_btc_lots, Decimal('1'), method)

        assert result.ok
        assert len(result.lots_used) == 1
        usage = result.lots_used[0]
        assert usage.cost_basis == basis
        proceeds = Decimal('40000')
        assert proceeds - usage.cost_basis == proceeds - basis

    def test_fifo_lot_is_long_term(self, two_btc_lots):
        usage = allocate_disposal(two_btc_lots, Decimal('1'), CostBasisMethod.FIFO).lots_used[0]
        assert not is_short_term(usage.acquired_date, datetime(2025, 2, 1))

    def test_lifo_lot_is_short_term(self, two_btc_lots):
        usage = allocate_disposal(two_btc_lots, Decimal('1'), CostBasisMethod.LIFO).lots_used[0]
        assert is_short_term(usage.acquired_date, datetime(2025, 2, 1))

    def test_hifo_ties_break_by_date(self):
        lots = (
            make_lot('ETH', '1', '2000', '2024-05-01', 'late'),
            make_lot('ETH', '1', '2000', '2024-01-01', 'early'),
        )
        ordered = sort_lots(lots, CostBasisMethod.HIFO)
        assert [l.origin_tx_id for l in ordered] == ['early', 'late']

    def test_unknown_method_raises(self, two_btc_lots):
        with pytest.raises(ValueError):
            allocate_disposal(two_btc_lots, Decimal('1'), 'fifo')


class TestSpecificIdentification:
    """Caller-selected lots."""

    def test_lot_order_is_followed(self, two_btc_lots):
        result = allocate_disposal(two_btc_lots, Decimal('1.5'), CostBasisMethod.SPEC_ID, ['lot-b'])
        assert [u.origin_tx_id for u in result.lots_used] == ['lot-b', 'lot-a']
        assert result.total_cost_basis == Decimal('35000')
        assert result.warnings == ()

    def test_missing_order_falls_back_to_fifo_with_warning(self, two_btc_lots):
        result = allocate_disposal(two_btc_lots, Decimal('1'), CostBasisMethod.SPEC_ID)
        assert result.lots_used[0].origin_tx_id == 'lot-a'
        assert result.warnings == (f"BTC: {SPEC_ID_FALLBACK_WARNING}",)


class TestAllocation:
    """Quantity bookkeeping."""

    def test_partial_consumption_leaves_residual(self):
        lot = make_lot('BTC', '2', '100', '2024-01-01', 'a')
        result = allocate_disposal((lot,), Decimal('0.5'), CostBasisMethod.FIFO)

        assert result.total_cost_basis == Decimal('50.0')
        residual, = result.remaining_holdings
        assert residual.quantity == Decimal('1.5')
        assert residual.acquired_date == lot.acquired_date
        assert residual.cost_basis_per_unit == lot.cost_basis_per_unit
        assert residual.total_cost_basis == Decimal('150.0')

    def test_allocation_sums_to_quantity(self, two_btc_lots):
        quantity = Decimal('1.25')
        result = allocate_disposal(two_btc_lots, quantity, CostBasisMethod.FIFO)

        assert result.quantity_allocated == quantity
        held_after = sum(l.quantity for l in result.remaining_holdings)
        assert held_after + quantity == Decimal('2')

    def test_overselling_is_capped_not_raised(self):
        lot = make_lot('BTC', '2', '100', '2024-01-01', 'a')
        result = allocate_disposal((lot,), Decimal('5'), CostBasisMethod.FIFO)

        assert not result.ok
        assert result.error.kind is AllocationErrorKind.INSUFFICIENT_QUANTITY
        assert result.error.shortfall == Decimal('3')
        assert result.quantity_allocated == Decimal('2')
        assert result.remaining_holdings == ()
        assert 'only 2 available' in result.error.message

    def test_no_holdings(self):
        result = allocate_disposal((), Decimal('1'), CostBasisMethod.FIFO, asset='DOGE')
        assert result.error.kind is AllocationErrorKind.NO_HOLDINGS
        assert result.lots_used == ()
        assert str(result.error) == 'No holdings available to sell (1 requested)'


class TestLedgerValue:
    """The ledger never changes in place."""

    def test_dispose_returns_new_ledger(self, two_btc_lots):
        before = Ledger({'BTC': two_btc_lots})
        result, after = dispose(before, 'BTC', Decimal('1'), CostBasisMethod.FIFO)

        assert before.total_quantity('BTC') == Decimal('2')
        assert after.total_quantity('BTC') == Decimal('1')
        assert result.lots_used[0].origin_tx_id == 'lot-a'

    def test_emptied_asset_is_removed(self):
        ledger = Ledger().add_lot(make_lot('SOL', '1', '50', '2024-01-01'))
        _, after = dispose(ledger, 'SOL', Decimal('1'), CostBasisMethod.FIFO)
        assert 'SOL' not in after
        assert len(after) == 0

    def test_equal_ledgers_compare_equal(self, two_btc_lots):
        assert Ledger({'BTC': two_btc_lots}) == Ledger({'BTC': list(two_btc_lots)})
