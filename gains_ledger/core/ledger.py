"""
================================================================================
LEDGER - Per-Asset Acquisition Lots and Disposal Allocation
================================================================================

The Ledger is an immutable value: every acquisition or disposal returns a
new Ledger and leaves the old one untouched. A run threads one Ledger
through its calls, so two runs never share lot state.

Lot Selection:
    FIFO    - ascending acquired date
    LIFO    - descending acquired date
    HIFO    - descending cost basis per unit, ties by ascending date
    SPEC_ID - caller-supplied lot order (origin transaction ids); lots not
              named follow in FIFO order. Without an order the walk is FIFO
              and a warning is attached to the result.

All sorts are stable, so equal keys keep ledger (insertion) order.

================================================================================
"""

import logging
from decimal import Decimal
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from gains_ledger.core.models import (
    AllocationError,
    AllocationErrorKind,
    CostBasisMethod,
    DisposalResult,
    Lot,
    LotUsage,
)
from gains_ledger.decimal_utils import ZERO

logger = logging.getLogger("gains_ledger")

SPEC_ID_FALLBACK_WARNING = (
    "Specific identification requested without a lot selection; "
    "lots were consumed in FIFO order"
)


class Ledger:
    """Mapping of asset symbol -> ordered tuple of Lots."""

    __slots__ = ('_lots',)

    def __init__(self, lots: Optional[Dict[str, Sequence[Lot]]] = None):
        self._lots: Dict[str, Tuple[Lot, ...]] = {}
        for asset, asset_lots in (lots or {}).items():
            if asset_lots:
                self._lots[asset] = tuple(asset_lots)

    def lots(self, asset: str) -> Tuple[Lot, ...]:
        return self._lots.get(asset, ())

    def assets(self) -> List[str]:
        return sorted(self._lots)

    def total_quantity(self, asset: str) -> Decimal:
        return sum((lot.quantity for lot in self.lots(asset)), ZERO)

    def total_cost_basis(self, asset: str) -> Decimal:
        return sum((lot.total_cost_basis for lot in self.lots(asset)), ZERO)

    def add_lot(self, lot: Lot) -> 'Ledger':
        return self.replace_lots(lot.asset, self.lots(lot.asset) + (lot,))

    def replace_lots(self, asset: str, lots: Iterable[Lot]) -> 'Ledger':
        updated = dict(self._lots)
        lots = tuple(lots)
        if lots:
            updated[asset] = lots
        else:
            updated.pop(asset, None)
        new = Ledger()
        new._lots = updated
        return new

    def all_lots(self) -> Iterator[Lot]:
        for asset in self.assets():
            yield from self._lots[asset]

    def as_dict(self) -> Dict[str, Tuple[Lot, ...]]:
        return dict(self._lots)

    def __contains__(self, asset) -> bool:
        return asset in self._lots

    def __len__(self) -> int:
        return len(self._lots)

    def __eq__(self, other) -> bool:
        return isinstance(other, Ledger) and self._lots == other._lots

    def __repr__(self):
        summary = ', '.join(f"{a}: {len(l)} lots" for a, l in sorted(self._lots.items()))
        return f"Ledger({summary})"


def sort_lots(lots: Sequence[Lot], method: CostBasisMethod,
              lot_order: Optional[Sequence[str]] = None) -> List[Lot]:
    """Order lots for consumption under ``method``."""
    if not isinstance(method, CostBasisMethod):
        raise ValueError(f"Unknown cost basis method: {method!r}")

    if method is CostBasisMethod.FIFO:
        return sorted(lots, key=lambda l: l.acquired_date)
    if method is CostBasisMethod.LIFO:
        return sorted(lots, key=lambda l: l.acquired_date, reverse=True)
    if method is CostBasisMethod.HIFO:
        return sorted(lots, key=lambda l: (-l.cost_basis_per_unit, l.acquired_date))

    # SPEC_ID
    fifo = sorted(lots, key=lambda l: l.acquired_date)
    if not lot_order:
        return fifo
    rank = {}
    for position, lot_id in enumerate(lot_order):
        rank.setdefault(lot_id, position)
    selected = [l for l in fifo if l.origin_tx_id in rank]
    selected.sort(key=lambda l: rank[l.origin_tx_id])
    return selected + [l for l in fifo if l.origin_tx_id not in rank]


def allocate_disposal(lots: Sequence[Lot], quantity: Decimal, method: CostBasisMethod,
                      lot_order: Optional[Sequence[str]] = None, asset: Optional[str] = None) -> DisposalResult:
    """
    Resolve a disposal of ``quantity`` units against ``lots``.

    Args:
        lots: Every lot currently held for the asset
        quantity: Units disposed
        method: Lot selection method
        lot_order: SPEC_ID lot selection by origin transaction id
        asset: Symbol used in error messages; defaults to the lots' asset

    Returns:
        DisposalResult whose ``remaining_holdings`` replaces the asset's
        ledger entry. Overselling sets ``error`` and caps consumption at what
        is held; it never raises.

    Raises:
        ValueError: ``method`` is not a CostBasisMethod
    """
    ordered = sort_lots(lots, method, lot_order)
    asset = asset or (lots[0].asset if lots else '')

    warnings = []
    if method is CostBasisMethod.SPEC_ID and not lot_order and ordered:
        warnings.append(f"{asset}: {SPEC_ID_FALLBACK_WARNING}")

    if not ordered:
        error = AllocationError(AllocationErrorKind.NO_HOLDINGS, asset, quantity, ZERO)
        logger.warning(f"   [Allocation] {asset}: {error.message}")
        return DisposalResult(lots_used=(), total_cost_basis=ZERO, remaining_holdings=(),
                              error=error, warnings=tuple(warnings))

    available = sum((l.quantity for l in ordered), ZERO)
    remaining = quantity
    error = None
    if quantity > available:
        error = AllocationError(AllocationErrorKind.INSUFFICIENT_QUANTITY, asset, quantity, available)
        logger.warning(f"   [Allocation] {asset}: {error.message}")
        remaining = available

    used: List[LotUsage] = []
    kept: List[Lot] = []
    total_basis = ZERO

    for lot in ordered:
        if remaining <= 0:
            kept.append(lot)
            continue

        if lot.quantity <= remaining:
            used.append(LotUsage(
                acquired_date=lot.acquired_date,
                quantity_sold=lot.quantity,
                cost_basis=lot.total_cost_basis,
                cost_basis_per_unit=lot.cost_basis_per_unit,
                origin_tx_id=lot.origin_tx_id,
            ))
            total_basis += lot.total_cost_basis
            remaining -= lot.quantity
        else:
            partial_basis = lot.cost_basis_per_unit * remaining
            used.append(LotUsage(
                acquired_date=lot.acquired_date,
                quantity_sold=remaining,
                cost_basis=partial_basis,
                cost_basis_per_unit=lot.cost_basis_per_unit,
                origin_tx_id=lot.origin_tx_id,
            ))
            total_basis += partial_basis
            kept.append(lot.residual(remaining))
            remaining = ZERO

    return DisposalResult(
        lots_used=tuple(used),
        total_cost_basis=total_basis,
        remaining_holdings=tuple(kept),
        error=error,
        warnings=tuple(warnings),
    )


def dispose(ledger: Ledger, asset: str, quantity: Decimal, method: CostBasisMethod,
            lot_order: Optional[Sequence[str]] = None) -> Tuple[DisposalResult, Ledger]:
    """Allocate against the ledger and return the result with the updated ledger."""
    result = allocate_disposal(ledger.lots(asset), quantity, method, lot_order, asset=asset)
    return result, ledger.replace_lots(asset, result.remaining_holdings)
