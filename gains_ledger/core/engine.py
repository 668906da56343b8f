"""
================================================================================
ENGINE - Disposal Synthesizer for Canonical Crypto Transactions
================================================================================

Walks canonical transactions in chronological order, threads a Ledger
through every acquisition and disposal, and emits one ReportableTransaction
per lot consumed.

Event Handling:
    buy                          -> lot at (total value + fees) / quantity
    income/airdrop/mining/fork   -> lot at fair value + ordinary-income warning
    receive/gift_received        -> lot at zero basis
    sell                         -> disposal, proceeds net of pro-rated fees
    gift_sent                    -> disposal with zero proceeds
    convert                      -> disposal of the from-leg, lot for the to-leg
    send                         -> warning only
    other                        -> ignored with a warning

Allocation failures never raise; they come back as warnings naming the
asset. The engine holds no ledger between runs.

================================================================================
"""

import logging
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Sequence, Tuple

from gains_ledger.core.classifier import is_short_term
from gains_ledger.core.ledger import Ledger, dispose
from gains_ledger.core.models import (
    INCOME_TYPES,
    ZERO_BASIS_TYPES,
    CanonicalTransaction,
    CostBasisMethod,
    DisposalResult,
    Lot,
    ParseResult,
    ReportableTransaction,
    TransactionType,
)
from gains_ledger.decimal_utils import ZERO, safe_divide

logger = logging.getLogger("gains_ledger")

DEFAULT_EXCHANGE = 'Unknown Exchange'


class TransactionEngine:
    """
    Cost-basis run over one batch of canonical transactions.

    Args:
        method: Lot selection method for every disposal
        include_fees_in_basis: Add buy fees to the acquired lot's basis
        lot_selections: SPEC_ID lot order per disposal transaction id
        is_covered: Covered flag stamped on every reportable
        exchange_name: Label used when a transaction names no exchange
    """

    def __init__(self, method=CostBasisMethod.FIFO, include_fees_in_basis: bool = True,
                 lot_selections: Optional[Mapping[str, Sequence[str]]] = None,
                 is_covered: bool = False, exchange_name: Optional[str] = None):
        self.method = CostBasisMethod.from_value(method)
        self.include_fees_in_basis = include_fees_in_basis
        self.lot_selections = dict(lot_selections or {})
        self.is_covered = is_covered
        self.exchange_name = exchange_name

    def run(self, transactions: Iterable[CanonicalTransaction],
            ledger: Optional[Ledger] = None) -> Tuple[ParseResult, Ledger]:
        """
        Resolve every disposal in ``transactions``.

        Args:
            transactions: Canonical transactions in any order
            ledger: Opening lots; an empty ledger when omitted

        Returns:
            (ParseResult of ReportableTransactions, closing Ledger)
        """
        ledger = ledger if ledger is not None else Ledger()
        ordered = sorted(transactions, key=lambda tx: tx.timestamp)
        result = ParseResult()

        logger.info(f"-> Running {self.method.value.upper()} cost basis over {len(ordered)} transactions")
        for tx in ordered:
            ledger = self._apply(tx, ledger, result)

        logger.info(f"   Engine: {len(result.transactions)} reportable rows, {len(result.warnings)} warnings")
        return result, ledger

    # ------------------------------------------
    # Dispatch
    # ------------------------------------------

    def _apply(self, tx: CanonicalTransaction, ledger: Ledger, result: ParseResult) -> Ledger:
        kind = tx.type

        if kind is TransactionType.BUY or kind in INCOME_TYPES or kind in ZERO_BASIS_TYPES:
            ledger = ledger.add_lot(self._acquisition_lot(tx))
            if kind in INCOME_TYPES:
                result.warnings.append(
                    f"{tx.asset} {kind.value} of ${tx.total_value:,.2f} should be reported as ordinary income"
                )
            elif kind is TransactionType.GIFT_RECEIVED:
                result.warnings.append(
                    f"{tx.asset} gift received recorded with zero cost basis; "
                    f"supply the donor's basis to adjust it"
                )
            return ledger

        if kind is TransactionType.SELL:
            return self._sell(tx, ledger, result, gift=False)

        if kind is TransactionType.GIFT_SENT:
            return self._sell(tx, ledger, result, gift=True)

        if kind is TransactionType.CONVERT:
            return self._convert(tx, ledger, result)

        if kind is TransactionType.SEND:
            result.warnings.append(
                f"{tx.asset} send of {tx.quantity} units - verify taxability "
                f"(gift, payment, or wallet transfer)"
            )
            return ledger

        result.warnings.append(f"{tx.id}: {tx.asset} transaction of type '{kind.value}' ignored")
        return ledger

    # ------------------------------------------
    # Acquisitions
    # ------------------------------------------

    def _exchange(self, tx: CanonicalTransaction) -> str:
        return tx.exchange or self.exchange_name or DEFAULT_EXCHANGE

    def _acquisition_lot(self, tx: CanonicalTransaction) -> Lot:
        if tx.type in ZERO_BASIS_TYPES:
            per_unit = ZERO
        else:
            value = tx.total_value if tx.total_value > 0 else tx.price_per_unit * tx.quantity
            if tx.type is TransactionType.BUY and self.include_fees_in_basis:
                value += tx.fees
            per_unit = safe_divide(value, tx.quantity)
        return Lot.create(tx.asset, tx.quantity, per_unit, tx.timestamp, self._exchange(tx), tx.id)

    # ------------------------------------------
    # Disposals
    # ------------------------------------------

    def _dispose(self, tx: CanonicalTransaction, ledger: Ledger, asset: str, quantity: Decimal,
                 result: ParseResult) -> Tuple[DisposalResult, Ledger]:
        disposal, ledger = dispose(ledger, asset, quantity, self.method, self.lot_selections.get(tx.id))
        result.warnings.extend(disposal.warnings)
        if disposal.error is not None:
            result.warnings.append(f"{asset}: {disposal.error.message}")
        return disposal, ledger

    def _reportable(self, tx: CanonicalTransaction, symbol: str, description: str, usage,
                    proceeds: Decimal) -> ReportableTransaction:
        return ReportableTransaction(
            symbol=symbol,
            description=description,
            date_acquired=usage.acquired_date,
            date_sold=tx.timestamp,
            proceeds=proceeds,
            cost_basis=usage.cost_basis,
            gain_loss=proceeds - usage.cost_basis,
            is_short_term=is_short_term(usage.acquired_date, tx.timestamp),
            is_covered=self.is_covered,
            quantity=usage.quantity_sold,
        )

    def _sell(self, tx: CanonicalTransaction, ledger: Ledger, result: ParseResult, gift: bool) -> Ledger:
        disposal, ledger = self._dispose(tx, ledger, tx.asset, tx.quantity, result)
        price = tx.price_per_unit if tx.price_per_unit > 0 else safe_divide(tx.total_value, tx.quantity)
        kind = f"{tx.asset} gift" if gift else tx.asset
        description = f"{kind} - {self._exchange(tx)}"

        for usage in disposal.lots_used:
            if gift:
                proceeds = ZERO
            else:
                share = safe_divide(usage.quantity_sold, tx.quantity)
                proceeds = price * usage.quantity_sold - tx.fees * share
            result.transactions.append(self._reportable(tx, tx.asset, description, usage, proceeds))
        return ledger

    def _convert(self, tx: CanonicalTransaction, ledger: Ledger, result: ParseResult) -> Ledger:
        from_asset, from_qty = tx.convert_from_asset, tx.convert_from_quantity
        to_asset, to_qty = tx.convert_to_asset, tx.convert_to_quantity
        if not (from_asset and from_qty and to_asset and to_qty):
            result.warnings.append(
                f"{tx.id}: {tx.asset} convert is missing its from/to legs; no gain or basis recorded"
            )
            return ledger

        disposal, ledger = self._dispose(tx, ledger, from_asset, from_qty, result)
        description = f"{from_asset} converted to {to_asset} - {self._exchange(tx)}"
        for usage in disposal.lots_used:
            proceeds = tx.total_value * safe_divide(usage.quantity_sold, from_qty)
            result.transactions.append(self._reportable(tx, from_asset, description, usage, proceeds))

        lot = Lot.create(to_asset, to_qty, safe_divide(tx.total_value, to_qty), tx.timestamp,
                         f"{self._exchange(tx)} Convert", tx.id)
        return ledger.add_lot(lot)


def reportables_from(parsed: ParseResult, engine: TransactionEngine,
                     ledger: Optional[Ledger] = None) -> Tuple[ParseResult, Ledger]:
    """
    Run ``engine`` over an importer's canonical transactions.

    Import errors and warnings come first in the combined result, followed by
    the engine's warnings. A parse that produced nothing but errors is passed
    through untouched.
    """
    ledger = ledger if ledger is not None else Ledger()
    if parsed.errors and not parsed.transactions:
        return ParseResult.fatal(parsed.errors), ledger

    synthesized, ledger = engine.run(parsed.transactions, ledger)
    combined = ParseResult(
        transactions=synthesized.transactions,
        errors=list(parsed.errors),
        warnings=list(parsed.warnings) + synthesized.warnings,
    )
    return combined, ledger
