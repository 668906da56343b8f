"""
================================================================================
REPORTS - Income Summaries, Holdings and CSV Export
================================================================================

Read-only views over canonical transactions, reportables and the closing
Ledger of an engine run.

Outputs:
    CAP_GAINS.csv          - one row per ReportableTransaction (Form 8949 layout)
    HOLDINGS_SNAPSHOT.csv  - one row per open lot

Rounding happens here and nowhere else: USD to cents, quantities to 8
places (ROUND_HALF_UP via decimal_utils).

================================================================================
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Tuple

import pandas as pd

from gains_ledger.core.ledger import Ledger
from gains_ledger.core.models import CanonicalTransaction, ReportableTransaction, TransactionType
from gains_ledger.decimal_utils import ZERO, round_decimal, round_usd, safe_divide, to_decimal
from gains_ledger.utils.constants import DECIMAL_PRECISION

logger = logging.getLogger("gains_ledger")

REPORTABLE_COLUMNS = [
    'Symbol', 'Description', 'Quantity', 'Date Acquired', 'Date Sold', 'Proceeds', 'Cost Basis',
    'Adjustment Code', 'Adjustment Amount', 'Wash Sale Disallowed', 'Gain/Loss', 'Term', 'Covered', 'Category',
]

HOLDINGS_COLUMNS = [
    'Asset', 'Quantity', 'Cost Basis Per Unit', 'Total Cost Basis', 'Date Acquired', 'Source', 'Origin Tx',
]


@dataclass(frozen=True)
class CryptoIncomeSummary:
    staking_rewards: Decimal
    mining_income: Decimal
    airdrop_value: Decimal
    other_income: Decimal

    @property
    def total_income(self) -> Decimal:
        return self.staking_rewards + self.mining_income + self.airdrop_value + self.other_income


@dataclass(frozen=True)
class UnrealizedGain:
    asset: str
    quantity: Decimal
    cost_basis: Decimal
    current_value: Decimal
    unrealized_gain: Decimal
    unrealized_gain_percent: Decimal


def calculate_crypto_income(transactions: Iterable[CanonicalTransaction]) -> CryptoIncomeSummary:
    """
    Ordinary-income totals by kind. Gifts received are not income; plain
    receives count as other income only when they carry a value.
    """
    staking = mining = airdrop = other = ZERO
    for tx in transactions:
        if tx.type is TransactionType.INCOME:
            staking += tx.total_value
        elif tx.type is TransactionType.MINING:
            mining += tx.total_value
        elif tx.type in (TransactionType.AIRDROP, TransactionType.FORK):
            airdrop += tx.total_value
        elif tx.type is TransactionType.RECEIVE and tx.total_value > 0:
            other += tx.total_value
    return CryptoIncomeSummary(staking, mining, airdrop, other)


def staking_rewards_summary(transactions: Iterable[CanonicalTransaction]) -> Tuple[Dict[str, Decimal], Decimal]:
    """(USD value of income rewards per asset, overall total)."""
    by_asset: Dict[str, Decimal] = {}
    for tx in transactions:
        if tx.type is TransactionType.INCOME:
            by_asset[tx.asset] = by_asset.get(tx.asset, ZERO) + tx.total_value
    return by_asset, sum(by_asset.values(), ZERO)


def calculate_unrealized_gains(ledger: Ledger, prices: Mapping[str, object]) -> List[UnrealizedGain]:
    """Open position value per asset at ``prices``; an asset with no price is valued at zero."""
    results = []
    for asset in ledger.assets():
        quantity = ledger.total_quantity(asset)
        cost_basis = ledger.total_cost_basis(asset)
        current_value = quantity * to_decimal(prices.get(asset))
        gain = current_value - cost_basis
        percent = safe_divide(gain, cost_basis) * 100 if cost_basis > 0 else ZERO
        results.append(UnrealizedGain(asset, quantity, cost_basis, current_value, gain, percent))
    return results


def summarize_reportables(reportables: Iterable[ReportableTransaction]) -> Dict[str, Dict[str, Decimal]]:
    """Proceeds, basis, gain/loss and row count per Form 8949 category."""
    summary: Dict[str, Dict[str, Decimal]] = {}
    for r in reportables:
        bucket = summary.setdefault(r.category.value, {
            'proceeds': ZERO, 'cost_basis': ZERO, 'gain_loss': ZERO, 'count': 0,
        })
        bucket['proceeds'] += r.proceeds
        bucket['cost_basis'] += r.cost_basis
        bucket['gain_loss'] += r.gain_loss
        bucket['count'] += 1
    return dict(sorted(summary.items()))


def holdings_rows(ledger: Ledger) -> List[Dict[str, object]]:
    rows = []
    for lot in ledger.all_lots():
        rows.append({
            'Asset': lot.asset,
            'Quantity': round_decimal(lot.quantity, DECIMAL_PRECISION),
            'Cost Basis Per Unit': round_decimal(lot.cost_basis_per_unit, DECIMAL_PRECISION),
            'Total Cost Basis': round_usd(lot.total_cost_basis),
            'Date Acquired': lot.acquired_date.strftime('%m/%d/%Y'),
            'Source': lot.source,
            'Origin Tx': lot.origin_tx_id or '',
        })
    return rows


def reportable_rows(reportables: Iterable[ReportableTransaction]) -> List[Dict[str, object]]:
    rows = []
    for r in reportables:
        row = r.as_row()
        row['Quantity'] = round_decimal(r.quantity, DECIMAL_PRECISION)
        for column in ('Proceeds', 'Cost Basis', 'Gain/Loss'):
            row[column] = round_usd(row[column])
        for column in ('Adjustment Amount', 'Wash Sale Disallowed'):
            if row[column] != '':
                row[column] = round_usd(row[column])
        rows.append(row)
    return rows


def export_reportables(reportables: Iterable[ReportableTransaction], path: Path) -> Path:
    rows = reportable_rows(reportables)
    path.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame(rows, columns=REPORTABLE_COLUMNS).to_csv(path, index=False)
    logger.info(f"   Wrote {len(rows)} rows to {path}")
    return path


def export_holdings(ledger: Ledger, path: Path) -> Path:
    rows = holdings_rows(ledger)
    path.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame(rows, columns=HOLDINGS_COLUMNS).to_csv(path, index=False)
    logger.info(f"   Wrote {len(rows)} open lots to {path}")
    return path
