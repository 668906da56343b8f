"""
================================================================================
MODELS - Canonical Types Shared by Importers and the Cost-Basis Engine
================================================================================

Every importer produces these types and every downstream consumer reads
them. Money and quantities are Decimal; timestamps are naive UTC datetimes.

Types:
    TransactionType     - Closed set of canonical crypto event kinds
    CostBasisMethod     - FIFO / LIFO / HIFO / Specific Identification
    Form8949Category    - IRS reporting boxes A-F
    DateFormat          - Date hints accepted by the generic importers
    RawRow              - One CSV record with its file line number
    ParseError          - Row-level or header-level import problem
    ParseResult         - (transactions, errors, warnings) triple
    CanonicalTransaction- Source-agnostic imported transaction
    Lot                 - One acquisition lot held in the ledger
    LotUsage            - Part of a lot consumed by a disposal
    AllocationError     - Structured allocation failure
    DisposalResult      - Outcome of one disposal against the ledger
    ReportableTransaction - One Form 8949 row
    ColumnMapping / CryptoColumnMapping - Logical field -> column index

================================================================================
"""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, NamedTuple, Optional, Tuple

from gains_ledger.decimal_utils import ZERO


class TransactionType(Enum):
    BUY = 'buy'
    SELL = 'sell'
    CONVERT = 'convert'
    SEND = 'send'
    RECEIVE = 'receive'
    INCOME = 'income'
    AIRDROP = 'airdrop'
    MINING = 'mining'
    GIFT_SENT = 'gift_sent'
    GIFT_RECEIVED = 'gift_received'
    FORK = 'fork'
    OTHER = 'other'


ACQUISITION_TYPES = frozenset({
    TransactionType.BUY,
    TransactionType.RECEIVE,
    TransactionType.INCOME,
    TransactionType.AIRDROP,
    TransactionType.MINING,
    TransactionType.FORK,
    TransactionType.GIFT_RECEIVED,
})

# Acquisitions with no consideration paid carry zero basis
ZERO_BASIS_TYPES = frozenset({TransactionType.RECEIVE, TransactionType.GIFT_RECEIVED})

INCOME_TYPES = frozenset({
    TransactionType.INCOME,
    TransactionType.AIRDROP,
    TransactionType.MINING,
    TransactionType.FORK,
})


class CostBasisMethod(Enum):
    FIFO = 'fifo'
    LIFO = 'lifo'
    HIFO = 'hifo'
    SPEC_ID = 'spec_id'

    @classmethod
    def from_value(cls, value) -> 'CostBasisMethod':
        """Accepts a member or a case-insensitive name/value ('FIFO', 'spec_id')."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        for member in cls:
            if member.value == key:
                return member
        raise ValueError(f"Unknown cost basis method: {value!r}")


class Form8949Category(Enum):
    A = 'A'  # Short-term, basis reported to IRS
    B = 'B'  # Short-term, basis NOT reported to IRS
    C = 'C'  # Short-term, Form 1099-B not received
    D = 'D'  # Long-term, basis reported to IRS
    E = 'E'  # Long-term, basis NOT reported to IRS
    F = 'F'  # Long-term, Form 1099-B not received


class DateFormat(Enum):
    MDY = 'MM/DD/YYYY'
    DMY = 'DD/MM/YYYY'
    YMD = 'YYYY-MM-DD'
    ISO = 'ISO'

    @classmethod
    def from_value(cls, value) -> 'DateFormat':
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == str(value).strip().upper():
                return member
        raise ValueError(f"Unknown date format: {value!r}")


class RawRow(NamedTuple):
    """One CSV record; ``line`` is the 1-based file line where it starts."""
    line: int
    cells: Tuple[str, ...]

    def cell(self, index: Optional[int]) -> str:
        if index is None or index < 0 or index >= len(self.cells):
            return ''
        return self.cells[index]

    def is_blank(self) -> bool:
        return all(c == '' for c in self.cells)


@dataclass(frozen=True)
class ParseError:
    row: int
    message: str
    column: Optional[str] = None

    def __str__(self):
        where = f"Row {self.row}" + (f" [{self.column}]" if self.column else "")
        return f"{where}: {self.message}"


@dataclass
class ParseResult:
    transactions: list = field(default_factory=list)
    errors: List[ParseError] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @classmethod
    def fatal(cls, errors: List[ParseError]) -> 'ParseResult':
        return cls(transactions=[], errors=list(errors), warnings=[])


@dataclass(frozen=True)
class CanonicalTransaction:
    id: str
    timestamp: datetime
    type: TransactionType
    asset: str
    quantity: Decimal
    price_per_unit: Decimal = ZERO
    total_value: Decimal = ZERO
    fees: Decimal = ZERO
    notes: Optional[str] = None
    exchange: Optional[str] = None
    convert_from_asset: Optional[str] = None
    convert_from_quantity: Optional[Decimal] = None
    convert_to_asset: Optional[str] = None
    convert_to_quantity: Optional[Decimal] = None
    raw_row: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Lot:
    asset: str
    quantity: Decimal
    cost_basis_per_unit: Decimal
    total_cost_basis: Decimal
    acquired_date: datetime
    source: str
    origin_tx_id: Optional[str] = None

    @classmethod
    def create(cls, asset: str, quantity: Decimal, cost_basis_per_unit: Decimal,
               acquired_date: datetime, source: str, origin_tx_id: Optional[str] = None) -> 'Lot':
        return cls(
            asset=asset,
            quantity=quantity,
            cost_basis_per_unit=cost_basis_per_unit,
            total_cost_basis=quantity * cost_basis_per_unit,
            acquired_date=acquired_date,
            source=source,
            origin_tx_id=origin_tx_id,
        )

    def residual(self, consumed: Decimal) -> 'Lot':
        """Smaller lot left after ``consumed`` units are taken; same date and unit basis."""
        remaining = self.quantity - consumed
        return replace(self, quantity=remaining, total_cost_basis=remaining * self.cost_basis_per_unit)


@dataclass(frozen=True)
class LotUsage:
    acquired_date: datetime
    quantity_sold: Decimal
    cost_basis: Decimal
    cost_basis_per_unit: Decimal
    origin_tx_id: Optional[str] = None


class AllocationErrorKind(Enum):
    NO_HOLDINGS = 'no_holdings'
    INSUFFICIENT_QUANTITY = 'insufficient_quantity'


@dataclass(frozen=True)
class AllocationError:
    kind: AllocationErrorKind
    asset: str
    requested: Decimal
    available: Decimal

    @property
    def shortfall(self) -> Decimal:
        return self.requested - self.available

    @property
    def message(self) -> str:
        if self.kind is AllocationErrorKind.NO_HOLDINGS:
            return f"No holdings available to sell ({self.requested} requested)"
        return f"Attempting to sell {self.requested} but only {self.available} available"

    def __str__(self):
        return self.message


@dataclass(frozen=True)
class DisposalResult:
    lots_used: Tuple[LotUsage, ...]
    total_cost_basis: Decimal
    remaining_holdings: Tuple[Lot, ...]
    error: Optional[AllocationError] = None
    warnings: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def quantity_allocated(self) -> Decimal:
        return sum((u.quantity_sold for u in self.lots_used), ZERO)


@dataclass(frozen=True)
class ReportableTransaction:
    symbol: str
    date_acquired: datetime
    date_sold: datetime
    proceeds: Decimal
    cost_basis: Decimal
    gain_loss: Decimal
    is_short_term: bool
    is_covered: bool
    quantity: Decimal
    description: Optional[str] = None
    wash_sale_disallowed: Optional[Decimal] = None
    adjustment_code: Optional[str] = None
    adjustment_amount: Optional[Decimal] = None

    @property
    def category(self) -> Form8949Category:
        if self.is_short_term:
            return Form8949Category.A if self.is_covered else Form8949Category.B
        return Form8949Category.D if self.is_covered else Form8949Category.E

    def as_row(self) -> Dict[str, object]:
        """Flat dict for CSV export; column names follow Form 8949."""
        return {
            'Symbol': self.symbol,
            'Description': self.description or '',
            'Quantity': self.quantity,
            'Date Acquired': self.date_acquired.strftime('%m/%d/%Y'),
            'Date Sold': self.date_sold.strftime('%m/%d/%Y'),
            'Proceeds': self.proceeds,
            'Cost Basis': self.cost_basis,
            'Adjustment Code': self.adjustment_code or '',
            'Adjustment Amount': self.adjustment_amount if self.adjustment_amount is not None else '',
            'Wash Sale Disallowed': self.wash_sale_disallowed if self.wash_sale_disallowed is not None else '',
            'Gain/Loss': self.gain_loss,
            'Term': 'Short' if self.is_short_term else 'Long',
            'Covered': 'YES' if self.is_covered else 'NO',
            'Category': self.category.value,
        }


# ==========================================
# COLUMN MAPPINGS
# ==========================================

@dataclass
class ColumnMapping:
    """Equity gain/loss report columns. ``None`` means unmapped."""
    symbol: Optional[int] = None
    description: Optional[int] = None
    date_acquired: Optional[int] = None
    date_sold: Optional[int] = None
    proceeds: Optional[int] = None
    cost_basis: Optional[int] = None
    gain_loss: Optional[int] = None
    quantity: Optional[int] = None
    wash_sale_disallowed: Optional[int] = None
    adjustment_code: Optional[int] = None
    adjustment_amount: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Optional[int]]) -> 'ColumnMapping':
        return _mapping_from_dict(cls, data)


@dataclass
class CryptoColumnMapping:
    """Exchange transaction history columns. ``None`` means unmapped."""
    timestamp: Optional[int] = None
    transaction_type: Optional[int] = None
    asset: Optional[int] = None
    quantity: Optional[int] = None
    price_per_unit: Optional[int] = None
    total_value: Optional[int] = None
    fees: Optional[int] = None
    notes: Optional[int] = None
    convert_to_asset: Optional[int] = None
    convert_to_quantity: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Optional[int]]) -> 'CryptoColumnMapping':
        return _mapping_from_dict(cls, data)


def _mapping_from_dict(cls, data):
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown mapping fields: {', '.join(sorted(unknown))}")
    values = {}
    for key, value in data.items():
        if value is None or value == '':
            values[key] = None
            continue
        index = int(value)
        values[key] = index if index >= 0 else None
    return cls(**values)
