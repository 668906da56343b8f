"""
================================================================================
CORE MODULE - Canonical Types and Cost-Basis Logic
================================================================================

Exported Classes:
    Ledger - Immutable per-asset lot store
    TransactionEngine - Disposal synthesizer over canonical transactions
    CanonicalTransaction, ReportableTransaction, Lot, ... (via models.py)

Exported Functions:
    allocate_disposal, dispose - Lot selection and consumption
    is_short_term, get_form8949_category - Holding-period rules

Usage:
    from gains_ledger.core import Ledger, TransactionEngine
    from gains_ledger.core.models import CostBasisMethod

================================================================================
"""

from gains_ledger.core.classifier import get_form8949_category, is_short_term
from gains_ledger.core.engine import TransactionEngine, reportables_from
from gains_ledger.core.ledger import Ledger, allocate_disposal, dispose, sort_lots
from gains_ledger.core.models import (
    AllocationError,
    AllocationErrorKind,
    CanonicalTransaction,
    ColumnMapping,
    CostBasisMethod,
    CryptoColumnMapping,
    DateFormat,
    DisposalResult,
    Form8949Category,
    Lot,
    LotUsage,
    ParseError,
    ParseResult,
    ReportableTransaction,
    TransactionType,
)

__all__ = [
    'AllocationError',
    'AllocationErrorKind',
    'CanonicalTransaction',
    'ColumnMapping',
    'CostBasisMethod',
    'CryptoColumnMapping',
    'DateFormat',
    'DisposalResult',
    'Form8949Category',
    'Ledger',
    'Lot',
    'LotUsage',
    'ParseError',
    'ParseResult',
    'ReportableTransaction',
    'TransactionEngine',
    'TransactionType',
    'allocate_disposal',
    'dispose',
    'get_form8949_category',
    'is_short_term',
    'reportables_from',
    'sort_lots',
]
