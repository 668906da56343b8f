"""
Canonical transaction validation.
Ensures every imported transaction meets minimum data quality before it
reaches the cost-basis engine.
"""

import re
from decimal import Decimal
from typing import List, Optional, Tuple

from gains_ledger.core.models import CanonicalTransaction, TransactionType


class TransactionValidator:
    """Validates canonical transaction values."""

    # Reasonable ranges (catch typos like a total entered as a price)
    MAX_PRICE = Decimal('100000000')
    MAX_QUANTITY = Decimal('1000000000000')

    _ASSET_PATTERN = re.compile(r'^[A-Z0-9][A-Z0-9.\-_]{0,19}$')

    @classmethod
    def validate_transaction(cls, tx: CanonicalTransaction) -> Tuple[bool, List[str]]:
        """
        Validate a single transaction.

        Args:
            tx: Transaction to validate.

        Returns:
            (is_valid, error_list) - bool and list of validation error messages.
        """
        errors = []

        if not tx.asset:
            errors.append("asset is empty")
        elif not cls._ASSET_PATTERN.match(tx.asset):
            errors.append(f"asset '{tx.asset}' is not a recognizable symbol")

        if tx.quantity <= 0:
            errors.append(f"quantity {tx.quantity} must be positive")
        elif tx.quantity > cls.MAX_QUANTITY:
            errors.append(f"quantity {tx.quantity} exceeds maximum {cls.MAX_QUANTITY}")

        for name in ('price_per_unit', 'total_value', 'fees'):
            value = getattr(tx, name)
            if value < 0:
                errors.append(f"{name} {value} must not be negative")

        if tx.price_per_unit > cls.MAX_PRICE:
            errors.append(f"price {tx.price_per_unit} exceeds maximum {cls.MAX_PRICE}")

        if tx.type is TransactionType.CONVERT:
            for name in ('convert_from_quantity', 'convert_to_quantity'):
                value = getattr(tx, name)
                if value is not None and value < 0:
                    errors.append(f"{name} {value} must not be negative")

        return len(errors) == 0, errors

    @classmethod
    def first_error(cls, tx: CanonicalTransaction) -> Optional[str]:
        is_valid, errors = cls.validate_transaction(tx)
        return None if is_valid else '; '.join(errors)
