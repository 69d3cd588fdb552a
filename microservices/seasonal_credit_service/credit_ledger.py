"""
Credit Ledger

Atomic balance mutation plus the append-only transaction log.
Every balance change goes through apply_delta; nothing else writes balances.
"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from .models import (
    CreditBalance,
    CreditTransaction,
    LedgerResult,
    TransactionTypeEnum,
    to_credits,
)
from .protocols import LedgerRepositoryProtocol, LedgerError

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def compute_balance_change(previous_balance: Decimal, amount: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Compute the new balance for a requested delta.

    Deductions never drive the balance below zero; when a deduction is
    floored, the effective amount is what was actually removed.

    Returns:
        (new_balance, effective_amount) with new_balance == previous_balance + effective_amount
    """
    new_balance = previous_balance + amount
    if amount < 0 and new_balance < 0:
        new_balance = ZERO
    return new_balance, new_balance - previous_balance


class CreditLedger:
    """Balance mutations and ledger history for (tenant, entity) balances"""

    def __init__(self, repository: LedgerRepositoryProtocol):
        self.repository = repository

    async def apply_delta(
        self,
        tenant_id: str,
        entity_id: str,
        amount: Decimal,
        transaction_type: TransactionTypeEnum,
        operation_code: str,
    ) -> LedgerResult:
        """
        Apply a signed credit delta to an entity's balance.

        The balance record is created at 0 on first use. The balance write
        and the transaction row are one unit of work.

        Args:
            tenant_id: Tenant owning the balance
            entity_id: Entity (organization) owning the balance
            amount: Signed delta; negative amounts are floored at a zero balance
            transaction_type: Ledger transaction type
            operation_code: Correlation key, e.g. seasonal_campaign:<campaign_id>

        Returns:
            LedgerResult with previous/new balance and the effective amount

        Raises:
            LedgerError: If the mutation could not be persisted
        """
        requested = to_credits(amount)
        transaction_type = TransactionTypeEnum(transaction_type)

        def mutator(previous_balance: Decimal) -> Tuple[Decimal, Dict[str, Any]]:
            new_balance, effective = compute_balance_change(previous_balance, requested)
            return new_balance, {
                "transaction_id": f"sc_txn_{uuid.uuid4().hex[:20]}",
                "tenant_id": tenant_id,
                "entity_id": entity_id,
                "transaction_type": transaction_type.value,
                "amount": effective,
                "requested_amount": requested,
                "previous_balance": previous_balance,
                "new_balance": new_balance,
                "operation_code": operation_code,
                "created_at": datetime.now(timezone.utc),
            }

        try:
            previous_balance, new_balance, transaction = await self.repository.mutate_balance(
                tenant_id, entity_id, mutator
            )
        except Exception as e:
            logger.error(
                f"Ledger mutation failed for tenant {tenant_id}, entity {entity_id} "
                f"({operation_code}): {e}"
            )
            raise LedgerError(f"Failed to apply credit delta: {e}", reason=str(e)) from e

        if transaction.amount != requested:
            logger.warning(
                f"Deduction floored for tenant {tenant_id}, entity {entity_id}: "
                f"requested {requested}, applied {transaction.amount}"
            )

        logger.info(
            f"Ledger {transaction_type.value} {transaction.amount:+} for tenant {tenant_id}, "
            f"entity {entity_id}: {previous_balance} -> {new_balance}"
        )

        return LedgerResult(
            transaction_id=transaction.transaction_id,
            previous_balance=previous_balance,
            new_balance=new_balance,
            amount=transaction.amount,
        )

    async def get_balance(self, tenant_id: str, entity_id: str) -> Optional[CreditBalance]:
        return await self.repository.get_balance(tenant_id, entity_id)

    async def list_transactions(
        self, tenant_id: str, entity_id: Optional[str] = None
    ) -> List[CreditTransaction]:
        return await self.repository.get_transactions(tenant_id, entity_id)


__all__ = ["CreditLedger", "compute_balance_change"]
