"""
Transaction table: pending checkouts awaiting commit or expiry.

Transactions are TTL-based soft locks. A pending transaction is never rolled
back; it expires and is purged by the sweep.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Optional

from voice_ordering.core.errors import ErrorCode, VoiceCommandError
from voice_ordering.schemas import CartItem, OrderTotals, Transaction, TransactionStatus

logger = logging.getLogger(__name__)


class TransactionTable:

    def __init__(self, ttl_seconds: int = 300, now: Callable[[], datetime] = datetime.now):
        self.ttl = timedelta(seconds=ttl_seconds)
        self._now = now
        self._transactions: dict[str, Transaction] = {}

    def create(
        self,
        session_id: Optional[str],
        items: list[CartItem],
        totals: OrderTotals,
        payment_method: Optional[str] = None,
    ) -> Transaction:
        transaction = Transaction(
            id=f"txn_{uuid.uuid4().hex[:16]}",
            session_id=session_id,
            items=[item.model_copy(deep=True) for item in items],
            totals=totals,
            payment_method=payment_method,
            created_at=self._now(),
        )
        self._transactions[transaction.id] = transaction
        logger.info(f"Transaction created: {transaction.id} (total={totals.total:.2f} {totals.currency})")
        return transaction

    def get(self, transaction_id: str) -> Optional[Transaction]:
        return self._transactions.get(transaction_id)

    def latest_pending(self, session_id: Optional[str]) -> Optional[Transaction]:
        pending = [
            t for t in self._transactions.values()
            if t.status == TransactionStatus.PENDING and t.session_id == session_id
        ]
        return max(pending, key=lambda t: t.created_at) if pending else None

    def commit(self, transaction_id: str) -> Transaction:
        transaction = self._transactions.get(transaction_id)
        if transaction is None or transaction.status != TransactionStatus.PENDING:
            raise VoiceCommandError(
                f"No pending transaction '{transaction_id}'",
                ErrorCode.NO_PENDING_TRANSACTION,
            )
        if self._now() - transaction.created_at >= self.ttl:
            transaction.status = TransactionStatus.EXPIRED
            raise VoiceCommandError(
                f"Transaction '{transaction_id}' has expired",
                ErrorCode.NO_PENDING_TRANSACTION,
            )

        transaction.status = TransactionStatus.COMMITTED
        transaction.committed_at = self._now()
        logger.info(f"Transaction committed: {transaction.id}")
        return transaction

    def expire_session(self, session_id: Optional[str]) -> list[Transaction]:
        expired = []
        for transaction in self._transactions.values():
            if transaction.session_id == session_id and transaction.status == TransactionStatus.PENDING:
                transaction.status = TransactionStatus.EXPIRED
                expired.append(transaction)
        return expired

    def sweep(self) -> list[Transaction]:
        """
        Purge transactions older than the TTL.

        Returns the pending ones that expired without a commit.
        """
        now = self._now()
        stale = [t for t in self._transactions.values() if now - t.created_at >= self.ttl]
        expired = []
        for transaction in stale:
            if transaction.status == TransactionStatus.PENDING:
                transaction.status = TransactionStatus.EXPIRED
                expired.append(transaction)
            del self._transactions[transaction.id]
        if expired:
            logger.info(f"Expired {len(expired)} uncommitted transactions")
        return expired

    @property
    def pending_count(self) -> int:
        return sum(1 for t in self._transactions.values() if t.status == TransactionStatus.PENDING)

    def __len__(self) -> int:
        return len(self._transactions)
