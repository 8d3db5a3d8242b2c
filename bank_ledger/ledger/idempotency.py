"""
Idempotency Guard: answers "has this exact posting already happened?"

The guard is a read-ahead optimisation, not the guarantee. Two identical
requests can both pass it before either inserts; the unique constraint
uq_transactions_idempotency catches the loser at INSERT time and the
poster turns that Conflict into a Duplicate outcome.

A key is matched together with every natural field (type, account,
signed amount, originating rule). A client that reuses a key for a
different amount or account gets a new posting, never someone else's
result.
"""

from bank_ledger.ledger.store import LedgerStore, NaturalKey
from bank_ledger.models.transaction import Transaction


class IdempotencyGuard:
    def __init__(self, store: LedgerStore):
        self.store = store

    async def find_existing(self, key: NaturalKey) -> Transaction | None:
        """
        Return the earlier transaction for this natural key, or None.

        Without an idempotency token the caller has opted out of replay
        protection, so nothing ever matches.
        """
        if not key.idempotency_key:
            return None
        return await self.store.find_transaction(key)
