"""
Balance Mutator: applies a signed delta to an account balance.

Credits always apply. Debits apply only when the balance covers them, and
the check happens inside the UPDATE itself, so no read-then-write window
exists and no application lock is taken. A debit that reports
applied=False either hit insufficient funds or named a missing account;
the poster checks existence beforehand so it can tell the two apart.
"""

import uuid
from dataclasses import dataclass

from bank_ledger.ledger.store import LedgerStore


@dataclass(frozen=True)
class DeltaResult:
    applied: bool


class BalanceMutator:
    def __init__(self, store: LedgerStore):
        self.store = store

    async def apply_delta(self, account_id: uuid.UUID, signed_cents: int) -> DeltaResult:
        if signed_cents == 0:
            raise ValueError("Balance delta must be non-zero")

        if signed_cents > 0:
            rows = await self.store.increment_balance(account_id, signed_cents)
        else:
            rows = await self.store.decrement_balance_if_sufficient(account_id, -signed_cents)

        return DeltaResult(applied=rows == 1)
