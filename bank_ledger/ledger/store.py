"""
Ledger Store: the only code that reads and writes accounts and ledger rows
on behalf of the money-movement core.

A LedgerStore wraps one AsyncSession and is constructed per unit of work
(normally per request). Nothing is cached at module level, so tests can
hand the poster a store over any session, or a stand-in object with the
same methods.

Two primitives carry the correctness guarantees:

  decrement_balance_if_sufficient()
      UPDATE accounts SET balance_cents = balance_cents - :amount
      WHERE id = :id AND balance_cents >= :amount
    The condition and the mutation are one statement, so two concurrent
    debits can never both observe the same pre-debit balance. The returned
    row count is the whole answer: 1 = applied, 0 = not applied.

  insert_transaction()
    Returns Inserted(row) or Conflict(key). Conflict means the INSERT
    violated uq_transactions_idempotency, i.e. an identical request got
    there first. Every other IntegrityError is a real failure and is
    raised. The insert runs in its own SAVEPOINT so a conflicting INSERT
    leaves the surrounding transaction usable.
"""

import uuid
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, AsyncSessionTransaction

from bank_ledger.models.account import Account
from bank_ledger.models.transaction import (
    IDEMPOTENCY_CONSTRAINT,
    Transaction,
    TransactionType,
)


# SQLite reports unique violations by column list rather than constraint name
_SQLITE_IDEMPOTENCY_MARKER = "transactions.idempotency_key"


@dataclass(frozen=True)
class NaturalKey:
    """The fields that identify one logical posting for idempotency purposes."""

    idempotency_key: str | None
    transaction_type: TransactionType
    account_id: uuid.UUID
    amount_cents: int
    rule_ref: str = ""


@dataclass(frozen=True)
class Inserted:
    transaction: Transaction


@dataclass(frozen=True)
class Conflict:
    key: NaturalKey


InsertResult = Inserted | Conflict


def is_idempotency_violation(exc: IntegrityError) -> bool:
    message = str(exc.orig)
    return IDEMPOTENCY_CONSTRAINT in message or _SQLITE_IDEMPOTENCY_MARKER in message


class LedgerStore:
    """Persistence operations used by the money-movement core."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def savepoint(self) -> AsyncSessionTransaction:
        """Open a SAVEPOINT inside the current transaction."""
        return await self.session.begin_nested()

    async def get_account(self, account_id: uuid.UUID) -> Account | None:
        # populate_existing: a conditional UPDATE may have changed the row
        # behind the identity map's back
        result = await self.session.execute(
            select(Account)
            .where(Account.id == account_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_account_by_number(
        self, account_number: str, routing_number: str | None = None
    ) -> Account | None:
        query = select(Account).where(Account.account_number == account_number)
        if routing_number is not None:
            query = query.where(Account.routing_number == routing_number)
        result = await self.session.execute(
            query.execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_transaction(self, key: NaturalKey) -> Transaction | None:
        """Find the row matching the idempotency key AND every natural field."""
        if key.idempotency_key is None:
            return None
        result = await self.session.execute(
            select(Transaction).where(
                Transaction.idempotency_key == key.idempotency_key,
                Transaction.transaction_type == key.transaction_type,
                Transaction.account_id == key.account_id,
                Transaction.amount_cents == key.amount_cents,
                Transaction.rule_ref == key.rule_ref,
            )
        )
        return result.scalar_one_or_none()

    async def increment_balance(self, account_id: uuid.UUID, amount_cents: int) -> int:
        """Credit an account unconditionally. Returns the affected row count."""
        result = await self.session.execute(
            update(Account)
            .where(Account.id == account_id)
            .values(balance_cents=Account.balance_cents + amount_cents)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def decrement_balance_if_sufficient(
        self, account_id: uuid.UUID, amount_cents: int
    ) -> int:
        """Debit an account only if it holds at least amount_cents. Returns the row count."""
        result = await self.session.execute(
            update(Account)
            .where(Account.id == account_id)
            .where(Account.balance_cents >= amount_cents)
            .values(balance_cents=Account.balance_cents - amount_cents)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def insert_transaction(self, transaction: Transaction) -> InsertResult:
        # Captured up front: a rolled-back flush expunges the pending row
        key = NaturalKey(
            idempotency_key=transaction.idempotency_key,
            transaction_type=transaction.transaction_type,
            account_id=transaction.account_id,
            amount_cents=transaction.amount_cents,
            rule_ref=transaction.rule_ref or "",
        )
        try:
            async with self.session.begin_nested():
                self.session.add(transaction)
                await self.session.flush()
        except IntegrityError as exc:
            if not is_idempotency_violation(exc):
                raise
            return Conflict(key)
        return Inserted(transaction)
