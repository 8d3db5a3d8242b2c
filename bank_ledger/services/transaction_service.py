"""
Transaction service: deposits, withdrawals, inbound external credits,
rule dispatch for POST /transactions, and ledger queries.

Every balance change is delegated to the ledger's TransactionPoster; this
module only decides WHAT to post (which account, which signed amount,
which type) after checking the caller may post it.

Outcome handling:
  The poster returns Approved, Denied or Duplicate. unwrap_posting()
  turns those into what the HTTP layer needs: the ledger row plus a
  duplicate flag, or a TransactionDeniedError. The denied row itself is
  already written by then, and get_db() commits on BankAPIError, so the
  audit trail survives the error response.

Manager read-only functions:
  Functions prefixed with `manager_` read across all customers. The router
  layer enforces that only BANK_MANAGER users reach them.
"""

import uuid

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.exceptions import AccountNotFoundError, TransactionDeniedError
from bank_ledger.ledger import (
    Denied,
    Duplicate,
    ExternalParty,
    LedgerStore,
    PostingIntent,
    TransactionPoster,
)
from bank_ledger.ledger.poster import PostingOutcome
from bank_ledger.models.account import Account
from bank_ledger.models.transaction import Transaction, TransactionType
from bank_ledger.services.account_service import get_account


def get_poster(db: AsyncSession) -> TransactionPoster:
    return TransactionPoster(LedgerStore(db))


def unwrap_posting(outcome: PostingOutcome) -> tuple[Transaction, bool]:
    """
    Translate a posting outcome for the HTTP layer.

    Returns:
        (ledger row, duplicate flag)

    Raises:
        TransactionDeniedError: For a Denied outcome.
    """
    if isinstance(outcome, Denied):
        raise TransactionDeniedError(
            reason=outcome.reason,
            transaction_id=outcome.transaction.id,
            account_id=outcome.transaction.account_id,
            requested_cents=abs(outcome.transaction.amount_cents),
        )
    return outcome.transaction, isinstance(outcome, Duplicate)


async def deposit(
    db: AsyncSession,
    user_id: uuid.UUID,
    account_id: uuid.UUID,
    amount_cents: int,
    idempotency_key: str | None = None,
) -> tuple[Transaction, bool]:
    """
    Credit one of the caller's accounts.

    Raises:
        AccountNotFoundError / UnauthorizedAccessError: Not the caller's account.
        TransactionDeniedError: The account is inactive.
    """
    await get_account(db, account_id, user_id)
    outcome = await get_poster(db).post(
        PostingIntent(
            account_id=account_id,
            amount_cents=amount_cents,
            transaction_type=TransactionType.DEPOSIT,
            idempotency_key=idempotency_key,
        )
    )
    return unwrap_posting(outcome)


async def withdraw(
    db: AsyncSession,
    user_id: uuid.UUID,
    account_id: uuid.UUID,
    amount_cents: int,
    idempotency_key: str | None = None,
) -> tuple[Transaction, bool]:
    """
    Debit one of the caller's accounts.

    Raises:
        AccountNotFoundError / UnauthorizedAccessError: Not the caller's account.
        TransactionDeniedError: Insufficient funds or inactive account.
    """
    await get_account(db, account_id, user_id)
    outcome = await get_poster(db).post(
        PostingIntent(
            account_id=account_id,
            amount_cents=-amount_cents,
            transaction_type=TransactionType.WITHDRAWAL,
            idempotency_key=idempotency_key,
        )
    )
    return unwrap_posting(outcome)


async def receive_inbound_transfer(
    db: AsyncSession,
    account_number: str,
    routing_number: str,
    amount_cents: int,
    sender: ExternalParty | None = None,
    idempotency_key: str | None = None,
) -> tuple[Transaction, bool]:
    """
    Credit an account from outside the bank.

    The sending bank addresses the account by its public numbers; there is
    no customer session behind this call.

    Raises:
        AccountNotFoundError: If no account has those numbers.
        TransactionDeniedError: The account is inactive.
    """
    account = await LedgerStore(db).get_account_by_number(account_number, routing_number)
    if account is None:
        raise AccountNotFoundError(account_number)

    outcome = await get_poster(db).post(
        PostingIntent(
            account_id=account.id,
            amount_cents=amount_cents,
            transaction_type=TransactionType.EXTERNAL_TRANSFER,
            idempotency_key=idempotency_key,
            external=sender,
        )
    )
    return unwrap_posting(outcome)


async def get_transactions(
    db: AsyncSession,
    user_id: uuid.UUID,
    account_id: uuid.UUID | None = None,
    status_filter: str | None = None,
    type_filter: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Transaction]:
    """
    List ledger rows on the caller's accounts, newest first.

    With account_id, only that account (ownership verified); otherwise
    every account the caller owns.
    """
    if account_id is not None:
        await get_account(db, account_id, user_id)
        query = select(Transaction).where(Transaction.account_id == account_id)
    else:
        owned = select(Account.id).where(Account.user_id == user_id)
        query = select(Transaction).where(Transaction.account_id.in_(owned))

    return await _paginate(query, db, status_filter, type_filter, limit, offset)


async def get_transaction(
    db: AsyncSession,
    user_id: uuid.UUID,
    transaction_id: uuid.UUID,
) -> Transaction:
    """
    Get a single ledger row on one of the caller's accounts.

    Raises:
        HTTPException 404: If the row doesn't exist or isn't on the
                           caller's accounts.
    """
    result = await db.execute(
        select(Transaction)
        .join(Account, Account.id == Transaction.account_id)
        .where(Transaction.id == transaction_id)
        .where(Account.user_id == user_id)
    )
    txn = result.scalar_one_or_none()

    if txn is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Transaction not found",
        )
    return txn


async def get_transfer_group(
    db: AsyncSession,
    transfer_group_id: uuid.UUID,
) -> list[Transaction]:
    """Both legs of a transfer (or the single leg of a black-hole transfer)."""
    result = await db.execute(
        select(Transaction)
        .where(Transaction.transfer_group_id == transfer_group_id)
        .order_by(Transaction.amount_cents)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Bank manager read-only functions
# ---------------------------------------------------------------------------

async def manager_get_all_transactions(
    db: AsyncSession,
    account_id: uuid.UUID | None = None,
    status_filter: str | None = None,
    type_filter: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Transaction]:
    """
    [MANAGER ONLY] List ledger rows across every customer, newest first.

    Includes denied attempts, which is what makes this the audit trail.
    """
    query = select(Transaction)
    if account_id is not None:
        if await db.get(Account, account_id) is None:
            raise AccountNotFoundError(account_id)
        query = query.where(Transaction.account_id == account_id)

    return await _paginate(query, db, status_filter, type_filter, limit, offset)


async def _paginate(query, db, status_filter, type_filter, limit, offset) -> list[Transaction]:
    if status_filter:
        query = query.where(Transaction.status == status_filter)
    if type_filter:
        query = query.where(Transaction.transaction_type == type_filter)

    result = await db.execute(
        query.order_by(Transaction.created_at.desc()).limit(limit).offset(offset)
    )
    return list(result.scalars().all())
