"""
Account service: business logic for bank account operations.

This module handles:
  - Opening accounts (with unique account number generation)
  - Account retrieval (single or list, scoped to the owning user)
  - Balance verification (stored balance vs. the sum of approved ledger rows)
  - Deactivation (accounts are never deleted)
  - Lookup by account number, for transfer recipients

Ownership enforcement:
  Every query function takes a `user_id`: the authenticated customer, set
  by the dependency layer. A customer cannot reach another user's accounts
  through this service; the scoping happens here, not in the router.

Balances are never written here. Every balance change goes through the
ledger's TransactionPoster so it always has a ledger row beside it.
"""

import secrets
import uuid

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.exceptions import AccountNotFoundError, UnauthorizedAccessError
from bank_ledger.models.account import Account, AccountType
from bank_ledger.models.transaction import Transaction, TransactionStatus


ACCOUNT_NUMBER_DIGITS = 12


def _generate_account_number() -> str:
    """
    Generate a random account number.

    First digit is non-zero so the number keeps its length when someone
    stores it as an integer. CSPRNG-backed to avoid sequential guessing.
    """
    first = str(secrets.randbelow(9) + 1)
    rest = "".join(str(secrets.randbelow(10)) for _ in range(ACCOUNT_NUMBER_DIGITS - 1))
    return first + rest


async def create_account(
    db: AsyncSession,
    user_id: uuid.UUID,
    account_type: AccountType = AccountType.CHECKING,
) -> Account:
    """
    Open a new account for a customer with a zero balance.

    Returns:
        The newly created Account instance.
    """
    # Retry on collision (astronomically unlikely at 12 digits)
    for _ in range(10):
        account_number = _generate_account_number()
        existing = await db.execute(
            select(Account).where(Account.account_number == account_number)
        )
        if existing.scalar_one_or_none() is None:
            break
    else:
        raise RuntimeError("Failed to generate a unique account number")

    account = Account(
        user_id=user_id,
        account_type=account_type,
        account_number=account_number,
        balance_cents=0,
    )
    db.add(account)
    await db.flush()
    return account


async def get_accounts(
    db: AsyncSession,
    user_id: uuid.UUID,
    include_inactive: bool = False,
) -> list[Account]:
    """List a customer's accounts, oldest first."""
    query = select(Account).where(Account.user_id == user_id)
    if not include_inactive:
        query = query.where(Account.is_active.is_(True))
    result = await db.execute(query.order_by(Account.created_at))
    return list(result.scalars().all())


async def get_account(
    db: AsyncSession,
    account_id: uuid.UUID,
    user_id: uuid.UUID,
) -> Account:
    """
    Get a single account, verifying ownership.

    Raises:
        AccountNotFoundError: If the account doesn't exist.
        UnauthorizedAccessError: If the account belongs to someone else.
    """
    result = await db.execute(
        select(Account)
        .where(Account.id == account_id)
        .execution_options(populate_existing=True)
    )
    account = result.scalar_one_or_none()

    if account is None:
        raise AccountNotFoundError(account_id)

    if account.user_id != user_id:
        raise UnauthorizedAccessError("You do not have access to this account")

    return account


async def get_balance(
    db: AsyncSession,
    account_id: uuid.UUID,
    user_id: uuid.UUID,
) -> dict:
    """
    Get the account balance: stored and recomputed from the ledger.

    The computed balance is the sum of the account's approved (signed)
    ledger rows. A mismatch means something changed the balance outside
    the TransactionPoster.

    Returns:
        Dict with balance_cents, computed_balance_cents, match.
    """
    account = await get_account(db, account_id, user_id)
    return await _balance_report(db, account)


async def deactivate_account(
    db: AsyncSession,
    account_id: uuid.UUID,
    user_id: uuid.UUID,
) -> Account:
    """
    Soft-close an account. Later postings against it are denied.

    The row stays because ledger rows keep referencing it.
    """
    account = await get_account(db, account_id, user_id)
    account.is_active = False
    await db.flush()
    return account


async def lookup_account(
    db: AsyncSession,
    account_number: str,
    routing_number: str | None = None,
) -> Account:
    """
    Find an active account by its public number (no ownership check).

    Callers only ever return the account's id, type and numbers; never
    the balance or the owner.

    Raises:
        AccountNotFoundError: If no active account has that number.
    """
    query = select(Account).where(
        Account.account_number == account_number,
        Account.is_active.is_(True),
    )
    if routing_number is not None:
        query = query.where(Account.routing_number == routing_number)

    result = await db.execute(query)
    account = result.scalar_one_or_none()
    if account is None:
        raise AccountNotFoundError(account_number)
    return account


async def _balance_report(db: AsyncSession, account: Account) -> dict:
    computed_balance_cents = await compute_ledger_balance(db, account.id)
    return {
        "account_id": account.id,
        "balance_cents": account.balance_cents,
        "computed_balance_cents": computed_balance_cents,
        "match": account.balance_cents == computed_balance_cents,
    }


async def compute_ledger_balance(db: AsyncSession, account_id: uuid.UUID) -> int:
    """Sum of the account's approved ledger rows (amounts are signed)."""
    result = await db.execute(
        select(func.coalesce(func.sum(Transaction.amount_cents), 0))
        .where(Transaction.account_id == account_id)
        .where(Transaction.status == TransactionStatus.APPROVED)
    )
    return int(result.scalar())


# ---------------------------------------------------------------------------
# Bank manager read-only functions
# ---------------------------------------------------------------------------

async def manager_get_all_accounts(db: AsyncSession) -> list[Account]:
    """[MANAGER ONLY] List all accounts across all customers."""
    result = await db.execute(select(Account).order_by(Account.created_at))
    return list(result.scalars().all())


async def manager_get_balance(
    db: AsyncSession,
    account_id: uuid.UUID,
) -> dict:
    """
    [MANAGER ONLY] Get any account's balance report without ownership check.

    Raises:
        AccountNotFoundError: If the account doesn't exist.
    """
    account = await db.get(Account, account_id)
    if account is None:
        raise AccountNotFoundError(account_id)
    return await _balance_report(db, account)
