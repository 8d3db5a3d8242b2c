"""
User service: read-only customer views for bank managers.

A manager audits starting from a customer: find them by name, email or
phone, then open their profile to see every account and the most recent
ledger rows across those accounts (denied attempts included).
"""

import uuid

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.exceptions import UserNotFoundError
from bank_ledger.models.account import Account
from bank_ledger.models.transaction import Transaction
from bank_ledger.models.user import User, UserRole


async def manager_list_users(
    db: AsyncSession,
    search: str | None = None,
    role: UserRole | None = None,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[User], int]:
    """
    [MANAGER ONLY] Page through users, oldest first.

    search matches a substring of the email, first name, last name or
    phone number, ignoring case.

    Returns:
        Tuple of (users on this page, total users matching the filters).
    """
    filters = []
    if search:
        pattern = f"%{search.strip()}%"
        filters.append(
            or_(
                User.email.ilike(pattern),
                User.first_name.ilike(pattern),
                User.last_name.ilike(pattern),
                User.phone_number.ilike(pattern),
            )
        )
    if role is not None:
        filters.append(User.role == role)

    total = await db.scalar(select(func.count()).select_from(User).where(*filters))
    result = await db.execute(
        select(User)
        .where(*filters)
        .order_by(User.created_at, User.email)
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all()), total


async def manager_get_user(
    db: AsyncSession,
    user_id: uuid.UUID,
    recent: int = 20,
) -> dict:
    """
    [MANAGER ONLY] One user's profile, all accounts and latest ledger rows.

    Raises:
        UserNotFoundError: If the user doesn't exist.
    """
    user = await db.get(User, user_id)
    if user is None:
        raise UserNotFoundError(user_id)

    accounts = await db.execute(
        select(Account).where(Account.user_id == user_id).order_by(Account.created_at)
    )
    owned = select(Account.id).where(Account.user_id == user_id)
    transactions = await db.execute(
        select(Transaction)
        .where(Transaction.account_id.in_(owned))
        .order_by(Transaction.created_at.desc())
        .limit(recent)
    )
    return {
        "user": user,
        "accounts": list(accounts.scalars().all()),
        "recent_transactions": list(transactions.scalars().all()),
    }
