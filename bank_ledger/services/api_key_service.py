"""
API key service: machine credentials for posting to an account.

A key is created for one of the caller's accounts. The plaintext is
returned once; afterwards only its SHA-256 digest is kept, so a lookup is
a digest comparison on the indexed key_hash column.

Postings made with a key are ordinary deposits and withdrawals: they go
through the same TransactionPoster, the same idempotency slot and the same
denial rules as postings made with a bearer token.
"""

import logging
import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.config import settings
from bank_ledger.exceptions import InvalidApiKeyError, UnauthorizedAccessError
from bank_ledger.ledger.schedule import as_utc
from bank_ledger.models.account import Account
from bank_ledger.models.api_key import ApiKey
from bank_ledger.models.transaction import Transaction
from bank_ledger.security import generate_api_key, hash_api_key
from bank_ledger.services import transaction_service
from bank_ledger.services.account_service import get_account

logger = logging.getLogger(__name__)


async def generate_key(
    db: AsyncSession,
    user_id: uuid.UUID,
    account_id: uuid.UUID,
    name: str | None = None,
    expires_in_days: int | None = None,
) -> tuple[ApiKey, str]:
    """
    Create an API key bound to one of the caller's accounts.

    Returns:
        (stored key row, plaintext key). The plaintext is not recoverable
        later.
    """
    await get_account(db, account_id, user_id)

    plaintext = generate_api_key()
    ttl_days = expires_in_days or settings.API_KEY_DEFAULT_TTL_DAYS
    api_key = ApiKey(
        user_id=user_id,
        account_id=account_id,
        key_hash=hash_api_key(plaintext),
        key_prefix=plaintext[:10],
        name=name,
        expires_at=datetime.now(timezone.utc) + timedelta(days=ttl_days),
    )
    db.add(api_key)
    await db.flush()

    logger.info(
        "API key generated",
        extra={"api_key_id": str(api_key.id), "account_id": str(account_id)},
    )
    return api_key, plaintext


async def list_keys(db: AsyncSession, user_id: uuid.UUID) -> list[ApiKey]:
    result = await db.execute(
        select(ApiKey).where(ApiKey.user_id == user_id).order_by(ApiKey.created_at.desc())
    )
    return list(result.scalars().all())


async def revoke_key(db: AsyncSession, user_id: uuid.UUID, key_id: uuid.UUID) -> ApiKey:
    """
    Raises:
        InvalidApiKeyError: Unknown key, or not the caller's.
    """
    api_key = await db.get(ApiKey, key_id)
    if api_key is None or api_key.user_id != user_id:
        raise InvalidApiKeyError("API key not found")
    api_key.is_active = False
    await db.flush()
    logger.info("API key revoked", extra={"api_key_id": str(key_id)})
    return api_key


async def authenticate(db: AsyncSession, plaintext: str | None) -> ApiKey:
    """
    Resolve a plaintext key to its row and record the use.

    Raises:
        InvalidApiKeyError: Missing, unknown, revoked or expired key.
    """
    if not plaintext:
        raise InvalidApiKeyError("API key required")

    result = await db.execute(select(ApiKey).where(ApiKey.key_hash == hash_api_key(plaintext)))
    api_key = result.scalar_one_or_none()

    if api_key is None or not api_key.is_active:
        raise InvalidApiKeyError("Invalid API key")

    now = datetime.now(timezone.utc)
    if api_key.expires_at is not None and as_utc(api_key.expires_at) <= now:
        raise InvalidApiKeyError("API key has expired")

    api_key.last_used_at = now
    await db.flush()
    return api_key


async def post_transaction(
    db: AsyncSession,
    api_key: ApiKey,
    transaction_type: str,
    amount_cents: int,
    account_id: uuid.UUID | None = None,
    idempotency_key: str | None = None,
) -> tuple[Transaction, bool]:
    """
    Post a credit (deposit) or debit (withdrawal) with an API key.

    Raises:
        UnauthorizedAccessError: account_id belongs to someone else.
        TransactionDeniedError: Insufficient funds or inactive account.
    """
    target_id = account_id or api_key.account_id
    if target_id != api_key.account_id:
        account = await db.get(Account, target_id)
        if account is None or account.user_id != api_key.user_id:
            raise UnauthorizedAccessError("API key cannot post to this account")

    post = transaction_service.deposit if transaction_type == "credit" else transaction_service.withdraw
    return await post(db, api_key.user_id, target_id, amount_cents, idempotency_key)
