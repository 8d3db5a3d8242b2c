"""
API keys router: machine access for posting to an account.

Key management (require JWT, customers only):
  POST   /api-keys/generate        : Create a key (plaintext shown once)
  GET    /api-keys                 : List your keys
  DELETE /api-keys/{key_id}        : Revoke a key

Key-authenticated:
  POST   /api-keys/transactions?access_token=<key>
      Post a credit or debit to the key's account, or to another account
      owned by the same customer. Accepts an `Idempotency-Key` header.

A missing, unknown, revoked or expired key gets 401.
"""

import uuid

from fastapi import APIRouter, Depends, Header, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.database import get_db
from bank_ledger.dependencies import require_customer
from bank_ledger.models.user import User
from bank_ledger.routers.transactions import posting_status
from bank_ledger.schemas.api_key import (
    ApiKeyCreatedResponse,
    ApiKeyCreateRequest,
    ApiKeyResponse,
    ApiKeyTransactionRequest,
)
from bank_ledger.schemas.transaction import PostingResponse
from bank_ledger.services import api_key_service

router = APIRouter()


@router.post(
    "/generate",
    response_model=ApiKeyCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate an API key",
)
async def generate_key(
    request: ApiKeyCreateRequest,
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Create an API key bound to one of your accounts.

    Store the returned `api_key` now: only its digest is kept, so it can
    never be shown again.
    """
    api_key, plaintext = await api_key_service.generate_key(
        db=db,
        user_id=user.id,
        account_id=request.account_id,
        name=request.name,
        expires_in_days=request.expires_in_days,
    )
    return ApiKeyCreatedResponse(
        **ApiKeyResponse.model_validate(api_key).model_dump(),
        api_key=plaintext,
    )


@router.get(
    "",
    response_model=list[ApiKeyResponse],
    summary="List your API keys",
)
async def list_keys(
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    return await api_key_service.list_keys(db, user.id)


@router.delete(
    "/{key_id}",
    response_model=ApiKeyResponse,
    summary="Revoke an API key",
)
async def revoke_key(
    key_id: uuid.UUID,
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    return await api_key_service.revoke_key(db, user.id, key_id)


@router.post(
    "/transactions",
    response_model=PostingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post a transaction with an API key",
)
async def post_transaction(
    request: ApiKeyTransactionRequest,
    response: Response,
    access_token: str | None = Query(None, description="API key"),
    idempotency_key: str | None = Header(None, alias="Idempotency-Key", max_length=255),
    db: AsyncSession = Depends(get_db),
):
    """
    Post a **credit** (deposit) or **debit** (withdrawal).

    Debits are checked against the balance exactly like customer
    withdrawals; a denied debit is recorded and returned as 409.
    """
    api_key = await api_key_service.authenticate(db, access_token)
    txn, duplicate = await api_key_service.post_transaction(
        db=db,
        api_key=api_key,
        transaction_type=request.transaction_type,
        amount_cents=request.amount_cents,
        account_id=request.account_id,
        idempotency_key=idempotency_key,
    )
    posting_status(response, duplicate)
    return PostingResponse(transaction=txn, duplicate=duplicate)
