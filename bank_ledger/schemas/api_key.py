"""
Pydantic schemas for API keys and API-key postings.
"""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from bank_ledger.schemas.transaction import AmountRequest


class ApiKeyCreateRequest(BaseModel):
    """Request body for POST /api-keys/generate."""
    account_id: uuid.UUID
    name: str | None = Field(None, max_length=100)
    expires_in_days: int | None = Field(None, ge=1, le=3650)


class ApiKeyResponse(BaseModel):
    """An API key as listed: never includes the key itself."""
    id: uuid.UUID
    account_id: uuid.UUID
    key_prefix: str
    name: str | None
    expires_at: datetime | None
    last_used_at: datetime | None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ApiKeyCreatedResponse(ApiKeyResponse):
    """Returned once, at generation: the only time the plaintext key is shown."""
    api_key: str


class ApiKeyTransactionRequest(AmountRequest):
    """
    Request body for POST /api-keys/transactions.

    account_id defaults to the key's own account; any other account must
    belong to the key's owner.
    """
    transaction_type: Literal["credit", "debit"]
    account_id: uuid.UUID | None = None
