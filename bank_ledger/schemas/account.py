"""
Pydantic schemas for Account endpoints.

All monetary amounts are expressed in integer cents.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field

from bank_ledger.models.account import AccountType


class AccountCreateRequest(BaseModel):
    """Request body for POST /accounts."""
    account_type: AccountType = Field(
        default=AccountType.CHECKING,
        description="Type of bank account to open",
    )


class AccountResponse(BaseModel):
    """Public representation of a bank account."""
    id: uuid.UUID
    user_id: uuid.UUID
    account_type: AccountType
    account_number: str
    routing_number: str
    balance_cents: int
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class AccountLookupResponse(BaseModel):
    """Minimal account info returned by the lookup endpoint.

    Excludes balance and owner: it only lets a customer confirm an account
    number before sending money to it.
    """
    id: uuid.UUID
    account_type: AccountType
    account_number: str
    routing_number: str

    model_config = {"from_attributes": True}


class BalanceResponse(BaseModel):
    """
    Balance check response with both stored and computed values.

    `match` says whether the stored balance equals the sum of the
    account's approved ledger rows.
    """
    account_id: uuid.UUID
    balance_cents: int
    computed_balance_cents: int
    match: bool
