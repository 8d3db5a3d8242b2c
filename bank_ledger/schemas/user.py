"""
Pydantic schemas for the manager's customer views.

Password hashes never leave the service: UserSummary lists exactly the
fields a manager may see.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel

from bank_ledger.models.user import UserRole
from bank_ledger.schemas.account import AccountResponse
from bank_ledger.schemas.transaction import TransactionResponse


class UserSummary(BaseModel):
    id: uuid.UUID
    email: str
    first_name: str
    last_name: str
    phone_number: str | None
    role: UserRole
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class UserListResponse(BaseModel):
    """One page of users plus the total matching the filters."""
    users: list[UserSummary]
    total: int
    limit: int
    offset: int


class UserDetailResponse(BaseModel):
    user: UserSummary
    accounts: list[AccountResponse]
    recent_transactions: list[TransactionResponse]
