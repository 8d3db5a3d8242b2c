"""
Pydantic schemas for bill pay: payees and bill-pay rules.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

from bank_ledger.ledger.money import parse_amount_to_cents
from bank_ledger.schemas.transaction import AmountRequest, validate_amount


class PayeeCreateRequest(BaseModel):
    """Request body for POST /billpay/payees."""
    business_name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    phone: str = Field(min_length=7, max_length=20)
    street_address: str = Field(min_length=1, max_length=255)
    address_line_2: str | None = Field(None, max_length=255)
    city: str = Field(min_length=1, max_length=100)
    state_or_territory: str = Field(pattern=r"^[A-Z]{2}$")
    postal_code: str = Field(pattern=r"^\d{5}(-\d{4})?$")
    country: str = "United States"
    account_number: str = Field(pattern=r"^\d{1,17}$")
    routing_number: str = Field(pattern=r"^\d{9}$")


class PayeeResponse(BaseModel):
    id: uuid.UUID
    business_name: str
    email: str
    phone: str
    street_address: str
    address_line_2: str | None
    city: str
    state_or_territory: str
    postal_code: str
    country: str
    account_number: str
    routing_number: str
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class BillPayRuleCreateRequest(AmountRequest):
    """
    Request body for POST /billpay/rules.

    frequency is weekly, biweekly, monthly, quarterly, yearly, or a
    five-field cron expression such as "0 9 1 * *".
    """
    source_account_id: uuid.UUID
    payee_id: uuid.UUID
    frequency: str
    start_time: datetime
    end_time: datetime | None = None


class BillPayRuleUpdateRequest(BaseModel):
    """
    Request body for PUT /billpay/rules/{rule_id}. Omitted fields are kept.

    A new start_time must be in the future. Any schedule change
    recomputes next_run_at from the rule's start_time.
    """
    source_account_id: uuid.UUID | None = None
    payee_id: uuid.UUID | None = None
    amount: str | None = None
    frequency: str | None = None
    start_time: datetime | None = None
    end_time: datetime | None = None

    @field_validator("amount")
    @classmethod
    def amount_format(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return validate_amount(value)

    @property
    def amount_cents(self) -> int | None:
        if self.amount is None:
            return None
        return parse_amount_to_cents(self.amount)


class BillPayRuleResponse(BaseModel):
    id: uuid.UUID
    source_account_id: uuid.UUID
    payee_id: uuid.UUID
    amount_cents: int
    frequency: str
    start_time: datetime
    end_time: datetime | None
    next_run_at: datetime | None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}
