"""
Pydantic schemas for ledger postings.

Amounts come IN as decimal strings ("100.50": positive, at most two
decimal places) and go OUT as integer cents plus a formatted string.
Neither direction ever goes through float.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

from bank_ledger.exceptions import InvalidAmountError
from bank_ledger.ledger.money import format_cents, parse_amount_to_cents
from bank_ledger.models.transaction import Direction, TransactionStatus, TransactionType


def validate_amount(value: str) -> str:
    """Field validator body shared by every schema with an `amount`."""
    try:
        parse_amount_to_cents(value)
    except InvalidAmountError as exc:
        raise ValueError(exc.detail)
    return value.strip()


class AmountRequest(BaseModel):
    """Base for request bodies carrying a decimal `amount` string."""

    amount: str = Field(description='Decimal amount, e.g. "100.50"')

    @field_validator("amount")
    @classmethod
    def amount_format(cls, value: str) -> str:
        return validate_amount(value)

    @property
    def amount_cents(self) -> int:
        return parse_amount_to_cents(self.amount)


class TransactionCreateRequest(BaseModel):
    """
    Request body for POST /transactions.

    Variants, by transaction_type:
      - deposit / withdrawal: account_id + amount
      - billpay: rule_id of one of your bill-pay rules
      - internal_transfer: rule_id of one of your internal transfer rules
      - external_transfer: rule_id of one of your external transfer rules
        (outbound only; inbound credits use POST /transactions/inbound)
    """
    transaction_type: TransactionType
    account_id: uuid.UUID | None = None
    amount: str | None = Field(None, description='Decimal amount, e.g. "100.50"')
    rule_id: uuid.UUID | None = None

    @field_validator("amount")
    @classmethod
    def amount_format(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return validate_amount(value)

    @model_validator(mode="after")
    def fields_match_type(self):
        if self.transaction_type in (TransactionType.DEPOSIT, TransactionType.WITHDRAWAL):
            if self.account_id is None or self.amount is None:
                raise ValueError(f"{self.transaction_type.value} requires account_id and amount")
            if self.rule_id is not None:
                raise ValueError(f"{self.transaction_type.value} does not take a rule_id")
        else:
            if self.rule_id is None:
                raise ValueError(f"{self.transaction_type.value} requires rule_id")
            if self.amount is not None or self.account_id is not None:
                raise ValueError("Rule-based transactions take their amount and account from the rule")
        return self

    @property
    def amount_cents(self) -> int:
        return parse_amount_to_cents(self.amount)


class InboundTransferRequest(AmountRequest):
    """
    Request body for POST /transactions/inbound.

    A credit initiated by another bank: the destination is addressed by its
    public account and routing numbers.
    """
    account_number: str = Field(pattern=r"^\d{1,17}$")
    routing_number: str = Field(pattern=r"^\d{9}$")
    sender_name: str | None = Field(None, max_length=255)
    sender_routing_number: str | None = Field(None, pattern=r"^\d{9}$")
    sender_account_number: str | None = Field(None, pattern=r"^\d{1,17}$")


class TransactionResponse(BaseModel):
    """Public representation of a ledger row."""
    id: uuid.UUID
    account_id: uuid.UUID
    amount_cents: int
    transaction_type: TransactionType
    direction: Direction
    status: TransactionStatus
    denial_reason: str | None
    bill_pay_rule_id: uuid.UUID | None
    transfer_rule_id: uuid.UUID | None
    transfer_group_id: uuid.UUID | None
    external_routing_number: str | None
    external_account_number: str | None
    external_nickname: str | None
    created_at: datetime

    model_config = {"from_attributes": True}

    @computed_field
    @property
    def amount(self) -> str:
        return format_cents(self.amount_cents)


class PostingResponse(BaseModel):
    """
    Result of a posting.

    duplicate=True means the request replayed an earlier one (same
    Idempotency-Key and fields) and `transaction` is that original row.
    For a transfer-rule run `transaction` is the outbound leg and
    `credit_transaction` the inbound one (None when the destination is
    outside the bank).
    """
    transaction: TransactionResponse
    credit_transaction: TransactionResponse | None = None
    duplicate: bool = False
