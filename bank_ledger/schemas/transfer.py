"""
Pydantic schemas for transfers and transfer rules.
"""

import uuid
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, model_validator

from bank_ledger.models.rules import TransferKind
from bank_ledger.schemas.transaction import AmountRequest, TransactionResponse


class InternalTransferRequest(AmountRequest):
    """Request body for POST /transfers/internal (between your own accounts)."""
    source_account_id: uuid.UUID
    destination_account_id: uuid.UUID

    @model_validator(mode="after")
    def accounts_must_differ(self):
        """Cannot transfer money to the same account."""
        if self.source_account_id == self.destination_account_id:
            raise ValueError("Cannot transfer to the same account")
        return self


class ExternalTransferRequest(AmountRequest):
    """
    Request body for POST /transfers/external (Zelle-style).

    Address the recipient by exactly one of: email, phone number, or
    account + routing number. A recipient that cannot be matched to one of
    our accounts receives nothing on our ledger; only your debit is posted.
    """
    source_account_id: uuid.UUID
    recipient_email: EmailStr | None = None
    recipient_phone: str | None = Field(None, pattern=r"^\+[1-9]\d{1,14}$")
    recipient_account_number: str | None = Field(None, pattern=r"^\d{1,17}$")
    recipient_routing_number: str | None = Field(None, pattern=r"^\d{9}$")
    recipient_nickname: str | None = Field(None, max_length=255)

    @model_validator(mode="after")
    def exactly_one_recipient(self):
        given = [
            self.recipient_email is not None,
            self.recipient_phone is not None,
            self.recipient_account_number is not None,
        ]
        if sum(given) != 1:
            raise ValueError(
                "Provide exactly one of recipient_email, recipient_phone "
                "or recipient_account_number"
            )
        if self.recipient_account_number is not None and self.recipient_routing_number is None:
            raise ValueError("recipient_routing_number is required with recipient_account_number")
        return self


class TransferResponse(BaseModel):
    """
    Result of a transfer.

    credit_transaction is None for a transfer to an unresolved recipient
    (black_hole=True). duplicate=True means this replayed an earlier request.
    """
    transfer_group_id: uuid.UUID | None
    transfer_rule_id: uuid.UUID | None
    debit_transaction: TransactionResponse
    credit_transaction: TransactionResponse | None
    amount_cents: int
    black_hole: bool
    duplicate: bool = False


class TransferRuleCreateRequest(AmountRequest):
    """
    Request body for POST /transfers/rules.

    Destination is either one of our accounts (destination_account_id) or
    an external account (routing + account number).
    """
    source_account_id: uuid.UUID
    destination_account_id: uuid.UUID | None = None
    external_routing_number: str | None = Field(None, pattern=r"^\d{9}$")
    external_account_number: str | None = Field(None, pattern=r"^\d{1,17}$")
    external_nickname: str | None = Field(None, max_length=255)
    frequency: str = Field(description="weekly, biweekly, monthly, quarterly or yearly")
    start_time: datetime
    end_time: datetime | None = None

    @model_validator(mode="after")
    def one_destination(self):
        external = self.external_routing_number is not None or self.external_account_number is not None
        if (self.destination_account_id is None) == (not external):
            raise ValueError(
                "Provide either destination_account_id or "
                "external_routing_number + external_account_number"
            )
        if external and (self.external_routing_number is None or self.external_account_number is None):
            raise ValueError("External destinations need both routing and account number")
        if self.destination_account_id == self.source_account_id:
            raise ValueError("Cannot transfer to the same account")
        return self


class TransferRuleResponse(BaseModel):
    id: uuid.UUID
    transfer_kind: TransferKind
    source_account_id: uuid.UUID
    destination_account_id: uuid.UUID | None
    external_routing_number: str | None
    external_account_number: str | None
    external_nickname: str | None
    amount_cents: int
    frequency: str | None
    start_time: datetime
    end_time: datetime | None
    next_run_at: datetime | None
    is_active: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class RecipientAccount(BaseModel):
    id: uuid.UUID
    account_type: str
    # Last four digits only
    account_number_last4: str


class RecipientLookupResponse(BaseModel):
    """Response for GET /transfers/lookup."""
    found: bool
    first_name: str | None = None
    last_name: str | None = None
    accounts: list[RecipientAccount] = []
