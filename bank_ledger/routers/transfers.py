"""
Transfers router: immediate transfers, recurring transfer rules, history.

Endpoints (customers only):
  POST   /transfers/internal           : Between two of your own accounts
  POST   /transfers/external           : To another person (Zelle-style)
  GET    /transfers/lookup             : Find a recipient by email or phone
  GET    /transfers/rules              : List your recurring transfer rules
  POST   /transfers/rules              : Schedule a recurring transfer
  DELETE /transfers/rules/{rule_id}    : Cancel a recurring transfer
  GET    /transfers/history            : Transfer legs on your accounts

A transfer posts two linked ledger rows, a debit on the source and a
credit on the destination, sharing a transfer_group_id. Both land or
neither does. A recipient outside the bank gets no credit row; only the
debit is posted (black_hole=true in the response).

Immediate transfers honour the `Idempotency-Key` header the same way
POST /transactions does: a replay returns the original legs with status 200.
"""

import uuid

from fastapi import APIRouter, Depends, Header, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.database import get_db
from bank_ledger.dependencies import require_customer
from bank_ledger.models.user import User
from bank_ledger.routers.transactions import posting_status
from bank_ledger.schemas.transaction import TransactionResponse
from bank_ledger.schemas.transfer import (
    ExternalTransferRequest,
    InternalTransferRequest,
    RecipientLookupResponse,
    TransferResponse,
    TransferRuleCreateRequest,
    TransferRuleResponse,
)
from bank_ledger.services import transfer_service

router = APIRouter()


@router.post(
    "/internal",
    response_model=TransferResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Transfer between your own accounts",
)
async def transfer_internal(
    request: InternalTransferRequest,
    response: Response,
    idempotency_key: str | None = Header(None, alias="Idempotency-Key", max_length=255),
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Move money between two accounts you own.

    If the source account has insufficient funds, the transfer is rejected
    (409) and a denied ledger row is recorded.
    """
    result = await transfer_service.transfer_internal(
        db=db,
        user_id=user.id,
        source_account_id=request.source_account_id,
        destination_account_id=request.destination_account_id,
        amount_cents=request.amount_cents,
        idempotency_key=idempotency_key,
    )
    posting_status(response, result["duplicate"])
    return result


@router.post(
    "/external",
    response_model=TransferResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Send money to another person",
)
async def transfer_external(
    request: ExternalTransferRequest,
    response: Response,
    idempotency_key: str | None = Header(None, alias="Idempotency-Key", max_length=255),
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Send money by recipient email, phone number, or account + routing number.

    A recipient who banks here is credited on their oldest active account.
    Anyone else only sees your debit on our ledger.
    """
    result = await transfer_service.transfer_external(
        db=db,
        user=user,
        source_account_id=request.source_account_id,
        amount_cents=request.amount_cents,
        recipient_email=request.recipient_email,
        recipient_phone=request.recipient_phone,
        recipient_account_number=request.recipient_account_number,
        recipient_routing_number=request.recipient_routing_number,
        recipient_nickname=request.recipient_nickname,
        idempotency_key=idempotency_key,
    )
    posting_status(response, result["duplicate"])
    return result


@router.get(
    "/lookup",
    response_model=RecipientLookupResponse,
    summary="Find a transfer recipient",
)
async def lookup_recipient(
    email: str | None = Query(None, max_length=255),
    phone: str | None = Query(None, pattern=r"^\+[1-9]\d{1,14}$"),
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """Confirm who an email or phone number belongs to before sending money."""
    return await transfer_service.lookup_recipient(db, email=email, phone=phone)


@router.get(
    "/rules",
    response_model=list[TransferRuleResponse],
    summary="List your recurring transfers",
)
async def list_transfer_rules(
    include_one_off: bool = Query(False, description="Include rules behind immediate transfers"),
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    return await transfer_service.get_transfer_rules(db, user.id, include_one_off=include_one_off)


@router.post(
    "/rules",
    response_model=TransferRuleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule a recurring transfer",
)
async def create_transfer_rule(
    request: TransferRuleCreateRequest,
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Schedule a recurring transfer.

    next_run_at in the response is the first occurrence of the schedule
    strictly after now, counted from start_time.
    """
    return await transfer_service.create_transfer_rule(
        db=db,
        user_id=user.id,
        source_account_id=request.source_account_id,
        amount_cents=request.amount_cents,
        frequency=request.frequency,
        start_time=request.start_time,
        end_time=request.end_time,
        destination_account_id=request.destination_account_id,
        external_routing_number=request.external_routing_number,
        external_account_number=request.external_account_number,
        external_nickname=request.external_nickname,
    )


@router.delete(
    "/rules/{rule_id}",
    response_model=TransferRuleResponse,
    summary="Cancel a recurring transfer",
)
async def cancel_transfer_rule(
    rule_id: uuid.UUID,
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    return await transfer_service.cancel_transfer_rule(db, user.id, rule_id)


@router.get(
    "/history",
    response_model=list[TransactionResponse],
    summary="Your transfer history",
)
async def transfer_history(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """Both legs of every transfer touching your accounts, newest first."""
    return await transfer_service.get_transfer_history(db, user.id, limit=limit, offset=offset)
