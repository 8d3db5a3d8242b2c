"""
Transactions router: post and list ledger rows.

Customer endpoints (require JWT, scoped to the authenticated user):
  POST /transactions                    : Deposit, withdrawal, or one run of a rule
  GET  /transactions                    : List ledger rows (with filters)
  GET  /transactions/{transaction_id}   : Get a single ledger row

Bank-to-bank endpoint (no user credentials):
  POST /transactions/inbound            : External credit addressed by account number

Idempotency:
  Clients send an `Idempotency-Key` header. Replaying the same request
  (same key, type, account, amount and rule) returns the original ledger
  row with `duplicate: true` and status 200 instead of 201; the balance is
  not touched again.

Denials:
  Insufficient funds, an inactive account or an inactive payee return an
  error response (409 / 403) that carries the id of the denied ledger row.
  That row is kept for audit.
"""

import uuid

from fastapi import APIRouter, Depends, Header, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.database import get_db
from bank_ledger.dependencies import require_customer
from bank_ledger.ledger import ExternalParty
from bank_ledger.models.transaction import TransactionStatus, TransactionType
from bank_ledger.models.user import User
from bank_ledger.schemas.transaction import (
    InboundTransferRequest,
    PostingResponse,
    TransactionCreateRequest,
    TransactionResponse,
)
from bank_ledger.services import billpay_service, transaction_service, transfer_service

router = APIRouter()


def posting_status(response: Response, duplicate: bool) -> None:
    """201 for a new ledger row, 200 for a replay of an earlier one."""
    response.status_code = status.HTTP_200_OK if duplicate else status.HTTP_201_CREATED


@router.post(
    "",
    response_model=PostingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Post a transaction",
)
async def create_transaction(
    request: TransactionCreateRequest,
    response: Response,
    idempotency_key: str | None = Header(None, alias="Idempotency-Key", max_length=255),
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Post one transaction.

    - **deposit** / **withdrawal**: `account_id` + `amount`
    - **billpay**: `rule_id` of one of your bill-pay rules
    - **internal_transfer** / **external_transfer**: `rule_id` of one of
      your transfer rules; both legs are posted together

    Amounts are decimal strings (e.g. "100.50"), never floats.
    """
    credit = None
    if request.transaction_type == TransactionType.DEPOSIT:
        txn, duplicate = await transaction_service.deposit(
            db, user.id, request.account_id, request.amount_cents, idempotency_key
        )
    elif request.transaction_type == TransactionType.WITHDRAWAL:
        txn, duplicate = await transaction_service.withdraw(
            db, user.id, request.account_id, request.amount_cents, idempotency_key
        )
    elif request.transaction_type == TransactionType.BILLPAY:
        txn, duplicate = await billpay_service.execute_rule(
            db, user.id, request.rule_id, idempotency_key
        )
    else:
        result = await transfer_service.execute_transfer_rule(
            db, user.id, request.rule_id, request.transaction_type, idempotency_key
        )
        txn, credit, duplicate = (
            result["debit_transaction"], result["credit_transaction"], result["duplicate"]
        )

    posting_status(response, duplicate)
    return PostingResponse(transaction=txn, credit_transaction=credit, duplicate=duplicate)


@router.post(
    "/inbound",
    response_model=PostingResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Receive an external credit",
)
async def receive_inbound_transfer(
    request: InboundTransferRequest,
    response: Response,
    idempotency_key: str | None = Header(None, alias="Idempotency-Key", max_length=255),
    db: AsyncSession = Depends(get_db),
):
    """
    Credit an account from another bank.

    The destination is addressed by its account and routing numbers. The
    sender's details are stored on the ledger row.
    """
    txn, duplicate = await transaction_service.receive_inbound_transfer(
        db=db,
        account_number=request.account_number,
        routing_number=request.routing_number,
        amount_cents=request.amount_cents,
        sender=ExternalParty(
            nickname=request.sender_name,
            routing_number=request.sender_routing_number,
            account_number=request.sender_account_number,
        ),
        idempotency_key=idempotency_key,
    )
    posting_status(response, duplicate)
    return PostingResponse(transaction=txn, duplicate=duplicate)


@router.get(
    "",
    response_model=list[TransactionResponse],
    summary="List your transactions",
)
async def list_transactions(
    account_id: uuid.UUID | None = Query(None, description="Only this account"),
    status: TransactionStatus | None = Query(None, description="Filter by status: approved, denied"),
    type: TransactionType | None = Query(None, description="Filter by transaction type"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    List ledger rows on your accounts, newest first.

    Denied attempts are included (status=denied); they never changed a
    balance.
    """
    return await transaction_service.get_transactions(
        db=db,
        user_id=user.id,
        account_id=account_id,
        status_filter=status,
        type_filter=type,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/{transaction_id}",
    response_model=TransactionResponse,
    summary="Get a single transaction",
)
async def get_transaction(
    transaction_id: uuid.UUID,
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """Get details for a specific ledger row on one of your accounts."""
    return await transaction_service.get_transaction(db, user.id, transaction_id)
