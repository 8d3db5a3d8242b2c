"""
Accounts router: bank account management endpoints.

Customer endpoints (require JWT, scoped to the authenticated user):
  POST   /accounts                          : Open a new account
  GET    /accounts                          : List own accounts
  GET    /accounts/lookup                   : Confirm a recipient account number
  GET    /accounts/{account_id}             : Get own account details
  GET    /accounts/{account_id}/balance     : Stored vs. ledger-computed balance
  POST   /accounts/{account_id}/deactivate  : Soft-close an account

Manager read-only endpoints live in the manager router to avoid
route-ordering conflicts with the parameterized paths here.
"""

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.database import get_db
from bank_ledger.dependencies import require_customer
from bank_ledger.models.user import User
from bank_ledger.schemas.account import (
    AccountCreateRequest,
    AccountLookupResponse,
    AccountResponse,
    BalanceResponse,
)
from bank_ledger.services import account_service

router = APIRouter()


@router.post(
    "",
    response_model=AccountResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Open a new bank account",
)
async def create_account(
    request: AccountCreateRequest,
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Open a new checking or savings account.

    The account starts with a zero balance and a randomly generated
    account number. Money only ever arrives through a posting.
    """
    return await account_service.create_account(
        db=db,
        user_id=user.id,
        account_type=request.account_type,
    )


@router.get(
    "",
    response_model=list[AccountResponse],
    summary="List your accounts",
)
async def list_accounts(
    include_inactive: bool = Query(False),
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """List the authenticated customer's accounts, oldest first."""
    return await account_service.get_accounts(db, user.id, include_inactive=include_inactive)


# Declared before /{account_id} so "lookup" is not parsed as an id
@router.get(
    "/lookup",
    response_model=AccountLookupResponse,
    summary="Look up an account by number",
)
async def lookup_account(
    account_number: str = Query(..., pattern=r"^\d{1,17}$"),
    routing_number: str | None = Query(None, pattern=r"^\d{9}$"),
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Confirm that an account number exists before sending money to it.

    Only the account id, type and numbers are returned; never the balance
    or the owner.
    """
    return await account_service.lookup_account(db, account_number, routing_number)


@router.get(
    "/{account_id}",
    response_model=AccountResponse,
    summary="Get account details",
)
async def get_account(
    account_id: uuid.UUID,
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Get details for a specific account.

    Returns 403 if the account belongs to a different user, or 404 if
    the account doesn't exist.
    """
    return await account_service.get_account(db, account_id, user.id)


@router.get(
    "/{account_id}/balance",
    response_model=BalanceResponse,
    summary="Check account balance",
)
async def get_balance(
    account_id: uuid.UUID,
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Get the account balance: both stored and computed from the ledger.

    The response includes a `match` boolean indicating whether the stored
    balance agrees with the sum of all approved ledger rows. A mismatch
    would indicate a data integrity issue that needs investigation.
    """
    return await account_service.get_balance(db, account_id, user.id)


@router.post(
    "/{account_id}/deactivate",
    response_model=AccountResponse,
    summary="Deactivate an account",
)
async def deactivate_account(
    account_id: uuid.UUID,
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Soft-close an account. Postings against it are denied from now on
    (and recorded as denied); its history stays readable.
    """
    return await account_service.deactivate_account(db, account_id, user.id)
