"""
Manager router: read-only endpoints for bank-wide visibility.

All endpoints require the BANK_MANAGER role. Managers can view any
account, balance or ledger row for auditing but CANNOT open accounts,
post transactions or schedule payments.

Endpoints:
  GET  /manager/accounts                        : List ALL accounts
  GET  /manager/accounts/{account_id}/balance   : Any account's balance report
  GET  /manager/users                           : Search and page through customers
  GET  /manager/users/{user_id}                 : One customer, their accounts and latest rows
  GET  /manager/transactions                    : ALL ledger rows, denied included

Consolidating the manager routes in one router avoids route-ordering
conflicts with the customers' parameterized paths.
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.database import get_db
from bank_ledger.dependencies import require_manager
from bank_ledger.models.transaction import TransactionStatus, TransactionType
from bank_ledger.models.user import User, UserRole
from bank_ledger.schemas.account import AccountResponse, BalanceResponse
from bank_ledger.schemas.transaction import TransactionResponse
from bank_ledger.schemas.user import UserDetailResponse, UserListResponse
from bank_ledger.services import account_service, transaction_service, user_service

router = APIRouter()


@router.get(
    "/accounts",
    response_model=list[AccountResponse],
    summary="[Manager] List all accounts",
)
async def manager_list_all_accounts(
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    """List all accounts across all customers, inactive ones included."""
    return await account_service.manager_get_all_accounts(db)


@router.get(
    "/accounts/{account_id}/balance",
    response_model=BalanceResponse,
    summary="[Manager] Get any account's balance",
)
async def manager_get_balance(
    account_id: uuid.UUID,
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    """
    Get any account's balance without ownership check.

    Includes both stored and ledger-computed balance for integrity
    verification.
    """
    return await account_service.manager_get_balance(db, account_id)


@router.get(
    "/transactions",
    response_model=list[TransactionResponse],
    summary="[Manager] List ALL ledger rows",
)
async def manager_list_all_transactions(
    account_id: uuid.UUID | None = Query(None),
    status: TransactionStatus | None = Query(None, description="Filter by status"),
    type: TransactionType | None = Query(None, description="Filter by type"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    """
    List every ledger row in the bank, newest first.

    Denied attempts are included, which makes this the audit trail.
    """
    return await transaction_service.manager_get_all_transactions(
        db=db,
        account_id=account_id,
        status_filter=status,
        type_filter=type,
        limit=limit,
        offset=offset,
    )


@router.get(
    "/users",
    response_model=UserListResponse,
    summary="[Manager] Search customers",
)
async def manager_list_users(
    search: str | None = Query(None, max_length=255, description="Email, name or phone fragment"),
    role: UserRole | None = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    users, total = await user_service.manager_list_users(
        db, search=search, role=role, limit=limit, offset=offset
    )
    return {"users": users, "total": total, "limit": limit, "offset": offset}


@router.get(
    "/users/{user_id}",
    response_model=UserDetailResponse,
    summary="[Manager] Get one customer's profile",
)
async def manager_get_user(
    user_id: uuid.UUID,
    recent: int = Query(20, ge=1, le=200, description="How many ledger rows to include"),
    manager: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    """
    A customer's profile, every account (closed ones included) and their
    most recent ledger rows across all of those accounts.
    """
    return await user_service.manager_get_user(db, user_id, recent=recent)
