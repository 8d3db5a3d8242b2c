"""
Bill pay router: payees and scheduled bill payments.

Endpoints (customers only):
  GET    /billpay/payees               : List payees (filter by business name)
  POST   /billpay/payees               : Add a payee (returns the existing one if known)
  GET    /billpay/rules                : List your bill-pay rules
  POST   /billpay/rules                : Schedule a bill payment
  PUT    /billpay/rules/{rule_id}      : Change a bill-pay rule
  DELETE /billpay/rules/{rule_id}      : Cancel a bill-pay rule

A single run of a rule is posted through POST /transactions with
transaction_type=billpay and the rule_id.
"""

import uuid

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.database import get_db
from bank_ledger.dependencies import require_customer
from bank_ledger.models.user import User
from bank_ledger.schemas.billpay import (
    BillPayRuleCreateRequest,
    BillPayRuleResponse,
    BillPayRuleUpdateRequest,
    PayeeCreateRequest,
    PayeeResponse,
)
from bank_ledger.services import billpay_service

router = APIRouter()


@router.get(
    "/payees",
    response_model=list[PayeeResponse],
    summary="List payees",
)
async def list_payees(
    business_name: str | None = Query(None, max_length=255),
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    return await billpay_service.get_payees(db, business_name=business_name)


@router.post(
    "/payees",
    response_model=PayeeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a payee",
)
async def create_payee(
    request: PayeeCreateRequest,
    response: Response,
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Add a business to the shared payee list.

    Payees are identified by routing + account number. Adding one that
    already exists returns it with status 200 instead of creating a copy.
    """
    payee, created = await billpay_service.create_payee(db, **request.model_dump())
    if not created:
        response.status_code = status.HTTP_200_OK
    return payee


@router.get(
    "/rules",
    response_model=list[BillPayRuleResponse],
    summary="List your bill-pay rules",
)
async def list_rules(
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    return await billpay_service.get_rules(db, user.id)


@router.post(
    "/rules",
    response_model=BillPayRuleResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Schedule a bill payment",
)
async def create_rule(
    request: BillPayRuleCreateRequest,
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Schedule a recurring payment to a payee.

    - **frequency**: weekly, biweekly, monthly, quarterly, yearly, or a
      five-field cron expression such as "0 9 1 * *"
    - **end_time**: optional; must be after start_time
    """
    return await billpay_service.create_rule(
        db=db,
        user_id=user.id,
        source_account_id=request.source_account_id,
        payee_id=request.payee_id,
        amount_cents=request.amount_cents,
        frequency=request.frequency,
        start_time=request.start_time,
        end_time=request.end_time,
    )


@router.put(
    "/rules/{rule_id}",
    response_model=BillPayRuleResponse,
    summary="Change a bill-pay rule",
)
async def update_rule(
    rule_id: uuid.UUID,
    request: BillPayRuleUpdateRequest,
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    """
    Change any subset of a rule's fields.

    Changing the schedule recomputes next_run_at from the rule's original
    start_time. A new start_time must be in the future.
    """
    return await billpay_service.update_rule(
        db=db,
        user_id=user.id,
        rule_id=rule_id,
        source_account_id=request.source_account_id,
        payee_id=request.payee_id,
        amount_cents=request.amount_cents,
        frequency=request.frequency,
        start_time=request.start_time,
        end_time=request.end_time,
    )


@router.delete(
    "/rules/{rule_id}",
    response_model=BillPayRuleResponse,
    summary="Cancel a bill-pay rule",
)
async def delete_rule(
    rule_id: uuid.UUID,
    user: User = Depends(require_customer),
    db: AsyncSession = Depends(get_db),
):
    return await billpay_service.delete_rule(db, user.id, rule_id)
