"""
Bill pay service: shared payees, bill-pay rules, and rule execution.

Payees:
  Shared by all customers and keyed in practice by (routing_number,
  account_number). Creating a payee that already exists returns the
  existing row. Payee bank details are never checked against a real bank.

Rules:
  A rule pays a fixed amount from one of the customer's accounts to a
  payee on a schedule (named frequency or cron). next_run_at is stamped by
  the RuleScheduler on create and on every schedule change, always from
  the rule's own start_time so the grid never shifts.

Execution:
  One run posts a single outbound billpay row on the source account,
  linked to the rule. Payees live outside the bank, so there is no
  inbound leg. An inactive payee is a business denial recorded in the
  ledger like insufficient funds.
"""

import logging
import uuid
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.exceptions import (
    InvalidScheduleError,
    PayeeNotFoundError,
    RuleNotFoundError,
)
from bank_ledger.ledger import Duplicate, ExternalParty, PostingIntent, RuleLink, RuleScheduler
from bank_ledger.ledger.poster import PAYEE_INACTIVE
from bank_ledger.ledger.schedule import as_utc, check_window, normalize_frequency
from bank_ledger.models.payee import Payee
from bank_ledger.models.rules import BillPayRule
from bank_ledger.models.transaction import Transaction, TransactionType
from bank_ledger.services.account_service import get_account
from bank_ledger.services.transaction_service import get_poster, unwrap_posting

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Payees
# ---------------------------------------------------------------------------

async def get_payees(
    db: AsyncSession,
    business_name: str | None = None,
) -> list[Payee]:
    """List active payees, optionally filtered by a business-name substring."""
    query = select(Payee).where(Payee.is_active.is_(True))
    if business_name:
        query = query.where(Payee.business_name.ilike(f"%{business_name}%"))
    result = await db.execute(query.order_by(Payee.business_name))
    return list(result.scalars().all())


async def create_payee(db: AsyncSession, **fields) -> tuple[Payee, bool]:
    """
    Create a payee, or return the one that already has these bank details.

    Returns:
        (payee, created)
    """
    existing = await _find_payee(db, fields["routing_number"], fields["account_number"])
    if existing is not None:
        return existing, False

    payee = Payee(**fields)
    try:
        async with db.begin_nested():
            db.add(payee)
            await db.flush()
    except IntegrityError:
        # Lost a race with an identical create
        existing = await _find_payee(db, fields["routing_number"], fields["account_number"])
        if existing is None:
            raise
        return existing, False
    return payee, True


async def _find_payee(db: AsyncSession, routing_number: str, account_number: str) -> Payee | None:
    result = await db.execute(
        select(Payee).where(
            Payee.routing_number == routing_number,
            Payee.account_number == account_number,
        )
    )
    return result.scalar_one_or_none()


async def _get_payee(db: AsyncSession, payee_id: uuid.UUID) -> Payee:
    payee = await db.get(Payee, payee_id)
    if payee is None:
        raise PayeeNotFoundError(payee_id)
    return payee


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

async def create_rule(
    db: AsyncSession,
    user_id: uuid.UUID,
    source_account_id: uuid.UUID,
    payee_id: uuid.UUID,
    amount_cents: int,
    frequency: str,
    start_time: datetime,
    end_time: datetime | None = None,
    scheduler: RuleScheduler | None = None,
) -> BillPayRule:
    """
    Schedule a bill payment.

    Raises:
        InvalidFrequencyError: Unknown frequency.
        InvalidScheduleError: end_time not after start_time.
        AccountNotFoundError / UnauthorizedAccessError: Bad source account.
        PayeeNotFoundError: Unknown payee.
    """
    scheduler = scheduler or RuleScheduler()
    frequency = normalize_frequency(frequency)
    check_window(start_time, end_time)

    await get_account(db, source_account_id, user_id)
    await _get_payee(db, payee_id)

    rule = BillPayRule(
        user_id=user_id,
        source_account_id=source_account_id,
        payee_id=payee_id,
        amount_cents=amount_cents,
        frequency=frequency,
        start_time=start_time,
        end_time=end_time,
    )
    scheduler.stamp(rule)
    db.add(rule)
    await db.flush()

    logger.info(
        "Bill-pay rule created",
        extra={"rule_id": str(rule.id), "frequency": frequency, "next_run_at": str(rule.next_run_at)},
    )
    return rule


async def get_rules(db: AsyncSession, user_id: uuid.UUID) -> list[BillPayRule]:
    result = await db.execute(
        select(BillPayRule)
        .where(BillPayRule.user_id == user_id)
        .order_by(BillPayRule.created_at.desc())
    )
    return list(result.scalars().unique().all())


async def get_rule(
    db: AsyncSession,
    user_id: uuid.UUID,
    rule_id: uuid.UUID,
) -> BillPayRule:
    """
    Raises:
        RuleNotFoundError: Missing, or owned by someone else.
    """
    rule = await db.get(BillPayRule, rule_id)
    if rule is None or rule.user_id != user_id:
        raise RuleNotFoundError("bill-pay", rule_id)
    return rule


async def update_rule(
    db: AsyncSession,
    user_id: uuid.UUID,
    rule_id: uuid.UUID,
    source_account_id: uuid.UUID | None = None,
    payee_id: uuid.UUID | None = None,
    amount_cents: int | None = None,
    frequency: str | None = None,
    start_time: datetime | None = None,
    end_time: datetime | None = None,
    scheduler: RuleScheduler | None = None,
) -> BillPayRule:
    """
    Change a bill-pay rule. Omitted (None) fields keep their value.

    A schedule change (frequency, start_time or end_time) restamps
    next_run_at from the rule's start_time, not from now, so a weekly
    Monday rule stays on Mondays after switching to biweekly.

    Raises:
        InvalidScheduleError: New start_time not in the future, or
            end_time not after start_time.
    """
    scheduler = scheduler or RuleScheduler()
    rule = await get_rule(db, user_id, rule_id)

    if source_account_id is not None:
        await get_account(db, source_account_id, user_id)
        rule.source_account_id = source_account_id
    if payee_id is not None:
        await _get_payee(db, payee_id)
        rule.payee_id = payee_id
    if amount_cents is not None:
        rule.amount_cents = amount_cents

    schedule_changed = False
    if frequency is not None:
        rule.frequency = normalize_frequency(frequency)
        schedule_changed = True
    if start_time is not None:
        if as_utc(start_time) <= scheduler.clock():
            raise InvalidScheduleError("start_time must be in the future")
        rule.start_time = start_time
        schedule_changed = True
    if end_time is not None:
        rule.end_time = end_time
        schedule_changed = True

    check_window(rule.start_time, rule.end_time)
    if schedule_changed and rule.is_active:
        scheduler.stamp(rule)

    await db.flush()
    return rule


async def delete_rule(
    db: AsyncSession,
    user_id: uuid.UUID,
    rule_id: uuid.UUID,
) -> BillPayRule:
    """Deactivate a rule; past payments keep their link to it."""
    rule = await get_rule(db, user_id, rule_id)
    rule.is_active = False
    rule.next_run_at = None
    await db.flush()
    return rule


async def execute_rule(
    db: AsyncSession,
    user_id: uuid.UUID,
    rule_id: uuid.UUID,
    idempotency_key: str | None = None,
) -> tuple[Transaction, bool]:
    """
    Pay one occurrence of a bill-pay rule.

    Raises:
        RuleNotFoundError: Unknown, foreign or deleted rule.
        TransactionDeniedError: Insufficient funds, inactive account or
            inactive payee.
    """
    rule = await get_rule(db, user_id, rule_id)
    if not rule.is_active:
        raise RuleNotFoundError("bill-pay", rule_id)

    payee = await _get_payee(db, rule.payee_id)
    intent = PostingIntent(
        account_id=rule.source_account_id,
        amount_cents=-rule.amount_cents,
        transaction_type=TransactionType.BILLPAY,
        idempotency_key=idempotency_key,
        rule=RuleLink.billpay(rule.id),
        external=ExternalParty(
            nickname=payee.business_name,
            routing_number=payee.routing_number,
            account_number=payee.account_number,
        ),
    )

    poster = get_poster(db)
    if payee.is_active:
        outcome = await poster.post(intent)
    else:
        existing = await poster.guard.find_existing(intent.natural_key)
        if existing is not None:
            outcome = Duplicate(existing)
        else:
            outcome = await poster.deny(intent, PAYEE_INACTIVE)
    return unwrap_posting(outcome)
