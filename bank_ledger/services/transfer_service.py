"""
Transfer service: internal transfers, Zelle-style external transfers,
recurring transfer rules and transfer history.

Every transfer is backed by a TransferRule. Immediate transfers create a
ONE_OFF rule so both ledger legs can point at the rule that produced them,
exactly like the legs of a scheduled run.

Idempotency across retries:
  The rule id is part of a posting's natural key, so a retry must land on
  the same one-off rule or the guard would never recognise it. One-off
  rules therefore remember the request's Idempotency-Key and a retry with
  the same key, source and amount reuses the existing rule.

Destination resolution:
  A recipient given by email, phone or account/routing number either
  resolves to one of our active accounts (two legs) or does not (one
  debit leg, the "black hole"). The decision is made here and handed to
  the poster as Resolved(...) / Unresolved(...), so the branch is explicit.
  Black-hole transfers can be switched off with ALLOW_BLACK_HOLE_TRANSFERS.
"""

import logging
import uuid
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from bank_ledger.config import settings
from bank_ledger.exceptions import (
    AccountNotFoundError,
    InvalidFrequencyError,
    InvalidTransferError,
    RuleNotFoundError,
)
from bank_ledger.ledger import (
    Duplicate,
    Resolved,
    RuleLink,
    RuleScheduler,
    TransferApproved,
    TransferIntent,
    Unresolved,
)
from bank_ledger.ledger.poster import Destination, TransferOutcome
from bank_ledger.ledger.schedule import FREQUENCIES, check_window, normalize_frequency
from bank_ledger.models.account import Account
from bank_ledger.models.rules import TransferKind, TransferRule
from bank_ledger.models.transaction import Transaction, TransactionStatus, TransactionType
from bank_ledger.models.user import User
from bank_ledger.services.account_service import get_account
from bank_ledger.services.auth_service import email_matches
from bank_ledger.services.transaction_service import (
    get_poster,
    get_transfer_group,
    unwrap_posting,
)

logger = logging.getLogger(__name__)


async def transfer_internal(
    db: AsyncSession,
    user_id: uuid.UUID,
    source_account_id: uuid.UUID,
    destination_account_id: uuid.UUID,
    amount_cents: int,
    idempotency_key: str | None = None,
) -> dict:
    """
    Move money between two of the caller's own accounts.

    Raises:
        AccountNotFoundError / UnauthorizedAccessError: Either account is
            missing or not the caller's.
        TransactionDeniedError: Insufficient funds or an inactive account.
    """
    await get_account(db, source_account_id, user_id)
    await get_account(db, destination_account_id, user_id)

    rule = await _one_off_rule(
        db,
        user_id=user_id,
        source_account_id=source_account_id,
        amount_cents=amount_cents,
        idempotency_key=idempotency_key,
        destination_account_id=destination_account_id,
    )
    outcome = await get_poster(db).transfer(
        TransferIntent(
            source_account_id=source_account_id,
            destination=Resolved(destination_account_id),
            amount_cents=amount_cents,
            transaction_type=TransactionType.INTERNAL_TRANSFER,
            idempotency_key=idempotency_key,
            rule=RuleLink.transfer(rule.id),
        )
    )
    return await _transfer_result(db, outcome, amount_cents, rule.id)


async def transfer_external(
    db: AsyncSession,
    user: User,
    source_account_id: uuid.UUID,
    amount_cents: int,
    recipient_email: str | None = None,
    recipient_phone: str | None = None,
    recipient_account_number: str | None = None,
    recipient_routing_number: str | None = None,
    recipient_nickname: str | None = None,
    idempotency_key: str | None = None,
) -> dict:
    """
    Send money to another person by email, phone or account number.

    A recipient found among our customers is credited on their first
    active account. Anyone else is an unresolved destination: the source
    is debited and no inbound leg is posted.

    Raises:
        InvalidTransferError: Sending to yourself.
        AccountNotFoundError: Unresolved recipient while black-hole
            transfers are disabled.
        TransactionDeniedError: Insufficient funds or an inactive account.
    """
    await get_account(db, source_account_id, user.id)

    destination = await _resolve_recipient(
        db,
        email=recipient_email,
        phone=recipient_phone,
        account_number=recipient_account_number,
        routing_number=recipient_routing_number,
        nickname=recipient_nickname,
    )

    if isinstance(destination, Resolved):
        recipient_account = await db.get(Account, destination.account_id)
        if recipient_account.user_id == user.id:
            raise InvalidTransferError(
                "Cannot send an external transfer to yourself; use an internal transfer"
            )
    elif not settings.ALLOW_BLACK_HOLE_TRANSFERS:
        raise AccountNotFoundError(
            recipient_email or recipient_phone or recipient_account_number
        )

    rule = await _one_off_rule(
        db,
        user_id=user.id,
        source_account_id=source_account_id,
        amount_cents=amount_cents,
        idempotency_key=idempotency_key,
        destination=destination,
    )
    outcome = await get_poster(db).transfer(
        TransferIntent(
            source_account_id=source_account_id,
            destination=destination,
            amount_cents=amount_cents,
            transaction_type=TransactionType.EXTERNAL_TRANSFER,
            idempotency_key=idempotency_key,
            rule=RuleLink.transfer(rule.id),
        )
    )
    return await _transfer_result(db, outcome, amount_cents, rule.id)


async def lookup_recipient(
    db: AsyncSession,
    email: str | None = None,
    phone: str | None = None,
) -> dict:
    """
    Find a customer by email or phone for the transfer form.

    Only names and masked account numbers are returned.
    """
    user = await _find_user(db, email=email, phone=phone)
    if user is None:
        return {"found": False, "accounts": []}

    result = await db.execute(
        select(Account)
        .where(Account.user_id == user.id, Account.is_active.is_(True))
        .order_by(Account.created_at)
    )
    return {
        "found": True,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "accounts": [
            {
                "id": account.id,
                "account_type": account.account_type.value,
                "account_number_last4": account.account_number[-4:],
            }
            for account in result.scalars().all()
        ],
    }


# ---------------------------------------------------------------------------
# Recurring transfer rules
# ---------------------------------------------------------------------------

async def create_transfer_rule(
    db: AsyncSession,
    user_id: uuid.UUID,
    source_account_id: uuid.UUID,
    amount_cents: int,
    frequency: str,
    start_time: datetime,
    end_time: datetime | None = None,
    destination_account_id: uuid.UUID | None = None,
    external_routing_number: str | None = None,
    external_account_number: str | None = None,
    external_nickname: str | None = None,
    scheduler: RuleScheduler | None = None,
) -> TransferRule:
    """
    Schedule a recurring transfer and stamp its first next_run_at.

    Transfer rules take the named frequencies only; cron expressions are
    a bill-pay feature.

    Raises:
        InvalidFrequencyError: Unknown frequency or a cron expression.
        InvalidScheduleError: end_time not after start_time.
        AccountNotFoundError / UnauthorizedAccessError: Bad source account.
    """
    scheduler = scheduler or RuleScheduler()
    frequency = normalize_frequency(frequency)
    if frequency not in FREQUENCIES:
        raise InvalidFrequencyError(frequency)
    check_window(start_time, end_time)

    await get_account(db, source_account_id, user_id)
    if destination_account_id is not None and await db.get(Account, destination_account_id) is None:
        raise AccountNotFoundError(destination_account_id)

    rule = TransferRule(
        user_id=user_id,
        transfer_kind=TransferKind.RECURRING,
        source_account_id=source_account_id,
        destination_account_id=destination_account_id,
        external_routing_number=external_routing_number,
        external_account_number=external_account_number,
        external_nickname=external_nickname,
        amount_cents=amount_cents,
        frequency=frequency,
        start_time=start_time,
        end_time=end_time,
    )
    scheduler.stamp(rule)
    db.add(rule)
    await db.flush()

    logger.info(
        "Transfer rule created",
        extra={"rule_id": str(rule.id), "frequency": frequency, "next_run_at": str(rule.next_run_at)},
    )
    return rule


async def get_transfer_rules(
    db: AsyncSession,
    user_id: uuid.UUID,
    include_one_off: bool = False,
) -> list[TransferRule]:
    query = select(TransferRule).where(TransferRule.user_id == user_id)
    if not include_one_off:
        query = query.where(TransferRule.transfer_kind == TransferKind.RECURRING)
    result = await db.execute(query.order_by(TransferRule.created_at.desc()))
    return list(result.scalars().all())


async def get_transfer_rule(
    db: AsyncSession,
    user_id: uuid.UUID,
    rule_id: uuid.UUID,
) -> TransferRule:
    """
    Raises:
        RuleNotFoundError: Missing, or owned by someone else.
    """
    rule = await db.get(TransferRule, rule_id)
    if rule is None or rule.user_id != user_id:
        raise RuleNotFoundError("transfer", rule_id)
    return rule


async def cancel_transfer_rule(
    db: AsyncSession,
    user_id: uuid.UUID,
    rule_id: uuid.UUID,
) -> TransferRule:
    """Deactivate a rule; its ledger rows keep their link."""
    rule = await get_transfer_rule(db, user_id, rule_id)
    rule.is_active = False
    rule.next_run_at = None
    await db.flush()
    return rule


async def execute_transfer_rule(
    db: AsyncSession,
    user_id: uuid.UUID,
    rule_id: uuid.UUID,
    transaction_type: TransactionType,
    idempotency_key: str | None = None,
) -> dict:
    """
    Fire one run of a transfer rule (POST /transactions with a rule_id).

    Rules with an internal destination run as internal_transfer; rules with
    an external routing/account pair run as external_transfer, which
    credits our account when the numbers are ours and is a black-hole
    transfer otherwise.

    Raises:
        RuleNotFoundError: Unknown or foreign rule.
        InvalidTransferError: Inactive rule, or transaction_type doesn't
            match the rule's destination.
    """
    rule = await get_transfer_rule(db, user_id, rule_id)
    if rule.transfer_kind == TransferKind.ONE_OFF:
        raise InvalidTransferError("One-off transfers cannot be executed again")
    if not rule.is_active:
        raise InvalidTransferError("Transfer rule is inactive")

    expected = (
        TransactionType.EXTERNAL_TRANSFER if rule.is_external else TransactionType.INTERNAL_TRANSFER
    )
    if transaction_type != expected:
        raise InvalidTransferError(
            f"Rule {rule.id} is an {expected.value} rule, not {transaction_type.value}"
        )

    if rule.is_external:
        destination = await _resolve_recipient(
            db,
            account_number=rule.external_account_number,
            routing_number=rule.external_routing_number,
            nickname=rule.external_nickname,
        )
    else:
        destination = Resolved(rule.destination_account_id)

    outcome = await get_poster(db).transfer(
        TransferIntent(
            source_account_id=rule.source_account_id,
            destination=destination,
            amount_cents=rule.amount_cents,
            transaction_type=transaction_type,
            idempotency_key=idempotency_key,
            rule=RuleLink.transfer(rule.id),
        )
    )
    return await _transfer_result(db, outcome, rule.amount_cents, rule.id)


async def get_transfer_history(
    db: AsyncSession,
    user_id: uuid.UUID,
    limit: int = 50,
    offset: int = 0,
) -> list[Transaction]:
    """Transfer legs (both directions) on the caller's accounts, newest first."""
    owned = select(Account.id).where(Account.user_id == user_id)
    result = await db.execute(
        select(Transaction)
        .where(Transaction.account_id.in_(owned))
        .where(
            Transaction.transaction_type.in_(
                [TransactionType.INTERNAL_TRANSFER, TransactionType.EXTERNAL_TRANSFER]
            )
        )
        .order_by(Transaction.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _find_user(
    db: AsyncSession, email: str | None = None, phone: str | None = None
) -> User | None:
    if email is not None:
        query = select(User).where(email_matches(email))
    elif phone is not None:
        query = select(User).where(User.phone_number == phone)
    else:
        return None
    result = await db.execute(query.where(User.is_active.is_(True)))
    return result.scalar_one_or_none()


async def _resolve_recipient(
    db: AsyncSession,
    email: str | None = None,
    phone: str | None = None,
    account_number: str | None = None,
    routing_number: str | None = None,
    nickname: str | None = None,
) -> Destination:
    if account_number is not None:
        # Inactive accounts still resolve; the poster records the denial
        result = await db.execute(
            select(Account).where(
                Account.account_number == account_number,
                Account.routing_number == routing_number,
            )
        )
        account = result.scalar_one_or_none()
        if account is not None:
            return Resolved(account.id)
        return Unresolved(
            nickname=nickname or settings.BLACK_HOLE_RECIPIENT_NAME,
            routing_number=routing_number,
            account_number=account_number,
        )

    user = await _find_user(db, email=email, phone=phone)
    if user is not None:
        result = await db.execute(
            select(Account)
            .where(Account.user_id == user.id, Account.is_active.is_(True))
            .order_by(Account.created_at)
            .limit(1)
        )
        account = result.scalar_one_or_none()
        if account is not None:
            return Resolved(account.id)

    return Unresolved(nickname=nickname or email or phone or settings.BLACK_HOLE_RECIPIENT_NAME)


async def _one_off_rule(
    db: AsyncSession,
    user_id: uuid.UUID,
    source_account_id: uuid.UUID,
    amount_cents: int,
    idempotency_key: str | None,
    destination_account_id: uuid.UUID | None = None,
    destination: Destination | None = None,
) -> TransferRule:
    """Create the ONE_OFF rule for an immediate transfer, or reuse it on retry."""
    if destination is None:
        destination = Resolved(destination_account_id)

    if idempotency_key:
        existing = await _find_one_off_rule(db, user_id, source_account_id, amount_cents, idempotency_key)
        if existing is not None:
            _check_same_destination(existing, destination)
            return existing

    rule = TransferRule(
        user_id=user_id,
        transfer_kind=TransferKind.ONE_OFF,
        source_account_id=source_account_id,
        amount_cents=amount_cents,
        start_time=datetime.now(timezone.utc),
        idempotency_key=idempotency_key,
    )
    if isinstance(destination, Resolved):
        rule.destination_account_id = destination.account_id
    else:
        rule.external_routing_number = destination.routing_number
        rule.external_account_number = destination.account_number
        rule.external_nickname = destination.nickname

    try:
        async with db.begin_nested():
            db.add(rule)
            await db.flush()
    except IntegrityError:
        if not idempotency_key:
            raise
        # A concurrent retry created it first
        existing = await _find_one_off_rule(db, user_id, source_account_id, amount_cents, idempotency_key)
        if existing is None:
            raise
        _check_same_destination(existing, destination)
        return existing
    return rule


async def _find_one_off_rule(
    db: AsyncSession,
    user_id: uuid.UUID,
    source_account_id: uuid.UUID,
    amount_cents: int,
    idempotency_key: str,
) -> TransferRule | None:
    result = await db.execute(
        select(TransferRule).where(
            TransferRule.user_id == user_id,
            TransferRule.transfer_kind == TransferKind.ONE_OFF,
            TransferRule.source_account_id == source_account_id,
            TransferRule.amount_cents == amount_cents,
            TransferRule.idempotency_key == idempotency_key,
        )
    )
    return result.scalar_one_or_none()


def _check_same_destination(rule: TransferRule, destination: Destination) -> None:
    if isinstance(destination, Resolved):
        same = rule.destination_account_id == destination.account_id
    else:
        same = (
            rule.destination_account_id is None
            and rule.external_account_number == destination.account_number
            and rule.external_routing_number == destination.routing_number
        )
    if not same:
        raise InvalidTransferError("Idempotency-Key was already used for a different transfer")


async def _transfer_result(
    db: AsyncSession,
    outcome: TransferOutcome,
    amount_cents: int,
    rule_id: uuid.UUID,
) -> dict:
    if isinstance(outcome, TransferApproved):
        debit, credit, group_id, duplicate = (
            outcome.debit, outcome.credit, outcome.transfer_group_id, False
        )
    else:
        # Denied raises here; Duplicate carries the original debit leg
        debit, duplicate = unwrap_posting(outcome)
        group_id = debit.transfer_group_id
        credit = None
        if isinstance(outcome, Duplicate) and group_id is not None:
            legs = await get_transfer_group(db, group_id)
            credit = next((leg for leg in legs if leg.amount_cents > 0), None)

    return {
        "transfer_group_id": group_id,
        "transfer_rule_id": rule_id,
        "debit_transaction": debit,
        "credit_transaction": credit,
        "amount_cents": amount_cents,
        "black_hole": (
            credit is None
            and debit.status == TransactionStatus.APPROVED
            and debit.external_nickname is not None
        ),
        "duplicate": duplicate,
    }
