"""
Recurring rule models: bill-pay rules and transfer rules.

A rule says "move this amount from this source account to that destination
on this schedule". Each firing produces a Transaction linked back to the
rule (bill_pay_rule_id / transfer_rule_id).

Schedule fields:
  - frequency: weekly | biweekly | monthly | quarterly | yearly, or a
    five-field cron expression ("0 9 1 * *")
  - start_time: anchor of the schedule grid; never moved by updates
  - end_time: optional; once the next occurrence would fall after it the
    rule has lapsed
  - next_run_at: stamped by the RuleScheduler whenever the rule is created
    or its schedule changes. Always strictly in the future when stamped,
    or NULL for a lapsed rule.

Rules are deactivated (is_active=False) rather than deleted when the owner
cancels them, so historical ledger rows keep their link.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bank_ledger.database import Base
from bank_ledger.models.types import str_enum


class TransferKind(str, enum.Enum):
    RECURRING = "recurring"
    ONE_OFF = "one_off"


class BillPayRule(Base):
    __tablename__ = "billpay_rules"

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_billpay_rules_positive_amount"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )
    source_account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"), nullable=False, index=True
    )
    payee_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("billpay_payees.id"), nullable=False, index=True
    )

    # Always positive; the posted ledger row carries the sign
    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)

    frequency: Mapped[str] = mapped_column(String(100), nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    next_run_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    payee: Mapped["Payee"] = relationship(lazy="joined")

    @property
    def rule_ref(self) -> str:
        return f"billpay:{self.id}"


class TransferRule(Base):
    """
    A scheduled (or one-off) transfer out of an internal account.

    Exactly one destination shape is used: destination_account_id for an
    internal account, or the external routing/account pair for money leaving
    the bank. One-off rules are created by the immediate-transfer endpoints
    so that both ledger legs can point at the rule that produced them.
    """

    __tablename__ = "transfer_rules"

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_transfer_rules_positive_amount"),
        # One one-off rule per retried request; NULL keys (recurring rules) never collide
        UniqueConstraint(
            "user_id",
            "idempotency_key",
            "source_account_id",
            "amount_cents",
            name="uq_transfer_rules_idempotency",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True
    )

    transfer_kind: Mapped[TransferKind] = mapped_column(
        str_enum(TransferKind, length=10),
        nullable=False,
        default=TransferKind.RECURRING,
    )

    source_account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"), nullable=False, index=True
    )
    destination_account_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True, index=True
    )
    external_routing_number: Mapped[str | None] = mapped_column(String(9), nullable=True)
    external_account_number: Mapped[str | None] = mapped_column(String(17), nullable=True)
    external_nickname: Mapped[str | None] = mapped_column(String(255), nullable=True)

    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Idempotency-Key of the request that created a one-off rule
    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # NULL for one-off rules
    frequency: Mapped[str | None] = mapped_column(String(100), nullable=True)
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    next_run_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    @property
    def rule_ref(self) -> str:
        return f"transfer:{self.id}"

    @property
    def is_external(self) -> bool:
        return self.destination_account_id is None
