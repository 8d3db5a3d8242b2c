"""
Transaction model: one immutable ledger row per attempted posting.

Every attempt to move money creates exactly one row on the account it
touches, including attempts that were denied (insufficient funds, inactive
account, inactive payee), so the ledger doubles as the audit trail.

Sign convention:
  amount_cents is SIGNED: positive rows credited the account (inbound),
  negative rows debited it (outbound). An approved transfer between two
  internal accounts is exactly two rows whose amounts are negatives of each
  other and which share a transfer_group_id. A transfer to an unresolved
  external recipient (the "black hole" case) has only the outbound row.

Status:
  "approved" or "denied"; there is no pending state. Rows are never updated
  after insert.

Idempotency:
  A caller-supplied idempotency_key, together with the row's natural fields
  (type, account, signed amount, originating rule), is unique. When two
  identical requests race, the loser's INSERT violates
  uq_transactions_idempotency and the ledger reports a duplicate instead of
  writing a second row. rule_ref is a non-null stand-in for the nullable
  rule foreign keys because SQL never treats two NULLs as equal, which
  would silently switch the constraint off for rule-less postings.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from bank_ledger.database import Base
from bank_ledger.models.types import str_enum


IDEMPOTENCY_CONSTRAINT = "uq_transactions_idempotency"


class TransactionType(str, enum.Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    INTERNAL_TRANSFER = "internal_transfer"
    EXTERNAL_TRANSFER = "external_transfer"
    BILLPAY = "billpay"


class Direction(str, enum.Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class TransactionStatus(str, enum.Enum):
    APPROVED = "approved"
    DENIED = "denied"


class Transaction(Base):
    __tablename__ = "transactions"

    __table_args__ = (
        CheckConstraint("amount_cents <> 0", name="ck_transactions_nonzero_amount"),
        CheckConstraint(
            "(direction = 'inbound' AND amount_cents > 0)"
            " OR (direction = 'outbound' AND amount_cents < 0)",
            name="ck_transactions_sign_matches_direction",
        ),
        UniqueConstraint(
            "idempotency_key",
            "transaction_type",
            "account_id",
            "amount_cents",
            "rule_ref",
            name=IDEMPOTENCY_CONSTRAINT,
        ),
        Index("ix_transactions_account_created", "account_id", "created_at"),
        Index("ix_transactions_status_type", "status", "transaction_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"),
        nullable=False,
        index=True,
    )

    amount_cents: Mapped[int] = mapped_column(BigInteger, nullable=False)

    transaction_type: Mapped[TransactionType] = mapped_column(
        str_enum(TransactionType),
        nullable=False,
    )

    direction: Mapped[Direction] = mapped_column(
        str_enum(Direction, length=10),
        nullable=False,
    )

    status: Mapped[TransactionStatus] = mapped_column(
        str_enum(TransactionStatus, length=10),
        nullable=False,
    )

    # Machine-readable reason for denied rows ("insufficient_funds", ...)
    denial_reason: Mapped[str | None] = mapped_column(String(40), nullable=True)

    idempotency_key: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Originating recurring rule, if any. ON DELETE SET NULL keeps the
    # ledger row when its rule is removed.
    bill_pay_rule_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("billpay_rules.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    transfer_rule_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("transfer_rules.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    # "billpay:<uuid>", "transfer:<uuid>" or "" (see module docstring)
    rule_ref: Mapped[str] = mapped_column(String(50), nullable=False, default="")

    # Shared by both legs of a transfer
    transfer_group_id: Mapped[uuid.UUID | None] = mapped_column(
        nullable=True,
        index=True,
    )

    # Counterparty outside this bank (payee, external account, black hole)
    external_routing_number: Mapped[str | None] = mapped_column(String(9), nullable=True)
    external_account_number: Mapped[str | None] = mapped_column(String(17), nullable=True)
    external_nickname: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
