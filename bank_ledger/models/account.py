"""
Account model: an internal bank account owned by a User.

Each account has:
  - A unique account number (random digits, at most 17 per ACH)
  - The bank's routing number
  - A type: "checking" or "savings"
  - A balance in integer cents
  - An active flag (accounts are deactivated, never deleted, because the
    ledger keeps referencing them)

Balance management:
  balance_cents is mutated ONLY by the ledger's BalanceMutator, always in
  the same database transaction as the ledger row that explains it. Debits
  are single conditional UPDATEs (`... WHERE balance_cents >= :amount`), so
  two concurrent debits can never jointly overdraw the account.

  The CHECK constraint below is the last line of defence: even a buggy
  code path that skipped the conditional update cannot commit a negative
  balance.

Why integer cents?
  Floating point cannot represent most decimal fractions exactly. Integer
  cents make every sum exact; the API converts "10.99" <-> 1099 only at the
  HTTP boundary.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bank_ledger.config import settings
from bank_ledger.database import Base
from bank_ledger.models.types import str_enum


class AccountType(str, enum.Enum):
    CHECKING = "checking"
    SAVINGS = "savings"


class Account(Base):
    __tablename__ = "accounts"

    __table_args__ = (
        CheckConstraint(
            "balance_cents >= 0",
            name="ck_accounts_non_negative_balance",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id"),
        nullable=False,
        index=True,
    )

    account_number: Mapped[str] = mapped_column(
        String(17),
        unique=True,
        nullable=False,
    )

    routing_number: Mapped[str] = mapped_column(
        String(9),
        nullable=False,
        default=lambda: settings.DEFAULT_ROUTING_NUMBER,
    )

    account_type: Mapped[AccountType] = mapped_column(
        str_enum(AccountType),
        nullable=False,
        default=AccountType.CHECKING,
    )

    balance_cents: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

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

    user: Mapped["User"] = relationship(back_populates="accounts")
