"""
User model: authentication identity plus the customer profile.

A User signs in with email + password (stored as an Argon2id hash, never in
plaintext) and owns zero or more bank accounts, bill-pay rules, transfer
rules and API keys. The money-movement core trusts the authenticated User
for every "who owns this account" check.

Roles:
  - CUSTOMER: The default for signup. Can move money between their own
    accounts and out to payees/recipients.
  - BANK_MANAGER: Read-only oversight across all customers' ledgers. Blocked
    from every endpoint that moves money.
"""

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from bank_ledger.database import Base
from bank_ledger.models.types import str_enum


class UserRole(str, enum.Enum):
    CUSTOMER = "customer"
    BANK_MANAGER = "bank_manager"


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )

    # Login identifier, also used for Zelle-style recipient lookup
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        nullable=False,
        index=True,
    )

    hashed_password: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)

    # E.164 phone number; optional, but unique when present so it can
    # identify a transfer recipient
    phone_number: Mapped[str | None] = mapped_column(
        String(16),
        unique=True,
        nullable=True,
    )

    role: Mapped[UserRole] = mapped_column(
        str_enum(UserRole),
        default=UserRole.CUSTOMER,
        nullable=False,
    )

    # Soft-disable: deactivated users can't log in but their ledger is preserved
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

    accounts: Mapped[list["Account"]] = relationship(back_populates="user")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
