"""
Payee model: a business that bill-pay rules send money to.

Payees are shared by all users and identified in practice by their
(routing_number, account_number) pair: creating a payee whose pair already
exists returns the existing row instead of failing. The destination bank
account is never validated against a real external bank, so a payee
can point at an account that does not exist anywhere (the bill-pay
"black hole"): paying it debits the source account and posts no
inbound leg.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from bank_ledger.database import Base


class Payee(Base):
    __tablename__ = "billpay_payees"

    __table_args__ = (
        UniqueConstraint(
            "routing_number", "account_number", name="uq_billpay_payees_routing_account"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)

    business_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(20), nullable=False)

    street_address: Mapped[str] = mapped_column(String(255), nullable=False)
    address_line_2: Mapped[str | None] = mapped_column(String(255), nullable=True)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state_or_territory: Mapped[str] = mapped_column(String(2), nullable=False)
    postal_code: Mapped[str] = mapped_column(String(10), nullable=False)
    country: Mapped[str] = mapped_column(String(100), nullable=False, default="United States")

    account_number: Mapped[str] = mapped_column(String(17), nullable=False)
    routing_number: Mapped[str] = mapped_column(String(9), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
