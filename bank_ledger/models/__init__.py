"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows every table before create_all() runs
  2. Other modules can import from bank_ledger.models directly
"""

from bank_ledger.models.user import User, UserRole  # noqa: F401
from bank_ledger.models.account import Account, AccountType  # noqa: F401
from bank_ledger.models.payee import Payee  # noqa: F401
from bank_ledger.models.rules import BillPayRule, TransferKind, TransferRule  # noqa: F401
from bank_ledger.models.transaction import (  # noqa: F401
    Direction,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from bank_ledger.models.api_key import ApiKey  # noqa: F401
