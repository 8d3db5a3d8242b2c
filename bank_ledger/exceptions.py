"""
Custom exception classes and FastAPI exception handlers.

The service layer raises domain-specific errors without importing HTTP
concepts; register_exception_handlers() translates them into responses with
a consistent body: {"detail": "...", "error_type": "..."}.

Exception hierarchy:
    BankAPIError (base; the request session still COMMITS)
    ├── AccountNotFoundError     : account doesn't exist (or isn't yours)
    ├── UserNotFoundError        : customer doesn't exist (manager views)
    ├── RuleNotFoundError        : bill-pay / transfer rule doesn't exist
    ├── PayeeNotFoundError       : payee doesn't exist
    ├── UnauthorizedAccessError  : caller doesn't own the resource
    ├── InvalidAmountError       : amount string fails the money format
    ├── InvalidFrequencyError    : unknown schedule frequency
    ├── InvalidScheduleError     : start/end times don't make sense
    ├── InvalidTransferError     : transfer request is structurally wrong
    ├── TransactionDeniedError   : core returned Denied (audit row kept)
    ├── DuplicateEmailError / DuplicatePhoneError / InvalidCredentialsError
    └── InvalidApiKeyError       : missing, unknown, revoked or expired key

    LedgerIntegrityError (NOT a BankAPIError; the request ROLLS BACK)

Denials are business outcomes, not failures: the money-movement core returns
them as values and records a denied ledger row. Only the HTTP layer turns a
Denied outcome into TransactionDeniedError, and because get_db() commits on
BankAPIError that audit row survives the error response.
"""

import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse


class BankAPIError(Exception):
    """Base exception for all Bank Ledger domain errors."""

    status_code = 400
    error_type = "bank_error"

    def __init__(self, detail: str = "An error occurred"):
        self.detail = detail
        super().__init__(self.detail)

    def to_content(self) -> dict:
        return {"detail": self.detail, "error_type": self.error_type}


class AccountNotFoundError(BankAPIError):
    """Raised when a requested account does not exist."""

    status_code = 404
    error_type = "account_not_found"

    def __init__(self, account_ref: uuid.UUID | str):
        self.account_ref = account_ref
        super().__init__(f"Account {account_ref} not found")


class UserNotFoundError(BankAPIError):
    status_code = 404
    error_type = "user_not_found"

    def __init__(self, user_id: uuid.UUID):
        self.user_id = user_id
        super().__init__(f"User {user_id} not found")


class RuleNotFoundError(BankAPIError):
    status_code = 404
    error_type = "rule_not_found"

    def __init__(self, rule_kind: str, rule_id: uuid.UUID):
        self.rule_kind = rule_kind
        self.rule_id = rule_id
        super().__init__(f"{rule_kind.capitalize()} rule {rule_id} not found")


class PayeeNotFoundError(BankAPIError):
    status_code = 404
    error_type = "payee_not_found"

    def __init__(self, payee_id: uuid.UUID):
        self.payee_id = payee_id
        super().__init__(f"Payee {payee_id} not found")


class UnauthorizedAccessError(BankAPIError):
    """Raised when a user attempts to access a resource they don't own."""

    status_code = 403
    error_type = "unauthorized_access"

    def __init__(self, detail: str = "You do not have access to this resource"):
        super().__init__(detail)


class InvalidAmountError(BankAPIError):
    status_code = 422
    error_type = "invalid_amount"


class InvalidFrequencyError(BankAPIError):
    status_code = 422
    error_type = "invalid_frequency"

    def __init__(self, frequency: str):
        self.frequency = frequency
        super().__init__(
            f"Unknown frequency {frequency!r}: expected weekly, biweekly, monthly, "
            "quarterly, yearly or a five-field cron expression"
        )


class InvalidScheduleError(BankAPIError):
    status_code = 400
    error_type = "invalid_schedule"


class InvalidTransferError(BankAPIError):
    status_code = 400
    error_type = "invalid_transfer"


class TransactionDeniedError(BankAPIError):
    """
    A posting was denied for a business reason and recorded for audit.

    Attributes:
        reason: Machine-readable denial reason from the ledger core.
        transaction_id: The denied ledger row.
        account_id: The account the denied posting targeted.
        requested_cents: Magnitude of the attempted movement.
    """

    error_type = "transaction_denied"

    _STATUS_BY_REASON = {
        "insufficient_funds": 409,  # Conflict with current account state
        "account_inactive": 403,
        "destination_inactive": 403,
        "payee_inactive": 403,
    }

    def __init__(
        self,
        reason: str,
        transaction_id: uuid.UUID | None,
        account_id: uuid.UUID,
        requested_cents: int,
    ):
        self.reason = reason
        self.transaction_id = transaction_id
        self.account_id = account_id
        self.requested_cents = requested_cents
        self.status_code = self._STATUS_BY_REASON.get(reason, 400)
        super().__init__(f"Transaction denied: {reason.replace('_', ' ')}")

    def to_content(self) -> dict:
        return {
            "detail": self.detail,
            "error_type": self.error_type,
            "reason": self.reason,
            "transaction_id": str(self.transaction_id) if self.transaction_id else None,
            "account_id": str(self.account_id),
            "requested_cents": self.requested_cents,
        }


class DuplicateEmailError(BankAPIError):
    """Raised when attempting to register with an email that's already in use."""

    status_code = 409
    error_type = "duplicate_email"

    def __init__(self, email: str):
        self.email = email
        super().__init__(f"Email {email} is already registered")


class DuplicatePhoneError(BankAPIError):
    status_code = 409
    error_type = "duplicate_phone"

    def __init__(self, phone_number: str):
        self.phone_number = phone_number
        super().__init__(f"Phone number {phone_number} is already registered")


class InvalidCredentialsError(BankAPIError):
    """Raised when login credentials are incorrect."""

    status_code = 401
    error_type = "invalid_credentials"

    def __init__(self):
        super().__init__("Invalid email or password")


class InvalidApiKeyError(BankAPIError):
    status_code = 401
    error_type = "invalid_api_key"


class LedgerIntegrityError(Exception):
    """
    The ledger reached a state the posting rules say is impossible.

    Deliberately outside BankAPIError: get_db() must roll the whole request
    back rather than commit anything written before the failure.
    """


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register custom exception handlers with the FastAPI application.

    Called once during app construction in main.py.
    """

    @app.exception_handler(BankAPIError)
    async def bank_api_error_handler(request: Request, exc: BankAPIError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_content())

    @app.exception_handler(LedgerIntegrityError)
    async def ledger_integrity_handler(
        request: Request, exc: LedgerIntegrityError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal ledger error", "error_type": "ledger_integrity"},
        )
