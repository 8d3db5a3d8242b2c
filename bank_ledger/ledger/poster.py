"""
Transaction Poster: the single entry point for moving money.

post(intent) runs the whole posting as one atomic unit inside the caller's
database transaction:

  1. Idempotency Guard. A matching earlier row means Duplicate: no balance
     change and no new row.
  2. The account must exist (AccountNotFoundError otherwise). An inactive
     account is denied and the denial is recorded.
  3. Inside a SAVEPOINT, the Balance Mutator applies the signed delta. A
     debit the balance cannot cover is rolled back, recorded as a denied
     row and returned as Denied.
  4. The approved row is inserted. If the INSERT reports a Conflict, a
     concurrent identical request won the race: the SAVEPOINT is rolled
     back (undoing this request's delta), the winner is re-fetched and
     Duplicate is returned.

Outcomes are values, not exceptions. Denied and Duplicate are normal
terminal states of an attempt; only genuinely unexpected failures raise,
and those abort the caller's transaction.

transfer(intent) posts a debit leg on the source and, when the destination
resolved to one of our accounts, a credit leg on it. Both legs share a
transfer_group_id and a SAVEPOINT so they land together or not at all. An
Unresolved destination (a recipient we cannot find, the "black hole")
posts the debit leg only.
"""

import logging
import uuid
from dataclasses import dataclass, field

from bank_ledger.exceptions import (
    AccountNotFoundError,
    InvalidTransferError,
    LedgerIntegrityError,
)
from bank_ledger.ledger.balance import BalanceMutator
from bank_ledger.ledger.idempotency import IdempotencyGuard
from bank_ledger.ledger.store import Conflict, LedgerStore, NaturalKey
from bank_ledger.models.transaction import (
    Direction,
    Transaction,
    TransactionStatus,
    TransactionType,
)

logger = logging.getLogger(__name__)


INSUFFICIENT_FUNDS = "insufficient_funds"
ACCOUNT_INACTIVE = "account_inactive"
DESTINATION_INACTIVE = "destination_inactive"
PAYEE_INACTIVE = "payee_inactive"


# ---------------------------------------------------------------------------
# Intents
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RuleLink:
    """The recurring rule (if any) that produced a posting."""

    bill_pay_rule_id: uuid.UUID | None = None
    transfer_rule_id: uuid.UUID | None = None

    @classmethod
    def billpay(cls, rule_id: uuid.UUID) -> "RuleLink":
        return cls(bill_pay_rule_id=rule_id)

    @classmethod
    def transfer(cls, rule_id: uuid.UUID) -> "RuleLink":
        return cls(transfer_rule_id=rule_id)

    @property
    def ref(self) -> str:
        if self.bill_pay_rule_id is not None:
            return f"billpay:{self.bill_pay_rule_id}"
        if self.transfer_rule_id is not None:
            return f"transfer:{self.transfer_rule_id}"
        return ""


@dataclass(frozen=True)
class ExternalParty:
    """Counterparty outside this bank, recorded on the ledger row."""

    nickname: str | None = None
    routing_number: str | None = None
    account_number: str | None = None


@dataclass(frozen=True)
class PostingIntent:
    """
    One signed movement against one account.

    amount_cents is signed: positive credits the account, negative debits
    it. direction is derived from the sign so the two can never disagree.
    """

    account_id: uuid.UUID
    amount_cents: int
    transaction_type: TransactionType
    idempotency_key: str | None = None
    rule: RuleLink = field(default_factory=RuleLink)
    external: ExternalParty | None = None
    transfer_group_id: uuid.UUID | None = None

    def __post_init__(self):
        if self.amount_cents == 0:
            raise ValueError("A posting must move a non-zero amount")

    @property
    def direction(self) -> Direction:
        return Direction.INBOUND if self.amount_cents > 0 else Direction.OUTBOUND

    @property
    def natural_key(self) -> NaturalKey:
        return NaturalKey(
            idempotency_key=self.idempotency_key,
            transaction_type=self.transaction_type,
            account_id=self.account_id,
            amount_cents=self.amount_cents,
            rule_ref=self.rule.ref,
        )

    def log_fields(self) -> dict:
        return {
            "account_id": str(self.account_id),
            "amount_cents": self.amount_cents,
            "transaction_type": self.transaction_type.value,
            "idempotency_key": self.idempotency_key,
            "rule_ref": self.rule.ref or None,
        }


@dataclass(frozen=True)
class Resolved:
    """Transfer destination that is one of our accounts."""

    account_id: uuid.UUID


@dataclass(frozen=True)
class Unresolved:
    """Transfer destination we could not match to an account."""

    nickname: str
    routing_number: str | None = None
    account_number: str | None = None


Destination = Resolved | Unresolved


@dataclass(frozen=True)
class TransferIntent:
    """Move amount_cents (a positive magnitude) from source to destination."""

    source_account_id: uuid.UUID
    destination: Destination
    amount_cents: int
    transaction_type: TransactionType = TransactionType.INTERNAL_TRANSFER
    idempotency_key: str | None = None
    rule: RuleLink = field(default_factory=RuleLink)

    def __post_init__(self):
        if self.amount_cents <= 0:
            raise ValueError("A transfer amount must be positive")

    def debit_leg(self, group_id: uuid.UUID) -> PostingIntent:
        external = None
        if isinstance(self.destination, Unresolved):
            external = ExternalParty(
                nickname=self.destination.nickname,
                routing_number=self.destination.routing_number,
                account_number=self.destination.account_number,
            )
        return PostingIntent(
            account_id=self.source_account_id,
            amount_cents=-self.amount_cents,
            transaction_type=self.transaction_type,
            idempotency_key=self.idempotency_key,
            rule=self.rule,
            external=external,
            transfer_group_id=group_id,
        )

    def credit_leg(self, group_id: uuid.UUID) -> PostingIntent:
        if not isinstance(self.destination, Resolved):
            raise ValueError("An unresolved destination has no credit leg")
        return PostingIntent(
            account_id=self.destination.account_id,
            amount_cents=self.amount_cents,
            transaction_type=self.transaction_type,
            idempotency_key=self.idempotency_key,
            rule=self.rule,
            transfer_group_id=group_id,
        )


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Approved:
    transaction: Transaction


@dataclass(frozen=True)
class Denied:
    reason: str
    transaction: Transaction


@dataclass(frozen=True)
class Duplicate:
    transaction: Transaction


PostingOutcome = Approved | Denied | Duplicate


@dataclass(frozen=True)
class TransferApproved:
    debit: Transaction
    credit: Transaction | None
    transfer_group_id: uuid.UUID

    @property
    def black_hole(self) -> bool:
        return self.credit is None


TransferOutcome = TransferApproved | Denied | Duplicate


# ---------------------------------------------------------------------------
# Poster
# ---------------------------------------------------------------------------

class TransactionPoster:
    """Orchestrates guard, balance mutation and ledger insert for one store."""

    def __init__(self, store: LedgerStore):
        self.store = store
        self.guard = IdempotencyGuard(store)
        self.balances = BalanceMutator(store)

    async def post(self, intent: PostingIntent) -> PostingOutcome:
        existing = await self.guard.find_existing(intent.natural_key)
        if existing is not None:
            logger.warning(
                "Duplicate posting replayed",
                extra={**intent.log_fields(), "transaction_id": str(existing.id)},
            )
            return Duplicate(existing)

        account = await self.store.get_account(intent.account_id)
        if account is None:
            raise AccountNotFoundError(intent.account_id)
        if not account.is_active:
            return await self.deny(intent, ACCOUNT_INACTIVE)

        savepoint = await self.store.savepoint()
        try:
            delta = await self.balances.apply_delta(intent.account_id, intent.amount_cents)
            if not delta.applied:
                await savepoint.rollback()
                return await self.deny(intent, INSUFFICIENT_FUNDS)

            result = await self.store.insert_transaction(
                self._ledger_row(intent, TransactionStatus.APPROVED)
            )
            if isinstance(result, Conflict):
                # Lost the race: undo our delta and report the winner
                await savepoint.rollback()
                return await self._resolve_conflict(intent)

            await savepoint.commit()
        except Exception:
            if savepoint.is_active:
                await savepoint.rollback()
            logger.exception("Posting failed", extra=intent.log_fields())
            raise

        logger.info(
            "Posting approved",
            extra={**intent.log_fields(), "transaction_id": str(result.transaction.id)},
        )
        return Approved(result.transaction)

    async def deny(self, intent: PostingIntent, reason: str) -> Denied | Duplicate:
        """
        Record a denied attempt for audit without touching the balance.

        Callers use this directly for business-rule denials they detect
        themselves (an inactive payee, say). A denied row occupies the same
        idempotency slot as an approved one, so a replay of a denied request
        comes back as Duplicate of the denied row.
        """
        result = await self.store.insert_transaction(
            self._ledger_row(intent, TransactionStatus.DENIED, reason)
        )
        if isinstance(result, Conflict):
            return await self._resolve_conflict(intent)

        logger.warning(
            "Posting denied",
            extra={
                **intent.log_fields(),
                "reason": reason,
                "transaction_id": str(result.transaction.id),
            },
        )
        return Denied(reason, result.transaction)

    async def transfer(self, intent: TransferIntent) -> TransferOutcome:
        group_id = uuid.uuid4()
        debit_intent = intent.debit_leg(group_id)

        existing = await self.guard.find_existing(debit_intent.natural_key)
        if existing is not None:
            logger.warning(
                "Duplicate transfer replayed",
                extra={**debit_intent.log_fields(), "transaction_id": str(existing.id)},
            )
            return Duplicate(existing)

        credit_intent = None
        if isinstance(intent.destination, Resolved):
            if intent.destination.account_id == intent.source_account_id:
                raise InvalidTransferError("Cannot transfer to the same account")
            destination = await self.store.get_account(intent.destination.account_id)
            if destination is None:
                raise AccountNotFoundError(intent.destination.account_id)
            if not destination.is_active:
                if await self.store.get_account(intent.source_account_id) is None:
                    raise AccountNotFoundError(intent.source_account_id)
                return await self.deny(debit_intent, DESTINATION_INACTIVE)
            credit_intent = intent.credit_leg(group_id)

        savepoint = await self.store.savepoint()
        try:
            debit = await self.post(debit_intent)
            if not isinstance(debit, Approved):
                # Denied rows and replays are terminal for the whole transfer
                await savepoint.commit()
                return debit

            credit = None
            if credit_intent is not None:
                credit_outcome = await self.post(credit_intent)
                if not isinstance(credit_outcome, Approved):
                    raise LedgerIntegrityError(
                        f"Credit leg of transfer {group_id} was not approved: "
                        f"{type(credit_outcome).__name__}"
                    )
                credit = credit_outcome.transaction

            await savepoint.commit()
        except Exception:
            if savepoint.is_active:
                await savepoint.rollback()
            logger.exception(
                "Transfer failed",
                extra={**debit_intent.log_fields(), "transfer_group_id": str(group_id)},
            )
            raise

        if credit is None:
            logger.warning(
                "Transfer posted to unresolved destination (debit leg only)",
                extra={**debit_intent.log_fields(), "transfer_group_id": str(group_id)},
            )
        return TransferApproved(debit=debit.transaction, credit=credit, transfer_group_id=group_id)

    async def _resolve_conflict(self, intent: PostingIntent) -> Duplicate:
        winner = await self.store.find_transaction(intent.natural_key)
        if winner is None:
            raise LedgerIntegrityError(
                f"Idempotency conflict without a matching row for account {intent.account_id}"
            )
        logger.warning(
            "Concurrent duplicate posting resolved",
            extra={**intent.log_fields(), "transaction_id": str(winner.id)},
        )
        return Duplicate(winner)

    @staticmethod
    def _ledger_row(
        intent: PostingIntent, status: TransactionStatus, denial_reason: str | None = None
    ) -> Transaction:
        external = intent.external or ExternalParty()
        return Transaction(
            id=uuid.uuid4(),
            account_id=intent.account_id,
            amount_cents=intent.amount_cents,
            transaction_type=intent.transaction_type,
            direction=intent.direction,
            status=status,
            denial_reason=denial_reason,
            idempotency_key=intent.idempotency_key,
            bill_pay_rule_id=intent.rule.bill_pay_rule_id,
            transfer_rule_id=intent.rule.transfer_rule_id,
            rule_ref=intent.rule.ref,
            transfer_group_id=intent.transfer_group_id,
            external_routing_number=external.routing_number,
            external_account_number=external.account_number,
            external_nickname=external.nickname,
        )
