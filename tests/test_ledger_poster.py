"""
Tests for the money-movement core, driven directly on a database session.

These tests verify:
  - Approved postings change the balance and write one ledger row
  - Debits the balance cannot cover are denied, recorded, and leave the
    balance untouched (no overdraft, ever)
  - Replaying a posting with the same idempotency key and fields returns
    Duplicate without a second balance change
  - A duplicate that slips past the guard is caught by the unique
    constraint, and its balance change is rolled back
  - Two concurrent debits on separate connections cannot both succeed
  - Transfers post both legs or neither; an unresolved destination posts
    the debit leg only
"""

import secrets
import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from bank_ledger.database import Base, configure_sqlite
from bank_ledger.exceptions import (
    AccountNotFoundError,
    InvalidTransferError,
    LedgerIntegrityError,
)
from bank_ledger.ledger import (
    Approved,
    Denied,
    Duplicate,
    LedgerStore,
    PostingIntent,
    Resolved,
    TransactionPoster,
    TransferApproved,
    TransferIntent,
    Unresolved,
)
from bank_ledger.ledger.poster import ACCOUNT_INACTIVE, DESTINATION_INACTIVE, INSUFFICIENT_FUNDS
from bank_ledger.models.account import Account
from bank_ledger.models.transaction import (
    Direction,
    Transaction,
    TransactionStatus,
    TransactionType,
)
from bank_ledger.models.user import User


async def _make_account(session: AsyncSession, balance_cents: int = 0, is_active: bool = True) -> Account:
    user = User(
        email=f"{uuid.uuid4().hex}@example.com",
        hashed_password="not-a-real-hash",
        first_name="Core",
        last_name="Test",
    )
    session.add(user)
    await session.flush()
    account = Account(
        user_id=user.id,
        account_number=str(secrets.randbelow(9 * 10**11) + 10**11),
        balance_cents=balance_cents,
        is_active=is_active,
    )
    session.add(account)
    await session.flush()
    return account


async def _balance(session: AsyncSession, account_id: uuid.UUID) -> int:
    account = await LedgerStore(session).get_account(account_id)
    return account.balance_cents


async def _row_count(session: AsyncSession, account_id: uuid.UUID) -> int:
    result = await session.execute(
        select(func.count()).select_from(Transaction).where(Transaction.account_id == account_id)
    )
    return result.scalar()


def _deposit(account_id, cents, key=None) -> PostingIntent:
    return PostingIntent(
        account_id=account_id,
        amount_cents=cents,
        transaction_type=TransactionType.DEPOSIT,
        idempotency_key=key,
    )


def _withdrawal(account_id, cents, key=None) -> PostingIntent:
    return PostingIntent(
        account_id=account_id,
        amount_cents=-cents,
        transaction_type=TransactionType.WITHDRAWAL,
        idempotency_key=key,
    )


class TestPosting:
    """Single-account postings."""

    async def test_credit_is_approved(self, db_session):
        account = await _make_account(db_session)
        poster = TransactionPoster(LedgerStore(db_session))

        outcome = await poster.post(_deposit(account.id, 10000))

        assert isinstance(outcome, Approved)
        txn = outcome.transaction
        assert txn.amount_cents == 10000
        assert txn.direction == Direction.INBOUND
        assert txn.status == TransactionStatus.APPROVED
        assert await _balance(db_session, account.id) == 10000

    async def test_debit_is_stored_negative(self, db_session):
        account = await _make_account(db_session, balance_cents=5000)
        poster = TransactionPoster(LedgerStore(db_session))

        outcome = await poster.post(_withdrawal(account.id, 2000))

        assert isinstance(outcome, Approved)
        assert outcome.transaction.amount_cents == -2000
        assert outcome.transaction.direction == Direction.OUTBOUND
        assert await _balance(db_session, account.id) == 3000

    async def test_overdraft_is_denied_and_recorded(self, db_session):
        """100.00 balance, 150.00 withdrawal: denied, balance stays 100.00."""
        account = await _make_account(db_session, balance_cents=10000)
        poster = TransactionPoster(LedgerStore(db_session))

        outcome = await poster.post(_withdrawal(account.id, 15000))

        assert isinstance(outcome, Denied)
        assert outcome.reason == INSUFFICIENT_FUNDS
        assert outcome.transaction.status == TransactionStatus.DENIED
        assert outcome.transaction.denial_reason == INSUFFICIENT_FUNDS
        assert await _balance(db_session, account.id) == 10000
        assert await _row_count(db_session, account.id) == 1

    async def test_exact_balance_debit_is_approved(self, db_session):
        account = await _make_account(db_session, balance_cents=10000)
        poster = TransactionPoster(LedgerStore(db_session))

        outcome = await poster.post(_withdrawal(account.id, 10000))

        assert isinstance(outcome, Approved)
        assert await _balance(db_session, account.id) == 0

    async def test_inactive_account_is_denied(self, db_session):
        account = await _make_account(db_session, balance_cents=10000, is_active=False)
        poster = TransactionPoster(LedgerStore(db_session))

        outcome = await poster.post(_deposit(account.id, 500))

        assert isinstance(outcome, Denied)
        assert outcome.reason == ACCOUNT_INACTIVE
        assert await _balance(db_session, account.id) == 10000

    async def test_missing_account_raises(self, db_session):
        poster = TransactionPoster(LedgerStore(db_session))

        with pytest.raises(AccountNotFoundError):
            await poster.post(_deposit(uuid.uuid4(), 500))

    def test_zero_amount_rejected(self):
        with pytest.raises(ValueError):
            _deposit(uuid.uuid4(), 0)


class TestIdempotency:
    """Replays of the same logical posting."""

    async def test_duplicate_credit_with_same_key(self, db_session):
        """Credit 25.00 with key k1 twice: one row, balance +25.00 once."""
        account = await _make_account(db_session)
        poster = TransactionPoster(LedgerStore(db_session))

        first = await poster.post(_deposit(account.id, 2500, key="k1"))
        second = await poster.post(_deposit(account.id, 2500, key="k1"))

        assert isinstance(first, Approved)
        assert isinstance(second, Duplicate)
        assert second.transaction.id == first.transaction.id
        assert await _balance(db_session, account.id) == 2500
        assert await _row_count(db_session, account.id) == 1

    async def test_same_key_different_amount_is_a_new_posting(self, db_session):
        account = await _make_account(db_session)
        poster = TransactionPoster(LedgerStore(db_session))

        await poster.post(_deposit(account.id, 2500, key="k1"))
        outcome = await poster.post(_deposit(account.id, 3000, key="k1"))

        assert isinstance(outcome, Approved)
        assert await _balance(db_session, account.id) == 5500

    async def test_no_key_never_deduplicates(self, db_session):
        account = await _make_account(db_session)
        poster = TransactionPoster(LedgerStore(db_session))

        await poster.post(_deposit(account.id, 100))
        outcome = await poster.post(_deposit(account.id, 100))

        assert isinstance(outcome, Approved)
        assert await _balance(db_session, account.id) == 200

    async def test_replayed_denial_returns_the_denied_row(self, db_session):
        account = await _make_account(db_session, balance_cents=1000)
        poster = TransactionPoster(LedgerStore(db_session))

        first = await poster.post(_withdrawal(account.id, 5000, key="retry-me"))
        second = await poster.post(_withdrawal(account.id, 5000, key="retry-me"))

        assert isinstance(first, Denied)
        assert isinstance(second, Duplicate)
        assert second.transaction.id == first.transaction.id
        assert await _row_count(db_session, account.id) == 1

    async def test_race_past_the_guard_rolls_back_the_delta(self, db_session):
        """
        The guard misses (as it would for a concurrent request), the insert
        hits the unique constraint, and the credit is undone.
        """

        class BlindOnceStore(LedgerStore):
            calls = 0

            async def find_transaction(self, key):
                self.calls += 1
                if self.calls == 1:
                    return None
                return await super().find_transaction(key)

        account = await _make_account(db_session)
        original = await TransactionPoster(LedgerStore(db_session)).post(
            _deposit(account.id, 2500, key="k1")
        )

        outcome = await TransactionPoster(BlindOnceStore(db_session)).post(
            _deposit(account.id, 2500, key="k1")
        )

        assert isinstance(outcome, Duplicate)
        assert outcome.transaction.id == original.transaction.id
        assert await _balance(db_session, account.id) == 2500
        assert await _row_count(db_session, account.id) == 1


class TestConcurrentDebits:
    """Two debits racing on separate connections against one balance."""

    async def test_only_one_of_two_concurrent_debits_succeeds(self, tmp_path):
        """100.00 balance, two concurrent 60.00 debits: one approved, one denied."""
        import asyncio

        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
        configure_sqlite(engine)
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

        try:
            async with factory() as session:
                account = await _make_account(session, balance_cents=10000)
                await session.commit()

            async def debit(key):
                async with factory() as session:
                    outcome = await TransactionPoster(LedgerStore(session)).post(
                        _withdrawal(account.id, 6000, key=key)
                    )
                    await session.commit()
                    return outcome

            outcomes = await asyncio.gather(debit("a"), debit("b"))

            assert sorted(type(o).__name__ for o in outcomes) == ["Approved", "Denied"]
            async with factory() as session:
                assert await _balance(session, account.id) == 4000
        finally:
            await engine.dispose()


class TestTransfers:
    """Two-leg transfers through TransactionPoster.transfer."""

    async def test_internal_transfer_posts_both_legs(self, db_session):
        source = await _make_account(db_session, balance_cents=10000)
        destination = await _make_account(db_session)
        poster = TransactionPoster(LedgerStore(db_session))

        outcome = await poster.transfer(
            TransferIntent(
                source_account_id=source.id,
                destination=Resolved(destination.id),
                amount_cents=4000,
            )
        )

        assert isinstance(outcome, TransferApproved)
        assert not outcome.black_hole
        assert outcome.debit.amount_cents == -4000
        assert outcome.credit.amount_cents == 4000
        assert outcome.debit.transfer_group_id == outcome.credit.transfer_group_id
        assert await _balance(db_session, source.id) == 6000
        assert await _balance(db_session, destination.id) == 4000

    async def test_insufficient_funds_posts_no_credit(self, db_session):
        source = await _make_account(db_session, balance_cents=1000)
        destination = await _make_account(db_session)
        poster = TransactionPoster(LedgerStore(db_session))

        outcome = await poster.transfer(
            TransferIntent(
                source_account_id=source.id,
                destination=Resolved(destination.id),
                amount_cents=4000,
            )
        )

        assert isinstance(outcome, Denied)
        assert await _balance(db_session, source.id) == 1000
        assert await _row_count(db_session, destination.id) == 0

    async def test_failed_credit_leg_rolls_back_the_debit(self, db_session):
        """If the inbound leg cannot apply, neither leg survives."""

        class NoCreditStore(LedgerStore):
            async def increment_balance(self, account_id, amount_cents):
                return 0

        source = await _make_account(db_session, balance_cents=10000)
        destination = await _make_account(db_session)
        poster = TransactionPoster(NoCreditStore(db_session))

        with pytest.raises(LedgerIntegrityError):
            await poster.transfer(
                TransferIntent(
                    source_account_id=source.id,
                    destination=Resolved(destination.id),
                    amount_cents=4000,
                )
            )

        assert await _balance(db_session, source.id) == 10000
        assert await _row_count(db_session, source.id) == 0
        assert await _row_count(db_session, destination.id) == 0

    async def test_unresolved_destination_posts_debit_only(self, db_session):
        source = await _make_account(db_session, balance_cents=10000)
        poster = TransactionPoster(LedgerStore(db_session))

        outcome = await poster.transfer(
            TransferIntent(
                source_account_id=source.id,
                destination=Unresolved(nickname="Someone Elsewhere", routing_number="021000021", account_number="12345"),
                amount_cents=2500,
                transaction_type=TransactionType.EXTERNAL_TRANSFER,
            )
        )

        assert isinstance(outcome, TransferApproved)
        assert outcome.black_hole
        assert outcome.credit is None
        assert outcome.debit.external_nickname == "Someone Elsewhere"
        assert outcome.debit.external_account_number == "12345"
        assert await _balance(db_session, source.id) == 7500

    async def test_inactive_destination_is_denied(self, db_session):
        source = await _make_account(db_session, balance_cents=10000)
        destination = await _make_account(db_session, is_active=False)
        poster = TransactionPoster(LedgerStore(db_session))

        outcome = await poster.transfer(
            TransferIntent(
                source_account_id=source.id,
                destination=Resolved(destination.id),
                amount_cents=4000,
            )
        )

        assert isinstance(outcome, Denied)
        assert outcome.reason == DESTINATION_INACTIVE
        assert await _balance(db_session, source.id) == 10000

    async def test_same_account_transfer_rejected(self, db_session):
        account = await _make_account(db_session, balance_cents=10000)
        poster = TransactionPoster(LedgerStore(db_session))

        with pytest.raises(InvalidTransferError):
            await poster.transfer(
                TransferIntent(
                    source_account_id=account.id,
                    destination=Resolved(account.id),
                    amount_cents=100,
                )
            )

    async def test_replayed_transfer_is_duplicate(self, db_session):
        source = await _make_account(db_session, balance_cents=10000)
        destination = await _make_account(db_session)
        poster = TransactionPoster(LedgerStore(db_session))
        intent = TransferIntent(
            source_account_id=source.id,
            destination=Resolved(destination.id),
            amount_cents=4000,
            idempotency_key="t1",
        )

        first = await poster.transfer(intent)
        second = await poster.transfer(intent)

        assert isinstance(first, TransferApproved)
        assert isinstance(second, Duplicate)
        assert second.transaction.id == first.debit.id
        assert await _balance(db_session, source.id) == 6000
        assert await _balance(db_session, destination.id) == 4000
