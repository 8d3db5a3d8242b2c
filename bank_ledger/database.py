"""
Database engine, session management, and base model class.

This module sets up SQLAlchemy 2.0 with async support. Key components:

  - engine: The async database engine (connection pool for production DBs)
  - AsyncSessionLocal: Factory for creating async database sessions
  - Base: Declarative base class that all ORM models inherit from
  - get_db(): FastAPI dependency that provides a session per request

Session lifecycle:
  Each API request gets its own session via get_db(). That session's
  database transaction is the atomicity boundary for one logical money
  movement: the idempotency check, balance mutations and ledger inserts
  either all commit or all roll back. The money-movement core nests
  SAVEPOINTs inside it (session.begin_nested()) for sub-steps that must be
  undone on their own, such as a losing idempotency race.

SQLite note:
  pysqlite/aiosqlite defer BEGIN until the first write, which makes an
  early SAVEPOINT behave like an independent transaction and lets
  RELEASE commit it. configure_sqlite() turns off the driver's own
  transaction handling and has SQLAlchemy emit BEGIN IMMEDIATE itself, so
  savepoints nest properly and concurrent writers queue on the database
  lock instead of deadlocking.
"""

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from bank_ledger.config import settings
from bank_ledger.exceptions import BankAPIError


def configure_sqlite(engine: AsyncEngine) -> None:
    """Make SQLAlchemy own transaction boundaries on a SQLite engine."""
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


# echo=True in debug mode logs all SQL statements
engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DEBUG,
)
configure_sqlite(engine)

# expire_on_commit=False prevents lazy-load errors after commit:
# accessing attributes on a committed object would otherwise trigger
# a synchronous DB call, which fails in async context.
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


async def get_db():
    """
    FastAPI dependency that provides a database session.

    Usage in a route:
        @router.get("/items")
        async def list_items(db: AsyncSession = Depends(get_db)):
            ...

    The session is committed on success and rolled back on any unexpected
    exception, then closed when the request completes.
    """
    async with AsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except BankAPIError:
            # Business outcomes surfaced as errors (e.g. a denied debit):
            # commit so the denied audit row written by the core persists.
            await session.commit()
            raise
        except Exception:
            await session.rollback()
            raise
