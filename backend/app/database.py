import logging
from contextlib import asynccontextmanager
from sqlmodel import SQLModel
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)

from app.config import DATABASE_URL, SQL_ECHO

# Route SQL echo output through logging
if SQL_ECHO:
    logging.getLogger("sqlalchemy.engine").setLevel(logging.INFO)

engine = create_async_engine(DATABASE_URL, echo=SQL_ECHO)

async_session = async_sessionmaker(engine, expire_on_commit=False)


async def create_db_and_tables() -> None:
    from .models import (
        Credential,
        User,
        Child,
        Balance,
        Checkin,
        Transaction,
        TokenDeposit,
        VendorTokenTurnin,
        AuditLog,
        QrCode,
    )

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session() -> AsyncSession:
    async with async_session() as session:
        yield session


@asynccontextmanager
async def atomic(db: AsyncSession):
    """Commit everything done inside the block, or roll all of it back."""

    try:
        yield db
        await db.commit()
    except Exception:
        await db.rollback()
        raise


def insert_ignoring_conflicts(db: AsyncSession, table):
    """Dialect specific ``INSERT`` that supports ``on_conflict_do_nothing``."""

    if db.get_bind().dialect.name == "postgresql":
        return postgresql_insert(table)
    return sqlite_insert(table)
