"""Racing ledger operations against a shared on-disk database."""

import asyncio
import pathlib
import sys

from sqlalchemy import func
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlmodel import SQLModel, select

# Allow importing the app package
sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from app import ledger
from app.auth import Caller, CallerIdentity
from app.errors import InsufficientFunds
from app.models import Balance, Child, Transaction, User, UserRole


def _caller(user: User) -> Caller:
    return Caller(
        identity=CallerIdentity(user.auth_uid, user.email, user.role.value),
        user=user,
    )


async def _setup_file_db(path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{path}")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    return engine, async_sessionmaker(engine, expire_on_commit=False)


def test_first_deposit_and_checkin_share_one_balance(tmp_path):
    async def run():
        engine, TestSession = await _setup_file_db(tmp_path / "race.db")
        async with TestSession() as session:
            parent = User(auth_uid="p", name="Pat", email="pat@example.com")
            volunteer = User(
                auth_uid="v",
                name="Val",
                email="val@example.com",
                role=UserRole.volunteer,
            )
            session.add(parent)
            session.add(volunteer)
            await session.commit()
            # No Balance row yet; both operations must create it lazily.
            child = Child(parent_id=parent.id, name="Kim", gender="female")
            session.add(child)
            await session.commit()
            child_id = child.id

        caller = _caller(volunteer)

        async def deposit():
            async with TestSession() as session:
                await ledger.deposit(session, caller, child_id, 500)

        async def check_in():
            async with TestSession() as session:
                await ledger.check_in(session, caller, child_id)

        await asyncio.gather(deposit(), check_in())

        async with TestSession() as session:
            balances = (
                await session.execute(select(Balance).where(Balance.child_id == child_id))
            ).scalars().all()
            tx_count = await session.scalar(
                select(func.count()).select_from(Transaction)
            )
        await engine.dispose()

        assert len(balances) == 1
        assert balances[0].amount_cents == 700
        assert tx_count == 2

    asyncio.run(run())


def test_concurrent_withdrawals_never_overdraw(tmp_path):
    async def run():
        engine, TestSession = await _setup_file_db(tmp_path / "overdraw.db")
        async with TestSession() as session:
            volunteer = User(
                auth_uid="v",
                name="Val",
                email="val@example.com",
                role=UserRole.volunteer,
            )
            session.add(volunteer)
            await session.commit()
            child, _ = await ledger.create_child(
                session, _caller(volunteer), "Kim", "female", parent_id=volunteer.id
            )
            child_id = child.id
            await ledger.deposit(session, _caller(volunteer), child_id, 300)

        caller = _caller(volunteer)

        async def withdraw():
            async with TestSession() as session:
                try:
                    await ledger.withdraw(session, caller, child_id, 200)
                    return True
                except InsufficientFunds:
                    return False

        results = await asyncio.gather(withdraw(), withdraw(), withdraw())

        async with TestSession() as session:
            balance = (
                await session.execute(select(Balance).where(Balance.child_id == child_id))
            ).scalar_one()
            withdrawals = await session.scalar(
                select(func.count())
                .select_from(Transaction)
                .where(Transaction.type == "withdrawal")
            )
        await engine.dispose()

        assert results.count(True) == 1
        assert balance.amount_cents == 100
        assert withdrawals == 1

    asyncio.run(run())
