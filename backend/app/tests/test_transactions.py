"""Tests for deposits, withdrawals and returned tokens."""

import asyncio
import pathlib
import sys
from datetime import datetime

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy import func
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlmodel import SQLModel, select

# Allow importing the app package
sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from app import ledger
from app.main import app
from app.auth import Caller, CallerIdentity
from app.database import get_session
from app.errors import InsufficientFunds, NotFound, ValidationError
from app.models import (
    AuditLog,
    Balance,
    Child,
    TokenDeposit,
    Transaction,
    User,
    UserRole,
)


async def _setup_test_db():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    TestSession = async_sessionmaker(engine, expire_on_commit=False)

    async def override_get_session():
        async with TestSession() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    return TestSession


def _caller(user: User) -> Caller:
    return Caller(
        identity=CallerIdentity(user.auth_uid, user.email, user.role.value),
        user=user,
    )


async def _seed(TestSession):
    async with TestSession() as session:
        parent = User(auth_uid="p", name="Pat", email="pat@example.com")
        volunteer = User(
            auth_uid="v", name="Val", email="val@example.com", role=UserRole.volunteer
        )
        session.add(parent)
        session.add(volunteer)
        await session.commit()
        child, _ = await ledger.create_child(session, _caller(parent), "Kim", "female")
        return volunteer, child.id


async def _counts(TestSession, child_id):
    async with TestSession() as session:
        balance = (
            await session.execute(select(Balance).where(Balance.child_id == child_id))
        ).scalar_one()
        tx_count = await session.scalar(
            select(func.count()).select_from(Transaction).where(Transaction.child_id == child_id)
        )
        audit_count = await session.scalar(select(func.count()).select_from(AuditLog))
        return balance.amount_cents, tx_count, audit_count


def test_checkin_then_withdrawals_walkthrough():
    async def run():
        TestSession = await _setup_test_db()
        volunteer, child_id = await _seed(TestSession)
        caller = _caller(volunteer)
        async with TestSession() as session:
            _, _, balance = await ledger.check_in(
                session, caller, child_id, now=datetime(2026, 5, 1, 9, 0)
            )
            assert balance.amount_cents == 200

            balance, tx = await ledger.withdraw(session, caller, child_id, 150)
            assert balance.amount_cents == 50
            assert tx.type == "withdrawal"
            assert tx.amount_cents == 150
            assert tx.description == "Withdrawal by val@example.com"

        before = await _counts(TestSession, child_id)
        async with TestSession() as session:
            with pytest.raises(InsufficientFunds):
                await ledger.withdraw(session, caller, child_id, 100)
        after = await _counts(TestSession, child_id)
        assert after == before
        assert after[0] == 50

        async with TestSession() as session:
            types = (
                await session.execute(
                    select(Transaction.type).order_by(Transaction.id)
                )
            ).scalars().all()
        assert types == ["credit", "withdrawal"]

    asyncio.run(run())


def test_every_change_writes_one_matching_transaction():
    async def run():
        TestSession = await _setup_test_db()
        volunteer, child_id = await _seed(TestSession)
        caller = _caller(volunteer)
        async with TestSession() as session:
            balance, tx = await ledger.deposit(session, caller, child_id, 500)
            assert balance.amount_cents == 500
            assert (tx.type, tx.amount_cents) == ("deposit", 500)
            balance, tx = await ledger.withdraw(session, caller, child_id, 500)
            assert balance.amount_cents == 0
            assert (tx.type, tx.amount_cents) == ("withdrawal", 500)

        amount, tx_count, _ = await _counts(TestSession, child_id)
        assert amount == 0
        assert tx_count == 2

    asyncio.run(run())


def test_non_positive_or_fractional_amounts_are_rejected():
    async def run():
        TestSession = await _setup_test_db()
        volunteer, child_id = await _seed(TestSession)
        caller = _caller(volunteer)
        async with TestSession() as session:
            for bad in (0, -5, 1.5, True):
                with pytest.raises(ValidationError):
                    await ledger.deposit(session, caller, child_id, bad)
                with pytest.raises(ValidationError):
                    await ledger.withdraw(session, caller, child_id, bad)
            with pytest.raises(NotFound):
                await ledger.deposit(session, caller, 9999, 100)
            with pytest.raises(NotFound):
                await ledger.withdraw(session, caller, 9999, 100)

        amount, tx_count, _ = await _counts(TestSession, child_id)
        assert (amount, tx_count) == (0, 0)

    asyncio.run(run())


def test_token_deposit_leaves_balance_alone():
    async def run():
        TestSession = await _setup_test_db()
        volunteer, child_id = await _seed(TestSession)
        async with TestSession() as session:
            entry = await ledger.record_token_deposit(
                session, _caller(volunteer), child_id, 7
            )
            assert entry.tokens_returned == 7
            assert entry.volunteer_id == volunteer.id
            with pytest.raises(ValidationError):
                await ledger.record_token_deposit(session, _caller(volunteer), child_id, 0)

        amount, tx_count, _ = await _counts(TestSession, child_id)
        assert (amount, tx_count) == (0, 0)
        async with TestSession() as session:
            deposits = (await session.execute(select(TokenDeposit))).scalars().all()
            assert len(deposits) == 1

    asyncio.run(run())


def test_money_endpoints_enforce_roles_and_validation():
    async def run():
        TestSession = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            await client.post(
                "/api/register",
                json={"name": "Pat", "email": "pat@example.com", "password": "pass"},
            )
            resp = await client.post(
                "/api/register",
                json={"name": "Val", "email": "val@example.com", "password": "pass"},
            )
            vol_id = resp.json()["id"]
            async with TestSession() as session:
                volunteer = await session.get(User, vol_id)
                volunteer.role = UserRole.volunteer
                await session.commit()
            resp = await client.post(
                "/api/login", json={"email": "pat@example.com", "password": "pass"}
            )
            parent_headers = {"Authorization": f"Bearer {resp.json()['accessToken']}"}
            resp = await client.post(
                "/api/login", json={"email": "val@example.com", "password": "pass"}
            )
            vol_headers = {"Authorization": f"Bearer {resp.json()['accessToken']}"}

            resp = await client.post(
                "/api/child-create",
                headers=parent_headers,
                json={"name": "Kim", "gender": "female"},
            )
            child_id = resp.json()["child"]["id"]

            # Parents are refused even with a valid body.
            for path in ("/api/deposit", "/api/withdraw"):
                resp = await client.post(
                    path,
                    headers=parent_headers,
                    json={"childId": child_id, "amountCents": 100},
                )
                assert resp.status_code == 403
            resp = await client.post(
                "/api/deposit", json={"childId": child_id, "amountCents": 100}
            )
            assert resp.status_code == 401

            resp = await client.post(
                "/api/deposit",
                headers=vol_headers,
                json={"childId": child_id, "amountCents": 1.5},
            )
            assert resp.status_code == 400
            resp = await client.post(
                "/api/deposit",
                headers=vol_headers,
                json={"childId": child_id, "amountCents": 0},
            )
            assert resp.status_code == 400

            resp = await client.post(
                "/api/deposit",
                headers=vol_headers,
                json={"childId": child_id, "amountCents": 300},
            )
            assert resp.status_code == 200
            assert resp.json()["balance"]["amountCents"] == 300
            assert resp.json()["transaction"]["type"] == "deposit"

            resp = await client.post(
                "/api/withdraw",
                headers=vol_headers,
                json={"childId": child_id, "amountCents": 301},
            )
            assert resp.status_code == 400
            assert resp.json() == {"error": "Insufficient funds"}

            resp = await client.post(
                "/api/withdraw",
                headers=vol_headers,
                json={"childId": child_id, "amountCents": 100},
            )
            assert resp.status_code == 200
            assert resp.json()["balance"]["amountCents"] == 200

            resp = await client.post(
                "/api/token-deposit",
                headers=vol_headers,
                json={"childId": child_id, "tokensReturned": 4},
            )
            assert resp.status_code == 200
            assert resp.json()["tokensReturned"] == 4

            resp = await client.get(
                f"/api/children/{child_id}/transactions", headers=parent_headers
            )
            assert resp.status_code == 200
            ledger_body = resp.json()
            assert ledger_body["balanceCents"] == 200
            assert [t["type"] for t in ledger_body["transactions"]] == [
                "withdrawal",
                "deposit",
            ]

        async with TestSession() as session:
            child = await session.get(Child, child_id)
            assert child.times_checked_in == 0

    asyncio.run(run())


def test_timestamps_are_stored_as_naive_utc():
    async def run():
        TestSession = await _setup_test_db()
        volunteer, child_id = await _seed(TestSession)
        before = datetime.utcnow()
        async with TestSession() as session:
            await ledger.deposit(session, _caller(volunteer), child_id, 100)

        async with TestSession() as session:
            tx = (
                await session.execute(select(Transaction).where(Transaction.child_id == child_id))
            ).scalar_one()
            balance = (
                await session.execute(select(Balance).where(Balance.child_id == child_id))
            ).scalar_one()
        for stamp in (tx.created_at, balance.updated_at):
            assert stamp.tzinfo is None
            assert abs((stamp - before).total_seconds()) < 60

    asyncio.run(run())
