"""Tests for child creation and the family ownership rules."""

import asyncio
import pathlib
import sys

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker
from sqlmodel import SQLModel, select

# Allow importing the app package
sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))

from app.main import app
from app.database import get_session
from app.models import AuditLog, Balance, Child, User


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


async def _register(client, name, email):
    resp = await client.post(
        "/api/register", json={"name": name, "email": email, "password": "pass"}
    )
    assert resp.status_code == 200
    return resp.json()["id"]


async def _login(client, email):
    resp = await client.post("/api/login", json={"email": email, "password": "pass"})
    assert resp.status_code == 200
    return {"Authorization": f"Bearer {resp.json()['accessToken']}"}


async def _set_role(TestSession, user_id, role):
    async with TestSession() as session:
        user = await session.get(User, user_id)
        user.role = role
        await session.commit()


def test_parent_creates_children_for_own_family():
    async def run():
        TestSession = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            p1_id = await _register(client, "Parent1", "p1@example.com")
            p2_id = await _register(client, "Parent2", "p2@example.com")
            p1_headers = await _login(client, "p1@example.com")

            # A parentId pointing at another family is ignored for parents.
            resp = await client.post(
                "/api/child-create",
                headers=p1_headers,
                json={
                    "name": "Kim",
                    "gender": "female",
                    "dateOfBirth": "2016-04-02",
                    "parentId": p2_id,
                },
            )
            assert resp.status_code == 200
            body = resp.json()
            assert body["child"]["parentId"] == p1_id
            assert body["child"]["timesCheckedIn"] == 0
            assert body["balance"]["amountCents"] == 0
            kim_id = body["child"]["id"]

            resp = await client.post(
                "/api/child-create",
                headers=p1_headers,
                json={"name": "Lee", "gender": "male"},
            )
            assert resp.status_code == 200

            resp = await client.get("/api/children", headers=p1_headers)
            assert resp.status_code == 200
            names = [c["name"] for c in resp.json()]
            assert names == ["Kim", "Lee"]
            assert all(c["balanceCents"] == 0 for c in resp.json())

            resp = await client.get(f"/api/children/{kim_id}", headers=p1_headers)
            assert resp.status_code == 200
            detail = resp.json()
            assert [s["name"] for s in detail["siblings"]] == ["Lee"]
            assert detail["recentTransactions"] == []

        async with TestSession() as session:
            balances = (await session.execute(select(Balance))).scalars().all()
            assert len(balances) == 2
            actions = (await session.execute(select(AuditLog.action))).scalars().all()
            assert actions.count("create_child") == 2

    asyncio.run(run())


def test_staff_must_name_the_parent():
    async def run():
        TestSession = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            parent_id = await _register(client, "Parent", "parent@example.com")
            vol_id = await _register(client, "Vol", "vol@example.com")
            await _set_role(TestSession, vol_id, "volunteer")
            vol_headers = await _login(client, "vol@example.com")

            resp = await client.post(
                "/api/child-create",
                headers=vol_headers,
                json={"name": "Kim", "gender": "female"},
            )
            assert resp.status_code == 400
            assert resp.json() == {"error": "parentId is required"}

            resp = await client.post(
                "/api/child-create",
                headers=vol_headers,
                json={"name": "Kim", "gender": "female", "parentId": 9999},
            )
            assert resp.status_code == 404

            resp = await client.post(
                "/api/child-create",
                headers=vol_headers,
                json={"name": "Kim", "gender": "female", "parentId": parent_id},
            )
            assert resp.status_code == 200
            assert resp.json()["child"]["parentId"] == parent_id

        async with TestSession() as session:
            children = (await session.execute(select(Child))).scalars().all()
            assert len(children) == 1

    asyncio.run(run())


def test_invalid_child_input_is_rejected():
    async def run():
        TestSession = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            await _register(client, "Parent", "parent@example.com")
            headers = await _login(client, "parent@example.com")

            resp = await client.post(
                "/api/child-create", headers=headers, json={"name": "Kim"}
            )
            assert resp.status_code == 400
            resp = await client.post(
                "/api/child-create",
                headers=headers,
                json={"name": "Kim", "gender": "robot"},
            )
            assert resp.status_code == 400
            resp = await client.post(
                "/api/child-create",
                headers=headers,
                json={"name": "", "gender": "male"},
            )
            assert resp.status_code == 400

            vendor_id = await _register(client, "Vendor", "vendor@example.com")
            await _set_role(TestSession, vendor_id, "vendor")
            vendor_headers = await _login(client, "vendor@example.com")
            resp = await client.post(
                "/api/child-create",
                headers=vendor_headers,
                json={"name": "Kim", "gender": "female"},
            )
            assert resp.status_code == 403

        async with TestSession() as session:
            assert (await session.execute(select(Child))).scalars().all() == []

    asyncio.run(run())


def test_parents_only_see_their_own_children():
    async def run():
        TestSession = await _setup_test_db()
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            await _register(client, "Parent1", "p1@example.com")
            await _register(client, "Parent2", "p2@example.com")
            vol_id = await _register(client, "Vol", "vol@example.com")
            await _set_role(TestSession, vol_id, "volunteer")
            p1_headers = await _login(client, "p1@example.com")
            p2_headers = await _login(client, "p2@example.com")
            vol_headers = await _login(client, "vol@example.com")

            resp = await client.post(
                "/api/child-create",
                headers=p1_headers,
                json={"name": "Kim", "gender": "female"},
            )
            child_id = resp.json()["child"]["id"]

            resp = await client.get(f"/api/children/{child_id}", headers=p2_headers)
            assert resp.status_code == 403
            assert resp.json() == {"error": "Not authorized"}
            resp = await client.get(
                f"/api/children/{child_id}/transactions", headers=p2_headers
            )
            assert resp.status_code == 403

            resp = await client.get(f"/api/children/{child_id}", headers=vol_headers)
            assert resp.status_code == 200
            resp = await client.get(
                f"/api/children/{child_id}/transactions", headers=p1_headers
            )
            assert resp.status_code == 200
            assert resp.json() == {"balanceCents": 0, "transactions": []}

            resp = await client.get("/api/children/9999", headers=vol_headers)
            assert resp.status_code == 404

    asyncio.run(run())
