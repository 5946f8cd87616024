"""
E2E test fixtures for the Tap4Service backend.

Provides:
- An in-process FastAPI test app with all routes and error handlers registered
- httpx AsyncClient wired via ASGI transport (no network needed)
- A fresh in-memory SQLite ``Database`` per test, with foreign keys enforced
- Pre-populated seed data: two customers, three technicians with regions
- Helpers for creating and assigning requests through the API

The Socket.IO send helpers are replaced with mocks so the full
route -> service -> DB -> notifier flow runs and the pushes can be asserted.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import AsyncGenerator, Optional
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from tap4service.api.deps import get_db
from tap4service.api.errors import register_exception_handlers
from tap4service.core.database import Database, enable_sqlite_foreign_keys
from tap4service.core.security import hash_password
from tap4service.core.timefmt import WIRE_FORMAT, display_zone

# ---------------------------------------------------------------------------
# Test IDs (stable across tests so cross-references work)
# ---------------------------------------------------------------------------

CUSTOMER_ID = 7
OTHER_CUSTOMER_ID = 8

TECHNICIAN_ID = 3            # serves Auckland
OTHER_TECHNICIAN_ID = 4      # serves Wellington and Hawke's Bay
UNREGIONED_TECHNICIAN_ID = 5  # serves nowhere

CUSTOMER_EMAIL = "aroha@test.tap4service.nz"
TECHNICIAN_EMAIL = "rawiri@test.tap4service.nz"
PASSWORD = "kia-ora-2030"


# ---------------------------------------------------------------------------
# Wire time helpers
# ---------------------------------------------------------------------------


def local_time(delta: timedelta) -> str:
    """Now plus ``delta`` in the display zone, as a wire timestamp."""
    return (datetime.now(display_zone()) + delta).strftime(WIRE_FORMAT)


def days_ahead_at(days: int, hour: int) -> str:
    """``days`` from today at ``hour``:00 local, as a wire timestamp."""
    local = datetime.now(display_zone()) + timedelta(days=days)
    return local.replace(hour=hour, minute=0, second=0, microsecond=0).strftime(WIRE_FORMAT)


# ---------------------------------------------------------------------------
# Database (in-memory SQLite, one per test)
# ---------------------------------------------------------------------------

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture
async def database() -> AsyncGenerator[Database, None]:
    """A seeded ``Database`` on a private in-memory SQLite connection."""
    engine = create_async_engine(
        TEST_DB_URL,
        echo=False,
        # One shared connection so every session sees the same memory DB
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_foreign_keys(engine)
    db = Database(engine)
    await db.create_all()

    async with db.session() as session:
        await _seed_data(session)

    yield db

    await db.dispose()


async def _seed_data(db: AsyncSession) -> None:
    """Insert minimum seed data for E2E tests."""
    from tap4service.models import Customer, Region, Technician, TechnicianRegion

    password_hash = hash_password(PASSWORD)

    db.add_all([
        Customer(
            id=CUSTOMER_ID,
            email=CUSTOMER_EMAIL,
            password_hash=password_hash,
            name="Aroha Ngata",
            region="Auckland",
            address="12 Ponsonby Road",
            city="Auckland",
            postal_code="1011",
        ),
        Customer(
            id=OTHER_CUSTOMER_ID,
            email="mere@test.tap4service.nz",
            password_hash=password_hash,
            name="Mere Tane",
            region="Wellington",
        ),
        Technician(
            id=TECHNICIAN_ID,
            email=TECHNICIAN_EMAIL,
            password_hash=password_hash,
            name="Rawiri Plumbing",
            region_rows=[TechnicianRegion(region=Region.AUCKLAND)],
        ),
        Technician(
            id=OTHER_TECHNICIAN_ID,
            email="hemi@test.tap4service.nz",
            password_hash=password_hash,
            name="Hemi Electrical",
            region_rows=[
                TechnicianRegion(region=Region.WELLINGTON),
                TechnicianRegion(region=Region.HAWKES_BAY),
            ],
        ),
        Technician(
            id=UNREGIONED_TECHNICIAN_ID,
            email="nobody@test.tap4service.nz",
            password_hash=password_hash,
            name="Idle Technician",
        ),
    ])
    await db.flush()


# ---------------------------------------------------------------------------
# Socket.IO pushes
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def pushes():
    """Capture every push the notifier sends instead of emitting it."""
    with patch(
        "tap4service.realtime.socketServer.send_to_customer", new_callable=AsyncMock
    ) as to_customer, patch(
        "tap4service.realtime.socketServer.send_to_technician", new_callable=AsyncMock
    ) as to_technician, patch(
        "tap4service.realtime.socketServer.broadcast_to_technicians", new_callable=AsyncMock
    ) as to_technicians:
        yield SimpleNamespace(
            to_customer=to_customer,
            to_technician=to_technician,
            to_technicians=to_technicians,
        )


def pushed_types(mock: AsyncMock, recipient: Optional[int] = None) -> list[str]:
    """Envelope types sent through a send mock, optionally for one recipient."""
    types = []
    for call in mock.await_args_list:
        if len(call.args) == 1:
            types.append(call.args[0]["type"])
        elif recipient is None or call.args[0] == recipient:
            types.append(call.args[1]["type"])
    return types


# ---------------------------------------------------------------------------
# App + client
# ---------------------------------------------------------------------------


def create_test_app(database: Database) -> FastAPI:
    """Build a FastAPI app with all routes registered and the DB dependency
    pointed at the test database."""
    from tap4service.api.routes import customers, requests, session, technicians

    app = FastAPI(title="Tap4Service Test")
    register_exception_handlers(app)

    async def _override_get_db():
        async with database.session() as db_session:
            yield db_session

    app.dependency_overrides[get_db] = _override_get_db

    app.include_router(customers.router, prefix="/api")
    app.include_router(technicians.router, prefix="/api")
    app.include_router(technicians.profile_router, prefix="/api")
    app.include_router(session.router, prefix="/api")
    app.include_router(requests.router, prefix="/api")
    return app


@pytest_asyncio.fixture
async def client(database: Database) -> AsyncGenerator[AsyncClient, None]:
    """httpx AsyncClient connected to the test app via ASGI transport."""
    app = create_test_app(database)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


# ---------------------------------------------------------------------------
# API helpers
# ---------------------------------------------------------------------------


async def create_request_via_api(
    client: AsyncClient,
    *,
    customer_id: int = CUSTOMER_ID,
    region: str = "Auckland",
    availability_1: Optional[str] = None,
    availability_2: Optional[str] = None,
    repair_description: str = "Leaking kitchen tap",
) -> int:
    """Create a request and return its id."""
    resp = await client.post(
        "/api/requests",
        json={
            "customer_id": customer_id,
            "repair_description": repair_description,
            "availability_1": availability_1 or days_ahead_at(1, 10),
            "availability_2": availability_2,
            "region": region,
        },
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["requestId"]


async def assign_via_api(
    client: AsyncClient,
    request_id: int,
    *,
    technician_id: int = TECHNICIAN_ID,
    scheduled_time: Optional[str] = None,
):
    return await client.put(
        f"/api/requests/assign/{request_id}",
        json={
            "technicianId": technician_id,
            "scheduledTime": scheduled_time or days_ahead_at(1, 10),
        },
    )


async def get_customer_request(
    client: AsyncClient,
    request_id: int,
    customer_id: int = CUSTOMER_ID,
) -> dict:
    """Fetch one request through the customer list endpoint."""
    resp = await client.get(f"/api/requests/customer/{customer_id}")
    assert resp.status_code == 200
    rows = {row["id"]: row for row in resp.json()}
    return rows[request_id]
