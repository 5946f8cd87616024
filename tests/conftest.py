"""
Shared pytest fixtures for Tap4Service backend unit tests.

Provides mock database sessions and sample domain objects built from the
real ORM models without requiring a live database connection.
"""

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from tap4service.core.config import settings
from tap4service.core.timefmt import utcnow
from tap4service.models import (
    Customer,
    PaymentStatus,
    Proposal,
    ProposalStatus,
    RequestStatus,
    ServiceRequest,
    Technician,
)
from tap4service.services.request_service import RequestView


# ---------------------------------------------------------------------------
# Global test settings
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def fast_password_hashing(monkeypatch):
    """bcrypt at its minimum cost factor keeps the suite fast."""
    monkeypatch.setattr(settings, "bcrypt_rounds", 4)


# ---------------------------------------------------------------------------
# Database session mock
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_db() -> AsyncMock:
    """Async mock of ``AsyncSession``.

    Provides a mock that supports ``db.execute()``, ``db.get()``,
    ``db.add()``, ``db.flush()``, and ``db.commit()`` out of the box.
    Individual tests can configure ``mock_db.execute.return_value`` or
    ``mock_db.get.return_value`` to control query results.
    """
    session = AsyncMock()
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    return session


def result_with(*, scalar=None, rowcount: int = 1) -> MagicMock:
    """A fake ``Result`` answering ``scalar_one_or_none`` and ``rowcount``."""
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar
    result.rowcount = rowcount
    return result


# ---------------------------------------------------------------------------
# Domain fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_customer() -> Customer:
    return Customer(
        id=7,
        email="aroha@example.co.nz",
        password_hash="x",
        name="Aroha Ngata",
        region="Auckland",
        address="12 Ponsonby Road",
        city="Auckland",
        postal_code="1011",
    )


@pytest.fixture
def sample_technician() -> Technician:
    return Technician(
        id=3,
        email="rawiri@example.co.nz",
        password_hash="x",
        name="Rawiri Plumbing",
        is_available=True,
    )


@pytest.fixture
def pending_request() -> ServiceRequest:
    """A request sitting in the pool."""
    now = utcnow()
    return ServiceRequest(
        id=12,
        customer_id=7,
        repair_description="Leaking kitchen tap",
        created_at=now,
        status=RequestStatus.PENDING,
        customer_availability_1=now + timedelta(days=1),
        customer_availability_2=None,
        technician_id=None,
        technician_scheduled_time=None,
        payment_id="bnzpay_mock_1700000000000_7",
        payment_status=PaymentStatus.PENDING,
        region="Auckland",
        technician_note=None,
    )


@pytest.fixture
def assigned_request(pending_request: ServiceRequest) -> ServiceRequest:
    """The same request, assigned to technician 3 for tomorrow."""
    pending_request.status = RequestStatus.ASSIGNED
    pending_request.technician_id = 3
    pending_request.technician_scheduled_time = utcnow() + timedelta(days=1)
    pending_request.payment_status = PaymentStatus.AUTHORIZED
    return pending_request


def make_view(request: ServiceRequest, technician_name: str | None = None) -> RequestView:
    return RequestView(
        request=request,
        customer_name="Aroha Ngata",
        customer_address="12 Ponsonby Road",
        customer_city="Auckland",
        customer_postal_code="1011",
        technician_name=technician_name,
    )


@pytest.fixture
def sample_proposal() -> Proposal:
    return Proposal(
        id=40,
        request_id=12,
        technician_id=3,
        proposed_time=datetime(2031, 3, 4, 1, 0, 0),
        status=ProposalStatus.PENDING,
    )
