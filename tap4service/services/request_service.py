"""
Request Service
===============

Business logic for the service-request lifecycle:

- Customer creates a request (pending, mock payment id)
- Technician assigns / unassigns / completes
- Customer reschedules, cancels, or confirms completion
- Technician responds to a pool request (accept / decline / propose)
- Customer, technician and available-job listings

Every mutation is a single conditional ``UPDATE`` whose ``WHERE`` clause
carries the precondition from ``requestStateManager.TRANSITIONS``. A zero
row count means the precondition no longer holds and is reported as
``NotFound``; the one exception is a lost assign race, reported as
``Conflict``. Nothing is retried.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tap4service.core.config import settings
from tap4service.core.timefmt import (
    format_wire_datetime,
    is_not_before_today,
    parse_wire_datetime,
    within_notice_window,
)
from tap4service.models import (
    DEFAULT_REPAIR_DESCRIPTION,
    Customer,
    PaymentStatus,
    Proposal,
    ProposalStatus,
    RequestStatus,
    ServiceRequest,
    Technician,
    TechnicianRegion,
)
from tap4service.services.errors import (
    Conflict,
    Forbidden,
    NotFound,
    ValidationFailed,
)
from tap4service.services.requestStateManager import (
    TRANSITIONS,
    ActorType,
    Operation,
    source_statuses,
    validate_transition,
)

logger = logging.getLogger(__name__)

# Letters, spaces, hyphens and either apostrophe (Hawke's / Hawke’s Bay)
REGION_PATTERN = re.compile(r"^[A-Za-z\s'’-]+$")


# ---------------------------------------------------------------------------
# Joined read model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RequestView:
    """A request plus the display fields joined from its customer and technician."""

    request: ServiceRequest
    customer_name: Optional[str]
    customer_address: Optional[str]
    customer_city: Optional[str]
    customer_postal_code: Optional[str]
    technician_name: Optional[str]

    def to_wire(self) -> dict[str, Any]:
        sr = self.request
        return {
            "id": sr.id,
            "customer_id": sr.customer_id,
            "repair_description": sr.repair_description,
            "created_at": format_wire_datetime(sr.created_at),
            "status": sr.status.value,
            "customer_availability_1": format_wire_datetime(sr.customer_availability_1),
            "customer_availability_2": format_wire_datetime(sr.customer_availability_2),
            "technician_id": sr.technician_id,
            "technician_scheduled_time": format_wire_datetime(sr.technician_scheduled_time),
            "payment_id": sr.payment_id,
            "payment_status": sr.payment_status.value,
            "region": sr.region,
            "technician_note": sr.technician_note,
            "customer_name": self.customer_name,
            "customer_address": self.customer_address,
            "customer_city": self.customer_city,
            "customer_postal_code": self.customer_postal_code,
            "technician_name": self.technician_name,
        }


def _view_query():
    return (
        select(
            ServiceRequest,
            Customer.name,
            Customer.address,
            Customer.city,
            Customer.postal_code,
            Technician.name,
        )
        .join(Customer, ServiceRequest.customer_id == Customer.id)
        .outerjoin(Technician, ServiceRequest.technician_id == Technician.id)
        # Rows may already sit in the identity map from an earlier UPDATE
        .execution_options(populate_existing=True)
    )


def _to_views(rows) -> list[RequestView]:
    return [RequestView(*row) for row in rows]


async def load_request_view(
    db: AsyncSession,
    request_id: int,
) -> Optional[RequestView]:
    """Re-read one request with its joined display fields."""
    result = await db.execute(_view_query().where(ServiceRequest.id == request_id))
    row = result.one_or_none()
    return RequestView(*row) if row is not None else None


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def generate_mock_payment_id(customer_id: int, now: Optional[datetime] = None) -> str:
    """Placeholder gateway reference: ``bnzpay_mock_<epoch-ms>_<customerId>``."""
    now = now or datetime.now(timezone.utc)
    return f"bnzpay_mock_{int(now.timestamp() * 1000)}_{customer_id}"


def parse_datetime_field(value: str, field: str) -> datetime:
    try:
        return parse_wire_datetime(value)
    except ValueError:
        raise ValidationFailed(
            f"Invalid date format for {field}. Use DD/MM/YYYY HH:MM:SS",
            field=field,
        )


def _parse_availabilities(
    availability_1: str,
    availability_2: Optional[str],
) -> tuple[datetime, Optional[datetime]]:
    avail_1 = parse_datetime_field(availability_1, "availability_1")
    avail_2 = parse_datetime_field(availability_2, "availability_2") if availability_2 else None

    if not is_not_before_today(avail_1) or (
        avail_2 is not None and not is_not_before_today(avail_2)
    ):
        raise ValidationFailed(
            "Availability times cannot be in the past",
            field="availability_1, availability_2" if avail_2 else "availability_1",
        )
    return avail_1, avail_2


def release_values(operation: Operation) -> dict[str, Any]:
    """Column values for an operation that hands the request back to the pool."""
    transition = TRANSITIONS[operation]
    if not transition.releases_assignment:
        raise ValueError(f"{operation.value} does not release an assignment")
    return {
        "status": transition.target,
        "technician_id": None,
        "technician_scheduled_time": None,
        "payment_status": transition.payment,
    }


def _schedule_unchanged(scheduled: Optional[datetime]):
    """Criterion pinning the schedule read for the notice-window check."""
    if scheduled is None:
        return ServiceRequest.technician_scheduled_time.is_(None)
    return ServiceRequest.technician_scheduled_time == scheduled


async def guarded_update(
    db: AsyncSession,
    operation: Operation,
    request_id: int,
    *criteria,
    values: dict[str, Any],
    not_found: str,
) -> None:
    """Run one conditional UPDATE; raise ``NotFound`` if no row matched."""
    stmt = (
        update(ServiceRequest)
        .where(
            ServiceRequest.id == request_id,
            ServiceRequest.status.in_(source_statuses(operation)),
            *criteria,
        )
        .values(**values)
    )
    result = await db.execute(stmt)
    if result.rowcount == 0:
        logger.warning(
            "Rejected %s on request=%s: precondition not met",
            operation.value,
            request_id,
        )
        raise NotFound(not_found)


def check_transition(
    request: ServiceRequest,
    operation: Operation,
    actor_type: ActorType,
    not_found: str,
) -> None:
    """Reject ``operation`` early when the loaded row cannot take it."""
    result = validate_transition(request.status, operation, actor_type)
    if not result.allowed:
        logger.warning(
            "Rejected %s on request=%s: %s", operation.value, request.id, result.reason
        )
        raise NotFound(not_found)


async def decline_open_proposals(db: AsyncSession, request_id: int) -> None:
    """Decline still-pending proposals once their assignment is released."""
    await db.execute(
        update(Proposal)
        .where(
            Proposal.request_id == request_id,
            Proposal.status == ProposalStatus.PENDING,
        )
        .values(status=ProposalStatus.DECLINED)
    )


async def get_owned_request(
    db: AsyncSession,
    request_id: int,
    customer_id: int,
    action: str,
) -> ServiceRequest:
    """Load a request and check that ``customer_id`` owns it.

    Raises:
        NotFound: If the request does not exist.
        Forbidden: If another customer owns it.
    """
    request = await db.get(ServiceRequest, request_id)
    if request is None:
        raise NotFound("Request not found")
    if request.customer_id != customer_id:
        logger.warning(
            "Customer %s tried to %s request=%s owned by customer %s",
            customer_id,
            action,
            request_id,
            request.customer_id,
        )
        raise Forbidden(f"Unauthorized to {action} this request")
    return request


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------

async def create_request(
    db: AsyncSession,
    *,
    customer_id: Optional[int],
    availability_1: Optional[str],
    region: Optional[str],
    repair_description: Optional[str] = None,
    availability_2: Optional[str] = None,
) -> ServiceRequest:
    """Customer submits a new service request.

    The request starts ``pending`` with no technician and a fresh mock
    payment id in ``pending`` payment status.

    Raises:
        ValidationFailed: Missing fields, bad region string, bad or past dates.
        NotFound: If the customer does not exist.
    """
    missing: list[str] = []
    if customer_id is None:
        missing.append("customer_id")
    if not availability_1 or not availability_1.strip():
        missing.append("availability_1")
    if not region or not region.strip():
        missing.append("region")
    if missing:
        raise ValidationFailed(
            f"Missing required fields: {', '.join(missing)}",
            missing_fields=missing,
        )

    region = region.strip()
    if not REGION_PATTERN.match(region):
        raise ValidationFailed(
            "Region must contain only letters, spaces, hyphens, or apostrophes",
            field="region",
        )

    customer = await db.get(Customer, customer_id)
    if customer is None:
        raise NotFound("Customer not found", field="customer_id")

    avail_1, avail_2 = _parse_availabilities(availability_1, availability_2)

    description = (repair_description or "").strip() or DEFAULT_REPAIR_DESCRIPTION

    request = ServiceRequest(
        customer_id=customer_id,
        repair_description=description,
        status=RequestStatus.PENDING,
        customer_availability_1=avail_1,
        customer_availability_2=avail_2,
        payment_id=generate_mock_payment_id(customer_id),
        payment_status=PaymentStatus.PENDING,
        region=region,
    )
    db.add(request)
    await db.flush()

    logger.info(
        "Request created: request=%s, customer=%s, region=%s",
        request.id,
        customer_id,
        region,
    )
    return request


# ---------------------------------------------------------------------------
# Technician operations
# ---------------------------------------------------------------------------

async def _assign(
    db: AsyncSession,
    request_id: int,
    technician_id: int,
    scheduled: datetime,
) -> str:
    technician = await db.get(Technician, technician_id)
    if technician is None:
        raise NotFound("Technician not found", field="technicianId")

    pool_criteria = (
        ServiceRequest.id == request_id,
        ServiceRequest.status.in_(source_statuses(Operation.ASSIGN)),
        ServiceRequest.technician_id.is_(None),
    )
    result = await db.execute(select(ServiceRequest).where(*pool_criteria))
    request = result.scalar_one_or_none()
    if request is None:
        logger.warning(
            "Rejected assign on request=%s: missing or already assigned",
            request_id,
        )
        raise NotFound("Request not found or already assigned")

    payment_id = generate_mock_payment_id(request.customer_id)
    transition = TRANSITIONS[Operation.ASSIGN]
    result = await db.execute(
        update(ServiceRequest)
        .where(*pool_criteria)
        .values(
            technician_id=technician_id,
            status=transition.target,
            technician_scheduled_time=scheduled,
            payment_id=payment_id,
            payment_status=transition.payment,
        )
    )
    if result.rowcount == 0:
        # Another technician's UPDATE landed between our read and write
        logger.warning(
            "Assign race lost: request=%s, technician=%s",
            request_id,
            technician_id,
        )
        raise Conflict("Request was just assigned to another technician")

    logger.info(
        "Request assigned: request=%s, technician=%s, payment=%s",
        request_id,
        technician_id,
        payment_id,
    )
    return payment_id


async def assign_request(
    db: AsyncSession,
    request_id: int,
    technician_id: int,
    scheduled_time: str,
) -> str:
    """Technician takes a pending request from the pool.

    Sets the technician and schedule, issues a new mock payment id and
    authorizes payment.

    Returns:
        The new mock payment id.

    Raises:
        ValidationFailed: Bad or past scheduled time.
        NotFound: Unknown technician, or request missing / no longer in the pool.
        Conflict: Another technician won the race for the same request.
    """
    scheduled = parse_datetime_field(scheduled_time, "scheduledTime")
    if not is_not_before_today(scheduled):
        raise ValidationFailed(
            "Scheduled time cannot be in the past", field="scheduledTime"
        )
    return await _assign(db, request_id, technician_id, scheduled)


async def unassign_request(
    db: AsyncSession,
    request_id: int,
    technician_id: int,
) -> None:
    """Technician hands an assigned request back to the pool."""
    await guarded_update(
        db,
        Operation.UNASSIGN,
        request_id,
        ServiceRequest.technician_id == technician_id,
        values=release_values(Operation.UNASSIGN),
        not_found="Request not found or not assigned to this technician",
    )
    await decline_open_proposals(db, request_id)
    logger.info("Request unassigned: request=%s, technician=%s", request_id, technician_id)


async def complete_request(
    db: AsyncSession,
    request_id: int,
    technician_id: int,
    note: Optional[str] = None,
) -> None:
    """Technician marks the work done; the customer still has to confirm."""
    await guarded_update(
        db,
        Operation.COMPLETE,
        request_id,
        ServiceRequest.technician_id == technician_id,
        values={
            "status": TRANSITIONS[Operation.COMPLETE].target,
            "technician_note": (note or "").strip() or None,
        },
        not_found="Request not found or not assigned to this technician",
    )
    logger.info("Request completed by technician: request=%s, technician=%s", request_id, technician_id)


async def respond_to_request(
    db: AsyncSession,
    request_id: int,
    technician_id: int,
    action: str,
    proposed_date: Optional[str] = None,
) -> Optional[Proposal]:
    """Technician answers a request: ``accept``, ``decline`` or ``propose``.

    ``accept`` assigns at the customer's first availability, ``decline``
    unassigns, and ``propose`` submits an alternate time.

    Returns:
        The new Proposal for ``propose``, otherwise None.
    """
    if action not in ("accept", "decline", "propose"):
        raise ValidationFailed(
            "Invalid action. Use accept, decline, or propose", field="action"
        )
    if action == "propose" and not proposed_date:
        raise ValidationFailed(
            "Proposed date is required for propose action", field="proposedDate"
        )

    if action == "propose":
        from tap4service.services import proposal_service

        return await proposal_service.propose_time(
            db, request_id, technician_id, proposed_date, field="proposedDate"
        )

    request = await db.get(ServiceRequest, request_id)
    if request is None:
        raise NotFound("Request not found")

    if action == "accept":
        check_transition(
            request, Operation.ASSIGN, ActorType.TECHNICIAN,
            "Request not found or already assigned",
        )
        await _assign(db, request_id, technician_id, request.customer_availability_1)
    else:
        check_transition(
            request, Operation.UNASSIGN, ActorType.TECHNICIAN,
            "Request not found or not assigned to this technician",
        )
        await unassign_request(db, request_id, technician_id)
    return None


# ---------------------------------------------------------------------------
# Customer operations
# ---------------------------------------------------------------------------

def _check_notice_window(request: ServiceRequest, action: str) -> None:
    if within_notice_window(request.technician_scheduled_time):
        logger.warning(
            "Rejected %s on request=%s: inside %dh notice window",
            action,
            request.id,
            settings.notice_window_hours,
        )
        raise ValidationFailed(
            f"Cannot {action} within {settings.notice_window_hours} hours "
            f"of scheduled time"
        )


async def reschedule_request(
    db: AsyncSession,
    request_id: int,
    customer_id: int,
    availability_1: str,
    availability_2: Optional[str] = None,
) -> Optional[int]:
    """Customer supplies new availability; the request returns to the pool.

    Any assignment is released and payment is voided back to pending.

    Returns:
        The id of the technician who lost the assignment, if there was one.
    """
    avail_1, avail_2 = _parse_availabilities(availability_1, availability_2)
    request = await get_owned_request(db, request_id, customer_id, "reschedule")
    check_transition(
        request, Operation.RESCHEDULE, ActorType.CUSTOMER,
        "Request not found or not reschedulable",
    )
    _check_notice_window(request, "reschedule")

    released_technician_id = request.technician_id
    await guarded_update(
        db,
        Operation.RESCHEDULE,
        request_id,
        ServiceRequest.customer_id == customer_id,
        _schedule_unchanged(request.technician_scheduled_time),
        values={
            "customer_availability_1": avail_1,
            "customer_availability_2": avail_2,
            **release_values(Operation.RESCHEDULE),
        },
        not_found="Request not found or not reschedulable",
    )
    await decline_open_proposals(db, request_id)
    logger.info("Request rescheduled: request=%s, customer=%s", request_id, customer_id)
    return released_technician_id


async def confirm_completion(
    db: AsyncSession,
    request_id: int,
    customer_id: int,
) -> None:
    """Customer confirms the technician's completion; payment is captured."""
    request = await get_owned_request(db, request_id, customer_id, "confirm")
    check_transition(
        request, Operation.CONFIRM, ActorType.CUSTOMER,
        "Request not found or not ready for confirmation",
    )
    transition = TRANSITIONS[Operation.CONFIRM]
    await guarded_update(
        db,
        Operation.CONFIRM,
        request_id,
        ServiceRequest.customer_id == customer_id,
        values={"status": transition.target, "payment_status": transition.payment},
        not_found="Request not found or not ready for confirmation",
    )
    logger.info("Request completion confirmed: request=%s, customer=%s", request_id, customer_id)


async def cancel_request(
    db: AsyncSession,
    request_id: int,
    customer_id: int,
) -> Optional[int]:
    """Customer cancels a pending or assigned request.

    Returns:
        The id of the technician who lost the assignment, if there was one.
    """
    request = await get_owned_request(db, request_id, customer_id, "cancel")
    check_transition(
        request, Operation.CANCEL, ActorType.CUSTOMER,
        "Request not found or can no longer be cancelled",
    )
    _check_notice_window(request, "cancel")

    released_technician_id = request.technician_id
    await guarded_update(
        db,
        Operation.CANCEL,
        request_id,
        ServiceRequest.customer_id == customer_id,
        _schedule_unchanged(request.technician_scheduled_time),
        values=release_values(Operation.CANCEL),
        not_found="Request not found or can no longer be cancelled",
    )
    await decline_open_proposals(db, request_id)
    logger.info("Request cancelled: request=%s, customer=%s", request_id, customer_id)
    return released_technician_id


# ---------------------------------------------------------------------------
# Listings (polling fallback)
# ---------------------------------------------------------------------------

async def list_customer_requests(
    db: AsyncSession,
    customer_id: int,
) -> list[RequestView]:
    """All of a customer's requests, newest first."""
    result = await db.execute(
        _view_query()
        .where(ServiceRequest.customer_id == customer_id)
        .order_by(ServiceRequest.created_at.desc(), ServiceRequest.id.desc())
    )
    return _to_views(result.all())


async def list_technician_requests(
    db: AsyncSession,
    technician_id: int,
) -> list[RequestView]:
    """A technician's non-cancelled requests, newest first."""
    result = await db.execute(
        _view_query()
        .where(
            ServiceRequest.technician_id == technician_id,
            ServiceRequest.status != RequestStatus.CANCELLED,
        )
        .order_by(ServiceRequest.created_at.desc(), ServiceRequest.id.desc())
    )
    return _to_views(result.all())


def _region_match_keys(regions) -> set[str]:
    keys: set[str] = set()
    for region in regions:
        name = region.display_name
        keys.add(name.lower())
        keys.add(name.replace("’", "'").lower())
    return keys


async def list_available_requests(
    db: AsyncSession,
    technician_id: Optional[int] = None,
) -> list[RequestView]:
    """Pending, unassigned requests, optionally limited to a technician's regions.

    A request matches when its region string, compared case-insensitively,
    equals the display name of one of the technician's regions. A
    technician with no regions (or an unknown technician id) sees nothing.
    """
    stmt = _view_query().where(
        ServiceRequest.status == RequestStatus.PENDING,
        ServiceRequest.technician_id.is_(None),
    )

    if technician_id is not None:
        result = await db.execute(
            select(TechnicianRegion.region).where(
                TechnicianRegion.technician_id == technician_id
            )
        )
        regions = result.scalars().all()
        if not regions:
            return []
        stmt = stmt.where(
            func.lower(func.trim(ServiceRequest.region)).in_(sorted(_region_match_keys(regions)))
        )

    result = await db.execute(
        stmt.order_by(ServiceRequest.created_at.desc(), ServiceRequest.id.desc())
    )
    return _to_views(result.all())
