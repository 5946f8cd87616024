"""
Service Request API Routes
==========================

REST endpoints for the request and proposal lifecycle, plus the list
endpoints clients poll as the fallback for missed pushes.

Routes:
  POST   /api/requests                                -- Create a request
  GET    /api/requests/customer/{customer_id}         -- Customer's requests
  GET    /api/requests/technician/{technician_id}     -- Technician's requests
  GET    /api/requests/available?technicianId=        -- Region-filtered pool
  PUT    /api/requests/assign/{request_id}            -- Technician assigns
  PUT    /api/requests/unassign/{request_id}          -- Technician unassigns
  PUT    /api/requests/reschedule/{request_id}        -- Customer reschedules
  PUT    /api/requests/complete-technician/{id}       -- Technician completes
  PUT    /api/requests/confirm-completion/{id}        -- Customer confirms
  DELETE /api/requests/{request_id}                   -- Customer cancels
  POST   /api/requests/propose/{request_id}           -- Technician proposes
  PUT    /api/requests/confirm-proposal/{request_id}  -- Customer resolves
  GET    /api/requests/pending-proposals/{customer_id}-- Open proposals
  PUT    /api/requests/respond/{request_id}           -- accept/decline/propose

Each mutating route commits before notifying, so pushed state is never
ahead of the database.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Body, Query, status

from tap4service.api.deps import DBSession
from tap4service.api.schemas.request import (
    AssignBody,
    AssignResponse,
    CancelBody,
    CompleteBody,
    ConfirmProposalBody,
    CreateRequestBody,
    CreateRequestResponse,
    CustomerActionBody,
    MessageResponse,
    PendingProposalOut,
    ProposalCreatedResponse,
    ProposeBody,
    RescheduleBody,
    RespondBody,
    ServiceRequestOut,
    TechnicianActionBody,
)
from tap4service.models import ProposalStatus
from tap4service.services import notifier, proposal_service, request_service
from tap4service.services.errors import ValidationFailed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/requests", tags=["Requests"])


# ---------------------------------------------------------------------------
# POST /api/requests -- Create
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=CreateRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a service request",
)
async def create_request(db: DBSession, body: CreateRequestBody) -> CreateRequestResponse:
    request = await request_service.create_request(
        db,
        customer_id=body.customer_id,
        repair_description=body.repair_description,
        availability_1=body.availability_1,
        availability_2=body.availability_2,
        region=body.region,
    )
    await db.commit()
    await notifier.notify_new_job(db, request.id)
    return CreateRequestResponse(
        message="Service request created successfully",
        request_id=request.id,
        payment_id=request.payment_id,
    )


# ---------------------------------------------------------------------------
# Listings (polling fallback)
# ---------------------------------------------------------------------------

@router.get(
    "/customer/{customer_id}",
    response_model=list[ServiceRequestOut],
    summary="A customer's requests, newest first",
)
async def list_customer_requests(db: DBSession, customer_id: int) -> list[dict]:
    views = await request_service.list_customer_requests(db, customer_id)
    return [view.to_wire() for view in views]


@router.get(
    "/technician/{technician_id}",
    response_model=list[ServiceRequestOut],
    summary="A technician's non-cancelled requests",
)
async def list_technician_requests(db: DBSession, technician_id: int) -> list[dict]:
    views = await request_service.list_technician_requests(db, technician_id)
    return [view.to_wire() for view in views]


@router.get(
    "/available",
    response_model=list[ServiceRequestOut],
    summary="Pending, unassigned requests",
    description=(
        "With ``technicianId``, only requests in one of that technician's "
        "service regions are returned."
    ),
)
async def list_available_requests(
    db: DBSession,
    technician_id: Optional[int] = Query(default=None, alias="technicianId"),
) -> list[dict]:
    views = await request_service.list_available_requests(db, technician_id)
    return [view.to_wire() for view in views]


@router.get(
    "/pending-proposals/{customer_id}",
    response_model=list[PendingProposalOut],
    summary="A customer's unresolved proposals",
)
async def list_pending_proposals(db: DBSession, customer_id: int) -> list[dict]:
    return await proposal_service.list_pending_proposals(db, customer_id)


# ---------------------------------------------------------------------------
# Technician actions
# ---------------------------------------------------------------------------

@router.put(
    "/assign/{request_id}",
    response_model=AssignResponse,
    summary="Technician assigns a pool request to themselves",
)
async def assign_request(db: DBSession, request_id: int, body: AssignBody) -> AssignResponse:
    payment_id = await request_service.assign_request(
        db, request_id, body.technician_id, body.scheduled_time
    )
    await db.commit()
    await notifier.notify_request_updated(db, request_id)
    return AssignResponse(
        message="Request assigned successfully, payment authorized",
        payment_id=payment_id,
    )


@router.put(
    "/unassign/{request_id}",
    response_model=MessageResponse,
    summary="Technician hands a request back to the pool",
)
async def unassign_request(
    db: DBSession,
    request_id: int,
    body: TechnicianActionBody,
) -> MessageResponse:
    await request_service.unassign_request(db, request_id, body.technician_id)
    await db.commit()
    await notifier.notify_request_updated(
        db, request_id, released_technician_id=body.technician_id
    )
    return MessageResponse(message="Request unassigned successfully")


@router.put(
    "/complete-technician/{request_id}",
    response_model=MessageResponse,
    summary="Technician marks the work complete",
)
async def complete_request(
    db: DBSession,
    request_id: int,
    body: CompleteBody,
) -> MessageResponse:
    await request_service.complete_request(db, request_id, body.technician_id, body.note)
    await db.commit()
    await notifier.notify_request_updated(db, request_id)
    return MessageResponse(message="Request marked as completed by technician")


@router.post(
    "/propose/{request_id}",
    response_model=ProposalCreatedResponse,
    summary="Technician proposes an alternate time",
)
async def propose_time(
    db: DBSession,
    request_id: int,
    body: ProposeBody,
) -> ProposalCreatedResponse:
    proposal = await proposal_service.propose_time(
        db, request_id, body.technician_id, body.proposed_time
    )
    await db.commit()
    await notifier.notify_proposal(db, proposal.id)
    return ProposalCreatedResponse(
        message="Proposal submitted successfully",
        proposal_id=proposal.id,
    )


@router.put(
    "/respond/{request_id}",
    response_model=MessageResponse,
    summary="Technician accepts, declines, or proposes a new time",
)
async def respond_to_request(
    db: DBSession,
    request_id: int,
    body: RespondBody,
) -> MessageResponse:
    proposal = await request_service.respond_to_request(
        db, request_id, body.technician_id, body.action, body.proposed_date
    )
    await db.commit()

    if proposal is not None:
        await notifier.notify_proposal(db, proposal.id)
        return MessageResponse(
            message=f"Proposal submitted successfully with proposed date {body.proposed_date}"
        )

    if body.action == "decline":
        await notifier.notify_request_updated(
            db, request_id, released_technician_id=body.technician_id
        )
        return MessageResponse(message="Request declined successfully")

    await notifier.notify_request_updated(db, request_id)
    return MessageResponse(message="Request accepted successfully")


# ---------------------------------------------------------------------------
# Customer actions
# ---------------------------------------------------------------------------

@router.put(
    "/reschedule/{request_id}",
    response_model=MessageResponse,
    summary="Customer supplies new availability",
)
async def reschedule_request(
    db: DBSession,
    request_id: int,
    body: RescheduleBody,
) -> MessageResponse:
    released = await request_service.reschedule_request(
        db, request_id, body.customer_id, body.availability_1, body.availability_2
    )
    await db.commit()
    await notifier.notify_request_updated(db, request_id, released_technician_id=released)
    return MessageResponse(
        message="Request rescheduled successfully and placed back in available jobs"
    )


@router.put(
    "/confirm-completion/{request_id}",
    response_model=MessageResponse,
    summary="Customer confirms completion and payment is captured",
)
async def confirm_completion(
    db: DBSession,
    request_id: int,
    body: CustomerActionBody,
) -> MessageResponse:
    await request_service.confirm_completion(db, request_id, body.customer_id)
    await db.commit()
    await notifier.notify_request_updated(db, request_id)
    return MessageResponse(message="Request completion confirmed, payment captured")


@router.delete(
    "/{request_id}",
    response_model=MessageResponse,
    summary="Customer cancels a request",
    description="``customerId`` may be sent in the JSON body or the query string.",
)
async def cancel_request(
    db: DBSession,
    request_id: int,
    body: Optional[CancelBody] = Body(default=None),
    customer_id: Optional[int] = Query(default=None, alias="customerId"),
) -> MessageResponse:
    if body is not None and body.customer_id is not None:
        customer_id = body.customer_id
    if customer_id is None:
        raise ValidationFailed("Customer ID is required", field="customerId")

    released = await request_service.cancel_request(db, request_id, customer_id)
    await db.commit()
    await notifier.notify_request_updated(db, request_id, released_technician_id=released)
    return MessageResponse(message="Request cancelled successfully")


@router.put(
    "/confirm-proposal/{request_id}",
    response_model=MessageResponse,
    summary="Customer approves or declines a proposed time",
)
async def confirm_proposal(
    db: DBSession,
    request_id: int,
    body: ConfirmProposalBody,
) -> MessageResponse:
    proposal = await proposal_service.resolve_proposal(
        db, request_id, body.customer_id, body.proposal_id, body.action
    )
    await db.commit()
    released = (
        proposal.technician_id if proposal.status is ProposalStatus.DECLINED else None
    )
    await notifier.notify_proposal(db, body.proposal_id)
    await notifier.notify_request_updated(db, request_id, released_technician_id=released)
    logger.debug("Proposal %s resolved as %s", body.proposal_id, proposal.status.value)
    return MessageResponse(message=f"Proposal {body.action}d successfully")
