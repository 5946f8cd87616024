"""
Proposal Service
================

Handles the alternate-time negotiation on an assigned request:
- Technician proposes a new time for a request assigned to them
- Customer approves (schedule moves to the proposed time) or declines
  (the request goes back to the pool)
- Listing a customer's unresolved proposals

A proposal is resolved exactly once; resolving it and updating the parent
request happen in the caller's transaction.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tap4service.core.timefmt import format_wire_datetime, is_not_before_today
from tap4service.models import (
    Proposal,
    ProposalStatus,
    ServiceRequest,
    Technician,
)
from tap4service.services.errors import NotFound, ValidationFailed
from tap4service.services.requestStateManager import (
    TRANSITIONS,
    ActorType,
    Operation,
    source_statuses,
)
from tap4service.services.request_service import (
    check_transition,
    decline_open_proposals,
    get_owned_request,
    guarded_update,
    parse_datetime_field,
    release_values,
)

logger = logging.getLogger(__name__)

_NO_LONGER_ASSIGNED = "Request is no longer assigned to the proposing technician"

PROPOSAL_ACTIONS: dict[str, ProposalStatus] = {
    "approve": ProposalStatus.APPROVED,
    "decline": ProposalStatus.DECLINED,
}


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def propose_time(
    db: AsyncSession,
    request_id: int,
    technician_id: int,
    proposed_time: str,
    *,
    field: str = "proposedTime",
) -> Proposal:
    """Technician proposes an alternate time for a request assigned to them.

    Args:
        db: Async database session.
        request_id: The request to reschedule.
        technician_id: The proposing technician; must hold the assignment.
        proposed_time: Wire timestamp (``DD/MM/YYYY HH:mm:ss``).
        field: Body field name reported on validation errors.

    Returns:
        The newly-created pending Proposal.

    Raises:
        ValidationFailed: Bad or past proposed time.
        NotFound: Request missing, or not assigned to this technician.
    """
    proposed = parse_datetime_field(proposed_time, field)
    if not is_not_before_today(proposed):
        raise ValidationFailed("Proposed time cannot be in the past", field=field)

    result = await db.execute(
        select(ServiceRequest.id).where(
            ServiceRequest.id == request_id,
            ServiceRequest.technician_id == technician_id,
            ServiceRequest.status.in_(source_statuses(Operation.PROPOSE)),
        )
    )
    if result.scalar_one_or_none() is None:
        logger.warning(
            "Rejected propose on request=%s: not assigned to technician=%s",
            request_id,
            technician_id,
        )
        raise NotFound("Request not found or not assigned to technician")

    proposal = Proposal(
        request_id=request_id,
        technician_id=technician_id,
        proposed_time=proposed,
        status=ProposalStatus.PENDING,
    )
    db.add(proposal)
    await db.flush()

    logger.info(
        "Proposal created: proposal=%s, request=%s, technician=%s",
        proposal.id,
        request_id,
        technician_id,
    )
    return proposal


async def resolve_proposal(
    db: AsyncSession,
    request_id: int,
    customer_id: int,
    proposal_id: int,
    action: str,
) -> Proposal:
    """Customer approves or declines a pending proposal.

    If approved:
      - Request schedule moves to the proposed time, status stays assigned
      - Proposal status -> approved

    If declined:
      - Request returns to the pool (technician and schedule cleared,
        payment voided to pending)
      - Proposal status -> declined, as do any other pending proposals

    Either way the request must still be assigned to the proposing
    technician.

    Returns:
        The resolved Proposal, refreshed so ``status`` holds the outcome.

    Raises:
        ValidationFailed: Unknown action.
        NotFound: Request or proposal missing, proposal already resolved,
            or the request has moved on from the proposing technician.
        Forbidden: The request belongs to another customer.
    """
    new_status = PROPOSAL_ACTIONS.get(action)
    if new_status is None:
        raise ValidationFailed("Action must be approve or decline", field="action")
    if new_status is ProposalStatus.APPROVED:
        operation = Operation.APPROVE_PROPOSAL
    else:
        operation = Operation.DECLINE_PROPOSAL

    request = await get_owned_request(db, request_id, customer_id, "respond to proposals for")
    check_transition(request, operation, ActorType.CUSTOMER, _NO_LONGER_ASSIGNED)

    result = await db.execute(
        select(Proposal).where(
            Proposal.id == proposal_id,
            Proposal.request_id == request_id,
        )
    )
    proposal = result.scalar_one_or_none()
    if proposal is None:
        raise NotFound("Proposal not found")

    resolved = await db.execute(
        update(Proposal)
        .where(
            Proposal.id == proposal_id,
            Proposal.status == ProposalStatus.PENDING,
        )
        .values(status=new_status)
    )
    if resolved.rowcount == 0:
        logger.warning("Rejected %s on proposal=%s: already resolved", action, proposal_id)
        raise NotFound("Proposal not found or already resolved")

    if operation is Operation.APPROVE_PROPOSAL:
        values: dict[str, Any] = {
            "status": TRANSITIONS[operation].target,
            "technician_scheduled_time": proposal.proposed_time,
        }
    else:
        values = release_values(operation)

    await guarded_update(
        db,
        operation,
        request_id,
        ServiceRequest.customer_id == customer_id,
        ServiceRequest.technician_id == proposal.technician_id,
        values=values,
        not_found=_NO_LONGER_ASSIGNED,
    )
    if new_status is ProposalStatus.DECLINED:
        await decline_open_proposals(db, request_id)
    await db.refresh(proposal)

    logger.info(
        "Proposal %s: proposal=%s, request=%s, customer=%s",
        new_status.value,
        proposal_id,
        request_id,
        customer_id,
    )
    return proposal


async def get_proposal(db: AsyncSession, proposal_id: int) -> Optional[Proposal]:
    result = await db.execute(
        select(Proposal)
        .where(Proposal.id == proposal_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_pending_proposals(
    db: AsyncSession,
    customer_id: int,
) -> list[dict[str, Any]]:
    """A customer's unresolved proposals with the proposing technician's name."""
    result = await db.execute(
        select(Proposal, Technician.name)
        .join(ServiceRequest, Proposal.request_id == ServiceRequest.id)
        .join(Technician, Proposal.technician_id == Technician.id)
        .where(
            ServiceRequest.customer_id == customer_id,
            Proposal.status == ProposalStatus.PENDING,
        )
        .order_by(Proposal.created_at.desc(), Proposal.id.desc())
    )
    return [
        {
            "id": proposal.id,
            "request_id": proposal.request_id,
            "technician_id": proposal.technician_id,
            "technician_name": technician_name,
            "proposed_time": format_wire_datetime(proposal.proposed_time),
            "status": proposal.status.value,
            "created_at": format_wire_datetime(proposal.created_at),
        }
        for proposal, technician_name in result.all()
    ]
