"""
Notifier
========

Pushes request and proposal changes to subscribed clients after a
mutation has been committed. Each public function:

  1. Re-reads the affected request with its joined display fields.
  2. Builds the wire envelope (``update``, ``new_job`` or ``proposal``).
  3. Sends it to the addressed rooms through ``realtime.socketServer``.

Routing:
  - new_job   -> ``technicians`` room, only while the request is pending
                 and unassigned
  - update    -> the owning customer, plus the assigned technician (and a
                 technician who just lost the assignment)
  - proposal  -> the owning customer always; the proposing technician once
                 the proposal is resolved

Failures are logged and swallowed: the HTTP response has already been
decided and clients reconcile by polling.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from tap4service.core.timefmt import format_wire_datetime
from tap4service.models import (
    Proposal,
    ProposalStatus,
    RequestStatus,
    Technician,
)
from tap4service.realtime import socketServer
from tap4service.services import proposal_service
from tap4service.services.request_service import RequestView, load_request_view

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Envelope builders
# ---------------------------------------------------------------------------

def build_request_message(view: RequestView, message_type: str) -> dict[str, Any]:
    """``update`` / ``new_job`` envelope for one request."""
    sr = view.request
    return {
        "type": message_type,
        "requestId": sr.id,
        "status": sr.status.value,
        "technician_id": sr.technician_id,
        "technician_scheduled_time": format_wire_datetime(sr.technician_scheduled_time),
        "customer_availability_1": format_wire_datetime(sr.customer_availability_1),
        "customer_availability_2": format_wire_datetime(sr.customer_availability_2),
        "repair_description": sr.repair_description,
        "created_at": format_wire_datetime(sr.created_at),
        "customer_name": view.customer_name,
        "customer_address": view.customer_address,
        "customer_city": view.customer_city,
        "customer_postal_code": view.customer_postal_code,
        "technician_note": sr.technician_note,
        "technician_name": view.technician_name,
        "payment_status": sr.payment_status.value,
        "region": sr.region,
    }


def build_proposal_message(
    proposal: Proposal,
    view: RequestView,
    technician_name: Optional[str],
) -> dict[str, Any]:
    """``proposal`` envelope; ``technician_name`` is the proposer's."""
    sr = view.request
    return {
        "type": "proposal",
        "requestId": sr.id,
        "proposalId": proposal.id,
        "technician_id": proposal.technician_id,
        "technician_name": technician_name,
        "proposed_time": format_wire_datetime(proposal.proposed_time),
        "proposal_status": proposal.status.value,
        "repair_description": sr.repair_description,
        "created_at": format_wire_datetime(sr.created_at),
        "customer_name": view.customer_name,
        "customer_address": view.customer_address,
        "customer_city": view.customer_city,
        "customer_postal_code": view.customer_postal_code,
        "technician_note": sr.technician_note,
    }


def _in_pool(view: RequestView) -> bool:
    return (
        view.request.status == RequestStatus.PENDING
        and view.request.technician_id is None
    )


# ---------------------------------------------------------------------------
# Public notify functions
# ---------------------------------------------------------------------------

async def notify_new_job(db: AsyncSession, request_id: int) -> None:
    """Announce a freshly created request to every technician."""
    try:
        view = await load_request_view(db, request_id)
        if view is None or not _in_pool(view):
            return
        await socketServer.broadcast_to_technicians(
            build_request_message(view, "new_job")
        )
        logger.info("Broadcast new_job for request=%s", request_id)
    except Exception:
        logger.exception("Failed to broadcast new_job for request=%s", request_id)


async def notify_request_updated(
    db: AsyncSession,
    request_id: int,
    *,
    released_technician_id: Optional[int] = None,
) -> None:
    """Push the current state of a request to everyone involved in it.

    Args:
        db: Async database session.
        request_id: The request that changed.
        released_technician_id: A technician who just lost the assignment
            and would otherwise not hear about it.
    """
    try:
        view = await load_request_view(db, request_id)
        if view is None:
            return

        message = build_request_message(view, "update")
        await socketServer.send_to_customer(view.request.customer_id, message)

        technician_ids = {view.request.technician_id, released_technician_id}
        technician_ids.discard(None)
        for technician_id in technician_ids:
            await socketServer.send_to_technician(technician_id, message)

        if _in_pool(view):
            await socketServer.broadcast_to_technicians(
                build_request_message(view, "new_job")
            )

        logger.info(
            "Pushed update for request=%s status=%s",
            request_id,
            view.request.status.value,
        )
    except Exception:
        logger.exception("Failed to push update for request=%s", request_id)


async def notify_proposal(db: AsyncSession, proposal_id: int) -> None:
    """Push a proposal to the customer, and to the technician once resolved."""
    try:
        proposal = await proposal_service.get_proposal(db, proposal_id)
        if proposal is None:
            return
        view = await load_request_view(db, proposal.request_id)
        technician = await db.get(Technician, proposal.technician_id)
        if view is None or technician is None:
            return

        message = build_proposal_message(proposal, view, technician.name)
        await socketServer.send_to_customer(view.request.customer_id, message)
        if proposal.status != ProposalStatus.PENDING:
            await socketServer.send_to_technician(proposal.technician_id, message)

        logger.info(
            "Pushed proposal=%s status=%s for request=%s",
            proposal_id,
            proposal.status.value,
            proposal.request_id,
        )
    except Exception:
        logger.exception("Failed to push proposal=%s", proposal_id)
