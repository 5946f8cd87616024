"""
Request State Manager
=====================

Finite state machine governing every service-request lifecycle operation.
Service functions that load a request first check the move with
``validate_transition``, then encode the allowed source statuses in the
``WHERE`` clause of their conditional ``UPDATE``.

State machine overview::

    pending --assign--> assigned --complete--> completed_technician
        --confirm--> completed

    assigned --unassign / reschedule / decline proposal--> pending
    pending  --reschedule--> pending
    pending | assigned --cancel--> cancelled

Payment status moves with the request: assign authorizes, confirm captures,
and every operation that releases an assignment voids the authorization
back to pending.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from tap4service.models.service_request import PaymentStatus, RequestStatus


# ---------------------------------------------------------------------------
# Actor types for guard enforcement
# ---------------------------------------------------------------------------

class ActorType(str, enum.Enum):
    CUSTOMER = "customer"
    TECHNICIAN = "technician"
    SYSTEM = "system"


class Operation(str, enum.Enum):
    ASSIGN = "assign"
    UNASSIGN = "unassign"
    RESCHEDULE = "reschedule"
    COMPLETE = "complete"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    PROPOSE = "propose"
    APPROVE_PROPOSAL = "approve_proposal"
    DECLINE_PROPOSAL = "decline_proposal"


# ---------------------------------------------------------------------------
# Transition guard result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransitionResult:
    """Result of a transition validation attempt."""
    allowed: bool
    reason: str | None = None


@dataclass(frozen=True)
class Transition:
    """One row of the lifecycle table.

    ``target`` of ``None`` means the status is left unchanged (propose).
    ``payment`` of ``None`` means the payment status is left unchanged.
    """
    sources: frozenset[RequestStatus]
    target: Optional[RequestStatus]
    actor: ActorType
    payment: Optional[PaymentStatus] = None
    releases_assignment: bool = False


# ---------------------------------------------------------------------------
# Transition definitions
# ---------------------------------------------------------------------------

_OPEN: frozenset[RequestStatus] = frozenset({
    RequestStatus.PENDING,
    RequestStatus.ASSIGNED,
})

TRANSITIONS: dict[Operation, Transition] = {
    Operation.ASSIGN: Transition(
        sources=frozenset({RequestStatus.PENDING}),
        target=RequestStatus.ASSIGNED,
        actor=ActorType.TECHNICIAN,
        payment=PaymentStatus.AUTHORIZED,
    ),
    Operation.UNASSIGN: Transition(
        sources=frozenset({RequestStatus.ASSIGNED}),
        target=RequestStatus.PENDING,
        actor=ActorType.TECHNICIAN,
        payment=PaymentStatus.PENDING,
        releases_assignment=True,
    ),
    Operation.RESCHEDULE: Transition(
        sources=_OPEN,
        target=RequestStatus.PENDING,
        actor=ActorType.CUSTOMER,
        payment=PaymentStatus.PENDING,
        releases_assignment=True,
    ),
    Operation.COMPLETE: Transition(
        sources=frozenset({RequestStatus.ASSIGNED}),
        target=RequestStatus.COMPLETED_TECHNICIAN,
        actor=ActorType.TECHNICIAN,
    ),
    Operation.CONFIRM: Transition(
        sources=frozenset({RequestStatus.COMPLETED_TECHNICIAN}),
        target=RequestStatus.COMPLETED,
        actor=ActorType.CUSTOMER,
        payment=PaymentStatus.CAPTURED,
    ),
    Operation.CANCEL: Transition(
        sources=_OPEN,
        target=RequestStatus.CANCELLED,
        actor=ActorType.CUSTOMER,
        payment=PaymentStatus.PENDING,
        releases_assignment=True,
    ),
    Operation.PROPOSE: Transition(
        sources=frozenset({RequestStatus.ASSIGNED}),
        target=None,
        actor=ActorType.TECHNICIAN,
    ),
    Operation.APPROVE_PROPOSAL: Transition(
        sources=frozenset({RequestStatus.ASSIGNED}),
        target=RequestStatus.ASSIGNED,
        actor=ActorType.CUSTOMER,
    ),
    Operation.DECLINE_PROPOSAL: Transition(
        sources=frozenset({RequestStatus.ASSIGNED}),
        target=RequestStatus.PENDING,
        actor=ActorType.CUSTOMER,
        payment=PaymentStatus.PENDING,
        releases_assignment=True,
    ),
}


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def source_statuses(operation: Operation) -> list[RequestStatus]:
    """Statuses from which ``operation`` may run (for ``WHERE status IN``)."""
    return sorted(TRANSITIONS[operation].sources, key=lambda s: s.value)


def validate_transition(
    current_status: RequestStatus,
    operation: Operation,
    actor_type: ActorType = ActorType.SYSTEM,
) -> TransitionResult:
    """Validate whether ``operation`` may run on a request in ``current_status``.

    Checks two layers:
    1. Is the current status one of the operation's source statuses?
    2. Is the actor the party allowed to trigger the operation? The system
       actor may trigger anything.
    """
    transition = TRANSITIONS[operation]

    if current_status not in transition.sources:
        allowed = ", ".join(sorted(s.value for s in transition.sources))
        return TransitionResult(
            allowed=False,
            reason=(
                f"Cannot {operation.value.replace('_', ' ')} a request in "
                f"'{current_status.value}' status. Allowed from: {allowed}."
            ),
        )

    if actor_type != ActorType.SYSTEM and actor_type != transition.actor:
        return TransitionResult(
            allowed=False,
            reason=(
                f"Only a {transition.actor.value} can "
                f"{operation.value.replace('_', ' ')} a request."
            ),
        )

    return TransitionResult(allowed=True)
