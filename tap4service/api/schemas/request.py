"""
Pydantic v2 schemas for the service-request API.

Request bodies keep the field names existing clients already send: the
create body is snake_case, the action bodies use camelCase ids
(``technicianId``, ``customerId``). Timestamps stay as wire strings here
and are parsed by the service layer so errors can name the field.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------

def _to_camel(snake: str) -> str:
    parts = snake.split("_")
    return parts[0] + "".join(w.capitalize() for w in parts[1:])


class CamelModel(BaseModel):
    """Base model that reads and writes field names in camelCase."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=_to_camel,
    )


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class CreateRequestBody(BaseModel):
    """Body for ``POST /requests``. Required fields are checked by the service
    so that every missing one is reported together."""

    customer_id: Optional[int] = None
    repair_description: Optional[str] = Field(default=None, max_length=5000)
    availability_1: Optional[str] = Field(
        default=None, description="DD/MM/YYYY HH:mm:ss in the display time zone"
    )
    availability_2: Optional[str] = None
    region: Optional[str] = Field(default=None, max_length=255)


class AssignBody(CamelModel):
    technician_id: int
    scheduled_time: str = Field(description="DD/MM/YYYY HH:mm:ss")


class TechnicianActionBody(CamelModel):
    technician_id: int


class CompleteBody(CamelModel):
    technician_id: int
    note: Optional[str] = Field(default=None, max_length=5000)


class RescheduleBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    customer_id: int = Field(alias="customerId")
    availability_1: str
    availability_2: Optional[str] = None


class CustomerActionBody(CamelModel):
    customer_id: int


class CancelBody(CamelModel):
    customer_id: Optional[int] = None


class ProposeBody(CamelModel):
    technician_id: int
    proposed_time: str = Field(description="DD/MM/YYYY HH:mm:ss")


class ConfirmProposalBody(CamelModel):
    customer_id: int
    proposal_id: int
    action: str = Field(description="approve or decline")


class RespondBody(CamelModel):
    technician_id: int
    action: str = Field(description="accept, decline or propose")
    proposed_date: Optional[str] = Field(
        default=None, description="Required for propose; DD/MM/YYYY HH:mm:ss"
    )


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class MessageResponse(BaseModel):
    message: str


class CreateRequestResponse(CamelModel):
    message: str
    request_id: int
    payment_id: str


class AssignResponse(CamelModel):
    message: str
    payment_id: str


class ProposalCreatedResponse(CamelModel):
    message: str
    proposal_id: int


class ServiceRequestOut(BaseModel):
    """A request as returned by the list endpoints and pushed to clients."""

    id: int
    customer_id: int
    repair_description: str
    created_at: Optional[str] = None
    status: str
    customer_availability_1: Optional[str] = None
    customer_availability_2: Optional[str] = None
    technician_id: Optional[int] = None
    technician_scheduled_time: Optional[str] = None
    payment_id: Optional[str] = None
    payment_status: str
    region: str
    technician_note: Optional[str] = None
    customer_name: Optional[str] = None
    customer_address: Optional[str] = None
    customer_city: Optional[str] = None
    customer_postal_code: Optional[str] = None
    technician_name: Optional[str] = None


class PendingProposalOut(BaseModel):
    id: int
    request_id: int
    technician_id: int
    technician_name: Optional[str] = None
    proposed_time: Optional[str] = None
    status: str
    created_at: Optional[str] = None
