"""
Technician Account API Routes
=============================

Routes:
  POST /api/technicians/register     -- create a technician account
  POST /api/technicians/login        -- authenticate with email & password
  GET  /api/technicians/{id}         -- technician details and regions
  PUT  /api/technicians/update/{id}  -- update details, regions, availability
  GET  /api/technician/profile/{id}  -- serviced region names only
"""

from __future__ import annotations

from fastapi import APIRouter, status

from tap4service.api.deps import DBSession
from tap4service.api.schemas.account import (
    LoginBody,
    LoginResponse,
    RegionsResponse,
    TechnicianOut,
    TechnicianRegisterBody,
    TechnicianRegisteredResponse,
    TechnicianUpdateBody,
)
from tap4service.api.schemas.request import MessageResponse
from tap4service.models import Technician, display_names
from tap4service.services import account_service
from tap4service.services.account_service import TECHNICIAN_DETAIL_FIELDS

router = APIRouter(prefix="/technicians", tags=["Technicians"])

# Legacy singular path used by the technician dashboard.
profile_router = APIRouter(prefix="/technician", tags=["Technicians"])


def _technician_to_out(technician: Technician) -> TechnicianOut:
    return TechnicianOut(
        id=technician.id,
        email=technician.email,
        name=technician.name,
        is_available=technician.is_available,
        address=technician.address,
        phone_number=technician.phone_number,
        pspla_number=technician.pspla_number,
        nzbn_number=technician.nzbn_number,
        public_liability_insurance=technician.public_liability_insurance,
        city=technician.city,
        postal_code=technician.postal_code,
        service_regions=display_names(technician.service_regions),
    )


# ---------------------------------------------------------------------------
# /technicians
# ---------------------------------------------------------------------------

@router.post(
    "/register",
    response_model=TechnicianRegisteredResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new technician",
)
async def register(
    db: DBSession,
    body: TechnicianRegisterBody,
) -> TechnicianRegisteredResponse:
    technician = await account_service.register_technician(
        db,
        email=body.email,
        password=body.password,
        name=body.name,
        service_regions=body.service_regions,
        details=body.details(TECHNICIAN_DETAIL_FIELDS),
    )
    await db.commit()
    return TechnicianRegisteredResponse(
        message="Technician registered successfully",
        userId=technician.id,
    )


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Authenticate a technician",
)
async def login(db: DBSession, body: LoginBody) -> dict:
    return await account_service.login(db, "technician", body.email, body.password)


@router.get(
    "/{technician_id}",
    response_model=TechnicianOut,
    summary="Get a technician's details",
)
async def get_technician(db: DBSession, technician_id: int) -> TechnicianOut:
    technician = await account_service.get_technician(db, technician_id)
    return _technician_to_out(technician)


@router.put(
    "/update/{technician_id}",
    response_model=MessageResponse,
    summary="Update a technician's details and service regions",
)
async def update_technician(
    db: DBSession,
    technician_id: int,
    body: TechnicianUpdateBody,
) -> MessageResponse:
    await account_service.update_technician(
        db,
        technician_id,
        email=body.email,
        name=body.name,
        service_regions=body.service_regions,
        new_password=body.new_password,
        confirm_password=body.confirm_password,
        is_available=body.is_available,
        details=body.details(TECHNICIAN_DETAIL_FIELDS),
    )
    await db.commit()
    return MessageResponse(message="Technician details updated successfully")


# ---------------------------------------------------------------------------
# /technician/profile
# ---------------------------------------------------------------------------

@profile_router.get(
    "/profile/{technician_id}",
    response_model=RegionsResponse,
    summary="A technician's serviced regions",
)
async def get_profile_regions(db: DBSession, technician_id: int) -> RegionsResponse:
    technician = await account_service.get_technician(db, technician_id)
    return RegionsResponse(regions=display_names(technician.service_regions))
