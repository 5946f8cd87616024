"""
Customer Account API Routes
===========================

Routes:
  POST /api/customers/register     -- create a customer account
  POST /api/customers/login        -- authenticate with email & password
  GET  /api/customers/{id}         -- customer details
  PUT  /api/customers/update/{id}  -- update identity, password and details
"""

from __future__ import annotations

from fastapi import APIRouter, status

from tap4service.api.deps import DBSession
from tap4service.api.schemas.account import (
    CustomerOut,
    CustomerRegisterBody,
    CustomerRegisteredResponse,
    CustomerUpdateBody,
    LoginBody,
    LoginResponse,
)
from tap4service.api.schemas.request import MessageResponse
from tap4service.services import account_service
from tap4service.services.account_service import CUSTOMER_DETAIL_FIELDS

router = APIRouter(prefix="/customers", tags=["Customers"])


@router.post(
    "/register",
    response_model=CustomerRegisteredResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new customer",
)
async def register(db: DBSession, body: CustomerRegisterBody) -> CustomerRegisteredResponse:
    customer = await account_service.register_customer(
        db,
        email=body.email,
        password=body.password,
        name=body.name,
        region=body.region,
        details=body.details(CUSTOMER_DETAIL_FIELDS),
    )
    await db.commit()
    return CustomerRegisteredResponse(
        message="Customer registered successfully",
        customerId=customer.id,
    )


@router.post(
    "/login",
    response_model=LoginResponse,
    summary="Authenticate a customer",
)
async def login(db: DBSession, body: LoginBody) -> dict:
    return await account_service.login(db, "customer", body.email, body.password)


@router.get(
    "/{customer_id}",
    response_model=CustomerOut,
    summary="Get a customer's details",
)
async def get_customer(db: DBSession, customer_id: int) -> CustomerOut:
    customer = await account_service.get_customer(db, customer_id)
    return CustomerOut.model_validate(customer)


@router.put(
    "/update/{customer_id}",
    response_model=MessageResponse,
    summary="Update a customer's details",
)
async def update_customer(
    db: DBSession,
    customer_id: int,
    body: CustomerUpdateBody,
) -> MessageResponse:
    await account_service.update_customer(
        db,
        customer_id,
        email=body.email,
        name=body.name,
        region=body.region,
        new_password=body.new_password,
        confirm_password=body.confirm_password,
        details=body.details(CUSTOMER_DETAIL_FIELDS),
    )
    await db.commit()
    return MessageResponse(message="Customer details updated successfully")
