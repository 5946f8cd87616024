"""
Account service for customers and technicians.

Handles registration, login, profile reads and updates, and session token
validation. Passwords are hashed with bcrypt and sessions are HS256 JWTs;
see ``tap4service.core.security``.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional, Union

import jwt
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tap4service.core.security import (
    create_session_token,
    decode_session_token,
    hash_password,
    verify_password,
)
from tap4service.models import Customer, Region, Technician, TechnicianRegion
from tap4service.services.errors import (
    Conflict,
    InvalidCredentials,
    NotFound,
    ValidationFailed,
)

logger = logging.getLogger(__name__)

CUSTOMER_DETAIL_FIELDS = (
    "address",
    "phone_number",
    "alternate_phone_number",
    "city",
    "postal_code",
)

TECHNICIAN_DETAIL_FIELDS = (
    "address",
    "phone_number",
    "pspla_number",
    "nzbn_number",
    "public_liability_insurance",
    "city",
    "postal_code",
)

_MODELS: dict[str, type[Union[Customer, Technician]]] = {
    "customer": Customer,
    "technician": Technician,
}


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def _normalize_email(email: str) -> str:
    return email.lower().strip()


async def _email_taken(
    db: AsyncSession,
    model: type[Union[Customer, Technician]],
    email: str,
    exclude_id: Optional[int] = None,
) -> bool:
    stmt = select(model.id).where(model.email == email)
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    result = await db.execute(stmt)
    return result.first() is not None


async def _flush_account(db: AsyncSession) -> None:
    """Flush an account write; a concurrent insert of the same email is a 409."""
    try:
        await db.flush()
    except IntegrityError as exc:
        logger.warning("Account write hit a unique constraint: %s", exc.orig)
        raise Conflict("Email already exists", field="email") from exc


def _check_new_password(
    new_password: Optional[str],
    confirm_password: Optional[str],
) -> None:
    if new_password and new_password != confirm_password:
        raise ValidationFailed("New passwords do not match", field="confirmPassword")


def _apply_details(
    account: Union[Customer, Technician],
    fields: Iterable[str],
    details: dict[str, Any],
) -> None:
    """Overwrite the optional contact columns; absent or blank values clear them."""
    for name in fields:
        value = details.get(name)
        if isinstance(value, str):
            value = value.strip() or None
        setattr(account, name, value)


def parse_service_regions(names: Iterable[str]) -> set[Region]:
    """Map region display strings onto the Region enumeration.

    Raises:
        ValidationFailed: If any name is not a known region.
    """
    regions: set[Region] = set()
    for name in names:
        region = Region.from_display(name)
        if region is None:
            raise ValidationFailed(
                f"Unknown service region: {name}", field="service_regions"
            )
        regions.add(region)
    return regions


def _replace_regions(technician: Technician, regions: set[Region]) -> None:
    """Make the technician's region rows match ``regions`` exactly."""
    current = {row.region: row for row in technician.region_rows}
    for region, row in current.items():
        if region not in regions:
            technician.region_rows.remove(row)
    for region in regions - current.keys():
        technician.region_rows.append(TechnicianRegion(region=region))


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------

async def register_customer(
    db: AsyncSession,
    *,
    email: Optional[str],
    password: Optional[str],
    name: Optional[str],
    region: Optional[str],
    details: Optional[dict[str, Any]] = None,
) -> Customer:
    """Create a customer account.

    Raises:
        ValidationFailed: A required field is missing or blank.
        Conflict: The email address is already registered.
    """
    if _blank(email) or not password or _blank(name) or _blank(region):
        raise ValidationFailed(
            "Email, password, name, and non-empty region are required"
        )

    email = _normalize_email(email)
    if await _email_taken(db, Customer, email):
        raise Conflict("Email already exists", field="email")

    customer = Customer(
        email=email,
        password_hash=hash_password(password),
        name=name.strip(),
        region=region.strip(),
    )
    _apply_details(customer, CUSTOMER_DETAIL_FIELDS, details or {})
    db.add(customer)
    await _flush_account(db)

    logger.info("Customer registered: customer=%s", customer.id)
    return customer


async def get_customer(db: AsyncSession, customer_id: int) -> Customer:
    customer = await db.get(Customer, customer_id)
    if customer is None:
        raise NotFound("Customer not found")
    return customer


async def update_customer(
    db: AsyncSession,
    customer_id: int,
    *,
    email: Optional[str],
    name: Optional[str],
    region: Optional[str],
    new_password: Optional[str] = None,
    confirm_password: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> Customer:
    """Update a customer's identity, optional password and contact details."""
    if _blank(email) or _blank(name) or _blank(region):
        raise ValidationFailed("Email, name, and non-empty region are required")
    _check_new_password(new_password, confirm_password)

    customer = await get_customer(db, customer_id)

    email = _normalize_email(email)
    if await _email_taken(db, Customer, email, exclude_id=customer_id):
        raise Conflict("Email already exists", field="email")

    customer.email = email
    customer.name = name.strip()
    customer.region = region.strip()
    if new_password:
        customer.password_hash = hash_password(new_password)
    _apply_details(customer, CUSTOMER_DETAIL_FIELDS, details or {})
    await _flush_account(db)

    logger.info("Customer updated: customer=%s", customer_id)
    return customer


# ---------------------------------------------------------------------------
# Technicians
# ---------------------------------------------------------------------------

async def register_technician(
    db: AsyncSession,
    *,
    email: Optional[str],
    password: Optional[str],
    name: Optional[str],
    service_regions: Optional[list[str]],
    details: Optional[dict[str, Any]] = None,
) -> Technician:
    """Create a technician account with its serviced regions.

    Raises:
        ValidationFailed: Missing field, or a region name not in the enumeration.
        Conflict: The email address is already registered.
    """
    if _blank(email) or not password or _blank(name) or service_regions is None:
        raise ValidationFailed(
            "Email, password, name, and service regions are required"
        )
    regions = parse_service_regions(service_regions)

    email = _normalize_email(email)
    if await _email_taken(db, Technician, email):
        raise Conflict("Email already exists", field="email")

    technician = Technician(
        email=email,
        password_hash=hash_password(password),
        name=name.strip(),
        is_available=True,
        region_rows=[TechnicianRegion(region=r) for r in regions],
    )
    _apply_details(technician, TECHNICIAN_DETAIL_FIELDS, details or {})
    db.add(technician)
    await _flush_account(db)

    logger.info(
        "Technician registered: technician=%s, regions=%s",
        technician.id,
        sorted(r.value for r in regions),
    )
    return technician


async def get_technician(db: AsyncSession, technician_id: int) -> Technician:
    technician = await db.get(Technician, technician_id)
    if technician is None:
        raise NotFound("Technician not found")
    return technician


async def update_technician(
    db: AsyncSession,
    technician_id: int,
    *,
    email: Optional[str],
    name: Optional[str],
    service_regions: Optional[list[str]],
    new_password: Optional[str] = None,
    confirm_password: Optional[str] = None,
    is_available: Optional[bool] = None,
    details: Optional[dict[str, Any]] = None,
) -> Technician:
    """Update a technician's identity, details, region set and availability."""
    if _blank(email) or _blank(name) or service_regions is None:
        raise ValidationFailed("Email, name, and service regions are required")
    _check_new_password(new_password, confirm_password)
    regions = parse_service_regions(service_regions)

    technician = await get_technician(db, technician_id)

    email = _normalize_email(email)
    if await _email_taken(db, Technician, email, exclude_id=technician_id):
        raise Conflict("Email already exists", field="email")

    technician.email = email
    technician.name = name.strip()
    if new_password:
        technician.password_hash = hash_password(new_password)
    if is_available is not None:
        technician.is_available = is_available
    _apply_details(technician, TECHNICIAN_DETAIL_FIELDS, details or {})
    _replace_regions(technician, regions)
    await _flush_account(db)

    logger.info("Technician updated: technician=%s", technician_id)
    return technician


# ---------------------------------------------------------------------------
# Login & sessions
# ---------------------------------------------------------------------------

async def login(
    db: AsyncSession,
    role: str,
    email: Optional[str],
    password: Optional[str],
) -> dict[str, Any]:
    """Authenticate a customer or technician.

    Returns:
        ``{userId, role, name, token}`` for the client to keep.

    Raises:
        ValidationFailed: Email or password missing.
        InvalidCredentials: Unknown email or wrong password.
    """
    if _blank(email) or not password:
        raise ValidationFailed("Email and password are required")

    model = _MODELS[role]
    result = await db.execute(select(model).where(model.email == _normalize_email(email)))
    account = result.scalar_one_or_none()
    if account is None or not verify_password(password, account.password_hash):
        logger.warning("Failed %s login attempt", role)
        raise InvalidCredentials("Invalid credentials")

    token, _expires_at = create_session_token(account.id, role)
    logger.info("Login: %s=%s", role, account.id)
    return {"userId": account.id, "role": role, "name": account.name, "token": token}


async def validate_session(db: AsyncSession, token: Optional[str]) -> dict[str, Any]:
    """Check a session token and that its account still exists.

    Raises:
        InvalidCredentials: Missing, expired, tampered or orphaned token.
    """
    if not token:
        raise InvalidCredentials("Missing session token")
    try:
        payload = decode_session_token(token)
    except jwt.ExpiredSignatureError:
        raise InvalidCredentials("Session has expired")
    except jwt.InvalidTokenError:
        raise InvalidCredentials("Invalid session token")

    role = payload.get("role")
    model = _MODELS.get(role)
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        raise InvalidCredentials("Invalid session token")
    if model is None or await db.get(model, user_id) is None:
        raise InvalidCredentials("Session is no longer valid")

    return {"valid": True, "userId": user_id, "role": role}
