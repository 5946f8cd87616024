"""
Pydantic v2 schemas for customer and technician accounts.

Identity and contact fields are snake_case on the wire; the password
change pair (``newPassword`` / ``confirmPassword``) and the login
response ids are camelCase, as the existing clients send and expect them.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class _AccountBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def details(self, fields: tuple[str, ...]) -> dict[str, Any]:
        """The optional contact columns as a plain dict."""
        return {name: getattr(self, name) for name in fields}


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

class LoginBody(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class LoginResponse(BaseModel):
    userId: int
    role: str
    name: str
    token: str


class SessionResponse(BaseModel):
    valid: bool
    userId: int
    role: str


# ---------------------------------------------------------------------------
# Customers
# ---------------------------------------------------------------------------

class CustomerRegisterBody(_AccountBody):
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = None
    name: Optional[str] = Field(default=None, max_length=255)
    region: Optional[str] = Field(default=None, max_length=255)
    address: Optional[str] = None
    phone_number: Optional[str] = None
    alternate_phone_number: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None


class CustomerUpdateBody(CustomerRegisterBody):
    new_password: Optional[str] = Field(default=None, alias="newPassword")
    confirm_password: Optional[str] = Field(default=None, alias="confirmPassword")


class CustomerRegisteredResponse(BaseModel):
    message: str
    customerId: int


class CustomerOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str
    region: str
    address: Optional[str] = None
    phone_number: Optional[str] = None
    alternate_phone_number: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None


# ---------------------------------------------------------------------------
# Technicians
# ---------------------------------------------------------------------------

class TechnicianRegisterBody(_AccountBody):
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = None
    name: Optional[str] = Field(default=None, max_length=255)
    service_regions: Optional[list[str]] = Field(
        default=None, description="Region display names, e.g. ['Auckland']"
    )
    address: Optional[str] = None
    phone_number: Optional[str] = None
    pspla_number: Optional[str] = None
    nzbn_number: Optional[str] = None
    public_liability_insurance: Optional[bool] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None


class TechnicianUpdateBody(TechnicianRegisterBody):
    new_password: Optional[str] = Field(default=None, alias="newPassword")
    confirm_password: Optional[str] = Field(default=None, alias="confirmPassword")
    is_available: Optional[bool] = None


class TechnicianRegisteredResponse(BaseModel):
    message: str
    userId: int


class TechnicianOut(BaseModel):
    id: int
    email: str
    name: str
    is_available: bool
    address: Optional[str] = None
    phone_number: Optional[str] = None
    pspla_number: Optional[str] = None
    nzbn_number: Optional[str] = None
    public_liability_insurance: Optional[bool] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    service_regions: list[str]


class RegionsResponse(BaseModel):
    regions: list[str]
