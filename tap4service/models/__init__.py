"""
Tap4Service SQLAlchemy Models
=============================

Central import point for all ORM models. Import ``Base`` from here for the
``create_all`` call made at startup and in tests.

Usage::

    from tap4service.models import Base, Customer, ServiceRequest
"""

# -- Base & Mixins --
from .base import Base, CreatedAtMixin, IntegerPrimaryKeyMixin

# -- Accounts --
from .customer import Customer
from .region import REGION_DISPLAY_NAMES, Region, TechnicianRegion, display_names
from .technician import Technician

# -- Requests & proposals --
from .service_request import (
    ASSIGNED_STATUSES,
    DEFAULT_REPAIR_DESCRIPTION,
    PaymentStatus,
    Proposal,
    ProposalStatus,
    RequestStatus,
    ServiceRequest,
)

__all__ = [
    # Base
    "Base",
    "CreatedAtMixin",
    "IntegerPrimaryKeyMixin",
    # Accounts
    "Customer",
    "Region",
    "REGION_DISPLAY_NAMES",
    "Technician",
    "TechnicianRegion",
    "display_names",
    # Requests
    "ASSIGNED_STATUSES",
    "DEFAULT_REPAIR_DESCRIPTION",
    "PaymentStatus",
    "Proposal",
    "ProposalStatus",
    "RequestStatus",
    "ServiceRequest",
]
