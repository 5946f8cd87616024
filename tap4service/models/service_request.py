"""
SQLAlchemy models for service requests and technician schedule proposals.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, CreatedAtMixin, IntegerPrimaryKeyMixin, enum_values

DEFAULT_REPAIR_DESCRIPTION = "No description provided"


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    ASSIGNED = "assigned"
    COMPLETED_TECHNICIAN = "completed_technician"  # technician done, awaiting customer
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    AUTHORIZED = "authorized"
    CAPTURED = "captured"


class ProposalStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


# Statuses in which a technician must be attached to the request
ASSIGNED_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.ASSIGNED,
    RequestStatus.COMPLETED_TECHNICIAN,
    RequestStatus.COMPLETED,
})


class ServiceRequest(IntegerPrimaryKeyMixin, CreatedAtMixin, Base):
    __tablename__ = "service_requests"
    __table_args__ = (
        Index("ix_service_requests_status_technician", "status", "technician_id"),
    )

    customer_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    repair_description: Mapped[str] = mapped_column(
        Text, nullable=False, default=DEFAULT_REPAIR_DESCRIPTION
    )

    # Lifecycle
    status: Mapped[RequestStatus] = mapped_column(
        Enum(
            RequestStatus,
            name="request_status",
            native_enum=False,
            length=32,
            values_callable=enum_values,
        ),
        nullable=False,
        default=RequestStatus.PENDING,
    )

    # Scheduling (naive UTC)
    customer_availability_1: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    customer_availability_2: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    technician_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("technicians.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    technician_scheduled_time: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )

    # Payment (mock gateway reference)
    payment_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(
            PaymentStatus,
            name="payment_status",
            native_enum=False,
            length=16,
            values_callable=enum_values,
        ),
        nullable=False,
        default=PaymentStatus.PENDING,
    )

    region: Mapped[str] = mapped_column(String(255), nullable=False)
    technician_note: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    customer: Mapped["Customer"] = relationship(
        "Customer", back_populates="service_requests"
    )
    technician: Mapped[Optional["Technician"]] = relationship(
        "Technician", back_populates="service_requests"
    )
    proposals: Mapped[list["Proposal"]] = relationship(
        "Proposal", back_populates="request", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return (
            f"<ServiceRequest(id={self.id}, status={self.status}, "
            f"technician={self.technician_id})>"
        )


class Proposal(IntegerPrimaryKeyMixin, CreatedAtMixin, Base):
    __tablename__ = "pending_proposals"

    request_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("service_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    technician_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("technicians.id", ondelete="CASCADE"),
        nullable=False,
    )
    proposed_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[ProposalStatus] = mapped_column(
        Enum(
            ProposalStatus,
            name="proposal_status",
            native_enum=False,
            length=16,
            values_callable=enum_values,
        ),
        nullable=False,
        default=ProposalStatus.PENDING,
    )

    # Relationships
    request: Mapped[ServiceRequest] = relationship(
        ServiceRequest, back_populates="proposals"
    )
    technician: Mapped["Technician"] = relationship(
        "Technician", back_populates="proposals"
    )

    def __repr__(self) -> str:
        return (
            f"<Proposal(id={self.id}, request={self.request_id}, "
            f"status={self.status})>"
        )
