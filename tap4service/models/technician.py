"""
SQLAlchemy model for the technicians table.
"""

from typing import Optional

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, CreatedAtMixin, IntegerPrimaryKeyMixin
from .region import Region, TechnicianRegion


class Technician(IntegerPrimaryKeyMixin, CreatedAtMixin, Base):
    __tablename__ = "technicians"

    # Authentication
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Profile
    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    pspla_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    nzbn_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    public_liability_insurance: Mapped[Optional[bool]] = mapped_column(
        Boolean, nullable=True
    )
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    # Relationships
    region_rows: Mapped[list[TechnicianRegion]] = relationship(
        TechnicianRegion,
        back_populates="technician",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    service_requests: Mapped[list["ServiceRequest"]] = relationship(
        "ServiceRequest", back_populates="technician"
    )
    proposals: Mapped[list["Proposal"]] = relationship(
        "Proposal", back_populates="technician"
    )

    @property
    def service_regions(self) -> set[Region]:
        return {row.region for row in self.region_rows}

    def __repr__(self) -> str:
        return f"<Technician(id={self.id}, email={self.email})>"
