"""
Service regions and the technician <-> region membership table.

A technician's serviced regions are a set: one ``technician_service_regions``
row per (technician, region) pair.
"""

import enum
from typing import Iterable, Optional

from sqlalchemy import Enum, ForeignKey, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, enum_values


class Region(str, enum.Enum):
    AUCKLAND = "auckland"
    BAY_OF_PLENTY = "bay_of_plenty"
    CANTERBURY = "canterbury"
    GISBORNE = "gisborne"
    HAWKES_BAY = "hawkes_bay"
    MANAWATU_WHANGANUI = "manawatu_whanganui"
    MARLBOROUGH = "marlborough"
    NELSON = "nelson"
    NORTHLAND = "northland"
    OTAGO = "otago"
    SOUTHLAND = "southland"
    TARANAKI = "taranaki"
    TASMAN = "tasman"
    WAIKATO = "waikato"
    WELLINGTON = "wellington"
    WEST_COAST = "west_coast"

    @property
    def display_name(self) -> str:
        return REGION_DISPLAY_NAMES[self]

    @classmethod
    def from_display(cls, name: str) -> Optional["Region"]:
        """Look up a region by its display string, ignoring case.

        Both the typographic (’) and plain (') apostrophe spellings of
        Hawke's Bay are accepted.
        """
        key = (name or "").strip().replace("’", "'").casefold()
        return _BY_FOLDED_NAME.get(key)


REGION_DISPLAY_NAMES: dict[Region, str] = {
    Region.AUCKLAND: "Auckland",
    Region.BAY_OF_PLENTY: "Bay of Plenty",
    Region.CANTERBURY: "Canterbury",
    Region.GISBORNE: "Gisborne",
    Region.HAWKES_BAY: "Hawke’s Bay",
    Region.MANAWATU_WHANGANUI: "Manawatu-Whanganui",
    Region.MARLBOROUGH: "Marlborough",
    Region.NELSON: "Nelson",
    Region.NORTHLAND: "Northland",
    Region.OTAGO: "Otago",
    Region.SOUTHLAND: "Southland",
    Region.TARANAKI: "Taranaki",
    Region.TASMAN: "Tasman",
    Region.WAIKATO: "Waikato",
    Region.WELLINGTON: "Wellington",
    Region.WEST_COAST: "West Coast",
}

_BY_FOLDED_NAME: dict[str, Region] = {
    display.replace("’", "'").casefold(): region
    for region, display in REGION_DISPLAY_NAMES.items()
}


def display_names(regions: Iterable[Region]) -> list[str]:
    """Display strings for a set of regions, in enumeration order."""
    wanted = set(regions)
    return [REGION_DISPLAY_NAMES[r] for r in Region if r in wanted]


class TechnicianRegion(Base):
    __tablename__ = "technician_service_regions"

    technician_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("technicians.id", ondelete="CASCADE"),
        primary_key=True,
    )
    region: Mapped[Region] = mapped_column(
        Enum(
            Region,
            name="service_region",
            native_enum=False,
            length=32,
            values_callable=enum_values,
        ),
        primary_key=True,
    )

    technician: Mapped["Technician"] = relationship(
        "Technician", back_populates="region_rows"
    )

    def __repr__(self) -> str:
        return f"<TechnicianRegion(technician={self.technician_id}, region={self.region.value})>"
