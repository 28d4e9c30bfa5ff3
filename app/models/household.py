"""Household database model (directory data)."""

from datetime import date
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base

if TYPE_CHECKING:
    from app.models.building import Unit


class Household(Base):
    """A household living in a unit.

    The household is current while ``end_date`` is unset. A unit counts as
    occupied only when its current household has a primary resident.
    """

    __tablename__ = "households"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    unit_id: Mapped[int] = mapped_column(ForeignKey("units.id"), index=True)
    primary_resident_id: Mapped[int | None] = mapped_column(nullable=True)
    primary_resident_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    start_date: Mapped[date | None] = mapped_column(nullable=True)
    end_date: Mapped[date | None] = mapped_column(nullable=True)

    # Relationships
    unit: Mapped["Unit"] = relationship(back_populates="households")

    def get_is_current(self) -> bool:
        """Check if the household still lives in the unit."""
        return self.end_date is None
