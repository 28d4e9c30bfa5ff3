"""Building and Unit database models (directory data)."""

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base

if TYPE_CHECKING:
    from app.models.household import Household
    from app.models.meter import Meter


class Building(Base):
    """Building of the property, containing units on numbered floors."""

    __tablename__ = "buildings"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    code: Mapped[str] = mapped_column(String(20), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(default=lambda: datetime.now(UTC))

    # Relationships
    units: Mapped[list["Unit"]] = relationship(
        back_populates="building",
    )

    @property
    def floors(self) -> list[int]:
        """Sorted floor numbers that have at least one unit."""
        return sorted({unit.floor for unit in self.units})


class Unit(Base):
    """Apartment or premises inside a building."""

    __tablename__ = "units"
    __table_args__ = (UniqueConstraint("building_id", "code", name="uq_building_unit_code"),)

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    building_id: Mapped[int] = mapped_column(ForeignKey("buildings.id"), index=True)
    code: Mapped[str] = mapped_column(String(50), index=True)
    floor: Mapped[int] = mapped_column(index=True)

    # Relationships
    building: Mapped["Building"] = relationship(back_populates="units")
    households: Mapped[list["Household"]] = relationship(back_populates="unit")
    meters: Mapped[list["Meter"]] = relationship(back_populates="unit")
