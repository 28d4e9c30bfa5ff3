"""Assignment database models."""

from datetime import UTC, date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base

if TYPE_CHECKING:
    from app.models.building import Building, Unit
    from app.models.cycle import ReadingCycle
    from app.models.service import UtilityService
    from app.models.staff import Staff


class Assignment(Base):
    """Work order binding a staff member to a frozen set of units for one cycle/service."""

    __tablename__ = "assignments"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    cycle_id: Mapped[int] = mapped_column(ForeignKey("reading_cycles.id"), index=True)
    service_id: Mapped[int] = mapped_column(ForeignKey("services.id"), index=True)
    staff_id: Mapped[int] = mapped_column(ForeignKey("staff.id"), index=True)
    building_id: Mapped[int | None] = mapped_column(
        ForeignKey("buildings.id"),
        nullable=True,
        index=True,
    )
    start_date: Mapped[date]
    end_date: Mapped[date]
    note: Mapped[str | None] = mapped_column(String(500), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=lambda: datetime.now(UTC))
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Relationships
    cycle: Mapped["ReadingCycle"] = relationship()
    service: Mapped["UtilityService"] = relationship()
    staff: Mapped["Staff"] = relationship()
    building: Mapped["Building | None"] = relationship()
    coverage: Mapped[list["AssignmentUnit"]] = relationship(
        back_populates="assignment",
        cascade="all, delete-orphan",
        order_by="AssignmentUnit.id",
    )

    @property
    def unit_ids(self) -> list[int]:
        """Units materialized for this assignment at creation time."""
        return [row.unit_id for row in self.coverage]

    def get_is_completed(self) -> bool:
        return self.completed_at is not None

    def get_is_cancelled(self) -> bool:
        return self.cancelled_at is not None


class AssignmentUnit(Base):
    """One covered unit of an assignment.

    The cycle and service are copied from the assignment so the storage layer
    can refuse a second live coverage row for the same unit.
    """

    __tablename__ = "assignment_units"
    __table_args__ = (
        Index(
            "uq_live_unit_coverage",
            "cycle_id",
            "service_id",
            "unit_id",
            unique=True,
            sqlite_where=text("is_released = 0"),
            postgresql_where=text("is_released = false"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    assignment_id: Mapped[int] = mapped_column(ForeignKey("assignments.id"), index=True)
    cycle_id: Mapped[int] = mapped_column(ForeignKey("reading_cycles.id"))
    service_id: Mapped[int] = mapped_column(ForeignKey("services.id"))
    building_id: Mapped[int | None] = mapped_column(ForeignKey("buildings.id"), nullable=True)
    unit_id: Mapped[int] = mapped_column(ForeignKey("units.id"), index=True)
    is_released: Mapped[bool] = mapped_column(default=False)

    # Relationships
    assignment: Mapped["Assignment"] = relationship(back_populates="coverage")
    unit: Mapped["Unit"] = relationship()
