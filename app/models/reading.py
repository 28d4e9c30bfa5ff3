"""Reading database model - the reading ledger."""

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base

if TYPE_CHECKING:
    from app.models.meter import Meter


class Reading(Base):
    """Committed meter index observed during an assignment.

    Rows are never updated; a correction is a newer row for the same meter.
    """

    __tablename__ = "meter_readings"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    assignment_id: Mapped[int] = mapped_column(ForeignKey("assignments.id"), index=True)
    meter_id: Mapped[int] = mapped_column(ForeignKey("meters.id"), index=True)
    cycle_id: Mapped[int] = mapped_column(ForeignKey("reading_cycles.id"), index=True)
    reading_date: Mapped[date] = mapped_column(index=True)
    prev_index: Mapped[Decimal] = mapped_column(Numeric(precision=12, scale=3))
    curr_index: Mapped[Decimal] = mapped_column(Numeric(precision=12, scale=3))
    note: Mapped[str | None] = mapped_column(String(500), nullable=True)
    reader_id: Mapped[int | None] = mapped_column(ForeignKey("staff.id"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        default=lambda: datetime.now(UTC),
        index=True,
    )  # When added to database

    # Relationships
    meter: Mapped["Meter"] = relationship(back_populates="readings")

    @property
    def consumption(self) -> Decimal:
        return self.curr_index - self.prev_index
