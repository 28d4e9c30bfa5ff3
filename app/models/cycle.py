"""ReadingCycle database model."""

from datetime import UTC, date, datetime

from sqlalchemy import ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base
from app.models.enums import CLOSED_CYCLE_STATUSES, CycleStatus


class ReadingCycle(Base):
    """Billing window during which readings for a service are collected."""

    __tablename__ = "reading_cycles"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(100))
    service_id: Mapped[int | None] = mapped_column(ForeignKey("services.id"), nullable=True)
    period_from: Mapped[date]
    period_to: Mapped[date]
    status: Mapped[CycleStatus] = mapped_column(String(20), default=CycleStatus.OPEN)
    description: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=lambda: datetime.now(UTC))

    def get_is_open(self) -> bool:
        """Check if the cycle still accepts new assignments."""
        return CycleStatus(self.status) not in CLOSED_CYCLE_STATUSES

    def contains(self, day: date) -> bool:
        return self.period_from <= day <= self.period_to
