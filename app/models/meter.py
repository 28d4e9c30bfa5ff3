"""Meter database model."""

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import ForeignKey, Index, Numeric, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base

if TYPE_CHECKING:
    from app.models.building import Unit
    from app.models.reading import Reading
    from app.models.service import UtilityService


class Meter(Base):
    """Counter for one service in one unit, holding its last committed index."""

    __tablename__ = "meters"
    __table_args__ = (
        # At most one active meter per unit and service
        Index(
            "uq_active_meter_unit_service",
            "unit_id",
            "service_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active = true"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    unit_id: Mapped[int] = mapped_column(ForeignKey("units.id"), index=True)
    service_id: Mapped[int] = mapped_column(ForeignKey("services.id"), index=True)
    meter_code: Mapped[str] = mapped_column(String(100), index=True)
    is_active: Mapped[bool] = mapped_column(default=True)
    installed_at: Mapped[date | None] = mapped_column(nullable=True)
    removed_at: Mapped[date | None] = mapped_column(nullable=True)

    # Last committed index
    last_reading: Mapped[Decimal | None] = mapped_column(
        Numeric(precision=12, scale=3),
        nullable=True,
    )
    last_reading_date: Mapped[date | None] = mapped_column(nullable=True)

    created_at: Mapped[datetime] = mapped_column(default=lambda: datetime.now(UTC))

    # Relationships
    unit: Mapped["Unit"] = relationship(back_populates="meters")
    service: Mapped["UtilityService"] = relationship()
    readings: Mapped[list["Reading"]] = relationship(back_populates="meter")
