"""Utility service database model (directory data)."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class UtilityService(Base):
    """A billable utility such as water or electricity."""

    __tablename__ = "services"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    code: Mapped[str] = mapped_column(String(20), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(100))
    unit_label: Mapped[str | None] = mapped_column(String(20), nullable=True)  # m3, kWh
    requires_meter: Mapped[bool] = mapped_column(default=True)
    is_active: Mapped[bool] = mapped_column(default=True)

    def get_is_meterable(self) -> bool:
        """Check if the service takes part in reading allocation."""
        return self.is_active and self.requires_meter
