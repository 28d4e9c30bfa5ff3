"""Meter Pydantic schemas for request/response validation."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, field_validator


class MeterCreate(BaseModel):
    """Schema for registering a meter. The code is derived when omitted."""

    unit_id: int
    service_id: int
    meter_code: str | None = None

    @field_validator("meter_code")
    @classmethod
    def validate_meter_code(cls, v: str | None) -> str | None:
        """Reject blank meter codes."""
        if v is not None and not v.strip():
            raise ValueError("Meter code cannot be empty")
        return v.strip() if v else v


class MeterResponse(BaseModel):
    """Schema for meter response."""

    id: int
    unit_id: int
    service_id: int
    meter_code: str
    is_active: bool
    installed_at: date | None
    removed_at: date | None
    last_reading: Decimal | None
    last_reading_date: date | None
    created_at: datetime

    model_config = {"from_attributes": True}
