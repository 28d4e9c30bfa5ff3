"""Assignment Pydantic schemas for request/response validation."""

from datetime import date, datetime

from pydantic import BaseModel, field_validator


class AssignmentCreate(BaseModel):
    """Schema for allocating a reading assignment.

    Required IDs are optional here so that a missing one is reported by the
    allocation service as a ``missing_field`` validation error.
    """

    cycle_id: int | None = None
    service_id: int | None = None
    staff_id: int | None = None
    building_id: int | None = None
    unit_ids: list[int] | None = None
    start_date: date | None = None
    end_date: date | None = None
    note: str | None = None

    @field_validator("unit_ids")
    @classmethod
    def dedupe_unit_ids(cls, v: list[int] | None) -> list[int] | None:
        """Drop repeated unit IDs while keeping the requested order."""
        if v is None:
            return v
        return list(dict.fromkeys(v))


class AssignmentResponse(BaseModel):
    """Schema for assignment response."""

    id: int
    cycle_id: int
    service_id: int
    staff_id: int
    building_id: int | None
    unit_ids: list[int]
    start_date: date
    end_date: date
    note: str | None
    created_at: datetime
    completed_at: datetime | None
    cancelled_at: datetime | None

    model_config = {"from_attributes": True}


class EligibleUnit(BaseModel):
    """A unit that can still be put on an assignment."""

    id: int
    code: str
    floor: int
    has_meter: bool


class EligibleFloor(BaseModel):
    """Eligible units of one floor."""

    floor: int
    units: list[EligibleUnit]


class EligibleUnitsResponse(BaseModel):
    """Eligible, not yet covered units of a building grouped by floor."""

    cycle_id: int
    service_id: int
    building_id: int
    total: int
    floors: list[EligibleFloor]


class UnassignedFloor(BaseModel):
    """Uncovered eligible units of one building floor."""

    building_id: int
    building_code: str
    building_name: str
    floor: int
    unit_codes: list[str]


class UnitWithoutMeter(BaseModel):
    """Unit lacking an active meter for a service."""

    unit_id: int
    unit_code: str
    building_id: int
    floor: int


class CycleUnassignedInfo(BaseModel):
    """Coverage gaps of a cycle for one service."""

    cycle_id: int
    service_id: int
    total_unassigned: int
    floors: list[UnassignedFloor]
    missing_meter_units: list[UnitWithoutMeter]
    message: str
