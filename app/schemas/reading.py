"""Reading session and submission schemas."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, model_validator

from app.schemas.assignment import AssignmentResponse


class SessionSnapshot(BaseModel):
    """Current index values per unit as they were when a session was loaded.

    Passed back on submit; only rows whose value differs from the snapshot
    are written.
    """

    model_config = ConfigDict(frozen=True)

    assignment_id: int
    values: dict[int, Decimal | None]

    def value_for(self, unit_id: int) -> Decimal | None:
        return self.values.get(unit_id)

    def has_changed(self, unit_id: int, value: Decimal | None) -> bool:
        """Check if a value differs numerically from the loaded one."""
        original = self.values.get(unit_id)
        if original is None or value is None:
            return original is not value
        return Decimal(original) != Decimal(value)


class SessionRow(BaseModel):
    """One unit of an assignment as shown in the reading form."""

    unit_id: int
    unit_code: str
    floor: int
    meter_id: int | None
    meter_code: str | None
    has_meter: bool
    prev_index: Decimal | None  # None when the unit has no meter yet
    curr_index: Decimal | None
    note: str | None = None
    reading_id: int | None = None


class ReadingSession(BaseModel):
    """Reading form state of an assignment."""

    assignment: AssignmentResponse
    rows: list[SessionRow]
    snapshot: SessionSnapshot


class ReadingRowInput(BaseModel):
    """An edited row: addressed by unit or by meter."""

    unit_id: int | None = None
    meter_id: int | None = None
    curr_index: Decimal | None = None
    note: str | None = None

    @model_validator(mode="after")
    def check_row_target(self) -> "ReadingRowInput":
        """Ensure the row names a unit or a meter."""
        if self.unit_id is None and self.meter_id is None:
            raise ValueError("Each row needs a unit_id or a meter_id")
        return self


class SubmitReadingsRequest(BaseModel):
    """Schema for submitting a batch of readings for an assignment."""

    reading_date: date
    rows: list[ReadingRowInput]
    snapshot: SessionSnapshot | None = None


class RowResult(BaseModel):
    """Outcome of one submitted row. Failed rows keep their original input."""

    unit_id: int | None
    meter_id: int | None
    curr_index: Decimal | None
    note: str | None = None
    prev_index: Decimal | None = None
    reading_id: int | None = None
    error_code: str | None = None
    error: str | None = None


class ProgressResponse(BaseModel):
    """Completion counts of an assignment."""

    assignment_id: int
    units_total: int
    units_with_reading: int
    remaining: int
    progress_percentage: float


class SubmissionResult(BaseModel):
    """Batch outcome plus post-commit state."""

    committed: list[RowResult]
    failed: list[RowResult]
    progress: ProgressResponse
    snapshot: SessionSnapshot
    assignment_completed: bool = False


class ReadingResponse(BaseModel):
    """Schema for reading response."""

    id: int
    assignment_id: int
    meter_id: int
    cycle_id: int
    reading_date: date
    prev_index: Decimal
    curr_index: Decimal
    consumption: Decimal
    note: str | None
    reader_id: int | None
    created_at: datetime

    model_config = {"from_attributes": True}


class MeterReadingHistory(BaseModel):
    """Schema for paginated meter reading history."""

    meter_id: int
    readings: list[ReadingResponse]
    total: int
    limit: int
    offset: int
