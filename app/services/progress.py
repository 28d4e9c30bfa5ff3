"""Assignment progress read-model."""

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.models.assignment import Assignment
from app.models.meter import Meter
from app.models.reading import Reading
from app.schemas.reading import ProgressResponse
from app.services.assignment import get_assignment


def count_units_with_reading(db: Session, assignment: Assignment) -> int:
    """Count covered units that have at least one reading on this assignment."""
    unit_ids = assignment.unit_ids
    if not unit_ids:
        return 0
    return (
        db.query(func.count(func.distinct(Meter.unit_id)))
        .select_from(Reading)
        .join(Meter, Meter.id == Reading.meter_id)
        .filter(
            Reading.assignment_id == assignment.id,
            Meter.unit_id.in_(unit_ids),
        )
        .scalar()
        or 0
    )


def build_progress(assignment_id: int, units_total: int, units_with_reading: int) -> ProgressResponse:
    percentage = round(units_with_reading * 100 / units_total, 2) if units_total else 0.0
    return ProgressResponse(
        assignment_id=assignment_id,
        units_total=units_total,
        units_with_reading=units_with_reading,
        remaining=units_total - units_with_reading,
        progress_percentage=percentage,
    )


def get_progress(db: Session, assignment_id: int) -> ProgressResponse:
    """Get (units total, units with a committed reading) for an assignment."""
    assignment = get_assignment(db, assignment_id)
    return build_progress(
        assignment.id,
        len(assignment.unit_ids),
        count_units_with_reading(db, assignment),
    )
