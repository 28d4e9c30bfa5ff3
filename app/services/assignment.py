"""Assignment lookup and lifecycle: completion and cancellation."""

import logging
from datetime import UTC, datetime

from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, ValidationCode, ValidationError
from app.models.assignment import Assignment, AssignmentUnit
from app.models.meter import Meter
from app.models.reading import Reading
from app.services.directory import guard

logger = logging.getLogger(__name__)


def get_assignment(db: Session, assignment_id: int) -> Assignment:
    """Get an assignment by ID."""
    assignment = guard("assignment", lambda: db.get(Assignment, assignment_id))
    if not assignment:
        raise NotFoundError(f"Assignment {assignment_id} not found")
    return assignment


def list_assignments_by_cycle(
    db: Session,
    cycle_id: int,
    service_id: int | None = None,
    include_cancelled: bool = False,
) -> list[Assignment]:
    """Get the assignments of a reading cycle."""
    query = db.query(Assignment).filter(Assignment.cycle_id == cycle_id)
    if service_id is not None:
        query = query.filter(Assignment.service_id == service_id)
    if not include_cancelled:
        query = query.filter(Assignment.cancelled_at.is_(None))
    return query.order_by(Assignment.id).all()


def list_assignments_by_staff(
    db: Session,
    staff_id: int,
    active_only: bool = False,
) -> list[Assignment]:
    """Get the assignments of a staff member, optionally only open ones."""
    query = db.query(Assignment).filter(Assignment.staff_id == staff_id)
    if active_only:
        query = query.filter(
            Assignment.completed_at.is_(None),
            Assignment.cancelled_at.is_(None),
        )
    return query.order_by(Assignment.start_date.desc(), Assignment.id.desc()).all()


def ensure_open(assignment: Assignment) -> None:
    """Reject work on a cancelled assignment."""
    if assignment.get_is_cancelled():
        raise ValidationError(
            ValidationCode.ASSIGNMENT_CLOSED,
            f"Assignment {assignment.id} was cancelled",
            {"assignment_id": assignment.id},
        )


def complete_assignment(db: Session, assignment_id: int) -> Assignment:
    """Mark an assignment complete. Completing twice keeps the first timestamp."""
    assignment = get_assignment(db, assignment_id)
    ensure_open(assignment)
    if assignment.completed_at is None:
        assignment.completed_at = datetime.now(UTC)
        db.commit()
        db.refresh(assignment)
        logger.info("Assignment %s completed", assignment.id)
    return assignment


def count_readings(db: Session, assignment_id: int) -> int:
    return db.query(Reading).filter(Reading.assignment_id == assignment_id).count()


def cancel_assignment(db: Session, assignment_id: int) -> Assignment:
    """Supersede an assignment without readings, releasing its units."""
    assignment = get_assignment(db, assignment_id)
    if assignment.get_is_cancelled():
        return assignment
    if count_readings(db, assignment_id):
        raise ValidationError(
            ValidationCode.ASSIGNMENT_HAS_READINGS,
            f"Assignment {assignment_id} already has readings and cannot be cancelled",
            {"assignment_id": assignment_id},
        )

    assignment.cancelled_at = datetime.now(UTC)
    for row in assignment.coverage:
        row.is_released = True
    db.commit()
    db.refresh(assignment)
    logger.info("Assignment %s cancelled, %d unit(s) released", assignment.id, len(assignment.coverage))
    return assignment


def get_assignment_meters(db: Session, assignment_id: int) -> list[Meter]:
    """Get the active meters of the units an assignment covers."""
    assignment = get_assignment(db, assignment_id)
    if not assignment.unit_ids:
        return []
    return (
        db.query(Meter)
        .filter(
            Meter.unit_id.in_(assignment.unit_ids),
            Meter.service_id == assignment.service_id,
            Meter.is_active.is_(True),
        )
        .order_by(Meter.meter_code)
        .all()
    )


def get_meters_for_staff_cycle(db: Session, staff_id: int, cycle_id: int) -> list[Meter]:
    """Get the meters of every unit a staff member covers in a cycle."""
    return (
        db.query(Meter)
        .join(
            AssignmentUnit,
            (AssignmentUnit.unit_id == Meter.unit_id)
            & (AssignmentUnit.service_id == Meter.service_id),
        )
        .join(Assignment, Assignment.id == AssignmentUnit.assignment_id)
        .filter(
            Assignment.staff_id == staff_id,
            Assignment.cycle_id == cycle_id,
            Assignment.cancelled_at.is_(None),
            Meter.is_active.is_(True),
        )
        .distinct()
        .order_by(Meter.meter_code)
        .all()
    )
