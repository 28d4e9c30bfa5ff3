"""Reading ledger queries."""

from sqlalchemy.orm import Session

from app.models.reading import Reading
from app.services.assignment import get_assignment


def get_readings_by_assignment(db: Session, assignment_id: int) -> list[Reading]:
    """Get every reading recorded on an assignment, oldest first."""
    get_assignment(db, assignment_id)
    return (
        db.query(Reading)
        .filter(Reading.assignment_id == assignment_id)
        .order_by(Reading.id)
        .all()
    )


def get_readings_history(
    db: Session,
    meter_id: int,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Reading], int]:
    """Get reading history for a specific meter with pagination."""
    query = db.query(Reading).filter(Reading.meter_id == meter_id)
    total = query.count()
    readings = (
        query.order_by(Reading.reading_date.desc(), Reading.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return readings, total
