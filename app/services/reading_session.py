"""Reading session loader: rebuilds the reading form of an assignment."""

from decimal import Decimal

from sqlalchemy.orm import Session

from app.models.assignment import Assignment
from app.models.building import Unit
from app.models.meter import Meter
from app.models.reading import Reading
from app.schemas.assignment import AssignmentResponse
from app.schemas.reading import ReadingSession, SessionRow, SessionSnapshot
from app.services import directory
from app.services.assignment import get_assignment, get_meters_for_staff_cycle
from app.services.meter import get_meters_for_units


def get_meter_pool(db: Session, assignment: Assignment) -> dict[int, Meter]:
    """Meters of the assignment's units, keyed by unit ID.

    Starts from the meters of everything the staff member covers in the cycle
    and falls back to the registry for units outside that pool.
    """
    pool = {
        meter.unit_id: meter
        for meter in get_meters_for_staff_cycle(db, assignment.staff_id, assignment.cycle_id)
        if meter.service_id == assignment.service_id
    }
    missing = [unit_id for unit_id in assignment.unit_ids if unit_id not in pool]
    pool.update(get_meters_for_units(db, missing, assignment.service_id))
    return pool


def get_latest_assignment_readings(
    db: Session,
    assignment_id: int,
    meter_ids: list[int],
) -> dict[int, Reading]:
    """Latest reading per meter recorded on this assignment (newest row wins)."""
    if not meter_ids:
        return {}
    readings = (
        db.query(Reading)
        .filter(
            Reading.assignment_id == assignment_id,
            Reading.meter_id.in_(meter_ids),
        )
        .order_by(Reading.id)
        .all()
    )
    return {reading.meter_id: reading for reading in readings}


def build_session_row(unit: Unit, meter: Meter | None, reading: Reading | None) -> SessionRow:
    if meter is None:
        return SessionRow(
            unit_id=unit.id,
            unit_code=unit.code,
            floor=unit.floor,
            meter_id=None,
            meter_code=None,
            has_meter=False,
            prev_index=None,
            curr_index=None,
        )
    if reading is not None:
        return SessionRow(
            unit_id=unit.id,
            unit_code=unit.code,
            floor=unit.floor,
            meter_id=meter.id,
            meter_code=meter.meter_code,
            has_meter=True,
            prev_index=reading.prev_index,
            curr_index=reading.curr_index,
            note=reading.note,
            reading_id=reading.id,
        )
    return SessionRow(
        unit_id=unit.id,
        unit_code=unit.code,
        floor=unit.floor,
        meter_id=meter.id,
        meter_code=meter.meter_code,
        has_meter=True,
        prev_index=meter.last_reading if meter.last_reading is not None else Decimal("0"),
        curr_index=None,
    )


def load_reading_session(db: Session, assignment_id: int) -> ReadingSession:
    """Build one row per covered unit plus the snapshot of initial values."""
    assignment = get_assignment(db, assignment_id)
    pool = get_meter_pool(db, assignment)
    units = directory.get_units(db, assignment.unit_ids)
    readings = get_latest_assignment_readings(db, assignment.id, [m.id for m in pool.values()])

    rows: list[SessionRow] = []
    for unit_id in assignment.unit_ids:
        unit = units.get(unit_id)
        if unit is None:
            continue
        meter = pool.get(unit_id)
        reading = readings.get(meter.id) if meter else None
        rows.append(build_session_row(unit, meter, reading))
    rows.sort(key=lambda row: (row.floor, row.unit_code))

    snapshot = SessionSnapshot(
        assignment_id=assignment.id,
        values={unit_id: None for unit_id in assignment.unit_ids}
        | {row.unit_id: row.curr_index for row in rows},
    )
    return ReadingSession(
        assignment=AssignmentResponse.model_validate(assignment),
        rows=rows,
        snapshot=snapshot,
    )
