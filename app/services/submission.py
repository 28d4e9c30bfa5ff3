"""Index reading validation and submission.

A submission is planned as a pure function of the session snapshot and the
edited rows (``plan_submission``): blank rows and rows equal to the snapshot
drop out, and so do rows equal to the stored readings, so resubmitting an
unedited form or replaying a request writes nothing. Each planned row
is then committed in its own transaction; a failing row is rolled back and
reported while its siblings carry on.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (
    DependencyError,
    ServiceError,
    ValidationCode,
    ValidationError,
)
from app.models.assignment import Assignment
from app.models.building import Unit
from app.models.meter import Meter
from app.models.reading import Reading
from app.models.service import UtilityService
from app.schemas.reading import (
    ReadingRowInput,
    RowResult,
    SessionSnapshot,
    SubmissionResult,
)
from app.services import directory
from app.services.assignment import complete_assignment, ensure_open, get_assignment
from app.services.meter import (
    build_meter_code,
    find_meter,
    find_or_create_meter,
    update_last_reading,
)
from app.services.progress import get_progress
from app.services.reading_session import get_meter_pool, load_reading_session

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass(frozen=True)
class PlannedRow:
    """A changed, non-blank row resolved to its unit."""

    unit_id: int
    curr_index: Decimal
    note: str | None
    source: ReadingRowInput


@dataclass
class SubmissionPlan:
    rows: list[PlannedRow] = field(default_factory=list)
    rejected: list[RowResult] = field(default_factory=list)


def failed_row(row: ReadingRowInput, error: ServiceError) -> RowResult:
    """Report a row failure, keeping the row's original input."""
    return RowResult(
        unit_id=row.unit_id,
        meter_id=row.meter_id,
        curr_index=row.curr_index,
        note=row.note,
        error_code=error.code,
        error=error.message,
    )


def plan_submission(
    snapshot: SessionSnapshot,
    rows: list[ReadingRowInput],
    meter_units: Mapping[int, int],
    stored: SessionSnapshot | None = None,
) -> SubmissionPlan:
    """Select the rows that must be written.

    ``meter_units`` maps meter IDs of the assignment's service to their unit,
    for rows addressed by meter. Rows naming something outside the snapshot
    are rejected; a later row for the same unit replaces an earlier one.
    A row equal to either the caller's snapshot or the ``stored`` values is
    unchanged, so replaying a request with its load-time snapshot writes
    nothing.
    """
    plan = SubmissionPlan()
    changed: dict[int, PlannedRow] = {}

    for row in rows:
        unit_id = row.unit_id
        if row.meter_id is not None:
            meter_unit = meter_units.get(row.meter_id)
            if meter_unit is None or (unit_id is not None and unit_id != meter_unit):
                unit_id = None
            else:
                unit_id = meter_unit

        if unit_id is None or unit_id not in snapshot.values:
            plan.rejected.append(
                failed_row(
                    row,
                    ValidationError(
                        ValidationCode.UNKNOWN_ROW,
                        "Row does not belong to this assignment",
                    ),
                )
            )
            continue

        # Blank means "not read this round"
        if row.curr_index is None:
            continue
        if not snapshot.has_changed(unit_id, row.curr_index) or (
            stored is not None and not stored.has_changed(unit_id, row.curr_index)
        ):
            changed.pop(unit_id, None)
            continue
        changed[unit_id] = PlannedRow(
            unit_id=unit_id,
            curr_index=row.curr_index,
            note=row.note,
            source=row,
        )

    plan.rows = list(changed.values())
    return plan


def validate_index(curr_index: Decimal, prev_index: Decimal) -> None:
    """Check a reported index against the effective previous index."""
    if curr_index < 0:
        raise ValidationError(
            ValidationCode.NEGATIVE_INDEX,
            f"Index cannot be negative ({curr_index})",
            {"curr_index": str(curr_index)},
        )
    if curr_index <= prev_index:
        raise ValidationError(
            ValidationCode.NON_MONOTONIC_INDEX,
            f"Current index must be greater than the previous index ({prev_index})",
            {"curr_index": str(curr_index), "prev_index": str(prev_index)},
        )


def effective_prev_index(db: Session, meter: Meter | None, assignment_id: int) -> Decimal:
    """Index a new reading on this meter must exceed.

    A re-read on the same assignment must exceed what preceded the earlier
    value, so the assignment's own latest reading supplies its prev_index.
    A newer reading from another assignment overrides that with its
    curr_index. Without readings, the meter's last reading, else zero.
    """
    if meter is None:
        return ZERO

    own = (
        db.query(Reading)
        .filter(Reading.meter_id == meter.id, Reading.assignment_id == assignment_id)
        .order_by(Reading.id.desc())
        .first()
    )
    latest = (
        db.query(Reading)
        .filter(Reading.meter_id == meter.id)
        .order_by(Reading.reading_date.desc(), Reading.id.desc())
        .first()
    )

    if own is not None:
        if (
            latest is not None
            and latest.assignment_id != assignment_id
            and (latest.reading_date, latest.id) > (own.reading_date, own.id)
        ):
            return latest.curr_index
        return own.prev_index
    if latest is not None:
        return latest.curr_index
    if meter.last_reading is not None:
        return meter.last_reading
    return ZERO


class MeterResolver:
    """Per-batch meter lookup with memoized find-or-create per unit."""

    def __init__(
        self,
        db: Session,
        service: UtilityService,
        pool: dict[int, Meter],
        units: dict[int, Unit],
    ) -> None:
        self.db = db
        self.service = service
        self.units = units
        self._meters: dict[int, Meter] = dict(pool)

    def lookup(self, unit_id: int) -> Meter | None:
        """Find the unit's meter in the batch cache, then in the registry."""
        meter = self._meters.get(unit_id)
        if meter is None:
            meter = find_meter(self.db, unit_id, self.service.id)
            if meter is not None:
                self._meters[unit_id] = meter
        return meter

    def provision(self, unit_id: int) -> Meter:
        """Find or create the unit's meter; at most one creation per unit and batch."""
        meter = self.lookup(unit_id)
        if meter is None:
            unit = self.units.get(unit_id) or directory.get_unit(self.db, unit_id)
            meter = find_or_create_meter(
                self.db,
                unit_id,
                self.service.id,
                build_meter_code(unit, self.service),
            )
            self._meters[unit_id] = meter
        return meter


def commit_row(
    db: Session,
    assignment: Assignment,
    resolver: MeterResolver,
    row: PlannedRow,
    reading_date: date,
) -> RowResult:
    """Validate and persist one row. Raises on failure; the caller rolls back."""
    meter = resolver.lookup(row.unit_id)
    prev_index = effective_prev_index(db, meter, assignment.id)
    validate_index(row.curr_index, prev_index)

    if meter is None:
        meter = resolver.provision(row.unit_id)
        # Another writer may have created the meter, with readings, meanwhile
        prev_index = effective_prev_index(db, meter, assignment.id)
        validate_index(row.curr_index, prev_index)

    reading = Reading(
        assignment_id=assignment.id,
        meter_id=meter.id,
        cycle_id=assignment.cycle_id,
        reading_date=reading_date,
        prev_index=prev_index,
        curr_index=row.curr_index,
        note=row.note,
        reader_id=assignment.staff_id,
    )
    db.add(reading)
    db.flush()
    update_last_reading(db, meter.id, row.curr_index, reading_date)
    db.commit()

    return RowResult(
        unit_id=row.unit_id,
        meter_id=reading.meter_id,
        curr_index=row.curr_index,
        note=row.note,
        prev_index=prev_index,
        reading_id=reading.id,
    )


def get_meter_units(db: Session, assignment: Assignment, meter_ids: list[int]) -> dict[int, int]:
    """Map meter IDs of the assignment's service to their units."""
    if not meter_ids:
        return {}
    meters = (
        db.query(Meter)
        .filter(Meter.id.in_(meter_ids), Meter.service_id == assignment.service_id)
        .all()
    )
    return {meter.id: meter.unit_id for meter in meters}


def submit_readings(
    db: Session,
    assignment_id: int,
    reading_date: date,
    rows: list[ReadingRowInput],
    snapshot: SessionSnapshot | None = None,
) -> SubmissionResult:
    """Validate and commit the changed rows of a reading form.

    Without a snapshot, the current stored state is used as the baseline.
    Returns per-row outcomes together with the reloaded progress and a fresh
    snapshot to send with the next submission.
    """
    assignment = get_assignment(db, assignment_id)
    ensure_open(assignment)

    stored = load_reading_session(db, assignment_id).snapshot
    if snapshot is None:
        snapshot = stored
    elif snapshot.assignment_id != assignment_id:
        raise ValidationError(
            ValidationCode.UNKNOWN_ROW,
            "Snapshot belongs to another assignment",
            {"assignment_id": snapshot.assignment_id},
        )

    meter_ids = [row.meter_id for row in rows if row.meter_id is not None]
    plan = plan_submission(snapshot, rows, get_meter_units(db, assignment, meter_ids), stored)

    committed: list[RowResult] = []
    failed: list[RowResult] = list(plan.rejected)

    if plan.rows:
        service = directory.get_service(db, assignment.service_id)
        units = directory.get_units(db, [row.unit_id for row in plan.rows])
        resolver = MeterResolver(db, service, get_meter_pool(db, assignment), units)

        for row in plan.rows:
            try:
                committed.append(commit_row(db, assignment, resolver, row, reading_date))
            except ServiceError as exc:
                db.rollback()
                failed.append(failed_row(row.source, exc))
            except SQLAlchemyError as exc:
                db.rollback()
                logger.error("Storing reading for unit %s failed: %s", row.unit_id, exc)
                failed.append(
                    failed_row(row.source, DependencyError("Storage unavailable, please retry"))
                )

    logger.info(
        "Assignment %s submission: %d committed, %d failed, %d skipped",
        assignment_id,
        len(committed),
        len(failed),
        len(rows) - len(committed) - len(failed),
    )

    progress = get_progress(db, assignment_id)
    completed = False
    if (
        committed
        and settings.AUTO_COMPLETE_ASSIGNMENTS
        and progress.units_total
        and progress.remaining == 0
        and not get_assignment(db, assignment_id).get_is_completed()
    ):
        complete_assignment(db, assignment_id)
        completed = True

    return SubmissionResult(
        committed=committed,
        failed=failed,
        progress=progress,
        snapshot=load_reading_session(db, assignment_id).snapshot,
        assignment_completed=completed,
    )


def check_reading_value(
    db: Session,
    assignment_id: int,
    unit_id: int,
    curr_index: Decimal,
) -> RowResult:
    """Validate one edited value without storing it."""
    assignment = get_assignment(db, assignment_id)
    row = ReadingRowInput(unit_id=unit_id, curr_index=curr_index)
    if unit_id not in assignment.unit_ids:
        return failed_row(
            row,
            ValidationError(ValidationCode.UNKNOWN_ROW, "Row does not belong to this assignment"),
        )

    meter = find_meter(db, unit_id, assignment.service_id)
    prev_index = effective_prev_index(db, meter, assignment.id)
    try:
        validate_index(curr_index, prev_index)
    except ValidationError as exc:
        result = failed_row(row, exc)
        result.prev_index = prev_index
        return result
    return RowResult(
        unit_id=unit_id,
        meter_id=meter.id if meter else None,
        curr_index=curr_index,
        prev_index=prev_index,
    )
