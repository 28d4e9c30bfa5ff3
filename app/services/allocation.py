"""Assignment allocation: eligibility, conflict exclusion and materialized coverage.

An assignment's units are frozen when it is created. Coverage rows carry the
cycle and service so that the partial unique index on ``assignment_units``
rejects a unit covered twice; a race between two allocations therefore ends
in ``ConflictError`` for the loser rather than a double assignment.
"""

import logging
from collections import defaultdict
from datetime import date

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ConflictError, ValidationCode, ValidationError
from app.models.assignment import Assignment, AssignmentUnit
from app.models.building import Unit
from app.models.cycle import ReadingCycle
from app.models.service import UtilityService
from app.schemas.assignment import (
    AssignmentCreate,
    CycleUnassignedInfo,
    EligibleFloor,
    EligibleUnit,
    EligibleUnitsResponse,
    UnassignedFloor,
    UnitWithoutMeter,
)
from app.services import directory
from app.services.meter import get_meters_for_units

logger = logging.getLogger(__name__)


def get_covered_unit_ids(
    db: Session,
    cycle_id: int,
    service_id: int,
    unit_ids: list[int] | None = None,
) -> set[int]:
    """Get units already covered by a live assignment for the cycle and service."""
    query = db.query(AssignmentUnit.unit_id).filter(
        AssignmentUnit.cycle_id == cycle_id,
        AssignmentUnit.service_id == service_id,
        AssignmentUnit.is_released.is_(False),
    )
    if unit_ids is not None:
        query = query.filter(AssignmentUnit.unit_id.in_(unit_ids))
    return {row.unit_id for row in query.all()}


def compute_eligible_units(db: Session, building_id: int | None = None) -> list[Unit]:
    """Get occupied units of a building, or of every building.

    Meter existence does not matter: missing meters are created on first
    submission.
    """
    units = (
        directory.list_units(db, building_id)
        if building_id is not None
        else directory.list_all_units(db)
    )
    occupied = directory.get_occupied_unit_ids(db, [u.id for u in units])
    return [unit for unit in units if unit.id in occupied]


def get_available_units(
    db: Session,
    cycle_id: int,
    service_id: int,
    building_id: int | None = None,
) -> list[Unit]:
    """Eligible units minus those already covered for the cycle and service."""
    eligible = compute_eligible_units(db, building_id)
    covered = get_covered_unit_ids(db, cycle_id, service_id, [u.id for u in eligible])
    return [unit for unit in eligible if unit.id not in covered]


def group_units_by_floor(units: list[Unit]) -> dict[int, list[Unit]]:
    grouped: dict[int, list[Unit]] = defaultdict(list)
    for unit in units:
        grouped[unit.floor].append(unit)
    return dict(sorted(grouped.items()))


def get_eligible_units(
    db: Session,
    cycle_id: int,
    service_id: int,
    building_id: int,
) -> EligibleUnitsResponse:
    """Selectable units of a building grouped by floor."""
    directory.get_cycle(db, cycle_id)
    directory.get_building(db, building_id)
    available = get_available_units(db, cycle_id, service_id, building_id)
    meters = get_meters_for_units(db, [u.id for u in available], service_id)

    floors = [
        EligibleFloor(
            floor=floor,
            units=[
                EligibleUnit(id=u.id, code=u.code, floor=u.floor, has_meter=u.id in meters)
                for u in units
            ],
        )
        for floor, units in group_units_by_floor(available).items()
    ]
    return EligibleUnitsResponse(
        cycle_id=cycle_id,
        service_id=service_id,
        building_id=building_id,
        total=len(available),
        floors=floors,
    )


def _require_fields(data: AssignmentCreate) -> None:
    missing = [
        name
        for name in ("cycle_id", "service_id", "staff_id")
        if getattr(data, name) is None
    ]
    if missing:
        raise ValidationError(
            ValidationCode.MISSING_FIELD,
            f"Missing required field(s): {', '.join(missing)}",
            {"fields": missing},
        )


def _check_cycle_and_service(cycle: ReadingCycle, service: UtilityService) -> None:
    if not service.get_is_meterable():
        raise ValidationError(
            ValidationCode.SERVICE_NOT_METERED,
            f"Service '{service.code}' is inactive or does not use meters",
            {"service_id": service.id},
        )
    if not cycle.get_is_open():
        raise ValidationError(
            ValidationCode.CYCLE_NOT_OPEN,
            f"Reading cycle '{cycle.name}' is {cycle.status} and accepts no assignments",
            {"cycle_id": cycle.id},
        )
    if cycle.service_id is not None and cycle.service_id != service.id:
        raise ValidationError(
            ValidationCode.SERVICE_MISMATCH,
            f"Reading cycle '{cycle.name}' belongs to another service",
            {"cycle_id": cycle.id, "service_id": service.id},
        )


def default_end_date(start: date, cycle: ReadingCycle) -> date:
    """Due day of the start month, or the cycle end when that day is unusable."""
    try:
        due = start.replace(day=settings.ASSIGNMENT_DUE_DAY)
    except ValueError:
        return cycle.period_to
    if due < start:
        return cycle.period_to
    return min(due, cycle.period_to)


def resolve_dates(cycle: ReadingCycle, start: date | None, end: date | None) -> tuple[date, date]:
    """Apply date defaults and check both dates against the cycle window."""
    start = start or cycle.period_from
    if not cycle.contains(start):
        raise ValidationError(
            ValidationCode.DATE_OUT_OF_CYCLE,
            f"Start date {start} is outside the cycle {cycle.period_from} - {cycle.period_to}",
            {"field": "start_date"},
        )
    end = end or default_end_date(start, cycle)
    if end < start or end > cycle.period_to:
        raise ValidationError(
            ValidationCode.DATE_OUT_OF_CYCLE,
            f"End date {end} must be between {start} and {cycle.period_to}",
            {"field": "end_date"},
        )
    return start, end


def select_units(available: list[Unit], requested: list[int] | None) -> list[Unit]:
    """Pick the requested units out of the available ones, or take them all.

    Raises UNIT_ALREADY_ASSIGNED naming requested units that are not
    available (covered already, or not eligible).
    """
    if requested is None:
        return list(available)

    by_id = {unit.id: unit for unit in available}
    offending = [unit_id for unit_id in requested if unit_id not in by_id]
    if offending:
        raise ValidationError(
            ValidationCode.UNIT_ALREADY_ASSIGNED,
            f"Units not available for this cycle and service: {offending}",
            {"unit_ids": offending},
        )
    return [by_id[unit_id] for unit_id in requested]


def allocate_assignment(db: Session, data: AssignmentCreate) -> Assignment:
    """Create an assignment covering a frozen set of eligible, uncovered units."""
    _require_fields(data)

    cycle = directory.get_cycle(db, data.cycle_id)
    service = directory.get_service(db, data.service_id)
    directory.get_staff(db, data.staff_id)
    if data.building_id is not None:
        directory.get_building(db, data.building_id)

    _check_cycle_and_service(cycle, service)
    start, end = resolve_dates(cycle, data.start_date, data.end_date)

    available = get_available_units(db, cycle.id, service.id, data.building_id)
    selected = select_units(available, data.unit_ids)
    if not selected:
        raise ValidationError(
            ValidationCode.EMPTY_SELECTION,
            "No units to assign: select at least one unit that is not yet assigned",
            {"building_id": data.building_id},
        )

    assignment = Assignment(
        cycle_id=cycle.id,
        service_id=service.id,
        staff_id=data.staff_id,
        building_id=data.building_id,
        start_date=start,
        end_date=end,
        note=data.note,
    )
    assignment.coverage = [
        AssignmentUnit(
            cycle_id=cycle.id,
            service_id=service.id,
            building_id=unit.building_id,
            unit_id=unit.id,
        )
        for unit in selected
    ]
    db.add(assignment)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning(
            "Allocation conflict for cycle %s/service %s/building %s",
            data.cycle_id,
            data.service_id,
            data.building_id,
        )
        raise ConflictError(
            "Selection changed, please retry allocation",
            {"cycle_id": data.cycle_id, "service_id": data.service_id},
        ) from exc
    db.refresh(assignment)

    logger.info(
        "Allocated assignment %s: %d unit(s) to staff %s for cycle %s/service %s",
        assignment.id,
        len(selected),
        assignment.staff_id,
        cycle.id,
        service.code,
    )
    return assignment


def get_cycle_unassigned(db: Session, cycle_id: int, service_id: int) -> CycleUnassignedInfo:
    """Report eligible units of every building that no assignment covers yet."""
    directory.get_cycle(db, cycle_id)
    directory.get_service(db, service_id)

    available = get_available_units(db, cycle_id, service_id)
    meters = get_meters_for_units(db, [u.id for u in available], service_id)

    by_building: dict[int, list[Unit]] = defaultdict(list)
    for unit in available:
        by_building[unit.building_id].append(unit)

    floors: list[UnassignedFloor] = []
    for building_id in sorted(by_building):
        building = directory.get_building(db, building_id)
        for floor, units in group_units_by_floor(by_building[building_id]).items():
            floors.append(
                UnassignedFloor(
                    building_id=building.id,
                    building_code=building.code,
                    building_name=building.name,
                    floor=floor,
                    unit_codes=[u.code for u in units],
                )
            )

    missing = [
        UnitWithoutMeter(unit_id=u.id, unit_code=u.code, building_id=u.building_id, floor=u.floor)
        for u in available
        if u.id not in meters
    ]
    message = (
        "All eligible units are assigned"
        if not available
        else f"{len(available)} eligible unit(s) are not assigned yet"
    )
    return CycleUnassignedInfo(
        cycle_id=cycle_id,
        service_id=service_id,
        total_unassigned=len(available),
        floors=floors,
        missing_meter_units=missing,
        message=message,
    )
