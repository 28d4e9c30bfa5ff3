"""Read-only access to directory data: buildings, units, households, services, staff, cycles.

Every lookup goes through ``guard`` so that storage failures reach callers as
``DependencyError`` instead of raw SQLAlchemy errors.
"""

import logging
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import DependencyError, NotFoundError
from app.models.building import Building, Unit
from app.models.cycle import ReadingCycle
from app.models.household import Household
from app.models.service import UtilityService
from app.models.staff import Staff

logger = logging.getLogger(__name__)

T = TypeVar("T")


def guard(what: str, fn: Callable[[], T]) -> T:
    """Run a storage call, raising DependencyError if the database fails."""
    try:
        return fn()
    except SQLAlchemyError as exc:
        logger.error("Lookup failed (%s): %s", what, exc)
        raise DependencyError(f"Database unavailable while loading {what}") from exc


def list_buildings(db: Session) -> list[Building]:
    """Get all buildings ordered by code."""
    return guard("buildings", lambda: db.query(Building).order_by(Building.code).all())


def get_building(db: Session, building_id: int) -> Building:
    building = guard("building", lambda: db.get(Building, building_id))
    if not building:
        raise NotFoundError(f"Building {building_id} not found")
    return building


def list_units(db: Session, building_id: int) -> list[Unit]:
    """Get all units of a building ordered by floor and code."""
    return guard(
        "units",
        lambda: db.query(Unit)
        .filter(Unit.building_id == building_id)
        .order_by(Unit.floor, Unit.code)
        .all(),
    )


def list_all_units(db: Session) -> list[Unit]:
    return guard(
        "units",
        lambda: db.query(Unit).order_by(Unit.building_id, Unit.floor, Unit.code).all(),
    )


def get_unit(db: Session, unit_id: int) -> Unit:
    unit = guard("unit", lambda: db.get(Unit, unit_id))
    if not unit:
        raise NotFoundError(f"Unit {unit_id} not found")
    return unit


def get_units(db: Session, unit_ids: list[int]) -> dict[int, Unit]:
    """Get units by ID, keyed by ID. Unknown IDs are simply absent."""
    if not unit_ids:
        return {}
    units = guard("units", lambda: db.query(Unit).filter(Unit.id.in_(unit_ids)).all())
    return {unit.id: unit for unit in units}


def get_occupied_unit_ids(db: Session, unit_ids: list[int]) -> set[int]:
    """Get the subset of units whose current household has a primary resident."""
    if not unit_ids:
        return set()
    households = guard(
        "households",
        lambda: db.query(Household)
        .filter(
            Household.unit_id.in_(unit_ids),
            Household.primary_resident_id.is_not(None),
        )
        .all(),
    )
    return {h.unit_id for h in households if h.get_is_current()}


def get_household_status(db: Session, unit_id: int) -> bool:
    """Check if a unit is occupied."""
    return unit_id in get_occupied_unit_ids(db, [unit_id])


def list_services(db: Session) -> list[UtilityService]:
    return guard("services", lambda: db.query(UtilityService).order_by(UtilityService.code).all())


def list_meterable_services(db: Session) -> list[UtilityService]:
    """Get services that take part in reading allocation."""
    return [service for service in list_services(db) if service.get_is_meterable()]


def get_service(db: Session, service_id: int) -> UtilityService:
    service = guard("service", lambda: db.get(UtilityService, service_id))
    if not service:
        raise NotFoundError(f"Service {service_id} not found")
    return service


def get_staff(db: Session, staff_id: int) -> Staff:
    staff = guard("staff", lambda: db.get(Staff, staff_id))
    if not staff:
        raise NotFoundError(f"Staff member {staff_id} not found")
    return staff


def get_cycle(db: Session, cycle_id: int) -> ReadingCycle:
    cycle = guard("reading cycle", lambda: db.get(ReadingCycle, cycle_id))
    if not cycle:
        raise NotFoundError(f"Reading cycle {cycle_id} not found")
    return cycle
