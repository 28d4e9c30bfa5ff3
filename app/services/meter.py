"""Meter registry: lookup, find-or-create and last-reading bookkeeping.

At most one active meter exists per (unit, service). The partial unique index
on the ``meters`` table enforces it; the functions here turn index violations
into either a re-read of the winning row (find-or-create) or a
``ConflictError`` (explicit create).
"""

import logging
from datetime import date
from decimal import Decimal

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import ConflictError, NotFoundError
from app.models.building import Unit
from app.models.meter import Meter
from app.models.service import UtilityService
from app.services import directory

logger = logging.getLogger(__name__)


def build_meter_code(unit: Unit, service: UtilityService) -> str:
    """Synthesize a meter code from the unit code and service code."""
    return f"{unit.code}{settings.METER_CODE_SEPARATOR}{service.code}"


def get_meter(db: Session, meter_id: int) -> Meter:
    """Get a meter by ID."""
    meter = db.get(Meter, meter_id)
    if not meter:
        raise NotFoundError(f"Meter {meter_id} not found")
    return meter


def find_meter(db: Session, unit_id: int, service_id: int) -> Meter | None:
    """Get the active meter of a unit for a service, if any."""
    return (
        db.query(Meter)
        .filter(
            Meter.unit_id == unit_id,
            Meter.service_id == service_id,
            Meter.is_active.is_(True),
        )
        .first()
    )


def list_meters(
    db: Session,
    building_id: int | None = None,
    service_id: int | None = None,
    unit_id: int | None = None,
    active: bool | None = None,
) -> list[Meter]:
    """List meters matching all given filters."""
    query = db.query(Meter)
    if building_id is not None:
        query = query.join(Unit, Meter.unit_id == Unit.id).filter(Unit.building_id == building_id)
    if service_id is not None:
        query = query.filter(Meter.service_id == service_id)
    if unit_id is not None:
        query = query.filter(Meter.unit_id == unit_id)
    if active is not None:
        query = query.filter(Meter.is_active.is_(active))
    return query.order_by(Meter.meter_code).all()


def get_meters_for_units(db: Session, unit_ids: list[int], service_id: int) -> dict[int, Meter]:
    """Get the active meters of several units for a service, keyed by unit ID."""
    if not unit_ids:
        return {}
    meters = (
        db.query(Meter)
        .filter(
            Meter.unit_id.in_(unit_ids),
            Meter.service_id == service_id,
            Meter.is_active.is_(True),
        )
        .all()
    )
    return {meter.unit_id: meter for meter in meters}


def _insert_meter(db: Session, unit_id: int, service_id: int, meter_code: str) -> Meter:
    meter = Meter(
        unit_id=unit_id,
        service_id=service_id,
        meter_code=meter_code,
        installed_at=date.today(),
    )
    db.add(meter)
    db.commit()
    db.refresh(meter)
    return meter


def find_or_create_meter(db: Session, unit_id: int, service_id: int, meter_code: str) -> Meter:
    """Return the active meter for (unit, service), creating it if none exists.

    Commits the new meter. If a concurrent writer created the meter between
    the lookup and the insert, the unique index rejects ours and the winner
    is returned instead.
    """
    existing = find_meter(db, unit_id, service_id)
    if existing:
        return existing

    try:
        meter = _insert_meter(db, unit_id, service_id, meter_code)
    except IntegrityError as exc:
        db.rollback()
        winner = find_meter(db, unit_id, service_id)
        if winner is None:
            raise ConflictError(
                f"Could not create meter '{meter_code}', please retry",
                {"unit_id": unit_id, "service_id": service_id},
            ) from exc
        logger.info("Meter for unit %s/service %s created concurrently, reusing", unit_id, service_id)
        return winner

    logger.info("Created meter %s (%s) for unit %s", meter.id, meter_code, unit_id)
    return meter


def create_meter(
    db: Session,
    unit_id: int,
    service_id: int,
    meter_code: str | None = None,
) -> Meter:
    """Explicitly register a meter; fails if the unit already has one for the service."""
    unit = directory.get_unit(db, unit_id)
    service = directory.get_service(db, service_id)
    code = meter_code or build_meter_code(unit, service)

    if find_meter(db, unit_id, service_id):
        raise ConflictError(
            f"Unit '{unit.code}' already has an active {service.code} meter",
            {"unit_id": unit_id, "service_id": service_id},
        )

    try:
        meter = _insert_meter(db, unit_id, service_id, code)
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError(
            f"Unit '{unit.code}' already has an active {service.code} meter",
            {"unit_id": unit_id, "service_id": service_id},
        ) from exc
    logger.info("Registered meter %s (%s) for unit %s", meter.id, code, unit_id)
    return meter


def deactivate_meter(db: Session, meter_id: int) -> Meter:
    """Take a meter out of service, freeing the (unit, service) slot."""
    meter = get_meter(db, meter_id)
    if meter.is_active:
        meter.is_active = False
        meter.removed_at = date.today()
        db.commit()
        db.refresh(meter)
    return meter


def update_last_reading(db: Session, meter_id: int, value: Decimal, reading_date: date) -> bool:
    """Advance the meter's last known index unless a newer one is already stored.

    Compare-and-set: the UPDATE only matches when the stored reading date is
    not newer than ``reading_date``. Does not commit. Returns True if applied.
    """
    result = db.execute(
        update(Meter)
        .where(
            Meter.id == meter_id,
            or_(
                Meter.last_reading_date.is_(None),
                Meter.last_reading_date <= reading_date,
            ),
        )
        .values(last_reading=value, last_reading_date=reading_date)
        .execution_options(synchronize_session="fetch")
    )
    applied = result.rowcount == 1
    if not applied:
        logger.warning(
            "Kept newer last reading on meter %s; reading dated %s is older",
            meter_id,
            reading_date,
        )
    return applied


def list_units_without_meter(
    db: Session,
    service_id: int,
    building_id: int | None = None,
) -> list[Unit]:
    """Get units that have no active meter for a service."""
    units = (
        directory.list_units(db, building_id)
        if building_id is not None
        else directory.list_all_units(db)
    )
    metered = get_meters_for_units(db, [u.id for u in units], service_id)
    return [unit for unit in units if unit.id not in metered]


def create_missing_meters(
    db: Session,
    service_id: int,
    building_id: int | None = None,
) -> list[Meter]:
    """Provision a meter for every unit lacking one for the service."""
    service = directory.get_service(db, service_id)
    created: list[Meter] = []
    for unit in list_units_without_meter(db, service_id, building_id):
        created.append(
            find_or_create_meter(db, unit.id, service_id, build_meter_code(unit, service))
        )
    return created
