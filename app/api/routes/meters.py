"""Meter registry routes."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.schemas.assignment import UnitWithoutMeter
from app.schemas.meter import MeterCreate, MeterResponse
from app.schemas.reading import MeterReadingHistory, ReadingResponse
from app.services import meter as meter_service
from app.services.readings import get_readings_history

router = APIRouter(prefix="/meters", tags=["meters"])


@router.get("/", response_model=list[MeterResponse])
def list_meters(
    building_id: int | None = None,
    service_id: int | None = None,
    unit_id: int | None = None,
    active: bool | None = None,
    db: Session = Depends(get_db),
) -> list[MeterResponse]:
    """List meters, optionally filtered."""
    meters = meter_service.list_meters(db, building_id, service_id, unit_id, active)
    return [MeterResponse.model_validate(m) for m in meters]


@router.post("/", response_model=MeterResponse, status_code=status.HTTP_201_CREATED)
def create_meter(
    meter_data: MeterCreate,
    db: Session = Depends(get_db),
) -> MeterResponse:
    """Register a meter for a unit and service."""
    meter = meter_service.create_meter(
        db, meter_data.unit_id, meter_data.service_id, meter_data.meter_code
    )
    return MeterResponse.model_validate(meter)


@router.get("/missing", response_model=list[UnitWithoutMeter])
def list_units_without_meter(
    service_id: int = Query(..., description="Service to check"),
    building_id: int | None = None,
    db: Session = Depends(get_db),
) -> list[UnitWithoutMeter]:
    """List units that have no active meter for a service."""
    units = meter_service.list_units_without_meter(db, service_id, building_id)
    return [
        UnitWithoutMeter(unit_id=u.id, unit_code=u.code, building_id=u.building_id, floor=u.floor)
        for u in units
    ]


@router.post("/missing", response_model=list[MeterResponse], status_code=status.HTTP_201_CREATED)
def create_missing_meters(
    service_id: int = Query(..., description="Service to provision"),
    building_id: int | None = None,
    db: Session = Depends(get_db),
) -> list[MeterResponse]:
    """Create a meter for every unit lacking one."""
    meters = meter_service.create_missing_meters(db, service_id, building_id)
    return [MeterResponse.model_validate(m) for m in meters]


@router.get("/{meter_id}", response_model=MeterResponse)
def get_meter(
    meter_id: int,
    db: Session = Depends(get_db),
) -> MeterResponse:
    """Get a meter by ID."""
    return MeterResponse.model_validate(meter_service.get_meter(db, meter_id))


@router.post("/{meter_id}/deactivate", response_model=MeterResponse)
def deactivate_meter(
    meter_id: int,
    db: Session = Depends(get_db),
) -> MeterResponse:
    """Deactivate a meter."""
    return MeterResponse.model_validate(meter_service.deactivate_meter(db, meter_id))


@router.get("/{meter_id}/history", response_model=MeterReadingHistory)
def get_meter_reading_history(
    meter_id: int,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
) -> MeterReadingHistory:
    """Get reading history for a specific meter with pagination."""
    meter_service.get_meter(db, meter_id)
    readings, total = get_readings_history(db, meter_id, limit, offset)
    return MeterReadingHistory(
        meter_id=meter_id,
        readings=[ReadingResponse.model_validate(r) for r in readings],
        total=total,
        limit=limit,
        offset=offset,
    )
