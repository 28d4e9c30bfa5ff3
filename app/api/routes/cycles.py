"""Reading cycle coverage routes."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.schemas.assignment import CycleUnassignedInfo, EligibleUnitsResponse
from app.services import allocation

router = APIRouter(prefix="/cycles", tags=["reading-cycles"])


@router.get("/{cycle_id}/eligible-units", response_model=EligibleUnitsResponse)
def get_eligible_units(
    cycle_id: int,
    service_id: int = Query(..., description="Service being read"),
    building_id: int = Query(..., description="Building to allocate"),
    db: Session = Depends(get_db),
) -> EligibleUnitsResponse:
    """List units of a building that can still be assigned, grouped by floor."""
    return allocation.get_eligible_units(db, cycle_id, service_id, building_id)


@router.get("/{cycle_id}/unassigned", response_model=CycleUnassignedInfo)
def get_cycle_unassigned(
    cycle_id: int,
    service_id: int = Query(..., description="Service being read"),
    db: Session = Depends(get_db),
) -> CycleUnassignedInfo:
    """Report eligible units that no assignment of the cycle covers."""
    return allocation.get_cycle_unassigned(db, cycle_id, service_id)
