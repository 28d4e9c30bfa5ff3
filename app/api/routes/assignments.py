"""Assignment routes: allocation, reading sessions, submission and progress."""

from decimal import Decimal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.schemas.assignment import AssignmentCreate, AssignmentResponse
from app.schemas.meter import MeterResponse
from app.schemas.reading import (
    ProgressResponse,
    ReadingResponse,
    ReadingSession,
    RowResult,
    SubmissionResult,
    SubmitReadingsRequest,
)
from app.services import allocation, assignment as assignment_service, submission
from app.services.progress import get_progress
from app.services.reading_session import load_reading_session
from app.services.readings import get_readings_by_assignment

router = APIRouter(prefix="/assignments", tags=["assignments"])


@router.post("/", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
def allocate_assignment(
    data: AssignmentCreate,
    db: Session = Depends(get_db),
) -> AssignmentResponse:
    """Allocate eligible, unassigned units to a staff member.

    Without ``unit_ids`` every available unit of the building (or of all
    buildings) is covered, frozen at creation time.
    """
    assignment = allocation.allocate_assignment(db, data)
    return AssignmentResponse.model_validate(assignment)


@router.get("/cycle/{cycle_id}", response_model=list[AssignmentResponse])
def list_assignments_by_cycle(
    cycle_id: int,
    service_id: int | None = None,
    include_cancelled: bool = False,
    db: Session = Depends(get_db),
) -> list[AssignmentResponse]:
    """List the assignments of a reading cycle."""
    assignments = assignment_service.list_assignments_by_cycle(
        db, cycle_id, service_id, include_cancelled
    )
    return [AssignmentResponse.model_validate(a) for a in assignments]


@router.get("/staff/{staff_id}", response_model=list[AssignmentResponse])
def list_assignments_by_staff(
    staff_id: int,
    active_only: bool = False,
    db: Session = Depends(get_db),
) -> list[AssignmentResponse]:
    """List the assignments of a staff member."""
    assignments = assignment_service.list_assignments_by_staff(db, staff_id, active_only)
    return [AssignmentResponse.model_validate(a) for a in assignments]


@router.get("/{assignment_id}", response_model=AssignmentResponse)
def get_assignment(
    assignment_id: int,
    db: Session = Depends(get_db),
) -> AssignmentResponse:
    """Get an assignment by ID."""
    return AssignmentResponse.model_validate(
        assignment_service.get_assignment(db, assignment_id)
    )


@router.post("/{assignment_id}/complete", response_model=AssignmentResponse)
def complete_assignment(
    assignment_id: int,
    db: Session = Depends(get_db),
) -> AssignmentResponse:
    """Close an assignment."""
    return AssignmentResponse.model_validate(
        assignment_service.complete_assignment(db, assignment_id)
    )


@router.post("/{assignment_id}/cancel", response_model=AssignmentResponse)
def cancel_assignment(
    assignment_id: int,
    db: Session = Depends(get_db),
) -> AssignmentResponse:
    """Cancel an assignment without readings and release its units."""
    return AssignmentResponse.model_validate(
        assignment_service.cancel_assignment(db, assignment_id)
    )


@router.get("/{assignment_id}/meters", response_model=list[MeterResponse])
def get_assignment_meters(
    assignment_id: int,
    db: Session = Depends(get_db),
) -> list[MeterResponse]:
    """List the meters of the units an assignment covers."""
    meters = assignment_service.get_assignment_meters(db, assignment_id)
    return [MeterResponse.model_validate(m) for m in meters]


@router.get("/{assignment_id}/session", response_model=ReadingSession)
def get_reading_session(
    assignment_id: int,
    db: Session = Depends(get_db),
) -> ReadingSession:
    """Load the reading form of an assignment with its snapshot."""
    return load_reading_session(db, assignment_id)


@router.post("/{assignment_id}/readings", response_model=SubmissionResult)
def submit_readings(
    assignment_id: int,
    data: SubmitReadingsRequest,
    db: Session = Depends(get_db),
) -> SubmissionResult:
    """Submit edited rows; only rows that changed since the snapshot are written.

    Row failures do not fail the request: they are listed under ``failed``.
    """
    return submission.submit_readings(
        db, assignment_id, data.reading_date, data.rows, data.snapshot
    )


@router.get("/{assignment_id}/readings", response_model=list[ReadingResponse])
def list_assignment_readings(
    assignment_id: int,
    db: Session = Depends(get_db),
) -> list[ReadingResponse]:
    """List all readings recorded on an assignment."""
    readings = get_readings_by_assignment(db, assignment_id)
    return [ReadingResponse.model_validate(r) for r in readings]


@router.get("/{assignment_id}/readings/check", response_model=RowResult)
def check_reading_value(
    assignment_id: int,
    unit_id: int = Query(..., description="Unit being edited"),
    curr_index: Decimal = Query(..., description="Candidate current index"),
    db: Session = Depends(get_db),
) -> RowResult:
    """Validate one edited value without storing it."""
    return submission.check_reading_value(db, assignment_id, unit_id, curr_index)


@router.get("/{assignment_id}/progress", response_model=ProgressResponse)
def get_assignment_progress(
    assignment_id: int,
    db: Session = Depends(get_db),
) -> ProgressResponse:
    """Get how many covered units already have a reading."""
    return get_progress(db, assignment_id)
