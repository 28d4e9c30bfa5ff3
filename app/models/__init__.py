"""Database models."""

from app.models.assignment import Assignment, AssignmentUnit
from app.models.building import Building, Unit
from app.models.cycle import ReadingCycle
from app.models.enums import CycleStatus
from app.models.household import Household
from app.models.meter import Meter
from app.models.reading import Reading
from app.models.service import UtilityService
from app.models.staff import Staff

__all__ = [
    "Assignment",
    "AssignmentUnit",
    "Building",
    "CycleStatus",
    "Household",
    "Meter",
    "Reading",
    "ReadingCycle",
    "Staff",
    "Unit",
    "UtilityService",
]
