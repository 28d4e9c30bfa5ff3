"""Enum definitions for reading cycles."""

from enum import Enum


class CycleStatus(str, Enum):
    """Lifecycle of a reading cycle."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CLOSED = "closed"
    CANCELLED = "cancelled"


# Cycles in these states no longer accept new assignments
CLOSED_CYCLE_STATUSES = frozenset(
    {CycleStatus.COMPLETED, CycleStatus.CLOSED, CycleStatus.CANCELLED}
)
