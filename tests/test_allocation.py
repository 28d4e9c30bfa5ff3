"""Tests for assignment allocation."""

from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.errors import ConflictError, ValidationCode, ValidationError
from app.models import AssignmentUnit, Household, Reading
from app.schemas.assignment import AssignmentCreate
from app.services import allocation
from app.services.allocation import allocate_assignment, default_end_date
from app.services.assignment import cancel_assignment, get_assignment
from app.services.directory import get_cycle


def _request(d, **overrides) -> AssignmentCreate:
    data = {
        "cycle_id": d.cycle,
        "service_id": d.water,
        "staff_id": d.alice,
        "building_id": d.b1,
    }
    data.update(overrides)
    return AssignmentCreate(**data)


class TestAllocateWholeBuilding:
    """Allocation without an explicit unit list."""

    def test_covers_all_occupied_units(self, test_db, directory) -> None:
        """Test that every occupied unit is covered, with or without a meter."""
        assignment = allocate_assignment(test_db, _request(directory))

        assert set(assignment.unit_ids) == {directory.u1, directory.u2, directory.u3}
        assert directory.u4 not in assignment.unit_ids  # vacant
        assert assignment.building_id == directory.b1

    def test_second_allocation_has_nothing_left(self, test_db, directory) -> None:
        """Test that a repeat allocation for the same building is an empty selection."""
        allocate_assignment(test_db, _request(directory))

        with pytest.raises(ValidationError) as exc_info:
            allocate_assignment(test_db, _request(directory, staff_id=directory.bob))
        assert exc_info.value.validation_code == ValidationCode.EMPTY_SELECTION

    def test_coverage_is_frozen_at_creation(self, test_db, directory) -> None:
        """Test that later occupancy changes do not alter an existing assignment."""
        assignment = allocate_assignment(test_db, _request(directory))

        household = test_db.query(Household).filter(Household.unit_id == directory.u1).one()
        household.end_date = date(2024, 1, 10)
        test_db.commit()

        reloaded = get_assignment(test_db, assignment.id)
        assert directory.u1 in reloaded.unit_ids
        assert len(reloaded.unit_ids) == 3

    def test_without_building_covers_every_building(self, test_db, directory) -> None:
        """Test that an assignment without a building covers available units everywhere."""
        allocate_assignment(test_db, _request(directory, unit_ids=[directory.u1]))

        assignment = allocate_assignment(
            test_db, _request(directory, building_id=None, staff_id=directory.bob)
        )
        assert set(assignment.unit_ids) == {directory.u2, directory.u3, directory.u5}
        buildings = {row.building_id for row in assignment.coverage}
        assert buildings == {directory.b1, directory.b2}


class TestAllocateSubsets:
    """Allocation with explicit unit lists."""

    def test_disjoint_subsets(self, test_db, directory) -> None:
        """Test that subsets allocated one after another never overlap."""
        first = allocate_assignment(test_db, _request(directory, unit_ids=[directory.u1]))
        second = allocate_assignment(
            test_db,
            _request(directory, staff_id=directory.bob, unit_ids=[directory.u2, directory.u3]),
        )

        assert first.unit_ids == [directory.u1]
        assert second.unit_ids == [directory.u2, directory.u3]
        assert not set(first.unit_ids) & set(second.unit_ids)
        with pytest.raises(ValidationError):
            allocate_assignment(test_db, _request(directory))

    def test_already_assigned_unit_rejected(self, test_db, directory) -> None:
        """Test that requesting a covered unit names the offending unit."""
        allocate_assignment(test_db, _request(directory, unit_ids=[directory.u1]))

        with pytest.raises(ValidationError) as exc_info:
            allocate_assignment(
                test_db,
                _request(directory, staff_id=directory.bob, unit_ids=[directory.u1, directory.u2]),
            )
        error = exc_info.value
        assert error.validation_code == ValidationCode.UNIT_ALREADY_ASSIGNED
        assert error.details["unit_ids"] == [directory.u1]

    def test_vacant_unit_rejected(self, test_db, directory) -> None:
        """Test that a unit without a household cannot be requested."""
        with pytest.raises(ValidationError) as exc_info:
            allocate_assignment(test_db, _request(directory, unit_ids=[directory.u4]))
        assert exc_info.value.validation_code == ValidationCode.UNIT_ALREADY_ASSIGNED
        assert exc_info.value.details["unit_ids"] == [directory.u4]

    def test_empty_unit_list_rejected(self, test_db, directory) -> None:
        """Test that an explicitly empty selection is refused."""
        with pytest.raises(ValidationError) as exc_info:
            allocate_assignment(test_db, _request(directory, unit_ids=[]))
        assert exc_info.value.validation_code == ValidationCode.EMPTY_SELECTION

    def test_duplicate_unit_ids_collapsed(self, test_db, directory) -> None:
        """Test that repeated IDs in the request are covered once."""
        assignment = allocate_assignment(
            test_db, _request(directory, unit_ids=[directory.u2, directory.u2])
        )
        assert assignment.unit_ids == [directory.u2]


class TestAllocationValidation:
    """Validation performed before anything is written."""

    def test_missing_fields(self, test_db, directory) -> None:
        """Test that missing cycle/service/staff are reported together."""
        with pytest.raises(ValidationError) as exc_info:
            allocate_assignment(test_db, AssignmentCreate(building_id=directory.b1))
        error = exc_info.value
        assert error.validation_code == ValidationCode.MISSING_FIELD
        assert error.details["fields"] == ["cycle_id", "service_id", "staff_id"]

    def test_start_date_outside_cycle(self, test_db, directory) -> None:
        """Test that a start date before the cycle is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            allocate_assignment(test_db, _request(directory, start_date=date(2023, 12, 20)))
        assert exc_info.value.validation_code == ValidationCode.DATE_OUT_OF_CYCLE

    def test_end_date_after_cycle(self, test_db, directory) -> None:
        """Test that an end date past the cycle is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            allocate_assignment(test_db, _request(directory, end_date=date(2024, 2, 5)))
        assert exc_info.value.validation_code == ValidationCode.DATE_OUT_OF_CYCLE

    def test_closed_cycle(self, test_db, directory) -> None:
        """Test that a closed cycle accepts no assignments."""
        with pytest.raises(ValidationError) as exc_info:
            allocate_assignment(test_db, _request(directory, cycle_id=directory.closed_cycle))
        assert exc_info.value.validation_code == ValidationCode.CYCLE_NOT_OPEN

    def test_service_without_meters(self, test_db, directory) -> None:
        """Test that services that do not use meters cannot be allocated."""
        with pytest.raises(ValidationError) as exc_info:
            allocate_assignment(test_db, _request(directory, service_id=directory.parking))
        assert exc_info.value.validation_code == ValidationCode.SERVICE_NOT_METERED

    def test_cycle_of_other_service(self, test_db, directory) -> None:
        """Test that a water cycle cannot be used for electricity."""
        with pytest.raises(ValidationError) as exc_info:
            allocate_assignment(test_db, _request(directory, service_id=directory.electric))
        assert exc_info.value.validation_code == ValidationCode.SERVICE_MISMATCH

    def test_nothing_written_on_failure(self, test_db, directory) -> None:
        """Test that a failed allocation leaves no coverage rows."""
        with pytest.raises(ValidationError):
            allocate_assignment(test_db, _request(directory, unit_ids=[directory.u4]))
        assert test_db.query(AssignmentUnit).count() == 0


class TestAssignmentDates:
    """Default start and end dates."""

    def test_defaults_to_cycle_start_and_due_day(self, test_db, directory) -> None:
        """Test that dates default to the cycle start and the 15th."""
        assignment = allocate_assignment(test_db, _request(directory))
        assert assignment.start_date == date(2024, 1, 1)
        assert assignment.end_date == date(2024, 1, 15)

    def test_due_day_already_passed(self, test_db, directory) -> None:
        """Test that a start after the due day ends with the cycle."""
        cycle = get_cycle(test_db, directory.cycle)
        assert default_end_date(date(2024, 1, 20), cycle) == date(2024, 1, 31)
        assert default_end_date(date(2024, 1, 15), cycle) == date(2024, 1, 15)


class TestAllocationConflicts:
    """The storage guard against double coverage."""

    def test_unique_index_rejects_second_live_row(self, test_db, directory) -> None:
        """Test that the database refuses two live rows for one unit."""
        assignment = allocate_assignment(test_db, _request(directory, unit_ids=[directory.u1]))
        test_db.add(
            AssignmentUnit(
                assignment_id=assignment.id,
                cycle_id=directory.cycle,
                service_id=directory.water,
                building_id=directory.b1,
                unit_id=directory.u1,
            )
        )
        with pytest.raises(IntegrityError):
            test_db.commit()
        test_db.rollback()

    def test_stale_read_becomes_conflict(self, test_db, directory, monkeypatch) -> None:
        """Test that an allocation racing on a stale coverage read gets ConflictError."""
        allocate_assignment(test_db, _request(directory, unit_ids=[directory.u1]))
        monkeypatch.setattr(allocation, "get_covered_unit_ids", lambda *args, **kwargs: set())

        with pytest.raises(ConflictError):
            allocate_assignment(
                test_db, _request(directory, staff_id=directory.bob, unit_ids=[directory.u1])
            )
        assert test_db.query(AssignmentUnit).count() == 1


class TestCancelAssignment:
    """Cancelling releases coverage."""

    def test_cancel_releases_units(self, test_db, directory) -> None:
        """Test that cancelled units can be allocated again."""
        assignment = allocate_assignment(test_db, _request(directory))
        cancel_assignment(test_db, assignment.id)

        again = allocate_assignment(test_db, _request(directory, staff_id=directory.bob))
        assert set(again.unit_ids) == set(assignment.unit_ids)

    def test_cancel_with_readings_refused(self, test_db, directory) -> None:
        """Test that an assignment with readings cannot be cancelled."""
        assignment = allocate_assignment(test_db, _request(directory))
        test_db.add(
            Reading(
                assignment_id=assignment.id,
                meter_id=directory.m1,
                cycle_id=directory.cycle,
                reading_date=date(2024, 1, 10),
                prev_index=100,
                curr_index=110,
            )
        )
        test_db.commit()

        with pytest.raises(ValidationError) as exc_info:
            cancel_assignment(test_db, assignment.id)
        assert exc_info.value.validation_code == ValidationCode.ASSIGNMENT_HAS_READINGS


class TestCoverageReports:
    """Eligible-unit and unassigned reports."""

    def test_eligible_units_grouped_by_floor(self, test_db, directory) -> None:
        """Test the per-floor listing of selectable units."""
        allocate_assignment(test_db, _request(directory, unit_ids=[directory.u2]))

        report = allocation.get_eligible_units(
            test_db, directory.cycle, directory.water, directory.b1
        )
        assert report.total == 2
        assert [f.floor for f in report.floors] == [1, 2]
        assert [u.id for u in report.floors[0].units] == [directory.u1]
        assert report.floors[0].units[0].has_meter is True

    def test_cycle_unassigned(self, test_db, directory) -> None:
        """Test the per-building gap report, including units lacking meters."""
        allocate_assignment(test_db, _request(directory, unit_ids=[directory.u1]))

        info = allocation.get_cycle_unassigned(test_db, directory.cycle, directory.water)
        assert info.total_unassigned == 3
        assert [(f.building_code, f.floor, f.unit_codes) for f in info.floors] == [
            ("B1", 1, ["B1-102"]),
            ("B1", 2, ["B1-201"]),
            ("B2", 1, ["B2-101"]),
        ]
        assert {u.unit_code for u in info.missing_meter_units} == {"B1-102", "B2-101"}
