"""Shared fixtures: in-memory database, API client and a small property directory."""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base, build_engine, get_db
from app.main import app
from app.models import (
    Building,
    CycleStatus,
    Household,
    Meter,
    ReadingCycle,
    Staff,
    Unit,
    UtilityService,
)


@pytest.fixture
def test_db():
    """Create an in-memory test database."""
    engine = build_engine("sqlite:///:memory:", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def client(test_db):
    """Create a test client with database override."""

    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


def _add_unit(
    db: Session,
    building: Building,
    code: str,
    floor: int,
    occupied: bool = True,
) -> Unit:
    unit = Unit(building_id=building.id, code=code, floor=floor)
    db.add(unit)
    db.flush()
    db.add(
        Household(
            unit_id=unit.id,
            primary_resident_id=unit.id * 10 if occupied else None,
            primary_resident_name=f"Resident {code}" if occupied else None,
            start_date=date(2023, 1, 1),
        )
    )
    return unit


@pytest.fixture
def directory(test_db):
    """Seed two buildings, services, staff and an open January water cycle.

    Building B1:
      floor 1: B1-101 (water meter, last reading 100), B1-102 (no meter)
      floor 2: B1-201 (water meter, last reading 50), B1-202 (vacant)
    Building B2:
      floor 1: B2-101 (no meter)
    """
    db = test_db
    water = UtilityService(code="WATER", name="Water", unit_label="m3")
    electric = UtilityService(code="ELEC", name="Electricity", unit_label="kWh")
    parking = UtilityService(code="PARK", name="Parking", requires_meter=False)
    alice = Staff(username="alice", full_name="Alice Reader")
    bob = Staff(username="bob", full_name="Bob Reader")
    b1 = Building(code="B1", name="Building One")
    b2 = Building(code="B2", name="Building Two")
    db.add_all([water, electric, parking, alice, bob, b1, b2])
    db.flush()

    u1 = _add_unit(db, b1, "B1-101", 1)
    u2 = _add_unit(db, b1, "B1-102", 1)
    u3 = _add_unit(db, b1, "B1-201", 2)
    u4 = _add_unit(db, b1, "B1-202", 2, occupied=False)
    u5 = _add_unit(db, b2, "B2-101", 1)
    db.flush()

    m1 = Meter(
        unit_id=u1.id,
        service_id=water.id,
        meter_code="B1-101-WATER",
        last_reading=Decimal("100"),
        last_reading_date=date(2023, 12, 31),
    )
    m3 = Meter(
        unit_id=u3.id,
        service_id=water.id,
        meter_code="B1-201-WATER",
        last_reading=Decimal("50"),
        last_reading_date=date(2023, 12, 31),
    )
    cycle = ReadingCycle(
        name="2024-01 Water",
        service_id=water.id,
        period_from=date(2024, 1, 1),
        period_to=date(2024, 1, 31),
        status=CycleStatus.OPEN,
    )
    closed_cycle = ReadingCycle(
        name="2023-12 Water",
        service_id=water.id,
        period_from=date(2023, 12, 1),
        period_to=date(2023, 12, 31),
        status=CycleStatus.CLOSED,
    )
    db.add_all([m1, m3, cycle, closed_cycle])
    db.commit()

    return SimpleNamespace(
        water=water.id,
        electric=electric.id,
        parking=parking.id,
        alice=alice.id,
        bob=bob.id,
        b1=b1.id,
        b2=b2.id,
        u1=u1.id,
        u2=u2.id,
        u3=u3.id,
        u4=u4.id,
        u5=u5.id,
        m1=m1.id,
        m3=m3.id,
        cycle=cycle.id,
        closed_cycle=closed_cycle.id,
    )
