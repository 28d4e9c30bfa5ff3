"""Seed script to populate the database with sample data."""

from datetime import date
from decimal import Decimal

from app.core.database import Base, SessionLocal, engine
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


def seed_database() -> None:
    """Seed the database with sample data."""
    Base.metadata.create_all(bind=engine)

    with SessionLocal() as db:
        # Check if data already exists
        if db.query(Building).first():
            print("Database already has data. Skipping seed.")
            return

        print("Seeding database...")

        water = UtilityService(code="WATER", name="Water", unit_label="m3")
        electric = UtilityService(code="ELEC", name="Electricity", unit_label="kWh")
        db.add_all([water, electric])

        readers = [
            Staff(username="anna", full_name="Anna Lind"),
            Staff(username="erik", full_name="Erik Berg"),
        ]
        db.add_all(readers)

        building = Building(code="A", name="Building A")
        db.add(building)
        db.flush()

        print(f"Created building: {building.name} (ID: {building.id})")

        # Three floors, four units each; every fourth unit is vacant
        units = []
        for floor in range(1, 4):
            for number in range(1, 5):
                unit = Unit(building_id=building.id, code=f"A-{floor}0{number}", floor=floor)
                db.add(unit)
                units.append(unit)
        db.flush()

        for index, unit in enumerate(units):
            occupied = index % 4 != 3
            db.add(
                Household(
                    unit_id=unit.id,
                    primary_resident_id=1000 + unit.id if occupied else None,
                    primary_resident_name=f"Resident {unit.code}" if occupied else None,
                    start_date=date(2023, 1, 1),
                )
            )

        # Water meters on the first two floors only; the rest are created on first reading
        for unit in units:
            if unit.floor > 2:
                continue
            db.add(
                Meter(
                    unit_id=unit.id,
                    service_id=water.id,
                    meter_code=f"{unit.code}-{water.code}",
                    installed_at=date(2023, 1, 1),
                    last_reading=Decimal("100") + unit.id,
                    last_reading_date=date(2023, 12, 31),
                )
            )

        cycle = ReadingCycle(
            name="2024-01 Water",
            service_id=water.id,
            period_from=date(2024, 1, 1),
            period_to=date(2024, 1, 31),
            status=CycleStatus.OPEN,
        )
        db.add(cycle)
        db.commit()

        print(f"Created {len(units)} units and 8 water meters")
        print("\nSeed data created successfully!")
        print(f"\nBuilding ID: {building.id}")
        print(f"Water service ID: {water.id}")
        print(f"Reading cycle ID: {cycle.id}")
        print(f"Staff IDs: {', '.join(str(s.id) for s in readers)}")
        print("\nAllocate with POST /api/assignments/ to start reading.")


if __name__ == "__main__":
    seed_database()
