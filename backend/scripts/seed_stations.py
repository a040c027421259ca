#!/usr/bin/env python3
"""
Demo Data Seed Script
Creates demo stations and reporters for local development.

Usage:
    python -m scripts.seed_stations [station_count] [reporter_count]

Example:
    python -m scripts.seed_stations 5 10
"""
import sys
import os
from uuid import uuid4

# Add the parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy.orm import Session
from stationpulse.database import SessionLocal, engine, Base
from stationpulse.models.db_models import ReporterDB, StationDB, ReputationLevel
from stationpulse.services.reputation.reputation_ledger import reputation_level_for, TRUSTED_MIN_SCORE


CITIES = ["Muscat", "Sohar", "Salalah", "Nizwa", "Sur"]


def seed(station_count: int, reporter_count: int) -> bool:
    """Create demo stations and reporters. The first reporter starts TRUSTED."""
    # Ensure tables exist
    Base.metadata.create_all(bind=engine)

    db: Session = SessionLocal()
    try:
        for i in range(station_count):
            db.add(StationDB(
                name=f"Demo Station {i + 1}",
                city=CITIES[i % len(CITIES)],
            ))

        for i in range(reporter_count):
            score = TRUSTED_MIN_SCORE if i == 0 else 0
            db.add(ReporterDB(
                id=str(uuid4()),
                display_name=f"reporter-{i + 1}",
                reputation_score=score,
                reputation_level=reputation_level_for(score),
            ))

        db.commit()

        print(f"Seeded {station_count} stations and {reporter_count} reporters")
        print(f"  First reporter level: {ReputationLevel.TRUSTED.value if reporter_count else '-'}")
        return True

    except Exception as e:
        print(f"Error seeding data: {e}")
        db.rollback()
        return False
    finally:
        db.close()


def main():
    if len(sys.argv) > 3:
        print(__doc__)
        sys.exit(1)

    try:
        station_count = int(sys.argv[1]) if len(sys.argv) > 1 else 5
        reporter_count = int(sys.argv[2]) if len(sys.argv) > 2 else 10
    except ValueError:
        print("Error: counts must be integers.")
        sys.exit(1)

    if station_count < 0 or reporter_count < 0:
        print("Error: counts must be non-negative.")
        sys.exit(1)

    success = seed(station_count, reporter_count)
    sys.exit(0 if success else 1)


if __name__ == "__main__":
    main()
