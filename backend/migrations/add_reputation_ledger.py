"""
Migration: Add Reputation Ledger table.

Creates the append-only reputation_events table and adds the reputation
columns to reporters on databases created before the ledger existed.

Core principle: an event row is the only record that a reputation delta
was applied. Rows are never updated or deleted.
"""
from sqlalchemy import create_engine, text
import os

# Use same DB URL pattern as main app
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{os.getenv('USER', 'postgres')}@localhost:5432/station_pulse"
)


def table_exists(conn, table_name: str) -> bool:
    """Check if a table exists in the database."""
    result = conn.execute(text("""
        SELECT EXISTS (
            SELECT FROM information_schema.tables
            WHERE table_name = :table_name
        )
    """), {"table_name": table_name})
    return result.fetchone()[0]


def column_exists(conn, table_name: str, column_name: str) -> bool:
    """Check if a column exists on a table."""
    result = conn.execute(text("""
        SELECT EXISTS (
            SELECT FROM information_schema.columns
            WHERE table_name = :table_name AND column_name = :column_name
        )
    """), {"table_name": table_name, "column_name": column_name})
    return result.fetchone()[0]


def apply_migration(conn) -> bool:
    """
    Create the reputation ledger and reporter reputation columns.

    Returns False without changes when the reporters table is missing.
    """
    if not table_exists(conn, "reporters"):
        print("reporters table does not exist - run init_db() first")
        return False

    # =================================================================
    # reporters.reputation_score / reputation_level
    # =================================================================
    if not column_exists(conn, "reporters", "reputation_score"):
        conn.execute(text("""
            ALTER TABLE reporters ADD COLUMN reputation_score INTEGER NOT NULL DEFAULT 0
        """))
        print("Added reporters.reputation_score")
    else:
        print("reporters.reputation_score already exists")

    if not column_exists(conn, "reporters", "reputation_level"):
        conn.execute(text("""
            ALTER TABLE reporters ADD COLUMN reputation_level VARCHAR(20) NOT NULL DEFAULT 'NEW'
        """))
        print("Added reporters.reputation_level")
    else:
        print("reporters.reputation_level already exists")

    # =================================================================
    # reputation_events
    # =================================================================
    if table_exists(conn, "reputation_events"):
        print("reputation_events table already exists")
    else:
        conn.execute(text("""
            CREATE TABLE reputation_events (
                id VARCHAR(36) PRIMARY KEY,
                reporter_id VARCHAR(36) NOT NULL REFERENCES reporters(id),
                event_type VARCHAR(50) NOT NULL,
                station_scope INTEGER,
                reason_scope VARCHAR(50),
                delta INTEGER NOT NULL,
                created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
        """))
        conn.execute(text("""
            CREATE INDEX ix_reputation_events_reporter_id ON reputation_events(reporter_id)
        """))
        conn.execute(text("""
            CREATE INDEX idx_reputation_events_key ON reputation_events(
                reporter_id, event_type, station_scope, reason_scope, created_at
            )
        """))
        print("Created reputation_events table")

    conn.commit()
    return True


def run_migration():
    """Run the migration against DATABASE_URL."""
    engine = create_engine(DATABASE_URL)

    with engine.connect() as conn:
        if apply_migration(conn):
            print("\nReputation ledger migration complete!")


if __name__ == "__main__":
    run_migration()
