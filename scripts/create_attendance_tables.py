"""
Create the attendance tables in the database if they do not exist.

Usage:
    python scripts/create_attendance_tables.py
"""
import sys
import os

# Add parent directory to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from sqlalchemy import inspect
from app.db import engine, Base
from app.models import models  # noqa: F401  registers the tables on Base.metadata


def table_exists(engine, table_name: str) -> bool:
    """Check if a table exists in the database"""
    inspector = inspect(engine)
    return table_name in inspector.get_table_names()


def create_attendance_tables() -> bool:
    """Create every missing table, reporting each one"""
    print("[CREATE] Checking attendance tables...")

    for table_name, table in Base.metadata.tables.items():
        if table_exists(engine, table_name):
            print(f"[SKIP] Table '{table_name}' already exists")
            continue
        print(f"[CREATE] Creating table '{table_name}'...")
        try:
            table.create(engine, checkfirst=True)
            print(f"[OK] Table '{table_name}' created successfully")
        except Exception as e:
            print(f"[ERROR] Error creating table '{table_name}': {e}")
            return False

    return True


def main():
    # Ensure local SQLite directory exists
    if engine.url.get_backend_name() == "sqlite" and engine.url.database:
        db_dir = os.path.dirname(engine.url.database)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
    ok = create_attendance_tables()
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
