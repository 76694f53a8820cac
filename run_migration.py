#!/usr/bin/env python3
"""
Run database migration to add per-company job number counters.

Creates company_counters if missing and seeds each company's counter from
the highest job number already on its calendar, so allocation continues
where the old max+1 scheme left off.

Execute this script from the project root:
    python run_migration.py
"""

import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from pm_scheduler.database import engine
from pm_scheduler.models import CompanyCounter
from pm_scheduler.services.job_numbers import FIRST_JOB_NUMBER

backfill_sql = """
INSERT INTO company_counters (company_id, next_job_number)
SELECT c.id, COALESCE(MAX(a.job_number) + 1, :first_job_number)
FROM companies c
LEFT JOIN calendar_assignments a ON a.company_id = c.id
WHERE NOT EXISTS (
    SELECT 1 FROM company_counters cc WHERE cc.company_id = c.id
)
GROUP BY c.id
"""

indexes = [
    "CREATE UNIQUE INDEX IF NOT EXISTS ix_calendar_assignments_job_number ON calendar_assignments(company_id, job_number);",
    "CREATE INDEX IF NOT EXISTS ix_calendar_assignments_period ON calendar_assignments(company_id, year, month);",
]


def run_migration():
    print("Starting database migration...")

    print("Creating company_counters table...")
    CompanyCounter.__table__.create(bind=engine, checkfirst=True)
    print("✓ Table ready")

    with engine.connect() as conn:
        print("\nSeeding counters from existing job numbers...")
        try:
            result = conn.execute(text(backfill_sql), {"first_job_number": FIRST_JOB_NUMBER})
            conn.commit()
            print(f"✓ Seeded {result.rowcount} company counters")
        except SQLAlchemyError as e:
            print(f"Note: {e}")
            conn.rollback()

        print("\nCreating indexes...")
        for idx in indexes:
            try:
                conn.execute(text(idx))
                conn.commit()
            except SQLAlchemyError as e:
                # Duplicate job numbers from the old allocator block the unique index
                print(f"  Note: {e}")
                conn.rollback()
        print("✓ Indexes created")

    print("\n" + "="*50)
    print("Migration completed successfully!")
    print("Please restart your FastAPI server.")
    print("="*50)

if __name__ == "__main__":
    run_migration()
