#!/usr/bin/env python3
"""
Full database reset - drops all scheduling tables and recreates them.
WARNING: This destroys ALL data including companies, clients and calendar history.

Execute from the project root:
    python flush_db.py
"""

import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from pm_scheduler.database import engine, Base
from pm_scheduler import models  # noqa: F401  registers tables with Base


def flush_database():
    print("=" * 60)
    print("FULL DATABASE RESET")
    print("=" * 60)
    print("\nWARNING: This will DELETE ALL DATA in the database!")
    print("This includes: companies, technicians, clients, assignments, job counters.\n")

    confirm = input("Type 'YES' to confirm full database reset: ")
    if confirm != "YES":
        print("Aborted. No changes made.")
        return

    print("\nDropping all tables...")
    Base.metadata.drop_all(bind=engine)
    print("✓ All tables dropped")

    print("\nRecreating all tables...")
    Base.metadata.create_all(bind=engine)
    for table in Base.metadata.sorted_tables:
        print(f"  Created {table.name}")
    print("✓ All tables created")

    print("\n" + "=" * 60)
    print("DATABASE RESET COMPLETE!")
    print("=" * 60)
    print("\nPlease restart your FastAPI server.")


if __name__ == "__main__":
    flush_database()
