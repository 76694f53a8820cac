"""
Per-company job number allocation.

Each company has one row in company_counters holding the next number to
issue. Allocation increments that row with a single UPDATE ... RETURNING
inside the caller's transaction, so concurrent creations for the same company
serialize on the row lock and can never receive the same number. The number
is only consumed if the caller commits.
"""
import logging

from sqlalchemy import func, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pm_scheduler.models import CalendarAssignment, CompanyCounter
from pm_scheduler.services.exceptions import JobNumberAllocationError

logger = logging.getLogger(__name__)

FIRST_JOB_NUMBER = 10000


def _highest_job_number(db: Session, company_id: int):
    return db.query(func.max(CalendarAssignment.job_number)).filter(
        CalendarAssignment.company_id == company_id
    ).scalar()


def _initial_value(db: Session, company_id: int) -> int:
    highest = _highest_job_number(db, company_id)
    return highest + 1 if highest is not None else FIRST_JOB_NUMBER


def _insert_counter_if_missing(db: Session, company_id: int):
    values = {"company_id": company_id, "next_job_number": _initial_value(db, company_id)}
    dialect = db.get_bind().dialect.name

    if dialect == "postgresql":
        stmt = postgresql.insert(CompanyCounter).values(**values).on_conflict_do_nothing(
            index_elements=["company_id"]
        )
    elif dialect == "sqlite":
        stmt = sqlite.insert(CompanyCounter).values(**values).on_conflict_do_nothing(
            index_elements=["company_id"]
        )
    else:
        exists = db.query(CompanyCounter.id).filter(CompanyCounter.company_id == company_id).first()
        if exists:
            return
        db.add(CompanyCounter(**values))
        db.flush()
        return

    db.execute(stmt)


def _increment(db: Session, company_id: int):
    stmt = (
        update(CompanyCounter)
        .where(CompanyCounter.company_id == company_id)
        .values(next_job_number=CompanyCounter.next_job_number + 1)
        .returning(CompanyCounter.next_job_number)
        .execution_options(synchronize_session=False)
    )
    return db.execute(stmt).scalar_one_or_none()


def _fallback_next_job_number(db: Session, company_id: int) -> int:
    logger.warning(
        f"Atomic job counter unavailable on dialect '{db.get_bind().dialect.name}', "
        f"falling back to max(job_number) + 1 for company {company_id}"
    )
    return _initial_value(db, company_id)


def supports_atomic_counter(db: Session) -> bool:
    return bool(getattr(db.get_bind().dialect, "update_returning", False))


def next_job_number(db: Session, company_id: int) -> int:
    """Allocate the next job number for a company.

    Must be called inside the transaction that inserts the assignment; the
    caller commits or rolls back both together.
    """
    if not supports_atomic_counter(db):
        try:
            return _fallback_next_job_number(db, company_id)
        except SQLAlchemyError as e:
            raise JobNumberAllocationError(f"Failed to allocate job number: {e}") from e

    try:
        incremented = _increment(db, company_id)
        if incremented is None:
            _insert_counter_if_missing(db, company_id)
            incremented = _increment(db, company_id)
    except SQLAlchemyError as e:
        logger.error(f"Job number allocation failed for company {company_id}: {e}")
        raise JobNumberAllocationError(f"Failed to allocate job number: {e}") from e

    if incremented is None:
        raise JobNumberAllocationError(f"No job counter available for company {company_id}")

    return incremented - 1

