"""
Calendar assignment store.

Every operation is scoped by company_id and validates that referenced
clients and technicians belong to that company before mutating anything.

Assignment lifecycle (all transitions operator driven):
    Unscheduled (day is None) -> Scheduled (day set) -> Completed
    Completed -> Scheduled (uncomplete), Scheduled -> Unscheduled (clear day)
"""
import calendar
import logging
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from pm_scheduler.models import CalendarAssignment, Client, MaintenanceRecord, Technician
from pm_scheduler.services.due_dates import DUE_DAY
from pm_scheduler.services.exceptions import (
    AssignmentNotFoundError,
    JobNumberAllocationError,
    ValidationError,
)
from pm_scheduler.services.job_numbers import next_job_number
from pm_scheduler.utils.technician_ids import coerce_technician_ids

logger = logging.getLogger(__name__)

ACTION_CREATE = "ASSIGNMENT_CREATE"
ACTION_UPDATE = "ASSIGNMENT_UPDATE"
ACTION_DELETE = "ASSIGNMENT_DELETE"

UPDATABLE_FIELDS = {
    "day",
    "scheduled_date",
    "scheduled_hour",
    "auto_due_date",
    "completed",
    "assigned_technician_ids",
    "completion_notes",
}


# ============ Validation helpers ============

def _require_client(db: Session, company_id: int, client_id: int) -> Client:
    client = db.query(Client).filter(
        Client.id == client_id,
        Client.company_id == company_id
    ).first()
    if not client:
        raise ValidationError(f"Client {client_id} does not belong to company {company_id}")
    return client


def _require_technicians(db: Session, company_id: int, technician_ids: Iterable[int]) -> set:
    ids = coerce_technician_ids(list(technician_ids or []))
    if not ids:
        return ids

    found = {
        row.id for row in db.query(Technician.id).filter(
            Technician.id.in_(ids),
            Technician.company_id == company_id
        ).all()
    }
    missing = ids - found
    if missing:
        raise ValidationError(
            f"Technician(s) {sorted(missing)} do not belong to company {company_id}"
        )
    return ids


def _validate_period(year: int, month: int, day: Optional[int], hour: Optional[int]):
    if not 1 <= month <= 12:
        raise ValidationError(f"Invalid month: {month}")
    if day is not None:
        last_day = calendar.monthrange(year, month)[1]
        if not 1 <= day <= last_day:
            raise ValidationError(f"Invalid day {day} for {year}-{month:02d}")
    if hour is not None and not 0 <= hour <= 23:
        raise ValidationError(f"Invalid scheduled hour: {hour}")


def _derive_scheduled_date(year: int, month: int, day: Optional[int]) -> date:
    return date(year, month, day if day is not None else DUE_DAY)


# ============ CRUD ============

def get(db: Session, company_id: int, assignment_id: int) -> CalendarAssignment:
    assignment = db.query(CalendarAssignment).filter(
        CalendarAssignment.id == assignment_id,
        CalendarAssignment.company_id == company_id
    ).first()
    if not assignment:
        raise AssignmentNotFoundError(assignment_id)
    return assignment


def find_for_client_period(db: Session, company_id: int, client_id: int, year: int, month: int) -> Optional[CalendarAssignment]:
    return db.query(CalendarAssignment).filter(
        CalendarAssignment.company_id == company_id,
        CalendarAssignment.client_id == client_id,
        CalendarAssignment.year == year,
        CalendarAssignment.month == month
    ).order_by(CalendarAssignment.job_number).first()


def create(
    db: Session,
    company_id: int,
    client_id: int,
    year: int,
    month: int,
    day: Optional[int] = None,
    scheduled_hour: Optional[int] = None,
    technician_ids: Iterable[int] = (),
    scheduled_date: Optional[date] = None,
) -> CalendarAssignment:
    """Place a client on the schedule for year/month and allocate its job number.

    An existing assignment for the same client and month is not checked here.
    """
    _validate_period(year, month, day, scheduled_hour)
    _require_client(db, company_id, client_id)
    technicians = _require_technicians(db, company_id, technician_ids)

    auto_due_date = scheduled_date is None
    if scheduled_date is None:
        scheduled_date = _derive_scheduled_date(year, month, day)

    try:
        job_number = next_job_number(db, company_id)
        assignment = CalendarAssignment(
            company_id=company_id,
            client_id=client_id,
            job_number=job_number,
            assigned_technician_ids=technicians,
            year=year,
            month=month,
            day=day,
            scheduled_date=scheduled_date,
            scheduled_hour=scheduled_hour,
            auto_due_date=auto_due_date,
            completed=False,
            completion_notes=None,
        )
        db.add(assignment)
        db.commit()
    except JobNumberAllocationError:
        db.rollback()
        raise
    except IntegrityError as e:
        db.rollback()
        logger.error(f"Duplicate job number while creating assignment for company {company_id}: {e}")
        raise JobNumberAllocationError("Job number already taken, retry the creation") from e

    db.refresh(assignment)
    logger.info(
        "Assignment created",
        extra={
            "action": ACTION_CREATE,
            "company_id": company_id,
            "assignment_id": assignment.id,
            "job_number": assignment.job_number,
        },
    )
    return assignment


def _find_record(db: Session, assignment: CalendarAssignment, due_date: date) -> Optional[MaintenanceRecord]:
    return db.query(MaintenanceRecord).filter(
        MaintenanceRecord.company_id == assignment.company_id,
        MaintenanceRecord.client_id == assignment.client_id,
        MaintenanceRecord.due_date == due_date
    ).first()


def _sync_completion_record(
    db: Session,
    assignment: CalendarAssignment,
    previous_due: date,
    completed_at: datetime,
    newly_completed: bool = False,
):
    """Mirror the completion flag onto the client's maintenance record for this cycle.

    The record is keyed by the scheduled date the assignment had before the
    update, so a reschedule moves it and an un-complete clears it even when
    the date changed since completion.
    """
    record = _find_record(db, assignment, previous_due)
    target = None
    if assignment.scheduled_date != previous_due:
        target = _find_record(db, assignment, assignment.scheduled_date)

    if not assignment.completed:
        if record:
            record.completed_at = None
        return

    if record is not None and record.completed_at is not None and not newly_completed:
        completed_at = record.completed_at

    if target is not None:
        # Another record already holds the new date; complete that one instead
        if newly_completed or target.completed_at is None:
            target.completed_at = completed_at
        if record:
            record.completed_at = None
    elif record:
        record.due_date = assignment.scheduled_date
        record.completed_at = completed_at
    else:
        db.add(MaintenanceRecord(
            company_id=assignment.company_id,
            client_id=assignment.client_id,
            due_date=assignment.scheduled_date,
            completed_at=completed_at,
        ))


def update(
    db: Session,
    company_id: int,
    assignment_id: int,
    changes: Dict[str, Any],
    now: Optional[datetime] = None,
) -> CalendarAssignment:
    """Apply a partial update.

    Completing accepts optional completion_notes; un-completing always clears
    them. Completion also records (or clears) the client's maintenance record
    for the assignment's scheduled date, and rescheduling a completed
    assignment moves that record to the new date.
    """
    unknown = set(changes) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")

    assignment = get(db, company_id, assignment_id)
    was_completed = assignment.completed
    previous_due = assignment.scheduled_date

    day = changes.get("day", assignment.day)
    hour = changes.get("scheduled_hour", assignment.scheduled_hour)
    _validate_period(assignment.year, assignment.month, day, hour)

    completed = assignment.completed
    if changes.get("completed") is not None:
        completed = bool(changes["completed"])
    notes = changes.get("completion_notes")
    if not completed and notes is not None:
        raise ValidationError("Completion notes can only be attached to a completed assignment")

    if "assigned_technician_ids" in changes:
        assignment.assigned_technician_ids = _require_technicians(
            db, company_id, changes["assigned_technician_ids"]
        )

    if "day" in changes:
        assignment.day = day
    if "scheduled_hour" in changes:
        assignment.scheduled_hour = hour
    if "auto_due_date" in changes and changes["auto_due_date"] is not None:
        assignment.auto_due_date = bool(changes["auto_due_date"])

    if changes.get("scheduled_date") is not None:
        assignment.scheduled_date = changes["scheduled_date"]
        assignment.auto_due_date = False
    elif "day" in changes:
        assignment.scheduled_date = _derive_scheduled_date(assignment.year, assignment.month, assignment.day)

    assignment.completed = completed
    if not completed:
        assignment.completion_notes = None
    elif "completion_notes" in changes:
        assignment.completion_notes = notes

    try:
        date_moved = assignment.scheduled_date != previous_due
        if assignment.completed != was_completed or (assignment.completed and date_moved):
            _sync_completion_record(
                db, assignment, previous_due, now or datetime.utcnow(), newly_completed=not was_completed
            )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(assignment)
    logger.info(
        "Assignment updated",
        extra={
            "action": ACTION_UPDATE,
            "company_id": company_id,
            "assignment_id": assignment.id,
            "fields": sorted(changes),
        },
    )
    return assignment


def delete(db: Session, company_id: int, assignment_id: int) -> None:
    assignment = get(db, company_id, assignment_id)
    db.delete(assignment)
    db.commit()
    logger.info(
        "Assignment deleted",
        extra={"action": ACTION_DELETE, "company_id": company_id, "assignment_id": assignment_id},
    )


# ============ Queries ============

def list_for_period(
    db: Session,
    company_id: int,
    year: int,
    month: int,
    technician_id: Optional[int] = None,
) -> List[CalendarAssignment]:
    assignments = db.query(CalendarAssignment).options(
        joinedload(CalendarAssignment.client)
    ).filter(
        CalendarAssignment.company_id == company_id,
        CalendarAssignment.year == year,
        CalendarAssignment.month == month
    ).order_by(CalendarAssignment.day, CalendarAssignment.scheduled_hour, CalendarAssignment.job_number).all()

    if technician_id is None:
        return assignments
    return [a for a in assignments if technician_id in coerce_technician_ids(a.assigned_technician_ids)]


def list_for_technician_today(db: Session, technician_id: int, today: date) -> List[CalendarAssignment]:
    """Open assignments dated today for a technician, each with its client loaded.

    A technician belongs to exactly one company, so the technician's own
    company scopes the query.
    """
    technician = db.query(Technician).filter(Technician.id == technician_id).first()
    if not technician:
        return []

    assignments = db.query(CalendarAssignment).options(
        joinedload(CalendarAssignment.client)
    ).filter(
        CalendarAssignment.company_id == technician.company_id,
        CalendarAssignment.year == today.year,
        CalendarAssignment.month == today.month,
        CalendarAssignment.day == today.day,
        CalendarAssignment.completed == False
    ).order_by(CalendarAssignment.scheduled_hour, CalendarAssignment.job_number).all()

    return [
        a for a in assignments
        if technician_id in coerce_technician_ids(a.assigned_technician_ids) and a.client is not None
    ]
