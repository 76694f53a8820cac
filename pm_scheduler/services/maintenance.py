"""
Maintenance history: completion toggling and the month-at-a-glance views.

A client's cycle is identified by its due date. Toggling a cycle flips the
maintenance record for that date and keeps the client's calendar assignment
for the same month in step with it.
"""
import logging
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from pm_scheduler.models import CalendarAssignment, Client, MaintenanceRecord
from pm_scheduler.services import calendar_assignments
from pm_scheduler.services.clients import get_client
from pm_scheduler.services.due_dates import NO_DUE_DATE, compute_next_due

logger = logging.getLogger(__name__)

ACTION_TOGGLE = "MAINTENANCE_TOGGLE"


def _month_bounds(year: int, month: int):
    start = datetime(year, month, 1)
    if month == 12:
        return start, datetime(year + 1, 1, 1)
    return start, datetime(year, month + 1, 1)


def _first_of_next_month(day: date) -> date:
    return (day.replace(day=1) + timedelta(days=32)).replace(day=1)


def _ensure_next_cycle_assignment(db: Session, client: Client, due_date: date) -> Optional[CalendarAssignment]:
    """Put the client's following cycle on the calendar unless it is already there"""
    next_due = compute_next_due(client.selected_months or [], client.inactive, _first_of_next_month(due_date))
    if next_due == NO_DUE_DATE:
        return None

    existing = calendar_assignments.find_for_client_period(
        db, client.company_id, client.id, next_due.year, next_due.month
    )
    if existing:
        return None
    return calendar_assignments.create(db, client.company_id, client.id, next_due.year, next_due.month)


def toggle_completion(
    db: Session,
    company_id: int,
    client_id: int,
    due_date: date,
    now: Optional[datetime] = None,
) -> Dict:
    """Flip the completion state of one maintenance cycle.

    Completing creates (or re-stamps) the record for due_date, marks the
    month's assignment completed and places the next cycle on the calendar
    as an undated assignment. Un-completing clears the record's completed_at
    and reopens the month's assignment.
    """
    client = get_client(db, company_id, client_id)

    record = db.query(MaintenanceRecord).filter(
        MaintenanceRecord.company_id == company_id,
        MaintenanceRecord.client_id == client.id,
        MaintenanceRecord.due_date == due_date
    ).first()
    assignment = calendar_assignments.find_for_client_period(
        db, company_id, client.id, due_date.year, due_date.month
    )

    completed = not (record is not None and record.completed_at is not None)
    try:
        if completed:
            if record is None:
                record = MaintenanceRecord(company_id=company_id, client_id=client.id, due_date=due_date)
                db.add(record)
            record.completed_at = now or datetime.utcnow()
            if assignment:
                assignment.completed = True
        else:
            record.completed_at = None
            if assignment:
                assignment.completed = False
                assignment.completion_notes = None
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(record)
    next_assignment = _ensure_next_cycle_assignment(db, client, due_date) if completed else None

    logger.info(
        f"Maintenance for client {client.id} due {due_date} marked {'complete' if completed else 'incomplete'}",
        extra={"action": ACTION_TOGGLE, "company_id": company_id},
    )
    return {
        "completed": completed,
        "record": record,
        "assignment": assignment,
        "next_assignment": next_assignment,
    }


def get_recently_completed(db: Session, company_id: int, year: int, month: int) -> List[MaintenanceRecord]:
    """Records completed (by completed_at) during year/month, newest first"""
    start, end = _month_bounds(year, month)
    return db.query(MaintenanceRecord).options(
        joinedload(MaintenanceRecord.client)
    ).filter(
        MaintenanceRecord.company_id == company_id,
        MaintenanceRecord.completed_at.isnot(None),
        MaintenanceRecord.completed_at >= start,
        MaintenanceRecord.completed_at < end
    ).order_by(MaintenanceRecord.completed_at.desc(), MaintenanceRecord.id.desc()).all()


def get_completion_statuses(db: Session, company_id: int, year: int, month: int) -> Dict[int, Dict]:
    """Per client: whether its assignment for year/month is completed, and that assignment's date"""
    completed_dates = {}
    for assignment in db.query(CalendarAssignment).filter(
        CalendarAssignment.company_id == company_id,
        CalendarAssignment.year == year,
        CalendarAssignment.month == month,
        CalendarAssignment.completed == True
    ).order_by(CalendarAssignment.job_number).all():
        completed_dates.setdefault(assignment.client_id, assignment.scheduled_date)

    statuses = {}
    for (client_id,) in db.query(Client.id).filter(Client.company_id == company_id).all():
        if client_id in completed_dates:
            statuses[client_id] = {"completed": True, "completed_due_date": completed_dates[client_id]}
        else:
            statuses[client_id] = {"completed": False, "completed_due_date": None}
    return statuses
