"""
Schedule reconciliation reports.

These are advisory read queries that cross-reference clients, calendar
assignments and maintenance history. Missing evidence (no history, null due
dates, malformed technician lists) never hides a client: when in doubt the
client or assignment is reported.
"""
import logging
from datetime import date
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload
from sqlalchemy import or_, and_

from pm_scheduler.models import CalendarAssignment, Client, MaintenanceRecord
from pm_scheduler.services.exceptions import ReconciliationError

logger = logging.getLogger(__name__)


def _latest_completed_record(db: Session, company_id: int, client_id: int):
    return db.query(MaintenanceRecord).filter(
        MaintenanceRecord.company_id == company_id,
        MaintenanceRecord.client_id == client_id,
        MaintenanceRecord.completed_at.isnot(None)
    ).order_by(MaintenanceRecord.completed_at.desc(), MaintenanceRecord.id.desc()).first()


def _completed_in_period(record, year: int, month: int) -> bool:
    if record is None or record.due_date is None:
        return False
    return record.due_date.year == year and record.due_date.month == month


def get_unscheduled_clients(db: Session, company_id: int, year: int, month: int) -> List[Client]:
    """Active clients due in year/month with no dated slot and no proof of completion.

    Clients with an undated ("needs scheduling") assignment this month are
    always reported.
    """
    try:
        period_assignments = db.query(CalendarAssignment).filter(
            CalendarAssignment.company_id == company_id,
            CalendarAssignment.year == year,
            CalendarAssignment.month == month,
            CalendarAssignment.completed == False
        ).all()

        scheduled_client_ids = {a.client_id for a in period_assignments if a.day is not None}
        unscheduled_assignment_client_ids = {a.client_id for a in period_assignments if a.day is None}

        candidates = db.query(Client).filter(
            Client.company_id == company_id,
            Client.inactive == False
        ).order_by(Client.company_name).all()

        month_index = month - 1
        unscheduled = []
        for client in candidates:
            if month_index not in (client.selected_months or []):
                continue

            if client.id in unscheduled_assignment_client_ids:
                unscheduled.append(client)
                continue

            if client.id in scheduled_client_ids:
                continue

            latest = _latest_completed_record(db, company_id, client.id)
            if not _completed_in_period(latest, year, month):
                unscheduled.append(client)

        return unscheduled
    except SQLAlchemyError as e:
        logger.error(f"Unscheduled client reconciliation failed for company {company_id} {year}-{month:02d}: {e}")
        raise ReconciliationError("Failed to compute unscheduled clients") from e


def get_past_incomplete_assignments(db: Session, company_id: int, today: date) -> List[CalendarAssignment]:
    """Open assignments from any month strictly before today's month"""
    try:
        return db.query(CalendarAssignment).options(
            joinedload(CalendarAssignment.client)
        ).filter(
            CalendarAssignment.company_id == company_id,
            CalendarAssignment.completed == False,
            or_(
                CalendarAssignment.year < today.year,
                and_(
                    CalendarAssignment.year == today.year,
                    CalendarAssignment.month < today.month
                )
            )
        ).order_by(
            CalendarAssignment.year,
            CalendarAssignment.month,
            CalendarAssignment.day,
            CalendarAssignment.job_number
        ).all()
    except SQLAlchemyError as e:
        logger.error(f"Overdue assignment query failed for company {company_id}: {e}")
        raise ReconciliationError("Failed to fetch overdue assignments") from e


def get_old_unscheduled_assignments(db: Session, company_id: int, today: date) -> List[CalendarAssignment]:
    """Undated, open assignments left over from months before today's month.

    These never got a day, so they are not on anyone's calendar and will not
    be picked up by the current month's unscheduled list either.
    """
    try:
        return db.query(CalendarAssignment).options(
            joinedload(CalendarAssignment.client)
        ).filter(
            CalendarAssignment.company_id == company_id,
            CalendarAssignment.completed == False,
            CalendarAssignment.day.is_(None),
            or_(
                CalendarAssignment.year < today.year,
                and_(
                    CalendarAssignment.year == today.year,
                    CalendarAssignment.month < today.month
                )
            )
        ).order_by(
            CalendarAssignment.year,
            CalendarAssignment.month,
            CalendarAssignment.job_number
        ).all()
    except SQLAlchemyError as e:
        logger.error(f"Old unscheduled assignment query failed for company {company_id}: {e}")
        raise ReconciliationError("Failed to fetch old unscheduled assignments") from e


def get_completed_unscheduled_maintenance(db: Session, company_id: int) -> List[MaintenanceRecord]:
    """Completed maintenance with no calendar assignment in its due month.

    Records are bucketed by due_date, not completed_at, so a late completion
    still belongs to the cycle it was due in. Most recently completed first.
    """
    try:
        records = db.query(MaintenanceRecord).options(
            joinedload(MaintenanceRecord.client)
        ).filter(
            MaintenanceRecord.company_id == company_id,
            MaintenanceRecord.completed_at.isnot(None)
        ).order_by(MaintenanceRecord.completed_at.desc(), MaintenanceRecord.id.desc()).all()

        assigned_periods = {
            (row.client_id, row.year, row.month)
            for row in db.query(
                CalendarAssignment.client_id,
                CalendarAssignment.year,
                CalendarAssignment.month
            ).filter(CalendarAssignment.company_id == company_id).all()
        }
    except SQLAlchemyError as e:
        logger.error(f"Completed-unscheduled reconciliation failed for company {company_id}: {e}")
        raise ReconciliationError("Failed to fetch completed unscheduled maintenance") from e

    unscheduled = []
    for record in records:
        if record.due_date is None:
            unscheduled.append(record)
            continue
        if (record.client_id, record.due_date.year, record.due_date.month) not in assigned_periods:
            unscheduled.append(record)
    return unscheduled
