"""
Calendar & Scheduling API endpoints for recurring maintenance assignments
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import Optional, List
from datetime import date
import logging

from pm_scheduler.database import get_db
from pm_scheduler.models import Technician
from pm_scheduler.schemas import (
    CalendarAssignment as CalendarAssignmentSchema,
    CalendarAssignmentCreate,
    CalendarAssignmentUpdate,
    CalendarAssignmentWithClient,
    Client as ClientSchema,
)
from pm_scheduler.api.auth import TenantContext, get_tenant_context
from pm_scheduler.api.errors import to_http_exception
from pm_scheduler.services import calendar_assignments, reconciliation
from pm_scheduler.services.exceptions import SchedulingError

router = APIRouter()
logger = logging.getLogger(__name__)


# ============ Calendar Views ============

@router.get("", response_model=List[CalendarAssignmentWithClient])
async def list_calendar_assignments(
    year: int = Query(..., ge=1900, le=9998),
    month: int = Query(..., ge=1, le=12),
    technician_id: Optional[int] = Query(None, description="Only assignments this technician is on"),
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """Assignments for one month, optionally filtered to a technician"""
    return calendar_assignments.list_for_period(db, tenant.company_id, year, month, technician_id)


@router.get("/unscheduled", response_model=List[ClientSchema])
async def list_unscheduled_clients(
    year: int = Query(..., ge=1900, le=9998),
    month: int = Query(..., ge=1, le=12),
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """Clients due this month with no dated assignment and no completion"""
    try:
        return reconciliation.get_unscheduled_clients(db, tenant.company_id, year, month)
    except SchedulingError as e:
        raise to_http_exception(e)


@router.get("/overdue", response_model=List[CalendarAssignmentWithClient])
async def list_overdue_assignments(
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """Incomplete assignments from months before the current one"""
    try:
        assignments = reconciliation.get_past_incomplete_assignments(db, tenant.company_id, date.today())
    except SchedulingError as e:
        raise to_http_exception(e)
    return [a for a in assignments if a.client is not None]


@router.get("/old-unscheduled", response_model=List[CalendarAssignmentWithClient])
async def list_old_unscheduled_assignments(
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """Assignments from past months that were never given a day"""
    try:
        assignments = reconciliation.get_old_unscheduled_assignments(db, tenant.company_id, date.today())
    except SchedulingError as e:
        raise to_http_exception(e)
    return [a for a in assignments if a.client is not None]


@router.get("/technician/today", response_model=List[CalendarAssignmentWithClient])
async def list_technician_today(
    technician_id: Optional[int] = Query(None, description="Defaults to the technician on the token"),
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """Open assignments for today for one technician"""
    technician_id = technician_id or tenant.technician_id
    if not technician_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="technician_id is required")

    technician = db.query(Technician).filter(
        Technician.id == technician_id,
        Technician.company_id == tenant.company_id
    ).first()
    if not technician:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Technician not found")

    return calendar_assignments.list_for_technician_today(db, technician.id, date.today())


# ============ Assignment Endpoints ============

@router.post("/assign", response_model=CalendarAssignmentSchema, status_code=status.HTTP_201_CREATED)
async def create_assignment(
    assignment_data: CalendarAssignmentCreate,
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """Place a client on the calendar for a month (optionally a day and hour)"""
    existing = calendar_assignments.find_for_client_period(
        db,
        tenant.company_id,
        assignment_data.client_id,
        assignment_data.year,
        assignment_data.month
    )
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Client already has an assignment for this month"
        )

    try:
        return calendar_assignments.create(
            db,
            tenant.company_id,
            assignment_data.client_id,
            assignment_data.year,
            assignment_data.month,
            day=assignment_data.day,
            scheduled_hour=assignment_data.scheduled_hour,
            technician_ids=assignment_data.assigned_technician_ids,
            scheduled_date=assignment_data.scheduled_date,
        )
    except SchedulingError as e:
        raise to_http_exception(e)


@router.patch("/assign/{assignment_id}", response_model=CalendarAssignmentSchema)
async def update_assignment(
    assignment_id: int,
    assignment_update: CalendarAssignmentUpdate,
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """Reschedule, reassign, or toggle completion of an assignment"""
    changes = assignment_update.changes()
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")

    try:
        return calendar_assignments.update(db, tenant.company_id, assignment_id, changes)
    except SchedulingError as e:
        raise to_http_exception(e)


@router.delete("/assign/{assignment_id}")
async def delete_assignment(
    assignment_id: int,
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """Remove an assignment from the calendar"""
    try:
        calendar_assignments.delete(db, tenant.company_id, assignment_id)
    except SchedulingError as e:
        raise to_http_exception(e)
    return {"success": True}
