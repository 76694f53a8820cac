"""
Maintenance history endpoints: completions, the completion toggle and the
current-month completion views
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session
from typing import Dict, List, Optional
from datetime import date
import logging

from pm_scheduler.database import get_db
from pm_scheduler.schemas import (
    MaintenanceCompletionCreate,
    MaintenanceRecord as MaintenanceRecordSchema,
    MaintenanceStatus,
    MaintenanceToggleRequest,
    MaintenanceToggleResult,
    CompletedUnscheduledItem,
    RecentlyCompletedItem,
)
from pm_scheduler.api.auth import TenantContext, get_tenant_context
from pm_scheduler.api.errors import to_http_exception
from pm_scheduler.services import clients as client_service
from pm_scheduler.services import maintenance as maintenance_service
from pm_scheduler.services import reconciliation
from pm_scheduler.services.exceptions import SchedulingError

router = APIRouter()
logger = logging.getLogger(__name__)


def _period(year: Optional[int], month: Optional[int]):
    today = date.today()
    return year or today.year, month or today.month


@router.post("/complete", response_model=MaintenanceRecordSchema, status_code=status.HTTP_201_CREATED)
async def complete_maintenance(
    completion: MaintenanceCompletionCreate,
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """Record serviced maintenance that was not (or not yet) on the calendar"""
    try:
        return client_service.record_maintenance_completion(
            db,
            tenant.company_id,
            completion.client_id,
            completion.due_date,
            completion.completed_at,
        )
    except SchedulingError as e:
        raise to_http_exception(e)


@router.post("/{client_id}/toggle", response_model=MaintenanceToggleResult)
async def toggle_maintenance(
    client_id: int,
    toggle: MaintenanceToggleRequest,
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """Mark the cycle due on due_date complete, or reopen it if it already is"""
    try:
        return maintenance_service.toggle_completion(db, tenant.company_id, client_id, toggle.due_date)
    except SchedulingError as e:
        raise to_http_exception(e)


@router.get("/completed-unscheduled", response_model=List[CompletedUnscheduledItem])
async def list_completed_unscheduled(
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """Completed maintenance with no calendar assignment in its due month"""
    try:
        records = reconciliation.get_completed_unscheduled_maintenance(db, tenant.company_id)
    except SchedulingError as e:
        raise to_http_exception(e)

    return [
        CompletedUnscheduledItem(
            id=record.id,
            client_id=record.client_id,
            company_name=record.client.company_name if record.client else None,
            location=record.client.location if record.client else None,
            due_date=record.due_date,
            completed_at=record.completed_at,
        )
        for record in records
    ]


@router.get("/recently-completed", response_model=List[RecentlyCompletedItem])
async def list_recently_completed(
    year: Optional[int] = Query(None, ge=1900, le=9998, description="Defaults to the current year"),
    month: Optional[int] = Query(None, ge=1, le=12, description="Defaults to the current month"),
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """Maintenance completed during a month (the current one by default)"""
    year, month = _period(year, month)
    records = maintenance_service.get_recently_completed(db, tenant.company_id, year, month)

    return [
        RecentlyCompletedItem(
            id=f"{record.client_id}|{record.due_date.isoformat() if record.due_date else ''}",
            client_id=record.client_id,
            company_name=record.client.company_name,
            location=record.client.location,
            selected_months=record.client.selected_months or [],
            due_date=record.due_date,
            completed_at=record.completed_at,
        )
        for record in records
        if record.client is not None
    ]


@router.get("/statuses", response_model=Dict[int, MaintenanceStatus])
async def list_maintenance_statuses(
    year: Optional[int] = Query(None, ge=1900, le=9998, description="Defaults to the current year"),
    month: Optional[int] = Query(None, ge=1, le=12, description="Defaults to the current month"),
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """Completion status of every client's assignment for a month, keyed by client id"""
    year, month = _period(year, month)
    return maintenance_service.get_completion_statuses(db, tenant.company_id, year, month)
