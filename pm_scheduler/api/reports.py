"""
Month report endpoints (parts pull list and service schedule)
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import date
import logging

from pm_scheduler.database import get_db
from pm_scheduler.schemas import PartsReportRow, ScheduleReportItem
from pm_scheduler.api.auth import TenantContext, get_tenant_context
from pm_scheduler.api.errors import to_http_exception
from pm_scheduler.services import reports
from pm_scheduler.services.exceptions import SchedulingError

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/parts/{month}", response_model=List[PartsReportRow])
async def get_parts_report(
    month: int,
    outstanding: bool = Query(False, description="Leave out clients already serviced this month"),
    year: Optional[int] = Query(None, ge=1900, le=9998, description="Defaults to the current year"),
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """Parts needed by the clients due in a month (0 = January)"""
    try:
        return reports.parts_report(
            db, tenant.company_id, month, year or date.today().year, outstanding_only=outstanding
        )
    except SchedulingError as e:
        raise to_http_exception(e)


@router.get("/schedule/{month}", response_model=List[ScheduleReportItem])
async def get_schedule_report(
    month: int,
    year: Optional[int] = Query(None, ge=1900, le=9998, description="Defaults to the current year"),
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """Clients due in a month (0 = January) with their parts, equipment and completion"""
    try:
        rows = reports.schedule_report(db, tenant.company_id, month, year or date.today().year)
    except SchedulingError as e:
        raise to_http_exception(e)

    items = []
    for row in rows:
        item = ScheduleReportItem.model_validate(row["client"])
        item.is_completed = row["is_completed"]
        items.append(item)
    return items
