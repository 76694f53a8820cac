from fastapi import APIRouter, Depends, HTTPException, status, Query, UploadFile, File, Form
from sqlalchemy.orm import Session
from typing import List
from datetime import date
import logging

from pm_scheduler.database import get_db
from pm_scheduler.schemas import (
    ClientCreate,
    ClientUpdate,
    Client as ClientSchema,
    ClientPartCreate,
    ClientPartResponse,
    EquipmentCreate,
    EquipmentResponse,
    DueDateRefreshResponse,
    ImportResult,
)
from pm_scheduler.api.auth import TenantContext, get_tenant_context
from pm_scheduler.api.errors import to_http_exception
from pm_scheduler.services import clients as client_service
from pm_scheduler.services.client_backup import decode_simple_clients, restore_backup
from pm_scheduler.services.exceptions import SchedulingError

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=List[ClientSchema])
async def get_clients(
    include_inactive: bool = Query(True, description="Include inactive clients"),
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """Get all clients for the caller's company"""
    return client_service.list_clients(db, tenant.company_id, include_inactive=include_inactive)


@router.post("", response_model=ClientSchema, status_code=status.HTTP_201_CREATED)
async def create_client(
    client_data: ClientCreate,
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """Create a client; next_due is derived from its maintenance months"""
    try:
        return client_service.create_client(db, tenant.company_id, client_data.model_dump(), date.today())
    except SchedulingError as e:
        raise to_http_exception(e)


@router.post("/refresh-due-dates", response_model=DueDateRefreshResponse)
async def refresh_due_dates(
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """Roll every client's next_due forward to today's calendar"""
    updated = client_service.refresh_due_dates(db, tenant.company_id, date.today())
    return DueDateRefreshResponse(updated=updated)


@router.post("/import-simple", response_model=ImportResult)
async def import_simple_clients(
    file: UploadFile = File(...),
    skip_existing: bool = Form(True),
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """
    Import a plain company list CSV.
    Columns: Company Name, Location, Address, City, Province/State, Postal/Zip,
    Contact, Phone, Email, Roof/Ladder Code, Notes. Clients come in inactive.
    """
    if not file.filename or not file.filename.lower().endswith('.csv'):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid file format. Please upload a CSV file."
        )

    content = await file.read()
    try:
        text = content.decode("utf-8-sig")
    except UnicodeDecodeError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File must be UTF-8 encoded")

    decoded = decode_simple_clients(text, date.today())
    if not decoded.clients:
        return ImportResult(
            success=False,
            message="No valid clients found in file",
            imported=0,
            skipped=0,
            total=0,
            rows_rejected=decoded.rows_rejected,
            errors=decoded.errors,
        )

    result = restore_backup(db, tenant.company_id, decoded, date.today(), skip_existing=skip_existing)
    return ImportResult(
        success=result["imported"] > 0,
        message=f"Successfully imported {result['imported']} of {result['total']} clients",
        **result,
    )


@router.get("/{client_id}", response_model=ClientSchema)
async def get_client(
    client_id: int,
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    try:
        return client_service.get_client(db, tenant.company_id, client_id)
    except SchedulingError as e:
        raise to_http_exception(e)


@router.put("/{client_id}", response_model=ClientSchema)
async def update_client(
    client_id: int,
    client_data: ClientUpdate,
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """Update a client; changing months or status recomputes next_due"""
    try:
        return client_service.update_client(
            db,
            tenant.company_id,
            client_id,
            client_data.model_dump(exclude_unset=True),
            date.today()
        )
    except SchedulingError as e:
        raise to_http_exception(e)


@router.post("/{client_id}/parts", response_model=ClientPartResponse, status_code=status.HTTP_201_CREATED)
async def add_client_part(
    client_id: int,
    part_data: ClientPartCreate,
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """Attach a part (matched by name, created if new) to a client"""
    try:
        return client_service.add_client_part(db, tenant.company_id, client_id, part_data.part_name, part_data.quantity)
    except SchedulingError as e:
        raise to_http_exception(e)


@router.post("/{client_id}/equipment", response_model=EquipmentResponse, status_code=status.HTTP_201_CREATED)
async def add_equipment(
    client_id: int,
    equipment_data: EquipmentCreate,
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    try:
        return client_service.add_equipment(db, tenant.company_id, client_id, equipment_data.model_dump())
    except SchedulingError as e:
        raise to_http_exception(e)
