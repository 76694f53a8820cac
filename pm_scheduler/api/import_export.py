"""
Import/Export API Endpoints

Client backup download and restore (CSV or Excel).
"""

from fastapi import APIRouter, Depends, HTTPException, status, UploadFile, File, Form, Query
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from datetime import date, datetime
import io
import logging

from pm_scheduler.config import settings
from pm_scheduler.database import get_db
from pm_scheduler.schemas import ImportResult
from pm_scheduler.api.auth import TenantContext, get_tenant_context
from pm_scheduler.services.client_backup import (
    decode_backup,
    decode_backup_workbook,
    encode_backup,
    encode_backup_workbook,
    load_backup_data,
    restore_backup,
)
from pm_scheduler.services.exceptions import ValidationError

router = APIRouter()
logger = logging.getLogger(__name__)


# =============================================================================
# Data Export
# =============================================================================

@router.get("/import-export/clients/export")
async def export_clients(
    format: str = Query("csv", pattern="^(csv|xlsx)$"),
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """
    Export every client with its parts and equipment.
    Supported formats: csv, xlsx
    """
    clients, parts_by_client, equipment_by_client = load_backup_data(db, tenant.company_id)
    timestamp = datetime.now().strftime("%Y-%m-%d")

    if format == "xlsx":
        content = encode_backup_workbook(clients, parts_by_client, equipment_by_client)
        filename = f"{settings.backup_filename_prefix}-{timestamp}.xlsx"
        media_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    else:
        content = encode_backup(clients, parts_by_client, equipment_by_client).encode("utf-8")
        filename = f"{settings.backup_filename_prefix}-{timestamp}.csv"
        media_type = "text/csv"

    logger.info(f"Exported {len(clients)} clients for company {tenant.company_id} as {format}")

    return StreamingResponse(
        io.BytesIO(content),
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


# =============================================================================
# Data Import
# =============================================================================

@router.post("/import-export/clients/import", response_model=ImportResult)
async def import_clients(
    file: UploadFile = File(...),
    skip_existing: bool = Form(True),
    tenant: TenantContext = Depends(get_tenant_context),
    db: Session = Depends(get_db)
):
    """
    Restore clients from a backup file (.csv or the .xlsx export).
    Rows for a company name that already exists are skipped unless skip_existing is false.
    """
    filename = (file.filename or "").lower()
    if not filename.endswith(('.csv', '.xlsx')):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid file format. Please upload a CSV or Excel (.xlsx) backup file."
        )

    content = await file.read()
    if filename.endswith('.xlsx'):
        try:
            decoded = decode_backup_workbook(content, date.today())
        except ValidationError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    else:
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Backup file must be UTF-8 encoded"
            )
        decoded = decode_backup(text, date.today())

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
        success=result["imported"] > 0 or result["skipped"] > 0,
        message=f"Import complete: {result['imported']} imported, {result['skipped']} skipped",
        **result,
    )
