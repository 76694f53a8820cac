"""
Tenant context for API requests.

Tokens are issued elsewhere; this service only verifies the signature and
reads which company (and optionally which technician) the caller acts for.
"""
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from pm_scheduler.auth_utils import decode_access_token

security = HTTPBearer()


class TenantContext:
    """Caller identity resolved from the bearer token"""
    def __init__(self, company_id: int, subject: Optional[str] = None, technician_id: Optional[int] = None):
        self.company_id = company_id
        self.subject = subject
        self.technician_id = technician_id


def get_tenant_context(credentials: HTTPAuthorizationCredentials = Depends(security)) -> TenantContext:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_access_token(credentials.credentials)
    if not payload:
        raise credentials_exception

    company_id = payload.get("company_id")
    if company_id is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No company associated")

    technician_id = payload.get("technician_id")
    try:
        return TenantContext(
            company_id=int(company_id),
            subject=payload.get("sub"),
            technician_id=int(technician_id) if technician_id is not None else None,
        )
    except (TypeError, ValueError):
        raise credentials_exception
