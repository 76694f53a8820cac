from fastapi import HTTPException, status

from pm_scheduler.services.exceptions import (
    JobNumberAllocationError,
    NotFoundError,
    ReconciliationError,
    SchedulingError,
    ValidationError,
)


def to_http_exception(error: SchedulingError) -> HTTPException:
    """Map a scheduling service error onto the HTTP status the client should see"""
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))
    if isinstance(error, (JobNumberAllocationError, ReconciliationError)):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{error}. Please retry.",
        )
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error))
