"""
Errors raised by the scheduling services.

Routes translate these into HTTP responses; the services themselves never
raise framework exceptions.
"""


class SchedulingError(Exception):
    """Base class for scheduling service errors"""


class ValidationError(SchedulingError):
    """Bad input, or a referenced client/technician outside the tenant"""


class NotFoundError(SchedulingError):
    """Referenced entity does not exist for this tenant"""


class AssignmentNotFoundError(NotFoundError):
    def __init__(self, assignment_id):
        super().__init__(f"No such assignment: {assignment_id}")
        self.assignment_id = assignment_id


class JobNumberAllocationError(SchedulingError):
    """Counter allocation failed; the whole creation must be retried"""


class ReconciliationError(SchedulingError):
    """A reconciliation sub-query failed; safe to retry"""
