"""
Timeline error taxonomy.

Engine components raise these; only the timeline service decides whether
the surrounding transaction commits, and the API layer maps them onto
HTTP status codes.
"""

from typing import Any, Dict, Optional


class TimelineError(Exception):
    """Base class for every failure surfaced by the timeline engine"""

    code = "timeline_error"
    http_status = 500
    retryable = False

    def __init__(self, message: str, **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = context

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, "retryable": self.retryable}


class PreconditionFailed(TimelineError):
    """Client input rejected before any write"""

    code = "invalid_input"
    http_status = 400


class NotFound(TimelineError):
    """Referenced row does not exist or is soft-deleted"""

    code = "not_found"
    http_status = 404


class JourneyNotFound(NotFound):
    code = "journey_not_found"

    def __init__(self, journey_id: Any):
        super().__init__(f"Journey {journey_id} not found", journey_id=str(journey_id))


class DayNotFound(NotFound):
    code = "day_not_found"


class ActivityNotFound(NotFound):
    code = "activity_not_found"

    def __init__(self, activity_id: Any):
        super().__init__(f"Activity {activity_id} not found", activity_id=str(activity_id))


class AccessDenied(TimelineError):
    code = "forbidden"
    http_status = 403


class IntegrityViolation(TimelineError):
    """A database constraint rejected the write; retrying the same request cannot succeed"""

    code = "integrity_violation"
    http_status = 409

    def __init__(self, message: str = "Write rejected by a storage constraint", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.__cause__ = cause


class StorageFailure(TimelineError):
    """Transaction could not be completed; nothing was applied"""

    code = "storage_failure"
    http_status = 503
    retryable = True

    def __init__(self, message: str = "Storage operation failed", cause: Optional[BaseException] = None):
        super().__init__(message)
        self.__cause__ = cause
