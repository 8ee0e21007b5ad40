"""
Domain error taxonomy for the report lifecycle.

Every error carries a stable error_code so callers (and the API adapter)
can branch on the kind without string matching on messages.
"""

from typing import Optional


class LifecycleError(Exception):
    """Base class for all lifecycle errors."""

    error_code = "ERR_LIFECYCLE"

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[dict] = None):
        self.message = message
        if error_code:
            self.error_code = error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        payload = {"error_code": self.error_code, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(LifecycleError):
    """Missing or malformed field for a transition or rating."""
    error_code = "VALID_001"


class NotFoundError(LifecycleError):
    """Report or assignment absent."""
    error_code = "REPORT_003"


class AuthorizationError(LifecycleError):
    """Role or ownership mismatch."""
    error_code = "AUTH_003"


class TransitionError(LifecycleError):
    """Edge not present in the state graph for the current status."""
    error_code = "REPORT_002"


class ConflictError(LifecycleError):
    """Ticket ID exhaustion, lost write races, already-rated reports."""
    error_code = "CONFLICT_001"


class DuplicateReportError(ConflictError):
    """A high-confidence duplicate blocked report creation."""
    error_code = "REPORT_001"


class DetectorUnavailable(LifecycleError):
    """Duplicate scoring failed. Never surfaced as a blocking error."""
    error_code = "SYSTEM_002"
