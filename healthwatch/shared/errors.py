"""Error taxonomy shared by every HealthWatch service.

Each error carries the HTTP status the API layer maps it to. Anything that
is not a HealthWatchError is an internal fault and surfaces as a generic 500.
"""
from typing import Optional


class HealthWatchError(Exception):
    """Base exception for all expected, user-facing failures."""
    status_code = 400
    error_code = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.error_code, "message": self.message}


class ValidationError(HealthWatchError):
    """Malformed or missing input the caller can correct."""
    status_code = 400
    error_code = "validation_error"


class AuthorizationError(HealthWatchError):
    """Actor lacks the role required for the operation."""
    status_code = 403
    error_code = "authorization_error"


class AuthenticationError(AuthorizationError):
    """No usable actor identity on the request."""
    status_code = 401
    error_code = "authentication_required"


class NotFoundError(HealthWatchError):
    """Referenced report, action or location does not exist."""
    status_code = 404
    error_code = "not_found"


class InvalidTransitionError(HealthWatchError):
    """State machine violation for a report or action."""
    status_code = 409
    error_code = "invalid_transition"

    def __init__(self, entity: str, current: str, requested: str):
        super().__init__(
            f"Cannot transition {entity} from '{current}' to '{requested}'"
        )
        self.entity = entity
        self.current = current
        self.requested = requested

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["current"] = self.current
        data["requested"] = self.requested
        return data


class ConcurrentModificationError(HealthWatchError):
    """Optimistic version check failed after all retries."""
    status_code = 409
    error_code = "concurrent_modification"


class DependencyUnavailableError(HealthWatchError):
    """External collaborator (forecasting) timed out or failed.

    Recovered locally; never propagated to dashboard readers.
    """
    status_code = 503
    error_code = "dependency_unavailable"

    def __init__(self, message: str, dependency: Optional[str] = None):
        super().__init__(message)
        self.dependency = dependency
