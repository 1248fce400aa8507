from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..geofence.model import GeofenceResult


class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class TransitionError(DomainError):
    """A lifecycle transition was refused. Nothing was written."""

    default_message = "This action is not available right now"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)


class AlreadyClockedIn(TransitionError):
    default_message = "You have already clocked in today"


class NoActiveSession(TransitionError):
    default_message = "You are not clocked in"


class BreakAlreadyUsed(TransitionError):
    default_message = "Break already used today"


class InvalidTransition(TransitionError):
    default_message = "Finish your current activity first"


class OutOfRange(TransitionError):
    def __init__(self, result: "GeofenceResult", message: str | None = None):
        self.result = result
        super().__init__(
            message
            or f"Too far from office: {result.distance_m:.0f} m away, must be within {result.radius_m:.0f} m"
        )


class LocationError(DomainError):
    """Base for device location failures."""


class PermissionDenied(LocationError):
    def __init__(self, message: str = "Location permission was denied"):
        super().__init__(message)


class LocationUnavailable(LocationError):
    def __init__(self, message: str = "Unable to determine your location, please try again"):
        super().__init__(message)


class PersistenceFailure(DomainError):
    """The backend could not store a transition. Safe to retry."""


class UploadFailure(DomainError):
    """The selfie could not be uploaded. Safe to retry."""


class StaleReconciliation(DomainError):
    """A remote event references an attendance unknown to this session."""
