"""Error taxonomy for ride, booking, review and notification operations."""

from typing import Any, Dict, List, Optional


class RideShareError(Exception):
    """Base class for every failure reported back to the caller."""
    status_code = 500
    code = 'error'

    def __init__(self, message: str, details: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_dict(self) -> Dict[str, Any]:
        payload = {'error': self.message, 'code': self.code}
        if self.details:
            payload['details'] = self.details
        return payload


class ValidationError(RideShareError):
    """Raised when input has the wrong shape or is out of range."""
    status_code = 400
    code = 'validation_error'


class AuthorizationError(RideShareError):
    """Raised when the acting user is not allowed to perform the action."""
    status_code = 403
    code = 'authorization_error'


class NotFoundError(RideShareError):
    """Raised when a ride, passenger entry or user cannot be found."""
    status_code = 404
    code = 'not_found'


class StateError(RideShareError):
    """Raised when the operation is invalid for the entity's current status."""
    status_code = 409
    code = 'state_error'


class CapacityError(RideShareError):
    """Raised when a booking would exceed the ride's seats."""
    status_code = 409
    code = 'capacity_error'


class ConflictError(RideShareError):
    """Raised on duplicate actions or deletes blocked by dependents."""
    status_code = 409
    code = 'conflict'
