"""
Purpose: Error taxonomy for dispatch operations.
Business errors carry the HTTP status the API layer answers with.
"""


class DispatchError(Exception):
    """Base class for every error a dispatch operation raises on purpose."""
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFound(DispatchError):
    """Order or driver does not exist."""
    status_code = 404


class InvalidTransition(DispatchError):
    """Raised when an order is asked to move to a status its current status does not allow."""
    status_code = 409

    def __init__(self, current_status: str, target_status: str, message: str = None):
        super().__init__(message or f"Cannot move order from {current_status} to {target_status}")
        self.current_status = current_status
        self.target_status = target_status


class Forbidden(DispatchError):
    """Driver does not own the order."""
    status_code = 403


class BusinessRejection(DispatchError):
    """A business rule refused the operation (eligibility, capacity, duplicate assignment)."""
    status_code = 400


class ValidationFailure(DispatchError):
    """Caller state is not usable (unverified driver, no location fix)."""
    status_code = 400


class DispatchInternalError(DispatchError):
    """A multi-entity update failed and was rolled back."""
    status_code = 500
