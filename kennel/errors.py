"""
Domain errors

Validation errors are raised before any capacity mutation and carry the
offending field so the API can report it. Capacity exhaustion is not an
error: it is returned as ReserveOutcome.FULL / HoldOutcome.FULL.
"""

from typing import Optional


class ValidationError(ValueError):
    """Input rejected before any state change"""

    field: Optional[str] = None

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if field is not None:
            self.field = field


class UnknownServiceError(ValidationError):
    field = "service"


class SlotValidationError(ValidationError):
    field = "slot"


class PricingValidationError(ValidationError):
    pass


class PersistenceError(RuntimeError):
    """Store failure that left no usable result for the caller"""
