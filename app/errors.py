# app/errors.py


class SchedulingError(Exception):
    """Base class for booking/availability failures."""


class BookingValidationError(SchedulingError):
    """Malformed or out-of-policy input. Nothing has been written."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class SlotUnavailable(SchedulingError):
    """The requested interval overlaps an existing booking or block."""

    def __init__(self, message: str = "This time is no longer available, please choose another"):
        super().__init__(message)
        self.message = message


class NotFound(SchedulingError):
    def __init__(self, what: str):
        super().__init__(f"{what} not found")
        self.message = f"{what} not found"
