class BookingError(Exception):
    """Base for expected, user-facing booking failures."""

    kind = "booking_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    kind = "validation_error"


class TransitionNotAllowedError(ValidationError):
    pass


class CapacityExceededError(BookingError):
    kind = "capacity_exceeded"


class SlotConflictError(BookingError):
    kind = "slot_conflict"


class ClosedError(BookingError):
    kind = "closed"


class RateLimitedError(BookingError):
    kind = "rate_limited"


class NotFoundError(BookingError):
    kind = "not_found"
