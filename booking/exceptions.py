"""
exceptions.py
-------------
Domain errors raised by the availability engine and the booking manager.

They all derive from ValueError so views that already catch ValueError for
business-rule failures keep working; views that care map the subclasses to
specific HTTP statuses (SlotConflictError -> 409).
"""


class BookingError(ValueError):
    """Base class for booking domain errors."""


class InvalidInputError(BookingError):
    """Malformed date/time, non-positive duration, unknown services."""


class UpstreamDataError(BookingError):
    """Schedule or appointment data could not be loaded."""


class SlotConflictError(BookingError):
    """The requested time overlaps an appointment that already holds the slot."""

    def __init__(self, message="Selected time is no longer available. Please choose another time.",
                 conflicting=None):
        super().__init__(message)
        self.conflicting = conflicting


class InvalidTransitionError(BookingError):
    """Requested status change is not allowed from the current status."""


class CancellationNotAllowedError(BookingError):
    """Customer tried to cancel inside the cancellation window."""
