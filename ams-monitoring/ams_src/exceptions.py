"""Exceptions raised by the AMS monitoring engine."""


class MonitoringError(Exception):
    """Base class for monitoring engine errors."""


class ValidationError(MonitoringError, ValueError):
    """A required field is missing or invalid.

    Raised before any mutation is attempted, so the record is unchanged.
    The ``field`` attribute names the input the caller should re-prompt for.
    """

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class InvalidTransitionError(ValidationError):
    """The requested action is not allowed from the current status."""

    def __init__(self, action: str, current_status: str, subject: str = "an episode"):
        self.action = action
        self.current_status = current_status
        super().__init__("status", f"Cannot {action} {subject} that is {current_status}")


class ConfirmationRequiredError(ValidationError):
    """A destructive action was requested without explicit confirmation."""

    def __init__(self, action: str):
        self.action = action
        super().__init__("confirmed", f"{action} must be confirmed before it is applied")


class RecordNotFoundError(MonitoringError, LookupError):
    """Unknown patient, episode, or transfer entry."""


class PersistenceError(MonitoringError):
    """The document store was unreachable or rejected the write.

    The operation must be treated as not applied.
    """
