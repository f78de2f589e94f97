"""Exception types raised by the notification pipeline."""


class NotificationError(Exception):
    """Base class for notification pipeline errors."""


class RenderError(NotificationError):
    """Template is unknown or the data does not satisfy it."""

    def __init__(self, template_id: str, message: str) -> None:
        super().__init__(f"Template '{template_id}' could not be rendered: {message}")
        self.template_id = template_id


class DeliveryError(NotificationError):
    """Delivery provider failure.

    ``permanent`` marks failures that retrying cannot fix, such as an
    invalid recipient.
    """

    def __init__(
        self, message: str, permanent: bool = False, code: str | None = None
    ) -> None:
        super().__init__(message)
        self.permanent = permanent
        self.code = code


class DispatchError(NotificationError):
    """In-memory retries for a dispatch id were exhausted."""

    def __init__(self, dispatch_id: str, attempts: int, message: str) -> None:
        super().__init__(
            f"Dispatch {dispatch_id} failed after {attempts} attempts: {message}"
        )
        self.dispatch_id = dispatch_id
        self.attempts = attempts


class ReminderSchedulerError(NotificationError):
    """Reminder schedule could not be created, cancelled or advanced."""


class ScheduleComputationError(ReminderSchedulerError):
    """Next fire time could not be computed for a schedule entry."""


class StoreError(NotificationError):
    """Record store operation failed."""
