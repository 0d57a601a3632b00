# haatbazaar/modules/notifications/exceptions.py
from haatbazaar.core.exceptions import NotFoundError


class NotificationError(Exception):
    """Base exception for notification errors."""
    pass


class NotificationNotFoundError(NotificationError, NotFoundError):
    def __init__(self, notification_id: str):
        super().__init__("Notification not found")
        self.notification_id = notification_id


class DeliveryError(NotificationError):
    """A channel failed to deliver an outbox entry. The dispatcher retries it."""

    def __init__(self, channel: str, reason: str):
        super().__init__(f"{channel} delivery failed: {reason}")
        self.channel = channel
        self.reason = reason
