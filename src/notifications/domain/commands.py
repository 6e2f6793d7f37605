"""Commands for the notification outbox."""

from dataclasses import dataclass

from shared.domain.commands import Command


@dataclass
class AcknowledgeNotification(Command):
    """Command to mark a notification as read by its recipient."""
    notification_id: str
