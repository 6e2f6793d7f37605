from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4


class NotificationKind(Enum):
    RECALL_ALERT = "RecallAlert"


@dataclass
class Notification:
    subject_id: str           # whoever the alert is for (scanner, pharmacy desk, ...)
    kind: NotificationKind
    message: str
    related_code: str         # drug code the alert is about
    is_read: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: str(uuid4()))

    def acknowledge(self) -> bool:
        """Flip to read. Returns False when it was already read."""
        if self.is_read:
            return False
        self.is_read = True
        return True


def recall_alert(subject_id: str, drug_name: str, code: str) -> Notification:
    return Notification(
        subject_id=subject_id,
        kind=NotificationKind.RECALL_ALERT,
        message=f"URGENT RECALL: {drug_name} (code {code}) has been recalled. Do NOT use.",
        related_code=code,
    )
