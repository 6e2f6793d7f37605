"""
Drug provenance domain model.

A DrugRecord is written once at registration and afterwards only grows:
custody steps are appended, status transitions are recorded in a history.
Records are never deleted.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional

from shared.domain.exceptions import ValidationError
from registry.domain.events import CustodyStepAdded, DrugRegistered, DrugStatusChanged


class DrugStatus(Enum):
    """Stored trust status of a batch. Values match the persisted strings."""
    AUTHENTIC = "Authentic"
    RECALLED = "Recalled"
    COUNTERFEIT = "Counterfeit"
    UNKNOWN = "Unknown"


def validate_code(code) -> str:
    """A code is any non-blank string."""
    if not isinstance(code, str) or not code.strip():
        raise ValidationError("Drug code must be a non-empty string")
    return code


def parse_status(value) -> DrugStatus:
    """Accept a DrugStatus, its stored value ('Recalled') or its name ('RECALLED'), case-insensitively."""
    if isinstance(value, DrugStatus):
        return value
    if isinstance(value, str):
        wanted = value.strip().lower()
        for status in DrugStatus:
            if wanted in (status.value.lower(), status.name.lower()):
                return status
    raise ValidationError(
        f"Unknown drug status {value!r}; expected one of {[s.value for s in DrugStatus]}"
    )


def coerce_date(value, field_name: str = "expiry_date") -> date:
    """Accept a date, a datetime or an ISO 'YYYY-MM-DD' string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value.strip():
        try:
            return date.fromisoformat(value.strip())
        except ValueError as e:
            raise ValidationError(f"{field_name} must be an ISO date (YYYY-MM-DD), got {value!r}") from e
    raise ValidationError(f"{field_name} is required")


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


@dataclass
class CustodyStep:
    """One hand-off in the supply chain (e.g. "received at warehouse")."""
    description: str
    timestamp: datetime
    position: int = 0


@dataclass
class StatusChange:
    """Audit row written for every status transition."""
    code: str
    old_status: DrugStatus
    new_status: DrugStatus
    changed_at: datetime


@dataclass(eq=False)
class Manufacturer:
    id: str
    name: str
    location: str
    contact: Optional[str] = None
    registered_at: Optional[datetime] = None

    def __eq__(self, other):
        if not isinstance(other, Manufacturer):
            return False
        return other.id == self.id

    def __hash__(self):
        return hash(self.id)

    def validate(self) -> None:
        missing = [
            name for name in ("id", "name", "location")
            if not isinstance(getattr(self, name), str) or not getattr(self, name).strip()
        ]
        if missing:
            raise ValidationError(f"Manufacturer is missing required fields: {', '.join(missing)}")


@dataclass(eq=False)
class DrugRecord:
    code: str
    drug_name: str
    manufacturer_id: str
    batch_number: str
    expiry_date: date
    description: Optional[str] = None
    status: DrugStatus = DrugStatus.AUTHENTIC
    registered_at: Optional[datetime] = None
    custody_log: List[CustodyStep] = field(default_factory=list)
    status_history: List[StatusChange] = field(default_factory=list)
    events: List = field(default_factory=list, repr=False)

    def __eq__(self, other):
        if not isinstance(other, DrugRecord):
            return False
        return other.code == self.code

    def __hash__(self):
        return hash(self.code)

    def validate(self) -> None:
        """Check the immutable registration facts are all present."""
        validate_code(self.code)
        missing = [
            name for name in ("drug_name", "manufacturer_id", "batch_number")
            if not isinstance(getattr(self, name), str) or not getattr(self, name).strip()
        ]
        if missing:
            raise ValidationError(f"Drug {self.code} is missing required fields: {', '.join(missing)}")
        self.expiry_date = coerce_date(self.expiry_date)
        if not isinstance(self.status, DrugStatus):
            raise ValidationError(f"Unknown drug status {self.status!r}")

    def register(self, now: Optional[datetime] = None) -> None:
        """Mark record as registered and generate the DrugRegistered event."""
        self.registered_at = now or datetime.now(timezone.utc)
        self.events.append(
            DrugRegistered(
                code=self.code,
                drug_name=self.drug_name,
                manufacturer_id=self.manufacturer_id,
                batch_number=self.batch_number,
                expiry_date=self.expiry_date.isoformat(),
                registered_at=self.registered_at,
            )
        )

    def append_step(self, step: CustodyStep) -> CustodyStep:
        """
        Append a custody step at the end of the log.

        Timestamps are clamped so they never precede the last recorded step;
        existing steps are never touched or reordered.
        """
        if self.custody_log:
            last = self.custody_log[-1]
            if _as_utc(step.timestamp) < _as_utc(last.timestamp):
                step.timestamp = last.timestamp
        step.position = len(self.custody_log)
        self.custody_log.append(step)

        self.events.append(
            CustodyStepAdded(
                code=self.code,
                description=step.description,
                position=step.position,
                timestamp=step.timestamp,
            )
        )
        return step

    def change_status(self, new_status: DrugStatus, now: Optional[datetime] = None) -> Optional[StatusChange]:
        """Record a status transition. Setting the current status again is a no-op."""
        if new_status == self.status:
            return None

        change = StatusChange(
            code=self.code,
            old_status=self.status,
            new_status=new_status,
            changed_at=now or datetime.now(timezone.utc),
        )
        self.status_history.append(change)
        self.status = new_status

        self.events.append(
            DrugStatusChanged(
                code=self.code,
                drug_name=self.drug_name,
                old_status=change.old_status.value,
                new_status=change.new_status.value,
                changed_at=change.changed_at,
            )
        )
        return change
