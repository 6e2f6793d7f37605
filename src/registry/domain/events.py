"""Domain events for the drug registry."""

from dataclasses import dataclass
from datetime import datetime

from shared.domain.commands import Event


@dataclass
class DrugRegistered(Event):
    """Event raised when a new batch has been durably registered."""
    code: str
    drug_name: str
    manufacturer_id: str
    batch_number: str
    expiry_date: str  # 'YYYY-MM-DD'
    registered_at: datetime


@dataclass
class CustodyStepAdded(Event):
    """Event raised when a custody step has been appended to a batch."""
    code: str
    description: str
    position: int
    timestamp: datetime


@dataclass
class DrugStatusChanged(Event):
    """Event raised on every status transition (e.g. Authentic -> Recalled)."""
    code: str
    drug_name: str
    old_status: str
    new_status: str
    changed_at: datetime
