"""Domain events for the verification service."""

from dataclasses import dataclass
from datetime import datetime

from shared.domain.commands import Event


@dataclass
class RecalledDrugScanned(Event):
    """Event raised for every recorded scan that observed a recalled batch."""
    scan_id: str
    code: str
    drug_name: str
    scanned_by: str
    scanned_at: datetime


@dataclass
class CounterfeitReported(Event):
    """Event raised when a member of the public reports a suspected counterfeit."""
    report_id: str
    code: str  # empty when the reporter had no readable code
    reported_by: str
    reported_at: datetime
