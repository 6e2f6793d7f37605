"""Verification domain model: scan audit trail, lookup results and public reports."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from shared.domain.exceptions import ValidationError
from registry.domain.model import DrugRecord
from registry.domain.status import StatusReport
from verification.domain.events import CounterfeitReported, RecalledDrugScanned


@dataclass(eq=False)
class ScanEvent:
    """Immutable audit record of one successful lookup."""
    scan_id: str
    code: str
    performed_by: str
    result_status: str         # effective status label, e.g. 'Recalled'
    recalled_flag: bool
    expiring_soon_flag: bool
    timestamp: datetime
    events: List = field(default_factory=list, repr=False)

    def __eq__(self, other):
        if not isinstance(other, ScanEvent):
            return False
        return other.scan_id == self.scan_id

    def __hash__(self):
        return hash(self.scan_id)

    @classmethod
    def record(cls, record: DrugRecord, report: StatusReport, scanner_id: str,
               now: Optional[datetime] = None) -> "ScanEvent":
        """
        Create the scan row for a lookup of ``record``.

        A scan that observes a recall raises RecalledDrugScanned, once per scan.
        """
        scan = cls(
            scan_id=str(uuid4()),
            code=record.code,
            performed_by=scanner_id,
            result_status=report.effective_status.value,
            recalled_flag=report.is_recalled,
            expiring_soon_flag=report.is_expiring_soon,
            timestamp=now or datetime.now(timezone.utc),
        )
        if report.is_recalled:
            scan.events.append(
                RecalledDrugScanned(
                    scan_id=scan.scan_id,
                    code=record.code,
                    drug_name=record.drug_name,
                    scanned_by=scanner_id,
                    scanned_at=scan.timestamp,
                )
            )
        return scan


@dataclass(frozen=True)
class VerificationResult:
    code: str
    drug_name: str
    manufacturer_id: str
    batch_number: str
    expiry_date: str
    description: Optional[str]
    status: str
    is_recalled: bool
    is_expired: bool
    is_expiring_soon: bool
    is_counterfeit_suspected: bool
    custody_log: List[Dict[str, Any]]
    scan_id: Optional[str] = None

    @classmethod
    def build(cls, record: DrugRecord, report: StatusReport) -> "VerificationResult":
        # custody log in append order, which is the chronological order
        trace = [
            {
                "position": step.position,
                "description": step.description,
                "timestamp": step.timestamp.isoformat(),
            }
            for step in record.custody_log
        ]
        return cls(
            code=record.code,
            drug_name=record.drug_name,
            manufacturer_id=record.manufacturer_id,
            batch_number=record.batch_number,
            expiry_date=record.expiry_date.isoformat(),
            description=record.description,
            status=report.effective_status.value,
            is_recalled=report.is_recalled,
            is_expired=report.is_expired,
            is_expiring_soon=report.is_expiring_soon,
            is_counterfeit_suspected=report.is_counterfeit_suspected,
            custody_log=trace,
        )


@dataclass(eq=False)
class CounterfeitReport:
    report_id: str
    description: str
    reported_by: str
    code: Optional[str] = None
    contact: Optional[str] = None
    reported_at: Optional[datetime] = None
    events: List = field(default_factory=list, repr=False)

    def __hash__(self):
        return hash(self.report_id)

    def validate(self) -> None:
        # a report needs something to go on: a code, a description, or both
        if not (self.code or "").strip() and not (self.description or "").strip():
            raise ValidationError("A counterfeit report needs a code or a description")

    def file(self, now: Optional[datetime] = None) -> None:
        self.reported_at = now or datetime.now(timezone.utc)
        self.events.append(
            CounterfeitReported(
                report_id=self.report_id,
                code=self.code or "",
                reported_by=self.reported_by,
                reported_at=self.reported_at,
            )
        )


def new_report_id() -> str:
    return str(uuid4())
