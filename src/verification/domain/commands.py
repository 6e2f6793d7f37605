"""Commands for the verification service."""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from shared.domain.commands import Command

ANONYMOUS_SCANNER = "anonymous"


@dataclass
class VerifyDrug(Command):
    """Command to look up a scanned QR code and record the scan."""
    code: str
    scanner_id: str = ANONYMOUS_SCANNER
    today: Optional[date] = None  # defaults to the current date
    threshold_days: Optional[int] = None  # expiring-soon window, defaults to config


@dataclass
class ReportCounterfeit(Command):
    """Command to file a suspected-counterfeit report from the public."""
    description: str = ""
    code: Optional[str] = None
    contact: Optional[str] = None
    reported_by: str = ANONYMOUS_SCANNER


@dataclass
class CheckPackageImage(Command):
    """Command to score a package photo with the external image scorer (advisory only)."""
    image_ref: str
    scanner_id: str = ANONYMOUS_SCANNER
    code: Optional[str] = None
