"""Commands for the drug registry service."""

from dataclasses import dataclass
from datetime import date
from typing import Optional, Union

from shared.domain.commands import PrivilegedCommand


@dataclass
class RegisterManufacturer(PrivilegedCommand):
    """Command to register a manufacturer under a unique id."""
    id: str
    name: str
    location: str
    contact: Optional[str] = None


@dataclass
class RegisterDrug(PrivilegedCommand):
    """Command to register a new drug batch under its QR code."""
    code: str
    drug_name: str
    manufacturer_id: str
    batch_number: str
    expiry_date: Union[date, str]  # date or 'YYYY-MM-DD'
    description: Optional[str] = None


@dataclass
class AddCustodyStep(PrivilegedCommand):
    """Command to append a supply-chain hand-off to a registered batch."""
    code: str
    description: str


@dataclass
class UpdateDrugStatus(PrivilegedCommand):
    """Command to move a batch to a new status (the only way status changes)."""
    code: str
    new_status: str  # one of DrugStatus values, e.g. 'Recalled'
