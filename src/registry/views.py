"""
Views for read operations - separate from command/write path.

Views serialize inside the unit of work so callers never touch detached
ORM instances.
"""
import logging
from datetime import date
from typing import Any, Dict, List, Optional

from registry.domain import model
from registry.domain.status import DEFAULT_THRESHOLD_DAYS, is_expiring_soon
from registry.service_layer.unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)


def serialize_drug(record: model.DrugRecord) -> Dict[str, Any]:
    return {
        "code": record.code,
        "drug_name": record.drug_name,
        "manufacturer_id": record.manufacturer_id,
        "batch_number": record.batch_number,
        "expiry_date": record.expiry_date.isoformat(),
        "description": record.description,
        "status": record.status.value,
        "registered_at": record.registered_at.isoformat() if record.registered_at else None,
        "custody_log": [serialize_step(step) for step in record.custody_log],
    }


def serialize_step(step: model.CustodyStep) -> Dict[str, Any]:
    return {
        "position": step.position,
        "description": step.description,
        "timestamp": step.timestamp.isoformat(),
    }


def serialize_manufacturer(manufacturer: model.Manufacturer) -> Dict[str, Any]:
    return {
        "id": manufacturer.id,
        "name": manufacturer.name,
        "location": manufacturer.location,
        "contact": manufacturer.contact,
        "registered_at": manufacturer.registered_at.isoformat() if manufacturer.registered_at else None,
    }


def list_expiring(
    threshold_days: int,
    uow: AbstractUnitOfWork,
    today: Optional[date] = None,
) -> List[Dict[str, Any]]:
    """
    Drugs expiring within ``threshold_days`` (exclusive of today, inclusive
    of the horizon), soonest first, ties broken by code.
    """
    today = today or date.today()
    if threshold_days is None:
        threshold_days = DEFAULT_THRESHOLD_DAYS

    with uow:
        expiring = [
            record for record in uow.drugs.list()
            if is_expiring_soon(record.expiry_date, today, threshold_days)
        ]
        expiring.sort(key=lambda record: (record.expiry_date, record.code))

        results = []
        for record in expiring:
            row = serialize_drug(record)
            row["days_until_expiry"] = (record.expiry_date - today).days
            results.append(row)

    logger.info(f"{len(results)} drugs expire within {threshold_days} days of {today.isoformat()}")
    return results


def list_drugs(uow: AbstractUnitOfWork) -> List[Dict[str, Any]]:
    with uow:
        return [serialize_drug(record) for record in uow.drugs.list()]


def get_drug(code: str, uow: AbstractUnitOfWork) -> Dict[str, Any]:
    """Full record including custody log and status history. Raises NotFound."""
    with uow:
        record = uow.drugs.get(code)
        drug = serialize_drug(record)
        drug["status_history"] = [
            {
                "old_status": change.old_status.value,
                "new_status": change.new_status.value,
                "changed_at": change.changed_at.isoformat(),
            }
            for change in record.status_history
        ]
    return drug


def list_manufacturers(uow: AbstractUnitOfWork) -> List[Dict[str, Any]]:
    with uow:
        return [serialize_manufacturer(m) for m in uow.manufacturers.list()]
