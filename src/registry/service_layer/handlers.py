import logging
from datetime import datetime, timezone

from shared.domain.exceptions import Conflict, ValidationError
from shared.service_layer.retry import idempotent_retry
from registry.adapters.repository import AlreadyExists
from registry.domain import model
from registry.domain.commands import (
    AddCustodyStep,
    RegisterDrug,
    RegisterManufacturer,
    UpdateDrugStatus,
)
from registry.domain.events import CustodyStepAdded, DrugRegistered, DrugStatusChanged
from registry.service_layer.unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)

EVENT_CHANNELS = {
    DrugRegistered: "mediverify:registrations",
    CustodyStepAdded: "mediverify:custody",
    DrugStatusChanged: "mediverify:status-changes",
}


def register_manufacturer(
    command: RegisterManufacturer,
    uow: AbstractUnitOfWork
) -> str:
    """
    Register a manufacturer.

    Raises:
        ValidationError: If id, name or location is missing
        Conflict: If the manufacturer id is already registered
    """
    logger.info(f"Processing RegisterManufacturer command for {command.id}")

    manufacturer = model.Manufacturer(
        id=command.id,
        name=command.name,
        location=command.location,
        contact=command.contact or None,
        registered_at=datetime.now(timezone.utc),
    )
    manufacturer.validate()

    with uow:
        try:
            manufacturer_id = uow.manufacturers.add(manufacturer)
        except AlreadyExists as e:
            logger.warning(f"Manufacturer {command.id} already registered")
            raise Conflict(f"Manufacturer {command.id} already exists") from e
        uow.commit()

    logger.info(f"Registered manufacturer {manufacturer_id}")
    return manufacturer_id


def register_drug(
    command: RegisterDrug,
    uow: AbstractUnitOfWork
) -> str:
    """
    Register a new drug batch under its QR code.

    Flow:
    1. Validate the immutable registration facts
    2. Create the record through the store (idempotent by code, retried on
       transient failures)
    3. Commit; a retry that finds its own earlier write reports Conflict

    The manufacturer id is not checked against registered manufacturers.

    Raises:
        ValidationError: If a required field is missing or malformed
        Conflict: If the code is already registered
        BackendUnavailable: If the store stays unreachable after retries
    """
    logger.info(f"Processing RegisterDrug command for code {command.code}")

    record = model.DrugRecord(
        code=command.code,
        drug_name=command.drug_name,
        manufacturer_id=command.manufacturer_id,
        batch_number=command.batch_number,
        expiry_date=command.expiry_date,
        description=command.description or None,
    )
    record.validate()
    record.register()

    try:
        with uow:
            _create_and_commit(uow, record)
    except AlreadyExists as e:
        logger.warning(f"Drug {command.code} already registered")
        raise Conflict(f"Drug {command.code} already exists") from e

    logger.info(f"Registered drug {command.code} (batch {command.batch_number})")
    return command.code


@idempotent_retry
def _create_and_commit(uow: AbstractUnitOfWork, record: model.DrugRecord):
    uow.drugs.create(record)
    uow.commit()


def add_custody_step(
    command: AddCustodyStep,
    uow: AbstractUnitOfWork
) -> int:
    """
    Append a custody step with a server-assigned timestamp.

    Not retried: a timed-out append may already be stored.

    Returns:
        position: Index of the new step in the custody log
    """
    logger.info(f"Processing AddCustodyStep command for code {command.code}")

    if not isinstance(command.description, str) or not command.description.strip():
        raise ValidationError("Custody step description is required")

    step = model.CustodyStep(
        description=command.description.strip(),
        timestamp=datetime.now(timezone.utc),
    )

    with uow:
        appended = uow.drugs.append_custody_step(command.code, step)
        position = appended.position
        uow.commit()

    logger.info(f"Appended custody step {position} to drug {command.code}")
    return position


def update_status(
    command: UpdateDrugStatus,
    uow: AbstractUnitOfWork
) -> str:
    """
    Move a drug batch to a new status, recording the transition.

    Returns:
        The status now in effect
    """
    new_status = model.parse_status(command.new_status)
    logger.info(f"Processing UpdateDrugStatus command for code {command.code} -> {new_status.value}")

    with uow:
        change = uow.drugs.set_status(command.code, new_status)
        # read before commit, the change row is expired once the session closes
        transition = None if change is None else (change.old_status.value, change.new_status.value)
        uow.commit()

    if transition is None:
        logger.info(f"Drug {command.code} already {new_status.value}, nothing recorded")
    else:
        logger.info(f"Drug {command.code} moved {transition[0]} -> {transition[1]}")
    return new_status.value


def publish_registry_event(event, uow: AbstractUnitOfWork):
    """
    Publish registry events to Redis for external consumers (dashboards,
    distributor systems).

    Args:
        event: DrugRegistered, CustodyStepAdded or DrugStatusChanged
        uow: Unit of work
    """
    channel = EVENT_CHANNELS[type(event)]
    logger.info(f"Publishing {type(event).__name__} for drug {event.code} on {channel}")
    try:
        # Import here so that importing handlers never opens a Redis client
        from registry.adapters import redis_adapter

        redis_adapter.publish(channel, event)

    except Exception as e:
        logger.error(f"Failed to publish {type(event).__name__} for {event.code}: {e}")
        # Don't re-raise - external failures shouldn't break the flow
