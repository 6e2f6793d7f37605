"""Message bus wiring for the registry service."""

from __future__ import annotations
from typing import TYPE_CHECKING

from shared.service_layer.messagebus import MessageBus
from registry.domain.commands import (
    AddCustodyStep,
    RegisterDrug,
    RegisterManufacturer,
    UpdateDrugStatus,
)
from registry.domain.events import CustodyStepAdded, DrugRegistered, DrugStatusChanged
from registry.service_layer import handlers

if TYPE_CHECKING:
    from registry.service_layer.unit_of_work import AbstractUnitOfWork

# Event handlers - multiple handlers can respond to same event
EVENT_HANDLERS = {
    DrugRegistered: [handlers.publish_registry_event],
    CustodyStepAdded: [handlers.publish_registry_event],
    DrugStatusChanged: [handlers.publish_registry_event],
}

# Command handlers - single handler per command type; all of them are privileged
COMMAND_HANDLERS = {
    RegisterManufacturer: handlers.register_manufacturer,
    RegisterDrug: handlers.register_drug,
    AddCustodyStep: handlers.add_custody_step,
    UpdateDrugStatus: handlers.update_status,
}

bus = MessageBus(COMMAND_HANDLERS, EVENT_HANDLERS)


def handle(message, uow: AbstractUnitOfWork, authorized: bool = False):
    return bus.handle(message, uow, authorized=authorized)
