"""Message bus wiring for the verification service."""

from __future__ import annotations
from typing import TYPE_CHECKING

from shared.service_layer.messagebus import MessageBus
from notifications.domain.commands import AcknowledgeNotification
from verification.domain.commands import CheckPackageImage, ReportCounterfeit, VerifyDrug
from verification.domain.events import CounterfeitReported, RecalledDrugScanned
from verification.service_layer import handlers

if TYPE_CHECKING:
    from verification.service_layer.unit_of_work import AbstractUnitOfWork

# Recall alerts are queued here, after the scan is committed, so a
# dispatcher outage never turns a verification into an error.
EVENT_HANDLERS = {
    RecalledDrugScanned: [handlers.send_recall_alerts],
    CounterfeitReported: [handlers.log_counterfeit_report],
}

COMMAND_HANDLERS = {
    VerifyDrug: handlers.verify_drug,
    ReportCounterfeit: handlers.report_counterfeit,
    CheckPackageImage: handlers.check_package_image,
    AcknowledgeNotification: handlers.acknowledge_notification,
}

bus = MessageBus(COMMAND_HANDLERS, EVENT_HANDLERS)


def handle(message, uow: AbstractUnitOfWork, authorized: bool = False):
    return bus.handle(message, uow, authorized=authorized)
