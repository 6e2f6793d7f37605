import logging
from dataclasses import replace
from datetime import date
from typing import Any, Dict, Optional

import config
from shared.domain.exceptions import BackendUnavailable, NotFound, ValidationError
from shared.service_layer.retry import idempotent_retry
from registry.domain.model import DrugRecord, validate_code
from registry.domain.status import RecallPredicate, code_marker_predicate, derive_status
from notifications.domain.commands import AcknowledgeNotification
from notifications.domain.model import recall_alert
from verification.adapters.image_scorer import ImageScorerError
from verification.domain import model
from verification.domain.commands import (
    ANONYMOUS_SCANNER,
    CheckPackageImage,
    ReportCounterfeit,
    VerifyDrug,
)
from verification.domain.events import CounterfeitReported, RecalledDrugScanned
from verification.service_layer.unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)


def recall_predicate_from_config() -> Optional[RecallPredicate]:
    marker = config.get_recall_code_marker()
    return code_marker_predicate(marker) if marker else None


@idempotent_retry
def _load_record(uow: AbstractUnitOfWork, code: str) -> DrugRecord:
    return uow.drugs.get(code)


def verify_drug(
    command: VerifyDrug,
    uow: AbstractUnitOfWork
) -> model.VerificationResult:
    """
    Verify a scanned code.

    Flow:
    1. Load the record through the registry store (reads are retried)
    2. Derive the effective status and alert flags
    3. Persist a ScanEvent for this lookup, every time
    4. A recalled batch raises RecalledDrugScanned; its handler queues the
       alert after this handler returns, so a dispatcher failure cannot fail
       the verification

    Unknown codes raise NotFound and leave no scan behind. Store failures
    raise BackendUnavailable; nothing is ever reported as authentic by default.

    Returns:
        VerificationResult including the custody log in append order
    """
    validate_code(command.code)
    scanner_id = (command.scanner_id or "").strip() or ANONYMOUS_SCANNER
    today = command.today or date.today()
    threshold_days = (
        command.threshold_days if command.threshold_days is not None
        else config.get_expiry_threshold_days()
    )

    logger.info(f"Processing VerifyDrug command for code {command.code} by {scanner_id}")

    with uow:
        try:
            record = _load_record(uow, command.code)
        except NotFound:
            logger.info(f"Code {command.code} is unknown, no scan recorded")
            raise

        report = derive_status(
            record,
            today,
            threshold_days=threshold_days,
            recall_predicate=recall_predicate_from_config(),
        )
        result = model.VerificationResult.build(record, report)

        scan = model.ScanEvent.record(record, report, scanner_id)
        scan_id = uow.scans.add(scan)
        uow.commit()

    logger.info(
        f"Verified {command.code}: {report.effective_status.value} "
        f"(alerts: {', '.join(report.alerts) or 'none'}), scan {scan_id}"
    )
    return _with_scan_id(result, scan_id)


def _with_scan_id(result: model.VerificationResult, scan_id: str) -> model.VerificationResult:
    return replace(result, scan_id=scan_id)


def send_recall_alerts(event: RecalledDrugScanned, uow: AbstractUnitOfWork):
    """
    Queue one RecallAlert per subject for a scan that observed a recall.

    Subjects are the scanner and, if configured, the recall desk. Best effort:
    a dispatcher failure drops the alert and is logged.
    """
    subjects = [event.scanned_by]
    recall_desk = config.get_recall_subject_id()
    if recall_desk and recall_desk not in subjects:
        subjects.append(recall_desk)

    for subject_id in subjects:
        notification = recall_alert(subject_id, event.drug_name, event.code)
        try:
            queued = uow.notifications.enqueue(notification)
        except BackendUnavailable as e:
            logger.error(f"Dropped recall alert for {subject_id} about {event.code}: {e}")
            continue

        if queued:
            logger.info(f"Queued recall alert {queued} for {subject_id} about {event.code}")


def acknowledge_notification(
    command: AcknowledgeNotification,
    uow: AbstractUnitOfWork
) -> bool:
    """Mark a notification read; acknowledging twice is not an error."""
    logger.info(f"Processing AcknowledgeNotification command for {command.notification_id}")
    return uow.notifications.acknowledge(command.notification_id)


def report_counterfeit(
    command: ReportCounterfeit,
    uow: AbstractUnitOfWork
) -> str:
    """
    File a suspected-counterfeit report. Reports are stored for review and do
    not change the drug's status.
    """
    report = model.CounterfeitReport(
        report_id=model.new_report_id(),
        description=(command.description or "").strip(),
        reported_by=(command.reported_by or "").strip() or ANONYMOUS_SCANNER,
        code=(command.code or "").strip() or None,
        contact=(command.contact or "").strip() or None,
    )
    report.validate()
    report.file()

    logger.info(f"Processing ReportCounterfeit command {report.report_id} (code {report.code})")

    with uow:
        report_id = uow.reports.add(report)
        uow.commit()

    return report_id


def log_counterfeit_report(event: CounterfeitReported, uow: AbstractUnitOfWork):
    logger.warning(
        f"Counterfeit suspected by {event.reported_by}: report {event.report_id}, "
        f"code {event.code or 'n/a'}"
    )


def check_package_image(
    command: CheckPackageImage,
    uow: AbstractUnitOfWork
) -> Dict[str, Any]:
    """
    Score a package photo with the external image scorer.

    The score is an untrusted signal: it is returned next to the registry's
    own verdict (when a code is given) and never changes a drug's status.

    Raises:
        ValidationError: If no image reference is given
        ImageScorerError: If the scorer fails
    """
    if not (command.image_ref or "").strip():
        raise ValidationError("An image reference is required")

    scanner_id = (command.scanner_id or "").strip() or ANONYMOUS_SCANNER
    logger.info(f"Processing CheckPackageImage command for {command.image_ref} by {scanner_id}")

    try:
        score = uow.image_scorer.score(command.image_ref)
    except ImageScorerError:
        logger.error(f"Image scoring failed for {command.image_ref} (requested by {scanner_id})")
        raise

    result = {
        "image_ref": command.image_ref,
        "checked_by": scanner_id,
        "authenticity_label": score.authenticity_label,
        "confidence": score.confidence,
        "details": score.details,
        "advisory": True,
        "registry_status": None,
    }

    if command.code:
        today = date.today()
        with uow:
            record = _load_record(uow, command.code)
            report = derive_status(
                record,
                today,
                threshold_days=config.get_expiry_threshold_days(),
                recall_predicate=recall_predicate_from_config(),
            )
            result["registry_status"] = report.effective_status.value

    return result
