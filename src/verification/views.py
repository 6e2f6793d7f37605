"""
Views for read operations - separate from command/write path.
Scan history comes from the scans table, notifications straight from the
dispatcher's per-subject queue.
"""
import logging
from typing import Any, Dict, List

from verification.adapters.repository import DEFAULT_HISTORY_LIMIT
from verification.service_layer.unit_of_work import AbstractUnitOfWork

logger = logging.getLogger(__name__)

MAX_HISTORY_LIMIT = 500


def list_scan_history(
    subject_id: str,
    uow: AbstractUnitOfWork,
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> List[Dict[str, Any]]:
    """Most recent scans performed by ``subject_id``, newest first."""
    limit = min(max(int(limit), 0), MAX_HISTORY_LIMIT)
    if limit == 0:
        return []

    with uow:
        return [
            {
                "scan_id": scan.scan_id,
                "code": scan.code,
                "performed_by": scan.performed_by,
                "result_status": scan.result_status,
                "is_recalled": scan.recalled_flag,
                "is_expiring_soon": scan.expiring_soon_flag,
                "scanned_at": scan.timestamp.isoformat(),
            }
            for scan in uow.scans.list_for(subject_id, limit)
        ]


def list_notifications(subject_id: str, uow: AbstractUnitOfWork) -> Dict[str, Any]:
    """Notifications for ``subject_id``, newest first, with the unread count."""
    notifications = uow.notifications.list_for(subject_id)
    return {
        "subject_id": subject_id,
        "unread_count": sum(1 for n in notifications if not n.is_read),
        "notifications": [
            {
                "id": n.id,
                "kind": n.kind.value,
                "message": n.message,
                "related_code": n.related_code,
                "is_read": n.is_read,
                "created_at": n.created_at.isoformat(),
            }
            for n in notifications
        ],
    }


def list_counterfeit_reports(uow: AbstractUnitOfWork) -> List[Dict[str, Any]]:
    with uow:
        return [
            {
                "report_id": report.report_id,
                "code": report.code,
                "description": report.description,
                "contact": report.contact,
                "reported_by": report.reported_by,
                "reported_at": report.reported_at.isoformat(),
            }
            for report in uow.reports.list()
        ]
