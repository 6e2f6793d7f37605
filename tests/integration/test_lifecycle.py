"""
End-to-end flow through both service layers on one SQLite database:
register, trace, verify, recall, alert, acknowledge.
"""
from datetime import date, datetime, timedelta, timezone

import pytest

from shared.domain.exceptions import NotFound
from registry.domain.commands import AddCustodyStep, RegisterManufacturer, UpdateDrugStatus
from registry.service_layer import messagebus as registry_bus
from notifications.domain.commands import AcknowledgeNotification
from verification import views
from verification.domain.commands import ReportCounterfeit, VerifyDrug
from verification.domain.model import ScanEvent
from verification.service_layer import messagebus as verification_bus


def admin(cmd, uow):
    [result] = registry_bus.handle(cmd, uow, authorized=True)
    return result


def verify(uow, code, scanner_id="pharmacist-1", today=None):
    [result] = verification_bus.handle(
        VerifyDrug(code=code, scanner_id=scanner_id, today=today), uow
    )
    return result


def test_full_lifecycle(registry_uow_factory, verification_uow_factory, drug_command, dispatcher):
    admin(RegisterManufacturer(id="MFR-1", name="Acme Pharma", location="Lagos"), registry_uow_factory())
    admin(drug_command("MV-100"), registry_uow_factory())
    admin(AddCustodyStep(code="MV-100", description="Manufactured"), registry_uow_factory())
    admin(AddCustodyStep(code="MV-100", description="Received at pharmacy"), registry_uow_factory())

    before = verify(verification_uow_factory(), "MV-100")

    assert before.status == "Authentic"
    assert [s["description"] for s in before.custody_log] == ["Manufactured", "Received at pharmacy"]
    assert dispatcher.list_for("pharmacist-1") == []

    admin(UpdateDrugStatus(code="MV-100", new_status="Recalled"), registry_uow_factory())
    after = verify(verification_uow_factory(), "MV-100")

    assert after.status == "Recalled"
    assert after.is_recalled is True
    assert len(after.custody_log) == 2

    history = views.list_scan_history("pharmacist-1", verification_uow_factory())
    assert [h["scan_id"] for h in history] == [after.scan_id, before.scan_id]
    assert [h["result_status"] for h in history] == ["Recalled", "Authentic"]

    inbox = views.list_notifications("pharmacist-1", verification_uow_factory())
    assert inbox["unread_count"] == 1
    [alert] = inbox["notifications"]
    assert alert["related_code"] == "MV-100"
    assert alert["kind"] == "RecallAlert"

    verification_bus.handle(AcknowledgeNotification(alert["id"]), verification_uow_factory())
    verification_bus.handle(AcknowledgeNotification(alert["id"]), verification_uow_factory())

    inbox = views.list_notifications("pharmacist-1", verification_uow_factory())
    assert inbox["unread_count"] == 0
    assert inbox["notifications"][0]["is_read"] is True


def test_unknown_code_writes_nothing(verification_uow_factory, dispatcher):
    with pytest.raises(NotFound):
        verify(verification_uow_factory(), "FAKE-999")

    assert views.list_scan_history("pharmacist-1", verification_uow_factory()) == []
    assert dispatcher.list_for("pharmacist-1") == []


def test_expired_batch_is_flagged(registry_uow_factory, verification_uow_factory, drug_command):
    admin(drug_command("MV-OLD", expiry_date=date(2023, 12, 31)), registry_uow_factory())

    result = verify(verification_uow_factory(), "MV-OLD", today=date(2024, 1, 1))

    assert result.status == "Expired"
    assert result.is_expired is True
    assert result.is_expiring_soon is False


def test_scan_history_is_newest_first_and_limited(verification_uow_factory):
    t0 = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)
    with verification_uow_factory() as uow:
        for i in range(5):
            uow.scans.add(
                ScanEvent(
                    scan_id=f"scan-{i}",
                    code="MV-1",
                    performed_by="p1",
                    result_status="Authentic",
                    recalled_flag=False,
                    expiring_soon_flag=False,
                    timestamp=t0 + timedelta(minutes=i),
                )
            )
        uow.commit()

    history = views.list_scan_history("p1", verification_uow_factory(), limit=3)

    assert [h["scan_id"] for h in history] == ["scan-4", "scan-3", "scan-2"]
    assert views.list_scan_history("p1", verification_uow_factory(), limit=0) == []
    assert views.list_scan_history("someone-else", verification_uow_factory()) == []


def test_counterfeit_reports_are_listed(verification_uow_factory):
    verification_bus.handle(
        ReportCounterfeit(code="MV-7", description="Blurry hologram", contact="+234 800"),
        verification_uow_factory(),
    )

    [report] = views.list_counterfeit_reports(verification_uow_factory())

    assert report["code"] == "MV-7"
    assert report["reported_by"] == "anonymous"
    assert report["contact"] == "+234 800"
