"""Unit tests for verification handlers with in-memory fakes."""
from datetime import date, datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from shared.domain.exceptions import BackendUnavailable, NotFound, ValidationError
from registry.domain.model import CustodyStep, DrugRecord, DrugStatus
from notifications.domain.commands import AcknowledgeNotification
from verification import views
from verification.adapters.image_scorer import ImageScorerError
from verification.domain.commands import CheckPackageImage, ReportCounterfeit, VerifyDrug
from verification.service_layer import messagebus

TODAY = date(2024, 1, 1)
T0 = datetime(2023, 11, 1, 8, 0, tzinfo=timezone.utc)


def seed(uow, code="MV-1", status=DrugStatus.AUTHENTIC, expiry_date=date(2025, 1, 1)):
    record = DrugRecord(
        code=code,
        drug_name="Amoxicillin 500mg",
        manufacturer_id="MFR-1",
        batch_number="B-1",
        expiry_date=expiry_date,
        status=status,
    )
    record.append_step(CustodyStep("Manufactured", T0))
    record.append_step(CustodyStep("Received at pharmacy", T0 + timedelta(days=2)))
    record.events.clear()
    uow.drugs.create(record)
    return record


def verify(uow, code="MV-1", scanner_id="pharmacist-1"):
    [result] = messagebus.handle(VerifyDrug(code=code, scanner_id=scanner_id, today=TODAY), uow)
    return result


class TestVerifyDrug:
    def test_authentic_batch(self, verification_uow):
        seed(verification_uow)

        result = verify(verification_uow)

        assert result.status == "Authentic"
        assert result.is_recalled is False
        assert result.is_expired is False
        assert [s["description"] for s in result.custody_log] == [
            "Manufactured",
            "Received at pharmacy",
        ]
        assert verification_uow.committed is True

    def test_every_lookup_is_recorded(self, verification_uow):
        seed(verification_uow)

        first = verify(verification_uow)
        second = verify(verification_uow)

        assert first.scan_id != second.scan_id
        scans = verification_uow.scans.scans
        assert [s.scan_id for s in scans] == [first.scan_id, second.scan_id]
        assert all(s.performed_by == "pharmacist-1" for s in scans)

    def test_unknown_code_leaves_no_trace(self, verification_uow, dispatcher):
        with pytest.raises(NotFound):
            verify(verification_uow, code="FAKE-123")

        assert verification_uow.scans.scans == []
        assert dispatcher.list_for("pharmacist-1") == []

    def test_blank_code(self, verification_uow):
        with pytest.raises(ValidationError):
            verify(verification_uow, code="  ")

    def test_store_outage_fails_closed(self, verification_uow):
        seed(verification_uow)
        verification_uow.drugs._get = Mock(side_effect=BackendUnavailable("timeout"))

        with pytest.raises(BackendUnavailable):
            verify(verification_uow)

        assert verification_uow.drugs._get.call_count == 3
        assert verification_uow.scans.scans == []

    def test_blank_scanner_is_anonymous(self, verification_uow):
        seed(verification_uow)

        verify(verification_uow, scanner_id="")

        [scan] = verification_uow.scans.scans
        assert scan.performed_by == "anonymous"

    def test_expiring_soon_flag(self, verification_uow):
        seed(verification_uow, expiry_date=date(2024, 3, 30))

        result = verify(verification_uow)

        assert result.status == "Authentic"
        assert result.is_expiring_soon is True
        assert verification_uow.scans.scans[0].expiring_soon_flag is True


class TestRecallAlerts:
    def test_recalled_scan_notifies_scanner(self, verification_uow, dispatcher):
        seed(verification_uow, status=DrugStatus.RECALLED)

        result = verify(verification_uow)

        assert result.status == "Recalled"
        [notification] = dispatcher.list_for("pharmacist-1")
        assert notification.related_code == "MV-1"
        assert "Amoxicillin 500mg" in notification.message
        assert notification.is_read is False

    def test_repeated_scan_does_not_stack_unread_alerts(self, verification_uow, dispatcher):
        seed(verification_uow, status=DrugStatus.RECALLED)

        verify(verification_uow)
        verify(verification_uow)

        assert len(verification_uow.scans.scans) == 2
        assert dispatcher.unread_count("pharmacist-1") == 1

    def test_recall_desk_is_copied(self, verification_uow, dispatcher, monkeypatch):
        monkeypatch.setenv("RECALL_SUBJECT_ID", "pv-desk")
        seed(verification_uow, status=DrugStatus.RECALLED)

        verify(verification_uow)

        assert dispatcher.unread_count("pharmacist-1") == 1
        assert dispatcher.unread_count("pv-desk") == 1

    def test_dispatcher_outage_does_not_fail_verification(self, verification_uow):
        seed(verification_uow, status=DrugStatus.RECALLED)
        verification_uow.notifications = Mock()
        verification_uow.notifications.enqueue.side_effect = BackendUnavailable("redis down")

        result = verify(verification_uow)

        assert result.status == "Recalled"
        assert len(verification_uow.scans.scans) == 1

    def test_authentic_scan_sends_nothing(self, verification_uow, dispatcher):
        seed(verification_uow)

        verify(verification_uow)

        assert dispatcher.list_for("pharmacist-1") == []

    def test_code_marker_shim(self, verification_uow, dispatcher, monkeypatch):
        monkeypatch.setenv("RECALL_CODE_MARKER", "RECALL")
        seed(verification_uow, code="MV-RECALL-9")

        result = verify(verification_uow, code="MV-RECALL-9")

        assert result.status == "Recalled"
        assert dispatcher.unread_count("pharmacist-1") == 1

    def test_acknowledge_through_the_bus(self, verification_uow, dispatcher):
        seed(verification_uow, status=DrugStatus.RECALLED)
        verify(verification_uow)
        [notification] = dispatcher.list_for("pharmacist-1")

        [changed] = messagebus.handle(AcknowledgeNotification(notification.id), verification_uow)
        [again] = messagebus.handle(AcknowledgeNotification(notification.id), verification_uow)

        assert (changed, again) == (True, False)
        assert views.list_notifications("pharmacist-1", verification_uow)["unread_count"] == 0


class TestCounterfeitReports:
    def test_report_is_stored(self, verification_uow):
        [report_id] = messagebus.handle(
            ReportCounterfeit(code="MV-9", description="Misspelled label", reported_by="c-1"),
            verification_uow,
        )

        [report] = verification_uow.reports.reports
        assert report.report_id == report_id
        assert report.reported_by == "c-1"
        assert report.reported_at is not None

    def test_report_without_code_or_description(self, verification_uow):
        with pytest.raises(ValidationError):
            messagebus.handle(ReportCounterfeit(), verification_uow)

    def test_report_does_not_touch_drug_status(self, verification_uow):
        record = seed(verification_uow)

        messagebus.handle(ReportCounterfeit(code="MV-1", description="Odd seal"), verification_uow)

        assert record.status == DrugStatus.AUTHENTIC


class TestPackageImage:
    def test_score_is_advisory(self, verification_uow, image_scorer):
        [result] = messagebus.handle(CheckPackageImage(image_ref="uploads/1.jpg"), verification_uow)

        assert image_scorer.scored == ["uploads/1.jpg"]
        assert result["authenticity_label"] == "likely_authentic"
        assert result["advisory"] is True
        assert result["registry_status"] is None
        assert result["checked_by"] == "anonymous"

    def test_check_is_attributed_to_the_scanner(self, verification_uow, caplog):
        caplog.set_level("INFO")

        [result] = messagebus.handle(
            CheckPackageImage(image_ref="uploads/2.jpg", scanner_id="pharmacist-7"), verification_uow
        )

        assert result["checked_by"] == "pharmacist-7"
        assert "uploads/2.jpg by pharmacist-7" in caplog.text

    def test_score_with_code_adds_registry_verdict(self, verification_uow):
        record = seed(verification_uow, status=DrugStatus.RECALLED)

        [result] = messagebus.handle(
            CheckPackageImage(image_ref="uploads/1.jpg", code="MV-1"), verification_uow
        )

        assert result["registry_status"] == "Recalled"
        assert record.status == DrugStatus.RECALLED

    def test_scorer_failure_propagates(self, verification_uow, image_scorer):
        image_scorer.error = "scorer down"

        with pytest.raises(ImageScorerError):
            messagebus.handle(CheckPackageImage(image_ref="uploads/1.jpg"), verification_uow)

    def test_image_reference_required(self, verification_uow):
        with pytest.raises(ValidationError):
            messagebus.handle(CheckPackageImage(image_ref=" "), verification_uow)
