"""API tests for the public verification service (FastAPI TestClient, SQLite store)."""
from datetime import date, timedelta
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from shared.domain.exceptions import BackendUnavailable
from registry.domain.commands import RegisterDrug, UpdateDrugStatus
from registry.service_layer import messagebus as registry_bus
from verification.entrypoints import verify_api


@pytest.fixture
def client(verification_uow_factory):
    verify_api.app.dependency_overrides[verify_api.get_uow] = verification_uow_factory
    yield TestClient(verify_api.app)
    verify_api.app.dependency_overrides.clear()


@pytest.fixture
def registered(registry_uow_factory):
    """A registered batch, MV-42, written through the registry service."""
    registry_bus.handle(
        RegisterDrug(
            code="MV-42",
            drug_name="Artemether/Lumefantrine",
            manufacturer_id="MFR-1",
            batch_number="AL-9",
            expiry_date=date.today() + timedelta(days=300),
        ),
        registry_uow_factory(),
        authorized=True,
    )

    return "MV-42"


@pytest.fixture
def recalled(registered, registry_uow_factory):
    registry_bus.handle(
        UpdateDrugStatus(code=registered, new_status="Recalled"),
        registry_uow_factory(),
        authorized=True,
    )
    return registered


def test_health(client):
    assert client.get("/health").status_code == 200


def test_verify_known_code(client, registered):
    response = client.post("/api/v1/verify", json={"code": "MV-42", "scanner_id": "pharm-1"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "Authentic"
    assert body["drug_name"] == "Artemether/Lumefantrine"
    assert body["scan_id"]
    assert body["custody_log"] == []


def test_unknown_code_is_404_and_unrecorded(client):
    response = client.post("/api/v1/verify", json={"code": "FAKE-1", "scanner_id": "pharm-1"})

    assert response.status_code == 404
    assert response.json()["detail"] == "Drug not found or code invalid"
    assert client.get("/api/v1/scans", params={"subject_id": "pharm-1"}).json()["count"] == 0


def test_store_outage_is_503_not_404(client):
    with patch.object(verify_api.messagebus, "handle", side_effect=BackendUnavailable("timeout")):
        response = client.post("/api/v1/verify", json={"code": "MV-42"})

    assert response.status_code == 503


def test_blank_code_is_422(client):
    response = client.post("/api/v1/verify", json={"code": "  "})

    assert response.status_code == 422


def test_recall_alert_flow(client, recalled):
    verified = client.post("/api/v1/verify", json={"code": "MV-42", "scanner_id": "pharm-1"})
    assert verified.json()["status"] == "Recalled"

    inbox = client.get("/api/v1/notifications", params={"subject_id": "pharm-1"}).json()
    assert inbox["unread_count"] == 1
    notification_id = inbox["notifications"][0]["id"]

    first = client.post(f"/api/v1/notifications/{notification_id}/ack")
    second = client.post(f"/api/v1/notifications/{notification_id}/ack")
    assert first.json()["changed"] is True
    assert second.status_code == 200
    assert second.json()["changed"] is False

    inbox = client.get("/api/v1/notifications", params={"subject_id": "pharm-1"}).json()
    assert inbox["unread_count"] == 0


def test_acknowledge_unknown_notification(client):
    assert client.post("/api/v1/notifications/nope/ack").status_code == 404


def test_scan_history(client, registered):
    for _ in range(3):
        client.post("/api/v1/verify", json={"code": "MV-42", "scanner_id": "pharm-1"})

    response = client.get("/api/v1/scans", params={"subject_id": "pharm-1", "limit": 2})

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 2
    assert all(scan["code"] == "MV-42" for scan in body["scans"])


def test_counterfeit_reports(client, admin_key):
    created = client.post("/api/v1/reports", json={"code": "MV-13", "description": "Wrong font"})
    empty = client.post("/api/v1/reports", json={})

    assert created.status_code == 201
    assert empty.status_code == 422
    assert client.get("/api/v1/reports").status_code == 403

    listing = client.get("/api/v1/reports", headers={"X-Admin-Key": admin_key}).json()
    assert listing["count"] == 1
    assert listing["reports"][0]["report_id"] == created.json()["report_id"]


def test_image_check(client, registered):
    response = client.post(
        "/api/v1/verify/image", json={"image_ref": "uploads/box.jpg", "code": "MV-42"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["advisory"] is True
    assert body["registry_status"] == "Authentic"
    assert 0.0 <= body["confidence"] <= 1.0


def test_image_scorer_outage_is_502(client, image_scorer):
    image_scorer.error = "scorer unreachable"

    response = client.post("/api/v1/verify/image", json={"image_ref": "uploads/box.jpg"})

    assert response.status_code == 502


def test_requests_share_one_notification_client():
    first, second = verify_api.get_uow(), verify_api.get_uow()

    assert first is not second
    assert first.notifications is second.notifications is verify_api.dispatcher
    assert first.image_scorer is verify_api.image_scorer
