# pylint: disable=redefined-outer-name
from datetime import date, timedelta

import fakeredis
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import clear_mappers, sessionmaker
from sqlalchemy.pool import StaticPool

from notifications.adapters.dispatcher import RedisNotificationDispatcher
from registry.adapters import orm as registry_orm
from registry.adapters import redis_adapter
from registry.adapters.repository import (
    AbstractDrugRepository,
    AbstractManufacturerRepository,
    AlreadyExists,
)
from registry.domain.commands import RegisterDrug
from registry.service_layer import unit_of_work as registry_unit_of_work
from verification.adapters import orm as verification_orm
from verification.adapters.image_scorer import AbstractImageScorer, ImageScore, ImageScorerError
from verification.adapters.repository import AbstractReportRepository, AbstractScanRepository
from verification.service_layer import unit_of_work as verification_unit_of_work

ADMIN_KEY = "test-admin-key"


@pytest.fixture(autouse=True)
def fake_event_publisher(monkeypatch):
    """Registry events are published to an in-memory Redis instead of a live server."""
    client = fakeredis.FakeRedis(decode_responses=True)
    monkeypatch.setattr(redis_adapter, "r", client)
    return client


@pytest.fixture
def admin_key(monkeypatch):
    monkeypatch.setenv("ADMIN_API_KEY", ADMIN_KEY)
    return ADMIN_KEY


@pytest.fixture
def sqlite_session_factory():
    """Create SQLite in-memory database for fast testing."""
    # StaticPool shares the single in-memory database across threads (TestClient)
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    registry_orm.metadata.create_all(engine)
    verification_orm.metadata.create_all(engine)
    registry_orm.start_mappers()
    verification_orm.start_mappers()

    yield sessionmaker(bind=engine)

    clear_mappers()
    engine.dispose()


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def dispatcher(redis_client):
    return RedisNotificationDispatcher(redis_client)


@pytest.fixture
def image_scorer():
    return FakeImageScorer()


@pytest.fixture
def registry_uow_factory(sqlite_session_factory):
    def make():
        return registry_unit_of_work.SqlAlchemyUnitOfWork(sqlite_session_factory)
    return make


@pytest.fixture
def verification_uow_factory(sqlite_session_factory, dispatcher, image_scorer):
    def make():
        return verification_unit_of_work.SqlAlchemyUnitOfWork(
            sqlite_session_factory,
            dispatcher=dispatcher,
            image_scorer_impl=image_scorer,
        )
    return make


def register_drug_command(code="MV-0001", expiry_date=None, **overrides):
    fields = dict(
        code=code,
        drug_name="Amoxicillin 500mg",
        manufacturer_id="MFR-1",
        batch_number="B-2024-01",
        expiry_date=expiry_date or (date.today() + timedelta(days=365)),
        description="Capsules, 20 count",
    )
    fields.update(overrides)
    return RegisterDrug(**fields)


# ---------- In-memory fakes ----------

class FakeDrugRepository(AbstractDrugRepository):
    def __init__(self, records=()):
        super().__init__()
        self._records = {record.code: record for record in records}
        self.fail_next = None  # exception to raise on the next store call

    def _maybe_fail(self):
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error

    def _exists(self, code):
        self._maybe_fail()
        return code in self._records

    def _get(self, code):
        self._maybe_fail()
        return self._records.get(code)

    def _get_for_update(self, code):
        return self._get(code)

    def _create(self, record):
        self._maybe_fail()
        if record.code in self._records:
            raise AlreadyExists(f"Drug {record.code} already registered")
        self._records[record.code] = record

    def _flush(self):
        pass

    def _list(self):
        return sorted(self._records.values(), key=lambda record: record.code)


class FakeManufacturerRepository(AbstractManufacturerRepository):
    def __init__(self):
        self._manufacturers = {}

    def _add(self, manufacturer):
        if manufacturer.id in self._manufacturers:
            raise AlreadyExists(f"Manufacturer {manufacturer.id} already registered")
        self._manufacturers[manufacturer.id] = manufacturer

    def _get(self, manufacturer_id):
        return self._manufacturers.get(manufacturer_id)

    def _list(self):
        return sorted(self._manufacturers.values(), key=lambda m: m.id)


class FakeScanRepository(AbstractScanRepository):
    def __init__(self):
        super().__init__()
        self.scans = []

    def _add(self, scan):
        self.scans.append(scan)

    def _list_for(self, subject_id, limit):
        mine = [scan for scan in self.scans if scan.performed_by == subject_id]
        return sorted(mine, key=lambda scan: scan.timestamp, reverse=True)[:limit]


class FakeReportRepository(AbstractReportRepository):
    def __init__(self):
        super().__init__()
        self.reports = []

    def _add(self, report):
        self.reports.append(report)

    def _list(self):
        return list(reversed(self.reports))


class FakeImageScorer(AbstractImageScorer):
    def __init__(self, label="likely_authentic", confidence=0.9, error=None):
        self.label = label
        self.confidence = confidence
        self.error = error
        self.scored = []

    def score(self, image_ref):
        self.scored.append(image_ref)
        if self.error is not None:
            raise ImageScorerError(self.error)
        return ImageScore(authenticity_label=self.label, confidence=self.confidence)


class FakeRegistryUnitOfWork(registry_unit_of_work.AbstractUnitOfWork):
    def __init__(self, records=()):
        self.drugs = FakeDrugRepository(records)
        self.manufacturers = FakeManufacturerRepository()
        self.committed = False

    def _commit(self):
        self.committed = True

    def rollback(self):
        pass


class FakeVerificationUnitOfWork(verification_unit_of_work.AbstractUnitOfWork):
    def __init__(self, dispatcher, records=(), image_scorer=None):
        self.drugs = FakeDrugRepository(records)
        self.scans = FakeScanRepository()
        self.reports = FakeReportRepository()
        self.notifications = dispatcher
        self.image_scorer = image_scorer or FakeImageScorer()
        self.committed = False

    def _commit(self):
        self.committed = True

    def rollback(self):
        pass


@pytest.fixture
def registry_uow():
    return FakeRegistryUnitOfWork()


@pytest.fixture
def verification_uow(dispatcher, image_scorer):
    return FakeVerificationUnitOfWork(dispatcher, image_scorer=image_scorer)


@pytest.fixture
def drug_command():
    """Factory for RegisterDrug commands with sensible defaults."""
    return register_drug_command
