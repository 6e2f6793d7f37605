"""
Registry Store Adapter.

Capability interface over the durable store that owns drug batches and
manufacturers. Every mutation becomes visible only through later
``get``/``exists`` calls; implementations must make ``create`` idempotent by
code and serialise ``append_custody_step``/``set_status`` per code.
"""
import abc
import logging
from contextlib import contextmanager
from typing import List, Optional, Set

from sqlalchemy.exc import DBAPIError, IntegrityError

from shared.domain.exceptions import BackendUnavailable, Conflict, NotFound
from registry.domain import model

logger = logging.getLogger(__name__)


class AlreadyExists(Conflict):
    """Raised by the store when the code (or manufacturer id) is already taken."""
    pass


class AbstractDrugRepository(abc.ABC):
    def __init__(self):
        self.seen = set()  # type: Set[model.DrugRecord]

    def exists(self, code: str) -> bool:
        return self._exists(model.validate_code(code))

    def get(self, code: str) -> model.DrugRecord:
        """Return the full record including its custody log, or raise NotFound."""
        record = self._get(model.validate_code(code))
        if record is None:
            raise NotFound(f"Drug {code} not found")
        self.seen.add(record)
        return record

    def create(self, record: model.DrugRecord) -> str:
        """Store a new record atomically; AlreadyExists if the code is taken."""
        self._create(record)
        self.seen.add(record)
        return record.code

    def append_custody_step(self, code: str, step: model.CustodyStep) -> model.CustodyStep:
        record = self._get_for_update(model.validate_code(code))
        if record is None:
            raise NotFound(f"Drug {code} not found")
        appended = record.append_step(step)
        self._flush()
        self.seen.add(record)
        return appended

    def set_status(self, code: str, new_status: model.DrugStatus) -> Optional[model.StatusChange]:
        """Overwrite only the status field, recording the transition in its history."""
        record = self._get_for_update(model.validate_code(code))
        if record is None:
            raise NotFound(f"Drug {code} not found")
        change = record.change_status(new_status)
        self._flush()
        self.seen.add(record)
        return change

    def list(self) -> List[model.DrugRecord]:
        records = self._list()
        for record in records:
            self.seen.add(record)
        return records

    @abc.abstractmethod
    def _exists(self, code: str) -> bool:
        raise NotImplementedError

    @abc.abstractmethod
    def _get(self, code: str) -> Optional[model.DrugRecord]:
        raise NotImplementedError

    @abc.abstractmethod
    def _get_for_update(self, code: str) -> Optional[model.DrugRecord]:
        raise NotImplementedError

    @abc.abstractmethod
    def _create(self, record: model.DrugRecord):
        raise NotImplementedError

    @abc.abstractmethod
    def _flush(self):
        raise NotImplementedError

    @abc.abstractmethod
    def _list(self) -> List[model.DrugRecord]:
        raise NotImplementedError


class AbstractManufacturerRepository(abc.ABC):
    def exists(self, manufacturer_id: str) -> bool:
        return self._get(manufacturer_id) is not None

    def add(self, manufacturer: model.Manufacturer) -> str:
        self._add(manufacturer)
        return manufacturer.id

    def get(self, manufacturer_id: str) -> model.Manufacturer:
        manufacturer = self._get(manufacturer_id)
        if manufacturer is None:
            raise NotFound(f"Manufacturer {manufacturer_id} not found")
        return manufacturer

    def list(self) -> List[model.Manufacturer]:
        return self._list()

    @abc.abstractmethod
    def _add(self, manufacturer: model.Manufacturer):
        raise NotImplementedError

    @abc.abstractmethod
    def _get(self, manufacturer_id: str) -> Optional[model.Manufacturer]:
        raise NotImplementedError

    @abc.abstractmethod
    def _list(self) -> List[model.Manufacturer]:
        raise NotImplementedError


class _SessionErrorsMixin:
    session = None

    @contextmanager
    def _backend_errors(self, action: str):
        """Translate driver failures (lost connection, statement timeout) into BackendUnavailable."""
        try:
            yield
        except IntegrityError:
            raise
        except DBAPIError as e:
            logger.error(f"Store failure while trying to {action}: {e}")
            self.session.rollback()
            raise BackendUnavailable(f"Store unavailable while trying to {action}") from e


class SqlAlchemyDrugRepository(_SessionErrorsMixin, AbstractDrugRepository):
    def __init__(self, session):
        super().__init__()
        self.session = session

    def _exists(self, code):
        with self._backend_errors(f"check drug {code}"):
            return self.session.query(model.DrugRecord.code).filter_by(code=code).first() is not None

    def _get(self, code):
        with self._backend_errors(f"load drug {code}"):
            return self.session.query(model.DrugRecord).filter_by(code=code).first()

    def _get_for_update(self, code):
        # row lock serialises appends and status changes on the same code
        with self._backend_errors(f"lock drug {code}"):
            return (
                self.session.query(model.DrugRecord)
                .filter_by(code=code)
                .with_for_update()
                .populate_existing()
                .first()
            )

    def _create(self, record):
        if self._exists(record.code):
            raise AlreadyExists(f"Drug {record.code} already registered")
        try:
            with self._backend_errors(f"create drug {record.code}"):
                self.session.add(record)
                self.session.flush()
        except IntegrityError as e:
            # lost a registration race on the primary key
            self.session.rollback()
            raise AlreadyExists(f"Drug {record.code} already registered") from e

    def _flush(self):
        try:
            with self._backend_errors("write drug"):
                self.session.flush()
        except IntegrityError as e:
            self.session.rollback()
            raise BackendUnavailable("Concurrent write on the same drug, nothing was stored") from e

    def _list(self):
        with self._backend_errors("list drugs"):
            return self.session.query(model.DrugRecord).order_by(model.DrugRecord.code).all()


class SqlAlchemyManufacturerRepository(_SessionErrorsMixin, AbstractManufacturerRepository):
    def __init__(self, session):
        self.session = session

    def _add(self, manufacturer):
        if self._get(manufacturer.id) is not None:
            raise AlreadyExists(f"Manufacturer {manufacturer.id} already registered")
        try:
            with self._backend_errors(f"create manufacturer {manufacturer.id}"):
                self.session.add(manufacturer)
                self.session.flush()
        except IntegrityError as e:
            self.session.rollback()
            raise AlreadyExists(f"Manufacturer {manufacturer.id} already registered") from e

    def _get(self, manufacturer_id):
        with self._backend_errors(f"load manufacturer {manufacturer_id}"):
            return self.session.query(model.Manufacturer).filter_by(id=manufacturer_id).first()

    def _list(self):
        with self._backend_errors("list manufacturers"):
            return self.session.query(model.Manufacturer).order_by(model.Manufacturer.id).all()
