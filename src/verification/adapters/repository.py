import abc
import logging
from typing import List, Set

from sqlalchemy.exc import DBAPIError

from shared.domain.exceptions import BackendUnavailable
from verification.domain import model

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 20


class AbstractScanRepository(abc.ABC):
    def __init__(self):
        self.seen = set()  # type: Set[model.ScanEvent]

    def add(self, scan: model.ScanEvent) -> str:
        self._add(scan)
        self.seen.add(scan)
        return scan.scan_id

    def list_for(self, subject_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[model.ScanEvent]:
        """Scans performed by ``subject_id``, newest first."""
        return self._list_for(subject_id, limit)

    @abc.abstractmethod
    def _add(self, scan: model.ScanEvent):
        raise NotImplementedError

    @abc.abstractmethod
    def _list_for(self, subject_id: str, limit: int) -> List[model.ScanEvent]:
        raise NotImplementedError


class AbstractReportRepository(abc.ABC):
    def __init__(self):
        self.seen = set()  # type: Set[model.CounterfeitReport]

    def add(self, report: model.CounterfeitReport) -> str:
        self._add(report)
        self.seen.add(report)
        return report.report_id

    def list(self) -> List[model.CounterfeitReport]:
        return self._list()

    @abc.abstractmethod
    def _add(self, report: model.CounterfeitReport):
        raise NotImplementedError

    @abc.abstractmethod
    def _list(self) -> List[model.CounterfeitReport]:
        raise NotImplementedError


class SqlAlchemyScanRepository(AbstractScanRepository):
    def __init__(self, session):
        super().__init__()
        self.session = session

    def _add(self, scan):
        self.session.add(scan)

    def _list_for(self, subject_id, limit):
        try:
            return (
                self.session.query(model.ScanEvent)
                .filter_by(performed_by=subject_id)
                .order_by(model.ScanEvent.timestamp.desc(), model.ScanEvent.scan_id)
                .limit(limit)
                .all()
            )
        except DBAPIError as e:
            logger.error(f"Failed to load scan history for {subject_id}: {e}")
            self.session.rollback()
            raise BackendUnavailable(f"Scan history unavailable for {subject_id}") from e


class SqlAlchemyReportRepository(AbstractReportRepository):
    def __init__(self, session):
        super().__init__()
        self.session = session

    def _add(self, report):
        self.session.add(report)

    def _list(self):
        try:
            return (
                self.session.query(model.CounterfeitReport)
                .order_by(model.CounterfeitReport.reported_at.desc())
                .all()
            )
        except DBAPIError as e:
            logger.error(f"Failed to load counterfeit reports: {e}")
            self.session.rollback()
            raise BackendUnavailable("Counterfeit reports unavailable") from e
