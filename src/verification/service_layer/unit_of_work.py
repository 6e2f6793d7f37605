# pylint: disable=attribute-defined-outside-init
from __future__ import annotations
from typing import Optional
from sqlalchemy.orm.session import Session

import config
from shared.service_layer.unit_of_work import (
    AbstractUnitOfWork as BaseUnitOfWork,
    apply_statement_timeout,
    commit_session,
)
from registry.adapters.repository import AbstractDrugRepository, SqlAlchemyDrugRepository
from registry.service_layer.unit_of_work import DEFAULT_SESSION_FACTORY
from notifications.adapters import dispatcher as notification_dispatcher
from verification.adapters import image_scorer, repository


class AbstractUnitOfWork(BaseUnitOfWork):
    drugs: AbstractDrugRepository  # read-only from this side
    scans: repository.AbstractScanRepository
    reports: repository.AbstractReportRepository
    notifications: notification_dispatcher.AbstractNotificationDispatcher
    image_scorer: image_scorer.AbstractImageScorer

    def collect_new_events(self):
        # repositories only exist once the unit of work has been entered
        for repo in (getattr(self, "scans", None), getattr(self, "reports", None)):
            if repo is None:
                continue
            for entity in repo.seen:
                while entity.events:
                    yield entity.events.pop(0)


class SqlAlchemyUnitOfWork(AbstractUnitOfWork):
    def __init__(
        self,
        session_factory=DEFAULT_SESSION_FACTORY,
        dispatcher: Optional[notification_dispatcher.AbstractNotificationDispatcher] = None,
        image_scorer_impl: Optional[image_scorer.AbstractImageScorer] = None,
        timeout: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.timeout = timeout if timeout is not None else config.get_store_timeout_seconds()
        # Redis/HTTP clients live outside the database transaction
        self.notifications = dispatcher or notification_dispatcher.redis_dispatcher_from_config()
        self.image_scorer = image_scorer_impl or image_scorer.HTTPImageScorer()

    def __enter__(self):
        self.session = self.session_factory()  # type: Session
        apply_statement_timeout(self.session, self.timeout)
        self.drugs = SqlAlchemyDrugRepository(self.session)
        self.scans = repository.SqlAlchemyScanRepository(self.session)
        self.reports = repository.SqlAlchemyReportRepository(self.session)
        return super().__enter__()

    def __exit__(self, *args):
        super().__exit__(*args)
        self.session.close()

    def _commit(self):
        commit_session(self.session)

    def rollback(self):
        self.session.rollback()
