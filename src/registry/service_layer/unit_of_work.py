# pylint: disable=attribute-defined-outside-init
from __future__ import annotations
from typing import Optional
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.session import Session


import config
from shared.service_layer.unit_of_work import (
    AbstractUnitOfWork as BaseUnitOfWork,
    apply_statement_timeout,
    commit_session,
)
from registry.adapters import repository


class AbstractUnitOfWork(BaseUnitOfWork):
    drugs: repository.AbstractDrugRepository
    manufacturers: repository.AbstractManufacturerRepository

    def collect_new_events(self):
        for record in self.drugs.seen:
            while record.events:
                yield record.events.pop(0)


# READ COMMITTED: a writer waiting on a drug's row lock must see the
# custody steps and status committed by the holder once it gets the lock
ISOLATION_LEVEL = "READ COMMITTED"

DEFAULT_SESSION_FACTORY = sessionmaker(
    bind=create_engine(
        config.get_postgres_uri(),
        execution_options={"isolation_level": ISOLATION_LEVEL},
        pool_pre_ping=True,
    )
)

class SqlAlchemyUnitOfWork(AbstractUnitOfWork):
    def __init__(self, session_factory=DEFAULT_SESSION_FACTORY, timeout: Optional[float] = None):
        self.session_factory = session_factory
        self.timeout = timeout if timeout is not None else config.get_store_timeout_seconds()

    def __enter__(self):
        self.session = self.session_factory()  # type: Session
        apply_statement_timeout(self.session, self.timeout)
        self.drugs = repository.SqlAlchemyDrugRepository(self.session)
        self.manufacturers = repository.SqlAlchemyManufacturerRepository(self.session)
        return super().__enter__()

    def __exit__(self, *args):
        super().__exit__(*args)
        self.session.close()

    def _commit(self):
        commit_session(self.session)

    def rollback(self):
        self.session.rollback()
