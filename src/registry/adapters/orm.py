import logging
from sqlalchemy import (
    Table,
    Column,
    Integer,
    String,
    Text,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    UniqueConstraint,
    event,
)
from sqlalchemy.orm import registry, relationship
from registry.domain import model

logger = logging.getLogger(__name__)

# SQLAlchemy 2.0 pattern: use registry
mapper_registry = registry()
metadata = mapper_registry.metadata


def _status_column_type():
    # stored as the plain strings 'Authentic', 'Recalled', ...
    return Enum(
        model.DrugStatus,
        native_enum=False,
        length=32,
        values_callable=lambda statuses: [s.value for s in statuses],
        validate_strings=True,
    )


manufacturers = Table(
    "manufacturers",
    metadata,
    Column("id", String(255), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("location", String(255), nullable=False),
    Column("contact", String(255)),
    Column("registered_at", DateTime(timezone=True)),
)

# No FK to manufacturers: a batch may reference a manufacturer registered later.
drugs = Table(
    "drugs",
    metadata,
    Column("qr_code", String(255), primary_key=True),
    Column("drug_name", String(255), nullable=False),
    Column("manufacturer_id", String(255), nullable=False),
    Column("batch_number", String(255), nullable=False),
    Column("expiry_date", Date, nullable=False, index=True),
    Column("description", Text),
    Column("status", _status_column_type(), nullable=False, server_default="Authentic"),
    Column("registered_at", DateTime(timezone=True)),
)

custody_steps = Table(
    "custody_steps",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("drug_code", String(255), ForeignKey("drugs.qr_code"), nullable=False),
    Column("position", Integer, nullable=False),
    Column("description", Text, nullable=False),
    Column("timestamp", DateTime(timezone=True), nullable=False),
    UniqueConstraint("drug_code", "position", name="uq_custody_steps_drug_position"),
)

status_changes = Table(
    "status_changes",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("drug_code", String(255), ForeignKey("drugs.qr_code"), nullable=False),
    Column("old_status", _status_column_type(), nullable=False),
    Column("new_status", _status_column_type(), nullable=False),
    Column("changed_at", DateTime(timezone=True), nullable=False),
)


def start_mappers():
    logger.info("Starting registry mappers")
    steps_mapper = mapper_registry.map_imperatively(model.CustodyStep, custody_steps)
    history_mapper = mapper_registry.map_imperatively(
        model.StatusChange,
        status_changes,
        properties={
            "code": status_changes.c.drug_code,
        },
    )
    mapper_registry.map_imperatively(model.Manufacturer, manufacturers)
    mapper_registry.map_imperatively(
        model.DrugRecord,
        drugs,
        properties={
            "code": drugs.c.qr_code,
            # append order is the chronological order; never re-sorted by timestamp
            "custody_log": relationship(
                steps_mapper,
                order_by=custody_steps.c.position,
                lazy="selectin",
            ),
            "status_history": relationship(
                history_mapper,
                order_by=status_changes.c.id,
                lazy="selectin",
            ),
        },
    )


@event.listens_for(model.DrugRecord, "load")
def receive_load(record, _):
    record.events = []
