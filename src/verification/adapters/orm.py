import logging
from sqlalchemy import (
    Table,
    Column,
    String,
    Text,
    Boolean,
    DateTime,
    Index,
    event,
)
from sqlalchemy.orm import registry
from verification.domain import model

logger = logging.getLogger(__name__)

mapper_registry = registry()
metadata = mapper_registry.metadata

# Column names follow the existing 'scans' table (user_id, qr_code, scanned_at, is_recalled)
scans = Table(
    "scans",
    metadata,
    Column("scan_id", String(36), primary_key=True),
    Column("qr_code", String(255), nullable=False),
    Column("user_id", String(255), nullable=False),
    Column("result_status", String(32), nullable=False),
    Column("is_recalled", Boolean, nullable=False, default=False),
    Column("is_expiring_soon", Boolean, nullable=False, default=False),
    Column("scanned_at", DateTime(timezone=True), nullable=False),
    Index("ix_scans_user_id_scanned_at", "user_id", "scanned_at"),
)

counterfeit_reports = Table(
    "counterfeit_reports",
    metadata,
    Column("report_id", String(36), primary_key=True),
    Column("qr_code", String(255)),
    Column("description", Text),
    Column("contact", String(255)),
    Column("reported_by", String(255), nullable=False),
    Column("reported_at", DateTime(timezone=True), nullable=False),
)


def start_mappers():
    logger.info("Starting verification mappers")
    mapper_registry.map_imperatively(
        model.ScanEvent,
        scans,
        properties={
            "code": scans.c.qr_code,
            "performed_by": scans.c.user_id,
            "recalled_flag": scans.c.is_recalled,
            "expiring_soon_flag": scans.c.is_expiring_soon,
            "timestamp": scans.c.scanned_at,
        },
    )
    mapper_registry.map_imperatively(
        model.CounterfeitReport,
        counterfeit_reports,
        properties={
            "code": counterfeit_reports.c.qr_code,
        },
    )


@event.listens_for(model.ScanEvent, "load")
def receive_scan_load(scan, _):
    scan.events = []


@event.listens_for(model.CounterfeitReport, "load")
def receive_report_load(report, _):
    report.events = []
