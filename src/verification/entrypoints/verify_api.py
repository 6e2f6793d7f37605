"""
Verification API Entrypoint - Thin public API with Command Dispatch.

Scanners (pharmacists, consumers) look up QR codes here; every successful
lookup is recorded. Recall alerts and counterfeit reports hang off the same app.
"""
import logging
import os
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import create_engine

import config
from shared.domain.exceptions import NotFound
from shared.entrypoints.http import is_admin, register_error_handlers, require_admin
from registry.adapters import orm as registry_orm
from notifications.adapters.dispatcher import redis_dispatcher_from_config
from notifications.domain.commands import AcknowledgeNotification
from verification import views
from verification.adapters import orm
from verification.adapters.image_scorer import HTTPImageScorer, ImageScorerError
from verification.adapters.repository import DEFAULT_HISTORY_LIMIT
from verification.domain import commands
from verification.domain.commands import ANONYMOUS_SCANNER
from verification.service_layer import messagebus
from verification.service_layer.unit_of_work import SqlAlchemyUnitOfWork

log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
logging.basicConfig(
    level=getattr(logging, log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "Drug not found or code invalid"

app = FastAPI(
    title="MediVerify Verification API",
    description="Public QR verification, scan history, recall alerts and counterfeit reports",
    version="1.0.0"
)
register_error_handlers(app)


@app.on_event("startup")
async def startup_event():
    engine = create_engine(config.get_postgres_uri())
    # verification reads drug records through the registry mappers
    registry_orm.metadata.create_all(engine)
    orm.metadata.create_all(engine)
    registry_orm.start_mappers()
    orm.start_mappers()
    logger.info("✓ Verification database initialized")


# one Redis pool and scorer client per process, shared by all requests
dispatcher = redis_dispatcher_from_config()
image_scorer = HTTPImageScorer()


def get_uow():
    return SqlAlchemyUnitOfWork(dispatcher=dispatcher, image_scorer_impl=image_scorer)


# ---------- Request models ----------

class VerifyRequest(BaseModel):
    code: str = Field(..., description="Scanned QR code payload")
    scanner_id: str = ANONYMOUS_SCANNER


class ImageCheckRequest(BaseModel):
    image_ref: str = Field(..., description="Upload URL or object key of the package photo")
    scanner_id: str = ANONYMOUS_SCANNER
    code: Optional[str] = None


class CounterfeitReportRequest(BaseModel):
    description: str = ""
    code: Optional[str] = None
    contact: Optional[str] = None
    reported_by: str = ANONYMOUS_SCANNER


# ---------- Endpoints ----------

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "mediverify-verification-api",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@app.post("/api/v1/verify")
def verify(body: VerifyRequest, uow=Depends(get_uow)):
    """
    Look up a scanned code.

    404 means the code is unknown (possibly fake); 503 means the registry
    could not be reached and nothing can be said about the code.
    """
    cmd = commands.VerifyDrug(code=body.code, scanner_id=body.scanner_id)
    try:
        [result] = messagebus.handle(cmd, uow)
    except NotFound:
        raise HTTPException(status_code=404, detail=NOT_FOUND_MESSAGE)
    return asdict(result)


@app.post("/api/v1/verify/image")
def verify_image(body: ImageCheckRequest, uow=Depends(get_uow)):
    cmd = commands.CheckPackageImage(
        image_ref=body.image_ref, scanner_id=body.scanner_id, code=body.code
    )
    try:
        [result] = messagebus.handle(cmd, uow)
    except ImageScorerError as e:
        raise HTTPException(status_code=502, detail=f"Image scorer unavailable: {e}")
    except NotFound:
        raise HTTPException(status_code=404, detail=NOT_FOUND_MESSAGE)
    return result


@app.get("/api/v1/scans")
def scan_history(
    subject_id: str = Query(...),
    limit: int = Query(default=DEFAULT_HISTORY_LIMIT, ge=0),
    uow=Depends(get_uow),
):
    scans = views.list_scan_history(subject_id, uow, limit=limit)
    return {"subject_id": subject_id, "count": len(scans), "scans": scans}


@app.get("/api/v1/notifications")
def notifications(subject_id: str = Query(...), uow=Depends(get_uow)):
    return views.list_notifications(subject_id, uow)


@app.post("/api/v1/notifications/{notification_id}/ack")
def acknowledge(notification_id: str, uow=Depends(get_uow)):
    [changed] = messagebus.handle(AcknowledgeNotification(notification_id=notification_id), uow)
    return {"id": notification_id, "is_read": True, "changed": changed}


@app.post("/api/v1/reports", status_code=201)
def report_counterfeit(body: CounterfeitReportRequest, uow=Depends(get_uow)):
    cmd = commands.ReportCounterfeit(
        description=body.description,
        code=body.code,
        contact=body.contact,
        reported_by=body.reported_by,
    )
    [report_id] = messagebus.handle(cmd, uow)
    return {"status": "received", "report_id": report_id}


@app.get("/api/v1/reports")
def list_reports(authorized: bool = Depends(is_admin), uow=Depends(get_uow)):
    require_admin(authorized)
    reports = views.list_counterfeit_reports(uow)
    return {"count": len(reports), "reports": reports}


def main():
    uvicorn.run(app, host=os.getenv("API_BIND", "0.0.0.0"), port=int(os.getenv("API_PORT", 8000)))


if __name__ == "__main__":
    main()
