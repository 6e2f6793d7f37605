"""
Registry API Entrypoint - Thin admin API with Command Dispatch.

Manufacturers, batches, custody steps and status changes are written here by
privileged callers (X-Admin-Key). Scanners use the verification API instead.
"""
import logging
import os
from datetime import date, datetime, timezone
from typing import List, Optional

import uvicorn
from fastapi import Depends, FastAPI, Query
from pydantic import BaseModel, Field
from sqlalchemy import create_engine

import config
from shared.entrypoints.http import is_admin, register_error_handlers, require_admin
from registry import views
from registry.adapters import orm
from registry.domain import commands
from registry.service_layer import messagebus
from registry.service_layer.unit_of_work import SqlAlchemyUnitOfWork

log_level = os.getenv('LOG_LEVEL', 'INFO').upper()
logging.basicConfig(
    level=getattr(logging, log_level),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="MediVerify Registry API",
    description="Drug batch registration, custody chain and status management",
    version="1.0.0"
)
register_error_handlers(app)


# Initialize database and ORM mappers (Cosmic Python pattern)
@app.on_event("startup")
async def startup_event():
    engine = create_engine(config.get_postgres_uri())
    orm.metadata.create_all(engine)
    orm.start_mappers()
    logger.info("✓ Registry database initialized")


def get_uow():
    return SqlAlchemyUnitOfWork()


# ---------- Request/Response models ----------

class ManufacturerRequest(BaseModel):
    id: str
    name: str
    location: str
    contact: Optional[str] = None


class DrugRequest(BaseModel):
    code: str = Field(..., description="QR code payload, unique per batch")
    drug_name: str
    manufacturer_id: str
    batch_number: str
    expiry_date: date
    description: Optional[str] = None


class CustodyStepRequest(BaseModel):
    description: str


class StatusRequest(BaseModel):
    status: str = Field(..., description="Authentic, Recalled, Counterfeit or Unknown")


class WriteResponse(BaseModel):
    status: str
    id: str
    message: str


# ---------- Endpoints ----------

@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "service": "mediverify-registry-api",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


@app.post("/api/v1/manufacturers", response_model=WriteResponse, status_code=201)
def register_manufacturer(
    body: ManufacturerRequest,
    authorized: bool = Depends(is_admin),
    uow=Depends(get_uow),
):
    cmd = commands.RegisterManufacturer(
        id=body.id, name=body.name, location=body.location, contact=body.contact
    )
    [manufacturer_id] = messagebus.handle(cmd, uow, authorized=authorized)
    return WriteResponse(
        status="registered", id=manufacturer_id, message="Manufacturer registered successfully"
    )


@app.get("/api/v1/manufacturers")
def list_manufacturers(authorized: bool = Depends(is_admin), uow=Depends(get_uow)):
    require_admin(authorized)
    manufacturers = views.list_manufacturers(uow)
    return {"count": len(manufacturers), "manufacturers": manufacturers}


@app.post("/api/v1/drugs", response_model=WriteResponse, status_code=201)
def register_drug(
    body: DrugRequest,
    authorized: bool = Depends(is_admin),
    uow=Depends(get_uow),
):
    """
    Register a drug batch. Re-registering an existing code answers 409; the
    caller decides whether to pick another code.
    """
    cmd = commands.RegisterDrug(
        code=body.code,
        drug_name=body.drug_name,
        manufacturer_id=body.manufacturer_id,
        batch_number=body.batch_number,
        expiry_date=body.expiry_date,
        description=body.description,
    )
    [code] = messagebus.handle(cmd, uow, authorized=authorized)
    return WriteResponse(status="registered", id=code, message="Drug registered successfully")


@app.get("/api/v1/drugs")
def list_drugs(authorized: bool = Depends(is_admin), uow=Depends(get_uow)):
    require_admin(authorized)
    drugs = views.list_drugs(uow)
    return {"count": len(drugs), "drugs": drugs}


@app.get("/api/v1/drugs/expiring")
def list_expiring_drugs(
    days: Optional[int] = Query(default=None, ge=0),
    authorized: bool = Depends(is_admin),
    uow=Depends(get_uow),
):
    """Drugs expiring within ``days`` (default from config), soonest first."""
    require_admin(authorized)
    threshold_days = days if days is not None else config.get_expiry_threshold_days()
    drugs: List[dict] = views.list_expiring(threshold_days, uow)
    return {"threshold_days": threshold_days, "count": len(drugs), "drugs": drugs}


@app.get("/api/v1/drugs/{code}")
def get_drug(code: str, authorized: bool = Depends(is_admin), uow=Depends(get_uow)):
    require_admin(authorized)
    return views.get_drug(code, uow)


@app.post("/api/v1/drugs/{code}/custody", response_model=WriteResponse, status_code=201)
def add_custody_step(
    code: str,
    body: CustodyStepRequest,
    authorized: bool = Depends(is_admin),
    uow=Depends(get_uow),
):
    cmd = commands.AddCustodyStep(code=code, description=body.description)
    [position] = messagebus.handle(cmd, uow, authorized=authorized)
    return WriteResponse(
        status="appended", id=code, message=f"Custody step {position} recorded"
    )


@app.put("/api/v1/drugs/{code}/status", response_model=WriteResponse)
def update_status(
    code: str,
    body: StatusRequest,
    authorized: bool = Depends(is_admin),
    uow=Depends(get_uow),
):
    cmd = commands.UpdateDrugStatus(code=code, new_status=body.status)
    [status] = messagebus.handle(cmd, uow, authorized=authorized)
    return WriteResponse(status="updated", id=code, message=f"Status is now {status}")


def main():
    uvicorn.run(app, host=os.getenv("API_BIND", "0.0.0.0"), port=int(os.getenv("API_PORT", 8000)))


if __name__ == "__main__":
    main()
