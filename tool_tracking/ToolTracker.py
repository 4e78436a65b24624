import logging
import os
from datetime import date

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

load_dotenv()

from tool_tracking.db.base import Base
from tool_tracking.db.deps import get_tool_db
from tool_tracking.db.session import engine_tools
from tool_tracking.db.transaction import transaction
from tool_tracking.errors import LifecycleError
from tool_tracking.schemas.assignments import CheckinRequest, CheckoutRequest
from tool_tracking.schemas.maintenance import MaintenanceStatusUpdate, ScheduleMaintenanceRequest
from tool_tracking.schemas.tools import ToolUpdate
from tool_tracking.services.assignment_service import (
    checkin,
    checkout,
    get_assignment,
    list_assignments,
    serialize_assignment,
)
from tool_tracking.services.audit_service import list_audit_entries
from tool_tracking.services.maintenance_service import (
    get_schedule,
    list_schedules,
    schedule_maintenance,
    serialize_schedule,
    update_maintenance_status,
)
from tool_tracking.services.project_registry_service import (
    ProjectRegistryError,
    resolve_project,
    tolerant_lookup,
)
from tool_tracking.services.reconciliation_service import reconcile_all
from tool_tracking.services.tool_catalog_service import (
    get_tool,
    get_unit_detail,
    get_unit_history,
    list_tools,
    serialize_tool,
    update_tool,
    utilization_summary,
)
from tool_tracking.services.unit_registry import list_units_for_tool, serialize_unit

LOGGER = logging.getLogger("tool_tracking.api")

app = FastAPI(title="Tool Tracking")


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in str(raw).split(",") if item.strip()]


def _env_flag(name: str, default: str = "false") -> bool:
    return str(os.environ.get(name, default)).strip().lower() in {"1", "true", "yes", "on"}


_CORS_ALLOW_ORIGINS = _parse_csv_env(
    "CORS_ALLOW_ORIGINS",
    "http://127.0.0.1,http://localhost,http://127.0.0.1:3000,http://localhost:3000",
)
_CORS_ALLOW_CREDENTIALS = _env_flag("CORS_ALLOW_CREDENTIALS", "true")
if "*" in _CORS_ALLOW_ORIGINS:
    # Browsers reject wildcard origins with credentials.
    _CORS_ALLOW_CREDENTIALS = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ALLOW_ORIGINS,
    allow_credentials=_CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

if _env_flag("TOOL_TRACKING_CREATE_SCHEMA"):
    Base.metadata.create_all(bind=engine_tools)


def get_project_resolver():
    return resolve_project


@app.exception_handler(LifecycleError)
async def lifecycle_error_handler(request: Request, exc: LifecycleError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(ProjectRegistryError)
async def project_registry_error_handler(request: Request, exc: ProjectRegistryError):
    LOGGER.warning("Project registry unavailable path=%s reason=%s", request.url.path, exc)
    return JSONResponse(
        status_code=503,
        content={"kind": "ProjectRegistryUnavailable", "detail": f"Project registry unavailable: {exc}"},
    )


@app.get("/healthz")
def healthcheck():
    return {"status": "ok"}


@app.get("/api/healthz")
def healthcheck_api(db: Session = Depends(get_tool_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ok"}
    except Exception as exc:
        raise HTTPException(status_code=503, detail=f"db_unavailable: {exc}") from exc


@app.get("/api/tools")
def get_tools(
    status: str | None = Query(None),
    search: str | None = Query(None),
    db: Session = Depends(get_tool_db),
):
    return [serialize_tool(tool) for tool in list_tools(db, status=status, search=search)]


@app.get("/api/tools/utilization")
def get_tool_utilization(db: Session = Depends(get_tool_db)):
    return utilization_summary(db)


@app.get("/api/tools/{tool_id}")
def get_tool_item(tool_id: int, db: Session = Depends(get_tool_db)):
    return serialize_tool(get_tool(db, tool_id), include_units=True)


@app.put("/api/tools/{tool_id}")
def update_tool_item(tool_id: int, payload: ToolUpdate, db: Session = Depends(get_tool_db)):
    tool = update_tool(
        db,
        tool_id,
        name=payload.toolName,
        condition_notes=payload.conditionNotes,
        quantity=payload.quantity,
        new_serial_numbers=payload.newSerialNumbers,
        user_id=payload.operatorUserID,
    )
    return serialize_tool(tool, include_units=True)


@app.get("/api/tools/{tool_id}/units")
def get_tool_units(tool_id: int, db: Session = Depends(get_tool_db)):
    get_tool(db, tool_id)
    return [serialize_unit(unit) for unit in list_units_for_tool(db, tool_id)]


@app.post("/api/tools/reconcile")
def reconcile_tools(db: Session = Depends(get_tool_db)):
    with transaction(db):
        results = reconcile_all(db)
    return {"reconciled": len(results), "statuses": {str(key): value for key, value in results.items()}}


@app.get("/api/units/{identifier}")
def get_unit_item(
    identifier: str,
    by: str | None = Query(None),
    db: Session = Depends(get_tool_db),
    project_resolver=Depends(get_project_resolver),
):
    """Unit detail by internal id or serial number.

    A numeric identifier is tried as a unit id before it is tried as a serial
    number; pass `?by=serial` or `?by=id` to pin the lookup.
    """
    return get_unit_detail(db, identifier, project_lookup=tolerant_lookup(project_resolver), by=by)


@app.get("/api/units/{identifier}/history")
def get_unit_history_item(identifier: str, by: str | None = Query(None), db: Session = Depends(get_tool_db)):
    return get_unit_history(db, identifier, by=by)


@app.get("/api/assignments")
def get_assignments(
    project_id: str | None = Query(None, alias="projectId"),
    status: str | None = Query(None),
    db: Session = Depends(get_tool_db),
):
    return [serialize_assignment(item) for item in list_assignments(db, project_id=project_id, status=status)]


@app.get("/api/assignments/{assignment_id}")
def get_assignment_item(
    assignment_id: int,
    db: Session = Depends(get_tool_db),
    project_resolver=Depends(get_project_resolver),
):
    assignment = get_assignment(db, assignment_id)
    return serialize_assignment(assignment, tolerant_lookup(project_resolver)(assignment.ProjectID))


@app.post("/api/assignments")
def create_assignment(
    payload: CheckoutRequest,
    db: Session = Depends(get_tool_db),
    project_resolver=Depends(get_project_resolver),
):
    assignment = checkout(
        db,
        payload.unitSerialNumber,
        payload.projectID,
        payload.assignedDate,
        payload.expectedReturnDate,
        project_resolver=project_resolver,
        user_id=payload.operatorUserID,
    )
    return serialize_assignment(assignment, tolerant_lookup(project_resolver)(assignment.ProjectID))


@app.post("/api/assignments/{assignment_id}/checkin")
def checkin_assignment(
    assignment_id: int,
    payload: CheckinRequest | None = None,
    db: Session = Depends(get_tool_db),
):
    request = payload or CheckinRequest()
    assignment = checkin(db, assignment_id, request.returnDate, user_id=request.operatorUserID)
    return serialize_assignment(assignment)


@app.get("/api/maintenance")
def get_maintenance_schedules(
    status: str | None = Query(None),
    tool_id: int | None = Query(None, alias="toolId"),
    unit_id: int | None = Query(None, alias="unitId"),
    from_date: date | None = Query(None, alias="fromDate"),
    to_date: date | None = Query(None, alias="toDate"),
    db: Session = Depends(get_tool_db),
):
    if from_date and to_date and to_date < from_date:
        raise HTTPException(status_code=400, detail="toDate must be on or after fromDate.")
    schedules = list_schedules(
        db,
        status=status,
        tool_id=tool_id,
        unit_id=unit_id,
        from_date=from_date,
        to_date=to_date,
    )
    return [serialize_schedule(item) for item in schedules]


@app.get("/api/maintenance/{schedule_id}")
def get_maintenance_item(schedule_id: int, db: Session = Depends(get_tool_db)):
    return serialize_schedule(get_schedule(db, schedule_id))


@app.post("/api/maintenance")
def create_maintenance_schedule(payload: ScheduleMaintenanceRequest, db: Session = Depends(get_tool_db)):
    schedule = schedule_maintenance(
        db,
        payload.unitSerialNumber,
        payload.maintenanceType,
        payload.scheduledDate,
        payload.notes,
        tool_id=payload.toolID,
        user_id=payload.operatorUserID,
    )
    return serialize_schedule(schedule)


@app.patch("/api/maintenance/{schedule_id}")
def patch_maintenance_schedule(
    schedule_id: int,
    payload: MaintenanceStatusUpdate,
    db: Session = Depends(get_tool_db),
):
    schedule = update_maintenance_status(db, schedule_id, payload.status, user_id=payload.operatorUserID)
    return serialize_schedule(schedule)


@app.get("/api/audit/{entity_type}/{entity_id}")
def get_audit_entries(entity_type: str, entity_id: int, db: Session = Depends(get_tool_db)):
    return list_audit_entries(db, entity_type, entity_id)
