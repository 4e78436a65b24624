from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import date, datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from tool_tracking.db.transaction import transaction
from tool_tracking.errors import (
    ConcurrencyConflictError,
    InputValidationError,
    NotFoundError,
    PreconditionFailedError,
)
from tool_tracking.models.statuses import AssignmentStatus, UnitStatus, normalize_status
from tool_tracking.models.tool_models import Assignment, Unit
from tool_tracking.services.audit_service import log_audit
from tool_tracking.services.project_registry_service import resolve_project
from tool_tracking.services.reconciliation_service import reconcile_tool_status
from tool_tracking.services.unit_registry import (
    compare_and_set_unit_status,
    get_unit_by_id,
    get_unit_by_serial,
    release_unit_if_unheld,
)

LOGGER = logging.getLogger("tool_tracking.assignments")

ProjectResolver = Callable[[str], Optional[dict]]


def checkout(
    db: Session,
    unit_serial_number: str,
    project_id: str | int,
    assigned_date: date,
    expected_return_date: date | None = None,
    *,
    project_resolver: ProjectResolver = resolve_project,
    user_id: int | None = None,
) -> Assignment:
    serial = (unit_serial_number or "").strip()
    project_key = str(project_id or "").strip()
    if not serial:
        raise InputValidationError("unitSerialNumber is required.")
    if not project_key:
        raise InputValidationError("projectId is required.")
    if assigned_date is None:
        raise InputValidationError("assignedDate is required.")
    if expected_return_date and expected_return_date < assigned_date:
        raise InputValidationError("expectedReturnDate must be on or after assignedDate.")

    project = project_resolver(project_key)
    if not project:
        raise NotFoundError(f"Project {project_key} not found.")

    with transaction(db):
        unit = get_unit_by_serial(db, serial)
        if unit.Status != UnitStatus.AVAILABLE.value:
            LOGGER.warning("Checkout rejected serial=%s status=%s project=%s", serial, unit.Status, project_key)
            raise PreconditionFailedError(f"Unit {serial} is not available (Status: {unit.Status}).")

        compare_and_set_unit_status(db, unit.UnitID, UnitStatus.AVAILABLE, UnitStatus.NOT_AVAILABLE)

        assignment = Assignment(
            UnitID=unit.UnitID,
            ProjectID=project_key,
            AssignedDate=assigned_date,
            ExpectedReturnDate=expected_return_date,
            Status=AssignmentStatus.ACTIVE.value,
            CreatedDate=datetime.now(),
            UpdatedDate=datetime.now(),
        )
        db.add(assignment)
        try:
            db.flush()
        except IntegrityError as exc:
            raise ConcurrencyConflictError(f"Unit {serial} already has an active assignment.") from exc

        reconcile_tool_status(db, unit.ToolID)
        log_audit(
            db,
            "Assignment",
            assignment.AssignmentID,
            "Checkout",
            f"unit={serial} project={project_key}",
            user_id=user_id,
        )

    LOGGER.info(
        "Checkout committed assignment_id=%s serial=%s project=%s",
        assignment.AssignmentID,
        serial,
        project_key,
    )
    return assignment


def checkin(
    db: Session,
    assignment_id: int,
    return_date: date | None = None,
    *,
    user_id: int | None = None,
) -> Assignment:
    with transaction(db):
        assignment = db.get(Assignment, assignment_id)
        if not assignment:
            raise NotFoundError(f"Assignment {assignment_id} not found.")
        if assignment.Status != AssignmentStatus.ACTIVE.value:
            LOGGER.warning("Checkin rejected assignment_id=%s status=%s", assignment_id, assignment.Status)
            raise PreconditionFailedError(
                f"Assignment {assignment_id} is not active (Status: {assignment.Status})."
            )

        returned_on = return_date or date.today()
        if returned_on < assignment.AssignedDate:
            raise InputValidationError("returnDate must be on or after assignedDate.")

        result = db.execute(
            update(Assignment)
            .where(Assignment.AssignmentID == assignment_id)
            .where(Assignment.Status == AssignmentStatus.ACTIVE.value)
            .values(
                Status=AssignmentStatus.RETURNED.value,
                ActualReturnDate=returned_on,
                UpdatedDate=datetime.now(),
            )
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != 1:
            raise PreconditionFailedError(f"Assignment {assignment_id} was already returned.")

        unit = get_unit_by_id(db, assignment.UnitID)
        release_unit_if_unheld(db, unit, UnitStatus.NOT_AVAILABLE)
        reconcile_tool_status(db, unit.ToolID)
        log_audit(
            db,
            "Assignment",
            assignment_id,
            "Checkin",
            f"unit={unit.SerialNumber} returned={returned_on.isoformat()}",
            user_id=user_id,
        )

    LOGGER.info("Checkin committed assignment_id=%s serial=%s", assignment_id, unit.SerialNumber)
    return assignment


def get_assignment(db: Session, assignment_id: int) -> Assignment:
    assignment = db.get(Assignment, assignment_id)
    if not assignment:
        raise NotFoundError(f"Assignment {assignment_id} not found.")
    return assignment


def get_active_assignment(db: Session, unit_id: int) -> Assignment | None:
    return db.execute(
        select(Assignment)
        .where(Assignment.UnitID == unit_id)
        .where(Assignment.Status == AssignmentStatus.ACTIVE.value)
    ).scalars().first()


def list_assignments(
    db: Session,
    project_id: str | None = None,
    status: str | None = None,
    unit_id: int | None = None,
) -> list[Assignment]:
    stmt = select(Assignment).options(selectinload(Assignment.Unit).selectinload(Unit.Tool))
    if project_id:
        stmt = stmt.where(Assignment.ProjectID == str(project_id).strip())
    if status:
        stmt = stmt.where(Assignment.Status == normalize_status(status))
    if unit_id is not None:
        stmt = stmt.where(Assignment.UnitID == unit_id)
    stmt = stmt.order_by(Assignment.AssignedDate.desc(), Assignment.AssignmentID.desc())
    return list(db.execute(stmt).scalars().all())


def is_overdue(assignment: Assignment, today: date | None = None) -> bool:
    if assignment.Status != AssignmentStatus.ACTIVE.value or not assignment.ExpectedReturnDate:
        return False
    return assignment.ExpectedReturnDate < (today or date.today())


def serialize_assignment(assignment: Assignment, project: dict | None = None) -> dict:
    unit = assignment.Unit
    return {
        "assignmentID": assignment.AssignmentID,
        "unitID": assignment.UnitID,
        "projectID": assignment.ProjectID,
        "assignedDate": assignment.AssignedDate,
        "expectedReturnDate": assignment.ExpectedReturnDate,
        "actualReturnDate": assignment.ActualReturnDate,
        "status": assignment.Status,
        "isOverdue": is_overdue(assignment),
        "project": {"id": project["id"], "name": project["name"]} if project else None,
        "unit": {
            "unitID": unit.UnitID,
            "serialNumber": unit.SerialNumber,
            "toolID": unit.ToolID,
            "toolName": unit.Tool.ToolName if unit.Tool else None,
        } if unit else None,
        "createdDate": assignment.CreatedDate,
        "updatedDate": assignment.UpdatedDate,
    }
