from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, selectinload

from tool_tracking.db.transaction import transaction
from tool_tracking.errors import InputValidationError, NotFoundError, PreconditionFailedError
from tool_tracking.models.statuses import UnitStatus, normalize_status
from tool_tracking.models.tool_models import Tool, Unit
from tool_tracking.services.assignment_service import get_active_assignment, list_assignments, serialize_assignment
from tool_tracking.services.audit_service import log_audit
from tool_tracking.services.maintenance_service import get_pending_maintenance, list_schedules, serialize_schedule
from tool_tracking.services.reconciliation_service import reconcile_tool_status
from tool_tracking.services.unit_registry import count_unit_holders, get_unit, list_units_for_tool, serialize_unit

LOGGER = logging.getLogger("tool_tracking.catalog")


def get_tool(db: Session, tool_id: int) -> Tool:
    tool = db.get(Tool, tool_id)
    if not tool:
        raise NotFoundError(f"Tool {tool_id} not found.")
    return tool


def list_tools(db: Session, status: str | None = None, search: str | None = None) -> list[Tool]:
    stmt = select(Tool).options(selectinload(Tool.Units))
    if status:
        stmt = stmt.where(Tool.Status == normalize_status(status))
    query = (search or "").strip()
    if query:
        pattern = f"%{query}%"
        matching_tools = select(Unit.ToolID).where(Unit.SerialNumber.ilike(pattern))
        stmt = stmt.where(or_(Tool.ToolName.ilike(pattern), Tool.ToolID.in_(matching_tools)))
    return list(db.execute(stmt.order_by(Tool.ToolName, Tool.ToolID)).scalars().all())


def serialize_tool(tool: Tool, include_units: bool = False) -> dict:
    units = list(tool.Units or [])
    payload = {
        "toolID": tool.ToolID,
        "toolName": tool.ToolName,
        "quantity": tool.Quantity,
        "status": tool.Status,
        "lastMaintenance": tool.LastMaintenance,
        "conditionNotes": tool.ConditionNotes,
        "unitCount": len(units),
        "createdDate": tool.CreatedDate,
        "updatedDate": tool.UpdatedDate,
    }
    if include_units:
        payload["units"] = [serialize_unit(unit) for unit in units]
    return payload


def get_unit_detail(
    db: Session,
    identifier: int | str,
    project_lookup: Optional[Callable[[str], Optional[dict]]] = None,
    by: str | None = None,
) -> dict:
    """Unit plus its tool, current assignment and earliest pending maintenance."""
    unit = get_unit(db, identifier, by=by)
    tool = get_tool(db, unit.ToolID)

    assignment = get_active_assignment(db, unit.UnitID)
    assignment_payload = None
    if assignment:
        project = project_lookup(assignment.ProjectID) if project_lookup else None
        assignment_payload = serialize_assignment(assignment, project)

    maintenance = get_pending_maintenance(db, unit.UnitID)
    return {
        "unit": serialize_unit(unit),
        "tool": serialize_tool(tool),
        "currentAssignment": assignment_payload,
        "pendingMaintenance": serialize_schedule(maintenance) if maintenance else None,
    }


def get_unit_history(db: Session, identifier: int | str, by: str | None = None) -> dict:
    unit = get_unit(db, identifier, by=by)
    return {
        "unit": serialize_unit(unit),
        "assignments": [serialize_assignment(item) for item in list_assignments(db, unit_id=unit.UnitID)],
        "maintenance": [serialize_schedule(item) for item in list_schedules(db, unit_id=unit.UnitID)],
    }


def utilization_summary(db: Session) -> dict:
    rows = db.execute(
        select(Tool.ToolID, Tool.ToolName, Unit.Status, func.count(Unit.UnitID))
        .join(Unit, Unit.ToolID == Tool.ToolID)
        .group_by(Tool.ToolID, Tool.ToolName, Unit.Status)
        .order_by(Tool.ToolName)
    ).all()

    by_tool: dict[int, dict] = {}
    for tool_id, tool_name, unit_status, count in rows:
        entry = by_tool.setdefault(
            tool_id,
            {"toolID": tool_id, "toolName": tool_name, "available": 0, "assigned": 0, "maintenance": 0, "total": 0},
        )
        if unit_status == UnitStatus.AVAILABLE.value:
            entry["available"] += count
        elif unit_status == UnitStatus.NOT_AVAILABLE.value:
            entry["assigned"] += count
        elif unit_status == UnitStatus.UNDER_MAINTENANCE.value:
            entry["maintenance"] += count
        entry["total"] += count

    tools = list(by_tool.values())
    totals = {
        "available": sum(item["available"] for item in tools),
        "assigned": sum(item["assigned"] for item in tools),
        "maintenance": sum(item["maintenance"] for item in tools),
        "total": sum(item["total"] for item in tools),
    }
    totals["utilizationRate"] = round(totals["assigned"] / totals["total"], 4) if totals["total"] else 0.0
    return {"tools": tools, "totals": totals}


def update_tool(
    db: Session,
    tool_id: int,
    name: str | None = None,
    condition_notes: str | None = None,
    quantity: int | None = None,
    new_serial_numbers: list[str] | None = None,
    *,
    user_id: int | None = None,
) -> Tool:
    """Edit catalog fields and bring the unit set in line with `quantity`.

    Shrinking deletes the units past the new quantity in serial-number order;
    growing requires exactly the missing number of new serial numbers. Unit
    statuses of the surviving units are never touched here.
    """
    if name is not None and not name.strip():
        raise InputValidationError("toolName cannot be empty.")
    if quantity is not None and quantity < 0:
        raise InputValidationError("quantity must be zero or greater.")

    with transaction(db):
        tool = get_tool(db, tool_id)
        if name is not None:
            tool.ToolName = name.strip()
        if condition_notes is not None:
            tool.ConditionNotes = condition_notes.strip() or None

        removed: list[str] = []
        added: list[str] = []
        if quantity is not None:
            units = list_units_for_tool(db, tool_id)
            if quantity < len(units):
                removed = _truncate_units(db, tool, units[quantity:])
            elif quantity > len(units):
                added = _add_units(db, tool, quantity - len(units), new_serial_numbers or [])
            elif new_serial_numbers:
                raise InputValidationError("newSerialNumbers given but quantity does not grow.")
            tool.Quantity = quantity

        tool.UpdatedDate = datetime.now()
        db.flush()
        reconcile_tool_status(db, tool_id)
        log_audit(
            db,
            "Tool",
            tool_id,
            "Update",
            f"quantity={tool.Quantity} added={','.join(added) or '-'} removed={','.join(removed) or '-'}",
            user_id=user_id,
        )

    db.refresh(tool)
    LOGGER.info("Tool updated tool_id=%s quantity=%s added=%s removed=%s", tool_id, tool.Quantity, len(added), len(removed))
    return tool


def _truncate_units(db: Session, tool: Tool, doomed: list[Unit]) -> list[str]:
    for unit in doomed:
        holders = count_unit_holders(db, unit.UnitID)
        pending = get_pending_maintenance(db, unit.UnitID)
        if holders["assignments"] or pending or unit.Status != UnitStatus.AVAILABLE.value:
            raise PreconditionFailedError(
                f"Unit {unit.SerialNumber} is in use (Status: {unit.Status}); cannot reduce quantity."
            )
    removed = []
    for unit in doomed:
        removed.append(unit.SerialNumber)
        db.delete(unit)
    return removed


def _add_units(db: Session, tool: Tool, missing: int, new_serial_numbers: list[str]) -> list[str]:
    serials = [(serial or "").strip() for serial in new_serial_numbers]
    if len(serials) != missing or not all(serials):
        raise InputValidationError(f"Exactly {missing} new serial number(s) are required.")
    if len(set(serials)) != len(serials):
        raise InputValidationError("Duplicate serial numbers supplied.")
    taken = db.execute(select(Unit.SerialNumber).where(Unit.SerialNumber.in_(serials))).scalars().all()
    if taken:
        raise InputValidationError(f"Serial number(s) already in use: {', '.join(sorted(taken))}.")

    for serial in serials:
        db.add(
            Unit(
                ToolID=tool.ToolID,
                SerialNumber=serial,
                Status=UnitStatus.AVAILABLE.value,
                CreatedDate=datetime.now(),
                UpdatedDate=datetime.now(),
            )
        )
    return serials
