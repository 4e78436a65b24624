from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from tool_tracking.errors import ConcurrencyConflictError, InputValidationError, NotFoundError
from tool_tracking.models.statuses import ACTIVE_MAINTENANCE_STATES, AssignmentStatus, UnitStatus
from tool_tracking.models.tool_models import Assignment, MaintenanceSchedule, Unit


def get_unit_by_id(db: Session, unit_id: int) -> Unit:
    unit = db.get(Unit, unit_id)
    if not unit:
        raise NotFoundError(f"Unit {unit_id} not found.")
    return unit


def get_unit_by_serial(db: Session, serial_number: str) -> Unit:
    serial = (serial_number or "").strip()
    unit = db.execute(select(Unit).where(Unit.SerialNumber == serial)).scalars().first()
    if not unit:
        raise NotFoundError(f"Unit with serial number {serial or '<empty>'} not found.")
    return unit


UNIT_LOOKUP_MODES = ("id", "serial")


def get_unit(db: Session, identifier: int | str, by: str | None = None) -> Unit:
    """Resolve a unit by internal id or by serial number.

    `by` pins the lookup to "id" or "serial". Without it, integers are ids
    and numeric strings are tried as an id first and then as a serial
    number, so a purely numeric serial such as "12" loses to unit id 12
    unless `by="serial"` is given.
    """
    mode = (by or "").strip().lower() or None
    if mode is not None and mode not in UNIT_LOOKUP_MODES:
        raise InputValidationError(f"by must be one of: {', '.join(UNIT_LOOKUP_MODES)}.")

    raw = str(identifier if identifier is not None else "").strip()
    if mode == "serial":
        return get_unit_by_serial(db, raw)
    if mode == "id":
        if not raw.isdigit():
            raise InputValidationError(f"Unit id must be numeric, got {raw or '<empty>'}.")
        return get_unit_by_id(db, int(raw))

    if isinstance(identifier, int):
        return get_unit_by_id(db, identifier)
    if raw.isdigit():
        unit = db.get(Unit, int(raw))
        if unit:
            return unit
    return get_unit_by_serial(db, raw)


def list_units_for_tool(db: Session, tool_id: int) -> list[Unit]:
    return list(
        db.execute(
            select(Unit).where(Unit.ToolID == tool_id).order_by(Unit.SerialNumber)
        ).scalars().all()
    )


def set_unit_status(db: Session, unit_id: int, new_status: UnitStatus) -> None:
    """Unconditional write; callers have already validated preconditions."""
    result = db.execute(
        update(Unit)
        .where(Unit.UnitID == unit_id)
        .values(Status=new_status.value, UpdatedDate=datetime.now())
        .execution_options(synchronize_session="evaluate")
    )
    if result.rowcount != 1:
        raise NotFoundError(f"Unit {unit_id} not found.")


def compare_and_set_unit_status(
    db: Session,
    unit_id: int,
    expected_status: UnitStatus,
    new_status: UnitStatus,
) -> None:
    result = db.execute(
        update(Unit)
        .where(Unit.UnitID == unit_id)
        .where(Unit.Status == expected_status.value)
        .values(Status=new_status.value, UpdatedDate=datetime.now())
        .execution_options(synchronize_session="evaluate")
    )
    if result.rowcount != 1:
        raise ConcurrencyConflictError(
            f"Unit {unit_id} changed concurrently; expected status {expected_status.value}."
        )


def count_unit_holders(db: Session, unit_id: int, exclude_schedule_id: int | None = None) -> dict[str, int]:
    """Count the active records currently holding a unit out of service.

    An Active assignment holds the unit as Not Available; an active
    maintenance schedule holds it as Under Maintenance only when it took the
    unit at creation time (HoldsUnit).
    """
    assignments = db.execute(
        select(func.count(Assignment.AssignmentID))
        .where(Assignment.UnitID == unit_id)
        .where(Assignment.Status == AssignmentStatus.ACTIVE.value)
    ).scalar()

    stmt = (
        select(func.count(MaintenanceSchedule.ScheduleID))
        .where(MaintenanceSchedule.UnitID == unit_id)
        .where(MaintenanceSchedule.Status.in_([state.value for state in ACTIVE_MAINTENANCE_STATES]))
        .where(MaintenanceSchedule.HoldsUnit == True)
    )
    if exclude_schedule_id is not None:
        stmt = stmt.where(MaintenanceSchedule.ScheduleID != exclude_schedule_id)
    maintenance = db.execute(stmt).scalar()

    return {"assignments": int(assignments or 0), "maintenance": int(maintenance or 0)}


def release_unit_if_unheld(
    db: Session,
    unit: Unit,
    held_as: UnitStatus,
    exclude_schedule_id: int | None = None,
) -> bool:
    """Return the unit to Available when no holder of kind `held_as` remains.

    Returns True when the status was changed. A unit that is not currently in
    `held_as` is left alone: another kind of holder owns it.
    """
    if unit.Status != held_as.value:
        return False

    holders = count_unit_holders(db, unit.UnitID, exclude_schedule_id=exclude_schedule_id)
    if held_as == UnitStatus.UNDER_MAINTENANCE and holders["maintenance"] > 0:
        return False
    if held_as == UnitStatus.NOT_AVAILABLE and holders["assignments"] > 0:
        return False

    compare_and_set_unit_status(db, unit.UnitID, held_as, UnitStatus.AVAILABLE)
    return True


def serialize_unit(unit: Unit) -> dict:
    return {
        "unitID": unit.UnitID,
        "toolID": unit.ToolID,
        "serialNumber": unit.SerialNumber,
        "status": unit.Status,
        "createdDate": unit.CreatedDate,
        "updatedDate": unit.UpdatedDate,
    }
