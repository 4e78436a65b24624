from __future__ import annotations

import logging
from datetime import date, datetime

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from tool_tracking.db.transaction import transaction
from tool_tracking.errors import (
    ConcurrencyConflictError,
    InputValidationError,
    InvalidTransitionError,
    NotFoundError,
    PreconditionFailedError,
)
from tool_tracking.models.statuses import (
    ACTIVE_MAINTENANCE_STATES,
    MAINTENANCE_TRANSITIONS,
    TERMINAL_MAINTENANCE_STATES,
    UNIT_HOLDING_TYPES,
    MaintenanceStatus,
    MaintenanceType,
    UnitStatus,
    normalize_status,
    parse_maintenance_status,
    parse_maintenance_type,
)
from tool_tracking.models.tool_models import MaintenanceSchedule, Tool
from tool_tracking.services.audit_service import log_audit
from tool_tracking.services.reconciliation_service import reconcile_tool_status
from tool_tracking.services.unit_registry import (
    compare_and_set_unit_status,
    get_unit_by_id,
    get_unit_by_serial,
    release_unit_if_unheld,
)

LOGGER = logging.getLogger("tool_tracking.maintenance")


def schedule_maintenance(
    db: Session,
    unit_serial_number: str,
    maintenance_type: str | MaintenanceType,
    scheduled_date: date,
    notes: str | None = None,
    *,
    tool_id: int | None = None,
    user_id: int | None = None,
) -> MaintenanceSchedule:
    """Plan maintenance for a unit.

    Repair takes the unit out of service right away (the new schedule becomes
    a holder of the unit). Routine and Inspection describe future work and
    leave the unit status untouched.
    """
    serial = (unit_serial_number or "").strip()
    if not serial:
        raise InputValidationError("unitSerialNumber is required.")
    kind = parse_maintenance_type(maintenance_type)
    if kind is None:
        raise InputValidationError(
            f"maintenanceType must be one of: {', '.join(item.value for item in MaintenanceType)}."
        )
    if scheduled_date is None:
        raise InputValidationError("scheduledDate is required.")

    holds_unit = kind in UNIT_HOLDING_TYPES

    with transaction(db):
        unit = get_unit_by_serial(db, serial)
        if tool_id is not None and unit.ToolID != tool_id:
            raise NotFoundError(f"Unit {serial} does not belong to tool {tool_id}.")

        if holds_unit:
            if unit.Status == UnitStatus.NOT_AVAILABLE.value:
                LOGGER.warning("Repair rejected serial=%s status=%s", serial, unit.Status)
                raise PreconditionFailedError(
                    f"Unit {serial} is checked out; return it before scheduling a repair."
                )
            if unit.Status == UnitStatus.AVAILABLE.value:
                compare_and_set_unit_status(db, unit.UnitID, UnitStatus.AVAILABLE, UnitStatus.UNDER_MAINTENANCE)
            else:
                # Joining an existing hold still writes the unit, so a release
                # committed since our read makes this call fail.
                compare_and_set_unit_status(
                    db, unit.UnitID, UnitStatus.UNDER_MAINTENANCE, UnitStatus.UNDER_MAINTENANCE
                )

        schedule = MaintenanceSchedule(
            UnitID=unit.UnitID,
            ToolID=unit.ToolID,
            MaintenanceType=kind.value,
            ScheduledDate=scheduled_date,
            Notes=(notes or "").strip() or None,
            Status=MaintenanceStatus.SCHEDULED.value,
            HoldsUnit=holds_unit,
            CreatedDate=datetime.now(),
            UpdatedDate=datetime.now(),
        )
        db.add(schedule)
        db.flush()

        if holds_unit:
            reconcile_tool_status(db, unit.ToolID)
        log_audit(
            db,
            "MaintenanceSchedule",
            schedule.ScheduleID,
            "Schedule",
            f"unit={serial} type={kind.value} date={scheduled_date.isoformat()}",
            user_id=user_id,
        )

    LOGGER.info(
        "Maintenance scheduled schedule_id=%s serial=%s type=%s holds_unit=%s",
        schedule.ScheduleID,
        serial,
        kind.value,
        holds_unit,
    )
    return schedule


def update_maintenance_status(
    db: Session,
    schedule_id: int,
    new_status: str | MaintenanceStatus,
    *,
    user_id: int | None = None,
) -> MaintenanceSchedule:
    target = parse_maintenance_status(new_status)
    if target is None:
        raise InputValidationError(f"Unknown maintenance status: {new_status}.")

    with transaction(db):
        schedule = db.get(MaintenanceSchedule, schedule_id)
        if not schedule:
            raise NotFoundError(f"Maintenance schedule {schedule_id} not found.")

        current = MaintenanceStatus(normalize_status(schedule.Status))
        if current in TERMINAL_MAINTENANCE_STATES:
            raise InvalidTransitionError(
                f"Maintenance schedule {schedule_id} is already {current.value}."
            )
        if target == current:
            return schedule
        if target not in MAINTENANCE_TRANSITIONS[current]:
            raise InvalidTransitionError(f"Invalid state transition: {current.value} -> {target.value}")

        values = {"Status": target.value, "UpdatedDate": datetime.now()}
        if target == MaintenanceStatus.COMPLETED:
            values["CompletedDate"] = date.today()
        result = db.execute(
            update(MaintenanceSchedule)
            .where(MaintenanceSchedule.ScheduleID == schedule_id)
            .where(MaintenanceSchedule.Status == current.value)
            .values(**values)
            .execution_options(synchronize_session="evaluate")
        )
        if result.rowcount != 1:
            raise ConcurrencyConflictError(f"Maintenance schedule {schedule_id} changed concurrently.")

        unit = get_unit_by_id(db, schedule.UnitID)
        if target == MaintenanceStatus.COMPLETED:
            release_unit_if_unheld(db, unit, UnitStatus.UNDER_MAINTENANCE)
            tool = db.get(Tool, schedule.ToolID)
            if tool:
                tool.LastMaintenance = date.today()
                tool.UpdatedDate = datetime.now()
                db.flush()
            reconcile_tool_status(db, schedule.ToolID)
        elif target == MaintenanceStatus.CANCELLED:
            if release_unit_if_unheld(db, unit, UnitStatus.UNDER_MAINTENANCE):
                reconcile_tool_status(db, schedule.ToolID)

        log_audit(
            db,
            "MaintenanceSchedule",
            schedule_id,
            "StatusChange",
            f"{current.value} -> {target.value} unit={unit.SerialNumber} unit_status={unit.Status}",
            user_id=user_id,
        )

    LOGGER.info(
        "Maintenance status changed schedule_id=%s from=%s to=%s unit_status=%s",
        schedule_id,
        current.value,
        target.value,
        unit.Status,
    )
    return schedule


def get_schedule(db: Session, schedule_id: int) -> MaintenanceSchedule:
    schedule = db.get(MaintenanceSchedule, schedule_id)
    if not schedule:
        raise NotFoundError(f"Maintenance schedule {schedule_id} not found.")
    return schedule


def get_pending_maintenance(db: Session, unit_id: int) -> MaintenanceSchedule | None:
    return db.execute(
        select(MaintenanceSchedule)
        .where(MaintenanceSchedule.UnitID == unit_id)
        .where(MaintenanceSchedule.Status.in_([state.value for state in ACTIVE_MAINTENANCE_STATES]))
        .order_by(MaintenanceSchedule.ScheduledDate, MaintenanceSchedule.ScheduleID)
    ).scalars().first()


def list_schedules(
    db: Session,
    status: str | None = None,
    tool_id: int | None = None,
    unit_id: int | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
) -> list[MaintenanceSchedule]:
    stmt = select(MaintenanceSchedule).options(
        selectinload(MaintenanceSchedule.Tool),
        selectinload(MaintenanceSchedule.Unit),
    )
    if status:
        stmt = stmt.where(MaintenanceSchedule.Status == normalize_status(status))
    if tool_id is not None:
        stmt = stmt.where(MaintenanceSchedule.ToolID == tool_id)
    if unit_id is not None:
        stmt = stmt.where(MaintenanceSchedule.UnitID == unit_id)
    if from_date:
        stmt = stmt.where(MaintenanceSchedule.ScheduledDate >= from_date)
    if to_date:
        stmt = stmt.where(MaintenanceSchedule.ScheduledDate <= to_date)
    stmt = stmt.order_by(MaintenanceSchedule.ScheduledDate, MaintenanceSchedule.ScheduleID)
    return list(db.execute(stmt).scalars().all())


def serialize_schedule(schedule: MaintenanceSchedule) -> dict:
    return {
        "scheduleID": schedule.ScheduleID,
        "unitID": schedule.UnitID,
        "toolID": schedule.ToolID,
        "maintenanceType": schedule.MaintenanceType,
        "scheduledDate": schedule.ScheduledDate,
        "notes": schedule.Notes,
        "status": schedule.Status,
        "holdsUnit": bool(schedule.HoldsUnit),
        "completedDate": schedule.CompletedDate,
        "tool": {
            "toolID": schedule.Tool.ToolID,
            "toolName": schedule.Tool.ToolName,
        } if schedule.Tool else None,
        "unit": {
            "unitID": schedule.Unit.UnitID,
            "serialNumber": schedule.Unit.SerialNumber,
            "status": schedule.Unit.Status,
        } if schedule.Unit else None,
        "createdDate": schedule.CreatedDate,
        "updatedDate": schedule.UpdatedDate,
    }
