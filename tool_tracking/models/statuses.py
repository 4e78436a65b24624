from enum import Enum


class UnitStatus(str, Enum):
    AVAILABLE = "Available"
    NOT_AVAILABLE = "Not Available"
    UNDER_MAINTENANCE = "Under Maintenance"


class AssignmentStatus(str, Enum):
    ACTIVE = "Active"
    RETURNED = "Returned"


class MaintenanceStatus(str, Enum):
    SCHEDULED = "Scheduled"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class MaintenanceType(str, Enum):
    ROUTINE = "Routine"
    REPAIR = "Repair"
    INSPECTION = "Inspection"


ACTIVE_MAINTENANCE_STATES = {MaintenanceStatus.SCHEDULED, MaintenanceStatus.IN_PROGRESS}
TERMINAL_MAINTENANCE_STATES = {MaintenanceStatus.COMPLETED, MaintenanceStatus.CANCELLED}
MAINTENANCE_TRANSITIONS = {
    MaintenanceStatus.SCHEDULED: {
        MaintenanceStatus.IN_PROGRESS,
        MaintenanceStatus.COMPLETED,
        MaintenanceStatus.CANCELLED,
    },
    MaintenanceStatus.IN_PROGRESS: {MaintenanceStatus.COMPLETED, MaintenanceStatus.CANCELLED},
    MaintenanceStatus.COMPLETED: set(),
    MaintenanceStatus.CANCELLED: set(),
}

# Maintenance types whose creation takes the unit out of service immediately.
UNIT_HOLDING_TYPES = {MaintenanceType.REPAIR}

STATUS_ALIASES = {
    "NotAvailable": UnitStatus.NOT_AVAILABLE.value,
    "UnderMaintenance": UnitStatus.UNDER_MAINTENANCE.value,
    "InProgress": MaintenanceStatus.IN_PROGRESS.value,
    "Assigned": AssignmentStatus.ACTIVE.value,
}


def normalize_status(raw: str | None) -> str:
    value = (raw or "").strip()
    return STATUS_ALIASES.get(value, value)


def parse_maintenance_status(raw: str | MaintenanceStatus | None) -> MaintenanceStatus | None:
    try:
        return MaintenanceStatus(normalize_status(raw))
    except ValueError:
        return None


def parse_maintenance_type(raw: str | MaintenanceType | None) -> MaintenanceType | None:
    try:
        return MaintenanceType((raw or "").strip().title())
    except ValueError:
        return None
