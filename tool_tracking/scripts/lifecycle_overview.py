#!/usr/bin/env python3
"""Lifecycle consistency report for the tool tracking database."""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from typing import Iterable

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from tool_tracking.db.transaction import transaction
from tool_tracking.services.reconciliation_service import reconcile_all


EXPECTED_TABLES = [
    "Tools",
    "Units",
    "Assignments",
    "MaintenanceSchedules",
    "AuditLogs",
]

INTEGRITY_QUERIES: dict[str, str] = {
    "units:not_available_without_active_assignment": """
        SELECT COUNT(*)
        FROM Units u
        WHERE u.Status = 'Not Available'
          AND NOT EXISTS (
              SELECT 1 FROM Assignments a
              WHERE a.UnitID = u.UnitID AND a.Status = 'Active'
          )
    """,
    "units:active_assignment_but_not_marked": """
        SELECT COUNT(DISTINCT a.UnitID)
        FROM Assignments a
        JOIN Units u ON u.UnitID = a.UnitID
        WHERE a.Status = 'Active' AND u.Status <> 'Not Available'
    """,
    "units:multiple_active_assignments": """
        SELECT COUNT(*)
        FROM (
            SELECT UnitID
            FROM Assignments
            WHERE Status = 'Active'
            GROUP BY UnitID
            HAVING COUNT(*) > 1
        ) d
    """,
    "units:under_maintenance_without_holder": """
        SELECT COUNT(*)
        FROM Units u
        WHERE u.Status = 'Under Maintenance'
          AND NOT EXISTS (
              SELECT 1 FROM MaintenanceSchedules m
              WHERE m.UnitID = u.UnitID
                AND m.HoldsUnit = 1
                AND m.Status IN ('Scheduled', 'In Progress')
          )
    """,
    "schedules:holder_but_unit_not_held": """
        SELECT COUNT(*)
        FROM MaintenanceSchedules m
        JOIN Units u ON u.UnitID = m.UnitID
        WHERE m.HoldsUnit = 1
          AND m.Status IN ('Scheduled', 'In Progress')
          AND u.Status <> 'Under Maintenance'
    """,
    "schedules:tool_mismatch": """
        SELECT COUNT(*)
        FROM MaintenanceSchedules m
        JOIN Units u ON u.UnitID = m.UnitID
        WHERE m.ToolID <> u.ToolID
    """,
    "tools:quantity_mismatch": """
        SELECT COUNT(*)
        FROM Tools t
        WHERE t.Quantity <> (SELECT COUNT(*) FROM Units u WHERE u.ToolID = t.ToolID)
    """,
    "tools:stale_uniform_aggregate": """
        SELECT COUNT(*)
        FROM Tools t
        JOIN (
            SELECT ToolID, MIN(Status) AS UnitStatus
            FROM Units
            GROUP BY ToolID
            HAVING COUNT(DISTINCT Status) = 1
        ) s ON s.ToolID = t.ToolID
        WHERE t.Status <> s.UnitStatus
    """,
}


@dataclass
class CheckResult:
    name: str
    ok: bool
    detail: str


def _print_section(title: str) -> None:
    print(f"\n=== {title} ===")


def _get_engine(db_url: str) -> Engine:
    return create_engine(db_url, pool_pre_ping=True, future=True)


def _scalar(engine: Engine, sql: str, params: dict | None = None):
    with engine.connect() as conn:
        return conn.execute(text(sql), params or {}).scalar()


def _run_existence_checks(engine: Engine) -> list[CheckResult]:
    present = set(inspect(engine).get_table_names())
    return [
        CheckResult(f"table:{table}", table in present, "present" if table in present else "missing")
        for table in EXPECTED_TABLES
    ]


def run_integrity_checks(engine: Engine) -> list[CheckResult]:
    results: list[CheckResult] = []
    for name, sql in INTEGRITY_QUERIES.items():
        count = int(_scalar(engine, sql) or 0)
        results.append(CheckResult(name, count == 0, f"count={count}"))
    return results


def _print_results(title: str, rows: Iterable[CheckResult]) -> None:
    _print_section(title)
    for row in rows:
        status = "OK" if row.ok else "FAIL"
        print(f"[{status}] {row.name} :: {row.detail}")


def _print_row_counts(engine: Engine) -> None:
    _print_section("Row Counts")
    present = set(inspect(engine).get_table_names())
    for table in EXPECTED_TABLES:
        if table not in present:
            print(f"{table}: missing")
            continue
        count = _scalar(engine, f"SELECT COUNT(*) FROM {table}")
        print(f"{table}: {int(count or 0)}")


def _print_status_breakdown(engine: Engine) -> None:
    _print_section("Unit Status Breakdown")
    with engine.connect() as conn:
        rows = conn.execute(text("SELECT Status, COUNT(*) FROM Units GROUP BY Status ORDER BY Status")).all()
    for status, count in rows:
        print(f"{status}: {int(count or 0)}")


def _fix_aggregates(engine: Engine) -> int:
    with Session(engine, autoflush=False, expire_on_commit=False) as db:
        with transaction(db):
            results = reconcile_all(db)
    return len(results)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Tool tracking lifecycle overview")
    parser.add_argument("--db-url", default=os.environ.get("TOOL_TRACKING_DB_URL", ""))
    parser.add_argument("--fix-aggregates", action="store_true", help="recompute every tool's aggregate status")
    args = parser.parse_args(argv)

    db_url = (args.db_url or "").strip()
    if not db_url:
        print("TOOL_TRACKING_DB_URL is not set. Provide --db-url or export env first.")
        return 2

    try:
        engine = _get_engine(db_url)
        _scalar(engine, "SELECT 1")
    except Exception as exc:
        print(f"Could not connect to DB: {exc}")
        return 3

    existence = _run_existence_checks(engine)
    _print_results("Table Existence", existence)
    if not all(row.ok for row in existence):
        return 4

    if args.fix_aggregates:
        _print_section("Reconciliation")
        print(f"Reconciled tools: {_fix_aggregates(engine)}")

    integrity = run_integrity_checks(engine)
    _print_results("Integrity Checks", integrity)
    _print_row_counts(engine)
    _print_status_breakdown(engine)
    return 0 if all(row.ok for row in integrity) else 1


if __name__ == "__main__":
    sys.exit(main())
