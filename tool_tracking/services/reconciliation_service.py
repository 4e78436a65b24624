from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from tool_tracking.errors import NotFoundError
from tool_tracking.models.tool_models import Tool, Unit

LOGGER = logging.getLogger("tool_tracking.reconciliation")


def derive_aggregate_status(unit_statuses: list[str], current: str | None) -> str | None:
    """Aggregate status for a tool given its units' statuses.

    A tool whose units all share one status reports that status. Mixed or
    empty unit sets keep the last-known aggregate.
    """
    distinct = set(unit_statuses)
    if len(distinct) == 1:
        return distinct.pop()
    return current


def reconcile_tool_status(db: Session, tool_id: int) -> str | None:
    """Recompute Tool.Status from its units inside the caller's transaction.

    Reads unit statuses straight from the store, so any unit write issued
    earlier in the same transaction is taken into account. Takes no locks.
    """
    tool = db.get(Tool, tool_id)
    if not tool:
        raise NotFoundError(f"Tool {tool_id} not found.")

    statuses = list(db.execute(select(Unit.Status).where(Unit.ToolID == tool_id)).scalars().all())
    aggregate = derive_aggregate_status(statuses, tool.Status)
    if aggregate != tool.Status:
        LOGGER.info("Tool aggregate changed tool_id=%s from=%s to=%s", tool_id, tool.Status, aggregate)
        tool.Status = aggregate
        tool.UpdatedDate = datetime.now()
        db.flush()
    return tool.Status


def reconcile_all(db: Session) -> dict[int, str | None]:
    results: dict[int, str | None] = {}
    tool_ids = db.execute(select(Tool.ToolID).order_by(Tool.ToolID)).scalars().all()
    for tool_id in tool_ids:
        results[tool_id] = reconcile_tool_status(db, tool_id)
    return results
