"""Append-only execution audit trail for scripts and enrichment stages."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from photo_catalog.core.models import ExecutionEntry

from .schema import STATUS_FAILURE, STATUS_SUCCESS, ExecutionLogRow


def record_execution(
    session: Session,
    *,
    script_id: Optional[int],
    script_name: Optional[str],
    asset_id: Optional[int],
    success: bool,
    error_message: Optional[str] = None,
) -> ExecutionLogRow:
    row = ExecutionLogRow(
        script_id=script_id,
        script_name=script_name,
        asset_id=asset_id,
        status=STATUS_SUCCESS if success else STATUS_FAILURE,
        error_message=error_message,
        executed_at=datetime.now(timezone.utc),
    )
    session.add(row)
    session.flush()
    return row


def list_executions(
    session: Session,
    *,
    asset_id: Optional[int] = None,
    script_name: Optional[str] = None,
    limit: int = 100,
) -> list[ExecutionEntry]:
    stmt = select(ExecutionLogRow).order_by(ExecutionLogRow.id.desc()).limit(limit)
    if asset_id is not None:
        stmt = stmt.where(ExecutionLogRow.asset_id == asset_id)
    if script_name is not None:
        stmt = stmt.where(ExecutionLogRow.script_name == script_name)
    return [
        ExecutionEntry(
            id=row.id,
            script_id=row.script_id,
            script_name=row.script_name,
            asset_id=row.asset_id,
            status=row.status,
            error_message=row.error_message,
            executed_at=row.executed_at,
        )
        for row in session.scalars(stmt).all()
    ]
