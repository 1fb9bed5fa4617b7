"""
Audit trail: історія статусів і призначень.

Лише додавання. Записи кладуться в ту саму сесію/транзакцію, що й мутація,
яку вони описують, тож commit/rollback у рушія завжди спільний.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import (
    AssignmentTypeEnum,
    RequestAssignmentHistory,
    RequestStatusEnum,
    RequestStatusHistory,
)
from app.services.permissions import Actor


def record_status_change(
    db: AsyncSession,
    *,
    request_id: int,
    from_status: Optional[RequestStatusEnum],
    to_status: RequestStatusEnum,
    actor: Actor,
    at: datetime,
    reason: Optional[str] = None,
) -> RequestStatusHistory:
    entry = RequestStatusHistory(
        request_id=request_id,
        from_status=from_status,
        to_status=to_status,
        reason=reason,
        changed_by_id=actor.id,
        actor_role=actor.audit_role,
        created_at=at,
    )
    db.add(entry)
    return entry


def record_assignment(
    db: AsyncSession,
    *,
    request_id: int,
    assignment_type: AssignmentTypeEnum,
    from_technician_id: Optional[int],
    to_technician_id: Optional[int],
    actor: Actor,
    at: datetime,
    reason: Optional[str] = None,
) -> RequestAssignmentHistory:
    entry = RequestAssignmentHistory(
        request_id=request_id,
        assignment_type=assignment_type,
        from_technician_id=from_technician_id,
        to_technician_id=to_technician_id,
        assigned_by_id=actor.id,
        reason=reason,
        created_at=at,
    )
    db.add(entry)
    return entry


async def status_timeline(db: AsyncSession, request_id: int) -> Sequence[RequestStatusHistory]:
    q = (
        select(RequestStatusHistory)
        .where(RequestStatusHistory.request_id == request_id)
        .order_by(RequestStatusHistory.created_at.asc(), RequestStatusHistory.id.asc())
    )
    return (await db.execute(q)).scalars().all()


async def assignment_timeline(db: AsyncSession, request_id: int) -> Sequence[RequestAssignmentHistory]:
    q = (
        select(RequestAssignmentHistory)
        .where(RequestAssignmentHistory.request_id == request_id)
        .order_by(RequestAssignmentHistory.created_at.asc(), RequestAssignmentHistory.id.asc())
    )
    return (await db.execute(q)).scalars().all()
