# app/api/routes/requests.py
from __future__ import annotations

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, status

from ..deps import DBDep, UserDep, actor_from, require_role
from app.db.models import (
    PriorityEnum as Priority,
    RequestStatusEnum as Status,
    RoleEnum as Role,
    User,
)
from app.schemas.requests import (
    AssignBody,
    CloseWithoutConfirmationBody,
    CommentCreate,
    CommentOut,
    ConfirmBody,
    ConfirmationStatusOut,
    RejectBody,
    RequestCreate,
    RequestOut,
    RequestUpdate,
    StatusUpdate,
    TimelineOut,
    UnassignBody,
)
from app.services import lifecycle

router = APIRouter()

TechnicianDep = Annotated[User, Depends(require_role(Role.TECHNICIAN))]
AdminDep = Annotated[User, Depends(require_role(Role.MAINTENANCE_ADMIN, Role.SUPER_ADMIN))]

# Помилки рушія (NotFound/Forbidden/InvalidTransition/...) ловить обробник у app.main


@router.post("", response_model=RequestOut, status_code=status.HTTP_201_CREATED)
async def create_request(payload: RequestCreate, db: DBDep, current: UserDep):
    return await lifecycle.create_request(db, payload, actor_from(current))


@router.get("", response_model=list[RequestOut])
async def list_requests(
    db: DBDep,
    current: UserDep,
    status_: Optional[Status] = Query(default=None, alias="status"),
    priority: Optional[Priority] = None,
    assigned_to_id: Optional[int] = Query(default=None, alias="assignedToId"),
    building: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    return await lifecycle.list_requests(
        db,
        actor_from(current),
        status=status_,
        priority=priority,
        assigned_to_id=assigned_to_id,
        building=building,
        limit=limit,
        offset=offset,
    )


@router.get("/{request_id}", response_model=RequestOut)
async def get_request(request_id: int, db: DBDep, current: UserDep):
    return await lifecycle.get_request(db, request_id, actor_from(current))


@router.get("/{request_id}/history", response_model=TimelineOut)
async def get_history(request_id: int, db: DBDep, current: UserDep):
    return await lifecycle.request_timeline(db, request_id, actor_from(current))


@router.patch("/{request_id}", response_model=RequestOut)
async def update_request(request_id: int, payload: RequestUpdate, db: DBDep, current: UserDep):
    return await lifecycle.update_request_details(db, request_id, payload, actor_from(current))


@router.get("/{request_id}/comments", response_model=list[CommentOut])
async def list_comments(request_id: int, db: DBDep, current: UserDep):
    return await lifecycle.list_comments(db, request_id, actor_from(current))


@router.post("/{request_id}/comments", response_model=CommentOut, status_code=status.HTTP_201_CREATED)
async def add_comment(request_id: int, payload: CommentCreate, db: DBDep, current: UserDep):
    return await lifecycle.add_comment(
        db, request_id, actor_from(current), text=payload.text, is_internal=payload.is_internal
    )


@router.patch("/{request_id}/status", response_model=RequestOut)
async def update_status(request_id: int, payload: StatusUpdate, db: DBDep, current: UserDep):
    return await lifecycle.update_status(
        db, request_id, payload.status, actor_from(current), reason=payload.reason
    )


@router.post("/{request_id}/submit", response_model=RequestOut)
async def submit_draft(request_id: int, db: DBDep, current: UserDep):
    return await lifecycle.submit_draft(db, request_id, actor_from(current))


# ==== призначення ====


@router.post("/{request_id}/assign", response_model=RequestOut)
async def assign(request_id: int, payload: AssignBody, db: DBDep, current: UserDep):
    return await lifecycle.assign_technician(
        db, request_id, payload.technician_id, actor_from(current), reason=payload.reason
    )


@router.post("/{request_id}/self-assign", response_model=RequestOut)
async def self_assign(request_id: int, db: DBDep, current: TechnicianDep):
    return await lifecycle.self_assign(db, request_id, actor_from(current))


@router.post("/{request_id}/unassign", response_model=RequestOut)
async def unassign(request_id: int, db: DBDep, current: UserDep, payload: Optional[UnassignBody] = None):
    reason = payload.reason if payload else None
    return await lifecycle.unassign_technician(db, request_id, actor_from(current), reason=reason)


# ==== підтвердження клієнтом ====


@router.post("/{request_id}/confirm-completion", response_model=RequestOut)
async def confirm_completion(
    request_id: int,
    db: DBDep,
    current: UserDep,
    payload: Optional[ConfirmBody] = None,
):
    payload = payload or ConfirmBody()
    return await lifecycle.confirm_completion(
        db,
        request_id,
        actor_from(current),
        comment=payload.comment,
        override_reason=payload.override_reason,
    )


@router.post("/{request_id}/reject-completion", response_model=RequestOut)
async def reject_completion(request_id: int, payload: RejectBody, db: DBDep, current: UserDep):
    return await lifecycle.reject_completion(
        db, request_id, actor_from(current), reason=payload.reason, comment=payload.comment
    )


@router.get("/{request_id}/confirmation-status", response_model=ConfirmationStatusOut)
async def confirmation_status(request_id: int, db: DBDep, current: UserDep):
    return await lifecycle.get_confirmation_status(db, request_id, actor_from(current))


@router.post("/{request_id}/close-without-confirmation", response_model=RequestOut)
async def close_without_confirmation(
    request_id: int,
    payload: CloseWithoutConfirmationBody,
    db: DBDep,
    current: AdminDep,
):
    return await lifecycle.close_without_confirmation(
        db, request_id, actor_from(current), reason=payload.reason
    )
