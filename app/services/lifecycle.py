"""
Рушій життєвого циклу заявки (оркестратор).

Кожна публічна дія: одна транзакція за одним шаблоном:
  1. завантажити заявку (з блокуванням рядка, де немає CAS);
  2. перевірити ребро в графі переходів  -> InvalidTransition;
  3. перевірити права (permissions)       -> Forbidden;
  4. застосувати мутацію дії;
  5. дописати audit-запис у ту ж транзакцію;
  6. перевірити інваріанти, commit, повернути знімок заявки.
Будь-яка помилка на кроках 2-6 відкочує транзакцію повністю.
Доменні події відправляються лише після commit.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.time import utcnow
from app.db.models import (
    ConfirmationStatusEnum as Confirmation,
    MaintenanceRequest,
    PriorityEnum,
    RequestAssignmentHistory,
    RequestComment,
    RequestStatusEnum as Status,
    RequestStatusHistory,
    RoleEnum as Role,
)
from app.schemas.requests import RequestCreate, RequestUpdate
from app.services import assignment, audit, confirmation, identifiers, notifications
from app.services.errors import (
    AlreadyAssigned,
    AlreadyResolved,
    Forbidden,
    InvalidState,
    InvalidTransition,
    LifecycleInvariantError,
    NotFound,
    ValidationError,
)
from app.services.permissions import (
    Actor,
    Decision,
    authorize,
    can_comment,
    can_create,
    can_update_details,
    can_view_confirmation,
    can_view_request,
    sees_internal_comments,
)
from app.services.transitions import Action, Edge, describe_illegal, edge_allows

logger = logging.getLogger(__name__)

_ASSIGNED_STATES = frozenset({Status.ASSIGNED, Status.IN_PROGRESS, Status.COMPLETED})
_UNASSIGNED_STATES = frozenset({Status.DRAFT, Status.SUBMITTED})
_CONFIRMATION_STATES = frozenset({Status.COMPLETED, Status.CLOSED, Status.CUSTOMER_REJECTED})


# ==== шаблонні кроки ====


@asynccontextmanager
async def _transaction(db: AsyncSession) -> AsyncIterator[None]:
    try:
        yield
        await db.commit()
    except Exception:
        await db.rollback()
        raise


async def _load(db: AsyncSession, request_id: int, *, lock: bool = False) -> MaintenanceRequest:
    q = select(MaintenanceRequest).where(MaintenanceRequest.id == request_id)
    if lock:
        q = q.with_for_update()
    q = q.execution_options(populate_existing=True)
    req = (await db.execute(q)).scalar_one_or_none()
    if req is None:
        raise NotFound("Request not found")
    return req


def _ensure(decision: Decision, actor: Actor, request_pk: Optional[int], action: str) -> None:
    if decision.ok:
        return
    logger.warning(
        "lifecycle_forbidden",
        extra={
            "request_pk": request_pk,
            "actor_id": actor.id,
            "actor_role": actor.audit_role,
            "action": getattr(action, "value", action),
            "denial": decision.kind.value if decision.kind else None,
        },
    )
    raise Forbidden(decision.reason or "Forbidden", decision.kind)


def _ensure_edge(edge: Edge, action: Action) -> None:
    if not edge_allows(edge[0], edge[1], action):
        raise InvalidTransition(describe_illegal(edge[0], edge[1], action))


def check_invariants(req: MaintenanceRequest) -> None:
    problems: list[str] = []
    if req.status in _ASSIGNED_STATES and req.assigned_to_id is None:
        problems.append(f"{req.status.value} requires an assigned technician")
    if req.status in _UNASSIGNED_STATES and req.assigned_to_id is not None:
        problems.append(f"{req.status.value} must not have an assigned technician")

    in_confirmation = req.status in _CONFIRMATION_STATES
    if (req.customer_confirmation_status is not None) != in_confirmation:
        problems.append("confirmation status does not match request status")
    if (req.completed_date is not None) != in_confirmation:
        problems.append("completed date does not match request status")

    if req.customer_confirmed_at is not None and req.customer_rejected_at is not None:
        problems.append("confirmed and rejected timestamps are mutually exclusive")
    if req.customer_confirmation_status is Confirmation.CONFIRMED and req.customer_confirmed_at is None:
        problems.append("CONFIRMED without confirmation timestamp")
    if req.customer_confirmation_status is Confirmation.REJECTED and req.customer_rejected_at is None:
        problems.append("REJECTED without rejection timestamp")

    if problems:
        raise LifecycleInvariantError(f"Request {req.id}: " + "; ".join(problems))


def _emit(event_type: str, req: MaintenanceRequest, actor: Actor, **extra: Any) -> None:
    payload = {
        "request_id": req.id,
        "custom_identifier": req.custom_identifier,
        "title": req.title,
        "status": req.status.value,
        "requested_by_id": req.requested_by_id,
        "assigned_to_id": req.assigned_to_id,
        "actor_id": actor.id,
        "actor_role": actor.audit_role,
    }
    payload.update(extra)
    notifications.enqueue(event_type, payload)


def _clean(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    text = text.strip()
    return text or None


def _require_text(text: Optional[str], field: str) -> str:
    cleaned = _clean(text)
    if not cleaned:
        raise ValidationError(f"{field} is required")
    return cleaned


# ==== створення / читання ====


async def create_request(
    db: AsyncSession,
    data: RequestCreate,
    actor: Actor,
    *,
    now: Optional[datetime] = None,
) -> MaintenanceRequest:
    _ensure(can_create(actor), actor, None, "create")
    if data.custom_identifier and not actor.is_admin:
        raise Forbidden("Only administrators can set a custom identifier")

    now = now or utcnow()
    async with _transaction(db):
        identifier = await identifiers.generate_identifier(
            db, building=data.building, now=now, custom=data.custom_identifier
        )
        req = MaintenanceRequest(
            custom_identifier=identifier,
            title=data.title,
            description=data.description,
            priority=data.priority or PriorityEnum.MEDIUM,
            category_id=data.category_id,
            location=data.location,
            building=data.building,
            specific_location=data.specific_location,
            estimated_cost=data.estimated_cost,
            scheduled_date=data.scheduled_date,
            status=Status.DRAFT if data.as_draft else Status.SUBMITTED,
            requested_by_id=actor.id,
            closed_without_confirmation=False,
        )
        db.add(req)
        try:
            await db.flush()
        except IntegrityError:
            # той самий ідентифікатор щойно зайняла паралельна транзакція
            logger.info("request_identifier_conflict", extra={"identifier": identifier})
            raise ValidationError(identifiers.DUPLICATE_IDENTIFIER_MESSAGE) from None
        check_invariants(req)

    await db.refresh(req)
    logger.info("request_created", extra={"request_pk": req.id, "status": req.status.value})
    _emit("request_created", req, actor, priority=req.priority.value, building=req.building)
    return req


async def get_request(db: AsyncSession, request_id: int, actor: Actor) -> MaintenanceRequest:
    req = await _load(db, request_id)
    _ensure(can_view_request(actor, req), actor, req.id, "view")
    return req


async def list_requests(
    db: AsyncSession,
    actor: Actor,
    *,
    status: Optional[Status] = None,
    priority: Optional[PriorityEnum] = None,
    assigned_to_id: Optional[int] = None,
    building: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Sequence[MaintenanceRequest]:
    q = select(MaintenanceRequest)
    if actor.role is Role.CUSTOMER:
        q = q.where(MaintenanceRequest.requested_by_id == actor.id)
    if status:
        q = q.where(MaintenanceRequest.status == status)
    if priority:
        q = q.where(MaintenanceRequest.priority == priority)
    if assigned_to_id is not None:
        q = q.where(MaintenanceRequest.assigned_to_id == assigned_to_id)
    if building:
        q = q.where(MaintenanceRequest.building == building)
    q = q.order_by(MaintenanceRequest.created_at.desc(), MaintenanceRequest.id.desc()).limit(limit).offset(offset)
    return (await db.execute(q)).scalars().all()


@dataclass(frozen=True, slots=True)
class Timeline:
    status_history: Sequence[RequestStatusHistory]
    assignment_history: Sequence[RequestAssignmentHistory]


async def request_timeline(db: AsyncSession, request_id: int, actor: Actor) -> Timeline:
    await get_request(db, request_id, actor)
    return Timeline(
        status_history=await audit.status_timeline(db, request_id),
        assignment_history=await audit.assignment_timeline(db, request_id),
    )


# ==== деталі та коментарі ====

# клієнт редагує заявку лише поки її ніхто не взяв у роботу
_CUSTOMER_EDITABLE_STATES = frozenset({Status.DRAFT, Status.SUBMITTED})


async def update_request_details(
    db: AsyncSession,
    request_id: int,
    data: RequestUpdate,
    actor: Actor,
) -> MaintenanceRequest:
    """
    PATCH /requests/:id: опис, місце, пріоритет, вартості, дата.
    Поля життєвого циклу (статус, призначення, підтвердження) тут не змінюються.
    """
    changes = data.model_dump(exclude_none=True)
    if not changes:
        raise ValidationError("Nothing to update")

    async with _transaction(db):
        req = await _load(db, request_id, lock=True)
        fields = frozenset(changes)
        _ensure(can_update_details(actor, req, fields), actor, req.id, "update_details")
        if actor.role is Role.CUSTOMER and req.status not in _CUSTOMER_EDITABLE_STATES:
            raise InvalidState(f"Request in status {req.status.value} can no longer be edited")

        for field, value in changes.items():
            setattr(req, field, value)
        await db.flush()
        check_invariants(req)

    await db.refresh(req)
    logger.info(
        "request_updated",
        extra={"request_pk": req.id, "fields": sorted(changes), "actor_id": actor.id},
    )
    _emit("request_updated", req, actor, fields=sorted(changes))
    return req


async def add_comment(
    db: AsyncSession,
    request_id: int,
    actor: Actor,
    *,
    text: str,
    is_internal: bool = False,
) -> RequestComment:
    text = _require_text(text, "text")
    async with _transaction(db):
        req = await _load(db, request_id)
        _ensure(can_view_request(actor, req), actor, req.id, "view")
        _ensure(can_comment(actor, req, internal=is_internal), actor, req.id, "comment")
        comment = RequestComment(
            request_id=req.id,
            author_id=actor.id,
            text=text,
            is_internal=is_internal,
        )
        db.add(comment)
        await db.flush()

    await db.refresh(comment)
    logger.info(
        "comment_added",
        extra={"request_pk": req.id, "comment_id": comment.id, "internal": is_internal, "actor_id": actor.id},
    )
    # про внутрішні коментарі клієнта не сповіщаємо
    if not is_internal:
        _emit("comment_added", req, actor, comment_id=comment.id, text=text)
    return comment


async def list_comments(db: AsyncSession, request_id: int, actor: Actor) -> Sequence[RequestComment]:
    await get_request(db, request_id, actor)
    q = select(RequestComment).where(RequestComment.request_id == request_id)
    if not sees_internal_comments(actor):
        q = q.where(RequestComment.is_internal.is_(False))
    q = q.order_by(RequestComment.created_at.asc(), RequestComment.id.asc())
    return (await db.execute(q)).scalars().all()


# ==== зміна статусу ====


async def _transition(
    db: AsyncSession,
    request_id: int,
    target: Status,
    actor: Actor,
    action: Action,
    *,
    reason: Optional[str],
    now: datetime,
) -> tuple[MaintenanceRequest, Status]:
    async with _transaction(db):
        req = await _load(db, request_id, lock=True)
        source = req.status
        edge = (source, target)
        _ensure_edge(edge, action)
        _ensure(authorize(actor.role, actor.id, req, edge, action), actor, req.id, action)

        if source is Status.COMPLETED:
            # відкат техніком можливий лише поки клієнт ще не відповів
            if req.customer_confirmation_status is not Confirmation.PENDING:
                raise AlreadyResolved("Customer confirmation is already resolved")
            confirmation.disarm(req)
        elif source is Status.CUSTOMER_REJECTED:
            confirmation.disarm(req)
        if target is Status.COMPLETED:
            confirmation.arm(req, now)

        req.status = target
        audit.record_status_change(
            db,
            request_id=req.id,
            from_status=source,
            to_status=target,
            actor=actor,
            at=now,
            reason=reason,
        )
        await db.flush()
        check_invariants(req)

    await db.refresh(req)
    return req, source


async def update_status(
    db: AsyncSession,
    request_id: int,
    target: Status,
    actor: Actor,
    *,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> MaintenanceRequest:
    """PATCH /requests/:id/status: загальна зміна статусу (не для клієнтів)."""
    reason = _clean(reason)
    if target is Status.REJECTED and not reason:
        raise ValidationError("reason is required to reject a request")

    req, source = await _transition(
        db, request_id, target, actor, Action.STATUS_UPDATE, reason=reason, now=now or utcnow()
    )
    logger.info(
        "status_changed",
        extra={"request_pk": req.id, "from": source.value, "to": target.value, "actor_id": actor.id},
    )
    _emit("status_changed", req, actor, **{"from": source.value, "to": target.value, "reason": reason})
    return req


async def submit_draft(
    db: AsyncSession,
    request_id: int,
    actor: Actor,
    *,
    now: Optional[datetime] = None,
) -> MaintenanceRequest:
    """Клієнт відправляє власну чернетку (завершальний крок створення)."""
    req, source = await _transition(
        db, request_id, Status.SUBMITTED, actor, Action.SUBMIT, reason="Draft submitted", now=now or utcnow()
    )
    logger.info("draft_submitted", extra={"request_pk": req.id, "actor_id": actor.id})
    _emit("status_changed", req, actor, **{"from": source.value, "to": Status.SUBMITTED.value})
    return req


# ==== призначення ====


async def assign_technician(
    db: AsyncSession,
    request_id: int,
    technician_id: int,
    actor: Actor,
    *,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> MaintenanceRequest:
    now = now or utcnow()
    reason = _clean(reason)
    async with _transaction(db):
        req = await _load(db, request_id, lock=True)
        edge = assignment.assignment_edge(req)
        if edge is not None:
            _ensure_edge(edge, Action.ASSIGN)
        _ensure(authorize(actor.role, actor.id, req, edge, Action.ASSIGN), actor, req.id, Action.ASSIGN)

        technician = await assignment.load_technician(db, technician_id)
        change = assignment.apply_manual_assignment(req, technician.id, actor)
        audit.record_assignment(
            db,
            request_id=req.id,
            assignment_type=change.assignment_type,
            from_technician_id=change.from_technician_id,
            to_technician_id=change.to_technician_id,
            actor=actor,
            at=now,
            reason=reason,
        )
        if change.status_changed:
            audit.record_status_change(
                db,
                request_id=req.id,
                from_status=change.from_status,
                to_status=change.to_status,
                actor=actor,
                at=now,
                reason=assignment.ASSIGNED_STATUS_REASON,
            )
        await db.flush()
        check_invariants(req)

    await db.refresh(req)
    logger.info(
        "request_assigned",
        extra={
            "request_pk": req.id,
            "assignment_type": change.assignment_type.value,
            "technician_id": technician.id,
            "actor_id": actor.id,
        },
    )
    _emit(
        "request_assigned",
        req,
        actor,
        assignment_type=change.assignment_type.value,
        from_technician_id=change.from_technician_id,
        to_technician_id=change.to_technician_id,
    )
    return req


async def self_assign(
    db: AsyncSession,
    request_id: int,
    actor: Actor,
    *,
    now: Optional[datetime] = None,
) -> MaintenanceRequest:
    now = now or utcnow()
    async with _transaction(db):
        req = await _load(db, request_id)
        if req.assigned_to_id is not None:
            raise AlreadyAssigned("Request is already assigned to a technician")
        edge = (req.status, Status.ASSIGNED)
        _ensure_edge(edge, Action.SELF_ASSIGN)
        _ensure(authorize(actor.role, actor.id, req, edge, Action.SELF_ASSIGN), actor, req.id, Action.SELF_ASSIGN)

        if not await assignment.claim_unassigned(db, req.id, actor.id):
            logger.info("self_assign_lost_race", extra={"request_pk": req.id, "technician_id": actor.id})
            raise AlreadyAssigned("Request was just assigned to another technician")

        await db.refresh(req)
        change = assignment.self_assignment_change(actor.id)
        audit.record_assignment(
            db,
            request_id=req.id,
            assignment_type=change.assignment_type,
            from_technician_id=None,
            to_technician_id=actor.id,
            actor=actor,
            at=now,
            reason=assignment.SELF_ASSIGN_REASON,
        )
        audit.record_status_change(
            db,
            request_id=req.id,
            from_status=change.from_status,
            to_status=change.to_status,
            actor=actor,
            at=now,
            reason=assignment.SELF_ASSIGN_REASON,
        )
        await db.flush()
        check_invariants(req)

    logger.info("request_self_assigned", extra={"request_pk": req.id, "technician_id": actor.id})
    _emit(
        "request_assigned",
        req,
        actor,
        assignment_type=change.assignment_type.value,
        from_technician_id=None,
        to_technician_id=actor.id,
    )
    return req


async def unassign_technician(
    db: AsyncSession,
    request_id: int,
    actor: Actor,
    *,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> MaintenanceRequest:
    now = now or utcnow()
    reason = _clean(reason)
    async with _transaction(db):
        req = await _load(db, request_id, lock=True)
        edge = assignment.unassignment_edge(req)
        _ensure_edge(edge, Action.UNASSIGN)
        _ensure(authorize(actor.role, actor.id, req, edge, Action.UNASSIGN), actor, req.id, Action.UNASSIGN)

        change = assignment.apply_unassignment(req)
        audit.record_assignment(
            db,
            request_id=req.id,
            assignment_type=change.assignment_type,
            from_technician_id=change.from_technician_id,
            to_technician_id=None,
            actor=actor,
            at=now,
            reason=reason,
        )
        audit.record_status_change(
            db,
            request_id=req.id,
            from_status=change.from_status,
            to_status=change.to_status,
            actor=actor,
            at=now,
            reason=reason or assignment.UNASSIGNED_STATUS_REASON,
        )
        await db.flush()
        check_invariants(req)

    await db.refresh(req)
    logger.info(
        "request_unassigned",
        extra={"request_pk": req.id, "technician_id": change.from_technician_id, "actor_id": actor.id},
    )
    _emit("request_unassigned", req, actor, from_technician_id=change.from_technician_id)
    return req


# ==== підтвердження клієнтом ====


async def confirm_completion(
    db: AsyncSession,
    request_id: int,
    actor: Actor,
    *,
    comment: Optional[str] = None,
    override_reason: Optional[str] = None,
    now: Optional[datetime] = None,
    completed_before: Optional[datetime] = None,
) -> MaintenanceRequest:
    """
    Підтвердження виконання: клієнт-автор, адмін (з override_reason) або система
    (sweep автопідтвердження, completed_before = межа вікна очікування).
    """
    now = now or utcnow()
    comment = _clean(comment)
    override_reason = _clean(override_reason)
    if actor.is_admin:
        if not override_reason:
            raise ValidationError("overrideReason is required when an administrator confirms completion")
    elif override_reason:
        raise ValidationError("overrideReason is accepted only from administrators")

    action = Action.AUTO_CONFIRM if actor.is_system else Action.CONFIRM
    async with _transaction(db):
        req = await _load(db, request_id)
        confirmation.ensure_pending(req)
        edge = (Status.COMPLETED, Status.CLOSED)
        _ensure_edge(edge, action)
        _ensure(authorize(actor.role, actor.id, req, edge, action), actor, req.id, action)

        won = await confirmation.resolve_pending(
            db,
            req.id,
            confirmation.confirmed_values(now, comment, override_reason),
            completed_before=completed_before,
        )
        if not won:
            raise AlreadyResolved("Customer confirmation was resolved concurrently")

        await db.refresh(req)
        audit.record_status_change(
            db,
            request_id=req.id,
            from_status=Status.COMPLETED,
            to_status=Status.CLOSED,
            actor=actor,
            at=now,
            reason=confirmation.confirm_reason(actor),
        )
        await db.flush()
        check_invariants(req)

    logger.info(
        "completion_confirmed",
        extra={"request_pk": req.id, "actor_id": actor.id, "actor_role": actor.audit_role},
    )
    _emit("completion_confirmed", req, actor, comment=comment)
    return req


async def reject_completion(
    db: AsyncSession,
    request_id: int,
    actor: Actor,
    *,
    reason: str,
    comment: Optional[str] = None,
    now: Optional[datetime] = None,
) -> MaintenanceRequest:
    now = now or utcnow()
    reason = _require_text(reason, "reason")
    comment = _clean(comment)
    async with _transaction(db):
        req = await _load(db, request_id)
        confirmation.ensure_pending(req)
        edge = (Status.COMPLETED, Status.CUSTOMER_REJECTED)
        _ensure_edge(edge, Action.REJECT_COMPLETION)
        _ensure(
            authorize(actor.role, actor.id, req, edge, Action.REJECT_COMPLETION),
            actor,
            req.id,
            Action.REJECT_COMPLETION,
        )

        won = await confirmation.resolve_pending(db, req.id, confirmation.rejected_values(now, reason, comment))
        if not won:
            raise AlreadyResolved("Customer confirmation was resolved concurrently")

        await db.refresh(req)
        audit.record_status_change(
            db,
            request_id=req.id,
            from_status=Status.COMPLETED,
            to_status=Status.CUSTOMER_REJECTED,
            actor=actor,
            at=now,
            reason=reason,
        )
        await db.flush()
        check_invariants(req)

    logger.info("completion_rejected", extra={"request_pk": req.id, "actor_id": actor.id})
    _emit("completion_rejected", req, actor, reason=reason, comment=comment)
    return req


async def close_without_confirmation(
    db: AsyncSession,
    request_id: int,
    actor: Actor,
    *,
    reason: str,
    now: Optional[datetime] = None,
) -> MaintenanceRequest:
    """Адмінське закриття без відповіді клієнта (з PENDING) або після покинутого доопрацювання."""
    now = now or utcnow()
    reason = _require_text(reason, "reason")
    async with _transaction(db):
        req = await _load(db, request_id, lock=True)
        source = req.status
        edge = (source, Status.CLOSED)
        # роль перевіряється раніше за стан заявки
        decision = authorize(actor.role, actor.id, req, edge, Action.OVERRIDE_CLOSE)
        _ensure(decision, actor, req.id, Action.OVERRIDE_CLOSE)

        if source is Status.COMPLETED:
            confirmation.ensure_pending(req)
            _ensure_edge(edge, Action.OVERRIDE_CLOSE)
            if not await confirmation.resolve_pending(db, req.id, confirmation.overridden_values(reason)):
                raise AlreadyResolved("Customer confirmation was resolved concurrently")
            await db.refresh(req)
        elif source is Status.CUSTOMER_REJECTED:
            _ensure_edge(edge, Action.OVERRIDE_CLOSE)
            confirmation.close_rejected(req, reason)
        elif source is Status.CLOSED:
            raise AlreadyResolved("Request is already closed")
        else:
            raise InvalidState(f"Request in status {source.value} cannot be closed without confirmation")

        audit.record_status_change(
            db,
            request_id=req.id,
            from_status=source,
            to_status=Status.CLOSED,
            actor=actor,
            at=now,
            reason=f"{confirmation.OVERRIDE_REASON_PREFIX}: {reason}",
        )
        await db.flush()
        check_invariants(req)

    await db.refresh(req)
    logger.info(
        "closed_without_confirmation",
        extra={"request_pk": req.id, "from": source.value, "actor_id": actor.id},
    )
    _emit("closed_without_confirmation", req, actor, reason=reason, **{"from": source.value})
    return req


async def get_confirmation_status(db: AsyncSession, request_id: int, actor: Actor) -> dict[str, Any]:
    req = await _load(db, request_id)
    _ensure(can_view_confirmation(actor, req), actor, req.id, "view_confirmation")
    return confirmation.confirmation_view(req, actor)


# ==== sweep автопідтвердження ====


async def auto_confirm_overdue(
    db: AsyncSession,
    *,
    now: Optional[datetime] = None,
    days: Optional[int] = None,
    business_days: Optional[bool] = None,
) -> int:
    """
    Підтверджує від імені системи всі заявки, що чекають відповіді клієнта довше за вікно.
    Безпечно запускати повторно й паралельно: кожна заявка закривається тим самим CAS,
    що й ручне підтвердження, тож друга спроба просто отримує AlreadyResolved.
    """
    now = now or utcnow()
    cutoff = confirmation.auto_confirm_cutoff(now, days=days, business_days=business_days)
    q = (
        select(MaintenanceRequest.id)
        .where(
            MaintenanceRequest.status == Status.COMPLETED,
            MaintenanceRequest.customer_confirmation_status == Confirmation.PENDING,
            MaintenanceRequest.completed_date < cutoff,
        )
        .order_by(MaintenanceRequest.completed_date.asc())
    )
    due_ids = (await db.execute(q)).scalars().all()

    system = Actor.system()
    processed = 0
    for request_id in due_ids:
        try:
            await confirm_completion(db, request_id, system, now=now, completed_before=cutoff)
        except (AlreadyResolved, InvalidState, NotFound) as e:
            # клієнт/адмін/паралельний sweep встиг першим, це нормальний результат
            logger.info("auto_confirm_skipped", extra={"request_pk": request_id, "code": e.code})
            continue
        processed += 1

    logger.info(
        "auto_confirm_sweep_done",
        extra={"due": len(due_ids), "processed": processed, "cutoff": cutoff.isoformat()},
    )
    return processed
