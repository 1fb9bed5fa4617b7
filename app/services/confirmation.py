"""
Підтвердження виконання клієнтом: вкладений стан заявки.

Живе в полях самої заявки і активний лише в COMPLETED:
    PENDING -> CONFIRMED | REJECTED | OVERRIDDEN (усі термінальні)
Будь-яке завершення PENDING: умовний UPDATE з guard-ом на PENDING,
тож клієнт, адмін і sweep автопідтвердження не можуть перезаписати одне одного.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.time import as_utc, shift_days
from app.db.models import (
    ConfirmationStatusEnum as Confirmation,
    MaintenanceRequest,
    RequestStatusEnum as Status,
    RoleEnum as Role,
)
from app.services.errors import AlreadyResolved, InvalidState
from app.services.permissions import Actor

RESOLVED_STATES: frozenset[Confirmation] = frozenset({
    Confirmation.CONFIRMED,
    Confirmation.REJECTED,
    Confirmation.OVERRIDDEN,
})

CUSTOMER_CONFIRMED_REASON = "customer confirmed"
ADMIN_CONFIRMED_REASON = "confirmed by administrator"
AUTO_CONFIRMED_REASON = "auto-confirmed after timeout"
OVERRIDE_REASON_PREFIX = "Closed without customer confirmation"


def arm(req: MaintenanceRequest, at: datetime) -> None:
    """Вхід у COMPLETED: свіже вікно очікування підтвердження."""
    req.completed_date = at
    req.customer_confirmation_status = Confirmation.PENDING
    req.customer_confirmed_at = None
    req.customer_rejected_at = None
    req.customer_confirmation_comment = None
    req.customer_rejection_reason = None
    req.closed_without_confirmation = False
    req.admin_override_reason = None


def disarm(req: MaintenanceRequest) -> None:
    """Повернення в роботу (відкат техніком або доопрацювання): вікно скасовується."""
    req.completed_date = None
    req.customer_confirmation_status = None
    req.customer_confirmed_at = None
    req.customer_rejected_at = None
    req.customer_confirmation_comment = None
    req.customer_rejection_reason = None
    req.closed_without_confirmation = False
    req.admin_override_reason = None


def ensure_pending(req: MaintenanceRequest) -> None:
    if req.status is Status.COMPLETED and req.customer_confirmation_status is Confirmation.PENDING:
        return
    if req.customer_confirmation_status in RESOLVED_STATES:
        raise AlreadyResolved(
            f"Confirmation already resolved as {req.customer_confirmation_status.value}"
        )
    raise InvalidState(f"Request in status {req.status.value} is not awaiting customer confirmation")


def _resolve_statement(request_id: int, values: dict[str, Any], completed_before: Optional[datetime]):
    stmt = update(MaintenanceRequest).where(
        MaintenanceRequest.id == request_id,
        MaintenanceRequest.status == Status.COMPLETED,
        MaintenanceRequest.customer_confirmation_status == Confirmation.PENDING,
    )
    if completed_before is not None:
        stmt = stmt.where(MaintenanceRequest.completed_date < completed_before)
    return stmt.values(**values).execution_options(synchronize_session=False)


async def resolve_pending(
    db: AsyncSession,
    request_id: int,
    values: dict[str, Any],
    *,
    completed_before: Optional[datetime] = None,
) -> bool:
    """CAS: True: саме ми закрили PENDING, False: хтось встиг раніше (або вікно перевідкрито)."""
    result = await db.execute(_resolve_statement(request_id, values, completed_before))
    return result.rowcount == 1


def confirmed_values(at: datetime, comment: Optional[str], override_reason: Optional[str]) -> dict[str, Any]:
    return {
        "status": Status.CLOSED,
        "customer_confirmation_status": Confirmation.CONFIRMED,
        "customer_confirmed_at": at,
        "customer_confirmation_comment": comment,
        "admin_override_reason": override_reason,
    }


def rejected_values(at: datetime, reason: str, comment: Optional[str]) -> dict[str, Any]:
    return {
        "status": Status.CUSTOMER_REJECTED,
        "customer_confirmation_status": Confirmation.REJECTED,
        "customer_rejected_at": at,
        "customer_rejection_reason": reason,
        "customer_confirmation_comment": comment,
    }


def overridden_values(reason: str) -> dict[str, Any]:
    return {
        "status": Status.CLOSED,
        "customer_confirmation_status": Confirmation.OVERRIDDEN,
        "closed_without_confirmation": True,
        "admin_override_reason": reason,
    }


def close_rejected(req: MaintenanceRequest, reason: str) -> None:
    """CUSTOMER_REJECTED -> CLOSED адміном: результат відмови клієнта не переписуємо."""
    req.status = Status.CLOSED
    req.closed_without_confirmation = True
    req.admin_override_reason = reason


def confirm_reason(actor: Actor) -> str:
    if actor.is_system:
        return AUTO_CONFIRMED_REASON
    if actor.is_admin:
        return ADMIN_CONFIRMED_REASON
    return CUSTOMER_CONFIRMED_REASON


# ---- вікно автопідтвердження ----


def auto_confirm_cutoff(
    now: datetime,
    *,
    days: Optional[int] = None,
    business_days: Optional[bool] = None,
) -> datetime:
    """Заявки, виконані раніше за цей момент, вже можна підтверджувати автоматично."""
    return shift_days(
        now,
        -(days if days is not None else settings.auto_confirm_days),
        business_days=settings.auto_confirm_business_days if business_days is None else business_days,
    )


def auto_confirm_date(completed_date: Optional[datetime]) -> Optional[datetime]:
    if completed_date is None:
        return None
    return shift_days(
        as_utc(completed_date),
        settings.auto_confirm_days,
        business_days=settings.auto_confirm_business_days,
    )


def confirmation_view(req: MaintenanceRequest, actor: Actor) -> dict[str, Any]:
    pending = req.status is Status.COMPLETED and req.customer_confirmation_status is Confirmation.PENDING
    is_owner = actor.role is Role.CUSTOMER and req.requested_by_id == actor.id
    return {
        "request_id": req.id,
        "request_status": req.status,
        "status": req.customer_confirmation_status,
        "can_confirm": pending and (is_owner or actor.is_admin),
        "can_reject": pending and is_owner,
        "can_override": actor.is_admin and (pending or req.status is Status.CUSTOMER_REJECTED),
        "completed_date": as_utc(req.completed_date),
        "auto_confirm_date": auto_confirm_date(req.completed_date) if pending else None,
        "confirmed_at": as_utc(req.customer_confirmed_at),
        "rejected_at": as_utc(req.customer_rejected_at),
        "comment": req.customer_confirmation_comment,
        "rejection_reason": req.customer_rejection_reason,
        "closed_without_confirmation": req.closed_without_confirmation,
        "admin_override_reason": req.admin_override_reason,
    }
