# ruff: noqa: S101
from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from app.core.time import as_utc
from app.db.models import (
    ConfirmationStatusEnum as Confirmation,
    MaintenanceRequest,
    RequestStatusEnum as Status,
)
from app.services import audit, confirmation, lifecycle
from app.services.errors import (
    AlreadyResolved,
    DenialKind,
    Forbidden,
    InvalidState,
    InvalidTransition,
    ValidationError,
)
from app.services.permissions import Actor
from tests.factories import T0, actor, completed_request, in_progress_request, submitted_request


@pytest.mark.asyncio
async def test_completion_arms_pending_confirmation(db, users) -> None:
    req = await completed_request(db, users)

    assert req.status is Status.COMPLETED
    assert req.customer_confirmation_status is Confirmation.PENDING
    assert as_utc(req.completed_date) == T0
    assert req.customer_confirmed_at is None
    assert req.customer_rejected_at is None


@pytest.mark.asyncio
async def test_customer_confirms_own_request(db, users, events) -> None:
    req = await completed_request(db, users)

    closed = await lifecycle.confirm_completion(
        db, req.id, actor(users.customer), comment="All good", now=T0 + timedelta(hours=2)
    )

    assert closed.status is Status.CLOSED
    assert closed.customer_confirmation_status is Confirmation.CONFIRMED
    assert as_utc(closed.customer_confirmed_at) == T0 + timedelta(hours=2)
    assert closed.customer_confirmation_comment == "All good"
    assert closed.customer_rejected_at is None
    assert closed.assigned_to_id == users.tech.id
    last = (await audit.status_timeline(db, req.id))[-1]
    assert last.reason == confirmation.CUSTOMER_CONFIRMED_REASON
    assert events[-1][0] == "completion_confirmed"


@pytest.mark.asyncio
async def test_second_resolution_is_already_resolved(db, users) -> None:
    req = await completed_request(db, users)
    rid = req.id
    await lifecycle.confirm_completion(db, rid, actor(users.customer))

    with pytest.raises(AlreadyResolved):
        await lifecycle.confirm_completion(db, rid, actor(users.customer))
    with pytest.raises(AlreadyResolved):
        await lifecycle.reject_completion(db, rid, actor(users.customer), reason="changed my mind")


@pytest.mark.asyncio
async def test_confirm_before_completion_is_invalid_state(db, users) -> None:
    req = await in_progress_request(db, users)
    with pytest.raises(InvalidState):
        await lifecycle.confirm_completion(db, req.id, actor(users.customer))


@pytest.mark.asyncio
async def test_other_customer_cannot_confirm(db, users) -> None:
    req = await completed_request(db, users)
    with pytest.raises(Forbidden) as exc:
        await lifecycle.confirm_completion(db, req.id, actor(users.other_customer))
    assert exc.value.kind.value == "ownership"


@pytest.mark.asyncio
async def test_admin_confirmation_requires_override_reason(db, users) -> None:
    req = await completed_request(db, users)
    rid = req.id
    with pytest.raises(ValidationError):
        await lifecycle.confirm_completion(db, rid, actor(users.maint_admin))
    with pytest.raises(ValidationError):
        await lifecycle.confirm_completion(db, rid, actor(users.customer), override_reason="not mine to give")

    closed = await lifecycle.confirm_completion(
        db, rid, actor(users.maint_admin), override_reason="customer confirmed by phone"
    )
    assert closed.customer_confirmation_status is Confirmation.CONFIRMED
    assert closed.admin_override_reason == "customer confirmed by phone"
    last = (await audit.status_timeline(db, rid))[-1]
    assert last.reason == confirmation.ADMIN_CONFIRMED_REASON


@pytest.mark.asyncio
async def test_closing_completed_via_status_update_is_not_allowed(db, users) -> None:
    req = await completed_request(db, users)
    with pytest.raises(InvalidTransition):
        await lifecycle.update_status(db, req.id, Status.CLOSED, actor(users.super_admin))


@pytest.mark.asyncio
async def test_reject_then_rework_then_confirm(db, users) -> None:
    req = await completed_request(db, users)
    rid = req.id

    rejected = await lifecycle.reject_completion(
        db, rid, actor(users.customer), reason="Still dripping", comment="worse at night", now=T0 + timedelta(hours=1)
    )
    assert rejected.status is Status.CUSTOMER_REJECTED
    assert rejected.customer_confirmation_status is Confirmation.REJECTED
    assert rejected.customer_rejection_reason == "Still dripping"
    assert as_utc(rejected.customer_rejected_at) == T0 + timedelta(hours=1)
    assert rejected.customer_confirmed_at is None

    reworked = await lifecycle.update_status(db, rid, Status.IN_PROGRESS, actor(users.tech), now=T0 + timedelta(days=1))
    assert reworked.customer_confirmation_status is None
    assert reworked.completed_date is None

    again = await lifecycle.update_status(db, rid, Status.COMPLETED, actor(users.tech), now=T0 + timedelta(days=2))
    assert again.customer_confirmation_status is Confirmation.PENDING
    assert again.customer_rejection_reason is None
    assert as_utc(again.completed_date) == T0 + timedelta(days=2)

    closed = await lifecycle.confirm_completion(db, rid, actor(users.customer))
    assert closed.status is Status.CLOSED


@pytest.mark.asyncio
async def test_reject_requires_owner_and_reason(db, users) -> None:
    req = await completed_request(db, users)
    rid = req.id
    with pytest.raises(ValidationError):
        await lifecycle.reject_completion(db, rid, actor(users.customer), reason="   ")
    with pytest.raises(Forbidden):
        await lifecycle.reject_completion(db, rid, actor(users.maint_admin), reason="on behalf")


@pytest.mark.asyncio
async def test_close_without_confirmation_from_pending(db, users, events) -> None:
    req = await completed_request(db, users)

    closed = await lifecycle.close_without_confirmation(
        db, req.id, actor(users.maint_admin), reason="customer unreachable"
    )

    assert closed.status is Status.CLOSED
    assert closed.customer_confirmation_status is Confirmation.OVERRIDDEN
    assert closed.closed_without_confirmation is True
    assert closed.admin_override_reason == "customer unreachable"
    assert closed.customer_confirmed_at is None
    assert closed.customer_rejected_at is None
    last = (await audit.status_timeline(db, req.id))[-1]
    assert last.reason.startswith(confirmation.OVERRIDE_REASON_PREFIX)
    assert events[-1][0] == "closed_without_confirmation"


@pytest.mark.asyncio
async def test_close_without_confirmation_after_customer_rejection(db, users) -> None:
    req = await completed_request(db, users)
    rid = req.id
    await lifecycle.reject_completion(db, rid, actor(users.customer), reason="Still dripping")

    closed = await lifecycle.close_without_confirmation(db, rid, actor(users.super_admin), reason="replaced under warranty")

    assert closed.status is Status.CLOSED
    assert closed.customer_confirmation_status is Confirmation.REJECTED
    assert closed.closed_without_confirmation is True
    assert closed.customer_rejected_at is not None


@pytest.mark.asyncio
async def test_close_without_confirmation_guards(db, users) -> None:
    req = await in_progress_request(db, users)
    rid = req.id
    with pytest.raises(InvalidState):
        await lifecycle.close_without_confirmation(db, rid, actor(users.maint_admin), reason="done")

    await lifecycle.update_status(db, rid, Status.COMPLETED, actor(users.tech))
    with pytest.raises(Forbidden):
        await lifecycle.close_without_confirmation(db, rid, actor(users.customer), reason="done")
    with pytest.raises(Forbidden):
        await lifecycle.close_without_confirmation(db, rid, actor(users.basma), reason="done")


@pytest.mark.asyncio
@pytest.mark.parametrize("who", ["customer", "tech"])
async def test_close_without_confirmation_denies_role_before_state(db, users, who) -> None:
    draft = await submitted_request(db, users, as_draft=True)
    draft_id = draft.id
    working = await in_progress_request(db, users)
    working_id = working.id
    caller = actor(getattr(users, who))

    for rid in (draft_id, working_id):
        with pytest.raises(Forbidden) as exc:
            await lifecycle.close_without_confirmation(db, rid, caller, reason="done")
        assert exc.value.kind is DenialKind.ROLE


@pytest.mark.asyncio
async def test_technician_reverts_completion_while_pending(db, users) -> None:
    req = await completed_request(db, users)
    reverted = await lifecycle.update_status(db, req.id, Status.IN_PROGRESS, actor(users.tech), reason="forgot a part")
    assert reverted.customer_confirmation_status is None
    assert reverted.completed_date is None


# ---- автопідтвердження ----


@pytest.mark.asyncio
async def test_sweep_confirms_only_overdue_requests(db, users, events) -> None:
    overdue = await completed_request(db, users, at=T0)
    fresh = await completed_request(db, users, at=T0 + timedelta(days=2))

    processed = await lifecycle.auto_confirm_overdue(db, now=T0 + timedelta(days=3, minutes=1), days=3)

    assert processed == 1
    done = await lifecycle.get_request(db, overdue.id, actor(users.maint_admin))
    assert done.status is Status.CLOSED
    assert done.customer_confirmation_status is Confirmation.CONFIRMED
    assert done.closed_without_confirmation is False
    last = (await audit.status_timeline(db, overdue.id))[-1]
    assert last.changed_by_id is None
    assert last.actor_role == "SYSTEM"
    assert last.reason == confirmation.AUTO_CONFIRMED_REASON

    waiting = await lifecycle.get_request(db, fresh.id, actor(users.maint_admin))
    assert waiting.status is Status.COMPLETED


@pytest.mark.asyncio
async def test_sweep_is_idempotent(db, users) -> None:
    req = await completed_request(db, users, at=T0)
    later = T0 + timedelta(days=5)

    assert await lifecycle.auto_confirm_overdue(db, now=later, days=3) == 1
    assert await lifecycle.auto_confirm_overdue(db, now=later, days=3) == 0

    rows = await audit.status_timeline(db, req.id)
    assert [r.to_status for r in rows].count(Status.CLOSED) == 1


@pytest.mark.asyncio
async def test_sweep_skips_request_resolved_in_between(db, users) -> None:
    req = await completed_request(db, users, at=T0)
    await lifecycle.confirm_completion(db, req.id, actor(users.customer), now=T0 + timedelta(days=4))

    assert await lifecycle.auto_confirm_overdue(db, now=T0 + timedelta(days=5), days=3) == 0


@pytest.mark.asyncio
async def test_revert_rearms_the_waiting_window(db, users) -> None:
    req = await completed_request(db, users, at=T0)
    rid = req.id
    await lifecycle.update_status(db, rid, Status.IN_PROGRESS, actor(users.tech), now=T0 + timedelta(days=1))
    await lifecycle.update_status(db, rid, Status.COMPLETED, actor(users.tech), now=T0 + timedelta(days=2))

    # від першого завершення минуло 4 дні, від повторного лише 2
    assert await lifecycle.auto_confirm_overdue(db, now=T0 + timedelta(days=4), days=3) == 0
    assert await lifecycle.auto_confirm_overdue(db, now=T0 + timedelta(days=5, minutes=1), days=3) == 1


@pytest.mark.asyncio
async def test_stale_sweep_cannot_close_rearmed_request(db, users) -> None:
    req = await completed_request(db, users, at=T0)
    rid = req.id
    await lifecycle.update_status(db, rid, Status.IN_PROGRESS, actor(users.tech), now=T0 + timedelta(days=1))
    await lifecycle.update_status(db, rid, Status.COMPLETED, actor(users.tech), now=T0 + timedelta(days=4))

    # sweep вибрав заявку за старим completed_date, але CAS дивиться на поточний
    cutoff = T0 + timedelta(days=1)
    with pytest.raises(AlreadyResolved):
        await lifecycle.confirm_completion(db, rid, Actor.system(), now=T0 + timedelta(days=4), completed_before=cutoff)

    fresh = await lifecycle.get_request(db, rid, actor(users.maint_admin))
    assert fresh.status is Status.COMPLETED


@pytest.mark.asyncio
async def test_sweep_in_business_days_skips_weekend(db, users) -> None:
    friday = T0 + timedelta(days=4)
    await completed_request(db, users, at=friday)

    # пт + 3 робочі дні = середа
    assert await lifecycle.auto_confirm_overdue(db, now=friday + timedelta(days=4), days=3, business_days=True) == 0
    assert await lifecycle.auto_confirm_overdue(db, now=friday + timedelta(days=5, minutes=1), days=3, business_days=True) == 1


@pytest.mark.asyncio
async def test_sweep_waits_until_window_has_fully_passed(db, users) -> None:
    req = await completed_request(db, users, at=T0)
    rid = req.id

    assert await lifecycle.auto_confirm_overdue(db, now=T0 + timedelta(days=3), days=3) == 0
    with pytest.raises(AlreadyResolved):
        await lifecycle.confirm_completion(
            db, rid, Actor.system(), now=T0 + timedelta(days=3), completed_before=T0
        )
    still = await lifecycle.get_request(db, rid, actor(users.maint_admin))
    assert still.status is Status.COMPLETED

    assert await lifecycle.auto_confirm_overdue(db, now=T0 + timedelta(days=3, seconds=1), days=3) == 1


@pytest.mark.asyncio
async def test_customer_and_sweep_race_has_single_outcome(session_maker, users) -> None:
    async with session_maker() as db:
        req = await completed_request(db, users, at=T0)
    later = T0 + timedelta(days=4)

    async def customer():
        async with session_maker() as session:
            return await lifecycle.confirm_completion(session, req.id, actor(users.customer), now=later)

    async def sweep():
        async with session_maker() as session:
            return await lifecycle.auto_confirm_overdue(session, now=later, days=3)

    results = await asyncio.gather(customer(), sweep(), return_exceptions=True)

    customer_won = isinstance(results[0], MaintenanceRequest)
    sweep_won = results[1] == 1
    assert customer_won != sweep_won
    async with session_maker() as db:
        rows = await audit.status_timeline(db, req.id)
        assert [r.to_status for r in rows].count(Status.CLOSED) == 1


@pytest.mark.asyncio
async def test_system_actor_cannot_reject_or_override(db, users) -> None:
    req = await completed_request(db, users)
    rid = req.id
    with pytest.raises(Forbidden):
        await lifecycle.reject_completion(db, rid, Actor.system(), reason="no")
    with pytest.raises(Forbidden):
        await lifecycle.close_without_confirmation(db, rid, Actor.system(), reason="no")


# ---- статус підтвердження ----


@pytest.mark.asyncio
async def test_confirmation_status_view(db, users) -> None:
    req = await completed_request(db, users, at=T0)

    owner_view = await lifecycle.get_confirmation_status(db, req.id, actor(users.customer))
    assert owner_view["status"] is Confirmation.PENDING
    assert owner_view["can_confirm"] is True
    assert owner_view["can_reject"] is True
    assert owner_view["can_override"] is False
    assert owner_view["auto_confirm_date"] is not None

    admin_view = await lifecycle.get_confirmation_status(db, req.id, actor(users.maint_admin))
    assert admin_view["can_confirm"] is True
    assert admin_view["can_reject"] is False
    assert admin_view["can_override"] is True

    tech_view = await lifecycle.get_confirmation_status(db, req.id, actor(users.tech))
    assert tech_view["can_confirm"] is False

    rid = req.id
    with pytest.raises(Forbidden):
        await lifecycle.get_confirmation_status(db, rid, actor(users.other_tech))


@pytest.mark.asyncio
async def test_confirmation_status_before_completion(db, users) -> None:
    req = await submitted_request(db, users)
    view = await lifecycle.get_confirmation_status(db, req.id, actor(users.customer))
    assert view["status"] is None
    assert view["can_confirm"] is False
    assert view["auto_confirm_date"] is None
