# ruff: noqa: S101
from __future__ import annotations

from typing import AsyncIterator

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.security import create_access_token
from app.db.models import User
from app.db.session import get_session
from app.main import create_app


def _auth(user: User) -> dict[str, str]:
    token = create_access_token(
        subject=str(user.id),
        role=user.role.value,
        secret=settings.jwt_secret,
        algorithm=settings.jwt_alg,
    )
    return {"Authorization": f"Bearer {token}"}


def _build_test_app(session_maker) -> FastAPI:
    app = create_app()

    async def _override_get_session() -> AsyncIterator[AsyncSession]:
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_session] = _override_get_session
    return app


@pytest_asyncio.fixture
async def client(session_maker) -> AsyncIterator[AsyncClient]:
    app = _build_test_app(session_maker)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as c:
        yield c


PAYLOAD = {
    "title": "Broken AC",
    "description": "Air conditioner in the office blows warm air",
    "location": "Office 12",
    "building": "Building A",
    "priority": "HIGH",
}


@pytest.mark.asyncio
async def test_request_lifecycle_over_http(client, users) -> None:
    created = await client.post("/api/requests", json=PAYLOAD, headers=_auth(users.customer))
    assert created.status_code == 201
    body = created.json()
    assert body["status"] == "SUBMITTED"
    assert body["customIdentifier"].endswith("-BUILDINGA-001")
    rid = body["id"]

    claimed = await client.post(f"/api/requests/{rid}/self-assign", headers=_auth(users.tech))
    assert claimed.status_code == 200
    assert claimed.json()["assignedToId"] == users.tech.id

    again = await client.post(f"/api/requests/{rid}/self-assign", headers=_auth(users.other_tech))
    assert again.status_code == 409
    assert again.json()["code"] == "ALREADY_ASSIGNED"

    started = await client.patch(
        f"/api/requests/{rid}/status", json={"status": "IN_PROGRESS"}, headers=_auth(users.tech)
    )
    assert started.status_code == 200
    done = await client.patch(
        f"/api/requests/{rid}/status", json={"status": "COMPLETED"}, headers=_auth(users.tech)
    )
    assert done.json()["customerConfirmationStatus"] == "PENDING"

    view = await client.get(f"/api/requests/{rid}/confirmation-status", headers=_auth(users.customer))
    assert view.status_code == 200
    assert view.json()["canConfirm"] is True
    assert view.json()["autoConfirmDate"] is not None

    confirmed = await client.post(
        f"/api/requests/{rid}/confirm-completion", json={"comment": "Cold again"}, headers=_auth(users.customer)
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["status"] == "CLOSED"

    twice = await client.post(f"/api/requests/{rid}/confirm-completion", headers=_auth(users.customer))
    assert twice.status_code == 409
    assert twice.json()["code"] == "ALREADY_RESOLVED"

    history = await client.get(f"/api/requests/{rid}/history", headers=_auth(users.maint_admin))
    assert history.status_code == 200
    statuses = [row["toStatus"] for row in history.json()["statusHistory"]]
    assert statuses == ["ASSIGNED", "IN_PROGRESS", "COMPLETED", "CLOSED"]
    assert history.json()["assignmentHistory"][0]["assignmentType"] == "SELF_ASSIGNMENT"


@pytest.mark.asyncio
async def test_error_mapping(client, users) -> None:
    created = await client.post("/api/requests", json=PAYLOAD, headers=_auth(users.customer))
    rid = created.json()["id"]

    illegal = await client.patch(
        f"/api/requests/{rid}/status", json={"status": "CLOSED"}, headers=_auth(users.maint_admin)
    )
    assert illegal.status_code == 400
    assert illegal.json()["code"] == "INVALID_TRANSITION"

    foreign = await client.get(f"/api/requests/{rid}", headers=_auth(users.other_customer))
    assert foreign.status_code == 403
    assert foreign.json() == {"detail": "Access denied", "code": "FORBIDDEN", "reason": "ownership"}

    by_role = await client.post(
        f"/api/requests/{rid}/assign", json={"technicianId": users.tech.id}, headers=_auth(users.tech)
    )
    assert by_role.status_code == 403
    assert by_role.json()["reason"] == "role"

    missing = await client.get("/api/requests/9999", headers=_auth(users.maint_admin))
    assert missing.status_code == 404

    not_yet = await client.post(f"/api/requests/{rid}/confirm-completion", headers=_auth(users.customer))
    assert not_yet.status_code == 400
    assert not_yet.json()["code"] == "INVALID_STATE"

    no_reason = await client.patch(
        f"/api/requests/{rid}/status", json={"status": "REJECTED"}, headers=_auth(users.maint_admin)
    )
    assert no_reason.status_code == 422
    assert no_reason.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_self_assign_is_technician_only(client, users) -> None:
    created = await client.post("/api/requests", json=PAYLOAD, headers=_auth(users.customer))
    rid = created.json()["id"]

    resp = await client.post(f"/api/requests/{rid}/self-assign", headers=_auth(users.maint_admin))
    assert resp.status_code == 403
    assert resp.json()["reason"] == "role"


@pytest.mark.asyncio
async def test_admin_assign_reject_and_close_without_confirmation(client, users) -> None:
    created = await client.post("/api/requests", json=PAYLOAD, headers=_auth(users.customer))
    rid = created.json()["id"]

    assigned = await client.post(
        f"/api/requests/{rid}/assign",
        json={"technicianId": users.tech.id, "reason": "HVAC specialist"},
        headers=_auth(users.maint_admin),
    )
    assert assigned.status_code == 200
    assert assigned.json()["status"] == "ASSIGNED"

    for target in ("IN_PROGRESS", "COMPLETED"):
        r = await client.patch(f"/api/requests/{rid}/status", json={"status": target}, headers=_auth(users.tech))
        assert r.status_code == 200

    rejected = await client.post(
        f"/api/requests/{rid}/reject-completion",
        json={"reason": "Still warm", "comment": "checked twice"},
        headers=_auth(users.customer),
    )
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "CUSTOMER_REJECTED"

    closed = await client.post(
        f"/api/requests/{rid}/close-without-confirmation",
        json={"reason": "Unit replaced by vendor"},
        headers=_auth(users.maint_admin),
    )
    assert closed.status_code == 200
    assert closed.json()["closedWithoutConfirmation"] is True


@pytest.mark.asyncio
async def test_body_validation_and_auth(client, users) -> None:
    short = await client.post("/api/requests", json={**PAYLOAD, "title": "AC"}, headers=_auth(users.customer))
    assert short.status_code == 422

    anonymous = await client.get("/api/requests")
    assert anonymous.status_code == 401

    bad_token = await client.get("/api/requests", headers={"Authorization": "Bearer nope"})
    assert bad_token.status_code == 401

    read_only = await client.post("/api/requests", json=PAYLOAD, headers=_auth(users.basma))
    assert read_only.status_code == 403


@pytest.mark.asyncio
async def test_list_and_draft_submit(client, users) -> None:
    draft = await client.post("/api/requests", json={**PAYLOAD, "asDraft": True}, headers=_auth(users.customer))
    assert draft.json()["status"] == "DRAFT"
    rid = draft.json()["id"]

    submitted = await client.post(f"/api/requests/{rid}/submit", headers=_auth(users.customer))
    assert submitted.status_code == 200
    assert submitted.json()["status"] == "SUBMITTED"

    listed = await client.get("/api/requests", params={"status": "SUBMITTED"}, headers=_auth(users.customer))
    assert [r["id"] for r in listed.json()] == [rid]

    hidden = await client.get("/api/requests", headers=_auth(users.other_customer))
    assert hidden.json() == []


@pytest.mark.asyncio
async def test_health(client) -> None:
    resp = await client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_close_without_confirmation_is_admin_only(client, users) -> None:
    created = await client.post("/api/requests", json=PAYLOAD, headers=_auth(users.customer))
    rid = created.json()["id"]

    for user in (users.customer, users.tech):
        resp = await client.post(
            f"/api/requests/{rid}/close-without-confirmation",
            json={"reason": "no longer needed"},
            headers=_auth(user),
        )
        assert resp.status_code == 403
        assert resp.json()["reason"] == "role"

    admin = await client.post(
        f"/api/requests/{rid}/close-without-confirmation",
        json={"reason": "no longer needed"},
        headers=_auth(users.maint_admin),
    )
    assert admin.status_code == 400
    assert admin.json()["code"] == "INVALID_STATE"


@pytest.mark.asyncio
async def test_edit_details_and_comment_over_http(client, users) -> None:
    created = await client.post("/api/requests", json=PAYLOAD, headers=_auth(users.customer))
    rid = created.json()["id"]

    edited = await client.patch(
        f"/api/requests/{rid}",
        json={"specificLocation": "Ceiling unit", "estimatedCost": "80"},
        headers=_auth(users.customer),
    )
    assert edited.status_code == 200
    assert edited.json()["specificLocation"] == "Ceiling unit"
    assert edited.json()["status"] == "SUBMITTED"

    cost = await client.patch(f"/api/requests/{rid}", json={"actualCost": "95"}, headers=_auth(users.customer))
    assert cost.status_code == 403

    posted = await client.post(
        f"/api/requests/{rid}/comments",
        json={"text": "Staff only", "isInternal": True},
        headers=_auth(users.maint_admin),
    )
    assert posted.status_code == 201
    assert posted.json()["isInternal"] is True

    listed = await client.get(f"/api/requests/{rid}/comments", headers=_auth(users.customer))
    assert listed.status_code == 200
    assert listed.json() == []
