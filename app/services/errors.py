"""
Типізовані результати-відмови рушія життєвого циклу.

Усі вони очікувані: рушій відкочує транзакцію і піднімає один з цих винятків,
а HTTP-шар (app.main) перетворює його на JSON з відповідним статус-кодом.
"""
from __future__ import annotations

import enum
from typing import Any


class DenialKind(str, enum.Enum):
    ROLE = "role"            # роль ніколи не має цього права
    OWNERSHIP = "ownership"  # роль правильна, але заявка не "своя"


class LifecycleError(Exception):
    code: str = "LIFECYCLE_ERROR"
    http_status: int = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_payload(self) -> dict[str, Any]:
        return {"detail": self.detail, "code": self.code}


class NotFound(LifecycleError):
    code = "NOT_FOUND"
    http_status = 404


class InvalidTransition(LifecycleError):
    code = "INVALID_TRANSITION"
    http_status = 400


class Forbidden(LifecycleError):
    code = "FORBIDDEN"
    http_status = 403

    def __init__(self, detail: str, kind: DenialKind = DenialKind.ROLE):
        super().__init__(detail)
        self.kind = kind

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["reason"] = self.kind.value
        return payload


class AlreadyAssigned(LifecycleError):
    code = "ALREADY_ASSIGNED"
    http_status = 409


class AlreadyResolved(LifecycleError):
    code = "ALREADY_RESOLVED"
    http_status = 409


class InvalidState(LifecycleError):
    code = "INVALID_STATE"
    http_status = 400


class ValidationError(LifecycleError):
    code = "VALIDATION_ERROR"
    http_status = 422


class LifecycleInvariantError(RuntimeError):
    """Не очікувана помилка: мутація порушила інваріант заявки. Транзакція відкочується."""
