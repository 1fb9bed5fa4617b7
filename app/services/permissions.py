"""
Таблиця прав: (роль, ребро/дія) -> дозволено/заборонено + перевірка "своєї" заявки.

Таблиці будуються один раз при імпорті й далі лише читаються.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional, Protocol

from app.db.models import RoleEnum as Role, RequestStatusEnum as Status
from app.services.errors import DenialKind
from app.services.transitions import Action, Edge, REJECTABLE_STATES

SYSTEM_ROLE_LABEL = "SYSTEM"

ADMIN_ROLES: frozenset[Role] = frozenset({Role.MAINTENANCE_ADMIN, Role.SUPER_ADMIN})
READ_ALL_ROLES: frozenset[Role] = ADMIN_ROLES | {Role.BASMA_ADMIN}


@dataclass(frozen=True, slots=True)
class Actor:
    id: Optional[int]
    role: Optional[Role]  # None: системний актор (sweep)

    @classmethod
    def system(cls) -> "Actor":
        return cls(id=None, role=None)

    @property
    def is_system(self) -> bool:
        return self.role is None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def audit_role(self) -> str:
        return self.role.value if self.role is not None else SYSTEM_ROLE_LABEL


class Scope(str, enum.Enum):
    ANY = "any"            # будь-яка заявка
    ASSIGNEE = "assignee"  # лише якщо актор є призначеним техніком
    OWNER = "owner"        # лише якщо актор є автором заявки


class _RequestLike(Protocol):
    requested_by_id: int
    assigned_to_id: Optional[int]


@dataclass(frozen=True, slots=True)
class Decision:
    allowed: bool
    kind: Optional[DenialKind] = None
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.allowed


ALLOWED = Decision(True)


def denied(kind: DenialKind, reason: str) -> Decision:
    return Decision(False, kind, reason)


RoleRules = Mapping[Role, Scope]


def _rules(**by_role: Scope) -> RoleRules:
    return MappingProxyType({Role[name]: scope for name, scope in by_role.items()})


_ADMINS_ANY = dict(MAINTENANCE_ADMIN=Scope.ANY, SUPER_ADMIN=Scope.ANY)


def _build_status_update_rules() -> Mapping[Edge, RoleRules]:
    table: dict[Edge, RoleRules] = {
        (Status.DRAFT, Status.SUBMITTED): _rules(**_ADMINS_ANY),
        (Status.ASSIGNED, Status.IN_PROGRESS): _rules(TECHNICIAN=Scope.ASSIGNEE, **_ADMINS_ANY),
        # COMPLETED ставить лише призначений технік або SUPER_ADMIN
        (Status.IN_PROGRESS, Status.COMPLETED): _rules(TECHNICIAN=Scope.ASSIGNEE, SUPER_ADMIN=Scope.ANY),
        (Status.COMPLETED, Status.IN_PROGRESS): _rules(TECHNICIAN=Scope.ASSIGNEE, **_ADMINS_ANY),
        (Status.CUSTOMER_REJECTED, Status.IN_PROGRESS): _rules(TECHNICIAN=Scope.ASSIGNEE, **_ADMINS_ANY),
    }
    for src in REJECTABLE_STATES:
        table[(src, Status.REJECTED)] = _rules(**_ADMINS_ANY)
    return MappingProxyType(table)


# PATCH /status: права задаються по ребру
STATUS_UPDATE_RULES: Mapping[Edge, RoleRules] = _build_status_update_rules()

# решта дій: права задаються по дії (ребро вже перевірив граф)
ACTION_RULES: Mapping[Action, RoleRules] = MappingProxyType({
    Action.SUBMIT: _rules(CUSTOMER=Scope.OWNER),
    Action.ASSIGN: _rules(**_ADMINS_ANY),
    Action.UNASSIGN: _rules(**_ADMINS_ANY),
    Action.SELF_ASSIGN: _rules(TECHNICIAN=Scope.ANY),
    Action.CONFIRM: _rules(CUSTOMER=Scope.OWNER, **_ADMINS_ANY),
    Action.REJECT_COMPLETION: _rules(CUSTOMER=Scope.OWNER),
    Action.OVERRIDE_CLOSE: _rules(**_ADMINS_ANY),
})


def _role_label(role: Optional[Role]) -> str:
    return role.value if role is not None else SYSTEM_ROLE_LABEL


def authorize(
    actor_role: Optional[Role],
    actor_id: Optional[int],
    request: _RequestLike,
    edge: Optional[Edge],
    action: Action = Action.STATUS_UPDATE,
) -> Decision:
    """
    Перевіряє, чи може актор пройти ребро `edge` дією `action` для цієї заявки.
    Відмова розрізняє "роль не має права" (ROLE) і "не твоя заявка" (OWNERSHIP).
    """
    # автопідтвердження виконує лише системний актор
    if action is Action.AUTO_CONFIRM:
        if actor_role is None:
            return ALLOWED
        return denied(DenialKind.ROLE, "Auto-confirmation is reserved for the system")
    if actor_role is None:
        return denied(DenialKind.ROLE, f"System actor cannot perform {action.value}")

    if action is Action.STATUS_UPDATE:
        rules = STATUS_UPDATE_RULES.get(edge) if edge is not None else None
        if not rules:
            target = edge[1].value if edge is not None else "?"
            return denied(DenialKind.ROLE, f"Role {actor_role.value} cannot update status to {target}")
    else:
        rules = ACTION_RULES.get(action)
        if not rules:
            return denied(DenialKind.ROLE, f"Action {action.value} is not permitted")

    scope = rules.get(actor_role)
    if scope is None:
        if action is Action.STATUS_UPDATE and edge is not None:
            return denied(
                DenialKind.ROLE,
                f"Role {actor_role.value} cannot update status to {edge[1].value}",
            )
        return denied(DenialKind.ROLE, f"Role {actor_role.value} cannot perform {action.value}")

    if scope is Scope.ASSIGNEE and request.assigned_to_id != actor_id:
        return denied(DenialKind.OWNERSHIP, "Only the assigned technician can do this")
    if scope is Scope.OWNER and request.requested_by_id != actor_id:
        return denied(DenialKind.OWNERSHIP, "Only the customer who reported the request can do this")
    return ALLOWED


def can_view_request(actor: Actor, request: _RequestLike) -> Decision:
    if actor.role is Role.CUSTOMER and request.requested_by_id != actor.id:
        return denied(DenialKind.OWNERSHIP, "Access denied")
    return ALLOWED


def can_view_confirmation(actor: Actor, request: _RequestLike) -> Decision:
    """Статус підтвердження бачать автор, призначений технік і адміни."""
    if actor.role in READ_ALL_ROLES:
        return ALLOWED
    if actor.role is Role.CUSTOMER:
        if request.requested_by_id == actor.id:
            return ALLOWED
        return denied(DenialKind.OWNERSHIP, "Access denied")
    if actor.role is Role.TECHNICIAN:
        if request.assigned_to_id == actor.id:
            return ALLOWED
        return denied(DenialKind.OWNERSHIP, "Access denied")
    return denied(DenialKind.ROLE, f"Role {_role_label(actor.role)} cannot view confirmation status")


def can_create(actor: Actor) -> Decision:
    if actor.role is None or actor.role is Role.BASMA_ADMIN:
        return denied(DenialKind.ROLE, f"Role {_role_label(actor.role)} cannot create requests")
    return ALLOWED


# фактичну вартість вносить виконавець або адмін, не клієнт
COST_FIELDS: frozenset[str] = frozenset({"actual_cost"})


def can_update_details(actor: Actor, request: _RequestLike, fields: frozenset[str]) -> Decision:
    """
    Редагування опису заявки (не статусу). Адмін: будь-яке поле.
    Призначений технік: лише фактична вартість. Клієнт: своя заявка, без вартості.
    """
    if actor.is_admin:
        return ALLOWED
    if actor.role is Role.TECHNICIAN:
        if fields - COST_FIELDS:
            return denied(DenialKind.ROLE, "Technicians can only record the actual cost")
        if request.assigned_to_id != actor.id:
            return denied(DenialKind.OWNERSHIP, "Only the assigned technician can do this")
        return ALLOWED
    if actor.role is Role.CUSTOMER:
        if fields & COST_FIELDS:
            return denied(DenialKind.ROLE, "Customers cannot set the actual cost")
        if request.requested_by_id != actor.id:
            return denied(DenialKind.OWNERSHIP, "Only the customer who reported the request can do this")
        return ALLOWED
    return denied(DenialKind.ROLE, f"Role {_role_label(actor.role)} cannot edit requests")


def can_comment(actor: Actor, request: _RequestLike, *, internal: bool) -> Decision:
    if actor.role is None or actor.role is Role.BASMA_ADMIN:
        return denied(DenialKind.ROLE, f"Role {_role_label(actor.role)} cannot comment")
    if actor.role is Role.CUSTOMER:
        if internal:
            return denied(DenialKind.ROLE, "Customers cannot post internal comments")
        if request.requested_by_id != actor.id:
            return denied(DenialKind.OWNERSHIP, "Access denied")
    return ALLOWED


def sees_internal_comments(actor: Actor) -> bool:
    return actor.role is not None and actor.role is not Role.CUSTOMER
