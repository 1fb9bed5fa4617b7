"""
Граф переходів статусів заявки (state machine)

Чисті дані: хто саме може ініціювати перехід, вирішує permissions.py.
Кожне ребро знає, якими діями (Action) його можна пройти: наприклад,
COMPLETED -> CLOSED існує, але ніколи не через звичайний PATCH статусу.
"""
from __future__ import annotations

import enum
from types import MappingProxyType
from typing import Mapping, Optional, Tuple

from app.db.models import RequestStatusEnum as Status


class Action(str, enum.Enum):
    STATUS_UPDATE = "status_update"
    SUBMIT = "submit"
    ASSIGN = "assign"
    SELF_ASSIGN = "self_assign"
    UNASSIGN = "unassign"
    CONFIRM = "confirm"
    REJECT_COMPLETION = "reject_completion"
    OVERRIDE_CLOSE = "override_close"
    AUTO_CONFIRM = "auto_confirm"


Edge = Tuple[Status, Status]

TERMINAL_STATES: frozenset[Status] = frozenset({Status.CLOSED, Status.REJECTED})

# звідки дозволено відхилити заявку (з обов'язковою причиною)
REJECTABLE_STATES: frozenset[Status] = frozenset({
    Status.DRAFT,
    Status.SUBMITTED,
    Status.ASSIGNED,
    Status.IN_PROGRESS,
})


def _build_edges() -> Mapping[Edge, frozenset[Action]]:
    edges: dict[Edge, frozenset[Action]] = {
        (Status.DRAFT, Status.SUBMITTED): frozenset({Action.STATUS_UPDATE, Action.SUBMIT}),
        (Status.SUBMITTED, Status.ASSIGNED): frozenset({Action.ASSIGN, Action.SELF_ASSIGN}),
        (Status.ASSIGNED, Status.IN_PROGRESS): frozenset({Action.STATUS_UPDATE}),
        (Status.IN_PROGRESS, Status.COMPLETED): frozenset({Action.STATUS_UPDATE}),
        # відкат техніком, поки підтвердження ще PENDING
        (Status.COMPLETED, Status.IN_PROGRESS): frozenset({Action.STATUS_UPDATE}),
        (Status.COMPLETED, Status.CLOSED): frozenset({
            Action.CONFIRM,
            Action.AUTO_CONFIRM,
            Action.OVERRIDE_CLOSE,
        }),
        (Status.COMPLETED, Status.CUSTOMER_REJECTED): frozenset({Action.REJECT_COMPLETION}),
        # доопрацювання після відмови клієнта
        (Status.CUSTOMER_REJECTED, Status.IN_PROGRESS): frozenset({Action.STATUS_UPDATE}),
        (Status.CUSTOMER_REJECTED, Status.CLOSED): frozenset({Action.OVERRIDE_CLOSE}),
        # зняття виконавця повертає заявку в чергу
        (Status.ASSIGNED, Status.SUBMITTED): frozenset({Action.UNASSIGN}),
        (Status.IN_PROGRESS, Status.SUBMITTED): frozenset({Action.UNASSIGN}),
    }
    for src in REJECTABLE_STATES:
        edges[(src, Status.REJECTED)] = frozenset({Action.STATUS_UPDATE})
    return MappingProxyType(edges)


EDGES: Mapping[Edge, frozenset[Action]] = _build_edges()


def is_legal_edge(src: Status, dst: Status) -> bool:
    """Чи існує ребро src -> dst у графі (незалежно від того, хто і як його проходить)."""
    return (src, dst) in EDGES


def edge_allows(src: Status, dst: Status, action: Action) -> bool:
    """Чи можна пройти ребро src -> dst саме цією дією."""
    return action in EDGES.get((src, dst), frozenset())


def targets_for(src: Status, action: Optional[Action] = None) -> set[Status]:
    """Куди можна перейти з src (опційно: лише вказаною дією)."""
    return {
        dst
        for (s, dst), actions in EDGES.items()
        if s == src and (action is None or action in actions)
    }


def describe_illegal(src: Status, dst: Status, action: Action) -> str:
    if not is_legal_edge(src, dst):
        return f"Invalid status transition from {src.value} to {dst.value}"
    return f"Transition from {src.value} to {dst.value} is not available via {action.value}"
