"""
Призначення виконавця: ручне (адмін), самопризначення (технік), зняття.

Самопризначення: compare-and-set: UPDATE ... WHERE assigned_to_id IS NULL,
перемагає той, у кого affected rows == 1. Жодних блокувань у процесі,
бо сервісів може бути кілька.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import (
    AssignmentTypeEnum,
    MaintenanceRequest,
    RequestStatusEnum as Status,
    RoleEnum as Role,
    User,
)
from app.services.errors import InvalidState, InvalidTransition, NotFound, ValidationError
from app.services.permissions import Actor
from app.services.transitions import Edge

# стани, в яких технік уже працює: тут можливе перепризначення/зняття
REASSIGNABLE_STATES: frozenset[Status] = frozenset({Status.ASSIGNED, Status.IN_PROGRESS})

SELF_ASSIGN_REASON = "Self-assigned by technician"
ASSIGNED_STATUS_REASON = "Request assigned to technician"
UNASSIGNED_STATUS_REASON = "Technician unassigned"


@dataclass(frozen=True, slots=True)
class AssignmentChange:
    assignment_type: AssignmentTypeEnum
    from_technician_id: Optional[int]
    to_technician_id: Optional[int]
    from_status: Status
    to_status: Status

    @property
    def status_changed(self) -> bool:
        return self.from_status != self.to_status


async def load_technician(db: AsyncSession, technician_id: int) -> User:
    user = await db.get(User, technician_id)
    if user is None or not user.is_active:
        raise NotFound("Technician not found")
    if user.role is not Role.TECHNICIAN:
        raise ValidationError("Invalid technician: user does not hold the TECHNICIAN role")
    return user


def assignment_edge(req: MaintenanceRequest) -> Optional[Edge]:
    """
    Ребро для ручного призначення: SUBMITTED -> ASSIGNED для первинного,
    None для перепризначення (статус не змінюється).
    """
    if req.status is Status.SUBMITTED:
        return (Status.SUBMITTED, Status.ASSIGNED)
    if req.status in REASSIGNABLE_STATES:
        return None
    raise InvalidTransition(f"Request in status {req.status.value} cannot be assigned")


def apply_manual_assignment(req: MaintenanceRequest, technician_id: int, actor: Actor) -> AssignmentChange:
    if req.assigned_to_id == technician_id:
        raise InvalidState("Request is already assigned to this technician")

    previous = req.assigned_to_id
    from_status = req.status
    req.assigned_to_id = technician_id
    req.assigned_by_id = actor.id
    if req.status is Status.SUBMITTED:
        req.status = Status.ASSIGNED

    return AssignmentChange(
        assignment_type=(
            AssignmentTypeEnum.REASSIGNMENT if previous is not None else AssignmentTypeEnum.INITIAL_ASSIGNMENT
        ),
        from_technician_id=previous,
        to_technician_id=technician_id,
        from_status=from_status,
        to_status=req.status,
    )


def claim_statement(request_id: int, technician_id: int):
    return (
        update(MaintenanceRequest)
        .where(
            MaintenanceRequest.id == request_id,
            MaintenanceRequest.assigned_to_id.is_(None),
            MaintenanceRequest.status == Status.SUBMITTED,
        )
        .values(
            assigned_to_id=technician_id,
            assigned_by_id=technician_id,
            status=Status.ASSIGNED,
        )
        .execution_options(synchronize_session=False)
    )


async def claim_unassigned(db: AsyncSession, request_id: int, technician_id: int) -> bool:
    """CAS самопризначення. True: заявка наша, False: хтось встиг раніше."""
    result = await db.execute(claim_statement(request_id, technician_id))
    return result.rowcount == 1


def self_assignment_change(technician_id: int) -> AssignmentChange:
    return AssignmentChange(
        assignment_type=AssignmentTypeEnum.SELF_ASSIGNMENT,
        from_technician_id=None,
        to_technician_id=technician_id,
        from_status=Status.SUBMITTED,
        to_status=Status.ASSIGNED,
    )


def unassignment_edge(req: MaintenanceRequest) -> Edge:
    if req.status not in REASSIGNABLE_STATES:
        raise InvalidTransition(f"Request in status {req.status.value} cannot be unassigned")
    if req.assigned_to_id is None:
        raise InvalidState("Request has no assigned technician")
    return (req.status, Status.SUBMITTED)


def apply_unassignment(req: MaintenanceRequest) -> AssignmentChange:
    previous = req.assigned_to_id
    from_status = req.status
    req.assigned_to_id = None
    req.assigned_by_id = None
    req.status = Status.SUBMITTED
    return AssignmentChange(
        assignment_type=AssignmentTypeEnum.UNASSIGNMENT,
        from_technician_id=previous,
        to_technician_id=None,
        from_status=from_status,
        to_status=Status.SUBMITTED,
    )
