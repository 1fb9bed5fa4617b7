# app/schemas/requests.py
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.db.models import (
    AssignmentTypeEnum as AssignmentType,
    ConfirmationStatusEnum as Confirmation,
    PriorityEnum as Priority,
    RequestStatusEnum as Status,
)


class CamelModel(BaseModel):
    # фронт говорить camelCase, всередині: snake_case
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class CamelBody(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# ==== вхідні тіла ====


class RequestCreate(CamelBody):
    title: str = Field(..., min_length=3, max_length=200)
    description: str = Field(..., min_length=10, max_length=5000)
    location: str = Field(..., min_length=2, max_length=100)
    priority: Priority = Priority.MEDIUM
    category_id: Optional[int] = None
    building: Optional[str] = Field(default=None, max_length=100)
    specific_location: Optional[str] = Field(default=None, max_length=200)
    estimated_cost: Optional[Decimal] = Field(default=None, ge=0)
    scheduled_date: Optional[datetime] = None
    # лише для адмінів; інакше генерується YY-CODE-SEQ
    custom_identifier: Optional[str] = Field(default=None, max_length=20)
    as_draft: bool = False


class RequestUpdate(CamelBody):
    # None = поле не змінюється
    title: Optional[str] = Field(default=None, min_length=3, max_length=200)
    description: Optional[str] = Field(default=None, min_length=10, max_length=5000)
    priority: Optional[Priority] = None
    category_id: Optional[int] = None
    location: Optional[str] = Field(default=None, min_length=2, max_length=100)
    building: Optional[str] = Field(default=None, max_length=100)
    specific_location: Optional[str] = Field(default=None, max_length=200)
    estimated_cost: Optional[Decimal] = Field(default=None, ge=0)
    actual_cost: Optional[Decimal] = Field(default=None, ge=0)
    scheduled_date: Optional[datetime] = None


class CommentCreate(CamelBody):
    text: str = Field(..., min_length=1, max_length=2000)
    is_internal: bool = False


class StatusUpdate(CamelBody):
    status: Status
    reason: Optional[str] = Field(default=None, max_length=500)


class AssignBody(CamelBody):
    technician_id: int
    reason: Optional[str] = Field(default=None, max_length=500)


class UnassignBody(CamelBody):
    reason: Optional[str] = Field(default=None, max_length=500)


class ConfirmBody(CamelBody):
    comment: Optional[str] = Field(default=None, max_length=2000)
    override_reason: Optional[str] = Field(default=None, max_length=2000)


class RejectBody(CamelBody):
    reason: str = Field(..., min_length=3, max_length=2000)
    comment: Optional[str] = Field(default=None, max_length=2000)


class CloseWithoutConfirmationBody(CamelBody):
    reason: str = Field(..., min_length=3, max_length=2000)


# ==== відповіді ====


class RequestOut(CamelModel):
    id: int
    custom_identifier: Optional[str] = None
    title: str
    description: str
    priority: Priority
    status: Status
    category_id: Optional[int] = None
    location: str
    building: Optional[str] = None
    specific_location: Optional[str] = None
    requested_by_id: int
    assigned_to_id: Optional[int] = None
    assigned_by_id: Optional[int] = None
    scheduled_date: Optional[datetime] = None
    completed_date: Optional[datetime] = None
    estimated_cost: Optional[Decimal] = None
    actual_cost: Optional[Decimal] = None
    customer_confirmation_status: Optional[Confirmation] = None
    customer_confirmed_at: Optional[datetime] = None
    customer_rejected_at: Optional[datetime] = None
    customer_confirmation_comment: Optional[str] = None
    customer_rejection_reason: Optional[str] = None
    closed_without_confirmation: bool = False
    admin_override_reason: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class StatusHistoryOut(CamelModel):
    id: int
    from_status: Optional[Status] = None
    to_status: Status
    reason: Optional[str] = None
    changed_by_id: Optional[int] = None
    actor_role: str
    created_at: datetime


class AssignmentHistoryOut(CamelModel):
    id: int
    assignment_type: AssignmentType
    from_technician_id: Optional[int] = None
    to_technician_id: Optional[int] = None
    assigned_by_id: Optional[int] = None
    reason: Optional[str] = None
    created_at: datetime


class TimelineOut(CamelModel):
    status_history: List[StatusHistoryOut]
    assignment_history: List[AssignmentHistoryOut]


class CommentOut(CamelModel):
    id: int
    request_id: int
    author_id: int
    text: str
    is_internal: bool
    created_at: datetime


class ConfirmationStatusOut(CamelModel):
    request_id: int
    request_status: Status
    status: Optional[Confirmation] = None
    can_confirm: bool
    can_reject: bool
    can_override: bool
    completed_date: Optional[datetime] = None
    auto_confirm_date: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    comment: Optional[str] = None
    rejection_reason: Optional[str] = None
    closed_without_confirmation: bool = False
    admin_override_reason: Optional[str] = None
