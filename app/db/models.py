# app/db/models.py
from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import (
    String,
    Text,
    Integer,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Numeric,
    func,
    Index,
)
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base

# ==== Енуми (python + sqlalchemy) ====


class RoleEnum(str, enum.Enum):
    CUSTOMER = "CUSTOMER"
    TECHNICIAN = "TECHNICIAN"
    MAINTENANCE_ADMIN = "MAINTENANCE_ADMIN"
    BASMA_ADMIN = "BASMA_ADMIN"  # адмін лише на перегляд
    SUPER_ADMIN = "SUPER_ADMIN"


class PriorityEnum(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    URGENT = "URGENT"


class RequestStatusEnum(str, enum.Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CLOSED = "CLOSED"
    REJECTED = "REJECTED"
    CUSTOMER_REJECTED = "CUSTOMER_REJECTED"


class ConfirmationStatusEnum(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    OVERRIDDEN = "OVERRIDDEN"


class AssignmentTypeEnum(str, enum.Enum):
    INITIAL_ASSIGNMENT = "INITIAL_ASSIGNMENT"
    REASSIGNMENT = "REASSIGNMENT"
    SELF_ASSIGNMENT = "SELF_ASSIGNMENT"
    UNASSIGNMENT = "UNASSIGNMENT"


# ==== Міксини ====


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


# ==== Моделі ====


class User(TimestampMixin, Base):
    """Дзеркало користувача з identity-сервісу: нам потрібні лише id, роль і активність."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    role: Mapped[RoleEnum] = mapped_column(
        Enum(RoleEnum, name="role_enum"),
        default=RoleEnum.CUSTOMER,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email} role={self.role}>"


class BuildingConfig(TimestampMixin, Base):
    """Лічильник людських ідентифікаторів заявок (YY-CODE-SEQ) для будівлі."""

    __tablename__ = "building_configs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    building_name: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    building_code: Mapped[str] = mapped_column(String(10), nullable=False)
    current_sequence: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_reset_year: Mapped[int] = mapped_column(Integer, nullable=False)


class MaintenanceRequest(TimestampMixin, Base):
    __tablename__ = "maintenance_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    custom_identifier: Mapped[Optional[str]] = mapped_column(
        String(32),
        unique=True,
        nullable=True,
    )

    title: Mapped[str] = mapped_column(String(200))
    description: Mapped[str] = mapped_column(Text)
    # довідник категорій живе в іншому сервісі, зберігаємо лише посилання
    category_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    priority: Mapped[PriorityEnum] = mapped_column(
        Enum(PriorityEnum, name="priority_enum"),
        default=PriorityEnum.MEDIUM,
        nullable=False,
    )
    location: Mapped[str] = mapped_column(String(100))
    building: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    specific_location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    # ---- життєвий цикл ----
    status: Mapped[RequestStatusEnum] = mapped_column(
        Enum(RequestStatusEnum, name="request_status_enum"),
        default=RequestStatusEnum.SUBMITTED,
        nullable=False,
    )
    requested_by_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    assigned_to_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    assigned_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    scheduled_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    estimated_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    actual_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)

    # ---- підтвердження клієнтом (вкладений стан, активний з COMPLETED) ----
    customer_confirmation_status: Mapped[Optional[ConfirmationStatusEnum]] = mapped_column(
        Enum(ConfirmationStatusEnum, name="confirmation_status_enum"),
        nullable=True,
    )
    customer_confirmed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    customer_rejected_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    customer_confirmation_comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    customer_rejection_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    closed_without_confirmation: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    admin_override_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_maintenance_requests_status_priority", "status", "priority"),
        # під вибірку sweep-а автопідтвердження
        Index("ix_maintenance_requests_confirmation", "customer_confirmation_status", "completed_date"),
        Index("ix_maintenance_requests_building", "building"),
    )

    def __repr__(self) -> str:
        return f"<MaintenanceRequest id={self.id} status={self.status} assigned_to={self.assigned_to_id}>"


class RequestStatusHistory(Base):
    """Незмінний запис про перехід статусу. Лише INSERT."""

    __tablename__ = "request_status_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_id: Mapped[int] = mapped_column(
        ForeignKey("maintenance_requests.id", ondelete="CASCADE"),
        index=True,
    )
    from_status: Mapped[Optional[RequestStatusEnum]] = mapped_column(
        Enum(RequestStatusEnum, name="request_status_enum"),
        nullable=True,
    )
    to_status: Mapped[RequestStatusEnum] = mapped_column(
        Enum(RequestStatusEnum, name="request_status_enum"),
        nullable=False,
    )
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # NULL: системний актор (sweep автопідтвердження)
    changed_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    actor_role: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_request_status_history_request_created", "request_id", "created_at"),
    )


class RequestAssignmentHistory(Base):
    """Незмінний запис про зміну виконавця. Лише INSERT."""

    __tablename__ = "request_assignment_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_id: Mapped[int] = mapped_column(
        ForeignKey("maintenance_requests.id", ondelete="CASCADE"),
        index=True,
    )
    assignment_type: Mapped[AssignmentTypeEnum] = mapped_column(
        Enum(AssignmentTypeEnum, name="assignment_type_enum"),
        nullable=False,
    )
    from_technician_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    to_technician_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    assigned_by_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )


class RequestComment(Base):
    """Коментар до заявки. Внутрішні (is_internal) бачить лише персонал."""

    __tablename__ = "request_comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    request_id: Mapped[int] = mapped_column(
        ForeignKey("maintenance_requests.id", ondelete="CASCADE"),
        index=True,
    )
    author_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
    )
    text: Mapped[str] = mapped_column(Text)
    is_internal: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
