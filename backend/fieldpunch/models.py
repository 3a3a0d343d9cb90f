from __future__ import annotations

import datetime as dt
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

from .utils import from_db_datetime

Base = declarative_base()


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


USER_ROLES = ("admin", "technician", "technical_advisor")
PUNCH_KINDS = ("work", "travel", "other")
WORK_ORDER_STATUSES = ("new", "demand", "assigned", "in-progress", "completed", "closedForReview")
CLOSED_WORK_ORDER_STATUSES = frozenset({"completed", "closedForReview"})
PRIVILEGED_ROLES = frozenset({"admin", "technical_advisor"})


def _in_list(column: str, values) -> str:
    return f"{column} IN ({', '.join(repr(value) for value in values)})"


class User(Base):
    __tablename__ = "users"
    __table_args__ = (CheckConstraint(_in_list("role", USER_ROLES), name="ck_users_role"),)

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), nullable=False, unique=True)
    role = Column(String(30), nullable=False, default="technician")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES


class WorkOrder(Base):
    __tablename__ = "work_orders"
    __table_args__ = (CheckConstraint(_in_list("status", WORK_ORDER_STATUSES), name="ck_work_orders_status"),)

    id = Column(Integer, primary_key=True, index=True)
    number = Column(String(20), nullable=False, unique=True)
    title = Column(String(200), nullable=False)
    status = Column(String(30), nullable=False, default="new", index=True)
    notes = Column(Text, nullable=True)
    assigned_to_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    demanded_by_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    # Write-through caches of the aggregator, refreshed with every linked punch mutation
    actual_hours = Column(Float, nullable=False, default=0.0)
    efficiency = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    tasks = relationship(
        "WorkOrderTask",
        back_populates="work_order",
        cascade="all, delete-orphan",
        order_by="WorkOrderTask.sort_order",
    )

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_WORK_ORDER_STATUSES

    @property
    def budgeted_hours(self) -> float:
        return sum(task.budgeted_hours for task in self.tasks)


class WorkOrderTask(Base):
    __tablename__ = "work_order_tasks"
    __table_args__ = (CheckConstraint("budgeted_hours > 0", name="ck_work_order_tasks_budget_positive"),)

    id = Column(Integer, primary_key=True, index=True)
    work_order_id = Column(Integer, ForeignKey("work_orders.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    budgeted_hours = Column(Float, nullable=False)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    work_order = relationship("WorkOrder", back_populates="tasks")


class TimePunch(Base):
    __tablename__ = "time_punches"
    __table_args__ = (
        # At most one open punch per user, whatever its kind or target
        Index(
            "ux_time_punches_open_per_user",
            "user_id",
            unique=True,
            sqlite_where=text("clock_out IS NULL"),
            postgresql_where=text("clock_out IS NULL"),
        ),
        Index("ix_time_punches_user_date", "user_id", "punch_date"),
        CheckConstraint(_in_list("kind", PUNCH_KINDS), name="ck_time_punches_kind"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    work_order_id = Column(Integer, ForeignKey("work_orders.id"), nullable=True, index=True)
    task_id = Column(Integer, ForeignKey("work_order_tasks.id"), nullable=True, index=True)
    kind = Column(String(10), nullable=False, default="work")
    clock_in = Column(DateTime(timezone=True), nullable=False, index=True)
    clock_out = Column(DateTime(timezone=True), nullable=True)
    kilometers = Column(Float, nullable=True)
    punch_date = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    @property
    def is_active(self) -> bool:
        return self.clock_out is None

    @property
    def duration_hours(self) -> Optional[float]:
        if self.clock_out is None:
            return None
        delta = from_db_datetime(self.clock_out) - from_db_datetime(self.clock_in)
        return delta.total_seconds() / 3600


class ExportRecord(Base):
    __tablename__ = "exports"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    format = Column(String(10), nullable=False)
    range_start = Column(Date, nullable=False)
    range_end = Column(Date, nullable=False)
    path = Column(String(255), nullable=False)
    checksum = Column(String(128), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
