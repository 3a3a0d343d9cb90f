from __future__ import annotations

import datetime as dt
from typing import Any, List, Optional

from typing_extensions import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_serializer

PunchKind = Literal["work", "travel", "other"]
UserRole = Literal["admin", "technician", "technical_advisor"]


def _serialize_datetime(value: dt.datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=dt.timezone.utc)
    else:
        value = value.astimezone(dt.timezone.utc)
    return value.isoformat()


def _serialize_optional(value: Optional[dt.datetime]) -> Optional[str]:
    return _serialize_datetime(value) if value else None


class TimePunchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    user_id: int
    work_order_id: Optional[int]
    task_id: Optional[int]
    kind: str
    clock_in: dt.datetime
    clock_out: Optional[dt.datetime]
    kilometers: Optional[float]
    punch_date: dt.date
    duration_hours: Optional[float]

    @model_serializer(mode="plain", when_used="json")
    def _serialize(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "work_order_id": self.work_order_id,
            "task_id": self.task_id,
            "kind": self.kind,
            "clock_in": _serialize_datetime(self.clock_in),
            "clock_out": _serialize_optional(self.clock_out),
            "kilometers": self.kilometers,
            "punch_date": self.punch_date.isoformat(),
            "duration_hours": self.duration_hours,
        }


class ClockInRequest(BaseModel):
    kind: PunchKind = "work"
    work_order_id: Optional[int] = None
    task_id: Optional[int] = None
    clock_in_time: Optional[dt.datetime] = None


class WorkOrderPunchInRequest(BaseModel):
    task_id: Optional[int] = None
    clock_in_time: Optional[dt.datetime] = None


class ClockOutRequest(BaseModel):
    kilometers: Optional[float] = Field(default=None, ge=0)
    clock_out_time: Optional[dt.datetime] = None


class TaskPunchToggleRequest(BaseModel):
    work_order_id: int


class PunchToggleResponse(BaseModel):
    punch: TimePunchResponse
    action: str


class BreakRequest(BaseModel):
    # Bounds are checked by the service so violations carry their own error code
    minutes: int


class ManualPunchRequest(BaseModel):
    kind: PunchKind = "work"
    clock_in: dt.datetime
    clock_out: dt.datetime
    kilometers: Optional[float] = Field(default=None, ge=0)
    punch_date: Optional[dt.date] = None


class PunchEditRequest(BaseModel):
    clock_in: dt.datetime
    clock_out: dt.datetime
    kilometers: Optional[float] = Field(default=None, ge=0)


class UserCreateRequest(BaseModel):
    username: str = Field(min_length=1, max_length=100)
    role: UserRole = "technician"

    @field_validator("username")
    @classmethod
    def _strip_username(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Username must not be blank")
        return value


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    username: str
    role: str
    is_active: bool


class UserStatsResponse(BaseModel):
    assigned_work_orders_count: int
    completed_work_orders_count: int
    avg_efficiency: Optional[float]
    hours_today: float
    hours_this_week: float
    km_today: float
    km_this_week: float
    km_overall: float
    all_completed_efficiency: Optional[float] = None


class TaskCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: Optional[str] = None
    budgeted_hours: float = Field(gt=0, le=99)


class TaskUpdateRequest(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    description: Optional[str] = None
    budgeted_hours: Optional[float] = Field(default=None, gt=0, le=99)


class WorkOrderCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    status: Literal["new", "demand"] = "new"
    assigned_to_id: Optional[int] = None
    notes: Optional[str] = None
    tasks: List[TaskCreateRequest] = Field(min_length=1)


class DemandCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    advisor_id: int
    notes: Optional[str] = None


class WorkOrderAssignRequest(BaseModel):
    user_id: int


class WorkOrderTaskResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    work_order_id: int
    title: str
    description: Optional[str]
    budgeted_hours: float
    sort_order: int
    actual_hours: Optional[float] = None


class WorkOrderResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: int
    number: str
    title: str
    status: str
    notes: Optional[str]
    assigned_to_id: Optional[int]
    created_by_id: int
    demanded_by_id: Optional[int] = None
    actual_hours: float
    efficiency: Optional[float]
    budgeted_hours: float
    created_at: dt.datetime
    completed_at: Optional[dt.datetime]
    tasks: List[WorkOrderTaskResponse] = Field(default_factory=list)

    @model_serializer(mode="plain", when_used="json")
    def _serialize(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "number": self.number,
            "title": self.title,
            "status": self.status,
            "notes": self.notes,
            "assigned_to_id": self.assigned_to_id,
            "created_by_id": self.created_by_id,
            "demanded_by_id": self.demanded_by_id,
            "actual_hours": self.actual_hours,
            "efficiency": self.efficiency,
            "budgeted_hours": self.budgeted_hours,
            "created_at": _serialize_datetime(self.created_at),
            "completed_at": _serialize_optional(self.completed_at),
            "tasks": [task.model_dump() for task in self.tasks],
        }


class ExportRequest(BaseModel):
    format: str
    range_start: dt.date
    range_end: dt.date


class ExportResponse(BaseModel):
    id: int
    format: str
    range_start: dt.date
    range_end: dt.date
    created_at: dt.datetime
    checksum: str

    model_config = ConfigDict(from_attributes=True)

    @model_serializer(mode="plain", when_used="json")
    def _serialize(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "format": self.format,
            "range_start": self.range_start.isoformat(),
            "range_end": self.range_end.isoformat(),
            "created_at": _serialize_datetime(self.created_at),
            "checksum": self.checksum,
        }
