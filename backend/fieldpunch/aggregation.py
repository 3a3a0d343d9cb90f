from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from .models import CLOSED_WORK_ORDER_STATUSES, TimePunch, WorkOrder, WorkOrderTask
from .utils import week_start


def punch_hours(punch: TimePunch) -> float:
    return punch.duration_hours or 0.0


def sum_work_hours(punches: Iterable[TimePunch]) -> float:
    """Hours of closed ``work`` punches; travel and breaks are tracked separately."""
    return sum(punch_hours(punch) for punch in punches if punch.kind == "work" and punch.clock_out is not None)


def sum_break_hours(punches: Iterable[TimePunch]) -> float:
    return sum(punch_hours(punch) for punch in punches if punch.kind == "other" and punch.clock_out is not None)


def sum_kilometers(punches: Iterable[TimePunch]) -> float:
    return sum(punch.kilometers or 0.0 for punch in punches if punch.kind == "travel")


def calculate_efficiency(budgeted_hours: float, actual_hours: float) -> Optional[float]:
    if budgeted_hours > 0 and actual_hours > 0:
        return budgeted_hours / actual_hours * 100
    return None


def compute_actual_hours(db: Session, work_order_id: int) -> float:
    punches = (
        db.query(TimePunch)
        .filter(
            TimePunch.work_order_id == work_order_id,
            TimePunch.kind == "work",
            TimePunch.clock_out.isnot(None),
        )
        .all()
    )
    return sum_work_hours(punches)


def compute_budgeted_hours(db: Session, work_order_id: int) -> float:
    tasks = db.query(WorkOrderTask).filter(WorkOrderTask.work_order_id == work_order_id).all()
    return sum(task.budgeted_hours for task in tasks)


def compute_task_hours(db: Session, task_id: int) -> float:
    punches = db.query(TimePunch).filter(TimePunch.task_id == task_id).all()
    return sum_work_hours(punches)


@dataclass(frozen=True)
class HoursRollup:
    hours_today: float
    hours_this_week: float
    km_today: float
    km_this_week: float
    km_overall: float


def _net_hours(punches: Iterable[TimePunch]) -> float:
    punches = list(punches)
    return max(0.0, sum_work_hours(punches) - sum_break_hours(punches))


def rollup_punches(punches: Iterable[TimePunch], today: dt.date) -> HoursRollup:
    """Daily and weekly totals for one user's punch history.

    Breaks (``other`` punches) are subtracted from the work hours of the same
    range and the result is floored at zero.
    """
    punches = list(punches)
    first_day = week_start(today)
    todays = [punch for punch in punches if punch.punch_date == today]
    this_week = [punch for punch in punches if first_day <= punch.punch_date <= today]
    return HoursRollup(
        hours_today=_net_hours(todays),
        hours_this_week=_net_hours(this_week),
        km_today=sum_kilometers(todays),
        km_this_week=sum_kilometers(this_week),
        km_overall=sum_kilometers(punches),
    )


def average_efficiency(work_orders: Iterable[WorkOrder]) -> Optional[float]:
    values = [
        work_order.efficiency
        for work_order in work_orders
        if work_order.status in CLOSED_WORK_ORDER_STATUSES and work_order.efficiency is not None
    ]
    if not values:
        return None
    return sum(values) / len(values)
