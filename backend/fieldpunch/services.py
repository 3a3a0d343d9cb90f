from __future__ import annotations

import datetime as dt
import hashlib
import logging
from contextlib import ExitStack
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from openpyxl import Workbook
from reportlab.lib.pagesizes import A4
from reportlab.lib.units import cm
from reportlab.pdfgen import canvas
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .aggregation import (
    average_efficiency,
    calculate_efficiency,
    compute_actual_hours,
    compute_budgeted_hours,
    compute_task_hours,
    rollup_punches,
)
from .config import settings
from .errors import (
    AlreadyPunchedIn,
    Forbidden,
    InvalidDuration,
    InvalidInterval,
    InvalidRequest,
    NoActivePunch,
    NotFound,
    TaskHasPunches,
    WorkOrderClosed,
)
from .models import ExportRecord, TimePunch, User, WorkOrder, WorkOrderTask
from .policy import ensure_punch_mutation_allowed
from .state import punch_locks
from .utils import ensure_utc, from_db_datetime, local_date, local_today, now_utc

logger = logging.getLogger(__name__)

EXPORT_FORMATS = {"pdf", "xlsx"}


def _get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFound("User not found")
    return user


def get_work_order(db: Session, work_order_id: int) -> WorkOrder:
    work_order = db.get(WorkOrder, work_order_id)
    if not work_order:
        raise NotFound("Work order not found")
    return work_order


def _get_task(db: Session, task_id: int) -> WorkOrderTask:
    task = db.get(WorkOrderTask, task_id)
    if not task:
        raise NotFound("Task not found")
    return task


def _get_punch(db: Session, punch_id: int) -> TimePunch:
    punch = db.get(TimePunch, punch_id)
    if not punch:
        raise NotFound("Time punch not found")
    return punch


def _require_privileged(actor: User, detail: str) -> None:
    if not actor.is_privileged:
        raise Forbidden(detail)


# Punch lifecycle


def get_active_punch(db: Session, user_id: int) -> Optional[TimePunch]:
    return _find_active_punch(db, user_id)


def _find_active_punch(
    db: Session,
    user_id: int,
    work_order_id: Optional[int] = None,
    task_id: Optional[int] = None,
) -> Optional[TimePunch]:
    query = db.query(TimePunch).filter(TimePunch.user_id == user_id, TimePunch.clock_out.is_(None))
    if work_order_id is not None:
        query = query.filter(TimePunch.work_order_id == work_order_id)
    if task_id is not None:
        query = query.filter(TimePunch.task_id == task_id)
    return query.order_by(TimePunch.clock_in.desc()).first()


def _validate_interval(start: dt.datetime, end: dt.datetime, now: dt.datetime) -> None:
    if end <= start:
        raise InvalidInterval("Clock out time must be after clock in time")
    if start > now:
        raise InvalidInterval("Clock in time cannot be in the future")
    if end > now:
        raise InvalidInterval("Clock out time cannot be in the future")
    if end - start > dt.timedelta(hours=settings.max_punch_hours):
        raise InvalidInterval(f"Time punch duration cannot exceed {settings.max_punch_hours:g} hours")


def _refresh_actual_hours(db: Session, work_order_id: int) -> WorkOrder:
    db.flush()
    work_order = get_work_order(db, work_order_id)
    work_order.actual_hours = compute_actual_hours(db, work_order_id)
    db.add(work_order)
    return work_order


def clock_in(
    db: Session,
    user: User,
    kind: str = "work",
    work_order_id: Optional[int] = None,
    task_id: Optional[int] = None,
    clock_in_time: Optional[dt.datetime] = None,
) -> TimePunch:
    with punch_locks.hold(user.id):
        return _clock_in_locked(db, user, kind, work_order_id, task_id, clock_in_time)


def _clock_in_locked(
    db: Session,
    user: User,
    kind: str,
    work_order_id: Optional[int],
    task_id: Optional[int],
    clock_in_time: Optional[dt.datetime],
) -> TimePunch:
    now = now_utc()
    started = ensure_utc(clock_in_time) if clock_in_time else now
    if started > now:
        raise InvalidInterval("Clock in time cannot be in the future")

    if task_id is not None:
        task = _get_task(db, task_id)
        if work_order_id is None:
            work_order_id = task.work_order_id
        elif task.work_order_id != work_order_id:
            raise NotFound("Task not found on this work order")
    work_order: Optional[WorkOrder] = None
    if work_order_id is not None:
        work_order = get_work_order(db, work_order_id)
        if work_order.is_closed:
            raise WorkOrderClosed("Cannot punch into a closed work order")

    if get_active_punch(db, user.id):
        raise AlreadyPunchedIn()

    punch = TimePunch(
        user_id=user.id,
        work_order_id=work_order_id,
        task_id=task_id,
        kind=kind,
        clock_in=started,
        punch_date=local_date(started),
    )
    db.add(punch)
    try:
        db.flush()
    except IntegrityError as exc:
        # Another writer opened a punch for this user between the check and the insert
        db.rollback()
        raise AlreadyPunchedIn() from exc

    if work_order is not None:
        if work_order.status == "assigned":
            work_order.status = "in-progress"
            logger.info("Work order %s advanced to in-progress by user %s", work_order.number, user.id)
        _refresh_actual_hours(db, work_order.id)

    db.commit()
    db.refresh(punch)
    logger.info(
        "User %s clocked in: punch=%s kind=%s work_order=%s task=%s",
        user.id,
        punch.id,
        punch.kind,
        punch.work_order_id,
        punch.task_id,
    )
    return punch


def clock_out(
    db: Session,
    user: User,
    work_order_id: Optional[int] = None,
    task_id: Optional[int] = None,
    kilometers: Optional[float] = None,
    clock_out_time: Optional[dt.datetime] = None,
) -> TimePunch:
    with punch_locks.hold(user.id):
        punch = _find_active_punch(db, user.id, work_order_id, task_id)
        if not punch:
            if task_id is not None:
                raise NoActivePunch("No active punch found for this task")
            if work_order_id is not None:
                raise NoActivePunch("No active punch found for this work order")
            raise NoActivePunch()
        return _close_punch_locked(db, punch, kilometers, clock_out_time)


def _close_punch_locked(
    db: Session,
    punch: TimePunch,
    kilometers: Optional[float],
    clock_out_time: Optional[dt.datetime],
) -> TimePunch:
    now = now_utc()
    ended = ensure_utc(clock_out_time) if clock_out_time else now
    _validate_interval(from_db_datetime(punch.clock_in), ended, now)
    punch.clock_out = ended
    if kilometers is not None:
        punch.kilometers = kilometers
    db.add(punch)
    if punch.work_order_id is not None:
        _refresh_actual_hours(db, punch.work_order_id)
    db.commit()
    db.refresh(punch)
    logger.info("User %s clocked out: punch=%s hours=%.2f", punch.user_id, punch.id, punch.duration_hours or 0.0)
    return punch


def toggle_task_punch(db: Session, user: User, task_id: int, work_order_id: int) -> Tuple[TimePunch, str]:
    with punch_locks.hold(user.id):
        active = _find_active_punch(db, user.id, task_id=task_id)
        if active:
            return _close_punch_locked(db, active, None, None), "punched_out"
        punch = _clock_in_locked(db, user, "work", work_order_id, task_id, None)
        return punch, "punched_in"


def record_break(db: Session, user: User, minutes: int) -> TimePunch:
    if minutes < settings.min_break_minutes or minutes > settings.max_break_minutes:
        raise InvalidDuration(
            f"Break duration must be between {settings.min_break_minutes} and {settings.max_break_minutes} minutes"
        )
    now = now_utc()
    punch = TimePunch(
        user_id=user.id,
        kind="other",
        clock_in=now - dt.timedelta(minutes=minutes),
        clock_out=now,
        punch_date=local_date(now),
    )
    db.add(punch)
    db.commit()
    db.refresh(punch)
    logger.info("User %s recorded a %s minute break", user.id, minutes)
    return punch


def create_manual_punch(
    db: Session,
    user: User,
    kind: str,
    clock_in_time: dt.datetime,
    clock_out_time: dt.datetime,
    kilometers: Optional[float] = None,
    punch_date: Optional[dt.date] = None,
) -> TimePunch:
    start = ensure_utc(clock_in_time)
    end = ensure_utc(clock_out_time)
    _validate_interval(start, end, now_utc())
    punch = TimePunch(
        user_id=user.id,
        kind=kind,
        clock_in=start,
        clock_out=end,
        kilometers=kilometers,
        punch_date=punch_date or local_date(start),
    )
    db.add(punch)
    db.commit()
    db.refresh(punch)
    return punch


def _linked_work_order(db: Session, punch: TimePunch) -> Optional[WorkOrder]:
    if punch.work_order_id is None:
        return None
    return get_work_order(db, punch.work_order_id)


def edit_punch(
    db: Session,
    actor: User,
    punch_id: int,
    clock_in_time: dt.datetime,
    clock_out_time: dt.datetime,
    kilometers: Optional[float] = None,
) -> TimePunch:
    punch = _get_punch(db, punch_id)
    ensure_punch_mutation_allowed(actor, punch, _linked_work_order(db, punch), "edit")

    start = ensure_utc(clock_in_time)
    end = ensure_utc(clock_out_time)
    _validate_interval(start, end, now_utc())

    punch.clock_in = start
    punch.clock_out = end
    punch.punch_date = local_date(start)
    if kilometers is not None:
        punch.kilometers = kilometers
    db.add(punch)
    if punch.work_order_id is not None:
        _refresh_actual_hours(db, punch.work_order_id)
    db.commit()
    db.refresh(punch)
    logger.info("User %s edited punch %s", actor.id, punch.id)
    return punch


def delete_punch(db: Session, actor: User, punch_id: int) -> None:
    punch = _get_punch(db, punch_id)
    ensure_punch_mutation_allowed(actor, punch, _linked_work_order(db, punch), "delete")

    work_order_id = punch.work_order_id
    db.delete(punch)
    if work_order_id is not None:
        _refresh_actual_hours(db, work_order_id)
    db.commit()
    logger.info("User %s deleted punch %s", actor.id, punch_id)


def close_work_order(db: Session, work_order_id: int) -> WorkOrder:
    work_order = get_work_order(db, work_order_id)
    if work_order.is_closed:
        logger.warning("Work order %s is closed already, recomputing its hours", work_order.number)
    owner_ids = sorted(
        {
            user_id
            for (user_id,) in db.query(TimePunch.user_id).filter(
                TimePunch.work_order_id == work_order_id, TimePunch.clock_out.is_(None)
            )
        }
    )
    # Locks are taken in user id order so two closes cannot deadlock
    with ExitStack() as stack:
        for user_id in owner_ids:
            stack.enter_context(punch_locks.hold(user_id))
        return _close_work_order_locked(db, work_order)


def _close_work_order_locked(db: Session, work_order: WorkOrder) -> WorkOrder:
    closed_at = now_utc()
    open_punches = (
        db.query(TimePunch)
        .filter(TimePunch.work_order_id == work_order.id, TimePunch.clock_out.is_(None))
        .all()
    )
    limit = dt.timedelta(hours=settings.max_punch_hours)
    for punch in open_punches:
        if closed_at - from_db_datetime(punch.clock_in) > limit:
            raise InvalidInterval(
                f"Punch {punch.id} has been open for more than {settings.max_punch_hours:g} hours "
                "and must be edited before the work order is closed"
            )
    for punch in open_punches:
        punch.clock_out = closed_at
        db.add(punch)
        logger.info("Clocked out punch %s of user %s on close of %s", punch.id, punch.user_id, work_order.number)
    db.flush()

    actual_hours = compute_actual_hours(db, work_order.id)
    budgeted_hours = compute_budgeted_hours(db, work_order.id)
    work_order.actual_hours = actual_hours
    work_order.efficiency = calculate_efficiency(budgeted_hours, actual_hours)
    work_order.status = "completed"
    work_order.completed_at = closed_at
    db.add(work_order)
    db.commit()
    db.refresh(work_order)
    logger.info(
        "Work order %s closed: actual=%.2fh budgeted=%.2fh efficiency=%s",
        work_order.number,
        actual_hours,
        budgeted_hours,
        work_order.efficiency,
    )
    return work_order


# Listings


def list_punches_for_day(db: Session, actor: User, user_id: int, day: dt.date) -> List[TimePunch]:
    if user_id != actor.id and not actor.is_privileged:
        raise Forbidden("You can only view your own time punches")
    return (
        db.query(TimePunch)
        .filter(TimePunch.user_id == user_id, TimePunch.punch_date == day)
        .order_by(TimePunch.clock_in.desc())
        .all()
    )


def list_work_order_punches(db: Session, work_order_id: int) -> List[TimePunch]:
    get_work_order(db, work_order_id)
    return (
        db.query(TimePunch)
        .filter(TimePunch.work_order_id == work_order_id)
        .order_by(TimePunch.clock_in.asc())
        .all()
    )


def list_task_punches(db: Session, task_id: int) -> List[TimePunch]:
    _get_task(db, task_id)
    return (
        db.query(TimePunch)
        .filter(TimePunch.task_id == task_id)
        .order_by(TimePunch.clock_in.desc())
        .all()
    )


def _task_payload(db: Session, task: WorkOrderTask) -> Dict[str, Any]:
    return {
        "id": task.id,
        "work_order_id": task.work_order_id,
        "title": task.title,
        "description": task.description,
        "budgeted_hours": task.budgeted_hours,
        "sort_order": task.sort_order,
        "actual_hours": compute_task_hours(db, task.id),
    }


def list_tasks(db: Session, work_order_id: int) -> List[Dict[str, Any]]:
    work_order = get_work_order(db, work_order_id)
    return [_task_payload(db, task) for task in work_order.tasks]


def work_order_detail(db: Session, work_order_id: int) -> Dict[str, Any]:
    work_order = get_work_order(db, work_order_id)
    return {
        "id": work_order.id,
        "number": work_order.number,
        "title": work_order.title,
        "status": work_order.status,
        "notes": work_order.notes,
        "assigned_to_id": work_order.assigned_to_id,
        "created_by_id": work_order.created_by_id,
        "demanded_by_id": work_order.demanded_by_id,
        "actual_hours": work_order.actual_hours,
        "efficiency": work_order.efficiency,
        "budgeted_hours": work_order.budgeted_hours,
        "created_at": work_order.created_at,
        "completed_at": work_order.completed_at,
        "tasks": [_task_payload(db, task) for task in work_order.tasks],
    }


# Users and work orders


def create_user(db: Session, actor: User, username: str, role: str) -> User:
    if actor.role != "admin":
        raise Forbidden("Only admins can create users")
    if db.query(User).filter(User.username == username).one_or_none():
        raise InvalidRequest("Username already exists")
    user = User(username=username, role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def ensure_bootstrap_admin(db: Session, username: Optional[str]) -> Optional[User]:
    if not username or db.query(User).count():
        return None
    user = User(username=username, role="admin")
    db.add(user)
    db.flush()
    logger.info("Created bootstrap admin %r with id %s", username, user.id)
    return user


def _next_work_order_number(db: Session) -> str:
    sequence = (db.query(func.max(WorkOrder.id)).scalar() or 0) + 1
    number = f"W{sequence}"
    while db.query(WorkOrder).filter(WorkOrder.number == number).one_or_none():
        sequence += 1
        number = f"W{sequence}"
    return number


def create_work_order(
    db: Session,
    actor: User,
    title: str,
    tasks: Iterable[Dict[str, Any]],
    status_value: str = "new",
    assigned_to_id: Optional[int] = None,
    notes: Optional[str] = None,
) -> WorkOrder:
    _require_privileged(actor, "Only advisors can create work orders")
    tasks = list(tasks)
    if not tasks:
        raise InvalidRequest("At least one task is required")
    if assigned_to_id is not None:
        _get_user(db, assigned_to_id)
        if status_value == "new":
            status_value = "assigned"
    work_order = WorkOrder(
        number=_next_work_order_number(db),
        title=title,
        status=status_value,
        notes=notes,
        assigned_to_id=assigned_to_id,
        created_by_id=actor.id,
    )
    for index, task in enumerate(tasks):
        work_order.tasks.append(
            WorkOrderTask(
                title=task["title"],
                description=task.get("description"),
                budgeted_hours=task["budgeted_hours"],
                sort_order=index,
            )
        )
    db.add(work_order)
    db.commit()
    db.refresh(work_order)
    logger.info("User %s created work order %s", actor.id, work_order.number)
    return work_order


def create_demand(
    db: Session,
    actor: User,
    title: str,
    advisor_id: int,
    notes: Optional[str] = None,
) -> WorkOrder:
    if actor.role != "technician":
        raise Forbidden("Only technicians can create demands")
    advisor = _get_user(db, advisor_id)
    if not advisor.is_privileged:
        raise InvalidRequest("Demands must be addressed to an advisor")
    work_order = WorkOrder(
        number=_next_work_order_number(db),
        title=title,
        status="demand",
        notes=notes,
        assigned_to_id=advisor.id,
        created_by_id=actor.id,
        demanded_by_id=actor.id,
    )
    db.add(work_order)
    db.commit()
    db.refresh(work_order)
    logger.info("User %s filed demand %s for advisor %s", actor.id, work_order.number, advisor.id)
    return work_order


def list_demands(db: Session, actor: User) -> List[WorkOrder]:
    _require_privileged(actor, "Only advisors can view demands")
    query = db.query(WorkOrder).filter(WorkOrder.status == "demand")
    if actor.role != "admin":
        query = query.filter(WorkOrder.assigned_to_id == actor.id)
    return query.order_by(WorkOrder.created_at.desc(), WorkOrder.id.desc()).all()


def assign_work_order(db: Session, actor: User, work_order_id: int, user_id: int) -> WorkOrder:
    _require_privileged(actor, "Only advisors can assign work orders")
    work_order = get_work_order(db, work_order_id)
    if work_order.is_closed:
        raise WorkOrderClosed("Cannot assign a closed work order")
    _get_user(db, user_id)
    work_order.assigned_to_id = user_id
    work_order.status = "assigned"
    db.add(work_order)
    db.commit()
    db.refresh(work_order)
    logger.info("Work order %s assigned to user %s", work_order.number, user_id)
    return work_order


def list_work_orders(db: Session) -> List[WorkOrder]:
    return db.query(WorkOrder).order_by(WorkOrder.created_at.desc(), WorkOrder.id.desc()).all()


def list_assigned_work_orders(db: Session, user_id: int) -> List[WorkOrder]:
    return (
        db.query(WorkOrder)
        .filter(WorkOrder.assigned_to_id == user_id)
        .order_by(WorkOrder.created_at.desc(), WorkOrder.id.desc())
        .all()
    )


def add_task(
    db: Session,
    actor: User,
    work_order_id: int,
    title: str,
    budgeted_hours: float,
    description: Optional[str] = None,
) -> WorkOrderTask:
    _require_privileged(actor, "Only advisors can change tasks")
    work_order = get_work_order(db, work_order_id)
    task = WorkOrderTask(
        work_order_id=work_order.id,
        title=title,
        description=description,
        budgeted_hours=budgeted_hours,
        sort_order=len(work_order.tasks),
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def update_task(db: Session, actor: User, task_id: int, changes: Dict[str, Any]) -> WorkOrderTask:
    _require_privileged(actor, "Only advisors can change tasks")
    task = _get_task(db, task_id)
    if "title" in changes and changes["title"] is not None:
        task.title = changes["title"]
    if "description" in changes:
        task.description = changes["description"]
    if "budgeted_hours" in changes and changes["budgeted_hours"] is not None:
        task.budgeted_hours = changes["budgeted_hours"]
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


def delete_task(db: Session, actor: User, task_id: int) -> None:
    _require_privileged(actor, "Only advisors can change tasks")
    task = _get_task(db, task_id)
    if db.query(TimePunch).filter(TimePunch.task_id == task_id).count():
        raise TaskHasPunches()
    db.delete(task)
    db.commit()


# Stats


def _round(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return round(value, 1)


def user_stats(db: Session, user: User) -> Dict[str, Any]:
    punches = db.query(TimePunch).filter(TimePunch.user_id == user.id).all()
    rollup = rollup_punches(punches, local_today())

    assigned = list_assigned_work_orders(db, user.id)
    completed = [work_order for work_order in assigned if work_order.is_closed and work_order.efficiency is not None]
    all_completed_efficiency = None
    if user.is_privileged:
        all_completed_efficiency = average_efficiency(db.query(WorkOrder).all())

    return {
        "assigned_work_orders_count": len(assigned),
        "completed_work_orders_count": len(completed),
        "avg_efficiency": average_efficiency(assigned),
        "hours_today": _round(rollup.hours_today),
        "hours_this_week": _round(rollup.hours_this_week),
        "km_today": _round(rollup.km_today),
        "km_this_week": _round(rollup.km_this_week),
        "km_overall": _round(rollup.km_overall),
        "all_completed_efficiency": _round(all_completed_efficiency),
    }


# Timesheet export


def _punch_row(punch: TimePunch) -> List[Any]:
    return [
        punch.punch_date.isoformat(),
        punch.kind,
        from_db_datetime(punch.clock_in).isoformat(),
        from_db_datetime(punch.clock_out).isoformat() if punch.clock_out else "",
        round(punch.duration_hours or 0.0, 2),
        punch.kilometers if punch.kilometers is not None else "",
        punch.work_order_id or "",
    ]


def _write_pdf(path: Path, title: str, punches: Iterable[TimePunch]) -> None:
    pdf = canvas.Canvas(str(path), pagesize=A4)
    width, height = A4
    y = height - 2 * cm
    pdf.setTitle(title)
    pdf.setFont("Helvetica-Bold", 16)
    pdf.drawString(2 * cm, y, title)
    y -= 1 * cm
    pdf.setFont("Helvetica", 10)
    for punch in punches:
        day, kind, started, ended, hours, kilometers, work_order_id = _punch_row(punch)
        line = f"{day} {kind:<6} {started} - {ended} | {hours:.2f}h"
        if kilometers != "":
            line += f" | {kilometers} km"
        if work_order_id:
            line += f" | WO {work_order_id}"
        pdf.drawString(2 * cm, y, line)
        y -= 0.7 * cm
        if y < 2 * cm:
            pdf.showPage()
            y = height - 2 * cm
            pdf.setFont("Helvetica", 10)
    pdf.save()


def _write_xlsx(path: Path, punches: Iterable[TimePunch]) -> None:
    wb = Workbook()
    ws = wb.active
    ws.title = "Punches"
    ws.append(["Date", "Kind", "Clock in", "Clock out", "Hours", "Kilometers", "Work order"])
    for punch in punches:
        ws.append(_punch_row(punch))
    wb.save(path)


def _checksum_file(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            digest.update(chunk)
    return digest.hexdigest()


def export_timesheet(
    db: Session,
    actor: User,
    export_format: str,
    start_date: dt.date,
    end_date: dt.date,
) -> ExportRecord:
    if export_format not in EXPORT_FORMATS:
        raise InvalidRequest("Unsupported export format")
    if end_date < start_date:
        raise InvalidRequest("Invalid range")

    punches = (
        db.query(TimePunch)
        .filter(
            TimePunch.user_id == actor.id,
            TimePunch.punch_date >= start_date,
            TimePunch.punch_date <= end_date,
            TimePunch.clock_out.isnot(None),
        )
        .order_by(TimePunch.clock_in.asc())
        .all()
    )

    filename = f"timesheet_{actor.id}_{start_date}_{end_date}_{int(now_utc().timestamp())}.{export_format}"
    path = settings.export_dir / filename
    if export_format == "pdf":
        _write_pdf(path, f"Timesheet {actor.username} {start_date} - {end_date}", punches)
    else:
        _write_xlsx(path, punches)

    export = ExportRecord(
        user_id=actor.id,
        format=export_format,
        range_start=start_date,
        range_end=end_date,
        path=str(path),
        checksum=_checksum_file(path),
    )
    db.add(export)
    db.commit()
    db.refresh(export)
    logger.info("User %s exported %d punches to %s", actor.id, len(punches), path.name)
    return export


def resolve_export(db: Session, actor: User, export_id: int) -> Tuple[ExportRecord, Path]:
    export = db.get(ExportRecord, export_id)
    if not export:
        raise NotFound("Export not found")
    if export.user_id != actor.id and not actor.is_privileged:
        raise Forbidden("You can only download your own exports")
    path = Path(export.path)
    if not path.exists():
        raise NotFound("Export file missing")
    return export, path
