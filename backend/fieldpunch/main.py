from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from . import models
from .config import settings
from .database import db_session, engine, get_db
from .errors import NotAuthenticated, PunchEngineError
from .middleware import RequestLoggingMiddleware
from .schemas import (
    BreakRequest,
    ClockInRequest,
    ClockOutRequest,
    DemandCreateRequest,
    ExportRequest,
    ExportResponse,
    ManualPunchRequest,
    PunchEditRequest,
    PunchToggleResponse,
    TaskCreateRequest,
    TaskPunchToggleRequest,
    TaskUpdateRequest,
    TimePunchResponse,
    UserCreateRequest,
    UserResponse,
    UserStatsResponse,
    WorkOrderAssignRequest,
    WorkOrderCreateRequest,
    WorkOrderPunchInRequest,
    WorkOrderResponse,
    WorkOrderTaskResponse,
)
from .services import (
    add_task,
    assign_work_order,
    clock_in,
    clock_out,
    close_work_order,
    create_demand,
    create_manual_punch,
    create_user,
    create_work_order,
    delete_punch,
    delete_task,
    edit_punch,
    ensure_bootstrap_admin,
    export_timesheet,
    get_active_punch,
    list_assigned_work_orders,
    list_demands,
    list_punches_for_day,
    list_task_punches,
    list_tasks,
    list_work_order_punches,
    list_work_orders,
    record_break,
    resolve_export,
    toggle_task_punch,
    update_task,
    user_stats,
    work_order_detail,
)

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

EXPORT_MEDIA_TYPES = {
    "pdf": "application/pdf",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


models.Base.metadata.create_all(bind=engine)

with db_session() as session:
    ensure_bootstrap_admin(session, settings.bootstrap_admin)

app = FastAPI(title=settings.app_name)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PunchEngineError)
async def punch_engine_error_handler(request: Request, exc: PunchEngineError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Storage failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "The request could not be stored, please retry", "code": "StorageError"},
    )


def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> models.User:
    if not x_user_id:
        raise NotAuthenticated("Missing X-User-Id header")
    try:
        user_id = int(x_user_id)
    except ValueError:
        raise NotAuthenticated("Invalid X-User-Id header")
    user = db.get(models.User, user_id)
    if not user or not user.is_active:
        raise NotAuthenticated("Unknown or inactive user")
    return user


@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


# Time punches


@app.post("/time-punches/clock-in", response_model=TimePunchResponse, status_code=status.HTTP_201_CREATED)
def punch_clock_in(
    payload: Optional[ClockInRequest] = None,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TimePunchResponse:
    payload = payload or ClockInRequest()
    return clock_in(db, user, payload.kind, payload.work_order_id, payload.task_id, payload.clock_in_time)


@app.post("/time-punches/clock-out", response_model=TimePunchResponse)
def punch_clock_out(
    payload: Optional[ClockOutRequest] = None,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TimePunchResponse:
    payload = payload or ClockOutRequest()
    return clock_out(db, user, kilometers=payload.kilometers, clock_out_time=payload.clock_out_time)


@app.post("/time-punches", response_model=TimePunchResponse, status_code=status.HTTP_201_CREATED)
def punch_manual(
    payload: ManualPunchRequest,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TimePunchResponse:
    return create_manual_punch(
        db,
        user,
        payload.kind,
        payload.clock_in,
        payload.clock_out,
        kilometers=payload.kilometers,
        punch_date=payload.punch_date,
    )


@app.get("/time-punches/current", response_model=Optional[TimePunchResponse])
def punch_current(
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Optional[TimePunchResponse]:
    return get_active_punch(db, user.id)


@app.get("/time-punches/day/{day}", response_model=list[TimePunchResponse])
def punch_day(
    day: dt.date,
    user_id: Optional[int] = None,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[TimePunchResponse]:
    return list_punches_for_day(db, user, user_id if user_id is not None else user.id, day)


@app.patch("/time-punches/{punch_id}", response_model=TimePunchResponse)
def punch_edit(
    punch_id: int,
    payload: PunchEditRequest,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TimePunchResponse:
    return edit_punch(db, user, punch_id, payload.clock_in, payload.clock_out, payload.kilometers)


@app.delete("/time-punches/{punch_id}", status_code=status.HTTP_204_NO_CONTENT)
def punch_delete(
    punch_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    delete_punch(db, user, punch_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/breaks", response_model=TimePunchResponse, status_code=status.HTTP_201_CREATED)
def break_record(
    payload: BreakRequest,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TimePunchResponse:
    return record_break(db, user, payload.minutes)


# Users


@app.post("/users", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def user_create(
    payload: UserCreateRequest,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> UserResponse:
    return create_user(db, user, payload.username, payload.role)


@app.get("/users/me", response_model=UserResponse)
def user_me(user: models.User = Depends(get_current_user)) -> UserResponse:
    return user


@app.get("/users/me/stats", response_model=UserStatsResponse)
def user_me_stats(
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return user_stats(db, user)


# Work orders


@app.post("/work-orders", response_model=WorkOrderResponse, status_code=status.HTTP_201_CREATED)
def work_order_create(
    payload: WorkOrderCreateRequest,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    work_order = create_work_order(
        db,
        user,
        payload.title,
        [task.model_dump() for task in payload.tasks],
        status_value=payload.status,
        assigned_to_id=payload.assigned_to_id,
        notes=payload.notes,
    )
    return work_order_detail(db, work_order.id)


@app.get("/work-orders", response_model=list[WorkOrderResponse])
def work_order_list(
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[WorkOrderResponse]:
    return list_work_orders(db)


@app.get("/work-orders/assigned", response_model=list[WorkOrderResponse])
def work_order_assigned(
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[WorkOrderResponse]:
    return list_assigned_work_orders(db, user.id)


@app.post("/work-orders/demands", response_model=WorkOrderResponse, status_code=status.HTTP_201_CREATED)
def demand_create(
    payload: DemandCreateRequest,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    work_order = create_demand(db, user, payload.title, payload.advisor_id, notes=payload.notes)
    return work_order_detail(db, work_order.id)


@app.get("/work-orders/demands", response_model=list[WorkOrderResponse])
def demand_list(
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[WorkOrderResponse]:
    return list_demands(db, user)


@app.get("/work-orders/{work_order_id}", response_model=WorkOrderResponse)
def work_order_get(
    work_order_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return work_order_detail(db, work_order_id)


@app.patch("/work-orders/{work_order_id}/assign", response_model=WorkOrderResponse)
def work_order_assign(
    work_order_id: int,
    payload: WorkOrderAssignRequest,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    assign_work_order(db, user, work_order_id, payload.user_id)
    return work_order_detail(db, work_order_id)


@app.patch("/work-orders/{work_order_id}/close", response_model=WorkOrderResponse)
def work_order_close(
    work_order_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    close_work_order(db, work_order_id)
    return work_order_detail(db, work_order_id)


@app.get("/work-orders/{work_order_id}/punches", response_model=list[TimePunchResponse])
def work_order_punches(
    work_order_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[TimePunchResponse]:
    return list_work_order_punches(db, work_order_id)


@app.post(
    "/work-orders/{work_order_id}/punch-in",
    response_model=TimePunchResponse,
    status_code=status.HTTP_201_CREATED,
)
def work_order_punch_in(
    work_order_id: int,
    payload: Optional[WorkOrderPunchInRequest] = None,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TimePunchResponse:
    payload = payload or WorkOrderPunchInRequest()
    return clock_in(db, user, "work", work_order_id, payload.task_id, payload.clock_in_time)


@app.post("/work-orders/{work_order_id}/punch-out", response_model=TimePunchResponse)
def work_order_punch_out(
    work_order_id: int,
    payload: Optional[ClockOutRequest] = None,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> TimePunchResponse:
    payload = payload or ClockOutRequest()
    return clock_out(
        db,
        user,
        work_order_id=work_order_id,
        kilometers=payload.kilometers,
        clock_out_time=payload.clock_out_time,
    )


# Tasks


@app.get("/work-orders/{work_order_id}/tasks", response_model=list[WorkOrderTaskResponse])
def task_list(
    work_order_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[Dict[str, Any]]:
    return list_tasks(db, work_order_id)


@app.post(
    "/work-orders/{work_order_id}/tasks",
    response_model=WorkOrderTaskResponse,
    status_code=status.HTTP_201_CREATED,
)
def task_create(
    work_order_id: int,
    payload: TaskCreateRequest,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> WorkOrderTaskResponse:
    return add_task(db, user, work_order_id, payload.title, payload.budgeted_hours, payload.description)


@app.patch("/tasks/{task_id}", response_model=WorkOrderTaskResponse)
def task_update(
    task_id: int,
    payload: TaskUpdateRequest,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> WorkOrderTaskResponse:
    return update_task(db, user, task_id, payload.model_dump(exclude_unset=True))


@app.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def task_delete(
    task_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    delete_task(db, user, task_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/tasks/{task_id}/punch", response_model=PunchToggleResponse)
def task_punch(
    task_id: int,
    payload: TaskPunchToggleRequest,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> PunchToggleResponse:
    punch, action = toggle_task_punch(db, user, task_id, payload.work_order_id)
    return PunchToggleResponse(punch=TimePunchResponse.model_validate(punch), action=action)


@app.get("/tasks/{task_id}/punches", response_model=list[TimePunchResponse])
def task_punches(
    task_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> list[TimePunchResponse]:
    return list_task_punches(db, task_id)


# Exports


@app.post("/exports", response_model=ExportResponse, status_code=status.HTTP_201_CREATED)
def export_create(
    payload: ExportRequest,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ExportResponse:
    return export_timesheet(db, user, payload.format, payload.range_start, payload.range_end)


@app.get("/exports/{export_id}")
def export_download(
    export_id: int,
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> Response:
    export, path = resolve_export(db, user, export_id)
    return FileResponse(path, filename=path.name, media_type=EXPORT_MEDIA_TYPES.get(export.format))
