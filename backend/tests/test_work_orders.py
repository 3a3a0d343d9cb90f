from __future__ import annotations

import datetime as dt

import pytest
from fastapi.testclient import TestClient

from conftest import auth
from fieldpunch import models
from fieldpunch.utils import local_today, now_utc


def _punch_on(client: TestClient, user: models.User, work_order_id: int, start: str, end: str) -> dict:
    resp = client.post(
        f"/work-orders/{work_order_id}/punch-in",
        json={"clock_in_time": start},
        headers=auth(user),
    )
    assert resp.status_code == 201, resp.json()
    resp = client.post(
        f"/work-orders/{work_order_id}/punch-out",
        json={"clock_out_time": end},
        headers=auth(user),
    )
    assert resp.status_code == 200, resp.json()
    return resp.json()


def test_assigned_work_order_lifecycle(client: TestClient, technician: models.User, advisor: models.User, make_work_order):
    work_order = make_work_order(technician, budgets=(2.0,))
    url = f"/work-orders/{work_order.id}"
    assert client.get(url, headers=auth(technician)).json()["status"] == "assigned"

    punch_in = client.post(
        f"{url}/punch-in",
        json={"clock_in_time": "2024-03-04T09:00:00-05:00"},
        headers=auth(technician),
    )
    assert punch_in.status_code == 201
    assert punch_in.json()["work_order_id"] == work_order.id
    assert client.get(url, headers=auth(technician)).json()["status"] == "in-progress"

    punch_out = client.post(
        f"{url}/punch-out",
        json={"clock_out_time": "2024-03-04T11:30:00-05:00"},
        headers=auth(technician),
    )
    assert punch_out.status_code == 200
    assert punch_out.json()["duration_hours"] == pytest.approx(2.5)
    assert client.get(url, headers=auth(technician)).json()["actual_hours"] == pytest.approx(2.5)

    closed = client.patch(f"{url}/close", headers=auth(advisor))
    assert closed.status_code == 200
    data = closed.json()
    assert data["status"] == "completed"
    assert data["actual_hours"] == pytest.approx(2.5)
    assert data["budgeted_hours"] == pytest.approx(2.0)
    assert data["efficiency"] == pytest.approx(80.0)
    assert data["completed_at"] is not None

    reopen = client.post(f"{url}/punch-in", headers=auth(technician))
    assert reopen.status_code == 403
    assert reopen.json()["code"] == "WorkOrderClosed"

    punches = client.get(f"{url}/punches", headers=auth(advisor)).json()
    assert len(punches) == 1


def test_punch_out_without_active_work_order_punch(client: TestClient, technician: models.User, make_work_order):
    work_order = make_work_order(technician)
    resp = client.post(f"/work-orders/{work_order.id}/punch-out", headers=auth(technician))
    assert resp.status_code == 404
    assert resp.json() == {"detail": "No active punch found for this work order", "code": "NoActivePunch"}


def test_close_without_punches_has_no_efficiency(client: TestClient, advisor: models.User, make_work_order):
    work_order = make_work_order()
    data = client.patch(f"/work-orders/{work_order.id}/close", headers=auth(advisor)).json()
    assert data["actual_hours"] == 0
    assert data["efficiency"] is None

    missing = client.patch("/work-orders/9999/close", headers=auth(advisor))
    assert missing.status_code == 404
    assert missing.json()["code"] == "NotFound"


def test_close_clocks_out_open_punches(
    client: TestClient, technician: models.User, advisor: models.User, make_work_order
):
    headers = auth(technician)
    work_order = make_work_order(technician, budgets=(3.0,))
    url = f"/work-orders/{work_order.id}"
    _punch_on(client, technician, work_order.id, "2024-03-04T08:00:00-05:00", "2024-03-04T10:00:00-05:00")
    started = now_utc() - dt.timedelta(hours=1)
    open_punch = client.post(f"{url}/punch-in", json={"clock_in_time": started.isoformat()}, headers=headers).json()

    closed = client.patch(f"{url}/close", headers=auth(advisor)).json()
    assert closed["status"] == "completed"
    assert closed["actual_hours"] == pytest.approx(3.0, abs=0.01)
    assert closed["efficiency"] == pytest.approx(300.0 / closed["actual_hours"])

    punches = {punch["id"]: punch for punch in client.get(f"{url}/punches", headers=auth(advisor)).json()}
    assert punches[open_punch["id"]]["clock_out"] == closed["completed_at"]
    assert client.get("/time-punches/current", headers=headers).json() is None

    late = client.post(f"{url}/punch-out", headers=headers)
    assert late.status_code == 404
    assert late.json()["code"] == "NoActivePunch"
    after = client.get(url, headers=headers).json()
    assert after["actual_hours"] == closed["actual_hours"]
    assert after["efficiency"] == closed["efficiency"]


def test_close_refused_while_punch_open_too_long(
    client: TestClient, technician: models.User, advisor: models.User, make_work_order
):
    work_order = make_work_order(technician)
    url = f"/work-orders/{work_order.id}"
    started = now_utc() - dt.timedelta(hours=25)
    assert (
        client.post(f"{url}/punch-in", json={"clock_in_time": started.isoformat()}, headers=auth(technician)).status_code
        == 201
    )

    resp = client.patch(f"{url}/close", headers=auth(advisor))
    assert resp.status_code == 400
    assert resp.json()["code"] == "InvalidInterval"
    data = client.get(url, headers=auth(advisor)).json()
    assert data["status"] == "in-progress"
    assert data["completed_at"] is None
    assert client.get("/time-punches/current", headers=auth(technician)).json() is not None


def test_delete_and_readd_restores_actual_hours(client: TestClient, technician: models.User, make_work_order):
    work_order = make_work_order(technician)
    url = f"/work-orders/{work_order.id}"
    _punch_on(client, technician, work_order.id, "2024-03-04T08:00:00-05:00", "2024-03-04T09:30:00-05:00")
    second = _punch_on(client, technician, work_order.id, "2024-03-04T10:00:00-05:00", "2024-03-04T11:00:00-05:00")
    assert client.get(url, headers=auth(technician)).json()["actual_hours"] == pytest.approx(2.5)

    assert client.delete(f"/time-punches/{second['id']}", headers=auth(technician)).status_code == 204
    assert client.get(url, headers=auth(technician)).json()["actual_hours"] == pytest.approx(1.5)

    _punch_on(client, technician, work_order.id, "2024-03-04T10:00:00-05:00", "2024-03-04T11:00:00-05:00")
    assert client.get(url, headers=auth(technician)).json()["actual_hours"] == pytest.approx(2.5)


def test_work_order_punch_authorization(
    client: TestClient,
    make_user,
    technician: models.User,
    advisor: models.User,
    make_work_order,
):
    work_order = make_work_order(technician, budgets=(3.0,))
    punch = _punch_on(client, technician, work_order.id, "2024-03-04T08:00:00-05:00", "2024-03-04T10:00:00-05:00")
    punch_url = f"/time-punches/{punch['id']}"
    wo_url = f"/work-orders/{work_order.id}"
    edit = {"clock_in": "2024-03-04T08:00:00-05:00", "clock_out": "2024-03-04T11:00:00-05:00"}

    other = make_user("technician")
    denied = client.patch(punch_url, json=edit, headers=auth(other))
    assert denied.status_code == 403
    assert denied.json() == {"detail": "You are not authorized to edit this punch", "code": "Forbidden"}

    # The current assignee may fix punches of the previous one
    assert client.patch(f"{wo_url}/assign", json={"user_id": other.id}, headers=auth(advisor)).status_code == 200
    assert client.patch(punch_url, json=edit, headers=auth(other)).status_code == 200
    assert client.get(wo_url, headers=auth(advisor)).json()["actual_hours"] == pytest.approx(3.0)

    closed = client.patch(f"{wo_url}/close", headers=auth(advisor)).json()
    assert closed["efficiency"] == pytest.approx(100.0)

    blocked = client.patch(punch_url, json=edit, headers=auth(technician))
    assert blocked.status_code == 403
    assert blocked.json() == {"detail": "Cannot edit punches on closed work orders", "code": "WorkOrderClosed"}
    blocked_delete = client.delete(punch_url, headers=auth(other))
    assert blocked_delete.json()["code"] == "WorkOrderClosed"

    longer = {"clock_in": "2024-03-04T08:00:00-05:00", "clock_out": "2024-03-04T12:00:00-05:00"}
    assert client.patch(punch_url, json=longer, headers=auth(advisor)).status_code == 200
    after_edit = client.get(wo_url, headers=auth(advisor)).json()
    assert after_edit["actual_hours"] == pytest.approx(4.0)
    assert after_edit["efficiency"] == pytest.approx(100.0)

    reclosed = client.patch(f"{wo_url}/close", headers=auth(advisor)).json()
    assert reclosed["efficiency"] == pytest.approx(75.0)


def test_toggle_task_punch(client: TestClient, technician: models.User, make_work_order):
    work_order = make_work_order(technician, budgets=(1.0, 2.0))
    first, second = work_order.tasks
    headers = auth(technician)

    started = client.post(f"/tasks/{first.id}/punch", json={"work_order_id": work_order.id}, headers=headers)
    assert started.status_code == 200
    assert started.json()["action"] == "punched_in"
    assert started.json()["punch"]["task_id"] == first.id

    busy = client.post(f"/tasks/{second.id}/punch", json={"work_order_id": work_order.id}, headers=headers)
    assert busy.status_code == 409
    assert busy.json()["code"] == "AlreadyPunchedIn"

    stopped = client.post(f"/tasks/{first.id}/punch", json={"work_order_id": work_order.id}, headers=headers)
    assert stopped.json()["action"] == "punched_out"
    assert stopped.json()["punch"]["id"] == started.json()["punch"]["id"]
    assert stopped.json()["punch"]["clock_out"] is not None

    task_punches = client.get(f"/tasks/{first.id}/punches", headers=headers).json()
    assert [p["id"] for p in task_punches] == [started.json()["punch"]["id"]]
    assert client.get(f"/tasks/{second.id}/punches", headers=headers).json() == []


def test_toggle_task_on_wrong_work_order(client: TestClient, technician: models.User, make_work_order):
    work_order = make_work_order(technician)
    other_order = make_work_order(technician)
    task = work_order.tasks[0]
    resp = client.post(f"/tasks/{task.id}/punch", json={"work_order_id": other_order.id}, headers=auth(technician))
    assert resp.status_code == 404
    assert resp.json()["code"] == "NotFound"
    assert client.get("/tasks/9999/punches", headers=auth(technician)).status_code == 404


def test_create_and_assign_work_orders(client: TestClient, technician: models.User, advisor: models.User):
    payload = {
        "title": "Annual inspection",
        "tasks": [
            {"title": "Check brakes", "budgeted_hours": 1.5},
            {"title": "Check lights", "budgeted_hours": 0.5, "description": "All of them"},
        ],
    }
    denied = client.post("/work-orders", json=payload, headers=auth(technician))
    assert denied.status_code == 403

    resp = client.post("/work-orders", json=payload, headers=auth(advisor))
    assert resp.status_code == 201
    data = resp.json()
    assert data["number"].startswith("W")
    assert data["status"] == "new"
    assert data["budgeted_hours"] == pytest.approx(2.0)
    assert [task["title"] for task in data["tasks"]] == ["Check brakes", "Check lights"]
    assert [task["actual_hours"] for task in data["tasks"]] == [0, 0]

    second = client.post("/work-orders", json=payload, headers=auth(advisor)).json()
    assert second["number"] != data["number"]

    assigned = client.patch(
        f"/work-orders/{data['id']}/assign",
        json={"user_id": technician.id},
        headers=auth(advisor),
    )
    assert assigned.status_code == 200
    assert assigned.json()["status"] == "assigned"
    assert assigned.json()["assigned_to_id"] == technician.id

    mine = client.get("/work-orders/assigned", headers=auth(technician)).json()
    assert [wo["id"] for wo in mine] == [data["id"]]
    assert len(client.get("/work-orders", headers=auth(technician)).json()) == 2


@pytest.mark.parametrize(
    "payload",
    [
        {"title": "No tasks", "tasks": []},
        {"title": "Zero budget", "tasks": [{"title": "t", "budgeted_hours": 0}]},
        {"title": "Huge budget", "tasks": [{"title": "t", "budgeted_hours": 120}]},
    ],
)
def test_work_order_payload_validation(client: TestClient, advisor: models.User, payload: dict):
    assert client.post("/work-orders", json=payload, headers=auth(advisor)).status_code == 422


def test_assign_closed_work_order_refused(client: TestClient, technician: models.User, advisor: models.User, make_work_order):
    work_order = make_work_order()
    client.patch(f"/work-orders/{work_order.id}/close", headers=auth(advisor))
    resp = client.patch(f"/work-orders/{work_order.id}/assign", json={"user_id": technician.id}, headers=auth(advisor))
    assert resp.status_code == 403
    assert resp.json()["code"] == "WorkOrderClosed"


def test_task_management(client: TestClient, technician: models.User, advisor: models.User, make_work_order):
    work_order = make_work_order(technician, budgets=(1.0,))
    tasks_url = f"/work-orders/{work_order.id}/tasks"

    assert client.post(tasks_url, json={"title": "x", "budgeted_hours": 1}, headers=auth(technician)).status_code == 403

    created = client.post(tasks_url, json={"title": "Align wheels", "budgeted_hours": 1.25}, headers=auth(advisor))
    assert created.status_code == 201
    task = created.json()
    assert task["sort_order"] == 1

    updated = client.patch(f"/tasks/{task['id']}", json={"budgeted_hours": 2.0}, headers=auth(advisor))
    assert updated.status_code == 200
    assert updated.json()["budgeted_hours"] == 2.0
    assert updated.json()["title"] == "Align wheels"

    listed = client.get(tasks_url, headers=auth(technician)).json()
    assert [t["title"] for t in listed] == ["Task 1", "Align wheels"]

    first_task_id = listed[0]["id"]
    client.post(f"/tasks/{first_task_id}/punch", json={"work_order_id": work_order.id}, headers=auth(technician))
    client.post(f"/tasks/{first_task_id}/punch", json={"work_order_id": work_order.id}, headers=auth(technician))

    in_use = client.delete(f"/tasks/{first_task_id}", headers=auth(advisor))
    assert in_use.status_code == 409
    assert in_use.json()["code"] == "TaskHasPunches"

    assert client.delete(f"/tasks/{task['id']}", headers=auth(advisor)).status_code == 204
    assert len(client.get(tasks_url, headers=auth(technician)).json()) == 1


def test_user_directory(client: TestClient, make_user, technician: models.User):
    admin = make_user("admin")
    me = client.get("/users/me", headers=auth(technician)).json()
    assert me["id"] == technician.id
    assert me["role"] == "technician"

    created = client.post("/users", json={"username": "  dana ", "role": "technical_advisor"}, headers=auth(admin))
    assert created.status_code == 201
    assert created.json()["username"] == "dana"

    duplicate = client.post("/users", json={"username": "dana"}, headers=auth(admin))
    assert duplicate.status_code == 400
    assert duplicate.json()["code"] == "InvalidRequest"

    assert client.post("/users", json={"username": "eve"}, headers=auth(technician)).status_code == 403


def test_user_stats(client: TestClient, technician: models.User, advisor: models.User, make_work_order):
    headers = auth(technician)
    work_order = make_work_order(technician, budgets=(2.0,))
    _punch_on(client, technician, work_order.id, "2024-03-04T09:00:00-05:00", "2024-03-04T11:30:00-05:00")
    client.patch(f"/work-orders/{work_order.id}/close", headers=auth(advisor))
    make_work_order(technician)

    today = local_today().isoformat()
    now = now_utc()
    work = {
        "kind": "work",
        "clock_in": (now - dt.timedelta(hours=3)).isoformat(),
        "clock_out": (now - dt.timedelta(hours=1)).isoformat(),
        "punch_date": today,
    }
    travel = {
        "kind": "travel",
        "clock_in": (now - dt.timedelta(minutes=50)).isoformat(),
        "clock_out": (now - dt.timedelta(minutes=40)).isoformat(),
        "kilometers": 12.5,
        "punch_date": today,
    }
    assert client.post("/time-punches", json=work, headers=headers).status_code == 201
    assert client.post("/time-punches", json=travel, headers=headers).status_code == 201
    assert client.post("/breaks", json={"minutes": 30}, headers=headers).status_code == 201

    stats = client.get("/users/me/stats", headers=headers).json()
    assert stats["assigned_work_orders_count"] == 2
    assert stats["completed_work_orders_count"] == 1
    assert stats["avg_efficiency"] == pytest.approx(80.0)
    assert stats["hours_today"] == pytest.approx(1.5)
    assert stats["hours_this_week"] == pytest.approx(1.5)
    assert stats["km_today"] == pytest.approx(12.5)
    assert stats["km_overall"] == pytest.approx(12.5)
    assert stats["all_completed_efficiency"] is None

    advisor_stats = client.get("/users/me/stats", headers=auth(advisor)).json()
    assert advisor_stats["all_completed_efficiency"] == pytest.approx(80.0)
    assert advisor_stats["hours_today"] == 0


def test_average_efficiency_is_not_rounded(
    client: TestClient, technician: models.User, advisor: models.User, make_work_order
):
    work_order = make_work_order(technician, budgets=(2.0,))
    _punch_on(client, technician, work_order.id, "2024-03-04T09:00:00-05:00", "2024-03-04T12:00:00-05:00")
    client.patch(f"/work-orders/{work_order.id}/close", headers=auth(advisor))

    stats = client.get("/users/me/stats", headers=auth(technician)).json()
    assert stats["avg_efficiency"] == pytest.approx(200.0 / 3)
    assert stats["avg_efficiency"] != 66.7


def test_technician_files_demand_for_advisor(
    client: TestClient, make_user, technician: models.User, advisor: models.User
):
    payload = {"title": "Noise from rear axle", "advisor_id": advisor.id, "notes": "Customer waiting"}
    resp = client.post("/work-orders/demands", json=payload, headers=auth(technician))
    assert resp.status_code == 201
    demand = resp.json()
    assert demand["status"] == "demand"
    assert demand["assigned_to_id"] == advisor.id
    assert demand["demanded_by_id"] == technician.id
    assert demand["created_by_id"] == technician.id
    assert demand["tasks"] == []

    by_advisor = client.post("/work-orders/demands", json=payload, headers=auth(advisor))
    assert by_advisor.status_code == 403
    assert by_advisor.json()["code"] == "Forbidden"

    to_technician = client.post(
        "/work-orders/demands",
        json={"title": "Wrong recipient", "advisor_id": make_user("technician").id},
        headers=auth(technician),
    )
    assert to_technician.status_code == 400
    assert to_technician.json() == {"detail": "Demands must be addressed to an advisor", "code": "InvalidRequest"}

    unknown = client.post("/work-orders/demands", json={"title": "Nobody", "advisor_id": 9999}, headers=auth(technician))
    assert unknown.status_code == 404


def test_demand_listing_and_assignment(
    client: TestClient, make_user, technician: models.User, advisor: models.User, make_work_order
):
    make_work_order(technician)
    other_advisor = make_user("technical_advisor")
    mine = client.post(
        "/work-orders/demands", json={"title": "Check tire wear", "advisor_id": advisor.id}, headers=auth(technician)
    ).json()
    theirs = client.post(
        "/work-orders/demands", json={"title": "Replace wiper", "advisor_id": other_advisor.id}, headers=auth(technician)
    ).json()

    listed = client.get("/work-orders/demands", headers=auth(advisor))
    assert listed.status_code == 200
    assert [demand["id"] for demand in listed.json()] == [mine["id"]]

    admin_view = client.get("/work-orders/demands", headers=auth(make_user("admin"))).json()
    assert {demand["id"] for demand in admin_view} == {mine["id"], theirs["id"]}

    denied = client.get("/work-orders/demands", headers=auth(technician))
    assert denied.status_code == 403

    assigned = client.patch(
        f"/work-orders/{mine['id']}/assign", json={"user_id": technician.id}, headers=auth(advisor)
    ).json()
    assert assigned["status"] == "assigned"
    assert assigned["assigned_to_id"] == technician.id
    assert assigned["demanded_by_id"] == technician.id
    assert client.get("/work-orders/demands", headers=auth(advisor)).json() == []
