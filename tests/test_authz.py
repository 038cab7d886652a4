# tests/test_authz.py
from datetime import datetime, timezone

import pytest
from flask import g

from auth import TEACHERS, READERS, RoleGate, require_roles, protect, check_role
from db import db
from errors import Forbidden, Unauthenticated
from models import Weather
from tokens import issue_token, verify_token
from conftest import make_user, auth_header


def test_weather_list_requires_login(client):
    res = client.get("/api/v1/weather")
    assert res.status_code == 401
    assert res.get_json()["message"] == "You are not logged in! Please log in to get access."


def test_logout_sentinel_cookie_is_not_a_credential(client):
    client.set_cookie("jwt", "loggedout")
    res = client.get("/api/v1/weather")
    assert res.status_code == 401


def test_cookie_token_is_accepted(client, student):
    client.set_cookie("jwt", issue_token(student.id))
    res = client.get("/api/v1/weather")
    assert res.status_code == 200


def test_bearer_header_wins_over_cookie(client, student):
    client.set_cookie("jwt", issue_token(student.id))
    res = client.get("/api/v1/weather", headers={"Authorization": "Bearer garbage"})
    assert res.status_code == 401


def test_student_cannot_create_readings(client, student_headers):
    res = client.post(
        "/api/v1/weather",
        json={"deviceName": "X", "time": "2024-03-01T10:00:00Z", "temperature": 20,
              "humidity": 50, "longitude": 10},
        headers=student_headers,
    )
    assert res.status_code == 403
    assert res.get_json()["status"] == "fail"
    assert Weather.query.count() == 0


def test_sensor_cannot_list_readings(client, sensor_headers):
    res = client.get("/api/v1/weather", headers=sensor_headers)
    assert res.status_code == 403


def test_role_gate_never_reaches_handler(app, student):
    calls = []

    @require_roles(TEACHERS)
    def handler():
        calls.append(1)
        return "ok"

    with app.test_request_context(headers=auth_header(issue_token(student.id))):
        with pytest.raises(Forbidden):
            handler()
    assert calls == []


def test_role_gate_runs_handler_for_allowed_role(app, student):
    calls = []

    @require_roles(READERS)
    def handler():
        calls.append(g.current_user.id)
        return "ok"

    with app.test_request_context(headers=auth_header(issue_token(student.id))):
        assert handler() == "ok"
    assert calls == [student.id]


def test_check_role_uses_gate_membership(app, sensor):
    check_role(sensor, RoleGate(frozenset({"sensor"})))
    with pytest.raises(Forbidden):
        check_role(sensor, READERS)


def test_token_for_deleted_user_is_rejected_before_role_check(client, app):
    user = make_user("student")
    token = issue_token(user.id)
    db.session.delete(user)
    db.session.commit()

    # teacher-only route: must be 401 (identity), never 403 (role)
    res = client.get("/api/v1/users", headers=auth_header(token))
    assert res.status_code == 401
    assert "no longer exists" in res.get_json()["message"]


def test_token_issued_before_password_change_is_rejected(app):
    user = make_user("teacher")
    token = issue_token(user.id)
    issued_at = verify_token(token).issued_at

    user.password_changed_at = datetime.fromtimestamp(issued_at + 1, timezone.utc).replace(tzinfo=None)
    db.session.commit()

    with app.test_request_context(headers=auth_header(token)):
        with pytest.raises(Unauthenticated) as exc:
            protect()
    assert "changed password" in exc.value.message


def test_token_issued_after_password_change_is_accepted(client):
    user = make_user("teacher")
    token = issue_token(user.id)
    issued_at = verify_token(token).issued_at
    user.password_changed_at = datetime.fromtimestamp(issued_at - 10, timezone.utc).replace(tzinfo=None)
    db.session.commit()

    res = client.get("/api/v1/users", headers=auth_header(token))
    assert res.status_code == 200
