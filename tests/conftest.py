# tests/conftest.py
import uuid
from datetime import timedelta

import pytest

from app import create_app, db as _db
from models import User, Weather
from tokens import issue_token
from utils import utcnow


@pytest.fixture(scope="session")
def app():
    # Build a testing app
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "SQLALCHEMY_ECHO": False,
        "JWT_SECRET_KEY": "test-secret-key-that-is-long-enough-for-hs256",
        "APP_ENV": "production",
        "API_TITLE": "Weather API (tests)",
        "API_VERSION": "1.0-test",
    })
    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def db(app):
    return _db


@pytest.fixture(autouse=True)
def clean_tables(app):
    yield
    _db.session.rollback()
    for table in reversed(_db.metadata.sorted_tables):
        _db.session.execute(table.delete())
    _db.session.commit()
    # Drop identities left over from this test
    _db.session.remove()


def make_user(role="teacher", *, email=None, password="pass1234", **extra):
    user = User(
        name=f"{role} user",
        email=email or f"{role}-{uuid.uuid4().hex[:8]}@example.com",
        role=role,
        **extra,
    )
    user.set_password(password)
    _db.session.add(user)
    _db.session.commit()
    return user


def make_reading(**overrides):
    values = {
        "device_name": "Woodford_Sensor",
        "time": utcnow() - timedelta(days=1),
        "temperature": 20.0,
        "humidity": 50.0,
        "longitude": 153.0,
        "latitude": -27.5,
        "precipitation": 0.1,
    }
    values.update(overrides)
    reading = Weather(**values)
    _db.session.add(reading)
    _db.session.commit()
    return reading


def auth_header(token):
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def teacher(app):
    return make_user("teacher")


@pytest.fixture()
def student(app):
    return make_user("student")


@pytest.fixture()
def sensor(app):
    return make_user("sensor")


@pytest.fixture()
def teacher_headers(teacher):
    return auth_header(issue_token(teacher.id))


@pytest.fixture()
def student_headers(student):
    return auth_header(issue_token(student.id))


@pytest.fixture()
def sensor_headers(sensor):
    return auth_header(issue_token(sensor.id))
