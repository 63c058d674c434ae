"""
Complaint desk - shared test fixtures.

Each test gets a fresh application bound to an in-memory SQLite database.
Service-level tests run inside ``ctx``; HTTP tests use ``client`` and must not
also hold ``ctx``, since Flask-Login caches the current user on ``g``.
"""
import itertools

import pytest

from app import create_app
from extensions import db
from models import Complaint, Department, User
from utils.identity import ActingUser

PASSWORD = "Sturdy-Passw0rd!"


class Factory:
    """Creates committed rows in their own app context and hands back plain values."""

    def __init__(self, app):
        self.app = app
        self.emails = {}
        self._seq = itertools.count(1)

    def user(self, role="USER", name=None, departments=(), is_active=True) -> ActingUser:
        n = next(self._seq)
        email = f"{role.lower()}{n}@example.org"
        with self.app.app_context():
            user = User(
                name=name or f"{role.title()} {n}",
                email=email,
                role=role,
                is_active=is_active,
            )
            user.set_password(PASSWORD)
            user.departments = [db.session.get(Department, d) for d in departments]
            db.session.add(user)
            db.session.commit()
            actor = ActingUser.from_user(user)
        self.emails[actor.id] = email
        return actor

    def department(self, name=None, is_active=True) -> int:
        n = next(self._seq)
        with self.app.app_context():
            department = Department(name=name or f"Department {n}", is_active=is_active)
            db.session.add(department)
            db.session.commit()
            return department.id

    def complaint(self, reporter: ActingUser, assignee: ActingUser = None, **overrides) -> str:
        values = {
            "title": "Leak near park",
            "details": "Water has been leaking near the park gate for three days.",
            "category": "WATER",
            "priority": "HIGH",
            "status": "PENDING",
        }
        values.update(overrides)
        with self.app.app_context():
            complaint = Complaint(
                user_id=reporter.id,
                assigned_to_id=assignee.id if assignee else None,
                **values,
            )
            db.session.add(complaint)
            db.session.commit()
            return complaint.id

    def login(self, client, actor: ActingUser):
        response = client.post(
            "/api/auth/login",
            json={"email": self.emails[actor.id], "password": PASSWORD},
        )
        assert response.status_code == 200, response.get_json()
        return response


@pytest.fixture
def app(tmp_path):
    app = create_app("testing", {"LOG_DIR": str(tmp_path / "logs")})
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make(app):
    return Factory(app)


@pytest.fixture
def people(make):
    """Reporter, second citizen, assigned staff, department staff and an admin."""
    department_id = make.department(name="Water Works")
    return {
        "department_id": department_id,
        "reporter": make.user("USER", name="Uma Reporter"),
        "other": make.user("USER", name="Omar Neighbour"),
        "staff": make.user("STAFF", name="Sam Staff", departments=[department_id]),
        "colleague": make.user("STAFF", name="Cora Colleague", departments=[department_id]),
        "admin": make.user("ADMIN", name="Ada Admin"),
    }
