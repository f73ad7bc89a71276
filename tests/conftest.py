from datetime import timedelta

import pytest
from werkzeug.security import generate_password_hash

from lablink import create_app
from lablink.config import TestConfig
from lablink.extensions import db
from lablink.models.department import Department
from lablink.models.item import Item
from lablink.models.user import User, UserDepartment
from lablink.services.auth_service import AuthService
from lablink.utils.clock import today

PASSWORD = "secret-pass"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def department(app):
    dept = Department(name="Kimya Laboratuvarı")
    db.session.add(dept)
    db.session.commit()
    return dept


@pytest.fixture
def other_department(app):
    dept = Department(name="Fizik Laboratuvarı")
    db.session.add(dept)
    db.session.commit()
    return dept


def make_user(username, role, department=None):
    user = User(
        username=username,
        email=f"{username}@lab.test",
        full_name=username.title(),
        password_hash=generate_password_hash(PASSWORD),
        role=role,
    )
    db.session.add(user)
    db.session.flush()
    if department is not None:
        db.session.add(UserDepartment(user_id=user.id, department_id=department.id))
    db.session.commit()
    return user


@pytest.fixture
def admin(app):
    return make_user("admin", "admin")


@pytest.fixture
def staff(department):
    return make_user("staff", "staff", department)


@pytest.fixture
def outsider(other_department):
    return make_user("outsider", "staff", other_department)


@pytest.fixture
def student(app):
    return make_user("student", "student")


@pytest.fixture
def other_student(app):
    return make_user("student2", "student")


@pytest.fixture
def make_item(department):
    def _make(quantity=2, code="ITM-1", borrowable=True, name="Mikroskop"):
        item = Item(
            name=name,
            item_code=code,
            department_id=department.id,
            current_quantity=quantity,
            total_quantity=quantity,
            is_borrowable=borrowable,
        )
        db.session.add(item)
        db.session.commit()
        return item
    return _make


@pytest.fixture
def item(make_item):
    return make_item()


@pytest.fixture
def window():
    start = today() + timedelta(days=1)
    return start, start + timedelta(days=7)


@pytest.fixture
def auth_headers(app):
    def _headers(user):
        return {"Authorization": f"Bearer {AuthService.issue_token(user)}"}
    return _headers

