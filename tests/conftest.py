from datetime import timedelta

import pytest

from app import create_app
from config import TestConfig
from models import db
from models.audit_log import AuditLog
from models.employee import Employee, ROLE_ADMIN, ROLE_EMPLOYEE
from models.session import Session
from security.password import hash_password

ADMIN_PASSWORD = "admin-pass-1"
EMPLOYEE_PASSWORD = "employee-pass-1"


@pytest.fixture
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        rows = [
            Employee(emp_id="ADMIN001", email="admin@act.example", full_name="Asha Admin",
                     department="IT", role=ROLE_ADMIN, password_hash=hash_password(ADMIN_PASSWORD)),
            Employee(emp_id="ADMIN002", email="admin2@act.example", full_name="Ravi Admin",
                     department="HR", role=ROLE_ADMIN, password_hash=hash_password(ADMIN_PASSWORD)),
            Employee(emp_id="EMP001", email="emp1@act.example", full_name="Meera Employee",
                     department="Sales", role=ROLE_EMPLOYEE, password_hash=hash_password(EMPLOYEE_PASSWORD)),
            Employee(emp_id="EMP002", email="emp2@act.example", full_name="Kiran Employee",
                     department="Sales", role=ROLE_EMPLOYEE, password_hash=hash_password(EMPLOYEE_PASSWORD)),
        ]
        db.session.add_all(rows)
        db.session.commit()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def employee_pk(app, emp_id):
    with app.app_context():
        return Employee.query.filter_by(emp_id=emp_id).one().id


def login(client, emp_id="EMP001", password=None):
    if password is None:
        password = ADMIN_PASSWORD if emp_id.startswith("ADMIN") else EMPLOYEE_PASSWORD
    resp = client.post("/api/auth/login", json={"emp_id": emp_id, "password": password})
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def get_session(app, session_id) -> Session:
    with app.app_context():
        sess = db.session.get(Session, session_id)
        db.session.expunge(sess)
        return sess


def shift_session(app, session_id, idle=timedelta(0), age=timedelta(0)):
    """Moves a session into the past: `idle` on last activity, `age` on creation and expiry."""
    with app.app_context():
        sess = db.session.get(Session, session_id)
        sess.last_activity_at = sess.last_activity_at - idle - age
        sess.created_at = sess.created_at - age
        sess.expires_at = sess.expires_at - age
        db.session.commit()


def audit_rows(app, **filters):
    with app.app_context():
        rows = AuditLog.query.filter_by(**filters).order_by(AuditLog.id).all()
        return [r.to_dict() for r in rows]
