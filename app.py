import logging

from flask import Flask, g, request, jsonify
from flask_migrate import Migrate
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from config import Config
from models import db
from routes import health_bp, auth_bp, admin_bp, audit_bp
from security.errors import error_response, STORE_ERROR, INTERNAL_ERROR
from utils.audit import log_event
from utils.request_meta import client_ip


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    _configure_logging(app)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(audit_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    @app.before_request
    def _log_request():
        # never log bodies: login and employee payloads carry passwords
        app.logger.info("%s %s from %s", request.method, request.path, client_ip())

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Permissions-Policy"] = "geolocation=(), microphone=(), camera=()"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        resp.headers["Cache-Control"] = "no-store"
        return resp

    register_error_handlers(app)
    register_cli(app)

    return app


def _configure_logging(app):
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    app.logger.setLevel(level)
    if not app.logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        app.logger.addHandler(handler)


def register_error_handlers(app):
    @app.errorhandler(HTTPException)
    def _http_error(exc):
        return jsonify(message=exc.description or exc.name, code=exc.name.upper().replace(" ", "_")), exc.code

    def _audit_system_error(exc):
        # e.g. auth.logout -> auth_logout_system_error
        endpoint = (request.endpoint or "request").replace(".", "_")
        log_event(
            f"{endpoint}_system_error",
            "system",
            employee_id=getattr(g, "employee_id", None),
            session_id=getattr(getattr(g, "session", None), "id", None),
            details={"path": request.path, "method": request.method, "error": type(exc).__name__},
            severity="critical",
        )

    @app.errorhandler(SQLAlchemyError)
    def _store_error(exc):
        db.session.rollback()
        app.logger.exception("Store error on %s %s", request.method, request.path)
        _audit_system_error(exc)
        return error_response(STORE_ERROR)

    @app.errorhandler(Exception)
    def _unhandled(exc):
        db.session.rollback()
        app.logger.exception("Unhandled error on %s %s", request.method, request.path)
        _audit_system_error(exc)
        return error_response(INTERNAL_ERROR)

#-------------------------
import click
from models.employee import Employee, ROLES, ROLE_ADMIN, ROLE_EMPLOYEE
from models.session import LOGOUT_ACCOUNT_DELETED
from security.password import hash_password
from security.session import terminate_all_for_employee, sweep_stale_sessions

def register_cli(app):
    @app.cli.command("list-employees")
    def list_employees():
        """List every employee with role and status."""
        rows = Employee.query.order_by(Employee.created_at.desc()).all()
        if not rows:
            print("No employees found")
            return

        print(f"{'EMP_ID':<10} | {'NAME':<20} | {'EMAIL':<28} | {'ROLE':<8} | STATUS")
        print("-" * 84)
        for e in rows:
            status = "Active" if e.is_active else "Inactive"
            print(f"{e.emp_id:<10} | {e.full_name:<20} | {e.email:<28} | {e.role:<8} | {status}")
        print(f"Total: {len(rows)} employees")

    @app.cli.command("create-employee")
    @click.argument("emp_id")
    @click.argument("email")
    @click.argument("full_name")
    @click.option("--role", type=click.Choice(ROLES), default=ROLE_EMPLOYEE)
    @click.option("--department", default=None)
    @click.password_option()
    def create_employee(emp_id, email, full_name, role, department, password):
        """Create an employee (bootstrap)."""
        email = email.strip().lower()
        if Employee.query.filter((Employee.emp_id == emp_id) | (Employee.email == email)).first():
            print("Employee ID or email already exists")
            return

        employee = Employee(
            emp_id=emp_id,
            email=email,
            full_name=full_name,
            department=department,
            role=role,
            password_hash=hash_password(password),
        )
        db.session.add(employee)
        db.session.commit()
        log_event("employee_created", "system", resource_type="employee", resource_id=employee.id,
                  details={"emp_id": emp_id, "role": role, "source": "cli"})
        print(f"{emp_id} created ({role})")

    @app.cli.command("set-password")
    @click.argument("emp_id")
    @click.password_option()
    def set_password(emp_id, password):
        """Reset an employee's password."""
        employee = Employee.query.filter_by(emp_id=emp_id).first()
        if not employee:
            print(f"Employee '{emp_id}' not found")
            return
        employee.password_hash = hash_password(password)
        db.session.commit()
        log_event("password_reset", "system", resource_type="employee", resource_id=employee.id,
                  details={"source": "cli"}, severity="warning")
        print(f"Password updated for {employee.full_name} ({employee.email})")

    @app.cli.command("make-admin")
    @click.argument("emp_id")
    def make_admin(emp_id):
        """Promote an employee to admin (bootstrap)."""
        employee = Employee.query.filter_by(emp_id=emp_id).first()
        if not employee:
            print("Employee not found")
            return

        if employee.role != ROLE_ADMIN:
            employee.role = ROLE_ADMIN
            db.session.commit()
            log_event("employee_promoted", "system", resource_type="employee", resource_id=employee.id,
                      details={"source": "cli"}, severity="warning")

        print(f"{employee.emp_id} promoted to admin")

    @app.cli.command("toggle-employee")
    @click.argument("emp_id")
    def toggle_employee(emp_id):
        """Activate or deactivate an employee; deactivation ends their sessions."""
        employee = Employee.query.filter_by(emp_id=emp_id).first()
        if not employee:
            print("Employee not found")
            return

        employee.is_active = not employee.is_active
        db.session.commit()
        ended = 0
        if not employee.is_active:
            ended = terminate_all_for_employee(employee.id, LOGOUT_ACCOUNT_DELETED)
        log_event(
            "employee_activated" if employee.is_active else "employee_deactivated",
            "system",
            resource_type="employee",
            resource_id=employee.id,
            details={"source": "cli", "sessions_terminated": ended},
            severity="warning",
        )
        state = "activated" if employee.is_active else f"deactivated ({ended} sessions ended)"
        print(f"{employee.emp_id} {state}")

    @app.cli.command("sweep-sessions")
    def sweep_sessions():
        """End every active session past its idle or absolute window."""
        counts = sweep_stale_sessions()
        print(f"expired: {counts['expired']}, idle timeout: {counts['idle_timeout']}")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=app.config.get("PORT", 4000))
