import os
from datetime import date
from types import SimpleNamespace

import pytest

from hrm_api import create_app
from hrm_api.common.auth import actor_for
from hrm_api.extensions import db
from hrm_api.models.master import Company
from hrm_api.models.user import User
from hrm_api.schemas import DepartmentIn, EmployeeCreate
from hrm_api.services import directory, tenants
from hrm_api.services.notifications import RecordingNotifier

PASSWORD = "secret123"


@pytest.fixture(scope="function")
def app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    app.config["TESTING"] = True
    app.extensions["notifier"] = RecordingNotifier()
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def sent(app):
    """Notifications captured during the test."""
    return app.extensions["notifier"].sent


class Seed:
    """Builds tenants, departments and employees through the real services."""

    def tenant(self, name="Acme", tz="UTC", plan="free"):
        slug = name.lower().replace(" ", "")
        c = Company(name=name, plan=plan, timezone=tz)
        db.session.add(c)
        db.session.commit()
        admin = User(email=f"admin@{slug}.com", full_name=f"{name} Admin", role="admin", company_id=c.id)
        admin.set_password(PASSWORD)
        db.session.add(admin)
        db.session.commit()
        c.owner_id = admin.id
        db.session.commit()
        return SimpleNamespace(company=c, user=admin, admin=actor_for(admin), slug=slug)

    def department(self, t, name="Engineering"):
        return tenants.create_department(t.admin, DepartmentIn(name=name))

    def employee(self, t, dept, first, role="employee", manager=None, status="active", last="Tester"):
        data = EmployeeCreate.model_validate({
            "first_name": first,
            "last_name": last,
            "email": f"{first.lower()}@{t.slug}.com",
            "department_id": dept.id,
            "position": "Engineer",
            "date_of_birth": date(1992, 4, 12),
            "date_of_joining": date(2023, 1, 9),
            "manager_id": manager.id if manager else None,
            "role": role,
            "status": status,
            "password": PASSWORD,
        })
        return directory.create_employee(t.admin, data)

    @staticmethod
    def actor(emp):
        return actor_for(emp.user)


@pytest.fixture
def seed(app):
    return Seed()
