# hrm_api/blueprints/departments.py
from __future__ import annotations

from flask import Blueprint, request

from hrm_api.common.auth import current_actor, requires_onboarded
from hrm_api.common.http import ok
from hrm_api.models.master import Department
from hrm_api.schemas import DepartmentIn, DepartmentPatch
from hrm_api.services import tenants

bp = Blueprint("departments", __name__, url_prefix="/api/v1/departments")


# ---------- row shape ----------
def _row(x: Department):
    return {
        "id": x.id,
        "company_id": x.company_id,
        "name": x.name,
        "description": x.description,
        "head_id": x.head_id,
        "head_name": x.head.full_name if x.head else None,
        "employee_count": x.employee_count,
        "created_at": x.created_at.isoformat() if x.created_at else None,
    }


# ---------- routes ----------
@bp.get("")
@requires_onboarded
def list_departments():
    return ok([_row(d) for d in tenants.list_departments(current_actor())])


@bp.get("/<int:department_id>")
@requires_onboarded
def get_department(department_id: int):
    return ok(_row(tenants.get_department(current_actor(), department_id)))


@bp.post("")
@requires_onboarded
def create_department():
    data = DepartmentIn.model_validate(request.get_json(silent=True) or {})
    return ok(_row(tenants.create_department(current_actor(), data)), status=201)


@bp.route("/<int:department_id>", methods=["PUT", "PATCH"])
@requires_onboarded
def update_department(department_id: int):
    data = DepartmentPatch.model_validate(request.get_json(silent=True) or {})
    return ok(_row(tenants.update_department(current_actor(), department_id, data)))


@bp.delete("/<int:department_id>")
@requires_onboarded
def delete_department(department_id: int):
    tenants.delete_department(current_actor(), department_id)
    return ok({"id": department_id, "deleted": True})
