from __future__ import annotations

from flask import Blueprint, request

from hrm_api.common.auth import current_actor, requires_onboarded
from hrm_api.common.http import ok
from hrm_api.common.paging import int_arg, page_limit, text_q
from hrm_api.models.employee import Employee
from hrm_api.schemas import EmployeeCreate
from hrm_api.services import directory

bp = Blueprint("employees", __name__, url_prefix="/api/v1/employees")


# ---------- row shapes ----------
def _row(x: Employee):
    return {
        "id": x.id,
        "employee_code": x.employee_code,
        "email": x.email,
        "first_name": x.first_name,
        "last_name": x.last_name,
        "full_name": x.full_name,
        "phone": x.phone,
        "position": x.position,
        "role": x.role,

        "company_id": x.company_id,
        "department_id": x.department_id,
        "department_name": x.department.name if x.department else None,
        "manager_id": x.manager_id,
        "manager_name": x.manager.full_name if x.manager else None,
        "user_id": x.user_id,

        "status": x.status,
        "date_of_joining": x.date_of_joining.isoformat() if x.date_of_joining else None,
        "date_of_birth": x.date_of_birth.isoformat() if x.date_of_birth else None,
        "notes": x.notes,
        "created_at": x.created_at.isoformat() if x.created_at else None,
        "updated_at": x.updated_at.isoformat() if x.updated_at else None,
    }


def brief(x: Employee):
    """Compact shape embedded in attendance and leave rows."""
    if x is None:
        return None
    return {
        "id": x.id,
        "employee_code": x.employee_code,
        "full_name": x.full_name,
        "email": x.email,
        "position": x.position,
        "department_id": x.department_id,
        "department_name": x.department.name if x.department else None,
    }


# ---------- routes ----------
@bp.get("")
@requires_onboarded
def list_employees():
    page, size = page_limit()
    items, total = directory.list_employees(
        current_actor(),
        department_id=int_arg("departmentId", "department_id", "department"),
        status=(request.args.get("status") or "").strip() or None,
        role=(request.args.get("role") or "").strip() or None,
        q=text_q(),
        page=page,
        size=size,
    )
    return ok([_row(i) for i in items], page=page, size=size, total=total)


@bp.get("/<int:eid>")
@requires_onboarded
def get_employee(eid: int):
    return ok(_row(directory.get_employee(current_actor(), eid)))


@bp.post("")
@requires_onboarded
def create_employee():
    data = EmployeeCreate.model_validate(request.get_json(silent=True) or {})
    return ok(_row(directory.create_employee(current_actor(), data)), status=201)


@bp.route("/<int:eid>", methods=["PUT", "PATCH"])
@requires_onboarded
def update_employee(eid: int):
    # the patch shape depends on the caller's role; the service picks it
    return ok(_row(directory.update_employee(current_actor(), eid, request.get_json(silent=True) or {})))


@bp.delete("/<int:eid>")
@requires_onboarded
def delete_employee(eid: int):
    directory.delete_employee(current_actor(), eid)
    return ok({"id": eid, "deleted": True})


@bp.get("/<int:eid>/reports")
@requires_onboarded
def direct_reports(eid: int):
    return ok([_row(i) for i in directory.list_reports(current_actor(), eid)])


@bp.get("/search/<path:query>")
@requires_onboarded
def search(query: str):
    limit = int_arg("limit")
    return ok([brief(i) for i in directory.search(current_actor(), query, limit=limit)])
