"""
Employee directory: employee records, their identities, and the
per-department ``employee_count`` counter.

The counter counts *active* employees of a department. Every path that
changes department membership (create, delete, department move, status
change) calls ``adjust_department_counts`` inside the same transaction as the
employee write, so the employee row and the counters commit or roll back
together.
"""
from __future__ import annotations

import logging
from typing import Optional

from flask import current_app
from sqlalchemy import or_

from hrm_api.common.errors import Conflict, Forbidden, NotFound, ValidationError
from hrm_api.common.paging import LIKE_ESCAPE, like_pattern
from hrm_api.extensions import db
from hrm_api.models.attendance import AttendanceRecord
from hrm_api.models.employee import Employee
from hrm_api.models.leave import LeaveRequest
from hrm_api.models.master import Department
from hrm_api.models.user import User
from hrm_api.schemas import EmployeeCreate, employee_patch_schema
from hrm_api.services import policy
from hrm_api.services.policy import Actor

log = logging.getLogger(__name__)

CODE_PREFIX = "EMP"


# ---------- lookups (always tenant scoped) ----------

def employee_in(company_id, employee_id) -> Employee:
    emp = Employee.query.filter_by(id=employee_id, company_id=company_id).first()
    if not emp:
        raise NotFound("Employee not found")
    return emp


def department_in(company_id, department_id) -> Department:
    dept = Department.query.filter_by(id=department_id, company_id=company_id).first()
    if not dept:
        raise NotFound("Department not found")
    return dept


def next_employee_code() -> str:
    """EMP + zero padded running number; skips codes a deleted row left behind."""
    n = Employee.query.count() + 1
    while Employee.query.filter_by(employee_code=f"{CODE_PREFIX}{n:04d}").first():
        n += 1
    return f"{CODE_PREFIX}{n:04d}"


def _membership(department_id, status) -> Optional[int]:
    return department_id if status == "active" else None


# ---------- counter step ----------

def adjust_department_counts(old_department_id: Optional[int], new_department_id: Optional[int]):
    """
    Move one unit of ``employee_count`` from ``old`` to ``new``. Either side
    may be None (create / delete). Runs as atomic in-database increments in
    the caller's transaction; a missing department raises NotFound and the
    caller rolls the whole unit back.
    """
    if old_department_id == new_department_id:
        return
    for dept_id, delta in ((old_department_id, -1), (new_department_id, 1)):
        if dept_id is None:
            continue
        n = (
            Department.query
            .filter(Department.id == dept_id)
            .update({Department.employee_count: Department.employee_count + delta}, synchronize_session=False)
        )
        if n != 1:
            raise NotFound("Department not found")
    log.info("department counts moved old=%s new=%s", old_department_id, new_department_id)


def _check_manager(company_id, manager_id, emp_id=None) -> Employee:
    manager = employee_in(company_id, manager_id)
    # walk up the chain so a reporting loop can't be created
    seen = set()
    node = manager
    while node is not None and node.id not in seen:
        if emp_id is not None and node.id == emp_id:
            raise ValidationError("manager_id would create a reporting loop")
        seen.add(node.id)
        node = node.manager
    return manager


def _ensure_email_free(email: str, company_id, emp_id=None, user_id=None):
    other = Employee.query.filter(db.func.lower(Employee.email) == email).first()
    if other and other.id != emp_id:
        raise Conflict("Employee with this email already exists")
    user = User.by_email(email)
    if user and user.id != user_id and user.company_id not in (None, company_id):
        raise Conflict("Email is registered with another company")
    return user


# ---------- operations ----------

def create_employee(actor: Actor, data: EmployeeCreate) -> Employee:
    policy.enforce(actor, policy.CREATE, policy.company_target(actor.company_id))
    if data.role == "admin" and actor.role != "admin":
        raise Forbidden("Only an admin can create another admin")

    dept = department_in(actor.company_id, data.department_id)
    if data.manager_id is not None:
        _check_manager(actor.company_id, data.manager_id)

    email = User.normalize_email(data.email)
    user = _ensure_email_free(email, actor.company_id)
    if user is not None and Employee.query.filter_by(user_id=user.id).first():
        raise Conflict("This identity already has an employee record")

    try:
        if user is None:
            user = User(
                email=email,
                full_name=f"{data.first_name} {data.last_name}".strip(),
                role=data.role,
                company_id=actor.company_id,
                is_active=True,
            )
            user.set_password(data.password or current_app.config["DEFAULT_EMPLOYEE_PASSWORD"])
            db.session.add(user)
            db.session.flush()
        else:
            user.company_id = actor.company_id

        emp = Employee(
            company_id=actor.company_id,
            department_id=dept.id,
            manager_id=data.manager_id,
            user_id=user.id,
            employee_code=next_employee_code(),
            email=email,
            first_name=data.first_name,
            last_name=data.last_name,
            phone=data.phone,
            position=data.position,
            date_of_joining=data.date_of_joining,
            date_of_birth=data.date_of_birth,
            status=data.status,
            notes=data.notes,
        )
        db.session.add(emp)
        db.session.flush()
        adjust_department_counts(None, _membership(emp.department_id, emp.status))
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    log.info("employee created id=%s code=%s company=%s", emp.id, emp.employee_code, emp.company_id)
    return emp


def get_employee(actor: Actor, employee_id: int) -> Employee:
    emp = employee_in(actor.company_id, employee_id)
    policy.enforce(actor, policy.READ, policy.employee_target(emp), hide=True, what="Employee")
    return emp


def update_employee(actor: Actor, employee_id: int, raw: dict) -> Employee:
    emp = employee_in(actor.company_id, employee_id)
    policy.enforce(actor, policy.UPDATE, policy.employee_target(emp))

    patch = employee_patch_schema(actor.role).model_validate(raw or {})
    changes = patch.model_dump(exclude_unset=True)
    if not changes:
        raise ValidationError("No updates supplied")

    if changes.get("role") == "admin" and actor.role != "admin":
        raise Forbidden("Only an admin can grant the admin role")
    for field in ("first_name", "last_name", "position", "department_id", "date_of_birth",
                  "date_of_joining", "status", "email"):
        if field in changes and changes[field] is None:
            raise ValidationError(f"{field} cannot be empty")

    if "email" in changes:
        changes["email"] = User.normalize_email(changes["email"])
        _ensure_email_free(changes["email"], actor.company_id, emp_id=emp.id, user_id=emp.user_id)
    if changes.get("manager_id") is not None:
        _check_manager(actor.company_id, changes["manager_id"], emp_id=emp.id)

    old_dept_id = emp.department_id
    new_dept_id = changes.get("department_id", old_dept_id)
    if new_dept_id != old_dept_id:
        department_in(actor.company_id, new_dept_id)

    old_key = _membership(old_dept_id, emp.status)
    new_key = _membership(new_dept_id, changes.get("status", emp.status))

    try:
        adjust_department_counts(old_key, new_key)
        if new_dept_id != old_dept_id:
            Department.query.filter_by(id=old_dept_id, head_id=emp.id).update(
                {Department.head_id: None}, synchronize_session=False
            )

        role = changes.pop("role", None)
        for field, value in changes.items():
            setattr(emp, field, value)
        if role is not None:
            emp.user.role = role
        if "email" in changes:
            emp.user.email = changes["email"]
        if "first_name" in changes or "last_name" in changes:
            emp.user.full_name = emp.full_name
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    log.info("employee updated id=%s fields=%s", emp.id, sorted(changes) + (["role"] if role else []))
    return emp


def delete_employee(actor: Actor, employee_id: int):
    emp = employee_in(actor.company_id, employee_id)
    policy.enforce(actor, policy.DELETE, policy.employee_target(emp))

    try:
        adjust_department_counts(_membership(emp.department_id, emp.status), None)
        Employee.query.filter_by(manager_id=emp.id).update({Employee.manager_id: None}, synchronize_session=False)
        Department.query.filter_by(head_id=emp.id).update({Department.head_id: None}, synchronize_session=False)
        AttendanceRecord.query.filter_by(employee_id=emp.id).delete(synchronize_session=False)
        LeaveRequest.query.filter_by(employee_id=emp.id).delete(synchronize_session=False)
        # identities are never removed, only switched off
        if emp.user_id != actor.id:
            emp.user.is_active = False
        db.session.delete(emp)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    log.info("employee deleted id=%s company=%s", employee_id, actor.company_id)


def list_employees(actor: Actor, department_id=None, status=None, role=None, q=None, page=1, size=20):
    policy.enforce(actor, policy.READ, policy.company_target(actor.company_id))

    qry = Employee.query.filter(Employee.company_id == actor.company_id)
    if department_id:
        qry = qry.filter(Employee.department_id == department_id)
    if status:
        qry = qry.filter(Employee.status == status.lower())
    if role:
        qry = qry.join(User, User.id == Employee.user_id).filter(User.role == role)
    if q:
        qry = qry.filter(_text_filter(q))

    total = qry.count()
    items = (
        qry.order_by(Employee.first_name.asc(), Employee.id.asc())
        .offset((page - 1) * size).limit(size).all()
    )
    return items, total


def list_reports(actor: Actor, manager_id: int):
    manager = employee_in(actor.company_id, manager_id)
    policy.enforce(actor, policy.READ, policy.employee_target(manager), hide=True, what="Employee")
    return (
        Employee.query
        .filter_by(company_id=actor.company_id, manager_id=manager.id)
        .order_by(Employee.first_name.asc())
        .all()
    )


def search(actor: Actor, query: str, limit: Optional[int] = None):
    policy.enforce(actor, policy.READ, policy.company_target(actor.company_id))
    cap = current_app.config["SEARCH_LIMIT"]
    limit = cap if limit is None else max(1, min(limit, cap))
    s = (query or "").strip()
    if not s:
        return []
    return (
        Employee.query
        .filter(Employee.company_id == actor.company_id, _text_filter(s))
        .order_by(Employee.first_name.asc())
        .limit(limit)
        .all()
    )


def _text_filter(s: str):
    like = like_pattern(s)
    return or_(*(
        col.ilike(like, escape=LIKE_ESCAPE)
        for col in (Employee.first_name, Employee.last_name, Employee.email, Employee.employee_code)
    ))
