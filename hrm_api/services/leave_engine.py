"""
Leave lifecycle.

    pending --approve--------> approved
    pending --reject(reason)-> rejected
    pending --cancel---------> cancelled

approved, rejected and cancelled are terminal. Every transition is one
conditional UPDATE with ``status = 'pending'`` in its WHERE clause, so two
concurrent approvers cannot both win.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from flask import current_app
from sqlalchemy import func

from hrm_api.common.errors import Forbidden, InvalidTransition, NotFound, ValidationError, Conflict
from hrm_api.extensions import db
from hrm_api.models.employee import Employee
from hrm_api.models.leave import (
    APPROVED,
    BLOCKING_STATUSES,
    CANCELLED,
    LEAVE_STATUSES,
    PENDING,
    REJECTED,
    LeaveRequest,
)
from hrm_api.schemas import LeaveApplyIn
from hrm_api.services import notifications, policy
from hrm_api.services.attendance_engine import company_tz, local_today, month_bounds
from hrm_api.services.directory import department_in, employee_in
from hrm_api.services.policy import Actor, Target

log = logging.getLogger(__name__)


def _notifier(notifier):
    if notifier is not None:
        return notifier
    return current_app.extensions.get("notifier")


# ---------- rules ----------

def compute_days(start: date, end: date, is_half_day: bool = False) -> float:
    if start is None or end is None:
        raise ValidationError("start_date and end_date are required")
    if end < start:
        raise ValidationError("end_date cannot be before start_date")
    if is_half_day:
        return 0.5
    days = (end - start).days + 1
    if days > current_app.config["MAX_LEAVE_DAYS"]:
        raise ValidationError(f"A leave cannot exceed {current_app.config['MAX_LEAVE_DAYS']} days")
    return float(days)


def _intersects(start: date, end: date):
    # closed intervals [start_date, end_date] and [start, end]
    return (LeaveRequest.start_date <= end) & (LeaveRequest.end_date >= start)


def validate_no_overlap(employee_id: int, start: date, end: date, exclude_leave_id: Optional[int] = None):
    q = LeaveRequest.query.filter(
        LeaveRequest.employee_id == employee_id,
        LeaveRequest.status.in_(BLOCKING_STATUSES),
        _intersects(start, end),
    )
    if exclude_leave_id is not None:
        q = q.filter(LeaveRequest.id != exclude_leave_id)
    clash = q.first()
    if clash is not None:
        raise Conflict("leave already exists for this period", payload={"leave_id": clash.id})


def _leave_in(company_id, leave_id) -> LeaveRequest:
    leave = LeaveRequest.query.filter_by(id=leave_id, company_id=company_id).first()
    if not leave:
        raise NotFound("Leave request not found")
    return leave


# ---------- transitions ----------

def apply(actor: Actor, data: LeaveApplyIn, notifier=None) -> LeaveRequest:
    """Create a pending leave for the actor, or (admin/hr) for another employee."""
    target_id = data.employee_id if data.employee_id is not None else actor.employee_id
    if target_id is None:
        raise NotFound("No employee record for this user")
    emp = employee_in(actor.company_id, target_id)
    policy.enforce(actor, policy.CREATE, policy.leave_target(emp=emp))

    days = compute_days(data.start_date, data.end_date, data.is_half_day)

    try:
        # serialise applications of one employee so two overlapping requests
        # cannot both pass the overlap check
        Employee.query.filter_by(id=emp.id).with_for_update().first()
        validate_no_overlap(emp.id, data.start_date, data.end_date)

        leave = LeaveRequest(
            company_id=emp.company_id,
            employee_id=emp.id,
            leave_type=data.leave_type,
            start_date=data.start_date,
            end_date=data.end_date,
            is_half_day=data.is_half_day,
            half_day_type=data.half_day_type,
            days=days,
            reason=data.reason,
            status=PENDING,
            contact_info=data.contact_info,
            notes=data.notes,
            created_by_user_id=actor.id,
        )
        db.session.add(leave)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    log.info("leave applied id=%s employee=%s %s..%s days=%s", leave.id, emp.id, leave.start_date, leave.end_date, days)
    if emp.manager is not None:
        notifications.send(
            _notifier(notifier),
            "leave.applied",
            emp.manager.user_id,
            {"leave_id": leave.id, "employee_id": emp.id, "start_date": leave.start_date.isoformat(),
             "end_date": leave.end_date.isoformat(), "days": days},
        )
    return leave


def set_status(actor: Actor, leave_id: int, new_status: str, rejection_reason: Optional[str] = None,
               notifier=None) -> LeaveRequest:
    if new_status not in (APPROVED, REJECTED):
        raise ValidationError("status must be 'approved' or 'rejected'")

    leave = _leave_in(actor.company_id, leave_id)
    if leave.status != PENDING:
        raise InvalidTransition(f"Leave is already {leave.status}", payload={"status": leave.status})

    action = policy.APPROVE if new_status == APPROVED else policy.REJECT
    policy.enforce(actor, action, policy.leave_target(leave))

    reason = (rejection_reason or "").strip()
    if new_status == REJECTED and not reason:
        raise ValidationError("rejection_reason is required when rejecting a leave")

    n = (
        LeaveRequest.query
        .filter(LeaveRequest.id == leave.id, LeaveRequest.status == PENDING)
        .update(
            {
                LeaveRequest.status: new_status,
                LeaveRequest.approved_by_user_id: actor.id,
                LeaveRequest.approved_at: datetime.utcnow(),
                LeaveRequest.rejection_reason: reason if new_status == REJECTED else None,
                LeaveRequest.updated_at: datetime.utcnow(),
            },
            synchronize_session=False,
        )
    )
    if n != 1:
        db.session.rollback()
        raise InvalidTransition("Leave is no longer pending")
    db.session.commit()
    db.session.refresh(leave)

    log.info("leave %s id=%s by user=%s", new_status, leave.id, actor.id)
    notifications.send(
        _notifier(notifier),
        f"leave.{new_status}",
        leave.employee.user_id,
        {"leave_id": leave.id, "status": new_status, "rejection_reason": leave.rejection_reason},
    )
    return leave


def cancel(actor: Actor, leave_id: int) -> LeaveRequest:
    """Owner-only withdrawal of a pending leave. Anything else is NotFound."""
    leave = LeaveRequest.query.filter_by(
        id=leave_id, company_id=actor.company_id, status=PENDING
    ).first()
    if leave is None or actor.employee_id is None or leave.employee_id != actor.employee_id:
        raise NotFound("Leave request not found or cannot be cancelled")
    policy.enforce(actor, policy.CANCEL, policy.leave_target(leave), hide=True, what="Leave request")

    n = (
        LeaveRequest.query
        .filter(
            LeaveRequest.id == leave.id,
            LeaveRequest.employee_id == actor.employee_id,
            LeaveRequest.status == PENDING,
        )
        .update(
            {LeaveRequest.status: CANCELLED, LeaveRequest.updated_at: datetime.utcnow()},
            synchronize_session=False,
        )
    )
    if n != 1:
        db.session.rollback()
        raise NotFound("Leave request not found or cannot be cancelled")
    db.session.commit()
    db.session.refresh(leave)
    log.info("leave cancelled id=%s employee=%s", leave.id, leave.employee_id)
    return leave


# ---------- reads ----------

def _scope_department(actor: Actor, department_id: Optional[int]) -> Optional[int]:
    """
    Department a team-level read covers. admin/hr may pick any department
    (or None for the whole company); a manager is pinned to their own.
    """
    if department_id is not None:
        department_in(actor.company_id, department_id)
    if actor.is_admin:
        return department_id
    dept_id = department_id if department_id is not None else actor.department_id
    policy.enforce(actor, policy.READ, Target(kind="leave", company_id=actor.company_id, department_id=dept_id))
    return dept_id


def _current_month(actor: Actor):
    today = local_today(company_tz(actor.company_id))
    return month_bounds(today.year, today.month)


def team_calendar(actor: Actor, start: Optional[date] = None, end: Optional[date] = None,
                  department_id: Optional[int] = None):
    dept_id = _scope_department(actor, department_id)
    if not (start and end):
        start, end = _current_month(actor)
    if end < start:
        raise ValidationError("end date cannot be before start date")

    q = (
        LeaveRequest.query
        .join(Employee, Employee.id == LeaveRequest.employee_id)
        .filter(
            LeaveRequest.company_id == actor.company_id,
            LeaveRequest.status == APPROVED,
            _intersects(start, end),
        )
    )
    if dept_id is not None:
        q = q.filter(Employee.department_id == dept_id)
    if not actor.is_admin and actor.employee_id is not None:
        # a manager sees the team, not their own time off
        q = q.filter(LeaveRequest.employee_id != actor.employee_id)
    return start, end, q.order_by(LeaveRequest.start_date.asc(), LeaveRequest.id.asc()).all()


def _year_filter(q, year: Optional[int]):
    if year:
        q = q.filter(_intersects(date(year, 1, 1), date(year, 12, 31)))
    return q


def my_leaves(actor: Actor, status: Optional[str] = None, year: Optional[int] = None):
    if actor.employee_id is None:
        raise NotFound("No employee record for this user")
    q = LeaveRequest.query.filter_by(company_id=actor.company_id, employee_id=actor.employee_id)
    if status:
        if status not in LEAVE_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(LEAVE_STATUSES)}")
        q = q.filter(LeaveRequest.status == status)
    q = _year_filter(q, year)
    return q.order_by(LeaveRequest.start_date.desc(), LeaveRequest.id.desc()).all()


def list_requests(actor: Actor, status: Optional[str] = PENDING, department_id: Optional[int] = None,
                  start: Optional[date] = None, end: Optional[date] = None):
    """Leaves an approver can act on: company wide for admin/hr, own department for managers."""
    if not actor.is_admin and actor.role != "manager":
        raise Forbidden("Not authorized to perform this action")
    dept_id = _scope_department(actor, department_id)

    q = (
        LeaveRequest.query
        .join(Employee, Employee.id == LeaveRequest.employee_id)
        .filter(LeaveRequest.company_id == actor.company_id)
    )
    if dept_id is not None:
        q = q.filter(Employee.department_id == dept_id)
    if not actor.is_admin and actor.employee_id is not None:
        q = q.filter(LeaveRequest.employee_id != actor.employee_id)
    if status:
        if status not in LEAVE_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(LEAVE_STATUSES)}")
        q = q.filter(LeaveRequest.status == status)
    if start and end:
        q = q.filter(_intersects(start, end))
    return q.order_by(LeaveRequest.created_at.desc(), LeaveRequest.id.desc()).all()


def leave_stats(actor: Actor, year: Optional[int] = None) -> dict:
    """
    Counts and day totals per status. admin/hr see the company, managers
    their department, everyone else their own leaves.
    """
    q = (
        db.session.query(LeaveRequest.status, func.count(LeaveRequest.id), func.coalesce(func.sum(LeaveRequest.days), 0))
        .join(Employee, Employee.id == LeaveRequest.employee_id)
        .filter(LeaveRequest.company_id == actor.company_id)
    )
    if actor.is_admin:
        scope = "company"
    elif actor.role == "manager" and actor.department_id is not None:
        scope = "department"
        q = q.filter(Employee.department_id == actor.department_id)
    elif actor.employee_id is not None:
        scope = "self"
        q = q.filter(LeaveRequest.employee_id == actor.employee_id)
    else:
        raise NotFound("No employee record for this user")

    year = year or local_today(company_tz(actor.company_id)).year
    q = _year_filter(q, year)

    by_status = {s: {"count": 0, "days": 0.0} for s in LEAVE_STATUSES}
    for status, count, days in q.group_by(LeaveRequest.status).all():
        by_status[status] = {"count": int(count), "days": round(float(days), 2)}

    return {
        "scope": scope,
        "year": year,
        "by_status": by_status,
        "total": sum(v["count"] for v in by_status.values()),
    }
