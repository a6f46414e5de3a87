from __future__ import annotations

from flask import Blueprint, request, current_app

from hrm_api.blueprints.employees import brief
from hrm_api.common.auth import current_actor, requires_onboarded
from hrm_api.common.http import ok
from hrm_api.common.paging import date_arg, int_arg
from hrm_api.models.leave import LeaveRequest, PENDING
from hrm_api.schemas import LeaveApplyIn, LeaveStatusIn
from hrm_api.services import leave_engine

bp = Blueprint("leaves", __name__, url_prefix="/api/v1/leaves")


def _row(x: LeaveRequest):
    return {
        "id": x.id,
        "employee_id": x.employee_id,
        "employee": brief(x.employee),
        "leave_type": x.leave_type,
        "start_date": x.start_date.isoformat(),
        "end_date": x.end_date.isoformat(),
        "is_half_day": bool(x.is_half_day),
        "half_day_type": x.half_day_type,
        "days": float(x.days),
        "reason": x.reason,
        "status": x.status,
        "contact_info": x.contact_info,
        "notes": x.notes,
        "approved_by": x.approved_by_user_id,
        "approved_by_name": x.approved_by.full_name if x.approved_by else None,
        "approved_at": x.approved_at.isoformat() if x.approved_at else None,
        "rejection_reason": x.rejection_reason,
        "created_at": x.created_at.isoformat() if x.created_at else None,
    }


def _status_arg(default=None):
    raw = (request.args.get("status") or "").strip().lower()
    if not raw:
        return default
    return None if raw == "all" else raw


# ---------- apply / self ----------
@bp.post("")
@requires_onboarded
def apply_leave():
    data = LeaveApplyIn.model_validate(request.get_json(silent=True) or {})
    leave = leave_engine.apply(current_actor(), data)
    return ok(_row(leave), status=201)


@bp.get("/my-leaves")
@requires_onboarded
def my_leaves():
    rows = leave_engine.my_leaves(current_actor(), status=_status_arg(), year=int_arg("year"))
    return ok([_row(r) for r in rows])


@bp.route("/<int:leave_id>/cancel", methods=["PUT", "PATCH", "POST"])
@requires_onboarded
def cancel_leave(leave_id: int):
    return ok(_row(leave_engine.cancel(current_actor(), leave_id)))


# ---------- approvers ----------
@bp.get("/requests")
@requires_onboarded
def requests_for_approval():
    rows = leave_engine.list_requests(
        current_actor(),
        status=_status_arg(PENDING),
        department_id=int_arg("departmentId", "department_id"),
        start=date_arg("startDate", "start_date"),
        end=date_arg("endDate", "end_date"),
    )
    return ok([_row(r) for r in rows], total=len(rows))


@bp.route("/<int:leave_id>/status", methods=["PUT", "PATCH"])
@requires_onboarded
def set_status(leave_id: int):
    data = LeaveStatusIn.model_validate(request.get_json(silent=True) or {})
    leave = leave_engine.set_status(current_actor(), leave_id, data.status, data.rejection_reason)
    current_app.logger.info("leave %s -> %s", leave.id, leave.status)
    return ok(_row(leave))


@bp.get("/team-calendar")
@requires_onboarded
def team_calendar():
    start, end, rows = leave_engine.team_calendar(
        current_actor(),
        start=date_arg("startDate", "start_date", "start"),
        end=date_arg("endDate", "end_date", "end"),
        department_id=int_arg("departmentId", "department_id"),
    )
    return ok([_row(r) for r in rows], start_date=start.isoformat(), end_date=end.isoformat())


@bp.get("/stats")
@requires_onboarded
def stats():
    return ok(leave_engine.leave_stats(current_actor(), year=int_arg("year")))
