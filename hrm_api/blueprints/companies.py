# hrm_api/blueprints/companies.py
from __future__ import annotations

from flask import Blueprint, request, current_app
from flask_jwt_extended import jwt_required

from hrm_api.common.auth import current_user
from hrm_api.common.http import ok
from hrm_api.models.master import Company
from hrm_api.schemas import CompanyIn, PlanIn
from hrm_api.services import tenants

bp = Blueprint("companies", __name__, url_prefix="/api/v1/company")


# -------- row shape --------
def _row(x: Company):
    return {
        "id": x.id,
        "name": x.name,
        "domain": x.domain,
        "size": x.size,
        "plan": x.plan,
        "has_plan": x.has_plan,
        "owner_id": x.owner_id,
        "timezone": x.timezone,
        "is_active": x.is_active,
        "created_at": x.created_at.isoformat() if x.created_at else None,
    }


# -------- routes --------
@bp.post("/create")
@jwt_required()
def create_company():
    data = CompanyIn.model_validate(request.get_json(silent=True) or {})
    user = current_user()
    had_company = user.company_id is not None
    c = tenants.save_company(user, data)
    current_app.logger.info("company %s id=%s", "updated" if had_company else "created", c.id)
    return ok(_row(c), status=200 if had_company else 201)


@bp.post("/plan")
@jwt_required()
def choose_plan():
    data = PlanIn.model_validate(request.get_json(silent=True) or {})
    c = tenants.set_plan(current_user(), data.plan)
    return ok(_row(c))


@bp.get("/verify")
@jwt_required()
def verify():
    st = tenants.company_status(current_user())
    return ok({"company": _row(st["company"]), "has_plan": st["has_plan"]})
