# hrm_api/blueprints/super_admin.py
from __future__ import annotations

from flask import Blueprint, request

from hrm_api.blueprints.companies import _row
from hrm_api.common.auth import requires_roles
from hrm_api.common.http import ok
from hrm_api.common.paging import page_limit, text_q
from hrm_api.schemas import CompanyAdminPatch, CompanyProvisionIn
from hrm_api.services import tenants

bp = Blueprint("super_admin", __name__, url_prefix="/api/v1/super-admin")

SUPER = "super-admin"


@bp.get("/companies")
@requires_roles(SUPER)
def list_companies():
    page, size = page_limit()
    items, total = tenants.list_companies(q=text_q(), page=page, size=size)
    return ok([_row(c) for c in items], page=page, size=size, total=total)


@bp.post("/companies")
@requires_roles(SUPER)
def provision_company():
    data = CompanyProvisionIn.model_validate(request.get_json(silent=True) or {})
    return ok(_row(tenants.provision_company(data)), status=201)


@bp.get("/companies/<int:cid>")
@requires_roles(SUPER)
def get_company(cid: int):
    return ok(_row(tenants.get_company(cid)))


@bp.route("/companies/<int:cid>", methods=["PUT", "PATCH"])
@requires_roles(SUPER)
def update_company(cid: int):
    data = CompanyAdminPatch.model_validate(request.get_json(silent=True) or {})
    return ok(_row(tenants.update_company(cid, data)))


@bp.delete("/companies/<int:cid>")
@requires_roles(SUPER)
def delete_company(cid: int):
    tenants.delete_company(cid)
    return ok({"id": cid, "deleted": True})


@bp.put("/companies/<int:cid>/suspend")
@requires_roles(SUPER)
def suspend_company(cid: int):
    return ok(_row(tenants.set_company_active(cid, False)))


@bp.put("/companies/<int:cid>/reactivate")
@requires_roles(SUPER)
def reactivate_company(cid: int):
    return ok(_row(tenants.set_company_active(cid, True)))


@bp.get("/stats")
@requires_roles(SUPER)
def stats():
    return ok(tenants.company_stats())
