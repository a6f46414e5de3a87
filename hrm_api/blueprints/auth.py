# hrm_api/blueprints/auth.py
from flask import Blueprint, request, current_app
from flask_jwt_extended import (
    get_jwt_identity, jwt_required,
    set_access_cookies, set_refresh_cookies, unset_jwt_cookies,
)

from hrm_api.common.auth import current_user
from hrm_api.common.http import ok
from hrm_api.models.user import User
from hrm_api.schemas import ForgotPasswordIn, LoginIn, RegisterIn, ResetPasswordIn
from hrm_api.services import sessions, tenants

bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


def _user_payload(u: User):
    c = u.company
    emp = u.employee
    return {
        "id": u.id,
        "email": u.email,
        "full_name": u.full_name,
        "role": u.role,
        "company_id": u.company_id,
        "company": {"id": c.id, "name": c.name, "plan": c.plan, "has_plan": c.has_plan} if c else None,
        "employee_id": emp.id if emp else None,
    }


def _with_tokens(u: User, status=200):
    tokens = sessions.issue_tokens(u)
    resp, code = ok({"user": _user_payload(u), **tokens}, status=status)
    set_access_cookies(resp, tokens["access"])
    set_refresh_cookies(resp, tokens["refresh"])
    return resp, code


@bp.post("/register")
def register():
    data = RegisterIn.model_validate(request.get_json(silent=True) or {})
    u = tenants.register(data)
    current_app.logger.info("user registered id=%s", u.id)
    return _with_tokens(u, status=201)


@bp.post("/login")
def login():
    data = LoginIn.model_validate(request.get_json(silent=True) or {})
    u = sessions.authenticate(data.email, data.password)
    return _with_tokens(u)


@bp.post("/logout")
def logout():
    resp, code = ok({"message": "Logged out"})
    unset_jwt_cookies(resp)
    return resp, code


@bp.post("/refresh")
@jwt_required(refresh=True)
def refresh():
    access = sessions.refresh_access(get_jwt_identity())
    resp, code = ok({"access": access})
    set_access_cookies(resp, access)
    return resp, code


@bp.get("/me")
@jwt_required()
def me():
    return ok(_user_payload(current_user()))


@bp.post("/forgot-password")
def forgot_password():
    data = ForgotPasswordIn.model_validate(request.get_json(silent=True) or {})
    sessions.issue_reset_token(data.email)
    # same answer whether or not the address is known
    return ok({"message": "If the email is registered, a reset link has been sent"})


@bp.post("/reset-password")
def reset_password():
    data = ResetPasswordIn.model_validate(request.get_json(silent=True) or {})
    sessions.reset_password(data.token, data.password)
    return ok({"message": "Password has been reset"})
