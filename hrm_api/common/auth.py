# hrm_api/common/auth.py
from __future__ import annotations

from functools import wraps

from flask import g
from flask_jwt_extended import get_jwt, get_jwt_identity, jwt_required

from hrm_api.common.errors import Forbidden, Unauthorized
from hrm_api.extensions import db
from hrm_api.models.employee import Employee
from hrm_api.models.user import User
from hrm_api.services.policy import Actor


# ---------- helpers ----------

def current_user() -> User:
    """
    The identity behind the JWT of this request, read fresh from the database.
    Deactivated or unknown identities are treated as unauthenticated.
    """
    claims = get_jwt()
    cached = g.get("_current_user")
    if cached is not None and cached[0] == claims.get("jti"):
        return cached[1]

    # reset-link tokens only work on the reset endpoint
    if claims.get("purpose"):
        raise Unauthorized("Unauthorized")
    uid = get_jwt_identity()
    user = db.session.get(User, int(uid)) if uid is not None and str(uid).isdigit() else None
    if not user or not user.is_active:
        raise Unauthorized("Unauthorized")
    g._current_user = (claims.get("jti"), user)
    return user


def actor_for(user: User) -> Actor:
    emp = Employee.query.filter_by(user_id=user.id).first()
    return Actor(
        id=user.id,
        role=user.role,
        company_id=user.company_id,
        employee_id=emp.id if emp else None,
        department_id=emp.department_id if emp else None,
    )


def current_actor() -> Actor:
    return actor_for(current_user())


# ---------- decorators ----------

def requires_roles(*codes: str):
    """Require that the current user holds one of the given roles."""
    def outer(fn):
        @wraps(fn)
        @jwt_required()
        def inner(*args, **kwargs):
            user = current_user()
            if user.role not in codes:
                raise Forbidden("Forbidden")
            return fn(*args, **kwargs)
        return inner
    return outer


def requires_onboarded(fn):
    """
    Main-application endpoints: the user must belong to an active company
    that has picked a plan.
    """
    @wraps(fn)
    @jwt_required()
    def inner(*args, **kwargs):
        user = current_user()
        company = user.company
        if company is not None and not company.is_active:
            raise Forbidden("Company account is suspended", code="COMPANY_SUSPENDED")
        if company is None or not company.has_plan:
            raise Forbidden("Complete company onboarding first", code="ONBOARDING_REQUIRED")
        return fn(*args, **kwargs)
    return inner
