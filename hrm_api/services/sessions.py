import hashlib
import hmac
import logging
from datetime import timedelta

from flask import current_app
from flask_jwt_extended import create_access_token, create_refresh_token, decode_token
from jwt.exceptions import PyJWTError
from flask_jwt_extended.exceptions import JWTExtendedException

from hrm_api.common.errors import Unauthorized, ValidationError
from hrm_api.extensions import db
from hrm_api.models.user import User
from hrm_api.services import notifications

log = logging.getLogger(__name__)

RESET_PURPOSE = "password-reset"


def _password_stamp(user: User) -> str:
    """Changes whenever the password does, which retires every reset token issued before."""
    return hashlib.sha256(user.password_hash.encode()).hexdigest()[:16]


def _claims(user: User) -> dict:
    return {"role": user.role, "company_id": user.company_id, "email": user.email}


def authenticate(email: str, password: str) -> User:
    user = User.by_email(email)
    if not user or not user.is_active or not user.check_password(password or ""):
        log.info("login failed email=%s", User.normalize_email(email))
        raise Unauthorized("Invalid credentials")
    return user


def issue_tokens(user: User) -> dict:
    claims = _claims(user)
    return {
        "access": create_access_token(identity=str(user.id), additional_claims=claims),
        "refresh": create_refresh_token(identity=str(user.id), additional_claims={"role": user.role}),
    }


def refresh_access(user_id) -> str:
    user = db.session.get(User, int(user_id)) if str(user_id).isdigit() else None
    if not user or not user.is_active:
        raise Unauthorized("Unauthorized")
    return create_access_token(identity=str(user.id), additional_claims=_claims(user))


def issue_reset_token(email: str, notifier=None):
    """
    Short lived token for the reset link, handed to the notifier for
    delivery. Unknown e-mails get None so the caller can answer the same way
    either way.
    """
    user = User.by_email(email)
    if not user or not user.is_active:
        return None
    minutes = current_app.config["RESET_TOKEN_MINUTES"]
    token = create_access_token(
        identity=str(user.id),
        additional_claims={"purpose": RESET_PURPOSE, "pwd": _password_stamp(user)},
        expires_delta=timedelta(minutes=minutes),
    )
    notifications.send(
        notifier if notifier is not None else current_app.extensions.get("notifier"),
        "auth.password_reset",
        user.id,
        {"email": user.email, "token": token, "expires_minutes": minutes},
    )
    log.info("password reset requested user=%s", user.id)
    return token


def reset_password(token: str, new_password: str) -> User:
    try:
        claims = decode_token(token)
    except (PyJWTError, JWTExtendedException):
        raise ValidationError("Reset token is invalid or expired")
    if claims.get("purpose") != RESET_PURPOSE:
        raise ValidationError("Reset token is invalid or expired")

    user = db.session.get(User, int(claims["sub"]))
    if not user or not user.is_active:
        raise ValidationError("Reset token is invalid or expired")
    if not hmac.compare_digest(str(claims.get("pwd", "")), _password_stamp(user)):
        raise ValidationError("Reset token is no longer valid")
    user.set_password(new_password)
    db.session.commit()
    log.info("password reset user=%s", user.id)
    return user
