# hrm_api/common/errors.py
from flask import current_app
from pydantic import ValidationError as SchemaError
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from hrm_api.common.http import fail
from hrm_api.extensions import db


class APIError(Exception):
    """Base for every typed error the services raise."""
    status_code = 400
    default_code = "BAD_REQUEST"

    def __init__(self, message, code=None, status_code=None, payload=None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        if status_code is not None:
            self.status_code = status_code
        self.payload = payload


class ValidationError(APIError):
    status_code = 400
    default_code = "VALIDATION_ERROR"


class Unauthorized(APIError):
    status_code = 401
    default_code = "UNAUTHORIZED"


class Forbidden(APIError):
    status_code = 403
    default_code = "FORBIDDEN"


class NotFound(APIError):
    status_code = 404
    default_code = "NOT_FOUND"


class Conflict(APIError):
    status_code = 409
    default_code = "CONFLICT"


class InvalidTransition(APIError):
    status_code = 409
    default_code = "INVALID_TRANSITION"


class Unexpected(APIError):
    status_code = 500
    default_code = "UNEXPECTED"


def _schema_errors(e: SchemaError):
    out = []
    for err in e.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        out.append({"field": loc or None, "message": err.get("msg")})
    return out


def register_error_handlers(app):
    @app.errorhandler(APIError)
    def _api_error(e: APIError):
        db.session.rollback()
        if e.status_code >= 500:
            app.logger.error("unexpected collaborator failure: %s", e.message)
            return fail("Internal server error", status=500, code=e.code)
        return fail(e.message, status=e.status_code, code=e.code, detail=e.payload)

    @app.errorhandler(SchemaError)
    def _schema(e: SchemaError):
        return fail("Invalid input", status=400, code="VALIDATION_ERROR", errors=_schema_errors(e))

    @app.errorhandler(IntegrityError)
    def _dup(e: IntegrityError):
        db.session.rollback()
        return fail("Duplicate or FK constraint failed", status=409, code="CONSTRAINT_ERROR")

    @app.errorhandler(HTTPException)
    def _http(e: HTTPException):
        return fail(e.description or e.name, status=e.code or 500)

    @app.errorhandler(Exception)
    def _500(e: Exception):
        db.session.rollback()
        current_app.logger.exception(e)
        return fail("Internal server error", status=500)
