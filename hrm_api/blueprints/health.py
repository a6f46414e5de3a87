from flask import Blueprint
from sqlalchemy import text

from hrm_api.common.http import ok, fail
from hrm_api.extensions import db

bp = Blueprint("health", __name__, url_prefix="/api/v1")


@bp.get("/health")
def health():
    try:
        db.session.execute(text("SELECT 1"))
    except Exception as e:
        db.session.rollback()
        return fail("database unavailable", status=503, code="DB_DOWN", detail=str(e.__class__.__name__))
    return ok({"status": "ok"})
