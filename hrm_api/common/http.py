"""
Response envelope used by every endpoint.

    success: {"success": true,  "data": ..., "meta": {...}}      (meta only when given)
    failure: {"success": false, "error": {"message", "code"?, "detail"?, "errors"?}}
"""
from __future__ import annotations

from typing import Any, Optional

from flask import jsonify


def ok(data: Any = None, status: int = 200, **meta):
    body = {"success": True, "data": data}
    if meta:
        body["meta"] = meta
    return jsonify(body), status


def fail(message: str = "Bad Request", status: int = 400, code: Optional[str] = None,
         detail: Any = None, errors: Optional[list] = None):
    error = {"message": message}
    # empty extras are left out of the body
    error.update({k: v for k, v in (("code", code), ("detail", detail), ("errors", errors)) if v})
    return jsonify({"success": False, "error": error}), status
