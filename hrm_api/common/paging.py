# hrm_api/common/paging.py
from datetime import datetime, date

from flask import request

from hrm_api.common.errors import ValidationError

DEFAULT_PAGE = 1
DEFAULT_SIZE = 20
MAX_SIZE = 100

def page_limit():
    """?page & ?size (``limit`` accepted as an alias), clamped to [1, MAX_SIZE]."""
    try:
        page = max(int(request.args.get("page", DEFAULT_PAGE)), 1)
    except Exception:
        page = DEFAULT_PAGE
    raw = request.args.get("size", request.args.get("limit", DEFAULT_SIZE))
    try:
        size = max(1, min(int(raw), MAX_SIZE))
    except Exception:
        size = DEFAULT_SIZE
    return page, size

def text_q():
    q = request.args.get("q", "")
    return q.strip() or None

def int_arg(*names: str):
    """
    Return first present arg among names (camelCase/snake_case) cast to int.
    Present but not an integer -> ValidationError.
    """
    for n in names:
        if n in request.args:
            v = request.args.get(n)
            if v in (None, "", "null"):
                return None
            try:
                return int(v)
            except ValueError:
                raise ValidationError(f"{n} must be integer")
    return None

def parse_date(val, field_name="date"):
    if not val:
        return None
    if isinstance(val, date):
        return val
    for fmt in ("%Y-%m-%d", "%d-%m-%Y"):
        try:
            return datetime.strptime(val, fmt).date()
        except ValueError:
            pass
    raise ValidationError(f"{field_name} must be a date (YYYY-MM-DD)")

def date_arg(*names: str):
    for n in names:
        if n in request.args:
            return parse_date(request.args.get(n), n)
    return None

LIKE_ESCAPE = "\\"

def like_pattern(s: str) -> str:
    """Substring pattern for ILIKE with ``%`` and ``_`` taken literally (use with escape=LIKE_ESCAPE)."""
    s = s.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2).replace("%", "\\%").replace("_", "\\_")
    return f"%{s}%"
