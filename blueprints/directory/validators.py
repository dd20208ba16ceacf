from __future__ import annotations
import re
from datetime import date, datetime
from typing import Any, Dict, List, Union

from pydantic import ValidationError

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

Moment = Union[date, datetime]

def ensure_range(start: Moment, end: Moment, *, start_field: str = "start_time",
                 end_field: str = "end_time", allow_equal: bool = False):
    if end < start or (end == start and not allow_equal):
        op = ">=" if allow_equal else ">"
        raise ValueError(f"{end_field} must be {op} {start_field}")

def ensure_exclusive(**fields: Any):
    """At most one of the named fields may be set."""
    present = [name for name, value in fields.items() if value is not None]
    if len(present) > 1:
        raise ValueError(f"only one of {', '.join(fields)} may be set, got {', '.join(present)}")

def blank_to_none(v: Any) -> Any:
    if isinstance(v, str) and not v.strip():
        return None
    return v

def ensure_email(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    if not EMAIL_RE.match(v):
        raise ValueError("invalid email address")
    return v.lower()

def violations_from(ve: ValidationError) -> List[Dict[str, str]]:
    out = []
    for e in ve.errors():
        loc = ".".join(str(p) for p in e.get("loc", ())) or "non_field"
        msg = str(e.get("msg", "invalid"))
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        out.append({"field": loc, "message": msg})
    return out
