from __future__ import annotations
import json, logging
from datetime import datetime

from flask import current_app, g, jsonify, request
from flask_login import current_user
from werkzeug.wrappers.response import Response

from flask_wtf.csrf import generate_csrf
from extensions import csrf
from blueprints.auth.services import caller_context

from . import bp, api_bp

# поля из extra=..., которые попадают в JSON-строку лога
LOG_FIELDS = ("event", "path", "method", "status", "duration_ms", "user_id", "role")


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.utcnow().isoformat(timespec="milliseconds") + "Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        payload.update({k: getattr(record, k) for k in LOG_FIELDS if hasattr(record, k)})
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _setup_structured_logging(app):
    root = logging.getLogger()
    if any(isinstance(h.formatter, JSONFormatter) for h in root.handlers):
        return
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    root.addHandler(handler)
    root.setLevel(app.config.get("LOG_LEVEL", logging.INFO))


@api_bp.get("/csrf")
@csrf.exempt          # токен выдаём без проверки
def get_csrf():
    token = generate_csrf()
    resp = jsonify({"csrf": token})
    resp.set_cookie("csrf_token", token, samesite="Lax")
    return resp


@bp.before_app_request
def _start_timer():
    g._req_start = datetime.utcnow()


@bp.after_app_request
def _log_request(response: Response):
    start = getattr(g, "_req_start", None)
    ctx = caller_context(current_user)
    logging.getLogger("http").info("request handled", extra={
        "event": "http_request",
        "path": request.path,
        "method": request.method,
        "status": response.status_code,
        "duration_ms": int((datetime.utcnow() - start).total_seconds() * 1000) if start else None,
        "user_id": ctx.user_id,
        "role": ctx.role.value if ctx.role else None,
    })
    return response


@bp.record_once
def _on_register(state):
    _setup_structured_logging(state.app)


@bp.get("/health")
def health():
    return jsonify({
        "status": "ok",
        "ts": datetime.utcnow().isoformat(timespec="seconds") + "Z",
        "identity_configured": bool(current_app.config.get("IDENTITY_API_URL")),
    })
