# blueprints/auth/routes.py
from __future__ import annotations
import time
from functools import wraps
from typing import Callable, Optional

from flask import Blueprint, abort, current_app, jsonify, request, session
from flask_login import current_user, login_required, login_user, logout_user

from extensions import csrf, login_manager
from identity import ProviderError
from models import Role
from .services import SessionUser, authenticate, parse_role

api_bp = Blueprint("auth_api", __name__)

# ---- безопасные значения по умолчанию
DEFAULT_RL_MAX = 5
DEFAULT_RL_WIN = 300  # 5 минут
_login_attempts: dict[str, list[float]] = {}  # ключ: ip|username -> [timestamps]

SESSION_KEY = "auth_user"


@login_manager.user_loader
def load_user(uid: str) -> Optional[SessionUser]:
    data = session.get(SESSION_KEY)
    if not data or data.get("id") != uid:
        return None
    return SessionUser.from_session(data)


# ---------- rate limit ----------
def _rl_key(username: str) -> str:
    ip = request.headers.get("X-Forwarded-For", request.remote_addr or "0.0.0.0").split(",")[0].strip()
    return f"{ip}|{(username or '').lower()}"


def _rl_prune(cutoff: float) -> None:
    # ключи, у которых все попытки старше окна, удаляем целиком
    for key in [k for k, hits in _login_attempts.items() if not hits or hits[-1] < cutoff]:
        del _login_attempts[key]


def _rl_check_and_hit(username: str) -> bool:
    now = time.time()
    win = current_app.config.get("AUTH_RL_WINDOW", DEFAULT_RL_WIN)
    mx = current_app.config.get("AUTH_RL_MAX", DEFAULT_RL_MAX)
    cutoff = now - win
    _rl_prune(cutoff)
    bucket = _login_attempts.setdefault(_rl_key(username), [])
    while bucket and bucket[0] < cutoff:
        bucket.pop(0)
    if len(bucket) >= mx:
        return False
    bucket.append(now)
    return True


# ---------- декораторы ролей ----------
def _role_of(user) -> Optional[Role]:
    return parse_role(getattr(user, "role", None))


def admin_required(fn: Callable):
    @wraps(fn)
    @login_required
    def wrapper(*args, **kwargs):
        if _role_of(current_user) is not Role.ADMIN:
            abort(403)
        return fn(*args, **kwargs)
    return wrapper


def staff_required(fn: Callable):
    @wraps(fn)
    @login_required
    def wrapper(*args, **kwargs):
        # админ и преподаватель
        if _role_of(current_user) not in (Role.ADMIN, Role.TEACHER):
            abort(403)
        return fn(*args, **kwargs)
    return wrapper


# ---------- обработчики 401/403 ----------
@login_manager.unauthorized_handler
def _unauth():
    return jsonify({"error": "unauthorized"}), 401


@api_bp.app_errorhandler(403)
def _forbidden(e):
    return jsonify({"error": "forbidden"}), 403


# ---------- API ----------
@api_bp.post("/auth/login")
@csrf.exempt
def api_login():
    payload = request.get_json(silent=True) or request.form or {}
    username = (payload.get("username") or "").strip()
    password = payload.get("password") or ""

    if not username or not password:
        return jsonify({"error": "missing_credentials"}), 400

    if not _rl_check_and_hit(username):
        return jsonify({"error": "too_many_attempts"}), 429

    try:
        user = authenticate(username, password)
    except ProviderError:
        return jsonify({"error": "identity_unavailable"}), 503
    if user is None:
        return jsonify({"error": "invalid_credentials"}), 401

    session[SESSION_KEY] = user.to_session()
    login_user(user, remember=False)
    return jsonify({"ok": True, "user": user.to_session()})


@api_bp.post("/auth/logout")
@login_required
def api_logout():
    logout_user()
    session.pop(SESSION_KEY, None)
    return jsonify({"ok": True})


@api_bp.get("/auth/me")
@login_required
def api_me():
    return jsonify({"ok": True, "user": current_user.to_session()})
