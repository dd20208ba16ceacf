from __future__ import annotations
import logging
import os
from flask import Flask
from sqlalchemy import inspect

from config import config_map
from extensions import csrf, db, identity, login_manager, migrate

log = logging.getLogger(__name__)


def _seed_from_config(app):
    levels = app.config.get("SEED_GRADES") or []
    if not levels:
        return
    with app.app_context():
        # таблица может ещё не быть создана (alembic upgrade и т.п.)
        if not inspect(db.engine).has_table("grade"):
            return

        from models import Grade  # локальный импорт, чтобы избежать циклов
        existing = {g.level for g in db.session.query(Grade).all()}
        missing = [lvl for lvl in levels if lvl not in existing]
        db.session.add_all(Grade(level=lvl) for lvl in missing)
        if missing:
            db.session.commit()
            log.info("seeded grades: %s", missing)


def register_blueprints(app: Flask) -> None:
    from blueprints.core import bp as core_bp, api_bp as core_api_bp
    from blueprints.auth.routes import api_bp as auth_api_bp
    from blueprints.directory import bp as directory_bp
    from blueprints.admin.routes import api_bp as admin_api_bp

    # core без префикса → '/health' в корне
    app.register_blueprint(core_bp)
    app.register_blueprint(core_api_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_api_bp, url_prefix="/api/v1")
    app.register_blueprint(admin_api_bp, url_prefix="/api/v1")
    app.register_blueprint(directory_bp, url_prefix="/api/v1")


def create_app(config_name: str | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    cfg_name = config_name or os.getenv("FLASK_CONFIG", "default")
    app.config.from_object(config_map[cfg_name])
    # --- изоляция БД в тестах ---
    # pytest выставляет PYTEST_CURRENT_TEST: всегда БД в памяти
    if os.environ.get("PYTEST_CURRENT_TEST"):
        app.config["SQLALCHEMY_DATABASE_URI"] = "sqlite:///:memory:"
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {"connect_args": {"check_same_thread": False}})
    app.config.setdefault("WTF_CSRF_TIME_LIMIT", None)
    app.config.setdefault("WTF_CSRF_HEADERS", ["X-CSRF-Token", "X-CSRFToken"])

    try:
        os.makedirs(app.instance_path, exist_ok=True)
    except OSError:
        pass
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    identity.init_app(app)
    register_blueprints(app)
    _seed_from_config(app)
    return app
