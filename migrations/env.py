from logging.config import fileConfig
from alembic import context
from sqlalchemy import text
import os
import sys

# корень репозитория в sys.path, чтобы работал `from app import create_app`
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

from app import create_app            # noqa: E402
from extensions import db             # noqa: E402
import models                         # noqa: E402,F401  регистрирует таблицы в metadata

app = create_app(os.getenv("FLASK_CONFIG"))
app.app_context().push()

engine_url = str(db.engine.url)
if not config.get_main_option("sqlalchemy.url"):
    config.set_main_option("sqlalchemy.url", engine_url)

target_metadata = db.metadata


def _skip_empty_autogenerate(context_, revision, directives):
    """`flask db migrate` без изменений схемы не создаёт пустую ревизию."""
    if getattr(config.cmd_opts, "autogenerate", False) and directives[0].upgrade_ops.is_empty():
        directives[:] = []


COMMON_OPTS = dict(
    target_metadata=target_metadata,
    render_as_batch=True,     # SQLite: ALTER через пересоздание таблицы
    compare_type=True,        # ловим смену длины String/Enum
    process_revision_directives=_skip_empty_autogenerate,
)


def run_migrations_offline():
    context.configure(
        url=config.get_main_option("sqlalchemy.url") or engine_url,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **COMMON_OPTS,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online():
    with db.engine.connect() as connection:
        sqlite = connection.dialect.name == "sqlite"
        # batch-пересоздание таблиц идёт при выключенных FK (extensions включает их на connect)
        if sqlite:
            connection.execute(text("PRAGMA foreign_keys=OFF"))
        context.configure(connection=connection, **COMMON_OPTS)
        with context.begin_transaction():
            context.run_migrations()
        if sqlite:
            connection.execute(text("PRAGMA foreign_keys=ON"))


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
