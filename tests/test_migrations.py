from __future__ import annotations
import io
from pathlib import Path

from alembic import command
from alembic.config import Config

MIGRATIONS = Path(__file__).resolve().parent.parent / "migrations"


def _offline_sql() -> str:
    buf = io.StringIO()
    cfg = Config(output_buffer=buf)
    cfg.set_main_option("script_location", str(MIGRATIONS))
    command.upgrade(cfg, "head", sql=True)
    return buf.getvalue()


def test_offline_upgrade_renders_schema():
    sql = _offline_sql()
    for table in ("grade", "class", "teacher", "student", "parent", "lesson", "announcement"):
        assert f"CREATE TABLE {table} " in sql or f'CREATE TABLE "{table}"' in sql, table
    assert "teacher_subject" in sql
