from __future__ import annotations

from pathlib import Path

import sqlalchemy as sa
from alembic import command
from alembic.config import Config

PROJECT_ROOT = Path(__file__).resolve().parents[3]


def _alembic_config(database_path: Path) -> Config:
    config = Config(str(PROJECT_ROOT / "alembic.ini"))
    config.set_main_option("sqlalchemy.url", f"sqlite+aiosqlite:///{database_path}")
    config.attributes["configure_logger"] = False
    return config


def test_upgrade_creates_auth_schema(tmp_path: Path) -> None:
    database_path = tmp_path / "migrations.db"
    command.upgrade(_alembic_config(database_path), "head")

    engine = sa.create_engine(f"sqlite:///{database_path}")
    try:
        inspector = sa.inspect(engine)
        tables = set(inspector.get_table_names())
        assert {"user", "session", "account", "verification"} <= tables

        user_columns = {column["name"] for column in inspector.get_columns("user")}
        assert {"email", "email_verified", "phone_number", "image"} <= user_columns

        session_indexes = {index["name"] for index in inspector.get_indexes("session")}
        assert "ix_session_user_id" in session_indexes
    finally:
        engine.dispose()


def test_downgrade_drops_auth_schema(tmp_path: Path) -> None:
    database_path = tmp_path / "migrations.db"
    config = _alembic_config(database_path)
    command.upgrade(config, "head")
    command.downgrade(config, "base")

    engine = sa.create_engine(f"sqlite:///{database_path}")
    try:
        tables = set(sa.inspect(engine).get_table_names())
        assert tables <= {"alembic_version"}
    finally:
        engine.dispose()
