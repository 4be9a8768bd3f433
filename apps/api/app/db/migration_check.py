from __future__ import annotations

from pathlib import Path
from typing import Optional

from alembic.config import Config
from alembic.script import ScriptDirectory
from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine

from app.config import is_production_mode, settings
from app.db.base import Base

_ALEMBIC_VERSION_TABLE = "alembic_version"


def _alembic_ini_path() -> Path:
    return Path(__file__).resolve().parents[2] / "alembic.ini"


def get_alembic_head_revision() -> str:
    script = ScriptDirectory.from_config(Config(str(_alembic_ini_path())))
    return script.get_current_head()


def get_current_db_revision(engine: Engine) -> Optional[str]:
    if not inspect(engine).has_table(_ALEMBIC_VERSION_TABLE):
        return None

    with engine.connect() as connection:
        result = connection.execute(text("SELECT version_num FROM alembic_version LIMIT 1"))
        return result.scalar_one_or_none()


def assert_db_is_up_to_date(engine: Engine) -> None:
    if get_current_db_revision(engine) != get_alembic_head_revision():
        raise RuntimeError("Database schema not up to date. Run: alembic upgrade head")


def maybe_create_schema(engine: Engine) -> None:
    """Create missing tables directly from the ORM metadata outside production."""
    if not settings.auto_create_schema:
        return
    if is_production_mode():
        raise RuntimeError(
            "GROCERY_AUTO_CREATE_SCHEMA must be disabled when GROCERY_APP_MODE is production"
        )

    import app.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
