from __future__ import annotations

import logging
from pathlib import Path

from alembic import command
from alembic.config import Config
from sqlalchemy import inspect

from hackeval.db.engine import make_engine

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def upgrade_db(target_revision: str = "head") -> None:
    """Run the alembic migrations up to ``target_revision``."""
    cfg = Config(str(PROJECT_ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    command.upgrade(cfg, target_revision)


def list_tables() -> list[str]:
    return sorted(inspect(make_engine()).get_table_names())


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    upgrade_db()
    print("Tables:", ", ".join(list_tables()))


if __name__ == "__main__":
    main()
