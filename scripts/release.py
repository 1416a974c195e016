"""
Release phase for the SQL backend: upgrade the schema, then make sure an
administrator can log in.

Nothing to do with DATA_BACKEND=postgrest, where the hosted store owns its
schema and its users.

Usage:
  python scripts/release.py
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

from alembic import command
from alembic.config import Config

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def alembic_config(database_url: str) -> Config:
    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", database_url)
    return cfg


def release_database_url(environ=os.environ) -> str | None:
    """The URL to migrate, or None when the release phase does not apply."""
    if (environ.get("DATA_BACKEND") or "sql").strip().lower() == "postgrest":
        return None
    url = (environ.get("DATABASE_URL") or "").strip()
    if not url:
        raise RuntimeError("DATABASE_URL must be set for the release phase.")
    if (environ.get("ENV") or "").strip().lower() in ("prod", "production") and url.startswith("sqlite"):
        raise RuntimeError("Production releases need a Postgres DATABASE_URL, not sqlite.")
    return url


def run_release() -> None:
    db_url = release_database_url()
    if db_url is None:
        print("eventdesk release: postgrest backend, nothing to migrate.", flush=True)
        return

    print("eventdesk release: alembic upgrade head", flush=True)
    command.upgrade(alembic_config(db_url), "head")

    from scripts import init_db

    init_db.seed_only(database_url=db_url)
    print("eventdesk release: done", flush=True)


if __name__ == "__main__":
    run_release()
