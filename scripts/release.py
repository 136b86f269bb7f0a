"""
Release phase: apply Alembic migrations, then seed roles and the administrator.

Run before the web process starts (``scripts/start.py`` does this unless
SKIP_RELEASE=1). Refuses to touch SQLite when ENV is production.
"""
from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _say(msg: str) -> None:
    print(f"[release] {msg}", flush=True)


def _database_url() -> str:
    url = (os.environ.get("DATABASE_URL") or "").strip()
    if not url:
        raise RuntimeError("Missing required environment variable DATABASE_URL (set it in the environment or .env).")
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production") and url.startswith("sqlite"):
        raise RuntimeError("Refusing to run release on sqlite DATABASE_URL in production. Set DATABASE_URL to Postgres.")
    return url


def migrate(db_url: str) -> None:
    from alembic import command
    from alembic.config import Config

    cfg = Config(str(ROOT / "alembic.ini"))
    cfg.set_main_option("script_location", str(ROOT / "migrations"))
    cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(cfg, "head")


def run_release() -> None:
    db_url = _database_url()
    _say("applying migrations")
    migrate(db_url)

    from scripts import init_db

    _say("seeding roles and administrator")
    init_db.seed_only(database_url=db_url)
    _say("done")


if __name__ == "__main__":
    run_release()
