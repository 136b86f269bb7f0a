from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from flask import Flask, current_app, g
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

ENGINE_KEY = "sqlalchemy_engine"
SESSIONMAKER_KEY = "sqlalchemy_sessionmaker"

# Postgres pool sizing for a handful of gunicorn workers.
_POSTGRES_POOL = {"pool_size": 5, "max_overflow": 10, "pool_timeout": 30, "pool_recycle": 1800}


def _enable_sqlite_foreign_keys(dbapi_connection, _record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(db_url: str) -> Engine:
    options: dict[str, object] = {"future": True, "pool_pre_ping": True}
    if db_url.startswith("postgres"):
        options.update(_POSTGRES_POOL)
    engine = create_engine(db_url, **options)
    if engine.dialect.name == "sqlite":
        # ON DELETE rules are ignored by sqlite unless switched on per connection
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def make_sessionmaker(engine: Engine) -> sessionmaker:
    # objects stay readable after commit so views can render them
    return sessionmaker(bind=engine, class_=Session, autoflush=False, expire_on_commit=False, future=True)


def init_db(app: Flask) -> None:
    """Attach the engine and a session factory to ``app.extensions``."""
    engine = build_engine(app.config["DATABASE_URL"])
    app.extensions[ENGINE_KEY] = engine
    app.extensions[SESSIONMAKER_KEY] = make_sessionmaker(engine)
    app.logger.debug("Database engine ready (dialect=%s)", engine.dialect.name)


def db_session(app: Flask | None = None) -> Session:
    """
    Session shared by everything running inside the current request.

    The first call opens it; ``teardown_db_session`` closes it. Nothing is
    committed implicitly, so views call ``commit()`` after a successful change.
    """
    s = getattr(g, "db_session", None)
    if s is None:
        factory = (app or current_app).extensions[SESSIONMAKER_KEY]
        s = g.db_session = factory()
    return s


def teardown_db_session(_exc: BaseException | None) -> None:
    s: Session | None = g.pop("db_session", None)
    if s is not None:
        s.close()


@contextmanager
def session_scope(app: Flask) -> Generator[Session, None, None]:
    """Unit of work outside a request: commit on success, roll back on error."""
    s: Session = app.extensions[SESSIONMAKER_KEY]()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
