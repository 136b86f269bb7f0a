from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy.orm import Session

from app.tcms.db import build_engine, make_sessionmaker


@contextmanager
def script_session(db_url: str) -> Generator[Session, None, None]:
    """One transaction against ``db_url`` for command-line jobs; the engine is disposed afterwards."""
    engine = build_engine(db_url)
    try:
        with make_sessionmaker(engine).begin() as s:
            yield s
    finally:
        engine.dispose()
