#!/usr/bin/env python3
"""
Container entrypoint: release phase, then hand the process over to gunicorn.

Environment:
    PORT             listen port (default 8080)
    WEB_CONCURRENCY  worker count (default 2)
    SKIP_RELEASE=1   skip migrations and seeding
"""
from __future__ import annotations

import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

DEFAULT_PORT = "8080"


def resolve_port(raw: str | None) -> str:
    raw = (raw or "").strip()
    if not raw:
        print(f"[start] PORT unset, listening on {DEFAULT_PORT}", flush=True)
        return DEFAULT_PORT
    if not raw.isdigit() or not 1 <= int(raw) <= 65535:
        raise SystemExit(f"[start] PORT must be an integer between 1 and 65535, got {raw!r}")
    return raw


def gunicorn_argv(port: str, workers: str) -> list[str]:
    return [
        "gunicorn",
        "app.wsgi:app",
        "--bind",
        f"0.0.0.0:{port}",
        "--workers",
        workers,
        "--timeout",
        "60",
        "--preload",
        "--access-logfile",
        "-",
        "--error-logfile",
        "-",
    ]


def main() -> None:
    port = resolve_port(os.environ.get("PORT"))
    workers = (os.environ.get("WEB_CONCURRENCY") or "2").strip()

    if (os.environ.get("SKIP_RELEASE") or "").strip() != "1":
        from scripts.release import run_release

        try:
            run_release()
        except Exception as e:  # any release failure must stop the boot
            raise SystemExit(f"[start] release failed: {e}") from e

    print(f"[start] gunicorn on :{port} with {workers} workers", flush=True)
    # replace this process so gunicorn receives container signals directly
    os.execvp("gunicorn", gunicorn_argv(port, workers))


if __name__ == "__main__":
    main()
