#!/usr/bin/env python3
"""
Generate payroll entries for every salaried employee over a period.

Usage:
    python scripts/generate_payroll.py --start 2026-10-01 --end 2026-10-31

Without arguments the current calendar month is used. Employees that already
have an entry for the exact period are skipped, so re-running is safe.
"""
from __future__ import annotations

import argparse
import calendar
import os
import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.tcms.models import User
from app.tcms.modules.payroll.service import generate_payroll, validate_period
from app.tcms.utils import parse_date
from scripts._db_utils import script_session


def month_bounds(today: date) -> tuple[date, date]:
    last_day = calendar.monthrange(today.year, today.month)[1]
    return today.replace(day=1), today.replace(day=last_day)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate payroll for a period.")
    parser.add_argument("--start", type=parse_date, help="Period start (YYYY-MM-DD)")
    parser.add_argument("--end", type=parse_date, help="Period end (YYYY-MM-DD)")
    parser.add_argument("--actor-email", default=os.environ.get("ADMIN_EMAIL") or "admin@tcms.local")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    default_start, default_end = month_bounds(date.today())
    start = args.start or default_start
    end = args.end or default_end
    errors = validate_period(start, end)
    if errors:
        for e in errors:
            print(f"ERROR: {e}")
        sys.exit(2)

    database_url = os.environ.get("DATABASE_URL") or "sqlite:///tcms.db"
    with script_session(database_url) as s:
        actor = s.query(User).filter(User.email == args.actor_email.strip().lower()).one_or_none()
        if actor is None:
            print(f"WARNING: actor '{args.actor_email}' not found; audit events will have no actor.")
        run = generate_payroll(s, start, end, actor)

    print(f"Payroll {run.period_start} .. {run.period_end}")
    print(f"  created={len(run.created)} skipped={run.skipped} total_payable={run.total_payable}")


if __name__ == "__main__":
    main()
