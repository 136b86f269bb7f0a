"""
Seed roles, permissions and the first administrator.

Safe to run repeatedly: roles are reconciled and an existing administrator
keeps their password.

Usage:
    ADMIN_EMAIL=... ADMIN_PASSWORD=... python scripts/init_db.py
"""
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.tcms.accounts import create_account
from app.tcms.constants import ROLE_ADMIN
from app.tcms.models import User
from app.tcms.rbac import ensure_roles_and_permissions
from scripts._db_utils import script_session


def seed_only(*, database_url: str | None = None) -> None:
    email = (os.environ.get("ADMIN_EMAIL") or "admin@tcms.local").strip().lower()
    password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    full_name = (os.environ.get("ADMIN_NAME") or "Administrator").strip()
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///tcms.db").strip()

    # plain engine, no Flask app: release runs this before the web process exists
    with script_session(db_url) as s:
        roles = ensure_roles_and_permissions(s)
        admin = s.query(User).filter(User.email == email).one_or_none()
        if admin is None:
            create_account(s, {"email": email, "full_name": full_name, "password": password, "roles": [ROLE_ADMIN]}, None)
            print(f"Created administrator {email}")
        elif roles[ROLE_ADMIN] not in admin.roles:
            admin.roles.append(roles[ROLE_ADMIN])
            print(f"Granted admin role to {email}")
        else:
            print(f"Administrator {email} already present; password left unchanged")


if __name__ == "__main__":
    seed_only()
