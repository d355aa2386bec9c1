"""
Seed the admin account and starter vocabularies (idempotent).

Environment:
  DATABASE_URL     target database (default sqlite:///catalog.db)
  ADMIN_EMAIL      admin login (default admin@catalog.local)
  ADMIN_PASSWORD   only used when the admin account is first created
  ADMIN_NAME       display name (default "Administrator")
  SEED_DIVISIONS   comma-separated division labels, e.g. "IT Department,Finance"
  SEED_PLACEMENTS  comma-separated placement labels

Usage:
  python scripts/init_db.py
"""

import os
import sys
from pathlib import Path

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.catalog.models import User
from app.catalog.modules.dropdowns.models import Dropdown
from app.catalog.security import hash_password
from app.catalog.utils import derive_dropdown_value
from scripts._db_utils import script_session


def _labels(env_name: str) -> list[str]:
    raw = os.environ.get(env_name) or ""
    return [part.strip() for part in raw.split(",") if part.strip()]


def ensure_dropdown(s, dropdown_type: str, label: str) -> Dropdown:
    value = derive_dropdown_value(label)
    d = s.query(Dropdown).filter(Dropdown.type == dropdown_type, Dropdown.value == value).one_or_none()
    if not d:
        d = Dropdown(type=dropdown_type, label=label, value=value, is_active=True)
        s.add(d)
        # Sessions do not autoflush; later labels deriving the same value must see this row.
        s.flush()
    return d


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed admin user and vocabularies in an idempotent way.
    Does NOT overwrite an existing admin user's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@catalog.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    admin_name = (os.environ.get("ADMIN_NAME") or "Administrator").strip()

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///catalog.db").strip()

    # Direct engine/session so this can run in release without importing app.wsgi.
    with script_session(db_url) as s:
        for label in _labels("SEED_DIVISIONS"):
            ensure_dropdown(s, "division", label)
        for label in _labels("SEED_PLACEMENTS"):
            ensure_dropdown(s, "placement", label)

        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                email=admin_email,
                password_hash=hash_password(admin_password),
                name=admin_name,
                role="admin",
                is_active=True,
            )
            s.add(user)
        elif user.role != "admin":
            user.role = "admin"

    print("Initialized database (seed_only).")
    print(f"Admin email: {admin_email}")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
