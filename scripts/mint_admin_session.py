#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from platform_console.core.config import DATABASE_URL, DEV_BOOTSTRAP_ALLOW, IS_DEV  # noqa: E402
from platform_console.core.database import Base, atomic, build_engine, build_session_factory  # noqa: E402
from platform_console.models.admin_user import AdminUser  # noqa: E402
from platform_console.services.admin_session import ADMIN_SESSION_COOKIE, create_admin_session  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Mint a platform admin session cookie for local development.")
    parser.add_argument("--email", required=True, help="Operator email")
    parser.add_argument("--name", required=True, help="Operator name")
    parser.add_argument("--role", default="platform_admin", help="Operator role")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Run outside dev without DEV_BOOTSTRAP_ALLOW=1",
    )
    return parser.parse_args()


def upsert_operator(db, *, email: str, name: str, role: str) -> tuple[AdminUser, bool]:
    normalized_email = email.strip().lower()
    with atomic(db):
        admin = db.query(AdminUser).filter(AdminUser.email == normalized_email).first()
        created = admin is None
        if created:
            admin = AdminUser(email=normalized_email, name=name.strip(), role=role.strip().lower(), active=True)
            db.add(admin)
        else:
            admin.name = name.strip()
            admin.role = role.strip().lower()
            admin.active = True
    db.refresh(admin)
    return admin, created


def main() -> int:
    args = parse_args()

    if not (IS_DEV or DEV_BOOTSTRAP_ALLOW) and not args.force:
        print("Session minting is disabled. Set DEV_BOOTSTRAP_ALLOW=1 or pass --force.")
        return 1

    engine = build_engine(DATABASE_URL)
    if DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)
    db = build_session_factory(engine)()
    try:
        admin, created = upsert_operator(db, email=args.email, name=args.name, role=args.role)
    finally:
        db.close()

    try:
        token = create_admin_session({"user_id": admin.id})
    except RuntimeError as exc:
        print(str(exc))
        return 1

    action = "created" if created else "updated"
    print(f"Operator {action}: id={admin.id} email={admin.email} role={admin.role}")
    print(f"{ADMIN_SESSION_COOKIE}={token}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
