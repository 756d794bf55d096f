"""
Create the first super-admin (there is no public signup for administrators).

Run from project root:
  python scripts/create_super_admin.py --email admin@example.com --name "Platform Admin"

The password is read from SUPER_ADMIN_PASSWORD or prompted for.
"""
import argparse
import getpass
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from marketplace.database import Base, SessionLocal, engine
from marketplace.models import Administrator, AdminRole
from marketplace.services.administrators import ADMIN_PASSWORD_MIN_LENGTH
from marketplace.services.security import hash_password


def main():
    parser = argparse.ArgumentParser(description="Create a super-admin account.")
    parser.add_argument("--email", required=True)
    parser.add_argument("--name", default="Super Admin")
    args = parser.parse_args()

    password = os.environ.get("SUPER_ADMIN_PASSWORD") or getpass.getpass("Password: ")
    if len(password) < ADMIN_PASSWORD_MIN_LENGTH:
        print(f"Password must be at least {ADMIN_PASSWORD_MIN_LENGTH} characters long.")
        sys.exit(1)

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        email = args.email.strip().lower()
        existing = db.query(Administrator).filter(Administrator.email == email).first()
        if existing:
            print(f"Admin already exists: {email} (role={existing.role.value})")
            return
        admin = Administrator(
            full_name=args.name.strip(),
            email=email,
            password_hash=hash_password(password),
            role=AdminRole.super_admin,
            active=True,
        )
        db.add(admin)
        db.commit()
        print(f"Created super-admin {email} (id={admin.id}).")
    finally:
        db.close()


if __name__ == "__main__":
    main()
