"""
Run the cleanup job once: delete expired/revoked refresh tokens and expired pending
registrations (and their uploaded ID card images).

Run from project root:
  python scripts/cleanup_tokens.py
"""
import os
import sys

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from marketplace.database import SessionLocal
from marketplace.services.maintenance import cleanup
from marketplace.services.object_store import get_object_store


def main():
    db = SessionLocal()
    try:
        counts = cleanup(db, get_object_store())
    finally:
        db.close()
    print(
        f"Removed {counts['refresh_tokens']} refresh token(s) and "
        f"{counts['pending_registrations']} pending registration(s)."
    )


if __name__ == "__main__":
    main()
