# backend/scripts/seed_coach.py
"""
Create the first coach account from SEED_COACH_EMAIL / SEED_COACH_PASSWORD.

Idempotent: an existing coach with the same email is left untouched.
"""

import os
import sys
from pathlib import Path

# --- Ensure the backend root (where `coachforge/` lives) is on sys.path ---
BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from coachforge.core.security import hash_password  # noqa: E402
from coachforge.db.session import SessionLocal  # noqa: E402
from coachforge.models import Coach  # noqa: E402
from coachforge.services.tokens import normalize_email  # noqa: E402


def seed_coach(db, email: str, password: str, name: str = "Coach Owner") -> bool:
    """Returns True if a coach was created."""
    email_norm = normalize_email(email)
    if db.query(Coach).filter(Coach.email == email_norm).first():
        return False

    db.add(Coach(email=email_norm, password_hash=hash_password(password), name=name))
    db.commit()
    return True


def main() -> int:
    email = os.getenv("SEED_COACH_EMAIL")
    password = os.getenv("SEED_COACH_PASSWORD")
    if not email or not password:
        print("[FAIL] Missing SEED_COACH_EMAIL or SEED_COACH_PASSWORD in env.")
        return 1

    db = SessionLocal()
    try:
        if seed_coach(db, email, password):
            print(f"[OK] Coach created ({normalize_email(email)}).")
        else:
            print(f"[OK] Coach already exists ({normalize_email(email)}). No changes.")
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
