"""
Seed script for the configured user directory (Firestore, or the in-process store).

Usage:
  - Dry run (default): python scripts/seed_db.py
  - Apply to configured DB: python scripts/seed_db.py --apply
  - Use a different roster: python scripts/seed_db.py --apply --file ./users_seed.json

Behavior:
  - Loads a JSON list of users (id, username, email, role, ...) or uses the
    built-in demo roster: one coordinator, two approved volunteers, one resident.
  - Users that already exist (same id or email) are skipped.
  - Writes through the repositories, so documents have the same shape the
    service writes.

NOTE: Seeding only persists with USE_MOCK_DB=false; the in-process store lives
and dies with this script.
"""

import argparse
import json
import logging
import os
from typing import List

from cera.core.settings import settings
from cera.models.user import User
from cera.repositories import get_user_repository
from cera.utils.timestamps import utcnow

logger = logging.getLogger("seed_db")

DEMO_USERS = [
    {"id": "coord-demo", "username": "Dana Coordinator", "email": "dana@example.org",
     "role": "coordinator", "certified": True, "approved": True},
    {"id": "vol-demo-1", "username": "Sam Volunteer", "email": "sam@example.org",
     "role": "volunteer", "certified": True, "approved": True, "skills": ["first aid"]},
    {"id": "vol-demo-2", "username": "Alex Volunteer", "email": "alex@example.org",
     "role": "volunteer", "certified": True, "approved": True, "status": "busy"},
    {"id": "res-demo", "username": "Riley Resident", "email": "riley@example.org",
     "role": "resident", "certified": True, "approved": True},
]


def load_seed(path: str) -> List[dict]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def write_users(seed: List[dict], apply: bool = False) -> int:
    users = get_user_repository()
    written = 0
    for raw in seed:
        user = User.model_validate(raw)
        if user.approved and user.approved_at is None:
            user.approved_at = utcnow()

        if users.get(user.id) is not None or users.get_by_email(user.email) is not None:
            logger.info(f"Skipping existing user {user.id} <{user.email}>")
            continue

        logger.info(f"Preparing: users/{user.id} ({user.role.value})")
        if not apply:
            continue
        users.create(user)
        written += 1
        logger.info(f"Wrote: users/{user.id}")
    return written


def main():
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    parser = argparse.ArgumentParser()
    parser.add_argument("--apply", action="store_true", help="Write seed to the DB instead of dry-run")
    parser.add_argument("--file", help="JSON list of users to seed instead of the demo roster")
    args = parser.parse_args()

    if args.file:
        if not os.path.exists(args.file):
            logger.error(f"Seed file not found: {args.file}")
            return
        seed = load_seed(args.file)
    else:
        seed = DEMO_USERS

    if settings.USE_MOCK_DB:
        logger.warning("USE_MOCK_DB is enabled; seeded users will not outlive this process.")

    written = write_users(seed, apply=args.apply)

    if args.apply:
        logger.info(f"Seeding completed: {written} user(s) written.")
    else:
        logger.info("Dry run complete. Re-run with --apply to write to DB.")


if __name__ == "__main__":
    main()
