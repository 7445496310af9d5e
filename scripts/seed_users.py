#!/usr/bin/env python3
"""Seed the initial user roster.

Reads SEED_USERS from the environment (or .env) as a comma separated list of
``name:password:role:join_date`` entries. Missing fields fall back to the
defaults below. Users that already exist are left untouched, so the script
is safe to re-run.

Usage:
    python scripts/seed_users.py                 # seed from SEED_USERS or defaults
    python scripts/seed_users.py --create-tables # also create tables (SQLite dev)
    python scripts/seed_users.py --dry-run       # print what would be created
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import List

# ── Path setup ────────────────────────────────────────────────────────
SCRIPT_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = SCRIPT_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT))

from dotenv import load_dotenv

env_path = PROJECT_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)

from workday.common.constants import UserRole
from workday.config import settings
from workday.database import Base, async_session_factory, engine
from workday.users.models import User
from workday.users.service import hash_password, normalize_username

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger("seed_users")

DEFAULT_PASSWORD = "111"
DEFAULT_JOIN_DATE = date(2025, 12, 1)
DEFAULT_ROSTER = (
    "smita::owner,dinesh::manager,"
    "manuj::employee,atul::employee,kamini::employee,nazmul::employee"
)


@dataclass
class SeedUser:
    username: str
    display_name: str
    password: str
    role: UserRole
    join_date: date


def parse_roster(raw: str) -> List[SeedUser]:
    """Parse ``name:password:role:join_date`` entries; blanks take defaults."""
    users: List[SeedUser] = []
    for entry in (raw or "").split(","):
        entry = entry.strip()
        if not entry:
            continue
        parts = [p.strip() for p in entry.split(":")]
        parts += [""] * (4 - len(parts))
        name, password, role, joined = parts[:4]

        username = normalize_username(name)
        if not username:
            logger.warning("Skipping seed entry without a usable name: %r", entry)
            continue
        try:
            user_role = UserRole(role.lower()) if role else UserRole.employee
        except ValueError:
            logger.warning("Unknown role %r for %s, using employee", role, username)
            user_role = UserRole.employee
        try:
            join_date = date.fromisoformat(joined) if joined else DEFAULT_JOIN_DATE
        except ValueError:
            logger.warning("Bad join date %r for %s, using %s", joined, username, DEFAULT_JOIN_DATE)
            join_date = DEFAULT_JOIN_DATE

        users.append(SeedUser(
            username=username,
            display_name=name.strip().title(),
            password=password or DEFAULT_PASSWORD,
            role=user_role,
            join_date=join_date,
        ))
    return users


async def seed(roster: List[SeedUser], *, create_tables: bool, dry_run: bool) -> int:
    if create_tables:
        # Register every table on Base.metadata
        import workday.app_settings.models  # noqa: F401
        import workday.attendance.models  # noqa: F401
        import workday.auth.models  # noqa: F401
        import workday.calendar.models  # noqa: F401
        import workday.common.audit  # noqa: F401
        import workday.leave.models  # noqa: F401

        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Tables created")

    created = 0
    async with async_session_factory() as db:
        async with db.begin():
            for entry in roster:
                if await db.get(User, entry.username) is not None:
                    logger.info("  = %-12s already exists", entry.username)
                    continue
                logger.info(
                    "  + %-12s %-8s joined %s",
                    entry.username, entry.role.value, entry.join_date.isoformat(),
                )
                if dry_run:
                    continue
                db.add(User(
                    username=entry.username,
                    display_name=entry.display_name,
                    password_hash=hash_password(entry.password),
                    role=entry.role,
                    join_date=entry.join_date,
                    is_active=True,
                ))
                created += 1
    await engine.dispose()
    return created


def main():
    parser = argparse.ArgumentParser(description="Seed the initial user roster")
    parser.add_argument("--create-tables", action="store_true",
                        help="Create all tables first (development databases)")
    parser.add_argument("--dry-run", action="store_true",
                        help="List the users that would be created")
    args = parser.parse_args()

    roster = parse_roster(settings.SEED_USERS or DEFAULT_ROSTER)
    if not roster:
        logger.error("No users to seed")
        sys.exit(1)

    created = asyncio.run(
        seed(roster, create_tables=args.create_tables, dry_run=args.dry_run)
    )
    logger.info("Done: %d user(s) created", created)


if __name__ == "__main__":
    main()
