"""User service — username normalization, password hashing, user admin."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timezone
from typing import Optional

from passlib.context import CryptContext
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from workday.common.audit import create_audit_entry
from workday.common.constants import UserRole, can
from workday.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from workday.users.models import User
from workday.users.schemas import UserCreate

logger = logging.getLogger(__name__)

# Password Hashing Context
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

_USERNAME_STRIP_RE = re.compile(r"[.\-_\s]")


def normalize_username(raw: str) -> str:
    """Lowercase and strip dots, dashes, underscores and whitespace."""
    return _USERNAME_STRIP_RE.sub("", (raw or "").lower())


def hash_password(password: str) -> str:
    return pwd_context.hash(password or "")


def verify_password(password: str, hashed: str) -> bool:
    try:
        return pwd_context.verify(password or "", hashed)
    except ValueError:
        # Unrecognised hash format
        return False


class UserService:
    """Async user lookups and owner/manager administration."""

    @staticmethod
    async def get_user(db: AsyncSession, username: str) -> User:
        user = await db.get(User, normalize_username(username))
        if user is None:
            raise NotFoundException("User", username)
        return user

    @staticmethod
    async def find_active_user(db: AsyncSession, username: str) -> Optional[User]:
        result = await db.execute(
            select(User).where(
                User.username == normalize_username(username),
                User.is_active.is_(True),
            )
        )
        return result.scalars().first()

    @staticmethod
    async def list_users(db: AsyncSession) -> list[User]:
        result = await db.execute(select(User).order_by(User.username))
        return list(result.scalars().all())

    @staticmethod
    async def create_user(
        db: AsyncSession,
        data: UserCreate,
        *,
        actor: User,
        today: date,
    ) -> User:
        """Create a user. Only roles holding ``users:manage`` may do this."""
        if not can(actor.role, "users:manage"):
            raise ForbiddenException("Only the owner can create users.")

        username = normalize_username(data.username)
        if not username:
            raise ValidationException(
                {"username": ["Username must contain letters or digits."]}
            )
        if await db.get(User, username) is not None:
            raise ConflictError("username", f"User '{username}' already exists.")

        user = User(
            username=username,
            display_name=data.display_name or data.username.strip(),
            password_hash=hash_password(data.password),
            role=data.role,
            join_date=data.join_date or today,
            is_active=True,
        )
        db.add(user)
        await db.flush()

        await create_audit_entry(
            db,
            action="create",
            entity_type="user",
            entity_id=username,
            actor=actor.username,
            new_values={
                "role": data.role.value,
                "join_date": user.join_date.isoformat(),
            },
        )
        return user

    @staticmethod
    async def reset_password(
        db: AsyncSession,
        username: str,
        new_password: str,
        *,
        actor: User,
    ) -> User:
        """Reset another user's password, gated by the capability table."""
        target = await UserService.get_user(db, username)
        if target.username == actor.username:
            raise ForbiddenException("Use the profile page to change your own password.")
        if not can(actor.role, "users:reset_password", target.role):
            raise ForbiddenException(
                f"A {actor.role.value} cannot reset the password of a {target.role.value}."
            )

        target.password_hash = hash_password(new_password)
        target.updated_at = datetime.now(timezone.utc)
        await db.flush()

        await create_audit_entry(
            db,
            action="reset_password",
            entity_type="user",
            entity_id=target.username,
            actor=actor.username,
        )
        return target
