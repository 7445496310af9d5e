"""Auth service — password login, JWT issuance, single-session revocation."""

from __future__ import annotations

import hashlib
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from workday.auth.models import UserSession
from workday.config import settings
from workday.users.models import User
from workday.users.service import UserService, verify_password

logger = logging.getLogger(__name__)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def create_access_token(user: User) -> tuple[str, int]:
    """Return (encoded_jwt, expires_in_seconds)."""
    expires_in = settings.JWT_EXPIRY_HOURS * 3600
    payload = {
        "sub": user.username,
        "role": user.role.value,
        "type": "access",
        "jti": uuid.uuid4().hex,
        "exp": datetime.now(timezone.utc) + timedelta(hours=settings.JWT_EXPIRY_HOURS),
    }
    token = jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return token, expires_in


async def authenticate(
    db: AsyncSession,
    username: str,
    password: str,
) -> Optional[User]:
    """Return the active user if the password matches, else None."""
    user = await UserService.find_active_user(db, username)
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


# ── Session management ──────────────────────────────────────────────

async def revoke_user_sessions(db: AsyncSession, username: str) -> int:
    """Revoke every active session for *username*. Returns rows affected."""
    result = await db.execute(
        update(UserSession)
        .where(
            UserSession.username == username,
            UserSession.is_revoked.is_(False),
        )
        .values(is_revoked=True)
    )
    return result.rowcount or 0


async def create_session(
    db: AsyncSession,
    user: User,
    ip: Optional[str],
    user_agent: Optional[str],
) -> tuple[str, int]:
    """Issue a token and persist its session.

    A user holds one session at a time: earlier sessions are revoked first.
    """
    revoked = await revoke_user_sessions(db, user.username)
    if revoked:
        logger.info("Revoked %d earlier session(s) for %s", revoked, user.username)

    access_token, expires_in = create_access_token(user)
    session = UserSession(
        username=user.username,
        token_hash=hash_token(access_token),
        ip_address=ip,
        user_agent=user_agent,
        expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    )
    db.add(session)
    await db.flush()
    return access_token, expires_in


async def revoke_session(db: AsyncSession, token_hash: str) -> None:
    """Mark a session as revoked by its token hash."""
    await db.execute(
        update(UserSession)
        .where(UserSession.token_hash == token_hash)
        .values(is_revoked=True)
    )
