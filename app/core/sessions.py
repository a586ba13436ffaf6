"""
Server-issued opaque session tokens.

Tokens are random strings handed to the client; only their SHA-256
digest is stored. Resolution never raises for bad client input, it
simply returns None.
"""

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.models.identity import Identity
from app.models.session import UserSession

logger = logging.getLogger(__name__)

# Longest token we bother hashing; token_urlsafe(32) yields 43 chars
MAX_TOKEN_LENGTH = 256


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SessionManager:
    """Issues, resolves and revokes login sessions."""

    def __init__(self, expire_days: int = 30, clock: Callable[[], datetime] = None):
        self.expire_days = expire_days
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def max_age_seconds(self) -> int:
        return self.expire_days * 24 * 60 * 60

    def issue(self, db: Session, identity: Identity) -> str:
        """Create a session for a verified identity and return its token."""
        if not identity.is_verified:
            raise ValueError("Cannot issue a session for an unverified identity")

        token = secrets.token_urlsafe(32)
        now = self.clock()
        db.add(UserSession(
            token_hash=hash_token(token),
            identity_id=identity.id,
            issued_at=now,
            expires_at=now + timedelta(days=self.expire_days),
        ))
        db.commit()

        logger.info(f"Issued session for identity {identity.id}")
        return token

    def resolve(self, db: Session, token: Optional[str]) -> Optional[Identity]:
        """Return the Identity behind token, or None if it is unusable."""
        if not token or not isinstance(token, str) or len(token) > MAX_TOKEN_LENGTH:
            return None

        record = db.get(UserSession, hash_token(token))
        if record is None:
            return None

        if _as_utc(record.expires_at) <= self.clock():
            db.delete(record)
            db.commit()
            return None

        return record.identity

    def revoke(self, db: Session, token: Optional[str]) -> None:
        """Invalidate token. Unknown or already revoked tokens are ignored."""
        if not token or not isinstance(token, str) or len(token) > MAX_TOKEN_LENGTH:
            return

        deleted = db.query(UserSession).filter(
            UserSession.token_hash == hash_token(token)
        ).delete()
        db.commit()

        if deleted:
            logger.info("Session revoked")

    def purge_expired(self, db: Session) -> int:
        """
        Delete expired sessions.

        Returns:
            int: Number of sessions deleted
        """
        deleted = db.query(UserSession).filter(
            UserSession.expires_at <= self.clock()
        ).delete()
        db.commit()
        return deleted
