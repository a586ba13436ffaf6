"""
Maps verified email addresses to Identity records.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.identity import Identity

logger = logging.getLogger(__name__)


def derive_display_name(email: str, prefix: str = "Student") -> str:
    """
    Build a display name from the email's local part.

    >>> derive_display_name("ab12345@essex.ac.uk")
    'Student AB'
    """
    local_part = email.split("@", 1)[0]
    return f"{prefix} {local_part[:2].upper()}"


class IdentityResolver:
    """Atomic get-or-create of identities keyed by normalized email."""

    def __init__(self, display_name_prefix: str = "Student", clock: Callable[[], datetime] = None):
        self.display_name_prefix = display_name_prefix
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def resolve(self, db: Session, email: str) -> Identity:
        """
        Return the Identity for email, creating it on first verification.

        A concurrent insert for the same email loses on the unique
        constraint; the loser rolls back and reads the winner's row.
        """
        now = self.clock()
        identity = db.query(Identity).filter(Identity.email == email).first()

        if identity is None:
            identity = Identity(
                id=uuid.uuid4(),
                email=email,
                display_name=derive_display_name(email, self.display_name_prefix),
                is_verified=True,
                created_at=now,
                last_login_at=now,
            )
            db.add(identity)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                identity = db.query(Identity).filter(Identity.email == email).first()
                if identity is None:
                    raise
            else:
                db.refresh(identity)
                logger.info(f"Created identity {identity.id} for {email}")
                return identity

        identity.is_verified = True
        identity.last_login_at = now
        db.commit()
        db.refresh(identity)
        return identity
