"""
Server-side session records.

The client only ever holds the opaque token; this table stores its
SHA-256 digest so a leaked database row cannot be replayed as a cookie.
"""

from sqlalchemy import Column, String, DateTime, Uuid, ForeignKey, Index
from sqlalchemy.orm import relationship
from app.core.database import Base


class UserSession(Base):
    """
    A login session bound to a verified Identity.

    Features:
    - 30-day expiration
    - Immediate revocation by deleting the row
    - Cascade delete with identity
    """
    __tablename__ = "sessions"

    token_hash = Column(String(64), primary_key=True)
    identity_id = Column(Uuid(as_uuid=True), ForeignKey("identities.id", ondelete="CASCADE"), nullable=False, index=True)

    issued_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    identity = relationship("Identity", back_populates="sessions")

    __table_args__ = (
        Index('ix_sessions_expires_at', 'expires_at'),
    )

    def __repr__(self):
        return f"<UserSession(identity_id={self.identity_id}, expires_at={self.expires_at})>"
