"""
Identity model for verified students.

An Identity is created lazily the first time an email address passes
one-time-code verification. Its id and email never change afterwards.
"""

import uuid
from sqlalchemy import Column, String, Boolean, DateTime, Uuid, func
from sqlalchemy.orm import relationship
from app.core.database import Base


class Identity(Base):
    """
    A student proven to control an institutional email address.

    The unique constraint on email is what makes get-or-create safe
    under concurrent verifications for the same address.
    """
    __tablename__ = "identities"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)

    # Normalized (lowercase, trimmed) institutional email
    email = Column(String(320), unique=True, nullable=False, index=True)

    # e.g. "Student AB" for ab12345@essex.ac.uk
    display_name = Column(String(64), nullable=False)

    is_verified = Column(Boolean, default=True, nullable=False)

    # Timestamps
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_login_at = Column(DateTime(timezone=True), nullable=True)

    sessions = relationship("UserSession", back_populates="identity", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Identity(id={self.id}, email='{self.email}')>"
