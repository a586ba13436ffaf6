"""
Database models package.
"""

from app.models.identity import Identity
from app.models.session import UserSession

__all__ = ["Identity", "UserSession"]
