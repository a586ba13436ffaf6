"""
Health check endpoints.

Reports database connectivity and which backend is holding pending codes.
"""

import logging
from typing import Dict, Any
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from sqlalchemy import text
from datetime import datetime, timezone

from app.core.database import get_db
from app.core.deps import get_verification_flow
from app.core.verification import VerificationFlow

router = APIRouter(tags=["Health"])
logger = logging.getLogger(__name__)


@router.get("/health", status_code=status.HTTP_200_OK)
def health_check() -> Dict[str, str]:
    """
    Basic health check endpoint.

    Returns 200 OK if the service is running.
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/detailed", status_code=status.HTTP_200_OK)
def detailed_health_check(
    db: Session = Depends(get_db),
    flow: VerificationFlow = Depends(get_verification_flow),
) -> Dict[str, Any]:
    """
    Detailed health check with dependency status.

    Checks:
    - Database connectivity
    - Verification store backend (redis, or the in-process fallback)
    """
    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {}
    }

    try:
        db.execute(text("SELECT 1"))
        health_status["checks"]["database"] = {
            "status": "healthy",
            "message": "Database connection successful"
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = {
            "status": "unhealthy",
            "message": "Database error"
        }

    backend = flow.store.ping()
    configured = flow.store.redis_client is not None
    degraded = configured and backend != "redis"
    if degraded and health_status["status"] == "healthy":
        health_status["status"] = "degraded"
    health_status["checks"]["verification_store"] = {
        "status": "degraded" if degraded else "healthy",
        "backend": backend,
    }

    return health_status
