import logging
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import Settings, settings
from app.core.database import SessionLocal, init_db
from app.core.identity import IdentityResolver
from app.core.logging_config import setup_logging
from app.core.sessions import SessionManager
from app.core.verification import VerificationFlow
from app.core.verification_store import VerificationStore
from app.services.email_service import Notifier
from app.api.endpoints import auth, health

setup_logging(
    log_level=settings.LOG_LEVEL,
    json_logs=settings.JSON_LOGS,
    service=settings.PROJECT_NAME,
    environment=settings.ENVIRONMENT,
)
logger = logging.getLogger(__name__)


def build_verification_flow(config: Settings) -> VerificationFlow:
    """Construct the verification flow and its stores for this process."""
    return VerificationFlow(
        store=VerificationStore.from_url(config.REDIS_URL),
        notifier=Notifier.from_settings(config),
        identities=IdentityResolver(display_name_prefix=config.DISPLAY_NAME_PREFIX),
        sessions=SessionManager(expire_days=config.SESSION_EXPIRE_DAYS),
        email_domain=config.INSTITUTION_EMAIL_DOMAIN,
        code_ttl_minutes=config.VERIFICATION_CODE_TTL_MINUTES,
        max_attempts=config.MAX_VERIFICATION_ATTEMPTS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting up {settings.PROJECT_NAME} ({settings.ENVIRONMENT})...")
    flow = build_verification_flow(settings)
    app.state.verification_flow = flow

    db = SessionLocal()
    try:
        init_db()
        purged = flow.sessions.purge_expired(db)
        logger.info(f"Database initialized ({purged} expired sessions purged)")
    except SQLAlchemyError as e:
        logger.error(f"Database initialization failed: {e}")
    finally:
        db.close()

    yield

    # Shutdown
    if flow.store.redis_client is not None:
        flow.store.redis_client.close()
    logger.info(f"Shutting down {settings.PROJECT_NAME}...")


# Create FastAPI application
app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description="Email one-time-code login for the Clutch campus exchange",
    lifespan=lifespan
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Generic 500 for anything the verification flow did not expect."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "InternalError", "message": "Something went wrong. Please try again."},
    )


# Include routers
app.include_router(auth.router, prefix=settings.API_V1_STR)
app.include_router(health.router, prefix=settings.API_V1_STR)


@app.get("/")
async def root():
    """Root endpoint - API health check"""
    return {
        "message": settings.PROJECT_NAME,
        "version": "1.0.0",
        "status": "healthy"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=not settings.is_production,
        log_level="info"
    )
