"""
FastAPI dependencies for the verification flow and session handling.

The flow and its stores are built once in the application lifespan and
stored on app.state; these dependencies hand them to endpoints.
"""

from fastapi import Depends, Request
from fastapi.responses import Response
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

from app.core.config import settings
from app.core.sessions import SessionManager
from app.core.verification import VerificationFlow

# Non-browser clients may send Authorization: Bearer <token> instead of the cookie
bearer_scheme = HTTPBearer(auto_error=False)


def get_verification_flow(request: Request) -> VerificationFlow:
    return request.app.state.verification_flow


def get_session_manager(flow: VerificationFlow = Depends(get_verification_flow)) -> SessionManager:
    return flow.sessions


def get_session_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[str]:
    """
    Extract the session token from the cookie, or the Bearer header.

    Returns None when neither is present.
    """
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if token:
        return token
    if credentials:
        return credentials.credentials
    return None


def set_session_cookie(response: Response, token: str, max_age: int) -> None:
    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=token,
        max_age=max_age,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )


def clear_session_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.SESSION_COOKIE_NAME,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        path="/",
    )
