"""
Authentication endpoints for email code login and sessions.

- POST /send-code: Send a 6-digit code to an institutional email
- POST /verify: Check the code, create the identity, start a session
- GET /me: Resolve the current session
- DELETE /me: Log out (revoke the session)
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.deps import (
    get_verification_flow,
    get_session_manager,
    get_session_token,
    set_session_cookie,
    clear_session_cookie,
)
from app.core.sessions import SessionManager
from app.core.verification import VerificationFlow
from app.schemas.auth import (
    SendCodeRequest,
    SendCodeResponse,
    VerifyCodeRequest,
    VerifyCodeResponse,
    IdentityResponse,
    CurrentIdentityResponse,
)

router = APIRouter(prefix="/auth", tags=["Authentication"])
logger = logging.getLogger(__name__)


@router.post("/send-code", response_model=SendCodeResponse)
def send_code(
    request: SendCodeRequest,
    flow: VerificationFlow = Depends(get_verification_flow),
):
    """
    Generate and send a verification code.

    Only addresses ending in the institutional domain are accepted. Outside
    production, when email delivery is unavailable, the code is returned in
    disclosed_code instead.

    Raises nothing: failures return success=False with an error name
    (InvalidDomain 400, DeliveryFailed 503).
    """
    result = flow.request_code(request.email)

    body = SendCodeResponse(
        success=result.success,
        message=result.message,
        error=result.error,
        disclosed_code=result.disclosed_code,
        expires_in_minutes=result.expires_in_minutes,
    )
    return JSONResponse(status_code=result.status_code, content=body.model_dump(mode="json"))


@router.post("/verify", response_model=VerifyCodeResponse)
def verify_code(
    payload: VerifyCodeRequest,
    request: Request,
    flow: VerificationFlow = Depends(get_verification_flow),
    db: Session = Depends(get_db),
):
    """
    Verify a 6-digit code and start a session.

    On success the session token is set as an HttpOnly cookie and also
    returned in the body. A session the client already held is revoked.

    Errors: NoPendingCode, CodeExpired, CodeMismatch (400), TooManyAttempts (429).
    """
    result = flow.submit_code(db, payload.email, payload.code)

    if not result.success:
        body = VerifyCodeResponse(success=False, message=result.message, error=result.error)
        return JSONResponse(status_code=result.status_code, content=body.model_dump(mode="json"))

    previous_token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    if previous_token:
        flow.sessions.revoke(db, previous_token)

    body = VerifyCodeResponse(
        success=True,
        message=result.message,
        identity=IdentityResponse.model_validate(result.identity),
        session_token=result.session_token,
    )
    response = JSONResponse(content=body.model_dump(mode="json"))
    set_session_cookie(response, result.session_token, flow.sessions.max_age_seconds)
    return response


@router.get("/me", response_model=CurrentIdentityResponse)
def get_current_identity_profile(
    request: Request,
    token: Optional[str] = Depends(get_session_token),
    sessions: SessionManager = Depends(get_session_manager),
    db: Session = Depends(get_db),
):
    """
    Get the identity behind the current session.

    Returns 401 when the token is missing, unknown, expired or revoked,
    and clears a stale session cookie.
    """
    identity = sessions.resolve(db, token)

    if identity is None:
        body = CurrentIdentityResponse(
            success=False,
            error="NotAuthenticated",
            message="Not authenticated",
        )
        response = JSONResponse(status_code=401, content=body.model_dump(mode="json"))
        if request.cookies.get(settings.SESSION_COOKIE_NAME):
            clear_session_cookie(response)
        return response

    body = CurrentIdentityResponse(success=True, identity=IdentityResponse.model_validate(identity))
    return JSONResponse(content=body.model_dump(mode="json"))


@router.delete("/me")
def logout(
    token: Optional[str] = Depends(get_session_token),
    sessions: SessionManager = Depends(get_session_manager),
    db: Session = Depends(get_db),
):
    """
    Log out: revoke the session and clear the cookie.

    Safe to call without a session.
    """
    sessions.revoke(db, token)

    response = JSONResponse(content={"success": True})
    clear_session_cookie(response)
    return response
