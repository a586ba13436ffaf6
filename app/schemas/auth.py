"""
Pydantic schemas for the email code login endpoints.

Request fields are free-form so that domain and code problems come back
as verification errors rather than schema validation errors.
"""

from pydantic import BaseModel, ConfigDict, UUID4
from typing import Any, Optional
from datetime import datetime


class SendCodeRequest(BaseModel):
    """Request a verification code for an institutional email"""
    email: Any = None


class SendCodeResponse(BaseModel):
    """Response after requesting a verification code"""
    success: bool
    message: str
    error: Optional[str] = None
    # Only set outside production when email delivery is unavailable
    disclosed_code: Optional[str] = None
    expires_in_minutes: int = 10


class VerifyCodeRequest(BaseModel):
    """Submit the 6-digit code received by email"""
    email: Any = None
    code: Any = None


class IdentityResponse(BaseModel):
    """Public view of a verified student"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID4
    email: str
    display_name: str
    is_verified: bool
    created_at: datetime


class VerifyCodeResponse(BaseModel):
    """Response after a code submission"""
    success: bool
    message: str
    error: Optional[str] = None
    identity: Optional[IdentityResponse] = None
    session_token: Optional[str] = None


class CurrentIdentityResponse(BaseModel):
    """Response for the session check endpoint"""
    success: bool
    identity: Optional[IdentityResponse] = None
    error: Optional[str] = None
    message: Optional[str] = None
