"""
Core email verification logic.

Handles generation, delivery and validation of 6-digit one-time codes,
and turns a successful verification into an Identity plus a session.
"""

import hmac
import logging
import secrets
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from app.core.identity import IdentityResolver
from app.core.sessions import SessionManager
from app.core.verification_store import VerificationStore
from app.models.identity import Identity
from app.services.email_service import Notifier

logger = logging.getLogger(__name__)


# Security constants
CODE_EXPIRATION_MINUTES = 10
MAX_VERIFICATION_ATTEMPTS = 5
CODE_LENGTH = 6


class VerificationError(Exception):
    """Base class for expected, user-recoverable verification failures."""
    error = "VerificationFailed"
    default_message = "Verification failed"
    status_code = 400

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidDomainError(VerificationError):
    error = "InvalidDomain"
    default_message = "Please use your university email address"


class NoPendingCodeError(VerificationError):
    error = "NoPendingCode"
    default_message = "No verification code found. Please request a new one."


class CodeExpiredError(VerificationError):
    error = "CodeExpired"
    default_message = "Verification code expired. Please request a new one."


class CodeMismatchError(VerificationError):
    error = "CodeMismatch"
    default_message = "Invalid verification code"


class TooManyAttemptsError(VerificationError):
    error = "TooManyAttempts"
    default_message = "Too many attempts. Please request a new code."
    status_code = 429


class DeliveryFailedError(VerificationError):
    error = "DeliveryFailed"
    default_message = "We couldn't send your verification email. Please try again."
    status_code = 503


@dataclass
class RequestCodeResult:
    success: bool
    message: str
    error: Optional[str] = None
    disclosed_code: Optional[str] = None
    expires_in_minutes: int = CODE_EXPIRATION_MINUTES
    status_code: int = 200


@dataclass
class SubmitCodeResult:
    success: bool
    message: str
    error: Optional[str] = None
    identity: Optional[Identity] = None
    session_token: Optional[str] = None
    status_code: int = 200


def generate_verification_code() -> str:
    """
    Generate a secure 6-digit verification code.

    Uses secrets module for cryptographic randomness; every value from
    "000000" to "999999" is reachable.

    Returns:
        str: 6-digit numeric code (e.g., "048213")
    """
    return ''.join(secrets.choice('0123456789') for _ in range(CODE_LENGTH))


def normalize_email(email) -> str:
    if not isinstance(email, str):
        return ""
    return email.strip().lower()


def codes_match(submitted, stored: str) -> bool:
    if not isinstance(submitted, str):
        return False
    return hmac.compare_digest(submitted.encode("utf-8"), stored.encode("utf-8"))


class VerificationFlow:
    """
    Orchestrates code requests and code submissions.

    Per email: NoPending -> CodeSent -> Verified, with CodeSent falling
    back to NoPending on expiry or on exhausting the attempt budget.
    """

    def __init__(
        self,
        store: VerificationStore,
        notifier: Notifier,
        identities: IdentityResolver,
        sessions: SessionManager,
        email_domain: str = "@essex.ac.uk",
        code_ttl_minutes: int = CODE_EXPIRATION_MINUTES,
        max_attempts: Optional[int] = MAX_VERIFICATION_ATTEMPTS,
    ):
        self.store = store
        self.notifier = notifier
        self.identities = identities
        self.sessions = sessions
        self.email_domain = email_domain.lower()
        self.code_ttl_minutes = code_ttl_minutes
        self.max_attempts = max_attempts

    def is_institutional_email(self, email: str) -> bool:
        return len(email) > len(self.email_domain) and email.endswith(self.email_domain)

    def request_code(self, email) -> RequestCodeResult:
        """
        Generate, store and deliver a code for email.

        Failures come back as a result with success=False and an error
        name from the VerificationError taxonomy.
        """
        try:
            return self._request_code(normalize_email(email))
        except VerificationError as e:
            logger.info(f"Code request rejected: {e.error}")
            return RequestCodeResult(
                success=False,
                message=e.message,
                error=e.error,
                status_code=e.status_code,
            )

    def submit_code(self, db: Session, email, code) -> SubmitCodeResult:
        """
        Check a submitted code and, on a match, log the student in.

        Returns a result carrying the Identity and a fresh session token
        on success.
        """
        try:
            return self._submit_code(db, normalize_email(email), code)
        except VerificationError as e:
            logger.info(f"Code submission rejected: {e.error}")
            return SubmitCodeResult(
                success=False,
                message=e.message,
                error=e.error,
                status_code=e.status_code,
            )

    def _request_code(self, email: str) -> RequestCodeResult:
        if not self.is_institutional_email(email):
            raise InvalidDomainError(f"Please use your {self.email_domain} email address")

        code = generate_verification_code()
        self.store.put(email, code, self.code_ttl_minutes * 60)

        delivery = self.notifier.send(email, code)

        if delivery.delivered:
            logger.info(f"Verification code sent to {email}")
            return RequestCodeResult(
                success=True,
                message="Verification code sent to your email",
                expires_in_minutes=self.code_ttl_minutes,
            )

        if delivery.disclosed:
            return RequestCodeResult(
                success=True,
                message="Verification code generated (email delivery unavailable)",
                disclosed_code=delivery.code,
                expires_in_minutes=self.code_ttl_minutes,
            )

        # Nobody can ever see this code
        self.store.delete(email)
        raise DeliveryFailedError()

    def _submit_code(self, db: Session, email: str, code) -> SubmitCodeResult:
        entry = self.store.get(email)
        if entry is None:
            raise NoPendingCodeError()

        if self.store.is_expired(entry):
            self.store.delete(email)
            raise CodeExpiredError()

        if not codes_match(code, entry.code):
            attempts = self.store.record_attempt(entry)
            if self.max_attempts and attempts >= self.max_attempts:
                self.store.delete(email)
                logger.warning(f"Verification attempts exhausted for {email}")
                raise TooManyAttemptsError()
            raise CodeMismatchError()

        taken = self.store.consume(email)
        if taken is None:
            # A concurrent submission redeemed it first
            raise NoPendingCodeError()
        if not codes_match(code, taken.code):
            # Superseded by a new request since it was read
            self.store.save(taken)
            raise CodeMismatchError()

        identity = self.identities.resolve(db, email)
        token = self.sessions.issue(db, identity)

        logger.info(f"{email} verified successfully")

        return SubmitCodeResult(
            success=True,
            message="Email verified successfully",
            identity=identity,
            session_token=token,
        )
