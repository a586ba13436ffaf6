"""
Storage for pending verification codes.

One entry per normalized email, written with a TTL and checked for expiry
at read time. Redis is used when configured; every Redis failure degrades
to the in-process map instead of failing the request.

Failed attempts are counted in a separate key so that concurrent
submissions each see their own increment, and a matched code is taken
out of the store in one step so it can only be redeemed once.
"""

import json
import logging
import math
import threading
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional, Tuple

import redis

logger = logging.getLogger(__name__)

KEY_PREFIX = "verify"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PendingVerification:
    """A code awaiting confirmation for one email address."""
    email: str
    code: str
    expires_at: datetime
    attempts: int = 0

    def to_json(self) -> str:
        return json.dumps({
            "email": self.email,
            "code": self.code,
            "expires_at": self.expires_at.isoformat(),
        })

    @classmethod
    def from_json(cls, raw: str) -> "PendingVerification":
        data = json.loads(raw)
        expires_at = datetime.fromisoformat(data["expires_at"])
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return cls(
            email=data["email"],
            code=str(data["code"]),
            expires_at=expires_at,
        )


class VerificationStore:
    """
    Key-value store for PendingVerification entries.

    Construct once per process and hand it to the verification flow.
    Pass ``redis_client=None`` to run purely in process memory, and a
    ``clock`` callable to control time in tests.
    """

    def __init__(
        self,
        redis_client: Optional[redis.Redis] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.redis_client = redis_client
        self.clock = clock
        self._memory: Dict[str, PendingVerification] = {}
        # email -> (failed attempts, expiry of the code they count against)
        self._attempts: Dict[str, Tuple[int, datetime]] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "VerificationStore":
        """Build a store for REDIS_URL; an empty url gives a memory-only store."""
        if not url:
            logger.info("REDIS_URL not set - pending codes kept in process memory")
            return cls(redis_client=None, **kwargs)

        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_timeout=5,
        )
        return cls(redis_client=client, **kwargs)

    @staticmethod
    def _key(email: str) -> str:
        return f"{KEY_PREFIX}:{email}"

    @staticmethod
    def _attempts_key(email: str) -> str:
        return f"{KEY_PREFIX}:{email}:attempts"

    def is_expired(self, entry: PendingVerification) -> bool:
        return self.clock() > entry.expires_at

    def _remaining_seconds(self, expires_at: datetime) -> int:
        return math.ceil((expires_at - self.clock()).total_seconds())

    def put(self, email: str, code: str, ttl_seconds: int) -> PendingVerification:
        """Store a new code for email, replacing any pending one and its attempt count."""
        entry = PendingVerification(
            email=email,
            code=code,
            expires_at=self.clock() + timedelta(seconds=ttl_seconds),
        )
        self._write(entry, ttl_seconds, reset_attempts=True)
        return entry

    def save(self, entry: PendingVerification) -> None:
        """Write back an existing entry, keeping its original expiry."""
        remaining = self._remaining_seconds(entry.expires_at)
        if remaining <= 0:
            self.delete(entry.email)
            return
        self._write(entry, remaining)

    def get(self, email: str) -> Optional[PendingVerification]:
        """
        Return the pending entry for email, or None.

        Expired entries are still returned so the caller can distinguish
        an expired code from a missing one; use is_expired().
        """
        if self.redis_client is not None:
            try:
                raw = self.redis_client.get(self._key(email))
                if raw is not None:
                    entry = PendingVerification.from_json(raw)
                    entry.attempts = int(self.redis_client.get(self._attempts_key(email)) or 0)
                    return entry
            except redis.RedisError as e:
                logger.warning(f"Redis read failed, using in-process store: {e}")
            except (ValueError, KeyError) as e:
                logger.warning(f"Discarding unreadable pending verification: {e}")
                self.delete(email)
                return None

        with self._lock:
            self._purge_expired(keep=email)
            entry = self._memory.get(email)
            if entry is None:
                return None
            count, _ = self._attempts.get(email, (0, entry.expires_at))
            return replace(entry, attempts=count)

    def record_attempt(self, entry: PendingVerification) -> int:
        """
        Count one failed attempt against entry's code and return the new total.

        The increment is atomic, so concurrent callers never see the same
        total. The counter lives until the code would have expired, even
        after the entry itself is deleted.
        """
        ttl = max(self._remaining_seconds(entry.expires_at), 1)

        if self.redis_client is not None:
            key = self._attempts_key(entry.email)
            try:
                self.redis_client.set(key, 0, ex=ttl, nx=True)
                return int(self.redis_client.incr(key))
            except redis.RedisError as e:
                logger.warning(f"Redis attempt count failed, using in-process store: {e}")

        with self._lock:
            self._purge_expired()
            count, _ = self._attempts.get(entry.email, (0, entry.expires_at))
            count += 1
            self._attempts[entry.email] = (count, entry.expires_at)
            return count

    def consume(self, email: str) -> Optional[PendingVerification]:
        """
        Remove and return the pending entry for email in one step.

        Of several concurrent callers at most one receives the entry; the
        rest get None.
        """
        taken = None

        if self.redis_client is not None:
            try:
                raw = self.redis_client.getdel(self._key(email))
                if raw is not None:
                    taken = PendingVerification.from_json(raw)
            except redis.RedisError as e:
                logger.error(f"Redis consume failed for {email}; code may stay redeemable there until expiry: {e}")
            except (ValueError, KeyError) as e:
                logger.warning(f"Discarding unreadable pending verification: {e}")

        with self._lock:
            held = self._memory.pop(email, None)
        return taken or held

    def delete(self, email: str) -> None:
        if self.redis_client is not None:
            try:
                self.redis_client.delete(self._key(email))
            except redis.RedisError as e:
                logger.error(f"Redis delete failed for {email}; code may stay redeemable there until expiry: {e}")

        with self._lock:
            self._memory.pop(email, None)

    def ping(self) -> str:
        """Return the backend currently serving writes: "redis" or "memory"."""
        if self.redis_client is None:
            return "memory"
        try:
            self.redis_client.ping()
            return "redis"
        except redis.RedisError as e:
            logger.warning(f"Redis ping failed: {e}")
            return "memory"

    def _purge_expired(self, keep: Optional[str] = None) -> None:
        """Drop expired in-process entries and counters. Caller holds the lock."""
        now = self.clock()
        for email in [e for e, entry in self._memory.items() if entry.expires_at < now and e != keep]:
            del self._memory[email]
        for email in [e for e, (_, expires_at) in self._attempts.items() if expires_at < now]:
            del self._attempts[email]

    def _write(self, entry: PendingVerification, ttl_seconds: int, reset_attempts: bool = False) -> None:
        if self.redis_client is not None:
            try:
                if reset_attempts:
                    self.redis_client.delete(self._attempts_key(entry.email))
                self.redis_client.setex(self._key(entry.email), ttl_seconds, entry.to_json())
                # Drop any copy written while Redis was unavailable
                with self._lock:
                    self._memory.pop(entry.email, None)
                    if reset_attempts:
                        self._attempts.pop(entry.email, None)
                return
            except redis.RedisError as e:
                logger.warning(f"Redis write failed, using in-process store: {e}")

        with self._lock:
            self._purge_expired()
            self._memory[entry.email] = entry
            if reset_attempts:
                self._attempts.pop(entry.email, None)
