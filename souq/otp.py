import hashlib
import hmac
import secrets
import time
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Callable, Deque, Dict, Optional

from .errors import TooManyRequests

OTP_LENGTH = 6


def generate_otp() -> str:
    return str(secrets.randbelow(9 * 10 ** (OTP_LENGTH - 1)) + 10 ** (OTP_LENGTH - 1))


def hash_otp(otp: str) -> str:
    return hashlib.sha256(otp.encode("utf-8")).hexdigest()


def otp_expiry(minutes: int) -> datetime:
    return datetime.now(timezone.utc) + timedelta(minutes=minutes)


def is_valid_format(otp: Optional[str]) -> bool:
    return isinstance(otp, str) and len(otp) == OTP_LENGTH and otp.isdigit()


def is_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    if expires_at is None:
        return True
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return (now or datetime.now(timezone.utc)) > expires_at


def verify_otp(candidate: Optional[str], stored_hash: Optional[str], expires_at: Optional[datetime]) -> bool:
    if is_expired(expires_at) or not stored_hash or not is_valid_format(candidate):
        return False
    return hmac.compare_digest(hash_otp(candidate), stored_hash)


# ---------------------------
# Request counters
# ---------------------------
class CounterStore:
    """Sliding-window hit log per identifier.

    ``hit`` checks the limit and records in one step; implementations backed
    by an external key-value service must make it atomic per key. The
    in-memory one never awaits inside it.
    """

    async def oldest(self, key: str, window_seconds: float, now: float) -> Optional[float]:
        raise NotImplementedError

    async def hit(self, key: str, window_seconds: float, now: float, limit: Optional[int] = None) -> Optional[int]:
        """Record a hit and return the count in the window, or None without recording once ``limit`` is reached."""
        raise NotImplementedError

    async def clear(self, key: str) -> None:
        raise NotImplementedError


class InMemoryCounterStore(CounterStore):
    def __init__(self):
        self._hits: Dict[str, Deque[float]] = {}

    def _prune(self, key: str, window_seconds: float, now: float) -> Deque[float]:
        hits = self._hits.setdefault(key, deque())
        while hits and now - hits[0] >= window_seconds:
            hits.popleft()
        return hits

    async def oldest(self, key: str, window_seconds: float, now: float) -> Optional[float]:
        hits = self._prune(key, window_seconds, now)
        return hits[0] if hits else None

    async def hit(self, key: str, window_seconds: float, now: float, limit: Optional[int] = None) -> Optional[int]:
        hits = self._prune(key, window_seconds, now)
        if limit is not None and len(hits) >= limit:
            return None
        hits.append(now)
        return len(hits)

    async def clear(self, key: str) -> None:
        self._hits.pop(key, None)


class OtpRateLimiter:
    """Caps how often codes are issued and how often they may be guessed.

    Issued codes are counted per email (``consume``). Verification attempts
    are counted per email and purpose (``consume_attempt``) so a code cannot
    be brute-forced within its lifetime.
    """

    def __init__(
        self,
        counters: CounterStore,
        max_requests: int = 5,
        window_minutes: int = 15,
        max_attempts: int = 5,
        clock: Callable[[], float] = time.time,
    ):
        self.counters = counters
        self.max_requests = max_requests
        self.max_attempts = max_attempts
        self.window_seconds = window_minutes * 60
        self.clock = clock

    @staticmethod
    def _key(identifier: str) -> str:
        return f"otp:{identifier.lower()}"

    @staticmethod
    def _attempt_key(identifier: str, purpose: str) -> str:
        return f"otp-attempt:{purpose}:{identifier.lower()}"

    async def _consume(self, key: str, limit: int, message_key: Optional[str] = None) -> int:
        now = self.clock()
        used = await self.counters.hit(key, self.window_seconds, now, limit=limit)
        if used is None:
            oldest = await self.counters.oldest(key, self.window_seconds, now)
            retry_after = int(oldest + self.window_seconds - now) + 1 if oldest is not None else 1
            raise TooManyRequests(message_key, retry_after=retry_after)
        return limit - used

    async def consume(self, identifier: str) -> int:
        """Count one issued code; raise TooManyRequests when the window is full. Returns what is left."""
        return await self._consume(self._key(identifier), self.max_requests)

    async def consume_attempt(self, identifier: str, purpose: str) -> int:
        """Count one verification attempt; returns how many are left after it."""
        return await self._consume(
            self._attempt_key(identifier, purpose), self.max_attempts, "auth.too_many_otp_attempts",
        )

    async def clear_attempts(self, identifier: str, purpose: str) -> None:
        await self.counters.clear(self._attempt_key(identifier, purpose))

    async def clear(self, identifier: str) -> None:
        await self.counters.clear(self._key(identifier))
