"""
Failed-login tracking and temporary blocking keyed by email + client IP.

Attempt records live in a TTL store so blocks survive restarts and are shared
between API instances. Redis is the production backend; the in-memory store
implements the same interface for tests and single-process development.
"""

from __future__ import annotations

import re
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from functools import lru_cache
from typing import Callable, Dict, Iterable, List, Optional, Protocol, Tuple

import redis
import structlog

from tirestore.core.config import settings
from tirestore.core.exceptions import TooManyAttemptsError

logger = structlog.get_logger()

WARNING_THRESHOLD = 3
BLOCK_THRESHOLD = 6
SUSPICION_BLOCK_SCORE = 3
MAX_PASSWORD_LENGTH = 200

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PASSWORD_SUSPICIOUS_RE = re.compile(r"['\"<>{}]")
SCRIPT_MARKERS = ("<script>", "javascript:", "eval(")
BOT_MARKERS = ("bot", "crawler", "spider")


@dataclass
class AttemptRecord:
    email: str
    ip_address: str
    failed_attempts: int = 0
    total_attempts: int = 0
    is_blocked: bool = False
    block_reason: Optional[str] = None
    last_attempt: float = field(default_factory=time.time)
    last_attempt_type: str = "login_failed"
    user_agent: Optional[str] = None

    def to_dict(self, expires_in: Optional[int] = None) -> dict:
        return {
            "email": self.email,
            "ipAddress": self.ip_address,
            "failedAttempts": self.failed_attempts,
            "totalAttempts": self.total_attempts,
            "isBlocked": self.is_blocked,
            "lastAttempt": _iso(self.last_attempt),
            "lastAttemptType": self.last_attempt_type,
            "blockReason": self.block_reason,
            "userAgent": self.user_agent,
            "expiresIn": expires_in,
        }


@dataclass
class AttemptResult:
    failed_count: int
    is_warning: bool
    is_blocked: bool
    attempts_remaining: int


def _iso(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


class LoginAttemptStore(Protocol):
    """Operations the login guard needs from a TTL store.

    Writes are atomic per email+IP so concurrent logins against one pair
    never overwrite each other's counts, and every write leaves the key with
    an expiry.
    """

    def get(self, email: str, ip_address: str) -> Optional[AttemptRecord]:
        ...

    def increment_failure(
        self, email: str, ip_address: str, user_agent: Optional[str], reason: str, ttl_seconds: int
    ) -> int:
        """Count one failed login and return the new failure count.

        The TTL is only set when the pair has none yet, so the window runs
        from the first failure.
        """
        ...

    def block(
        self,
        email: str,
        ip_address: str,
        reason: str,
        attempt_type: str,
        user_agent: Optional[str],
        ttl_seconds: int,
        count_attempt: bool = False,
    ) -> None:
        """Mark the pair blocked and restart its window."""
        ...

    def ttl(self, email: str, ip_address: str) -> Optional[int]:
        ...

    def delete(self, email: str, ip_address: str) -> bool:
        ...

    def scan(self) -> Iterable[AttemptRecord]:
        ...


@dataclass
class InMemoryLoginAttemptStore:
    """Process-local store with per-key expiry."""

    default_ttl: int = 3600
    clock: Callable[[], float] = time.time
    records: Dict[Tuple[str, str], Tuple[AttemptRecord, float]] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def _live(self, key: Tuple[str, str]) -> Optional[Tuple[AttemptRecord, float]]:
        entry = self.records.get(key)
        if entry is None:
            return None
        if entry[1] <= self.clock():
            self.records.pop(key, None)
            return None
        return entry

    def get(self, email: str, ip_address: str) -> Optional[AttemptRecord]:
        with self.lock:
            entry = self._live((email, ip_address))
            return replace(entry[0]) if entry else None

    def increment_failure(
        self, email: str, ip_address: str, user_agent: Optional[str], reason: str, ttl_seconds: int
    ) -> int:
        key = (email, ip_address)
        with self.lock:
            entry = self._live(key)
            if entry is None:
                record, expires_at = AttemptRecord(email=email, ip_address=ip_address), self.clock() + ttl_seconds
            else:
                record, expires_at = entry
            record.failed_attempts += 1
            record.total_attempts += 1
            record.last_attempt = self.clock()
            record.last_attempt_type = "login_failed"
            record.user_agent = user_agent
            record.block_reason = reason
            self.records[key] = (record, expires_at)
            return record.failed_attempts

    def block(
        self,
        email: str,
        ip_address: str,
        reason: str,
        attempt_type: str,
        user_agent: Optional[str],
        ttl_seconds: int,
        count_attempt: bool = False,
    ) -> None:
        key = (email, ip_address)
        with self.lock:
            entry = self._live(key)
            record = entry[0] if entry else AttemptRecord(email=email, ip_address=ip_address)
            if count_attempt:
                record.total_attempts += 1
            record.is_blocked = True
            record.block_reason = reason
            record.last_attempt = self.clock()
            record.last_attempt_type = attempt_type
            record.user_agent = user_agent
            self.records[key] = (record, self.clock() + ttl_seconds)

    def ttl(self, email: str, ip_address: str) -> Optional[int]:
        with self.lock:
            entry = self._live((email, ip_address))
            if entry is None:
                return None
            return max(0, int(entry[1] - self.clock()))

    def delete(self, email: str, ip_address: str) -> bool:
        with self.lock:
            return self.records.pop((email, ip_address), None) is not None

    def scan(self) -> Iterable[AttemptRecord]:
        with self.lock:
            live = [self._live(key) for key in list(self.records)]
        return [replace(entry[0]) for entry in live if entry is not None]


@dataclass
class RedisLoginAttemptStore:
    """Redis-backed store; one hash per email+IP with a key TTL.

    Counters move with HINCRBY and every write runs in a MULTI pipeline
    together with its EXPIRE, so a key recreated after expiry still gets a TTL.
    """

    url: str
    default_ttl: int = 3600
    key_prefix: str = "tirestore:login_attempts"

    def __post_init__(self):
        self.client = redis.Redis.from_url(self.url, decode_responses=True)

    def _key(self, email: str, ip_address: str) -> str:
        return f"{self.key_prefix}:{email}:{ip_address}"

    @staticmethod
    def _decode(fields: Dict[str, str]) -> Optional[AttemptRecord]:
        if not fields or "email" not in fields:
            return None
        return AttemptRecord(
            email=fields["email"],
            ip_address=fields.get("ip_address", ""),
            failed_attempts=int(fields.get("failed_attempts", 0)),
            total_attempts=int(fields.get("total_attempts", 0)),
            is_blocked=fields.get("is_blocked") == "1",
            block_reason=fields.get("block_reason") or None,
            last_attempt=float(fields.get("last_attempt", 0)),
            last_attempt_type=fields.get("last_attempt_type", "login_failed"),
            user_agent=fields.get("user_agent") or None,
        )

    def get(self, email: str, ip_address: str) -> Optional[AttemptRecord]:
        return self._decode(self.client.hgetall(self._key(email, ip_address)))

    def increment_failure(
        self, email: str, ip_address: str, user_agent: Optional[str], reason: str, ttl_seconds: int
    ) -> int:
        key = self._key(email, ip_address)
        pipe = self.client.pipeline(transaction=True)
        pipe.hincrby(key, "failed_attempts", 1)
        pipe.hincrby(key, "total_attempts", 1)
        pipe.hset(
            key,
            mapping={
                "email": email,
                "ip_address": ip_address,
                "last_attempt": time.time(),
                "last_attempt_type": "login_failed",
                "user_agent": user_agent or "",
                "block_reason": reason,
            },
        )
        # EXPIRE NX keeps the window anchored at the first failure (Redis >= 7)
        pipe.expire(key, ttl_seconds, nx=True)
        failed, *_ = pipe.execute()
        return int(failed)

    def block(
        self,
        email: str,
        ip_address: str,
        reason: str,
        attempt_type: str,
        user_agent: Optional[str],
        ttl_seconds: int,
        count_attempt: bool = False,
    ) -> None:
        key = self._key(email, ip_address)
        pipe = self.client.pipeline(transaction=True)
        if count_attempt:
            pipe.hincrby(key, "total_attempts", 1)
        pipe.hset(
            key,
            mapping={
                "email": email,
                "ip_address": ip_address,
                "is_blocked": "1",
                "block_reason": reason,
                "last_attempt": time.time(),
                "last_attempt_type": attempt_type,
                "user_agent": user_agent or "",
            },
        )
        pipe.expire(key, ttl_seconds)
        pipe.execute()

    def ttl(self, email: str, ip_address: str) -> Optional[int]:
        remaining = self.client.ttl(self._key(email, ip_address))
        return remaining if remaining and remaining > 0 else None

    def delete(self, email: str, ip_address: str) -> bool:
        return bool(self.client.delete(self._key(email, ip_address)))

    def scan(self) -> Iterable[AttemptRecord]:
        for key in self.client.scan_iter(match=f"{self.key_prefix}:*", count=500):
            record = self._decode(self.client.hgetall(key))
            if record is not None:
                yield record


class LoginGuard:
    def __init__(self, store: LoginAttemptStore, window_seconds: int = 3600):
        self.store = store
        self.window_seconds = window_seconds

    def _blocked_until(self, email: str, ip_address: str) -> str:
        remaining = self.store.ttl(email, ip_address) or self.window_seconds
        return _iso(time.time() + remaining)

    def check_block(self, email: str, ip_address: str) -> None:
        """Raise when this email+IP pair is currently blocked."""
        email = _normalize_email(email)
        record = self.store.get(email, ip_address)
        if record is None or not record.is_blocked:
            return

        reason = record.block_reason or "Security violation"
        raise TooManyAttemptsError(
            "This email and IP combination has been temporarily blocked due to: "
            f"{reason}. Please contact support or try again later.",
            errors=[
                {
                    "code": "account_blocked",
                    "blockReason": reason,
                    "blockedUntil": self._blocked_until(email, ip_address),
                    "supportEmail": settings.SUPPORT_EMAIL,
                }
            ],
        )

    def record_failure(
        self,
        email: str,
        ip_address: str,
        user_agent: Optional[str] = None,
        reason: str = "Invalid credentials",
    ) -> AttemptResult:
        email = _normalize_email(email)
        failed = self.store.increment_failure(email, ip_address, user_agent, reason, self.window_seconds)

        if failed >= BLOCK_THRESHOLD:
            self.store.block(
                email,
                ip_address,
                reason=f"Too many failed login attempts ({failed}). Potential brute force attack detected.",
                attempt_type="login_failed",
                user_agent=user_agent,
                ttl_seconds=self.window_seconds,
            )
            logger.critical(
                "login_blocked",
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
                attempt_count=failed,
            )
        elif failed >= WARNING_THRESHOLD:
            logger.warning(
                "login_multiple_failed_attempts",
                email=email,
                ip_address=ip_address,
                user_agent=user_agent,
                attempt_count=failed,
            )

        return AttemptResult(
            failed_count=failed,
            is_warning=WARNING_THRESHOLD <= failed < BLOCK_THRESHOLD,
            is_blocked=failed >= BLOCK_THRESHOLD,
            attempts_remaining=max(0, BLOCK_THRESHOLD - failed),
        )

    def record_success(self, email: str, ip_address: str) -> None:
        self.store.delete(_normalize_email(email), ip_address)

    def warning_for(self, email: str, ip_address: str) -> Optional[str]:
        record = self.store.get(_normalize_email(email), ip_address)
        if record is None:
            return None
        failed = record.failed_attempts
        if WARNING_THRESHOLD <= failed < BLOCK_THRESHOLD:
            remaining = BLOCK_THRESHOLD - failed
            return (
                f"Warning: {failed} failed login attempts detected. "
                f"{remaining} attempts remaining before account is temporarily blocked."
            )
        return None

    @staticmethod
    def suspicion_score(
        headers,
        email: Optional[str],
        password: Optional[str],
    ) -> int:
        """Count bot/script signals on a login request."""
        user_agent = (headers.get("user-agent") or "").strip()
        ua_lower = user_agent.lower()
        signals = [
            not user_agent or ua_lower == "unknown",
            *(marker in ua_lower for marker in BOT_MARKERS),
            bool(password)
            and (
                any(marker in password for marker in SCRIPT_MARKERS)
                or len(password) > MAX_PASSWORD_LENGTH
                or PASSWORD_SUSPICIOUS_RE.search(password) is not None
            ),
            bool(email)
            and (
                "<script>" in email
                or "javascript:" in email
                or EMAIL_RE.match(email) is None
            ),
            not headers.get("accept"),
            not headers.get("accept-language"),
            headers.get("x-requested-with") == "XMLHttpRequest" and not headers.get("referer"),
        ]
        return sum(1 for signal in signals if signal)

    def flag_suspicious(
        self,
        email: str,
        ip_address: str,
        user_agent: Optional[str],
        score: int,
    ) -> None:
        """Block the pair and raise when the suspicion score crosses the threshold."""
        if score < SUSPICION_BLOCK_SCORE or not email:
            return

        email = _normalize_email(email)
        self.store.block(
            email,
            ip_address,
            reason=f"Malicious script/bot activity detected (suspicion score: {score})",
            attempt_type="malicious_script",
            user_agent=user_agent,
            ttl_seconds=self.window_seconds,
            count_attempt=True,
        )

        logger.critical(
            "login_malicious_activity",
            email=email,
            ip_address=ip_address,
            user_agent=user_agent,
            suspicion_score=score,
        )
        raise TooManyAttemptsError(
            "Your request has been flagged as potentially malicious. "
            "Please contact support if this is an error.",
            errors=[
                {
                    "code": "suspicious_activity",
                    "suspicionScore": score,
                    "supportEmail": settings.SUPPORT_EMAIL,
                }
            ],
        )

    def status(self, email: str, ip_address: Optional[str] = None) -> dict:
        email = _normalize_email(email)
        if ip_address:
            record = self.store.get(email, ip_address)
            records = [record] if record else []
        else:
            records = [r for r in self.store.scan() if r.email == email]

        failed = max((r.failed_attempts for r in records), default=0)
        blocked = [r for r in records if r.is_blocked]
        next_allowed = None
        if blocked:
            next_allowed = max(self._blocked_until(r.email, r.ip_address) for r in blocked)
        return {
            "failedAttempts": failed,
            "isBlocked": bool(blocked),
            "attemptsRemaining": max(0, BLOCK_THRESHOLD - failed),
            "recentAttempts": sum(r.total_attempts for r in records),
            "nextAllowedTime": next_allowed,
            "entries": [
                r.to_dict(self.store.ttl(r.email, r.ip_address)) for r in records
            ],
        }

    def clear(self, email: Optional[str] = None, ip_address: Optional[str] = None) -> dict:
        email = _normalize_email(email) if email else None
        if email and ip_address:
            cleared = int(self.store.delete(email, ip_address))
            return {"cleared": cleared, "type": "specific", "email": email, "ipAddress": ip_address}

        cleared = 0
        for record in list(self.store.scan()):
            if email and record.email != email:
                continue
            if ip_address and record.ip_address != ip_address:
                continue
            cleared += int(self.store.delete(record.email, record.ip_address))

        if email:
            return {"cleared": cleared, "type": "email", "email": email}
        if ip_address:
            return {"cleared": cleared, "type": "ip", "ipAddress": ip_address}
        return {"cleared": cleared, "type": "all"}

    def list_blocks(self) -> List[dict]:
        records = sorted(self.store.scan(), key=lambda r: r.last_attempt, reverse=True)
        return [r.to_dict(self.store.ttl(r.email, r.ip_address)) for r in records]


@lru_cache
def get_login_guard() -> LoginGuard:
    window = settings.LOGIN_GUARD_WINDOW_SECONDS
    if settings.LOGIN_GUARD_BACKEND == "memory":
        store: LoginAttemptStore = InMemoryLoginAttemptStore(default_ttl=window)
    else:
        store = RedisLoginAttemptStore(url=settings.REDIS_URL, default_ttl=window)
    return LoginGuard(store, window_seconds=window)
