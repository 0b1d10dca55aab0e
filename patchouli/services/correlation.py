"""Server-side login intent, keyed by the OAuth ``state`` value."""
import logging
import secrets
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Callable, Dict, Optional

from patchouli.config import get_settings
from patchouli.services.locking import ReadWriteLock

logger = logging.getLogger(__name__)


class Purpose(str, Enum):
    LOGIN = "login"
    REGISTER = "register"


@dataclass(frozen=True)
class Correlation:
    """What the client wanted when it started the provider round trip."""
    purpose: Purpose
    client_token: Optional[str] = None
    invite_code: Optional[str] = None
    created_at: float = field(default=0.0, compare=False)


class CorrelationStore:
    """Single-use records looked up by a random key.

    Records older than ``ttl_seconds`` are dropped on the next ``open`` or
    ``claim``, and at most ``max_records`` are held; the oldest goes first.
    """

    def __init__(self, ttl_seconds: int = 600, max_records: int = 10000,
                 clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self.max_records = max_records
        self._clock = clock
        self._records: Dict[str, Correlation] = {}
        self._lock = ReadWriteLock()

    def open(self, purpose: Purpose, client_token: Optional[str] = None,
             invite_code: Optional[str] = None) -> str:
        key = secrets.token_urlsafe(24)
        now = self._clock()
        record = Correlation(purpose=purpose, client_token=client_token or None,
                             invite_code=invite_code or None, created_at=now)
        with self._lock.write():
            self._prune(now)
            while len(self._records) >= self.max_records:
                # Insertion order is creation order.
                self._records.pop(next(iter(self._records)))
                logger.warning("Login state store full; dropped the oldest record")
            self._records[key] = record
        return key

    def claim(self, key: str) -> Optional[Correlation]:
        now = self._clock()
        with self._lock.write():
            self._prune(now)
            return self._records.pop(key, None)

    def _prune(self, now: float) -> None:
        """Drop expired records; caller holds the write lock."""
        cutoff = now - self.ttl_seconds
        dropped = 0
        while self._records:
            oldest = next(iter(self._records))
            if self._records[oldest].created_at > cutoff:
                break
            del self._records[oldest]
            dropped += 1
        if dropped:
            logger.debug(f"Dropped {dropped} expired login states")


@lru_cache
def get_correlation_store() -> CorrelationStore:
    settings = get_settings()
    return CorrelationStore(
        ttl_seconds=settings.login_state_ttl_seconds,
        max_records=settings.login_state_max_records,
    )
