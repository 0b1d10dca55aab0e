"""Pending out-of-band logins polled by bot clients."""
import logging
import uuid
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Dict, Optional

from patchouli.services.locking import ReadWriteLock

logger = logging.getLogger(__name__)


class PendingStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class Completion:
    credential: str
    email: str


@dataclass(frozen=True)
class PollResult:
    status: PendingStatus
    completion: Optional[Completion] = None


class PendingAuthRegistry:
    """Maps client tokens to the credential produced by a browser login."""

    def __init__(self):
        self._entries: Dict[str, Optional[Completion]] = {}
        self._lock = ReadWriteLock()

    def create_pending(self) -> str:
        token = str(uuid.uuid4())
        with self._lock.write():
            self._entries[token] = None
        return token

    def poll(self, token: str) -> PollResult:
        with self._lock.read():
            if token not in self._entries:
                return PollResult(PendingStatus.NOT_FOUND)
            completion = self._entries[token]
        if completion is None:
            return PollResult(PendingStatus.PENDING)
        return PollResult(PendingStatus.COMPLETED, completion)

    def complete(self, token: str, credential: str, email: str) -> bool:
        """Fill a still-pending entry; an entry is filled at most once."""
        with self._lock.write():
            if token not in self._entries or self._entries[token] is not None:
                return False
            self._entries[token] = Completion(credential=credential, email=email)
        logger.info(f"Pending auth completed for {email}")
        return True


@lru_cache
def get_pending_registry() -> PendingAuthRegistry:
    return PendingAuthRegistry()
