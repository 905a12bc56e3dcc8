"""
Response caching.

Best-effort cache of advisor replies keyed by the normalized user
message. Backend failures never reach the caller: reads fail open to a
fresh completion and writes are dropped.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600.0

_NON_WORD = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")


class CacheScope(Enum):
    """Whether cached replies are shared between conversations."""
    CONVERSATION = "conversation"
    GLOBAL = "global"


class CacheBackend(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str, ttl: float) -> None: ...

    def ping(self) -> bool: ...


@dataclass(frozen=True)
class CachedResponse:
    """A reply served from cache."""
    text: str
    cached: bool = True


def normalize_message(text: str) -> str:
    """Lower-case, drop punctuation, collapse whitespace.

    "What's my Savings rate?" and "whats my savings rate" normalize
    to the same string.
    """
    lowered = _NON_WORD.sub("", text.lower())
    return _WHITESPACE.sub(" ", lowered).strip()


def cache_key(
    message: str,
    conversation_id: Optional[str] = None,
    scope: CacheScope = CacheScope.CONVERSATION
) -> str:
    """Derive the cache key for a message under the given scope.

    Raises:
        ValueError: If scope is CONVERSATION and no conversation_id is given
    """
    normalized = normalize_message(message)
    if scope == CacheScope.GLOBAL:
        return f"global:{normalized}"
    if not conversation_id:
        raise ValueError("conversation_id is required for conversation-scoped keys")
    return f"conv:{conversation_id}:{normalized}"


class ResponseCache:
    """Fail-open wrapper around a key-value backend."""

    def __init__(self, backend: CacheBackend, ttl: float = DEFAULT_TTL_SECONDS):
        if ttl <= 0:
            raise ValueError("ttl must be > 0")
        self.backend = backend
        self.ttl = ttl

    def get(self, key: str) -> Optional[CachedResponse]:
        """Return the cached reply, or None on miss or backend failure."""
        try:
            value = self.backend.get(key)
        except Exception:
            logger.warning("Cache read failed for %r, treating as miss", key, exc_info=True)
            return None
        if value is None:
            return None
        return CachedResponse(text=value)

    def set(self, key: str, text: str, ttl: Optional[float] = None) -> bool:
        """Store a reply. Returns False if the backend failed."""
        try:
            self.backend.set(key, text, ttl if ttl is not None else self.ttl)
        except Exception:
            logger.warning("Cache write failed for %r, continuing without cache", key, exc_info=True)
            return False
        return True

    def ping(self) -> bool:
        try:
            return bool(self.backend.ping())
        except Exception:
            logger.warning("Cache backend unreachable", exc_info=True)
            return False
