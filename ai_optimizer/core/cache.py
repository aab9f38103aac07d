"""
Response cache for AI generation results.

Maps a normalized (prompt, params) pair to a previously computed response,
with a per-entry time-to-live and a global size bound. State lives in the
process only.

The cache is meant for a single event loop. Mutations never await, so
coroutines sharing one instance cannot interleave inside them; sharing an
instance across OS threads is not supported.
"""

import asyncio
import copy
import functools
import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, TypeVar

from .token_counter import now_ms

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISS = object()

DEFAULT_TTL_MS = 60 * 60 * 1000  # 1 hour
DEFAULT_MAX_SIZE = 1000


@dataclass
class CacheEntry:
    """A cached response and the bookkeeping needed to expire it."""
    response: Any
    timestamp_ms: int
    ttl_ms: int
    tokens: Optional[int] = None

    def is_expired(self, now: int) -> bool:
        return now - self.timestamp_ms > self.ttl_ms


@dataclass(frozen=True)
class CacheStats:
    size: int
    hits: int
    misses: int
    hit_rate: Optional[float]
    in_flight: int


class ResponseCache:
    """In-memory TTL cache with oldest-first eviction under size pressure.

    Concurrent ``get_or_set`` misses on the same key share one in-flight
    computation when ``single_flight`` is enabled.
    """

    def __init__(
        self,
        default_ttl_ms: int = DEFAULT_TTL_MS,
        max_size: int = DEFAULT_MAX_SIZE,
        single_flight: bool = True,
        clock: Callable[[], int] = now_ms,
    ):
        if default_ttl_ms <= 0:
            raise ValueError("default_ttl_ms must be > 0")
        if max_size <= 0:
            raise ValueError("max_size must be > 0")

        self.default_ttl_ms = default_ttl_ms
        self.max_size = max_size
        self.single_flight = single_flight
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._in_flight: Dict[str, "asyncio.Task[Any]"] = {}
        self._hits = 0
        self._misses = 0

    @staticmethod
    def generate_key(prompt: str, params: Optional[Mapping[str, Any]] = None) -> str:
        """Build a stable key from the prompt and parameters.

        Parameters are serialized as canonical JSON (sorted keys), so their
        order does not matter. SHA-256 makes accidental collisions between
        unrelated prompts negligible.
        """
        content = json.dumps(
            {"prompt": prompt, "params": params},
            sort_keys=True,
            separators=(",", ":"),
            default=str,
        )
        return hashlib.sha256(content.encode("utf-8")).hexdigest()

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, prompt: str, params: Optional[Mapping[str, Any]] = None) -> Optional[Any]:
        """Get cached response if available and not expired."""
        key = self.generate_key(prompt, params)
        cached = self._lookup(key)
        return None if cached is _MISS else cached

    def peek(self, prompt: str, params: Optional[Mapping[str, Any]] = None) -> Optional[Any]:
        """Read an entry without counting a hit or miss or expiring it."""
        entry = self._entries.get(self.generate_key(prompt, params))
        if entry is None or entry.is_expired(self._clock()):
            return None
        return copy.deepcopy(entry.response)

    def invalidate(self, prompt: str, params: Optional[Mapping[str, Any]] = None) -> bool:
        """Drop one entry. Returns whether it was present."""
        return self._entries.pop(self.generate_key(prompt, params), None) is not None

    def _lookup(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None or entry.is_expired(self._clock()):
            if entry is not None:
                del self._entries[key]
            self._misses += 1
            return _MISS

        self._hits += 1
        return copy.deepcopy(entry.response)

    def set(
        self,
        prompt: str,
        response: Any,
        params: Optional[Mapping[str, Any]] = None,
        ttl_ms: Optional[int] = None,
        tokens: Optional[int] = None,
    ) -> None:
        """Store a response, then sweep expired and excess entries."""
        key = self.generate_key(prompt, params)
        self._store(key, response, ttl_ms, tokens)

    def _store(self, key: str, response: Any, ttl_ms: Optional[int], tokens: Optional[int] = None) -> None:
        # pop first so a refreshed key moves to the end of insertion order
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(
            response=copy.deepcopy(response),
            timestamp_ms=self._clock(),
            ttl_ms=ttl_ms or self.default_ttl_ms,
            tokens=tokens,
        )
        self.cleanup()

    def cleanup(self) -> int:
        """Remove expired entries and enforce the size limit.

        Returns:
            Number of entries removed
        """
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]

        removed = len(expired)
        overflow = len(self._entries) - self.max_size
        if overflow > 0:
            oldest = sorted(self._entries.items(), key=lambda item: item[1].timestamp_ms)
            for key, _ in oldest[:overflow]:
                del self._entries[key]
            removed += overflow

        if removed:
            logger.info("Cache cleanup removed %d entries", removed)
        return removed

    def clear(self) -> None:
        """Drop all entries and counters (development/testing)."""
        self._entries.clear()
        self._in_flight.clear()
        self._hits = 0
        self._misses = 0

    def get_stats(self) -> CacheStats:
        lookups = self._hits + self._misses
        return CacheStats(
            size=len(self._entries),
            hits=self._hits,
            misses=self._misses,
            hit_rate=self._hits / lookups if lookups else None,
            in_flight=len(self._in_flight),
        )

    async def get_or_set(
        self,
        prompt: str,
        fetcher: Callable[[], Awaitable[T]],
        params: Optional[Mapping[str, Any]] = None,
        ttl_ms: Optional[int] = None,
    ) -> T:
        """Return the cached response, computing and storing it on a miss.

        Exceptions raised by ``fetcher`` propagate to every caller waiting on
        that computation and nothing is cached. Cancelling one caller never
        cancels the shared computation; it still completes and is stored.
        """
        key = self.generate_key(prompt, params)
        cached = self._lookup(key)
        if cached is not _MISS:
            logger.debug("Cache hit for %s", key[:12])
            return cached

        if not self.single_flight:
            response = await fetcher()
            self._store(key, response, ttl_ms)
            return response

        pending = self._in_flight.get(key)
        if pending is not None:
            logger.debug("Joining in-flight request for %s", key[:12])
            return copy.deepcopy(await asyncio.shield(pending))

        task = asyncio.ensure_future(fetcher())
        self._in_flight[key] = task
        # registered before any shield so the entry is stored before callers resume
        task.add_done_callback(functools.partial(self._settle, key, ttl_ms))
        return await asyncio.shield(task)

    def _settle(self, key: str, ttl_ms: Optional[int], task: "asyncio.Task[Any]") -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        if task.cancelled() or task.exception() is not None:
            return
        self._store(key, task.result(), ttl_ms)


def with_cache(
    fn: Callable[..., Awaitable[T]],
    cache: ResponseCache,
    ttl_ms: Optional[int] = None,
) -> Callable[..., Awaitable[T]]:
    """Add caching to an async AI function.

    The first positional argument is taken as the prompt and the optional
    second positional argument as the parameters mapping.
    """
    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        prompt = args[0] if args else kwargs.get("prompt")
        params = args[1] if len(args) > 1 else kwargs.get("params")
        if not isinstance(prompt, str):
            prompt = json.dumps(prompt, sort_keys=True, default=str)

        return await cache.get_or_set(
            prompt,
            lambda: fn(*args, **kwargs),
            params,
            ttl_ms,
        )

    return wrapper
