"""
In-process TTL cache shared by all connectors.

Keys are ``{connector_type}:{method}:{hash(params)}`` so connectors never see
each other's entries. Expiry is checked lazily on every read; an optional
background sweep only reclaims memory and is never relied on for correctness.

Concurrent misses on the same key are coalesced (single-flight): one fetch
runs and every caller awaits its result. Failed fetches are never cached.
"""

from __future__ import annotations

import asyncio
import contextlib
import functools
import logging
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

import orjson
from pydantic import BaseModel

from depinconnect.contracts import CacheEntry
from depinconnect.errors import CacheError
from depinconnect.simulator.seeded import string_hash, to_base36

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISS = object()


@dataclass
class CacheStats:
    """Counters for observability."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    expired: int = 0
    evictions: int = 0
    coalesced: int = 0


class CacheOutcome(str, Enum):
    """How a get_or_set call was served."""

    HIT = "hit"
    MISS = "miss"
    COALESCED = "coalesced"


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    raise TypeError(f"Type is not JSON serializable: {type(value).__name__}")


def _type_name(connector_type: Any) -> str:
    return connector_type.value if isinstance(connector_type, Enum) else str(connector_type)


def make_cache_key(connector_type: Any, method: str, params: Any = None) -> str:
    """Build a cache key; params are serialized with sorted keys before hashing."""
    if params is None:
        digest = "0"
    else:
        encoded = orjson.dumps(params, default=_json_default, option=orjson.OPT_SORT_KEYS)
        digest = to_base36(abs(string_hash(encoded.decode())))
    return f"{_type_name(connector_type)}:{method}:{digest}"


class CacheStore:
    """
    TTL cache with single-flight ``get_or_set``.

    Args:
        default_ttl_seconds: TTL used when ``set``/``get_or_set`` get no ttl.
        max_keys: Capacity; inserting past it evicts the oldest entry.
        single_flight: Coalesce concurrent misses on the same key.
        time_fn: Clock in milliseconds (injectable for tests).
    """

    def __init__(
        self,
        default_ttl_seconds: float = 300,
        max_keys: int = 1000,
        *,
        single_flight: bool = True,
        time_fn: Callable[[], int] | None = None,
    ) -> None:
        if default_ttl_seconds <= 0:
            raise ValueError("default_ttl_seconds must be > 0")
        if max_keys < 1:
            raise ValueError("max_keys must be >= 1")
        self._default_ttl = default_ttl_seconds
        self._max_keys = max_keys
        self._single_flight = single_flight
        self._time_fn = time_fn
        self._entries: OrderedDict[str, CacheEntry[Any]] = OrderedDict()
        self._inflight: dict[str, asyncio.Task[Any]] = {}
        self._sweep_task: asyncio.Task[None] | None = None
        self.stats = CacheStats()

    def _now_ms(self) -> int:
        if self._time_fn is not None:
            return self._time_fn()
        return int(time.time() * 1000)

    @property
    def sweep_interval_seconds(self) -> float:
        return max(1.0, self._default_ttl / 10)

    def _key(self, connector_type: Any, method: str, params: Any) -> str:
        try:
            return make_cache_key(connector_type, method, params)
        except TypeError as exc:
            raise CacheError("key", exc) from exc

    def _lookup(self, key: str) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            self.stats.misses += 1
            return _MISS
        if entry.is_expired(self._now_ms()):
            del self._entries[key]
            self.stats.expired += 1
            self.stats.misses += 1
            logger.debug("Cache entry expired", extra={"cache_key": key})
            return _MISS
        self.stats.hits += 1
        return entry.data

    def _store(self, key: str, data: Any, ttl: float | None) -> None:
        ttl_seconds = self._default_ttl if ttl is None else ttl
        if ttl_seconds <= 0:
            raise CacheError("set", ValueError(f"ttl must be > 0, got {ttl_seconds}"))
        if key in self._entries:
            self._entries.move_to_end(key)
        elif len(self._entries) >= self._max_keys:
            evicted, _ = self._entries.popitem(last=False)
            self.stats.evictions += 1
            logger.debug("Cache full, evicted oldest entry", extra={"cache_key": evicted})
        self._entries[key] = CacheEntry(
            data=data, written_at_ms=self._now_ms(), ttl_seconds=ttl_seconds
        )
        self.stats.sets += 1

    def get(self, connector_type: Any, method: str, params: Any = None) -> Any | None:
        """Return the live value for the key, or None on a miss."""
        value = self._lookup(self._key(connector_type, method, params))
        return None if value is _MISS else value

    def set(
        self,
        connector_type: Any,
        method: str,
        data: Any,
        ttl: float | None = None,
        params: Any = None,
    ) -> None:
        self._store(self._key(connector_type, method, params), data, ttl)

    def delete(self, connector_type: Any, method: str, params: Any = None) -> bool:
        return self._entries.pop(self._key(connector_type, method, params), None) is not None

    def has(self, connector_type: Any, method: str, params: Any = None) -> bool:
        """True when an unexpired entry exists. Does not touch hit/miss counters."""
        entry = self._entries.get(self._key(connector_type, method, params))
        return entry is not None and not entry.is_expired(self._now_ms())

    def get_ttl(self, connector_type: Any, method: str, params: Any = None) -> float:
        """Remaining lifetime in seconds; 0 when absent or expired."""
        entry = self._entries.get(self._key(connector_type, method, params))
        if entry is None:
            return 0.0
        return entry.remaining_seconds(self._now_ms())

    def extend_ttl(
        self,
        connector_type: Any,
        method: str,
        additional_seconds: float,
        params: Any = None,
    ) -> bool:
        """Push expiry of a live entry back by ``additional_seconds``."""
        key = self._key(connector_type, method, params)
        entry = self._entries.get(key)
        if entry is None or entry.is_expired(self._now_ms()):
            return False
        self._entries[key] = entry.model_copy(
            update={"ttl_seconds": entry.ttl_seconds + additional_seconds}
        )
        return True

    def clear_connector(self, connector_type: Any) -> int:
        """Drop every entry of one connector type; return how many were removed."""
        prefix = f"{_type_name(connector_type)}:"
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        logger.info(
            "Cleared connector cache",
            extra={"connector": _type_name(connector_type), "removed": len(doomed)},
        )
        return len(doomed)

    def clear_all(self) -> None:
        self._entries.clear()
        self.stats = CacheStats()

    def sweep(self) -> int:
        """Remove expired entries now; return how many were removed."""
        now_ms = self._now_ms()
        doomed = [key for key, entry in self._entries.items() if entry.is_expired(now_ms)]
        for key in doomed:
            del self._entries[key]
        self.stats.expired += len(doomed)
        return len(doomed)

    async def get_or_set(
        self,
        connector_type: Any,
        method: str,
        fetch_fn: Callable[[], Awaitable[T]],
        ttl: float | None = None,
        params: Any = None,
    ) -> T:
        """
        Return the cached value, or fetch, cache and return it.

        Errors from ``fetch_fn`` propagate unchanged and leave no entry behind.
        With single-flight on, concurrent callers for the same key share one
        ``fetch_fn`` call.
        """
        value, _ = await self.get_or_set_with_outcome(
            connector_type, method, fetch_fn, ttl=ttl, params=params
        )
        return value

    async def get_or_set_with_outcome(
        self,
        connector_type: Any,
        method: str,
        fetch_fn: Callable[[], Awaitable[T]],
        ttl: float | None = None,
        params: Any = None,
    ) -> tuple[T, CacheOutcome]:
        """
        Like get_or_set, also reporting how the value was obtained.

        MISS means this caller started the fetch. COALESCED means it joined a
        fetch another caller had in flight, so no cached entry served it.
        """
        key = self._key(connector_type, method, params)
        value = self._lookup(key)
        if value is not _MISS:
            return value, CacheOutcome.HIT  # type: ignore[return-value]

        if not self._single_flight:
            return await self._fill(key, fetch_fn, ttl), CacheOutcome.MISS

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._fill(key, fetch_fn, ttl))
            self._inflight[key] = task
            task.add_done_callback(functools.partial(self._forget_inflight, key))
            outcome = CacheOutcome.MISS
        else:
            self.stats.coalesced += 1
            outcome = CacheOutcome.COALESCED
        return await asyncio.shield(task), outcome

    def _forget_inflight(self, key: str, task: asyncio.Task[Any]) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    async def _fill(self, key: str, fetch_fn: Callable[[], Awaitable[T]], ttl: float | None) -> T:
        value = await fetch_fn()
        self._store(key, value, ttl)
        return value

    def cached(
        self,
        connector_type: Any,
        method: str,
        fn: Callable[..., Awaitable[T]],
        ttl: float | None = None,
    ) -> Callable[..., Awaitable[T]]:
        """Wrap ``fn`` so calls are cached by their arguments."""

        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await self.get_or_set(
                connector_type,
                method,
                lambda: fn(*args, **kwargs),
                ttl=ttl,
                params={"args": list(args), "kwargs": kwargs},
            )

        return wrapper

    def start(self) -> None:
        """Start the background sweep. Requires a running event loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.get_running_loop().create_task(self._sweep_loop())

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            removed = self.sweep()
            if removed:
                logger.debug("Cache sweep", extra={"removed": removed})

    async def close(self) -> None:
        """Stop the background sweep."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None

    def get_stats(self) -> dict[str, int | float]:
        lookups = self.stats.hits + self.stats.misses
        return {
            "keys": len(self._entries),
            "hits": self.stats.hits,
            "misses": self.stats.misses,
            "sets": self.stats.sets,
            "expired": self.stats.expired,
            "evictions": self.stats.evictions,
            "coalesced": self.stats.coalesced,
            "inflight": len(self._inflight),
            "hit_rate": round(self.stats.hits / lookups, 4) if lookups else 0.0,
        }
