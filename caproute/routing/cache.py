"""
Resolution Cache.

Process-local cache of lookup payloads keyed by (operation name,
variables). Two steps that need the same lookup within the TTL share one
network call.

Bounds:
    - TTL: entries expire ``ttl_seconds`` after they were written, and are
      dropped lazily when read
    - Size: at most ``max_entries``. A write at capacity first sweeps
      expired entries, then evicts the oldest entry (FIFO). Overwriting an
      existing key never evicts.

``None`` is never stored: a lookup without data is a miss, not a value.

Multi-Worker Consideration:
    Each process (or each caller-owned instance) has its own cache. The
    engine runs on one event loop and never awaits between a cache read
    and the matching write, so no lock is needed.

Usage:
    cache = ResolutionCache(ttl_seconds=60, max_entries=200)
    key = build_cache_key("IssueNodeId", {"owner": "acme", "name": "api", "number": 7})

    payload = cache.get(key)
    if payload is None:
        payload = await fetch()
        cache.set(key, payload)
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from typing import Any

DEFAULT_TTL_SECONDS = 60.0
DEFAULT_MAX_ENTRIES = 200


def build_cache_key(operation_name: str, variables: dict[str, Any]) -> str:
    """Deterministic key: operation name plus variables serialised with sorted keys."""
    return f"{operation_name}:{json.dumps(variables, sort_keys=True, separators=(',', ':'), default=str)}"


class ResolutionCache:
    """TTL + max-size cache for resolved lookup payloads."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        # dicts keep insertion order, which is the FIFO eviction order
        self._store: dict[str, tuple[Any, float]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() > expires_at:
            del self._store[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        if value is None:
            return

        if key not in self._store and len(self._store) >= self.max_entries:
            self._sweep_expired()
            if len(self._store) >= self.max_entries:
                oldest = next(iter(self._store))
                del self._store[oldest]

        self._store[key] = (value, self._clock() + self.ttl_seconds)

    def _sweep_expired(self) -> None:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._store.items() if now > expires_at]
        for key in expired:
            del self._store[key]

    def clear(self) -> None:
        self._store.clear()

    @property
    def size(self) -> int:
        """Stored entries; may include expired ones not yet swept."""
        return len(self._store)

    def __len__(self) -> int:
        return len(self._store)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __repr__(self) -> str:
        return f"<ResolutionCache size={len(self._store)} max_entries={self.max_entries} ttl={self.ttl_seconds}s>"
