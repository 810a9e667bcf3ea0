"""In-process TTL cache for provider responses."""
import asyncio
import time
from typing import Any, Callable, Dict, Optional, Tuple


class TTLCache:
    """
    Async-safe key/value cache with per-entry expiry.

    Used by the adapters so that one slate sweep costs one paid odds call
    rather than one per game.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[Any, float]] = {}  # key -> (value, expiry)
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        """Cached value, or None when missing or expired."""
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expiry = entry
            if self._clock() >= expiry:
                del self._entries[key]
                return None
            return value

    async def put(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        expiry = self._clock() + (self.ttl_seconds if ttl is None else ttl)
        async with self._lock:
            self._entries[key] = (value, expiry)

    async def invalidate(self, key: Optional[str] = None) -> None:
        """Drop one key, or everything when key is None."""
        async with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def make_key(endpoint: str, **params: Any) -> str:
        """Cache key from endpoint name and parameters."""
        parts = ",".join(f"{k}={v}" for k, v in sorted(params.items()) if v is not None)
        return f"{endpoint}:{parts}" if parts else endpoint
