import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple


class ResponseCache:
    """Simple in-memory TTL cache keyed by url+params."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._memory: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()
        self._clock = clock

    def _key(self, url: str, params: Optional[Dict[str, Any]]) -> str:
        if not params:
            return url
        query = "&".join(f"{k}={params[k]}" for k in sorted(params))
        return f"{url}?{query}"

    def get(self, url: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        key = self._key(url, params)
        with self._lock:
            entry = self._memory.get(key)
            if entry is None:
                return None
            expires_at, data = entry
            if self._clock() >= expires_at:
                del self._memory[key]
                return None
            return data

    def set(self, url: str, params: Optional[Dict[str, Any]], data: Any, ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            return
        key = self._key(url, params)
        with self._lock:
            self._memory[key] = (self._clock() + ttl_seconds, data)

    def clear(self) -> None:
        with self._lock:
            self._memory.clear()
