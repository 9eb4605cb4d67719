import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

import requests

from .cache import ResponseCache
from .errors import FetchError
from .log import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RestClient:
    """Thin wrapper around third-party JSON APIs with basic retry and TTL cache."""

    def __init__(
        self,
        timeout: int = 10,
        max_retries: int = 3,
        backoff_seconds: float = 0.5,
        headers: Optional[Dict[str, str]] = None,
        cache: Optional[ResponseCache] = None,
    ) -> None:
        self.timeout = timeout
        self.max_retries = max(1, int(max_retries))
        self.backoff_seconds = backoff_seconds
        self.session = requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        if headers:
            self.session.headers.update(dict(headers))
        self.cache = cache or ResponseCache()

    def _is_rate_limit_payload(self, payload: Any) -> bool:
        if not isinstance(payload, dict):
            return False

        candidates: list[str] = []
        for key in ("message", "error", "status"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                candidates.append(value)
            elif isinstance(value, dict):
                message = value.get("error_message") or value.get("message")
                if isinstance(message, str):
                    candidates.append(message)

        haystack = " ".join(candidates).lower()
        return "rate limit" in haystack or "too many requests" in haystack

    def get_json(
        self,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        ttl_seconds: float = 0,
    ) -> Any:
        """GET ``url`` and return decoded JSON; any failure is raised as FetchError."""
        cached = self.cache.get(url, params)
        if cached is not None:
            return cached

        last_error: Optional[Exception] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                response = self.session.get(
                    url,
                    params=params or {},
                    headers=headers,
                    timeout=self.timeout,
                )
                if (response.status_code == 429 or response.status_code >= 500) and attempt < self.max_retries:
                    time.sleep(self.backoff_seconds * attempt)
                    continue

                response.raise_for_status()
                payload = response.json()
                if self._is_rate_limit_payload(payload) and attempt < self.max_retries:
                    time.sleep(self.backoff_seconds * attempt)
                    continue
                self.cache.set(url, params, payload, ttl_seconds)
                return payload
            except requests.RequestException as exc:
                last_error = exc
                if attempt < self.max_retries:
                    time.sleep(self.backoff_seconds * attempt)
            except ValueError as exc:
                last_error = exc
                if attempt < self.max_retries:
                    time.sleep(self.backoff_seconds * attempt)

        reason = str(last_error) if last_error else "no response"
        if isinstance(last_error, ValueError):
            reason = "failed to parse JSON response"
        raise FetchError(url, reason)


@dataclass(frozen=True)
class FetchResult(Generic[T]):
    """Outcome of an enrichment lookup; ``degraded`` marks placeholder data."""

    value: T
    error: Optional[FetchError] = None

    @property
    def degraded(self) -> bool:
        return self.error is not None


def fetch_with_fallback(fetch: Callable[[], T], placeholder: Callable[[FetchError], T]) -> FetchResult[T]:
    """
    Run ``fetch``; on FetchError build a placeholder instead.

    Only FetchError is caught: decoding, RPC and validation errors still
    propagate to the caller.
    """
    try:
        return FetchResult(value=fetch())
    except FetchError as exc:
        logger.warning("Falling back to placeholder data: %s", exc)
        return FetchResult(value=placeholder(exc), error=exc)
