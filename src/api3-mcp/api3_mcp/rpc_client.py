import time
from typing import Any, Dict, List, Optional

import requests

from .errors import RpcCallError
from .log import get_logger

logger = get_logger(__name__)


class RpcClient:
    """Minimal JSON-RPC 2.0 client for EVM nodes (HTTP POST)."""

    def __init__(
        self,
        rpc_url: str,
        timeout: int = 10,
        max_retries: int = 3,
        backoff_seconds: float = 0.5,
        headers: Optional[Dict[str, str]] = None,
    ) -> None:
        url = (rpc_url or "").strip()
        if not url:
            raise ValueError("rpc_url must be a non-empty string.")

        self.rpc_url = url
        self.timeout = timeout
        self.max_retries = max(1, int(max_retries))
        self.backoff_seconds = float(backoff_seconds)
        self.session = requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        if headers:
            self.session.headers.update(dict(headers))
        self._next_id = 1

    def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """
        Send one request and return its ``result``.

        Connection errors, HTTP 429 and 5xx are retried with linear backoff.
        A JSON-RPC ``error`` object is raised immediately as RpcCallError.
        """
        if not isinstance(method, str) or not method.strip():
            raise ValueError("method must be a non-empty string.")
        if params is None:
            params = []
        if not isinstance(params, list):
            raise ValueError("params must be a list.")

        payload = {
            "jsonrpc": "2.0",
            "id": self._next_id,
            "method": method,
            "params": params,
        }
        self._next_id += 1
        logger.debug("rpc %s -> %s", method, self.rpc_url)

        for attempt in range(1, self.max_retries + 1):
            try:
                response = self.session.post(
                    self.rpc_url,
                    json=payload,
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                if attempt < self.max_retries:
                    logger.debug("rpc %s attempt %d failed: %s", method, attempt, exc)
                    time.sleep(self.backoff_seconds * attempt)
                    continue
                raise RpcCallError(f"{method} failed: {exc}") from exc

            # a node error wins over the HTTP status
            node_error = self._node_error(response)
            if node_error is not None:
                raise node_error
            if (response.status_code == 429 or response.status_code >= 500) and attempt < self.max_retries:
                logger.debug("rpc %s attempt %d got HTTP %d", method, attempt, response.status_code)
                time.sleep(self.backoff_seconds * attempt)
                continue
            if response.status_code >= 400:
                raise RpcCallError(f"{method} failed: HTTP {response.status_code}")
            return self._parse_response(method, response)

        raise RpcCallError(f"{method} failed without a response.")

    def _node_error(self, response: requests.Response) -> Optional[RpcCallError]:
        try:
            data = response.json()
        except ValueError:
            return None
        if not isinstance(data, dict) or not isinstance(data.get("error"), dict):
            return None
        error_obj = data["error"]
        return RpcCallError(
            str(error_obj.get("message") or "unknown error"),
            code=error_obj.get("code"),
            data=error_obj.get("data"),
        )

    def _parse_response(self, method: str, response: requests.Response) -> Any:
        try:
            data = response.json()
        except ValueError as exc:
            raise RpcCallError(f"{method} returned malformed JSON.") from exc
        if not isinstance(data, dict):
            raise RpcCallError("Unexpected JSON-RPC response (non-object).")

        error_obj = data.get("error")
        if error_obj is not None:
            raise RpcCallError(str(error_obj))

        if "result" not in data:
            raise RpcCallError("Unexpected JSON-RPC response (missing result).")
        return data.get("result")
