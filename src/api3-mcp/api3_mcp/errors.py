from typing import Any, Optional


class Api3Error(Exception):
    """Base class for every error raised by the adapter."""


class FormatError(Api3Error, ValueError):
    """Malformed decimal string, address, bytes32 or uint256 input."""


class UnsupportedNetworkError(Api3Error, ValueError):
    """Unknown network id, or a feature requested on a network without it."""

    def __init__(self, network: str, message: Optional[str] = None) -> None:
        self.network = network
        super().__init__(message or f"Unsupported network: {network}")


class DecodeError(Api3Error, ValueError):
    """Return data is too short, misaligned or not hex."""


class SelectorResolutionError(Api3Error, ValueError):
    """A function signature could not be turned into a selector."""


class MissingCredentialError(Api3Error, ValueError):
    """A write-intent operation was invoked without a private key."""


class ConfigError(Api3Error, ValueError):
    """Raised when configuration data is invalid or missing."""


class RpcCallError(Api3Error):
    """Transport failure or node-reported JSON-RPC error."""

    def __init__(
        self,
        message: str,
        code: Optional[int] = None,
        data: Any = None,
    ) -> None:
        self.code = code
        self.message = message
        self.data = data
        parts: list[str] = []
        if code is not None:
            parts.append(f"code {code}")
        parts.append(message or "unknown error")
        if data:
            parts.append(str(data))
        super().__init__(f"RPC error: {': '.join(parts)}.")


class FetchError(Api3Error):
    """REST lookup failed; callers may substitute a labelled placeholder."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Request to {url} failed: {reason}")
