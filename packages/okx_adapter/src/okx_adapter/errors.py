"""Error classification for OKX REST calls.

Every failure raised by the adapter is an ``OkxError`` subclass so callers
can tell configuration problems, rejected requests and transient network
trouble apart without inspecting messages.
"""

from typing import Optional


class OkxError(Exception):
    """Base class for all OKX adapter failures."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        code: Optional[str] = None,
        data: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code
        self.data = data

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "status": self.status,
            "code": self.code,
        }


class MisconfiguredError(OkxError):
    """API credentials are missing. Raised before any network call."""


class ClientError(OkxError):
    """Remote rejected the request with a 4xx status (bad params or auth)."""


class RequestTimeoutError(OkxError):
    """Per-attempt deadline exceeded."""


class NetworkError(OkxError):
    """No response received (connection refused, DNS, reset)."""


class RequestFailed(OkxError):
    """Remote returned an error we do not retry (5xx, unreadable body)."""
