"""Signed REST client for OKX private endpoints.

Every request carries an HMAC-SHA256 signature over
``timestamp + METHOD + requestPath + body``, base64 encoded, together with
the API key, passphrase and the ISO-8601 timestamp that was signed.

Reference:
- Authentication: https://www.okx.com/docs-v5/en/#overview-rest-authentication
- Error codes: https://www.okx.com/docs-v5/en/#error-code
"""

import base64
import hashlib
import hmac
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any, Optional

import requests

from okx_adapter.errors import (
    ClientError,
    MisconfiguredError,
    NetworkError,
    RequestFailed,
    RequestTimeoutError,
)
from okx_adapter.rate_limiter import RateLimiter, RateLimitState
from okx_adapter.retry import RetryPolicy


logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.okx.com"
USER_AGENT = "okx-balance-tracker/1.0"


def iso_timestamp(now: Optional[datetime] = None) -> str:
    """Return an OKX request timestamp, e.g. ``2025-11-04T05:52:00.123Z``."""
    now = now or datetime.now(UTC)
    return now.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def sign(timestamp: str, method: str, request_path: str, body: str, secret: str) -> str:
    """Compute the OK-ACCESS-SIGN header value.

    Args:
        timestamp: ISO-8601 timestamp sent in OK-ACCESS-TIMESTAMP
        method: HTTP method (any case, upper-cased before signing)
        request_path: Path including the query string
        body: JSON body as sent, or "" for requests without one
        secret: API secret key

    Returns:
        Base64 encoded HMAC-SHA256 digest
    """
    message = f"{timestamp}{method.upper()}{request_path}{body}"
    digest = hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def _error_details(response: requests.Response) -> tuple[Optional[str], str, Optional[dict]]:
    """Pull OKX's code/msg out of an error response, if it sent JSON."""
    try:
        data = response.json()
    except ValueError:
        return None, response.text or f"HTTP {response.status_code}", None
    if not isinstance(data, dict):
        return None, f"HTTP {response.status_code}", None
    msg = data.get("msg") or f"API request failed: {response.status_code}"
    return data.get("code"), msg, data


@dataclass
class OkxRestClient:
    """Authenticated OKX REST client.

    Responsibilities:
    - Sign each attempt with a fresh timestamp
    - Retry network failures and timeouts via RetryPolicy
    - Classify failures (ClientError, RequestFailed, NetworkError, RequestTimeoutError)
    - Record rate limit hints from response headers

    Example:
        client = OkxRestClient(api_key="xxx", api_secret="yyy", passphrase="zzz")
        payload = client.execute("GET", "/api/v5/account/balance")
        total_eq = payload["data"][0]["totalEq"]
    """

    api_key: str = ""
    api_secret: str = ""
    passphrase: str = ""
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 15.0
    demo: bool = False
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    rate_limiter: Optional[RateLimiter] = None

    rate_limit: RateLimitState = field(default_factory=RateLimitState, init=False)
    _session: requests.Session = field(default=None, init=False, repr=False)

    def __post_init__(self):
        """Create the HTTP session."""
        self._session = requests.Session()

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.api_secret and self.passphrase)

    def execute(self, method: str, path: str, body: Optional[dict] = None) -> Any:
        """Send a signed request and return the decoded JSON payload.

        A non-"0" ``code`` in a 2xx payload is logged but still returned;
        interpreting OKX's envelope is the caller's job.

        Args:
            method: HTTP method
            path: Request path including query string (e.g. "/api/v5/account/bills?limit=100")
            body: Optional JSON body

        Returns:
            Decoded JSON payload

        Raises:
            MisconfiguredError: If any credential is missing (no request is sent)
            ClientError: On HTTP 4xx
            RequestFailed: On HTTP 5xx or an unreadable body
            NetworkError: If no response arrived after all retries
            RequestTimeoutError: If every attempt timed out
        """
        if not self.has_credentials:
            raise MisconfiguredError(
                "OKX API credentials are not configured. Set OKX_API_KEY, OKX_SECRET_KEY and OKX_PASSPHRASE."
            )

        method = method.upper()
        body_str = json.dumps(body, separators=(",", ":")) if body else ""

        return self.retry_policy.call(
            lambda: self._attempt(method, path, body_str),
            description=f"{method} {path}",
        )

    def _headers(self, method: str, path: str, body_str: str) -> dict[str, str]:
        timestamp = iso_timestamp()
        headers = {
            "OK-ACCESS-KEY": self.api_key,
            "OK-ACCESS-SIGN": sign(timestamp, method, path, body_str, self.api_secret),
            "OK-ACCESS-TIMESTAMP": timestamp,
            "OK-ACCESS-PASSPHRASE": self.passphrase,
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }
        if self.demo:
            headers["x-simulated-trading"] = "1"
        return headers

    def _wait_for_rate_limit(self) -> None:
        if self.rate_limiter is None:
            return
        wait = self.rate_limiter.wait_time()
        if wait > 0:
            logger.debug(f"Rate limit: waiting {wait:.3f}s")
            time.sleep(wait)
        self.rate_limiter.record_request()

    def _attempt(self, method: str, path: str, body_str: str) -> Any:
        """One signed attempt. The timestamp is regenerated every call."""
        self._wait_for_rate_limit()
        headers = self._headers(method, path, body_str)
        url = f"{self.base_url}{path}"

        try:
            response = self._session.request(
                method,
                url,
                headers=headers,
                data=body_str or None,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise RequestTimeoutError(f"Request timed out after {self.timeout}s: {e}") from e
        except requests.RequestException as e:
            raise NetworkError(f"Network connection failed: {e}") from e

        self.rate_limit.update_from_headers(response.headers)

        if response.status_code >= 400:
            code, msg, data = _error_details(response)
            logger.error(f"OKX {method} {path} failed: HTTP {response.status_code} [{code}] {msg}")
            error_cls = ClientError if response.status_code < 500 else RequestFailed
            raise error_cls(msg, status=response.status_code, code=code, data=data)

        try:
            payload = response.json()
        except ValueError as e:
            raise RequestFailed(
                f"Non-JSON response from {path}", status=response.status_code
            ) from e

        if isinstance(payload, dict) and payload.get("code") not in (None, "0"):
            logger.warning(f"OKX API warning: {payload.get('msg')} (code: {payload.get('code')})")

        return payload
