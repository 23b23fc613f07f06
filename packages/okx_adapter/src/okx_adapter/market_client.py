"""Unauthenticated client for OKX market data endpoints.

Reference:
- Ticker: https://www.okx.com/docs-v5/en/#public-data-rest-api-get-ticker
- Trades: https://www.okx.com/docs-v5/en/#order-book-trading-market-data-get-trades
- Candles: https://www.okx.com/docs-v5/en/#order-book-trading-market-data-get-candlesticks
"""

import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlencode

import requests

from okx_adapter.errors import NetworkError, RequestFailed, RequestTimeoutError
from okx_adapter.rest_client import DEFAULT_BASE_URL, USER_AGENT
from okx_adapter.retry import RetryPolicy


logger = logging.getLogger(__name__)

MARKET_PREFIX = "/api/v5/market"


@dataclass
class OkxMarketClient:
    """Read-only market data client with a lighter retry budget.

    No signing, and HTTP errors are never reported as auth failures:
    any error status surfaces as RequestFailed.
    """

    base_url: str = DEFAULT_BASE_URL
    timeout: float = 10.0
    retry_policy: RetryPolicy = field(default_factory=lambda: RetryPolicy(max_retries=2))

    _session: requests.Session = field(default=None, init=False, repr=False)

    def __post_init__(self):
        self._session = requests.Session()

    def fetch(self, path: str) -> Any:
        """GET a public endpoint and return the decoded JSON payload."""
        return self.retry_policy.call(lambda: self._attempt(path), description=f"GET {path}")

    def _attempt(self, path: str) -> Any:
        try:
            response = self._session.get(
                f"{self.base_url}{path}",
                headers={"User-Agent": USER_AGENT},
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise RequestTimeoutError(f"Request timed out after {self.timeout}s: {e}") from e
        except requests.RequestException as e:
            raise NetworkError(f"Network connection failed: {e}") from e

        if response.status_code >= 400:
            logger.error(f"Market data request {path} failed: HTTP {response.status_code}")
            raise RequestFailed(
                f"Market data request failed: {response.status_code}",
                status=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise RequestFailed(f"Non-JSON response from {path}", status=response.status_code) from e

    def get_ticker(self, inst_id: str) -> Any:
        return self.fetch(f"{MARKET_PREFIX}/ticker?{urlencode({'instId': inst_id})}")

    def get_trades(self, inst_id: str, limit: int = 100) -> Any:
        params = {"instId": inst_id, "limit": max(1, min(limit, 500))}
        return self.fetch(f"{MARKET_PREFIX}/trades?{urlencode(params)}")

    def get_candles(self, inst_id: str, bar: str = "1m", limit: int = 100) -> Any:
        """Fetch candlesticks (newest first, as OKX returns them)."""
        params = {"instId": inst_id, "bar": bar, "limit": max(1, min(limit, 300))}
        return self.fetch(f"{MARKET_PREFIX}/candles?{urlencode(params)}")
