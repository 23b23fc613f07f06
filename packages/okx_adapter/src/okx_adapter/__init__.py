"""OKX REST adapter.

This package provides:
- A signed REST client with retry/backoff and error classification
- An unauthenticated market data client
- Typed account query accessors and time-window filtering
- Normalization of bills and fills into typed events
"""

from okx_adapter.account import OkxAccountService, filter_since, summarize_positions
from okx_adapter.errors import (
    ClientError,
    MisconfiguredError,
    NetworkError,
    OkxError,
    RequestFailed,
    RequestTimeoutError,
)
from okx_adapter.market_client import OkxMarketClient
from okx_adapter.normalizer import FillEvent, LedgerEvent
from okx_adapter.rate_limiter import RateLimitConfig, RateLimiter, RateLimitState
from okx_adapter.rest_client import OkxRestClient, sign
from okx_adapter.retry import RetryPolicy

__all__ = [
    "OkxAccountService",
    "filter_since",
    "summarize_positions",
    "ClientError",
    "MisconfiguredError",
    "NetworkError",
    "OkxError",
    "RequestFailed",
    "RequestTimeoutError",
    "OkxMarketClient",
    "FillEvent",
    "LedgerEvent",
    "RateLimitConfig",
    "RateLimiter",
    "RateLimitState",
    "OkxRestClient",
    "sign",
    "RetryPolicy",
]
