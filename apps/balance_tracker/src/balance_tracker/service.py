"""Async facade over the OKX clients, the history store and the reconciler.

Each method is one externally callable operation. Blocking HTTP calls run
in worker threads so independent operations can proceed concurrently.
Failures surface as ``OkxError`` subclasses; ``check_status`` never raises.
"""

import asyncio
import logging
from datetime import datetime, tzinfo, UTC
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from okx_adapter.account import OkxAccountService, filter_since
from okx_adapter.errors import OkxError
from okx_adapter.market_client import OkxMarketClient
from okx_adapter.normalizer import total_equity
from okx_adapter.rate_limiter import RateLimitConfig, RateLimiter
from okx_adapter.rest_client import OkxRestClient, iso_timestamp
from okx_adapter.retry import RetryPolicy

from balance_tracker.config import BalanceTrackerConfig
from balance_tracker.history_store import BalanceHistoryStore, HistoryQuery
from balance_tracker.models import (
    BalanceRecord,
    BalanceSource,
    datetime_to_iso,
    display_fields,
    parse_instant,
)
from balance_tracker.reconciler import BalanceReconciler, ReconciliationResult


logger = logging.getLogger(__name__)


def _with_filtered(payload: dict, records: list[dict]) -> dict:
    return {**payload, "data": records, "totalCount": len(records)}


class BalanceTrackerService:
    """Operations exposed to callers (CLI, or a route layer).

    Example:
        service = BalanceTrackerService.from_config(load_config())
        service.record_balance(Decimal("512.34"))
        history = service.query_history(limit=100)
    """

    def __init__(
        self,
        account: OkxAccountService,
        market: OkxMarketClient,
        store: BalanceHistoryStore,
        reconciler: BalanceReconciler,
        cutoff: datetime,
        tz: tzinfo = UTC,
    ):
        self._account = account
        self._market = market
        self._store = store
        self._reconciler = reconciler
        self._cutoff = cutoff
        self._tz = tz

    @classmethod
    def from_config(cls, config: BalanceTrackerConfig) -> "BalanceTrackerService":
        """Wire up clients, store and reconciler from configuration."""
        api = config.api
        rate_limiter = None
        if api.rate_limit.enabled:
            rate_limiter = RateLimiter(
                RateLimitConfig(
                    max_requests=api.rate_limit.max_requests,
                    window_seconds=api.rate_limit.window_seconds,
                )
            )
        client = OkxRestClient(
            api_key=config.account.api_key,
            api_secret=config.account.secret_key,
            passphrase=config.account.passphrase,
            base_url=api.base_url,
            timeout=api.timeout,
            demo=config.account.demo,
            retry_policy=RetryPolicy(
                max_retries=api.max_retries,
                base_delay=api.backoff_base,
                max_delay=api.backoff_max,
            ),
            rate_limiter=rate_limiter,
        )
        market = OkxMarketClient(
            base_url=api.base_url,
            timeout=api.public_timeout,
            retry_policy=RetryPolicy(
                max_retries=api.public_max_retries,
                base_delay=api.backoff_base,
                max_delay=api.backoff_max,
            ),
        )
        account = OkxAccountService(client)
        store = BalanceHistoryStore(config.history.file_path)
        tz = config.history.tz
        reconciler = BalanceReconciler(
            account=account,
            store=store,
            cutoff=config.cutoff,
            initial_deposit=config.sync.initial_deposit,
            bills_limit=config.sync.bills_limit,
            fills_limit=config.sync.fills_limit,
            tz=tz,
        )
        return cls(account, market, store, reconciler, cutoff=config.cutoff, tz=tz)

    @property
    def store(self) -> BalanceHistoryStore:
        return self._store

    # -------------------------------------------------------------------------
    # Exchange queries
    # -------------------------------------------------------------------------

    async def get_balance(self) -> Any:
        return await asyncio.to_thread(self._account.get_balance)

    async def get_positions(self) -> Any:
        return await asyncio.to_thread(self._account.get_positions)

    async def get_order_history(self, limit: int = 200) -> dict:
        """Archived orders since the cutoff, newest first."""
        response = await asyncio.to_thread(self._account.get_orders_history_archive, limit=limit)
        orders = filter_since(response.get("data") or [], self._cutoff, "cTime")
        orders.sort(key=lambda o: int(o["cTime"]), reverse=True)
        return {"data": orders}

    async def get_fills(
        self,
        inst_type: str = "",
        inst_id: str = "",
        limit: int = 200,
        after: Optional[str] = None,
    ) -> dict:
        response = await asyncio.to_thread(
            self._account.get_fills, inst_type=inst_type, inst_id=inst_id, limit=limit, after=after
        )
        return _with_filtered(
            response, filter_since(response.get("data") or [], self._cutoff, "uTime", "cTime")
        )

    async def get_bills(
        self,
        ccy: str = "",
        type: str = "",
        after: Optional[str] = None,
        limit: int = 500,
    ) -> dict:
        response = await asyncio.to_thread(
            self._account.get_bills, ccy=ccy, type=type, after=after, limit=limit
        )
        return _with_filtered(response, filter_since(response.get("data") or [], self._cutoff, "ts"))

    async def get_positions_history(
        self, inst_type: str = "", limit: int = 100, after: Optional[str] = None
    ) -> dict:
        response = await asyncio.to_thread(
            self._account.get_positions_history, inst_type=inst_type, limit=limit, after=after
        )
        return _with_filtered(
            response, filter_since(response.get("data") or [], self._cutoff, "closeTime", "uTime")
        )

    async def get_ticker(self, inst_id: str) -> Any:
        return await asyncio.to_thread(self._market.get_ticker, inst_id)

    # -------------------------------------------------------------------------
    # Balance history
    # -------------------------------------------------------------------------

    def record_balance(self, value: Any, timestamp: Optional[str] = None) -> dict:
        """Store a manually observed balance.

        Args:
            value: Balance (number or numeric string)
            timestamp: ISO-8601 instant; defaults to now. Naive values are in the
                display timezone. The same instant replaces an earlier record.

        Raises:
            ValueError: If value or timestamp cannot be parsed
        """
        try:
            balance = Decimal(str(value))
        except InvalidOperation as e:
            raise ValueError(f"Invalid balance value: {value!r}") from e
        if not balance.is_finite():
            raise ValueError(f"Invalid balance value: {value!r}")

        instant = parse_instant(timestamp, self._tz) if timestamp else datetime.now(UTC)
        ts = datetime_to_iso(instant)
        date, time = display_fields(instant, self._tz)
        record = BalanceRecord(
            balance=balance,
            timestamp=ts,
            source=BalanceSource.MANUAL,
            date=date,
            time=time,
        )

        count = self._store.upsert(record)
        logger.info(f"Recorded balance {balance} at {ts} ({count} records)")
        return {"success": True, "count": count, "latestBalance": float(balance)}

    def query_history(self, after: Optional[str] = None, limit: Optional[int] = None) -> HistoryQuery:
        """Stored history at/after ``after`` (ISO-8601), keeping the last ``limit``.

        Raises:
            ValueError: If ``after`` is not ISO-8601
        """
        after_dt = parse_instant(after, self._tz) if after else None
        return self._store.query(after=after_dt, limit=limit)

    async def sync_history(self) -> ReconciliationResult:
        return await self._reconciler.run()

    def reset_history(self) -> dict:
        self._store.reset()
        return {"success": True, "count": 0}

    # -------------------------------------------------------------------------
    # Health
    # -------------------------------------------------------------------------

    async def check_status(self) -> dict:
        """Exchange connectivity plus history status. Never raises."""
        start, end = self._store.date_range()
        status = {
            "timestamp": iso_timestamp(),
            "historyCount": self._store.count,
            "historyFile": self._store.file_path,
            "dataRange": {"start": start, "end": end},
        }
        try:
            balance = await self.get_balance()
        except OkxError as e:
            logger.error(f"Status check failed: {e.kind}: {e}")
            return {**status, "status": "ERROR", "apiConnected": False, "error": str(e)}

        data = balance.get("data") or []
        rate_limit = self._account.client.rate_limit.to_dict()
        if self._account.client.rate_limiter is not None:
            rate_limit["localCapacity"] = self._account.client.rate_limiter.get_available_capacity()
        return {
            **status,
            "status": "OK",
            "apiConnected": True,
            "hasBalanceData": bool(data and data[0]),
            "rateLimit": rate_limit,
        }

    async def get_stats(self) -> dict:
        """History totals, current equity and number of open positions."""
        balance, positions = await asyncio.gather(self.get_balance(), self.get_positions())
        return {
            "balance": {
                **self._store.summary(),
                "currentBalance": float(total_equity(balance)),
            },
            "positions": {"active": len(positions.get("data") or [])},
            "historyFile": self._store.file_path,
        }
