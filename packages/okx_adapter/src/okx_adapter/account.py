"""Typed read accessors for OKX account and trade history endpoints.

All accessors return the raw decoded payload (``{"code", "msg", "data"}``).
Time-window filtering is a separate pure step (``filter_since``) so callers
decide which cutoff applies.

Reference:
- Balance: https://www.okx.com/docs-v5/en/#trading-account-rest-api-get-balance
- Positions: https://www.okx.com/docs-v5/en/#trading-account-rest-api-get-positions
- Positions history: https://www.okx.com/docs-v5/en/#trading-account-rest-api-get-positions-history
- Bills: https://www.okx.com/docs-v5/en/#trading-account-rest-api-get-bills-details-last-7-days
- Fills: https://www.okx.com/docs-v5/en/#order-book-trading-trade-get-transaction-details-last-3-days
- Order history: https://www.okx.com/docs-v5/en/#order-book-trading-trade-get-order-history-last-7-days
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional
from urllib.parse import urlencode

from okx_adapter.errors import OkxError
from okx_adapter.rest_client import OkxRestClient, iso_timestamp


logger = logging.getLogger(__name__)

MAX_LIMIT = 500


def clamp_limit(limit: int) -> int:
    """Clamp a page size into [1, MAX_LIMIT]."""
    return max(1, min(int(limit), MAX_LIMIT))


def build_path(endpoint: str, **params) -> str:
    """Append non-empty params to an endpoint as a query string."""
    query = {k: v for k, v in params.items() if v not in (None, "")}
    if not query:
        return endpoint
    return f"{endpoint}?{urlencode(query)}"


def _to_ms(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def filter_since(records: Iterable[dict], cutoff: datetime, *time_keys: str) -> list[dict]:
    """Keep records whose timestamp is at or after ``cutoff``.

    The timestamp is the first non-empty value among ``time_keys``
    (epoch milliseconds). Records without a usable timestamp are dropped.

    Args:
        records: Raw records from an OKX payload
        cutoff: Timezone-aware earliest instant to keep
        time_keys: Field names to try in order (e.g. "uTime", "cTime")

    Returns:
        Filtered records in their original order
    """
    cutoff_ms = int(cutoff.timestamp() * 1000)
    kept = []
    for record in records:
        ts_ms = None
        for key in time_keys:
            if record.get(key):
                ts_ms = _to_ms(record[key])
                break
        if ts_ms is not None and ts_ms >= cutoff_ms:
            kept.append(record)
    return kept


def _dec(value: Any) -> Decimal:
    try:
        return Decimal(str(value or "0"))
    except InvalidOperation:
        return Decimal("0")


def summarize_positions(positions: Optional[list[dict]]) -> dict:
    """Aggregate margin and unrealized PnL across open positions.

    Returns:
        Dict with totalCount, totalMargin, totalUnrealizedPnl, longCount,
        shortCount and a byInstrument breakdown.
    """
    summary = {
        "totalCount": 0,
        "totalMargin": Decimal("0"),
        "totalUnrealizedPnl": Decimal("0"),
        "longCount": 0,
        "shortCount": 0,
        "byInstrument": {},
    }
    if not positions:
        return summary

    summary["totalCount"] = len(positions)
    for position in positions:
        margin = _dec(position.get("margin"))
        upl = _dec(position.get("upl"))
        summary["totalMargin"] += margin
        summary["totalUnrealizedPnl"] += upl

        pos_side = position.get("posSide")
        if pos_side == "long":
            summary["longCount"] += 1
        elif pos_side == "short":
            summary["shortCount"] += 1

        inst = summary["byInstrument"].setdefault(
            position.get("instId", ""),
            {"count": 0, "totalMargin": Decimal("0"), "totalUnrealizedPnl": Decimal("0")},
        )
        inst["count"] += 1
        inst["totalMargin"] += margin
        inst["totalUnrealizedPnl"] += upl

    return summary


class OkxAccountService:
    """Read-only account queries on top of OkxRestClient.

    Example:
        account = OkxAccountService(client)
        bills = account.get_bills(limit=500)["data"]
    """

    def __init__(self, client: OkxRestClient):
        self._client = client

    @property
    def client(self) -> OkxRestClient:
        return self._client

    def _get(self, endpoint: str, **params) -> Any:
        path = build_path(endpoint, **params)
        logger.debug(f"GET {path}")
        return self._client.execute("GET", path)

    def get_balance(self, ccy: str = "") -> Any:
        return self._get("/api/v5/account/balance", ccy=ccy)

    def get_positions(self, inst_type: str = "", inst_id: str = "") -> Any:
        return self._get("/api/v5/account/positions", instType=inst_type, instId=inst_id)

    def get_order_history(self, inst_type: str = "SWAP", inst_id: str = "", limit: int = 20) -> Any:
        """Order history of the last 7 days. OKX requires instType here."""
        return self._get(
            "/api/v5/trade/orders-history",
            instType=inst_type,
            instId=inst_id,
            limit=clamp_limit(limit),
        )

    def get_orders_history_archive(
        self, inst_type: str = "SWAP", limit: int = 100, after: Optional[str] = None
    ) -> Any:
        """Order history of the last 3 months."""
        return self._get(
            "/api/v5/trade/orders-history-archive",
            instType=inst_type,
            limit=clamp_limit(limit),
            after=after,
        )

    def get_fills(
        self,
        inst_type: str = "",
        inst_id: str = "",
        limit: int = 100,
        after: Optional[str] = None,
    ) -> Any:
        return self._get(
            "/api/v5/trade/fills",
            instType=inst_type,
            instId=inst_id,
            limit=clamp_limit(limit),
            after=after,
        )

    def get_bills(
        self,
        ccy: str = "",
        type: str = "",
        after: Optional[str] = None,
        limit: int = 100,
    ) -> Any:
        return self._get(
            "/api/v5/account/bills",
            ccy=ccy,
            type=type,
            after=after,
            limit=clamp_limit(limit),
        )

    def get_positions_history(
        self, inst_type: str = "", limit: int = 100, after: Optional[str] = None
    ) -> Any:
        return self._get(
            "/api/v5/account/positions-history",
            instType=inst_type,
            limit=clamp_limit(limit),
            after=after,
        )

    def get_account_config(self) -> Any:
        return self._get("/api/v5/account/config")

    def get_trade_fee(self, inst_type: str = "SWAP", inst_id: str = "") -> Any:
        return self._get("/api/v5/account/trade-fee", instType=inst_type, instId=inst_id)

    def get_account_summary(self) -> dict:
        """Balance, open positions and fee rate in one dict."""
        balance = self.get_balance()
        positions = self.get_positions()
        fees = self.get_trade_fee()

        balance_data = balance.get("data") or []
        fee_data = fees.get("data") or []
        return {
            "balance": balance_data[0] if balance_data else None,
            "positions": positions.get("data") or [],
            "feeRate": fee_data[0] if fee_data else None,
            "timestamp": iso_timestamp(),
        }

    def check_status(self) -> dict:
        """Probe the balance endpoint. Never raises."""
        try:
            balance = self.get_balance()
        except OkxError as e:
            logger.warning(f"OKX status check failed: {e.kind}: {e}")
            return {
                "connected": False,
                "error": str(e),
                "errorKind": e.kind,
                "rateLimit": self._client.rate_limit.to_dict(),
                "timestamp": iso_timestamp(),
            }
        return {
            "connected": True,
            "hasData": bool(balance.get("data")),
            "rateLimit": self._client.rate_limit.to_dict(),
            "timestamp": iso_timestamp(),
        }
