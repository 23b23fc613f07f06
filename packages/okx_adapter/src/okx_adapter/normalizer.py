"""Convert raw OKX account payloads into typed events.

OKX sends every numeric field as a string and uses empty strings for
absent values. The normalizer turns them into Decimals and epoch
milliseconds, keeping "absent" distinct from zero where it matters.

Bill record (GET /api/v5/account/bills):
    {"billId": "623950854533513219", "ts": "1699430400000",
     "bal": "464.97", "balChg": "-0.012", "ccy": "USDT", ...}

Fill record (GET /api/v5/trade/fills):
    {"tradeId": "123", "instId": "BTC-USDT-SWAP", "side": "buy",
     "fillPnl": "0", "pnl": "1.25", "fee": "-0.05",
     "ts": "1699430400000", "cTime": "...", "uTime": "..."}
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, Optional


logger = logging.getLogger(__name__)


def _optional_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def _decimal(value: Any) -> Decimal:
    parsed = _optional_decimal(value)
    return parsed if parsed is not None else Decimal("0")


def _ms(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class LedgerEvent:
    """A balance-affecting account event ("bill").

    ``bal`` is the absolute balance after the event; when present and
    positive it is authoritative. ``bal_chg`` is the signed delta.
    """

    ts_ms: int
    bill_id: str
    bal: Optional[Decimal] = None
    bal_chg: Optional[Decimal] = None

    @property
    def has_effect(self) -> bool:
        """True if the event moved the balance or reports an absolute balance."""
        return (self.bal_chg is not None and self.bal_chg != 0) or (
            self.bal is not None and self.bal > 0
        )

    def apply(self, running_balance: Decimal) -> Decimal:
        """Return the balance after this event."""
        if self.bal is not None and self.bal > 0:
            return self.bal
        return running_balance + (self.bal_chg or Decimal("0"))


@dataclass(frozen=True)
class FillEvent:
    """A trade execution. Carries PnL and fee but no absolute balance."""

    ts_ms: int
    trade_id: str
    inst_id: str = ""
    side: str = ""
    pnl: Decimal = Decimal("0")
    fee: Decimal = Decimal("0")

    @property
    def has_effect(self) -> bool:
        return self.pnl != 0 or self.fee != 0


def normalize_bill(bill: dict) -> Optional[LedgerEvent]:
    """Convert one bill record. Returns None if it has no usable timestamp."""
    ts_ms = _ms(bill.get("ts"))
    if ts_ms is None:
        logger.warning(f"Skipping bill without timestamp: {bill.get('billId')}")
        return None
    return LedgerEvent(
        ts_ms=ts_ms,
        bill_id=str(bill.get("billId", "")),
        bal=_optional_decimal(bill.get("bal")),
        bal_chg=_optional_decimal(bill.get("balChg")),
    )


def normalize_fill(fill: dict) -> Optional[FillEvent]:
    """Convert one fill record, timed by uTime and falling back to cTime."""
    ts_ms = _ms(fill.get("uTime")) or _ms(fill.get("cTime"))
    if ts_ms is None:
        logger.warning(f"Skipping fill without timestamp: {fill.get('tradeId')}")
        return None
    return FillEvent(
        ts_ms=ts_ms,
        trade_id=str(fill.get("tradeId", "")),
        inst_id=fill.get("instId", ""),
        side=fill.get("side", ""),
        pnl=_decimal(fill.get("pnl")),
        fee=_decimal(fill.get("fee")),
    )


def normalize_bills(bills: Iterable[dict]) -> list[LedgerEvent]:
    """Convert bill records and sort them ascending by time."""
    events = [e for e in (normalize_bill(b) for b in bills) if e is not None]
    return sorted(events, key=lambda e: e.ts_ms)


def normalize_fills(fills: Iterable[dict]) -> list[FillEvent]:
    """Convert fill records and sort them ascending by time."""
    events = [e for e in (normalize_fill(f) for f in fills) if e is not None]
    return sorted(events, key=lambda e: e.ts_ms)


def total_equity(balance_payload: dict) -> Decimal:
    """Extract ``totalEq`` from a GET /api/v5/account/balance payload (0 if absent)."""
    data = balance_payload.get("data") or []
    if not data:
        return Decimal("0")
    return _decimal(data[0].get("totalEq"))
