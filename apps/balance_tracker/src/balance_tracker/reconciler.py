"""Rebuild the balance timeline from OKX bills and fills.

When no continuous balance record exists, the timeline is reconstructed
from two event streams:

- Bills move a running balance seeded with the initial deposit. An
  absolute ``bal`` on a bill overrides the running total.
- Fills fill gaps between bills. A fill carries no absolute balance, so
  its record uses the *current* total equity as an approximation and keeps
  the fill's PnL as ``estimated_pnl``.

The result replaces the stored history in one write, and only after every
fetch succeeded.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, tzinfo, UTC
from decimal import Decimal
from typing import Callable, Optional, Sequence

from okx_adapter.account import OkxAccountService, filter_since
from okx_adapter.errors import RequestFailed
from okx_adapter.normalizer import (
    FillEvent,
    LedgerEvent,
    normalize_bills,
    normalize_fills,
    total_equity,
)

from balance_tracker.history_store import BalanceHistoryStore
from balance_tracker.models import BalanceRecord, BalanceSource, ms_to_iso


logger = logging.getLogger(__name__)


@dataclass
class ReconciliationResult:
    """Summary of one reconciliation run."""

    total_records: int
    counts: dict[str, int] = field(default_factory=dict)
    start: Optional[str] = None
    end: Optional[str] = None
    current_balance: Decimal = Decimal("0")

    @property
    def from_bills(self) -> int:
        return self.counts.get(str(BalanceSource.BILL), 0)

    @property
    def from_fills(self) -> int:
        return self.counts.get(str(BalanceSource.FILL), 0)

    def to_dict(self) -> dict:
        return {
            "totalRecords": self.total_records,
            "fromBills": self.from_bills,
            "fromFills": self.from_fills,
            "counts": dict(self.counts),
            "dateRange": {"start": self.start, "end": self.end},
            "currentBalance": float(self.current_balance),
        }


def build_timeline(
    ledger: Sequence[LedgerEvent],
    fills: Sequence[FillEvent],
    current_balance: Decimal,
    initial_deposit: Decimal,
    now: datetime,
    tz: tzinfo = UTC,
) -> list[BalanceRecord]:
    """Merge ledger and fill events into a deduplicated, ascending timeline.

    Args:
        ledger: Bill events (any order)
        fills: Fill events (any order)
        current_balance: Authoritative total equity right now
        initial_deposit: Balance before the first bill
        now: Instant of the closing ``current`` record
        tz: Timezone for the display fields

    Returns:
        Records with unique timestamps, ascending. Among records sharing a
        timestamp the first emitted wins (bills, then fills, then current).
    """
    timeline: list[BalanceRecord] = []
    running = initial_deposit

    for event in sorted(ledger, key=lambda e: e.ts_ms):
        if not event.has_effect:
            continue
        running = event.apply(running)
        timeline.append(
            BalanceRecord.create(
                running,
                datetime.fromtimestamp(event.ts_ms / 1000, tz=UTC),
                BalanceSource.BILL,
                tz=tz,
                bill_id=event.bill_id,
            )
        )

    emitted = {r.timestamp for r in timeline}
    for fill in sorted(fills, key=lambda f: f.ts_ms):
        if not fill.has_effect or ms_to_iso(fill.ts_ms) in emitted:
            continue
        record = BalanceRecord.create(
            current_balance,
            datetime.fromtimestamp(fill.ts_ms / 1000, tz=UTC),
            BalanceSource.FILL,
            tz=tz,
            trade_id=fill.trade_id,
            estimated_pnl=fill.pnl,
        )
        emitted.add(record.timestamp)
        timeline.append(record)

    timeline.append(BalanceRecord.create(current_balance, now, BalanceSource.CURRENT, tz=tz))

    seen: set[str] = set()
    unique = []
    for record in timeline:
        if record.timestamp not in seen:
            seen.add(record.timestamp)
            unique.append(record)
    return sorted(unique, key=lambda r: r.instant)


def _require_ok(name: str, payload: dict) -> None:
    code = payload.get("code")
    if code not in (None, "0"):
        msg = payload.get("msg") or f"OKX {name} request returned code {code}"
        logger.error(f"Balance history sync aborted: {name} [{code}] {msg}")
        raise RequestFailed(msg, code=code, data=payload)


class BalanceReconciler:
    """Reconstructs the balance history from exchange events.

    Example:
        reconciler = BalanceReconciler(
            account=account_service,
            store=history_store,
            cutoff=datetime(2025, 11, 4, 13, 52, tzinfo=ZoneInfo("Asia/Seoul")),
            initial_deposit=Decimal("464.97"),
        )
        result = await reconciler.run()
    """

    def __init__(
        self,
        account: OkxAccountService,
        store: BalanceHistoryStore,
        cutoff: datetime,
        initial_deposit: Decimal,
        bills_limit: int = 500,
        fills_limit: int = 200,
        tz: tzinfo = UTC,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        """Initialize reconciler.

        Args:
            account: Account query service used for all fetches.
            store: History store replaced on success.
            cutoff: Events before this instant are ignored.
            initial_deposit: Seed for the running balance.
            bills_limit: Page size for the bills fetch.
            fills_limit: Page size for the fills fetch.
            tz: Timezone for display fields.
            clock: Source of "now" for the closing record.
        """
        self._account = account
        self._store = store
        self._cutoff = cutoff
        self._initial_deposit = initial_deposit
        self._bills_limit = bills_limit
        self._fills_limit = fills_limit
        self._tz = tz
        self._clock = clock

    async def _fetch(self) -> tuple[dict, dict, dict]:
        """Fetch balance, bills and fills concurrently. Any failure propagates."""
        return await asyncio.gather(
            asyncio.to_thread(self._account.get_balance),
            asyncio.to_thread(self._account.get_bills, limit=self._bills_limit),
            asyncio.to_thread(self._account.get_fills, limit=self._fills_limit),
        )

    async def run(self) -> ReconciliationResult:
        """Rebuild and store the balance timeline.

        Returns:
            ReconciliationResult with counts per source and the date range.

        Raises:
            OkxError: If any fetch fails or returns a non-"0" code. The store
                is left untouched.
        """
        logger.info("Balance history sync started")
        balance_payload, bills_payload, fills_payload = await self._fetch()
        for name, payload in (("balance", balance_payload), ("bills", bills_payload), ("fills", fills_payload)):
            _require_ok(name, payload)

        current_balance = total_equity(balance_payload)
        bills = filter_since(bills_payload.get("data") or [], self._cutoff, "ts")
        fills = filter_since(fills_payload.get("data") or [], self._cutoff, "uTime", "cTime")
        logger.info(f"Processing {len(bills)} bills and {len(fills)} fills since {self._cutoff.isoformat()}")

        timeline = build_timeline(
            ledger=normalize_bills(bills),
            fills=normalize_fills(fills),
            current_balance=current_balance,
            initial_deposit=self._initial_deposit,
            now=self._clock(),
            tz=self._tz,
        )

        total = self._store.replace(timeline)
        counts = Counter(str(r.source) for r in timeline)
        result = ReconciliationResult(
            total_records=total,
            counts=dict(counts),
            start=timeline[0].timestamp if timeline else None,
            end=timeline[-1].timestamp if timeline else None,
            current_balance=current_balance,
        )
        logger.info(
            f"Balance history sync finished: {total} records "
            f"({result.from_bills} bills, {result.from_fills} fills)"
        )
        return result
