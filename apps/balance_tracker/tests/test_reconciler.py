"""Tests for BalanceReconciler and timeline reconstruction."""

from datetime import datetime, UTC
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from okx_adapter.errors import NetworkError, RequestFailed
from okx_adapter.normalizer import FillEvent, LedgerEvent

from balance_tracker.models import BalanceRecord, BalanceSource
from balance_tracker.reconciler import BalanceReconciler, ReconciliationResult, build_timeline


EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
NOW = datetime(2025, 11, 4, 5, 52, tzinfo=UTC)


def _reconciler(account, store, **kwargs):
    params = {
        "account": account,
        "store": store,
        "cutoff": EPOCH,
        "initial_deposit": Decimal("40"),
        "clock": lambda: NOW,
    }
    params.update(kwargs)
    return BalanceReconciler(**params)


# ---------------------------------------------------------------------------
# build_timeline
# ---------------------------------------------------------------------------


class TestBuildTimeline:
    def test_running_balance_from_bills(self):
        ledger = [
            LedgerEvent(ts_ms=2000, bill_id="b2", bal=Decimal("50")),
            LedgerEvent(ts_ms=1000, bill_id="b1", bal_chg=Decimal("10")),
        ]

        timeline = build_timeline(ledger, [], Decimal("55"), Decimal("40"), NOW)

        assert [(r.timestamp, r.balance, r.source) for r in timeline] == [
            ("1970-01-01T00:00:01.000Z", Decimal("50"), BalanceSource.BILL),
            ("1970-01-01T00:00:02.000Z", Decimal("50"), BalanceSource.BILL),
            ("2025-11-04T05:52:00.000Z", Decimal("55"), BalanceSource.CURRENT),
        ]
        assert timeline[0].bill_id == "b1"

    def test_skips_bills_without_effect(self):
        ledger = [LedgerEvent(ts_ms=1000, bill_id="noop", bal=Decimal("0"), bal_chg=Decimal("0"))]

        timeline = build_timeline(ledger, [], Decimal("1"), Decimal("40"), NOW)

        assert [r.source for r in timeline] == [BalanceSource.CURRENT]

    def test_fills_use_current_balance(self):
        fills = [FillEvent(ts_ms=3000, trade_id="t1", pnl=Decimal("2.5"))]

        timeline = build_timeline([], fills, Decimal("55"), Decimal("40"), NOW)

        fill = timeline[0]
        assert fill.source == BalanceSource.FILL
        assert fill.balance == Decimal("55")
        assert fill.trade_id == "t1"
        assert fill.estimated_pnl == Decimal("2.5")

    def test_fills_without_effect_skipped(self):
        fills = [FillEvent(ts_ms=3000, trade_id="t1")]
        timeline = build_timeline([], fills, Decimal("55"), Decimal("40"), NOW)
        assert [r.source for r in timeline] == [BalanceSource.CURRENT]

    def test_bill_wins_over_fill_at_same_timestamp(self):
        ledger = [LedgerEvent(ts_ms=1000, bill_id="b1", bal_chg=Decimal("10"))]
        fills = [FillEvent(ts_ms=1000, trade_id="t1", pnl=Decimal("1"))]

        timeline = build_timeline(ledger, fills, Decimal("55"), Decimal("40"), NOW)

        assert len(timeline) == 2
        assert timeline[0].source == BalanceSource.BILL
        assert timeline[0].balance == Decimal("50")

    def test_current_dropped_if_timestamp_taken(self):
        now_ms = int(NOW.timestamp() * 1000)
        ledger = [LedgerEvent(ts_ms=now_ms, bill_id="b1", bal=Decimal("60"))]

        timeline = build_timeline(ledger, [], Decimal("55"), Decimal("40"), NOW)

        assert len(timeline) == 1
        assert timeline[0].source == BalanceSource.BILL

    def test_display_fields_in_timezone(self):
        timeline = build_timeline([], [], Decimal("1"), Decimal("0"), NOW, tz=ZoneInfo("Asia/Seoul"))
        assert (timeline[0].date, timeline[0].time) == ("2025-11-04", "14:52")

    def test_sorted_and_unique(self):
        ledger = [LedgerEvent(ts_ms=ts, bill_id=str(ts), bal_chg=Decimal("1")) for ts in (5000, 1000, 3000)]
        fills = [FillEvent(ts_ms=ts, trade_id=str(ts), fee=Decimal("-0.1")) for ts in (4000, 3000, 2000)]

        timeline = build_timeline(ledger, fills, Decimal("9"), Decimal("0"), NOW)
        instants = [r.instant for r in timeline]

        assert instants == sorted(instants)
        assert len({r.timestamp for r in timeline}) == len(timeline) == 6


# ---------------------------------------------------------------------------
# BalanceReconciler.run
# ---------------------------------------------------------------------------


class TestReconcilerRun:
    @pytest.mark.asyncio
    async def test_end_to_end(self, mock_account, store):
        mock_account.get_balance.return_value = {"code": "0", "data": [{"totalEq": "55"}]}
        mock_account.get_bills.return_value = {
            "code": "0",
            "data": [
                {"billId": "b2", "ts": "2000", "bal": "50", "balChg": ""},
                {"billId": "b1", "ts": "1000", "bal": "", "balChg": "10"},
            ],
        }

        result = await _reconciler(mock_account, store).run()

        assert isinstance(result, ReconciliationResult)
        assert result.total_records == 3
        assert result.from_bills == 2
        assert result.from_fills == 0
        assert result.counts == {"bill": 2, "current": 1}
        assert result.start == "1970-01-01T00:00:01.000Z"
        assert result.end == "2025-11-04T05:52:00.000Z"
        assert result.current_balance == Decimal("55")
        assert [r.balance for r in store.records] == [Decimal("50"), Decimal("50"), Decimal("55")]

    @pytest.mark.asyncio
    async def test_passes_page_sizes(self, mock_account, store):
        await _reconciler(mock_account, store, bills_limit=300, fills_limit=50).run()

        mock_account.get_bills.assert_called_once_with(limit=300)
        mock_account.get_fills.assert_called_once_with(limit=50)

    @pytest.mark.asyncio
    async def test_events_before_cutoff_ignored(self, mock_account, store):
        cutoff = datetime(2025, 11, 4, tzinfo=UTC)
        cutoff_ms = int(cutoff.timestamp() * 1000)
        mock_account.get_bills.return_value = {
            "data": [
                {"billId": "old", "ts": str(cutoff_ms - 1), "balChg": "5"},
                {"billId": "new", "ts": str(cutoff_ms), "balChg": "5"},
            ]
        }
        mock_account.get_fills.return_value = {
            "data": [
                {"tradeId": "old", "uTime": str(cutoff_ms - 10), "pnl": "1"},
                {"tradeId": "new", "uTime": "", "cTime": str(cutoff_ms + 10), "pnl": "1"},
            ]
        }

        result = await _reconciler(mock_account, store, cutoff=cutoff).run()

        assert result.from_bills == 1
        assert result.from_fills == 1
        bill = store.records[0]
        assert bill.bill_id == "new"
        assert bill.balance == Decimal("45")

    @pytest.mark.asyncio
    async def test_fetch_failure_leaves_store_untouched(self, mock_account, store):
        existing = BalanceRecord.create(Decimal("1"), NOW, BalanceSource.MANUAL)
        store.upsert(existing)
        mock_account.get_fills.side_effect = NetworkError("refused")

        with pytest.raises(NetworkError):
            await _reconciler(mock_account, store).run()

        assert store.records == [existing]

    @pytest.mark.asyncio
    async def test_error_envelope_leaves_store_untouched(self, mock_account, store):
        existing = BalanceRecord.create(Decimal("500"), NOW, BalanceSource.MANUAL)
        store.upsert(existing)
        envelope = {"code": "50113", "msg": "Invalid Sign", "data": []}
        mock_account.get_balance.return_value = envelope
        mock_account.get_bills.return_value = envelope
        mock_account.get_fills.return_value = envelope

        with pytest.raises(RequestFailed) as exc_info:
            await _reconciler(mock_account, store).run()

        assert exc_info.value.code == "50113"
        assert str(exc_info.value) == "Invalid Sign"
        assert store.records == [existing]

    @pytest.mark.asyncio
    async def test_error_envelope_on_fills_only_aborts(self, mock_account, store):
        mock_account.get_fills.return_value = {"code": "50011", "msg": "", "data": []}

        with pytest.raises(RequestFailed, match="fills request returned code 50011"):
            await _reconciler(mock_account, store).run()

        assert store.count == 0

    @pytest.mark.asyncio
    async def test_replaces_previous_history(self, mock_account, store):
        store.upsert(BalanceRecord.create(Decimal("1"), datetime(2020, 1, 1, tzinfo=UTC), BalanceSource.MANUAL))

        result = await _reconciler(mock_account, store).run()

        assert result.total_records == 1
        assert [r.source for r in store.records] == [BalanceSource.CURRENT]

    def test_result_to_dict(self):
        result = ReconciliationResult(
            total_records=3,
            counts={"bill": 2, "current": 1},
            start="a",
            end="b",
            current_balance=Decimal("55.5"),
        )
        assert result.to_dict() == {
            "totalRecords": 3,
            "fromBills": 2,
            "fromFills": 0,
            "counts": {"bill": 2, "current": 1},
            "dateRange": {"start": "a", "end": "b"},
            "currentBalance": 55.5,
        }
