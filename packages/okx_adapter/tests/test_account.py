"""Tests for OkxAccountService and helpers."""

from datetime import datetime, UTC
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from okx_adapter.account import (
    MAX_LIMIT,
    OkxAccountService,
    build_path,
    clamp_limit,
    filter_since,
    summarize_positions,
)
from okx_adapter.errors import ClientError, NetworkError
from okx_adapter.rate_limiter import RateLimitState


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.rate_limit = RateLimitState()
    client.execute.return_value = {"code": "0", "msg": "", "data": []}
    return client


@pytest.fixture
def account(mock_client):
    return OkxAccountService(mock_client)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class TestClampLimit:
    @pytest.mark.parametrize("value,expected", [(0, 1), (-5, 1), (1, 1), (100, 100), (500, 500), (501, 500)])
    def test_clamps(self, value, expected):
        assert clamp_limit(value) == expected

    def test_max_limit(self):
        assert MAX_LIMIT == 500


class TestBuildPath:
    def test_no_params(self):
        assert build_path("/api/v5/account/balance") == "/api/v5/account/balance"

    def test_skips_empty_values(self):
        path = build_path("/api/v5/trade/fills", instType="", instId=None, limit=10)
        assert path == "/api/v5/trade/fills?limit=10"

    def test_encodes_values(self):
        assert build_path("/x", ccy="USDT", after="123") == "/x?ccy=USDT&after=123"


class TestFilterSince:
    CUTOFF = datetime(2025, 11, 4, 4, 52, tzinfo=UTC)
    CUTOFF_MS = 1762231920000

    def test_keeps_at_or_after_cutoff(self):
        records = [
            {"id": "before", "ts": str(self.CUTOFF_MS - 1)},
            {"id": "at", "ts": str(self.CUTOFF_MS)},
            {"id": "after", "ts": str(self.CUTOFF_MS + 1)},
        ]
        assert [r["id"] for r in filter_since(records, self.CUTOFF, "ts")] == ["at", "after"]

    def test_falls_back_to_next_key(self):
        records = [
            {"id": "u", "uTime": str(self.CUTOFF_MS), "cTime": "1"},
            {"id": "c", "uTime": "", "cTime": str(self.CUTOFF_MS + 5)},
        ]
        assert [r["id"] for r in filter_since(records, self.CUTOFF, "uTime", "cTime")] == ["u", "c"]

    def test_drops_records_without_timestamp(self):
        records = [{"id": "none"}, {"id": "bad", "ts": "abc"}]
        assert filter_since(records, self.CUTOFF, "ts") == []

    def test_preserves_order(self):
        records = [{"ts": str(self.CUTOFF_MS + 9)}, {"ts": str(self.CUTOFF_MS + 1)}]
        assert filter_since(records, self.CUTOFF, "ts") == records


class TestSummarizePositions:
    def test_empty(self):
        summary = summarize_positions([])
        assert summary["totalCount"] == 0
        assert summary["totalMargin"] == Decimal("0")
        assert summary["byInstrument"] == {}

    def test_none(self):
        assert summarize_positions(None)["totalCount"] == 0

    def test_aggregates(self, sample_positions):
        summary = summarize_positions(sample_positions)

        assert summary["totalCount"] == 3
        assert summary["totalMargin"] == Decimal("70.5")
        assert summary["totalUnrealizedPnl"] == Decimal("3.5")
        assert summary["longCount"] == 1
        assert summary["shortCount"] == 1
        btc = summary["byInstrument"]["BTC-USDT-SWAP"]
        assert btc["count"] == 2
        assert btc["totalMargin"] == Decimal("70.5")
        assert btc["totalUnrealizedPnl"] == Decimal("0.5")
        assert summary["byInstrument"]["ETH-USDT-SWAP"]["totalMargin"] == Decimal("0")


# ---------------------------------------------------------------------------
# Accessors
# ---------------------------------------------------------------------------


class TestAccessors:
    def test_get_balance(self, account, mock_client):
        account.get_balance()
        mock_client.execute.assert_called_once_with("GET", "/api/v5/account/balance")

    def test_get_balance_with_ccy(self, account, mock_client):
        account.get_balance(ccy="USDT")
        mock_client.execute.assert_called_once_with("GET", "/api/v5/account/balance?ccy=USDT")

    def test_get_positions(self, account, mock_client):
        account.get_positions(inst_type="SWAP")
        mock_client.execute.assert_called_once_with("GET", "/api/v5/account/positions?instType=SWAP")

    def test_get_order_history_requires_inst_type(self, account, mock_client):
        account.get_order_history()
        mock_client.execute.assert_called_once_with(
            "GET", "/api/v5/trade/orders-history?instType=SWAP&limit=20"
        )

    def test_get_orders_history_archive(self, account, mock_client):
        account.get_orders_history_archive(limit=1000, after="555")
        mock_client.execute.assert_called_once_with(
            "GET", "/api/v5/trade/orders-history-archive?instType=SWAP&limit=500&after=555"
        )

    def test_get_fills(self, account, mock_client):
        account.get_fills(inst_type="SWAP", inst_id="BTC-USDT-SWAP", limit=50)
        mock_client.execute.assert_called_once_with(
            "GET", "/api/v5/trade/fills?instType=SWAP&instId=BTC-USDT-SWAP&limit=50"
        )

    def test_get_bills_clamps_limit(self, account, mock_client):
        account.get_bills(limit=1000)
        mock_client.execute.assert_called_once_with("GET", "/api/v5/account/bills?limit=500")

    def test_get_bills_with_filters(self, account, mock_client):
        account.get_bills(ccy="USDT", type="2", after="999", limit=10)
        mock_client.execute.assert_called_once_with(
            "GET", "/api/v5/account/bills?ccy=USDT&type=2&after=999&limit=10"
        )

    def test_get_positions_history(self, account, mock_client):
        account.get_positions_history(inst_type="SWAP")
        mock_client.execute.assert_called_once_with(
            "GET", "/api/v5/account/positions-history?instType=SWAP&limit=100"
        )

    def test_get_account_config(self, account, mock_client):
        account.get_account_config()
        mock_client.execute.assert_called_once_with("GET", "/api/v5/account/config")

    def test_get_trade_fee(self, account, mock_client):
        account.get_trade_fee(inst_id="BTC-USDT-SWAP")
        mock_client.execute.assert_called_once_with(
            "GET", "/api/v5/account/trade-fee?instType=SWAP&instId=BTC-USDT-SWAP"
        )

    def test_errors_propagate(self, account, mock_client):
        mock_client.execute.side_effect = ClientError("Invalid Sign", status=401)
        with pytest.raises(ClientError):
            account.get_bills()


class TestAccountSummary:
    def test_combines_three_queries(self, account, mock_client, sample_balance_payload):
        mock_client.execute.side_effect = [
            sample_balance_payload,
            {"code": "0", "data": [{"instId": "BTC-USDT-SWAP"}]},
            {"code": "0", "data": [{"taker": "-0.0005", "maker": "-0.0002"}]},
        ]

        summary = account.get_account_summary()

        assert summary["balance"]["totalEq"] == "512.34"
        assert summary["positions"] == [{"instId": "BTC-USDT-SWAP"}]
        assert summary["feeRate"]["taker"] == "-0.0005"
        assert summary["timestamp"].endswith("Z")
        paths = [c.args[1] for c in mock_client.execute.call_args_list]
        assert paths[0] == "/api/v5/account/balance"
        assert paths[1] == "/api/v5/account/positions"
        assert paths[2].startswith("/api/v5/account/trade-fee")

    def test_empty_data(self, account):
        summary = account.get_account_summary()
        assert summary["balance"] is None
        assert summary["positions"] == []
        assert summary["feeRate"] is None


class TestCheckStatus:
    def test_connected(self, account, mock_client, sample_balance_payload):
        mock_client.execute.return_value = sample_balance_payload

        status = account.check_status()

        assert status["connected"] is True
        assert status["hasData"] is True
        assert status["rateLimit"] == {"remaining": 10, "resetTime": None}

    def test_failure_does_not_raise(self, account, mock_client):
        mock_client.execute.side_effect = NetworkError("refused")

        status = account.check_status()

        assert status["connected"] is False
        assert status["errorKind"] == "NetworkError"
        assert status["error"] == "refused"
