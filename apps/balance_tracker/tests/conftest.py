"""Shared fixtures for balance_tracker tests."""

from unittest.mock import MagicMock

import pytest

from okx_adapter.account import OkxAccountService
from okx_adapter.rate_limiter import RateLimitState

from balance_tracker.history_store import BalanceHistoryStore


@pytest.fixture(autouse=True)
def _isolate_credential_env_vars(monkeypatch, tmp_path):
    """Prevent OKX_* variables and a developer .env from leaking into tests.

    OkxCredentials reads the environment and ./.env on every construction.
    """
    for name in ("OKX_API_KEY", "OKX_SECRET_KEY", "OKX_PASSPHRASE", "OKX_DEMO", "BALANCE_TRACKER_CONFIG_PATH"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def history_file(tmp_path):
    return str(tmp_path / "data" / "balance_history.json")


@pytest.fixture
def store(history_file):
    return BalanceHistoryStore(history_file)


@pytest.fixture
def mock_account():
    """OkxAccountService with every accessor mocked."""
    account = MagicMock(spec=OkxAccountService)
    account.client = MagicMock()
    account.client.rate_limit = RateLimitState()
    account.client.rate_limiter = None
    account.get_balance.return_value = {"code": "0", "data": [{"totalEq": "512.34"}]}
    account.get_positions.return_value = {"code": "0", "data": []}
    account.get_bills.return_value = {"code": "0", "data": []}
    account.get_fills.return_value = {"code": "0", "data": []}
    return account

