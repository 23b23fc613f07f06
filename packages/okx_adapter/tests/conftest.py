"""Test fixtures for okx_adapter tests."""

import pytest


@pytest.fixture
def sample_balance_payload():
    """Sample GET /api/v5/account/balance response."""
    return {
        "code": "0",
        "msg": "",
        "data": [
            {
                "totalEq": "512.34",
                "uTime": "1762235520000",
                "details": [
                    {"ccy": "USDT", "eq": "512.34", "availBal": "400.1", "frozenBal": "112.24"},
                ],
            }
        ],
    }


@pytest.fixture
def sample_bills():
    """Sample bill records, newest first as OKX returns them."""
    return [
        {"billId": "3", "ts": "1762300000000", "bal": "", "balChg": "-1.5", "ccy": "USDT", "type": "8"},
        {"billId": "2", "ts": "1762250000000", "bal": "470.00", "balChg": "5.03", "ccy": "USDT", "type": "2"},
        {"billId": "1", "ts": "1762240000000", "bal": "0", "balChg": "0", "ccy": "USDT", "type": "2"},
    ]


@pytest.fixture
def sample_fills():
    """Sample fill records."""
    return [
        {
            "tradeId": "t-2",
            "instId": "BTC-USDT-SWAP",
            "side": "sell",
            "pnl": "2.5",
            "fee": "-0.05",
            "cTime": "1762260000000",
            "uTime": "1762260000500",
        },
        {
            "tradeId": "t-1",
            "instId": "BTC-USDT-SWAP",
            "side": "buy",
            "pnl": "0",
            "fee": "0",
            "cTime": "1762245000000",
            "uTime": "",
        },
    ]


@pytest.fixture
def sample_positions():
    """Sample open positions."""
    return [
        {"instId": "BTC-USDT-SWAP", "posSide": "long", "margin": "50.5", "upl": "1.25"},
        {"instId": "BTC-USDT-SWAP", "posSide": "short", "margin": "20", "upl": "-0.75"},
        {"instId": "ETH-USDT-SWAP", "posSide": "net", "margin": "", "upl": "3"},
    ]
