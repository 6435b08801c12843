"""Pytest configuration and fixtures for AiSEG2 dashboard tests."""

from __future__ import annotations

from typing import Any

import pytest

BASE_URL = "http://aiseg.test"
USERNAME = "aiseg"
PASSWORD = "secret"


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeSubscriber:
    """Push subscriber that records every frame it is sent."""

    def __init__(self, *, fail: bool = False) -> None:
        self.frames: list[str] = []
        self.fail = fail

    async def send_text(self, data: str) -> None:
        if self.fail:
            error_msg = "socket closed"
            raise ConnectionError(error_msg)
        self.frames.append(data)


def kwh_page(value: str) -> str:
    """Return a graph page embedding value in the val_kwh span."""
    return (
        "<html><body><div class='graph'>"
        f'<span class="num" id="val_kwh">{value}</span>'
        "<span>kWh</span></div></body></html>"
    )


@pytest.fixture
def clock() -> FakeClock:
    """Fixture providing a controllable clock."""
    return FakeClock()


@pytest.fixture
def sample_realtime_response() -> dict[str, Any]:
    """Fixture providing an electricflow update response."""
    return {
        "g_capacity": "3.25",
        "u_capacity": "1.10",
        "g_d_1_capacity": 3000,
        "g_d_2_capacity": 250,
        "lo_buy_sell": 1,
        "u_d_1_title": "エアコン",
        "u_d_1_capacity": 800,
        "best1": 1,
        "u_d_2_title": "冷蔵庫",
        "u_d_2_capacity": 120,
        "best2": 1,
        "u_d_3_title": "照明",
        "u_d_3_capacity": 40,
        "best3": 0,
        "connEv": 0,
        "connSb": 1,
        "percent": 85,
        "connFc": 1,
    }


@pytest.fixture
def sample_circuit_page() -> str:
    """Fixture providing a circuit settings page with several script blocks."""
    return """
<html><head>
<script src="/js/common.js"></script>
<script>var unrelated = init(1, 2);</script>
<script>
  window.onload = function() {
    setCircuitList({"arrayCircuitNameList": [
      {"strId": "1", "strCircuit": "キッチン (IH)", "strBtnType": "1"},
      {"strId": "2", "strCircuit": "", "strBtnType": "1"},
      {"strId": "3", "strCircuit": "予備", "strBtnType": "0"}
    ]});
  };
</script>
</head><body></body></html>
"""


@pytest.fixture
def sample_devices_payload() -> dict[str, Any]:
    """Fixture providing an aggregated devices payload."""
    return {
        "token": "12345",
        "acs": [
            {
                "nodeId": "1073741827",
                "eoj": "0x013001",
                "name": "エアコンA",
                "running": True,
            },
        ],
        "fhs": [
            {
                "nodeId": "1073741826",
                "eoj": "0x0f7001",
                "name": "床暖房A",
                "running": False,
            },
        ],
        "enefarm": {"bathRunning": False},
    }
