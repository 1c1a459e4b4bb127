"""Unit tests for the Prometheus metric helpers."""

from __future__ import annotations

import pytest
from prometheus_client import REGISTRY

from teletask import metrics

pytestmark = pytest.mark.unit

ENDPOINT = "metrics-test:55957"


def sample(name: str, **labels: str) -> float:
    return REGISTRY.get_sample_value(name, {"endpoint": ENDPOINT, **labels}) or 0.0


def test_connection_state_is_one_hot() -> None:
    metrics.record_connection_state(ENDPOINT, "connecting")
    metrics.record_connection_state(ENDPOINT, "connected")

    assert sample("teletask_connection_state", state="connected") == 1
    assert sample("teletask_connection_state", state="connecting") == 0
    assert sample("teletask_connection_state", state="failed") == 0


def test_exchange_counts_and_latency() -> None:
    before = sample("teletask_exchange_total", command="SET", outcome="ok")

    metrics.record_exchange(ENDPOINT, "SET", "ok", 0.025)

    assert sample("teletask_exchange_total", command="SET", outcome="ok") == before + 1
    assert sample("teletask_exchange_latency_seconds_count", command="SET") >= 1


def test_keepalive_outcomes() -> None:
    metrics.record_keepalive(ENDPOINT, "timeout")
    metrics.record_keepalive(ENDPOINT, "timeout")

    assert sample("teletask_keepalive_total", outcome="timeout") >= 2
