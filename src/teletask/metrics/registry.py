"""Prometheus metrics registry for the Teletask client."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

# Metric definitions
teletask_frames_sent_total: Final = Counter(  # type: ignore[assignment]
    "teletask_frames_sent_total",
    "Total frames written to the central unit",
    ["endpoint", "command"],
)

teletask_frames_received_total: Final = Counter(  # type: ignore[assignment]
    "teletask_frames_received_total",
    "Total stream items received (frames and acknowledge bytes)",
    ["endpoint", "kind"],
)

teletask_decode_errors_total: Final = Counter(  # type: ignore[assignment]
    "teletask_decode_errors_total",
    "Total frames dropped because they could not be decoded",
    ["endpoint", "reason"],
)

teletask_exchange_latency_seconds: Final = Histogram(  # type: ignore[assignment]
    "teletask_exchange_latency_seconds",
    "Exchange duration from send to terminal signal in seconds",
    ["endpoint", "command"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.0, 5.0),
)

teletask_exchange_total: Final = Counter(  # type: ignore[assignment]
    "teletask_exchange_total",
    "Total exchanges executed by the engine",
    ["endpoint", "command", "outcome"],
)

teletask_events_dispatched_total: Final = Counter(  # type: ignore[assignment]
    "teletask_events_dispatched_total",
    "Total EVENT frames applied to the device registry",
    ["endpoint", "function"],
)

teletask_events_dropped_total: Final = Counter(  # type: ignore[assignment]
    "teletask_events_dropped_total",
    "Total EVENT frames dropped by the dispatcher",
    ["endpoint", "reason"],
)

teletask_state_confirmation_total: Final = Counter(  # type: ignore[assignment]
    "teletask_state_confirmation_total",
    "Total set() confirmations by outcome",
    ["endpoint", "function", "outcome"],
)

teletask_keepalive_total: Final = Counter(  # type: ignore[assignment]
    "teletask_keepalive_total",
    "Total keep-alive requests by outcome",
    ["endpoint", "outcome"],
)

teletask_connection_state: Final = Gauge(  # type: ignore[assignment]
    "teletask_connection_state",
    "Current connection state",
    ["endpoint", "state"],
)

_CONNECTION_STATES = ("disconnected", "connecting", "connected", "failed")

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int = 9420) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_frame_sent(endpoint: str, command: str) -> None:
    """Record a frame written to the socket."""
    teletask_frames_sent_total.labels(endpoint=endpoint, command=command).inc()  # type: ignore[no-untyped-call]


def record_frame_received(endpoint: str, kind: str) -> None:
    """Record a frame or acknowledge byte read from the socket."""
    teletask_frames_received_total.labels(endpoint=endpoint, kind=kind).inc()  # type: ignore[no-untyped-call]


def record_decode_error(endpoint: str, reason: str) -> None:
    """Record a decode error."""
    teletask_decode_errors_total.labels(endpoint=endpoint, reason=reason).inc()  # type: ignore[no-untyped-call]


def record_exchange(endpoint: str, command: str, outcome: str, latency_seconds: float) -> None:
    """Record a completed, timed-out or failed exchange."""
    teletask_exchange_total.labels(
        endpoint=endpoint, command=command, outcome=outcome,
    ).inc()  # type: ignore[no-untyped-call]
    teletask_exchange_latency_seconds.labels(
        endpoint=endpoint, command=command,
    ).observe(latency_seconds)  # type: ignore[no-untyped-call]


def record_event_dispatched(endpoint: str, function: str) -> None:
    """Record an event applied to the registry."""
    teletask_events_dispatched_total.labels(endpoint=endpoint, function=function).inc()  # type: ignore[no-untyped-call]


def record_event_dropped(endpoint: str, reason: str) -> None:
    """Record an event the dispatcher could not apply."""
    teletask_events_dropped_total.labels(endpoint=endpoint, reason=reason).inc()  # type: ignore[no-untyped-call]


def record_state_confirmation(endpoint: str, function: str, outcome: str) -> None:
    """Record the outcome of a set() confirmation wait."""
    teletask_state_confirmation_total.labels(
        endpoint=endpoint, function=function, outcome=outcome,
    ).inc()  # type: ignore[no-untyped-call]


def record_keepalive(endpoint: str, outcome: str) -> None:
    """Record a keep-alive request."""
    teletask_keepalive_total.labels(endpoint=endpoint, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_connection_state(endpoint: str, state: str) -> None:
    """Record connection state change."""
    # Set gauge to 1 for current state, 0 for all others
    for s in _CONNECTION_STATES:
        value = 1 if s == state else 0
        teletask_connection_state.labels(endpoint=endpoint, state=s).set(value)  # type: ignore[no-untyped-call]
