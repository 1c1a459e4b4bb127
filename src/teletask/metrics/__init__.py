"""Metrics module."""

from . import registry
from .registry import (
    record_connection_state,
    record_decode_error,
    record_event_dispatched,
    record_event_dropped,
    record_exchange,
    record_frame_received,
    record_frame_sent,
    record_keepalive,
    record_state_confirmation,
    start_metrics_server,
)

__all__ = [
    "record_connection_state",
    "record_decode_error",
    "record_event_dispatched",
    "record_event_dropped",
    "record_exchange",
    "record_frame_received",
    "record_frame_sent",
    "record_keepalive",
    "record_state_confirmation",
    "registry",
    "start_metrics_server",
]
