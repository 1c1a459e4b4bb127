"""Timeout configuration for the execution engine and the set() confirmation wait."""

from __future__ import annotations

# A drain never holds the worker longer than this, even under continuous traffic
MAX_DRAIN_SECONDS = 1.0


class TimeoutConfig:
    """Request deadlines and polling intervals.

    Defaults follow the central unit's observed behaviour: acknowledgements
    arrive within a few tens of milliseconds, and an EVENT confirming a SET
    follows within a second on a healthy bus.
    """

    def __init__(
        self,
        request_timeout: float = 5.0,
        poll_interval: float = 0.01,
        confirmation_timeout: float = 5.0,
        confirmation_interval: float = 0.01,
    ):
        """Initialize timeout configuration.

        Args:
            request_timeout: Per-request deadline for ACK/response exchanges
            poll_interval: Non-blocking read interval while waiting for bytes
            confirmation_timeout: How long set() waits for the confirming EVENT
            confirmation_interval: Registry polling interval during set()
        """
        self.request_timeout_seconds = request_timeout
        self.poll_interval_seconds = poll_interval
        self.confirmation_timeout_seconds = confirmation_timeout
        self.confirmation_interval_seconds = confirmation_interval
        self.drain_timeout_seconds = min(request_timeout, MAX_DRAIN_SECONDS)

    def __repr__(self) -> str:
        """String representation showing all timeouts."""
        return (
            f"TimeoutConfig(request={self.request_timeout_seconds:.3f}s, "
            f"poll={self.poll_interval_seconds:.3f}s, "
            f"drain={self.drain_timeout_seconds:.3f}s, "
            f"confirmation={self.confirmation_timeout_seconds:.3f}s, "
            f"confirmation_poll={self.confirmation_interval_seconds:.3f}s)"
        )
