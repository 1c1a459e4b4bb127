"""Correlation ids tying log lines to the client call that caused them.

Every ``set``, ``get``, ``group_get`` and dispatcher tick runs inside
``correlation_context()``. The engine re-enters the submitter's id while it
executes the exchange, so worker-side log lines carry it too.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from typing import cast

from uuid_extensions import uuid7

__all__ = [
    "correlation_context",
    "ensure_correlation_id",
    "generate_correlation_id",
    "get_correlation_id",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("teletask_correlation_id", default=None)


def generate_correlation_id() -> str:
    """Time-ordered UUID v7 as a 32-character hex string."""
    return cast(uuid.UUID, uuid7()).hex


def get_correlation_id() -> str | None:
    return _correlation_id.get()


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str]:
    """Scope ``correlation_id`` (a fresh one when None) to the ``with`` block."""
    active = correlation_id or generate_correlation_id()
    token = _correlation_id.set(active)
    try:
        yield active
    finally:
        _correlation_id.reset(token)


def ensure_correlation_id() -> str:
    """Return the current id, binding a fresh one to the context if unset."""
    current = _correlation_id.get()
    if current is None:
        current = generate_correlation_id()
        _ = _correlation_id.set(current)
    return current
