"""Frame checksum strategies."""

from __future__ import annotations

from collections.abc import Iterable


def modular_sum(data: Iterable[int]) -> int:
    """Single-byte modular sum of every byte preceding the checksum position.

    Args:
        data: Frame bytes from the start byte up to (not including) the checksum

    Returns:
        Checksum byte (0-255)

    Example:
        >>> modular_sum(bytes([0x02, 0x01, 0x0B]))
        14

    """
    return sum(data) % 256
