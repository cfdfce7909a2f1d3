"""
Identifier generation

Ids are time-ordered UUIDv7-style strings so that records created later sort
later, which keeps exports and store iteration order stable. An optional
prefix ("team", "user", "delegation") makes ids self-describing in logs.
"""

import secrets
import time
from typing import Protocol


class IdFactory(Protocol):
    """Protocol for ID generation strategies"""

    def generate(self, prefix: str | None = None) -> str:
        """Generate a new unique ID"""
        ...


def _uuid7_hex() -> str:
    # 48-bit millisecond timestamp, version nibble 7, RFC 4122 variant bits
    timestamp_ms = time.time_ns() // 1_000_000
    value = (timestamp_ms & 0xFFFFFFFFFFFF) << 80
    value |= 0x7 << 76
    value |= secrets.randbits(12) << 64
    value |= 0b10 << 62
    value |= secrets.randbits(62)
    raw = f"{value:032x}"
    return f"{raw[:8]}-{raw[8:12]}-{raw[12:16]}-{raw[16:20]}-{raw[20:]}"


def generate_id(prefix: str | None = None) -> str:
    """
    Generate a sortable unique identifier

    Args:
        prefix: Optional entity prefix, joined with an underscore

    Returns:
        e.g. "delegation_01908e9a-3b87-7a1c-8000-123456789abc"
    """
    uid = _uuid7_hex()
    return f"{prefix}_{uid}" if prefix else uid


class DefaultIdFactory:
    """Default ID factory using UUIDv7-style generation"""

    def generate(self, prefix: str | None = None) -> str:
        return generate_id(prefix)


class SequentialIdFactory:
    """
    Deterministic factory for tests and fixtures

    Produces "<prefix>_1", "<prefix>_2", ... with an independent counter per prefix.
    """

    def __init__(self) -> None:
        self._counters: dict[str, int] = {}

    def generate(self, prefix: str | None = None) -> str:
        key = prefix or "id"
        self._counters[key] = self._counters.get(key, 0) + 1
        return f"{key}_{self._counters[key]}"


default_id_factory = DefaultIdFactory()
