"""
StoryGate - Identifier Generation

Sortable unique identifiers for outbox events and seeded records.

UlidGenerator produces 26-character Crockford base32 ULIDs:
- 48-bit millisecond timestamp prefix (lexicographically time-ordered)
- 80 random bits, incremented within the same millisecond so IDs issued
  by one generator are strictly increasing
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional
import os
import threading
import time

CROCKFORD_ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"

_RANDOM_BITS = 80
_RANDOM_MAX = (1 << _RANDOM_BITS) - 1


def encode_base32(value: int, length: int) -> str:
    """Encode a non-negative integer as fixed-width Crockford base32."""
    chars = []
    for _ in range(length):
        chars.append(CROCKFORD_ALPHABET[value & 0x1F])
        value >>= 5
    if value:
        raise ValueError("value does not fit in the requested width")
    return "".join(reversed(chars))


class IdGenerator(ABC):
    """Injectable source of sortable unique IDs."""

    @abstractmethod
    def new_id(self) -> str:
        ...


class UlidGenerator(IdGenerator):
    """
    Monotonic ULID generator.

    Usage:
        ids = UlidGenerator()
        event_id = ids.new_id()

        # Deterministic generator for tests
        ids = UlidGenerator(clock_ms=lambda: 0, entropy=lambda n: b"\\x00" * n)
    """

    def __init__(
        self,
        clock_ms: Optional[Callable[[], int]] = None,
        entropy: Optional[Callable[[int], bytes]] = None
    ):
        self._clock_ms = clock_ms or (lambda: time.time_ns() // 1_000_000)
        self._entropy = entropy or os.urandom
        self._lock = threading.Lock()
        self._last_ms = -1
        self._last_random = 0

    def new_id(self) -> str:
        with self._lock:
            now_ms = self._clock_ms()

            if now_ms <= self._last_ms:
                # Same (or regressed) millisecond: keep ordering by bumping randomness
                now_ms = self._last_ms
                if self._last_random >= _RANDOM_MAX:
                    now_ms += 1
                    random_part = int.from_bytes(self._entropy(10), "big")
                else:
                    random_part = self._last_random + 1
            else:
                random_part = int.from_bytes(self._entropy(10), "big")

            self._last_ms = now_ms
            self._last_random = random_part

        return encode_base32(now_ms, 10) + encode_base32(random_part, 16)
