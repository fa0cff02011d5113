"""Randomness source for endpoint names, ports and artifact suffixes."""

from __future__ import annotations

import random
import string
from typing import Protocol


class Random(Protocol):
    def string(self, length: int) -> str: ...

    def int_from_range(self, start: int, stop: int) -> int: ...


class SystemRandom:
    """Lowercase-letter strings and half-open integer ranges.

    Lowercase letters keep generated names valid as DNS labels.
    """

    def __init__(self, seed: int | None = None) -> None:
        self._rand = random.Random(seed)

    def string(self, length: int) -> str:
        return "".join(self._rand.choice(string.ascii_lowercase) for _ in range(length))

    def int_from_range(self, start: int, stop: int) -> int:
        """Return an integer in ``[start, stop)``."""
        return self._rand.randrange(start, stop)
