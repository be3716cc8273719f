"""Short-window duplicate suppression for inbound bridge messages.

A flush racing a connection replacement can hand the same bytes to a
client twice. Messages are fingerprinted cheaply (SHA-1 of the first 100
characters) and a fingerprint is remembered for a few seconds from its
first sighting.
"""

import hashlib
import time
from typing import Callable

PREFIX_CHARS = 100


def fingerprint(raw: str) -> str:
    return hashlib.sha1(raw[:PREFIX_CHARS].encode("utf-8", "replace")).hexdigest()[:16]


class RecentMessages:
    """Remembers fingerprints for `window` seconds."""

    def __init__(self, window: float = 5.0, clock: Callable[[], float] = time.monotonic):
        self.window = window
        self._clock = clock
        self._expires: dict[str, float] = {}

    def _expire(self, now: float) -> None:
        stale = [fp for fp, until in self._expires.items() if until <= now]
        for fp in stale:
            del self._expires[fp]

    def seen(self, raw: str) -> bool:
        """True if `raw` is a repeat inside the window; otherwise record it."""
        now = self._clock()
        self._expire(now)
        fp = fingerprint(raw)
        if fp in self._expires:
            return True
        self._expires[fp] = now + self.window
        return False

    def __len__(self) -> int:
        return len(self._expires)
