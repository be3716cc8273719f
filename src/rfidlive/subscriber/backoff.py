"""Exponential reconnect backoff.

Delay n (1-based, since the last successful open) is
min(cap, base * 2**(n-1)): with base 1s and cap 30s that's
1, 2, 4, 8, 16, 30, 30, ... seconds.
"""


class Backoff:
    """Doubling delay with a ceiling; reset() after a successful open."""

    def __init__(self, base_ms: int = 1000, cap_ms: int = 30_000):
        if base_ms <= 0 or cap_ms < base_ms:
            raise ValueError("need 0 < base_ms <= cap_ms")
        self.base_ms = base_ms
        self.cap_ms = cap_ms
        self.attempts = 0

    def next_delay_ms(self) -> int:
        self.attempts += 1
        return min(self.cap_ms, self.base_ms * 2 ** (self.attempts - 1))

    def next_delay(self) -> float:
        """Next delay in seconds (for asyncio.sleep)."""
        return self.next_delay_ms() / 1000

    def reset(self) -> None:
        self.attempts = 0
