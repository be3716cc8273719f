"""Reconnect backoff and duplicate suppression."""

import pytest

from rfidlive.subscriber.backoff import Backoff
from rfidlive.subscriber.dedup import PREFIX_CHARS, RecentMessages, fingerprint


def test_backoff_doubles_from_base():
    backoff = Backoff(base_ms=1000, cap_ms=30_000)
    assert [backoff.next_delay_ms() for _ in range(5)] == [1000, 2000, 4000, 8000, 16000]


def test_backoff_caps():
    backoff = Backoff(base_ms=1000, cap_ms=30_000)
    delays = [backoff.next_delay_ms() for _ in range(8)]
    assert delays[5:] == [30_000, 30_000, 30_000]


def test_backoff_reset_starts_over():
    backoff = Backoff()
    backoff.next_delay_ms()
    backoff.next_delay_ms()
    backoff.reset()
    assert backoff.attempts == 0
    assert backoff.next_delay() == 1.0


def test_backoff_rejects_bad_bounds():
    with pytest.raises(ValueError):
        Backoff(base_ms=0)
    with pytest.raises(ValueError):
        Backoff(base_ms=5000, cap_ms=1000)


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_fingerprint_uses_only_the_prefix():
    head = "x" * PREFIX_CHARS
    assert fingerprint(head + "tail-a") == fingerprint(head + "tail-b")
    assert fingerprint("a") != fingerprint("b")
    assert len(fingerprint("a")) == 16


def test_repeat_inside_window_is_dropped():
    clock = FakeClock()
    recent = RecentMessages(window=5.0, clock=clock)
    raw = '{"type":"rfid-log","data":{"id":1}}'

    assert recent.seen(raw) is False
    clock.now += 4.9
    assert recent.seen(raw) is True


def test_repeat_after_window_is_accepted():
    clock = FakeClock()
    recent = RecentMessages(window=5.0, clock=clock)
    raw = '{"type":"rfid-log","data":{"id":1}}'

    recent.seen(raw)
    clock.now += 5.0
    assert recent.seen(raw) is False


def test_window_counts_from_first_sighting():
    clock = FakeClock()
    recent = RecentMessages(window=5.0, clock=clock)
    raw = "same"
    recent.seen(raw)
    clock.now += 3
    assert recent.seen(raw) is True
    clock.now += 3
    assert recent.seen(raw) is False


def test_expired_fingerprints_are_forgotten():
    clock = FakeClock()
    recent = RecentMessages(window=1.0, clock=clock)
    for i in range(10):
        recent.seen(f"msg-{i}")
    clock.now += 2
    recent.seen("fresh")
    assert len(recent) == 1
