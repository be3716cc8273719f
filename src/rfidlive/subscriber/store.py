"""LocalState — the subscriber's single source of truth.

Learn: Both producers (push channel, pull reconciler) write here and both
follow one rule: a record replaces any earlier record with the same id,
and the newest write wins. That makes merges idempotent and lets the two
paths race without coordination.

Invariants of LogCache: newest first, no duplicate ids, len <= max_entries.
"""

from datetime import datetime
from typing import Callable, Iterable, Optional

import structlog

from rfidlive.clock import local_now
from rfidlive.events.types import RFID_LOG, RFID_STATUS
from rfidlive.subscriber.normalize import (
    LogEntry,
    Registration,
    normalize_log_entry,
    normalize_registration,
)
from rfidlive.subscriber.states import Connecting, ConnectionState

logger = structlog.get_logger()


def _dedupe(entries: Iterable[LogEntry]) -> list[LogEntry]:
    """Keep the first occurrence of each id, preserving order."""
    seen: set[int] = set()
    out: list[LogEntry] = []
    for entry in entries:
        if entry.id in seen:
            continue
        seen.add(entry.id)
        out.append(entry)
    return out


class LogCache:
    """Bounded, id-unique, newest-first list of log entries."""

    def __init__(self, max_entries: int = 50):
        self.max_entries = max_entries
        self._entries: list[LogEntry] = []

    @property
    def entries(self) -> tuple[LogEntry, ...]:
        return tuple(self._entries)

    @property
    def latest_id(self) -> int:
        """Cursor for incremental polls: the id at the head, 0 when empty."""
        return self._entries[0].id if self._entries else 0

    def push(self, entry: LogEntry) -> None:
        """Live path: put `entry` first, replacing any older copy."""
        rest = [e for e in self._entries if e.id != entry.id]
        self._entries = [entry, *rest][: self.max_entries]

    def merge(self, incoming: Iterable[LogEntry]) -> None:
        """Incremental poll: newer rows go in front of what we have."""
        self._entries = _dedupe([*incoming, *self._entries])[: self.max_entries]

    def replace(self, incoming: Iterable[LogEntry]) -> None:
        """Full poll: the server's page becomes the cache."""
        self._entries = _dedupe(incoming)[: self.max_entries]

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)


class RegistrationStore:
    """Registered tags keyed by id, listed in id order."""

    def __init__(self):
        self._by_id: dict[int, Registration] = {}

    def upsert(self, registration: Registration) -> None:
        self._by_id[registration.id] = registration

    def merge(self, incoming: Iterable[Registration]) -> None:
        for registration in incoming:
            self.upsert(registration)

    def replace(self, incoming: Iterable[Registration]) -> None:
        self._by_id = {r.id: r for r in incoming}

    def get(self, registration_id: int) -> Optional[Registration]:
        return self._by_id.get(registration_id)

    @property
    def items(self) -> list[Registration]:
        return [self._by_id[k] for k in sorted(self._by_id)]

    def __len__(self) -> int:
        return len(self._by_id)


class LocalState:
    """Everything a dashboard renders: logs, registry, connectivity."""

    def __init__(self, max_entries: int = 50, tz: Optional[str] = None):
        self.tz = tz
        self.logs = LogCache(max_entries)
        self.registrations = RegistrationStore()
        self.connection: ConnectionState = Connecting(attempt=1)
        self.online = True
        self.last_error = ""
        self.last_update: Optional[datetime] = None
        self._log_listeners: list[Callable[[LogEntry], None]] = []

    # ─── Listeners ───────────────────────────────────────

    def on_log(self, listener: Callable[[LogEntry], None]) -> None:
        """Call `listener` for every entry that arrives over the live channel."""
        self._log_listeners.append(listener)

    # ─── Status ──────────────────────────────────────────

    def set_connection(self, state: ConnectionState) -> None:
        self.connection = state

    def mark_online(self) -> None:
        self.online = True
        self.last_error = ""

    def mark_offline(self, error: str) -> None:
        self.online = False
        self.last_error = error

    def touch(self) -> None:
        self.last_update = local_now(self.tz)

    # ─── Live events ─────────────────────────────────────

    def apply_event(self, event: object) -> bool:
        """Route one {type, data} event into the right store.

        Returns True when something changed. Unknown types are ignored.
        """
        if not isinstance(event, dict) or not isinstance(event.get("data"), dict):
            return False
        event_type, data = event.get("type"), event["data"]

        if event_type == RFID_LOG:
            entry = normalize_log_entry(data, self.tz)
            self.logs.push(entry)
            self.touch()
            self.mark_online()
            for listener in self._log_listeners:
                listener(entry)
            return True

        if event_type == RFID_STATUS:
            registration = normalize_registration(data)
            if registration is None:
                return False
            self.registrations.upsert(registration)
            self.touch()
            return True

        logger.debug("subscriber.ignored_event", event_type=event_type)
        return False
