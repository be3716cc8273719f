"""Event type constants.

Learn: Centralizing event types as constants prevents typos and
makes it easy to discover every message that crosses the bridge.
"""

# ─── Event source → bridge ────────────────────────────────

RFID_LOG = "rfid-log"          # a tag was scanned (high priority)
RFID_STATUS = "rfid-status"    # a registered tag's status was set directly

# Type assumed when a broadcast body carries no "type" of its own
DEFAULT_EVENT_TYPE = RFID_LOG

# Always delivered in the flush they were queued for
HIGH_PRIORITY_TYPES = frozenset({RFID_LOG})

# ─── Bridge → subscriber ─────────────────────────────────

WELCOME = "welcome"
BATCH = "batch"
PING = "ping"
PONG = "pong"
