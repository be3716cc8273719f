"""rfidlive — RFID access-control monitoring.

Three cooperating pieces: the event source API (registered tags and the
scan log), the broadcast bridge (HTTP POST in, WebSocket fan-out) and the
subscriber client that keeps a live, bounded view of recent scans.
"""

__version__ = "0.1.0"
