"""Subscriber client — a live, bounded view of recent scans.

Learn: Two producers feed one LocalState:
1. LiveChannel — WebSocket to the bridge, reconnecting with backoff
2. Reconciler — polls the event source's list endpoints on an interval

Both merge with the same rule (last write wins, keyed by id), so they can
race freely and still converge. Subscriber (runner.py) wires them up.
"""
