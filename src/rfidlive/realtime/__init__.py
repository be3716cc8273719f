"""Real-time infrastructure — broadcast bridge + WebSocket fan-out.

Learn: Events flow through two hops:
1. Event source → HTTP POST /broadcast (notifier.py → routes.py)
2. Bridge flush → WebSocket → every connected dashboard (bridge.py, websocket.py)

The bridge keeps nothing durable. Dashboards also poll the event source,
so a missed broadcast only costs one poll interval of latency.
"""
