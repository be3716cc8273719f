#!/usr/bin/env python3
"""
rfidlive reader simulator — register cards and present them to a "reader".

Registers two cards, scans each a few times (plus one unknown card) and
prints what the reader would display. Run `rfidlive watch` in another
terminal to see the same scans arrive over the bridge.

Run with: python examples/reader_simulator.py [--count 3] [--delay 1.0]

Requires: pip install httpx
Event source must be running: http://localhost:8000 (rfidlive api)
Bridge optional: http://localhost:9443 (rfidlive bridge)
"""

import argparse
import sys
import time

import httpx

BASE = "http://localhost:8000/api"
BRIDGE = "http://localhost:9443"

CARDS = ["04A1B2C3", "04D4E5F6"]
UNKNOWN_CARD = "DEADBEEF"


def check_services(client: httpx.Client) -> None:
    print("Checking services...")
    try:
        resp = client.get("/health")
    except httpx.ConnectError:
        print(f"ERROR: Event source not reachable at {BASE}")
        print("Start it with:  rfidlive api")
        sys.exit(1)
    health = resp.json()
    print(f"  API:      {'✓' if health['status'] == 'ok' else '✗'} (v{health['version']})")

    try:
        bridge = httpx.get(f"{BRIDGE}/health", timeout=2).json()
        print(f"  Bridge:   ✓ ({bridge['clients']} subscriber(s) connected)")
    except httpx.HTTPError:
        print("  Bridge:   ✗ (scans are still logged; subscribers will catch up by polling)")


def register_cards(client: httpx.Client) -> None:
    print("\n1. Registering cards...")
    for uid in CARDS:
        resp = client.post("/registered", json={"rfid_data": uid})
        if resp.status_code == 409:
            print(f"   {uid}: already registered")
            continue
        assert resp.status_code == 201, f"Failed: {resp.text}"
        print(f"   {uid}: registered as #{resp.json()['id']}")


def scan(client: httpx.Client, uid: str) -> None:
    resp = client.post("/check_rfid", json={"rfid_data": uid})
    resp.raise_for_status()
    result = resp.json()
    mark = "✓" if result["found"] else "✗"
    print(f"   {mark} {uid:10s}  status={result['status']}  {result['message']}")


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--count", type=int, default=3, help="Scans per card")
    parser.add_argument("--delay", type=float, default=1.0, help="Seconds between scans")
    args = parser.parse_args()

    client = httpx.Client(base_url=BASE, timeout=10)
    check_services(client)
    register_cards(client)

    print(f"\n2. Scanning ({args.count} rounds)...")
    for _ in range(args.count):
        for uid in CARDS:
            scan(client, uid)
            time.sleep(args.delay)

    print("\n3. Presenting an unknown card...")
    scan(client, UNKNOWN_CARD)

    print("\n4. Latest log entries:")
    logs = client.get("/logs", params={"limit": 5}).json()["logs"]
    for row in logs:
        print(f"   #{row['id']:<5d} {row['time_log_formatted']}  {row['rfid_data']:10s}  {row['status_text']}")


if __name__ == "__main__":
    main()
