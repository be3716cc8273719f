"""rfidlive CLI — serve the bridge and the API, watch live scans, poke readers.

Usage:
    rfidlive bridge                         # Broadcast bridge on :9443 (WebSocket + /broadcast)
    rfidlive api                            # Event source API on :8000
    rfidlive watch                          # Live log: push channel + polling, printed as it lands
    rfidlive scan 04A1B2C3                  # Simulate a reader hit
    rfidlive add-tag 04A1B2C3 --active      # Register a card
    rfidlive tags                           # List registered cards
    rfidlive logs                           # Recent scans
    rfidlive status                         # Health of bridge + API
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import dataclasses
import json
import logging
import signal
import sys
from typing import Optional

import click
import httpx
import structlog

from rfidlive import __version__
from rfidlive.config import settings

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


def _api_url() -> str:
    return settings.api_base_url.rstrip("/")


def _bridge_health_url() -> str:
    base = settings.bridge_url.rstrip("/")
    if base.endswith("/broadcast"):
        base = base[: -len("/broadcast")]
    return f"{base}/health"


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the event source API."""
    return httpx.AsyncClient(base_url=_api_url(), timeout=10.0, verify=settings.bridge_verify_tls)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from synchronous Click handler.

    Handles nested event loops (e.g. when invoked via Click CliRunner
    inside an existing async context like tests) by offloading to a thread.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        # No running loop: normal CLI invocation
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _setup_logging(debug: bool) -> None:
    """Route both stdlib and structlog output through one level gate."""
    level = logging.DEBUG if debug else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=False,
    )


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _print_table(rows: list[dict], columns: list[tuple[str, str, int]]):
    """Print a simple ASCII table.

    columns: list of (header, dict_key, width)
    """
    header = "  ".join(h.ljust(w) for h, _, w in columns)
    click.secho(header, bold=True)
    click.echo("-" * len(header))
    for row in rows:
        line = "  ".join(str(row.get(k, "—"))[:w].ljust(w) for _, k, w in columns)
        click.echo(line)


def _status_color(status: str) -> str:
    """Map status strings to click colors."""
    colors = {
        "ok": "green",
        "healthy": "green",
        "connected": "green",
        "connecting": "yellow",
        "disconnected": "yellow",
        "error": "red",
        "unhealthy": "red",
        "unreachable": "red",
        "closed": "white",
        "RFID NOT FOUND": "red",
        "1": "green",
        "0": "white",
    }
    return colors.get(status, "white")


def _fail(message: str) -> None:
    click.secho(f"Error: {message}", fg="red", err=True)
    sys.exit(1)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="rfidlive")
def main():
    """rfidlive — RFID access control with live scan updates."""


# ---------------------------------------------------------------------------
# rfidlive bridge / api
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default: RFIDLIVE_BRIDGE_HOST)")
@click.option("--port", "-p", type=int, default=None, help="Port (default: RFIDLIVE_BRIDGE_PORT)")
@click.option("--certfile", default=None, help="TLS certificate (enables wss://)")
@click.option("--keyfile", default=None, help="TLS private key")
def bridge(host: Optional[str], port: Optional[int], certfile: Optional[str], keyfile: Optional[str]):
    """Serve the broadcast bridge: POST /broadcast in, WebSocket fan-out out."""
    import uvicorn

    from rfidlive.realtime.app import create_app
    from rfidlive.realtime.bridge import Bridge

    certfile = certfile or settings.bridge_ssl_certfile or None
    keyfile = keyfile or settings.bridge_ssl_keyfile or None
    if bool(certfile) != bool(keyfile):
        _fail("--certfile and --keyfile must be given together")

    _setup_logging(settings.debug)
    app = create_app(Bridge(settings))
    uvicorn.run(
        app,
        host=host or settings.bridge_host,
        port=port or settings.bridge_port,
        ssl_certfile=certfile,
        ssl_keyfile=keyfile,
        ws="websockets",
    )


@main.command()
@click.option("--host", default=None, help="Bind address (default: RFIDLIVE_API_HOST)")
@click.option("--port", "-p", type=int, default=None, help="Port (default: RFIDLIVE_API_PORT)")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def api(host: Optional[str], port: Optional[int], reload: bool):
    """Serve the event source API (scans, log, registry)."""
    import uvicorn

    _setup_logging(settings.debug)
    uvicorn.run(
        "rfidlive.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# rfidlive watch
# ---------------------------------------------------------------------------


@main.command()
@click.option("--url", default=None, help="Bridge WebSocket URL (default: RFIDLIVE_LIVE_UPDATES_URL)")
@click.option("--client-id", default=None, help="Client id sent as X-Client-Id")
@click.option("--no-poll", is_flag=True, help="Live channel only, no polling")
def watch(url: Optional[str], client_id: Optional[str], no_poll: bool):
    """Print scans as they arrive, plus connection state changes."""
    overrides = {}
    if url:
        overrides["live_updates_url"] = url
    if client_id:
        overrides["client_id"] = client_id
    config = settings.model_copy(update=overrides) if overrides else settings
    _setup_logging(config.debug)
    _run(_watch_impl(config, not no_poll))


async def _watch_impl(config, poll: bool):
    from rfidlive.subscriber.runner import Subscriber

    subscriber = Subscriber(config, poll=poll)

    def show_state(state):
        detail = dataclasses.asdict(state)
        click.echo(
            click.style(f"[{state.name}]", fg=_status_color(state.name))
            + (f" {detail}" if detail else "")
        )

    def show_entry(entry):
        status = click.style(entry.status_text, fg=_status_color(entry.status_text))
        click.echo(f"  #{entry.id:<8d} {entry.time_log_formatted}  {entry.rfid_data:16s}  {status}")

    subscriber.channel.on_state(show_state)
    subscriber.state.on_log(show_entry)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda: asyncio.ensure_future(subscriber.stop()))
        except (NotImplementedError, RuntimeError):
            # No signal handlers off the main thread / on Windows
            pass

    click.secho(f"Watching {config.live_updates_url} (Ctrl+C to stop)", bold=True)
    await subscriber.run()


# ---------------------------------------------------------------------------
# rfidlive scan / add-tag
# ---------------------------------------------------------------------------


@main.command()
@click.argument("rfid")
def scan(rfid: str):
    """Simulate a reader hit for RFID (toggles a registered card)."""
    _run(_scan_impl(rfid))


async def _scan_impl(rfid: str):
    async with _client() as c:
        r = await c.post("/check_rfid", json={"rfid_data": rfid})
        r.raise_for_status()
        result = r.json()

    color = "green" if result.get("found") else "red"
    click.secho(result.get("message", ""), fg=color, bold=True)
    click.echo(_pretty_json(result))


@main.command("add-tag")
@click.argument("rfid")
@click.option("--active", is_flag=True, help="Register with status 1")
def add_tag(rfid: str, active: bool):
    """Register a new card."""
    _run(_add_tag_impl(rfid, active))


async def _add_tag_impl(rfid: str, active: bool):
    async with _client() as c:
        r = await c.post("/registered", json={"rfid_data": rfid, "status": active})
        if r.status_code == 409:
            _fail(r.json().get("detail", "already registered"))
        r.raise_for_status()
        tag = r.json()
    click.secho(f"Registered #{tag['id']} {tag['rfid_data']} (status {tag['status_text']})", fg="green")


# ---------------------------------------------------------------------------
# rfidlive tags / logs
# ---------------------------------------------------------------------------


@main.command()
def tags():
    """List registered cards."""
    _run(_tags_impl())


async def _tags_impl():
    async with _client() as c:
        r = await c.get("/registered")
        r.raise_for_status()
        data = r.json()

    rows = data.get("registered", [])
    if not rows:
        click.echo("No registered cards.")
        return
    _print_table(rows, [
        ("ID", "id", 6),
        ("RFID", "rfid_data", 18),
        ("STATUS", "status_text", 6),
        ("UPDATED", "updated_at", 20),
    ])


@main.command()
@click.option("--limit", "-l", default=20, help="Max results")
def logs(limit: int):
    """Show the most recent scans."""
    _run(_logs_impl(limit))


async def _logs_impl(limit: int):
    async with _client() as c:
        r = await c.get("/logs", params={"limit": limit})
        r.raise_for_status()
        data = r.json()

    rows = data.get("logs", [])
    if not rows:
        click.echo("No scans yet.")
        return
    _print_table(rows, [
        ("ID", "id", 8),
        ("TIME", "time_log_formatted", 23),
        ("RFID", "rfid_data", 18),
        ("STATUS", "status_text", 15),
    ])


# ---------------------------------------------------------------------------
# rfidlive status
# ---------------------------------------------------------------------------


@main.command()
def status():
    """Show health of the bridge and the event source API."""
    _run(_status_impl())


async def _status_impl():
    async with httpx.AsyncClient(timeout=5.0, verify=settings.bridge_verify_tls) as c:
        checks = [
            ("Bridge", _bridge_health_url()),
            ("API", f"{_api_url()}/health"),
        ]
        for name, url in checks:
            try:
                r = await c.get(url)
                body = r.json()
            except (httpx.HTTPError, ValueError) as e:
                label = click.style("unreachable", fg="red")
                click.echo(f"  {name:8s} {label}  {url}  ({e})")
                continue
            state = str(body.get("status", r.status_code))
            label = click.style(state, fg=_status_color(state))
            extra = f"clients={body['clients']}" if "clients" in body else f"version={body.get('version', '?')}"
            click.echo(f"  {name:8s} {label}  {url}  {extra}")


if __name__ == "__main__":
    main()
