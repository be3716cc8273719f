"""Row → JSON shaping shared by the scan, log and registry services.

Learn: Time fields go out pre-formatted in the site timezone so every
consumer (dashboard, bridge subscribers, readers) renders the same text
without timezone logic of its own.
"""

import hashlib
from datetime import datetime, timezone
from email.utils import format_datetime, parsedate_to_datetime
from typing import Optional

from rfidlive.clock import (
    DATE_FORMAT,
    DB_FORMAT,
    DISPLAY_FORMAT,
    TIME_12HR_FORMAT,
    site_timezone,
)
from rfidlive.db.models import RegisteredTag, ScanLog
from rfidlive.schemas.tags import NOT_FOUND_TEXT


def status_text(status: bool) -> str:
    return "1" if status else "0"


def log_payload(log: ScanLog, found: bool) -> dict:
    """A scan log row as the dashboard and the bridge see it."""
    text = status_text(log.rfid_status) if found else NOT_FOUND_TEXT
    return {
        "id": log.id,
        "time_log": log.time_log.strftime(DB_FORMAT),
        "time_log_formatted": log.time_log.strftime(DISPLAY_FORMAT),
        "date": log.time_log.strftime(DATE_FORMAT),
        "time_12hr": log.time_log.strftime(TIME_12HR_FORMAT),
        "rfid_data": log.rfid_data,
        "rfid_status": bool(log.rfid_status),
        "found": found,
        "status_text": text,
    }


def tag_payload(tag: RegisteredTag) -> dict:
    return {
        "id": tag.id,
        "rfid_data": tag.rfid_data,
        "rfid_status": bool(tag.rfid_status),
        "status_text": status_text(tag.rfid_status),
        "created_at": tag.created_at.strftime(DB_FORMAT),
        "updated_at": tag.updated_at.strftime(DB_FORMAT),
    }


def make_etag(*parts: object) -> str:
    """Strong, quoted entity tag over the given state fingerprint."""
    raw = ":".join("" if p is None else str(p) for p in parts)
    return '"' + hashlib.sha1(raw.encode()).hexdigest() + '"'


def http_date(local: datetime, tz: Optional[str] = None) -> str:
    """Naive site-local time → RFC 7231 date (Last-Modified)."""
    aware = local.replace(tzinfo=site_timezone(tz)).astimezone(timezone.utc)
    return format_datetime(aware, usegmt=True)


def not_modified_since(header: str, local: datetime, tz: Optional[str] = None) -> bool:
    """True when an If-Modified-Since header is at or after `local`."""
    try:
        client_time = parsedate_to_datetime(header)
    except (TypeError, ValueError):
        return False
    if client_time.tzinfo is None:
        client_time = client_time.replace(tzinfo=timezone.utc)
    server_time = local.replace(tzinfo=site_timezone(tz), microsecond=0)
    return client_time >= server_time


def etag_matches(header: str, etag: str) -> bool:
    """Compare an If-None-Match value with an ETag, quoted or not."""
    return bool(header) and header.strip().strip('"') == etag.strip('"')
