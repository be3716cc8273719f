"""Turn whatever the bridge or the API sent into complete, renderable records.

Learn: Log events arrive from three places (bridge push, incremental poll,
full poll) and older readers omit fields. Normalization fills every gap
so the cache never holds a half record:

  id            → given, else current epoch milliseconds
  time_log      → time_log or timestamp, else now (site timezone)
  formatted     → derived from time_log unless provided
  rfid_data     → "UNKNOWN"
  status_text   → given, else "RFID NOT FOUND" when found is false,
                  else "1" / "0"
  found         → given, else status_text != "RFID NOT FOUND"
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from rfidlive.clock import (
    DATE_FORMAT,
    DB_FORMAT,
    DISPLAY_FORMAT,
    TIME_12HR_FORMAT,
    local_now,
    parse_local,
    site_timezone,
)

NOT_FOUND_TEXT = "RFID NOT FOUND"


@dataclass(frozen=True)
class LogEntry:
    id: int
    time_log: str
    time_log_formatted: str
    date: str
    time_12hr: str
    rfid_data: str
    rfid_status: bool
    status_text: str
    found: bool


@dataclass(frozen=True)
class Registration:
    id: int
    rfid_data: str
    rfid_status: bool
    status_text: str
    created_at: str = ""
    updated_at: str = ""


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        # 1e400 decodes to inf, which int() refuses
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> bool:
    # "0" and "false" are falsy here, unlike bool("0")
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _moment(raw: Any, tz: Optional[str], now: datetime) -> datetime:
    if isinstance(raw, str) and raw.strip():
        try:
            return parse_local(raw, tz).astimezone(site_timezone(tz))
        except ValueError:
            pass
    return now


def normalize_log_entry(incoming: dict, tz: Optional[str] = None) -> LogEntry:
    now = local_now(tz)
    entry_id = _as_int(incoming.get("id"))
    if entry_id is None:
        entry_id = int(now.timestamp() * 1000)

    moment = _moment(incoming.get("time_log") or incoming.get("timestamp"), tz, now)

    rfid_status = _as_bool(incoming.get("rfid_status"))
    found_value = incoming.get("found")
    found = None if found_value is None else _as_bool(found_value)

    status_text = incoming.get("status_text")
    if not isinstance(status_text, str) or not status_text:
        if found is False:
            status_text = NOT_FOUND_TEXT
        else:
            status_text = "1" if rfid_status else "0"

    rfid_data = incoming.get("rfid_data")

    return LogEntry(
        id=entry_id,
        time_log=moment.strftime(DB_FORMAT),
        time_log_formatted=incoming.get("time_log_formatted") or moment.strftime(DISPLAY_FORMAT),
        date=incoming.get("date") or moment.strftime(DATE_FORMAT),
        time_12hr=incoming.get("time_12hr") or moment.strftime(TIME_12HR_FORMAT),
        rfid_data="UNKNOWN" if rfid_data is None else str(rfid_data),
        rfid_status=rfid_status,
        status_text=status_text,
        found=found if found is not None else status_text != NOT_FOUND_TEXT,
    )


def normalize_registration(incoming: dict) -> Optional[Registration]:
    """Registry rows without a usable id are dropped (None)."""
    reg_id = _as_int(incoming.get("id"))
    if reg_id is None:
        return None
    rfid_status = _as_bool(incoming.get("rfid_status"))
    status_text = incoming.get("status_text")
    if not isinstance(status_text, str) or not status_text:
        status_text = "1" if rfid_status else "0"
    return Registration(
        id=reg_id,
        rfid_data=str(incoming.get("rfid_data") or "UNKNOWN"),
        rfid_status=rfid_status,
        status_text=status_text,
        created_at=str(incoming.get("created_at") or ""),
        updated_at=str(incoming.get("updated_at") or ""),
    )
