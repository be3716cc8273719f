"""Pydantic schemas for registered tags and scan logs.

Learn: The dashboard and the ESP32 readers were written against a
loose, PHP-era JSON shape (booleans next to "1"/"0" status strings,
pre-formatted time fields). These schemas pin that shape down:
- TagCreate / StatusUpdate: what you POST
- TagRead: one registry row as the dashboard renders it
- TagListRead / LogListRead: the polled listings, with their cursors
- LogRead: one scan log row, already joined and formatted
- ScanResult: what a reader gets back after a scan
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

NOT_FOUND_TEXT = "RFID NOT FOUND"


def normalize_uid(value: str) -> str:
    """Tags are matched on their upper-cased, trimmed UID."""
    return value.strip().upper()


class TagCreate(BaseModel):
    rfid_data: str = Field(..., min_length=1, max_length=64)
    status: bool = False

    @field_validator("rfid_data")
    @classmethod
    def _uid(cls, v: str) -> str:
        v = normalize_uid(v)
        if not v:
            raise ValueError("rfid_data must not be blank")
        return v


class StatusUpdate(BaseModel):
    """Set a tag's status by id or by UID (id wins when both are given)."""
    id: Optional[int] = None
    rfid_data: Optional[str] = Field(None, max_length=64)
    status: bool

    @model_validator(mode="after")
    def _needs_target(self):
        if self.rfid_data is not None:
            self.rfid_data = normalize_uid(self.rfid_data)
        if self.id is None and not self.rfid_data:
            raise ValueError("Provide either id or rfid_data")
        return self


class TagRead(BaseModel):
    id: int
    rfid_data: str
    rfid_status: bool
    status_text: str
    created_at: str
    updated_at: str


class LogRead(BaseModel):
    id: int
    time_log: str
    time_log_formatted: str
    date: str
    time_12hr: str
    rfid_data: str
    rfid_status: bool
    found: bool
    status_text: str


class LogCursor(BaseModel):
    latest_id: int
    requested_after_id: int


class LogListRead(BaseModel):
    success: bool = True
    count: int
    logs: list[LogRead]
    cursor: LogCursor
    last_modified: Optional[str]
    etag: str


class TagListRead(BaseModel):
    success: bool = True
    count: int
    registered: list[TagRead]
    last_modified: Optional[str]
    filtered_since: bool


class TagChangeRead(BaseModel):
    success: bool = True
    message: str
    registered: TagRead


class ScanResult(BaseModel):
    status: int
    found: bool
    message: str
    rfid_data: str = ""
    status_text: Optional[str] = None
    timestamp: str
