"""SQLAlchemy ORM models — the registered tags and the scan log.

Learn: Declarative ORM mapping with SQLAlchemy 2.0 style (Mapped[] + mapped_column).
Each class = one table.

Key concepts:
- rfid_data is the tag's printed UID ("AA:BB:CC:DD"), unique in the registry
- the scan log is NOT foreign-keyed to the registry: unknown tags are logged
  too, and "found" is computed by joining at read time
- time_log is stored as naive site-local wall-clock time (see clock.py),
  because that's what readers and operators talk in
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class RegisteredTag(Base):
    """A tag known to the access-control system.

    Learn: rfid_status is the tag's current state (1 = in / active,
    0 = out / inactive). Each scan flips it; staff can also set it.
    updated_at is bumped on every change and is the cursor the dashboard
    uses for incremental refreshes (?updated_since=).
    """

    __tablename__ = "rfid_reg"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rfid_data: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    rfid_status: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, server_default=func.now()
    )


class ScanLog(Base):
    """One reader hit. Append-only."""

    __tablename__ = "rfid_logs"
    __table_args__ = (
        Index("ix_rfid_logs_time_log", "time_log"),
        Index("ix_rfid_logs_rfid_data", "rfid_data"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    time_log: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    rfid_data: Mapped[str] = mapped_column(String(64), nullable=False)
    rfid_status: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
