"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with RFIDLIVE_ prefix.
One Settings class covers all three processes (bridge, event source API,
subscriber); each reads only the fields it needs.

Learn: pydantic-settings auto-loads from environment, validates types,
provides defaults. Tests build their own Settings(...) instead of
mutating the module singleton.
"""

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All app configuration. Set via RFIDLIVE_* env vars."""

    # General
    environment: str = "development"
    debug: bool = False
    timezone: str = "Asia/Manila"

    # Broadcast bridge
    bridge_host: str = "0.0.0.0"
    bridge_port: int = 9443
    bridge_ssl_certfile: str = ""
    bridge_ssl_keyfile: str = ""
    flush_delay_ms: int = 100
    flush_low_priority_cap: int = 10
    heartbeat_interval: float = 30.0  # seconds between liveness sweeps
    max_body_bytes: int = 1_000_000

    # Event source API
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    database_url: str = "sqlite+aiosqlite:///./rfidlive.db"

    # Event source → bridge notifications
    bridge_url: str = "http://localhost:9443/broadcast"
    bridge_enabled: bool = True
    bridge_timeout: float = 2.0
    bridge_verify_tls: bool = False  # the bridge usually runs on a self-signed cert

    # Subscriber
    api_base_url: str = "http://localhost:8000/api"
    live_updates_url: str = "ws://localhost:9443/"
    client_id: str = ""
    reconnect_base_ms: int = 1000
    reconnect_cap_ms: int = 30_000
    connect_timeout: float = 5.0
    dedup_window: float = 5.0
    poll_interval: float = 2.0
    max_log_entries: int = 50

    # CORS
    cors_origins: list[str] = ["*"]

    model_config = {"env_prefix": "RFIDLIVE_"}

    @model_validator(mode="after")
    def validate_settings(self):
        """Reject values that would make the flush or reconnect loops misbehave."""
        if self.flush_delay_ms < 0:
            raise ValueError("RFIDLIVE_FLUSH_DELAY_MS must be >= 0")
        if self.flush_low_priority_cap < 1:
            raise ValueError("RFIDLIVE_FLUSH_LOW_PRIORITY_CAP must be >= 1")
        if self.reconnect_base_ms <= 0 or self.reconnect_cap_ms < self.reconnect_base_ms:
            raise ValueError(
                "RFIDLIVE_RECONNECT_BASE_MS must be positive and not larger "
                "than RFIDLIVE_RECONNECT_CAP_MS"
            )
        if bool(self.bridge_ssl_certfile) != bool(self.bridge_ssl_keyfile):
            raise ValueError(
                "RFIDLIVE_BRIDGE_SSL_CERTFILE and RFIDLIVE_BRIDGE_SSL_KEYFILE "
                "must be set together"
            )
        return self


# Singleton: import this everywhere
settings = Settings()
