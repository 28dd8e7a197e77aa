"""Runtime configuration.

Settings are read from the process environment. A `.env` file at the repo
root is loaded first if present.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv


REPO_ROOT = Path(__file__).resolve().parents[1]

env_path = REPO_ROOT / ".env"
if env_path.exists():
    load_dotenv(env_path)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {value!r}")


def _env_list(name: str, default: str) -> List[str]:
    raw = os.getenv(name, default)
    return [item.strip().lower() for item in raw.split(",") if item.strip()]


@dataclass
class SourceSettings:
    """Connection settings for one external accounting system."""
    name: str
    base_url: str
    api_key: str = ""


@dataclass
class Settings:
    """Application settings.

    Attributes:
        db_path: SQLite database file
        tenant_id: Tenant whose receivables this process syncs
        sources: Enabled source connector names (e.g. sevdesk, reonic)
        fetch_timeout_seconds: Upper bound for a single connector fetch
        lease_ttl_seconds: How long a sync lease survives a crashed run; a
            running cycle renews it every third of this
        sync_cron_schedule: Cron expression for the scheduled workflow
        mark_invoice_paid_on_match: Confirming a match marks the invoice paid
        log_level: Root log level name
        log_json: Emit JSON log lines instead of human-readable ones
    """
    db_path: Path = REPO_ROOT / "receivables.db"
    tenant_id: str = "default"
    sources: List[str] = field(default_factory=lambda: ["sevdesk", "reonic"])
    fetch_timeout_seconds: int = 10
    lease_ttl_seconds: int = 900
    sync_cron_schedule: str = "0 2 * * *"
    mark_invoice_paid_on_match: bool = True

    sevdesk: SourceSettings = field(
        default_factory=lambda: SourceSettings("sevdesk", "https://my.sevdesk.de/api/v1")
    )
    reonic: SourceSettings = field(
        default_factory=lambda: SourceSettings("reonic", "https://api.reonic.de/v1")
    )

    log_level: str = "INFO"
    log_json: bool = False

    temporal_endpoint: Optional[str] = None
    temporal_namespace: str = "default"
    temporal_api_key: Optional[str] = None
    temporal_task_queue: str = "receivables-sync"

    def __post_init__(self):
        # A renewal can be delayed by one in-flight fetch
        if self.lease_ttl_seconds < 3 * self.fetch_timeout_seconds:
            raise ValueError(
                f"SYNC_LEASE_TTL_SECONDS ({self.lease_ttl_seconds}) must be at least three times "
                f"SYNC_FETCH_TIMEOUT_SECONDS ({self.fetch_timeout_seconds})"
            )

    def source_settings(self, name: str) -> SourceSettings:
        """Get connection settings for a named source."""
        name = name.lower()
        if name == "sevdesk":
            return self.sevdesk
        if name == "reonic":
            return self.reonic
        raise ValueError(f"No settings for source: {name}")

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        return cls(
            db_path=Path(os.getenv("RECEIVABLES_DB_PATH", str(REPO_ROOT / "receivables.db"))),
            tenant_id=os.getenv("TENANT_ID", "default"),
            sources=_env_list("SYNC_SOURCES", "sevdesk,reonic"),
            fetch_timeout_seconds=_env_int("SYNC_FETCH_TIMEOUT_SECONDS", 10),
            lease_ttl_seconds=_env_int("SYNC_LEASE_TTL_SECONDS", 900),
            sync_cron_schedule=os.getenv("SYNC_CRON_SCHEDULE", "0 2 * * *"),
            mark_invoice_paid_on_match=_env_bool("MARK_INVOICE_PAID_ON_MATCH", True),
            sevdesk=SourceSettings(
                "sevdesk",
                os.getenv("SEVDESK_API_URL", "https://my.sevdesk.de/api/v1"),
                os.getenv("SEVDESK_API_KEY", ""),
            ),
            reonic=SourceSettings(
                "reonic",
                os.getenv("REONIC_API_URL", "https://api.reonic.de/v1"),
                os.getenv("REONIC_API_KEY", ""),
            ),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_json=_env_bool("LOG_JSON", False),
            temporal_endpoint=os.getenv("TEMPORAL_ENDPOINT"),
            temporal_namespace=os.getenv("TEMPORAL_NAMESPACE", "default"),
            temporal_api_key=os.getenv("TEMPORAL_API_KEY"),
            temporal_task_queue=os.getenv("TEMPORAL_TASK_QUEUE", "receivables-sync"),
        )


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get process-wide settings (loaded once from the environment)."""
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings
