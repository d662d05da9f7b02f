"""
Configuration settings for TravelBio.

Values are read from the environment (a local .env file is loaded first)
so the same code runs against the hosted store, a local SQLite file, or
in-memory demo data.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"
DEFAULT_DB_PATH = DATA_DIR / "travelbio.db"

# Supported data store backends
BACKENDS = ("supabase", "sqlite", "memory")


def _env_bool(name: str, default: bool) -> bool:
    """Parse a boolean environment variable."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    """Parse an integer environment variable, falling back on bad input."""
    raw = os.getenv(name, "")
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    """Runtime settings resolved from the environment."""

    supabase_url: str = ""
    supabase_key: str = ""
    backend: str = "sqlite"
    db_path: Path = DEFAULT_DB_PATH
    max_workers: int = 8
    request_timeout: int = 15
    log_level: str = "INFO"
    log_json: bool = True
    log_to_file: bool = False

    @property
    def supabase_configured(self) -> bool:
        """Check if the hosted store credentials are present."""
        return bool(self.supabase_url and self.supabase_key)

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        backend = os.getenv("TRAVELBIO_BACKEND", "sqlite").strip().lower()
        if backend not in BACKENDS:
            raise ValueError(
                f"Unknown TRAVELBIO_BACKEND {backend!r}, expected one of {BACKENDS}"
            )

        return cls(
            supabase_url=os.getenv("SUPABASE_URL", "").rstrip("/"),
            supabase_key=os.getenv("SUPABASE_ANON_KEY", ""),
            backend=backend,
            db_path=Path(os.getenv("TRAVELBIO_DB_PATH", str(DEFAULT_DB_PATH))),
            max_workers=max(1, _env_int("TRAVELBIO_MAX_WORKERS", 8)),
            request_timeout=max(1, _env_int("TRAVELBIO_REQUEST_TIMEOUT", 15)),
            log_level=os.getenv("TRAVELBIO_LOG_LEVEL", "INFO").upper(),
            log_json=_env_bool("TRAVELBIO_LOG_JSON", True),
            log_to_file=_env_bool("TRAVELBIO_LOG_TO_FILE", False),
        )


def get_settings() -> Settings:
    """Get settings for the current environment."""
    return Settings.from_env()
