"""Project-level configuration and path helpers."""

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Union

PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
DATA_DIR = PROJECT_ROOT / "03_data"
LOGS_DIR = PROJECT_ROOT / "04_logs"
DEFAULT_DB_PATH = DATA_DIR / "intake.db"
DEFAULT_LOG_PATH = LOGS_DIR / "intake.log"


PathLike = Union[str, Path]


def resolve_db_path(env_value: PathLike | None = None) -> PathLike:
    """Resolve DATABASE_URL to an absolute path."""
    if not env_value:
        DATA_DIR.mkdir(parents=True, exist_ok=True)
        return DEFAULT_DB_PATH

    if str(env_value) == ":memory:":
        return ":memory:"

    candidate = Path(env_value)
    return candidate if candidate.is_absolute() else PROJECT_ROOT / candidate


def _env_float(key: str, default: float) -> float:
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    try:
        return float(value)
    except ValueError:
        raise RuntimeError(f"Environment variable {key} must be a number") from None


def _env_str(key: str) -> str | None:
    value = os.getenv(key, "").strip()
    return value or None


@dataclass(frozen=True)
class EngineSettings:
    """Timing windows and collaborator settings for the session engine."""

    cooldown: timedelta = timedelta(minutes=5)
    opt_out_duration: timedelta = timedelta(days=365)
    manual_reply_mute: timedelta = timedelta(hours=24)
    pacing_delay: float = 1.5  # seconds between paced messages
    eviction_interval: timedelta = timedelta(hours=24)
    eviction_max_age: timedelta = timedelta(days=30)
    reset_timezone: str | None = None
    gateway_url: str | None = None
    gateway_token: str | None = None

    @classmethod
    def from_env(cls) -> "EngineSettings":
        """Build settings from environment variables (already loaded from .env)."""
        return cls(
            cooldown=timedelta(minutes=_env_float("COOLDOWN_MINUTES", 5)),
            opt_out_duration=timedelta(days=_env_float("OPT_OUT_DAYS", 365)),
            manual_reply_mute=timedelta(
                hours=_env_float("MANUAL_REPLY_MUTE_HOURS", 24)
            ),
            pacing_delay=_env_float("PACING_DELAY_SECONDS", 1.5),
            eviction_interval=timedelta(
                hours=_env_float("EVICTION_INTERVAL_HOURS", 24)
            ),
            eviction_max_age=timedelta(days=_env_float("EVICTION_MAX_AGE_DAYS", 30)),
            reset_timezone=_env_str("RESET_TIMEZONE"),
            gateway_url=_env_str("TRANSPORT_GATEWAY_URL"),
            gateway_token=_env_str("TRANSPORT_GATEWAY_TOKEN"),
        )
