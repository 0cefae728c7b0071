from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from checkin_app.config.user_settings_store import UserSettingsStore

BASE_DIR = Path(__file__).resolve().parents[2]
ENV_PATH = BASE_DIR / ".env"
load_dotenv(ENV_PATH)

APP_NAME = os.getenv("APP_NAME", "Event Check-in")
STORAGE_BACKENDS = ("sqlite", "rest")

user_settings_store = UserSettingsStore()


class ConfigurationError(RuntimeError):
    """Raised when required configuration is missing or malformed."""


def _optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class Settings:
    app_name: str = APP_NAME
    qr_secret_key: Optional[str] = None
    database_path: Path = Path("checkin.db")
    qr_camera_index: int = 0
    scan_cooldown_seconds: float = 2.0
    pass_validity_days: Optional[int] = 30
    storage_backend: str = "sqlite"
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    coordinator_id: Optional[str] = None
    log_level: str = "INFO"

    def require_secret(self) -> str:
        if not self.qr_secret_key:
            raise ConfigurationError("QR_SECRET_KEY is not set. Add it to the environment or .env file.")
        return self.qr_secret_key

    def require_coordinator(self) -> str:
        if not self.coordinator_id:
            raise ConfigurationError("No coordinator id configured. Set COORDINATOR_ID or pass --coordinator.")
        return self.coordinator_id

    def describe(self) -> str:
        return (
            f"Settings(app_name={self.app_name}, "
            f"qr_secret_key={'***' if self.qr_secret_key else None}, "
            f"database_path={self.database_path}, "
            f"qr_camera_index={self.qr_camera_index}, "
            f"scan_cooldown_seconds={self.scan_cooldown_seconds}, "
            f"pass_validity_days={self.pass_validity_days}, "
            f"storage_backend={self.storage_backend}, "
            f"supabase_url={self.supabase_url}, "
            f"supabase_key={'***' if self.supabase_key else None}, "
            f"coordinator_id={self.coordinator_id}, "
            f"log_level={self.log_level})"
        )

    def __repr__(self) -> str:
        return self.describe()


def load_settings(store: UserSettingsStore | None = None) -> Settings:
    store = store or user_settings_store
    app_data_dir = Path(store.get("app_data_dir", str(store.pointer_dir))).expanduser()

    backend = (os.getenv("STORAGE_BACKEND") or "sqlite").strip().lower()
    if backend not in STORAGE_BACKENDS:
        raise ConfigurationError(f"STORAGE_BACKEND must be one of {', '.join(STORAGE_BACKENDS)}.")

    validity_raw = os.getenv("PASS_VALIDITY_DAYS", "30").strip()
    try:
        validity_days = int(validity_raw) if validity_raw else None
        camera_index = int(os.getenv("QR_CAMERA_INDEX", store.get("qr_camera_index", 0)))
        cooldown = float(os.getenv("SCAN_COOLDOWN_SECONDS", "2.0"))
    except ValueError as exc:
        raise ConfigurationError(f"Invalid numeric setting: {exc}") from exc

    return Settings(
        app_name=APP_NAME,
        qr_secret_key=_optional(os.getenv("QR_SECRET_KEY")),
        database_path=Path(os.getenv("DATABASE_PATH", str(app_data_dir / "checkin.db"))).expanduser(),
        qr_camera_index=camera_index,
        scan_cooldown_seconds=cooldown,
        pass_validity_days=validity_days if validity_days and validity_days > 0 else None,
        storage_backend=backend,
        supabase_url=_optional(os.getenv("SUPABASE_URL")),
        supabase_key=_optional(os.getenv("SUPABASE_KEY")),
        coordinator_id=_optional(os.getenv("COORDINATOR_ID")) or store.get("coordinator_id"),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )

