from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# DB SQLite su file nella root del progetto, salvo DATABASE_URL
DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "clinic.sqlite"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    business_start_hour: int = 8
    business_end_hour: int = 18
    patient_undo_window_minutes: int = 5
    default_appointment_minutes: int = 60
    database_url: str = f"sqlite:///{DEFAULT_DB_PATH}"
    jwt_secret: str = "CHANGE_ME_DEV_SECRET"
    jwt_expire_minutes: int = 60

    def __post_init__(self) -> None:
        if not (0 <= self.business_start_hour < self.business_end_hour <= 24):
            raise ValueError(
                "Business hours must satisfy 0 <= start < end <= 24 "
                f"(got {self.business_start_hour}-{self.business_end_hour})"
            )
        if self.patient_undo_window_minutes < 0:
            raise ValueError("PATIENT_UNDO_WINDOW_MINUTES cannot be negative")
        if self.default_appointment_minutes <= 0:
            raise ValueError("DEFAULT_APPOINTMENT_MINUTES must be positive")


def load_settings() -> Settings:
    """Legge le impostazioni dall'ambiente (e da .env, caricato all'import)."""
    return Settings(
        business_start_hour=_int_env("BUSINESS_START_HOUR", 8),
        business_end_hour=_int_env("BUSINESS_END_HOUR", 18),
        patient_undo_window_minutes=_int_env("PATIENT_UNDO_WINDOW_MINUTES", 5),
        default_appointment_minutes=_int_env("DEFAULT_APPOINTMENT_MINUTES", 60),
        database_url=os.getenv("DATABASE_URL", f"sqlite:///{DEFAULT_DB_PATH}"),
        # In produzione: impostala via variabile d'ambiente
        jwt_secret=os.getenv("JWT_SECRET", "CHANGE_ME_DEV_SECRET"),
        jwt_expire_minutes=_int_env("JWT_EXPIRE_MINUTES", 60),
    )


def configure_logging(level: str | None = None) -> None:
    """Solo gli entry point (API, CLI) la chiamano; i moduli si limitano a loggare."""
    logging.basicConfig(
        level=(level or os.getenv("LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
