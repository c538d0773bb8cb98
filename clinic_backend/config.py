from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# DB SQLite su file nella root del progetto (accanto al pacchetto)
DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "clinic.sqlite"


@dataclass(frozen=True)
class Settings:
    database_url: str
    slot_duration_minutes: int
    slot_step_minutes: int
    search_horizon_days: int
    log_level: str


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Legge la configurazione dall'ambiente (eventualmente da `.env`)."""
    return Settings(
        database_url=os.getenv("DATABASE_URL", f"sqlite:///{DEFAULT_DB_PATH}"),
        slot_duration_minutes=int(os.getenv("SLOT_DURATION_MINUTES", "60")),
        slot_step_minutes=int(os.getenv("SLOT_STEP_MINUTES", "30")),
        search_horizon_days=int(os.getenv("SEARCH_HORIZON_DAYS", "60")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=level or get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
