import os
from datetime import date
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        log_level: str,
        window_start: date,
        window_end: date,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.log_level = log_level
        self.window_start = window_start
        self.window_end = window_end


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("FINANCE_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "finance.db"
    database_url = os.getenv("FINANCE_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("FINANCE_TIMEZONE", "America/Sao_Paulo")
    log_level = os.getenv("FINANCE_LOG_LEVEL", "INFO").upper()
    # Bounds used when a query does not supply its own date range.
    window_start = date.fromisoformat(os.getenv("FINANCE_WINDOW_START", "2000-01-01"))
    window_end = date.fromisoformat(os.getenv("FINANCE_WINDOW_END", "2100-12-31"))
    if window_start > window_end:
        raise ValueError("FINANCE_WINDOW_START must not be after FINANCE_WINDOW_END")
    return Settings(
        database_url=database_url,
        timezone=timezone,
        log_level=log_level,
        window_start=window_start,
        window_end=window_end,
    )
