import os
from functools import lru_cache
from pathlib import Path
from typing import Optional


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        session_secret: str,
        session_max_age_hours: int,
        currency: str,
        search_limit: int,
        identity_secret: Optional[str],
        max_range_days: int = 366,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.session_secret = session_secret
        self.session_max_age_hours = session_max_age_hours
        self.currency = currency
        self.search_limit = search_limit
        self.identity_secret = identity_secret
        self.max_range_days = max_range_days


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "ledger.db"
    database_url = os.getenv("LEDGER_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("LEDGER_TIMEZONE", "Africa/Addis_Ababa")
    session_secret = os.getenv(
        "LEDGER_SESSION_SECRET",
        "5b0f3c9e2d7a41e8b6c0f19a7d3e52c48a1f6b0e9d2c7a3f5e8b1d4c6a9f0e27",
    )
    session_max_age_hours = int(os.getenv("LEDGER_SESSION_MAX_AGE_HOURS", "720"))
    currency = os.getenv("LEDGER_CURRENCY", "ETB")
    search_limit = int(os.getenv("LEDGER_SEARCH_LIMIT", "10"))
    identity_secret = os.getenv("LEDGER_IDENTITY_SECRET") or None
    max_range_days = int(os.getenv("LEDGER_MAX_RANGE_DAYS", "366"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        session_secret=session_secret,
        session_max_age_hours=session_max_age_hours,
        currency=currency,
        search_limit=search_limit,
        identity_secret=identity_secret,
        max_range_days=max_range_days,
    )
