import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        default_currency: str,
        data_cache_ttl: float,
        validation_cache_ttl: float,
        calculation_cache_ttl: float,
        cache_sweep_minutes: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.default_currency = default_currency
        self.data_cache_ttl = data_cache_ttl
        self.validation_cache_ttl = validation_cache_ttl
        self.calculation_cache_ttl = calculation_cache_ttl
        self.cache_sweep_minutes = cache_sweep_minutes


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("OMOMONEY_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "omomoney.db"
    database_url = os.getenv("OMOMONEY_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("OMOMONEY_TIMEZONE", "UTC")
    default_currency = os.getenv("OMOMONEY_DEFAULT_CURRENCY", "USD").upper()
    data_cache_ttl = float(os.getenv("OMOMONEY_DATA_CACHE_TTL", "300"))
    validation_cache_ttl = float(os.getenv("OMOMONEY_VALIDATION_CACHE_TTL", "60"))
    calculation_cache_ttl = float(os.getenv("OMOMONEY_CALCULATION_CACHE_TTL", "600"))
    cache_sweep_minutes = int(os.getenv("OMOMONEY_CACHE_SWEEP_MINUTES", "5"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        default_currency=default_currency,
        data_cache_ttl=data_cache_ttl,
        validation_cache_ttl=validation_cache_ttl,
        calculation_cache_ttl=calculation_cache_ttl,
        cache_sweep_minutes=cache_sweep_minutes,
    )
