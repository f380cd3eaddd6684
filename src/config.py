from __future__ import annotations

from functools import cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[1]
ARTIFACTS_DIR = PROJECT_ROOT / "artifacts"
DB_FILE = ARTIFACTS_DIR / "marketcaps.db"


class AppSettings(BaseSettings):
    financialmodelingprep_api_key: str
    fmp_base_url: str = "https://financialmodelingprep.com/api/v3"
    polygon_api_key: str | None = None
    polygon_base_url: str = "https://api.polygon.io"

    permit_pool_size: int = Field(default=300, gt=0)
    polygon_permit_pool_size: int = Field(default=100, gt=0)
    settlement_delay_seconds: float = Field(default=0.2, ge=0)
    initial_backoff_seconds: float = Field(default=5.0, ge=0)
    max_attempts: int = Field(default=3, ge=1)
    request_timeout_seconds: float = Field(default=10.0, gt=0)
    batch_concurrency: int = Field(default=50, gt=0)

    tickers_file: Path = PROJECT_ROOT / "config.toml"
    db_file: Path = DB_FILE

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@cache
def config() -> AppSettings:
    return AppSettings()  # type: ignore[call-arg]
