# scorecast/core/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import date
from functools import lru_cache
from typing import Optional


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


@dataclass(frozen=True)
class Settings:
    """Runtime settings, read once from the environment."""

    database_url: Optional[str]

    # SportsData.io
    sports_api_key: Optional[str]
    sports_api_base: str
    sports_api_timeout: float
    sports_api_max_tries: int
    provider: str

    # Identity (Supabase auth REST)
    auth_url: Optional[str]
    auth_api_key: Optional[str]

    # Guards POST /api/sync/scores when set
    sync_api_key: Optional[str]

    season_min: int
    season_max: int
    default_season: int

    # Pin a model_coefficients.model_version; None = newest active row
    model_version: Optional[str]

    rate_limit_max: int
    rate_limit_window: float

    log_level: str


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL"),
        sports_api_key=os.getenv("SPORTS_API_KEY"),
        sports_api_base=os.getenv(
            "SPORTS_API_BASE", "https://api.sportsdata.io/v3/nfl/scores/json"
        ),
        sports_api_timeout=_float_env("SPORTS_API_TIMEOUT", 12.0),
        sports_api_max_tries=max(1, _int_env("SPORTS_API_MAX_TRIES", 1)),
        provider=os.getenv("SCORECAST_PROVIDER", "sportsdata"),
        auth_url=os.getenv("SUPABASE_URL"),
        auth_api_key=os.getenv("SUPABASE_ANON_KEY"),
        sync_api_key=os.getenv("SYNC_API_KEY") or None,
        season_min=_int_env("SCORECAST_SEASON_MIN", 2020),
        season_max=_int_env("SCORECAST_SEASON_MAX", 2030),
        default_season=_int_env("SCORECAST_DEFAULT_SEASON", date.today().year),
        model_version=os.getenv("SCORECAST_MODEL_VERSION") or None,
        rate_limit_max=_int_env("SCORECAST_RATE_LIMIT_MAX", 10),
        rate_limit_window=_float_env("SCORECAST_RATE_LIMIT_WINDOW", 60.0),
        log_level=os.getenv("SCORECAST_LOG_LEVEL", "INFO").upper(),
    )
