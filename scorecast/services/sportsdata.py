# scorecast/services/sportsdata.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol, Tuple

import httpx

from scorecast.core.config import Settings, get_settings
from scorecast.core.errors import ConfigurationError, UpstreamFetchError

logger = logging.getLogger("scorecast.sportsdata")

HEADERS = {"User-Agent": "scorecast/1.0", "Accept": "application/json"}

# SportsData.io numeric season types
SEASON_TYPE_CODES = {1: "PRE", 2: "REG", 3: "POST"}
SEASON_TYPE_NUMBERS = {v: k for k, v in SEASON_TYPE_CODES.items()}


def season_type_label(code: Any) -> str:
    """1/2/3 (or their string forms) -> PRE/REG/POST; anything else -> REG."""
    try:
        return SEASON_TYPE_CODES.get(int(code), "REG")
    except (TypeError, ValueError):
        return "REG"


class UpstreamProvider(Protocol):
    name: str

    async def fetch_games(self, season: int, week: int, season_type: str) -> List[Dict[str, Any]]: ...

    async def fetch_team_stats(self, season: int, season_type: str) -> List[Dict[str, Any]]: ...

    async def fetch_current_week(self) -> Tuple[int, int, str]: ...


class SportsDataClient:
    """
    Thin async client for the SportsData.io NFL scores feed.

    Every failure (transport, non-2xx, bad JSON, unexpected shape) surfaces as
    UpstreamFetchError so an ingestion run aborts as a whole.
    """

    def __init__(self, settings: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.settings = settings or get_settings()
        self.name = self.settings.provider
        self._transport = transport

    # -----------------------------------------------------------
    # Shared HTTP helper
    # -----------------------------------------------------------
    async def _get_json(self, path: str) -> Any:
        key = self.settings.sports_api_key
        if not key:
            raise ConfigurationError("SPORTS_API_KEY environment variable is required")

        url = f"{self.settings.sports_api_base.rstrip('/')}/{path.lstrip('/')}"
        max_tries = self.settings.sports_api_max_tries
        last: Optional[Exception] = None

        async with httpx.AsyncClient(
            timeout=self.settings.sports_api_timeout,
            headers=HEADERS,
            transport=self._transport,
        ) as client:
            for attempt in range(1, max_tries + 1):
                try:
                    r = await client.get(url, params={"key": key})
                    r.raise_for_status()
                    return r.json()
                except (httpx.HTTPError, ValueError) as e:
                    last = e
                    logger.warning("sportsdata %s attempt %s failed: %s", path, attempt, repr(e))

        logger.error("sportsdata %s giving up after %s attempts: %s", path, max_tries, repr(last))
        raise UpstreamFetchError(f"SportsData.io request failed: {path}", path=path) from last

    async def _get_list(self, path: str) -> List[Dict[str, Any]]:
        data = await self._get_json(path)
        if data is None:
            return []
        if not isinstance(data, list):
            raise UpstreamFetchError(f"unexpected payload for {path}: {type(data).__name__}", path=path)
        return [d for d in data if isinstance(d, dict)]

    # -----------------------------------------------------------
    # Public feed calls
    # -----------------------------------------------------------
    async def fetch_games(self, season: int, week: int, season_type: str = "REG") -> List[Dict[str, Any]]:
        games = await self._get_list(f"ScoresByWeek/{season}{season_type}/{week}")
        logger.info("Fetched %d games for %s%s week %s", len(games), season, season_type, week)
        return games

    async def fetch_team_stats(self, season: int, season_type: str = "REG") -> List[Dict[str, Any]]:
        stats = await self._get_list(f"TeamSeasonStats/{season}{season_type}")
        logger.info("Fetched %d team season stats for %s%s", len(stats), season, season_type)
        return stats

    async def fetch_current_week(self) -> Tuple[int, int, str]:
        season = await self._get_json("CurrentSeason")
        week = await self._get_json("CurrentWeek")
        try:
            season_i, week_i = int(season), int(week)
        except (TypeError, ValueError) as e:
            raise UpstreamFetchError(f"unusable current season/week: {season!r}/{week!r}") from e
        # The feed reports no season type alongside CurrentWeek.
        return season_i, week_i, "REG"
