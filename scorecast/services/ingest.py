# scorecast/services/ingest.py
"""
Score sync: SportsData.io -> games + team_stats.

One run = load the team alias snapshot, pull the week's games and the season's
team stats, map them onto internal team ids, and upsert both in two
independent batches. Records whose teams cannot be resolved are skipped and
counted; a provider failure aborts the whole run. Re-running with the same
upstream data writes nothing.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple
from zoneinfo import ZoneInfo

from scorecast.core.errors import UnresolvedTeamError, UpstreamFetchError, ValidationError
from scorecast.core.store import Store
from scorecast.models.types import SEASON_TYPES, GameRecord, TeamStatsRecord
from scorecast.services.sportsdata import SEASON_TYPE_CODES, UpstreamProvider, season_type_label
from scorecast.services.stat_normalizer import normalize_team_stats
from scorecast.services.team_resolver import TeamResolver

logger = logging.getLogger("scorecast.ingest")

# Provider kickoff times are US/Eastern wall-clock without an offset.
NY = ZoneInfo("America/New_York")

GAME_KEY = ("year", "week", "season_type", "home_team_id", "away_team_id")
STATS_KEY = ("team_id", "year", "as_of_week")

FINAL_MARKERS = ("FINAL",)
IN_PROGRESS_MARKERS = ("PROGRESS", "LIVE", "Q1", "Q2", "Q3", "Q4", "HALF")
# OT, OT2, 2OT as a token; not the "OT" inside NOTSTARTED
OVERTIME = re.compile(r"\bOT\d*\b|\d+OT\b")


# -----------------------------------------------------------
# Field mapping helpers
# -----------------------------------------------------------
def map_game_status(status: Optional[str]) -> str:
    """Upstream status text -> SCHEDULED / IN_PROGRESS / FINAL (never FINAL on doubt)."""
    s = (status or "").strip().upper()
    if s == "F" or s.startswith("F/") or any(m in s for m in FINAL_MARKERS):
        return "FINAL"
    if OVERTIME.search(s) or any(m in s for m in IN_PROGRESS_MARKERS):
        return "IN_PROGRESS"
    return "SCHEDULED"


def normalize_season_type(value: Any) -> str:
    """Accepts PRE/REG/POST (any case) or the provider's 1/2/3."""
    if value is None or value == "":
        return "REG"
    s = str(value).strip().upper()
    if s in SEASON_TYPES:
        return s
    if s.isdigit() and int(s) in SEASON_TYPE_CODES:
        return SEASON_TYPE_CODES[int(s)]
    raise ValidationError(f"seasonType must be one of PRE, REG, POST (or 1-3), got {value!r}")


def parse_kickoff(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable kickoff time %r", value)
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=NY)
    return dt.astimezone(timezone.utc)


def _int_or_none(v: Any) -> Optional[int]:
    if v is None or isinstance(v, bool):
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


# -----------------------------------------------------------
# Summary
# -----------------------------------------------------------
@dataclass
class EntityCounts:
    fetched: int = 0
    mapped: int = 0
    skipped: int = 0
    upserted: int = 0


@dataclass
class IngestionSummary:
    season: int
    week: int
    season_type: str
    games: EntityCounts = field(default_factory=EntityCounts)
    team_stats: EntityCounts = field(default_factory=EntityCounts)
    scope_fallback: bool = False
    processed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": True,
            "season": self.season,
            "week": self.week,
            "seasonType": self.season_type,
            "scopeFallback": self.scope_fallback,
            "fetchedGames": self.games.fetched,
            "mappedGames": self.games.mapped,
            "skippedGames": self.games.skipped,
            "upsertedGames": self.games.upserted,
            "fetchedTeamStats": self.team_stats.fetched,
            "mappedTeamStats": self.team_stats.mapped,
            "skippedTeamStats": self.team_stats.skipped,
            "upsertedTeamStats": self.team_stats.upserted,
            "processedAt": self.processed_at.isoformat(),
        }


# -----------------------------------------------------------
# Reconciler
# -----------------------------------------------------------
class ScoreSync:
    def __init__(self, store: Store, provider: UpstreamProvider):
        self.store = store
        self.provider = provider

    async def resolve_scope(
        self,
        season: Optional[int],
        week: Optional[int],
        season_type: Any = None,
    ) -> Tuple[int, int, str, bool]:
        """
        Caller-supplied values always win. Only the parts left out (None) are
        filled from the provider's current week; if that lookup fails they come
        from (this calendar year, week 1, REG).
        Returns (season, week, season_type, used_fallback).
        """
        explicit_type = None if season_type is None or season_type == "" else normalize_season_type(season_type)
        if season is not None and week is not None:
            return int(season), int(week), explicit_type or "REG", False

        fallback = False
        try:
            cur_season, cur_week, cur_type = await self.provider.fetch_current_week()
        except UpstreamFetchError as e:
            cur_season, cur_week, cur_type = date.today().year, 1, "REG"
            fallback = True
            logger.warning("Current week lookup failed (%s); using defaults for missing scope", e)
        return (
            int(season) if season is not None else cur_season,
            int(week) if week is not None else cur_week,
            explicit_type or cur_type,
            fallback,
        )

    def map_game(
        self, raw: Mapping[str, Any], resolver: TeamResolver, scope: Tuple[int, int, str]
    ) -> GameRecord:
        provider = self.provider.name
        home_id = resolver.resolve(provider, raw.get("HomeTeam"))
        away_id = resolver.resolve(provider, raw.get("AwayTeam"))
        status = map_game_status(raw.get("Status"))
        home_score = _int_or_none(raw.get("HomeScore"))
        away_score = _int_or_none(raw.get("AwayScore"))
        if status == "FINAL" and (home_score is None or away_score is None):
            logger.warning(
                "Game %s marked %r without both scores; not treating as final",
                raw.get("GameID") or raw.get("GameKey"), raw.get("Status"),
            )
            status = "IN_PROGRESS"
        final = status == "FINAL"
        season, week, season_type = scope
        year = _int_or_none(raw.get("Season"))
        game_week = _int_or_none(raw.get("Week"))
        return {
            "year": year if year is not None else season,
            "week": game_week if game_week is not None else week,
            "season_type": season_type_label(raw["SeasonType"]) if raw.get("SeasonType") is not None else season_type,
            "home_team_id": home_id,
            "away_team_id": away_id,
            "kickoff_time": parse_kickoff(raw.get("DateTime") or raw.get("Date")),
            "status": status,
            "home_score": home_score if final else None,
            "away_score": away_score if final else None,
            # ScoresByWeek carries no yardage; box scores would be needed.
            "home_offensive_yards": None,
            "away_offensive_yards": None,
        }

    def map_team_stats(
        self, raw: Mapping[str, Any], resolver: TeamResolver, season: int, week: int
    ) -> TeamStatsRecord:
        team_id = resolver.resolve(self.provider.name, raw.get("Team"))
        year = _int_or_none(raw.get("Season"))
        metrics = normalize_team_stats(raw, raw.get("Games") or 0)
        return {
            "team_id": team_id,
            "year": year if year is not None else season,
            "as_of_week": week,
            **metrics,
        }

    async def sync_games(
        self, resolver: TeamResolver, scope: Tuple[int, int, str], counts: EntityCounts
    ) -> None:
        season, week, season_type = scope
        raw_games = await self.provider.fetch_games(season, week, season_type)
        counts.fetched = len(raw_games)

        by_key: Dict[tuple, GameRecord] = {}
        for raw in raw_games:
            try:
                rec = self.map_game(raw, resolver, scope)
            except UnresolvedTeamError as e:
                counts.skipped += 1
                logger.warning(
                    "Skipping game %s: %s (home=%r away=%r)",
                    raw.get("GameID") or raw.get("GameKey"), e.message, raw.get("HomeTeam"), raw.get("AwayTeam"),
                )
                continue
            counts.mapped += 1
            by_key[tuple(rec[k] for k in GAME_KEY)] = rec

        counts.upserted = await self.store.upsert("games", list(by_key.values()), GAME_KEY)
        logger.info(
            "Games: fetched=%d mapped=%d skipped=%d upserted=%d",
            counts.fetched, counts.mapped, counts.skipped, counts.upserted,
        )

    async def sync_team_stats(
        self, resolver: TeamResolver, scope: Tuple[int, int, str], counts: EntityCounts
    ) -> None:
        season, week, season_type = scope
        raw_stats = await self.provider.fetch_team_stats(season, season_type)
        counts.fetched = len(raw_stats)

        by_key: Dict[tuple, TeamStatsRecord] = {}
        for raw in raw_stats:
            try:
                rec = self.map_team_stats(raw, resolver, season, week)
            except UnresolvedTeamError as e:
                counts.skipped += 1
                logger.warning("Skipping team stats: %s", e.message)
                continue
            counts.mapped += 1
            by_key[tuple(rec[k] for k in STATS_KEY)] = rec

        counts.upserted = await self.store.upsert("team_stats", list(by_key.values()), STATS_KEY)
        logger.info(
            "Team stats: fetched=%d mapped=%d skipped=%d upserted=%d",
            counts.fetched, counts.mapped, counts.skipped, counts.upserted,
        )

    async def sync(
        self,
        season: Optional[int] = None,
        week: Optional[int] = None,
        season_type: Any = None,
    ) -> IngestionSummary:
        season, week, season_type, fallback = await self.resolve_scope(season, week, season_type)
        logger.info("Processing season %s, week %s, seasonType %s", season, week, season_type)

        resolver = await TeamResolver.load(self.store)
        summary = IngestionSummary(season=season, week=week, season_type=season_type, scope_fallback=fallback)
        scope = (season, week, season_type)

        await self.sync_games(resolver, scope, summary.games)
        await self.sync_team_stats(resolver, scope, summary.team_stats)

        logger.info("Score sync completed: %s", summary.to_dict())
        return summary
