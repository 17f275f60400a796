# scorecast/routers/data_routes.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from scorecast.core.deps import get_store
from scorecast.core.errors import ValidationError
from scorecast.core.store import Store

logger = logging.getLogger("scorecast.routes.data")
router = APIRouter(tags=["data"])


def _team_lookup(teams: list) -> dict:
    return {
        str(t["id"]): {"id": t["id"], "name": t["name"], "abbreviation": t["abbreviation"]}
        for t in teams
    }


@router.get("/teams")
async def list_teams(store: Store = Depends(get_store)):
    return await store.select_many("teams", order_by=("name",))


@router.get("/scoreboard")
async def scoreboard(
    year: int = Query(..., ge=2020, le=2030),
    week: int = Query(..., ge=1, le=18),
    store: Store = Depends(get_store),
):
    """Games for one week, kickoff order, with both teams inlined."""
    games = await store.select_many("games", {"year": year, "week": week}, order_by=("kickoff_time",))
    teams = _team_lookup(await store.select_many("teams"))
    rows = [
        {
            **g,
            "home_team": teams.get(str(g["home_team_id"])),
            "away_team": teams.get(str(g["away_team_id"])),
        }
        for g in games
    ]
    logger.info("scoreboard year=%s week=%s -> %d", year, week, len(rows))
    return rows


def _parse_as_of_week(raw: Optional[str]) -> Optional[int]:
    """'', None or 'latest' -> None (latest view); otherwise an int 1..30."""
    if raw is None or raw.strip() == "" or raw.strip().lower() == "latest":
        return None
    try:
        week = int(raw)
    except ValueError:
        week = 0
    if not 1 <= week <= 30:
        raise ValidationError('asOfWeek must be "latest" or an integer between 1 and 30', field="asOfWeek")
    return week


@router.get("/team-stats")
async def team_stats(
    year: int = Query(..., ge=2020, le=2030),
    asOfWeek: Optional[str] = Query(None),
    store: Store = Depends(get_store),
):
    week = _parse_as_of_week(asOfWeek)
    if week is None:
        rows = await store.select_many("team_stats_latest", {"year": year})
    else:
        rows = await store.select_many("team_stats", {"year": year, "as_of_week": week})

    teams = _team_lookup(await store.select_many("teams"))
    out = [{**r, "team": teams.get(str(r["team_id"]))} for r in rows]
    out.sort(key=lambda r: (r["team"] or {}).get("name") or "")
    return out
