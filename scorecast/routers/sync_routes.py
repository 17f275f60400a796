# scorecast/routers/sync_routes.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from scorecast.core.deps import get_score_sync, require_sync_key
from scorecast.services.ingest import ScoreSync

router = APIRouter(tags=["sync"], dependencies=[Depends(require_sync_key)])


@router.post("/sync/scores")
async def sync_scores(
    season: Optional[int] = Query(None, ge=2000, le=2100),
    week: Optional[int] = Query(None, ge=0, le=30),
    seasonType: Optional[str] = Query(None, description="PRE/REG/POST or 1/2/3; default REG"),
    sync: ScoreSync = Depends(get_score_sync),
):
    """
    Pull games and team season stats from SportsData.io and upsert them.
    Without season+week, the provider's current week is used.
    """
    summary = await sync.sync(season, week, seasonType)
    return summary.to_dict()
