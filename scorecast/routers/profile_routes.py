# scorecast/routers/profile_routes.py
from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from scorecast.core.deps import current_user, get_store
from scorecast.core.store import Store

logger = logging.getLogger("scorecast.routes.profile")
router = APIRouter(tags=["profile"])

EMPTY_METRICS = {
    "total_predictions": 0,
    "accurate_predictions": 0,
    "accuracy_percentage": None,
    "avg_home_error": None,
    "avg_away_error": None,
    "mae_home": None,
    "mae_away": None,
    "mae_spread": None,
    "mae_total": None,
}


@router.post("/me/init-profile")
async def init_profile(
    user_id: str = Depends(current_user),
    store: Store = Depends(get_store),
):
    await store.upsert(
        "profiles",
        [{"id": user_id, "updated_at": datetime.now(timezone.utc)}],
        ("id",),
    )
    logger.info("profile ensured for %s", user_id)
    return {"ok": True}


@router.get("/profile/predictions")
async def my_predictions(
    user_id: str = Depends(current_user),
    store: Store = Depends(get_store),
):
    """Caller's predictions, newest first, each with its model audit rows."""
    predictions = await store.select_many("user_predictions", {"user_id": user_id}, order_by=("-created_at",))
    if not predictions:
        return []

    audits = await store.select_many(
        "model_predictions", {"user_prediction_id": [p["id"] for p in predictions]}
    )
    by_prediction: dict = {}
    for a in audits:
        by_prediction.setdefault(str(a["user_prediction_id"]), []).append(a)
    return [{**p, "model_predictions": by_prediction.get(str(p["id"]), [])} for p in predictions]


@router.get("/profile/metrics")
async def my_metrics(
    user_id: str = Depends(current_user),
    store: Store = Depends(get_store),
):
    summary = await store.select_one("v_user_metrics", {"user_id": user_id})
    per_team = await store.select_many(
        "v_user_team_accuracy", {"user_id": user_id}, order_by=("-accuracy_percentage",)
    )
    return {"summary": summary or dict(EMPTY_METRICS), "perTeam": per_team}
