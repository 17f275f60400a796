# scorecast/routers/predict_routes.py
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from scorecast.core.config import get_settings
from scorecast.core.deps import current_user, get_prediction_service
from scorecast.services.predict import PredictionService

router = APIRouter(tags=["predict"])


class PredictBody(BaseModel):
    # Loosely typed on purpose: PredictionService.validate owns the rules
    # and answers with a 400 invalid_request instead of a 422.
    homeTeamId: Any = None
    awayTeamId: Any = None
    seasonYear: Optional[Any] = None
    seasonType: Any = "REG"
    forceProjected: bool = Field(False, description="Skip the historical lookup and always run the model.")


@router.post("/predict")
async def predict(
    body: PredictBody,
    user_id: str = Depends(current_user),
    service: PredictionService = Depends(get_prediction_service),
):
    """
    Predict a matchup. Regular-season matchups that already went FINAL are
    answered from history unless forceProjected is set.
    """
    season_year = body.seasonYear if body.seasonYear is not None else get_settings().default_season
    result = await service.predict(
        user_id,
        body.homeTeamId,
        body.awayTeamId,
        season_year,
        body.seasonType,
        force_projected=body.forceProjected,
    )
    return result.to_dict()
