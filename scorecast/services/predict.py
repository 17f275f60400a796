# scorecast/services/predict.py
"""
Prediction flow for one request.

validate -> quota gate -> (REG and not forced) look for a FINAL game and
answer from history -> otherwise score the matchup from both teams' latest
statistic snapshots and record the projection with its audit row.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from fastapi.encoders import jsonable_encoder

from scorecast.core.config import Settings, get_settings
from scorecast.core.errors import (
    ConfigurationError,
    InsufficientDataError,
    QuotaExceededError,
    ValidationError,
)
from scorecast.core.store import Store
from scorecast.models.features import build_features
from scorecast.models.linear_model import ModelCoefficients, score
from scorecast.models.types import (
    PREDICTABLE_SEASON_TYPES,
    ModelPredictionRow,
    PredictionMode,
    UserPredictionRow,
)
from scorecast.services.quota import QuotaGate, SoftRateCounter

logger = logging.getLogger("scorecast.predict")


@dataclass(frozen=True)
class PredictionResult:
    mode: PredictionMode
    user_prediction_id: str
    home_score: float
    away_score: float
    week: Optional[int] = None
    game_id: Optional[str] = None
    model_version: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        if self.mode == "historical":
            return {
                "mode": "historical",
                "week": self.week,
                "actual_home_score": self.home_score,
                "actual_away_score": self.away_score,
                "game_id": self.game_id,
                "user_prediction_id": self.user_prediction_id,
            }
        return {
            "mode": "predicted",
            "predicted_home_score": self.home_score,
            "predicted_away_score": self.away_score,
            "model_version": self.model_version,
            "user_prediction_id": self.user_prediction_id,
        }


def _team_id(value: Any, field: str) -> str:
    try:
        return str(uuid.UUID(str(value)))
    except (TypeError, ValueError, AttributeError):
        raise ValidationError(f"{field} must be a valid UUID", field=field) from None


class PredictionService:
    def __init__(
        self,
        store: Store,
        quota: QuotaGate,
        settings: Optional[Settings] = None,
        rate_counter: Optional[SoftRateCounter] = None,
    ):
        self.store = store
        self.quota = quota
        self.settings = settings or get_settings()
        self.rate_counter = rate_counter

    # -----------------------------------------------------------
    # Input
    # -----------------------------------------------------------
    def validate(
        self, home_team_id: Any, away_team_id: Any, season_year: Any, season_type: Any
    ) -> Tuple[str, str, int, str]:
        home = _team_id(home_team_id, "homeTeamId")
        away = _team_id(away_team_id, "awayTeamId")
        if home == away:
            raise ValidationError("homeTeamId and awayTeamId must be different teams")

        lo, hi = self.settings.season_min, self.settings.season_max
        if isinstance(season_year, bool) or not isinstance(season_year, int):
            raise ValidationError("seasonYear must be an integer", field="seasonYear")
        if not lo <= season_year <= hi:
            raise ValidationError(f"seasonYear must be between {lo} and {hi}", field="seasonYear")

        st = str(season_type or "").upper()
        if st not in PREDICTABLE_SEASON_TYPES:
            raise ValidationError("seasonType must be REG or POST", field="seasonType")
        return home, away, season_year, st

    # -----------------------------------------------------------
    # Reads
    # -----------------------------------------------------------
    async def find_final_game(self, year: int, home: str, away: str) -> Optional[Dict[str, Any]]:
        return await self.store.select_one(
            "games",
            {
                "year": year,
                "season_type": "REG",
                "home_team_id": home,
                "away_team_id": away,
                "status": "FINAL",
            },
            order_by=("-week",),
        )

    async def latest_snapshots(self, year: int, home: str, away: str) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        rows = await self.store.select_many("team_stats_latest", {"year": year, "team_id": [home, away]})
        by_team = {str(r["team_id"]): r for r in rows}
        missing = [t for t in (home, away) if t not in by_team]
        if missing:
            raise InsufficientDataError(
                "Could not find stats for both teams", season_year=year, team_ids=missing
            )
        return by_team[home], by_team[away]

    async def active_coefficients(self) -> ModelCoefficients:
        pinned = self.settings.model_version
        filters = {"model_version": pinned} if pinned else {"is_active": True}
        row = await self.store.select_one("model_coefficients", filters, order_by=("-created_at",))
        if row is None:
            logger.critical("No model coefficients available (pinned=%s)", pinned)
            raise ConfigurationError("no active model coefficients", model_version=pinned)
        return ModelCoefficients.from_row(row)

    # -----------------------------------------------------------
    # Flow
    # -----------------------------------------------------------
    async def _gate(self, user_id: str) -> None:
        if self.rate_counter is not None and not self.rate_counter.allow(user_id):
            raise QuotaExceededError("Rate limit exceeded. Please try again later.", retry_later=True)
        if not await self.quota.check_quota(user_id):
            raise QuotaExceededError("Upgrade required")

    async def _historical(self, user_id: str, home: str, away: str, year: int, game: Dict[str, Any]) -> PredictionResult:
        record: UserPredictionRow = {
            "user_id": user_id,
            "home_team_id": home,
            "away_team_id": away,
            "game_id": game["id"],
            "season_year": year,
            "mode": "historical",
            "predicted_home_score": game["home_score"],
            "predicted_away_score": game["away_score"],
            "actual_home_score": game["home_score"],
            "actual_away_score": game["away_score"],
            "was_accurate": None,
        }
        row = await self.store.insert("user_predictions", record)
        logger.info("historical prediction %s for game %s", row.get("id"), game["id"])
        return PredictionResult(
            mode="historical",
            user_prediction_id=str(row["id"]),
            home_score=game["home_score"],
            away_score=game["away_score"],
            week=game.get("week"),
            game_id=str(game["id"]),
        )

    async def _projected(self, user_id: str, home: str, away: str, year: int) -> PredictionResult:
        home_stats, away_stats = await self.latest_snapshots(year, home, away)
        coefficients = await self.active_coefficients()

        features = build_features(home_stats, away_stats, coefficients.feature_names)
        try:
            home_score, away_score = score(features, coefficients)
        except ConfigurationError:
            logger.critical("Model %s rejected its own feature vector", coefficients.model_version)
            raise

        record: UserPredictionRow = {
            "user_id": user_id,
            "home_team_id": home,
            "away_team_id": away,
            "season_year": year,
            "mode": "predicted",
            "predicted_home_score": home_score,
            "predicted_away_score": away_score,
        }
        audit: ModelPredictionRow = {
            "home_team_features": jsonable_encoder(home_stats),
            "away_team_features": jsonable_encoder(away_stats),
            "feature_vector": features,
            "model_version": coefficients.model_version,
        }
        # prediction and audit row commit together
        prediction, _ = await self.store.insert_linked(
            "user_predictions", record, "model_predictions", audit, "user_prediction_id"
        )
        logger.info(
            "predicted %s vs %s (%s): %.2f-%.2f model=%s",
            home, away, year, home_score, away_score, coefficients.model_version,
        )

        await self._consume_quota(user_id)
        return PredictionResult(
            mode="predicted",
            user_prediction_id=str(prediction["id"]),
            home_score=home_score,
            away_score=away_score,
            model_version=coefficients.model_version,
        )

    async def _consume_quota(self, user_id: str) -> None:
        # The prediction is already committed; quota bookkeeping must not undo it.
        try:
            if await self.quota.is_metered(user_id):
                await self.quota.decrement_quota(user_id)
        except Exception:
            logger.exception("Failed to record free prediction for user %s", user_id)

    async def predict(
        self,
        user_id: str,
        home_team_id: Any,
        away_team_id: Any,
        season_year: Any,
        season_type: Any = "REG",
        force_projected: bool = False,
    ) -> PredictionResult:
        home, away, year, st = self.validate(home_team_id, away_team_id, season_year, season_type)
        await self._gate(user_id)

        if st == "REG" and not force_projected:
            game = await self.find_final_game(year, home, away)
            if game is not None and game.get("home_score") is not None and game.get("away_score") is not None:
                return await self._historical(user_id, home, away, year, game)

        return await self._projected(user_id, home, away, year)
