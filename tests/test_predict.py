"""Tests for the prediction flow: historical answers, projections, gating."""

import pytest

from scorecast.core.errors import (
    ConfigurationError,
    InsufficientDataError,
    QuotaExceededError,
    ValidationError,
)
from scorecast.services.predict import PredictionService
from scorecast.services.quota import SoftRateCounter

from conftest import BUF, KC, PHI, USER, FakeQuota, make_settings


def _final_game(week=3, home=KC, away=BUF, home_score=27, away_score=20, season_type="REG", status="FINAL"):
    return {
        "year": 2025,
        "week": week,
        "season_type": season_type,
        "home_team_id": home,
        "away_team_id": away,
        "status": status,
        "home_score": home_score if status == "FINAL" else None,
        "away_score": away_score if status == "FINAL" else None,
    }


def _seed_stats(store):
    store.seed("team_stats", [
        # superseded by week 3
        {"team_id": KC, "year": 2025, "as_of_week": 2, "off_points_per_game": 40.0, "turnover_margin": 0.0},
        {"team_id": KC, "year": 2025, "as_of_week": 3, "off_points_per_game": 24.0, "turnover_margin": 1.5},
        {"team_id": BUF, "year": 2025, "as_of_week": 3, "def_points_allowed_per_game": 20.0, "turnover_margin": 0.5},
    ])


@pytest.fixture
def service(store, quota, settings):
    return PredictionService(store, quota, settings)


# ---------------------------------------------------------------------------
# Historical mode
# ---------------------------------------------------------------------------

class TestHistorical:
    @pytest.mark.asyncio
    async def test_final_game_answers_from_history(self, store, quota, service):
        store.seed("games", [_final_game()])

        result = await service.predict(USER, KC, BUF, 2025, "REG")

        assert result.mode == "historical"
        assert (result.home_score, result.away_score) == (27, 20)
        assert result.week == 3
        assert len(store.tables["user_predictions"]) == 1
        row = store.tables["user_predictions"][0]
        assert row["mode"] == "historical"
        assert row["game_id"] == store.tables["games"][0]["id"]
        assert store.tables["model_predictions"] == []
        assert quota.checked == [USER]
        assert quota.decremented == []

    @pytest.mark.asyncio
    async def test_latest_final_week_wins(self, store, service):
        store.seed("games", [_final_game(week=2, home_score=10), _final_game(week=9, home_score=31)])
        result = await service.predict(USER, KC, BUF, 2025)
        assert (result.week, result.home_score) == (9, 31)

    @pytest.mark.asyncio
    async def test_orientation_matters(self, store, service):
        """A BUF-at-KC result does not answer a KC-at-BUF request."""
        store.seed("games", [_final_game(home=BUF, away=KC)])
        _seed_stats(store)
        result = await service.predict(USER, KC, BUF, 2025)
        assert result.mode == "predicted"

    @pytest.mark.asyncio
    async def test_response_shape(self, store, service):
        store.seed("games", [_final_game()])
        d = (await service.predict(USER, KC, BUF, 2025)).to_dict()
        assert set(d) == {"mode", "week", "actual_home_score", "actual_away_score", "game_id", "user_prediction_id"}


# ---------------------------------------------------------------------------
# Predicted mode
# ---------------------------------------------------------------------------

class TestPredicted:
    @pytest.mark.asyncio
    async def test_scores_from_latest_snapshots(self, store, quota, service):
        _seed_stats(store)

        result = await service.predict(USER, KC, BUF, 2025)

        assert result.mode == "predicted"
        assert (result.home_score, result.away_score) == (6.0, 18.0)
        assert result.model_version == "v1-test"

    @pytest.mark.asyncio
    async def test_audit_row_links_prediction(self, store, service):
        _seed_stats(store)
        result = await service.predict(USER, KC, BUF, 2025)

        assert len(store.tables["user_predictions"]) == 1
        assert len(store.tables["model_predictions"]) == 1
        audit = store.tables["model_predictions"][0]
        assert audit["user_prediction_id"] == result.user_prediction_id
        assert audit["feature_vector"] == [4.0, 1.0]
        assert audit["model_version"] == "v1-test"
        assert audit["home_team_features"]["as_of_week"] == 3
        assert store.tables["user_predictions"][0]["mode"] == "predicted"

    @pytest.mark.asyncio
    async def test_scheduled_game_does_not_count_as_history(self, store, service):
        store.seed("games", [_final_game(status="SCHEDULED")])
        _seed_stats(store)
        assert (await service.predict(USER, KC, BUF, 2025)).mode == "predicted"

    @pytest.mark.asyncio
    async def test_post_season_always_projects(self, store, service):
        store.seed("games", [_final_game()])
        _seed_stats(store)
        assert (await service.predict(USER, KC, BUF, 2025, "POST")).mode == "predicted"

    @pytest.mark.asyncio
    async def test_force_projected_skips_history(self, store, service):
        store.seed("games", [_final_game()])
        _seed_stats(store)
        result = await service.predict(USER, KC, BUF, 2025, "REG", force_projected=True)
        assert result.mode == "predicted"

    @pytest.mark.asyncio
    async def test_metered_user_is_decremented(self, store, quota, service):
        _seed_stats(store)
        await service.predict(USER, KC, BUF, 2025)
        assert quota.decremented == [USER]

    @pytest.mark.asyncio
    async def test_premium_user_not_decremented(self, store, settings):
        _seed_stats(store)
        quota = FakeQuota(metered=False)
        await PredictionService(store, quota, settings).predict(USER, KC, BUF, 2025)
        assert quota.decremented == []

    @pytest.mark.asyncio
    async def test_decrement_failure_does_not_fail_prediction(self, store, settings):
        _seed_stats(store)
        quota = FakeQuota(decrement_error=RuntimeError("profiles table locked"))
        result = await PredictionService(store, quota, settings).predict(USER, KC, BUF, 2025)
        assert result.mode == "predicted"
        assert len(store.tables["user_predictions"]) == 1

    @pytest.mark.asyncio
    async def test_missing_snapshot(self, store, service):
        store.seed("team_stats", [{"team_id": KC, "year": 2025, "as_of_week": 3}])
        with pytest.raises(InsufficientDataError) as exc:
            await service.predict(USER, KC, BUF, 2025)
        assert exc.value.context["team_ids"] == [BUF]
        assert store.tables["user_predictions"] == []

    @pytest.mark.asyncio
    async def test_snapshot_from_other_year_not_used(self, store, service):
        _seed_stats(store)
        with pytest.raises(InsufficientDataError):
            await service.predict(USER, KC, BUF, 2024)

    @pytest.mark.asyncio
    async def test_no_active_coefficients(self, store, service):
        _seed_stats(store)
        store.tables["model_coefficients"].clear()
        with pytest.raises(ConfigurationError):
            await service.predict(USER, KC, BUF, 2025)
        assert store.tables["user_predictions"] == []

    @pytest.mark.asyncio
    async def test_corrupt_artifact_is_configuration_error(self, store, service):
        _seed_stats(store)
        store.seed("model_coefficients", [{
            "model_version": "v2-bad",
            "feature_names": ["off_points_per_game_diff", "turnover_margin_diff"],
            "home_coefs": [0.5],
            "home_intercept": 0.0,
            "away_coefs": [0.5, 0.5],
            "away_intercept": 0.0,
            "is_active": True,
        }])
        with pytest.raises(ConfigurationError):
            await service.predict(USER, KC, BUF, 2025)

    @pytest.mark.asyncio
    async def test_pinned_model_version(self, store, quota):
        _seed_stats(store)
        store.seed("model_coefficients", [{
            "model_version": "v0-pinned",
            "feature_names": ["turnover_margin_diff"],
            "home_coefs": [2.0],
            "home_intercept": 10.0,
            "away_coefs": [0.0],
            "away_intercept": 7.0,
            "is_active": False,
        }])
        service = PredictionService(store, quota, make_settings(model_version="v0-pinned"))
        result = await service.predict(USER, KC, BUF, 2025)
        assert (result.home_score, result.away_score, result.model_version) == (12.0, 7.0, "v0-pinned")


# ---------------------------------------------------------------------------
# Validation and gating
# ---------------------------------------------------------------------------

class TestValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("home,away,year,season_type", [
        (KC, KC, 2025, "REG"),
        ("not-a-uuid", BUF, 2025, "REG"),
        (KC, None, 2025, "REG"),
        (KC, BUF, 2019, "REG"),
        (KC, BUF, 2031, "REG"),
        (KC, BUF, "2025", "REG"),
        (KC, BUF, 2025.0, "REG"),
        (KC, BUF, 2025, "PRE"),
        (KC, BUF, 2025, "PLAYOFF"),
    ])
    async def test_rejected_before_quota(self, store, quota, service, home, away, year, season_type):
        with pytest.raises(ValidationError):
            await service.predict(USER, home, away, year, season_type)
        assert quota.checked == []
        assert store.tables["user_predictions"] == []

    @pytest.mark.asyncio
    async def test_lowercase_season_type_accepted(self, store, service):
        store.seed("games", [_final_game()])
        assert (await service.predict(USER, KC, BUF, 2025, "reg")).mode == "historical"

    @pytest.mark.asyncio
    async def test_uppercase_uuid_normalized(self, store, service):
        store.seed("games", [_final_game(home=PHI)])
        result = await service.predict(USER, PHI.upper(), BUF, 2025)
        assert result.mode == "historical"


class TestGate:
    @pytest.mark.asyncio
    async def test_quota_denied(self, store, settings):
        store.seed("games", [_final_game()])
        service = PredictionService(store, FakeQuota(allowed=False), settings)
        with pytest.raises(QuotaExceededError) as exc:
            await service.predict(USER, KC, BUF, 2025)
        assert exc.value.status_code == 402
        assert store.tables["user_predictions"] == []

    @pytest.mark.asyncio
    async def test_soft_rate_counter(self, store, quota, settings):
        store.seed("games", [_final_game()])
        counter = SoftRateCounter(1, 60, clock=lambda: 0.0)
        service = PredictionService(store, quota, settings, rate_counter=counter)

        await service.predict(USER, KC, BUF, 2025)
        with pytest.raises(QuotaExceededError) as exc:
            await service.predict(USER, KC, BUF, 2025)

        assert exc.value.status_code == 429
        assert quota.checked == [USER]
        assert len(store.tables["user_predictions"]) == 1


class TestWriteIntegrity:
    @pytest.mark.asyncio
    async def test_failed_audit_leaves_no_prediction(self, store, quota, service):
        _seed_stats(store)
        store.failing_inserts.add("model_predictions")

        with pytest.raises(RuntimeError):
            await service.predict(USER, KC, BUF, 2025)

        assert store.tables["user_predictions"] == []
        assert store.tables["model_predictions"] == []
        assert quota.decremented == []

    @pytest.mark.asyncio
    async def test_final_game_without_scores_is_not_history(self, store, service):
        store.seed("games", [dict(_final_game(), home_score=None, away_score=None)])
        _seed_stats(store)
        result = await service.predict(USER, KC, BUF, 2025)
        assert result.mode == "predicted"
        assert result.home_score is not None
