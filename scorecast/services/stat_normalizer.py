# scorecast/services/stat_normalizer.py
"""
SportsData.io TeamSeasonStats -> team_stats metric columns.

Provider field names stop here. Rate metrics divide by games played (floored
to 1, so a team with no games reports its raw totals); efficiencies are
conversions / attempts * 100, or 0 when there were no attempts.
"""
from __future__ import annotations

import math
from typing import Any, Dict, Mapping

# internal metric -> cumulative provider field, divided by games played
RATE_FIELDS: Dict[str, str] = {
    "off_points_per_game": "PointsFor",
    "off_total_yards_per_game": "TotalYards",
    "off_passing_yards_per_game": "PassingYards",
    "off_rushing_yards_per_game": "RushingYards",
    "off_turnovers_per_game": "Turnovers",
    "def_points_allowed_per_game": "OpponentPointsFor",
    "def_total_yards_allowed_per_game": "OpponentTotalYards",
    "def_passing_yards_allowed_per_game": "OpponentPassingYards",
    "def_rushing_yards_allowed_per_game": "OpponentRushingYards",
    "def_turnovers_forced_per_game": "OpponentTurnovers",
    "def_sacks_per_game": "Sacks",
    "turnover_margin": "TurnoverDifferential",
    "penalty_yards_per_game": "PenaltyYards",
}

# internal metric -> (conversions field, attempts field)
EFFICIENCY_FIELDS: Dict[str, tuple] = {
    "off_red_zone_efficiency": ("RedZoneConversions", "RedZoneAttempts"),
    "off_third_down_efficiency": ("ThirdDownConversions", "ThirdDownAttempts"),
    "def_red_zone_efficiency": ("OpponentRedZoneConversions", "OpponentRedZoneAttempts"),
    "def_third_down_efficiency": ("OpponentThirdDownConversions", "OpponentThirdDownAttempts"),
}

POSSESSION_FIELDS = ("TimeOfPossessionMinutes", "TimeOfPossessionSeconds")


def _num(raw: Mapping[str, Any], field: str) -> float:
    v = raw.get(field)
    if v is None or isinstance(v, bool):
        return 0.0
    try:
        f = float(v)
    except (TypeError, ValueError):
        return 0.0
    return f if math.isfinite(f) else 0.0


def efficiency(conversions: float, attempts: float) -> float:
    return conversions / attempts * 100 if attempts > 0 else 0.0


def normalize_team_stats(raw: Mapping[str, Any], games_played: float) -> Dict[str, float]:
    gp = max(float(games_played or 0), 1.0)

    out: Dict[str, float] = {
        metric: _num(raw, field) / gp for metric, field in RATE_FIELDS.items()
    }
    for metric, (conv, att) in EFFICIENCY_FIELDS.items():
        out[metric] = efficiency(_num(raw, conv), _num(raw, att))

    minutes, seconds = (_num(raw, f) for f in POSSESSION_FIELDS)
    out["off_time_of_possession"] = minutes + seconds / 60
    return out
