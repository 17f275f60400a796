# scorecast/models/features.py
"""
Feature construction for the linear score model.

Each model feature is a home-minus-away differential. Known feature names pair
the home team's offensive rate with the away team's matching defensive rate
(what the home offense produces against what the away defense allows). Any
other name falls back to the symmetric rule: strip a trailing ``_diff`` and
subtract the same field on both snapshots. Missing values count as 0, so the
vector always has one real number per feature name.
"""
from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping, Sequence, Tuple

DIFF_SUFFIX = "_diff"

# feature name -> (home offense field, away defense field)
FEATURE_PAIRS: Dict[str, Tuple[str, str]] = {
    "off_points_per_game_diff": ("off_points_per_game", "def_points_allowed_per_game"),
    "off_total_yards_per_game_diff": ("off_total_yards_per_game", "def_total_yards_allowed_per_game"),
    "off_passing_yards_per_game_diff": ("off_passing_yards_per_game", "def_passing_yards_allowed_per_game"),
    "off_rushing_yards_per_game_diff": ("off_rushing_yards_per_game", "def_rushing_yards_allowed_per_game"),
    "off_red_zone_efficiency_diff": ("off_red_zone_efficiency", "def_red_zone_efficiency"),
    "off_third_down_efficiency_diff": ("off_third_down_efficiency", "def_third_down_efficiency"),
    "turnover_margin_diff": ("turnover_margin", "turnover_margin"),
}


def _value(snapshot: Mapping[str, Any], field: str) -> float:
    raw = snapshot.get(field)
    if raw is None or isinstance(raw, bool):
        return 0.0
    try:
        v = float(raw)
    except (TypeError, ValueError):
        return 0.0
    return v if math.isfinite(v) else 0.0


def feature_fields(name: str) -> Tuple[str, str]:
    """(home field, away field) a feature name reads."""
    pair = FEATURE_PAIRS.get(name)
    if pair is not None:
        return pair
    bare = name[: -len(DIFF_SUFFIX)] if name.endswith(DIFF_SUFFIX) else name
    return bare, bare


def build_features(
    home: Mapping[str, Any],
    away: Mapping[str, Any],
    feature_names: Sequence[str],
) -> List[float]:
    out: List[float] = []
    for name in feature_names:
        home_field, away_field = feature_fields(name)
        out.append(_value(home, home_field) - _value(away, away_field))
    return out
