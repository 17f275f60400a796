# scorecast/models/linear_model.py
from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Mapping, Sequence, Tuple

from scorecast.core.errors import ConfigurationError

CENT = Decimal("0.01")


@dataclass(frozen=True)
class ModelCoefficients:
    """A versioned, read-only linear model artifact."""

    model_version: str
    feature_names: Tuple[str, ...]
    home_coefs: Tuple[float, ...]
    home_intercept: float
    away_coefs: Tuple[float, ...]
    away_intercept: float

    def __post_init__(self):
        n = len(self.feature_names)
        if len(self.home_coefs) != n or len(self.away_coefs) != n:
            raise ConfigurationError(
                f"model {self.model_version}: {n} features but "
                f"{len(self.home_coefs)} home / {len(self.away_coefs)} away coefficients",
                model_version=self.model_version,
            )

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ModelCoefficients":
        """Build from a model_coefficients row; array columns may arrive as JSON text."""
        try:
            return cls(
                model_version=str(row["model_version"]),
                feature_names=tuple(str(n) for n in _as_list(row["feature_names"])),
                home_coefs=tuple(float(c) for c in _as_list(row["home_coefs"])),
                home_intercept=float(row["home_intercept"]),
                away_coefs=tuple(float(c) for c in _as_list(row["away_coefs"])),
                away_intercept=float(row["away_intercept"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ConfigurationError(f"malformed model_coefficients row: {e!r}") from e


def _as_list(value: Any) -> list:
    if isinstance(value, str):
        value = json.loads(value)
    if value is None:
        raise ValueError("missing array")
    return list(value)


def round_half_away(x: float) -> float:
    """Round to 2 dp, ties away from zero (2.345 -> 2.35, -2.345 -> -2.35)."""
    return float(Decimal(repr(x)).quantize(CENT, rounding=ROUND_HALF_UP))


def linear_part(features: Sequence[float], coefs: Sequence[float]) -> float:
    if len(features) != len(coefs):
        raise ConfigurationError(
            f"feature vector has {len(features)} values but model has {len(coefs)} coefficients"
        )
    return sum(f * c for f, c in zip(features, coefs))


def raw_score(features: Sequence[float], coefficients: ModelCoefficients) -> Tuple[float, float]:
    """Unrounded (home, away) projection."""
    home = coefficients.home_intercept + linear_part(features, coefficients.home_coefs)
    away = coefficients.away_intercept + linear_part(features, coefficients.away_coefs)
    return home, away


def score(features: Sequence[float], coefficients: ModelCoefficients) -> Tuple[float, float]:
    home, away = raw_score(features, coefficients)
    return round_half_away(home), round_half_away(away)
