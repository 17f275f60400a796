# scorecast/core/errors.py
"""
Error taxonomy shared by the prediction and ingestion paths.

Every error carries a stable machine-readable ``code`` and the HTTP status the
API layer answers with, so callers can tell "fix your input" apart from
"try again later" and "we have a data gap".
"""
from __future__ import annotations


class ScorecastError(Exception):
    code = "error"
    status_code = 500

    def __init__(self, message: str = "", **context):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.context = context

    def to_dict(self) -> dict:
        out = {"error": self.code, "detail": self.message}
        if self.context:
            out["context"] = self.context
        return out


class ValidationError(ScorecastError):
    """Bad input; user-correctable."""

    code = "invalid_request"
    status_code = 400


class AuthError(ScorecastError):
    code = "unauthorized"
    status_code = 401


class QuotaExceededError(ScorecastError):
    """Caller must upgrade or wait. ``retry_later`` marks the soft rate counter."""

    code = "upgrade_required"
    status_code = 402

    def __init__(self, message: str = "", retry_later: bool = False, **context):
        super().__init__(message, **context)
        self.retry_later = retry_later
        if retry_later:
            self.code = "rate_limited"
            self.status_code = 429


class InsufficientDataError(ScorecastError):
    """A team has no statistic snapshot yet; resolves once ingestion catches up."""

    code = "insufficient_data"
    status_code = 400


class UnresolvedTeamError(ScorecastError):
    """Per-record, ingestion-internal: the upstream label maps to no team."""

    code = "unresolved_team"
    status_code = 422

    def __init__(self, provider: str, label: str):
        super().__init__(f"no team for {provider!r} label {label!r}", provider=provider, label=label)
        self.provider = provider
        self.label = label


class ConfigurationError(ScorecastError):
    """Bad deployed artifact or missing setting. Operators, not users, act on it."""

    code = "configuration_error"
    status_code = 500


class UpstreamFetchError(ScorecastError):
    """Provider/network failure. Aborts an ingestion run; retry on the next run."""

    code = "upstream_unavailable"
    status_code = 502
