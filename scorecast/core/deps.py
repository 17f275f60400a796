# scorecast/core/deps.py
from __future__ import annotations

import secrets
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header

from scorecast.core.config import get_settings
from scorecast.core.errors import AuthError
from scorecast.core.store import SqlStore, Store
from scorecast.services.auth import SupabaseIdentity, bearer_token
from scorecast.services.ingest import ScoreSync
from scorecast.services.predict import PredictionService
from scorecast.services.quota import QuotaGate, SoftRateCounter, StoreQuotaGate
from scorecast.services.sportsdata import SportsDataClient


@lru_cache(maxsize=1)
def get_store() -> Store:
    return SqlStore()


@lru_cache(maxsize=1)
def get_rate_counter() -> SoftRateCounter:
    s = get_settings()
    return SoftRateCounter(s.rate_limit_max, s.rate_limit_window)


def get_quota_gate(store: Store = Depends(get_store)) -> QuotaGate:
    return StoreQuotaGate(store)


def get_identity() -> SupabaseIdentity:
    return SupabaseIdentity()


def get_provider() -> SportsDataClient:
    return SportsDataClient()


def get_prediction_service(
    store: Store = Depends(get_store),
    quota: QuotaGate = Depends(get_quota_gate),
    rate_counter: SoftRateCounter = Depends(get_rate_counter),
) -> PredictionService:
    return PredictionService(store, quota, rate_counter=rate_counter)


def get_score_sync(
    store: Store = Depends(get_store),
    provider: SportsDataClient = Depends(get_provider),
) -> ScoreSync:
    return ScoreSync(store, provider)


async def current_user(
    authorization: Optional[str] = Header(None),
    identity: SupabaseIdentity = Depends(get_identity),
) -> str:
    return await identity.verify_identity(bearer_token(authorization))


def require_sync_key(x_sync_key: Optional[str] = Header(None)) -> None:
    expected = get_settings().sync_api_key
    if expected and not secrets.compare_digest(x_sync_key or "", expected):
        raise AuthError("Invalid sync key")
