"""Shared fixtures: an in-memory Store, a scripted upstream provider and a quota double."""

import copy
import itertools
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from scorecast.core.config import Settings
from scorecast.core.errors import UpstreamFetchError

KC = "11111111-1111-1111-1111-111111111111"
BUF = "22222222-2222-2222-2222-222222222222"
PHI = "33333333-3333-3333-3333-333333333333"
LV = "44444444-4444-4444-4444-444444444444"
USER = "99999999-9999-9999-9999-999999999999"

TEAMS = [
    {"id": KC, "name": "Kansas City Chiefs", "abbreviation": "KC"},
    {"id": BUF, "name": "Buffalo Bills", "abbreviation": "BUF"},
    {"id": PHI, "name": "Philadelphia Eagles", "abbreviation": "PHI"},
    {"id": LV, "name": "Las Vegas Raiders", "abbreviation": "LV"},
]

ALIASES = [
    {"provider": "sportsdata", "alias": "OAK", "team_id": LV},
    {"provider": "espn", "alias": "PHL", "team_id": PHI},
]

COEFFICIENTS = {
    "model_version": "v1-test",
    "feature_names": ["off_points_per_game_diff", "turnover_margin_diff"],
    "home_coefs": [0.5, 1.0],
    "home_intercept": 3.0,
    "away_coefs": [-0.25, -1.0],
    "away_intercept": 20.0,
    "is_active": True,
}

_BASE_TS = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _key(value):
    return str(value) if value is not None else None


class MemoryStore:
    """
    Dict-of-lists Store. Mirrors the SQL behaviour the core relies on:
    upsert counts only inserted or changed rows, and team_stats_latest keeps
    the highest as_of_week per (team_id, year).
    """

    def __init__(self):
        self.tables = defaultdict(list)
        self.functions = {}
        self.calls = []
        self.failing_inserts = set()
        self._clock = itertools.count(1)

    def seed(self, relation, rows):
        for r in rows:
            row = dict(r)
            row.setdefault("id", str(uuid4()))
            row.setdefault("created_at", self._tick())
            self.tables[relation].append(row)

    def _tick(self):
        return _BASE_TS + timedelta(seconds=next(self._clock))

    def _rows(self, relation):
        if relation == "team_stats_latest":
            latest = {}
            for r in self.tables["team_stats"]:
                k = (_key(r["team_id"]), r["year"])
                if k not in latest or r["as_of_week"] > latest[k]["as_of_week"]:
                    latest[k] = r
            return list(latest.values())
        return self.tables[relation]

    @staticmethod
    def _match(row, filters):
        for col, val in (filters or {}).items():
            got = row.get(col)
            if val is None:
                if got is not None:
                    return False
            elif isinstance(val, (list, tuple, set, frozenset)):
                if _key(got) not in {_key(v) for v in val}:
                    return False
            elif _key(got) != _key(val):
                return False
        return True

    async def select_many(self, relation, filters=None, order_by=(), limit=None):
        rows = [dict(r) for r in self._rows(relation) if self._match(r, filters)]
        for o in reversed(list(order_by)):
            col, desc = (o[1:], True) if o.startswith("-") else (o, False)
            rows.sort(key=lambda r: (r.get(col) is None, r.get(col)), reverse=desc)
        return rows[:limit] if limit is not None else rows

    async def select_one(self, relation, filters=None, order_by=()):
        rows = await self.select_many(relation, filters, order_by, limit=1)
        return rows[0] if rows else None

    async def insert(self, relation, row):
        if relation in self.failing_inserts:
            raise RuntimeError(f"insert into {relation} failed")
        new = dict(row)
        new.setdefault("id", str(uuid4()))
        new.setdefault("created_at", self._tick())
        self.tables[relation].append(new)
        return dict(new)

    async def insert_linked(self, parent, parent_row, child, child_row, link_column):
        before = len(self.tables[parent])
        parent_out = await self.insert(parent, parent_row)
        try:
            child_out = await self.insert(child, {**child_row, link_column: parent_out["id"]})
        except Exception:
            del self.tables[parent][before:]
            raise
        return parent_out, child_out

    async def upsert(self, relation, rows, conflict_key):
        written = 0
        table = self.tables[relation]
        for row in rows:
            key = tuple(_key(row[k]) for k in conflict_key)
            existing = next(
                (r for r in table if tuple(_key(r.get(k)) for k in conflict_key) == key), None
            )
            if existing is None:
                new = dict(row)
                new.setdefault("id", str(uuid4()))
                table.append(new)
                written += 1
            elif any(existing.get(c) != v for c, v in row.items()):
                existing.update(row)
                written += 1
        return written

    async def call(self, function, params):
        self.calls.append((function, dict(params)))
        fn = self.functions.get(function)
        return fn(params) if fn else None

    def snapshot(self, relation):
        """Stored rows minus generated ids, for state comparisons."""
        return sorted(
            (tuple(sorted((k, _key(v)) for k, v in r.items() if k != "id")) for r in self.tables[relation]),
            key=repr,
        )


class FakeProvider:
    name = "sportsdata"

    def __init__(self, games=None, stats=None, current=(2025, 3, "REG")):
        self.games = games or []
        self.stats = stats or []
        self.current = current
        self.fail_games = False
        self.fail_stats = False
        self.fail_current = False
        self.requests = []

    async def fetch_games(self, season, week, season_type):
        self.requests.append(("games", season, week, season_type))
        if self.fail_games:
            raise UpstreamFetchError("games feed down")
        return copy.deepcopy(self.games)

    async def fetch_team_stats(self, season, season_type):
        self.requests.append(("stats", season, season_type))
        if self.fail_stats:
            raise UpstreamFetchError("stats feed down")
        return copy.deepcopy(self.stats)

    async def fetch_current_week(self):
        self.requests.append(("current",))
        if self.fail_current:
            raise UpstreamFetchError("current week unavailable")
        return self.current


class FakeQuota:
    def __init__(self, allowed=True, metered=True, decrement_error=None):
        self.allowed = allowed
        self.metered = metered
        self.decrement_error = decrement_error
        self.checked = []
        self.decremented = []

    async def check_quota(self, user_id):
        self.checked.append(user_id)
        return self.allowed

    async def is_metered(self, user_id):
        return self.metered

    async def decrement_quota(self, user_id):
        if self.decrement_error is not None:
            raise self.decrement_error
        self.decremented.append(user_id)


def raw_game(home="KC", away="BUF", status="Final", home_score=27, away_score=20,
             season=2025, week=3, season_type=2, when="2025-09-21T16:25:00", game_id=1):
    return {
        "GameID": game_id,
        "Season": season,
        "SeasonType": season_type,
        "Week": week,
        "DateTime": when,
        "HomeTeam": home,
        "AwayTeam": away,
        "HomeScore": home_score,
        "AwayScore": away_score,
        "Status": status,
    }


def raw_stats(team="KC", season=2025, games=2, **overrides):
    row = {
        "Team": team,
        "Season": season,
        "Games": games,
        "PointsFor": 54,
        "TotalYards": 780,
        "PassingYards": 520,
        "RushingYards": 260,
        "Turnovers": 2,
        "TurnoverDifferential": 2,
        "PenaltyYards": 110,
        "Sacks": 5,
        "RedZoneAttempts": 8,
        "RedZoneConversions": 5,
        "ThirdDownAttempts": 26,
        "ThirdDownConversions": 13,
        "TimeOfPossessionMinutes": 62,
        "TimeOfPossessionSeconds": 30,
        "OpponentPointsFor": 40,
        "OpponentTotalYards": 640,
        "OpponentPassingYards": 430,
        "OpponentRushingYards": 210,
        "OpponentTurnovers": 4,
        "OpponentRedZoneAttempts": 6,
        "OpponentRedZoneConversions": 3,
        "OpponentThirdDownAttempts": 24,
        "OpponentThirdDownConversions": 8,
    }
    row.update(overrides)
    return row


def make_settings(**overrides):
    base = dict(
        database_url=None,
        sports_api_key="test-key",
        sports_api_base="https://sportsdata.test/v3/nfl/scores/json",
        sports_api_timeout=5.0,
        sports_api_max_tries=1,
        provider="sportsdata",
        auth_url="https://auth.test",
        auth_api_key="anon",
        sync_api_key=None,
        season_min=2020,
        season_max=2030,
        default_season=2025,
        model_version=None,
        rate_limit_max=10,
        rate_limit_window=60.0,
        log_level="INFO",
    )
    base.update(overrides)
    return Settings(**base)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def store():
    s = MemoryStore()
    s.seed("teams", TEAMS)
    s.seed("team_aliases", ALIASES)
    s.seed("model_coefficients", [COEFFICIENTS])
    return s


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def quota():
    return FakeQuota()
