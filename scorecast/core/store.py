# scorecast/core/store.py
"""
Generic relational access for the core.

The prediction and ingestion code only ever talks to a ``Store``: select with
equality filters, insert one row, upsert a batch on a conflict key, or call a
named SQL function. ``SqlStore`` is the Postgres implementation; identifiers
are checked against ``RELATIONS`` so nothing caller-supplied is ever spliced
into SQL text.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence, Tuple

from sqlalchemy import bindparam, text

from scorecast.core import db
from scorecast.core.errors import ConfigurationError
from scorecast.models.types import STAT_METRICS

logger = logging.getLogger("scorecast.store")

Filters = Mapping[str, Any]
OrderBy = Sequence[str]  # "col" ascending, "-col" descending

_STATS_COLS = ("id", "team_id", "year", "as_of_week", *STAT_METRICS, "updated_at")

RELATIONS: Dict[str, Tuple[str, ...]] = {
    "teams": (
        "id", "name", "abbreviation", "conference", "division",
        "primary_color", "secondary_color", "logo_url",
    ),
    "team_aliases": ("id", "provider", "alias", "team_id"),
    "games": (
        "id", "year", "week", "season_type", "home_team_id", "away_team_id",
        "kickoff_time", "status", "home_score", "away_score",
        "home_offensive_yards", "away_offensive_yards", "updated_at",
    ),
    "team_stats": _STATS_COLS,
    "team_stats_latest": _STATS_COLS,
    "model_coefficients": (
        "id", "model_version", "feature_names", "home_coefs", "home_intercept",
        "away_coefs", "away_intercept", "is_active", "created_at",
    ),
    "profiles": ("id", "email", "is_premium", "free_predictions_used", "updated_at"),
    "user_predictions": (
        "id", "user_id", "home_team_id", "away_team_id", "game_id", "season_year",
        "mode", "predicted_home_score", "predicted_away_score",
        "actual_home_score", "actual_away_score", "was_accurate", "created_at",
    ),
    "model_predictions": (
        "id", "user_prediction_id", "home_team_features", "away_team_features",
        "feature_vector", "model_version", "created_at",
    ),
    "v_user_metrics": (
        "user_id", "total_predictions", "accurate_predictions", "accuracy_percentage",
        "avg_home_error", "avg_away_error", "mae_home", "mae_away", "mae_spread", "mae_total",
    ),
    "v_user_team_accuracy": (
        "user_id", "team_id", "team_name", "abbreviation", "total_predictions",
        "accurate_predictions", "accuracy_percentage",
    ),
}

READ_ONLY = {"team_stats_latest", "v_user_metrics", "v_user_team_accuracy", "model_coefficients"}

FUNCTIONS = {"fn_can_consume_prediction", "fn_increment_free_predictions"}

TOUCH_COLUMN = "updated_at"


class Store(Protocol):
    async def select_one(
        self, relation: str, filters: Optional[Filters] = None, order_by: OrderBy = ()
    ) -> Optional[Dict[str, Any]]: ...

    async def select_many(
        self,
        relation: str,
        filters: Optional[Filters] = None,
        order_by: OrderBy = (),
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]: ...

    async def insert(self, relation: str, row: Mapping[str, Any]) -> Dict[str, Any]: ...

    async def insert_linked(
        self,
        parent: str,
        parent_row: Mapping[str, Any],
        child: str,
        child_row: Mapping[str, Any],
        link_column: str,
    ) -> Tuple[Dict[str, Any], Dict[str, Any]]: ...

    async def upsert(
        self, relation: str, rows: Iterable[Mapping[str, Any]], conflict_key: Sequence[str]
    ) -> int: ...

    async def call(self, function: str, params: Mapping[str, Any]) -> Any: ...


# -----------------------------------------------------------
# SQL rendering (pure; unit-tested without a database)
# -----------------------------------------------------------
def _check_relation(relation: str, writable: bool = False) -> Tuple[str, ...]:
    cols = RELATIONS.get(relation)
    if cols is None:
        raise ConfigurationError(f"unknown relation {relation!r}")
    if writable and relation in READ_ONLY:
        raise ConfigurationError(f"relation {relation!r} is read-only")
    return cols


def _check_columns(relation: str, columns: Iterable[str]) -> None:
    known = RELATIONS[relation]
    for c in columns:
        if c not in known:
            raise ConfigurationError(f"unknown column {relation}.{c}")


def _bind_value(value: Any) -> Any:
    # jsonb columns travel as text
    if isinstance(value, dict):
        return json.dumps(value, default=str)
    return value


def render_select(
    relation: str,
    filters: Optional[Filters] = None,
    order_by: OrderBy = (),
    limit: Optional[int] = None,
):
    _check_relation(relation)
    filters = filters or {}
    _check_columns(relation, filters)
    _check_columns(relation, (o.lstrip("-") for o in order_by))

    clauses: List[str] = []
    params: Dict[str, Any] = {}
    expanding: List[str] = []
    for i, (col, val) in enumerate(filters.items()):
        p = f"f{i}"
        if val is None:
            clauses.append(f"{col} IS NULL")
        elif isinstance(val, (list, tuple, set, frozenset)):
            clauses.append(f"{col} IN :{p}")
            params[p] = list(val)
            expanding.append(p)
        else:
            clauses.append(f"{col} = :{p}")
            params[p] = val

    sql = f"SELECT * FROM {relation}"
    if clauses:
        sql += " WHERE " + " AND ".join(clauses)
    if order_by:
        sql += " ORDER BY " + ", ".join(
            f"{o[1:]} DESC" if o.startswith("-") else f"{o} ASC" for o in order_by
        )
    if limit is not None:
        sql += f" LIMIT {int(limit)}"

    stmt = text(sql)
    if expanding:
        stmt = stmt.bindparams(*(bindparam(p, expanding=True) for p in expanding))
    return stmt, params


def render_insert(relation: str, row: Mapping[str, Any]) -> Tuple[str, Dict[str, Any]]:
    _check_relation(relation, writable=True)
    cols = list(row)
    _check_columns(relation, cols)
    sql = (
        f"INSERT INTO {relation} ({', '.join(cols)}) "
        f"VALUES ({', '.join(':' + c for c in cols)}) RETURNING *"
    )
    return sql, {c: _bind_value(row[c]) for c in cols}


def render_upsert(
    relation: str, rows: Sequence[Mapping[str, Any]], conflict_key: Sequence[str]
) -> Tuple[str, Dict[str, Any]]:
    """
    One multi-row INSERT .. ON CONFLICT statement for the whole batch.

    The DO UPDATE only fires when some non-key column differs, and RETURNING
    yields one row per inserted or changed row, so the caller gets the net
    number of rows written (0 for an identical re-run). updated_at is bumped
    on a real change and never takes part in the comparison.
    """
    _check_relation(relation, writable=True)
    cols: List[str] = []
    for r in rows:
        for c in r:
            if c not in cols:
                cols.append(c)
    _check_columns(relation, cols)
    _check_columns(relation, conflict_key)
    missing = [k for k in conflict_key if k not in cols]
    if missing:
        raise ConfigurationError(f"conflict key columns missing from rows: {missing}")

    params: Dict[str, Any] = {}
    tuples = []
    for i, r in enumerate(rows):
        names = []
        for j, c in enumerate(cols):
            p = f"p{i}_{j}"
            params[p] = _bind_value(r.get(c))
            names.append(":" + p)
        tuples.append("(" + ", ".join(names) + ")")

    update_cols = [c for c in cols if c not in conflict_key and c != TOUCH_COLUMN]
    assignments = [f"{c} = EXCLUDED.{c}" for c in update_cols]
    if TOUCH_COLUMN in RELATIONS[relation]:
        assignments.append(f"{TOUCH_COLUMN} = now()")
    sql = (
        f"INSERT INTO {relation} ({', '.join(cols)}) VALUES {', '.join(tuples)} "
        f"ON CONFLICT ({', '.join(conflict_key)}) "
    )
    if update_cols:
        sql += (
            "DO UPDATE SET "
            + ", ".join(assignments)
            + " WHERE ("
            + ", ".join(f"{relation}.{c}" for c in update_cols)
            + ") IS DISTINCT FROM ("
            + ", ".join(f"EXCLUDED.{c}" for c in update_cols)
            + ")"
        )
    else:
        sql += "DO NOTHING"
    sql += " RETURNING 1"
    return sql, params


# -----------------------------------------------------------
# Postgres implementation
# -----------------------------------------------------------
class SqlStore:
    """Store backed by the shared async engine in ``scorecast.core.db``."""

    def _require_engine(self) -> None:
        if not db.engine_ready():
            raise ConfigurationError("database engine is not initialised (DATABASE_URL unset?)")

    async def select_many(self, relation, filters=None, order_by=(), limit=None):
        self._require_engine()
        stmt, params = render_select(relation, filters, order_by, limit)
        return await db.fetch_all(stmt, params)

    async def select_one(self, relation, filters=None, order_by=()):
        rows = await self.select_many(relation, filters, order_by, limit=1)
        return rows[0] if rows else None

    async def insert(self, relation, row):
        self._require_engine()
        sql, params = render_insert(relation, row)
        rows = await db.fetch_all(sql, params)
        return rows[0] if rows else dict(row)

    async def insert_linked(self, parent, parent_row, child, child_row, link_column):
        """Insert a row and one child pointing at its id, all or nothing."""
        self._require_engine()
        async with db.transaction() as conn:
            sql, params = render_insert(parent, parent_row)
            parent_out = (await db.fetch_all_on(conn, sql, params))[0]
            sql, params = render_insert(child, {**child_row, link_column: parent_out["id"]})
            child_out = (await db.fetch_all_on(conn, sql, params))[0]
        return parent_out, child_out

    async def upsert(self, relation, rows, conflict_key):
        rows = list(rows)
        if not rows:
            return 0
        self._require_engine()
        sql, params = render_upsert(relation, rows, conflict_key)
        changed = await db.fetch_all(sql, params)
        logger.info("upsert %s: %d rows sent, %d written", relation, len(rows), len(changed))
        return len(changed)

    async def call(self, function, params):
        if function not in FUNCTIONS:
            raise ConfigurationError(f"unknown function {function!r}")
        self._require_engine()
        names = ", ".join(f":{k}" for k in params)
        rows = await db.fetch_all(f"SELECT {function}({names}) AS result", dict(params))
        return rows[0]["result"] if rows else None
