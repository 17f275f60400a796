# scorecast/core/db.py
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator
from urllib.parse import urlparse, urlunparse, parse_qsl, urlencode

from sqlalchemy.ext.asyncio import create_async_engine, AsyncConnection, AsyncEngine
from sqlalchemy import text

from scorecast.core.config import get_settings

logger = logging.getLogger("scorecast.db")

_engine: AsyncEngine | None = None

SCHEMA_PATH = Path(__file__).with_name("schema.sql")

_LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1", "db", "postgres"}


def _ensure_asyncpg(url: str) -> str:
    """
    Normalize any postgres URL to the asyncpg driver.
    Works for:
      - postgres://...
      - postgresql://...
      - postgresql+psycopg2://...
    Remote hosts get ssl=require unless the URL already says otherwise;
    a libpq-style sslmode is translated to asyncpg's ssl parameter.
    """
    if not url:
        return url

    # normalize scheme
    if url.startswith("postgres://"):
        url = "postgresql://" + url[len("postgres://"):]
    if url.startswith("postgresql+psycopg2://"):
        url = "postgresql://" + url[len("postgresql+psycopg2://"):]
    if not url.startswith("postgresql+asyncpg://"):
        url = "postgresql+asyncpg://" + url.split("postgresql://", 1)[-1]

    parsed = urlparse(url)
    q = dict(parse_qsl(parsed.query))
    if "sslmode" in q:
        q["ssl"] = q.pop("sslmode")
    if "ssl" not in q and (parsed.hostname or "") not in _LOCAL_HOSTS:
        q["ssl"] = "require"
    final_url = urlunparse(parsed._replace(query=urlencode(q)))

    # minimal debug (no secrets)
    logger.info(
        "[DB] Using asyncpg URL -> host=%s port=%s ssl=%s",
        parsed.hostname or "?",
        parsed.port or "?",
        q.get("ssl", "off"),
    )
    return final_url


def get_database_url() -> str | None:
    raw = get_settings().database_url
    if not raw:
        logger.warning("[DB] DATABASE_URL not set; DB layer disabled.")
        return None
    return _ensure_asyncpg(raw)


async def init_engine() -> AsyncEngine | None:
    global _engine
    url = get_database_url()
    if not url:
        return None
    _engine = create_async_engine(url, pool_pre_ping=True)
    return _engine


async def close_engine():
    global _engine
    if _engine:
        await _engine.dispose()
        _engine = None


def engine_ready() -> bool:
    return _engine is not None


async def ensure_schema() -> None:
    """Apply schema.sql (idempotent) on the raw driver connection; it holds many statements."""
    if not _engine:
        return
    sql = SCHEMA_PATH.read_text(encoding="utf-8")
    async with _engine.connect() as conn:
        raw = await conn.get_raw_connection()
        await raw.driver_connection.execute(sql)
        await conn.commit()
    logger.info("[DB] schema ensured from %s", SCHEMA_PATH.name)


async def fetch_all(statement, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
    """
    Run a statement in its own transaction and return rows as plain dicts.
    Accepts raw SQL or a prepared ``text()`` clause (e.g. with expanding binds).
    """
    if not _engine:
        return []
    async with _engine.begin() as conn:
        return await fetch_all_on(conn, statement, params)


@asynccontextmanager
async def transaction() -> AsyncIterator[AsyncConnection]:
    """One connection, one transaction; committed on exit, rolled back on error."""
    if not _engine:
        raise RuntimeError("database engine is not initialised")
    async with _engine.begin() as conn:
        yield conn


async def fetch_all_on(conn: AsyncConnection, statement, params: dict[str, Any] | None = None) -> list[dict[str, Any]]:
    stmt = text(statement) if isinstance(statement, str) else statement
    result = await conn.execute(stmt, params or {})
    if not result.returns_rows:
        return []
    return [dict(r) for r in result.mappings().all()]
