"""
rally.database.engine — Persistence Gateway & Async Helper
===========================================================

**Why this file exists:**
The party store is a remote SQLite database that only understands "run
this one statement with these positional parameters".  There are no
client-side transactions and no affected-row counts, so every service in
Rally is written against a single narrow contract::

    rows = gateway.execute("SELECT ... WHERE id=?", [event_id])

Two gateways implement it:

* :class:`~rally.database.d1.D1Gateway` — Cloudflare D1 over HTTPS.
* :class:`EngineGateway` — a SQLAlchemy engine (local SQLite file, tests).

Gateways are **synchronous**.  Discord runs on an ``asyncio`` loop, so
every call goes through :func:`run_db`, which ships the work to a thread
(the same bridge pattern the rest of the bot relies on)::

    result = await run_db(signups.join, gateway, event_id, user_id, "tank", 0)
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from collections.abc import Callable, Sequence
from typing import Any, ParamSpec, Protocol, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.dialects import sqlite
from sqlalchemy.pool import StaticPool
from sqlalchemy.schema import CreateIndex, CreateTable

from rally.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

Row = dict[str, Any]


# ---------------------------------------------------------------------------
# Contract
# ---------------------------------------------------------------------------
class Gateway(Protocol):
    """Execute one SQL statement; return result rows (``[]`` for writes)."""

    def execute(self, sql: str, params: Sequence[Any] = ()) -> list[Row]: ...


# ---------------------------------------------------------------------------
# SQLAlchemy-backed gateway
# ---------------------------------------------------------------------------
class EngineGateway:
    """Gateway over a SQLAlchemy :class:`Engine` using qmark (``?``) SQL.

    Each call runs in its own ``engine.begin()`` block, so every statement
    commits on its own — the same guarantees the remote store gives.  The
    lock keeps statements from interleaving on a shared SQLite connection
    (``StaticPool``); it orders whole statements, never business logic.
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._lock = threading.Lock()

    def execute(self, sql: str, params: Sequence[Any] = ()) -> list[Row]:
        with self._lock, self.engine.begin() as conn:
            result = conn.exec_driver_sql(sql, tuple(params))
            if not result.returns_rows:
                return []
            return [dict(row) for row in result.mappings().all()]


def create_sqlite_engine(url: str) -> Engine:
    """Build an engine for a SQLite URL.

    In-memory URLs get a :class:`StaticPool` so every worker thread sees
    the same database.
    """
    if url in ("sqlite://", "sqlite:///:memory:"):
        return create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(
        url,
        echo=False,            # Set True for SQL debugging
        connect_args={"check_same_thread": False},
        pool_pre_ping=True,
    )


# ---------------------------------------------------------------------------
# Gateway selection
# ---------------------------------------------------------------------------
def create_gateway() -> Gateway:
    """Pick a gateway from the environment.

    ``D1_ACCOUNT_ID`` + ``D1_DATABASE_ID`` + ``D1_API_TOKEN`` select the
    Cloudflare D1 gateway; otherwise ``DATABASE_URL`` (a SQLite URL) is
    used through SQLAlchemy.

    Raises
    ------
    RuntimeError
        If neither is configured.
    """
    account = os.getenv("D1_ACCOUNT_ID")
    database = os.getenv("D1_DATABASE_ID")
    token = os.getenv("D1_API_TOKEN")
    if account and database and token:
        from rally.database.d1 import D1Gateway

        logger.info("Using Cloudflare D1 database %s", database)
        return D1Gateway(account, database, token)

    url = os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError(
            "No database configured.  Set D1_ACCOUNT_ID/D1_DATABASE_ID/"
            "D1_API_TOKEN, or DATABASE_URL (e.g. sqlite:///rally.db)."
        )
    engine = create_sqlite_engine(url)
    logger.info("Database engine created → %s", engine.url.database or "(memory)")
    return EngineGateway(engine)


# ---------------------------------------------------------------------------
# Schema initialization
# ---------------------------------------------------------------------------
def schema_statements() -> list[str]:
    """Render ``CREATE TABLE/INDEX IF NOT EXISTS`` DDL for every model."""
    dialect = sqlite.dialect()
    statements: list[str] = []
    for table in Base.metadata.sorted_tables:
        statements.append(str(CreateTable(table, if_not_exists=True).compile(dialect=dialect)).strip())
        for index in sorted(table.indexes, key=lambda i: i.name or ""):
            statements.append(str(CreateIndex(index, if_not_exists=True).compile(dialect=dialect)).strip())
    return statements


def init_db(gateway: Gateway) -> None:
    """Create all tables through *gateway*.

    Safe to call on every startup.  Engine-backed deployments may manage
    the schema with Alembic instead; this remains the bootstrap path for
    the remote store, which Alembic cannot reach.
    """
    for stmt in schema_statements():
        gateway.execute(stmt)
    logger.info("Database tables verified / created.")


# ---------------------------------------------------------------------------
# Async bridge
# ---------------------------------------------------------------------------
async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Run a **synchronous** gateway function on a background thread.

    Every DB call in a cog or async service goes through this wrapper::

        rows = await run_db(party_service.get_event, gateway, event_id)

    Under the hood it calls :func:`asyncio.to_thread`, so the bot's event
    loop is never blocked by a network round trip.
    """
    return await asyncio.to_thread(func, *args, **kwargs)
