"""
rally.database.d1 — Cloudflare D1 HTTP Gateway
===============================================

Implements the gateway contract over D1's REST query endpoint::

    POST /accounts/{account}/d1/database/{database}/query
    {"sql": "...", "params": [...]}

A SELECT comes back as ``{"success": true, "result": [{"results": [...],
"meta": {...}}]}``; writes carry the same envelope with an empty
``results`` list.  ``success: false`` raises :class:`D1QueryError`.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx

logger = logging.getLogger(__name__)

D1_API = "https://api.cloudflare.com/client/v4"


class D1QueryError(RuntimeError):
    """D1 rejected the statement (syntax, constraint, auth, …)."""

    def __init__(self, sql: str, errors: list[Any]) -> None:
        super().__init__(f"D1 query failed: {errors}")
        self.sql = sql
        self.errors = errors


class D1Gateway:
    """Synchronous D1 client.  Call through :func:`rally.database.engine.run_db`.

    One :class:`httpx.Client` is shared across worker threads (httpx clients
    are thread-safe) with an explicit timeout and a single connect retry.
    """

    def __init__(
        self,
        account_id: str,
        database_id: str,
        api_token: str,
        *,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.url = f"{D1_API}/accounts/{account_id}/d1/database/{database_id}/query"
        self._client = httpx.Client(
            timeout=timeout,
            transport=transport or httpx.HTTPTransport(retries=1),
            headers={
                "Authorization": f"Bearer {api_token}",
                "Content-Type": "application/json",
            },
        )

    def execute(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        resp = self._client.post(self.url, json={"sql": sql, "params": list(params)})
        try:
            payload = resp.json()
        except ValueError:
            resp.raise_for_status()
            raise

        if not payload.get("success"):
            errors = payload.get("errors") or [{"status": resp.status_code}]
            logger.error("D1 error for %r: %s", sql.strip().split("\n")[0][:120], errors)
            raise D1QueryError(sql, errors)

        result = payload.get("result")
        if isinstance(result, list) and result and isinstance(result[0], dict):
            return list(result[0].get("results") or [])
        return []

    def close(self) -> None:
        self._client.close()
