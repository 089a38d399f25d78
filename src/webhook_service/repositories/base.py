"""Shared asyncpg helpers for repositories."""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Iterable

import asyncpg  # type: ignore[import-untyped]


class BaseRepository:
    """Thin wrapper over asyncpg pool operations."""

    def __init__(self, pool: asyncpg.Pool):
        self._pool = pool

    async def _fetchrow(self, query: str, *args: Any) -> asyncpg.Record | None:
        async with self._pool.acquire() as conn:
            return await conn.fetchrow(query, *args)

    async def _fetch(self, query: str, *args: Any) -> Iterable[asyncpg.Record]:
        async with self._pool.acquire() as conn:
            return await conn.fetch(query, *args)

    async def _execute(self, query: str, *args: Any) -> str:
        async with self._pool.acquire() as conn:
            return await conn.execute(query, *args)

    @staticmethod
    def _decode_json(payload: dict[str, Any], *keys: str) -> dict[str, Any]:
        """asyncpg hands jsonb back as text unless a codec is registered."""
        for key in keys:
            value = payload.get(key)
            if isinstance(value, str):
                payload[key] = json.loads(value)
        return payload

    @staticmethod
    def _affected(status: str) -> int:
        # "UPDATE 3" / "DELETE 0"
        return int(status.split()[-1])


class Conditions:
    """Accumulates ``WHERE`` clauses with positional asyncpg parameters."""

    def __init__(self, clause: str, value: Any):
        self.clauses: list[str] = [clause.format("$1")]
        self.values: list[Any] = [value]

    @property
    def next_index(self) -> int:
        return len(self.values) + 1

    def add(self, clause: str, value: Any) -> None:
        """Add *clause* where ``{}`` stands for the parameter, skipping ``None``."""
        if value is None:
            return
        self.values.append(value)
        self.clauses.append(clause.format(f"${len(self.values)}"))

    def created_between(
        self, column: str, date_from: datetime | None, date_to: datetime | None
    ) -> None:
        self.add(f"{column} >= {{}}", date_from)
        self.add(f"{column} <= {{}}", date_to)

    @property
    def sql(self) -> str:
        return " AND ".join(self.clauses)
