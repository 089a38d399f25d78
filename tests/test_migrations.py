from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from webhook_service.db.migrations import (
    DEFAULT_MIGRATIONS_DIR,
    Migration,
    load_migrations,
    pending_migrations,
)


def test_bundled_migrations_load():
    migrations = load_migrations(DEFAULT_MIGRATIONS_DIR)
    assert migrations[0].version == "001_webhooks"
    assert "webhook_deliveries" in migrations[0].sql


def test_load_migrations_sorted(tmp_path: Path):
    (tmp_path / "002_b.sql").write_text("SELECT 2;")
    (tmp_path / "001_a.sql").write_text("SELECT 1;")
    (tmp_path / "notes.txt").write_text("ignored")

    assert [m.version for m in load_migrations(tmp_path)] == ["001_a", "002_b"]


def test_load_migrations_missing_dir(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_migrations(tmp_path / "absent")


def _migration(version: str, sql: str) -> Migration:
    return Migration(version, Path(f"{version}.sql"), sql)


@pytest.mark.asyncio
async def test_pending_skips_applied():
    first = _migration("001_a", "SELECT 1;")
    second = _migration("002_b", "SELECT 2;")
    conn = AsyncMock()
    conn.fetch.return_value = [{"version": "001_a", "checksum": first.checksum}]

    assert await pending_migrations(conn, [first, second]) == [second]
    conn.execute.assert_awaited()


@pytest.mark.asyncio
async def test_pending_detects_changed_file():
    changed = _migration("001_a", "SELECT 42;")
    conn = AsyncMock()
    conn.fetch.return_value = [{"version": "001_a", "checksum": "deadbeef"}]

    with pytest.raises(RuntimeError, match="Checksum mismatch"):
        await pending_migrations(conn, [changed])
