"""Checksum-tracked SQL migrations."""
from __future__ import annotations

import asyncio
import hashlib
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import asyncpg  # type: ignore[import-untyped]
import structlog
from aiohttp import web

from webhook_service.settings import settings

logger = structlog.get_logger(__name__)

# One directory per database; the tests load the same files as their schema.
MIGRATIONS_ROOT = Path(__file__).resolve().parents[3] / "migrations"
DEFAULT_MIGRATIONS_DIR = MIGRATIONS_ROOT / "webhook_service"

_CONNECT_ATTEMPTS = 5
_CONNECT_RETRY_DELAY_SECONDS = 2


@dataclass(frozen=True)
class Migration:
    version: str
    path: Path
    sql: str

    @property
    def checksum(self) -> str:
        return hashlib.sha256(self.sql.encode("utf-8")).hexdigest()


def load_migrations(directory: Path) -> list[Migration]:
    """Read ``*.sql`` files sorted by name; the file stem is the version."""
    if not directory.exists():
        raise FileNotFoundError(f"Migrations directory does not exist: {directory}")
    migrations: list[Migration] = []
    seen: set[str] = set()
    for path in sorted(directory.glob("*.sql")):
        if path.stem in seen:
            raise ValueError(f"Duplicate migration version detected: {path.stem}")
        seen.add(path.stem)
        migrations.append(Migration(path.stem, path, path.read_text(encoding="utf-8")))
    return migrations


async def ensure_schema_table(conn: asyncpg.Connection) -> None:
    await conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
            version text PRIMARY KEY,
            checksum text NOT NULL,
            applied_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )


async def pending_migrations(
    conn: asyncpg.Connection, migrations: Iterable[Migration]
) -> list[Migration]:
    """Return migrations not yet recorded; a changed applied file is an error."""
    await ensure_schema_table(conn)
    rows = await conn.fetch("SELECT version, checksum FROM schema_migrations")
    applied = {row["version"]: row["checksum"] for row in rows}
    pending: list[Migration] = []
    for migration in migrations:
        recorded = applied.get(migration.version)
        if recorded is None:
            pending.append(migration)
        elif recorded != migration.checksum:
            raise RuntimeError(
                f"Checksum mismatch for {migration.version}: "
                f"{recorded} (db) != {migration.checksum} (file)"
            )
    return pending


async def apply_migration(conn: asyncpg.Connection, migration: Migration) -> None:
    async with conn.transaction():
        await conn.execute(migration.sql)
        await conn.execute(
            "INSERT INTO schema_migrations (version, checksum) VALUES ($1, $2)",
            migration.version,
            migration.checksum,
        )


async def _connect_with_retry(dsn: str) -> asyncpg.Connection | None:
    for attempt in range(1, _CONNECT_ATTEMPTS + 1):
        try:
            return await asyncpg.connect(dsn)
        except (OSError, asyncpg.PostgresError) as exc:
            logger.warning(
                "migrations: database not reachable",
                attempt=attempt,
                max_attempts=_CONNECT_ATTEMPTS,
                error=str(exc),
            )
            if attempt < _CONNECT_ATTEMPTS:
                await asyncio.sleep(_CONNECT_RETRY_DELAY_SECONDS)
    return None


async def apply_migrations_on_startup(_app: web.Application) -> None:
    """aiohttp startup hook applying pending migrations."""
    if not DEFAULT_MIGRATIONS_DIR.exists():
        logger.warning("migrations directory not found, skipping", path=str(DEFAULT_MIGRATIONS_DIR))
        return
    migrations = load_migrations(DEFAULT_MIGRATIONS_DIR)
    if not migrations:
        logger.warning("no migrations found, skipping")
        return

    conn = await _connect_with_retry(str(settings.database_url))
    if conn is None:
        logger.error("migrations skipped: could not connect to database")
        return
    try:
        pending = await pending_migrations(conn, migrations)
        for migration in pending:
            logger.info("applying migration", version=migration.version)
            await apply_migration(conn, migration)
        logger.info("migrations up to date", applied=len(pending))
    finally:
        await conn.close()
