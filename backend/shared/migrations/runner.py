"""Migration runner for the guild queue schema."""

from __future__ import annotations

import logging
from pathlib import Path

import asyncpg

logger = logging.getLogger(__name__)

VERSIONS_DIR = Path(__file__).resolve().parent / "versions"


class MigrationRunner:
    """Apply ``versions/NNN_description.sql`` files once each, in order.

    Applied versions are recorded in ``schema_migrations``.
    """

    TRACKING_TABLE = "schema_migrations"

    def __init__(self, pool: asyncpg.Pool, migrations_dir: Path | None = None) -> None:
        self.pool = pool
        self.migrations_dir = migrations_dir or VERSIONS_DIR

    async def ensure_table(self) -> None:
        async with self.pool.acquire() as conn:
            await conn.execute(
                f"""
                CREATE TABLE IF NOT EXISTS {self.TRACKING_TABLE} (
                    version    TEXT PRIMARY KEY,
                    name       TEXT NOT NULL,
                    applied_at TIMESTAMPTZ DEFAULT NOW()
                )
                """
            )

    async def get_applied(self) -> set[str]:
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT version FROM {self.TRACKING_TABLE}"  # noqa: S608
            )
            return {row["version"] for row in rows}

    def discover(self) -> list[Path]:
        """SQL files sorted by name; the NNN_ prefix fixes the order."""
        return sorted(self.migrations_dir.glob("*.sql"))

    async def list_pending(self) -> list[str]:
        await self.ensure_table()
        applied = await self.get_applied()
        return [p.stem for p in self.discover() if p.stem not in applied]

    async def run_pending(self) -> list[str]:
        """Apply all pending migrations. Returns the newly-applied versions."""
        pending = set(await self.list_pending())
        newly_applied: list[str] = []
        for sql_path in self.discover():
            if sql_path.stem not in pending:
                continue
            await self._apply_one(sql_path)
            newly_applied.append(sql_path.stem)

        if newly_applied:
            logger.info("Applied %d migration(s): %s", len(newly_applied), ", ".join(newly_applied))
        else:
            logger.info("Schema is up to date")
        return newly_applied

    async def _apply_one(self, sql_path: Path) -> None:
        version = sql_path.stem
        logger.info("Applying migration: %s", version)
        sql = sql_path.read_text(encoding="utf-8")
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(sql)
                await conn.execute(
                    f"INSERT INTO {self.TRACKING_TABLE} (version, name) VALUES ($1, $2)",
                    version,
                    sql_path.name,
                )
