"""Apply the guild queue schema migrations.

Usage:
    python db_migrate.py          # Run all pending migrations
    python db_migrate.py --dry    # List pending migrations without applying
"""

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

import asyncpg
from dotenv import load_dotenv

from shared.migrations.runner import MigrationRunner

load_dotenv(Path(__file__).resolve().parent.parent / "api" / ".env")

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")


async def main(dry: bool) -> int:
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        print("ERROR: DATABASE_URL not set. Check api/.env or environment variables.")
        return 1

    pool = await asyncpg.create_pool(database_url, min_size=1, max_size=2, statement_cache_size=0)
    try:
        runner = MigrationRunner(pool)
        if dry:
            pending = await runner.list_pending()
            print(f"Pending: {len(pending)}")
            for version in pending:
                print(f"  -> {version}")
            return 0

        newly_applied = await runner.run_pending()
        print(f"Applied {len(newly_applied)} migration(s).")
        return 0
    finally:
        await pool.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--dry", action="store_true", help="list pending migrations only")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(args.dry)))
