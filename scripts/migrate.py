#!/usr/bin/env python
"""
Apply the live results schema (migrations/*.sql) to DATABASE_URL.

Files run in filename order, each inside its own transaction, and are
recorded in the _migrations table so they are applied once.

Usage:
    python -m scripts.migrate             # Apply pending files
    python -m scripts.migrate --status    # Applied vs pending
    python -m scripts.migrate --dry-run   # List what would be applied
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import asyncpg
from dotenv import load_dotenv

# Load environment
load_dotenv(".env.local")
load_dotenv(".env")

from fpl_live.db import close_pool, init_pool  # noqa: E402

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent.parent / "migrations"

CREATE_MIGRATIONS_TABLE = """
    CREATE TABLE IF NOT EXISTS _migrations (
        name TEXT PRIMARY KEY,
        applied_at TIMESTAMPTZ DEFAULT NOW()
    )
"""


def pending_migrations(applied: set[str], migrations_dir: Path = MIGRATIONS_DIR) -> list[Path]:
    """Migration files not yet applied, in filename order."""
    return [m for m in sorted(migrations_dir.glob("*.sql")) if m.name not in applied]


async def get_applied_migrations(conn: asyncpg.Connection) -> set[str]:
    """Names of applied files, creating the tracking table on first use."""
    await conn.execute(CREATE_MIGRATIONS_TABLE)
    rows = await conn.fetch("SELECT name FROM _migrations")
    return {row["name"] for row in rows}


async def apply_migration(conn: asyncpg.Connection, path: Path) -> None:
    """Run one file and record it in the same transaction."""
    async with conn.transaction():
        await conn.execute(path.read_text())
        await conn.execute("INSERT INTO _migrations (name) VALUES ($1)", path.name)


async def apply_pending(conn: asyncpg.Connection, dry_run: bool = False) -> list[str]:
    """
    Apply every pending migration, stopping at the first failure.

    Returns:
        Names of the files applied (or that would be, with dry_run)
    """
    pending = pending_migrations(await get_applied_migrations(conn))
    if not pending:
        logger.info("Live results schema is up to date")
        return []

    applied = []
    for path in pending:
        if dry_run:
            logger.info(f"Would apply {path.name}")
        else:
            logger.info(f"Applying {path.name}")
            await apply_migration(conn, path)
        applied.append(path.name)

    logger.info(f"{'Pending' if dry_run else 'Applied'}: {', '.join(applied)}")
    return applied


async def show_status(conn: asyncpg.Connection) -> None:
    applied = await get_applied_migrations(conn)
    for path in sorted(MIGRATIONS_DIR.glob("*.sql")):
        state = "applied" if path.name in applied else "pending"
        print(f"  {state:<8} {path.name}")


async def main() -> None:
    parser = argparse.ArgumentParser(description="Apply live results migrations")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--status", action="store_true", help="Show applied vs pending")
    group.add_argument("--dry-run", action="store_true", help="List pending without applying")
    args = parser.parse_args()

    try:
        pool = await init_pool()
    except (ValueError, OSError, asyncpg.PostgresError) as e:
        logger.error(f"Cannot connect to database: {e}")
        sys.exit(1)

    try:
        async with pool.acquire() as conn:
            if args.status:
                await show_status(conn)
            else:
                await apply_pending(conn, dry_run=args.dry_run)
    finally:
        await close_pool()


if __name__ == "__main__":
    asyncio.run(main())
