"""Discovery and application of the tracker database's SQL migrations.

Migrations are `<timestamp>_<description>.sql` files applied in filename order. Each one
runs in its own transaction together with the `schema_migrations` row that records it,
so a failed migration leaves nothing behind and is retried on the next run.
"""

import asyncio
import os
from dataclasses import dataclass
from datetime import datetime
from functools import cached_property
from pathlib import Path
from urllib.parse import urlparse

import asyncpg
import sqlparse

from src.utils.logging import get_logger

logger = get_logger(__name__)

MIGRATION_TABLE = "schema_migrations"


class MigrationError(Exception):
    """Custom exception for migration-related errors."""

    pass


@dataclass(frozen=True)
class Migration:
    path: Path

    @property
    def name(self) -> str:
        return self.path.name

    @property
    def version(self) -> str:
        return self.name.split("_")[0]

    @property
    def description(self) -> str:
        return self.name.removeprefix(f"{self.version}_").removesuffix(".sql").replace("_", " ")

    @cached_property
    def statements(self) -> list[str]:
        return parse_sql_statements(self.path.read_text())


def get_migrations_dir() -> Path:
    """Get the migrations directory, `migrations/` at the repository root unless overridden."""
    default_path = Path(__file__).parent.parent.parent / "migrations"
    return Path(os.getenv("MIGRATIONS_DIR", str(default_path)))


def load_migrations(directory: Path) -> list[Migration]:
    """All migrations in `directory`, oldest first. A missing directory has none."""
    if not directory.exists():
        return []
    return [Migration(path) for path in sorted(directory.glob("*.sql"))]


def parse_sql_statements(sql_content: str) -> list[str]:
    """Split SQL into statements, dropping empty ones."""
    return [stmt for stmt in (s.strip() for s in sqlparse.split(sql_content)) if stmt]


async def connect(db_url: str, password: str | None = None) -> asyncpg.Connection:
    return await asyncpg.connect(db_url, password=password)


async def connect_with_retries(
    db_url: str, password: str | None = None, retries: int = 3
) -> asyncpg.Connection:
    """Connect, backing off exponentially between attempts.

    Raises:
        MigrationError: If every attempt fails
    """
    for attempt in range(retries):
        try:
            return await connect(db_url, password)
        except (OSError, asyncpg.PostgresError) as e:
            if attempt == retries - 1:
                raise MigrationError(f"Failed to connect after {retries} attempts: {e}") from e
            logger.warning(f"Connection attempt {attempt + 1} failed, retrying: {e}")
            await asyncio.sleep(2**attempt)
    raise MigrationError("No connection attempts were made")


async def ensure_migrations_table(conn: asyncpg.Connection) -> None:
    await conn.execute(f"""
        CREATE TABLE IF NOT EXISTS public.{MIGRATION_TABLE} (
            version VARCHAR(255) PRIMARY KEY,
            applied_at TIMESTAMP WITH TIME ZONE DEFAULT NOW()
        );
    """)


async def get_applied_migrations(conn: asyncpg.Connection) -> dict[str, datetime | None]:
    """Applied versions mapped to when they were applied. Empty before the first run."""
    table_exists = await conn.fetchval(
        "SELECT to_regclass($1) IS NOT NULL", f"public.{MIGRATION_TABLE}"
    )
    if not table_exists:
        return {}

    rows = await conn.fetch(f"SELECT version, applied_at FROM public.{MIGRATION_TABLE}")
    return {row["version"]: row["applied_at"] for row in rows}


async def apply_migration(conn: asyncpg.Connection, migration: Migration, timeout: int = 300) -> None:
    """Apply one migration and record it, atomically."""
    async with conn.transaction():
        await conn.execute(f"SET LOCAL statement_timeout = '{timeout}s'")
        for statement in migration.statements:
            await conn.execute(statement)
        await conn.execute(
            f"INSERT INTO public.{MIGRATION_TABLE} (version) VALUES ($1)", migration.version
        )

    logger.info(f"Applied migration {migration.name}")


async def migrate_database(
    db_url: str,
    migrations_dir: Path,
    password: str | None = None,
    timeout: int = 300,
    retries: int = 3,
    dry_run: bool = False,
) -> tuple[int, int, bool]:
    """Apply pending migrations, stopping at the first failure.

    Returns:
        (applied_count, total_count, success); in a dry run applied_count is the number
        that would be applied
    """
    db_name = urlparse(db_url).path.lstrip("/") or "database"

    migrations = load_migrations(migrations_dir)
    if not migrations:
        logger.info(f"No migrations found in {migrations_dir}")
        return 0, 0, migrations_dir.exists()

    try:
        conn = await connect_with_retries(db_url, password, retries)
    except MigrationError as e:
        logger.error(f"Cannot migrate {db_name}: {e}")
        return 0, 0, False

    try:
        if not dry_run:
            await ensure_migrations_table(conn)
        applied = await get_applied_migrations(conn)

        pending = [m for m in migrations if m.version not in applied]
        for count, migration in enumerate(pending):
            if dry_run:
                logger.info(f"DRY RUN: Would apply {migration.name}")
                continue
            try:
                await apply_migration(conn, migration, timeout)
            except Exception as e:
                logger.error(f"Failed to apply {migration.name} to {db_name}: {e}")
                return count, len(migrations), False

        return len(pending), len(migrations), True
    finally:
        await conn.close()
