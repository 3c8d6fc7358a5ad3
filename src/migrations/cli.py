#!/usr/bin/env python3
"""
Tracker Database Migration CLI

Creates, lists and applies the SQL migrations for the tables the webhook service writes.

    tracker-migrations create "add commit author index"
    tracker-migrations migrate --dry-run
    tracker-migrations status
"""

import asyncio
import re
from datetime import datetime

import typer
from dotenv import load_dotenv
from rich import box
from rich.console import Console
from rich.table import Table

from src.migrations.core import (
    Migration,
    MigrationError,
    connect,
    get_applied_migrations,
    get_migrations_dir,
    load_migrations,
    migrate_database,
)
from src.utils.config import get_supabase_db_password, get_supabase_db_url

load_dotenv()

app = typer.Typer(
    name="migrations",
    help="Database migration management for the tracker database",
    add_completion=False,
)
console = Console()

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def log_info(message: str) -> None:
    console.print(f"ℹ️  {message}", style="blue")


def log_success(message: str) -> None:
    console.print(f"✅ {message}", style="green")


def log_warning(message: str) -> None:
    console.print(f"⚠️  {message}", style="yellow")


def log_error(message: str) -> None:
    console.print(f"❌ {message}", style="red")


def slugify(text: str) -> str:
    """Lowercase `text` and collapse every run of other characters into one underscore."""
    return re.sub(r"[^a-z0-9]+", "_", text.lower()).strip("_")


def generate_timestamp() -> str:
    return datetime.now().strftime("%Y%m%d%H%M%S")


def validate_environment() -> tuple[str, str]:
    """Database URL and password from the environment.

    Raises:
        MigrationError: If either is missing
    """
    try:
        return get_supabase_db_url(), get_supabase_db_password()
    except ValueError as e:
        raise MigrationError(str(e)) from e


def _require_environment() -> tuple[str, str]:
    try:
        return validate_environment()
    except MigrationError as e:
        log_error(str(e))
        raise typer.Exit(1)


@app.command()
def create(
    description: str = typer.Argument(..., help="Brief description of the migration"),
) -> None:
    """Create an empty, timestamped migration file."""
    target_dir = get_migrations_dir()
    target_dir.mkdir(parents=True, exist_ok=True)

    filepath = target_dir / f"{generate_timestamp()}_{slugify(description)}.sql"
    if filepath.exists():
        log_error(f"File already exists: {filepath}")
        raise typer.Exit(1)

    # Statements run inside a single transaction, so no BEGIN/COMMIT here
    filepath.write_text(
        f"-- Tracker DB Migration: {description}\n"
        f"-- Created: {datetime.now().strftime(TIMESTAMP_FORMAT)}\n"
        "\n"
        "-- Prefer idempotent statements: CREATE TABLE IF NOT EXISTS, CREATE INDEX IF NOT EXISTS\n"
    )

    log_success(f"Created migration file: {filepath}")
    log_info("Edit it, then apply with: tracker-migrations migrate")


@app.command("list")
def list_command() -> None:
    """List available migration files."""
    migrations_dir = get_migrations_dir()
    console.print(f"[blue]Tracker Database Migrations ({migrations_dir}):[/blue]")

    migrations = load_migrations(migrations_dir)
    if not migrations:
        console.print("  No migrations found")
        return

    for migration in migrations:
        console.print(f"  {migration.name}")


@app.command()
def migrate(
    dry_run: bool = typer.Option(
        False, "--dry-run", help="Show what would be done without executing"
    ),
    retries: int = typer.Option(3, "--retries", help="Number of connection attempts"),
    timeout: int = typer.Option(300, "--timeout", help="Per-migration statement timeout in seconds"),
) -> None:
    """Apply pending migrations in order."""
    db_url, password = _require_environment()

    if dry_run:
        console.print("[yellow]🔍 DRY RUN MODE - No changes will be made[/yellow]")

    applied, total, success = asyncio.run(
        migrate_database(
            db_url,
            get_migrations_dir(),
            password=password,
            timeout=timeout,
            retries=retries,
            dry_run=dry_run,
        )
    )

    if not success:
        log_error(f"Migration FAILED: {applied} migrations applied before the failure")
        raise typer.Exit(1)

    if dry_run:
        log_info(f"Would apply {applied} of {total} migrations")
    elif applied:
        log_success(f"Applied {applied} of {total} migrations")
    else:
        log_info("All migrations are up to date")


@app.command()
def status() -> None:
    """Show applied and pending migrations."""
    db_url, password = _require_environment()
    asyncio.run(show_database_status(db_url, password))


def _status_row(migration: Migration, applied: dict[str, datetime | None]) -> tuple[str, ...]:
    if migration.version not in applied:
        return migration.version, "[red]❌ PENDING[/red]", "", migration.description

    applied_at = applied[migration.version]
    return (
        migration.version,
        "[green]✅ APPLIED[/green]",
        applied_at.strftime(TIMESTAMP_FORMAT) if applied_at else "",
        migration.description,
    )


async def show_database_status(db_url: str, password: str) -> None:
    migrations = load_migrations(get_migrations_dir())
    if not migrations:
        log_warning("No migration files found")
        return

    try:
        conn = await connect(db_url, password)
    except Exception as e:
        log_error(f"Cannot connect to tracker database: {e}")
        raise typer.Exit(1)

    try:
        applied = await get_applied_migrations(conn)
    finally:
        await conn.close()

    table = Table(title="Database Migration Status", box=box.ROUNDED)
    table.add_column("Version", style="dim")
    table.add_column("Status", justify="center")
    table.add_column("Applied At", style="dim")
    table.add_column("Description")
    for migration in migrations:
        table.add_row(*_status_row(migration, applied))
    console.print(table)

    pending = sum(1 for m in migrations if m.version not in applied)
    style = "green" if pending == 0 else "yellow"
    console.print(
        f"[{style}]Summary: {len(migrations) - pending} applied, {pending} pending, "
        f"{len(migrations)} total[/{style}]"
    )


if __name__ == "__main__":
    app()
