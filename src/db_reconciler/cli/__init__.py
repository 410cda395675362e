"""CLI module for declarative schema reconciliation.

Provides commands to inspect drivers and profiles, preview and apply
table/type/seed plans against the active profile, and generate fixture
scripts without a database.

Usage:
    DB_PROFILE=local db-reconciler plan --spec specs/users.yaml
    db-reconciler --profile local apply --spec specs/users.yaml --confirm
    db-reconciler seed --spec specs/users.yaml --confirm
    db-reconciler fixtures --input-dir specs --output-dir build --driver postgres
    db-reconciler profiles
    db-reconciler drivers

Commands:
    drivers   - List supported database drivers
    profiles  - List profiles from db.toml
    plan      - Show the statements a spec would run
    apply     - Plan and apply a spec
    seed      - Plan and apply the seed rows of a spec
    fixtures  - Write fixtures.sql for a directory of specs
"""

import argparse
import asyncio
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from db_reconciler.config.loader import get_active_profile_name, load_db_config
from db_reconciler.config.models import DatabaseConfig, DatabaseProfile
from db_reconciler.database import Database
from db_reconciler.drivers import DRIVERS
from db_reconciler.errors import PartialApplyError, ReconcileError
from db_reconciler.fixtures import generate_fixtures
from db_reconciler.spec.loader import load_table_spec

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _config_path(args: argparse.Namespace) -> Path | None:
    config = getattr(args, "config", None)
    return Path(config) if config else None


def _resolve_profile(
    args: argparse.Namespace,
) -> tuple[str, DatabaseProfile, DatabaseConfig] | None:
    """Pick the profile from ``--profile`` or ``{prefix}DB_PROFILE``.

    Prints the reason and returns None if no usable profile is found.
    """
    env_prefix = getattr(args, "env_prefix", "")
    name = getattr(args, "profile", None) or get_active_profile_name(env_prefix=env_prefix)
    if not name:
        console.print("[yellow]No profile configured.[/yellow]")
        console.print(
            f"[dim]Run with[/dim] [cyan]--profile <name>[/cyan] [dim]or set[/dim] "
            f"[cyan]{env_prefix}DB_PROFILE[/cyan]"
        )
        return None

    try:
        config = load_db_config(_config_path(args))
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return None

    if name not in config.profiles:
        available = ", ".join(config.profiles) or "none"
        console.print(f"[red]Error: profile '{name}' not found (available: {available})[/red]")
        return None

    return name, config.profiles[name], config


def _print_plan(title: str, statements: list[str]) -> None:
    if not statements:
        console.print("[bold green]v[/bold green] Already converged - nothing to do")
        return

    table = Table(title=title, show_header=True, header_style="bold")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Statement")
    for i, statement in enumerate(statements, 1):
        table.add_row(str(i), statement)
    console.print(table)


def _print_error(error: ReconcileError) -> None:
    if isinstance(error, PartialApplyError):
        console.print(
            f"[bold red]x[/bold red] Partially applied: "
            f"[bold]{error.applied} of {error.total}[/bold] statements applied"
        )
        console.print(f"  Failed statement: [cyan]{error.statement}[/cyan]")
        console.print(f"  {error}")
        return
    console.print(f"[bold red]x[/bold red] {error}")


async def _plan(db: Database, args: argparse.Namespace) -> list[str]:
    return await db.plan_sync_from_file(Path(args.spec), args.type)


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_plan(args: argparse.Namespace) -> int:
    """Async implementation for plan command.

    Returns:
        0 on success, 1 on failure.
    """
    resolved = _resolve_profile(args)
    if resolved is None:
        return 1
    name, profile, config = resolved

    console.print(
        f"Planning [bold]{args.spec}[/bold] for profile "
        f"[bold cyan]{name}[/bold cyan] ({profile.driver})"
    )
    try:
        async with Database.from_profile(profile, config.fixtures) as db:
            statements = await _plan(db, args)
    except ReconcileError as e:
        _print_error(e)
        return 1

    _print_plan("Planned Statements", statements)
    return 0


async def _async_apply(args: argparse.Namespace) -> int:
    """Async implementation for apply command.

    Shows the plan; applies it only with ``--confirm``.

    Returns:
        0 on success, 1 on failure.
    """
    resolved = _resolve_profile(args)
    if resolved is None:
        return 1
    name, profile, config = resolved

    try:
        async with Database.from_profile(profile, config.fixtures) as db:
            statements = await _plan(db, args)
            _print_plan("Planned Statements", statements)
            if not statements:
                return 0

            if not args.confirm:
                console.print()
                console.print(
                    "[dim]To apply this plan, add[/dim] [cyan]--confirm[/cyan] [dim]flag.[/dim]"
                )
                return 0

            result = await db.apply_sync(statements)
    except ReconcileError as e:
        _print_error(e)
        return 1

    console.print(
        f"[bold green]v[/bold green] Applied {result.applied} of {result.total} "
        f"statements to [bold cyan]{name}[/bold cyan]"
    )
    return 0


async def _async_seed(args: argparse.Namespace) -> int:
    """Async implementation for seed command.

    Returns:
        0 on success, 1 on failure.
    """
    resolved = _resolve_profile(args)
    if resolved is None:
        return 1
    name, profile, config = resolved

    try:
        spec = load_table_spec(Path(args.spec))
        async with Database.from_profile(profile, config.fixtures) as db:
            result = await db.reconcile_seed_data(spec, preview=not args.confirm)
    except ReconcileError as e:
        _print_error(e)
        return 1

    _print_plan(f"Seed Statements for {spec.name}", result.statements)
    if result.deploy is not None:
        if result.deploy.total:
            console.print(
                f"[bold green]v[/bold green] Applied {result.deploy.applied} of "
                f"{result.deploy.total} seed statements to [bold cyan]{name}[/bold cyan]"
            )
    elif result.statements:
        console.print()
        console.print(
            "[dim]To apply these rows, add[/dim] [cyan]--confirm[/cyan] [dim]flag.[/dim]"
        )
    return 0


# ============================================================================
# Sync command wrappers (drivers, profiles, fixtures never touch a database)
# ============================================================================


def cmd_drivers(args: argparse.Namespace) -> int:
    """List supported drivers and their capabilities.

    Returns:
        0 always (informational command).
    """
    table = Table(title="Database Drivers", show_header=True, header_style="bold")
    table.add_column("Driver")
    table.add_column("Transactional DDL")
    table.add_column("Seed Data")
    table.add_column("Types")

    def mark(flag: bool) -> str:
        return "[green]yes[/green]" if flag else "[dim]no[/dim]"

    for name, driver in DRIVERS.items():
        table.add_row(
            name,
            mark(driver.transactional_ddl),
            mark(driver.supports_seed_data),
            mark(driver.supports_types),
        )
    console.print(table)
    return 0


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from db.toml.

    Reads only local TOML config -- no database calls.

    Returns:
        0 on success, 1 if db.toml is missing or invalid.
    """
    try:
        config = load_db_config(_config_path(args))
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    current = getattr(args, "profile", None) or get_active_profile_name(
        env_prefix=getattr(args, "env_prefix", "")
    )

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Driver")
    table.add_column("Description")

    for name, profile in config.profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        name_style = "bold cyan" if name == current else ""
        table.add_row(
            marker,
            f"[{name_style}]{name}[/{name_style}]" if name_style else name,
            profile.driver,
            profile.description or "",
        )

    console.print(table)
    if current in config.profiles:
        console.print("\n[bold green]*[/bold green] = current profile")
    return 0


def cmd_fixtures(args: argparse.Namespace) -> int:
    """Write fixtures.sql for a directory of table specs.

    Directories default to the ``[fixtures]`` table of db.toml when it
    exists.

    Returns:
        0 on success, 1 on failure.
    """
    input_dir = Path(args.input_dir) if args.input_dir else None
    output_dir = Path(args.output_dir) if args.output_dir else None

    if input_dir is None or output_dir is None:
        try:
            settings = load_db_config(_config_path(args)).fixtures
        except (FileNotFoundError, ValueError):
            settings = None
        if settings is not None:
            input_dir = input_dir or settings.input_dir
            output_dir = output_dir or settings.output_dir

    if input_dir is None or output_dir is None:
        console.print("[red]Error: --input-dir and --output-dir are required[/red]")
        return 1

    try:
        path = generate_fixtures(input_dir, output_dir, args.driver, args.include_seed_data)
    except ReconcileError as e:
        _print_error(e)
        return 1

    console.print(f"[bold green]v[/bold green] Wrote [cyan]{path}[/cyan]")
    return 0


def cmd_plan(args: argparse.Namespace) -> int:
    """Show the statements a spec would run.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_plan(args))


def cmd_apply(args: argparse.Namespace) -> int:
    """Plan and apply a spec.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_apply(args))


def cmd_seed(args: argparse.Namespace) -> int:
    """Plan and apply the seed rows of a spec.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_seed(args))


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="db-reconciler",
        description="Declarative database schema reconciliation",
    )

    # Global options
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )
    parser.add_argument(
        "--profile",
        default=None,
        help="Profile name from db.toml (overrides DB_PROFILE)",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to db.toml (default: ./db.toml)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # drivers command
    p_drivers = subparsers.add_parser("drivers", help="List supported database drivers")
    p_drivers.set_defaults(func=cmd_drivers)

    # profiles command
    p_profiles = subparsers.add_parser("profiles", help="List available profiles")
    p_profiles.set_defaults(func=cmd_profiles)

    # plan command
    p_plan = subparsers.add_parser("plan", help="Show the statements a spec would run")
    p_plan.add_argument("--spec", required=True, help="Path to a table or type spec")
    p_plan.add_argument(
        "--type",
        choices=["table", "type"],
        default="table",
        help="Kind of spec (default: table)",
    )
    p_plan.set_defaults(func=cmd_plan)

    # apply command
    p_apply = subparsers.add_parser("apply", help="Plan and apply a spec")
    p_apply.add_argument("--spec", required=True, help="Path to a table or type spec")
    p_apply.add_argument(
        "--type",
        choices=["table", "type"],
        default="table",
        help="Kind of spec (default: table)",
    )
    p_apply.add_argument("--confirm", action="store_true", help="Apply the plan")
    p_apply.set_defaults(func=cmd_apply)

    # seed command
    p_seed = subparsers.add_parser("seed", help="Plan and apply the seed rows of a spec")
    p_seed.add_argument("--spec", required=True, help="Path to a table spec with seedData")
    p_seed.add_argument("--confirm", action="store_true", help="Apply the seed statements")
    p_seed.set_defaults(func=cmd_seed)

    # fixtures command
    p_fixtures = subparsers.add_parser(
        "fixtures", help="Write fixtures.sql for a directory of specs"
    )
    p_fixtures.add_argument("--input-dir", default=None, help="Directory of table specs")
    p_fixtures.add_argument("--output-dir", default=None, help="Directory for fixtures.sql")
    p_fixtures.add_argument(
        "--driver",
        required=True,
        choices=list(DRIVERS),
        help="Driver to render statements for",
    )
    p_fixtures.add_argument(
        "--include-seed-data",
        action="store_true",
        help="Append insert-or-ignore statements for seed rows",
    )
    p_fixtures.set_defaults(func=cmd_fixtures)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
