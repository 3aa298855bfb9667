"""Tally CLI — operator commands for the scoring and moderation engine."""

import sys

import click
from rich.console import Console
from rich.table import Table

from tally import __version__

console = Console()


def _engine(ctx: click.Context):
    from tally.engine import Tally

    return Tally(ctx.obj["config"])


def _fail(exc: Exception) -> None:
    console.print(f"[red]Error:[/] {exc}")
    sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "-c", "config_path", default=None, help="YAML config file")
@click.option("--db", default=None, help="Database URL (overrides config)")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: str | None, db: str | None, verbose: bool):
    """Tally — votes, reports, moderation and reputation.

    Configuration is read from --config and TALLY_* environment variables.
    """
    from tally.config import load_config
    from tally.errors import TallyError
    from tally.log import configure_logging

    configure_logging("DEBUG" if verbose else "WARNING")
    try:
        config = load_config(config_path)
    except (OSError, TallyError) as e:
        _fail(e)
    if db:
        config.database_url = db
    ctx.obj = {"config": config}


# ── Database ─────────────────────────────────────────────────────────


@main.command(name="init-db")
@click.pass_context
def init_db(ctx: click.Context):
    """Create the database schema."""
    engine = _engine(ctx)
    engine.init_db()
    console.print(f"[green]Schema ready at[/] {engine.config.database_url}")


# ── Users ────────────────────────────────────────────────────────────


@main.group()
def user():
    """Manage users."""


@user.command(name="add")
@click.argument("handle")
@click.option("--moderator", is_flag=True, help="Grant moderator rights")
@click.option("--verified", is_flag=True, help="Mark as identity-verified")
@click.pass_context
def add_user(ctx: click.Context, handle: str, moderator: bool, verified: bool):
    """Register a user with HANDLE."""
    from tally.errors import TallyError

    try:
        created = _engine(ctx).register_user(handle, is_moderator=moderator, is_verified=verified)
    except TallyError as e:
        _fail(e)
    console.print(f"[green]Registered[/] @{created.handle} [dim]{created.id}[/]")


@user.command(name="verify")
@click.argument("user_id")
@click.option("--revoke", is_flag=True, help="Remove verification instead")
@click.pass_context
def verify_user(ctx: click.Context, user_id: str, revoke: bool):
    """Set the verification flag of USER_ID."""
    from tally.errors import TallyError

    try:
        updated = _engine(ctx).set_verified(user_id, not revoke)
    except TallyError as e:
        _fail(e)
    state = "verified" if updated.is_verified else "unverified"
    console.print(f"@{updated.handle} is now [cyan]{state}[/]")


# ── Moderation ───────────────────────────────────────────────────────


@main.command()
@click.option("--status", "statuses", multiple=True, help="Report status filter (repeatable)")
@click.option("--page", default=1, help="Page number")
@click.option("--page-size", default=20, help="Reports per page")
@click.option("--token", default=None, help="Page token from a previous listing")
@click.pass_context
def queue(ctx: click.Context, statuses: tuple, page: int, page_size: int, token: str | None):
    """Show the moderation queue, newest reports first."""
    from tally.errors import TallyError

    try:
        result = _engine(ctx).query_moderation_queue(
            page=page,
            page_size=page_size,
            status_filter=list(statuses) or None,
            page_token=token,
        )
    except TallyError as e:
        _fail(e)

    if not result.items:
        console.print("[yellow]No reports.[/]")
        return

    table = Table(title=f"Moderation queue (page {result.page})")
    table.add_column("Report", style="dim")
    table.add_column("Content", style="cyan")
    table.add_column("Reason")
    table.add_column("Priority")
    table.add_column("Status")
    table.add_column("Filed", style="dim")

    for report in result.items:
        table.add_row(
            report.id[:8],
            f"{report.content_type.value}:{report.content_id[:8]}",
            report.reason.value,
            report.priority.value,
            report.status.value,
            report.created_at.strftime("%Y-%m-%d %H:%M") if report.created_at else "",
        )

    console.print(table)
    if result.next_page_token:
        console.print(f"[dim]Next page:[/] --token {result.next_page_token}")


@main.command()
@click.pass_context
def stats(ctx: click.Context):
    """Summarize reports by status, reason and priority."""
    data = _engine(ctx).report_stats()

    table = Table(title="Reports")
    table.add_column("Group", style="dim")
    table.add_column("Value", style="cyan")
    table.add_column("Count", justify="right", style="green")
    for group in ("by_status", "by_priority", "by_reason"):
        for key, count in data[group].items():
            table.add_row(group[3:], key, str(count))
    console.print(table)

    for item in data["over_threshold"]:
        console.print(
            f"  [red]![/] {item['content_type']} {item['content_id']}: "
            f"{item['open_reports']} open reports"
        )


@main.command()
@click.argument("content_type")
@click.argument("content_id")
@click.pass_context
def audit(ctx: click.Context, content_type: str, content_id: str):
    """Print the moderation history of a content unit."""
    from tally.errors import TallyError

    try:
        entries = _engine(ctx).audit_trail(content_id, content_type)
    except TallyError as e:
        _fail(e)

    if not entries:
        console.print("[yellow]No moderation history.[/]")
        return

    table = Table(title=f"Audit trail for {content_type} {content_id}")
    table.add_column("When", style="dim")
    table.add_column("Actor", style="cyan")
    table.add_column("From")
    table.add_column("To", style="green")
    table.add_column("Reason")
    for entry in entries:
        table.add_row(
            entry.created_at.isoformat(timespec="seconds") if entry.created_at else "",
            entry.actor,
            entry.from_status.value,
            entry.to_status.value,
            entry.reason,
        )
    console.print(table)


# ── Reputation ───────────────────────────────────────────────────────


@main.command()
@click.argument("user_id")
@click.pass_context
def reputation(ctx: click.Context, user_id: str):
    """Show the stored reputation of USER_ID."""
    from tally.errors import TallyError

    try:
        snap = _engine(ctx).get_reputation(user_id)
    except TallyError as e:
        _fail(e)
    console.print(f"{snap.user_id}: [green]{snap.score}[/] ([cyan]{snap.tier}[/])")


@main.command()
@click.argument("user_id", required=False)
@click.pass_context
def recompute(ctx: click.Context, user_id: str | None):
    """Recompute reputation for USER_ID, or for every user."""
    from tally.errors import TallyError

    try:
        snapshots = _engine(ctx).recompute_reputation(user_id)
    except TallyError as e:
        _fail(e)

    table = Table(title=f"Reputation ({len(snapshots)} recomputed)")
    table.add_column("User", style="dim")
    table.add_column("Score", justify="right", style="green")
    table.add_column("Tier", style="cyan")
    for snap in sorted(snapshots, key=lambda s: s.score, reverse=True):
        table.add_row(snap.user_id, str(snap.score), snap.tier)
    console.print(table)


if __name__ == "__main__":
    main()
