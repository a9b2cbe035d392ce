"""
Command-line interface for airwave.

This module implements the CLI using Click, providing commands to run
the stream and to inspect or steer it. rich-click is used for the help
output, rich for the tables.

Commands:
    airwave run                                 Start the scheduler and block
    airwave status                              On-air track, queue status, health
    airwave queue [--limit N]                   Upcoming tracks
    airwave history [--limit N]                 Recent plays
    airwave advance                             Advance now
    airwave skip --user <id> [--reason <text>]  Privileged skip
    airwave clear-queue --user <id> [--keep N]  Privileged queue clear
    airwave enqueue --catalog-id ... --video-id Add a known track
    airwave discover [--count N] [--force]      Run one discovery batch
    airwave keys                                Today's key pool usage
    airwave cache-stats                         Match cache figures
    airwave maintenance                         Daily cleanup, now
    airwave rollover                            Open the current quota day

Options:
    --config <path>                             Use another radio.yaml
    --verbose                                   Debug output on the console

Configuration:
    The CLI reads radio.yaml from the current directory (or --config)
    and loads a .env file, if present, before resolving the credential
    environment variables it names.

Exit codes:
    0 success, 1 configuration error, 2 database error,
    3 not authorized, 4 other engine error, 130 interrupted.
"""

import logging
import sys
import time
from pathlib import Path
from typing import Callable

import rich_click as click
from dotenv import load_dotenv
from rich.console import Console
from rich.table import Table

# Configure rich-click for better help formatting
click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.GROUP_ARGUMENTS_OPTIONS = True
click.rich_click.STYLE_ERRORS_SUGGESTION = "magenta italic"
click.rich_click.ERRORS_SUGGESTION = ""
click.rich_click.MAX_WIDTH = 100
click.rich_click.COMMAND_GROUPS = {
    "cli": [
        {
            "name": "Stream",
            "commands": ["run", "advance", "skip", "enqueue", "clear-queue", "discover"],
        },
        {
            "name": "Inspect",
            "commands": ["status", "queue", "history", "keys", "cache-stats"],
        },
        {
            "name": "Maintenance",
            "commands": ["maintenance", "rollover"],
        },
    ],
}

from airwave import __version__
from airwave.core import (
    AuthorizationError,
    Config,
    ConfigError,
    DatabaseError,
    RadioError,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from airwave.engine import Radio, RadioScheduler, Track

logger = get_logger(__name__)

console = Console()


@click.group()
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    metavar="<radio.yaml>",
    help="Configuration file (default: ./radio.yaml)"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Show debug output on the console"
)
@click.version_option(__version__, prog_name="airwave")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None, verbose: bool) -> None:
    """
    airwave: one globally synchronized radio stream.

    \b
    BASIC USAGE:
        airwave run                          # Start the stream
        airwave status                       # What is on air
        airwave skip --user admin            # Skip (controllers only)
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _run_with_radio(ctx: click.Context, action: Callable[[Radio, Config], None]) -> None:
    """
    Execute one command against a fully wired Radio.

    Behavior:
        1. Load .env and the configuration
        2. Set up logging under the storage directory
        3. Build the Radio and run the action
        4. Map engine errors to exit codes

    Raises:
        SystemExit: On errors (with the documented exit code).
    """
    radio: Radio | None = None

    try:
        load_dotenv()
        config = load_config(ctx.obj["config_path"])

        config.storage.directory.mkdir(parents=True, exist_ok=True)
        setup_logging(
            config.storage.directory,
            console_level=logging.DEBUG if ctx.obj["verbose"] else logging.INFO
        )

        radio = Radio.from_config(config)
        action(radio, config)

    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        sys.exit(1)

    except DatabaseError as e:
        click.echo(f"Database error: {e.message}", err=True)
        logger.error(f"Database error: {e.message}", exc_info=True)
        sys.exit(2)

    except AuthorizationError as e:
        click.echo(f"Not authorized: {e.message}", err=True)
        sys.exit(3)

    except RadioError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.error(f"Error: {e.message}", exc_info=True)
        sys.exit(4)

    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        logger.info("Interrupted by user")
        sys.exit(130)

    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        logger.exception("Unexpected error")
        sys.exit(1)

    finally:
        if radio is not None:
            radio.close()
        shutdown_logging()


def _format_duration(seconds: float) -> str:
    seconds = max(int(seconds), 0)
    return f"{seconds // 60}:{seconds % 60:02d}"


# =============================================================================
# Stream
# =============================================================================

@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Start the scheduler and keep the stream on air until interrupted."""

    def action(radio: Radio, config: Config) -> None:
        scheduler = RadioScheduler(radio, config.scheduler)
        scheduler.start()
        try:
            while True:
                time.sleep(1)
        finally:
            scheduler.shutdown()

    _run_with_radio(ctx, action)


@cli.command()
@click.pass_context
def advance(ctx: click.Context) -> None:
    """Put the next track on air now."""

    def action(radio: Radio, config: Config) -> None:
        result = radio.advance()
        if result.advanced:
            click.echo(f"Now playing {result.catalog_id} (from {result.source.value})")
        else:
            click.echo(f"Could not advance: {result.reason}", err=True)
            sys.exit(4)

    _run_with_radio(ctx, action)


@cli.command()
@click.option("--user", "user_id", required=True, metavar="<user-id>", help="Controller user id")
@click.option("--reason", default=None, help="Why the track is skipped")
@click.pass_context
def skip(ctx: click.Context, user_id: str, reason: str | None) -> None:
    """Skip the on-air track (controllers only)."""

    def action(radio: Radio, config: Config) -> None:
        result = radio.skip(user_id, reason)
        if result.success:
            click.echo(f"Skipped, now playing {result.advance.catalog_id}")
        else:
            click.echo(f"Nothing skipped: {result.reason}", err=True)

    _run_with_radio(ctx, action)


@cli.command("clear-queue")
@click.option("--user", "user_id", required=True, metavar="<user-id>", help="Controller user id")
@click.option("--keep", "keep_count", type=click.IntRange(min=0), default=0, help="Entries kept at the head")
@click.pass_context
def clear_queue(ctx: click.Context, user_id: str, keep_count: int) -> None:
    """Remove queued tracks (controllers only)."""

    def action(radio: Radio, config: Config) -> None:
        removed = radio.clear_queue(user_id, keep_count)
        click.echo(f"Removed {removed} queued track(s)")

    _run_with_radio(ctx, action)


@cli.command()
@click.option("--catalog-id", required=True, help="Catalog (Discogs) id")
@click.option("--artist", required=True)
@click.option("--title", required=True)
@click.option("--video-id", required=True, help="YouTube video id")
@click.option("--duration", "duration_seconds", type=click.IntRange(min=0), default=0,
              help="Duration in seconds (0 = default duration)")
@click.option("--year", type=int, default=None)
@click.option("--label", default=None)
@click.option("--force", is_flag=True, help="Ignore the maximum queue size")
@click.pass_context
def enqueue(
    ctx: click.Context,
    catalog_id: str,
    artist: str,
    title: str,
    video_id: str,
    duration_seconds: int,
    year: int | None,
    label: str | None,
    force: bool
) -> None:
    """Append a track whose video is already known."""

    def action(radio: Radio, config: Config) -> None:
        track = Track(
            catalog_id=catalog_id,
            title=title,
            artist=artist,
            video_id=video_id,
            duration_seconds=duration_seconds or config.queue.default_duration_seconds,
            year=year,
            label=label,
        )
        result = radio.enqueue(track, force=force)
        if result.accepted:
            click.echo(f"Queued as #{result.queue_id}")
        else:
            click.echo(f"Rejected: {result.reason.value}", err=True)
            sys.exit(4)

    _run_with_radio(ctx, action)


@cli.command()
@click.option("--count", type=click.IntRange(min=1), default=None,
              help="Tracks wanted (default: what the health check asks for)")
@click.option("--force", is_flag=True, help="Allow the queue to grow past its maximum")
@click.pass_context
def discover(ctx: click.Context, count: int | None, force: bool) -> None:
    """Run one discovery batch and wait for it."""

    def action(radio: Radio, config: Config) -> None:
        wanted = count or radio.get_queue_health().requested or config.queue.target_size
        future = radio.request_discovery(wanted, force)
        if future is None:
            raise RadioError("Discovery is not configured (YouTube keys and Discogs token needed)")

        report = future.result()
        table = Table(title="Discovery")
        table.add_column("Added", justify="right")
        table.add_column("Skipped", justify="right")
        table.add_column("Errors", justify="right")
        table.add_column("Processed", justify="right")
        table.add_column("Ended")
        table.add_row(
            str(report.added), str(report.skipped), str(report.errors),
            str(report.total_processed), report.reason,
        )
        console.print(table)

    _run_with_radio(ctx, action)


# =============================================================================
# Inspect
# =============================================================================

@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show the on-air track, the queue status and its health."""

    def action(radio: Radio, config: Config) -> None:
        current = radio.get_current_status()
        if current is None:
            console.print("[yellow]Nothing on air (Loading...)[/yellow]")
        else:
            track = current.current.track
            position = current.position
            console.print(f"[bold]{track.display_name}[/bold] ({current.current.source.value})")
            console.print(
                f"  {_format_duration(position.elapsed)} / {_format_duration(position.duration)}"
                f"  {position.progress:.0%}" + ("  [red]expired[/red]" if position.has_expired else "")
            )

        queue_status = radio.get_queue_status()
        health = radio.get_queue_health()

        table = Table(title="Queue")
        table.add_column("Length", justify="right")
        table.add_column("Health")
        table.add_column("Playtime (min)", justify="right")
        table.add_column("History", justify="right")
        table.add_column("Discovery wanted", justify="right")
        table.add_row(
            str(queue_status.length),
            health.state.value + (" (urgent)" if health.urgent else ""),
            str(health.estimated_playtime_minutes),
            str(queue_status.history_count),
            str(health.requested),
        )
        console.print(table)

        counts = Table(title="Database")
        counts.add_column("Table")
        counts.add_column("Rows", justify="right")
        for name, rows in radio.database.get_table_counts().items():
            counts.add_row(name, str(rows))
        console.print(counts)

    _run_with_radio(ctx, action)


@cli.command()
@click.option("--limit", type=click.IntRange(min=1), default=10, help="Entries shown")
@click.pass_context
def queue(ctx: click.Context, limit: int) -> None:
    """List upcoming tracks in play order."""

    def action(radio: Radio, config: Config) -> None:
        table = Table(title="Up next")
        table.add_column("#", justify="right")
        table.add_column("Track")
        table.add_column("Length", justify="right")
        table.add_column("Intro")
        for index, entry in enumerate(radio.get_queue(limit), 1):
            table.add_row(
                str(index),
                entry.track.display_name,
                _format_duration(entry.track.duration_seconds),
                "yes" if entry.intro_ref else "",
            )
        console.print(table)

    _run_with_radio(ctx, action)


@cli.command()
@click.option("--limit", type=click.IntRange(min=1), default=20, help="Entries shown")
@click.pass_context
def history(ctx: click.Context, limit: int) -> None:
    """List recent plays, newest first."""

    def action(radio: Radio, config: Config) -> None:
        table = Table(title="Recently played")
        table.add_column("Played at")
        table.add_column("Track")
        table.add_column("Replays", justify="right")
        table.add_column("Likes", justify="right")
        for entry in radio.get_history(limit):
            table.add_row(
                entry.played_at.strftime("%Y-%m-%d %H:%M"),
                entry.track.display_name,
                str(entry.replay_count),
                str(len(entry.liked_by)),
            )
        console.print(table)

    _run_with_radio(ctx, action)


@cli.command()
@click.pass_context
def keys(ctx: click.Context) -> None:
    """Show today's YouTube key usage."""

    def action(radio: Radio, config: Config) -> None:
        summary = radio.key_usage()
        if summary is None:
            click.echo("No YouTube keys configured")
            return

        table = Table(title=f"Quota day {summary['quota_day']} ({summary['daily_quota']} units per key)")
        table.add_column("Key")
        table.add_column("Used", justify="right")
        table.add_column("Remaining", justify="right")
        table.add_column("OK", justify="right")
        table.add_column("Failed", justify="right")
        table.add_column("State")
        for key in summary["keys"]:
            table.add_row(
                key["key_id"],
                str(key["quota_used"]),
                str(key["remaining"]),
                str(key["success_count"]),
                str(key["failure_count"]),
                "[red]exhausted[/red]" if key["exhausted"] else "active",
            )
        console.print(table)
        console.print(
            f"Total: {summary['total_used']} used, {summary['total_remaining']} remaining "
            f"({summary['utilization_percent']}%), {summary['available_keys']} key(s) available"
        )

    _run_with_radio(ctx, action)


@cli.command("cache-stats")
@click.pass_context
def cache_stats(ctx: click.Context) -> None:
    """Show match cache figures."""

    def action(radio: Radio, config: Config) -> None:
        stats = radio.cache_stats()
        console.print(
            f"{stats['total_entries']} entries, {stats['total_uses']} uses "
            f"(average {stats['average_uses']})"
        )
        if stats["most_used"]:
            table = Table(title="Most used")
            table.add_column("Artist")
            table.add_column("Title")
            table.add_column("Uses", justify="right")
            for artist, title, uses in stats["most_used"]:
                table.add_row(artist, title, str(uses))
            console.print(table)

    _run_with_radio(ctx, action)


# =============================================================================
# Maintenance
# =============================================================================

@cli.command()
@click.pass_context
def maintenance(ctx: click.Context) -> None:
    """Run the daily cleanup now."""

    def action(radio: Radio, config: Config) -> None:
        deleted = radio.maintenance()
        for table_name, count in deleted.items():
            click.echo(f"{table_name}: {count} deleted")

    _run_with_radio(ctx, action)


@cli.command()
@click.pass_context
def rollover(ctx: click.Context) -> None:
    """Create today's quota records for every key."""

    def action(radio: Radio, config: Config) -> None:
        created = radio.rollover()
        click.echo(f"{created} quota record(s) created")

    _run_with_radio(ctx, action)


def main() -> None:
    """
    Entry point for the CLI.

    This function is called when running `airwave` from the command line.
    It invokes the Click CLI group.
    """
    cli()


if __name__ == "__main__":
    main()
