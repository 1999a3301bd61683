"""Command-line entry point for tubebreak."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from .actions import DispatchError
from .app_context import AppContext, build_service, build_tick_context, determine_paths, load_context
from .config import ConfigError, bootstrap
from .logging import configure_logging, get_logger
from .playlists import add_playlist, refresh_playlists, remove_playlist
from .schedule import classify, upcoming
from .services import ResolveError
from .state import StateConflictError
from .supervisor import Supervisor, resolve_timezone

app = typer.Typer(help="Scheduled break videos from your YouTube playlists.")
console = Console()

CONFIG_DIR_OPTION = typer.Option(
    None,
    "--config-dir",
    dir_okay=True,
    file_okay=False,
    resolve_path=True,
    help="Base directory for config files (defaults to ~/.tubebreak).",
)


def _determine_default_log_level(config_dir: Optional[Path]) -> str:
    config_path = determine_paths(config_dir).global_config
    if not config_path.exists():
        return "INFO"

    try:
        import yaml

        with config_path.open("r", encoding="utf-8") as handle:
            payload = yaml.safe_load(handle) or {}
        log_level = (payload.get("runtime") or {}).get("log_level")
        if isinstance(log_level, str) and log_level.strip():
            return log_level.upper()
    except Exception:
        return "INFO"

    return "INFO"


def _bootstrap_logging(
    ctx: typer.Context,
    verbose: bool,
    json_logs: bool,
    log_file: Optional[Path],
) -> None:
    """Initialise logging once per CLI invocation."""

    if ctx.obj is None:
        ctx.obj = {}

    if ctx.obj.get("_logging_configured"):
        return

    level = "DEBUG" if verbose else _determine_default_log_level(None)
    configure_logging(level=level, json_output=json_logs, log_file=log_file)
    ctx.obj["logger"] = get_logger("tubebreak.cli")
    ctx.obj["log_level"] = level
    ctx.obj["json_logs"] = json_logs
    ctx.obj["log_file_path"] = log_file
    ctx.obj["force_log_level"] = verbose
    ctx.obj["_logging_configured"] = True


@app.callback(invoke_without_command=True)
def cli(  # noqa: D401 - Typer generates help text.
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    json_logs: bool = typer.Option(False, "--json-logs", help="Emit JSON-formatted logs."),
    log_file: Optional[Path] = typer.Option(
        None,
        "--log-file",
        dir_okay=False,
        file_okay=True,
        writable=True,
        resolve_path=True,
        help="Optional file to append structured logs to.",
    ),
) -> None:
    """tubebreak command group."""

    _bootstrap_logging(ctx, verbose, json_logs, log_file)

    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())


def _logger(ctx: typer.Context):
    return ctx.obj.get("logger", get_logger("tubebreak.cli"))


def _maybe_update_log_level(ctx: typer.Context, config_dir: Optional[Path]) -> None:
    if ctx.obj.get("force_log_level"):
        return

    desired = _determine_default_log_level(config_dir)
    if desired != ctx.obj.get("log_level"):
        configure_logging(
            level=desired,
            json_output=ctx.obj.get("json_logs", False),
            log_file=ctx.obj.get("log_file_path"),
        )
        ctx.obj["logger"] = get_logger("tubebreak.cli")
        ctx.obj["log_level"] = desired


def _load(ctx: typer.Context, config_dir: Optional[Path], command: str) -> AppContext:
    _maybe_update_log_level(ctx, config_dir)
    try:
        return load_context(determine_paths(config_dir))
    except ConfigError as exc:
        _logger(ctx).error(f"{command}.failed", error=str(exc))
        typer.echo(f"Error loading configuration: {exc}")
        raise typer.Exit(code=1) from exc


def _service(ctx: typer.Context, context: AppContext):
    limiter = ctx.obj.get("limiter")
    if limiter is None:
        limiter = ctx.obj["limiter"] = build_tick_context(context).limiter
    return build_service(context, limiter)


@app.command()
def init(
    ctx: typer.Context,
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
    force: bool = typer.Option(False, "--force", help="Overwrite existing config.yml"),
) -> None:
    """Create the configuration directory and starter files."""

    log = _logger(ctx)
    paths = determine_paths(config_dir)
    try:
        report = bootstrap(paths, overwrite=force)
    except (ConfigError, OSError) as exc:
        log.error("init.failed", error=str(exc))
        raise typer.Exit(code=1) from exc

    typer.echo(f"Configuration directory: {paths.base_dir}")
    if report.global_config_created:
        if report.global_config_overwritten:
            typer.echo(f"Global config overwritten at: {paths.global_config}")
        else:
            typer.echo(f"Global config created at: {paths.global_config}")
            typer.echo("Set youtube.api_key before adding playlists.")
    else:
        typer.echo(f"Global config already exists at: {paths.global_config}")
        typer.echo("Use --force to regenerate with default values.")

    log.info(
        "init.completed",
        base_dir=str(paths.base_dir),
        force=force,
        base_created=report.base_created,
        global_config_created=report.global_config_created,
        global_config_overwritten=report.global_config_overwritten,
        extension_state_created=report.extension_state_created,
    )


@app.command()
def serve(ctx: typer.Context, config_dir: Optional[Path] = CONFIG_DIR_OPTION) -> None:
    """Run the scheduling loop in the foreground."""

    context = _load(ctx, config_dir, "serve")
    supervisor = Supervisor(context=context, logger=_logger(ctx))
    supervisor.run()


@app.command()
def tick(
    ctx: typer.Context,
    at: Optional[str] = typer.Option(None, "--at", help="ISO timestamp to evaluate instead of now."),
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
) -> None:
    """Evaluate the schedule once and perform any due action."""

    context = _load(ctx, config_dir, "tick")
    supervisor = Supervisor(context=context, logger=_logger(ctx))

    moment: Optional[datetime] = None
    if at:
        try:
            moment = datetime.fromisoformat(at)
        except ValueError as exc:
            raise typer.BadParameter(f"Invalid ISO timestamp: {at}") from exc
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=supervisor.timezone)

    outcome = supervisor.tick(moment)
    message = f"phase={outcome.phase.value} status={outcome.status}"
    if outcome.url:
        message += f" url={outcome.url}"
    if outcome.error:
        message += f" error={outcome.error}"
    typer.echo(message)


@app.command()
def add(
    ctx: typer.Context,
    playlist: str = typer.Argument(..., help="YouTube playlist URL or id."),
    resolve: bool = typer.Option(True, "--resolve/--no-resolve", help="Fetch title and videos now."),
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
) -> None:
    """Add a playlist to the break video pool."""

    context = _load(ctx, config_dir, "add")
    service = _service(ctx, context) if resolve else None
    try:
        source = add_playlist(context.store, playlist, service, _logger(ctx))
    except ValueError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1) from exc
    except StateConflictError as exc:
        typer.echo(f"Could not save playlist: {exc}")
        raise typer.Exit(code=1) from exc

    label = source.display_name or source.id
    if source.items_resolved:
        typer.echo(f"Added {label} ({len(source.items)} videos)")
    else:
        typer.echo(f"Added {label} (videos will be fetched at the next break)")


@app.command()
def remove(
    ctx: typer.Context,
    playlist_id: str = typer.Argument(..., help="Playlist id to remove."),
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
) -> None:
    """Remove a playlist."""

    context = _load(ctx, config_dir, "remove")
    try:
        remove_playlist(context.store, playlist_id)
    except KeyError as exc:
        typer.echo(f"Playlist '{playlist_id}' is not configured.")
        raise typer.Exit(code=1) from exc
    _logger(ctx).info("remove.completed", playlist_id=playlist_id)
    typer.echo(f"Removed {playlist_id}")


@app.command("list")
def list_playlists(ctx: typer.Context, config_dir: Optional[Path] = CONFIG_DIR_OPTION) -> None:
    """List configured playlists."""

    context = _load(ctx, config_dir, "list")
    config = context.store.load()

    if not config.playlists:
        console.print("[yellow]No playlists configured yet.[/yellow]")
        console.print("Add one with 'tubebreak add <playlist-url>'.")
        return

    table = Table(title="Break Playlists")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Videos", justify="right")
    table.add_column("Resolved")
    for source in config.playlists:
        table.add_row(source.id, source.display_name or "-", str(len(source.items)), str(source.items_resolved))
    console.print(table)


def _set_enabled(ctx: typer.Context, config_dir: Optional[Path], enabled: bool) -> None:
    context = _load(ctx, config_dir, "enable" if enabled else "disable")
    context.store.update(lambda config: config.set_enabled(enabled))
    _logger(ctx).info("toggle.completed", enabled=enabled)
    typer.echo("Break videos enabled." if enabled else "Break videos disabled.")


@app.command()
def enable(ctx: typer.Context, config_dir: Optional[Path] = CONFIG_DIR_OPTION) -> None:
    """Turn scheduled break videos on."""

    _set_enabled(ctx, config_dir, True)


@app.command()
def disable(ctx: typer.Context, config_dir: Optional[Path] = CONFIG_DIR_OPTION) -> None:
    """Turn scheduled break videos off."""

    _set_enabled(ctx, config_dir, False)


@app.command("open")
def open_video(ctx: typer.Context, config_dir: Optional[Path] = CONFIG_DIR_OPTION) -> None:
    """Open a random video right now."""

    context = _load(ctx, config_dir, "open")
    supervisor = Supervisor(context=context, logger=_logger(ctx))
    try:
        url = supervisor.dispatcher.open_random()
    except DispatchError as exc:
        typer.echo(str(exc))
        raise typer.Exit(code=1) from exc

    if url is None:
        typer.echo("No videos available in the playlists.")
        raise typer.Exit(code=1)
    typer.echo(f"Opened {url}")


@app.command()
def refresh(
    ctx: typer.Context,
    playlist_id: Optional[str] = typer.Argument(None, help="Playlist to refresh (all when omitted)."),
    config_dir: Optional[Path] = CONFIG_DIR_OPTION,
) -> None:
    """Fetch playlist titles and videos again."""

    context = _load(ctx, config_dir, "refresh")
    try:
        results = refresh_playlists(context.store, _service(ctx, context), playlist_id, _logger(ctx))
    except KeyError as exc:
        typer.echo(f"Playlist '{playlist_id}' is not configured.")
        raise typer.Exit(code=1) from exc

    failed = False
    for target, errors in results.items():
        if errors:
            failed = True
            typer.echo(f"{target}: {'; '.join(errors)}")
        else:
            typer.echo(f"{target}: refreshed")
    if failed:
        raise typer.Exit(code=1)


@app.command()
def status(ctx: typer.Context, config_dir: Optional[Path] = CONFIG_DIR_OPTION) -> None:
    """Show whether breaks are enabled and when the next boundaries are."""

    context = _load(ctx, config_dir, "status")
    config = context.store.load()
    tz, _ = resolve_timezone(context.global_config.runtime.timezone)
    now = datetime.now(tz)
    schedule = context.global_config.schedule
    next_break, next_work = upcoming(now, schedule)

    typer.echo(f"Enabled: {config.enabled}")
    typer.echo(f"Current phase: {classify(now, schedule).value}")
    typer.echo(f"Next break: {next_break.strftime('%H:%M') if next_break else '-'}")
    typer.echo(f"Next focus: {next_work.strftime('%H:%M') if next_work else '-'}")
    typer.echo(f"Playlists: {len(config.playlists)} ({sum(len(p.items) for p in config.playlists)} videos cached)")
    if config.last_status:
        typer.echo(f"Last status: {config.last_status} at {config.last_status_at}")


@app.command()
def doctor(ctx: typer.Context, config_dir: Optional[Path] = CONFIG_DIR_OPTION) -> None:
    """Check the API credential and that configured playlists resolve."""

    log = _logger(ctx)
    context = _load(ctx, config_dir, "doctor")

    if not context.api_key:
        typer.echo("No YouTube API key configured (config.yml, TUBEBREAK_YOUTUBE_API_KEY or env.json).")
        raise typer.Exit(code=1)
    typer.echo("YouTube API key found.")

    config = context.store.load()
    if not config.playlists:
        typer.echo("No playlists configured; nothing to check.")
        return

    service = _service(ctx, context)
    failed = False
    for source in config.playlists:
        try:
            metadata = service.resolve_metadata(source.id)
        except ResolveError as exc:
            failed = True
            log.error("doctor.resolve_failed", playlist_id=source.id, error=str(exc))
            typer.echo(f"{source.id}: {exc}")
        else:
            typer.echo(f"{source.id}: OK ({metadata.display_name})")

    log.info("doctor.completed", playlists=len(config.playlists), failed=failed)
    if failed:
        raise typer.Exit(code=1)


def main() -> None:
    """Run the Typer application."""

    app()


if __name__ == "__main__":  # pragma: no cover - direct execution convenience
    main()
