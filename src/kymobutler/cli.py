"""
Command-line interface for KymoButler.

Provides commands for analyzing single kymographs, sweeping directories,
talking to the legacy web service and managing configuration and logs.
"""

import json
import logging
import sys
import threading

from collections import deque
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path
from typing import Any, TypeVar

import click

from pydantic import ValidationError

from kymobutler.batch import BatchRunner, discover_files
from kymobutler.config import (
    get_config_path,
    get_value,
    load_config,
    load_settings,
    parse_value,
    set_value,
    unset_value,
)
from kymobutler.constants import (
    DEFAULT_DECISION_THRESHOLD,
    DEFAULT_IMPROVE_START,
    DEFAULT_IMPROVE_STOP,
    DEFAULT_MINIMUM_FRAMES,
    DEFAULT_MINIMUM_SIZE,
    DEFAULT_SPACE_SIZE,
    DEFAULT_THRESHOLD,
    DEFAULT_TIME_SIZE,
    TRACKS_CSV_SUFFIX,
    Device,
)
from kymobutler.engine.paths import sanitize
from kymobutler.engine.tracks import write_tracks_csv
from kymobutler.exceptions import KymoButlerError
from kymobutler.logging_config import get_log_path, setup_logging
from kymobutler.models.batch import export_summary_json
from kymobutler.models.outcome import AnalysisOutcome, Success, describe_outcome
from kymobutler.models.request import AnalysisRequest
from kymobutler.models.settings import Settings
from kymobutler.orchestrator import Orchestrator
from kymobutler.remote import RemoteClient
from kymobutler.utils.formatting import format_count, format_elapsed

logger = logging.getLogger(__name__)

T = TypeVar("T")

try:
    __version__ = get_version("kymobutler")
except PackageNotFoundError:
    __version__ = "dev"


def analysis_options(func: Callable[..., Any]) -> Callable[..., Any]:
    """Attach the analysis parameter options shared by several commands."""
    options = [
        click.option(
            "--threshold",
            type=click.FloatRange(0, 1),
            default=DEFAULT_THRESHOLD,
            show_default=True,
            help="Detection threshold",
        ),
        click.option(
            "--min-size",
            type=click.FloatRange(min=0),
            default=DEFAULT_MINIMUM_SIZE,
            show_default=True,
            help="Minimum track size in pixels",
        ),
        click.option(
            "--min-frames",
            type=click.FloatRange(min=0),
            default=DEFAULT_MINIMUM_FRAMES,
            show_default=True,
            help="Minimum number of frames per track",
        ),
        click.option(
            "--bidirectional", is_flag=True, help="Use the bidirectional model"
        ),
        click.option(
            "--decision-threshold",
            type=click.FloatRange(0, 1),
            default=DEFAULT_DECISION_THRESHOLD,
            show_default=True,
            help="Decision threshold for the bidirectional model",
        ),
        click.option(
            "--device",
            type=click.Choice([d.value for d in Device], case_sensitive=False),
            help="Compute device (default: from config)",
        ),
        click.option(
            "--time-size",
            type=float,
            default=DEFAULT_TIME_SIZE,
            show_default=True,
            help="Seconds per pixel row",
        ),
        click.option(
            "--space-size",
            type=float,
            default=DEFAULT_SPACE_SIZE,
            show_default=True,
            help="Distance per pixel column",
        ),
        click.option(
            "--improve",
            is_flag=True,
            help="Enhance the kymograph with a difference of Gaussians first",
        ),
        click.option(
            "--improve-start",
            type=click.IntRange(min=1),
            default=DEFAULT_IMPROVE_START,
            show_default=True,
        ),
        click.option(
            "--improve-stop",
            type=click.IntRange(min=1),
            default=DEFAULT_IMPROVE_STOP,
            show_default=True,
        ),
        click.option(
            "--timeout",
            type=click.FloatRange(min=0, min_open=True),
            help="Per-job timeout in seconds (default: from config)",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _request_options(params: dict[str, Any], settings: Settings) -> dict[str, Any]:
    """Map CLI parameters onto AnalysisRequest fields."""
    return {
        "threshold": params["threshold"],
        "minimum_size": params["min_size"],
        "minimum_frames": params["min_frames"],
        "use_bidirectional": params["bidirectional"],
        "decision_threshold": params["decision_threshold"],
        "device": (
            Device(params["device"].upper()) if params["device"] else settings.device
        ),
        "time_size": params["time_size"],
        "space_size": params["space_size"],
        "use_physical_units": settings.use_physical_units,
        "improve": params["improve"],
        "improve_start": params["improve_start"],
        "improve_stop": params["improve_stop"],
    }


def _settings_with_timeout(timeout: float | None) -> Settings:
    try:
        settings = load_settings()
    except ValidationError as e:
        raise click.ClickException(
            f"Invalid configuration in {get_config_path()}: {_validation_message(e)}"
        ) from e
    if timeout is not None:
        settings = settings.model_copy(update={"timeout_seconds": timeout})
    return settings


def _run_cancellable(func: Callable[[], T], cancel_event: threading.Event) -> T:
    """
    Run ``func`` on a worker thread so Ctrl-C can request cancellation.

    The first interrupt sets ``cancel_event`` and waits for the work to wind
    down; the result (usually a Cancelled outcome) is returned normally.
    """
    with ThreadPoolExecutor(max_workers=1) as executor:
        future = executor.submit(func)
        try:
            return future.result()
        except KeyboardInterrupt:
            click.echo("\n⏹  Cancelling...", err=True)
            cancel_event.set()
            return future.result()


def _elapsed_printer() -> Callable[..., None]:
    """Progress callback that rewrites a single status line on a terminal."""
    interactive = sys.stderr.isatty()
    last = {"shown": ""}

    def show(elapsed: float, *_: Any) -> None:
        text = format_elapsed(elapsed)
        if interactive and text != last["shown"]:
            last["shown"] = text
            click.echo(f"\r⏳ Waiting for result... {text}", nl=False, err=True)

    return show


def _validation_message(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(p) for p in item["loc"]) or "request"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)


def _display_outcome(outcome: AnalysisOutcome) -> None:
    if isinstance(outcome, Success):
        click.echo(f"✓ {describe_outcome(outcome)}")
        if outcome.anterograde or outcome.retrograde:
            click.echo(f"  Anterograde: {len(outcome.anterograde)}")
            click.echo(f"  Retrograde: {len(outcome.retrograde)}")
    else:
        click.echo(f"✗ {describe_outcome(outcome)}", err=True)


def version_callback(ctx: click.Context, param: click.Parameter, value: bool) -> None:
    """Show version."""
    if not value or ctx.resilient_parsing:
        return
    click.echo(f"kymobutler, version {__version__}")
    ctx.exit()


@click.group()
@click.option(
    "--version",
    is_flag=True,
    callback=version_callback,
    expose_value=False,
    is_eager=True,
    help="Show version",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def cli(verbose: bool) -> None:
    """KymoButler: automated kymograph analysis"""
    setup_logging(verbose=verbose, console_format="%(levelname)s: %(message)s")


@cli.command()
@click.argument("image", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--title", help="Title used for output names (default: file name)")
@analysis_options
def analyze(
    image: Path, title: str | None, timeout: float | None, **params: Any
) -> None:
    """Analyze a single kymograph with the local engine."""
    settings = _settings_with_timeout(timeout)

    try:
        request = AnalysisRequest(
            image_path=image, title=title, **_request_options(params, settings)
        )
        orchestrator = Orchestrator(settings)
    except ValidationError as e:
        raise click.BadParameter(_validation_message(e)) from e
    except KymoButlerError as e:
        raise click.ClickException(str(e)) from e

    click.echo(f"🔬 Analyzing {image.name}...")
    cancel_event = threading.Event()
    progress = _elapsed_printer()

    try:
        outcome = _run_cancellable(
            lambda: orchestrator.run_job(request, cancel_event, progress),
            cancel_event,
        )
    except KymoButlerError as e:
        raise click.ClickException(str(e)) from e

    if sys.stderr.isatty():
        click.echo(err=True)
    _display_outcome(outcome)

    if orchestrator.last_output_dir is not None:
        click.echo(f"  Output: {orchestrator.last_output_dir}")
    for label, path in (
        ("Tracks", orchestrator.last_tracks_csv_path),
        ("Table", orchestrator.last_pproc_table_path),
    ):
        if path is not None and path.exists():
            click.echo(f"  {label}: {path}")

    if not isinstance(outcome, Success):
        sys.exit(1)


@cli.command()
@click.argument(
    "root", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option(
    "--recursive/--no-recursive",
    default=True,
    show_default=True,
    help="Include subdirectories",
)
@click.option(
    "--report",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write a JSON summary to this file",
)
@analysis_options
def batch(
    root: Path,
    recursive: bool,
    report: Path | None,
    timeout: float | None,
    **params: Any,
) -> None:
    """Analyze every readable image under ROOT."""
    settings = _settings_with_timeout(timeout)

    try:
        runner = BatchRunner(settings, options=_request_options(params, settings))
    except ValidationError as e:
        raise click.BadParameter(_validation_message(e)) from e
    except KymoButlerError as e:
        raise click.ClickException(str(e)) from e

    total = len(discover_files(root, recursive))
    click.echo(f"📂 Found {format_count(total, 'file')} under {root}")
    cancel_event = threading.Event()

    with click.progressbar(length=total, label="Analyzing") as bar:

        def progress(index: int, total: int) -> None:
            bar.update(1)

        summary = _run_cancellable(
            lambda: runner.run_batch(
                root, recursive=recursive, progress=progress, cancel_event=cancel_event
            ),
            cancel_event,
        )

    if summary.cancelled:
        click.echo("\n⏹  Batch cancelled")
    else:
        click.echo("\n✓ Batch complete")
    click.echo(f"  Files: {summary.total}")
    click.echo(f"  Successful: {summary.successes}")
    click.echo(f"  Failed: {summary.failures}")
    click.echo(f"  Skipped: {summary.skipped}")

    for item in summary.failed_items:
        click.echo(f"  ✗ {item.path}: {item.message}", err=True)

    if report is not None:
        export_summary_json(summary, report)
        click.echo(f"  Report: {report}")

    if summary.failures:
        sys.exit(1)


@cli.group()
def remote() -> None:
    """Legacy web service commands."""
    pass


def _remote_client(url: str | None, timeout: float | None) -> RemoteClient:
    settings = _settings_with_timeout(timeout)
    target = url or settings.remote_url
    if not target:
        raise click.UsageError(
            "No service URL. Pass --url or run: kymobutler config set remote.url <url>"
        )
    try:
        return RemoteClient(
            target,
            timeout=settings.timeout_seconds,
            poll_interval=settings.poll_interval,
            progress=_elapsed_printer(),
            debug_dir=settings.output_dir if settings.debug else None,
        )
    except KymoButlerError as e:
        raise click.ClickException(str(e)) from e


@remote.command("analyze")
@click.argument("image", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--url", help="Service URL (default: from config)")
@click.option(
    "--output",
    type=click.Path(file_okay=False, path_type=Path),
    help="Directory for the tracks CSV",
)
@analysis_options
def remote_analyze(
    image: Path,
    url: str | None,
    output: Path | None,
    timeout: float | None,
    **params: Any,
) -> None:
    """Analyze a kymograph on the legacy web service."""
    client = _remote_client(url, timeout)
    settings = _settings_with_timeout(timeout)
    try:
        request = AnalysisRequest(
            image_path=image, **_request_options(params, settings)
        )
    except ValidationError as e:
        raise click.BadParameter(_validation_message(e)) from e

    click.echo(f"🌐 Sending {image.name} to {client.url}...")
    try:
        outcome = _run_cancellable(lambda: client.analyze(request), client.cancel_event)
    except KymoButlerError as e:
        raise click.ClickException(str(e)) from e

    if sys.stderr.isatty():
        click.echo(err=True)
    _display_outcome(outcome)

    if not isinstance(outcome, Success):
        sys.exit(1)

    if output is not None:
        output.mkdir(parents=True, exist_ok=True)
        csv_path = output / f"{sanitize(request.display_title)}{TRACKS_CSV_SUFFIX}"
        write_tracks_csv(
            outcome.tracks,
            csv_path,
            time_size=request.time_size,
            space_size=request.space_size,
        )
        click.echo(f"  Tracks: {csv_path}")


@remote.command("stats")
@click.option("--url", help="Service URL (default: from config)")
@click.option("--timeout", type=click.FloatRange(min=0, min_open=True))
def remote_stats(url: str | None, timeout: float | None) -> None:
    """Show usage statistics reported by the legacy web service."""
    client = _remote_client(url, timeout)
    result = _run_cancellable(client.statistics, client.cancel_event)

    if sys.stderr.isatty():
        click.echo(err=True)
    if not isinstance(result, dict):
        click.echo(f"✗ {describe_outcome(result)}", err=True)
        sys.exit(1)

    for key, value in result.items():
        shown = value if isinstance(value, str) else json.dumps(value)
        click.echo(f"{key}: {shown}")


@cli.group()
def config() -> None:
    """Configuration management commands."""
    pass


@config.command("path")
def config_path_cmd() -> None:
    """Show config file location."""
    click.echo(get_config_path())


@config.command("show")
def show_config_cmd() -> None:
    """Show all configuration settings."""
    config_path = get_config_path()
    if not config_path.exists():
        click.echo(f"No config file: {config_path}")
        return

    click.echo(f"Config file: {config_path}\n")
    config_data = load_config()
    if not config_data:
        click.echo("Configuration is empty.")
        return

    click.echo("Settings:")
    for table, values in config_data.items():
        if isinstance(values, dict):
            click.echo(f"  [{table}]")
            for key, value in values.items():
                click.echo(f"    {key} = {json.dumps(value, default=str)}")
        else:
            click.echo(f"  {table} = {json.dumps(values, default=str)}")


@config.command("set")
@click.argument("key")
@click.argument("value")
def set_config_cmd(key: str, value: str) -> None:
    """Set KEY (e.g. engine.timeout_seconds) to VALUE."""
    parsed = parse_value(value)
    previous = get_value(key)
    set_value(key, parsed)
    try:
        load_settings()
    except ValidationError as e:
        if previous is None:
            unset_value(key)
        else:
            set_value(key, previous)
        raise click.ClickException(
            f"Invalid value for {key}: {_validation_message(e)}"
        ) from e
    click.echo(f"✓ {key} = {json.dumps(parsed)}")
    click.echo(f"  Config: {get_config_path()}")


@config.command("unset")
@click.argument("key")
def unset_config_cmd(key: str) -> None:
    """Remove KEY from the config."""
    if unset_value(key):
        click.echo(f"✓ Removed {key}")
    else:
        click.echo(f"{key} was not configured.")


@cli.group()
def logs() -> None:
    """Log file management commands."""
    pass


def _log_files() -> list[Path]:
    """The active log file followed by its rotated backups, oldest last."""
    log_path = get_log_path()
    rotated = sorted(log_path.parent.glob(f"{log_path.name}.*"))
    return [p for p in (log_path, *rotated) if p.is_file()]


@logs.command("path")
def logs_path() -> None:
    """Print where the log is written."""
    log_path = get_log_path()
    click.echo(f"Log file: {log_path}")

    files = _log_files()
    if not files:
        click.echo("(nothing logged yet)")
        return

    total_mb = sum(p.stat().st_size for p in files) / (1024 * 1024)
    click.echo(f"{format_count(len(files), 'file')}, {total_mb:.2f} MB in total")


@logs.command("show")
@click.option("--lines", "-n", type=click.IntRange(min=0), default=50, help="Lines to print")
def logs_show(lines: int) -> None:
    """Print the tail of the current log."""
    log_path = get_log_path()
    try:
        with log_path.open(encoding="utf-8", errors="replace") as handle:
            tail = deque(handle, maxlen=lines)
    except FileNotFoundError:
        click.echo("✗ Nothing logged yet", err=True)
        sys.exit(1)
    except OSError as e:
        click.echo(f"✗ Cannot read {log_path}: {e}", err=True)
        sys.exit(1)

    for line in tail:
        click.echo(line.rstrip("\n"))


@logs.command("clear")
@click.confirmation_option(prompt="Delete the log file and its backups?")
def logs_clear() -> None:
    """Delete the log file and its rotated backups."""
    removed = 0
    for path in _log_files():
        try:
            path.unlink()
        except OSError as e:
            click.echo(f"✗ Could not delete {path}: {e}", err=True)
            continue
        removed += 1

    if removed:
        click.echo(f"✓ Removed {format_count(removed, 'log file')}")
    else:
        click.echo("No log files to remove")


def main() -> None:
    """Main CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
