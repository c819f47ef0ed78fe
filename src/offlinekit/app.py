"""Typer application and CLI entry point for offlinekit.

The CLI is a thin operator console over :class:`~offlinekit.engine.Engine`:
it inspects and manipulates the durable cache, the sync queues, and the
generation lifecycle that an embedding application shares through the same
storage root.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. :class:`~offlinekit.exceptions.OfflinekitError` exits with
its ``exit_code``; any other exception writes a crash log under the data
directory.

See Also:
    :mod:`offlinekit.config`: Configuration resolution.
    :mod:`offlinekit.output`: Output formatting initialised in :func:`main_callback`.
"""

from __future__ import annotations

import signal
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

import typer

from offlinekit import __version__
from offlinekit.exit_codes import EXIT_GENERIC_FAILURE

app = typer.Typer(
    name="offlinekit",
    help="Offline-first request cache and background-sync engine.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

from offlinekit.commands.cache import cache_app  # noqa: E402
from offlinekit.commands.config import config_app  # noqa: E402
from offlinekit.commands.lifecycle import lifecycle_app  # noqa: E402
from offlinekit.commands.queue import queue_app  # noqa: E402
from offlinekit.commands.status import fetch_command, status_command  # noqa: E402

app.command("status")(status_command)
app.command("fetch")(fetch_command)
app.add_typer(cache_app, name="cache", help="Inspect and manage cache partitions.")
app.add_typer(queue_app, name="queue", help="Inspect and replay sync queues.")
app.add_typer(lifecycle_app, name="lifecycle", help="Install and activate generations.")
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"offlinekit {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug output."),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="Origin that relative URLs resolve against."
    ),
    cache_dir: Optional[str] = typer.Option(
        None, "--cache-dir", help="Storage root for partitions and queues."
    ),
    force: bool = typer.Option(False, "--force", "-f", help="Skip confirmations."),
) -> None:
    """Root callback executed before every sub-command.

    Installs the global :class:`~offlinekit.output.OutputManager`, routes
    engine logging to stderr, and stores shared options in ``ctx.obj``.
    """
    from offlinekit.output import OutputFormat, OutputManager, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    output.configure_logging()
    set_output(output)

    ctx.ensure_object(dict)
    ctx.obj["base_url"] = base_url
    ctx.obj["cache_dir"] = cache_dir
    ctx.obj["force"] = force
    ctx.obj["verbose"] = verbose


def _setup_signal_handlers() -> None:
    """Install a SIGINT handler so Ctrl-C exits cleanly."""

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)

    signal.signal(signal.SIGINT, _handler)


def _write_crash_log(exc: Exception) -> str:
    """Write the current traceback to the data directory and return its path."""
    from offlinekit.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc())
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``offlinekit`` console script.

    Raises:
        SystemExit: Always raised (either by Typer or explicitly).
    """
    _setup_signal_handlers()
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(130)
    except Exception as exc:
        from offlinekit.exceptions import OfflinekitError
        from offlinekit.output import error

        if isinstance(exc, OfflinekitError):
            error(str(exc))
            sys.exit(exc.exit_code)
        log_path = _write_crash_log(exc)
        error(f"Unexpected error. Debug log: {log_path}")
        sys.exit(EXIT_GENERIC_FAILURE)
