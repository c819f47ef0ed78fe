"""Top-level ``status`` and ``fetch`` commands."""

from __future__ import annotations

import typer

from offlinekit.commands import run_engine
from offlinekit.output import format_response, info, print_table


def status_command(ctx: typer.Context) -> None:
    """Show the active generation, partitions, and queue depths.

    Example::

        offlinekit status
        offlinekit --json status
    """
    from offlinekit.output import OutputFormat, get_output

    async def _status(engine):
        return engine.status()

    status = run_engine(ctx, _status)
    if get_output().format == OutputFormat.JSON:
        format_response(status)
        return

    info(
        f"Generation v{status['generation']} ({status['state']}), "
        f"serving v{status['serving']}"
    )
    rows = [["partition", name, str(count)] for name, count in status["partitions"].items()]
    rows += [["queue", name, str(count)] for name, count in status["queues"].items()]
    print_table(["kind", "name", "entries"], rows, title="offlinekit")


def fetch_command(
    ctx: typer.Context,
    url: str = typer.Argument(help="URL to fetch, absolute or relative to --base-url."),
    navigate: bool = typer.Option(
        False, "--navigate", help="Treat the request as a page navigation."
    ),
) -> None:
    """Route a GET request through the engine and print the body.

    The response source (network, cache, or offline) is reported on stderr.

    Example::

        offlinekit --base-url https://example.com fetch /api/matches
        offlinekit fetch https://example.com/ --navigate
    """
    from offlinekit.models import FetchRequest

    request = FetchRequest(
        url=url,
        mode="navigate" if navigate else "cors",
        headers={"accept": "text/html"} if navigate else {},
    )

    async def _fetch(engine):
        response = await engine.handle(request)
        await engine.tasks.drain()
        return response

    response = run_engine(ctx, _fetch)
    info(f"{response.status_code} from {response.source.value}")
    format_response(response.text, response.headers.get("content-type", "text/plain"))
