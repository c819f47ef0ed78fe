"""Queue commands -- inspect, replay, and edit the background-sync queues.

Typical workflow::

    offlinekit queue list                        # depth of every queue
    offlinekit queue list match-join-queue       # items of one queue
    offlinekit queue replay                      # "retry now" for all queues
    offlinekit queue remove match-join-queue 3   # give up on one item
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

import typer

from offlinekit.commands import is_forced, run_engine
from offlinekit.output import info, print_table, success, warning

queue_app = typer.Typer(no_args_is_help=True)


@queue_app.command("list")
def queue_list(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Queue to list items of."),
) -> None:
    """List queue depths, or the items of one queue in replay order."""

    async def _list(engine):
        if name is None:
            return engine.queue.pending_counts(), None
        return None, engine.queue.items(name)

    counts, items = run_engine(ctx, _list)
    if counts is not None:
        print_table(
            ["queue", "pending"], [[queue, str(count)] for queue, count in counts.items()]
        )
        return

    rows = [
        [
            str(item.id),
            item.method,
            item.url,
            datetime.fromtimestamp(item.enqueued_at).isoformat(timespec="seconds"),
        ]
        for item in items
    ]
    print_table(["id", "method", "url", "enqueued_at"], rows, title=name)


@queue_app.command("add")
def queue_add(
    ctx: typer.Context,
    name: str = typer.Argument(help="Queue name, e.g. 'match-join-queue'."),
    method: str = typer.Argument(help="HTTP method, e.g. POST."),
    url: str = typer.Argument(help="Request URL, absolute or relative to --base-url."),
    body: Optional[str] = typer.Option(None, "--body", "-d", help="Request body."),
    content_type: str = typer.Option(
        "application/json", "--content-type", help="Content-Type header for --body."
    ),
) -> None:
    """Queue a mutating request for later replay.

    Example::

        offlinekit queue add match-join-queue POST /api/matches/7/join -d '{"team": 2}'
    """
    from offlinekit.models import QueueItem

    item = QueueItem(
        method=method.upper(),
        url=url,
        headers={"content-type": content_type} if body is not None else {},
        body=body.encode("utf-8") if body is not None else None,
    )

    async def _add(engine):
        return engine.queue.enqueue(name, item)

    stored = run_engine(ctx, _add)
    success(f"Queued {stored.method} {stored.url} in {name} as #{stored.id}.")


@queue_app.command("replay")
def queue_replay(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(None, help="Queue to replay. Omit for all."),
) -> None:
    """Replay queued requests now. Items that still fail stay queued."""

    async def _replay(engine):
        return await engine.retry_now(name)

    reports = run_engine(ctx, _replay)
    rows = [
        [report.queue_name, str(len(report.succeeded)), str(report.remaining)]
        for report in reports
    ]
    print_table(["queue", "sent", "remaining"], rows)
    if any(report.remaining for report in reports):
        warning("Some requests are still queued; they will be retried on the next trigger.")


@queue_app.command("remove")
def queue_remove(
    ctx: typer.Context,
    name: str = typer.Argument(help="Queue name."),
    item_id: int = typer.Argument(help="Item id as shown by 'queue list'."),
) -> None:
    """Drop one queued request without sending it."""

    async def _remove(engine):
        engine.queue.remove(name, item_id)

    run_engine(ctx, _remove)
    success(f"Removed #{item_id} from {name}.")


@queue_app.command("clear")
def queue_clear(
    ctx: typer.Context,
    name: str = typer.Argument(help="Queue name."),
) -> None:
    """Drop every queued request of one queue."""
    if not is_forced(ctx) and not typer.confirm(f"Drop every request queued in '{name}'?"):
        info("Cancelled.")
        raise typer.Exit()

    async def _clear(engine):
        return engine.queue.clear(name)

    removed = run_engine(ctx, _clear)
    success(f"Removed {removed} request(s) from {name}.")
