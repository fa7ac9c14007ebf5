"""
Examhall CLI - timed sessions in the terminal.

Usage:
    examhall take --user u-1                 # Today's daily session
    examhall take --attempt att-7            # Proctored attempt
    examhall take --preview intro-quiz       # Anonymous preview
    examhall take --practice set-3 --tier 200
    examhall sync                            # Replay queued answers/submissions
    examhall status                          # Local records overview
    examhall reset proctored:att-7           # Forget one session locally
"""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm, Prompt
from rich.table import Table
from rich.text import Text

from examhall.config import Settings, get_settings
from examhall.core.errors import (
    RemoteUnreachableError,
    SessionNotFoundError,
    UnauthorizedSessionError,
)
from examhall.core.models import QuestionEntry, SessionKey
from examhall.engine.context import ProgressSummary
from examhall.engine.loader import LoadStatus, SessionLoader
from examhall.engine.offline_sync import OfflineSyncManager, SyncReport
from examhall.engine.runtime import ExamRuntime
from examhall.engine.submission import FinalizeOutcome, FinalizeStatus
from examhall.engine.variants import EntryParams
from examhall.integrations.producer_client import ProducerClient
from examhall.logging_setup import configure_logging
from examhall.storage.local import LocalRecords

# =============================================================================
# CLI Setup
# =============================================================================

app = typer.Typer(
    name="examhall",
    help="Examhall - timed assessment sessions with offline-first sync",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

console = Console()


def _progress_bar(percent: float, width: int = 20) -> str:
    filled = int(percent / 100 * width)
    return "#" * filled + "-" * (width - filled)


# =============================================================================
# Take
# =============================================================================


@app.command()
def take(
    attempt: Annotated[
        str | None, typer.Option("--attempt", "-a", help="Proctored attempt id")
    ] = None,
    preview: Annotated[
        str | None, typer.Option("--preview", help="Preview slug (no login)")
    ] = None,
    practice: Annotated[
        str | None, typer.Option("--practice", help="Practice set id")
    ] = None,
    daily: Annotated[
        str | None, typer.Option("--daily", "-d", help="Daily session id (default: today's)")
    ] = None,
    user: Annotated[
        str | None, typer.Option("--user", "-u", help="Learner id")
    ] = None,
    plan: Annotated[
        str | None, typer.Option("--plan", help="Subscription plan id")
    ] = None,
    tier: Annotated[
        str | None, typer.Option("--tier", help="Plan tier (100, 200, 250)")
    ] = None,
) -> None:
    """
    Take a session.

    The variant is picked from the options in this order: --attempt,
    --preview, --practice, then the daily session.
    """
    params = EntryParams(
        attempt_id=attempt,
        preview_slug=preview,
        practice_set_id=practice,
        daily_session_id=daily,
        user_id=user,
        plan_id=plan,
        plan_tier=tier,
    )
    asyncio.run(_run_take(get_settings(), params))


async def _run_take(settings: Settings, params: EntryParams) -> None:
    records = LocalRecords.open(settings)

    async with ProducerClient.from_settings(settings) as producer:
        loader = SessionLoader(producer, records, settings.default_tier_set)
        try:
            outcome = await loader.load(params)
        except SessionNotFoundError as e:
            console.print(f"[red]Session not found:[/] {e}")
            raise typer.Exit(1)
        except UnauthorizedSessionError as e:
            console.print(f"[red]Not allowed:[/] {e}")
            raise typer.Exit(1)
        except RemoteUnreachableError:
            console.print("[red]Unable to load the session. Check your connection and try again.[/]")
            raise typer.Exit(1)

        if outcome.status == LoadStatus.REDIRECT_DASHBOARD:
            console.print("[yellow]No session assigned for today.[/]")
            return
        if outcome.status == LoadStatus.REDIRECT_RESULT:
            _show_snapshot(records, outcome.session_key)
            return
        if outcome.status == LoadStatus.PENDING_RESULTS:
            console.print("[yellow]Your submission is waiting to be sent. Run 'examhall sync' when online.[/]")
            _show_snapshot(records, outcome.session_key)
            return

        ctx = outcome.context
        if not ctx.entries:
            console.print("[yellow]This session has no questions.[/]")
            return

        runtime = ExamRuntime(
            ctx,
            producer,
            records,
            settings,
            confirm=_confirm_submit,
            watch_connectivity=True,
        )
        runtime.start()
        try:
            await _question_loop(runtime)
        finally:
            runtime.close()

        if runtime.outcome is not None:
            _show_outcome(runtime.outcome)
        elif not ctx.is_completed:
            console.print("[dim]Progress saved. Run the same command to resume.[/]")


async def _confirm_submit(progress: ProgressSummary) -> bool:
    message = f"Submit with {progress.answered}/{progress.total} answered"
    if progress.skipped:
        message += f" ([yellow]{progress.skipped} unanswered[/])"
    return await asyncio.to_thread(Confirm.ask, f"{message}?", default=False)


def _render_entry(runtime: ExamRuntime, index: int) -> Panel:
    entry: QuestionEntry = runtime.ctx.entries[index]
    progress = runtime.progress()

    body = Text()
    body.append(f"{entry.stem}\n\n", style="bold")
    for number, option in enumerate(entry.options, start=1):
        marker = ">" if option.id == entry.selected_option_id else " "
        label = option.label or str(number)
        body.append(f" {marker} {label}) {option.content}\n")
    body.append(
        f"\n{_progress_bar(progress.percent)} {progress.answered}/{progress.total} answered",
        style="dim",
    )

    return Panel(
        body,
        title=f"[bold]Question {index + 1}/{progress.total}[/]",
        subtitle=runtime.countdown(),
        border_style="cyan",
    )


def _match_option(entry: QuestionEntry, choice: str) -> str | None:
    for number, option in enumerate(entry.options, start=1):
        if choice == str(number) or (option.label and choice == option.label.lower()):
            return option.id
    return None


async def _question_loop(runtime: ExamRuntime) -> None:
    ctx = runtime.ctx
    index = 0

    while not ctx.is_completed:
        console.print(_render_entry(runtime, index))
        choice = await asyncio.to_thread(
            Prompt.ask,
            "[cyan]>_[/cyan] option, [n]ext, [p]rev, [s]ubmit, [q]uit",
            default="n",
        )
        if ctx.is_completed:
            console.print("[yellow]Time's up! Your answers were submitted.[/]")
            break

        choice = choice.strip().lower()
        if choice == "q":
            break
        if choice == "n":
            index = min(index + 1, len(ctx.entries) - 1)
            continue
        if choice == "p":
            index = max(index - 1, 0)
            continue
        if choice == "s":
            outcome = await runtime.submit()
            if outcome.status != FinalizeStatus.CANCELLED:
                break
            continue

        entry = ctx.entries[index]
        option_id = _match_option(entry, choice)
        if option_id is None:
            console.print("[red]Unknown option[/]")
            continue

        result = await runtime.answer(entry.id, option_id)
        if result.queued:
            console.print("[yellow]Saved offline, will sync when the connection is back[/]")
        if result.accepted:
            index = min(index + 1, len(ctx.entries) - 1)


def _show_outcome(outcome: FinalizeOutcome) -> None:
    summary = outcome.summary
    if outcome.status == FinalizeStatus.PENDING:
        console.print("[yellow]Submission saved offline. It will be sent on the next sync.[/]")
    if summary is None:
        return

    table = Table(title="Results")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Correct", f"{summary.correct}/{summary.total}")
    table.add_row("Score", f"{summary.score * 100:.0f}%")
    table.add_row("Answered", str(summary.answered))
    table.add_row("Skipped", str(summary.skipped))
    if summary.duration_seconds is not None:
        minutes, seconds = divmod(summary.duration_seconds, 60)
        table.add_row("Time", f"{minutes}m {seconds}s")
    table.add_row("Status", outcome.status.value)
    console.print(table)


def _show_snapshot(records: LocalRecords, session_key: SessionKey | None) -> None:
    snapshot = records.snapshots.get(session_key) if session_key else None
    if snapshot is None:
        console.print(f"[cyan]Session {session_key} is already completed.[/]")
        return
    summary = snapshot.summary
    state = "pending" if snapshot.pending else "final"
    console.print(
        Panel(
            f"Correct: {summary.get('correct')}/{summary.get('total')}\n"
            f"Skipped: {summary.get('skipped')}\n"
            f"Result: {state}",
            title=f"[bold]{session_key}[/]",
            border_style="green" if not snapshot.pending else "yellow",
        )
    )


# =============================================================================
# Sync
# =============================================================================


@app.command()
def sync() -> None:
    """Replay queued answers and pending submissions now."""
    settings = get_settings()
    report = asyncio.run(_run_sync(settings))

    table = Table(title="Sync Results")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Answers Replayed", str(report.answers_replayed))
    table.add_row("Submissions Replayed", str(report.submissions_replayed))
    table.add_row("Blocked Sessions", ", ".join(str(k) for k in report.blocked) or "-")
    table.add_row("Rejected by Producer", ", ".join(str(k) for k in report.rejected) or "-")
    table.add_row("Status", "OK" if report.complete else "Incomplete")
    console.print(table)
    if report.rejected:
        console.print(
            "[red]The producer refused queued work for the sessions above.[/] "
            "Check them with [bold]examhall status[/] and clear them with [bold]examhall reset[/]."
        )


async def _run_sync(settings: Settings) -> SyncReport:
    records = LocalRecords.open(settings)
    async with ProducerClient.from_settings(settings) as producer:
        manager = OfflineSyncManager(producer, records)
        return await manager.on_connectivity_restored()


# =============================================================================
# Status & Reset
# =============================================================================


def _sync_state(records: LocalRecords, key: SessionKey) -> str:
    refused = records.offline_answers.rejected(key)
    if refused is not None:
        return f"[red]answer refused (HTTP {refused.rejected_status})[/]"
    pending = records.pending_submissions.load(key)
    if pending is not None and pending.rejected_status is not None:
        return f"[red]submit refused (HTTP {pending.rejected_status})[/]"
    if records.offline_answers.size(key) or pending is not None:
        return "waiting"
    return ""


@app.command()
def status() -> None:
    """Show locally stored progress, queued work and results."""
    records = LocalRecords.open(get_settings())

    table = Table(title="Local Sessions")
    table.add_column("Session", style="cyan")
    table.add_column("Answers", justify="right")
    table.add_column("Queued", justify="right")
    table.add_column("Pending Submit")
    table.add_column("Deadline")
    table.add_column("Sync State")

    keys = set(records.progress.session_keys())
    keys.update(records.offline_answers.session_keys())
    keys.update(records.pending_submissions.session_keys())
    for key in sorted(keys, key=str):
        progress = records.progress.load(key)
        deadline = records.deadlines.load(key)
        table.add_row(
            str(key),
            str(len(progress.answers)) if progress else "0",
            str(records.offline_answers.size(key)),
            "yes" if records.pending_submissions.load(key) else "",
            deadline.deadline_at.isoformat(timespec="seconds") if deadline else "",
            _sync_state(records, key),
        )
    console.print(table)
    waiting = records.offline_answers.total_size()
    if waiting:
        console.print(f"[yellow]{waiting} answers waiting for sync.[/] Run [bold]examhall sync[/] to replay them.")

    snapshots = records.snapshots.list()
    if snapshots:
        results = Table(title="Recent Results")
        results.add_column("Session", style="cyan")
        results.add_column("Score", justify="right")
        results.add_column("Stored")
        results.add_column("State")
        for snapshot in snapshots:
            score = snapshot.summary.get("score") or 0
            results.add_row(
                str(snapshot.session_key),
                f"{score * 100:.0f}%",
                snapshot.stored_at.isoformat(timespec="seconds"),
                "pending" if snapshot.pending else "final",
            )
        console.print(results)


@app.command()
def reset(
    session: Annotated[str, typer.Argument(help="Session key, e.g. proctored:att-7")],
    forget_result: Annotated[
        bool, typer.Option("--forget-result", help="Also drop the result snapshot")
    ] = False,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Skip confirmation")] = False,
) -> None:
    """Clear local records for one session."""
    try:
        key = SessionKey.parse(session)
    except ValueError as e:
        console.print(f"[red]{e}[/]")
        raise typer.Exit(1)

    records = LocalRecords.open(get_settings())
    queued = records.offline_answers.size(key)
    if queued and not yes:
        console.print(f"[yellow]{queued} answers for {key} have not been synced yet.[/]")
    if not yes and not Confirm.ask(f"Clear local records for {key}?", default=False):
        return

    records.reset_session(key)
    if forget_result:
        records.snapshots.remove(key)
    console.print(f"[green]Cleared {key}[/]")


# =============================================================================
# Entry Point
# =============================================================================


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Debug logging")] = False,
) -> None:
    """Examhall - timed assessment sessions with offline-first sync."""
    settings = get_settings()
    if verbose:
        settings = settings.model_copy(update={"log_level": "DEBUG"})
    configure_logging(settings)


def run() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
