"""Command-line interface for fileclaim."""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from fileclaim import __version__
from fileclaim.coordination.errors import CoordinationError
from fileclaim.coordination.protocol import ClaimProtocol, StatusReport
from fileclaim.coordination.schema import AgentStatus, UnifiedView
from fileclaim.logging import setup_logging
from fileclaim.workspace import Workspace

console = Console()
err_console = Console(stderr=True)

# Commands that act as a specific agent
AGENT_COMMANDS = {"start", "complete", "release", "progress", "heartbeat", "check"}

STATUS_STYLES = {
    "active": "green",
    "idle": "dim",
    "stale": "yellow",
    "error": "red",
    "unknown": "dim",
}


def _csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="fileclaim",
        description="Coordinate file claims between agents sharing a checkout",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (can be repeated)",
    )
    parser.add_argument(
        "--agent",
        help="Agent identity (default: FILECLAIM_AGENT or config 'agent')",
    )
    parser.add_argument(
        "--root",
        type=Path,
        default=None,
        help="Project root (default: current directory)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command")

    start_parser = subparsers.add_parser("start", help="Claim files to work on")
    start_parser.add_argument(
        "--files",
        action="extend",
        type=_csv,
        required=True,
        help="Comma-separated files to claim (can be repeated)",
    )
    start_parser.add_argument("--task", required=True, help="What you are doing")
    start_parser.add_argument(
        "--force",
        action="store_true",
        help="Take files even if another live agent holds them",
    )

    subparsers.add_parser("complete", help="Mark current work as complete")

    release_parser = subparsers.add_parser(
        "release",
        help="Release files without completing (for handoffs)",
    )
    release_parser.add_argument("--reason", default="manual", help="Why you are handing off")
    release_parser.add_argument(
        "--files",
        action="extend",
        type=_csv,
        default=None,
        help="Release only these files (default: all)",
    )

    progress_parser = subparsers.add_parser("progress", help="Update work progress")
    progress_parser.add_argument("--percentage", type=int, required=True, help="0-100")
    progress_parser.add_argument("--message", help="What was just done")

    subparsers.add_parser("heartbeat", help="Send keepalive signal")
    subparsers.add_parser("check", help="View system status")
    subparsers.add_parser("update", help="Rebuild the unified view")

    suggest_parser = subparsers.add_parser(
        "suggest",
        help="Recommend agents for files and a task",
    )
    suggest_parser.add_argument("--files", action="extend", type=_csv, required=True)
    suggest_parser.add_argument("--task", required=True)

    subparsers.add_parser("handoffs", help="List recent handoff notifications")

    watch_parser = subparsers.add_parser(
        "watch",
        help="Keep the unified view current as agent states change",
    )
    watch_parser.add_argument(
        "--interval",
        type=float,
        default=1.0,
        help="Polling interval in seconds",
    )

    return parser


def _minutes_since(ts: datetime, now: datetime) -> int:
    return max(0, round((now - ts).total_seconds() / 60))


def _status_text(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.upper()}[/{style}]"


def print_report(report: StatusReport, now: datetime) -> None:
    """Render check() output."""
    console.rule(f"[bold]{escape(report.agent)} status report[/bold]")

    state = report.state
    work = state.current_work
    if state.status is AgentStatus.ACTIVE and work is not None:
        progress = f" [{work.progress.percentage}%]" if work.progress else ""
        console.print(
            f"{_status_text('active')} ({_minutes_since(work.started, now)} min)"
            f"{escape(progress)}"
        )
        console.print(f"  Task: {escape(work.task)}")
        if work.progress and work.progress.message:
            console.print(f"  Note: {escape(work.progress.message)}")
        console.print(f"  Files: {escape(', '.join(work.files))}")
    else:
        console.print(_status_text("idle"))
        if state.last_completed:
            last = state.last_completed
            console.print(f"  Last: {escape(last.task)} ({last.duration_minutes} min)")

    if report.others:
        console.print("\n[bold]Other agents[/bold]")
        for other in report.others:
            task = other.current_work.task if other.current_work else ""
            console.print(f"  {escape(other.agent)}: {escape(task)}")

    if report.file_ownership:
        table = Table(title="Current file claims")
        table.add_column("File")
        table.add_column("Agent", style="bold")
        table.add_column("Since")
        table.add_column("Task")
        for path, owner in report.file_ownership.items():
            mine = owner.agent == report.agent
            table.add_row(
                escape(path),
                f"[green]{escape(owner.agent)}[/green]" if mine else escape(owner.agent),
                f"{_minutes_since(owner.since, now)} min",
                escape(owner.task),
            )
        console.print(table)

    if report.conflicts:
        console.print("\n[bold red]Active conflicts[/bold red]")
        for conflict in report.conflicts:
            console.print(f"  {escape(conflict.file)}: {escape(' vs '.join(conflict.agents))}")

    if report.stale_agents:
        console.print("\n[yellow]Stale agents[/yellow]")
        for stale in report.stale_agents:
            console.print(f"  {escape(stale.agent)} (last seen {stale.minutes_ago} min ago)")

    console.rule()


def print_view_summary(view: UnifiedView) -> None:
    console.print(
        f"Unified view updated: {len(view.active_agents())} active agents, "
        f"{len(view.conflicts)} conflicts, {len(view.stale_agents)} stale agents"
    )


def _run_agent_command(parsed: argparse.Namespace, protocol: ClaimProtocol, now: datetime) -> int:
    if parsed.command == "start":
        result = protocol.start(parsed.files, parsed.task, force=parsed.force)
        console.print(f"[green]{escape(result.summary())}[/green]")
    elif parsed.command == "complete":
        record = protocol.complete()
        console.print(
            f"[green]Work completed:[/green] {escape(record.task)} "
            f"({record.duration_minutes} min)"
        )
    elif parsed.command == "release":
        released = protocol.release(parsed.reason, files=parsed.files)
        console.print(
            f"Released {escape(', '.join(released.record.files))} "
            f"(reason: {escape(released.record.reason or '')})"
        )
        if released.remaining:
            console.print(f"Still holding {escape(', '.join(released.remaining))}")
        if released.suggested_agent:
            console.print(f"Suggested next agent: [bold]{escape(released.suggested_agent)}[/bold]")
    elif parsed.command == "progress":
        progress = protocol.progress(parsed.percentage, parsed.message)
        message = f": {progress.message}" if progress.message else ""
        console.print(f"Progress: {progress.percentage}%{escape(message)}")
    elif parsed.command == "heartbeat":
        if protocol.heartbeat():
            console.print(f"Heartbeat sent for {escape(protocol.agent)}")
        else:
            console.print(f"{escape(protocol.agent)} is idle, no heartbeat needed")
    elif parsed.command == "check":
        print_report(protocol.check(), now)
    return 0


def _run_suggest(parsed: argparse.Namespace, workspace: Workspace) -> int:
    view = workspace.view_builder().fresh_view(workspace.config.coordination.view_fresh_for)
    recommendations = workspace.advisor.recommend(parsed.files, parsed.task, view)

    table = Table(title="Recommended agents")
    table.add_column("#")
    table.add_column("Agent", style="bold")
    table.add_column("Status")
    table.add_column("Score", justify="right")
    table.add_column("Files / Task / Workload")
    for rank, rec in enumerate(recommendations, start=1):
        b = rec.breakdown
        table.add_row(
            str(rank),
            escape(rec.agent),
            _status_text(rec.status),
            f"{rec.score:.1f}",
            f"{b['files']:g} / {b['task']:g} / {b['workload']:g}",
        )
    console.print(table)
    if recommendations:
        console.print(f"Best choice: [bold]{escape(recommendations[0].agent)}[/bold]")
    return 0


def run_cli(args: Sequence[str]) -> int:
    """Run the CLI with the given arguments; returns the exit code."""
    parser = create_parser()
    parsed = parser.parse_args(args)

    if parsed.command is None:
        parser.print_help()
        return 1

    try:
        workspace = Workspace(parsed.root or Path.cwd())
        if parsed.verbose:
            workspace.config.logging.verbose = min(4, 1 + parsed.verbose)
        setup_logging(workspace.config.logging)

        if parsed.command in AGENT_COMMANDS:
            agent = parsed.agent or workspace.config.agent
            if not agent:
                err_console.print(
                    "[red]No agent identity: pass --agent or set FILECLAIM_AGENT[/red]"
                )
                return 1
            protocol = workspace.protocol(agent)
            return _run_agent_command(parsed, protocol, workspace.clock())

        if parsed.command == "update":
            print_view_summary(workspace.view_builder().rebuild())
            return 0

        if parsed.command == "suggest":
            return _run_suggest(parsed, workspace)

        if parsed.command == "handoffs":
            entries = workspace.handoff_log().entries()
            if not entries:
                console.print("No handoffs recorded.")
            for entry in entries:
                console.print(
                    f"{entry.timestamp.isoformat(timespec='seconds')} "
                    f"[bold]{escape(entry.from_agent)}[/bold] ({escape(entry.reason)}): "
                    f"{escape(', '.join(entry.files))}"
                )
            return 0

        if parsed.command == "watch":
            from fileclaim.coordination.watcher import ViewWatcher

            watcher = ViewWatcher(
                workspace.view_builder(),
                workspace.backend,
                poll_interval=parsed.interval,
                on_rebuild=print_view_summary,
            )
            console.print(f"Watching {escape(str(workspace.state_dir))} (Ctrl+C to stop)")
            try:
                asyncio.run(watcher.run_forever())
            except KeyboardInterrupt:
                console.print("Stopped.")
            return 0

    except (CoordinationError, ValueError) as e:
        err_console.print(f"[red]{escape(str(e))}[/red]")
        return 1

    parser.print_help()
    return 1


def main() -> None:
    """Console script entry point."""
    sys.exit(run_cli(sys.argv[1:]))
