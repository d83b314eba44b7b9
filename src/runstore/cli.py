"""
CLI entry point for runstore.

This module provides the Typer-based command-line interface for inspecting
and maintaining a run store from a terminal.

Commands:
    list-runs   List the most recent runs
    show-run    Show one run and its log lines
    session     Replay a session's runs in conversation order
    sessions    List sessions by recent activity
    delete-run  Delete a run and its logs
    add-log     Append a log line to a run
    migrate     Apply pending schema migrations (or show status)
    prune-logs  Delete log lines whose run no longer exists
    watch       Print file-change events for a path until interrupted
    doctor      Check environment and database health

Architecture Note:
    The CLI is intentionally thin - it parses arguments and delegates to
    RunStoreApp, the same lifecycle the GUI layer uses.
"""

import json
import shutil
import sqlite3
import sys
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from runstore import __version__
from runstore.app import RunStoreApp
from runstore.config import StoreConfig, configure_logging, load_config
from runstore.errors import RunStoreError
from runstore.schema import LogType, Run, RunLog
from runstore.store import CURRENT_VERSION, ConnectionGuard, MigrationEngine, open_connection
from runstore.watch import FileChangeEvent, WatchRegistry

app = typer.Typer(
    name="runstore",
    help="Inspect and maintain the local store of agent runs.",
    add_completion=False,
    no_args_is_help=True,
)

console = Console()

DbOption = Annotated[
    Optional[Path],
    typer.Option(
        "--db",
        help="Path to the SQLite database. Defaults to the configured data directory.",
        resolve_path=True,
    ),
]
ConfigOption = Annotated[
    Optional[Path],
    typer.Option(
        "--config",
        "-c",
        help="Path to a YAML configuration file.",
        exists=True,
        readable=True,
        resolve_path=True,
    ),
]
JsonOption = Annotated[
    bool,
    typer.Option(
        "--json",
        help="Output results in JSON format.",
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]runstore[/bold] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    runstore - local history of coding-agent runs and their logs.
    """
    pass


def _settings(config: Path | None) -> StoreConfig:
    try:
        settings = load_config(config)
    except RunStoreError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)
    configure_logging(settings.log_level)
    return settings


def _open(db: Path | None, config: Path | None) -> RunStoreApp:
    settings = _settings(config)
    try:
        return RunStoreApp(db_path=db, config=settings)
    except RunStoreError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)


def _format_ts(timestamp: int) -> str:
    try:
        return datetime.fromtimestamp(timestamp / 1000, UTC).strftime("%Y-%m-%d %H:%M:%S")
    except (OverflowError, OSError, ValueError):
        return str(timestamp)


def _status_display(exit_status: int) -> str:
    if exit_status == 0:
        return "[green]ok[/green]"
    return f"[red]exit {exit_status}[/red]"


def _truncate(text: str | None, width: int = 50) -> str:
    if not text:
        return ""
    text = " ".join(text.split())
    return text if len(text) <= width else text[: width - 3] + "..."


def _runs_table(runs: list[Run]) -> Table:
    table = Table(show_header=True, header_style="bold")
    table.add_column("Run ID", style="cyan")
    table.add_column("Time")
    table.add_column("Session", style="dim")
    table.add_column("Agent")
    table.add_column("Model")
    table.add_column("Status", width=10)
    table.add_column("Input")
    for r in runs:
        table.add_row(
            r.id,
            _format_ts(r.timestamp),
            r.session_id or "-",
            r.agent,
            r.model or "-",
            _status_display(r.exit_status),
            _truncate(r.input),
        )
    return table


@app.command("list-runs")
def list_runs(
    db: DbOption = None,
    config: ConfigOption = None,
    limit: Annotated[
        Optional[int],
        typer.Option(
            "--limit",
            "-n",
            help="Maximum number of runs to show.",
        ),
    ] = None,
    json_output: JsonOption = False,
) -> None:
    """
    List the most recent runs, newest first.

    Example:
        $ runstore list-runs -n 20
    """
    with _open(db, config) as rs:
        runs = rs.store.get_runs(limit if limit is not None else rs.config.default_list_limit)

        if json_output:
            print(json.dumps([r.model_dump() for r in runs], indent=2))
            return

        if not runs:
            console.print("[dim]No runs found.[/dim]")
            raise typer.Exit(code=0)

        console.print(_runs_table(runs))


@app.command("show-run")
def show_run(
    run_id: Annotated[
        str,
        typer.Argument(help="The run ID to show."),
    ],
    db: DbOption = None,
    config: ConfigOption = None,
    json_output: JsonOption = False,
) -> None:
    """
    Show details of a specific run, including its log lines.

    Example:
        $ runstore show-run r1
    """
    with _open(db, config) as rs:
        summary = rs.store.get_run_summary(run_id)

        if not summary:
            console.print(f"[red]Run not found: {run_id}[/red]")
            raise typer.Exit(code=1)

        if json_output:
            print(json.dumps(summary, indent=2))
            return

        console.print(f"[bold]Run {summary['id']}[/bold]")
        console.print(f"  Status: {_status_display(summary['exit_status'])}")
        console.print(f"  Time: {_format_ts(summary['timestamp'])}")
        console.print(f"  Session: {summary['session_id'] or '-'}")
        console.print(f"  Agent: {summary['agent']}")
        console.print(f"  Model: {summary['model'] or '-'}")
        if summary["tools"]:
            console.print(f"  Tools: {', '.join(summary['tools'])}")
        console.print()
        console.print("[bold]Input[/bold]")
        console.print(summary["input"], markup=False)
        if summary.get("output"):
            console.print()
            console.print("[bold]Output[/bold]")
            console.print(summary["output"], markup=False)
        console.print()

        if summary["logs"]:
            table = Table(show_header=True, header_style="bold")
            table.add_column("#", style="dim", justify="right")
            table.add_column("Time")
            table.add_column("Type", width=10)
            table.add_column("Line")
            for log in summary["logs"]:
                log_type = log["log_type"]
                if log_type == LogType.ERROR.value:
                    type_display = "[red]error[/red]"
                elif log_type == LogType.WARNING.value:
                    type_display = "[yellow]warning[/yellow]"
                else:
                    type_display = log_type
                table.add_row(str(log["id"]), _format_ts(log["timestamp"]), type_display, log["log_line"])
            console.print(table)
        else:
            console.print("[dim]No log lines recorded.[/dim]")


@app.command()
def session(
    session_id: Annotated[
        str,
        typer.Argument(help="The session ID to replay."),
    ],
    db: DbOption = None,
    config: ConfigOption = None,
    json_output: JsonOption = False,
) -> None:
    """
    Show all runs of a session in conversation order (oldest first).

    Example:
        $ runstore session s1
    """
    with _open(db, config) as rs:
        runs = rs.store.get_runs_by_session(session_id)

        if json_output:
            print(json.dumps([r.model_dump() for r in runs], indent=2))
            return

        if not runs:
            console.print(f"[dim]No runs in session {session_id}.[/dim]")
            raise typer.Exit(code=0)

        console.print(_runs_table(runs))


@app.command()
def sessions(
    db: DbOption = None,
    config: ConfigOption = None,
    limit: Annotated[
        int,
        typer.Option(
            "--limit",
            "-n",
            help="Maximum number of sessions to show.",
        ),
    ] = 20,
    json_output: JsonOption = False,
) -> None:
    """
    List sessions, most recently active first.
    """
    with _open(db, config) as rs:
        rows = rs.store.list_sessions(limit)

        if json_output:
            print(json.dumps(rows, indent=2))
            return

        if not rows:
            console.print("[dim]No sessions found.[/dim]")
            raise typer.Exit(code=0)

        table = Table(show_header=True, header_style="bold")
        table.add_column("Session", style="cyan")
        table.add_column("Runs", justify="right")
        table.add_column("First")
        table.add_column("Last")
        for row in rows:
            table.add_row(
                row["session_id"],
                str(row["run_count"]),
                _format_ts(row["first_timestamp"]),
                _format_ts(row["last_timestamp"]),
            )
        console.print(table)


@app.command("delete-run")
def delete_run(
    run_id: Annotated[
        str,
        typer.Argument(help="The run ID to delete."),
    ],
    db: DbOption = None,
    config: ConfigOption = None,
    yes: Annotated[
        bool,
        typer.Option(
            "--yes",
            "-y",
            help="Don't ask for confirmation.",
        ),
    ] = False,
) -> None:
    """
    Delete a run and all of its log lines.

    Deleting an unknown run ID is not an error.
    """
    if not yes:
        typer.confirm(f"Delete run {run_id} and its logs?", abort=True)

    with _open(db, config) as rs:
        try:
            deleted = rs.store.delete_run(run_id)
        except RunStoreError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(code=1)

        if deleted:
            console.print(f"[green]Deleted run {run_id}[/green]")
        else:
            console.print(f"[dim]No run {run_id}; nothing deleted.[/dim]")


@app.command("add-log")
def add_log(
    run_id: Annotated[
        str,
        typer.Argument(help="The run the line belongs to."),
    ],
    line: Annotated[
        str,
        typer.Argument(help="The log text."),
    ],
    log_type: Annotated[
        LogType,
        typer.Option(
            "--type",
            "-t",
            help="Log line category.",
        ),
    ] = LogType.INFO,
    db: DbOption = None,
    config: ConfigOption = None,
) -> None:
    """
    Append a log line to an existing run.
    """
    with _open(db, config) as rs:
        try:
            log_id = rs.store.add_run_log(
                RunLog(run_id=run_id, log_line=line, log_type=log_type)
            )
        except RunStoreError as e:
            console.print(f"[red]{e}[/red]")
            raise typer.Exit(code=1)
        console.print(f"Added log {log_id} to run {run_id}")


@app.command()
def migrate(
    db: DbOption = None,
    config: ConfigOption = None,
    status: Annotated[
        bool,
        typer.Option(
            "--status",
            help="Show the current and pending versions without migrating.",
        ),
    ] = False,
    json_output: JsonOption = False,
) -> None:
    """
    Bring the database schema up to date.

    Opening the store always migrates; this command makes it explicit and
    reports what happened.
    """
    settings = _settings(config)
    db_path = db or settings.db_path

    if status:
        if not db_path.exists():
            if json_output:
                print(json.dumps({"db": str(db_path), "error": "database not found"}, indent=2))
            else:
                console.print(f"[red]Database not found: {db_path}[/red]")
            raise typer.Exit(code=1)
        guard = ConnectionGuard(open_connection(db_path, settings.busy_timeout_ms))
        try:
            engine = MigrationEngine(guard)
            current = engine.current_version()
            pending = [s.name for s in engine.pending(current)]
        finally:
            guard.close()
        if json_output:
            print(json.dumps({"db": str(db_path), "version": current,
                              "latest": CURRENT_VERSION, "pending": pending}, indent=2))
            return
        console.print(f"[bold]{db_path}[/bold]")
        console.print(f"  Version: {current} (latest {CURRENT_VERSION})")
        if pending:
            console.print(f"  Pending: {', '.join(pending)}")
        else:
            console.print("  [green]Up to date[/green]")
        return

    try:
        with RunStoreApp(db_path=db_path, config=settings) as rs:
            version = rs.schema_version
    except RunStoreError as e:
        if json_output:
            print(json.dumps({"ok": False, "error": e.to_dict()}, indent=2))
        else:
            console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    if json_output:
        print(json.dumps({"ok": True, "db": str(db_path), "version": version}, indent=2))
    else:
        console.print(f"[green]{db_path} is at schema v{version}[/green]")


@app.command("prune-logs")
def prune_logs(
    db: DbOption = None,
    config: ConfigOption = None,
) -> None:
    """
    Delete log lines whose run no longer exists.
    """
    with _open(db, config) as rs:
        removed = rs.store.prune_orphan_logs()
        console.print(f"Removed {removed} orphaned log line(s)")


@app.command()
def watch(
    path: Annotated[
        Path,
        typer.Argument(help="File or directory to watch (non-recursive)."),
    ],
    config: ConfigOption = None,
    interval: Annotated[
        Optional[float],
        typer.Option(
            "--interval",
            help="Seconds between polls. Defaults to the configured interval.",
        ),
    ] = None,
) -> None:
    """
    Print file-change events for a path until interrupted.
    """

    settings = _settings(config)
    registry = WatchRegistry(poll_interval=interval or settings.watch_poll_interval)

    def show(event: FileChangeEvent) -> None:
        console.print(f"[cyan]{event.kind.value}[/cyan] {event.path}")

    registry.channel.subscribe(show)
    try:
        registry.watch(path)
    except RunStoreError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[dim]Watching {path} (Ctrl+C to stop)[/dim]")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        registry.close_all()


@app.command()
def doctor(
    db: DbOption = None,
    config: ConfigOption = None,
    agent_binary: Annotated[
        str,
        typer.Option(
            "--agent-binary",
            help="Name of the coding-agent executable to look for.",
        ),
    ] = "opencode",
    json_output: JsonOption = False,
) -> None:
    """
    Check system environment and database health.

    Verifies:
    - Python version (3.11+)
    - SQLite library version
    - Database accessibility and schema version
    - Whether the agent executable is on PATH (informational)
    """
    settings = _settings(config)
    db_path = db or settings.db_path
    checks = []
    all_ok = True

    # Check 1: Python version
    py_version = sys.version_info
    py_version_str = f"{py_version.major}.{py_version.minor}.{py_version.micro}"
    py_ok = py_version >= (3, 11)
    checks.append({
        "name": "Python version",
        "ok": py_ok,
        "value": py_version_str,
        "message": "OK" if py_ok else "Requires Python 3.11+",
    })
    all_ok = all_ok and py_ok

    # Check 2: SQLite
    checks.append({
        "name": "SQLite",
        "ok": True,
        "value": sqlite3.sqlite_version,
        "message": "OK",
    })

    # Check 3: Database
    db_ok = True
    if db_path.exists():
        guard = None
        try:
            guard = ConnectionGuard(open_connection(db_path, settings.busy_timeout_ms))
            engine = MigrationEngine(guard)
            current = engine.current_version()
            if current == CURRENT_VERSION:
                db_message = f"Schema v{current}"
            elif current < CURRENT_VERSION:
                db_message = f"Schema v{current}, run 'runstore migrate' to reach v{CURRENT_VERSION}"
            else:
                db_ok = False
                db_message = f"Schema v{current} is newer than supported v{CURRENT_VERSION}"
        except RunStoreError as e:
            db_ok = False
            db_message = e.message
        finally:
            if guard is not None:
                guard.close()
    else:
        db_message = "Not found (will be created on first use)"
    checks.append({
        "name": "Database",
        "ok": db_ok,
        "value": str(db_path),
        "message": db_message,
    })
    all_ok = all_ok and db_ok

    # Check 4: Agent executable
    found = shutil.which(agent_binary)
    checks.append({
        "name": "Agent executable",
        "ok": True,
        "value": agent_binary,
        "message": found or "Not on PATH (runs can still be browsed)",
    })

    if json_output:
        print(json.dumps({"ok": all_ok, "version": __version__, "checks": checks}, indent=2))
    else:
        console.print(f"[bold]runstore doctor[/bold] v{__version__}")
        console.print()
        for check in checks:
            icon = "[green]✓[/green]" if check["ok"] else "[red]✗[/red]"
            if check["ok"]:
                console.print(f"{icon} {check['name']}: [dim]{check['value']}[/dim] - {check['message']}")
            else:
                console.print(f"{icon} {check['name']}: [dim]{check['value']}[/dim]")
                console.print(f"    [red]{check['message']}[/red]")
        console.print()
        if all_ok:
            console.print("[green]All checks passed![/green]")
        else:
            console.print("[yellow]Some checks failed. See above for details.[/yellow]")

    raise typer.Exit(code=0 if all_ok else 1)


if __name__ == "__main__":
    app()
