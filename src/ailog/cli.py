"""ail CLI - search and reuse your AI coding sessions."""

import json
import logging
import os
import subprocess
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Annotated, Iterator, NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from ailog import __version__
from ailog import config as ail_config
from ailog.errors import AilError
from ailog.core.models import AgentKind, SessionRecord, changed_files
from ailog.core.store import SessionStore
from ailog.core.timeutil import parse_datetime, parse_duration, utcnow

app = typer.Typer(
    name="ail",
    help="AI Log - index, search and reuse your AI coding sessions.",
    no_args_is_help=True,
)
mcp_app = typer.Typer(help="MCP server registration.")
app.add_typer(mcp_app, name="mcp")

console = Console()
err_console = Console(stderr=True)

state = {"json": False}

AgentOption = Annotated[
    Optional[str], typer.Option("--agent", "-a", help="Filter by agent (claude-code, codex, cursor)")
]
ProjectOption = Annotated[Optional[str], typer.Option("--project", "-p", help="Filter by project path")]
LastOption = Annotated[
    Optional[str], typer.Option("--last", help="Only sessions from the last period (e.g. 7d, 2w, 1m)")
]
LimitOption = Annotated[int, typer.Option("--limit", "-n", help="Maximum results")]


def version_callback(value: bool) -> None:
    if value:
        console.print(f"ail {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", "-V", callback=version_callback, is_eager=True),
    ] = None,
    json_output: Annotated[bool, typer.Option("--json", help="Output as JSON")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Verbose logging")] = False,
) -> None:
    """AI Log - index, search and reuse your AI coding sessions."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    state["json"] = json_output
    ail_config.ensure_dirs()


# ── Helpers ──────────────────────────────────────────────────────


@contextmanager
def _errors() -> Iterator[None]:
    """Turn engine errors into a red message and exit code 1."""
    try:
        yield
    except AilError as exc:
        err_console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1)


def _fail(message: str) -> NoReturn:
    err_console.print(f"[red]Error:[/red] {message}")
    raise typer.Exit(1)


def _open_store() -> SessionStore:
    config = ail_config.load_config()
    return SessionStore(ail_config.resolve_db_path(config)).open()


def _print_json(data) -> None:
    typer.echo(json.dumps(data, indent=2, default=str, ensure_ascii=False))


def _since(last: str | None) -> datetime | None:
    if not last:
        return None
    duration = parse_duration(last)
    if duration is None:
        _fail(f"Invalid duration: {last} (use e.g. 12h, 7d, 2w, 1m)")
    return utcnow() - duration


def _date(value: str | None, flag: str) -> datetime | None:
    if not value:
        return None
    parsed = parse_datetime(value)
    if parsed is None:
        _fail(f"Invalid {flag} date: {value}")
    return parsed


def _agent(value: str | None) -> str | None:
    if not value:
        return None
    kind = AgentKind.parse(value)
    if kind is None:
        _fail(f"Unknown agent: {value}")
    return kind.value


def _when(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M") if value else "-"


def _record_json(record: SessionRecord) -> dict:
    return record.model_dump(mode="json")


def _sessions_table(records: list[SessionRecord], title: str) -> Table:
    table = Table(title=title)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Agent", style="magenta")
    table.add_column("Project", style="green")
    table.add_column("Started")
    table.add_column("Msgs", justify="right")
    table.add_column("Summary")
    for r in records:
        table.add_row(
            r.id[:8],
            r.agent,
            r.project_name or "-",
            _when(r.started_at),
            str(r.message_count),
            r.llm_summary or r.summary or "-",
        )
    return table


def _require_session(store: SessionStore, session_id: str) -> SessionRecord:
    record = store.get_session(session_id)
    if record is None:
        _fail(f"Session not found: {session_id}")
    return record


# ── Indexing ─────────────────────────────────────────────────────


@app.command("index")
def index(
    agent: AgentOption = None,
    rebuild: Annotated[bool, typer.Option("--rebuild", help="Clear the index (or one agent's sessions) and rebuild")] = False,
) -> None:
    """Index new and updated sessions from installed agents."""
    from ailog.core.indexer import index_agent, index_all, rebuild_agent, rebuild_all

    config = ail_config.load_config()
    with _errors():
        store = SessionStore(ail_config.resolve_db_path(config)).open()
        if agent:
            reindex = rebuild_agent if rebuild else index_agent
            result = reindex(store, _agent(agent), config)
            if result is None:
                _fail(f"Agent not installed: {agent}")
            results = [result]
        elif rebuild:
            results = rebuild_all(store, config)
        else:
            results = index_all(store, config)

    if state["json"]:
        _print_json([r.model_dump() for r in results])
        return
    if not results:
        console.print("[yellow]No installed agents found.[/yellow]")
        return
    table = Table(title="Index")
    for column in ("Agent", "Found", "New", "Updated", "Failed"):
        table.add_column(column, justify="left" if column == "Agent" else "right")
    for r in results:
        table.add_row(r.agent, str(r.found), str(r.new), str(r.updated), str(r.failed))
    console.print(table)


@app.command("setup")
def setup(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Enable every detected agent without asking")] = False,
) -> None:
    """Pick the agents to index, save the config and run the first index."""
    from ailog.core.indexer import index_agent

    with _errors():
        config = ail_config.load_config()
    detected = ail_config.detect_agents(config)
    if not detected:
        console.print("[yellow]No agents found.[/yellow] Install Claude Code, Codex or Cursor first.")
        return

    selected = []
    for agent in detected:
        label = f"{AgentKind(agent).display_name} ({config.agents.data_dir(agent)})"
        if yes or typer.confirm(f"Index {label}?", default=True):
            selected.append(agent)
    for agent in ail_config.AGENT_DATA_DIRS:
        if agent not in detected:
            console.print(f"[dim]  {AgentKind(agent).display_name}: not found[/dim]")
    if not selected:
        console.print("No agents selected. Run [bold]ail setup[/bold] again to choose.")
        return

    config.agents.enabled = selected
    path = ail_config.save_config(config, ail_config.CONFIG_PATH)
    with _errors():
        store = SessionStore(ail_config.resolve_db_path(config)).open()
        results = [index_agent(store, agent, config) for agent in selected]

    for r in results:
        if r is not None:
            console.print(f"  [green]✓[/green] {r.agent}: {r.found} sessions found, {r.new} new")
    console.print(f"\n[dim]Config: {path}[/dim]")
    console.print(f"[dim]Database: {ail_config.resolve_db_path(config)}[/dim]")


# ── Browsing ─────────────────────────────────────────────────────


@app.command("list")
def list_cmd(
    agent: AgentOption = None,
    project: ProjectOption = None,
    last: LastOption = None,
    query: Annotated[Optional[str], typer.Option("--query", "-q", help="Full-text search")] = None,
    limit: LimitOption = 50,
) -> None:
    """List indexed sessions, newest first."""
    from ailog.core.search import SearchOptions, find_sessions

    opts = SearchOptions(
        keyword=query, agent=_agent(agent), project=project, date_from=_since(last), limit=limit
    )
    with _errors():
        records = find_sessions(_open_store(), opts)

    if state["json"]:
        _print_json([_record_json(r) for r in records])
        return
    if not records:
        console.print("[dim]No sessions found. Run:[/dim] ail index")
        return
    console.print(_sessions_table(records, f"Sessions ({len(records)})"))


@app.command("history")
def history(
    keyword: Annotated[Optional[str], typer.Option("--keyword", "-k", help="Full-text keyword")] = None,
    agent: AgentOption = None,
    project: ProjectOption = None,
    last: LastOption = None,
    file: Annotated[Optional[str], typer.Option("--file", help="Sessions that touched this path")] = None,
    limit: LimitOption = 50,
) -> None:
    """Search conversation history by keyword or by touched file."""
    from ailog.core.search import SearchOptions, search_by_file, search_history

    if not keyword and not file:
        _fail("Provide --keyword or --file")

    opts = SearchOptions(
        keyword=keyword, agent=_agent(agent), project=project, date_from=_since(last), limit=limit
    )
    with _errors():
        store = _open_store()
        if file:
            records = search_by_file(store, file, limit)
            if state["json"]:
                _print_json([_record_json(r) for r in records])
            elif records:
                console.print(_sessions_table(records, f"Sessions touching {file}"))
            else:
                console.print("[dim]No sessions found.[/dim]")
            return
        hits = search_history(store, opts)

    if state["json"]:
        _print_json([h.model_dump(mode="json") for h in hits])
        return
    if not hits:
        console.print("[dim]No matches.[/dim]")
        return
    table = Table(title=f"Matches for '{keyword}'")
    table.add_column("Session", style="cyan", no_wrap=True)
    table.add_column("Agent", style="magenta")
    table.add_column("Project", style="green")
    table.add_column("Role")
    table.add_column("Content")
    for h in hits:
        preview = " ".join(h.content.split())[:120]
        table.add_row(h.session_id[:8], h.agent, h.project_name or "-", h.role, preview)
    console.print(table)


@app.command("show")
def show(
    session_id: Annotated[str, typer.Argument(help="Session ID")],
    files: Annotated[bool, typer.Option("--files", help="Only show changed files")] = False,
) -> None:
    """Show a session's conversation or its changed files."""
    with _errors():
        store = _open_store()
        record = _require_session(store, session_id)
        if files:
            changes = changed_files(store.get_tool_calls(session_id))
            if state["json"]:
                _print_json([c.model_dump() for c in changes])
                return
            console.print(f"Files changed in session {session_id}:")
            prefix = {"created": "[green]+[/green]", "modified": "[yellow]~[/yellow]", "deleted": "[red]-[/red]"}
            for change in changes:
                console.print(f"  {prefix.get(change.change_type, ' ')} {change.path}")
            return
        messages = store.get_messages(session_id)

    if state["json"]:
        _print_json([m.model_dump(mode="json", exclude={"id", "session_id"}) for m in messages])
        return
    console.print(
        f"[bold]Session:[/bold] {record.id} | {record.agent} | {record.project_name or '?'}\n"
    )
    for message in messages:
        if message.role.value == "tool":
            continue
        label = "You" if message.role.value == "user" else "AI"
        stamp = f" ({message.timestamp:%H:%M})" if message.timestamp else ""
        console.rule(f"{label}{stamp}", align="left")
        console.print(message.content, markup=False)
        console.print()


@app.command("stats")
def stats(
    last: LastOption = None,
    date_from: Annotated[Optional[str], typer.Option("--from", help="Start date")] = None,
    date_to: Annotated[Optional[str], typer.Option("--to", help="End date")] = None,
    project: ProjectOption = None,
) -> None:
    """Session and file-change statistics."""
    start = _date(date_from, "--from") or _since(last)
    end = _date(date_to, "--to")
    with _errors():
        result = _open_store().get_stats(date_from=start, date_to=end, project_path=project)

    if state["json"]:
        _print_json(result.model_dump())
        return
    console.print(f"[bold]Total sessions:[/bold] {result.total_sessions}")
    console.print(
        f"[bold]Files:[/bold] {result.total_files_created} created, "
        f"{result.total_files_modified} modified, {result.total_files_deleted} deleted\n"
    )
    for title, rows in (
        ("By agent", result.sessions_by_agent),
        ("By project", result.sessions_by_project),
        ("Most modified files", result.most_modified_files),
    ):
        if not rows:
            continue
        table = Table(title=title)
        table.add_column("Name", style="cyan")
        table.add_column("Count", justify="right")
        for name, count in rows:
            table.add_row(name, str(count))
        console.print(table)


# ── Mutations ────────────────────────────────────────────────────


@app.command("tag")
def tag(
    session_id: Annotated[str, typer.Argument(help="Session ID")],
    tags: Annotated[Optional[list[str]], typer.Argument(help="Tags")] = None,
    remove: Annotated[bool, typer.Option("--remove", help="Remove the tags instead of adding")] = False,
) -> None:
    """Add or remove session tags."""
    tags = tags or []
    with _errors():
        store = _open_store()
        current = store.get_tags(session_id)
        if remove:
            updated = [t for t in current if t not in tags]
        else:
            updated = current + tags
        updated = store.set_tags(session_id, updated)

    if state["json"]:
        _print_json({"id": session_id, "tags": updated})
    else:
        console.print(f"Tags: {', '.join(updated) if updated else '[dim](none)[/dim]'}")


@app.command("clean")
def clean(
    older_than: Annotated[
        Optional[str], typer.Option("--older-than", help="Remove sessions older than (e.g. 30d, 4w)")
    ] = None,
    agent: AgentOption = None,
) -> None:
    """Delete old sessions from the index."""
    if not older_than:
        _fail("Specify --older-than (e.g. 30d)")
    before = _since(older_than)
    with _errors():
        count = _open_store().clean_sessions(before, agent=_agent(agent))
    if state["json"]:
        _print_json({"removed": count})
    else:
        console.print(f"Cleaned {count} sessions")


# ── Reports and context ──────────────────────────────────────────


@app.command("report")
def report(
    day: Annotated[bool, typer.Option("--day", help="Daily report")] = False,
    on_date: Annotated[Optional[str], typer.Option("--date", help="Date for the daily report (YYYY-MM-DD)")] = None,
    week: Annotated[bool, typer.Option("--week", help="Weekly report")] = False,
    month: Annotated[bool, typer.Option("--month", help="Monthly report")] = False,
    quarter: Annotated[Optional[str], typer.Option("--quarter", help="Quarterly report (Q1-Q4)")] = None,
    date_from: Annotated[Optional[str], typer.Option("--from", help="Custom range start")] = None,
    date_to: Annotated[Optional[str], typer.Option("--to", help="Custom range end")] = None,
    project: ProjectOption = None,
    output: Annotated[Optional[Path], typer.Option("--output", "-o", help="Write to a file")] = None,
    fmt: Annotated[Optional[str], typer.Option("--format", help="markdown, slack or json")] = None,
    summarize: Annotated[bool, typer.Option("--summarize", help="Add LLM summaries first")] = False,
) -> None:
    """Generate a work report for a period."""
    from ailog.core.report import generate_report, report_sessions, resolve_period

    config = ail_config.load_config()
    with _errors():
        period = resolve_period(day, on_date, week, month, quarter, date_from, date_to)
        store = SessionStore(ail_config.resolve_db_path(config)).open()
        if summarize or config.report.summarize.enabled:
            from ailog.core.llm import summarize_sessions

            done = summarize_sessions(store, report_sessions(store, period, project), config.report.summarize)
            err_console.print(f"[dim]Summarized {done} sessions[/dim]")
        text = generate_report(store, period, project, fmt or config.report.default_format)

    if output:
        output.write_text(text)
        console.print(f"[green]Report written to[/green] {output}")
    else:
        typer.echo(text)


@app.command("export")
def export(
    session_id: Annotated[str, typer.Argument(help="Session ID")],
    detail: Annotated[Optional[str], typer.Option("--detail", help="full, summary or minimal")] = None,
    output: Annotated[Optional[Path], typer.Option("--output", "-o", help="Write to a file")] = None,
) -> None:
    """Export a session as markdown context for another agent."""
    from ailog.core.context import DetailLevel, export_context

    config = ail_config.load_config()
    with _errors():
        store = SessionStore(ail_config.resolve_db_path(config)).open()
        text = export_context(store, session_id, DetailLevel.parse(detail or config.export.default_detail))

    if output:
        output.write_text(text)
        console.print(f"[green]Context written to[/green] {output}")
    else:
        typer.echo(text)


@app.command("inject")
def inject(
    session_id: Annotated[Optional[str], typer.Argument(help="Session ID")] = None,
    auto: Annotated[bool, typer.Option("--auto", help="Use the latest session of the project")] = False,
    project_path: Annotated[Path, typer.Option("--path", help="Project directory")] = Path("."),
) -> None:
    """Inject session context into the project's CLAUDE.md."""
    from ailog.core.context import auto_inject, inject_context

    project_path = project_path.resolve()
    with _errors():
        store = _open_store()
        if auto:
            session_id = auto_inject(store, project_path)
        elif session_id:
            inject_context(store, session_id, project_path)
        else:
            _fail("Provide a session ID or use --auto")
    console.print(f"[green]Injected context from[/green] {session_id} into {project_path / 'CLAUDE.md'}")


@app.command("resume")
def resume(
    session_id: Annotated[Optional[str], typer.Argument(help="Session ID")] = None,
    last: Annotated[bool, typer.Option("--last", help="Resume the most recent session")] = False,
    agent: AgentOption = None,
    context: Annotated[
        Optional[Path], typer.Option("--context", help="Context file to inject into CLAUDE.md first")
    ] = None,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Print the command without running it")] = False,
) -> None:
    """Reopen a session in its agent."""
    from ailog.adapters import get_adapter
    from ailog.core.context import inject_context_file

    with _errors():
        store = _open_store()
        if last:
            records = store.list_sessions(agent=_agent(agent), limit=1)
            record = records[0] if records else None
        elif session_id:
            record = store.get_session(session_id)
        else:
            _fail("Provide a session ID or use --last")
        if record is None:
            _fail("Session not found")

    adapter = get_adapter(record.agent)
    if adapter is None:
        _fail(f"Unknown agent: {record.agent}")
    command = adapter.resume_command(record.id, record.project_path)
    typer.echo(command)
    if dry_run:
        return
    if context:
        with _errors():
            target = inject_context_file(context, Path(record.project_path or "."))
        err_console.print(f"[dim]Injected {context} into {target}[/dim]")
    status = subprocess.run(command, shell=True)
    if status.returncode != 0:
        err_console.print(f"[yellow]Command exited with status {status.returncode}[/yellow]")


@app.command("cd")
def cd(session_id: Annotated[str, typer.Argument(help="Session ID")]) -> None:
    """Print a cd command for the session's project (use with eval)."""
    with _errors():
        record = _require_session(_open_store(), session_id)
    if not record.project_path:
        _fail(f"No project path for session {session_id}")
    typer.echo(f"cd {record.project_path}")


# ── Server and config ────────────────────────────────────────────


@app.command("serve")
def serve(
    mcp: Annotated[bool, typer.Option("--mcp", help="Run the MCP server on stdio")] = False,
) -> None:
    """Start the MCP server."""
    if not mcp:
        _fail("Only the MCP server is available: ail serve --mcp")
    from ailog.mcp import server

    config = ail_config.load_config()
    server.store = SessionStore(ail_config.resolve_db_path(config))
    server.run_server(config.mcp.transport)


@app.command("config")
def config_cmd(
    edit: Annotated[bool, typer.Option("--edit", help="Open the config file in $EDITOR")] = False,
) -> None:
    """Show or edit the configuration."""
    path = ail_config.CONFIG_PATH
    with _errors():
        config = ail_config.load_config()
    if not path.exists():
        ail_config.save_config(config, path)
    if edit:
        subprocess.run([os.environ.get("EDITOR", "vi"), str(path)])
        return
    if state["json"]:
        _print_json(config.model_dump())
        return
    console.print(f"[dim]{path}[/dim]\n")
    typer.echo(ail_config.render_config(config))


@mcp_app.command("init")
def mcp_init(
    global_install: Annotated[
        bool, typer.Option("--global", "-g", help="Install for all detected platforms")
    ] = False,
    project_path: Annotated[
        Path, typer.Option("--path", "-p", help="Project path for a local install")
    ] = Path("."),
) -> None:
    """Register the ail MCP server with AI coding platforms."""
    from ailog.mcp.installer import install_mcp_global, install_mcp_project

    if global_install:
        detected = ail_config.detect_platforms()
        if not detected:
            console.print("[yellow]No supported platforms detected.[/yellow]")
            console.print("Looked for: Claude Code, Cursor, Codex")
            raise typer.Exit(1)
        console.print(f"Detected platforms: {', '.join(detected)}")
        results = install_mcp_global()
        for platform, success in results.items():
            icon = "[green]✓[/green]" if success else "[red]✗[/red]"
            console.print(f"  {icon} {platform}")
        if any(results.values()):
            console.print("\n[dim]Restart your AI agents to pick up the new MCP server.[/dim]")
    else:
        project_path = project_path.resolve()
        results = install_mcp_project(project_path)
        for name, success in results.items():
            icon = "[green]✓[/green]" if success else "[red]✗[/red]"
            console.print(f"  {icon} {project_path / name}")
        if not any(results.values()):
            console.print("[red]Failed to write MCP config.[/red]")
            raise typer.Exit(1)


@mcp_app.command("remove")
def mcp_remove() -> None:
    """Remove the ail MCP server from all platforms."""
    from ailog.mcp.installer import remove_mcp_global

    if not ail_config.detect_platforms():
        console.print("[yellow]No supported platforms detected.[/yellow]")
        raise typer.Exit(1)
    results = remove_mcp_global()
    for platform, success in results.items():
        icon = "[green]✓[/green]" if success else "[red]✗[/red]"
        console.print(f"  {icon} {platform}")
    if any(results.values()):
        console.print("\n[dim]Restart your AI agents to complete removal.[/dim]")
