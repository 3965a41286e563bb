"""MCP server exposing the session index to coding agents."""

from mcp.server.fastmcp import FastMCP

from ailog.errors import SessionNotFound
from ailog.core.context import DetailLevel, export_context as render_export
from ailog.core.models import changed_files
from ailog.core.store import SessionStore
from ailog.core.timeutil import parse_datetime

mcp = FastMCP("ail")
store = SessionStore()

PREVIEW_CHARS = 200


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _conversation(session_id: str) -> list[dict]:
    return [
        {"role": m.role.value, "content": m.content, "timestamp": _iso(m.timestamp)}
        for m in store.get_messages(session_id)
        if m.role.value != "tool"
    ]


def _files(session_id: str) -> list[dict]:
    return [
        {"path": f.path, "change_type": f.change_type}
        for f in changed_files(store.get_tool_calls(session_id))
    ]


@mcp.tool()
def search_sessions(
    keyword: str | None = None,
    agent: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    project: str | None = None,
    limit: int = 20,
) -> list[dict]:
    """Search AI coding sessions by keyword, agent, date range, and project.

    With a keyword, returns matching messages with their session. Without
    one, returns the most recent sessions.

    Args:
        keyword: Full-text search keyword (optional)
        agent: Agent filter: claude-code, codex, cursor
        date_from: Start date (ISO 8601)
        date_to: End date (ISO 8601)
        project: Absolute project path filter
        limit: Max results (default 20)
    """
    start = parse_datetime(date_from) if date_from else None
    end = parse_datetime(date_to) if date_to else None
    if keyword:
        hits = store.search_messages(
            keyword, agent=agent, project_path=project, date_from=start, date_to=end, limit=limit
        )
        return [
            {
                "session_id": h.session_id,
                "agent": h.agent,
                "project": h.project_name,
                "role": h.role,
                "content_preview": h.content[:PREVIEW_CHARS],
                "started_at": _iso(h.started_at),
            }
            for h in hits
        ]
    sessions = store.list_sessions(
        agent=agent, project_path=project, date_from=start, date_to=end, limit=limit
    )
    return [
        {
            "id": s.id,
            "agent": s.agent,
            "project": s.project_name,
            "summary": s.summary,
            "started_at": _iso(s.started_at),
            "message_count": s.message_count,
        }
        for s in sessions
    ]


@mcp.tool()
def get_session_history(session_id: str) -> list[dict]:
    """Get the conversation history of a specific session.

    Args:
        session_id: Session ID
    """
    return _conversation(session_id)


@mcp.tool()
def get_changed_files(session_id: str) -> list[dict]:
    """Get the files changed in a session with their change types.

    Args:
        session_id: Session ID
    """
    return _files(session_id)


@mcp.tool()
def get_session_summary(session_id: str) -> dict | str:
    """Get session metadata: agent, project, time, message count, summaries.

    Args:
        session_id: Session ID
    """
    record = store.get_session(session_id)
    if not record:
        return f"Session {session_id} not found"
    return record.model_dump(mode="json")


@mcp.tool()
def get_stats(
    date_from: str | None = None,
    date_to: str | None = None,
    project: str | None = None,
) -> dict:
    """Get statistics for a time period: sessions by agent and project, file changes.

    Args:
        date_from: Start date (ISO 8601)
        date_to: End date (ISO 8601)
        project: Absolute project path filter
    """
    stats = store.get_stats(
        date_from=parse_datetime(date_from) if date_from else None,
        date_to=parse_datetime(date_to) if date_to else None,
        project_path=project,
    )
    return {
        "total_sessions": stats.total_sessions,
        "sessions_by_agent": stats.sessions_by_agent,
        "sessions_by_project": stats.sessions_by_project,
        "files_created": stats.total_files_created,
        "files_modified": stats.total_files_modified,
        "files_deleted": stats.total_files_deleted,
        "most_modified_files": stats.most_modified_files,
    }


@mcp.tool()
def export_context(session_id: str, detail: str = "summary") -> str:
    """Export session context as markdown for handing work to another agent.

    Args:
        session_id: Session ID
        detail: Detail level: full, summary, minimal
    """
    try:
        return render_export(store, session_id, DetailLevel.parse(detail))
    except SessionNotFound as exc:
        return str(exc)


@mcp.tool()
def get_full_session(session_id: str) -> dict | str:
    """Get the complete, untruncated session for summarization.

    Returns every message, the file changes and metadata so the calling
    agent can write its own summary.

    Args:
        session_id: Session ID
    """
    record = store.get_session(session_id)
    if not record:
        return f"Session {session_id} not found"
    return {
        "id": record.id,
        "agent": record.agent,
        "project_path": record.project_path,
        "project_name": record.project_name,
        "summary": record.summary,
        "work_summary": record.work_summary,
        "llm_summary": record.llm_summary,
        "started_at": _iso(record.started_at),
        "ended_at": _iso(record.ended_at),
        "message_count": record.message_count,
        "messages": _conversation(session_id),
        "files_changed": _files(session_id),
        "tags": record.tags,
    }


@mcp.tool()
def tag_session(
    session_id: str,
    add: list[str] | None = None,
    remove: list[str] | None = None,
) -> dict | str:
    """Add or remove tags on a session.

    Args:
        session_id: Session ID
        add: Tags to add
        remove: Tags to remove
    """
    removed = set(remove or [])
    tags = [t for t in store.get_tags(session_id) if t not in removed] + list(add or [])
    try:
        tags = store.set_tags(session_id, tags)
    except SessionNotFound as exc:
        return str(exc)
    return {"id": session_id, "tags": tags}


def run_server(transport: str = "stdio") -> None:
    """Start the MCP server."""
    mcp.run(transport=transport)
