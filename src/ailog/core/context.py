"""Markdown context export and CLAUDE.md injection."""

from enum import Enum
from pathlib import Path

from ailog.errors import AilError, SessionNotFound
from ailog.core.models import AgentKind, SessionRecord, StoredMessage, changed_files
from ailog.core.store import SessionStore

CONTEXT_MARKER_START = "<!-- ail:context:start -->"
CONTEXT_MARKER_END = "<!-- ail:context:end -->"
CONTEXT_FILE = "CLAUDE.md"

RECENT_MESSAGES = 6
RECENT_MESSAGE_CHARS = 500


class DetailLevel(str, Enum):
    FULL = "full"
    SUMMARY = "summary"
    MINIMAL = "minimal"

    @classmethod
    def parse(cls, text: str) -> "DetailLevel":
        """Unknown values fall back to SUMMARY."""
        try:
            return cls(text.strip().lower())
        except ValueError:
            return cls.SUMMARY


def _agent_label(agent: str) -> str:
    kind = AgentKind.parse(agent)
    return kind.display_name if kind else agent


def _clip(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit] + "..."


def render_context(
    record: SessionRecord,
    messages: list[StoredMessage],
    tool_calls,
    detail: DetailLevel = DetailLevel.SUMMARY,
) -> str:
    lines = ["# Session Context", f"- **Agent**: {_agent_label(record.agent)}"]
    if record.project_path:
        lines.append(f"- **Project**: {record.project_path}")
    if record.started_at:
        lines.append(f"- **Date**: {record.started_at:%Y-%m-%d}")
    lines += [f"- **Session ID**: {record.id}", ""]

    lines.append("## Work Summary")
    if record.summary:
        lines.append(f"**Request**: {record.summary}")
    if record.work_summary:
        lines.append(f"**Result**: {record.work_summary}")
    if record.llm_summary:
        lines.append(f"**Summary**: {record.llm_summary}")
    lines.append("")

    files = changed_files(tool_calls)
    if files:
        lines.append("## Changed Files")
        lines += [f"- `{f.path}` ({f.change_type})" for f in files]
        lines.append("")

    conversation = [m for m in messages if m.role.value in ("user", "assistant")]
    if detail is DetailLevel.SUMMARY and conversation:
        lines.append("## Recent Conversation")
        for message in conversation[-RECENT_MESSAGES:]:
            label = "You" if message.role.value == "user" else "AI"
            lines += [f"**{label}**: {_clip(message.content, RECENT_MESSAGE_CHARS)}", ""]
    elif detail is DetailLevel.FULL:
        lines.append("## Full Conversation")
        for message in conversation:
            label = "You" if message.role.value == "user" else "AI"
            stamp = f" {message.timestamp:%H:%M}" if message.timestamp else ""
            lines += [f"### {label}{stamp}", message.content, ""]

    return "\n".join(lines) + "\n"


def export_context(
    store: SessionStore, session_id: str, detail: DetailLevel = DetailLevel.SUMMARY
) -> str:
    """Render a stored session as markdown for handing to another agent."""
    record = store.get_session(session_id)
    if record is None:
        raise SessionNotFound(session_id)
    return render_context(
        record, store.get_messages(session_id), store.get_tool_calls(session_id), detail
    )


def _inject_marker_block(file_path: Path, content: str) -> None:
    """Replace the marker-delimited block in a file, or append one."""
    block = f"{CONTEXT_MARKER_START}\n{content.rstrip()}\n{CONTEXT_MARKER_END}"

    if file_path.exists():
        text = file_path.read_text()
        start = text.find(CONTEXT_MARKER_START)
        end = text.find(CONTEXT_MARKER_END)
        if start != -1 and end > start:
            text = text[:start] + block + text[end + len(CONTEXT_MARKER_END) :]
            file_path.write_text(text)
            return
        separator = "\n\n" if text.strip() else ""
        file_path.write_text(text.rstrip() + separator + block + "\n")
    else:
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(block + "\n")


def inject_context(store: SessionStore, session_id: str, project_path: Path) -> Path:
    """Write a session's context into ``<project>/CLAUDE.md``."""
    context = export_context(store, session_id, DetailLevel.SUMMARY)
    target = Path(project_path) / CONTEXT_FILE
    _inject_marker_block(target, context)
    return target


def inject_context_file(context_file: Path, project_path: Path) -> Path:
    """Copy a prepared context file into ``<project>/CLAUDE.md``."""
    context_file = Path(context_file).expanduser()
    if not context_file.is_file():
        raise AilError(f"Context file not found: {context_file}")
    target = Path(project_path) / CONTEXT_FILE
    _inject_marker_block(target, context_file.read_text())
    return target


def auto_inject(store: SessionStore, project_path: Path) -> str:
    """Inject the most recent session of ``project_path``. Returns its id."""
    project = str(Path(project_path).expanduser().absolute())
    sessions = store.list_sessions(project_path=project, limit=1)
    if not sessions:
        raise AilError(f"No sessions found for project: {project}")
    inject_context(store, sessions[0].id, Path(project))
    return sessions[0].id
