"""Claude Code sessions: ``~/.claude/projects/<encoded-path>/<id>.jsonl``."""

import logging
import shlex
from pathlib import Path
from typing import Iterator

from ailog.adapters.base import AgentAdapter, record_time, text_from_content, too_large
from ailog.core.models import AgentKind, Message, Role, Session, ToolCall

logger = logging.getLogger(__name__)

# Tools whose target file is recorded on the assistant message
FILE_TOOLS = {"Write", "Edit", "MultiEdit", "Read", "create_file", "edit_file", "delete_file"}


def decode_project_dir(dir_name: str) -> str | None:
    """Turn ``-home-me-my-app`` back into ``/home/me/my-app``.

    Every ``/`` was encoded as ``-``, so hyphens inside directory names are
    ambiguous. Segments are joined greedily until they name an existing
    directory; the last segment always closes the path.
    """
    if not dir_name:
        return None
    segments = dir_name.lstrip("-").split("-")
    result = Path("/")
    current = ""
    for index, segment in enumerate(segments):
        current = f"{current}-{segment}" if current else segment
        if (result / current).exists() or index == len(segments) - 1:
            result = result / current
            current = ""
    return str(result)


class ClaudeCodeAdapter(AgentAdapter):
    kind = AgentKind.CLAUDE_CODE

    @property
    def projects_dir(self) -> Path:
        return self.data_dir / "projects"

    def is_installed(self) -> bool:
        return self.projects_dir.is_dir()

    def session_files(self) -> Iterator[Path]:
        if not self.projects_dir.is_dir():
            return
        for project_dir in sorted(self.projects_dir.iterdir()):
            if not project_dir.is_dir():
                continue
            logger.debug("scanning project %s", project_dir.name)
            for folder in (project_dir, project_dir / "sessions"):
                if not folder.is_dir():
                    continue
                for path in sorted(folder.glob("*.jsonl")):
                    if "subagent" in path.name or not path.is_file() or too_large(path):
                        continue
                    yield path

    def _project_dir_for(self, path: Path) -> Path:
        parent = path.parent
        return parent.parent if parent.name == "sessions" else parent

    def parse_session_file(self, path: Path) -> Session | None:
        records = self.json_lines(path, self.read_text(path))

        messages: list[Message] = []
        tool_calls: list[ToolCall] = []
        cwd: str | None = None

        for record in records:
            if cwd is None and isinstance(record.get("cwd"), str):
                cwd = record["cwd"]
            timestamp = record_time(record)
            kind = record.get("type")
            message = record.get("message") if isinstance(record.get("message"), dict) else record

            if kind == "user":
                text = text_from_content(message.get("content"))
                if text:
                    messages.append(Message(role=Role.USER, content=text, timestamp=timestamp))
            elif kind == "assistant":
                content = message.get("content")
                changed: list[str] = []
                if isinstance(content, list):
                    for block in content:
                        if not isinstance(block, dict) or block.get("type") != "tool_use":
                            continue
                        call = self._tool_call(block, timestamp)
                        tool_calls.append(call)
                        if call.file_path and call.tool_name in FILE_TOOLS:
                            changed.append(call.file_path)
                text = text_from_content(content)
                if text:
                    messages.append(
                        Message(
                            role=Role.ASSISTANT,
                            content=text,
                            timestamp=timestamp,
                            files_changed=changed,
                        )
                    )

        project_path = cwd or decode_project_dir(self._project_dir_for(path).name)
        session = Session(
            id=self.session_id_for(path),
            agent=self.kind,
            project_path=project_path,
            messages=messages,
            tool_calls=tool_calls,
        )
        session.refresh_time_bounds()
        return session

    @staticmethod
    def _tool_call(block: dict, timestamp) -> ToolCall:
        tool_input = block.get("input") if isinstance(block.get("input"), dict) else {}
        file_path = tool_input.get("file_path") or tool_input.get("path")
        return ToolCall(
            tool_name=str(block.get("name") or ""),
            file_path=file_path if isinstance(file_path, str) else None,
            timestamp=timestamp,
        )

    def resume_command(self, session_id: str, project_path: str | None = None) -> str:
        command = f"claude --resume {session_id}"
        if project_path:
            command = f"cd {shlex.quote(project_path)} && {command}"
        return command
