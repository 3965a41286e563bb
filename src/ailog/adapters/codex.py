"""Codex CLI sessions under ``~/.codex/sessions``."""

import json
import shlex
from pathlib import Path
from typing import Iterator

from ailog.adapters.base import AgentAdapter, record_time, text_from_content
from ailog.core.models import AgentKind, Message, Role, Session, ToolCall


class CodexAdapter(AgentAdapter):
    """Reads both flat ``{role, content}`` lines and ``payload``-wrapped rollout records."""

    kind = AgentKind.CODEX

    @property
    def sessions_dir(self) -> Path:
        return self.data_dir / "sessions"

    def session_files(self) -> Iterator[Path]:
        if not self.sessions_dir.is_dir():
            return
        for path in sorted(self.sessions_dir.rglob("*")):
            if path.is_file() and path.suffix in (".jsonl", ".json"):
                yield path

    def parse_session_file(self, path: Path) -> Session | None:
        records = self.json_lines(path, self.read_text(path))

        session_id = self.session_id_for(path)
        messages: list[Message] = []
        tool_calls: list[ToolCall] = []
        cwd: str | None = None

        for record in records:
            timestamp = record_time(record)
            payload = record.get("payload") if isinstance(record.get("payload"), dict) else None
            item = payload or record
            if timestamp is None and payload is not None:
                timestamp = record_time(payload)

            if cwd is None and isinstance(item.get("cwd"), str):
                cwd = item["cwd"]
            if record.get("type") == "session_meta" and isinstance(item.get("id"), str):
                session_id = item["id"]
                continue

            if item.get("type") == "function_call":
                tool_calls.append(self._tool_call(item, timestamp))
                continue

            inner = item.get("message") if isinstance(item.get("message"), dict) else item
            role = inner.get("role")
            text = text_from_content(inner.get("content"))
            if isinstance(role, str) and role and text:
                messages.append(Message(role=Role.parse(role), content=text, timestamp=timestamp))

        if not messages:
            return None
        session = Session(
            id=session_id,
            agent=self.kind,
            project_path=cwd,
            messages=messages,
            tool_calls=tool_calls,
        )
        session.refresh_time_bounds()
        return session

    @staticmethod
    def _tool_call(item: dict, timestamp) -> ToolCall:
        arguments = item.get("arguments")
        if isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError:
                arguments = {}
        if not isinstance(arguments, dict):
            arguments = {}
        file_path = arguments.get("file_path") or arguments.get("path")
        return ToolCall(
            tool_name=str(item.get("name") or ""),
            file_path=file_path if isinstance(file_path, str) else None,
            timestamp=timestamp,
        )

    def get_session(self, session_id: str) -> Session | None:
        for path in self.session_files():
            if self.session_id_for(path) == session_id:
                return self.parse_session_file(path)
        # Rollout files are named by date; the id lives in the session_meta record.
        for session in self.scan_sessions():
            if session.id == session_id:
                return session
        return None

    def resume_command(self, session_id: str, project_path: str | None = None) -> str:
        command = f"codex --resume {session_id}"
        if project_path:
            command = f"cd {shlex.quote(project_path)} && {command}"
        return command
