"""Cursor chat exports under ``~/.cursor/projects`` and ``~/.cursor/sessions``."""

import json
import shlex
from pathlib import Path
from typing import Iterator

from ailog.adapters.base import AgentAdapter, record_time, text_from_content
from ailog.core.models import AgentKind, Message, Role, Session


class CursorAdapter(AgentAdapter):
    kind = AgentKind.CURSOR

    def session_files(self) -> Iterator[Path]:
        for folder in (self.data_dir / "projects", self.data_dir / "sessions"):
            if not folder.is_dir():
                continue
            for path in sorted(folder.iterdir()):
                if path.is_file() and path.suffix in (".json", ".jsonl"):
                    yield path

    def _records(self, path: Path) -> tuple[list[dict], dict]:
        text = self.read_text(path)
        if path.suffix == ".jsonl":
            return self.json_lines(path, text), {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            raise self._fail(path, exc) from exc
        if isinstance(data, list):
            return [item for item in data if isinstance(item, dict)], {}
        if isinstance(data, dict):
            items = data.get("messages")
            if isinstance(items, list):
                return [item for item in items if isinstance(item, dict)], data
        return [], {}

    def parse_session_file(self, path: Path) -> Session | None:
        records, meta = self._records(path)
        messages = []
        project_path = meta.get("project_path") or meta.get("cwd")
        for record in records:
            if project_path is None and isinstance(record.get("cwd"), str):
                project_path = record["cwd"]
            role = record.get("role")
            text = text_from_content(record.get("content"))
            if isinstance(role, str) and role and text:
                messages.append(
                    Message(role=Role.parse(role), content=text, timestamp=record_time(record))
                )
        if not messages:
            return None
        session = Session(
            id=str(meta.get("id") or self.session_id_for(path)),
            agent=self.kind,
            project_path=project_path if isinstance(project_path, str) else None,
            messages=messages,
        )
        session.refresh_time_bounds()
        return session

    def resume_command(self, session_id: str, project_path: str | None = None) -> str:
        return f"cursor {shlex.quote(project_path)}" if project_path else "cursor ."
