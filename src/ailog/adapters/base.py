"""Shared adapter interface for reading an agent's on-disk session logs."""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterator

from ailog.config import AGENT_DATA_DIRS
from ailog.errors import AdapterScanFailed
from ailog.core.models import AgentKind, Session
from ailog.core.timeutil import parse_datetime

logger = logging.getLogger(__name__)

MAX_SESSION_FILE_BYTES = 10 * 1024 * 1024


class AgentAdapter(ABC):
    """Translates one agent's log format into normalized sessions."""

    kind: AgentKind

    def __init__(self, data_dir: Path | None = None):
        self.data_dir = Path(data_dir) if data_dir else AGENT_DATA_DIRS[self.kind.value]
        self.scan_errors: list[AdapterScanFailed] = []

    def is_installed(self) -> bool:
        return self.data_dir.exists()

    @abstractmethod
    def session_files(self) -> Iterator[Path]:
        """Yield candidate session files in a stable order."""

    @abstractmethod
    def parse_session_file(self, path: Path) -> Session | None:
        """Parse one file. Raises AdapterScanFailed when it cannot be read."""

    @abstractmethod
    def resume_command(self, session_id: str, project_path: str | None = None) -> str:
        """Shell command that reopens the session in its agent."""

    def session_id_for(self, path: Path) -> str:
        return path.stem

    def scan_sessions(self) -> Iterator[Session]:
        """Lazily parse every session, skipping broken files.

        Failures are logged and collected in ``scan_errors``; sessions without
        messages are dropped.
        """
        self.scan_errors = []
        if not self.is_installed():
            return
        for path in self.session_files():
            try:
                session = self.parse_session_file(path)
            except AdapterScanFailed as exc:
                logger.warning("%s", exc)
                self.scan_errors.append(exc)
                continue
            if session is None or not session.messages:
                logger.debug("no messages in %s", path)
                continue
            yield session

    def get_session(self, session_id: str) -> Session | None:
        for path in self.session_files():
            if self.session_id_for(path) == session_id:
                return self.parse_session_file(path)
        return None

    # ── Parsing helpers ──────────────────────────────────────────

    def _fail(self, path: Path, cause: Exception) -> AdapterScanFailed:
        return AdapterScanFailed(self.kind.value, path, cause)

    def read_text(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise self._fail(path, exc) from exc

    def json_lines(self, path: Path, text: str) -> list[dict]:
        """Decode JSONL records, skipping malformed lines.

        A non-empty file with no decodable record at all is a scan failure.
        """
        records: list[dict] = []
        bad = 0
        for line in text.splitlines():
            if not line.strip():
                continue
            try:
                value = json.loads(line)
            except json.JSONDecodeError:
                bad += 1
                continue
            if isinstance(value, dict):
                records.append(value)
        if bad and not records:
            raise self._fail(path, ValueError("no valid JSON records"))
        if bad:
            logger.debug("skipped %d malformed lines in %s", bad, path)
        return records


def too_large(path: Path) -> bool:
    try:
        size = path.stat().st_size
    except OSError:
        return False
    if size > MAX_SESSION_FILE_BYTES:
        logger.warning("skipping large session file (%.1fMB): %s", size / 1_048_576, path.name)
        return True
    return False


def record_time(record: dict):
    raw = record.get("timestamp")
    if isinstance(raw, str):
        return parse_datetime(raw)
    return None


def text_from_content(content) -> str:
    """Join the text parts of a message content value (string or block list)."""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type") in ("text", "input_text", "output_text"):
                text = block.get("text")
                if isinstance(text, str):
                    parts.append(text)
        return "\n".join(parts)
    return ""
