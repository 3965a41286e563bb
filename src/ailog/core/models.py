"""Normalized session data models shared by adapters, store and queries."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator, model_validator

from ailog.core.keywords import CREATE_TOOLS, DELETE_TOOLS, MODIFY_TOOLS
from ailog.core.timeutil import ensure_utc


class AgentKind(str, Enum):
    """The coding assistants ail knows how to read."""

    CLAUDE_CODE = "claude-code"
    CODEX = "codex"
    CURSOR = "cursor"

    @property
    def display_name(self) -> str:
        return {
            AgentKind.CLAUDE_CODE: "Claude Code",
            AgentKind.CODEX: "Codex",
            AgentKind.CURSOR: "Cursor",
        }[self]

    @classmethod
    def parse(cls, text: str) -> "AgentKind | None":
        aliases = {
            "claude-code": cls.CLAUDE_CODE,
            "claude_code": cls.CLAUDE_CODE,
            "claude": cls.CLAUDE_CODE,
            "codex": cls.CODEX,
            "cursor": cls.CURSOR,
        }
        return aliases.get(text.strip().lower())

    def __str__(self) -> str:
        return self.value


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"

    @classmethod
    def parse(cls, text: str) -> "Role":
        lowered = text.strip().lower()
        if lowered == "user":
            return cls.USER
        if lowered == "assistant":
            return cls.ASSISTANT
        return cls.TOOL

    def __str__(self) -> str:
        return self.value


def _utc(value: datetime | None) -> datetime | None:
    return ensure_utc(value) if value is not None else None


def change_type(tool_name: str) -> str:
    """Classify a tool invocation as created/modified/deleted/other."""
    if tool_name in CREATE_TOOLS:
        return "created"
    if tool_name in MODIFY_TOOLS:
        return "modified"
    if tool_name in DELETE_TOOLS:
        return "deleted"
    return "other"


class Message(BaseModel):
    """One conversation turn."""

    role: Role
    content: str = ""
    timestamp: datetime | None = None
    files_changed: list[str] = Field(default_factory=list)

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime | None) -> datetime | None:
        return _utc(value)


class ToolCall(BaseModel):
    """One tool invocation made by the assistant."""

    tool_name: str
    file_path: str | None = None
    timestamp: datetime | None = None

    @field_validator("timestamp")
    @classmethod
    def _normalize_timestamp(cls, value: datetime | None) -> datetime | None:
        return _utc(value)


class FileChange(BaseModel):
    path: str
    change_type: str


def normalize_tags(tags: list[str]) -> list[str]:
    """Trim, split on commas and de-duplicate, keeping first occurrence order."""
    seen: list[str] = []
    for tag in tags:
        for part in str(tag).split(","):
            part = part.strip()
            if part and part not in seen:
                seen.append(part)
    return seen


def project_name_for(project_path: str | None) -> str | None:
    if not project_path:
        return None
    name = project_path.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]
    return name or None


class Session(BaseModel):
    """A single transcript with one coding assistant."""

    id: str
    agent: AgentKind
    project_path: str | None = None
    project_name: str | None = None
    summary: str | None = None
    work_summary: str | None = None
    llm_summary: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    messages: list[Message] = Field(default_factory=list)
    tool_calls: list[ToolCall] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)

    @field_validator("started_at", "ended_at")
    @classmethod
    def _normalize_bounds(cls, value: datetime | None) -> datetime | None:
        return _utc(value)

    @field_validator("tags")
    @classmethod
    def _normalize_tags(cls, value: list[str]) -> list[str]:
        return normalize_tags(value)

    @model_validator(mode="after")
    def _derive_project_name(self) -> "Session":
        if self.project_name is None:
            self.project_name = project_name_for(self.project_path)
        return self

    @property
    def message_count(self) -> int:
        return len(self.messages)

    def _count_tools(self, names: frozenset) -> int:
        return sum(1 for call in self.tool_calls if call.tool_name in names)

    @property
    def files_created(self) -> int:
        return self._count_tools(CREATE_TOOLS)

    @property
    def files_modified(self) -> int:
        return self._count_tools(MODIFY_TOOLS)

    @property
    def files_deleted(self) -> int:
        return self._count_tools(DELETE_TOOLS)

    def first_user_message(self) -> str | None:
        for message in self.messages:
            if message.role == Role.USER:
                return message.content
        return None

    def last_assistant_message(self) -> str | None:
        for message in reversed(self.messages):
            if message.role == Role.ASSISTANT and message.content.strip():
                return message.content
        return None

    def changed_files(self) -> list[FileChange]:
        """Unique touched paths in first-seen order."""
        return changed_files(self.tool_calls)

    def refresh_time_bounds(self) -> None:
        """Set started_at/ended_at from the observed timestamps."""
        stamps = [m.timestamp for m in self.messages if m.timestamp is not None]
        stamps += [c.timestamp for c in self.tool_calls if c.timestamp is not None]
        if stamps:
            self.started_at = min(stamps)
            self.ended_at = max(stamps)

    def apply_summaries(self) -> None:
        """Recompute the rule-based request and work summaries."""
        from ailog.core.summarize import summarize

        self.summary, self.work_summary = summarize(self)


def changed_files(tool_calls) -> list[FileChange]:
    files: list[FileChange] = []
    seen: set[str] = set()
    for call in tool_calls:
        if call.file_path and call.file_path not in seen:
            seen.add(call.file_path)
            files.append(FileChange(path=call.file_path, change_type=change_type(call.tool_name)))
    return files


class SessionRecord(BaseModel):
    """A session row as stored in the index, without its messages."""

    id: str
    agent: str
    project_path: str | None = None
    project_name: str | None = None
    summary: str | None = None
    work_summary: str | None = None
    llm_summary: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    message_count: int = 0
    files_created: int = 0
    files_modified: int = 0
    files_deleted: int = 0
    tags: list[str] = Field(default_factory=list)


class StoredMessage(BaseModel):
    id: int
    session_id: str
    role: Role
    content: str
    timestamp: datetime | None = None
    files_changed: list[str] = Field(default_factory=list)


class StoredToolCall(BaseModel):
    id: int
    session_id: str
    tool_name: str
    file_path: str | None = None
    timestamp: datetime | None = None


class SearchHit(BaseModel):
    """One matching message joined with its session's metadata."""

    session_id: str
    agent: str
    project_name: str | None = None
    project_path: str | None = None
    role: str
    content: str
    summary: str | None = None
    started_at: datetime | None = None


class SessionStats(BaseModel):
    total_sessions: int = 0
    sessions_by_agent: list[tuple[str, int]] = Field(default_factory=list)
    sessions_by_project: list[tuple[str, int]] = Field(default_factory=list)
    total_files_created: int = 0
    total_files_modified: int = 0
    total_files_deleted: int = 0
    most_modified_files: list[tuple[str, int]] = Field(default_factory=list)
