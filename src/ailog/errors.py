"""Exception types shared across ail."""

from pathlib import Path


class AilError(Exception):
    """Base class for all ail errors."""


class StorageUnavailable(AilError):
    """The index database could not be created or opened."""

    def __init__(self, path: Path, cause: Exception | None = None):
        self.path = path
        self.cause = cause
        message = f"Cannot open index database at {path}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class QueryFailed(AilError):
    """A query or write was rejected by the store."""


class SessionNotFound(AilError):
    """An operation required a session that is not in the index."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class AdapterScanFailed(AilError):
    """A single session file could not be parsed."""

    def __init__(self, agent: str, path: Path, cause: Exception):
        self.agent = agent
        self.path = path
        self.cause = cause
        super().__init__(f"Failed to parse {agent} session {path}: {cause}")


class ConfigError(AilError):
    """The configuration file is invalid."""


class SummarizeError(AilError):
    """LLM summarization could not be set up."""
