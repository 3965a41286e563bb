"""Search options and query helpers shared by the CLI and the MCP server."""

import os
from dataclasses import dataclass
from datetime import datetime

from ailog.core.models import SearchHit, SessionRecord


def canonicalize_project(path: str, base: str | None = None) -> str:
    """Absolute, normalized form of a project path.

    Relative paths are resolved against ``base`` when given, otherwise against
    the current working directory. Symlinks are left alone so the result
    compares equal to paths recorded by the agents.
    """
    expanded = os.path.expanduser(path)
    if base is not None and not os.path.isabs(expanded):
        expanded = os.path.join(os.path.expanduser(base), expanded)
    return os.path.normpath(os.path.abspath(expanded))


@dataclass
class SearchOptions:
    keyword: str | None = None
    agent: str | None = None
    project: str | None = None
    date_from: datetime | None = None
    date_to: datetime | None = None
    file: str | None = None
    limit: int = 100
    base: str | None = None

    def project_path(self) -> str | None:
        if not self.project:
            return None
        return canonicalize_project(self.project, self.base)


def list_sessions(store, opts: SearchOptions) -> list[SessionRecord]:
    return store.list_sessions(
        agent=opts.agent,
        project_path=opts.project_path(),
        date_from=opts.date_from,
        date_to=opts.date_to,
        limit=opts.limit,
    )


def search_history(store, opts: SearchOptions) -> list[SearchHit]:
    """Keyword search over messages. No keyword means no results."""
    if not opts.keyword:
        return []
    return store.search_messages(
        opts.keyword,
        agent=opts.agent,
        project_path=opts.project_path(),
        date_from=opts.date_from,
        date_to=opts.date_to,
        limit=opts.limit,
    )


def search_by_file(store, file_path: str, limit: int = 100) -> list[SessionRecord]:
    return store.search_by_file(file_path, limit=limit)


def find_sessions(store, opts: SearchOptions) -> list[SessionRecord]:
    """Resolve options to a session list: by file, by keyword, or plain listing."""
    if opts.file:
        return search_by_file(store, opts.file, opts.limit)
    if opts.keyword:
        seen: dict[str, SessionRecord] = {}
        for hit in search_history(store, opts):
            if hit.session_id not in seen:
                record = store.get_session(hit.session_id)
                if record is not None:
                    seen[hit.session_id] = record
        return list(seen.values())
    return list_sessions(store, opts)
