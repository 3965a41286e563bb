"""SQLite session index with FTS5 search over messages and session summaries."""

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from ailog.errors import QueryFailed, SessionNotFound, StorageUnavailable
from ailog.core.models import (
    Message,
    SearchHit,
    Session,
    SessionRecord,
    SessionStats,
    StoredMessage,
    StoredToolCall,
    ToolCall,
    normalize_tags,
)
from ailog.core.search import canonicalize_project
from ailog.core.timeutil import from_db_time, to_db_time

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS sessions (
    id TEXT PRIMARY KEY,
    agent TEXT NOT NULL,
    project_path TEXT,
    project_name TEXT,
    summary TEXT,
    work_summary TEXT,
    llm_summary TEXT,
    started_at TEXT,
    ended_at TEXT,
    message_count INTEGER NOT NULL DEFAULT 0,
    files_created INTEGER NOT NULL DEFAULT 0,
    files_modified INTEGER NOT NULL DEFAULT 0,
    files_deleted INTEGER NOT NULL DEFAULT 0,
    tags TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS messages (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    timestamp TEXT,
    files_changed TEXT NOT NULL DEFAULT '[]'
);

CREATE TABLE IF NOT EXISTS tool_calls (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id TEXT NOT NULL REFERENCES sessions(id) ON DELETE CASCADE,
    tool_name TEXT NOT NULL,
    file_path TEXT,
    timestamp TEXT
);

CREATE VIRTUAL TABLE IF NOT EXISTS messages_fts USING fts5(
    session_id UNINDEXED,
    role UNINDEXED,
    content,
    tokenize='unicode61'
);

CREATE VIRTUAL TABLE IF NOT EXISTS sessions_fts USING fts5(
    session_id UNINDEXED,
    summary,
    work_summary,
    project_name,
    tags,
    tokenize='unicode61'
);

CREATE INDEX IF NOT EXISTS idx_messages_session ON messages(session_id);
CREATE INDEX IF NOT EXISTS idx_tool_calls_session ON tool_calls(session_id);
CREATE INDEX IF NOT EXISTS idx_tool_calls_file ON tool_calls(file_path);
CREATE INDEX IF NOT EXISTS idx_sessions_agent ON sessions(agent);
CREATE INDEX IF NOT EXISTS idx_sessions_project ON sessions(project_path);
CREATE INDEX IF NOT EXISTS idx_sessions_started ON sessions(started_at);
"""

# Columns added after the first release; applied to older databases on open.
MIGRATIONS = {
    "llm_summary": "ALTER TABLE sessions ADD COLUMN llm_summary TEXT",
}

SESSION_COLUMNS = (
    "id, agent, project_path, project_name, summary, work_summary, llm_summary, "
    "started_at, ended_at, message_count, files_created, files_modified, files_deleted, tags"
)

# NULL start times sort after every real timestamp.
ORDER_BY_START = "ORDER BY s.started_at IS NULL, s.started_at DESC, s.id"


def _join_tags(tags: list[str]) -> str:
    return ",".join(tags)


def _split_tags(raw: str | None) -> list[str]:
    return normalize_tags((raw or "").split(","))


class SessionFilter:
    """Accumulates WHERE clauses and parameters for session queries."""

    def __init__(self, alias: str = "s"):
        self.alias = alias
        self.clauses: list[str] = []
        self.params: list = []

    def add(self, clause: str, *values) -> "SessionFilter":
        self.clauses.append(clause.format(a=self.alias))
        self.params.extend(values)
        return self

    def agent(self, agent: str | None) -> "SessionFilter":
        if agent:
            self.add("{a}.agent = ?", str(agent))
        return self

    def project(self, project_path: str | None) -> "SessionFilter":
        if project_path:
            self.add("{a}.project_path = ?", canonicalize_project(project_path))
        return self

    def started_between(self, date_from: datetime | None, date_to: datetime | None) -> "SessionFilter":
        if date_from is not None:
            self.add("{a}.started_at >= ?", to_db_time(date_from))
        if date_to is not None:
            self.add("{a}.started_at <= ?", to_db_time(date_to))
        return self

    def where(self, prefix: str = "WHERE") -> str:
        if not self.clauses:
            return ""
        return f"{prefix} " + " AND ".join(self.clauses)


class SessionStore:
    """SQLite-backed session index.

    The connection is opened lazily. Every write runs as one transaction so
    readers never see a half-replaced session.
    """

    def __init__(self, db_path: Path | None = None):
        if db_path is None:
            from ailog import config

            db_path = config.DB_PATH
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(str(self.db_path))
                conn.row_factory = sqlite3.Row
                conn.execute("PRAGMA foreign_keys = ON")
                conn.execute("PRAGMA journal_mode = WAL")
                conn.execute("PRAGMA synchronous = NORMAL")
                conn.executescript(SCHEMA)
                self._migrate(conn)
            except (OSError, sqlite3.Error) as exc:
                raise StorageUnavailable(self.db_path, exc) from exc
            self._conn = conn
        return self._conn

    @staticmethod
    def _migrate(conn: sqlite3.Connection) -> None:
        existing = {row["name"] for row in conn.execute("PRAGMA table_info(sessions)")}
        for column, statement in MIGRATIONS.items():
            if column not in existing:
                logger.info("migrating index: adding sessions.%s", column)
                conn.execute(statement)
        conn.commit()

    def open(self) -> "SessionStore":
        """Open the database now instead of on first use."""
        self._get_conn()
        return self

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> "SessionStore":
        return self.open()

    def __exit__(self, *exc_info) -> None:
        self.close()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        conn = self._get_conn()
        try:
            with conn:
                yield conn
        except sqlite3.IntegrityError as exc:
            raise QueryFailed(str(exc)) from exc
        except sqlite3.OperationalError as exc:
            raise QueryFailed(str(exc)) from exc

    def _query(self, sql: str, params: list | tuple = ()) -> list[sqlite3.Row]:
        try:
            return self._get_conn().execute(sql, params).fetchall()
        except (sqlite3.OperationalError, sqlite3.ProgrammingError) as exc:
            raise QueryFailed(str(exc)) from exc

    # ── Row conversion ───────────────────────────────────────────

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> SessionRecord:
        return SessionRecord(
            id=row["id"],
            agent=row["agent"],
            project_path=row["project_path"],
            project_name=row["project_name"],
            summary=row["summary"],
            work_summary=row["work_summary"],
            llm_summary=row["llm_summary"],
            started_at=from_db_time(row["started_at"]),
            ended_at=from_db_time(row["ended_at"]),
            message_count=row["message_count"],
            files_created=row["files_created"],
            files_modified=row["files_modified"],
            files_deleted=row["files_deleted"],
            tags=_split_tags(row["tags"]),
        )

    @staticmethod
    def _session_values(session: Session) -> dict:
        return {
            "id": session.id,
            "agent": session.agent.value,
            "project_path": session.project_path,
            "project_name": session.project_name,
            "summary": session.summary,
            "work_summary": session.work_summary,
            "llm_summary": session.llm_summary,
            "started_at": to_db_time(session.started_at),
            "ended_at": to_db_time(session.ended_at),
            "message_count": session.message_count,
            "files_created": session.files_created,
            "files_modified": session.files_modified,
            "files_deleted": session.files_deleted,
            "tags": _join_tags(session.tags),
        }

    # ── Writes ───────────────────────────────────────────────────

    @staticmethod
    def _insert_children(conn: sqlite3.Connection, session: Session) -> None:
        for message in session.messages:
            conn.execute(
                """INSERT INTO messages (session_id, role, content, timestamp, files_changed)
                VALUES (?, ?, ?, ?, ?)""",
                (
                    session.id,
                    message.role.value,
                    message.content,
                    to_db_time(message.timestamp),
                    json.dumps(message.files_changed),
                ),
            )
            conn.execute(
                "INSERT INTO messages_fts (session_id, role, content) VALUES (?, ?, ?)",
                (session.id, message.role.value, message.content),
            )
        for call in session.tool_calls:
            conn.execute(
                """INSERT INTO tool_calls (session_id, tool_name, file_path, timestamp)
                VALUES (?, ?, ?, ?)""",
                (session.id, call.tool_name, call.file_path, to_db_time(call.timestamp)),
            )

    @staticmethod
    def _write_session_fts(conn: sqlite3.Connection, session_id: str) -> None:
        conn.execute("DELETE FROM sessions_fts WHERE session_id = ?", (session_id,))
        conn.execute(
            """INSERT INTO sessions_fts (session_id, summary, work_summary, project_name, tags)
            SELECT id, COALESCE(summary, ''), COALESCE(work_summary, ''),
                   COALESCE(project_name, ''), REPLACE(tags, ',', ' ')
            FROM sessions WHERE id = ?""",
            (session_id,),
        )

    def insert_session(self, session: Session) -> None:
        """Insert a new session with its messages, tool calls and FTS rows.

        The id must not exist yet; use ``update_session`` for known ids.
        """
        values = self._session_values(session)
        with self._transaction() as conn:
            conn.execute(
                f"INSERT INTO sessions ({SESSION_COLUMNS}) VALUES "
                "(:id, :agent, :project_path, :project_name, :summary, :work_summary, "
                ":llm_summary, :started_at, :ended_at, :message_count, :files_created, "
                ":files_modified, :files_deleted, :tags)",
                values,
            )
            self._insert_children(conn, session)
            self._write_session_fts(conn, session.id)

    def update_session(self, session: Session) -> None:
        """Replace a stored session's metadata, messages and tool calls.

        Tags and the LLM summary already stored are kept.
        """
        values = self._session_values(session)
        with self._transaction() as conn:
            cursor = conn.execute(
                """UPDATE sessions SET
                    project_path = :project_path,
                    project_name = :project_name,
                    summary = :summary,
                    work_summary = :work_summary,
                    started_at = :started_at,
                    ended_at = :ended_at,
                    message_count = :message_count,
                    files_created = :files_created,
                    files_modified = :files_modified,
                    files_deleted = :files_deleted
                WHERE id = :id""",
                values,
            )
            if cursor.rowcount == 0:
                raise SessionNotFound(session.id)
            conn.execute("DELETE FROM messages_fts WHERE session_id = ?", (session.id,))
            conn.execute("DELETE FROM messages WHERE session_id = ?", (session.id,))
            conn.execute("DELETE FROM tool_calls WHERE session_id = ?", (session.id,))
            self._insert_children(conn, session)
            self._write_session_fts(conn, session.id)

    @staticmethod
    def _delete_rows(conn: sqlite3.Connection, session_id: str) -> int:
        conn.execute("DELETE FROM messages_fts WHERE session_id = ?", (session_id,))
        conn.execute("DELETE FROM sessions_fts WHERE session_id = ?", (session_id,))
        conn.execute("DELETE FROM tool_calls WHERE session_id = ?", (session_id,))
        conn.execute("DELETE FROM messages WHERE session_id = ?", (session_id,))
        cursor = conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
        return cursor.rowcount

    def delete_session(self, session_id: str) -> bool:
        """Delete a session and everything that hangs off it."""
        with self._transaction() as conn:
            return self._delete_rows(conn, session_id) > 0

    def delete_agent_sessions(self, agent: str) -> int:
        """Delete every session recorded by one agent."""
        rows = self._query("SELECT id FROM sessions WHERE agent = ?", (agent,))
        with self._transaction() as conn:
            return sum(self._delete_rows(conn, row["id"]) for row in rows)

    def clear(self) -> None:
        """Remove every session. Used for full rebuilds."""
        with self._transaction() as conn:
            for table in ("messages_fts", "sessions_fts", "tool_calls", "messages", "sessions"):
                conn.execute(f"DELETE FROM {table}")

    def update_llm_summary(self, session_id: str, llm_summary: str) -> None:
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE sessions SET llm_summary = ? WHERE id = ?", (llm_summary, session_id)
            )
            if cursor.rowcount == 0:
                raise SessionNotFound(session_id)

    # ── Lookups ──────────────────────────────────────────────────

    def session_exists(self, session_id: str) -> bool:
        rows = self._query("SELECT 1 FROM sessions WHERE id = ?", (session_id,))
        return bool(rows)

    def session_message_count(self, session_id: str) -> int | None:
        rows = self._query("SELECT message_count FROM sessions WHERE id = ?", (session_id,))
        return rows[0]["message_count"] if rows else None

    def count_sessions(self) -> int:
        return self._query("SELECT COUNT(*) AS n FROM sessions")[0]["n"]

    def get_session(self, session_id: str) -> SessionRecord | None:
        rows = self._query(f"SELECT {SESSION_COLUMNS} FROM sessions WHERE id = ?", (session_id,))
        return self._row_to_record(rows[0]) if rows else None

    def get_messages(self, session_id: str) -> list[StoredMessage]:
        rows = self._query(
            """SELECT id, session_id, role, content, timestamp, files_changed
            FROM messages WHERE session_id = ? ORDER BY id ASC""",
            (session_id,),
        )
        return [
            StoredMessage(
                id=row["id"],
                session_id=row["session_id"],
                role=row["role"],
                content=row["content"],
                timestamp=from_db_time(row["timestamp"]),
                files_changed=json.loads(row["files_changed"] or "[]"),
            )
            for row in rows
        ]

    def get_tool_calls(self, session_id: str) -> list[StoredToolCall]:
        rows = self._query(
            """SELECT id, session_id, tool_name, file_path, timestamp
            FROM tool_calls WHERE session_id = ? ORDER BY id ASC""",
            (session_id,),
        )
        return [
            StoredToolCall(
                id=row["id"],
                session_id=row["session_id"],
                tool_name=row["tool_name"],
                file_path=row["file_path"],
                timestamp=from_db_time(row["timestamp"]),
            )
            for row in rows
        ]

    def load_session(self, session_id: str) -> Session | None:
        """Rebuild the full normalized session from the index."""
        record = self.get_session(session_id)
        if record is None:
            return None
        return Session(
            id=record.id,
            agent=record.agent,
            project_path=record.project_path,
            project_name=record.project_name,
            summary=record.summary,
            work_summary=record.work_summary,
            llm_summary=record.llm_summary,
            started_at=record.started_at,
            ended_at=record.ended_at,
            messages=[
                Message(
                    role=m.role,
                    content=m.content,
                    timestamp=m.timestamp,
                    files_changed=m.files_changed,
                )
                for m in self.get_messages(session_id)
            ],
            tool_calls=[
                ToolCall(tool_name=c.tool_name, file_path=c.file_path, timestamp=c.timestamp)
                for c in self.get_tool_calls(session_id)
            ],
            tags=record.tags,
        )

    # ── Queries ──────────────────────────────────────────────────

    def list_sessions(
        self,
        agent: str | None = None,
        project_path: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int = 100,
    ) -> list[SessionRecord]:
        """Sessions newest first, relative project paths resolved against the cwd."""
        filters = SessionFilter().agent(agent).project(project_path).started_between(date_from, date_to)
        rows = self._query(
            f"SELECT s.* FROM sessions s {filters.where()} {ORDER_BY_START} LIMIT ?",
            [*filters.params, max(int(limit), 0)],
        )
        return [self._row_to_record(r) for r in rows]

    def search_messages(
        self,
        keyword: str,
        agent: str | None = None,
        project_path: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        limit: int = 50,
    ) -> list[SearchHit]:
        """Full-text search over message content, best matches first."""
        if not keyword or not keyword.strip():
            return []
        filters = SessionFilter().agent(agent).project(project_path).started_between(date_from, date_to)
        rows = self._query(
            f"""SELECT mf.session_id, s.agent, s.project_name, s.project_path,
                   mf.role, mf.content, s.summary, s.started_at
            FROM messages_fts mf
            JOIN sessions s ON s.id = mf.session_id
            WHERE messages_fts MATCH ? {filters.where("AND")}
            ORDER BY bm25(messages_fts)
            LIMIT ?""",
            [keyword, *filters.params, max(int(limit), 0)],
        )
        return [
            SearchHit(
                session_id=row["session_id"],
                agent=row["agent"],
                project_name=row["project_name"],
                project_path=row["project_path"],
                role=row["role"],
                content=row["content"],
                summary=row["summary"],
                started_at=from_db_time(row["started_at"]),
            )
            for row in rows
        ]

    def search_sessions(
        self,
        keyword: str,
        agent: str | None = None,
        limit: int = 50,
    ) -> list[SessionRecord]:
        """Full-text search over summaries, project names and tags."""
        if not keyword or not keyword.strip():
            return []
        filters = SessionFilter().agent(agent)
        rows = self._query(
            f"""SELECT s.* FROM sessions_fts sf
            JOIN sessions s ON s.id = sf.session_id
            WHERE sessions_fts MATCH ? {filters.where("AND")}
            ORDER BY bm25(sessions_fts)
            LIMIT ?""",
            [keyword, *filters.params, max(int(limit), 0)],
        )
        return [self._row_to_record(r) for r in rows]

    def search_by_file(self, path_fragment: str, limit: int = 50) -> list[SessionRecord]:
        """Sessions with a tool call whose file path contains the fragment."""
        if not path_fragment:
            return []
        rows = self._query(
            f"""SELECT s.* FROM sessions s
            WHERE s.id IN (
                SELECT tc.session_id FROM tool_calls tc
                WHERE tc.file_path IS NOT NULL AND instr(tc.file_path, ?) > 0
            )
            {ORDER_BY_START}
            LIMIT ?""",
            (path_fragment, max(int(limit), 0)),
        )
        return [self._row_to_record(r) for r in rows]

    def get_tags(self, session_id: str) -> list[str]:
        rows = self._query("SELECT tags FROM sessions WHERE id = ?", (session_id,))
        return _split_tags(rows[0]["tags"]) if rows else []

    def set_tags(self, session_id: str, tags: list[str]) -> list[str]:
        """Replace a session's tags and refresh its search row."""
        tags = normalize_tags(tags)
        with self._transaction() as conn:
            cursor = conn.execute(
                "UPDATE sessions SET tags = ? WHERE id = ?", (_join_tags(tags), session_id)
            )
            if cursor.rowcount == 0:
                raise SessionNotFound(session_id)
            self._write_session_fts(conn, session_id)
        return tags

    def get_stats(
        self,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
        project_path: str | None = None,
        files_from: datetime | None = None,
        files_to: datetime | None = None,
    ) -> SessionStats:
        """Aggregate counts over the filtered sessions.

        The top-files window applies to tool call timestamps and defaults to
        the session window.
        """
        filters = SessionFilter().started_between(date_from, date_to).project(project_path)
        where, params = filters.where(), filters.params

        total = self._query(f"SELECT COUNT(*) AS n FROM sessions s {where}", params)[0]["n"]
        by_agent = self._query(
            f"""SELECT s.agent AS name, COUNT(*) AS n FROM sessions s {where}
            GROUP BY s.agent ORDER BY n DESC, name""",
            params,
        )
        by_project = self._query(
            f"""SELECT COALESCE(s.project_name, 'unknown') AS name, COUNT(*) AS n
            FROM sessions s {where}
            GROUP BY name ORDER BY n DESC, name""",
            params,
        )
        totals = self._query(
            f"""SELECT COALESCE(SUM(s.files_created), 0) AS created,
                   COALESCE(SUM(s.files_modified), 0) AS modified,
                   COALESCE(SUM(s.files_deleted), 0) AS deleted
            FROM sessions s {where}""",
            params,
        )[0]

        files_from = files_from if files_from is not None else date_from
        files_to = files_to if files_to is not None else date_to
        file_filter = SessionFilter("tc").add("{a}.file_path IS NOT NULL")
        if files_from is not None:
            file_filter.add("{a}.timestamp >= ?", to_db_time(files_from))
        if files_to is not None:
            file_filter.add("{a}.timestamp <= ?", to_db_time(files_to))
        if project_path:
            file_filter.add("s.project_path = ?", canonicalize_project(project_path))
        top_files = self._query(
            f"""SELECT tc.file_path AS name, COUNT(*) AS n
            FROM tool_calls tc JOIN sessions s ON s.id = tc.session_id
            {file_filter.where()}
            GROUP BY tc.file_path ORDER BY n DESC, name LIMIT 10""",
            file_filter.params,
        )

        return SessionStats(
            total_sessions=total,
            sessions_by_agent=[(r["name"], r["n"]) for r in by_agent],
            sessions_by_project=[(r["name"], r["n"]) for r in by_project],
            total_files_created=totals["created"],
            total_files_modified=totals["modified"],
            total_files_deleted=totals["deleted"],
            most_modified_files=[(r["name"], r["n"]) for r in top_files],
        )

    def clean_sessions(self, before: datetime, agent: str | None = None) -> int:
        """Delete sessions that started strictly before ``before``."""
        filters = SessionFilter().add("{a}.started_at < ?", to_db_time(before)).agent(agent)
        rows = self._query(f"SELECT s.id FROM sessions s {filters.where()}", filters.params)
        removed = 0
        for row in rows:
            if self.delete_session(row["id"]):
                removed += 1
        return removed
