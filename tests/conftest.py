"""Shared fixtures: an isolated ail home and a temp store."""

from datetime import datetime, timedelta, timezone

import pytest

from ailog.core.models import AgentKind, Message, Role, Session, ToolCall
from ailog.core.store import SessionStore

BASE_TIME = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def ail_home(tmp_path, monkeypatch):
    """Point every ail path at a temp directory."""
    import ailog.config as config

    home = tmp_path / ".ail"
    monkeypatch.setattr(config, "AIL_DIR", home)
    monkeypatch.setattr(config, "DB_PATH", home / "index.db")
    monkeypatch.setattr(config, "CONFIG_PATH", home / "config.toml")
    return home


@pytest.fixture
def store(tmp_path):
    s = SessionStore(db_path=tmp_path / "test.db")
    yield s
    s.close()


@pytest.fixture
def make_session():
    """Build a small two-turn session."""

    def _make(
        session_id: str = "s1",
        agent: AgentKind = AgentKind.CLAUDE_CODE,
        project_path: str | None = "/work/app",
        started_at: datetime | None = BASE_TIME,
        user: str = "Add a login page",
        assistant: str = "Implemented the login page.",
        tool_calls: list[ToolCall] | None = None,
        tags: list[str] | None = None,
    ) -> Session:
        messages = [
            Message(role=Role.USER, content=user, timestamp=started_at),
            Message(
                role=Role.ASSISTANT,
                content=assistant,
                timestamp=started_at + timedelta(minutes=5) if started_at else None,
            ),
        ]
        session = Session(
            id=session_id,
            agent=agent,
            project_path=project_path,
            messages=messages,
            tool_calls=tool_calls or [],
            tags=tags or [],
        )
        session.refresh_time_bounds()
        session.apply_summaries()
        return session

    return _make
