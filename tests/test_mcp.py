"""Tests for MCP server tools."""

import pytest

from ailog.core.models import ToolCall
from ailog.core.store import SessionStore


@pytest.fixture(autouse=True)
def mock_store(tmp_path, monkeypatch, make_session):
    """Replace the MCP server's store with a temp one holding one session."""
    store = SessionStore(db_path=tmp_path / "mcp.db")
    store.insert_session(
        make_session(
            tool_calls=[
                ToolCall(tool_name="Write", file_path="src/login.py"),
                ToolCall(tool_name="Edit", file_path="src/app.py"),
            ]
        )
    )

    import ailog.mcp.server as server_mod

    monkeypatch.setattr(server_mod, "store", store)
    yield store
    store.close()


class TestSearchTools:
    def test_keyword_search(self):
        from ailog.mcp.server import search_sessions

        results = search_sessions(keyword="login")
        assert len(results) == 2
        assert results[0]["session_id"] == "s1"
        assert "content_preview" in results[0]

    def test_listing_without_keyword(self):
        from ailog.mcp.server import search_sessions

        results = search_sessions()
        assert results[0]["id"] == "s1"
        assert results[0]["summary"] == "Add a login page"
        assert results[0]["message_count"] == 2

    def test_filters(self):
        from ailog.mcp.server import search_sessions

        assert search_sessions(agent="codex") == []
        assert search_sessions(date_from="2026-04-01") == []
        assert len(search_sessions(project="/work/app")) == 1


class TestSessionTools:
    def test_history(self):
        from ailog.mcp.server import get_session_history

        history = get_session_history("s1")
        assert [m["role"] for m in history] == ["user", "assistant"]
        assert history[0]["timestamp"].startswith("2026-03-10T09:00:00")

    def test_changed_files(self):
        from ailog.mcp.server import get_changed_files

        assert get_changed_files("s1") == [
            {"path": "src/login.py", "change_type": "created"},
            {"path": "src/app.py", "change_type": "modified"},
        ]

    def test_summary(self):
        from ailog.mcp.server import get_session_summary

        summary = get_session_summary("s1")
        assert summary["id"] == "s1"
        assert summary["agent"] == "claude-code"
        assert summary["files_created"] == 1
        assert get_session_summary("nope") == "Session nope not found"

    def test_full_session(self):
        from ailog.mcp.server import get_full_session

        full = get_full_session("s1")
        assert len(full["messages"]) == 2
        assert len(full["files_changed"]) == 2
        assert get_full_session("nope") == "Session nope not found"

    def test_export_context(self):
        from ailog.mcp.server import export_context

        text = export_context("s1", detail="minimal")
        assert text.startswith("# Session Context")
        assert "Conversation" not in text
        assert "not found" in export_context("nope")


class TestStatsAndTags:
    def test_stats(self):
        from ailog.mcp.server import get_stats

        stats = get_stats()
        assert stats["total_sessions"] == 1
        assert stats["files_created"] == 1
        assert get_stats(date_from="2027-01-01")["total_sessions"] == 0

    def test_tag_session(self, mock_store):
        from ailog.mcp.server import tag_session

        assert tag_session("s1", add=["auth", "ui"]) == {"id": "s1", "tags": ["auth", "ui"]}
        assert tag_session("s1", remove=["ui"]) == {"id": "s1", "tags": ["auth"]}
        assert mock_store.get_tags("s1") == ["auth"]
        assert "not found" in tag_session("nope", add=["x"])
