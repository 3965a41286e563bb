"""Tests for LLM summaries, using a stub client in place of the API."""

from types import SimpleNamespace

import pytest

from ailog.config import SummarizeConfig
from ailog.core.llm import build_session_text, resolve_api_key, summarize_sessions
from ailog.errors import SummarizeError


class StubClient:
    """Mimics ``anthropic.Anthropic().messages.create``."""

    def __init__(self, replies):
        self.replies = list(replies)
        self.calls = []
        self.messages = self

    def create(self, **kwargs):
        self.calls.append(kwargs)
        text = self.replies.pop(0)
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=text)])


class TestApiKey:
    def test_config_key_wins(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "env-key")
        assert resolve_api_key(SummarizeConfig(api_key="cfg-key")) == "cfg-key"

    def test_env_key(self, monkeypatch):
        monkeypatch.setenv("ANTHROPIC_API_KEY", "env-key")
        assert resolve_api_key(SummarizeConfig()) == "env-key"

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with pytest.raises(SummarizeError):
            resolve_api_key(SummarizeConfig())


class TestSummarize:
    def test_session_text(self, store, make_session):
        store.insert_session(make_session())
        text = build_session_text(store, store.get_session("s1"))
        assert "Project: app" in text
        assert "User: Add a login page" in text
        assert "AI: Implemented the login page." in text

    def test_fills_missing_summaries(self, store, make_session):
        store.insert_session(make_session("s1"))
        store.insert_session(make_session("s2"))
        store.update_llm_summary("s2", "Already done")
        client = StubClient(["Built the login page"])

        records = store.list_sessions()
        done = summarize_sessions(store, records, SummarizeConfig(max_input_chars=50), client=client)

        assert done == 1
        assert len(client.calls) == 1
        assert client.calls[0]["model"] == SummarizeConfig().model
        assert store.get_session("s1").llm_summary == "Built the login page"
        assert store.get_session("s2").llm_summary == "Already done"

    def test_empty_reply_skips_session(self, store, make_session, caplog):
        store.insert_session(make_session("s1"))
        store.insert_session(make_session("s2"))
        client = StubClient(["   ", "Second summary"])

        done = summarize_sessions(store, store.list_sessions(), SummarizeConfig(), client=client)

        assert done == 1
        summaries = {r.id: r.llm_summary for r in store.list_sessions()}
        assert sorted(v for v in summaries.values() if v) == ["Second summary"]
        assert "failed to summarize" in caplog.text

    def test_nothing_pending_needs_no_client(self, store, make_session):
        store.insert_session(make_session())
        store.update_llm_summary("s1", "done")
        assert summarize_sessions(store, store.list_sessions(), SummarizeConfig()) == 0
