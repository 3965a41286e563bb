"""Tests for the ail command line."""

import json
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from typer.testing import CliRunner

import ailog.config as config
from ailog import __version__
from ailog.cli import app
from ailog.core.models import AgentKind, ToolCall
from ailog.core.store import SessionStore

runner = CliRunner()


@pytest.fixture
def indexed(ail_home, make_session):
    """An index at the default location holding a recent and an old session."""
    now = datetime.now(timezone.utc).replace(microsecond=0)
    with SessionStore(config.DB_PATH) as store:
        store.insert_session(
            make_session(
                "recent-session",
                started_at=now - timedelta(hours=2),
                tool_calls=[ToolCall(tool_name="Write", file_path="/work/app/login.py")],
            )
        )
        store.insert_session(
            make_session(
                "old-session",
                agent=AgentKind.CODEX,
                project_path="/work/api",
                started_at=now - timedelta(days=60),
                user="Tune the cache",
                assistant="Cache tuned.",
            )
        )
    return config.DB_PATH


def _json(result) -> object:
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


class TestBasics:
    def test_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_creates_ail_dir(self, ail_home):
        runner.invoke(app, ["list"])
        assert ail_home.is_dir()

    def test_empty_list(self, ail_home):
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "No sessions found" in result.stdout


class TestBrowse:
    def test_list_json(self, indexed):
        data = _json(runner.invoke(app, ["--json", "list"]))
        assert [s["id"] for s in data] == ["recent-session", "old-session"]

    def test_list_filters(self, indexed):
        assert [s["id"] for s in _json(runner.invoke(app, ["--json", "list", "-a", "codex"]))] == ["old-session"]
        assert [s["id"] for s in _json(runner.invoke(app, ["--json", "list", "--last", "7d"]))] == ["recent-session"]
        assert [s["id"] for s in _json(runner.invoke(app, ["--json", "list", "-q", "cache"]))] == ["old-session"]

    def test_list_table(self, indexed):
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 0
        assert "recent-s" in result.stdout

    def test_unknown_agent(self, indexed):
        result = runner.invoke(app, ["list", "-a", "windsurf"])
        assert result.exit_code == 1

    def test_bad_duration(self, indexed):
        result = runner.invoke(app, ["list", "--last", "soon"])
        assert result.exit_code == 1

    def test_history_requires_keyword_or_file(self, indexed):
        result = runner.invoke(app, ["history"])
        assert result.exit_code == 1

    def test_history_keyword_and_file(self, indexed):
        hits = _json(runner.invoke(app, ["--json", "history", "-k", "login"]))
        assert {h["session_id"] for h in hits} == {"recent-session"}
        files = _json(runner.invoke(app, ["--json", "history", "--file", "login.py"]))
        assert [s["id"] for s in files] == ["recent-session"]

    def test_show(self, indexed):
        result = runner.invoke(app, ["show", "recent-session"])
        assert result.exit_code == 0
        assert "Add a login page" in result.stdout

        changes = _json(runner.invoke(app, ["--json", "show", "recent-session", "--files"]))
        assert changes == [{"path": "/work/app/login.py", "change_type": "created"}]

    def test_show_missing(self, indexed):
        result = runner.invoke(app, ["show", "nope"])
        assert result.exit_code == 1

    def test_stats(self, indexed):
        data = _json(runner.invoke(app, ["--json", "stats"]))
        assert data["total_sessions"] == 2
        data = _json(runner.invoke(app, ["--json", "stats", "--last", "7d"]))
        assert data["total_sessions"] == 1


class TestMutations:
    def test_tag_add_and_remove(self, indexed):
        data = _json(runner.invoke(app, ["--json", "tag", "recent-session", "auth", "ui"]))
        assert data["tags"] == ["auth", "ui"]
        data = _json(runner.invoke(app, ["--json", "tag", "recent-session", "ui", "--remove"]))
        assert data["tags"] == ["auth"]

    def test_tag_missing_session(self, indexed):
        result = runner.invoke(app, ["tag", "nope", "x"])
        assert result.exit_code == 1

    def test_clean(self, indexed):
        data = _json(runner.invoke(app, ["--json", "clean", "--older-than", "30d"]))
        assert data == {"removed": 1}
        with SessionStore(indexed) as store:
            assert store.session_exists("recent-session")
            assert not store.session_exists("old-session")

    def test_clean_requires_duration(self, indexed):
        assert runner.invoke(app, ["clean"]).exit_code == 1


class TestContextCommands:
    def test_export(self, indexed, tmp_path):
        result = runner.invoke(app, ["export", "recent-session", "--detail", "minimal"])
        assert result.exit_code == 0
        assert result.stdout.startswith("# Session Context")

        out = tmp_path / "ctx.md"
        result = runner.invoke(app, ["export", "recent-session", "-o", str(out)])
        assert result.exit_code == 0
        assert "## Recent Conversation" in out.read_text()

    def test_export_missing(self, indexed):
        assert runner.invoke(app, ["export", "nope"]).exit_code == 1

    def test_inject(self, indexed, tmp_path):
        result = runner.invoke(app, ["inject", "recent-session", "--path", str(tmp_path)])
        assert result.exit_code == 0
        assert "ail:context:start" in (tmp_path / "CLAUDE.md").read_text()

    def test_cd(self, indexed):
        result = runner.invoke(app, ["cd", "old-session"])
        assert result.exit_code == 0
        assert result.stdout.strip() == "cd /work/api"

    def test_resume_dry_run(self, indexed):
        result = runner.invoke(app, ["resume", "old-session", "--dry-run"])
        assert result.exit_code == 0
        assert result.stdout.strip() == "cd /work/api && codex --resume old-session"

        result = runner.invoke(app, ["resume", "--last", "--dry-run"])
        assert result.stdout.strip() == "cd /work/app && claude --resume recent-session"

    def test_report_json(self, indexed):
        today = datetime.now(timezone.utc).date()
        result = runner.invoke(
            app,
            ["report", "--from", (today - timedelta(days=1)).isoformat(), "--to", (today + timedelta(days=1)).isoformat(), "--format", "json"],
        )
        data = _json(result)
        assert [s["id"] for s in data["sessions"]] == ["recent-session"]


class TestConfigAndServe:
    def test_config_written_on_first_show(self, ail_home):
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "[general]" in result.stdout
        assert config.CONFIG_PATH.exists()

    def test_invalid_config_reported(self, ail_home):
        ail_home.mkdir(parents=True, exist_ok=True)
        config.CONFIG_PATH.write_text("not = [valid")
        result = runner.invoke(app, ["list"])
        assert result.exit_code == 1

    def test_serve_requires_mcp_flag(self):
        assert runner.invoke(app, ["serve"]).exit_code == 1


def _claude_agent_home(tmp_path):
    """A Claude Code data dir with one session and a config that points at it."""
    home = tmp_path / "claude"
    project = home / "projects" / "-work-app"
    project.mkdir(parents=True)
    lines = [
        {"type": "user", "cwd": "/work/app", "message": {"content": "Add search"}},
        {"type": "assistant", "message": {"content": [{"type": "text", "text": "Added search."}]}},
    ]
    (project / "abc.jsonl").write_text("\n".join(json.dumps(line) for line in lines))
    config.CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
    config.CONFIG_PATH.write_text(
        "[agents]\n"
        f'claude_code_dir = "{home}"\n'
        f'codex_dir = "{tmp_path / "missing"}"\n'
        f'cursor_dir = "{tmp_path / "missing"}"\n'
    )
    return home


class TestSetup:
    def test_selected_agent_saved_and_indexed(self, tmp_path):
        _claude_agent_home(tmp_path)
        result = runner.invoke(app, ["setup"], input="y\n")
        assert result.exit_code == 0, result.output
        assert "claude-code: 1 sessions found, 1 new" in result.stdout

        assert config.load_config().agents.enabled == ["claude-code"]
        with SessionStore(config.DB_PATH) as store:
            assert store.session_exists("abc")

    def test_declined_agent_leaves_config_alone(self, tmp_path):
        _claude_agent_home(tmp_path)
        result = runner.invoke(app, ["setup"], input="n\n")
        assert result.exit_code == 0
        assert "No agents selected" in result.stdout
        assert config.load_config().agents.enabled == ["claude-code", "codex", "cursor"]

    def test_yes_skips_prompts(self, tmp_path):
        _claude_agent_home(tmp_path)
        result = runner.invoke(app, ["setup", "--yes"])
        assert result.exit_code == 0
        assert "Index Claude Code" not in result.stdout
        with SessionStore(config.DB_PATH) as store:
            assert store.count_sessions() == 1

    def test_no_agents_found(self, tmp_path):
        config.CONFIG_PATH.parent.mkdir(parents=True, exist_ok=True)
        config.CONFIG_PATH.write_text(
            "[agents]\n"
            f'claude_code_dir = "{tmp_path / "a"}"\n'
            f'codex_dir = "{tmp_path / "b"}"\n'
            f'cursor_dir = "{tmp_path / "c"}"\n'
        )
        result = runner.invoke(app, ["setup"])
        assert result.exit_code == 0
        assert "No agents found" in result.stdout


class TestIndexCommand:
    def test_agent_rebuild_only_clears_that_agent(self, tmp_path, make_session):
        _claude_agent_home(tmp_path)
        with SessionStore(config.DB_PATH) as store:
            store.insert_session(make_session("stale-claude"))
            store.insert_session(make_session("kept-codex", agent=AgentKind.CODEX))

        data = _json(runner.invoke(app, ["--json", "index", "-a", "claude", "--rebuild"]))
        assert data[0]["agent"] == "claude-code"
        assert data[0]["new"] == 1

        with SessionStore(config.DB_PATH) as store:
            assert store.session_exists("abc")
            assert store.session_exists("kept-codex")
            assert not store.session_exists("stale-claude")

    def test_agent_index_keeps_existing(self, tmp_path, make_session):
        _claude_agent_home(tmp_path)
        with SessionStore(config.DB_PATH) as store:
            store.insert_session(make_session("older-claude"))

        _json(runner.invoke(app, ["--json", "index", "-a", "claude"]))
        with SessionStore(config.DB_PATH) as store:
            assert store.session_exists("older-claude")


class TestResumeContext:
    @pytest.fixture
    def project_session(self, ail_home, tmp_path, make_session, monkeypatch):
        project = tmp_path / "proj"
        project.mkdir()
        with SessionStore(config.DB_PATH) as store:
            store.insert_session(make_session("proj-session", project_path=str(project)))
        calls = []

        def fake_run(command, shell=False):
            calls.append(command)
            return SimpleNamespace(returncode=0)

        monkeypatch.setattr("ailog.cli.subprocess.run", fake_run)
        return project, calls

    def test_context_injected_before_launch(self, project_session, tmp_path):
        project, calls = project_session
        context_file = tmp_path / "handoff.md"
        context_file.write_text("Pick up the login work where it stopped.")

        result = runner.invoke(app, ["resume", "proj-session", "--context", str(context_file)])
        assert result.exit_code == 0, result.output
        text = (project / "CLAUDE.md").read_text()
        assert "ail:context:start" in text
        assert "Pick up the login work where it stopped." in text
        assert len(calls) == 1
        assert calls[0].endswith("claude --resume proj-session")

    def test_missing_context_file(self, project_session, tmp_path):
        project, calls = project_session
        result = runner.invoke(app, ["resume", "proj-session", "--context", str(tmp_path / "nope.md")])
        assert result.exit_code == 1
        assert calls == []
        assert not (project / "CLAUDE.md").exists()

    def test_dry_run_writes_nothing(self, project_session, tmp_path):
        project, calls = project_session
        context_file = tmp_path / "handoff.md"
        context_file.write_text("notes")
        result = runner.invoke(app, ["resume", "proj-session", "--context", str(context_file), "--dry-run"])
        assert result.exit_code == 0
        assert calls == []
        assert not (project / "CLAUDE.md").exists()
