"""Tests for MCP installer."""

import json

from ailog.mcp.installer import (
    TOML_MARKER_END,
    TOML_MARKER_START,
    _inject_json_config,
    _inject_toml_config,
    _remove_json_mcp_config,
    _remove_toml_config,
    install_mcp_global,
    install_mcp_project,
    remove_mcp_global,
)


class TestInjectJsonConfig:
    def test_creates_new_config(self, tmp_path):
        config_path = tmp_path / "mcp.json"
        _inject_json_config(config_path, "/usr/bin/ail")

        config = json.loads(config_path.read_text())
        assert "mcpServers" in config
        assert config["mcpServers"]["ail"]["command"] == "/usr/bin/ail"
        assert config["mcpServers"]["ail"]["args"] == ["serve", "--mcp"]

    def test_merges_existing_config(self, tmp_path):
        config_path = tmp_path / "mcp.json"
        config_path.write_text(json.dumps({"mcpServers": {"other-server": {"command": "other", "args": ["run"]}}}))

        _inject_json_config(config_path, "/usr/bin/ail")

        config = json.loads(config_path.read_text())
        assert "other-server" in config["mcpServers"]
        assert "ail" in config["mcpServers"]

    def test_handles_empty_file(self, tmp_path):
        config_path = tmp_path / "mcp.json"
        config_path.write_text("")

        _inject_json_config(config_path, "/usr/bin/ail")
        config = json.loads(config_path.read_text())
        assert "ail" in config["mcpServers"]

    def test_creates_parent_dirs(self, tmp_path):
        config_path = tmp_path / "nested" / "dir" / "mcp.json"
        _inject_json_config(config_path, "/usr/bin/ail")
        assert config_path.exists()


class TestRemoveJsonMcpConfig:
    def test_removes_ail_entry(self, tmp_path):
        path = tmp_path / "mcp.json"
        path.write_text(
            json.dumps(
                {
                    "mcpServers": {
                        "ail": {"command": "ail", "args": ["serve", "--mcp"]},
                        "other": {"command": "other", "args": []},
                    }
                }
            )
        )

        _remove_json_mcp_config(path)

        config = json.loads(path.read_text())
        assert "ail" not in config["mcpServers"]
        assert "other" in config["mcpServers"]

    def test_noop_if_no_file(self, tmp_path):
        assert _remove_json_mcp_config(tmp_path / "nonexistent.json") is True

    def test_invalid_json_reports_failure(self, tmp_path):
        path = tmp_path / "mcp.json"
        path.write_text("{broken")
        assert _remove_json_mcp_config(path) is False
        assert path.read_text() == "{broken"


class TestInjectTomlConfig:
    def test_creates_new_config(self, tmp_path):
        path = tmp_path / "config.toml"
        _inject_toml_config(path, "/usr/bin/ail")

        text = path.read_text()
        assert text.startswith(TOML_MARKER_START)
        assert TOML_MARKER_END in text
        assert "[mcp_servers.ail]" in text
        assert 'command = "/usr/bin/ail"' in text
        assert 'args = ["serve", "--mcp"]' in text

    def test_appends_to_existing(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text('[mcp_servers.other]\ncommand = "other"\n')

        _inject_toml_config(path, "/usr/bin/ail")

        text = path.read_text()
        assert "[mcp_servers.other]" in text
        assert "[mcp_servers.ail]" in text

    def test_idempotent(self, tmp_path):
        path = tmp_path / "config.toml"
        _inject_toml_config(path, "/usr/bin/ail")
        _inject_toml_config(path, "/new/path/ail")

        text = path.read_text()
        assert text.count("[mcp_servers.ail]") == 1
        assert "/new/path/ail" in text
        assert "/usr/bin/ail" not in text


class TestRemoveTomlConfig:
    def test_removes_block(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text('[mcp_servers.other]\ncommand = "other"\n')
        _inject_toml_config(path, "/usr/bin/ail")

        _remove_toml_config(path)

        text = path.read_text()
        assert "[mcp_servers.ail]" not in text
        assert "[mcp_servers.other]" in text

    def test_deletes_file_if_only_block(self, tmp_path):
        path = tmp_path / "config.toml"
        _inject_toml_config(path, "/usr/bin/ail")

        _remove_toml_config(path)
        assert not path.exists()

    def test_noop_if_no_file(self, tmp_path):
        assert _remove_toml_config(tmp_path / "nonexistent.toml") is True


class TestInstallProject:
    def test_creates_mcp_json(self, tmp_path, monkeypatch):
        monkeypatch.setattr("ailog.mcp.installer._resolve_executable", lambda: "/usr/bin/ail")
        results = install_mcp_project(tmp_path)
        assert results == {".mcp.json": True}

        config = json.loads((tmp_path / ".mcp.json").read_text())
        assert config["mcpServers"]["ail"]["command"] == "/usr/bin/ail"


class TestInstallGlobal:
    def test_configures_detected_platforms(self, tmp_path, monkeypatch):
        cursor_config = tmp_path / "cursor" / "mcp.json"
        codex_config = tmp_path / "codex" / "config.toml"
        monkeypatch.setattr("ailog.mcp.installer._resolve_executable", lambda: "/usr/bin/ail")
        monkeypatch.setattr(
            "ailog.mcp.installer.detect_platforms", lambda: ["claude", "cursor", "codex"]
        )
        monkeypatch.setattr("ailog.mcp.installer._install_claude_code", lambda executable: True)
        monkeypatch.setattr(
            "ailog.mcp.installer.PLATFORM_MCP_CONFIGS",
            {"claude": tmp_path / "claude.json", "cursor": cursor_config, "codex": codex_config},
        )

        results = install_mcp_global()
        assert results == {"claude": True, "cursor": True, "codex": True}
        assert "ail" in json.loads(cursor_config.read_text())["mcpServers"]
        assert "[mcp_servers.ail]" in codex_config.read_text()

        removed = remove_mcp_global()
        assert removed["cursor"] is True
        assert removed["codex"] is True
        assert "ail" not in json.loads(cursor_config.read_text())["mcpServers"]
        assert not codex_config.exists()

    def test_nothing_detected(self, monkeypatch):
        monkeypatch.setattr("ailog.mcp.installer.detect_platforms", lambda: [])
        assert install_mcp_global() == {}
