"""Register the ail MCP server in agent configuration files."""

import json
import logging
import shutil
import subprocess
from pathlib import Path

from ailog.config import PLATFORM_MCP_CONFIGS, detect_platforms

logger = logging.getLogger(__name__)

SERVER_NAME = "ail"
SERVER_ARGS = ["serve", "--mcp"]

TOML_MARKER_START = "# ail:mcp:start"
TOML_MARKER_END = "# ail:mcp:end"


def _resolve_executable() -> str:
    """Full path to the ail executable, or the bare name if not found."""
    path = shutil.which("ail")
    if path:
        return path
    for candidate in [
        Path.home() / ".local" / "bin" / "ail",
        Path("/usr/local/bin/ail"),
    ]:
        if candidate.exists():
            return str(candidate)
    return "ail"


def _read_json(config_path: Path) -> dict:
    if not config_path.exists():
        return {}
    try:
        data = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError):
        return {}
    return data if isinstance(data, dict) else {}


def _inject_json_config(config_path: Path, executable: str) -> bool:
    """Merge the server entry into a JSON ``mcpServers`` config."""
    config = _read_json(config_path)
    config.setdefault("mcpServers", {})[SERVER_NAME] = {
        "command": executable,
        "args": list(SERVER_ARGS),
    }
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(config, indent=2) + "\n")
    return True


def _remove_json_mcp_config(config_path: Path) -> bool:
    if not config_path.exists():
        return True
    try:
        config = json.loads(config_path.read_text())
    except (json.JSONDecodeError, OSError):
        return False
    servers = config.get("mcpServers", {})
    if SERVER_NAME in servers:
        del servers[SERVER_NAME]
        config_path.write_text(json.dumps(config, indent=2) + "\n")
    return True


def _install_claude_code(executable: str) -> bool:
    """Register through the claude CLI, falling back to editing ~/.claude.json."""
    try:
        result = subprocess.run(
            [
                "claude",
                "mcp",
                "add",
                "--scope",
                "user",
                "--transport",
                "stdio",
                SERVER_NAME,
                "--",
                executable,
                *SERVER_ARGS,
            ],
            capture_output=True,
            text=True,
            timeout=30,
        )
        if result.returncode == 0:
            return True
        logger.debug("claude mcp add failed: %s", result.stderr.strip())
    except (FileNotFoundError, subprocess.TimeoutExpired):
        pass
    return _inject_json_config(PLATFORM_MCP_CONFIGS["claude"], executable)


def _toml_block(executable: str) -> str:
    args = ", ".join(f'"{a}"' for a in SERVER_ARGS)
    return "\n".join(
        [
            TOML_MARKER_START,
            f"[mcp_servers.{SERVER_NAME}]",
            f'command = "{executable}"',
            f"args = [{args}]",
            TOML_MARKER_END,
        ]
    )


def _inject_toml_config(config_path: Path, executable: str) -> bool:
    """Write the server table into Codex's config.toml between markers."""
    config_path.parent.mkdir(parents=True, exist_ok=True)
    block = _toml_block(executable)

    if not config_path.exists():
        config_path.write_text(block + "\n")
        return True
    text = config_path.read_text()
    start = text.find(TOML_MARKER_START)
    end = text.find(TOML_MARKER_END)
    if start != -1 and end != -1:
        text = text[:start] + block + text[end + len(TOML_MARKER_END) :]
        config_path.write_text(text)
        return True
    separator = "\n\n" if text.strip() else ""
    config_path.write_text(text.rstrip() + separator + block + "\n")
    return True


def _remove_toml_config(config_path: Path) -> bool:
    if not config_path.exists():
        return True
    text = config_path.read_text()
    start = text.find(TOML_MARKER_START)
    end = text.find(TOML_MARKER_END)
    if start == -1 or end == -1:
        return True
    before = text[:start].rstrip()
    after = text[end + len(TOML_MARKER_END) :].lstrip()
    separator = "\n\n" if before and after else "\n" if before or after else ""
    cleaned = before + separator + after
    if cleaned.strip():
        config_path.write_text(cleaned)
    else:
        config_path.unlink()
    return True


def install_mcp_global() -> dict[str, bool]:
    """Register the server with every detected platform. Returns {platform: ok}."""
    executable = _resolve_executable()
    results: dict[str, bool] = {}
    for platform in detect_platforms():
        try:
            if platform == "claude":
                results[platform] = _install_claude_code(executable)
            elif platform == "codex":
                results[platform] = _inject_toml_config(PLATFORM_MCP_CONFIGS["codex"], executable)
            elif platform in PLATFORM_MCP_CONFIGS:
                results[platform] = _inject_json_config(PLATFORM_MCP_CONFIGS[platform], executable)
        except OSError as exc:
            logger.warning("could not configure %s: %s", platform, exc)
            results[platform] = False
    return results


def remove_mcp_global() -> dict[str, bool]:
    results: dict[str, bool] = {}
    for platform in detect_platforms():
        config_path = PLATFORM_MCP_CONFIGS.get(platform)
        if config_path is None:
            continue
        if platform == "codex":
            results[platform] = _remove_toml_config(config_path)
        else:
            results[platform] = _remove_json_mcp_config(config_path)
    return results


def install_mcp_project(project_path: Path) -> dict[str, bool]:
    """Write a project-level ``.mcp.json`` (read by Claude Code and Cursor)."""
    return {".mcp.json": _inject_json_config(project_path / ".mcp.json", _resolve_executable())}
