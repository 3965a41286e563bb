"""Configuration and directory management for ail."""

import os
from pathlib import Path

import tomli
from pydantic import BaseModel, Field, ValidationError

from ailog.errors import ConfigError

AIL_DIR = Path(os.environ.get("AIL_HOME", Path.home() / ".ail"))
DB_PATH = AIL_DIR / "index.db"
CONFIG_PATH = AIL_DIR / "config.toml"

# Default data directories of the supported agents
AGENT_DATA_DIRS = {
    "claude-code": Path.home() / ".claude",
    "codex": Path.home() / ".codex",
    "cursor": Path.home() / ".cursor",
}

# Platform MCP config paths (global)
PLATFORM_MCP_CONFIGS = {
    "claude": Path.home() / ".claude.json",
    "cursor": Path.home() / ".cursor" / "mcp.json",
    "codex": Path.home() / ".codex" / "config.toml",
}

# Platform detection markers
PLATFORM_MARKERS = {
    "claude": [Path.home() / ".claude.json", Path.home() / ".claude"],
    "cursor": [Path.home() / ".cursor"],
    "codex": [Path.home() / ".codex"],
}


class GeneralConfig(BaseModel):
    db_path: str = Field(default_factory=lambda: str(DB_PATH))


class AgentsConfig(BaseModel):
    enabled: list[str] = Field(default_factory=lambda: list(AGENT_DATA_DIRS))
    claude_code_dir: str = Field(default_factory=lambda: str(AGENT_DATA_DIRS["claude-code"]))
    codex_dir: str = Field(default_factory=lambda: str(AGENT_DATA_DIRS["codex"]))
    cursor_dir: str = Field(default_factory=lambda: str(AGENT_DATA_DIRS["cursor"]))

    def data_dir(self, agent: str) -> Path:
        raw = {
            "claude-code": self.claude_code_dir,
            "codex": self.codex_dir,
            "cursor": self.cursor_dir,
        }[agent]
        return Path(raw).expanduser()


class ExportConfig(BaseModel):
    default_detail: str = "summary"


class SummarizeConfig(BaseModel):
    enabled: bool = False
    api_key: str | None = None
    model: str = "claude-haiku-4-5-20251001"
    max_input_chars: int = 4000


class ReportConfig(BaseModel):
    default_format: str = "markdown"
    summarize: SummarizeConfig = Field(default_factory=SummarizeConfig)


class McpConfig(BaseModel):
    transport: str = "stdio"


class AilConfig(BaseModel):
    """Contents of ~/.ail/config.toml. Every field has a default."""

    general: GeneralConfig = Field(default_factory=GeneralConfig)
    agents: AgentsConfig = Field(default_factory=AgentsConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)
    mcp: McpConfig = Field(default_factory=McpConfig)


def ensure_dirs() -> None:
    """Ensure the ail directory exists."""
    AIL_DIR.mkdir(parents=True, exist_ok=True)


def load_config(path: Path | None = None) -> AilConfig:
    """Load the config file, falling back to defaults when it is missing."""
    path = path or CONFIG_PATH
    if not path.exists():
        return AilConfig()
    try:
        with open(path, "rb") as f:
            data = tomli.load(f)
        return AilConfig.model_validate(data)
    except tomli.TOMLDecodeError as exc:
        raise ConfigError(f"Invalid TOML in {path}: {exc}") from exc
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in {path}: {exc}") from exc


def _toml_value(value) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(v) for v in value) + "]"
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def render_config(config: AilConfig) -> str:
    """Render a config as TOML text."""
    lines: list[str] = []

    def emit(table: str, model: BaseModel) -> None:
        nested = []
        lines.append(f"[{table}]")
        for key, value in model:
            if isinstance(value, BaseModel):
                nested.append((f"{table}.{key}", value))
            elif value is not None:
                lines.append(f"{key} = {_toml_value(value)}")
        lines.append("")
        for sub_table, sub_model in nested:
            emit(sub_table, sub_model)

    for name, section in config:
        emit(name, section)
    return "\n".join(lines)


def save_config(config: AilConfig, path: Path | None = None) -> Path:
    """Write the config file, creating its directory."""
    path = path or CONFIG_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_config(config))
    return path


def resolve_db_path(config: AilConfig) -> Path:
    """Expand ~ in the configured database path."""
    return Path(config.general.db_path).expanduser()


def detect_agents(config: AilConfig | None = None) -> list[str]:
    """Detect which coding agents have local session data."""
    config = config or AilConfig()
    return [agent for agent in AGENT_DATA_DIRS if config.agents.data_dir(agent).exists()]


def detect_platforms() -> list[str]:
    """Detect which AI coding platforms are installed."""
    detected = []
    for platform, markers in PLATFORM_MARKERS.items():
        if any(m.exists() for m in markers):
            detected.append(platform)
    return detected
