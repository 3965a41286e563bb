"""Adapters for the supported coding agents."""

from pathlib import Path

from ailog.adapters.base import AgentAdapter
from ailog.adapters.claude_code import ClaudeCodeAdapter
from ailog.adapters.codex import CodexAdapter
from ailog.adapters.cursor import CursorAdapter
from ailog.config import AilConfig
from ailog.core.models import AgentKind

ADAPTERS: dict[AgentKind, type[AgentAdapter]] = {
    AgentKind.CLAUDE_CODE: ClaudeCodeAdapter,
    AgentKind.CODEX: CodexAdapter,
    AgentKind.CURSOR: CursorAdapter,
}


def get_adapter(
    agent: str | AgentKind, config: AilConfig | None = None, data_dir: Path | None = None
) -> AgentAdapter | None:
    """Build the adapter for an agent name or alias, or None if unknown."""
    kind = agent if isinstance(agent, AgentKind) else AgentKind.parse(agent)
    if kind is None:
        return None
    if data_dir is None and config is not None:
        data_dir = config.agents.data_dir(kind.value)
    return ADAPTERS[kind](data_dir)


def all_adapters(config: AilConfig | None = None) -> list[AgentAdapter]:
    """Adapters for every agent enabled in the config (all agents by default)."""
    enabled = set(config.agents.enabled) if config is not None else None
    adapters = []
    for kind in ADAPTERS:
        if enabled is not None and kind.value not in enabled:
            continue
        adapters.append(get_adapter(kind, config))
    return adapters


def installed_adapters(config: AilConfig | None = None) -> list[AgentAdapter]:
    return [adapter for adapter in all_adapters(config) if adapter.is_installed()]


__all__ = [
    "ADAPTERS",
    "AgentAdapter",
    "ClaudeCodeAdapter",
    "CodexAdapter",
    "CursorAdapter",
    "all_adapters",
    "get_adapter",
    "installed_adapters",
]
