"""Incremental indexing of agent sessions into the store."""

import logging
from enum import Enum

from pydantic import BaseModel

from ailog.adapters import get_adapter, installed_adapters
from ailog.config import AilConfig
from ailog.core.models import Session
from ailog.core.store import SessionStore

logger = logging.getLogger(__name__)


class IndexState(str, Enum):
    INSERTED = "inserted"
    UPDATED = "updated"
    SKIPPED = "skipped"


class IndexResult(BaseModel):
    """Per-agent counts from one indexing pass."""

    agent: str
    found: int = 0
    new: int = 0
    updated: int = 0
    skipped: int = 0
    failed: int = 0


def index_session(store: SessionStore, session: Session) -> IndexState:
    """Insert an unseen session, update a grown one, skip an unchanged one.

    Growth is detected by message count alone, so an edit that keeps the
    count the same is not picked up until a rebuild.
    """
    if not session.messages:
        return IndexState.SKIPPED
    stored_count = store.session_message_count(session.id)
    if stored_count is not None and stored_count == session.message_count:
        return IndexState.SKIPPED
    session.apply_summaries()
    if stored_count is None:
        store.insert_session(session)
        return IndexState.INSERTED
    store.update_session(session)
    return IndexState.UPDATED


def index_adapter(store: SessionStore, adapter) -> IndexResult:
    """Index every session an adapter can find."""
    result = IndexResult(agent=adapter.kind.value)
    logger.info("scanning %s sessions in %s", adapter.kind.value, adapter.data_dir)
    for session in adapter.scan_sessions():
        result.found += 1
        state = index_session(store, session)
        if state is IndexState.INSERTED:
            result.new += 1
        elif state is IndexState.UPDATED:
            result.updated += 1
        else:
            result.skipped += 1
    result.failed = len(adapter.scan_errors)
    logger.info(
        "%s: %d found, %d new, %d updated, %d failed",
        result.agent,
        result.found,
        result.new,
        result.updated,
        result.failed,
    )
    return result


def index_all(store: SessionStore, config: AilConfig | None = None) -> list[IndexResult]:
    return [index_adapter(store, adapter) for adapter in installed_adapters(config)]


def index_agent(store: SessionStore, agent: str, config: AilConfig | None = None) -> IndexResult | None:
    """Index one agent. Returns None when the agent is unknown or not installed."""
    adapter = get_adapter(agent, config)
    if adapter is None or not adapter.is_installed():
        return None
    return index_adapter(store, adapter)


def rebuild_agent(store: SessionStore, agent: str, config: AilConfig | None = None) -> IndexResult | None:
    """Drop one agent's sessions and index them again from scratch."""
    adapter = get_adapter(agent, config)
    if adapter is None or not adapter.is_installed():
        return None
    removed = store.delete_agent_sessions(adapter.kind.value)
    logger.info("cleared %d %s sessions for rebuild", removed, adapter.kind.value)
    return index_adapter(store, adapter)


def rebuild_all(store: SessionStore, config: AilConfig | None = None) -> list[IndexResult]:
    """Clear the index and reprocess every session as unseen."""
    store.clear()
    return index_all(store, config)

