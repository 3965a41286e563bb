"""Optional LLM summaries of indexed sessions via the Anthropic API."""

import logging
import os

import anthropic

from ailog.config import SummarizeConfig
from ailog.errors import AilError, SummarizeError
from ailog.core.models import SessionRecord
from ailog.core.store import SessionStore

logger = logging.getLogger(__name__)

MAX_OUTPUT_TOKENS = 300
USER_MESSAGE_CHARS = 500
ASSISTANT_MESSAGE_CHARS = 200

PROMPT = """\
Summarize this AI coding session. Focus on what was accomplished.
If multiple distinct tasks were done, list each as a bullet point (max 3 bullets, each under 80 chars).
If only one task, use a single sentence (max 100 chars).
Reply with ONLY the summary, no quotes or prefixes.

Example (multi-task):
- Implemented user authentication with JWT
- Fixed database migration bug in users table

Example (single task):
Added dark mode toggle to application settings

{session}"""


def resolve_api_key(config: SummarizeConfig) -> str:
    """Config value first, then ANTHROPIC_API_KEY."""
    if config.api_key:
        return config.api_key
    key = os.environ.get("ANTHROPIC_API_KEY")
    if key:
        return key
    raise SummarizeError(
        "No API key found. Set ANTHROPIC_API_KEY or add api_key to "
        "[report.summarize] in the config file."
    )


def build_session_text(store: SessionStore, record: SessionRecord) -> str:
    lines = []
    if record.project_name:
        lines.append(f"Project: {record.project_name}")
    if record.summary:
        lines.append(f"Request: {record.summary}")
    if record.work_summary:
        lines.append(f"Work: {record.work_summary}")
    for message in store.get_messages(record.id):
        if message.role.value == "user":
            lines.append(f"\nUser: {message.content[:USER_MESSAGE_CHARS]}")
        elif message.role.value == "assistant":
            lines.append(f"\nAI: {message.content[:ASSISTANT_MESSAGE_CHARS]}")
    return "\n".join(lines)


def summarize_text(client, model: str, session_text: str, max_input_chars: int) -> str:
    response = client.messages.create(
        model=model,
        max_tokens=MAX_OUTPUT_TOKENS,
        messages=[{"role": "user", "content": PROMPT.format(session=session_text[:max_input_chars])}],
    )
    text = "".join(
        getattr(block, "text", "") for block in response.content if getattr(block, "type", "") == "text"
    ).strip()
    if not text:
        raise SummarizeError("Empty response from API")
    return text


def summarize_sessions(
    store: SessionStore,
    records: list[SessionRecord],
    config: SummarizeConfig,
    client=None,
) -> int:
    """Fill in ``llm_summary`` for sessions that lack one.

    Failures on individual sessions are logged and skipped. Returns the
    number of sessions summarized.
    """
    pending = [r for r in records if not r.llm_summary]
    if not pending:
        logger.info("all sessions already have LLM summaries")
        return 0
    if client is None:
        client = anthropic.Anthropic(api_key=resolve_api_key(config))

    done = 0
    for index, record in enumerate(pending, start=1):
        logger.info("summarizing %d/%d: %s", index, len(pending), record.id)
        try:
            summary = summarize_text(
                client, config.model, build_session_text(store, record), config.max_input_chars
            )
            store.update_llm_summary(record.id, summary)
        except (anthropic.APIError, AilError) as exc:
            logger.warning("failed to summarize session %s: %s", record.id[:8], exc)
            continue
        record.llm_summary = summary
        done += 1
    return done
