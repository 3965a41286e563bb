"""Rule-based request and work summaries.

Both summaries are derived from the session's messages with a fixed sequence
of stages; the first stage that yields text wins. The functions never raise
on odd input: when nothing can be extracted they return ``None``.

Request summary (first user message):
    1. first markdown heading, minus any ``Plan:``-style label
    2. first sentence of the first line that is not boilerplate
    3. relaxed pass that keeps boilerplate lines and follows ``...:`` lines
    4. file statistics ("Created a.py, b.py")

Work summary (assistant messages):
    1. conventional commit message announced by the assistant
    2. lines following a summary/result heading
    3. best line by completion-keyword score, later messages weighted up
    4. last non-trivial line of the last assistant message
    5. file mutation counts
"""

import re

from ailog.core.keywords import (
    COMMIT_TYPES,
    CREATE_TOOLS,
    DEFAULT_TABLE,
    MODIFY_TOOLS,
    KeywordTable,
)
from ailog.core.models import Role, Session

MAX_SUMMARY_CHARS = 120
MAX_FALLBACK_FILES = 3
MAX_SECTION_LINES = 3

_HEADING_RE = re.compile(r"^#{1,6}(?:\s+|$)")
_SEPARATOR_RE = re.compile(r"^([-*_=])(?:\s*\1){2,}$")
_TAG_LINE_RE = re.compile(r"^</?[A-Za-z][\w:.-]*(?:\s[^>]*)?/?>")
_PATH_LINE_RE = re.compile(r"^(?:~/|/)\S*$")
_LIST_MARKER_RE = re.compile(r"^(?:[-*+]\s+(?:\[[ xX]\]\s+)?|\d+[.)]\s+|>\s*)")
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_UNDERSCORE_BOLD_RE = re.compile(r"(?<!\w)__(.+?)__(?!\w)")
_ITALIC_RE = re.compile(r"(?<![\w*])\*(?!\s)([^*]+?)(?<!\s)\*(?![\w*])")
_SENTENCE_END_RE = re.compile(r"[.!?](?=\s|$)")
_COMMIT_LINE_RE = re.compile(
    r"^(?:%s)(?:\([^)]*\))?!?:\s*\S" % "|".join(COMMIT_TYPES), re.IGNORECASE
)
_COMMIT_FLAG_RE = re.compile(r"\bcommit\b.*?\s-m\s*(?P<quote>[\"'])(?P<msg>.+?)(?P=quote)")
_TRAILING_JUNK = " \t\r\n;,"


# ── Line handling ────────────────────────────────────────────────


def meaningful_lines(text: str) -> list[str]:
    """Stripped, non-empty lines outside code fences, tables and HTML comments."""
    lines: list[str] = []
    in_code = False
    in_comment = False
    for raw in text.splitlines():
        line = raw.strip()
        if line.startswith("```") or line.startswith("~~~"):
            in_code = not in_code
            continue
        if in_code:
            continue
        if in_comment:
            if "-->" in line:
                in_comment = False
            continue
        if line.startswith("<!--"):
            if "-->" not in line[4:]:
                in_comment = True
            continue
        if not line or line.startswith("|"):
            continue
        lines.append(line)
    return lines


def is_heading(line: str) -> bool:
    return bool(_HEADING_RE.match(line))


def strip_markdown(text: str) -> str:
    """Remove heading, list and emphasis markers."""
    text = _HEADING_RE.sub("", text.strip())
    text = _LIST_MARKER_RE.sub("", text)
    text = _BOLD_RE.sub(r"\1", text)
    text = _UNDERSCORE_BOLD_RE.sub(r"\1", text)
    text = _ITALIC_RE.sub(r"\1", text)
    return text.replace("**", "").strip()


def first_sentence(text: str) -> str:
    match = _SENTENCE_END_RE.search(text)
    return text[: match.end()] if match else text


def truncate_summary(text: str, limit: int = MAX_SUMMARY_CHARS) -> str | None:
    """Cut to ``limit`` chars without leaving an unterminated code span.

    Backticks are balanced first, then trailing separators are trimmed.
    """
    text = text.strip()[:limit]
    if text.count("`") % 2:
        text = text[: text.rfind("`")]
    text = text.rstrip(_TRAILING_JUNK)
    return text or None


def _short_name(path: str) -> str:
    return path.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]


def _is_noise(line: str) -> bool:
    return bool(_TAG_LINE_RE.match(line) or _PATH_LINE_RE.match(line))


def _is_generic(line: str, table: KeywordTable) -> bool:
    normalized = strip_markdown(line).lower().rstrip(" .!?:;,~")
    if normalized in table.generic_instructions:
        return True
    return normalized.startswith(table.plan_preambles)


def _strip_prefix_label(text: str, table: KeywordTable) -> str:
    lower = text.lower()
    for label in sorted(table.prefix_labels, key=len, reverse=True):
        for separator in (":", "："):
            token = label + separator
            if lower.startswith(token):
                return text[len(token) :].strip()
    return text


# ── Request summary ──────────────────────────────────────────────


def _request_from_heading(lines: list[str], table: KeywordTable) -> str | None:
    for line in lines:
        if not is_heading(line):
            continue
        text = _strip_prefix_label(strip_markdown(line), table)
        if len(text) > 3:
            return text
    return None


def _request_from_lines(candidates: list[str], table: KeywordTable) -> str | None:
    for line in candidates:
        if _is_generic(line, table) or _is_noise(line):
            continue
        text = first_sentence(strip_markdown(line))
        return text if len(text) > 3 else None
    return None


def _request_relaxed(candidates: list[str]) -> str | None:
    relaxed = [line for line in candidates if not _is_noise(line)]
    for index, line in enumerate(relaxed):
        text = strip_markdown(line)
        if text.endswith((":", "：")):
            if index + 1 >= len(relaxed):
                continue
            text = strip_markdown(relaxed[index + 1])
        text = first_sentence(text)
        if len(text) > 3:
            return text
    return None


def _request_from_files(session: Session) -> str | None:
    created: list[str] = []
    modified: list[str] = []
    for call in session.tool_calls:
        if not call.file_path:
            continue
        name = _short_name(call.file_path)
        if call.tool_name in CREATE_TOOLS and name not in created:
            created.append(name)
        elif call.tool_name in MODIFY_TOOLS and name not in modified:
            modified.append(name)
    if created:
        return "Created " + ", ".join(created[:MAX_FALLBACK_FILES])
    if modified:
        return "Modified " + ", ".join(modified[:MAX_FALLBACK_FILES])
    return None


def extract_summary(session: Session, table: KeywordTable = DEFAULT_TABLE) -> str | None:
    """One-line description of what the user asked for."""
    first = session.first_user_message()
    if first:
        lines = meaningful_lines(first)
        candidates = [
            line for line in lines if not is_heading(line) and not _SEPARATOR_RE.match(line)
        ]
        for text in (
            _request_from_heading(lines, table),
            _request_from_lines(candidates, table),
            _request_relaxed(candidates),
        ):
            if text:
                result = truncate_summary(text)
                if result:
                    return result
    fallback = _request_from_files(session)
    return truncate_summary(fallback) if fallback else None


# ── Work summary ─────────────────────────────────────────────────


def _assistant_messages(session: Session) -> list[tuple[int, str]]:
    return [
        (index, message.content)
        for index, message in enumerate(session.messages)
        if message.role == Role.ASSISTANT and message.content.strip()
    ]


def _unquote_code(text: str) -> str:
    if len(text) > 1 and text.startswith("`") and text.endswith("`"):
        return text.strip("`").strip()
    return text


def _commit_from_lines(lines: list[str], table: KeywordTable) -> str | None:
    for index, line in enumerate(lines):
        flagged = _COMMIT_FLAG_RE.search(line)
        if flagged:
            return flagged.group("msg").strip()
        if index == 0:
            continue
        text = _unquote_code(strip_markdown(line))
        previous = lines[index - 1].lower()
        if _COMMIT_LINE_RE.match(text) and any(m in previous for m in table.commit_markers):
            return text
    return None


def _is_summary_heading(line: str, table: KeywordTable) -> bool:
    bold_line = line.startswith("**") and line.rstrip(":：").endswith("**")
    if not (is_heading(line) or bold_line):
        return False
    text = strip_markdown(line).lower().rstrip(":： ").strip()
    return any(text.startswith(heading) for heading in table.summary_headings)


def _section_after_heading(lines: list[str], table: KeywordTable) -> str | None:
    for index, line in enumerate(lines):
        if not _is_summary_heading(line, table):
            continue
        collected: list[str] = []
        for following in lines[index + 1 :]:
            if is_heading(following) or _is_summary_heading(following, table):
                break
            text = strip_markdown(following)
            if text:
                collected.append(text)
            if len(collected) == MAX_SECTION_LINES:
                break
        if collected:
            return "; ".join(collected)
    return None


def _is_planning(lower: str, table: KeywordTable) -> bool:
    if lower.startswith(table.planning_prefixes):
        return True
    return any(marker in lower for marker in table.exploration_markers)


def _best_scored_line(session: Session, table: KeywordTable) -> str | None:
    total = len(session.messages)
    best_text: str | None = None
    best_score = 0.0
    for index, content in _assistant_messages(session):
        weight = index / (total - 1) if total > 1 else 0.0
        for line in meaningful_lines(content):
            if is_heading(line):
                continue
            text = strip_markdown(line)
            if len(text) <= 5:
                continue
            lower = text.lower()
            if _is_planning(lower, table):
                continue
            hits = sum(1 for keyword in table.completion_keywords if keyword in lower)
            if not hits:
                continue
            score = hits * (1 + weight)
            if score > best_score:
                best_text, best_score = text, score
    return best_text


def _last_meaningful_line(session: Session) -> str | None:
    last = session.last_assistant_message()
    if not last:
        return None
    for line in reversed(meaningful_lines(last)):
        text = strip_markdown(line)
        if len(text) > 10:
            return text
    return None


def _work_from_counts(session: Session) -> str | None:
    parts = []
    for count, label in (
        (session.files_created, "created"),
        (session.files_modified, "modified"),
        (session.files_deleted, "deleted"),
    ):
        if count:
            parts.append(f"{count} files {label}")
    return ", ".join(parts) or None


def extract_work_summary(session: Session, table: KeywordTable = DEFAULT_TABLE) -> str | None:
    """One-line description of what the assistant accomplished."""
    newest_first = [meaningful_lines(content) for _, content in reversed(_assistant_messages(session))]

    def staged():
        for lines in newest_first:
            yield _commit_from_lines(lines, table)
        for lines in newest_first:
            yield _section_after_heading(lines, table)
        yield _best_scored_line(session, table)
        yield _last_meaningful_line(session)
        yield _work_from_counts(session)

    for text in staged():
        if text:
            result = truncate_summary(strip_markdown(text))
            if result:
                return result
    return None


def summarize(session: Session, table: KeywordTable = DEFAULT_TABLE) -> tuple[str | None, str | None]:
    """Return ``(request_summary, work_summary)`` for a session."""
    return extract_summary(session, table), extract_work_summary(session, table)
