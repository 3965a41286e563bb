"""Keyword and pattern tables used by the rule-based summarizer.

The tables are plain data so that another language can be supported by
building a new ``KeywordTable`` instead of touching the extraction code.
All phrases are matched case-insensitively.
"""

from dataclasses import dataclass, field

# Tool names counted as file mutations
CREATE_TOOLS = frozenset({"Write", "create_file"})
MODIFY_TOOLS = frozenset({"Edit", "MultiEdit", "edit_file"})
DELETE_TOOLS = frozenset({"delete_file"})

COMMIT_TYPES = (
    "feat",
    "fix",
    "docs",
    "style",
    "refactor",
    "perf",
    "test",
    "build",
    "ci",
    "chore",
    "revert",
)


@dataclass(frozen=True)
class KeywordTable:
    """Phrase lists driving each summarizer stage."""

    # Labels stripped from the start of a request heading ("Plan: ...")
    prefix_labels: tuple[str, ...] = field(default_factory=tuple)
    # Boilerplate request lines that say nothing about the task, matched whole
    generic_instructions: tuple[str, ...] = field(default_factory=tuple)
    # Openers that are boilerplate whatever follows them ("Here is the plan: ...")
    plan_preambles: tuple[str, ...] = field(default_factory=tuple)
    # Headings that introduce a result section in assistant replies
    summary_headings: tuple[str, ...] = field(default_factory=tuple)
    # Words announcing a commit on the line before a commit message
    commit_markers: tuple[str, ...] = field(default_factory=tuple)
    # Completion and action words used for line scoring
    completion_keywords: tuple[str, ...] = field(default_factory=tuple)
    # Line prefixes announcing future work rather than finished work
    planning_prefixes: tuple[str, ...] = field(default_factory=tuple)
    # Substrings marking exploration chatter
    exploration_markers: tuple[str, ...] = field(default_factory=tuple)

    def merged(self, other: "KeywordTable") -> "KeywordTable":
        """Return a table containing the phrases of both tables."""
        return KeywordTable(
            prefix_labels=self.prefix_labels + other.prefix_labels,
            generic_instructions=self.generic_instructions + other.generic_instructions,
            plan_preambles=self.plan_preambles + other.plan_preambles,
            summary_headings=self.summary_headings + other.summary_headings,
            commit_markers=self.commit_markers + other.commit_markers,
            completion_keywords=self.completion_keywords + other.completion_keywords,
            planning_prefixes=self.planning_prefixes + other.planning_prefixes,
            exploration_markers=self.exploration_markers + other.exploration_markers,
        )


ENGLISH = KeywordTable(
    prefix_labels=(
        "plan",
        "implementation plan",
        "task",
        "fix",
        "bug",
        "feature",
        "goal",
        "todo",
        "request",
        "issue",
    ),
    generic_instructions=(
        "implement the plan",
        "please implement",
        "continue",
        "go ahead",
        "proceed",
        "please continue",
        "please help",
        "help me",
        "can you help",
        "do it",
        "yes",
        "ok",
        "thanks",
    ),
    plan_preambles=(
        "implement the following plan",
        "follow the plan",
        "read the following",
        "here is the plan",
        "here's the plan",
    ),
    summary_headings=(
        "summary",
        "result",
        "results",
        "done",
        "completed",
        "conclusion",
        "changes made",
        "what changed",
        "what i did",
    ),
    commit_markers=("commit",),
    completion_keywords=(
        "complete",
        "implement",
        "added",
        "modified",
        "created",
        "fixed",
        "updated",
        "refactored",
        "removed",
        "resolved",
        "deleted",
        "renamed",
        "migrated",
        "passing",
    ),
    planning_prefixes=(
        "let me",
        "let's",
        "i'll",
        "i will",
        "i'm going to",
        "i am going to",
        "now i",
        "next, i",
        "first, i",
        "now let",
    ),
    exploration_markers=(
        "let me check",
        "let me look",
        "let me read",
        "let me search",
        "looking at",
        "searching for",
        "reading the",
        "exploring",
        "investigating",
        "checking the",
    ),
)

KOREAN = KeywordTable(
    prefix_labels=("계획", "작업", "수정", "버그", "기능", "목표", "요청"),
    generic_instructions=(
        "계획을 구현",
        "계속",
        "계속 진행",
        "진행해",
        "진행해줘",
        "도와줘",
        "해줘",
        "네",
        "응",
    ),
    plan_preambles=("다음 계획을 구현", "아래 내용을 구현"),
    summary_headings=("요약", "결과", "완료", "변경 사항", "변경사항", "작업 내용", "정리"),
    commit_markers=("커밋",),
    completion_keywords=("완료", "구현", "추가", "수정", "생성", "삭제", "변경", "해결"),
    planning_prefixes=("먼저", "이제", "다음으로", "우선"),
    exploration_markers=("확인해", "살펴", "찾아보", "읽어보", "검색해"),
)

DEFAULT_TABLE = ENGLISH.merged(KOREAN)
