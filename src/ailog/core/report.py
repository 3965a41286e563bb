"""Work reports over a time period in markdown, Slack or JSON form."""

import json
from datetime import date, datetime, time, timedelta, timezone

from pydantic import BaseModel

from ailog.errors import AilError
from ailog.core.models import AgentKind, SessionRecord, SessionStats, changed_files
from ailog.core.store import SessionStore
from ailog.core.timeutil import parse_datetime

REPORT_FORMATS = ("markdown", "slack", "json")
REPORT_SESSION_LIMIT = 1000

_CHANGE_PREFIX = {"created": "+", "modified": "~", "deleted": "-"}


class ReportPeriod(BaseModel):
    start: datetime
    end: datetime
    label: str


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def _day_end(day: date) -> datetime:
    return datetime.combine(day, time(23, 59, 59), tzinfo=timezone.utc)


def _month_end(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1) - timedelta(days=1)
    return date(year, month + 1, 1) - timedelta(days=1)


def day_period(day: date) -> ReportPeriod:
    return ReportPeriod(start=_day_start(day), end=_day_end(day), label=f"{day:%Y-%m-%d}")


def week_period(today: date) -> ReportPeriod:
    """Monday to Sunday of the week containing ``today``."""
    start = today - timedelta(days=today.weekday())
    end = start + timedelta(days=6)
    return ReportPeriod(
        start=_day_start(start), end=_day_end(end), label=f"{start:%Y.%m.%d} ~ {end:%m.%d}"
    )


def month_period(year: int, month: int) -> ReportPeriod:
    return ReportPeriod(
        start=_day_start(date(year, month, 1)),
        end=_day_end(_month_end(year, month)),
        label=f"{year}-{month:02d}",
    )


def quarter_period(year: int, quarter: int) -> ReportPeriod:
    if not 1 <= quarter <= 4:
        raise AilError(f"Invalid quarter: {quarter}")
    first_month = (quarter - 1) * 3 + 1
    return ReportPeriod(
        start=_day_start(date(year, first_month, 1)),
        end=_day_end(_month_end(year, first_month + 2)),
        label=f"{year} Q{quarter}",
    )


def resolve_period(
    day: bool = False,
    on_date: str | None = None,
    week: bool = False,
    month: bool = False,
    quarter: str | None = None,
    date_from: str | None = None,
    date_to: str | None = None,
    today: date | None = None,
) -> ReportPeriod:
    """Pick the report window from CLI-style flags. Defaults to this week."""
    today = today or datetime.now(timezone.utc).date()

    if date_from and date_to:
        start, end = parse_datetime(date_from), parse_datetime(date_to)
        if start is None:
            raise AilError(f"Invalid --from date: {date_from}")
        if end is None:
            raise AilError(f"Invalid --to date: {date_to}")
        return ReportPeriod(start=start, end=end, label=f"{start:%Y.%m.%d} ~ {end:%m.%d}")
    if quarter:
        digits = "".join(c for c in quarter if c.isdigit())
        return quarter_period(today.year, int(digits) if digits else 1)
    if month:
        return month_period(today.year, today.month)
    if week:
        return week_period(today)
    if day or on_date:
        if on_date:
            try:
                return day_period(date.fromisoformat(on_date))
            except ValueError as exc:
                raise AilError(f"Invalid date format: {on_date}") from exc
        return day_period(today)
    return week_period(today)


def _agent_label(agent: str) -> str:
    kind = AgentKind.parse(agent)
    return kind.display_name if kind else agent


def _group_by_project(sessions: list[SessionRecord]) -> dict[str, list[SessionRecord]]:
    groups: dict[str, list[SessionRecord]] = {}
    for session in sessions:
        groups.setdefault(session.project_name or "unknown", []).append(session)
    return groups


def _file_changes(store: SessionStore, session_id: str) -> str:
    return " ".join(
        _CHANGE_PREFIX.get(f.change_type, "~") + f.path.rstrip("/").rsplit("/", 1)[-1]
        for f in changed_files(store.get_tool_calls(session_id))
    )


def _cell(text: str | None, limit: int) -> str:
    return (text or "-")[:limit].replace("|", "\\|")


def render_markdown(
    store: SessionStore, sessions: list[SessionRecord], stats: SessionStats, period: ReportPeriod
) -> str:
    lines = [f"# AI Work Report ({period.label})", "", "## Summary"]
    lines.append(
        f"- Total: {stats.total_sessions} sessions, {len(stats.sessions_by_project)} projects"
    )
    lines += [f"- {_agent_label(agent)}: {count} sessions" for agent, count in stats.sessions_by_agent]
    lines += [
        f"- Files: {stats.total_files_created} created, {stats.total_files_modified} modified, "
        f"{stats.total_files_deleted} deleted",
        "",
        "## Activity by Project",
        "",
    ]
    for project, group in _group_by_project(sessions).items():
        lines += [
            f"### {project} ({len(group)} sessions)",
            "",
            "| Request | AI Work Summary | Changes |",
            "|---------|----------------|---------|",
        ]
        for session in group:
            work = session.llm_summary or session.work_summary
            lines.append(
                f"| {_cell(session.summary, 60)} | {_cell(work, 80)} | "
                f"{_file_changes(store, session.id)} |"
            )
        created = sum(s.files_created for s in group)
        modified = sum(s.files_modified for s in group)
        lines += ["", f"Session total: {created} created, {modified} modified", ""]
    return "\n".join(lines)


def render_slack(sessions: list[SessionRecord], stats: SessionStats, period: ReportPeriod) -> str:
    lines = [
        f"*AI Work Report ({period.label})*",
        "",
        f"> {stats.total_sessions} sessions across {len(stats.sessions_by_project)} projects",
    ]
    lines += [f"> {_agent_label(agent)} {count} sessions" for agent, count in stats.sessions_by_agent]
    lines.append("")
    for project, group in _group_by_project(sessions).items():
        lines.append(f"*{project}* ({len(group)} sessions)")
        for session in group:
            work = session.llm_summary or session.work_summary
            lines.append(f"  - {session.summary or '-'} → {work or '-'}")
        lines.append("")
    return "\n".join(lines)


def render_json(sessions: list[SessionRecord], stats: SessionStats, period: ReportPeriod) -> str:
    report = {
        "period": {
            "label": period.label,
            "from": period.start.isoformat(),
            "to": period.end.isoformat(),
        },
        "stats": {
            "total_sessions": stats.total_sessions,
            "sessions_by_agent": stats.sessions_by_agent,
            "sessions_by_project": stats.sessions_by_project,
            "files_created": stats.total_files_created,
            "files_modified": stats.total_files_modified,
            "files_deleted": stats.total_files_deleted,
        },
        "sessions": [
            {
                "id": s.id,
                "agent": s.agent,
                "project": s.project_name,
                "summary": s.summary,
                "work_summary": s.work_summary,
                "llm_summary": s.llm_summary,
                "started_at": s.started_at.isoformat() if s.started_at else None,
                "files_created": s.files_created,
                "files_modified": s.files_modified,
                "files_deleted": s.files_deleted,
                "tags": s.tags,
            }
            for s in sessions
        ],
    }
    return json.dumps(report, indent=2, ensure_ascii=False)


def report_sessions(
    store: SessionStore, period: ReportPeriod, project: str | None = None
) -> list[SessionRecord]:
    return store.list_sessions(
        project_path=project,
        date_from=period.start,
        date_to=period.end,
        limit=REPORT_SESSION_LIMIT,
    )


def generate_report(
    store: SessionStore,
    period: ReportPeriod,
    project: str | None = None,
    fmt: str = "markdown",
) -> str:
    fmt = fmt.lower()
    if fmt not in REPORT_FORMATS:
        raise AilError(f"Unknown report format: {fmt}")
    sessions = report_sessions(store, period, project)
    stats = store.get_stats(date_from=period.start, date_to=period.end, project_path=project)
    if fmt == "slack":
        return render_slack(sessions, stats, period)
    if fmt == "json":
        return render_json(sessions, stats, period)
    return render_markdown(store, sessions, stats, period)
