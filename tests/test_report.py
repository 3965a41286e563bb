"""Tests for report periods and rendering."""

import json
from datetime import date, datetime, timedelta, timezone

import pytest

from ailog.core.models import AgentKind, ToolCall
from ailog.core.report import (
    day_period,
    generate_report,
    month_period,
    quarter_period,
    resolve_period,
    week_period,
)
from ailog.errors import AilError

TODAY = date(2026, 3, 11)


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestPeriods:
    def test_default_is_current_week(self):
        period = resolve_period(today=TODAY)
        assert period.start == _utc(2026, 3, 9)
        assert period.end == _utc(2026, 3, 15, 23, 59, 59)
        assert period.label == "2026.03.09 ~ 03.15"
        assert resolve_period(week=True, today=TODAY) == period

    def test_week_on_monday_and_sunday(self):
        assert week_period(date(2026, 3, 9)).start == _utc(2026, 3, 9)
        assert week_period(date(2026, 3, 15)).start == _utc(2026, 3, 9)

    def test_day(self):
        assert resolve_period(day=True, today=TODAY) == day_period(TODAY)
        period = resolve_period(on_date="2026-02-01", today=TODAY)
        assert period.start == _utc(2026, 2, 1)
        assert period.end == _utc(2026, 2, 1, 23, 59, 59)
        assert period.label == "2026-02-01"

    def test_invalid_date(self):
        with pytest.raises(AilError):
            resolve_period(on_date="02/01/2026", today=TODAY)

    def test_month(self):
        period = resolve_period(month=True, today=TODAY)
        assert period == month_period(2026, 3)
        assert period.end == _utc(2026, 3, 31, 23, 59, 59)
        assert month_period(2026, 12).end == _utc(2026, 12, 31, 23, 59, 59)
        assert month_period(2028, 2).end.day == 29

    def test_quarter(self):
        period = resolve_period(quarter="Q2", today=TODAY)
        assert period.start == _utc(2026, 4, 1)
        assert period.end == _utc(2026, 6, 30, 23, 59, 59)
        assert period.label == "2026 Q2"
        assert resolve_period(quarter="4", today=TODAY).end == _utc(2026, 12, 31, 23, 59, 59)

    def test_invalid_quarter(self):
        with pytest.raises(AilError):
            quarter_period(2026, 5)
        with pytest.raises(AilError):
            resolve_period(quarter="Q7", today=TODAY)

    def test_custom_range_wins(self):
        period = resolve_period(
            month=True, quarter="Q1", date_from="2026-01-05", date_to="2026-01-20", today=TODAY
        )
        assert period.start == _utc(2026, 1, 5)
        assert period.end == _utc(2026, 1, 20)
        assert period.label == "2026.01.05 ~ 01.20"

    def test_custom_range_invalid(self):
        with pytest.raises(AilError):
            resolve_period(date_from="soon", date_to="2026-01-20", today=TODAY)

    def test_quarter_beats_month(self):
        assert resolve_period(month=True, quarter="Q1", today=TODAY).label == "2026 Q1"


@pytest.fixture
def week_of_work(store, make_session):
    monday = _utc(2026, 3, 9, 10)
    store.insert_session(
        make_session(
            "w1",
            started_at=monday,
            user="Add a login page",
            tool_calls=[
                ToolCall(tool_name="Write", file_path="/work/app/login.py", timestamp=monday),
                ToolCall(tool_name="Edit", file_path="/work/app/app.py", timestamp=monday),
            ],
        )
    )
    store.insert_session(
        make_session("w2", agent=AgentKind.CODEX, project_path="/work/api", started_at=monday + timedelta(days=1))
    )
    store.insert_session(make_session("old", started_at=monday - timedelta(days=10)))
    return week_period(TODAY)


class TestRender:
    def test_markdown(self, store, week_of_work):
        text = generate_report(store, week_of_work)
        assert text.startswith("# AI Work Report (2026.03.09 ~ 03.15)")
        assert "- Total: 2 sessions, 2 projects" in text
        assert "- Claude Code: 1 sessions" in text
        assert "- Codex: 1 sessions" in text
        assert "- Files: 1 created, 1 modified, 0 deleted" in text
        assert "### app (1 sessions)" in text
        assert "### api (1 sessions)" in text
        assert "+login.py ~app.py" in text

    def test_markdown_prefers_llm_summary(self, store, week_of_work):
        store.update_llm_summary("w1", "Shipped login with JWT")
        text = generate_report(store, week_of_work)
        assert "Shipped login with JWT" in text

    def test_json(self, store, week_of_work):
        data = json.loads(generate_report(store, week_of_work, fmt="json"))
        assert data["period"]["label"] == "2026.03.09 ~ 03.15"
        assert data["stats"]["total_sessions"] == 2
        assert sorted(s["id"] for s in data["sessions"]) == ["w1", "w2"]

    def test_slack(self, store, week_of_work):
        text = generate_report(store, week_of_work, fmt="slack")
        assert text.startswith("*AI Work Report (2026.03.09 ~ 03.15)*")
        assert "*app* (1 sessions)" in text

    def test_project_filter(self, store, week_of_work):
        data = json.loads(generate_report(store, week_of_work, project="/work/api", fmt="json"))
        assert [s["id"] for s in data["sessions"]] == ["w2"]

    def test_unknown_format(self, store, week_of_work):
        with pytest.raises(AilError):
            generate_report(store, week_of_work, fmt="pdf")
