"""
Tests for utils/dates.py and utils/formatting.py.
"""

import sys
from datetime import date
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from nextaction.config import DisplayOption, DisplaySettings
from nextaction.models.task import TaskType
from nextaction.utils.dates import is_iso_date, parse_iso_date, resolve_relative_date
from nextaction.utils.formatting import render_anchor, render_date, render_dates, render_type

SUNDAY = date(2026, 10, 18)


# ---------------------------------------------------------------------------
# resolve_relative_date
# ---------------------------------------------------------------------------

class TestResolveRelativeDate:
    @pytest.mark.parametrize(
        "word,expected",
        [
            ("today", date(2026, 10, 18)),
            ("tod", date(2026, 10, 18)),
            ("tomorrow", date(2026, 10, 19)),
            ("TOM", date(2026, 10, 19)),
            ("week", date(2026, 10, 25)),
            ("three", date(2026, 10, 21)),
            ("nine", date(2026, 10, 27)),
        ],
    )
    def test_keywords(self, word, expected):
        assert resolve_relative_date(word, SUNDAY) == expected

    def test_weekday_is_strictly_after_today(self):
        assert resolve_relative_date("tuesday", SUNDAY) == date(2026, 10, 20)
        assert resolve_relative_date("tue", SUNDAY) == date(2026, 10, 20)
        assert resolve_relative_date("sunday", SUNDAY) == date(2026, 10, 25)
        assert resolve_relative_date("sat", SUNDAY) == date(2026, 10, 24)

    def test_unknown_word(self):
        assert resolve_relative_date("someday", SUNDAY) is None
        assert resolve_relative_date("ten", SUNDAY) is None


class TestIsoDates:
    def test_parse(self):
        assert parse_iso_date("2026-02-15") == date(2026, 2, 15)
        assert parse_iso_date("2026-02-15T10:00:00") == date(2026, 2, 15)

    def test_parse_invalid(self):
        assert parse_iso_date("") is None
        assert parse_iso_date("2026-02-30") is None
        assert parse_iso_date("soon") is None

    def test_is_iso_date(self):
        assert is_iso_date("2026-02-15")
        assert not is_iso_date("2026-2-15")
        assert not is_iso_date("2026-13-01")


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

class TestRenderType:
    def test_inbox_has_no_signifier(self):
        assert render_type(TaskType.INBOX, DisplayOption.EMOJI) == ""

    def test_emoji(self):
        assert render_type(TaskType.PROJECT, DisplayOption.EMOJI) == "🗃️"

    def test_tag(self):
        assert render_type(TaskType.WAITING_ON, DisplayOption.TAG) == "#waiting-on"

    def test_hidden(self):
        assert render_type(TaskType.NEXT_ACTION, DisplayOption.NONE) == ""


class TestRenderDates:
    def test_single_date(self):
        assert render_date("due", "2026-02-15", DisplayOption.EMOJI) == "📅 2026-02-15"

    def test_empty_value(self):
        assert render_date("due", "", DisplayOption.EMOJI) == ""

    def test_canonical_order_and_hidden_created(self):
        rendered = render_dates(
            {"due": "2026-03-01", "completed": "2026-03-02", "scheduled": "2026-02-01", "created": "2026-01-01"},
            DisplaySettings(),
        )
        assert rendered == ["⏳ 2026-02-01", "📅 2026-03-01", "✅ 2026-03-02"]

    def test_created_shown_when_enabled(self):
        rendered = render_dates({"created": "2026-01-01"}, DisplaySettings(created=DisplayOption.EMOJI))
        assert rendered == ["➕ 2026-01-01"]

    def test_anchor(self):
        assert render_anchor("na", 42) == "^na42"
