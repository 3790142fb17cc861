"""
Tests for parsers/task_parser.py.

Covers:
- get_and_remove_match: consume-all contract, last match wins
- process_task_line: status, block anchor, non-task lines
- process_text: type signifiers, dates, relative dates, exclusion
"""

import re
import sys
from datetime import date
from pathlib import Path

# Add src to path so imports work without installation
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest

from nextaction.config import Settings
from nextaction.models.task import TaskStatus, TaskType
from nextaction.parsers.task_parser import MarkdownTaskParser, get_and_remove_match

# 2026-10-18 is a Sunday
SUNDAY = date(2026, 10, 18)


@pytest.fixture
def parser(tmp_path):
    settings = Settings(vault_root=tmp_path, task_block_prefix="tz")
    return MarkdownTaskParser(settings, today=lambda: SUNDAY)


# ---------------------------------------------------------------------------
# get_and_remove_match
# ---------------------------------------------------------------------------

class TestGetAndRemoveMatch:
    def test_no_match(self):
        value, text = get_and_remove_match("plain text", re.compile(r"(#\w+)"))
        assert value == ""
        assert text == "plain text"

    def test_last_match_wins(self):
        value, text = get_and_remove_match("a #x b #y", re.compile(r"(#\w+)"))
        assert value == "#y"
        assert "#x" not in text and "#y" not in text

    def test_match_replaced_by_space(self):
        _, text = get_and_remove_match("one#tagtwo", re.compile(r"(#tag)"))
        assert text == "one two"


# ---------------------------------------------------------------------------
# process_task_line
# ---------------------------------------------------------------------------

class TestProcessTaskLine:
    def test_due_date_and_anchor(self, parser):
        parsed = parser.process_task_line("- [ ] Buy milk 📅 2025-01-01 ^tz5")
        assert parsed.status == TaskStatus.TODO
        assert parsed.due == "2025-01-01"
        assert parsed.text == "Buy milk"
        assert parsed.id == 5

    def test_relative_weekday_on_sunday(self, parser):
        parsed = parser.process_task_line("- [ ] Plan trip $tuesday ^tz9")
        assert parsed.scheduled == "2026-10-20"
        assert parsed.text == "Plan trip"
        assert parsed.id == 9

    def test_not_a_task(self, parser):
        assert parser.process_task_line("Just some prose") is None
        assert parser.process_task_line("- a plain list item") is None

    def test_completed_lowercase_and_uppercase(self, parser):
        assert parser.process_task_line("- [x] Done").status == TaskStatus.DONE
        assert parser.process_task_line("- [X] Done").status == TaskStatus.DONE

    def test_unknown_checkbox_is_todo(self, parser):
        assert parser.process_task_line("- [/] Half done").status == TaskStatus.TODO

    def test_indented_task(self, parser):
        parsed = parser.process_task_line("\t\t- [ ] Nested ^tz3")
        assert parsed.text == "Nested"
        assert parsed.id == 3

    def test_no_anchor_means_no_id(self, parser):
        assert parser.process_task_line("- [ ] Fresh").id is None

    def test_anchor_with_other_prefix_stays_in_text(self, parser):
        parsed = parser.process_task_line("- [ ] Foreign ^na4")
        assert parsed.id is None
        assert parsed.text == "Foreign ^na4"

    def test_completed_date(self, parser):
        parsed = parser.process_task_line("- [x] Filed taxes ✅ 2026-01-15 ^tz1")
        assert parsed.completed == "2026-01-15"
        assert parsed.text == "Filed taxes"


# ---------------------------------------------------------------------------
# process_text
# ---------------------------------------------------------------------------

class TestProcessText:
    def test_plain_text(self, parser):
        parsed = parser.process_text("Call the plumber")
        assert parsed.text == "Call the plumber"
        assert parsed.type is None
        assert parsed.status is None

    def test_type_emoji(self, parser):
        parsed = parser.process_text("➡️ Call Sam")
        assert parsed.type == TaskType.NEXT_ACTION
        assert parsed.text == "Call Sam"

    def test_type_emoji_without_variation_selector(self, parser):
        parsed = parser.process_text("Wait for reply ⏸")
        assert parsed.type == TaskType.WAITING_ON
        assert parsed.text == "Wait for reply"

    def test_type_hashtag(self, parser):
        parsed = parser.process_text("Renovate kitchen #project")
        assert parsed.type == TaskType.PROJECT
        assert parsed.text == "Renovate kitchen"

    def test_someday_wins_over_next_action(self, parser):
        parsed = parser.process_text("💤 ➡️ Learn the cello")
        assert parsed.type == TaskType.SOMEDAY
        assert parsed.text == "Learn the cello"

    def test_similar_hashtag_is_not_a_type(self, parser):
        parsed = parser.process_text("Read #projects-list")
        assert parsed.type is None
        assert parsed.text == "Read #projects-list"

    def test_all_dates(self, parser):
        parsed = parser.process_text("Report ➕ 2026-01-01 ⏳ 2026-01-05 📅 2026-01-10")
        assert parsed.created == "2026-01-01"
        assert parsed.scheduled == "2026-01-05"
        assert parsed.due == "2026-01-10"
        assert parsed.text == "Report"

    def test_last_date_wins(self, parser):
        parsed = parser.process_text("Pay 📅 2026-01-01 📅 2026-02-02")
        assert parsed.due == "2026-02-02"
        assert parsed.text == "Pay"

    def test_relative_due(self, parser):
        parsed = parser.process_text("Return books 📅 $tom")
        assert parsed.due == "2026-10-19"
        assert parsed.scheduled is None

    def test_relative_scheduled_with_emoji(self, parser):
        parsed = parser.process_text("Water plants ⏳ $three")
        assert parsed.scheduled == "2026-10-21"

    def test_bare_relative_is_scheduled(self, parser):
        parsed = parser.process_text("Haircut $week")
        assert parsed.scheduled == "2026-10-25"
        assert parsed.text == "Haircut"

    def test_unknown_relative_word_left_in_text(self, parser):
        parsed = parser.process_text("Pay $rent")
        assert parsed.scheduled is None
        assert parsed.text == "Pay $rent"

    def test_explicit_date_wins_over_relative(self, parser):
        parsed = parser.process_text("Dentist ⏳ $tom ⏳ 2026-05-05")
        assert parsed.scheduled == "2026-05-05"

    def test_stray_signifier_removed(self, parser):
        parsed = parser.process_text("Buy 📅 milk")
        assert parsed.text == "Buy milk"
        assert parsed.due is None

    def test_excluded(self, parser):
        parsed = parser.process_text("Secret #exclude")
        assert parsed.excluded is True
        assert parsed.text == "Secret"

    def test_note_exclusion_tag_does_not_exclude_task(self, parser):
        assert parser.process_text("Visible #exclude-note").excluded is False

    def test_whitespace_collapsed(self, parser):
        assert parser.process_text("  lots   of   space  ").text == "lots of space"
