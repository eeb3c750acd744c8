"""Tests for goal -> schedule expansion."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from conftest import NOW
from schedule_generator import (
    build_fallback_schedule,
    generate_schedule,
    hour_for_category,
)
from schemas import Candidate, ReminderCategory

UTC = "UTC"


def _candidates(count, category="Daily"):
    return [Candidate(message=f"Step {i}", day_offset=i, category=category) for i in range(1, count + 1)]


def test_fallback_for_learn_spanish():
    result = generate_schedule("Learn Spanish", 30, None, now=NOW, tz_name=UTC)
    categories = [r.category for r in result.reminders]

    assert result.source == "fallback"
    assert categories.count(ReminderCategory.START) == 1
    assert categories.count(ReminderCategory.DAILY) == 7
    assert categories.count(ReminderCategory.WEEKLY_REVIEW) == 4
    assert categories.count(ReminderCategory.MILESTONE) == 1
    assert categories.count(ReminderCategory.COMPLETION) == 1
    assert all(isinstance(c, ReminderCategory) for c in categories)


def test_fallback_times_are_future_and_sorted():
    for days in (1, 2, 7, 15, 30, 90, 365):
        reminders = generate_schedule("Goal", days, None, now=NOW, tz_name=UTC).reminders
        times = [r.scheduled_time for r in reminders]

        assert len(reminders) >= 2
        assert all(t > NOW for t in times), f"past reminder for {days} days"
        assert times == sorted(times)
        assert len(reminders) <= 25


def test_fallback_snaps_hours():
    reminders = build_fallback_schedule("Read more", 30, NOW, UTC)
    by_category = {}
    for r in reminders:
        by_category.setdefault(r.category, []).append(r.scheduled_time)

    assert by_category[ReminderCategory.START] == [NOW + timedelta(hours=1)]
    assert all(t.hour == 8 for t in by_category[ReminderCategory.DAILY])
    assert all(t.hour == 10 for t in by_category[ReminderCategory.WEEKLY_REVIEW])
    assert by_category[ReminderCategory.MILESTONE] == [datetime(2026, 11, 2, 12, 0, tzinfo=timezone.utc)]
    assert by_category[ReminderCategory.COMPLETION] == [datetime(2026, 11, 16, 18, 0, tzinfo=timezone.utc)]


def test_weekly_reviews_are_capped():
    reminders = build_fallback_schedule("Marathon", 365, NOW, UTC)
    weekly = [r for r in reminders if r.category == ReminderCategory.WEEKLY_REVIEW]
    assert len(weekly) == 8


def test_no_milestone_for_short_timeframes():
    reminders = build_fallback_schedule("Short goal", 14, NOW, UTC)
    assert ReminderCategory.MILESTONE not in [r.category for r in reminders]


def test_one_day_timeframe_completion_after_start():
    reminders = build_fallback_schedule("Clean the garage", 1, NOW, UTC)
    start = next(r for r in reminders if r.category == ReminderCategory.START)
    completion = next(r for r in reminders if r.category == ReminderCategory.COMPLETION)

    assert completion.scheduled_time == datetime(2026, 10, 18, 18, 0, tzinfo=timezone.utc)
    assert completion.scheduled_time > start.scheduled_time


def test_one_day_timeframe_late_evening_moves_completion_forward():
    late = datetime(2026, 10, 18, 17, 30, tzinfo=timezone.utc)
    reminders = build_fallback_schedule("Clean the garage", 1, late, UTC)
    start = reminders[0]
    completion = next(r for r in reminders if r.category == ReminderCategory.COMPLETION)

    assert start.category == ReminderCategory.START
    assert completion.scheduled_time == datetime(2026, 10, 19, 18, 0, tzinfo=timezone.utc)
    assert [r.scheduled_time for r in reminders] == sorted(r.scheduled_time for r in reminders)


def test_valid_ai_candidates_are_snapped_and_sorted():
    candidates = [
        Candidate(message="Finish strong", day_offset=30, category="Completion"),
        Candidate(message="Kick off", day_offset=1, category="Start"),
        Candidate(message="Daily drill", day_offset=2, category="Daily"),
        Candidate(message="Review week one", day_offset=7, category="Weekly Review"),
        Candidate(message="Practice session", day_offset=3, category="Practice"),
        Candidate(message="Month check", day_offset=20, category="Monthly Milestone"),
    ]
    result = generate_schedule("Learn Spanish", 30, candidates, now=NOW, tz_name=UTC)

    assert result.source == "ai"
    assert result.rejected == 0
    assert [r.message for r in result.reminders] == [
        "Kick off", "Daily drill", "Practice session", "Review week one", "Month check", "Finish strong",
    ]
    first = result.reminders[0]
    assert first.scheduled_time == datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
    assert result.reminders[2].scheduled_time.hour == 19
    assert result.reminders[4].scheduled_time.hour == 11
    assert result.reminders[-1].scheduled_time == datetime(2026, 11, 17, 18, 0, tzinfo=timezone.utc)


def test_snapping_uses_configured_timezone():
    candidates = _candidates(5, category="Start")
    result = generate_schedule("Goal", 30, candidates, now=NOW, tz_name="Asia/Ho_Chi_Minh")
    # 09:00 in UTC+7 is 02:00 UTC
    assert all(r.scheduled_time.hour == 2 for r in result.reminders)


def test_too_few_valid_candidates_matches_pure_fallback():
    candidates = [
        Candidate(message="One", day_offset=1, category="Start"),
        Candidate(message="Two", day_offset=2, category="Daily"),
        Candidate(message="Three", day_offset=3, category="Daily"),
        Candidate(message="", day_offset=4, category="Daily"),
        Candidate(message="   ", day_offset=5, category="Daily"),
    ]
    result = generate_schedule("Learn Spanish", 30, candidates, now=NOW, tz_name=UTC)
    fallback = generate_schedule("Learn Spanish", 30, None, now=NOW, tz_name=UTC)

    assert result.source == "fallback"
    assert result.rejected == 2
    assert result.reminders == fallback.reminders


def test_invalid_candidates_are_rejected():
    candidates = _candidates(5) + [
        Candidate(message="Zero offset", day_offset=0, category="Daily"),
        Candidate(message="Negative", day_offset=-3, category="Daily"),
        Candidate(message="Unknown category", day_offset=4, category="Party"),
        Candidate(message="x" * 501, day_offset=4, category="Daily"),
    ]
    result = generate_schedule("Goal", 30, candidates, now=NOW, tz_name=UTC)

    assert result.source == "ai"
    assert result.rejected == 4
    assert len(result.reminders) == 5


def test_schedule_is_capped_at_25_dropping_latest():
    result = generate_schedule("Goal", 60, _candidates(30), now=NOW, tz_name=UTC)

    assert len(result.reminders) == 25
    assert result.reminders[-1].message == "Step 25"


def test_duplicate_candidates_are_collapsed():
    candidates = _candidates(5) + [Candidate(message="Step 1", day_offset=1, category="Daily")]
    result = generate_schedule("Goal", 30, candidates, now=NOW, tz_name=UTC)
    assert [r.message for r in result.reminders].count("Step 1") == 1


def test_category_names_match_loosely():
    result = generate_schedule("Goal", 30, _candidates(5, category="WeeklyReview"), now=NOW, tz_name=UTC)
    assert all(r.category == ReminderCategory.WEEKLY_REVIEW for r in result.reminders)


def test_unknown_category_gets_noon_and_custom():
    assert hour_for_category("Party") == 12
    assert hour_for_category(ReminderCategory.CUSTOM) == 12
    assert hour_for_category("Daily") == 8
    assert ReminderCategory.coerce("Party") == ReminderCategory.CUSTOM


def test_out_of_range_day_offsets_are_rejected():
    candidates = _candidates(5) + [
        Candidate(message="Far future", day_offset=10 ** 8, category="Daily"),
        Candidate(message="Just past the limit", day_offset=3651, category="Daily"),
    ]
    result = generate_schedule("Goal", 30, candidates, now=NOW, tz_name=UTC)

    assert result.source == "ai"
    assert result.rejected == 2
    assert [r.message for r in result.reminders] == [f"Step {i}" for i in range(1, 6)]


def test_boolean_day_offset_is_not_accepted():
    with pytest.raises(ValidationError):
        Candidate(message="Flag", day_offset=True, category="Daily")


def test_huge_fallback_timeframe_is_capped():
    reminders = build_fallback_schedule("Goal", 10 ** 9, now=NOW, tz_name=UTC)

    completion = reminders[-1]
    assert completion.category == ReminderCategory.COMPLETION
    assert completion.scheduled_time.date() == (NOW + timedelta(days=3649)).date()
