"""Goal -> reminder schedule expansion.

Accepts AI candidates when enough of them are valid, otherwise builds a
deterministic template schedule from the goal and timeframe alone. Both
paths return reminders sorted by time and capped at MAX_SCHEDULE_LENGTH.
"""

from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from clock import at_hour, days_from_now, utc_now
from config import settings
from logger_config import setup_logger
from schemas import Candidate, PlannedReminder, ReminderCategory, ScheduleResult

logger = setup_logger(__name__, 'generator.log')

CATEGORY_HOURS = {
    ReminderCategory.START: 9,
    ReminderCategory.DAILY: 8,
    ReminderCategory.WEEKLY_REVIEW: 10,
    ReminderCategory.MONTHLY_MILESTONE: 11,
    ReminderCategory.PRACTICE: 19,
    ReminderCategory.COMPLETION: 18,
    ReminderCategory.MILESTONE: 12,
    ReminderCategory.MOTIVATION: 20,
}
DEFAULT_HOUR = 12

MAX_FALLBACK_DAILY = 7
MAX_FALLBACK_WEEKLY = 8
MILESTONE_MIN_DAYS = 14

_DAILY_TEMPLATES = [
    "Day {day}: take one concrete step toward \"{goal}\" today.",
    "Day {day}: small progress on \"{goal}\" still counts. Keep going!",
    "Day {day}: block 20 focused minutes for \"{goal}\".",
    "Day {day}: remember why \"{goal}\" matters to you.",
    "Day {day}: consistency beats intensity. Show up for \"{goal}\".",
    "Day {day}: review what worked yesterday for \"{goal}\".",
    "Day {day}: one week of effort on \"{goal}\". Be proud of it!",
]


def hour_for_category(category) -> int:
    """Time-of-day for a category; anything outside the enum gets noon."""
    return CATEGORY_HOURS.get(ReminderCategory.lookup(category), DEFAULT_HOUR)


def _valid_candidates(candidates: Sequence[Candidate]) -> List[Candidate]:
    valid = []
    for candidate in candidates:
        message = (candidate.message or "").strip()
        if not message or len(message) > settings.MAX_MESSAGE_LENGTH:
            continue
        if not 0 < candidate.day_offset <= settings.MAX_TIMEFRAME_DAYS:
            continue
        if ReminderCategory.lookup(candidate.category) is None:
            continue
        valid.append(candidate)
    return valid


def _finalize(reminders: List[PlannedReminder]) -> List[PlannedReminder]:
    """Drop duplicates, sort by time (stable) and cap the length."""
    seen = set()
    unique = []
    for reminder in reminders:
        key = (reminder.message, reminder.scheduled_time)
        if key in seen:
            continue
        seen.add(key)
        unique.append(reminder)
    unique.sort(key=lambda r: r.scheduled_time)
    return unique[:settings.MAX_SCHEDULE_LENGTH]


def build_ai_schedule(
    candidates: Sequence[Candidate],
    now: datetime,
    tz_name: Optional[str] = None,
) -> List[PlannedReminder]:
    """Turn already-validated candidates into snapped, ordered reminders."""
    planned = []
    for candidate in candidates:
        category = ReminderCategory.coerce(candidate.category)
        scheduled = at_hour(
            days_from_now(now, candidate.day_offset),
            hour_for_category(category),
            tz_name,
        )
        planned.append(PlannedReminder(
            message=candidate.message.strip(),
            scheduled_time=scheduled,
            category=category,
        ))
    return _finalize(planned)


def build_fallback_schedule(
    goal: str,
    timeframe_days: int,
    now: datetime,
    tz_name: Optional[str] = None,
) -> List[PlannedReminder]:
    """Template schedule that needs nothing but the goal and the timeframe.

    Always contains a Start reminder an hour from now and a Completion
    reminder after it.
    """
    goal = goal.strip()
    days = min(max(int(timeframe_days), 1), settings.MAX_TIMEFRAME_DAYS)

    def snapped(day: int, category: ReminderCategory) -> datetime:
        return at_hour(days_from_now(now, day), CATEGORY_HOURS[category], tz_name)

    start_time = now + timedelta(hours=1)
    planned = [PlannedReminder(
        message=f"Let's start: \"{goal}\". Today is day one, make it count!",
        scheduled_time=start_time,
        category=ReminderCategory.START,
    )]

    for day in range(1, min(MAX_FALLBACK_DAILY, days) + 1):
        template = _DAILY_TEMPLATES[(day - 1) % len(_DAILY_TEMPLATES)]
        planned.append(PlannedReminder(
            message=template.format(day=day, goal=goal),
            scheduled_time=snapped(day, ReminderCategory.DAILY),
            category=ReminderCategory.DAILY,
        ))

    for week in range(1, min(days // 7, MAX_FALLBACK_WEEKLY) + 1):
        planned.append(PlannedReminder(
            message=f"Week {week} review: what moved \"{goal}\" forward, and what will you change?",
            scheduled_time=snapped(week * 7, ReminderCategory.WEEKLY_REVIEW),
            category=ReminderCategory.WEEKLY_REVIEW,
        ))

    if days > MILESTONE_MIN_DAYS:
        planned.append(PlannedReminder(
            message=f"Halfway there on \"{goal}\"! Check your progress and adjust the plan.",
            scheduled_time=snapped(days // 2, ReminderCategory.MILESTONE),
            category=ReminderCategory.MILESTONE,
        ))

    completion_time = snapped(days - 1, ReminderCategory.COMPLETION)
    if completion_time <= start_time:
        completion_time += timedelta(days=1)
    planned.append(PlannedReminder(
        message=f"Final day for \"{goal}\". Look back at how far you've come!",
        scheduled_time=completion_time,
        category=ReminderCategory.COMPLETION,
    ))

    return _finalize(planned)


def generate_schedule(
    goal: str,
    timeframe_days: int,
    candidates: Optional[Sequence[Candidate]] = None,
    now: Optional[datetime] = None,
    tz_name: Optional[str] = None,
) -> ScheduleResult:
    """Build the reminder schedule for a goal.

    Args:
        goal: Free-text goal
        timeframe_days: Length of the plan in days
        candidates: AI-proposed reminders, or None when the AI was unavailable
        now: Generation time (defaults to the current UTC time)
        tz_name: Timezone for time-of-day snapping (defaults to TIMEZONE)

    Returns:
        ScheduleResult with source "ai" or "fallback" and the number of
        rejected candidates
    """
    now = now or utc_now()
    rejected = 0

    if candidates:
        valid = _valid_candidates(candidates)
        rejected = len(candidates) - len(valid)
        if len(valid) >= settings.MIN_AI_REMINDERS:
            reminders = build_ai_schedule(valid, now, tz_name)
            logger.info(
                f"AI schedule for '{goal}': {len(reminders)} reminder(s), {rejected} candidate(s) rejected"
            )
            return ScheduleResult(reminders=reminders, source="ai", rejected=rejected)

        logger.warning(
            f"Only {len(valid)} valid AI candidate(s) for '{goal}' "
            f"(minimum {settings.MIN_AI_REMINDERS}), using fallback schedule"
        )

    reminders = build_fallback_schedule(goal, timeframe_days, now, tz_name)
    logger.info(f"Fallback schedule for '{goal}' ({timeframe_days} days): {len(reminders)} reminder(s)")
    return ScheduleResult(reminders=reminders, source="fallback", rejected=rejected)
