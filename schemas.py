"""Pydantic schemas for Goal Reminder Service.

Domain records, generator/gateway value objects and API request/response
bodies. Records are stored as camelCase JSON; API bodies are snake_case.
IMPORTANT: every datetime here is timezone-aware UTC once validated.
"""

import enum
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

from clock import as_utc, utc_now


class ReminderCategory(str, enum.Enum):
    """Closed set of reminder categories"""
    START = "Start"
    DAILY = "Daily"
    WEEKLY_REVIEW = "Weekly Review"
    MONTHLY_MILESTONE = "Monthly Milestone"
    MILESTONE = "Milestone"
    COMPLETION = "Completion"
    PRACTICE = "Practice"
    MOTIVATION = "Motivation"
    CUSTOM = "Custom"

    @classmethod
    def lookup(cls, value) -> Optional["ReminderCategory"]:
        """Match a category name loosely ("WeeklyReview", "weekly_review").

        Returns None for anything outside the enum.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        wanted = value.replace(" ", "").replace("_", "").lower()
        for category in cls:
            if category.value.replace(" ", "").lower() == wanted:
                return category
        return None

    @classmethod
    def coerce(cls, value) -> "ReminderCategory":
        """Unknown categories are treated as Custom."""
        return cls.lookup(value) or cls.CUSTOM


class ReminderStatus(str, enum.Enum):
    """Derived status, never stored"""
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class ReminderRecord(BaseModel):
    """The unit of persistence.

    Frozen: ``scheduled_time``, ``message`` and ``category`` never change
    after creation. Cancelling and re-syncing produce copies through
    ``model_copy(update=...)``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    message: str = Field(..., min_length=1)
    scheduled_time: datetime
    notification_handle: Optional[str] = Field(None, alias="notificationId")
    is_active: bool = True
    category: ReminderCategory = ReminderCategory.CUSTOM
    created_at: datetime = Field(default_factory=utc_now)
    goal: Optional[str] = None
    is_ai_generated: bool = Field(False, alias="isAIGenerated")

    @field_validator("category", mode="before")
    @classmethod
    def _unknown_category_is_custom(cls, value):
        return ReminderCategory.coerce(value)

    @field_validator("scheduled_time", "created_at")
    @classmethod
    def _to_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.scheduled_time <= (now or utc_now())

    def status(self, now: Optional[datetime] = None) -> ReminderStatus:
        if not self.is_active:
            return ReminderStatus.CANCELLED
        if self.is_expired(now):
            return ReminderStatus.EXPIRED
        return ReminderStatus.ACTIVE


class Candidate(BaseModel):
    """AI-proposed reminder before the schedule generator accepts it."""

    message: str
    day_offset: int = Field(..., strict=True)
    category: str


class PlannedReminder(BaseModel):
    """A validated, time-snapped reminder waiting to be created."""

    message: str
    scheduled_time: datetime
    category: ReminderCategory


class ScheduleResult(BaseModel):
    reminders: List[PlannedReminder]
    source: str = Field(..., pattern="^(ai|fallback)$")
    rejected: int = 0


class GoalAnalysis(BaseModel):
    """Structured reply from the AI gateway."""

    strategy: str
    candidates: List[Candidate]
    recommended_timeframe: Optional[str] = None


class NotificationPreferences(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    enabled: bool = True


class AIPreferences(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    enabled: bool = True


class AppSettings(BaseModel):
    """User-facing settings stored under SETTINGS_KEY."""

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)

    api_key: str = ""
    notification_preferences: NotificationPreferences = Field(default_factory=NotificationPreferences)
    ai_preferences: AIPreferences = Field(default_factory=AIPreferences)


class ItemFailure(BaseModel):
    """One reminder of a goal plan that could not be created."""

    message: str
    scheduled_time: datetime
    category: ReminderCategory
    reason: str


class PlanResult(BaseModel):
    """Outcome of expanding a goal into reminders."""

    goal: str
    timeframe_days: int
    source: str
    strategy: Optional[str] = None
    recommended_timeframe: Optional[str] = None
    gateway_error: Optional[str] = None
    created: List[ReminderRecord] = Field(default_factory=list)
    failures: List[ItemFailure] = Field(default_factory=list)

    @computed_field
    @property
    def created_count(self) -> int:
        return len(self.created)

    @computed_field
    @property
    def failed_count(self) -> int:
        return len(self.failures)


class SyncReport(BaseModel):
    checked: int = 0
    rescheduled: int = 0
    skipped_expired: int = 0
    failed: int = 0


class ReminderStats(BaseModel):
    total: int = 0
    active: int = 0
    expired: int = 0
    cancelled: int = 0
    by_category: Dict[str, int] = Field(default_factory=dict)
    by_goal: Dict[str, int] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# API bodies
# ---------------------------------------------------------------------------


class ReminderCreate(BaseModel):
    """Schema for creating a single reminder.

    Pydantic parses ISO datetime strings; naive values are interpreted in
    the configured TIMEZONE by the service.
    """

    message: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="Reminder text",
        examples=["Buy milk", "Stretch for 10 minutes"]
    )

    scheduled_time: datetime = Field(
        ...,
        description="When the reminder fires (ISO 8601 format)",
        examples=["2026-10-26T15:00:00Z", "2026-10-26T15:00:00+07:00"]
    )

    category: ReminderCategory = Field(
        default=ReminderCategory.CUSTOM,
        description="Reminder category"
    )

    goal: Optional[str] = Field(
        None,
        max_length=500,
        description="Optional goal label grouping this reminder"
    )


class GoalPlanCreate(BaseModel):
    """Schema for expanding a goal into a reminder schedule."""

    goal: str = Field(
        ...,
        min_length=1,
        max_length=500,
        examples=["Learn Spanish", "Run a half marathon"]
    )

    timeframe: Optional[str] = Field(
        None,
        description="Human timeframe such as '2 weeks' or '3 months'. Defaults to 30 days.",
        examples=["2 weeks", "3 months"]
    )


class SettingsUpdate(BaseModel):
    """Partial settings update - only provided fields are changed."""

    api_key: Optional[str] = None
    notification_preferences: Optional[NotificationPreferences] = None
    ai_preferences: Optional[AIPreferences] = None


class ReminderResponse(BaseModel):
    """Schema for reminder responses, with the derived status."""

    id: str
    message: str
    scheduled_time: datetime
    notification_handle: Optional[str] = None
    is_active: bool
    category: ReminderCategory
    created_at: datetime
    goal: Optional[str] = None
    is_ai_generated: bool
    status: ReminderStatus

    @classmethod
    def from_record(cls, record: ReminderRecord, now: Optional[datetime] = None) -> "ReminderResponse":
        return cls(
            **record.model_dump(),
            status=record.status(now),
        )


class PlanResponse(BaseModel):
    goal: str
    timeframe_days: int
    source: str
    strategy: Optional[str] = None
    recommended_timeframe: Optional[str] = None
    gateway_error: Optional[str] = None
    created_count: int
    failed_count: int
    created: List[ReminderResponse]
    failures: List[ItemFailure]

    @classmethod
    def from_result(cls, result: PlanResult, now: Optional[datetime] = None) -> "PlanResponse":
        return cls(
            goal=result.goal,
            timeframe_days=result.timeframe_days,
            source=result.source,
            strategy=result.strategy,
            recommended_timeframe=result.recommended_timeframe,
            gateway_error=result.gateway_error,
            created_count=result.created_count,
            failed_count=result.failed_count,
            created=[ReminderResponse.from_record(r, now) for r in result.created],
            failures=result.failures,
        )
