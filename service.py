"""Reminder management for Goal Reminder Service.

ReminderManager ties the AI gateway, the schedule generator, the
notification scheduler and the persistence store together. Components are
built once by build_manager() and passed in explicitly.

Policies:
- A record is only persisted after its notification was scheduled.
- Cancelling an already-cancelled record succeeds without side effects.
- Deleting never fails because the notification could not be cancelled.
"""

from collections import Counter
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from ai_gateway import AIGateway, build_provider
from clock import localize, utc_now
from config import Settings, settings as default_settings
from crud import KeyValueStore, ReminderStore, SettingsStore
from database import init_db, make_engine, make_session_factory
from errors import (
    BatchCreationError,
    GatewayError,
    NotFoundError,
    SchedulingError,
    StorageError,
    ValidationError,
)
from logger_config import setup_logger
from notifications import BoundedScheduler, DatabaseNotificationScheduler, NotificationScheduler
from schedule_generator import generate_schedule
from schemas import (
    ItemFailure,
    PlanResult,
    ReminderCategory,
    ReminderRecord,
    ReminderStats,
    ReminderStatus,
    SyncReport,
)
from sync import sync_notifications
from timeframe import parse_timeframe

logger = setup_logger(__name__, 'service.log')


class ReminderManager:
    """Create, cancel, delete and list reminders."""

    def __init__(
        self,
        store: ReminderStore,
        scheduler: NotificationScheduler,
        gateway: Optional[AIGateway] = None,
        settings_store: Optional[SettingsStore] = None,
        clock: Callable[[], datetime] = utc_now,
        config: Settings = default_settings,
    ):
        self.store = store
        self.scheduler = scheduler
        self.gateway = gateway
        self.settings_store = settings_store
        self.clock = clock
        self.config = config

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _validate(self, message: str, scheduled_time: datetime) -> Tuple[str, datetime]:
        message = (message or "").strip()
        if not message:
            raise ValidationError("Reminder message cannot be empty")
        if len(message) > self.config.MAX_MESSAGE_LENGTH:
            raise ValidationError(f"Reminder message exceeds {self.config.MAX_MESSAGE_LENGTH} characters")
        if scheduled_time is None:
            raise ValidationError("Reminder time is required")

        scheduled_time = localize(scheduled_time, self.config.TIMEZONE)
        if scheduled_time <= self.clock():
            raise ValidationError("Reminder time must be in the future")
        return message, scheduled_time

    async def _create(
        self,
        message: str,
        scheduled_time: datetime,
        category: ReminderCategory,
        goal: Optional[str],
        is_ai_generated: bool,
        title: str,
    ) -> ReminderRecord:
        message, scheduled_time = self._validate(message, scheduled_time)

        handle = await self.scheduler.schedule(title, message, scheduled_time)

        record = ReminderRecord(
            message=message,
            scheduled_time=scheduled_time,
            notification_handle=handle,
            is_active=True,
            category=category,
            created_at=self.clock(),
            goal=goal,
            is_ai_generated=is_ai_generated,
        )

        try:
            await self.store.add(record)
        except StorageError:
            logger.error(f"Persisting reminder failed, cancelling notification {handle}")
            try:
                await self.scheduler.cancel(handle)
            except SchedulingError as e:
                logger.warning(f"Could not cancel orphaned notification {handle}: {str(e)}")
            raise

        logger.info(f"Reminder created: {record.id} at {scheduled_time.isoformat()} [{category.value}]")
        return record

    async def create_manual(
        self,
        message: str,
        scheduled_time: datetime,
        category: ReminderCategory = ReminderCategory.CUSTOM,
        goal: Optional[str] = None,
    ) -> ReminderRecord:
        """Create one reminder.

        Raises:
            ValidationError: empty/too long message or time not in the future
            SchedulingError: the notification could not be scheduled; nothing is stored
            StorageError: the record could not be persisted
        """
        return await self._create(
            message,
            scheduled_time,
            ReminderCategory.coerce(category),
            goal.strip() if goal else None,
            is_ai_generated=False,
            title=self.config.MANUAL_NOTIFICATION_TITLE,
        )

    async def _request_analysis(self, goal: str, timeframe: Optional[str]):
        if self.gateway is None:
            return None, "AI generation is not configured"

        api_key = None
        if self.settings_store is not None:
            app_settings = await self.settings_store.get()
            if not app_settings.ai_preferences.enabled:
                return None, "AI generation is disabled in settings"
            api_key = app_settings.api_key or None

        try:
            return await self.gateway.request_candidates(goal, timeframe, api_key=api_key), None
        except GatewayError as e:
            logger.warning(f"AI gateway failed ({e.kind.value}), using fallback schedule: {str(e)}")
            return None, str(e)

    async def create_from_goal(self, goal: str, timeframe: Optional[str] = None) -> PlanResult:
        """Expand a goal into reminders and create each of them.

        Individual scheduling or validation failures are collected in
        ``failures``; the plan fails only when nothing could be created.

        Raises:
            ValidationError: empty goal
            BatchCreationError: none of the reminders could be created
            StorageError: persistence failed mid-batch
        """
        goal = (goal or "").strip()
        if not goal:
            raise ValidationError("Please enter a goal")

        timeframe = timeframe.strip() if timeframe and timeframe.strip() else None
        timeframe_days = parse_timeframe(timeframe, default=self.config.DEFAULT_TIMEFRAME_DAYS)
        logger.info(f"Creating plan for '{goal}' ({timeframe or 'auto'} -> {timeframe_days} days)")

        analysis, gateway_error = await self._request_analysis(goal, timeframe)
        schedule = generate_schedule(
            goal,
            timeframe_days,
            analysis.candidates if analysis else None,
            now=self.clock(),
            tz_name=self.config.TIMEZONE,
        )

        result = PlanResult(
            goal=goal,
            timeframe_days=timeframe_days,
            source=schedule.source,
            strategy=analysis.strategy if analysis else None,
            recommended_timeframe=analysis.recommended_timeframe if analysis else None,
            gateway_error=gateway_error,
        )

        for planned in schedule.reminders:
            try:
                record = await self._create(
                    planned.message,
                    planned.scheduled_time,
                    planned.category,
                    goal,
                    is_ai_generated=schedule.source == "ai",
                    title=self.config.GOAL_NOTIFICATION_TITLE,
                )
            except (ValidationError, SchedulingError) as e:
                logger.warning(f"Could not create reminder '{planned.message}': {str(e)}")
                result.failures.append(ItemFailure(
                    message=planned.message,
                    scheduled_time=planned.scheduled_time,
                    category=planned.category,
                    reason=str(e),
                ))
                continue
            result.created.append(record)

        if not result.created:
            raise BatchCreationError(
                f"Could not create any reminders for '{goal}': "
                + ", ".join(f.reason for f in result.failures),
                failures=result.failures,
            )

        if result.failures:
            logger.warning(f"{len(result.failures)} reminder(s) failed for goal '{goal}'")
        logger.info(f"Created {len(result.created)} reminder(s) for goal '{goal}' from {schedule.source} schedule")
        return result

    # ------------------------------------------------------------------
    # State changes
    # ------------------------------------------------------------------

    async def cancel(self, record_id: str) -> ReminderRecord:
        """Deactivate a reminder and cancel its notification.

        Cancelling an already-cancelled reminder returns it unchanged.

        Raises:
            NotFoundError: unknown id
            SchedulingError: the notification could not be cancelled; the
                record stays active
        """
        record = await self.store.get(record_id)
        if record is None:
            raise NotFoundError(f"Reminder {record_id} not found")
        if not record.is_active:
            logger.info(f"Reminder {record_id} already cancelled")
            return record

        if record.notification_handle:
            await self.scheduler.cancel(record.notification_handle)

        cancelled = record.model_copy(update={"is_active": False})
        await self.store.update(cancelled)
        logger.info(f"Reminder cancelled: {record_id}")
        return cancelled

    async def delete(self, record_id: str) -> bool:
        """Remove a reminder, cancelling its notification best-effort.

        Returns:
            bool: True if deleted, False if not found
        """
        record = await self.store.get(record_id)
        if record is None:
            return False

        if record.notification_handle:
            try:
                await self.scheduler.cancel(record.notification_handle)
            except SchedulingError as e:
                logger.warning(f"Failed to cancel notification, continuing with deletion: {str(e)}")

        deleted = await self.store.delete(record_id)
        logger.info(f"Reminder deleted: {record_id}")
        return deleted

    async def clear_all(self) -> None:
        """Cancel every notification and empty the store."""
        logger.info("Clearing all reminders...")
        await self.scheduler.cancel_all()
        await self.store.clear()
        logger.info("All reminders cleared")

    async def sync(self) -> SyncReport:
        return await sync_notifications(self.store, self.scheduler, now=self.clock(), config=self.config)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get(self, record_id: str) -> ReminderRecord:
        record = await self.store.get(record_id)
        if record is None:
            raise NotFoundError(f"Reminder {record_id} not found")
        return record

    async def list_all(self) -> List[ReminderRecord]:
        records = await self.store.load_all()
        return sorted(records, key=lambda r: r.scheduled_time)

    async def list_active(self) -> List[ReminderRecord]:
        now = self.clock()
        return [r for r in await self.list_all() if r.status(now) == ReminderStatus.ACTIVE]

    async def list_by_goal(self, goal: str) -> List[ReminderRecord]:
        return [r for r in await self.list_all() if r.goal == goal]

    async def list_by_category(self, category) -> List[ReminderRecord]:
        wanted = ReminderCategory.coerce(category)
        return [r for r in await self.list_all() if r.category == wanted]

    async def stats(self) -> ReminderStats:
        records = await self.store.load_all()
        now = self.clock()
        statuses = Counter(r.status(now) for r in records)
        return ReminderStats(
            total=len(records),
            active=statuses[ReminderStatus.ACTIVE],
            expired=statuses[ReminderStatus.EXPIRED],
            cancelled=statuses[ReminderStatus.CANCELLED],
            by_category=dict(Counter(r.category.value for r in records)),
            by_goal=dict(Counter(r.goal or "Unknown" for r in records)),
        )


def build_manager(config: Settings = default_settings, engine=None) -> ReminderManager:
    """Construct every component once and wire them together.

    Args:
        config: Settings to build from
        engine: Optional SQLAlchemy engine (defaults to one for DATABASE_URL)
    """
    engine = engine or make_engine(config.DATABASE_URL)
    init_db(engine)
    session_factory = make_session_factory(engine)

    kv = KeyValueStore(session_factory, timeout=config.STORAGE_TIMEOUT)
    store = ReminderStore(kv, key=config.STORAGE_KEY, legacy_key=config.LEGACY_STORAGE_KEY)
    settings_store = SettingsStore(kv, key=config.SETTINGS_KEY)

    async def notifications_allowed() -> bool:
        return (await settings_store.get()).notification_preferences.enabled

    scheduler = BoundedScheduler(
        DatabaseNotificationScheduler(session_factory, permission_check=notifications_allowed),
        timeout=config.NOTIFICATION_TIMEOUT,
    )

    provider_name = config.AI_PROVIDER.lower()
    gateway = AIGateway(
        build_provider(provider_name, timeout=config.AI_TIMEOUT),
        default_api_key=config.OPENAI_API_KEY if provider_name == "openai" else config.GEMINI_API_KEY,
    )

    logger.info(f"Reminder manager built (database: {config.DATABASE_URL.split('://')[0]}, AI: {provider_name})")
    return ReminderManager(
        store=store,
        scheduler=scheduler,
        gateway=gateway,
        settings_store=settings_store,
        config=config,
    )
