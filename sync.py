"""Re-establish notifications that the scheduler no longer holds.

Active, future records whose handle is missing from the scheduler's live
set get a new notification and the new handle is persisted. Running the
pass twice without other changes schedules nothing the second time.
"""

from datetime import datetime
from typing import Optional

from clock import utc_now
from config import Settings, settings as default_settings
from crud import ReminderStore
from errors import SchedulingError
from logger_config import setup_logger
from notifications import NotificationScheduler
from schemas import SyncReport

logger = setup_logger(__name__, 'sync.log')


def _title_for(record, config: Settings) -> str:
    if record.goal or record.is_ai_generated:
        return config.GOAL_NOTIFICATION_TITLE
    return config.MANUAL_NOTIFICATION_TITLE


async def sync_notifications(
    store: ReminderStore,
    scheduler: NotificationScheduler,
    now: Optional[datetime] = None,
    config: Settings = default_settings,
) -> SyncReport:
    """Reconcile stored records against scheduled notifications.

    Scheduling failures are counted and logged; storage failures propagate.
    """
    now = now or utc_now()
    records = await store.load_all()
    live = set(await scheduler.list_scheduled())
    report = SyncReport()

    for record in records:
        if not record.is_active:
            continue
        report.checked += 1

        if record.is_expired(now):
            report.skipped_expired += 1
            continue
        if record.notification_handle and record.notification_handle in live:
            continue

        try:
            handle = await scheduler.schedule(_title_for(record, config), record.message, record.scheduled_time)
        except SchedulingError as e:
            logger.warning(f"Could not re-schedule reminder {record.id}: {e.kind.value} - {e}")
            report.failed += 1
            continue

        await store.update(record.model_copy(update={"notification_handle": handle}))
        live.add(handle)
        report.rescheduled += 1
        logger.info(f"Re-scheduled reminder {record.id} with notification {handle}")

    logger.info(
        f"Sync finished: {report.checked} active checked, {report.rescheduled} re-scheduled, "
        f"{report.skipped_expired} expired, {report.failed} failed"
    )
    return report
