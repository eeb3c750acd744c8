"""Background Worker for Goal Reminder Service.

Delivers scheduled notifications when they fall due.

The worker:
- Runs sync once at startup so active reminders have live notifications
- Checks for due notifications every WORKER_CHECK_INTERVAL seconds
- POSTs each one to NOTIFICATION_WEBHOOK_URL
- Retries up to WORKER_MAX_RETRIES times with exponential backoff, then
  marks the notification failed
"""

import asyncio
import signal
import sys
from typing import Optional

import httpx

from clock import as_utc, utc_now
from config import settings
from errors import ReminderServiceError
from logger_config import setup_logger
from notifications import DatabaseNotificationScheduler
from service import ReminderManager, build_manager

logger = setup_logger(__name__, 'worker.log')

# Global flag for graceful shutdown
shutdown_requested = False


def signal_handler(signum, frame):
    """Handle shutdown signals gracefully."""
    global shutdown_requested
    logger.info(f"Received signal {signum}, initiating graceful shutdown...")
    shutdown_requested = True


async def deliver_notification(client: httpx.AsyncClient, notification) -> Optional[dict]:
    """POST one notification to the webhook.

    Returns:
        dict: Webhook response (empty if it had no JSON body), None on failure
    """
    payload = {
        "notification_id": notification.id,
        "title": notification.title,
        "body": notification.body,
        "fire_at": as_utc(notification.fire_at).isoformat(),
    }

    try:
        response = await client.post(settings.NOTIFICATION_WEBHOOK_URL, json=payload)
    except httpx.TimeoutException:
        logger.error(f"Timeout while delivering notification {notification.id}")
        return None
    except httpx.RequestError as e:
        logger.error(f"Network error while delivering notification {notification.id}: {str(e)}")
        return None

    if not response.is_success:
        logger.error(
            f"Failed to deliver notification {notification.id}. "
            f"Status: {response.status_code}, Response: {response.text}"
        )
        return None

    try:
        return response.json()
    except ValueError:
        return {}


async def process_due_notifications(
    scheduler: DatabaseNotificationScheduler,
    client: httpx.AsyncClient,
    max_retries: int = None,
    backoff_base: float = 2.0,
) -> int:
    """Deliver every due notification.

    Returns:
        int: Number of notifications delivered
    """
    max_retries = max_retries or settings.WORKER_MAX_RETRIES
    due = await scheduler.due_notifications(utc_now())

    if not due:
        logger.debug("No due notifications at this time")
        return 0

    logger.info(f"Found {len(due)} due notification(s)")
    delivered = 0

    for notification in due:
        for attempt in range(1, max_retries + 1):
            attempts = await scheduler.record_attempt(notification.id)
            logger.info(f"Attempt {attempt}/{max_retries} for notification {notification.id} (total {attempts})")

            if await deliver_notification(client, notification) is not None:
                await scheduler.mark_delivered(notification.id)
                delivered += 1
                logger.info(f"Delivered notification {notification.id} on attempt {attempt}")
                break

            if attempt < max_retries:
                delay = backoff_base ** attempt
                logger.info(f"Waiting {delay}s before next retry...")
                await asyncio.sleep(delay)
            else:
                await scheduler.mark_failed(notification.id)
                logger.error(
                    f"All {max_retries} attempts failed for notification {notification.id}. "
                    f"Marked as failed."
                )

    return delivered


async def worker_loop(manager: ReminderManager, scheduler: DatabaseNotificationScheduler):
    """Main worker loop that runs continuously.

    Args:
        manager: Used for the startup migration and sync
        scheduler: Database scheduler whose due notifications are delivered
    """
    logger.info("Background worker started")
    logger.info(f"Worker enabled: {settings.WORKER_ENABLED}")
    logger.info(f"Check interval: {settings.WORKER_CHECK_INTERVAL} seconds")
    logger.info(f"Webhook URL: {settings.NOTIFICATION_WEBHOOK_URL}")

    if not settings.WORKER_ENABLED:
        logger.warning("Worker is disabled in configuration. Exiting.")
        return

    try:
        await manager.store.migrate_legacy()
        report = await manager.sync()
        logger.info(f"Startup sync re-scheduled {report.rescheduled} notification(s)")
    except ReminderServiceError as e:
        logger.error(f"Startup sync failed: {str(e)}")

    iteration = 0
    async with httpx.AsyncClient(timeout=settings.NOTIFICATION_TIMEOUT) as client:
        while not shutdown_requested:
            try:
                iteration += 1
                logger.debug(f"Worker iteration {iteration} started")

                await process_due_notifications(scheduler, client)

                # Sleep in 1-second steps to allow quick shutdown
                for _ in range(settings.WORKER_CHECK_INTERVAL):
                    if shutdown_requested:
                        break
                    await asyncio.sleep(1)

            except ReminderServiceError as e:
                logger.error(f"Error in worker loop iteration {iteration}: {str(e)}", exc_info=True)
                await asyncio.sleep(5)

    logger.info("Background worker shutting down gracefully")


def main():
    """Main entry point for the background worker."""
    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    logger.info("=" * 60)
    logger.info("Goal Reminder Service - Background Worker")
    logger.info("=" * 60)

    try:
        manager = build_manager(settings)
        # build_manager wraps the database scheduler in a BoundedScheduler
        asyncio.run(worker_loop(manager, manager.scheduler.inner))
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except Exception as e:
        logger.error(f"Fatal error in background worker: {str(e)}", exc_info=True)
        sys.exit(1)

    logger.info("Background worker stopped")
    sys.exit(0)


if __name__ == "__main__":
    main()
