"""MCP Server for Goal Reminder Service.

This module provides MCP tools for AI agents to manage reminders and goal
plans. Uses the same database as the REST API for data consistency.

IMPORTANT: Tools receive ISO datetime strings and convert to datetime objects.

Transport Support:
- stdio: Standard input/output (local process communication)
- sse: Server-Sent Events over HTTP (network access, scalable)
"""

import os
from datetime import datetime

from mcp.server.fastmcp import FastMCP

from clock import localize
from config import settings
from errors import BatchCreationError, ReminderServiceError
from logger_config import setup_logger
from schemas import ReminderCategory, ReminderRecord
from service import build_manager

logger = setup_logger(__name__, 'mcp.log')

manager = build_manager(settings)
logger.info("MCP Server initialized")

mcp = FastMCP(
    "GoalReminderService",
    host=settings.MCP_HOST,
    port=settings.MCP_PORT
)


def parse_datetime(datetime_str: str) -> datetime:
    """Parse an ISO datetime string into aware UTC.

    Handles:
    - ISO with timezone: "2026-11-06T15:00:00+07:00"
    - ISO with Z: "2026-11-06T15:00:00Z"
    - Naive ISO: "2026-11-06T15:00:00" -> interpreted in TIMEZONE
    """
    dt = datetime.fromisoformat(datetime_str.replace('Z', '+00:00'))
    return localize(dt, settings.TIMEZONE)


def format_record(record: ReminderRecord) -> str:
    lines = [
        f"\n• [{record.status().value.upper()}] {record.message}",
        f"  ID: {record.id}",
        f"  When: {record.scheduled_time.strftime('%Y-%m-%d %H:%M %Z')}",
        f"  Category: {record.category.value}",
    ]
    if record.goal:
        lines.append(f"  Goal: {record.goal}")
    return "\n".join(lines)


@mcp.tool()
async def create_reminder(message: str, scheduled_time: str, category: str = "Custom", goal: str = None) -> str:
    """Create a single reminder.

    Args:
        message: Reminder text
        scheduled_time: When it fires - ISO format (e.g., "2026-10-26T15:00:00Z")
        category: Optional category (Start, Daily, Weekly Review, Milestone, Completion, Practice, Custom...)
        goal: Optional goal label

    Returns:
        Success message with reminder ID, or error message
    """
    try:
        logger.info(f"📝 Creating reminder: {message} | At: {scheduled_time}")
        record = await manager.create_manual(
            message,
            parse_datetime(scheduled_time),
            category=ReminderCategory.coerce(category),
            goal=goal,
        )
        return (
            f"✓ Reminder created successfully!\n"
            f"ID: {record.id}\n"
            f"Message: {record.message}\n"
            f"When: {record.scheduled_time.isoformat()}"
        )
    except (ReminderServiceError, ValueError) as e:
        return f"✗ Error creating reminder: {str(e)}"


@mcp.tool()
async def create_goal_plan(goal: str, timeframe: str = None) -> str:
    """Turn a goal into a schedule of motivational reminders.

    Args:
        goal: Free-text goal (e.g., "Learn Spanish")
        timeframe: Optional timeframe such as "2 weeks" or "3 months" (default 30 days)

    Returns:
        Summary of the created plan or error message
    """
    try:
        result = await manager.create_from_goal(goal, timeframe)
    except BatchCreationError as e:
        return f"✗ No reminders could be created: {str(e)}"
    except ReminderServiceError as e:
        return f"✗ Error creating plan: {str(e)}"

    lines = [
        f"✓ Plan for '{result.goal}' ({result.timeframe_days} days, {result.source} schedule)",
        f"Created: {result.created_count} | Failed: {result.failed_count}",
    ]
    if result.strategy:
        lines.append(f"Strategy: {result.strategy}")
    if result.gateway_error:
        lines.append(f"AI unavailable: {result.gateway_error}")
    lines.extend(format_record(r) for r in result.created)
    for failure in result.failures:
        lines.append(f"\n✗ {failure.message}: {failure.reason}")
    return "\n".join(lines)


@mcp.tool()
async def list_reminders(status: str = None, goal: str = None) -> str:
    """List reminders ordered by time.

    Args:
        status: Optional filter - "active", "expired" or "cancelled"
        goal: Optional goal label filter

    Returns:
        Formatted list of reminders or message if none found
    """
    try:
        records = await manager.list_by_goal(goal) if goal else await manager.list_all()
    except ReminderServiceError as e:
        return f"✗ Error loading reminders: {str(e)}"

    if status:
        records = [r for r in records if r.status().value == status.lower()]

    if not records:
        filter_text = f" with status '{status}'" if status else ""
        return f"No reminders found{filter_text}."

    result = [f"Found {len(records)} reminder(s):\n"]
    result.extend(format_record(r) for r in records)
    return "\n".join(result)


@mcp.tool()
async def cancel_reminder(reminder_id: str) -> str:
    """Cancel a reminder without deleting it.

    Args:
        reminder_id: Reminder UUID
    """
    try:
        await manager.cancel(reminder_id)
        return f"✓ Reminder {reminder_id} cancelled."
    except ReminderServiceError as e:
        return f"✗ Error cancelling reminder: {str(e)}"


@mcp.tool()
async def delete_reminder(reminder_id: str) -> str:
    """Delete a reminder.

    Args:
        reminder_id: Reminder UUID
    """
    try:
        if await manager.delete(reminder_id):
            return f"✓ Reminder {reminder_id} deleted successfully."
        return "✗ Reminder not found."
    except ReminderServiceError as e:
        return f"✗ Error deleting reminder: {str(e)}"


@mcp.tool()
async def reminder_stats() -> str:
    """Counts of reminders by status, category and goal."""
    try:
        stats = await manager.stats()
    except ReminderServiceError as e:
        return f"✗ Error loading stats: {str(e)}"
    return (
        f"Total: {stats.total} | Active: {stats.active} | "
        f"Expired: {stats.expired} | Cancelled: {stats.cancelled}\n"
        f"By category: {stats.by_category}\n"
        f"By goal: {stats.by_goal}"
    )


@mcp.tool()
async def sync_notifications() -> str:
    """Re-schedule notifications that are missing for active reminders."""
    try:
        report = await manager.sync()
    except ReminderServiceError as e:
        return f"✗ Sync failed: {str(e)}"
    return (
        f"✓ Sync complete: {report.rescheduled} re-scheduled, "
        f"{report.skipped_expired} expired skipped, {report.failed} failed"
    )


if __name__ == "__main__":
    transport = os.getenv("MCP_TRANSPORT", settings.MCP_TRANSPORT).lower()

    if transport == "sse":
        host = settings.MCP_HOST
        port = settings.MCP_PORT

        print(f"Starting MCP server with SSE transport on {host}:{port}")
        print(f"SSE endpoint: http://{host}:{port}/sse")

        mcp.run(transport="sse")
    else:
        print("Starting MCP server with stdio transport")
        mcp.run(transport="stdio")
