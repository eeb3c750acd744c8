"""FastAPI REST API server for Goal Reminder Service.

This module provides HTTP endpoints for managing reminders and goal plans.
The ReminderManager is built once at startup and shared through app.state.

IMPORTANT: Pydantic automatically converts ISO datetime strings to datetime objects.
"""

from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import schemas
from config import settings
from errors import BatchCreationError, NotFoundError, SchedulingError, StorageError, ValidationError
from logger_config import setup_logger
from service import ReminderManager, build_manager

logger = setup_logger(__name__, 'api.log')

API_VERSION = "1.0.0"


def get_manager(request: Request) -> ReminderManager:
    """ReminderManager dependency for FastAPI."""
    return request.app.state.manager


def _error(status_code: int, detail: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": detail})


def create_app(manager: Optional[ReminderManager] = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        manager: Prebuilt manager; when omitted one is built from settings
            at startup and legacy reminders are migrated.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manager is None:
            app.state.manager = build_manager(settings)
            migrated = await app.state.manager.store.migrate_legacy()
            if migrated:
                logger.info(f"Migrated {migrated} legacy reminder(s) at startup")
        else:
            app.state.manager = manager
        yield

    app = FastAPI(
        title="Goal Reminder Service API",
        description="Reminders and AI-assisted goal motivation plans with scheduled notifications",
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:8081"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return _error(422, str(exc))

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError):
        return _error(404, str(exc))

    @app.exception_handler(SchedulingError)
    async def scheduling_error_handler(request: Request, exc: SchedulingError):
        logger.warning(f"Scheduling failed ({exc.kind.value}): {str(exc)}")
        return JSONResponse(status_code=409, content={"detail": str(exc), "kind": exc.kind.value})

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError):
        logger.error(f"Storage failure: {str(exc)}")
        return JSONResponse(status_code=503, content={"detail": str(exc), "retry": True})

    @app.exception_handler(BatchCreationError)
    async def batch_error_handler(request: Request, exc: BatchCreationError):
        return JSONResponse(
            status_code=502,
            content={
                "detail": str(exc),
                "failures": [f.model_dump(mode="json") for f in exc.failures],
            },
        )

    @app.get("/")
    def root():
        """Root endpoint - service information"""
        return {
            "service": "Goal Reminder Service API",
            "version": API_VERSION,
            "status": "healthy",
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "reminders": "/reminders",
                "plans": "/plans"
            }
        }

    @app.get("/health")
    def health_check():
        """Health check endpoint for monitoring"""
        return {
            "status": "healthy",
            "service": "goal_reminder_service",
            "database": settings.DATABASE_URL.split("://")[0]
        }

    @app.post("/reminders", response_model=schemas.ReminderResponse, status_code=201)
    async def create_reminder(
        reminder: schemas.ReminderCreate,
        manager: ReminderManager = Depends(get_manager)
    ):
        """Create a single reminder.

        Request body example:
        ```json
        {
            "message": "Buy milk",
            "scheduled_time": "2026-10-26T15:00:00Z",
            "category": "Custom"
        }
        ```
        """
        record = await manager.create_manual(
            reminder.message,
            reminder.scheduled_time,
            category=reminder.category,
            goal=reminder.goal,
        )
        return schemas.ReminderResponse.from_record(record, manager.clock())

    @app.post("/plans", response_model=schemas.PlanResponse, status_code=201)
    async def create_plan(
        plan: schemas.GoalPlanCreate,
        manager: ReminderManager = Depends(get_manager)
    ):
        """Expand a goal into a schedule of reminders.

        Uses the AI provider when available and valid; otherwise a template
        schedule. Partial failures are listed in ``failures``.
        """
        result = await manager.create_from_goal(plan.goal, plan.timeframe)
        return schemas.PlanResponse.from_result(result, manager.clock())

    @app.get("/reminders", response_model=List[schemas.ReminderResponse])
    async def list_reminders(
        status: Optional[str] = Query(None, pattern="^(active|expired|cancelled)$", description="Filter by status"),
        goal: Optional[str] = Query(None, description="Filter by goal"),
        category: Optional[schemas.ReminderCategory] = Query(None, description="Filter by category"),
        manager: ReminderManager = Depends(get_manager)
    ):
        """List reminders ordered by scheduled time.

        Query parameters:
        - status: Optional - active, expired or cancelled (derived)
        - goal: Optional - exact goal label
        - category: Optional - reminder category
        """
        if goal is not None:
            records = await manager.list_by_goal(goal)
        elif category is not None:
            records = await manager.list_by_category(category)
        else:
            records = await manager.list_all()

        now = manager.clock()
        responses = [schemas.ReminderResponse.from_record(r, now) for r in records]
        if category is not None:
            responses = [r for r in responses if r.category == category]
        if status:
            responses = [r for r in responses if r.status.value == status]
        return responses

    @app.get("/reminders/stats")
    async def get_stats(manager: ReminderManager = Depends(get_manager)):
        """Counts by derived status, category and goal."""
        return await manager.stats()

    @app.get("/reminders/{reminder_id}", response_model=schemas.ReminderResponse)
    async def get_reminder(reminder_id: str, manager: ReminderManager = Depends(get_manager)):
        """Get a specific reminder by ID."""
        return schemas.ReminderResponse.from_record(await manager.get(reminder_id), manager.clock())

    @app.post("/reminders/{reminder_id}/cancel", response_model=schemas.ReminderResponse)
    async def cancel_reminder(reminder_id: str, manager: ReminderManager = Depends(get_manager)):
        """Cancel a reminder. Cancelling twice is not an error."""
        return schemas.ReminderResponse.from_record(await manager.cancel(reminder_id), manager.clock())

    @app.delete("/reminders/{reminder_id}", status_code=200)
    async def delete_reminder(reminder_id: str, manager: ReminderManager = Depends(get_manager)):
        """Delete a reminder."""
        success = await manager.delete(reminder_id)
        if not success:
            raise HTTPException(status_code=404, detail="Reminder not found")
        return {"message": "Reminder deleted successfully", "reminder_id": reminder_id}

    @app.delete("/reminders", status_code=200)
    async def clear_reminders(manager: ReminderManager = Depends(get_manager)):
        """Cancel all notifications and delete every reminder."""
        await manager.clear_all()
        return {"message": "All reminders cleared"}

    @app.post("/sync", response_model=schemas.SyncReport)
    async def sync_notifications(manager: ReminderManager = Depends(get_manager)):
        """Re-schedule notifications missing for active reminders."""
        return await manager.sync()

    @app.get("/settings", response_model=schemas.AppSettings)
    async def get_settings(manager: ReminderManager = Depends(get_manager)):
        """Current settings (the API key is masked)."""
        current = await manager.settings_store.get()
        return current.model_copy(update={"api_key": _mask(current.api_key)})

    @app.put("/settings", response_model=schemas.AppSettings)
    async def update_settings(
        updates: schemas.SettingsUpdate,
        manager: ReminderManager = Depends(get_manager)
    ):
        """Update settings. Only provided fields are changed.

        An api_key equal to the masked value returned by GET /settings is
        treated as unchanged.
        """
        api_key = updates.api_key
        if api_key:
            current = await manager.settings_store.get()
            if current.api_key and api_key == _mask(current.api_key):
                api_key = None

        saved = await manager.settings_store.save(
            api_key=api_key,
            notification_preferences=updates.notification_preferences,
            ai_preferences=updates.ai_preferences,
        )
        return saved.model_copy(update={"api_key": _mask(saved.api_key)})

    @app.post("/settings/test-ai")
    async def test_ai_connection(manager: ReminderManager = Depends(get_manager)):
        """Check that the configured AI provider answers."""
        if manager.gateway is None:
            return {"connected": False}
        current = await manager.settings_store.get()
        return {"connected": await manager.gateway.test_connection(current.api_key or None)}

    return app


# Keys shorter than this are masked completely
_MIN_PARTIAL_MASK_LENGTH = 12


def _mask(api_key: str) -> str:
    if not api_key:
        return ""
    if len(api_key) < _MIN_PARTIAL_MASK_LENGTH:
        return "*" * len(api_key)
    return "*" * (len(api_key) - 4) + api_key[-4:]


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host=settings.API_HOST,
        port=settings.API_PORT,
        log_level="info"
    )
