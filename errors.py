"""Error types raised by the reminder core.

The REST and MCP surfaces translate these into responses; nothing in the
core catches them except where a batch tolerates per-item failures.
"""

import enum
from typing import List, Optional


class GatewayErrorKind(enum.Enum):
    """Why an AI provider call produced no usable candidates"""
    AUTH_INVALID = "auth_invalid"
    RATE_LIMITED = "rate_limited"
    UNPARSEABLE = "unparseable"
    NETWORK = "network"
    UNKNOWN = "unknown"


class SchedulingErrorKind(enum.Enum):
    """Why a notification could not be scheduled or cancelled"""
    PAST_TIME = "past_time"
    PERMISSION_DENIED = "permission_denied"
    PLATFORM_ERROR = "platform_error"


class ReminderServiceError(Exception):
    """Base class for all service errors."""


class ValidationError(ReminderServiceError):
    """Invalid user input: empty message, past time, bad goal."""


class NotFoundError(ReminderServiceError):
    """No record with the requested id."""


class StorageError(ReminderServiceError):
    """Persistence failed: timeout, database error or corrupt data."""


class GatewayError(ReminderServiceError):
    """AI provider failure. Never fatal to goal creation."""

    def __init__(self, kind: GatewayErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class SchedulingError(ReminderServiceError):
    """Notification scheduler failure for a single record."""

    def __init__(self, kind: SchedulingErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


class BatchCreationError(ReminderServiceError):
    """Raised when none of the reminders in a goal plan could be created."""

    def __init__(self, message: str, failures: Optional[List] = None):
        super().__init__(message)
        self.failures = failures or []
