"""Configuration module for Goal Reminder Service.

This module provides configuration settings using Pydantic Settings.
Environment variables can be used to override default values.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings for Goal Reminder Service.

    All settings can be overridden via environment variables.
    Example: export GEMINI_API_KEY="..."
    """

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./goal_reminders.db"
    """Database connection URL. Default: SQLite file in current directory"""

    # Storage Keys
    STORAGE_KEY: str = "motivations"
    """Key holding the JSON array of reminder records"""

    LEGACY_STORAGE_KEY: str = "reminders"
    """Older key migrated into STORAGE_KEY at startup"""

    SETTINGS_KEY: str = "app_settings"
    """Key holding the user-facing AppSettings document"""

    # API Server Configuration
    API_HOST: str = "0.0.0.0"
    """API server host address"""

    API_PORT: int = 8005
    """API server port"""

    # MCP Server Configuration
    MCP_HOST: str = "127.0.0.1"
    """MCP server host address"""

    MCP_PORT: int = 8006
    """MCP server port for SSE transport (separate from REST API)"""

    MCP_TRANSPORT: str = "sse"
    """MCP transport type: 'stdio' for local, 'sse' for network access"""

    # General Configuration
    TIMEZONE: str = "UTC"
    """Timezone used for time-of-day snapping and naive user input"""

    # Bounded waits (seconds)
    STORAGE_TIMEOUT: float = 5.0
    """Upper bound on every persistence store operation"""

    NOTIFICATION_TIMEOUT: float = 10.0
    """Upper bound on every notification scheduler operation"""

    AI_TIMEOUT: float = 30.0
    """HTTP timeout for AI provider requests"""

    # AI Gateway Configuration
    AI_PROVIDER: str = "gemini"
    """AI provider adapter: 'gemini' or 'openai'"""

    GEMINI_API_KEY: str = ""
    """Fallback Gemini key when none is stored in AppSettings"""

    GEMINI_MODEL: str = "gemini-2.0-flash"

    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"

    OPENAI_API_KEY: str = ""
    """Fallback key for OpenAI-compatible providers"""

    OPENAI_MODEL: str = "gpt-4o-mini"

    OPENAI_BASE_URL: str = "https://api.openai.com/v1"

    # Schedule Generation
    MIN_AI_REMINDERS: int = 5
    """Minimum valid AI candidates before falling back to the template schedule"""

    MAX_SCHEDULE_LENGTH: int = 25
    """Maximum number of reminders produced for one goal"""

    MAX_MESSAGE_LENGTH: int = 500
    """Maximum reminder message length"""

    DEFAULT_TIMEFRAME_DAYS: int = 30
    """Timeframe used when the user's text cannot be parsed"""

    MAX_TIMEFRAME_DAYS: int = 3650
    """Longest plan accepted; larger timeframes and AI day offsets are capped or rejected"""

    # Notification Titles
    MANUAL_NOTIFICATION_TITLE: str = "Reminder"
    GOAL_NOTIFICATION_TITLE: str = "💪 Motivation"

    # Background Worker Configuration
    WORKER_ENABLED: bool = True
    """Enable/disable background worker for notification delivery"""

    WORKER_CHECK_INTERVAL: int = 30
    """Interval in seconds for checking due notifications"""

    WORKER_MAX_RETRIES: int = 3
    """Delivery attempts per notification before it is marked failed"""

    NOTIFICATION_WEBHOOK_URL: str = "http://127.0.0.1:1801/api/notify"
    """Endpoint receiving delivered notifications as JSON POSTs"""

    # Logging
    LOG_LEVEL: str = "INFO"
    """Level for service loggers (DEBUG, INFO, WARNING, ...)"""

    LOG_DIR: str = "logs"
    """Directory for rotating log files, relative to the project root"""

    LOG_TO_FILE: bool = True
    """Disable to log to the console only"""

    class Config:
        """Pydantic config"""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Global settings instance
settings = Settings()
