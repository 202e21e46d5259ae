"""Database module for bulk tag job state and persistence."""

from src.db.connection import Database, get_database_url
from src.db.models import (
    TERMINAL_STATUSES,
    BulkTagJob,
    JobStatus,
    OperationType,
    TagUsage,
    UserPreferences,
)

__all__ = [
    # Models
    "BulkTagJob",
    "TagUsage",
    "UserPreferences",
    # Enums
    "JobStatus",
    "OperationType",
    "TERMINAL_STATUSES",
    # Connection
    "Database",
    "get_database_url",
]
