"""Service layer for the bulk tag engine.

Provides job lifecycle persistence, the mutation engine, and the usage and
preference services.
"""

from src.services.job_recorder import InvalidStateTransition, JobRecorder
from src.services.preferences_service import PreferencesService
from src.services.tag_mutation_engine import TagMutationEngine
from src.services.tag_usage_service import TagUsageService

__all__ = [
    "JobRecorder",
    "InvalidStateTransition",
    "TagMutationEngine",
    "TagUsageService",
    "PreferencesService",
]
