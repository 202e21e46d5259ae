"""Value types passed between the mutation engine and the job recorder."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from src.db.models import JobStatus, OperationType


class ReplaceUsageMode(str, Enum):
    """How a replace job decides whether to count usage of the new tag.

    legacy: count whenever the job had at least one success.
    verified: count only when a write returned a record holding the new tag.
    The verified flag is checkpointed with progress, so resumed jobs keep it.
    """

    legacy = "legacy"
    verified = "verified"


@dataclass(frozen=True)
class JobSpec:
    """Everything needed to create a job record."""

    shop: str
    operation: OperationType
    tag_value: str
    old_tag_value: str | None
    product_ids: list[str]


@dataclass
class JobProgress:
    """Running counts of a job, checkpointed after each batch."""

    processed: int = 0
    success: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def record_success(self) -> None:
        self.processed += 1
        self.success += 1

    def record_failure(self, message: str) -> None:
        self.processed += 1
        self.failed += 1
        self.errors.append(message)


@dataclass
class JobResult:
    """Outcome of one engine invocation."""

    job_id: str
    status: JobStatus
    total_count: int
    success_count: int
    failed_count: int
    errors: list[str] = field(default_factory=list)
    write_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "job_id": self.job_id,
            "status": self.status.value,
            "total_count": self.total_count,
            "success_count": self.success_count,
            "failed_count": self.failed_count,
            "errors": list(self.errors),
            "write_count": self.write_count,
        }
