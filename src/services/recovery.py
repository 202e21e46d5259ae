"""Crash recovery for interrupted bulk tag jobs.

A job still ``in_progress`` when no engine is running was interrupted by a
process exit. Its last checkpoint is intact; the batch in flight at crash
time was never checkpointed.

Options:
- fail: mark the job failed and keep the checkpoint (default)
- resume: continue from the checkpoint with the same job id
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from src.db.models import BulkTagJob
from src.services.job_models import JobResult
from src.services.job_recorder import JobRecorder
from src.services.tag_mutation_engine import TagMutationEngine

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "interrupted: process exited before completion"


class RecoveryChoice(str, Enum):
    """Operator choices for interrupted job recovery."""

    FAIL = "fail"
    RESUME = "resume"


@dataclass
class InterruptedJobInfo:
    """Checkpoint summary of an interrupted job."""

    job_id: str
    shop: str
    operation: str
    tag_value: str
    processed_count: int
    success_count: int
    failed_count: int
    total_count: int

    @property
    def remaining_count(self) -> int:
        return self.total_count - self.processed_count

    @classmethod
    def from_job(cls, job: BulkTagJob) -> "InterruptedJobInfo":
        return cls(
            job_id=job.id,
            shop=job.shop,
            operation=job.operation,
            tag_value=job.tag_value,
            processed_count=job.processed_count,
            success_count=job.success_count,
            failed_count=job.failed_count,
            total_count=job.total_count,
        )


def check_interrupted_jobs(
    recorder: JobRecorder, shop: str | None = None
) -> list[InterruptedJobInfo]:
    """Find jobs left in_progress, oldest first."""
    return [InterruptedJobInfo.from_job(job) for job in recorder.find_interrupted(shop)]


def get_recovery_prompt(info: InterruptedJobInfo) -> str:
    """Generate an operator-facing description of an interrupted job."""
    lines = [
        f"Job {info.job_id} ({info.operation} '{info.tag_value}', shop {info.shop}) "
        f"was interrupted at {info.processed_count}/{info.total_count}.",
        f"Succeeded: {info.success_count}, failed: {info.failed_count}, "
        f"remaining: {info.remaining_count}",
        "",
        "Options:",
        "  [fail]   - Mark the job failed and keep its progress",
        "  [resume] - Continue from the last checkpoint",
    ]
    return "\n".join(lines)


async def handle_recovery_choice(
    choice: RecoveryChoice,
    job_id: str,
    recorder: JobRecorder,
    engine: TagMutationEngine | None = None,
    batch_size: int | None = None,
) -> JobResult | None:
    """Apply the operator's recovery choice to one interrupted job.

    Args:
        batch_size: Batch size for a resumed run, defaults to the engine's.

    Returns:
        The JobResult of the resumed run, or None when the job was failed.

    Raises:
        ValueError: If resume is chosen without an engine.
    """
    if choice == RecoveryChoice.FAIL:
        recorder.fail(job_id, INTERRUPTED_MESSAGE)
        logger.info("Marked interrupted job %s failed", job_id)
        return None

    if choice == RecoveryChoice.RESUME:
        if engine is None:
            raise ValueError("An engine is required to resume a job")
        return await engine.resume(job_id, batch_size=batch_size)

    raise ValueError(f"Unknown recovery choice: {choice}")


async def recover_interrupted_jobs(
    recorder: JobRecorder,
    choice: RecoveryChoice = RecoveryChoice.FAIL,
    engine: TagMutationEngine | None = None,
    shop: str | None = None,
    batch_size_for: Callable[[str], int] | None = None,
) -> list[tuple[InterruptedJobInfo, JobResult | None]]:
    """Apply one recovery choice to every interrupted job.

    Args:
        batch_size_for: Maps a job's shop to the batch size its resumed run uses.

    Returns:
        One (info, result) pair per interrupted job, in the order handled.
    """
    outcomes: list[tuple[InterruptedJobInfo, JobResult | None]] = []
    for info in check_interrupted_jobs(recorder, shop):
        logger.warning(
            "Found interrupted job %s at %d/%d",
            info.job_id, info.processed_count, info.total_count,
        )
        batch_size = batch_size_for(info.shop) if batch_size_for else None
        result = await handle_recovery_choice(
            choice, info.job_id, recorder, engine, batch_size
        )
        outcomes.append((info, result))
    return outcomes
