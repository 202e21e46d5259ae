"""Job recorder implementing bulk tag job persistence with state machine validation.

This module owns every write to the ``bulk_tag_jobs`` table: creation,
status transitions, per-batch progress checkpoints and terminal outcomes.
External pollers read the same rows, so counts are only ever written in a
consistent state.
"""

import json
import logging
from typing import Any

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.db.models import (
    TERMINAL_STATUSES,
    BulkTagJob,
    JobStatus,
    generate_uuid,
    utc_now_iso,
)
from src.errors import NotFoundError
from src.services.job_models import JobProgress, JobSpec

logger = logging.getLogger(__name__)


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid job state transition.

    Attributes:
        current_state: The current state of the job.
        attempted_state: The state that was attempted.
        allowed_transitions: List of valid transition targets from current state.
    """

    code = "E-4002"

    def __init__(
        self,
        current_state: JobStatus,
        attempted_state: JobStatus,
        allowed_transitions: list[JobStatus],
    ) -> None:
        self.current_state = current_state
        self.attempted_state = attempted_state
        self.allowed_transitions = allowed_transitions
        allowed_str = ", ".join(s.value for s in allowed_transitions) or "none (terminal)"
        super().__init__(
            f"Cannot transition from '{current_state.value}' to '{attempted_state.value}'. "
            f"Allowed transitions: {allowed_str}"
        )


# Valid state transitions for job lifecycle
VALID_TRANSITIONS: dict[JobStatus, list[JobStatus]] = {
    JobStatus.pending: [JobStatus.in_progress, JobStatus.failed, JobStatus.cancelled],
    JobStatus.in_progress: [
        JobStatus.completed,
        JobStatus.failed,
        JobStatus.cancelled,
    ],
    JobStatus.completed: [],  # terminal
    JobStatus.failed: [],  # terminal
    JobStatus.cancelled: [],  # terminal
}


class JobRecorder:
    """Persists bulk tag jobs and enforces their lifecycle.

    Attributes:
        db: SQLAlchemy session for database operations.
    """

    def __init__(self, db: Session) -> None:
        """Initialize the recorder with a database session.

        Args:
            db: SQLAlchemy session for database operations.
        """
        self.db = db

    def _commit(self, job: BulkTagJob | None = None) -> None:
        """Commit the session, rolling back on failure.

        Raises:
            SQLAlchemyError: If the commit fails.
        """
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        if job is not None:
            self.db.refresh(job)

    # =========================================================================
    # Job CRUD Operations
    # =========================================================================

    def create(self, spec: JobSpec) -> BulkTagJob:
        """Create a new pending job.

        Args:
            spec: Operation, tags, shop and ordered product ids.

        Returns:
            The created BulkTagJob with generated ID and timestamps.
        """
        now = utc_now_iso()
        job = BulkTagJob(
            id=generate_uuid(),
            shop=spec.shop,
            operation=spec.operation.value,
            tag_value=spec.tag_value,
            old_tag_value=spec.old_tag_value,
            product_ids_json=json.dumps(list(spec.product_ids)),
            status=JobStatus.pending.value,
            total_count=len(spec.product_ids),
            created_at=now,
            updated_at=now,
        )
        self.db.add(job)
        self._commit(job)
        logger.debug("Created job %s (%s, %d records)", job.id, job.operation, job.total_count)
        return job

    def get_job(self, job_id: str) -> BulkTagJob | None:
        """Get a job by its ID, or None."""
        return self.db.query(BulkTagJob).filter(BulkTagJob.id == job_id).first()

    def require_job(self, job_id: str) -> BulkTagJob:
        """Get a job by its ID.

        Raises:
            NotFoundError: If no such job exists.
        """
        job = self.get_job(job_id)
        if job is None:
            raise NotFoundError("Job", job_id)
        return job

    def list_jobs(
        self,
        shop: str | None = None,
        status: JobStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[BulkTagJob]:
        """List jobs with optional filtering and pagination.

        Returns:
            Jobs ordered by created_at DESC.
        """
        query = self.db.query(BulkTagJob)
        if shop is not None:
            query = query.filter(BulkTagJob.shop == shop)
        if status is not None:
            query = query.filter(BulkTagJob.status == status.value)
        query = query.order_by(BulkTagJob.created_at.desc())
        return query.limit(limit).offset(offset).all()

    def find_interrupted(self, shop: str | None = None) -> list[BulkTagJob]:
        """Find jobs left in_progress, oldest first."""
        query = self.db.query(BulkTagJob).filter(
            BulkTagJob.status == JobStatus.in_progress.value
        )
        if shop is not None:
            query = query.filter(BulkTagJob.shop == shop)
        return query.order_by(BulkTagJob.created_at.asc()).all()

    # =========================================================================
    # State Machine Operations
    # =========================================================================

    def can_transition(self, current: JobStatus, target: JobStatus) -> bool:
        """Check if a state transition is valid."""
        return target in VALID_TRANSITIONS.get(current, [])

    def _transition(self, job: BulkTagJob, new_status: JobStatus) -> None:
        current_status = JobStatus(job.status)
        if not self.can_transition(current_status, new_status):
            raise InvalidStateTransition(
                current_state=current_status,
                attempted_state=new_status,
                allowed_transitions=VALID_TRANSITIONS.get(current_status, []),
            )

        now = utc_now_iso()
        job.status = new_status.value
        job.updated_at = now

        if new_status == JobStatus.in_progress and job.started_at is None:
            job.started_at = now

        if new_status in TERMINAL_STATUSES:
            job.completed_at = now

    def set_status(self, job_id: str, new_status: JobStatus) -> BulkTagJob:
        """Update a job's status with state machine validation.

        Raises:
            NotFoundError: If job not found.
            InvalidStateTransition: If the transition is not allowed.
        """
        job = self.require_job(job_id)
        self._transition(job, new_status)
        self._commit(job)
        return job

    # =========================================================================
    # Progress Operations
    # =========================================================================

    @staticmethod
    def _check_counts(job: BulkTagJob, processed: int, success: int, failed: int) -> None:
        if min(processed, success, failed) < 0:
            raise ValueError("progress counts must be non-negative")
        if processed != success + failed:
            raise ValueError(
                f"processed ({processed}) must equal success ({success}) + failed ({failed})"
            )
        if processed > job.total_count:
            raise ValueError(
                f"processed ({processed}) exceeds total_count ({job.total_count})"
            )
        if processed < job.processed_count:
            raise ValueError(
                f"processed ({processed}) is behind the last checkpoint "
                f"({job.processed_count})"
            )

    def _apply_progress(
        self,
        job: BulkTagJob,
        processed: int,
        success: int,
        failed: int,
        errors: list[str] | None,
    ) -> None:
        self._check_counts(job, processed, success, failed)
        job.processed_count = processed
        job.success_count = success
        job.failed_count = failed
        if errors is not None:
            job.error_log_json = json.dumps(list(errors))
        job.updated_at = utc_now_iso()

    def record_progress(
        self,
        job_id: str,
        processed: int,
        success: int,
        failed: int,
        errors: list[str] | None = None,
        usage_verified: bool = False,
    ) -> BulkTagJob:
        """Checkpoint progress counts after a batch.

        ``usage_verified`` only ever turns the stored flag on.

        Raises:
            ValueError: If the counts break the progress invariant or the
                job is not in progress.
        """
        job = self.require_job(job_id)
        if job.status != JobStatus.in_progress.value:
            raise ValueError(
                f"Cannot record progress on job {job_id} in status '{job.status}'"
            )
        self._apply_progress(job, processed, success, failed, errors)
        if usage_verified:
            job.usage_verified = True
        self._commit(job)
        return job

    def complete(self, job_id: str, progress: JobProgress) -> BulkTagJob:
        """Write final counts and error log, then mark the job completed."""
        job = self.require_job(job_id)
        self._apply_progress(
            job, progress.processed, progress.success, progress.failed, progress.errors
        )
        self._transition(job, JobStatus.completed)
        self._commit(job)
        return job

    def cancel(self, job_id: str, progress: JobProgress) -> BulkTagJob:
        """Mark the job cancelled, keeping the counts reached so far."""
        job = self.require_job(job_id)
        self._apply_progress(
            job, progress.processed, progress.success, progress.failed, progress.errors
        )
        self._transition(job, JobStatus.cancelled)
        self._commit(job)
        return job

    def fail(self, job_id: str, message: str) -> BulkTagJob:
        """Mark the job failed with a single job-level message.

        Any pending changes from the failed unit of work are rolled back
        first, so the last checkpoint is kept.
        """
        self.db.rollback()
        job = self.require_job(job_id)
        self._transition(job, JobStatus.failed)
        job.error_log_json = json.dumps([message])
        self._commit(job)
        return job

    # =========================================================================
    # Summary
    # =========================================================================

    def get_job_summary(self, job_id: str) -> dict[str, Any]:
        """Get a JSON-serializable summary of a job.

        Raises:
            NotFoundError: If job not found.
        """
        job = self.require_job(job_id)
        return {
            "id": job.id,
            "shop": job.shop,
            "operation": job.operation,
            "tag_value": job.tag_value,
            "old_tag_value": job.old_tag_value,
            "status": job.status,
            "total_count": job.total_count,
            "processed_count": job.processed_count,
            "success_count": job.success_count,
            "failed_count": job.failed_count,
            "error_log": job.error_log,
            "created_at": job.created_at,
            "started_at": job.started_at,
            "completed_at": job.completed_at,
            "updated_at": job.updated_at,
        }

    def get_stats(self, shop: str | None = None) -> dict[str, Any]:
        """Aggregate completed jobs, optionally for one shop.

        Returns:
            Dict with job_count, products_processed, success_count,
            failed_count and success_rate (percent of products, None when
            no products were processed).
        """
        query = self.db.query(
            func.count(BulkTagJob.id),
            func.coalesce(func.sum(BulkTagJob.total_count), 0),
            func.coalesce(func.sum(BulkTagJob.success_count), 0),
            func.coalesce(func.sum(BulkTagJob.failed_count), 0),
        ).filter(BulkTagJob.status == JobStatus.completed.value)
        if shop is not None:
            query = query.filter(BulkTagJob.shop == shop)
        job_count, total, success, failed = query.one()

        return {
            "shop": shop,
            "job_count": job_count,
            "products_processed": total,
            "success_count": success,
            "failed_count": failed,
            "success_rate": round(success / total * 100, 1) if total else None,
        }
