"""Bulk tag mutation engine.

Applies one tag operation to an ordered list of products in fixed-size
batches. Records are processed strictly sequentially; progress is
checkpointed to the job record after every batch and a pacing delay is
inserted between batches.

Example:
    async with ShopifyTagClient(store_url, token) as client:
        with db.session_scope() as session:
            engine = TagMutationEngine(
                tag_client=client,
                recorder=JobRecorder(session),
                usage_service=TagUsageService(session),
                shop="mystore",
            )
            result = await engine.execute("add_tag", ["1", "2"], "sale")
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass

from src.clients.base import TagClient
from src.clients.models import ProductTagSnapshot
from src.db.models import JobStatus, OperationType
from src.errors import ValidationError, get_error
from src.services.errors import JobDeadlineExceeded, TagServiceError, transport_error
from src.services.job_models import JobProgress, JobResult, JobSpec, ReplaceUsageMode
from src.services.job_recorder import JobRecorder
from src.services.pacer import Pacer
from src.services.retry import RetryPolicy
from src.services.tag_operations import (
    ReplaceTag,
    TagOperation,
    apply_operation,
    build_operation,
    operation_type,
    tag_values,
    usage_tag,
)
from src.services.tag_usage_service import TagUsageService

logger = logging.getLogger(__name__)

# Callback type for progress reporting
ProgressCallback = Callable[..., Awaitable[None]]

DEFAULT_BATCH_SIZE = 10


@dataclass
class _RunState:
    progress: JobProgress
    write_count: int = 0
    usage_verified: bool = False


class TagMutationEngine:
    """Runs bulk tag jobs against a TagClient.

    Attributes:
        tag_client: Platform client used for every fetch and write.
        recorder: Job recorder bound to the current database session.
        usage_service: Optional usage counter service.
        shop: Default tenant for new jobs.
    """

    def __init__(
        self,
        tag_client: TagClient,
        recorder: JobRecorder,
        usage_service: TagUsageService | None = None,
        pacer: Pacer | None = None,
        retry_policy: RetryPolicy | None = None,
        shop: str = "default",
        batch_size: int | None = None,
        call_timeout: float | None = 10.0,
        job_deadline: float | None = None,
        replace_usage_mode: ReplaceUsageMode = ReplaceUsageMode.legacy,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the engine.

        Args:
            tag_client: Platform client.
            recorder: Job recorder.
            usage_service: Usage counter service; usage is skipped when None.
            pacer: Inter-batch pacer, defaults to 100 ms.
            retry_policy: Transport retry policy, defaults to 3 attempts.
            shop: Tenant used when execute() is not given one.
            batch_size: Default batch size, defaults to 10.
            call_timeout: Per-call deadline in seconds, None for no limit.
            job_deadline: Overall job deadline in seconds, None for no limit.
            replace_usage_mode: How replace jobs count usage of the new tag.
            clock: Monotonic clock used for the job deadline.
        """
        self.tag_client = tag_client
        self.recorder = recorder
        self.usage_service = usage_service
        self.pacer = pacer or Pacer()
        self.retry_policy = retry_policy or RetryPolicy()
        self.shop = shop
        self.batch_size = batch_size or DEFAULT_BATCH_SIZE
        self.call_timeout = call_timeout
        self.job_deadline = job_deadline
        self.replace_usage_mode = ReplaceUsageMode(replace_usage_mode)
        self._clock = clock

    def _resolve_batch_size(self, batch_size: int | None) -> int:
        size = self.batch_size if batch_size is None else batch_size
        if size < 1:
            raise ValidationError(f"batch_size must be >= 1, got {size}")
        return size

    async def execute(
        self,
        operation: OperationType | str,
        product_ids: Sequence[str],
        tag_value: str,
        old_tag_value: str | None = None,
        *,
        shop: str | None = None,
        batch_size: int | None = None,
        cancel_event: asyncio.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> JobResult:
        """Run a bulk tag job from creation to a terminal status.

        Args:
            operation: add_tag, remove_tag or replace_tag.
            product_ids: Ordered product ids; may be empty.
            tag_value: Target tag (the new tag for replace).
            old_tag_value: Tag being replaced; replace only.
            shop: Tenant for the job, defaults to the engine's shop.
            batch_size: Override of the engine's batch size.
            cancel_event: Checked at batch boundaries; cancels the job when set.
            on_progress: Async callback invoked after each checkpoint.

        Returns:
            JobResult with terminal status and counts.

        Raises:
            ValidationError: If the arguments are invalid (no job is created).
            JobDeadlineExceeded: If the job deadline passes.
            SQLAlchemyError: If job state cannot be persisted.
        """
        op = build_operation(operation, tag_value, old_tag_value)
        size = self._resolve_batch_size(batch_size)
        ids = [str(pid) for pid in product_ids]
        tag, old_tag = tag_values(op)

        job = self.recorder.create(
            JobSpec(
                shop=shop or self.shop,
                operation=operation_type(op),
                tag_value=tag,
                old_tag_value=old_tag,
                product_ids=ids,
            )
        )
        logger.info(
            "Starting job %s: %s on %d products (batch size %d)",
            job.id, job.operation, len(ids), size,
        )
        return await self._run(
            job_id=job.id,
            op=op,
            product_ids=ids,
            shop=job.shop,
            progress=JobProgress(),
            batch_size=size,
            cancel_event=cancel_event,
            on_progress=on_progress,
            start=True,
        )

    async def resume(
        self,
        job_id: str,
        *,
        batch_size: int | None = None,
        cancel_event: asyncio.Event | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> JobResult:
        """Continue an interrupted in_progress job from its last checkpoint.

        Raises:
            NotFoundError: If the job does not exist.
            ValidationError: If the job is not in progress.
        """
        job = self.recorder.require_job(job_id)
        if job.status != JobStatus.in_progress.value:
            raise ValidationError(
                f"Job {job_id} is '{job.status}'; only in_progress jobs can be resumed"
            )
        op = build_operation(job.operation, job.tag_value, job.old_tag_value)
        size = self._resolve_batch_size(batch_size)
        progress = JobProgress(
            processed=job.processed_count,
            success=job.success_count,
            failed=job.failed_count,
            errors=job.error_log,
        )
        logger.info(
            "Resuming job %s at %d/%d", job_id, job.processed_count, job.total_count
        )
        return await self._run(
            job_id=job_id,
            op=op,
            product_ids=job.product_ids,
            shop=job.shop,
            progress=progress,
            batch_size=size,
            cancel_event=cancel_event,
            on_progress=on_progress,
            start=False,
            usage_verified=job.usage_verified,
        )

    async def _run(
        self,
        job_id: str,
        op: TagOperation,
        product_ids: list[str],
        shop: str,
        progress: JobProgress,
        batch_size: int,
        cancel_event: asyncio.Event | None,
        on_progress: ProgressCallback | None,
        start: bool,
        usage_verified: bool = False,
    ) -> JobResult:
        state = _RunState(progress=progress, usage_verified=usage_verified)
        total = len(product_ids)
        started = self._clock()

        try:
            if start:
                self.recorder.set_status(job_id, JobStatus.in_progress)

            offsets = range(progress.processed, total, batch_size)
            for index, offset in enumerate(offsets):
                if cancel_event is not None and cancel_event.is_set():
                    self.recorder.cancel(job_id, progress)
                    logger.info(
                        "Job %s cancelled at %d/%d", job_id, progress.processed, total
                    )
                    return self._result(job_id, JobStatus.cancelled, total, state)

                if (
                    self.job_deadline is not None
                    and self._clock() - started >= self.job_deadline
                ):
                    raise JobDeadlineExceeded(job_id, self.job_deadline)

                if index > 0:
                    await self.pacer.wait()

                for product_id in product_ids[offset:offset + batch_size]:
                    await self._process_record(op, product_id, state)

                self.recorder.record_progress(
                    job_id,
                    progress.processed,
                    progress.success,
                    progress.failed,
                    progress.errors,
                    usage_verified=state.usage_verified,
                )
                logger.debug(
                    "Job %s checkpoint: %d/%d (success=%d, failed=%d)",
                    job_id, progress.processed, total, progress.success, progress.failed,
                )
                await self._notify(on_progress, job_id, progress, total)

            self.recorder.complete(job_id, progress)
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error("Job %s aborted: %s", job_id, message)
            try:
                self.recorder.fail(job_id, message)
            except Exception as fail_err:
                logger.error("Could not mark job %s failed: %s", job_id, fail_err)
            raise

        logger.info(
            "Job %s completed: %d succeeded, %d failed, %d writes",
            job_id, progress.success, progress.failed, state.write_count,
        )
        self._record_usage(op, shop, state)
        return self._result(job_id, JobStatus.completed, total, state)

    async def _process_record(
        self, op: TagOperation, product_id: str, state: _RunState
    ) -> None:
        """Fetch, transform and write one record. Never raises."""
        progress = state.progress
        try:
            snapshot = await self._call(
                lambda: self.tag_client.fetch_tags(product_id),
                f"fetch_tags({product_id})",
            )
            if not snapshot.found:
                message = get_error("E-1001").format(record_id=product_id)
                logger.warning("Product %s not found", product_id)
                progress.record_failure(message)
                return

            new_tags = apply_operation(op, snapshot.tags)
            if new_tags is None:
                progress.record_success()
                return

            updated = await self._call(
                lambda: self.tag_client.write_tags(product_id, new_tags),
                f"write_tags({product_id})",
            )
            state.write_count += 1
            tag = usage_tag(op)
            if tag is not None and tag in updated.tags:
                state.usage_verified = True
            progress.record_success()
        except TagServiceError as e:
            message = get_error("E-2001").format(record_id=product_id, message=e.message)
            logger.warning("%s [%s]", message, e.code)
            progress.record_failure(message)
        except Exception as e:
            message = get_error("E-2001").format(record_id=product_id, message=str(e))
            logger.error("Unexpected error on product %s: %s", product_id, e)
            progress.record_failure(message)

    async def _call(
        self,
        factory: Callable[[], Awaitable[ProductTagSnapshot]],
        description: str,
    ) -> ProductTagSnapshot:
        """Run one client call under the per-call deadline and retry policy."""

        async def attempt() -> ProductTagSnapshot:
            try:
                return await asyncio.wait_for(factory(), timeout=self.call_timeout)
            except asyncio.TimeoutError as e:
                raise transport_error("E-3002", timeout=self.call_timeout) from e

        return await self.retry_policy.run(attempt, description)

    async def _notify(
        self,
        on_progress: ProgressCallback | None,
        job_id: str,
        progress: JobProgress,
        total: int,
    ) -> None:
        if on_progress is None:
            return
        try:
            await on_progress(
                job_id,
                processed=progress.processed,
                success=progress.success,
                failed=progress.failed,
                total=total,
            )
        except Exception as e:
            logger.warning("Progress callback failed for job %s: %s", job_id, e)

    def _record_usage(self, op: TagOperation, shop: str, state: _RunState) -> None:
        """Increment usage for the operation's tag. Failures are logged only."""
        tag = usage_tag(op)
        if tag is None or self.usage_service is None or state.progress.success == 0:
            return
        if (
            isinstance(op, ReplaceTag)
            and self.replace_usage_mode == ReplaceUsageMode.verified
            and not state.usage_verified
        ):
            logger.debug("Skipping usage for %r: no write returned the new tag", tag)
            return
        try:
            self.usage_service.record_usage(shop, tag)
        except Exception as e:
            logger.warning("Failed to update usage for tag %r: %s", tag, e)

    @staticmethod
    def _result(
        job_id: str, status: JobStatus, total: int, state: _RunState
    ) -> JobResult:
        return JobResult(
            job_id=job_id,
            status=status,
            total_count=total,
            success_count=state.progress.success,
            failed_count=state.progress.failed,
            errors=list(state.progress.errors),
            write_count=state.write_count,
        )
