"""Asynchronous dispatch of callout work items.

``submit()`` hands a batch to the scheduler and returns immediately. Each
scheduling unit processes at most ``batch_size`` items, in order, and hands
whatever is left to a brand-new unit. That bounds how many callouts a single
unit performs.

After each item the status callback records the result on the external
record (e.g. "Synced" or "Error" plus a message). Callbacks must not perform
callouts themselves. Their failures are reported to the diagnostics channel
and never abort the batch.

Example:
    store = InMemoryRecordStore()
    dispatcher = AsyncDispatcher(
        ResilienceWrapper(HttpTransport(named_credentials=registry)),
        ThreadPoolScheduler(max_workers=4),
        on_result=record_status_callback(store),
        batch_size=50,
    )
    dispatcher.submit(
        WorkItem(key=order_id, request=CalloutRequest(f"callout:orders_api/v1/orders/{order_id}"))
        for order_id in order_ids
    )
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Tuple

from callouts.lib.env import is_test_harness
from callouts.lib.errors import CalloutError, ConfigurationError
from callouts.lib.logging import get_context_logger, get_diagnostics_logger
from callouts.lib.models import BatchJob, CalloutOutcome, ErrorClass, WorkItem
from callouts.lib.resilience import ResilienceWrapper, RetryPolicy
from callouts.lib.scheduler import Scheduler
from callouts.lib.store import RecordStore

logger = logging.getLogger(__name__)

__all__ = [
    "AsyncDispatcher",
    "DispatchResult",
    "StatusCallback",
    "record_status_callback",
    "DEFAULT_BATCH_SIZE",
    "STATUS_SYNCED",
    "STATUS_ERROR",
]

DEFAULT_BATCH_SIZE = 50

STATUS_SYNCED = "Synced"
STATUS_ERROR = "Error"

StatusCallback = Callable[[WorkItem, CalloutOutcome], None]


@dataclass(frozen=True)
class DispatchResult:
    """What one scheduling unit did with its share of a batch."""

    submission_id: str
    generation: int
    processed: Tuple[Tuple[WorkItem, CalloutOutcome], ...] = ()
    remainder: Optional[BatchJob] = None
    enqueued: bool = False
    deferred: int = 0
    rejected: int = 0
    errored: int = 0
    callback_failures: int = 0

    @property
    def succeeded(self) -> int:
        return sum(1 for _, outcome in self.processed if outcome.success)

    @property
    def failed(self) -> int:
        return len(self.processed) - self.succeeded


def _failed_outcome(error: Exception) -> CalloutOutcome:
    """Outcome for an item whose callout raised instead of returning.

    A CalloutError is a request the client should never have built, so it
    counts as a client error. Anything else is reported as a transport
    failure carrying the exception text.
    """
    if isinstance(error, CalloutError):
        return CalloutOutcome(
            status_code=None,
            body=None,
            error=ErrorClass.CLIENT_ERROR,
            elapsed=0.0,
            error_message=str(error.args[0]) if error.args else str(error),
        )
    return CalloutOutcome.transport_failure(f"{type(error).__name__}: {error}", 0.0)


class AsyncDispatcher:
    """Runs work items off the calling path in bounded batches."""

    def __init__(
        self,
        wrapper: ResilienceWrapper,
        scheduler: Scheduler,
        *,
        policy: Optional[RetryPolicy] = None,
        on_result: Optional[StatusCallback] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        defer_retries: bool = False,
        test_harness: Optional[bool] = None,
    ) -> None:
        if batch_size < 1:
            raise ConfigurationError(
                "batch_size must be at least 1", field="batch_size", value=batch_size
            )
        self.wrapper = wrapper
        self.scheduler = scheduler
        self.policy = policy or RetryPolicy.default()
        self.on_result = on_result
        self.batch_size = batch_size
        self.defer_retries = defer_retries
        self._test_harness = test_harness
        self._diagnostics = get_diagnostics_logger()
        self._lock = threading.Lock()
        self.history: List[DispatchResult] = []
        self.completed: List[Tuple[WorkItem, CalloutOutcome]] = []

    @property
    def in_test_harness(self) -> bool:
        if self._test_harness is not None:
            return self._test_harness
        return is_test_harness()

    def submit(
        self, items: Iterable[WorkItem], batch_size: Optional[int] = None
    ) -> Optional[BatchJob]:
        """Schedule ``items`` for processing and return the submitted job.

        Returns None (and schedules nothing) for an empty sequence.

        Args:
            items: Work items, in processing order
            batch_size: Per-submission override of the unit batch size

        Returns:
            The submitted BatchJob, or None for an empty sequence

        Raises:
            ConfigurationError: If ``batch_size`` is less than 1
        """
        size = self.batch_size if batch_size is None else batch_size
        if size < 1:
            raise ConfigurationError("batch_size must be at least 1", field="batch_size", value=size)

        job = BatchJob(items=tuple(items))
        if not job.items:
            logger.debug("Nothing to dispatch")
            return None

        logger.info(
            "Submitting %d callout items as %s (batch size %d)",
            len(job.items),
            job.submission_id,
            size,
        )
        self.scheduler.schedule(self.run_job, job, size)
        return job

    def run_job(self, job: BatchJob, batch_size: Optional[int] = None) -> DispatchResult:
        """Body of one scheduling unit: process a batch, enqueue the rest.

        Args:
            job: The batch, or the remainder of one
            batch_size: Items to process in this unit

        Returns:
            DispatchResult describing this unit
        """
        size = self.batch_size if batch_size is None else batch_size
        inline, remainder = job.split(size)

        log = get_context_logger(__name__)
        log.set_context(submission_id=job.submission_id, generation=job.generation)
        log.info("Processing %d of %d remaining items", len(inline), len(job.remaining))

        processed: List[Tuple[WorkItem, CalloutOutcome]] = []
        deferred = 0
        rejected = 0
        errored = 0
        callback_failures = 0

        for item in inline:
            try:
                outcome = self._run_item(item)
            except CalloutError as exc:
                log.error("Rejected work item %s: %s", item.key, exc, exc_info=True)
                outcome = _failed_outcome(exc)
                rejected += 1
            except Exception as exc:  # One broken item must not strand the rest of the batch
                log.error("Work item %s failed: %s", item.key, exc, exc_info=True)
                outcome = _failed_outcome(exc)
                errored += 1

            if outcome is None:
                deferred += 1
                continue

            processed.append((item, outcome))
            callback_failures += self._finish(item, outcome)

        enqueued = False
        if remainder is not None:
            if self.in_test_harness:
                log.warning(
                    "Test harness active: not enqueuing remainder of %d items",
                    len(remainder.items),
                )
            else:
                self.scheduler.schedule(self.run_job, remainder, size)
                enqueued = True
                log.info("Enqueued remainder of %d items", len(remainder.items))

        result = DispatchResult(
            submission_id=job.submission_id,
            generation=job.generation,
            processed=tuple(processed),
            remainder=remainder,
            enqueued=enqueued,
            deferred=deferred,
            rejected=rejected,
            errored=errored,
            callback_failures=callback_failures,
        )
        with self._lock:
            self.history.append(result)
        log.info(
            "Unit finished: %d succeeded, %d failed, %d deferred",
            result.succeeded,
            result.failed,
            deferred,
        )
        return result

    def _run_item(self, item: WorkItem) -> Optional[CalloutOutcome]:
        """Final outcome for ``item``, or None when its retry was scheduled."""
        if not self.defer_retries:
            return self.wrapper.execute(item.request, self.policy, correlation_id=item.key)
        return self._attempt(item, 1)

    def _attempt(self, item: WorkItem, attempt_number: int) -> Optional[CalloutOutcome]:
        result = self.wrapper.attempt(
            item.request, self.policy, attempt_number, correlation_id=item.key
        )
        if result.done:
            return result.outcome
        self.scheduler.schedule(
            self.resume_item, item, result.next_attempt, delay=result.delay or 0.0
        )
        return None

    def resume_item(self, item: WorkItem, attempt_number: int) -> None:
        """Scheduling unit for a deferred retry of a single item."""
        try:
            outcome = self._attempt(item, attempt_number)
        except Exception as exc:
            logger.error("Work item %s failed: %s", item.key, exc, exc_info=True)
            outcome = _failed_outcome(exc)
        if outcome is not None:
            self._finish(item, outcome)

    def _finish(self, item: WorkItem, outcome: CalloutOutcome) -> int:
        """Record the final outcome and run the status callback; returns failure count."""
        with self._lock:
            self.completed.append((item, outcome))
        if self.on_result is None:
            return 0
        try:
            self.on_result(item, outcome)
        except Exception as exc:  # Status bookkeeping must not stop the batch
            self._diagnostics.error(
                "Status callback failed for work item %s: %s", item.key, exc, exc_info=True
            )
            return 1
        return 0


def record_status_callback(store: RecordStore, entity: str = "callout_status") -> StatusCallback:
    """Status callback that writes Synced/Error markers through a record store.

    It only writes; it never performs a callout. Write failures go to the
    diagnostics channel.
    """
    diagnostics = get_diagnostics_logger()

    def callback(item: WorkItem, outcome: CalloutOutcome) -> None:
        record = {
            "id": item.key,
            "status": STATUS_SYNCED if outcome.success else STATUS_ERROR,
            "message": None if outcome.success else (outcome.error_message or outcome.error.value),
            "status_code": outcome.status_code,
            "attempt": outcome.attempt,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        result = store.update(entity, record)
        if not result.success:
            result = store.insert(entity, record)
        if not result.success:
            diagnostics.error(
                "Could not write %s status for %s: %s", entity, item.key, result.error
            )

    return callback
