"""Scrub job orchestrator that drives a batch through the compliance pipeline."""
from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Container, Dict, List, Optional, Sequence, TypeVar, Union

from ..dedupe import resolve_duplicates
from ..models import (
    AuthorizedScope,
    Classification,
    InvalidRecord,
    JobStatus,
    LeadRecord,
    PhoneKey,
    RawRecord,
    ScoredLead,
    ScrubJob,
)
from ..records import build_lead_record
from ..registry.store import RegistryReader, RegistryUnavailableError
from ..resilience import RetryingRegistryReader, RetryPolicy
from ..scoring import RiskScorer, ScoringSettings
from ..stats import BatchSummary, summarize

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

ProgressCallback = Callable[[str, int, int], None]

CANCELLED_REASON = "cancelled"
EMPTY_BATCH = "empty_batch"
QUOTA_EXCEEDED = "quota_exceeded"
NOT_RETRYABLE = "not_retryable"
MAX_ATTEMPTS_REACHED = "max_attempts_reached"


class JobRejectedError(ValueError):
    """Raised when a submission or retry is refused before a job is created."""

    def __init__(self, reason: str, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class UnknownJobError(KeyError):
    """Raised when a job id does not exist."""


class JobCancelled(Exception):
    """Raised inside a running job once cancellation has been requested."""


@dataclass
class ScrubResult:
    """Terminal output of a completed job."""

    job_id: str
    clean: List[ScoredLead] = field(default_factory=list)
    caution: List[ScoredLead] = field(default_factory=list)
    blocked: List[ScoredLead] = field(default_factory=list)
    invalid: List[InvalidRecord] = field(default_factory=list)
    duplicates_removed: int = 0
    summary: BatchSummary = field(default_factory=BatchSummary)

    def scored(self) -> List[ScoredLead]:
        return [*self.clean, *self.caution, *self.blocked]

    def bucket(self, classification: Classification) -> List[ScoredLead]:
        return {
            Classification.CLEAN: self.clean,
            Classification.CAUTION: self.caution,
            Classification.BLOCKED: self.blocked,
        }[classification]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "clean": [item.as_row() for item in self.clean],
            "caution": [item.as_row() for item in self.caution],
            "blocked": [item.as_row() for item in self.blocked],
            "invalid": [
                {"index": item.index, "raw_phone": item.raw_phone, "reason": item.reason} for item in self.invalid
            ],
            "duplicatesRemoved": self.duplicates_removed,
            "summary": self.summary.as_dict(),
        }


@dataclass(frozen=True)
class _Batch:
    id: str
    records: Sequence[RawRecord]
    scope: AuthorizedScope
    last_contact_date: Optional[datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScrubOrchestrator:
    """Runs scrub jobs in the background and tracks their lifecycle.

    Normalization and scoring fan out over a worker pool; duplicate
    resolution waits for every normalization result of the batch. Failed jobs
    are never restarted; :meth:`retry_job` creates a new attempt instead.
    """

    def __init__(
        self,
        registry: RegistryReader,
        *,
        scoring: Optional[ScoringSettings] = None,
        retry_policy: Optional[RetryPolicy] = None,
        max_workers: Optional[int] = None,
        max_concurrent_jobs: int = 2,
        existing_leads: Optional[Container[PhoneKey]] = None,
        max_attempts: int = 3,
        progress_callback: Optional[ProgressCallback] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._registry = RetryingRegistryReader(registry, retry_policy)
        self._scoring = scoring or ScoringSettings()
        self._existing_leads = existing_leads
        self._max_attempts = max_attempts
        self._progress_callback = progress_callback
        self._clock = clock
        self._workers = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="scrub-worker")
        self._runner = ThreadPoolExecutor(max_workers=max(1, max_concurrent_jobs), thread_name_prefix="scrub-job")
        self._lock = threading.Lock()
        self._progress_lock = threading.Lock()
        self._jobs: Dict[str, ScrubJob] = {}
        self._batches: Dict[str, _Batch] = {}
        self._results: Dict[str, ScrubResult] = {}
        self._cancel_events: Dict[str, threading.Event] = {}
        self._futures: Dict[str, Future] = {}

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------
    def submit_scrub_job(
        self,
        records: Sequence[RawRecord],
        scope: AuthorizedScope,
        *,
        submitted_by: Optional[str] = None,
        last_contact_date: Optional[datetime] = None,
    ) -> str:
        """Validate the batch against the caller's entitlement and queue a job."""

        records = list(records)
        if not records:
            raise JobRejectedError(EMPTY_BATCH, "Cannot scrub an empty batch")
        if scope.max_records is not None and len(records) > scope.max_records:
            raise JobRejectedError(
                QUOTA_EXCEEDED,
                f"Batch of {len(records)} records exceeds the entitlement of {scope.max_records}",
            )

        batch = _Batch(uuid.uuid4().hex, tuple(records), scope, last_contact_date)
        job = ScrubJob(
            id=uuid.uuid4().hex,
            batch_id=batch.id,
            total_count=len(records),
            submitted_by=submitted_by,
            created_at=self._clock(),
        )
        with self._lock:
            self._batches[batch.id] = batch
        self._schedule(job)
        LOGGER.info("Queued scrub job %s with %s records", job.id, job.total_count)
        return job.id

    def retry_job(self, job_id: str) -> str:
        """Create a new attempt for a failed job, referencing the same input batch."""

        with self._lock:
            previous = self._get(job_id)
            if previous.status != JobStatus.FAILED:
                raise JobRejectedError(NOT_RETRYABLE, f"Only failed jobs can be retried (job {job_id} is {previous.status.value})")
            if previous.attempt >= self._max_attempts:
                raise JobRejectedError(
                    MAX_ATTEMPTS_REACHED,
                    f"Maximum attempts ({self._max_attempts}) reached; submit the batch again",
                )
            job = ScrubJob(
                id=uuid.uuid4().hex,
                batch_id=previous.batch_id,
                total_count=previous.total_count,
                attempt=previous.attempt + 1,
                previous_attempt_id=previous.id,
                submitted_by=previous.submitted_by,
                created_at=self._clock(),
            )
        self._schedule(job)
        LOGGER.info("Queued attempt %s of batch %s as job %s", job.attempt, job.batch_id, job.id)
        return job.id

    def _schedule(self, job: ScrubJob) -> None:
        with self._lock:
            self._jobs[job.id] = job
            self._cancel_events[job.id] = threading.Event()
            self._futures[job.id] = self._runner.submit(self._run_job, job.id)

    # ------------------------------------------------------------------
    # Status & results
    # ------------------------------------------------------------------
    def _get(self, job_id: str) -> ScrubJob:
        try:
            return self._jobs[job_id]
        except KeyError:
            raise UnknownJobError(job_id) from None

    def get_job(self, job_id: str) -> ScrubJob:
        with self._lock:
            return replace(self._get(job_id))

    def get_job_status(self, job_id: str) -> Dict[str, Any]:
        with self._lock:
            return self._get(job_id).as_status()

    def get_job_result(self, job_id: str) -> Optional[ScrubResult]:
        """Return the result of a completed job, ``None`` for any other status."""

        with self._lock:
            self._get(job_id)
            return self._results.get(job_id)

    def attempts(self, job_id: str) -> List[ScrubJob]:
        """Return the chain of attempts ending at ``job_id``, oldest first."""

        chain: List[ScrubJob] = []
        with self._lock:
            current: Optional[str] = job_id
            while current is not None:
                job = self._get(current)
                chain.append(replace(job))
                current = job.previous_attempt_id
        return list(reversed(chain))

    def wait(self, job_id: str, timeout: Optional[float] = None) -> ScrubJob:
        with self._lock:
            future = self._futures.get(job_id)
            self._get(job_id)
        if future is not None:
            future.result(timeout=timeout)
        return self.get_job(job_id)

    def cancel(self, job_id: str) -> bool:
        """Request cooperative cancellation. Returns ``False`` for finished jobs."""

        with self._lock:
            job = self._get(job_id)
            if job.terminal:
                return False
            self._cancel_events[job_id].set()
        LOGGER.info("Cancellation requested for job %s", job_id)
        return True

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------
    def _run_job(self, job_id: str) -> None:
        with self._lock:
            job = self._jobs[job_id]
            batch = self._batches[job.batch_id]
            cancel_event = self._cancel_events[job_id]
            job.transition(JobStatus.PROCESSING)
            job.started_at = self._clock()
        LOGGER.info("Processing scrub job %s (attempt %s)", job_id, job.attempt)

        try:
            result = self._execute(job, batch, cancel_event)
        except JobCancelled:
            self._fail(job, CANCELLED_REASON, retryable=False)
        except RegistryUnavailableError as exc:
            LOGGER.exception("Registry unavailable while processing job %s", job_id)
            self._fail(job, f"registry_unavailable: {exc}", retryable=True)
        except Exception as exc:
            LOGGER.exception("Scrub job %s failed", job_id)
            self._fail(job, str(exc) or exc.__class__.__name__, retryable=False)
        else:
            self._complete(job, result)

    def _execute(self, job: ScrubJob, batch: _Batch, cancel_event: threading.Event) -> ScrubResult:
        def count_invalid(outcome: Union[LeadRecord, InvalidRecord]) -> None:
            if isinstance(outcome, InvalidRecord):
                self._advance(job)

        outcomes = self._fan_out(
            cancel_event,
            lambda item: build_lead_record(item[0], item[1]),
            list(enumerate(batch.records)),
            on_done=count_invalid,
        )
        leads = [outcome for outcome in outcomes if isinstance(outcome, LeadRecord)]
        invalid = [outcome for outcome in outcomes if isinstance(outcome, InvalidRecord)]

        self._check_cancelled(cancel_event)
        resolution = resolve_duplicates(leads, self._existing_leads)
        self._advance(job, resolution.duplicates_removed)
        LOGGER.debug(
            "Job %s: %s valid, %s invalid, %s duplicates removed",
            job.id,
            len(leads),
            len(invalid),
            resolution.duplicates_removed,
        )

        self._check_cancelled(cancel_event)
        scorer = RiskScorer(batch.scope, self._scoring, clock=self._clock)
        scored = self._fan_out(
            cancel_event,
            lambda lead: ScoredLead(lead, scorer.score(lead, self._registry, batch.last_contact_date)),
            resolution.records,
            on_done=lambda _: self._advance(job),
        )
        self._check_cancelled(cancel_event)

        result = ScrubResult(
            job_id=job.id,
            invalid=invalid,
            duplicates_removed=resolution.duplicates_removed,
            summary=summarize(scored, invalid, resolution.duplicates_removed),
        )
        for item in scored:
            result.bucket(item.assessment.classification).append(item)
        return result

    def _fan_out(
        self,
        cancel_event: threading.Event,
        func: Callable[[T], R],
        items: Sequence[T],
        on_done: Optional[Callable[[R], None]] = None,
    ) -> List[R]:
        """Run ``func`` over ``items`` on the worker pool, returning results in item order."""

        abort = threading.Event()

        def task(item: T) -> R:
            if cancel_event.is_set():
                raise JobCancelled()
            if abort.is_set():
                raise RuntimeError("Stage aborted")
            outcome = func(item)
            if on_done is not None:
                on_done(outcome)
            return outcome

        futures = [self._workers.submit(task, item) for item in items]
        results: List[R] = []
        try:
            for future in futures:
                results.append(future.result())
        except BaseException:
            abort.set()
            for future in futures:
                future.cancel()
            raise
        return results

    @staticmethod
    def _check_cancelled(cancel_event: threading.Event) -> None:
        if cancel_event.is_set():
            raise JobCancelled()

    def _advance(self, job: ScrubJob, count: int = 1) -> None:
        if count <= 0:
            return
        with self._progress_lock:
            with self._lock:
                if job.terminal:
                    return
                job.advance(count)
                processed, total = job.processed_count, job.total_count
            if self._progress_callback:
                self._progress_callback(job.id, processed, total)

    def _complete(self, job: ScrubJob, result: ScrubResult) -> None:
        with self._lock:
            job.clean_count = len(result.clean)
            job.caution_count = len(result.caution)
            job.blocked_count = len(result.blocked)
            job.invalid_count = len(result.invalid)
            job.duplicates_removed = result.duplicates_removed
            job.processed_count = job.total_count
            self._results[job.id] = result
            job.transition(JobStatus.COMPLETED)
            job.finished_at = self._clock()
        LOGGER.info(
            "Scrub job %s completed: %s clean, %s caution, %s blocked, %s invalid, %s duplicates removed",
            job.id,
            job.clean_count,
            job.caution_count,
            job.blocked_count,
            job.invalid_count,
            job.duplicates_removed,
        )

    def _fail(self, job: ScrubJob, reason: str, *, retryable: bool) -> None:
        with self._lock:
            job.failure_reason = reason
            job.retryable = retryable
            job.transition(JobStatus.FAILED)
            job.finished_at = self._clock()
        LOGGER.warning("Scrub job %s failed: %s", job.id, reason)

    # ------------------------------------------------------------------
    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            events = list(self._cancel_events.values())
        if not wait:
            for event in events:
                event.set()
        self._runner.shutdown(wait=wait, cancel_futures=not wait)
        self._workers.shutdown(wait=wait, cancel_futures=not wait)

    def __enter__(self) -> "ScrubOrchestrator":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()


__all__ = [
    "JobRejectedError",
    "ScrubOrchestrator",
    "ScrubResult",
    "UnknownJobError",
]
