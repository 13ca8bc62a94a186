"""
Batch orchestrator for policy table generation.

Runs the targets of a batch strictly one at a time through the shared
single-flight lane: submit, poll to a terminal state, settle, next.
A failed target is recorded and the batch moves on; failed targets can
be retried individually at any later time.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from config.logging_config import get_logger
from config.constants import (
    BATCH_SETTLE_DELAY_SECONDS,
    POLL_FAST_INTERVAL_SECONDS,
    POLL_SLOW_INTERVAL_SECONDS,
    POLL_STALL_THRESHOLD,
)

from ..errors import PolicyJobError, ValidationError
from ..models import JobRequest, JobState, JobStatus
from ..poller import PollerConfig, StatusPoller
from ..submitter import JobSubmitter
from .single_flight import SingleFlightLane
from .status_store import EntryReset, StatusObserved, StatusStore, StoreListener, TargetEntry

logger = get_logger(__name__)

Sleep = Callable[[float], Awaitable[None]]
TargetSpec = Union[Tuple[str, Iterable[str]], JobRequest]


@dataclass
class OrchestratorConfig:
    """Configuration for BatchOrchestrator."""
    settle_delay: float = BATCH_SETTLE_DELAY_SECONDS
    fast_interval: float = POLL_FAST_INTERVAL_SECONDS
    slow_interval: float = POLL_SLOW_INTERVAL_SECONDS
    stall_threshold: int = POLL_STALL_THRESHOLD

    def poller_config(self) -> PollerConfig:
        return PollerConfig(
            fast_interval=self.fast_interval,
            slow_interval=self.slow_interval,
            stall_threshold=self.stall_threshold,
        )


@dataclass
class BatchSummary:
    """Aggregate outcome of a batch pass."""
    total: int
    completed: int
    failed: int
    pending: int
    failed_targets: List[str] = field(default_factory=list)

    @property
    def all_completed(self) -> bool:
        return self.total > 0 and self.completed == self.total

    def to_dict(self) -> Dict[str, object]:
        return {
            "total": self.total,
            "completed": self.completed,
            "failed": self.failed,
            "pending": self.pending,
            "failed_targets": list(self.failed_targets),
        }


class BatchRun:
    """
    One multi-target generation: ordered requests plus their status map.

    Closing a run stops its local pollers; remote jobs keep running.
    """

    def __init__(self, requests: Sequence[JobRequest], apply_date_text: str, apply_content_text: str):
        target_ids = [r.target_id for r in requests]
        duplicates = {t for t in target_ids if target_ids.count(t) > 1}
        if duplicates:
            raise ValidationError(f"Duplicate targets in batch: {sorted(duplicates)}", field="targets")
        if not requests:
            raise ValidationError("A batch needs at least one target", field="targets")

        self.apply_date_text = apply_date_text
        self.apply_content_text = apply_content_text
        self.requests: List[JobRequest] = list(requests)
        self.store = StatusStore(target_ids)
        self.closed = False
        self._pollers: Dict[str, StatusPoller] = {}

    @classmethod
    def create(
        cls,
        targets: Iterable[TargetSpec],
        apply_date_text: str,
        apply_content_text: str,
    ) -> "BatchRun":
        """
        Build a run sharing one apply date/content across targets.

        Args:
            targets: (target_id, access_group_ids) pairs, in processing order
            apply_date_text: Shared apply date text
            apply_content_text: Shared apply content text
        """
        requests = []
        for target in targets:
            if isinstance(target, JobRequest):
                target_id, groups = target.target_id, target.access_group_ids
            else:
                target_id, groups = target
            requests.append(JobRequest(
                target_id=target_id,
                apply_date_text=apply_date_text,
                apply_content_text=apply_content_text,
                access_group_ids=frozenset(groups),
            ))
        return cls(requests, apply_date_text, apply_content_text)

    @property
    def target_ids(self) -> List[str]:
        return [r.target_id for r in self.requests]

    def request_for(self, target_id: str) -> JobRequest:
        for request in self.requests:
            if request.target_id == target_id:
                return request
        raise KeyError(target_id)

    def subscribe(self, listener: StoreListener):
        self.store.subscribe(listener)

    def snapshot(self) -> Dict[str, TargetEntry]:
        return self.store.snapshot()

    def summary(self) -> BatchSummary:
        snapshot = self.store.snapshot()
        completed = [t for t in self.target_ids if snapshot[t].is_completed]
        failed = [t for t in self.target_ids if snapshot[t].is_failed]
        return BatchSummary(
            total=len(self.requests),
            completed=len(completed),
            failed=len(failed),
            pending=len(self.requests) - len(completed) - len(failed),
            failed_targets=failed,
        )

    def close(self):
        """Stop local polling for this run."""
        self.closed = True
        for poller in list(self._pollers.values()):
            poller.cancel()
        self._pollers.clear()


class BatchOrchestrator:
    """
    Sequences batch targets through the single-flight lane.

    Usage:
        orchestrator = BatchOrchestrator(relay)
        run = BatchRun.create([("A", {"g1"}), ("B", {"g2"})], "2024-05-01", "content")
        run.subscribe(render_statuses)
        summary = await orchestrator.execute(run)
        if summary.failed:
            await orchestrator.retry_one(run, summary.failed_targets[0])
    """

    def __init__(
        self,
        relay,
        submitter: Optional[JobSubmitter] = None,
        lane: Optional[SingleFlightLane] = None,
        config: Optional[OrchestratorConfig] = None,
        sleep: Optional[Sleep] = None,
    ):
        """
        Args:
            relay: PolicyTableRelayClient (or compatible)
            submitter: Optional custom submitter
            lane: Lane shared with other orchestrators on the same relay
            config: Orchestrator configuration
            sleep: Awaitable sleep for polling and settling, injectable for tests
        """
        self.relay = relay
        self.config = config or OrchestratorConfig()
        self._sleep = sleep or asyncio.sleep
        self.submitter = submitter or JobSubmitter(relay, sleep=self._sleep)
        self.lane = lane or SingleFlightLane(settle_delay=self.config.settle_delay, sleep=self._sleep)

        logger.info(
            f"BatchOrchestrator initialized: "
            f"settle={self.config.settle_delay}s, "
            f"poll={self.config.fast_interval}s/{self.config.slow_interval}s"
        )

    async def execute(self, run: BatchRun) -> BatchSummary:
        """Process every target of the run in order. Never raises per-target errors."""
        logger.info(f"Batch started: {len(run.requests)} targets")
        for request in run.requests:
            if run.closed:
                logger.info("Batch closed; remaining targets not submitted")
                break
            await self._process_target(run, request)

        summary = run.summary()
        logger.info(
            f"Batch finished: {summary.completed} completed, "
            f"{summary.failed} failed, {summary.pending} pending"
        )
        return summary

    async def retry_one(self, run: BatchRun, target_id: str) -> TargetEntry:
        """
        Re-run submit and poll for one failed target.

        Uses the run's shared apply date/content and the target's own groups;
        no other target's entry is touched.

        Raises:
            KeyError: target not in this run
            ValueError: target has not failed, or the run is closed
        """
        if run.closed:
            raise ValueError("Batch is closed")
        request = run.request_for(target_id)
        entry = run.store.get(target_id)
        if entry is None or not entry.is_failed:
            state = entry.state.value if entry and entry.state else "not submitted"
            raise ValueError(f"Only failed targets can be retried ({target_id} is {state})")

        logger.info(f"Retrying {target_id}")
        await self._process_target(run, request, retry=True)
        return run.store.get(target_id)

    async def retry_failed(self, run: BatchRun) -> BatchSummary:
        """Retry every failed target, one at a time."""
        for target_id in run.summary().failed_targets:
            if run.closed:
                break
            await self.retry_one(run, target_id)
        return run.summary()

    async def _process_target(self, run: BatchRun, request: JobRequest, retry: bool = False):
        target_id = request.target_id
        async with self.lane.slot(target_id):
            if run.closed:
                return
            if retry:
                entry = run.store.get(target_id)
                if entry is None or not entry.is_failed:
                    # already retried while this one waited for the lane
                    return
                run.store.dispatch(EntryReset(target_id))
            try:
                await self._submit_and_poll(run, request)
            except PolicyJobError as e:
                logger.warning(f"Target {target_id} failed: {e}")
                run.store.dispatch(StatusObserved(target_id, JobStatus.submission_failed(str(e))))
            except Exception as e:
                logger.exception(f"Unexpected error processing {target_id}")
                run.store.dispatch(StatusObserved(
                    target_id,
                    JobStatus.submission_failed(f"Unexpected error: {e}", reason=type(e).__name__),
                ))

    async def _submit_and_poll(self, run: BatchRun, request: JobRequest):
        target_id = request.target_id
        submission = await self.submitter.submit(request)
        run.store.dispatch(StatusObserved(target_id, submission.status))
        if run.closed:
            return

        poller = StatusPoller(
            self.relay,
            submission.job_id,
            on_update=lambda status: run.store.dispatch(StatusObserved(target_id, status)),
            config=self.config.poller_config(),
            initial_status=submission.status,
            sleep=self._sleep,
        )
        run._pollers[target_id] = poller
        try:
            final = await poller.run()
        finally:
            run._pollers.pop(target_id, None)

        if final is None:
            logger.info(f"Stopped observing {target_id} ({submission.job_id})")
        elif final.state is JobState.FAILED:
            logger.warning(
                f"Target {target_id} render failed: "
                f"{final.failure_reason or final.error or final.message}"
            )
