"""
Adaptive status polling for one remote job.

State machine: not_started -> polling -> terminal | cancelled.

The poller checks immediately, then sleeps between checks: the fast
interval while the job is processing or the queue is moving, the slow
interval once a queued job has shown the same progress and queue position
for more than `stall_threshold` consecutive polls. Transient transport
failures and malformed responses are retried on the next tick and never
fail the job.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional, Tuple

from config.logging_config import get_logger
from config.constants import (
    POLL_FAST_INTERVAL_SECONDS,
    POLL_SLOW_INTERVAL_SECONDS,
    POLL_STALL_THRESHOLD,
)

from .errors import RelayRequestError, TransientTransportError
from .models import JobState, JobStatus, merge_status

logger = get_logger(__name__)

StatusCallback = Callable[[JobStatus], None]


class PollerState(Enum):
    NOT_STARTED = "not_started"
    POLLING = "polling"
    TERMINAL = "terminal"
    CANCELLED = "cancelled"


@dataclass
class PollerConfig:
    """Interval tiers for StatusPoller."""
    fast_interval: float = POLL_FAST_INTERVAL_SECONDS
    slow_interval: float = POLL_SLOW_INTERVAL_SECONDS
    stall_threshold: int = POLL_STALL_THRESHOLD


class StatusPoller:
    """
    Polls one job until it reaches a terminal state.

    Cancelling stops the local task only; the remote job keeps running
    and can be observed again by polling its job id.

    Usage:
        poller = StatusPoller(relay, job_id, on_update=store_update)
        final = await poller.run()      # None if cancelled
    """

    def __init__(
        self,
        relay,
        job_id: str,
        on_update: Optional[StatusCallback] = None,
        on_terminal: Optional[StatusCallback] = None,
        config: Optional[PollerConfig] = None,
        initial_status: Optional[JobStatus] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """
        Args:
            relay: PolicyTableRelayClient (or compatible)
            job_id: Remote job to observe
            on_update: Called with the merged status after every successful check
            on_terminal: Called exactly once with the terminal status
            config: Interval tiers
            initial_status: Status already known from submission
            sleep: Awaitable sleep, injectable for tests
        """
        self.relay = relay
        self.job_id = job_id
        self.on_update = on_update
        self.on_terminal = on_terminal
        self.config = config or PollerConfig()
        self._sleep = sleep or asyncio.sleep

        self.state = PollerState.NOT_STARTED
        self.status: Optional[JobStatus] = initial_status
        self.interval = self.config.fast_interval
        self.poll_count = 0
        self.transient_failures = 0

        self._stall_count = 0
        self._last_signature: Optional[Tuple[int, Optional[int]]] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def stall_count(self) -> int:
        return self._stall_count

    def start(self) -> asyncio.Task:
        """Start polling in a background task (idempotent)."""
        if self._task is None:
            self.state = PollerState.POLLING
            self._task = asyncio.ensure_future(self._loop())
        return self._task

    async def wait(self) -> Optional[JobStatus]:
        """Wait for the terminal status; None if this poller was cancelled."""
        if self.state is PollerState.CANCELLED and self._task is None:
            return None
        task = self.start()
        try:
            return await task
        except asyncio.CancelledError:
            if self.state is PollerState.CANCELLED:
                return None
            raise

    async def run(self) -> Optional[JobStatus]:
        return await self.wait()

    def cancel(self):
        """Stop the local timer. The remote job is not affected."""
        if self.state in (PollerState.TERMINAL, PollerState.CANCELLED):
            return
        self.state = PollerState.CANCELLED
        if self._task is not None:
            self._task.cancel()
        logger.info(f"Stopped polling {self.job_id} (remote job continues)")

    async def _loop(self) -> JobStatus:
        while True:
            try:
                incoming = await self.relay.get_status(self.job_id)
            except TransientTransportError as e:
                self.transient_failures += 1
                logger.debug(f"Status check {self.job_id} failed, retrying next tick: {e}")
                await self._sleep(self.interval)
                continue
            except RelayRequestError as e:
                # The relay no longer knows the job; stop and leave it retryable
                logger.warning(f"Status lookup for {self.job_id} rejected: {e}")
                incoming = JobStatus(
                    job_id=self.job_id,
                    state=JobState.FAILED,
                    progress=self.status.progress if self.status else 0,
                    message="Status lookup rejected",
                    error=str(e),
                    failure_reason="status_unavailable",
                )

            self.poll_count += 1
            self._observe(incoming)

            if self.status.is_terminal:
                self._finish()
                return self.status

            await self._sleep(self.interval)

    def _observe(self, incoming: JobStatus):
        self.status = merge_status(self.status, incoming)
        status = self.status

        if status.state is JobState.PROCESSING:
            self._stall_count = 0
            self._last_signature = None
            self.interval = self.config.fast_interval
        elif status.state is JobState.QUEUED:
            signature = (status.progress, status.queue_position)
            if signature == self._last_signature:
                self._stall_count += 1
            else:
                self._stall_count = 1
                self._last_signature = signature
            if self._stall_count > self.config.stall_threshold:
                self.interval = self.config.slow_interval
            else:
                self.interval = self.config.fast_interval

        logger.debug(
            f"Poll {self.job_id} #{self.poll_count}: {status.state.value} "
            f"{status.progress}% (next in {self.interval}s)"
        )

        if self.on_update:
            self.on_update(status)

    def _finish(self):
        self.state = PollerState.TERMINAL
        status = self.status
        if status.state is JobState.FAILED:
            logger.warning(
                f"Job {self.job_id} failed: {status.error or status.message} "
                f"({status.failure_reason or 'no reason'})"
            )
        else:
            logger.info(f"Job {self.job_id} completed")
        if self.on_terminal:
            self.on_terminal(status)
