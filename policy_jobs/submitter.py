"""
Job submission with conflict adoption.

A 409 from the relay means an equivalent job is already in flight for the
target; the submitter adopts that job id instead of failing, so a double
click or a stale re-submit never renders twice.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from config.logging_config import get_logger
from config.constants import SUBMIT_MAX_RETRIES, SUBMIT_RETRY_DELAY, SUBMIT_MAX_RETRY_DELAY

from .errors import ConflictError, TransientTransportError
from .locks import KeyedLock
from .models import JobRequest, JobState, JobStatus
from .wire_models import GenerateResponse

logger = get_logger(__name__)


@dataclass(frozen=True)
class Submission:
    """Outcome of a successful submit: the job to poll."""
    job_id: str
    status: JobStatus
    adopted: bool = False


class JobSubmitter:
    """
    Issues one generation request per call.

    Transient failures are retried with exponential backoff and jitter.
    Re-posting is safe: if the first attempt did reach the relay, the
    retry comes back as a conflict and is adopted.
    """

    def __init__(
        self,
        relay,
        max_retries: int = SUBMIT_MAX_RETRIES,
        retry_delay: float = SUBMIT_RETRY_DELAY,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """
        Args:
            relay: PolicyTableRelayClient (or compatible)
            max_retries: Retries after a transient failure
            retry_delay: Base backoff delay in seconds
            sleep: Awaitable sleep, injectable for tests
        """
        self.relay = relay
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._sleep = sleep or asyncio.sleep
        self._target_locks = KeyedLock()

    async def submit(self, request: JobRequest) -> Submission:
        """
        Submit a request, adopting an in-flight job on conflict.

        Raises:
            ValidationError: request incomplete (nothing is sent)
            TransientTransportError: relay unreachable after all retries
            RelayRequestError: relay rejected the request
        """
        request.validate()

        # Same-target submits go one at a time so the second sees the conflict
        async with self._target_locks.hold(request.target_id):
            return await self._submit_with_retry(request)

    async def _submit_with_retry(self, request: JobRequest) -> Submission:
        attempt = 0
        while True:
            try:
                response = await self.relay.generate(request)
            except ConflictError as e:
                return self._adopt(request, e)
            except TransientTransportError as e:
                attempt += 1
                if attempt > self.max_retries:
                    logger.warning(
                        f"Submit {request.target_id} failed after {self.max_retries} retries: {e}"
                    )
                    raise
                delay = min(self.retry_delay * (2 ** (attempt - 1)), SUBMIT_MAX_RETRY_DELAY)
                jitter = random.uniform(0, delay * 0.1)
                logger.info(
                    f"Submit {request.target_id}: {e} (retry {attempt}/{self.max_retries})"
                )
                await self._sleep(delay + jitter)
                continue

            status = response.to_domain()
            logger.info(
                f"Submitted {request.target_id} -> {response.job_id} "
                f"(queue position {status.queue_position})"
            )
            return Submission(job_id=response.job_id, status=status)

    def _adopt(self, request: JobRequest, conflict: ConflictError) -> Submission:
        parsed = GenerateResponse.model_validate(conflict.payload)
        status = parsed.to_domain(job_id=conflict.existing_job_id)
        if status.is_terminal:
            # A conflict only ever names a job that is still in flight
            status = JobStatus(
                job_id=conflict.existing_job_id,
                state=JobState.QUEUED,
                queue_info=status.queue_info,
                relay_health=status.relay_health,
            )
        logger.info(f"Adopted in-flight job {conflict.existing_job_id} for {request.target_id}")
        return Submission(job_id=conflict.existing_job_id, status=status, adopted=True)
