"""
Unit tests for policy_jobs/submitter.py - submission, conflict adoption and retry
"""
import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from policy_jobs.errors import (
    ConflictError,
    RelayRequestError,
    TransientTransportError,
    ValidationError,
)
from policy_jobs.models import JobState
from policy_jobs.submitter import JobSubmitter
from policy_jobs.wire_models import GenerateResponse


def generate_response(job_id: str = "job-1", **extra) -> GenerateResponse:
    return GenerateResponse.model_validate({"jobId": job_id, "status": "queued", "message": "Queued", **extra})


@pytest.fixture
def mock_relay():
    relay = Mock()
    relay.generate = AsyncMock(return_value=generate_response(queuePosition=2, estimatedWaitTime=30))
    return relay


class TestJobSubmitter:
    """Tests for JobSubmitter."""

    @pytest.mark.asyncio
    async def test_submit_success(self, mock_relay, sample_request, instant_sleep):
        submitter = JobSubmitter(mock_relay, sleep=instant_sleep)
        submission = await submitter.submit(sample_request)

        assert submission.job_id == "job-1"
        assert submission.adopted is False
        assert submission.status.state is JobState.QUEUED
        assert submission.status.queue_position == 2
        assert submission.status.queue_info.estimated_wait_seconds == 30
        mock_relay.generate.assert_awaited_once_with(sample_request)

    @pytest.mark.asyncio
    async def test_invalid_request_not_sent(self, mock_relay, sample_request, instant_sleep):
        submitter = JobSubmitter(mock_relay, sleep=instant_sleep)
        with pytest.raises(ValidationError):
            await submitter.submit(sample_request.with_groups([]))
        mock_relay.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_conflict_adopts_existing_job(self, mock_relay, sample_request, instant_sleep):
        """A 409 is not an error: the in-flight job is adopted."""
        mock_relay.generate.side_effect = ConflictError(
            "job-existing", payload={"error": "in flight", "existingJobId": "job-existing", "queuePosition": 4}
        )
        submitter = JobSubmitter(mock_relay, sleep=instant_sleep)
        submission = await submitter.submit(sample_request)

        assert submission.job_id == "job-existing"
        assert submission.adopted is True
        assert submission.status.job_id == "job-existing"
        assert submission.status.state is JobState.QUEUED
        assert submission.status.queue_position == 4

    @pytest.mark.asyncio
    async def test_conflict_never_adopts_as_terminal(self, mock_relay, sample_request, instant_sleep):
        mock_relay.generate.side_effect = ConflictError(
            "job-existing", payload={"existingJobId": "job-existing", "status": "failed"}
        )
        submitter = JobSubmitter(mock_relay, sleep=instant_sleep)
        submission = await submitter.submit(sample_request)
        assert submission.status.state is JobState.QUEUED

    @pytest.mark.asyncio
    async def test_transient_failure_retried(self, mock_relay, sample_request, instant_sleep):
        mock_relay.generate.side_effect = [
            TransientTransportError("HTTP 503", status_code=503),
            generate_response("job-2"),
        ]
        submitter = JobSubmitter(mock_relay, retry_delay=2.0, sleep=instant_sleep)
        submission = await submitter.submit(sample_request)

        assert submission.job_id == "job-2"
        assert mock_relay.generate.await_count == 2
        assert len(instant_sleep.calls) == 1
        # base delay plus up to 10% jitter
        assert 2.0 <= instant_sleep.calls[0] <= 2.2

    @pytest.mark.asyncio
    async def test_backoff_grows_and_caps(self, mock_relay, sample_request, instant_sleep):
        mock_relay.generate.side_effect = [TransientTransportError("timeout")] * 4 + [generate_response()]
        submitter = JobSubmitter(mock_relay, max_retries=4, retry_delay=4.0, sleep=instant_sleep)
        await submitter.submit(sample_request)

        assert len(instant_sleep.calls) == 4
        for delay, base in zip(instant_sleep.calls, [4.0, 8.0, 10.0, 10.0]):
            assert base <= delay <= base * 1.1 + 1e-9

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, mock_relay, sample_request, instant_sleep):
        mock_relay.generate.side_effect = TransientTransportError("connection refused")
        submitter = JobSubmitter(mock_relay, max_retries=2, sleep=instant_sleep)

        with pytest.raises(TransientTransportError):
            await submitter.submit(sample_request)
        assert mock_relay.generate.await_count == 3

    @pytest.mark.asyncio
    async def test_request_error_not_retried(self, mock_relay, sample_request, instant_sleep):
        mock_relay.generate.side_effect = RelayRequestError("HTTP 400: bad", status_code=400)
        submitter = JobSubmitter(mock_relay, sleep=instant_sleep)

        with pytest.raises(RelayRequestError):
            await submitter.submit(sample_request)
        assert mock_relay.generate.await_count == 1

    @pytest.mark.asyncio
    async def test_same_target_submits_serialized(self, sample_request, instant_sleep):
        """A double submit sees the first job as a conflict and adopts it."""
        relay = Mock()
        in_flight = {}

        async def generate(request):
            if request.target_id in in_flight:
                raise ConflictError(in_flight[request.target_id], payload={})
            await asyncio.sleep(0)
            in_flight[request.target_id] = "job-first"
            return generate_response("job-first")

        relay.generate = AsyncMock(side_effect=generate)
        submitter = JobSubmitter(relay, sleep=instant_sleep)

        first, second = await asyncio.gather(
            submitter.submit(sample_request),
            submitter.submit(sample_request),
        )
        assert first.job_id == second.job_id == "job-first"
        assert [first.adopted, second.adopted] == [False, True]
        assert len(submitter._target_locks) == 0
