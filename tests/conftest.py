"""
Pytest configuration and shared fixtures for policy table job tests.
"""
import asyncio
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from policy_jobs.errors import ConflictError
from policy_jobs.models import JobRequest, JobResult, JobState, JobStatus, QueueInfo
from policy_jobs.wire_models import GenerateResponse, RegisterResponse


# ============================================================================
# Helpers
# ============================================================================

def make_status(
    state: str = "queued",
    progress: int = 0,
    queue_position: Optional[int] = None,
    job_id: str = "job-1",
    **kwargs,
) -> JobStatus:
    """Build a JobStatus from plain values."""
    queue_info = QueueInfo(queue_position=queue_position) if queue_position is not None else None
    return JobStatus(
        job_id=job_id,
        state=JobState(state),
        progress=progress,
        queue_info=queue_info,
        **kwargs,
    )


class RecordingSleep:
    """Instant replacement for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float):
        self.calls.append(seconds)
        await asyncio.sleep(0)


class ScriptedStatusRelay:
    """
    Relay whose get_status returns a fixed script, one item per call.

    Exception instances in the script are raised instead of returned.
    The last item repeats once the script is exhausted.
    """

    def __init__(self, script):
        self.script = list(script)
        self.calls = 0

    async def get_status(self, job_id: str) -> JobStatus:
        item = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        if isinstance(item, Exception):
            raise item
        return item


class FakeRelay:
    """
    In-memory relay for orchestrator and registration tests.

    Each target follows a script of (state, progress) steps, one per status
    call. Targets in `fail_targets` fail with the given reason. Tracks how
    many jobs are in flight at once.
    """

    DEFAULT_SCRIPT = [("processing", 50), ("completed", 100)]

    def __init__(self, scripts: Optional[Dict[str, List[Tuple[str, int]]]] = None):
        self.scripts = scripts or {}
        self.fail_targets: Dict[str, str] = {}
        self.conflicts: Dict[str, str] = {}
        self.generate_errors: List[Exception] = []
        self.register_errors: Dict[str, Exception] = {}

        self.generate_calls: List[JobRequest] = []
        self.status_calls: List[str] = []
        self.register_calls: List[str] = []

        self.published = set()
        self.max_in_flight = 0
        self._jobs: Dict[str, List] = {}
        self._in_flight = set()
        self._counter = 0

    def add_job(self, job_id: str, target_id: str):
        """Register a job that exists remotely without being submitted here."""
        self._jobs[job_id] = [target_id, 0]
        self._track(job_id)

    def _track(self, job_id: str):
        self._in_flight.add(job_id)
        self.max_in_flight = max(self.max_in_flight, len(self._in_flight))

    def _script(self, target_id: str) -> List[Tuple[str, int]]:
        if target_id in self.fail_targets:
            return [("processing", 40), ("failed", 40)]
        return self.scripts.get(target_id, self.DEFAULT_SCRIPT)

    async def generate(self, request: JobRequest) -> GenerateResponse:
        self.generate_calls.append(request)
        if self.generate_errors:
            raise self.generate_errors.pop(0)
        if request.target_id in self.conflicts:
            existing = self.conflicts[request.target_id]
            raise ConflictError(existing, payload={"error": "Job in flight", "existingJobId": existing})

        self._counter += 1
        job_id = f"job-{request.target_id}-{self._counter}"
        self._jobs[job_id] = [request.target_id, 0]
        self._track(job_id)
        return GenerateResponse.model_validate({
            "jobId": job_id,
            "status": "queued",
            "message": "Queued",
            "queuePosition": 1,
            "queueLength": 1,
        })

    async def get_status(self, job_id: str) -> JobStatus:
        self.status_calls.append(job_id)
        target_id, step = self._jobs[job_id]
        self._jobs[job_id][1] += 1
        script = self._script(target_id)
        state, progress = script[min(step, len(script) - 1)]

        result = None
        error = None
        reason = None
        if state == "completed":
            result = JobResult(artifact_id=f"art-{job_id}", image_url=f"https://cdn.test/{job_id}.png")
        elif state == "failed":
            reason = self.fail_targets.get(target_id, "render failed")
            error = f"Render failed: {reason}"

        if state in ("completed", "failed"):
            self._in_flight.discard(job_id)

        return JobStatus(
            job_id=job_id,
            state=JobState(state),
            progress=progress,
            result=result,
            error=error,
            failure_reason=reason,
        )

    async def register(self, artifact_id: str) -> RegisterResponse:
        self.register_calls.append(artifact_id)
        if artifact_id in self.register_errors:
            raise self.register_errors.pop(artifact_id)
        already = artifact_id in self.published
        self.published.add(artifact_id)
        return RegisterResponse.model_validate({"alreadyRegistered": already, "success": True})


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def instant_sleep() -> RecordingSleep:
    """Sleep that returns immediately and records its delays."""
    return RecordingSleep()


@pytest.fixture
def fake_relay() -> FakeRelay:
    """Relay where every target completes after one processing step."""
    return FakeRelay()


@pytest.fixture
def status_factory():
    """make_status() helper as a fixture."""
    return make_status


@pytest.fixture
def scripted_relay():
    """Factory: scripted_relay([status, TransientTransportError(...), ...])"""
    return ScriptedStatusRelay


@pytest.fixture
def sample_request() -> JobRequest:
    return JobRequest(
        target_id="A",
        apply_date_text="2024-05-01 ~ 2024-05-31",
        apply_content_text="💰 S24 / 5G / 신규 / +15만",
        access_group_ids=frozenset({"g1", "g2"}),
    )


# ============================================================================
# Session-level Setup
# ============================================================================

def pytest_configure(config):
    """Configure pytest session."""
    config.addinivalue_line("markers", "unit: unit tests")
    config.addinivalue_line("markers", "batch: batch orchestration tests")


def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers."""
    for item in items:
        # Auto-add 'unit' marker to test files in tests/unit/
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        # Auto-add 'batch' marker to test files in tests/batch/
        elif "batch" in str(item.fspath):
            item.add_marker(pytest.mark.batch)
