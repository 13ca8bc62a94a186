"""
Unit tests for policy_jobs.registration module.

Tests idempotent publication and batch closeability.
"""

import asyncio

import pytest

from policy_jobs.batch.status_store import StatusObserved, StatusStore
from policy_jobs.errors import RegistrationError, TransientTransportError
from policy_jobs.models import JobResult, RegistrationOutcome
from policy_jobs.registration import (
    RegistrationCoordinator,
    RegistrationSummary,
    eligible_results,
    has_publishable,
    is_closeable,
)


def result(artifact_id: str) -> JobResult:
    return JobResult(artifact_id=artifact_id, image_url=f"https://cdn.test/{artifact_id}.png")


@pytest.fixture
def completed_store(status_factory) -> StatusStore:
    """A and B completed, C failed."""
    store = StatusStore(["A", "B", "C"])
    store.dispatch(StatusObserved("A", status_factory("completed", 100, job_id="job-A", result=result("art-A"))))
    store.dispatch(StatusObserved("B", status_factory("completed", 100, job_id="job-B", result=result("art-B"))))
    store.dispatch(StatusObserved("C", status_factory("failed", 40, job_id="job-C", error="Render failed")))
    return store


class TestRegisterOne:
    """Tests for RegistrationCoordinator.register_one()."""

    @pytest.mark.asyncio
    async def test_second_call_reports_already_registered(self, fake_relay):
        coordinator = RegistrationCoordinator(fake_relay)

        first = await coordinator.register_one(result("art-1"))
        second = await coordinator.register_one(result("art-1"))

        assert first.outcome is RegistrationOutcome.REGISTERED
        assert second.outcome is RegistrationOutcome.ALREADY_REGISTERED
        assert fake_relay.register_calls == ["art-1"]

    @pytest.mark.asyncio
    async def test_concurrent_calls_publish_once(self, fake_relay):
        coordinator = RegistrationCoordinator(fake_relay)
        states = await asyncio.gather(*(coordinator.register_one(result("art-1")) for _ in range(3)))

        outcomes = sorted(state.outcome.value for state in states)
        assert outcomes == ["alreadyRegistered", "alreadyRegistered", "registered"]
        assert fake_relay.register_calls == ["art-1"]
        assert len(coordinator._locks) == 0

    @pytest.mark.asyncio
    async def test_published_elsewhere(self, fake_relay):
        """The relay reports alreadyRegistered for an artifact published by another session."""
        fake_relay.published.add("art-1")
        coordinator = RegistrationCoordinator(fake_relay)

        state = await coordinator.register_one(result("art-1"))
        assert state.outcome is RegistrationOutcome.ALREADY_REGISTERED
        assert coordinator.is_published("art-1")

    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(self, fake_relay):
        fake_relay.register_errors["art-1"] = TransientTransportError("HTTP 503: busy", status_code=503)
        coordinator = RegistrationCoordinator(fake_relay)

        state = await coordinator.register_one(result("art-1"))
        assert state.outcome is RegistrationOutcome.REGISTRATION_FAILED
        assert "busy" in state.reason
        assert not coordinator.is_published("art-1")

    @pytest.mark.asyncio
    async def test_failed_then_retried(self, fake_relay):
        fake_relay.register_errors["art-1"] = RegistrationError("art-1", "artifact locked")
        coordinator = RegistrationCoordinator(fake_relay)

        failed = await coordinator.register_one(result("art-1"))
        retried = await coordinator.register_one(result("art-1"))

        assert failed.outcome is RegistrationOutcome.REGISTRATION_FAILED
        assert retried.outcome is RegistrationOutcome.REGISTERED
        assert fake_relay.register_calls == ["art-1", "art-1"]

    @pytest.mark.asyncio
    async def test_store_updated(self, fake_relay, completed_store):
        coordinator = RegistrationCoordinator(fake_relay, store=completed_store)
        await coordinator.register_one(result("art-A"), target_id="A")

        assert completed_store.get("A").registration.outcome is RegistrationOutcome.REGISTERED
        assert completed_store.get("B").registration.outcome is RegistrationOutcome.UNREGISTERED


class TestRegisterAll:
    """Tests for RegistrationCoordinator.register_all()."""

    @pytest.mark.asyncio
    async def test_aggregates_outcomes(self, fake_relay, completed_store):
        fake_relay.register_errors["art-B"] = TransientTransportError("timeout")
        coordinator = RegistrationCoordinator(fake_relay, store=completed_store)

        summary = await coordinator.register_all(eligible_results(completed_store.snapshot()))

        assert summary.registered == 1
        assert summary.failed == 1
        assert summary.failed_targets == ["B"]
        assert not summary.closeable
        assert not is_closeable(completed_store.snapshot())

    @pytest.mark.asyncio
    async def test_retry_closes_batch(self, fake_relay, completed_store):
        fake_relay.register_errors["art-B"] = TransientTransportError("timeout")
        coordinator = RegistrationCoordinator(fake_relay, store=completed_store)
        await coordinator.register_all(eligible_results(completed_store.snapshot()))

        remaining = eligible_results(completed_store.snapshot())
        assert list(remaining) == ["B"]

        summary = await coordinator.register_all(remaining)
        assert summary.registered == 1
        assert is_closeable(completed_store.snapshot())
        assert not has_publishable(completed_store.snapshot())

    @pytest.mark.asyncio
    async def test_second_pass_reports_already_registered(self, fake_relay):
        coordinator = RegistrationCoordinator(fake_relay)
        results = {"A": result("art-A"), "B": result("art-B")}

        await coordinator.register_all(results)
        summary = await coordinator.register_all(results)

        assert summary.already_registered == 2
        assert summary.registered == 0
        assert len(fake_relay.register_calls) == 2


class TestCloseability:
    """Tests for eligible_results() and is_closeable()."""

    def test_only_completed_with_result_eligible(self, completed_store):
        eligible = eligible_results(completed_store.snapshot())
        assert set(eligible) == {"A", "B"}
        assert eligible["A"].artifact_id == "art-A"

    def test_unpublished_batch_not_closeable(self, completed_store):
        assert not is_closeable(completed_store.snapshot())
        assert has_publishable(completed_store.snapshot())

    def test_empty_store_closeable(self):
        assert is_closeable(StatusStore(["A"]).snapshot())

    def test_summary_to_dict(self):
        summary = RegistrationSummary(registered=2, already_registered=1)
        data = summary.to_dict()
        assert data["closeable"] is True
        assert summary.total == 3
