"""
Idempotent publication of rendered artifacts.

register_one() converges: the first successful call reports `registered`,
every later call for the same artifact reports `alreadyRegistered` and
never sends a second publish request. register_all() publishes items
independently and aggregates the outcomes.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Set

from config.logging_config import get_logger

from .batch.status_store import RegistrationObserved, Snapshot, StatusStore
from .errors import PolicyJobError
from .locks import KeyedLock
from .models import (
    ALREADY_REGISTERED,
    REGISTERED,
    JobResult,
    RegistrationOutcome,
    RegistrationState,
)

logger = get_logger(__name__)


@dataclass
class RegistrationSummary:
    """Aggregated outcome of register_all()."""
    registered: int = 0
    already_registered: int = 0
    failed: int = 0
    outcomes: Dict[str, RegistrationState] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.registered + self.already_registered + self.failed

    @property
    def failed_targets(self) -> List[str]:
        return [
            key for key, state in self.outcomes.items()
            if state.outcome is RegistrationOutcome.REGISTRATION_FAILED
        ]

    @property
    def closeable(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "registered": self.registered,
            "already_registered": self.already_registered,
            "failed": self.failed,
            "failed_targets": self.failed_targets,
            "closeable": self.closeable,
        }


def eligible_results(snapshot: Snapshot) -> Dict[str, JobResult]:
    """Completed targets with an artifact that is not yet published."""
    eligible = {}
    for target_id, entry in snapshot.items():
        if not entry.is_completed or entry.status.result is None:
            continue
        if entry.registration.is_published:
            continue
        eligible[target_id] = entry.status.result
    return eligible


def has_publishable(snapshot: Snapshot) -> bool:
    """Whether a publish step should be offered."""
    return bool(eligible_results(snapshot))


def is_closeable(snapshot: Snapshot) -> bool:
    """
    A batch may close once every completed item is published.

    Any registrationFailed (or not yet attempted) completed item keeps it open.
    """
    for entry in snapshot.values():
        if entry.is_completed and entry.status.result is not None:
            if not entry.registration.is_published:
                return False
    return True


class RegistrationCoordinator:
    """
    Publishes completed artifacts.

    Usage:
        coordinator = RegistrationCoordinator(relay, store=run.store)
        summary = await coordinator.register_all(eligible_results(run.snapshot()))
        if not summary.closeable:
            await coordinator.register_one(result, target_id=summary.failed_targets[0])
    """

    def __init__(self, relay, store: Optional[StatusStore] = None):
        """
        Args:
            relay: PolicyTableRelayClient (or compatible)
            store: Optional status store that receives RegistrationObserved events
        """
        self.relay = relay
        self.store = store
        self._published: Set[str] = set()
        self._locks = KeyedLock()

    def is_published(self, artifact_id: str) -> bool:
        return artifact_id in self._published

    async def register_one(self, result: JobResult, target_id: Optional[str] = None) -> RegistrationState:
        """
        Publish one artifact. Never raises for publish failures.

        Returns:
            registered, alreadyRegistered, or registrationFailed(reason)
        """
        artifact_id = result.artifact_id
        async with self._locks.hold(artifact_id):
            if artifact_id in self._published:
                state = ALREADY_REGISTERED
            else:
                state = await self._publish(artifact_id)
                if state.is_published:
                    self._published.add(artifact_id)

        if self.store is not None and target_id is not None:
            self.store.dispatch(RegistrationObserved(target_id, state))
        return state

    async def register_all(self, results: Mapping[str, JobResult]) -> RegistrationSummary:
        """
        Publish every item independently and aggregate the outcomes.

        Args:
            results: target id -> completed job result
        """
        keys = list(results.keys())
        states = await asyncio.gather(*(
            self.register_one(results[key], target_id=key) for key in keys
        ))

        summary = RegistrationSummary()
        for key, state in zip(keys, states):
            summary.outcomes[key] = state
            if state.outcome is RegistrationOutcome.REGISTERED:
                summary.registered += 1
            elif state.outcome is RegistrationOutcome.ALREADY_REGISTERED:
                summary.already_registered += 1
            else:
                summary.failed += 1

        if summary.failed:
            logger.warning(f"Registration: {summary.failed}/{summary.total} failed")
        logger.info(
            f"Registered {summary.registered} new, "
            f"{summary.already_registered} already published, {summary.failed} failed"
        )
        return summary

    async def _publish(self, artifact_id: str) -> RegistrationState:
        try:
            response = await self.relay.register(artifact_id)
        except PolicyJobError as e:
            logger.warning(f"Registration of {artifact_id} failed: {e}")
            return RegistrationState.failed(str(e))

        if response.already_registered:
            logger.info(f"Artifact {artifact_id} was already registered")
            return ALREADY_REGISTERED
        logger.info(f"Artifact {artifact_id} registered")
        return REGISTERED
