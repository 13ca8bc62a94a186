"""
Keyed status store for batch runs.

Every change goes through dispatch(), which runs the pure reducer
reduce_entry() on exactly one target's entry. Callbacks from concurrent
pollers therefore never overwrite each other's entries.
"""

from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Union

from config.logging_config import get_logger

from ..models import (
    JobState,
    JobStatus,
    RegistrationState,
    UNREGISTERED,
    merge_status,
)

logger = get_logger(__name__)


@dataclass(frozen=True)
class TargetEntry:
    """Recorded state of one target in a batch."""
    target_id: str
    status: Optional[JobStatus] = None
    registration: RegistrationState = UNREGISTERED

    @property
    def state(self) -> Optional[JobState]:
        return self.status.state if self.status else None

    @property
    def is_failed(self) -> bool:
        return self.state is JobState.FAILED

    @property
    def is_completed(self) -> bool:
        return self.state is JobState.COMPLETED

    @property
    def is_terminal(self) -> bool:
        return self.status is not None and self.status.is_terminal


@dataclass(frozen=True)
class StatusObserved:
    target_id: str
    status: JobStatus


@dataclass(frozen=True)
class RegistrationObserved:
    target_id: str
    registration: RegistrationState


@dataclass(frozen=True)
class EntryReset:
    target_id: str


StoreEvent = Union[StatusObserved, RegistrationObserved, EntryReset]
Snapshot = Mapping[str, TargetEntry]
StoreListener = Callable[[Snapshot], None]


def reduce_entry(entry: Optional[TargetEntry], event: StoreEvent) -> TargetEntry:
    """
    Apply one event to one entry and return the new entry.

    Raises:
        ValueError: registration observed for a job that is not completed
    """
    if entry is None:
        entry = TargetEntry(target_id=event.target_id)

    if isinstance(event, EntryReset):
        return TargetEntry(target_id=entry.target_id)

    if isinstance(event, StatusObserved):
        merged = merge_status(entry.status, event.status)
        if merged is entry.status:
            return entry
        registration = entry.registration
        if entry.status is None or merged.job_id != entry.status.job_id:
            registration = UNREGISTERED
        return replace(entry, status=merged, registration=registration)

    if isinstance(event, RegistrationObserved):
        if not entry.is_completed:
            raise ValueError(
                f"Cannot record registration for {entry.target_id}: job is "
                f"{entry.state.value if entry.state else 'not submitted'}"
            )
        # Published is final; repeated attempts converge
        if entry.registration.is_published:
            return entry
        return replace(entry, registration=event.registration)

    raise TypeError(f"Unknown store event: {event!r}")


class StatusStore:
    """
    Aggregate status map for a batch, keyed by target id.

    Usage:
        store = StatusStore(["A", "B"])
        store.subscribe(render)
        store.dispatch(StatusObserved("A", status))
        store.snapshot()["A"].status
    """

    def __init__(self, target_ids: Iterable[str] = ()):
        self._entries: Dict[str, TargetEntry] = {
            target_id: TargetEntry(target_id=target_id) for target_id in target_ids
        }
        self._listeners: List[StoreListener] = []

    def subscribe(self, listener: StoreListener):
        """Add listener called with the full snapshot after every change."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: StoreListener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    def dispatch(self, event: StoreEvent) -> TargetEntry:
        """Reduce one event into its target's entry and notify listeners."""
        current = self._entries.get(event.target_id)
        updated = reduce_entry(current, event)
        if updated is not current:
            entries = dict(self._entries)
            entries[event.target_id] = updated
            self._entries = entries
            logger.debug(
                f"Store {event.target_id}: "
                f"{updated.state.value if updated.state else '-'} "
                f"/ {updated.registration.outcome.value}"
            )
        self._notify()
        return updated

    def get(self, target_id: str) -> Optional[TargetEntry]:
        return self._entries.get(target_id)

    def snapshot(self) -> Dict[str, TargetEntry]:
        """Copy of the current map; later dispatches do not mutate it."""
        return dict(self._entries)

    def __contains__(self, target_id: str) -> bool:
        return target_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def _notify(self):
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Status listener error: {e}")
