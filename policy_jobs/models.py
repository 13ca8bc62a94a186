"""
Policy table job definitions.

Defines job requests, observed job status and registration state.
Statuses are immutable snapshots: a newer observation replaces the
previous one wholesale through merge_status().
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional

from .errors import RemoteRenderFailure, ValidationError


class JobState(Enum):
    """Remote job status states"""
    QUEUED = "queued"             # Waiting for the relay
    PROCESSING = "processing"     # Rendering
    COMPLETED = "completed"       # Artifact available
    FAILED = "failed"             # Render failed or job could not be created

    @property
    def rank(self) -> int:
        return _STATE_RANK[self]

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)

    @classmethod
    def parse(cls, value: Optional[str]) -> "JobState":
        """Parse a wire value; unknown or missing values count as queued."""
        try:
            return cls((value or "").lower())
        except ValueError:
            return cls.QUEUED


_STATE_RANK = {
    JobState.QUEUED: 0,
    JobState.PROCESSING: 1,
    JobState.COMPLETED: 2,
    JobState.FAILED: 2,
}


@dataclass(frozen=True)
class QueueInfo:
    """Relay queue metrics for a waiting job"""
    queue_position: Optional[int] = None
    queue_length: Optional[int] = None
    estimated_wait_seconds: Optional[float] = None
    queued_user_count: Optional[int] = None
    is_processing: bool = False


@dataclass(frozen=True)
class RelayHealth:
    """Snapshot of the relay's availability"""
    available: bool = True
    last_response_time_ms: Optional[float] = None
    last_error: Optional[str] = None


@dataclass(frozen=True)
class JobResult:
    """Rendered artifact produced by a completed job"""
    artifact_id: str
    image_url: str = ""
    spreadsheet_url: Optional[str] = None


@dataclass(frozen=True)
class JobStatus:
    """
    One observation of a remote job.

    job_id is None only for a status synthesized locally when a submission
    never produced a remote job.
    """
    job_id: Optional[str]
    state: JobState = JobState.QUEUED
    progress: int = 0
    message: str = ""
    queue_info: Optional[QueueInfo] = None
    relay_health: Optional[RelayHealth] = None
    result: Optional[JobResult] = None
    error: Optional[str] = None
    failure_reason: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "progress", max(0, min(100, int(self.progress or 0))))

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def queue_position(self) -> Optional[int]:
        return self.queue_info.queue_position if self.queue_info else None

    @classmethod
    def submission_failed(cls, message: str, reason: Optional[str] = None) -> "JobStatus":
        """Failed status for a target whose job could not be created."""
        return cls(
            job_id=None,
            state=JobState.FAILED,
            message=message,
            error=message,
            failure_reason=reason,
        )

    def raise_for_failure(self) -> "JobStatus":
        """Raise RemoteRenderFailure if the job failed, else return self."""
        if self.state is JobState.FAILED:
            raise RemoteRenderFailure(
                self.job_id,
                self.error or self.message or "Render failed",
                reason=self.failure_reason,
            )
        return self

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for display and logging"""
        data: Dict[str, Any] = {
            "job_id": self.job_id,
            "status": self.state.value,
            "progress": self.progress,
            "message": self.message,
        }
        if self.queue_info:
            data["queue_info"] = {
                "queue_position": self.queue_info.queue_position,
                "queue_length": self.queue_info.queue_length,
                "estimated_wait_seconds": self.queue_info.estimated_wait_seconds,
                "queued_user_count": self.queue_info.queued_user_count,
            }
        if self.relay_health:
            data["relay_health"] = {
                "available": self.relay_health.available,
                "last_response_time_ms": self.relay_health.last_response_time_ms,
                "last_error": self.relay_health.last_error,
            }
        if self.result:
            data["result"] = {
                "artifact_id": self.result.artifact_id,
                "image_url": self.result.image_url,
                "spreadsheet_url": self.result.spreadsheet_url,
            }
        if self.error:
            data["error"] = self.error
        if self.failure_reason:
            data["failure_reason"] = self.failure_reason
        return data


def merge_status(current: Optional[JobStatus], incoming: JobStatus) -> JobStatus:
    """
    Merge a new observation into the current view of a job.

    The incoming status replaces the current one wholesale, except that the
    same job never moves backward and a terminal status is frozen. A status
    for a different job id (a retry) always replaces the current one.
    """
    if current is None or current.job_id != incoming.job_id:
        return incoming
    if current.is_terminal:
        return current
    if incoming.state.rank < current.state.rank:
        return current
    return incoming


@dataclass(frozen=True)
class JobRequest:
    """A generation request for one target. Immutable once submitted."""
    target_id: str
    apply_date_text: str
    apply_content_text: str
    access_group_ids: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self):
        object.__setattr__(self, "access_group_ids", frozenset(self.access_group_ids))

    def validate(self) -> "JobRequest":
        """Raise ValidationError if the request may not be submitted."""
        if not self.target_id or not str(self.target_id).strip():
            raise ValidationError("Target id is required", field="target_id")
        if not self.apply_date_text or not self.apply_date_text.strip():
            raise ValidationError("Apply date is required", field="apply_date_text")
        if not self.apply_content_text or not self.apply_content_text.strip():
            raise ValidationError("Apply content is required", field="apply_content_text")
        if not self.access_group_ids:
            raise ValidationError("At least one access group is required", field="access_group_ids")
        return self

    def with_groups(self, group_ids: Iterable[str]) -> "JobRequest":
        return replace(self, access_group_ids=frozenset(group_ids))

    def to_payload(self) -> Dict[str, Any]:
        """Wire payload for POST /generate"""
        return {
            "targetId": self.target_id,
            "applyDate": self.apply_date_text,
            "applyContent": self.apply_content_text,
            "accessGroupIds": sorted(self.access_group_ids),
        }


class RegistrationOutcome(Enum):
    """Publication state of a completed artifact"""
    UNREGISTERED = "unregistered"
    REGISTERED = "registered"
    ALREADY_REGISTERED = "alreadyRegistered"
    REGISTRATION_FAILED = "registrationFailed"

    @property
    def is_published(self) -> bool:
        return self in (RegistrationOutcome.REGISTERED, RegistrationOutcome.ALREADY_REGISTERED)


@dataclass(frozen=True)
class RegistrationState:
    outcome: RegistrationOutcome = RegistrationOutcome.UNREGISTERED
    reason: Optional[str] = None

    @property
    def is_published(self) -> bool:
        return self.outcome.is_published

    @classmethod
    def failed(cls, reason: str) -> "RegistrationState":
        return cls(RegistrationOutcome.REGISTRATION_FAILED, reason)


UNREGISTERED = RegistrationState()
REGISTERED = RegistrationState(RegistrationOutcome.REGISTERED)
ALREADY_REGISTERED = RegistrationState(RegistrationOutcome.ALREADY_REGISTERED)
