"""
Relay wire models

Pydantic models for the policy table generation endpoints. Field aliases
match the relay's JSON; to_domain() converts to the client's dataclasses.
"""

from typing import Optional

from pydantic import BaseModel, Field

from .models import JobResult, JobState, JobStatus, QueueInfo, RelayHealth


class _WireModel(BaseModel):
    class Config:
        populate_by_name = True
        extra = "ignore"


class RelayStatusPayload(_WireModel):
    """relayStatus block"""
    is_available: bool = Field(default=True, alias="isAvailable")
    last_response_time: Optional[float] = Field(default=None, alias="lastResponseTime")
    last_error: Optional[str] = Field(default=None, alias="lastError")

    def to_domain(self) -> RelayHealth:
        return RelayHealth(
            available=self.is_available,
            last_response_time_ms=self.last_response_time,
            last_error=self.last_error,
        )


class QueueInfoPayload(_WireModel):
    """queueInfo block"""
    queue_position: Optional[int] = Field(default=None, alias="queuePosition")
    queue_length: Optional[int] = Field(default=None, alias="queueLength")
    estimated_wait_time: Optional[float] = Field(default=None, alias="estimatedWaitTime")
    is_processing: bool = Field(default=False, alias="isProcessing")
    queued_user_count: Optional[int] = Field(default=None, alias="queuedUserCount")

    def to_domain(self) -> QueueInfo:
        return QueueInfo(
            queue_position=self.queue_position,
            queue_length=self.queue_length,
            estimated_wait_seconds=self.estimated_wait_time,
            queued_user_count=self.queued_user_count,
            is_processing=self.is_processing,
        )


class ResultPayload(_WireModel):
    """result block of a completed job"""
    id: str
    image_url: Optional[str] = Field(default="", alias="imageUrl")
    excel_url: Optional[str] = Field(default=None, alias="excelUrl")

    def to_domain(self) -> JobResult:
        return JobResult(
            artifact_id=self.id,
            image_url=self.image_url or "",
            spreadsheet_url=self.excel_url,
        )


class GenerateResponse(_WireModel):
    """
    200 body of POST /generate, also used for the 409 body.

    Queue metadata is flat here, unlike the status endpoint.
    """
    job_id: Optional[str] = Field(default=None, alias="jobId")
    existing_job_id: Optional[str] = Field(default=None, alias="existingJobId")
    status: Optional[str] = None
    message: Optional[str] = ""
    error: Optional[str] = None
    queue_position: Optional[int] = Field(default=None, alias="queuePosition")
    queue_length: Optional[int] = Field(default=None, alias="queueLength")
    estimated_wait_time: Optional[float] = Field(default=None, alias="estimatedWaitTime")
    queued_user_count: Optional[int] = Field(default=None, alias="queuedUserCount")
    relay_status: Optional[RelayStatusPayload] = Field(default=None, alias="relayStatus")

    def _queue_info(self) -> Optional[QueueInfo]:
        if (
            self.queue_position is None
            and self.queue_length is None
            and self.estimated_wait_time is None
            and self.queued_user_count is None
        ):
            return None
        return QueueInfo(
            queue_position=self.queue_position,
            queue_length=self.queue_length,
            estimated_wait_seconds=self.estimated_wait_time,
            queued_user_count=self.queued_user_count,
        )

    def to_domain(self, job_id: Optional[str] = None) -> JobStatus:
        """Initial status of the submitted (or adopted) job."""
        return JobStatus(
            job_id=job_id or self.job_id or self.existing_job_id,
            state=JobState.parse(self.status),
            message=self.message or "",
            queue_info=self._queue_info(),
            relay_health=self.relay_status.to_domain() if self.relay_status else None,
        )


class StatusResponse(_WireModel):
    """Body of GET /generate/{jobId}/status"""
    status: Optional[str] = None
    progress: Optional[float] = 0
    message: Optional[str] = ""
    result: Optional[ResultPayload] = None
    error: Optional[str] = None
    failure_reason: Optional[str] = Field(default=None, alias="failureReason")
    queue_info: Optional[QueueInfoPayload] = Field(default=None, alias="queueInfo")
    relay_status: Optional[RelayStatusPayload] = Field(default=None, alias="relayStatus")

    def to_domain(self, job_id: str) -> JobStatus:
        return JobStatus(
            job_id=job_id,
            state=JobState.parse(self.status),
            progress=int(self.progress or 0),
            message=self.message or "",
            queue_info=self.queue_info.to_domain() if self.queue_info else None,
            relay_health=self.relay_status.to_domain() if self.relay_status else None,
            result=self.result.to_domain() if self.result else None,
            error=self.error,
            failure_reason=self.failure_reason,
        )


class RegisterResponse(_WireModel):
    """Body of POST /{artifactId}/register"""
    already_registered: bool = Field(default=False, alias="alreadyRegistered")
    success: Optional[bool] = None
    message: Optional[str] = ""
    error: Optional[str] = None
