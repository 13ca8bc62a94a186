"""
Policy table job errors.

Exception hierarchy for submission, polling and publication.
"""

from typing import Any, Dict, Optional


class PolicyJobError(Exception):
    """Base exception for policy table job errors"""
    pass


class ValidationError(PolicyJobError):
    """Request rejected locally before submission (missing date, content or groups)"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class TransientTransportError(PolicyJobError):
    """Timeout, connection failure, 5xx or 429 from the relay"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(TransientTransportError):
    """Relay answered 2xx with a body that does not match the expected shape"""
    pass


class ConflictError(PolicyJobError):
    """
    Duplicate submission: an equivalent job is already in flight.

    Never surfaced to callers of JobSubmitter; the existing job is adopted.
    """

    def __init__(self, existing_job_id: str, payload: Optional[Dict[str, Any]] = None):
        super().__init__(f"Job already in flight: {existing_job_id}")
        self.existing_job_id = existing_job_id
        self.payload = payload or {}


class RelayRequestError(PolicyJobError):
    """Non-retryable rejection from the relay (4xx other than 409/429)"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RemoteRenderFailure(PolicyJobError):
    """A job reached `failed` in the rendering pipeline"""

    def __init__(self, job_id: Optional[str], message: str, reason: Optional[str] = None):
        super().__init__(message)
        self.job_id = job_id
        self.reason = reason


class RegistrationError(PolicyJobError):
    """Publishing a rendered artifact failed"""

    def __init__(self, artifact_id: str, message: str):
        super().__init__(message)
        self.artifact_id = artifact_id
