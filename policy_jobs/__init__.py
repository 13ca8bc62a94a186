"""
Policy table job client.

Submits policy table render jobs to the relay, polls them to completion,
sequences multi-target batches and publishes the rendered artifacts.
"""

__version__ = "1.0.0"

from .errors import (
    PolicyJobError,
    ValidationError,
    TransientTransportError,
    MalformedResponseError,
    ConflictError,
    RelayRequestError,
    RemoteRenderFailure,
    RegistrationError,
)
from .models import (
    JobState,
    JobStatus,
    JobRequest,
    JobResult,
    QueueInfo,
    RelayHealth,
    RegistrationOutcome,
    RegistrationState,
    merge_status,
)
from .relay_client import PolicyTableRelayClient
from .submitter import JobSubmitter, Submission
from .poller import StatusPoller, PollerConfig, PollerState
from .batch import BatchOrchestrator, BatchRun, BatchSummary, OrchestratorConfig, SingleFlightLane, StatusStore
from .registration import RegistrationCoordinator, RegistrationSummary, eligible_results, is_closeable
from .preferences import GroupPreferenceStore

__all__ = [
    # Errors
    'PolicyJobError',
    'ValidationError',
    'TransientTransportError',
    'MalformedResponseError',
    'ConflictError',
    'RelayRequestError',
    'RemoteRenderFailure',
    'RegistrationError',
    # Models
    'JobState',
    'JobStatus',
    'JobRequest',
    'JobResult',
    'QueueInfo',
    'RelayHealth',
    'RegistrationOutcome',
    'RegistrationState',
    'merge_status',
    # Relay
    'PolicyTableRelayClient',
    # Jobs
    'JobSubmitter',
    'Submission',
    'StatusPoller',
    'PollerConfig',
    'PollerState',
    # Batch
    'BatchOrchestrator',
    'BatchRun',
    'BatchSummary',
    'OrchestratorConfig',
    'SingleFlightLane',
    'StatusStore',
    # Registration
    'RegistrationCoordinator',
    'RegistrationSummary',
    'eligible_results',
    'is_closeable',
    # Preferences
    'GroupPreferenceStore',
]
