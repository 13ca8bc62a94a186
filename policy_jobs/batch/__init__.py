"""
Batch processing sub-modules.

Sequencing of multi-target runs through the single-flight lane and the
keyed status store that records every target's outcome.
"""

from .single_flight import SingleFlightLane
from .status_store import (
    StatusStore,
    TargetEntry,
    StatusObserved,
    RegistrationObserved,
    EntryReset,
    reduce_entry,
)
from .orchestrator import BatchOrchestrator, BatchRun, BatchSummary, OrchestratorConfig

__all__ = [
    # Lane
    'SingleFlightLane',
    # Status store
    'StatusStore',
    'TargetEntry',
    'StatusObserved',
    'RegistrationObserved',
    'EntryReset',
    'reduce_entry',
    # Orchestrator
    'BatchOrchestrator',
    'BatchRun',
    'BatchSummary',
    'OrchestratorConfig',
]
