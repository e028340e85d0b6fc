"""Engine module for scheduling and composing the upload queue."""

from evidence_sync.engine.orchestrator import SyncOrchestrator
from evidence_sync.engine.scheduler import QueueScheduler

__all__ = ["QueueScheduler", "SyncOrchestrator"]
