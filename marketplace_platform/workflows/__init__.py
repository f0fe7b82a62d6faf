"""Task workflow engine: lifecycle, assignment, revisions, fees and workload."""

from .state_machine import TRANSITIONS, can_transition, allowed_transitions, transition, release
from .fee_calculator import FeeSplit, compute_fees
from .revision_ledger import can_request_revision, increment_revision
from .workload import WorkloadTracker
from .assignment import AssignmentMatcher, TaskAssigner, MatchResult
from .side_effects import EffectDispatcher, EffectOutcome, RecordingSink
from .orchestrator import WorkflowOrchestrator, OperationResult

__all__ = [
    "TRANSITIONS",
    "can_transition",
    "allowed_transitions",
    "transition",
    "release",
    "FeeSplit",
    "compute_fees",
    "can_request_revision",
    "increment_revision",
    "WorkloadTracker",
    "AssignmentMatcher",
    "TaskAssigner",
    "MatchResult",
    "EffectDispatcher",
    "EffectOutcome",
    "RecordingSink",
    "WorkflowOrchestrator",
    "OperationResult",
]
