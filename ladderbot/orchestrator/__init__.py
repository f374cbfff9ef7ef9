"""
Orchestrator package: the cycle state machine and its task scope.
"""

from ladderbot.orchestrator.cycle_orchestrator import (
    CycleOrchestrator,
    CyclePhase,
    CycleState,
    ExitReason,
    PlacementResult,
)
from ladderbot.orchestrator.task_scope import TaskScope

__all__ = [
    "CycleOrchestrator",
    "CyclePhase",
    "CycleState",
    "ExitReason",
    "PlacementResult",
    "TaskScope",
]
