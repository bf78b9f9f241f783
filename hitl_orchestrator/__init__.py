"""
HITL Orchestrator

A human-in-the-loop task orchestration core: an explicit state machine for
task transitions and a workflow engine that drives tasks through AI planning,
human decision, execution and verification while keeping durable status in
step with the state machine.
"""

from hitl_orchestrator.domain import (
    Decision,
    Plan,
    PlanStep,
    Result,
    StepResult,
    Task,
)
from hitl_orchestrator.state import (
    TaskStatus,
    TransitionAction,
    TransitionContext,
    TransitionErrorKind,
    TransitionResult,
    WorkflowEvent,
    WorkflowOutcome,
    WorkflowState,
)
from hitl_orchestrator.execution import (
    QualityGateEvaluator,
    WorkflowEngine,
    WorkflowStateMachine,
    validate_plan,
)

__all__ = [
    # Domain Layer
    "Decision",
    "Plan",
    "PlanStep",
    "Result",
    "StepResult",
    "Task",
    # State Layer
    "TaskStatus",
    "TransitionAction",
    "TransitionContext",
    "TransitionErrorKind",
    "TransitionResult",
    "WorkflowEvent",
    "WorkflowOutcome",
    "WorkflowState",
    # Execution Layer
    "QualityGateEvaluator",
    "WorkflowEngine",
    "WorkflowStateMachine",
    "validate_plan",
]
