"""
State Layer - Runtime Data Models

Defines the workflow states and actions, the transition history, and the
records handed back by the stores.
"""

from hitl_orchestrator.state.models import (
    ApprovalObservation,
    ApprovalPattern,
    DecisionRecord,
    PatternStats,
    PlanRecord,
    PlanStatus,
    ResultRecord,
    TaskRecord,
    TaskStatus,
    TransitionAction,
    TransitionContext,
    TransitionErrorKind,
    TransitionResult,
    WorkflowEvent,
    WorkflowOutcome,
    WorkflowState,
)

__all__ = [
    "ApprovalObservation",
    "ApprovalPattern",
    "DecisionRecord",
    "PatternStats",
    "PlanRecord",
    "PlanStatus",
    "ResultRecord",
    "TaskRecord",
    "TaskStatus",
    "TransitionAction",
    "TransitionContext",
    "TransitionErrorKind",
    "TransitionResult",
    "WorkflowEvent",
    "WorkflowOutcome",
    "WorkflowState",
]
