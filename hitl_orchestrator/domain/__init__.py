"""
Domain Layer - Work Item Models

Defines the entities that move through the orchestration workflow:
Tasks, Plans, Decisions and Results.
"""

from hitl_orchestrator.domain.models import (
    AgentRole,
    Artifacts,
    Decision,
    DecisionCategory,
    ExecutionMode,
    Plan,
    PlanMetadata,
    PlanStep,
    Priority,
    Proposal,
    QualityGateCheck,
    QualityGates,
    Result,
    ResultMetadata,
    ResultStatus,
    Risk,
    RiskSeverity,
    StepError,
    StepResult,
    StepStatus,
    StepValidation,
    StepValidationOutcome,
    SuiteSummary,
    Task,
    TaskConstraints,
    TaskContext,
    TaskMetadata,
    TaskType,
    Tradeoffs,
)

__all__ = [
    "AgentRole",
    "Artifacts",
    "Decision",
    "DecisionCategory",
    "ExecutionMode",
    "Plan",
    "PlanMetadata",
    "PlanStep",
    "Priority",
    "Proposal",
    "QualityGateCheck",
    "QualityGates",
    "Result",
    "ResultMetadata",
    "ResultStatus",
    "Risk",
    "RiskSeverity",
    "StepError",
    "StepResult",
    "StepStatus",
    "StepValidation",
    "StepValidationOutcome",
    "SuiteSummary",
    "Task",
    "TaskConstraints",
    "TaskContext",
    "TaskMetadata",
    "TaskType",
    "Tradeoffs",
]
