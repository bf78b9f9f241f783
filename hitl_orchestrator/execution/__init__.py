"""
Execution Layer - Workflow Orchestration and Collaborators

Defines the WorkflowStateMachine (transition table + history), the
WorkflowEngine that drives tasks through it, the planning and execution
collaborator contracts, and the pre-execution validator and quality gates.
"""

from hitl_orchestrator.execution.engine import WorkflowEngine
from hitl_orchestrator.execution.executor import ExecutionAgent, SimulatedExecutionAgent
from hitl_orchestrator.execution.planner import LLMPlanningAgent, PlanningAgent
from hitl_orchestrator.execution.pre_validation import (
    ValidationIssue,
    ValidationReport,
    format_validation_result,
    validate_plan,
)
from hitl_orchestrator.execution.quality_gates import QualityGateEvaluator
from hitl_orchestrator.execution.state_machine import (
    WorkflowStateMachine,
    get_state_description,
    is_terminal_state,
    requires_human_input,
    task_status_to_workflow_state,
    workflow_state_to_task_status,
)

__all__ = [
    "ExecutionAgent",
    "LLMPlanningAgent",
    "PlanningAgent",
    "QualityGateEvaluator",
    "SimulatedExecutionAgent",
    "ValidationIssue",
    "ValidationReport",
    "WorkflowEngine",
    "WorkflowStateMachine",
    "format_validation_result",
    "get_state_description",
    "is_terminal_state",
    "requires_human_input",
    "task_status_to_workflow_state",
    "validate_plan",
    "workflow_state_to_task_status",
]
