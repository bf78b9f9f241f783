"""
Pytest configuration for HITL Orchestrator tests.

This module provides:
1. Factories for Tasks, Plans, Decisions and Results
2. In-memory stores and a wired WorkflowEngine
3. Fake collaborators (LLM provider, planning agent)
"""

from typing import List, Optional, Sequence

import pytest

from hitl_orchestrator.domain.models import (
    AgentRole,
    Artifacts,
    Decision,
    DecisionCategory,
    ExecutionMode,
    Plan,
    PlanStep,
    Proposal,
    Result,
    ResultMetadata,
    ResultStatus,
    StepError,
    StepResult,
    StepStatus,
    StepValidation,
    StepValidationOutcome,
    SuiteSummary,
    Task,
    TaskConstraints,
    TaskContext,
    TaskType,
)
from hitl_orchestrator.execution.engine import WorkflowEngine
from hitl_orchestrator.execution.executor import SimulatedExecutionAgent
from hitl_orchestrator.execution.planner import PlanningAgent
from hitl_orchestrator.execution.state_machine import WorkflowStateMachine
from hitl_orchestrator.llm.interface import LLMProvider
from hitl_orchestrator.repositories.decision import InMemoryDecisionRepository
from hitl_orchestrator.repositories.pattern import InMemoryPatternRepository
from hitl_orchestrator.repositories.plan import InMemoryPlanRepository
from hitl_orchestrator.repositories.result import InMemoryResultRepository
from hitl_orchestrator.repositories.task import InMemoryTaskRepository


# -----------------------------------------------------------------------------
# Factories
# -----------------------------------------------------------------------------
def make_task(task_id: str = "task-001", max_duration: int = 240, **overrides) -> Task:
    data = dict(
        id=task_id,
        type=TaskType.FEATURE,
        description="Add rate limiting to the public API",
        context=TaskContext(
            repository="acme/api",
            branch="main",
            files=["src/api/limits.py"],
        ),
        constraints=TaskConstraints(max_duration=max_duration),
    )
    data.update(overrides)
    return Task(**data)


def make_step(
    step_id: str = "step-001",
    dependencies: Sequence[str] = (),
    command: str = "pytest tests/ -q",
    success_criteria: str = "All tests pass",
    outputs: Sequence[str] = (),
) -> PlanStep:
    return PlanStep(
        id=step_id,
        agent=AgentRole.DEVELOPER,
        action=f"Implement the change for {step_id}",
        outputs=list(outputs),
        validation=StepValidation(command=command, success_criteria=success_criteria),
        dependencies=list(dependencies),
    )


def make_plan(
    plan_id: str = "plan-001",
    task_id: str = "task-001",
    steps: Optional[List[PlanStep]] = None,
    estimated_duration: int = 120,
    approach: str = "Incremental rollout",
) -> Plan:
    return Plan(
        id=plan_id,
        task_id=task_id,
        approach=approach,
        reasoning="Small reviewable changes behind a feature flag",
        steps=steps or [make_step("step-001"), make_step("step-002", dependencies=["step-001"])],
        estimated_duration=estimated_duration,
    )


def make_decision(
    task_id: str = "task-001",
    plan_id: Optional[str] = "plan-001",
    selected_option: int = 0,
    rationale: str = "Lowest risk option for this sprint",
    decision_id: str = "decision-001",
) -> Decision:
    return Decision(
        id=decision_id,
        task_id=task_id,
        plan_id=plan_id,
        category=DecisionCategory.ARCHITECTURE,
        proposals=[
            Proposal(approach="Incremental rollout", reasoning="Small steps"),
            Proposal(approach="Big bang rewrite", reasoning="One large change"),
        ],
        selected_option=selected_option,
        rationale=rationale,
    )


def make_step_result(
    step_id: str = "step-001",
    status: StepStatus = StepStatus.SUCCESS,
    output: str = "ok",
    error: Optional[str] = None,
) -> StepResult:
    return StepResult(
        id=step_id,
        status=status,
        duration=5,
        validation=StepValidationOutcome(
            passed=status == StepStatus.SUCCESS,
            command="pytest -q",
            output=output,
            exit_code=0 if status == StepStatus.SUCCESS else 1,
        ),
        error=StepError(message=error) if error else None,
    )


def make_result(
    result_id: str = "result-001",
    task_id: str = "task-001",
    plan_id: str = "plan-001",
    steps: Optional[List[StepResult]] = None,
    coverage: Optional[float] = None,
    mode: ExecutionMode = ExecutionMode.SIMULATED,
    status: ResultStatus = ResultStatus.SUCCESS,
) -> Result:
    return Result(
        id=result_id,
        plan_id=plan_id,
        task_id=task_id,
        status=status,
        steps=steps or [make_step_result("step-001"), make_step_result("step-002")],
        duration=10,
        artifacts=Artifacts(test_results=SuiteSummary(passed=2, failed=0, coverage=coverage)),
        metadata=ResultMetadata(execution_mode=mode),
    )


# -----------------------------------------------------------------------------
# Fake Collaborators
# -----------------------------------------------------------------------------
class FakeLLMProvider(LLMProvider):
    """Returns a canned structured response (or raises) and records every call."""

    def __init__(self, response=None, error: Optional[Exception] = None):
        self.response = response
        self.error = error
        self.calls = []

    async def generate_structured_output(self, messages, response_model, temperature=0.0):
        self.calls.append(
            {"messages": messages, "response_model": response_model, "temperature": temperature}
        )
        if self.error:
            raise self.error
        return self.response


class StubPlanner(PlanningAgent):
    """Produces `count` valid plans per call, with ids unique across calls."""

    def __init__(self, count: int = 2):
        self.count = count
        self.calls = []

    async def generate_plans(self, task, feedback=None):
        self.calls.append({"task_id": task.id, "feedback": feedback})
        round_number = len(self.calls)
        return [
            make_plan(
                plan_id=f"plan-{round_number}-{index}",
                task_id=task.id,
                approach=f"Approach {index}",
            )
            for index in range(1, self.count + 1)
        ]


# -----------------------------------------------------------------------------
# Fixtures
# -----------------------------------------------------------------------------
@pytest.fixture
def state_machine():
    return WorkflowStateMachine()


@pytest.fixture
def task_repo():
    return InMemoryTaskRepository()


@pytest.fixture
def plan_repo():
    return InMemoryPlanRepository()


@pytest.fixture
def decision_repo():
    return InMemoryDecisionRepository()


@pytest.fixture
def result_repo():
    return InMemoryResultRepository()


@pytest.fixture
def pattern_repo():
    return InMemoryPatternRepository()


@pytest.fixture
def planner():
    return StubPlanner()


@pytest.fixture
def executor():
    return SimulatedExecutionAgent(step_delay_ms=0)


@pytest.fixture
def engine(
    state_machine, task_repo, plan_repo, decision_repo, result_repo, pattern_repo, planner, executor
):
    return WorkflowEngine(
        state_machine=state_machine,
        task_repository=task_repo,
        plan_repository=plan_repo,
        decision_repository=decision_repo,
        result_repository=result_repo,
        planner=planner,
        executor=executor,
        pattern_repository=pattern_repo,
    )
