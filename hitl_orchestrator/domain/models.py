"""
Domain Layer - Work Item Models

This module defines the entities that flow through the orchestration workflow:
the Task a human asks for, the Plans (proposals) the planning agent offers, the
Decision a human records, and the Result of executing an approved Plan.
These models are validated on construction so that malformed data never reaches
the WorkflowEngine.
"""

from datetime import datetime
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

SEMVER_PATTERN = r"^\d+\.\d+\.\d+$"
TASK_ID_PATTERN = r"^task-[a-z0-9-]+$"
PLAN_ID_PATTERN = r"^plan-[a-z0-9-]+$"
STEP_ID_PATTERN = r"^step-[0-9]{3}$"


# =============================================================================
# Task
# =============================================================================


class TaskType(str, Enum):
    FEATURE = "feature"
    BUGFIX = "bugfix"
    REFACTOR = "refactor"
    DOCS = "docs"
    TEST = "test"
    INFRA = "infra"


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class TaskContext(BaseModel):
    """
    Where the work happens.

    Attributes:
        repository: Repository identifier in "owner/name" form.
        branch: Branch the work is done on.
        files: Files the task is expected to touch.
        dependencies: Ids of tasks that must be finished first.
    """
    repository: str = Field(..., pattern=r"^[a-zA-Z0-9_.-]+/[a-zA-Z0-9_.-]+$")
    branch: str = Field(..., pattern=r"^[a-zA-Z0-9/_.-]+$")
    files: List[str] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)


class TaskConstraints(BaseModel):
    """
    Limits the human puts on the work.

    Attributes:
        max_duration: Upper bound for a plan's estimated duration, in minutes.
        requires_approval: Whether a human must approve the plan.
        breaking_changes_allowed: Whether the plan may break public contracts.
        test_coverage_min: Minimum acceptable coverage percentage.
    """
    max_duration: int = Field(..., ge=60, le=3600)
    requires_approval: bool = True
    breaking_changes_allowed: bool = False
    test_coverage_min: float = Field(80.0, ge=0, le=100)


class TaskMetadata(BaseModel):
    created_at: Optional[datetime] = None
    created_by: Optional[str] = None
    priority: Priority = Priority.MEDIUM
    labels: List[str] = Field(default_factory=list)


class Task(BaseModel):
    """
    A unit of work requested by a human.

    The Task itself is immutable once stored; only its durable status changes
    as the workflow progresses (see TaskRecord).
    """
    id: str = Field(..., pattern=TASK_ID_PATTERN)
    version: str = Field("1.0.0", pattern=SEMVER_PATTERN)
    type: TaskType
    description: str = Field(..., min_length=10, max_length=500)
    context: TaskContext
    constraints: TaskConstraints
    metadata: Optional[TaskMetadata] = None
    intent_statement: Optional[str] = Field(None, min_length=10, max_length=1000)


# =============================================================================
# Plan
# =============================================================================


class AgentRole(str, Enum):
    """The specialist responsible for carrying out a PlanStep."""
    ORCHESTRATOR = "orchestrator"
    ARCHITECT = "architect"
    DEVELOPER = "developer"
    DATABASE = "database"
    REVIEWER = "reviewer"
    TESTER = "tester"
    DEVOPS = "devops"
    DOCUMENTER = "documenter"


class RiskSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class StepValidation(BaseModel):
    """
    How to prove a step worked.

    Attributes:
        command: Shell command run after the step (e.g. "pytest -q").
        success_criteria: Human-readable description of a passing run.
    """
    command: str
    success_criteria: str


class PlanStep(BaseModel):
    id: str = Field(..., pattern=STEP_ID_PATTERN)
    agent: AgentRole
    action: str = Field(..., min_length=10, max_length=200)
    inputs: List[str] = Field(default_factory=list)
    outputs: List[str] = Field(default_factory=list)
    validation: StepValidation
    dependencies: List[str] = Field(default_factory=list)


class Risk(BaseModel):
    description: str = Field(..., min_length=10)
    severity: RiskSeverity
    mitigation: str = Field(..., min_length=10)


class PlanMetadata(BaseModel):
    created_at: Optional[datetime] = None
    approved: bool = False
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None


class Plan(BaseModel):
    """
    One candidate implementation path (a "proposal") for a Task.

    A Task may have many Plans; the one referenced by an approving Decision
    becomes the plan that gets executed.

    Attributes:
        approach: Short label for the strategy (e.g. "Incremental refactor").
        reasoning: Why the planning agent thinks this approach works.
        steps: Ordered steps. Dependencies reference other step ids.
        estimated_duration: Minutes. Never below 30.
    """
    id: str = Field(..., pattern=PLAN_ID_PATTERN)
    version: str = Field("1.0.0", pattern=SEMVER_PATTERN)
    task_id: str = Field(..., pattern=TASK_ID_PATTERN)
    approach: str
    reasoning: str
    steps: List[PlanStep] = Field(..., min_length=1)
    estimated_duration: int = Field(..., ge=30)
    risks: List[Risk] = Field(default_factory=list)
    metadata: Optional[PlanMetadata] = None


# =============================================================================
# Decision
# =============================================================================


class DecisionCategory(str, Enum):
    ARCHITECTURE = "architecture"
    UX = "ux"
    PERFORMANCE = "performance"
    SECURITY = "security"
    INTEGRATION = "integration"


class Tradeoffs(BaseModel):
    pros: List[str] = Field(default_factory=list)
    cons: List[str] = Field(default_factory=list)
    risks: List[str] = Field(default_factory=list)


class Proposal(BaseModel):
    """A proposal as it was presented to the human at decision time."""
    approach: str
    reasoning: str
    tradeoffs: Tradeoffs = Field(default_factory=Tradeoffs)


class Decision(BaseModel):
    """
    The immutable record of a human (or autopilot) choice.

    selected_option indexes into proposals; -1 means every proposal was
    rejected. An approval must name the concrete plan being approved.
    """
    id: str = Field(..., pattern=r"^decision-[a-z0-9-]+$")
    task_id: str = Field(..., pattern=TASK_ID_PATTERN)
    plan_id: Optional[str] = Field(None, pattern=PLAN_ID_PATTERN)
    category: DecisionCategory
    proposals: List[Proposal] = Field(..., min_length=1)
    selected_option: int = Field(..., ge=-1)
    rationale: str = Field(..., min_length=10)
    overrides: List[str] = Field(default_factory=list)
    confidence_score: Optional[float] = Field(None, ge=0, le=1)
    timestamp: Optional[datetime] = None

    @model_validator(mode="after")
    def check_selection(self) -> "Decision":
        if self.selected_option >= len(self.proposals):
            raise ValueError(
                f"selected_option {self.selected_option} is out of range for "
                f"{len(self.proposals)} proposals"
            )
        if self.selected_option >= 0 and not self.plan_id:
            raise ValueError("an approving decision must reference a plan_id")
        return self

    @property
    def is_approval(self) -> bool:
        return self.selected_option >= 0 and bool(self.plan_id)


# =============================================================================
# Result
# =============================================================================


class ResultStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILURE = "failure"
    CANCELLED = "cancelled"


class StepStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class ExecutionMode(str, Enum):
    SIMULATED = "simulated"
    REAL = "real"


class StepValidationOutcome(BaseModel):
    passed: bool
    command: Optional[str] = None
    output: str = ""
    exit_code: Optional[int] = None


class StepError(BaseModel):
    message: str
    stack_trace: Optional[str] = None
    recoverable: Optional[bool] = None


class StepResult(BaseModel):
    id: str = Field(..., pattern=STEP_ID_PATTERN)
    status: StepStatus
    duration: int = Field(..., ge=0)
    validation: StepValidationOutcome
    artifacts: List[str] = Field(default_factory=list)
    error: Optional[StepError] = None


class SuiteSummary(BaseModel):
    """Aggregate test-run numbers reported by the executor."""
    passed: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)
    coverage: Optional[float] = Field(None, ge=0, le=100)


class Artifacts(BaseModel):
    files_created: List[str] = Field(default_factory=list)
    files_modified: List[str] = Field(default_factory=list)
    files_deleted: List[str] = Field(default_factory=list)
    test_results: Optional[SuiteSummary] = None


class QualityGateCheck(BaseModel):
    name: str
    passed: bool
    details: Optional[str] = None


class QualityGates(BaseModel):
    passed: bool = False
    checks: List[QualityGateCheck] = Field(default_factory=list)


class ResultMetadata(BaseModel):
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    executed_by: Optional[str] = None
    environment: Optional[Literal["local", "ci", "production"]] = None
    commit_hash: Optional[str] = Field(None, pattern=r"^[a-f0-9]{40}$")
    logs: Optional[str] = None
    execution_mode: ExecutionMode = ExecutionMode.SIMULATED


class Result(BaseModel):
    """
    The record of one execution attempt of a Plan.

    quality_gates is filled in by the WorkflowEngine (not the executor) right
    before the Result is stored.
    """
    id: str = Field(..., pattern=r"^result-[a-z0-9-]+$")
    version: str = Field("1.0.0", pattern=SEMVER_PATTERN)
    plan_id: str = Field(..., pattern=PLAN_ID_PATTERN)
    task_id: str = Field(..., pattern=TASK_ID_PATTERN)
    status: ResultStatus
    steps: List[StepResult] = Field(..., min_length=1)
    duration: int = Field(..., ge=0)
    artifacts: Artifacts = Field(default_factory=Artifacts)
    quality_gates: QualityGates = Field(default_factory=QualityGates)
    metadata: ResultMetadata = Field(default_factory=ResultMetadata)
