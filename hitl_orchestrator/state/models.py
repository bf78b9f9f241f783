"""
State Layer - Runtime Data Models

This module defines the runtime state that tracks a Task's journey through the
orchestration workflow: the workflow states and actions understood by the
state machine, the durable statuses written to the stores, the transition
history, and the records the stores hand back.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, computed_field

from ..domain.models import Decision, Plan, Result, Task


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowState(str, Enum):
    """
    The state machine's view of a Task.

    plan_rejected, completed and failed are terminal: only RETRY (or REPLAN
    for plan_rejected) leaves them.
    """
    TASK_CREATED = "task_created"
    AWAITING_PROPOSALS = "awaiting_proposals"
    AWAITING_HUMAN_DECISION = "awaiting_human_decision"
    PLAN_APPROVED = "plan_approved"
    PLAN_REJECTED = "plan_rejected"
    EXECUTING = "executing"
    AWAITING_VERIFICATION = "awaiting_verification"
    COMPLETED = "completed"
    FAILED = "failed"


class TaskStatus(str, Enum):
    """The status column written to the task store."""
    PENDING = "pending"
    PLANNING = "planning"
    AWAITING_HUMAN_DECISION = "awaiting_human_decision"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXECUTING = "executing"
    AWAITING_VERIFICATION = "awaiting_verification"
    COMPLETED = "completed"
    FAILED = "failed"


class PlanStatus(str, Enum):
    """SUPERSEDED marks the open proposals a human passed over by approving a sibling."""
    PROPOSED = "proposed"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXECUTING = "executing"
    SUPERSEDED = "superseded"


class TransitionAction(str, Enum):
    CREATE = "CREATE"
    START_PLANNING = "START_PLANNING"
    PROPOSALS_READY = "PROPOSALS_READY"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    START_EXECUTION = "START_EXECUTION"
    EXECUTION_COMPLETE = "EXECUTION_COMPLETE"
    VERIFY_SUCCESS = "VERIFY_SUCCESS"
    VERIFY_FAILURE = "VERIFY_FAILURE"
    FAIL = "FAIL"
    RETRY = "RETRY"
    REPLAN = "REPLAN"


class TransitionErrorKind(str, Enum):
    INVALID_TRANSITION = "InvalidTransition"
    GUARD_FAILED = "GuardFailed"


# =============================================================================
# Transitions
# =============================================================================


class TransitionContext(BaseModel):
    """
    The bag of facts a transition is evaluated against.
    Guards only ever look at this object.
    """
    task_id: str
    plan_id: Optional[str] = None
    result_id: Optional[str] = None
    reason: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class WorkflowEvent(BaseModel):
    """One entry of a task's append-only transition history."""
    task_id: str
    state: WorkflowState
    timestamp: datetime = Field(default_factory=utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class TransitionResult(BaseModel):
    """
    Outcome of a single state machine hop.

    A failed hop leaves the state unchanged: new_state equals previous_state
    and error/error_kind describe why.
    """
    success: bool
    action: TransitionAction
    previous_state: Optional[WorkflowState] = None
    new_state: Optional[WorkflowState] = None
    error: Optional[str] = None
    error_kind: Optional[TransitionErrorKind] = None


class WorkflowOutcome(BaseModel):
    """
    Tagged result of an engine operation.

    hops lists every transition the operation attempted, in order, so a caller
    can tell "nothing happened" (no successful hop) apart from "partially
    happened" (some hops succeeded before one was refused).
    """
    task_id: str
    success: bool
    hops: List[TransitionResult] = Field(default_factory=list)
    error: Optional[str] = None
    error_kind: Optional[TransitionErrorKind] = None
    plan_ids: List[str] = Field(default_factory=list)
    decision_id: Optional[str] = None
    result_id: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)

    @computed_field
    @property
    def transition(self) -> Optional[TransitionResult]:
        """The last hop attempted."""
        if not self.hops:
            return None
        return self.hops[-1]

    @computed_field
    @property
    def completed_actions(self) -> List[TransitionAction]:
        return [hop.action for hop in self.hops if hop.success]

    @computed_field
    @property
    def partial(self) -> bool:
        return not self.success and bool(self.completed_actions)


# =============================================================================
# Store Records
# =============================================================================


class TaskRecord(Task):
    status: TaskStatus = TaskStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class PlanRecord(Plan):
    status: PlanStatus = PlanStatus.PROPOSED
    created_at: datetime = Field(default_factory=utcnow)


class DecisionRecord(Decision):
    decided_by: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class ResultRecord(Result):
    created_at: datetime = Field(default_factory=utcnow)


# =============================================================================
# Approval Patterns (learning loop)
# =============================================================================


class ApprovalObservation(BaseModel):
    """A single human decision, as seen by the learning loop."""
    category: str
    approach: str
    approved: bool
    minutes_to_decision: int = Field(0, ge=0)
    rejection_reason: Optional[str] = None
    project_id: Optional[str] = None


class ApprovalPattern(BaseModel):
    id: str
    category: str
    approach_type: str
    approved_count: int = 0
    rejected_count: int = 0
    avg_time_to_decision: int = 0
    common_rejection_reasons: List[str] = Field(default_factory=list)
    project_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def total(self) -> int:
        return self.approved_count + self.rejected_count


class ApproachStats(BaseModel):
    approach: str
    approval_rate: float
    count: int


class PatternStats(BaseModel):
    category: str
    total_decisions: int
    approval_rate: float
    avg_time_to_decision: int
    top_approaches: List[ApproachStats] = Field(default_factory=list)
    common_rejections: List[str] = Field(default_factory=list)
