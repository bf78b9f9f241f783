"""
Transition Table - FSM State Transition Definitions

Static mapping of (state, action) -> (next state, guard, side-effect hint).
Used by the WorkflowStateMachine to validate hops. The side_effect hints name
the row the WorkflowEngine writes alongside the task status.

Flow:
    task_created -> awaiting_proposals -> awaiting_human_decision
                                                 |
                    plan_approved <--------------+--------------> plan_rejected
                         |                                              |
                    executing -> awaiting_verification -> completed     |
                                          |                             |
                                        failed --- RETRY ---> awaiting_proposals
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from ...state.models import TransitionAction, TransitionContext, WorkflowState


@dataclass(frozen=True)
class TransitionGuard:
    """
    A named precondition on the TransitionContext.

    Attributes:
        description: The unmet requirement, phrased for a human
            (e.g. "reason is required to reject").
        predicate: Returns True when the requirement is satisfied.
    """

    description: str
    predicate: Callable[[TransitionContext], bool]

    def __call__(self, context: TransitionContext) -> bool:
        return bool(self.predicate(context))


@dataclass(frozen=True)
class TransitionDefinition:
    """
    One legal hop of the state machine.

    Attributes:
        action: The action that triggers the hop.
        source: State the task must be in. None means "task does not exist yet".
        target: State the task ends up in.
        guard: Optional precondition evaluated against the context.
        side_effect: Hint for the engine about the row written besides the
            task status (e.g. "plan:approved").
    """

    action: TransitionAction
    source: Optional[WorkflowState]
    target: WorkflowState
    guard: Optional[TransitionGuard] = None
    side_effect: Optional[str] = None


TransitionKey = Tuple[Optional[WorkflowState], TransitionAction]


REQUIRES_PLAN_TO_APPROVE = TransitionGuard(
    "plan_id is required to approve", lambda ctx: bool(ctx.plan_id)
)
REQUIRES_REASON_TO_REJECT = TransitionGuard(
    "reason is required to reject", lambda ctx: bool(ctx.reason and ctx.reason.strip())
)
REQUIRES_PLAN_TO_EXECUTE = TransitionGuard(
    "plan_id is required to start execution", lambda ctx: bool(ctx.plan_id)
)
REQUIRES_RESULT_TO_COMPLETE = TransitionGuard(
    "result_id is required to complete execution", lambda ctx: bool(ctx.result_id)
)

TERMINAL_STATES = frozenset(
    {WorkflowState.PLAN_REJECTED, WorkflowState.COMPLETED, WorkflowState.FAILED}
)

HUMAN_INPUT_STATES = frozenset(
    {WorkflowState.AWAITING_HUMAN_DECISION, WorkflowState.AWAITING_VERIFICATION}
)

# FAIL is the escape hatch for unrecoverable errors: legal from every non-terminal state.
_FAILABLE_STATES = [state for state in WorkflowState if state not in TERMINAL_STATES]


def _definitions() -> List[TransitionDefinition]:
    S = WorkflowState
    A = TransitionAction
    return [
        TransitionDefinition(A.CREATE, None, S.TASK_CREATED, side_effect="task:created"),
        TransitionDefinition(A.START_PLANNING, S.TASK_CREATED, S.AWAITING_PROPOSALS),
        TransitionDefinition(
            A.PROPOSALS_READY, S.AWAITING_PROPOSALS, S.AWAITING_HUMAN_DECISION,
            side_effect="plans:proposed",
        ),
        TransitionDefinition(
            A.APPROVE, S.AWAITING_HUMAN_DECISION, S.PLAN_APPROVED,
            guard=REQUIRES_PLAN_TO_APPROVE, side_effect="plan:approved",
        ),
        TransitionDefinition(
            A.REJECT, S.AWAITING_HUMAN_DECISION, S.PLAN_REJECTED,
            guard=REQUIRES_REASON_TO_REJECT, side_effect="plan:rejected",
        ),
        TransitionDefinition(A.RETRY, S.PLAN_REJECTED, S.AWAITING_PROPOSALS),
        TransitionDefinition(A.RETRY, S.FAILED, S.AWAITING_PROPOSALS),
        TransitionDefinition(A.REPLAN, S.PLAN_REJECTED, S.AWAITING_PROPOSALS),
        TransitionDefinition(A.REPLAN, S.AWAITING_HUMAN_DECISION, S.AWAITING_PROPOSALS),
        TransitionDefinition(
            A.START_EXECUTION, S.PLAN_APPROVED, S.EXECUTING,
            guard=REQUIRES_PLAN_TO_EXECUTE, side_effect="plan:executing",
        ),
        TransitionDefinition(
            A.EXECUTION_COMPLETE, S.EXECUTING, S.AWAITING_VERIFICATION,
            guard=REQUIRES_RESULT_TO_COMPLETE, side_effect="result:created",
        ),
        TransitionDefinition(A.VERIFY_SUCCESS, S.AWAITING_VERIFICATION, S.COMPLETED),
        TransitionDefinition(A.VERIFY_FAILURE, S.AWAITING_VERIFICATION, S.FAILED),
    ] + [
        TransitionDefinition(A.FAIL, state, S.FAILED) for state in _FAILABLE_STATES
    ]


TRANSITIONS: Dict[TransitionKey, TransitionDefinition] = {
    (definition.source, definition.action): definition for definition in _definitions()
}
