"""
State Machine - Transition Validation and History

The WorkflowStateMachine validates and executes single hops against the
transition table and keeps an append-only, per-task history of the hops it
executed.

The history is a diagnostic trail, not the source of truth: a task's current
status lives in the task store and is written by the WorkflowEngine after every
successful hop. Construct one instance per process (or per test) and hand it to
the engine explicitly.
"""

import logging
from collections import defaultdict
from typing import Callable, Dict, List, Mapping, Optional

from ..state.models import (
    TaskStatus,
    TransitionAction,
    TransitionContext,
    TransitionErrorKind,
    TransitionResult,
    WorkflowEvent,
    WorkflowState,
)
from .schemas.state_machine import (
    HUMAN_INPUT_STATES,
    TERMINAL_STATES,
    TRANSITIONS,
    TransitionDefinition,
    TransitionKey,
)

logger = logging.getLogger(__name__)

TransitionListener = Callable[[WorkflowEvent], None]


class WorkflowStateMachine:
    def __init__(self, transitions: Mapping[TransitionKey, TransitionDefinition] = TRANSITIONS):
        self._transitions = transitions
        self._history: Dict[str, List[WorkflowEvent]] = defaultdict(list)
        self._listeners: List[TransitionListener] = []

    # ==========================================================================
    # Queries (Pure)
    # ==========================================================================

    def can_transition(
        self, current_state: Optional[WorkflowState], action: TransitionAction
    ) -> bool:
        """Pure table lookup. Guards are not evaluated."""
        return (current_state, action) in self._transitions

    def get_valid_actions(self, current_state: Optional[WorkflowState]) -> List[TransitionAction]:
        return [action for action in TransitionAction if self.can_transition(current_state, action)]

    def check(
        self,
        current_state: Optional[WorkflowState],
        action: TransitionAction,
        context: TransitionContext,
    ) -> Optional[TransitionResult]:
        """
        Evaluates a hop without executing it.

        Returns None if the hop would succeed, otherwise the failed
        TransitionResult that transition() would return.
        """
        definition = self._transitions.get((current_state, action))
        if definition is None:
            return self._refuse(
                current_state,
                action,
                TransitionErrorKind.INVALID_TRANSITION,
                f"Invalid transition: cannot {action.value} from "
                f"{current_state.value if current_state else 'null'}",
            )

        if definition.guard is not None and not definition.guard(context):
            return self._refuse(
                current_state,
                action,
                TransitionErrorKind.GUARD_FAILED,
                f"Guard failed for {action.value}: {definition.guard.description}",
            )

        return None

    # ==========================================================================
    # Execution
    # ==========================================================================

    def transition(
        self,
        current_state: Optional[WorkflowState],
        action: TransitionAction,
        context: TransitionContext,
    ) -> TransitionResult:
        """
        Executes a single hop.

        Refused hops are returned (never raised) with error_kind set to
        InvalidTransition or GuardFailed. Successful hops append a
        WorkflowEvent to the task's history and notify listeners.
        """
        refusal = self.check(current_state, action, context)
        if refusal is not None:
            logger.warning(f"Task {context.task_id}: {refusal.error}")
            return refusal

        definition = self._transitions[(current_state, action)]
        event = WorkflowEvent(
            task_id=context.task_id,
            state=definition.target,
            metadata={
                "action": action.value,
                "previous_state": current_state.value if current_state else None,
                **context.model_dump(include={"plan_id", "result_id", "reason"}, exclude_none=True),
                **context.metadata,
            },
        )
        self._history[context.task_id].append(event)
        self._notify_listeners(event)

        logger.info(
            f"Task {context.task_id}: {action.value} "
            f"{current_state.value if current_state else 'null'} -> {definition.target.value}"
        )

        return TransitionResult(
            success=True,
            action=action,
            previous_state=current_state,
            new_state=definition.target,
        )

    # ==========================================================================
    # History & Listeners
    # ==========================================================================

    def on_transition(self, callback: TransitionListener) -> Callable[[], None]:
        """Subscribes to successful hops. Returns an unsubscribe function."""
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def get_history(self, task_id: Optional[str] = None) -> List[WorkflowEvent]:
        if task_id is not None:
            return list(self._history.get(task_id, []))
        events = [event for events in self._history.values() for event in events]
        return sorted(events, key=lambda event: event.timestamp)

    def clear_history(self):
        self._history.clear()

    def _notify_listeners(self, event: WorkflowEvent):
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.warning(f"Transition listener failed for task {event.task_id}: {e}")

    @staticmethod
    def _refuse(
        current_state: Optional[WorkflowState],
        action: TransitionAction,
        kind: TransitionErrorKind,
        message: str,
    ) -> TransitionResult:
        return TransitionResult(
            success=False,
            action=action,
            previous_state=current_state,
            new_state=current_state,
            error=message,
            error_kind=kind,
        )


# ==========================================================================
# Status <-> State Mapping
# ==========================================================================

_STATUS_TO_STATE: Dict[TaskStatus, WorkflowState] = {
    TaskStatus.PENDING: WorkflowState.TASK_CREATED,
    TaskStatus.PLANNING: WorkflowState.AWAITING_PROPOSALS,
    TaskStatus.AWAITING_HUMAN_DECISION: WorkflowState.AWAITING_HUMAN_DECISION,
    TaskStatus.APPROVED: WorkflowState.PLAN_APPROVED,
    TaskStatus.REJECTED: WorkflowState.PLAN_REJECTED,
    TaskStatus.EXECUTING: WorkflowState.EXECUTING,
    TaskStatus.AWAITING_VERIFICATION: WorkflowState.AWAITING_VERIFICATION,
    TaskStatus.COMPLETED: WorkflowState.COMPLETED,
    TaskStatus.FAILED: WorkflowState.FAILED,
}

_STATE_TO_STATUS: Dict[WorkflowState, TaskStatus] = {
    state: status for status, state in _STATUS_TO_STATE.items()
}

_STATE_DESCRIPTIONS: Dict[WorkflowState, str] = {
    WorkflowState.TASK_CREATED: "Task created, waiting to start",
    WorkflowState.AWAITING_PROPOSALS: "AI is generating proposals",
    WorkflowState.AWAITING_HUMAN_DECISION: "Waiting for human approval",
    WorkflowState.PLAN_APPROVED: "Plan approved, ready to execute",
    WorkflowState.PLAN_REJECTED: "Plan rejected by human",
    WorkflowState.EXECUTING: "Executing the approved plan",
    WorkflowState.AWAITING_VERIFICATION: "Execution complete, awaiting verification",
    WorkflowState.COMPLETED: "Task completed successfully",
    WorkflowState.FAILED: "Task failed",
}


def task_status_to_workflow_state(status: TaskStatus) -> WorkflowState:
    return _STATUS_TO_STATE[TaskStatus(status)]


def workflow_state_to_task_status(state: WorkflowState) -> TaskStatus:
    return _STATE_TO_STATUS[WorkflowState(state)]


def get_state_description(state: WorkflowState) -> str:
    return _STATE_DESCRIPTIONS[WorkflowState(state)]


def is_terminal_state(state: WorkflowState) -> bool:
    """Terminal states only allow RETRY (and REPLAN from plan_rejected)."""
    return WorkflowState(state) in TERMINAL_STATES


def requires_human_input(state: WorkflowState) -> bool:
    return WorkflowState(state) in HUMAN_INPUT_STATES
