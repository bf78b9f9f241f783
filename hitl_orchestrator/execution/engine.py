"""
Engine - Workflow Orchestration Layer

The WorkflowEngine is the deterministic manager that drives a Task through
planning, human decision, execution and verification. It is the only
component that talks to both the WorkflowStateMachine and the durable stores,
and it keeps the two in agreement.
-----------------------------------------------

Every public operation follows the same loop:

1. Read the durable task status and translate it to a WorkflowState.
2. Optionally auto-recover (START_PLANNING from task_created, RETRY from
    plan_rejected/failed) so that "make progress" calls are re-enterable.
3. Ask the state machine for the hop.
4. On success, write the new status back (exactly once per hop) together with
    the associated plan/decision/result row.
5. Return a WorkflowOutcome listing every hop that was attempted.

Refused hops come back inside the outcome. Store and collaborator failures are
raised.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from ..domain.models import Decision, Plan, Result, Task
from ..repositories.decision import DecisionRepository
from ..repositories.pattern import PatternRepository
from ..repositories.plan import PlanRepository
from ..repositories.result import ResultRepository
from ..repositories.task import TaskRepository
from ..services.exceptions import (
    CollaboratorFailureError,
    NotFoundError,
    ValidationFailedError,
)
from ..state.models import (
    ApprovalObservation,
    PlanRecord,
    PlanStatus,
    TaskRecord,
    TransitionAction,
    TransitionContext,
    TransitionErrorKind,
    TransitionResult,
    WorkflowEvent,
    WorkflowOutcome,
    WorkflowState,
    utcnow,
)
from .executor import ExecutionAgent
from .planner import PlanningAgent
from .pre_validation import validate_plan
from .quality_gates import QualityGateEvaluator
from .state_machine import (
    WorkflowStateMachine,
    task_status_to_workflow_state,
    workflow_state_to_task_status,
)

logger = logging.getLogger(__name__)

RECOVERY_ACTIONS = {
    WorkflowState.TASK_CREATED: TransitionAction.START_PLANNING,
    WorkflowState.PLAN_REJECTED: TransitionAction.RETRY,
    WorkflowState.FAILED: TransitionAction.RETRY,
}


class WorkflowEngine:
    def __init__(
        self,
        state_machine: WorkflowStateMachine,
        task_repository: TaskRepository,
        plan_repository: PlanRepository,
        decision_repository: DecisionRepository,
        result_repository: ResultRepository,
        planner: PlanningAgent,
        executor: ExecutionAgent,
        pattern_repository: Optional[PatternRepository] = None,
        quality_gates: Optional[QualityGateEvaluator] = None,
    ):
        self.state_machine = state_machine
        self.tasks = task_repository
        self.plans = plan_repository
        self.decisions = decision_repository
        self.results = result_repository
        self.planner = planner
        self.executor = executor
        self.patterns = pattern_repository
        self.quality_gates = quality_gates or QualityGateEvaluator()

    # ==========================================================================
    # Planning
    # ==========================================================================

    async def create_task_workflow(self, task: Task) -> WorkflowOutcome:
        """
        Persists the task, then runs CREATE and START_PLANNING.

        The task row is written first, so a refused hop still leaves a stored
        task behind (reported as a partial outcome).
        """
        self.tasks.create(task)
        logger.info(f"Created task {task.id} ({task.type.value})")

        hops = [self._hop(task.id, None, TransitionAction.CREATE)]
        if hops[-1].success:
            hops.append(
                self._hop(task.id, hops[-1].new_state, TransitionAction.START_PLANNING)
            )

        return self._outcome(task.id, hops)

    async def process_task(self, task_id: str, feedback: Optional[str] = None) -> WorkflowOutcome:
        """
        Generates proposals for the task and hands it to the human.

        Safe to call again after a planning failure: the task stays in
        awaiting_proposals and no plan rows are written unless all of them are.
        Proposals left open from an earlier round are superseded.
        """
        task, state = self._load(task_id)
        hops: List[TransitionResult] = []

        recovery = RECOVERY_ACTIONS.get(state)
        if recovery is not None:
            hop = self._hop(task_id, state, recovery, reason=feedback)
            hops.append(hop)
            if not hop.success:
                return self._outcome(task_id, hops)
            state = hop.new_state

        context = TransitionContext(task_id=task_id)
        refusal = self.state_machine.check(state, TransitionAction.PROPOSALS_READY, context)
        if refusal is not None:
            hops.append(refusal)
            return self._outcome(task_id, hops)

        logger.info(f"Requesting proposals for task {task_id}")
        try:
            plans = await self.planner.generate_plans(task, feedback)
        except Exception as e:
            logger.error(f"Planning agent failed for task {task_id}: {e}")
            raise CollaboratorFailureError("Planning agent", str(e)) from e

        self._check_plans(task_id, plans)
        stale = self.plans.list(task_id=task_id, status=PlanStatus.PROPOSED)
        records = self.plans.create_many(plans)
        for plan in stale:
            self.plans.update_status(plan.id, PlanStatus.SUPERSEDED)

        hops.append(
            self._hop(
                task_id,
                state,
                TransitionAction.PROPOSALS_READY,
                metadata={"plan_count": len(records)},
            )
        )
        return self._outcome(task_id, hops, plan_ids=[record.id for record in records])

    async def replan_task(self, task_id: str, feedback: str) -> WorkflowOutcome:
        """
        Discards the open proposals and asks the planner again with feedback.
        """
        _, state = self._load(task_id)
        hop = self._hop(task_id, state, TransitionAction.REPLAN, reason=feedback)
        if not hop.success:
            return self._outcome(task_id, [hop])

        for plan in self.plans.list(task_id=task_id, status=PlanStatus.PROPOSED):
            self.plans.update_status(plan.id, PlanStatus.REJECTED)

        outcome = await self.process_task(task_id, feedback=feedback)
        return self._outcome(task_id, [hop] + outcome.hops, plan_ids=outcome.plan_ids)

    # ==========================================================================
    # Human Decision
    # ==========================================================================

    async def record_decision(
        self, decision: Decision, decided_by: Optional[str] = None
    ) -> WorkflowOutcome:
        """
        Stores the decision and runs APPROVE or REJECT.

        An approval marks its plan approved and the other open proposals
        superseded. A rejection marks the referenced plan rejected, or every
        open proposal when no plan is referenced. A referenced plan must still
        be proposed.
        """
        task, state = self._load(decision.task_id)

        if decision.is_approval:
            affected = [self._load_plan(decision.plan_id, decision.task_id)]
            action = TransitionAction.APPROVE
            context = TransitionContext(
                task_id=task.id,
                plan_id=decision.plan_id,
                metadata={"decision_id": decision.id},
            )
        else:
            if decision.plan_id:
                affected = [self._load_plan(decision.plan_id, decision.task_id)]
            else:
                affected = self.plans.list(task_id=task.id, status=PlanStatus.PROPOSED)
            action = TransitionAction.REJECT
            context = TransitionContext(
                task_id=task.id,
                reason=decision.rationale,
                metadata={"decision_id": decision.id},
            )

        refusal = self.state_machine.check(state, action, context)
        if refusal is None and decision.plan_id:
            refusal = self._check_plan_status(state, action, affected[0], PlanStatus.PROPOSED)
        if refusal is not None:
            logger.warning(f"Decision {decision.id} refused for task {task.id}: {refusal.error}")
            return self._outcome(task.id, [refusal])

        record = self.decisions.create(decision, decided_by)
        hop = self._hop(task.id, state, action, context=context)

        if decision.is_approval:
            plan = affected[0]
            for sibling in self.plans.list(task_id=task.id, status=PlanStatus.PROPOSED):
                if sibling.id != plan.id:
                    self.plans.update_status(sibling.id, PlanStatus.SUPERSEDED)
            self.plans.update(
                plan.id,
                {
                    "status": PlanStatus.APPROVED,
                    "metadata": {
                        **(plan.metadata.model_dump() if plan.metadata else {}),
                        "approved": True,
                        "approved_by": decided_by,
                        "approved_at": utcnow(),
                    },
                },
            )
        else:
            for plan in affected:
                self.plans.update_status(plan.id, PlanStatus.REJECTED)

        self._record_patterns(task, decision, affected)

        logger.info(
            f"Recorded decision {record.id} for task {task.id} "
            f"({'approved' if decision.is_approval else 'rejected'} by {decided_by or 'unknown'})"
        )
        return self._outcome(task.id, [hop], decision_id=record.id)

    def _record_patterns(self, task: TaskRecord, decision: Decision, plans: List[PlanRecord]):
        """Feeds the learning loop. Failures are logged and never surface."""
        if self.patterns is None:
            return

        for plan in plans:
            observation = ApprovalObservation(
                category=task.type.value,
                approach=plan.approach,
                approved=decision.is_approval,
                minutes_to_decision=_minutes_since(plan.created_at),
                rejection_reason=None if decision.is_approval else decision.rationale,
                project_id=task.context.repository,
            )
            try:
                self.patterns.record(observation)
            except Exception as e:
                logger.warning(f"Failed to record approval pattern for plan {plan.id}: {e}")

    # ==========================================================================
    # Execution
    # ==========================================================================

    async def execute_approved_plan(self, plan_id: str, task_id: str) -> WorkflowOutcome:
        """Moves the task to executing. Nothing is run."""
        _, state = self._load(task_id)
        plan = self._load_plan(plan_id, task_id)

        context = TransitionContext(task_id=task_id, plan_id=plan_id)
        refusal = self.state_machine.check(state, TransitionAction.START_EXECUTION, context)
        if refusal is None:
            refusal = self._check_plan_status(
                state, TransitionAction.START_EXECUTION, plan, PlanStatus.APPROVED
            )
        if refusal is not None:
            logger.warning(f"Execution of plan {plan_id} refused for task {task_id}: {refusal.error}")
            return self._outcome(task_id, [refusal])

        hop = self._hop(task_id, state, TransitionAction.START_EXECUTION, context=context)
        if hop.success:
            self.plans.update_status(plan_id, PlanStatus.EXECUTING)

        return self._outcome(task_id, [hop])

    async def run_execution(self, plan_id: str, task_id: str) -> WorkflowOutcome:
        """
        Validates the plan, runs it through the execution agent and records the
        Result.

        A plan_approved task is moved to executing first. A plan that fails
        pre-execution validation raises ValidationFailedError and the task
        does not move.
        """
        task, state = self._load(task_id)
        plan = self._load_plan(plan_id, task_id)

        context = TransitionContext(task_id=task_id, plan_id=plan_id)
        if state == WorkflowState.PLAN_APPROVED:
            action, expected = TransitionAction.START_EXECUTION, PlanStatus.APPROVED
            refusal = self.state_machine.check(state, action, context)
        else:
            # EXECUTION_COMPLETE is guarded on a result that does not exist yet.
            action, expected = TransitionAction.EXECUTION_COMPLETE, PlanStatus.EXECUTING
            refusal = None
            if not self.state_machine.can_transition(state, action):
                refusal = self.state_machine.check(state, action, context)
        if refusal is None:
            refusal = self._check_plan_status(state, action, plan, expected)
        if refusal is not None:
            logger.warning(f"Execution of plan {plan_id} refused for task {task_id}: {refusal.error}")
            return self._outcome(task_id, [refusal])

        report = validate_plan(plan, task)
        for warning in report.warnings:
            logger.warning(f"Plan {plan_id}: {warning.message}")
        if not report.valid:
            logger.warning(f"Plan {plan_id} blocked by pre-execution validation")
            raise ValidationFailedError(plan_id, report)

        hops: List[TransitionResult] = []
        if state == WorkflowState.PLAN_APPROVED:
            hop = self._hop(task_id, state, TransitionAction.START_EXECUTION, plan_id=plan_id)
            hops.append(hop)
            if not hop.success:
                return self._outcome(task_id, hops)
            self.plans.update_status(plan_id, PlanStatus.EXECUTING)

        logger.info(f"Executing plan {plan_id} for task {task_id}")
        try:
            result = await self.executor.execute(plan, task_id)
        except Exception as e:
            logger.error(f"Execution agent failed for plan {plan_id}: {e}")
            raise CollaboratorFailureError("Execution agent", str(e)) from e

        self._check_result(plan, task_id, result)

        outcome = await self.record_result(result)
        return self._outcome(
            task_id,
            hops + outcome.hops,
            result_id=outcome.result_id,
            warnings=[warning.message for warning in report.warnings] + outcome.warnings,
        )

    async def record_result(self, result: Result) -> WorkflowOutcome:
        """
        Runs the quality gates, stores the enriched Result and moves the task
        to awaiting_verification.
        """
        _, state = self._load(result.task_id)

        gates = self.quality_gates.summarize(result)
        enriched = result.model_copy(update={"quality_gates": gates})

        context = TransitionContext(
            task_id=result.task_id,
            plan_id=result.plan_id,
            result_id=result.id,
            metadata={"result_status": result.status.value, "quality_gates_passed": gates.passed},
        )
        refusal = self.state_machine.check(state, TransitionAction.EXECUTION_COMPLETE, context)
        if refusal is None:
            refusal = self._check_plan_status(
                state,
                TransitionAction.EXECUTION_COMPLETE,
                self._load_plan(result.plan_id, result.task_id),
                PlanStatus.EXECUTING,
            )
        if refusal is not None:
            return self._outcome(result.task_id, [refusal])

        record = self.results.create(enriched)
        hop = self._hop(result.task_id, state, TransitionAction.EXECUTION_COMPLETE, context=context)

        warnings = [
            f"Quality gate '{check.name}' failed: {check.details}"
            for check in gates.checks
            if not check.passed
        ]
        logger.info(
            f"Recorded result {record.id} for task {result.task_id} "
            f"(status={result.status.value}, gates {'passed' if gates.passed else 'failed'})"
        )
        return self._outcome(result.task_id, [hop], result_id=record.id, warnings=warnings)

    # ==========================================================================
    # Verification & Recovery
    # ==========================================================================

    async def verify_result(
        self, task_id: str, verified: bool, reason: Optional[str] = None
    ) -> WorkflowOutcome:
        _, state = self._load(task_id)
        action = TransitionAction.VERIFY_SUCCESS if verified else TransitionAction.VERIFY_FAILURE
        hop = self._hop(task_id, state, action, reason=reason)
        return self._outcome(task_id, [hop])

    async def retry_task(self, task_id: str) -> WorkflowOutcome:
        _, state = self._load(task_id)
        hop = self._hop(task_id, state, TransitionAction.RETRY)
        return self._outcome(task_id, [hop])

    async def fail_task(self, task_id: str, reason: str) -> WorkflowOutcome:
        """
        Escape hatch for unrecoverable errors. The state machine does not gate
        FAIL, but the engine insists on a reason so the audit trail has one.
        """
        if not reason or not reason.strip():
            raise ValueError("reason is required to fail a task")

        _, state = self._load(task_id)
        logger.warning(f"Failing task {task_id} from {state.value}: {reason}")
        hop = self._hop(task_id, state, TransitionAction.FAIL, reason=reason)
        return self._outcome(task_id, [hop])

    # ==========================================================================
    # Read-only Projections
    # ==========================================================================

    def get_workflow_state(self, task_id: str) -> WorkflowState:
        return self._load(task_id)[1]

    def get_valid_actions(self, task_id: str) -> List[TransitionAction]:
        return self.state_machine.get_valid_actions(self.get_workflow_state(task_id))

    def get_transition_history(self, task_id: str) -> List[WorkflowEvent]:
        return self.state_machine.get_history(task_id)

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _load(self, task_id: str) -> Tuple[TaskRecord, WorkflowState]:
        task = self.tasks.get(task_id)
        return task, task_status_to_workflow_state(task.status)

    def _load_plan(self, plan_id: str, task_id: str) -> PlanRecord:
        plan = self.plans.get(plan_id)
        if plan.task_id != task_id:
            raise NotFoundError("plan", f"{plan_id} (task {task_id})")
        return plan

    @staticmethod
    def _check_plan_status(
        state: WorkflowState,
        action: TransitionAction,
        plan: PlanRecord,
        expected: PlanStatus,
    ) -> Optional[TransitionResult]:
        """Refuses the hop, like a failed guard, unless the plan row is in the expected status."""
        if plan.status == expected:
            return None
        return TransitionResult(
            success=False,
            action=action,
            previous_state=state,
            new_state=state,
            error=(
                f"Guard failed for {action.value}: plan {plan.id} is "
                f"{PlanStatus(plan.status).value}, expected {expected.value}"
            ),
            error_kind=TransitionErrorKind.GUARD_FAILED,
        )

    def _hop(
        self,
        task_id: str,
        state: Optional[WorkflowState],
        action: TransitionAction,
        context: Optional[TransitionContext] = None,
        **context_fields,
    ) -> TransitionResult:
        """Runs one transition and, if it succeeds, writes the new status once."""
        if context is None:
            context = TransitionContext(task_id=task_id, **context_fields)

        result = self.state_machine.transition(state, action, context)
        if result.success:
            self.tasks.update_status(task_id, workflow_state_to_task_status(result.new_state))
        return result

    @staticmethod
    def _outcome(task_id: str, hops: List[TransitionResult], **fields) -> WorkflowOutcome:
        failed = next((hop for hop in hops if not hop.success), None)
        return WorkflowOutcome(
            task_id=task_id,
            success=bool(hops) and failed is None,
            hops=hops,
            error=failed.error if failed else None,
            error_kind=failed.error_kind if failed else None,
            **fields,
        )

    @staticmethod
    def _check_plans(task_id: str, plans: List[Plan]):
        if not plans:
            raise CollaboratorFailureError("Planning agent", f"no plans produced for task {task_id}")
        for plan in plans:
            if plan.task_id != task_id:
                raise CollaboratorFailureError(
                    "Planning agent", f"plan {plan.id} belongs to task {plan.task_id}, not {task_id}"
                )

    @staticmethod
    def _check_result(plan: Plan, task_id: str, result: Result):
        if result.plan_id != plan.id or result.task_id != task_id:
            raise CollaboratorFailureError(
                "Execution agent", f"result {result.id} does not belong to plan {plan.id}"
            )
        expected = [step.id for step in plan.steps]
        reported = [step.id for step in result.steps]
        if reported != expected:
            raise CollaboratorFailureError(
                "Execution agent",
                f"expected step results {expected} in plan order, got {reported}",
            )


def _minutes_since(moment: Optional[datetime]) -> int:
    if moment is None:
        return 0
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return max(0, int((utcnow() - moment).total_seconds() // 60))
