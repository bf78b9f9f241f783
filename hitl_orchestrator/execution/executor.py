"""
Executor - Plan Execution Layer

This module defines the ExecutionAgent contract the WorkflowEngine invokes to
run an approved Plan, and the SimulatedExecutionAgent used in development and
tests. Real sandboxed command execution is a separate collaborator that only
has to honour the same contract: one StepResult per PlanStep, in plan order.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from typing import List, Optional

from ..config import settings
from ..domain.models import (
    Artifacts,
    ExecutionMode,
    Plan,
    PlanStep,
    Result,
    ResultMetadata,
    ResultStatus,
    StepError,
    StepResult,
    StepStatus,
    StepValidationOutcome,
    SuiteSummary,
)
from ..state.models import utcnow

logger = logging.getLogger(__name__)


class ExecutionAgent(ABC):
    @abstractmethod
    async def execute(self, plan: Plan, task_id: str) -> Result:
        """Runs every step of the plan and reports one StepResult per step."""
        pass


class SimulatedExecutionAgent(ExecutionAgent):
    """
    Pretends to run each step.

    Every step succeeds unless it is fail_step_id; once a step fails, the
    remaining steps are skipped.
    """

    def __init__(
        self,
        step_delay_ms: int = settings.SIMULATED_STEP_DELAY_MS,
        fail_step_id: Optional[str] = None,
        executed_by: str = "simulated-executor",
        coverage: Optional[float] = None,
    ):
        self.step_delay_ms = step_delay_ms
        self.fail_step_id = fail_step_id
        self.executed_by = executed_by
        self.coverage = coverage

    async def execute(self, plan: Plan, task_id: str) -> Result:
        started_at = utcnow()
        logger.info(f"Simulating {len(plan.steps)} steps of plan {plan.id}")

        step_results: List[StepResult] = []
        failed = False
        for step in plan.steps:
            if failed:
                step_results.append(self._skipped(step))
                continue

            if self.step_delay_ms:
                await asyncio.sleep(self.step_delay_ms / 1000)

            step_result = self._run_step(step)
            step_results.append(step_result)
            if step_result.status == StepStatus.FAILURE:
                logger.warning(f"Simulated step {step.id} of plan {plan.id} failed")
                failed = True

        completed_at = utcnow()
        succeeded = sum(1 for r in step_results if r.status == StepStatus.SUCCESS)

        return Result(
            id=f"result-{uuid.uuid4()}",
            plan_id=plan.id,
            task_id=task_id,
            status=self._overall_status(succeeded, len(step_results)),
            steps=step_results,
            duration=sum(r.duration for r in step_results),
            artifacts=Artifacts(
                files_modified=sorted({output for step in plan.steps for output in step.outputs}),
                test_results=SuiteSummary(
                    passed=succeeded,
                    failed=len(step_results) - succeeded,
                    coverage=self.coverage,
                ),
            ),
            metadata=ResultMetadata(
                started_at=started_at,
                completed_at=completed_at,
                executed_by=self.executed_by,
                environment="local",
                execution_mode=ExecutionMode.SIMULATED,
            ),
        )

    def _run_step(self, step: PlanStep) -> StepResult:
        if step.id == self.fail_step_id:
            return StepResult(
                id=step.id,
                status=StepStatus.FAILURE,
                duration=self.step_delay_ms,
                validation=StepValidationOutcome(
                    passed=False,
                    command=step.validation.command,
                    output=f"Simulated failure: {step.validation.success_criteria} not met",
                    exit_code=1,
                ),
                error=StepError(message=f"Step {step.id} failed", recoverable=True),
            )

        return StepResult(
            id=step.id,
            status=StepStatus.SUCCESS,
            duration=self.step_delay_ms,
            validation=StepValidationOutcome(
                passed=True,
                command=step.validation.command,
                output=f"Simulated: {step.validation.success_criteria}",
                exit_code=0,
            ),
            artifacts=list(step.outputs),
        )

    @staticmethod
    def _skipped(step: PlanStep) -> StepResult:
        return StepResult(
            id=step.id,
            status=StepStatus.SKIPPED,
            duration=0,
            validation=StepValidationOutcome(passed=False, command=step.validation.command),
        )

    @staticmethod
    def _overall_status(succeeded: int, total: int) -> ResultStatus:
        if succeeded == total:
            return ResultStatus.SUCCESS
        if succeeded > 0:
            return ResultStatus.PARTIAL_SUCCESS
        return ResultStatus.FAILURE
