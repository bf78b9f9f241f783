"""
Simulated Execution Agent Tests
"""

import pytest

from hitl_orchestrator.domain.models import ExecutionMode, ResultStatus, StepStatus
from hitl_orchestrator.execution.executor import SimulatedExecutionAgent
from tests.conftest import make_plan, make_step


def three_step_plan():
    return make_plan(
        steps=[
            make_step("step-001", outputs=["src/api/limits.py"]),
            make_step("step-002", dependencies=["step-001"]),
            make_step("step-003", dependencies=["step-002"], outputs=["docs/limits.md"]),
        ]
    )


class TestSimulatedExecutionAgent:
    @pytest.mark.asyncio
    async def test_one_result_per_step_in_plan_order(self):
        result = await SimulatedExecutionAgent().execute(three_step_plan(), "task-001")

        assert [step.id for step in result.steps] == ["step-001", "step-002", "step-003"]
        assert all(step.status == StepStatus.SUCCESS for step in result.steps)
        assert result.status == ResultStatus.SUCCESS
        assert result.id.startswith("result-")
        assert result.plan_id == "plan-001"
        assert result.task_id == "task-001"

    @pytest.mark.asyncio
    async def test_metadata_marks_simulated_run(self):
        result = await SimulatedExecutionAgent(executed_by="ci-sim").execute(three_step_plan(), "task-001")

        assert result.metadata.execution_mode == ExecutionMode.SIMULATED
        assert result.metadata.executed_by == "ci-sim"
        assert result.metadata.environment == "local"
        assert result.metadata.started_at <= result.metadata.completed_at
        assert result.artifacts.files_modified == ["docs/limits.md", "src/api/limits.py"]

    @pytest.mark.asyncio
    async def test_steps_after_failure_are_skipped(self):
        agent = SimulatedExecutionAgent(fail_step_id="step-002")

        result = await agent.execute(three_step_plan(), "task-001")

        assert [step.status for step in result.steps] == [
            StepStatus.SUCCESS,
            StepStatus.FAILURE,
            StepStatus.SKIPPED,
        ]
        assert result.status == ResultStatus.PARTIAL_SUCCESS
        assert result.steps[1].error.message == "Step step-002 failed"
        assert result.steps[1].validation.exit_code == 1
        assert result.artifacts.test_results.failed == 2

    @pytest.mark.asyncio
    async def test_first_step_failure_is_total_failure(self):
        result = await SimulatedExecutionAgent(fail_step_id="step-001").execute(three_step_plan(), "task-001")

        assert result.status == ResultStatus.FAILURE

    @pytest.mark.asyncio
    async def test_step_delay_accumulates_duration(self):
        result = await SimulatedExecutionAgent(step_delay_ms=1).execute(three_step_plan(), "task-001")

        assert result.duration == 3

    @pytest.mark.asyncio
    async def test_reported_coverage(self):
        result = await SimulatedExecutionAgent(coverage=91.5).execute(three_step_plan(), "task-001")

        assert result.artifacts.test_results.coverage == 91.5
