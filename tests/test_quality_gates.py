"""
Quality Gate Tests
"""

from hitl_orchestrator.domain.models import ExecutionMode, StepStatus
from hitl_orchestrator.execution.quality_gates import QualityGateEvaluator
from tests.conftest import make_result, make_step_result


def by_name(checks):
    return {check.name: check for check in checks}


class TestBuiltInGates:
    def test_all_successful_steps_pass(self):
        gates = QualityGateEvaluator().summarize(make_result())

        assert gates.passed
        assert [check.name for check in gates.checks] == [
            "All steps completed",
            "Test coverage",
            "No execution errors",
        ]

    def test_failed_step_fails_all_steps_completed(self):
        result = make_result(
            steps=[
                make_step_result("step-001"),
                make_step_result("step-002", status=StepStatus.FAILURE),
            ]
        )

        checks = by_name(QualityGateEvaluator().evaluate(result))

        assert not checks["All steps completed"].passed
        assert checks["All steps completed"].details == "Only 1/2 steps completed"
        assert checks["No execution errors"].passed

    def test_skipped_steps_count_as_incomplete(self):
        result = make_result(
            steps=[make_step_result("step-001"), make_step_result("step-002", status=StepStatus.SKIPPED)]
        )

        assert not QualityGateEvaluator().summarize(result).passed

    def test_step_error_fails_no_execution_errors(self):
        result = make_result(
            steps=[make_step_result("step-001", error="Connection refused"), make_step_result("step-002")]
        )

        checks = by_name(QualityGateEvaluator().evaluate(result))

        assert not checks["No execution errors"].passed
        assert "step-001" in checks["No execution errors"].details

    def test_missing_coverage_auto_passes_with_note(self):
        check = by_name(QualityGateEvaluator().evaluate(make_result(coverage=None)))["Test coverage"]

        assert check.passed
        assert "No coverage reported" in check.details

    def test_coverage_threshold(self):
        evaluator = QualityGateEvaluator()

        assert by_name(evaluator.evaluate(make_result(coverage=80.0)))["Test coverage"].passed
        low = by_name(evaluator.evaluate(make_result(coverage=79.5)))["Test coverage"]
        assert not low.passed
        assert low.details == "Coverage 79.5% below minimum 80%"

    def test_custom_threshold(self):
        evaluator = QualityGateEvaluator(coverage_threshold=60)

        assert evaluator.summarize(make_result(coverage=65.0)).passed


class TestRealModeGates:
    def test_simulated_results_skip_output_scanning(self):
        result = make_result(steps=[make_step_result("step-001", output="3 problems (3 errors)")])

        names = [check.name for check in QualityGateEvaluator().evaluate(result)]

        assert "Linting" not in names
        assert "Type safety" not in names

    def test_real_mode_adds_linting_and_type_checks(self):
        result = make_result(mode=ExecutionMode.REAL)

        checks = by_name(QualityGateEvaluator().evaluate(result))

        assert checks["Linting"].passed
        assert checks["Type safety"].passed

    def test_lint_failure_marker_fails_linting(self):
        result = make_result(
            mode=ExecutionMode.REAL,
            steps=[make_step_result("step-001", output="Linting failed: 2 problems (2 errors)")],
        )

        gates = QualityGateEvaluator().summarize(result)

        assert not gates.passed
        assert not by_name(gates.checks)["Linting"].passed
        assert by_name(gates.checks)["Type safety"].passed

    def test_type_failure_marker_fails_type_safety(self):
        result = make_result(
            mode=ExecutionMode.REAL,
            steps=[make_step_result("step-001", output="src/app.py:12: error: Incompatible types")],
        )

        checks = by_name(QualityGateEvaluator().evaluate(result))

        assert not checks["Type safety"].passed
        assert "step-001" in checks["Type safety"].details
