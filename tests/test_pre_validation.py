"""
Pre-Execution Validation Tests
"""

import pytest

from hitl_orchestrator.execution.pre_validation import (
    check_shell_command,
    find_dependency_cycle,
    format_validation_result,
    is_plan_valid,
    validate_plan,
)
from tests.conftest import make_plan, make_step, make_task


def codes(issues):
    return [issue.code for issue in issues]


# -----------------------------------------------------------------------------
# Dependency Graph
# -----------------------------------------------------------------------------
class TestDependencies:
    def test_valid_plan_passes(self):
        report = validate_plan(make_plan(), make_task())

        assert report.valid
        assert report.errors == []
        assert is_plan_valid(make_plan(), make_task())

    def test_two_step_cycle_is_reported(self):
        plan = make_plan(
            steps=[
                make_step("step-001", dependencies=["step-002"]),
                make_step("step-002", dependencies=["step-001"]),
            ]
        )

        report = validate_plan(plan, make_task())

        assert not report.valid
        assert "CIRCULAR_DEPENDENCY" in codes(report.errors)
        cycle_error = next(e for e in report.errors if e.code == "CIRCULAR_DEPENDENCY")
        assert cycle_error.message == "Circular dependency detected: step-001 -> step-002 -> step-001"

    def test_self_dependency_is_a_cycle(self):
        assert find_dependency_cycle([make_step("step-001", dependencies=["step-001"])]) == [
            "step-001",
            "step-001",
        ]

    def test_longer_cycle_behind_acyclic_prefix(self):
        steps = [
            make_step("step-001"),
            make_step("step-002", dependencies=["step-001", "step-004"]),
            make_step("step-003", dependencies=["step-002"]),
            make_step("step-004", dependencies=["step-003"]),
        ]

        assert find_dependency_cycle(steps) == ["step-002", "step-004", "step-003", "step-002"]

    def test_diamond_is_not_a_cycle(self):
        steps = [
            make_step("step-001"),
            make_step("step-002", dependencies=["step-001"]),
            make_step("step-003", dependencies=["step-001"]),
            make_step("step-004", dependencies=["step-002", "step-003"]),
        ]

        assert find_dependency_cycle(steps) is None

    def test_unknown_dependency_is_an_error(self):
        plan = make_plan(steps=[make_step("step-001", dependencies=["step-009"])])

        report = validate_plan(plan, make_task())

        assert codes(report.errors) == ["INVALID_DEPENDENCY"]
        assert report.errors[0].step_id == "step-001"

    def test_duplicate_step_ids(self):
        plan = make_plan(steps=[make_step("step-001"), make_step("step-001")])

        assert "DUPLICATE_STEP_ID" in codes(validate_plan(plan, make_task()).errors)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------
class TestCommands:
    @pytest.mark.parametrize(
        "command",
        ["pytest -q", "npm run lint && npm test", "grep -r 'TODO' src/", 'echo "done"'],
    )
    def test_plausible_commands(self, command):
        assert check_shell_command(command) == []

    @pytest.mark.parametrize("command", ["echo 'unterminated", "ls\x00 -la", "echo \x1b[31m"])
    def test_implausible_commands(self, command):
        assert check_shell_command(command)

    def test_empty_command_is_an_error(self):
        plan = make_plan(steps=[make_step("step-001", command="   ")])

        assert codes(validate_plan(plan, make_task()).errors) == ["EMPTY_COMMAND"]

    def test_dangerous_command_is_only_a_warning(self):
        plan = make_plan(steps=[make_step("step-001", command="rm -rf / --no-preserve-root")])

        report = validate_plan(plan, make_task())

        assert report.valid
        assert codes(report.warnings) == ["SUSPICIOUS_COMMAND"]

    def test_missing_success_criteria_is_a_warning(self):
        plan = make_plan(steps=[make_step("step-001", success_criteria=" ")])

        assert codes(validate_plan(plan, make_task()).warnings) == ["MISSING_SUCCESS_CRITERIA"]


# -----------------------------------------------------------------------------
# Duration & Size
# -----------------------------------------------------------------------------
class TestDuration:
    def test_duration_over_limit_is_an_error(self):
        report = validate_plan(make_plan(estimated_duration=300), make_task(max_duration=240))

        assert codes(report.errors) == ["DURATION_EXCEEDED"]
        assert "300m" in report.errors[0].message

    def test_duration_at_limit_is_allowed_with_warning(self):
        report = validate_plan(make_plan(estimated_duration=240), make_task(max_duration=240))

        assert report.valid
        assert codes(report.warnings) == ["DURATION_CLOSE_TO_LIMIT"]

    def test_comfortable_duration_has_no_warning(self):
        report = validate_plan(make_plan(estimated_duration=60), make_task(max_duration=240))

        assert report.warnings == []

    def test_many_steps_warning(self):
        steps = [make_step(f"step-{index:03d}") for index in range(1, 22)]

        report = validate_plan(make_plan(steps=steps), make_task())

        assert report.valid
        assert codes(report.warnings) == ["MANY_STEPS"]


# -----------------------------------------------------------------------------
# Formatting
# -----------------------------------------------------------------------------
class TestFormatting:
    def test_passing_report(self):
        assert format_validation_result(validate_plan(make_plan(), make_task())) == "Plan validation passed"

    def test_failing_report_lists_errors_and_warnings(self):
        plan = make_plan(
            estimated_duration=300,
            steps=[make_step("step-001", command="rm -rf *", dependencies=["step-007"])],
        )

        text = format_validation_result(validate_plan(plan, make_task(max_duration=240)))

        assert text.startswith("Plan validation failed")
        assert "Errors:" in text
        assert "[INVALID_DEPENDENCY] (step: step-001)" in text
        assert "[DURATION_EXCEEDED]" in text
        assert "Warnings:" in text
        assert "[SUSPICIOUS_COMMAND] (step: step-001)" in text
