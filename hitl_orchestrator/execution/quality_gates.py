"""
Quality Gates

Pure evaluation of a completed Result into an ordered list of named checks.
The WorkflowEngine merges the outcome into Result.quality_gates before storing it.
"""

from typing import List, Sequence

from ..config import settings
from ..domain.models import ExecutionMode, QualityGateCheck, QualityGates, Result, StepStatus

LINT_FAILURE_MARKERS: Sequence[str] = (
    "lint error",
    "linting failed",
    "problems (",
    "would reformat",
    "found 1 error",
    "errors found",
)

TYPE_FAILURE_MARKERS: Sequence[str] = (
    "error ts",
    "type error",
    "typeerror",
    "incompatible type",
    "mypy: error",
    ": error: ",
)


class QualityGateEvaluator:
    def __init__(self, coverage_threshold: float = settings.COVERAGE_THRESHOLD):
        self.coverage_threshold = coverage_threshold

    def evaluate(self, result: Result) -> List[QualityGateCheck]:
        checks = [
            self._check_all_steps_completed(result),
            self._check_test_coverage(result),
            self._check_no_errors(result),
        ]

        # Output-scanning heuristics only make sense for commands that really ran.
        if result.metadata.execution_mode == ExecutionMode.REAL:
            checks.append(self._scan_outputs(result, "Linting", LINT_FAILURE_MARKERS))
            checks.append(self._scan_outputs(result, "Type safety", TYPE_FAILURE_MARKERS))

        return checks

    def summarize(self, result: Result) -> QualityGates:
        checks = self.evaluate(result)
        return QualityGates(passed=all(check.passed for check in checks), checks=checks)

    def _check_all_steps_completed(self, result: Result) -> QualityGateCheck:
        total = len(result.steps)
        successful = sum(1 for step in result.steps if step.status == StepStatus.SUCCESS)
        passed = successful == total
        return QualityGateCheck(
            name="All steps completed",
            passed=passed,
            details=(
                f"All {total} steps completed successfully"
                if passed
                else f"Only {successful}/{total} steps completed"
            ),
        )

    def _check_test_coverage(self, result: Result) -> QualityGateCheck:
        test_results = result.artifacts.test_results
        if test_results is None or test_results.coverage is None:
            return QualityGateCheck(
                name="Test coverage",
                passed=True,
                details="No coverage reported, skipping coverage requirement",
            )

        coverage = test_results.coverage
        passed = coverage >= self.coverage_threshold
        return QualityGateCheck(
            name="Test coverage",
            passed=passed,
            details=(
                f"Coverage {coverage:g}% meets minimum {self.coverage_threshold:g}%"
                if passed
                else f"Coverage {coverage:g}% below minimum {self.coverage_threshold:g}%"
            ),
        )

    def _check_no_errors(self, result: Result) -> QualityGateCheck:
        failing = [step.id for step in result.steps if step.error is not None]
        return QualityGateCheck(
            name="No execution errors",
            passed=not failing,
            details=(
                "No errors detected"
                if not failing
                else f"Errors detected in steps: {', '.join(failing)}"
            ),
        )

    def _scan_outputs(self, result: Result, name: str, markers: Sequence[str]) -> QualityGateCheck:
        flagged = [
            step.id
            for step in result.steps
            if any(marker in step.validation.output.lower() for marker in markers)
        ]
        return QualityGateCheck(
            name=name,
            passed=not flagged,
            details=(
                f"No {name.lower()} issues found in step output"
                if not flagged
                else f"{name} issues reported by steps: {', '.join(flagged)}"
            ),
        )
