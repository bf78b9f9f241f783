"""
Pre-Execution Validation

Checks a Plan against its Task before the execution agent is allowed to run it:
- every validation command is a plausible shell invocation
- step ids are unique and every dependency references an existing step
- the dependency graph has no cycles
- the estimated duration fits the task's max_duration

Errors block execution. Warnings are only reported (and logged by the engine).
"""

import re
import shlex
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..domain.models import Plan, PlanStep, Task

MAX_RECOMMENDED_STEPS = 20
DURATION_WARNING_RATIO = 0.8

# Control characters other than tab/newline/carriage return never belong in a command.
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

_DANGEROUS_PATTERNS = [
    (re.compile(r"rm\s+-rf\s+/(?![a-zA-Z])"), "Dangerous rm -rf on root path"),
    (re.compile(r"rm\s+-rf\s+\*"), "Dangerous rm -rf with wildcard"),
    (re.compile(r":\s*\(\)\s*\{\s*:\s*\|\s*:\s*&\s*\}\s*;"), "Fork bomb detected"),
    (re.compile(r">\s*/dev/sd[a-z]"), "Writing directly to block device"),
    (re.compile(r"mkfs\."), "Filesystem format command detected"),
    (re.compile(r"dd\s+if=.*of=/dev/"), "dd to block device detected"),
]


@dataclass
class ValidationIssue:
    code: str
    message: str
    step_id: Optional[str] = None
    field: Optional[str] = None


@dataclass
class ValidationReport:
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def error(self, code: str, message: str, step_id: Optional[str] = None, field: Optional[str] = None):
        self.errors.append(ValidationIssue(code, message, step_id, field))

    def warn(self, code: str, message: str, step_id: Optional[str] = None):
        self.warnings.append(ValidationIssue(code, message, step_id))


def validate_plan(plan: Plan, task: Task) -> ValidationReport:
    """Validates a plan before execution."""
    report = ValidationReport()

    if not plan.steps:
        report.error("EMPTY_PLAN", "Plan has no steps")
        return report

    seen_ids = set()
    for step in plan.steps:
        if step.id in seen_ids:
            report.error("DUPLICATE_STEP_ID", f"Step id {step.id} is used more than once", step.id, "id")
        seen_ids.add(step.id)

    for step in plan.steps:
        _validate_step(step, seen_ids, report)

    cycle = find_dependency_cycle(plan.steps)
    if cycle:
        report.error(
            "CIRCULAR_DEPENDENCY",
            f"Circular dependency detected: {' -> '.join(cycle)}",
            cycle[0],
            "dependencies",
        )

    _validate_duration(plan, task, report)

    if len(plan.steps) > MAX_RECOMMENDED_STEPS:
        report.warn(
            "MANY_STEPS",
            f"Plan has {len(plan.steps)} steps. Consider breaking into smaller tasks.",
        )

    return report


def _validate_step(step: PlanStep, step_ids: set, report: ValidationReport):
    command = step.validation.command
    if not command or not command.strip():
        report.error("EMPTY_COMMAND", "Validation command is empty", step.id, "validation.command")
    else:
        for issue in check_shell_command(command):
            report.error("INVALID_COMMAND", issue, step.id, "validation.command")
        for pattern, message in _DANGEROUS_PATTERNS:
            if pattern.search(command):
                report.warn("SUSPICIOUS_COMMAND", message, step.id)

    if not step.validation.success_criteria.strip():
        report.warn("MISSING_SUCCESS_CRITERIA", "Step has no success criteria defined", step.id)

    for dependency in step.dependencies:
        if dependency not in step_ids:
            report.error(
                "INVALID_DEPENDENCY",
                f"Step depends on non-existent step: {dependency}",
                step.id,
                "dependencies",
            )


def check_shell_command(command: str) -> List[str]:
    """Returns the reasons a command is not a plausible shell invocation."""
    issues = []
    if _CONTROL_CHARS.search(command):
        issues.append("Command contains control characters")
    try:
        shlex.split(command)
    except ValueError as e:
        # shlex reports unbalanced quotes and trailing escapes
        issues.append(f"Command cannot be parsed: {e}")
    return issues


def find_dependency_cycle(steps: List[PlanStep]) -> Optional[List[str]]:
    """
    Depth-first search over the step dependency graph.

    Returns the first cycle found as a closed path of step ids
    (e.g. ["step-001", "step-002", "step-001"]), or None if the graph is acyclic.
    Unknown dependency ids are ignored here; they are reported separately.
    """
    graph: Dict[str, List[str]] = {step.id: list(step.dependencies) for step in steps}
    visited = set()
    path: List[str] = []
    on_path = set()

    def visit(step_id: str) -> Optional[List[str]]:
        if step_id in on_path:
            return path[path.index(step_id):] + [step_id]
        if step_id in visited or step_id not in graph:
            return None
        visited.add(step_id)
        on_path.add(step_id)
        path.append(step_id)
        for dependency in graph[step_id]:
            cycle = visit(dependency)
            if cycle:
                return cycle
        path.pop()
        on_path.discard(step_id)
        return None

    for step in steps:
        cycle = visit(step.id)
        if cycle:
            return cycle
    return None


def _validate_duration(plan: Plan, task: Task, report: ValidationReport):
    limit = task.constraints.max_duration
    if plan.estimated_duration > limit:
        report.error(
            "DURATION_EXCEEDED",
            f"Plan duration ({plan.estimated_duration}m) exceeds task constraint ({limit}m)",
            field="estimated_duration",
        )
    elif plan.estimated_duration > limit * DURATION_WARNING_RATIO:
        report.warn(
            "DURATION_CLOSE_TO_LIMIT",
            f"Plan duration ({plan.estimated_duration}m) is close to constraint ({limit}m)",
        )


def is_plan_valid(plan: Plan, task: Task) -> bool:
    return validate_plan(plan, task).valid


def format_validation_result(report: ValidationReport) -> str:
    """Formats a report as human-readable text."""
    lines = ["Plan validation passed" if report.valid else "Plan validation failed"]

    for title, issues in (("Errors:", report.errors), ("Warnings:", report.warnings)):
        if not issues:
            continue
        lines.append("")
        lines.append(title)
        for issue in issues:
            location = f" (step: {issue.step_id})" if issue.step_id else ""
            lines.append(f"  - [{issue.code}]{location}: {issue.message}")

    return "\n".join(lines)
