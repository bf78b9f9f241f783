"""
Service Layer Exceptions

Custom exceptions raised by the stores, the collaborators and the WorkflowEngine.

Refused state machine transitions are NOT exceptions: they come back as a
failed TransitionResult (kind InvalidTransition or GuardFailed) so the caller
can show the human exactly what was wrong.
"""


class OrchestratorError(Exception):
    """Base class for every error raised by the orchestration core."""
    pass


class NotFoundError(OrchestratorError, ValueError):
    """Raised when a task, plan, decision or result does not exist in its store."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} '{entity_id}' not found.")


class DuplicateRecordError(OrchestratorError):
    """Raised when a store is asked to create a row whose id already exists."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity.capitalize()} '{entity_id}' already exists.")


class ValidationFailedError(OrchestratorError):
    """Raised when pre-execution validation blocks a plan from running."""

    def __init__(self, plan_id: str, report):
        self.plan_id = plan_id
        self.report = report
        messages = "; ".join(error.message for error in report.errors)
        super().__init__(f"Plan '{plan_id}' failed pre-execution validation: {messages}")


class CollaboratorFailureError(OrchestratorError):
    """Raised when the planning or execution agent fails or breaks its contract."""

    def __init__(self, collaborator: str, message: str):
        self.collaborator = collaborator
        super().__init__(f"{collaborator} failed: {message}")
