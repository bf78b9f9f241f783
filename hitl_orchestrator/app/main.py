import logging
from typing import Optional

from fastapi import FastAPI, HTTPException, Depends, Request, status
from fastapi.responses import JSONResponse

from ..config import settings
from ..domain.models import Decision, Result, Task
from ..execution.engine import WorkflowEngine
from ..execution.pre_validation import format_validation_result
from ..execution.state_machine import (
    get_state_description,
    is_terminal_state,
    requires_human_input,
)
from ..services.exceptions import (
    CollaboratorFailureError,
    DuplicateRecordError,
    NotFoundError,
    ValidationFailedError,
)
from ..state.models import WorkflowOutcome
from .dependencies import get_workflow_engine
from .schemas import (
    FailRequest,
    ProcessTaskRequest,
    ReplanRequest,
    VerifyRequest,
    WorkflowRead,
)

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="HITL Task Orchestrator")


# --- Error Mapping ---

@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(DuplicateRecordError)
async def duplicate_handler(request: Request, exc: DuplicateRecordError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(ValidationFailedError)
async def validation_failed_handler(request: Request, exc: ValidationFailedError):
    return JSONResponse(
        status_code=422,
        content={
            "detail": str(exc),
            "report": format_validation_result(exc.report),
        },
    )


@app.exception_handler(CollaboratorFailureError)
async def collaborator_failure_handler(request: Request, exc: CollaboratorFailureError):
    logger.error(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=status.HTTP_502_BAD_GATEWAY, content={"detail": str(exc)})


def _respond(outcome: WorkflowOutcome) -> WorkflowOutcome:
    """Refused transitions become 409 so the human sees which guard failed."""
    if not outcome.success:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=outcome.model_dump(mode="json"),
        )
    return outcome


# --- Endpoints ---

@app.post(
    "/tasks",
    response_model=WorkflowOutcome,
    status_code=status.HTTP_201_CREATED
)
async def create_task(
    task: Task,
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Stores a new task and moves it to planning."""
    return _respond(await engine.create_task_workflow(task))


@app.post("/tasks/{task_id}/proposals", response_model=WorkflowOutcome)
async def process_task(
    task_id: str,
    body: Optional[ProcessTaskRequest] = None,
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Generates proposals for the task (re-enterable)."""
    feedback = body.feedback if body else None
    return _respond(await engine.process_task(task_id, feedback=feedback))


@app.post("/decisions", response_model=WorkflowOutcome, status_code=status.HTTP_201_CREATED)
async def record_decision(
    decision: Decision,
    decided_by: Optional[str] = None,
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    return _respond(await engine.record_decision(decision, decided_by=decided_by))


@app.post("/tasks/{task_id}/plans/{plan_id}/execute", response_model=WorkflowOutcome)
async def execute_approved_plan(
    task_id: str,
    plan_id: str,
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    return _respond(await engine.execute_approved_plan(plan_id, task_id))


@app.post("/tasks/{task_id}/plans/{plan_id}/run", response_model=WorkflowOutcome)
async def run_execution(
    task_id: str,
    plan_id: str,
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Validates and runs the plan, then records the result."""
    return _respond(await engine.run_execution(plan_id, task_id))


@app.post("/results", response_model=WorkflowOutcome, status_code=status.HTTP_201_CREATED)
async def record_result(
    result: Result,
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Accepts a Result from an external execution agent."""
    return _respond(await engine.record_result(result))


@app.post("/tasks/{task_id}/verify", response_model=WorkflowOutcome)
async def verify_result(
    task_id: str,
    body: VerifyRequest,
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    return _respond(await engine.verify_result(task_id, body.verified, reason=body.reason))


@app.post("/tasks/{task_id}/retry", response_model=WorkflowOutcome)
async def retry_task(
    task_id: str,
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    return _respond(await engine.retry_task(task_id))


@app.post("/tasks/{task_id}/replan", response_model=WorkflowOutcome)
async def replan_task(
    task_id: str,
    body: ReplanRequest,
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    return _respond(await engine.replan_task(task_id, body.feedback))


@app.post("/tasks/{task_id}/fail", response_model=WorkflowOutcome)
async def fail_task(
    task_id: str,
    body: FailRequest,
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    try:
        outcome = await engine.fail_task(task_id, body.reason)
    except NotFoundError:
        raise
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _respond(outcome)


@app.get("/tasks/{task_id}/workflow", response_model=WorkflowRead)
def get_workflow(
    task_id: str,
    engine: WorkflowEngine = Depends(get_workflow_engine)
):
    """Current state, the actions it allows and the transition history."""
    state = engine.get_workflow_state(task_id)
    return WorkflowRead(
        task_id=task_id,
        state=state,
        description=get_state_description(state),
        terminal=is_terminal_state(state),
        requires_human_input=requires_human_input(state),
        valid_actions=engine.get_valid_actions(task_id),
        history=engine.get_transition_history(task_id),
    )
