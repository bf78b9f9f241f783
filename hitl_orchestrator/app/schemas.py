"""
API Layer - Request/Response Schemas

Pydantic models for API request and response validation.
Tasks, Decisions and Results are accepted as their domain models directly.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from ..state.models import TransitionAction, WorkflowEvent, WorkflowState


class ProcessTaskRequest(BaseModel):
    feedback: Optional[str] = None


class VerifyRequest(BaseModel):
    verified: bool
    reason: Optional[str] = None


class ReplanRequest(BaseModel):
    feedback: str = Field(..., min_length=1)


class FailRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class WorkflowRead(BaseModel):
    task_id: str
    state: WorkflowState
    description: str
    terminal: bool
    requires_human_input: bool
    valid_actions: List[TransitionAction]
    history: List[WorkflowEvent]
