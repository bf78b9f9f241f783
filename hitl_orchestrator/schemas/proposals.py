"""
Schemas - Structured Output Models for LLM Responses

This module defines the Pydantic models the planning agent asks the LLM to
fill in. They are looser than the domain Plan (no ids, no length
limits the LLM could trip over); the LLMPlanningAgent turns each draft into a
validated Plan.
"""
from typing import List

from pydantic import BaseModel, Field

from ..domain.models import AgentRole, RiskSeverity


class DraftStep(BaseModel):
    agent: AgentRole = Field(
        ...,
        description="The specialist who performs this step."
    )
    action: str = Field(
        ...,
        description="What is done in this step, in one sentence (10-200 characters)."
    )
    inputs: List[str] = Field(default_factory=list, description="Files or artifacts this step reads.")
    outputs: List[str] = Field(default_factory=list, description="Files or artifacts this step produces.")
    command: str = Field(
        ...,
        description="Shell command that validates the step, e.g. 'pytest tests/ -q'."
    )
    success_criteria: str = Field(
        ...,
        description="What a passing validation command looks like."
    )
    depends_on: List[int] = Field(
        default_factory=list,
        description="1-based numbers of earlier steps that must finish first."
    )


class DraftRisk(BaseModel):
    description: str
    severity: RiskSeverity
    mitigation: str


class ProposalDraft(BaseModel):
    """
    One implementation path as generated by the LLM.
    """
    approach: str = Field(
        ...,
        description="Short label for the strategy, e.g. 'Incremental refactor'."
    )
    reasoning: str = Field(
        ...,
        description="Why this approach fits the task and its constraints."
    )
    steps: List[DraftStep] = Field(..., min_length=1)
    estimated_duration: int = Field(
        ...,
        description="Total estimated minutes. At least 30."
    )
    risks: List[DraftRisk] = Field(default_factory=list)


class ProposalBatch(BaseModel):
    """
    The strict JSON structure the LLM must generate when asked for proposals.
    """
    proposals: List[ProposalDraft] = Field(..., min_length=1)
