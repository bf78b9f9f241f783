"""
Schemas - Structured Output Models for LLM Responses

Defines Pydantic models used for structured LLM outputs, ensuring
predictable and parseable proposals from the planning agent.
"""

from hitl_orchestrator.schemas.proposals import (
    DraftRisk,
    DraftStep,
    ProposalBatch,
    ProposalDraft,
)

__all__ = [
    "DraftRisk",
    "DraftStep",
    "ProposalBatch",
    "ProposalDraft",
]
