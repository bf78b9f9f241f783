"""
Database Table Definitions.

This module defines the SQL schema using SQLModel.
We use the 'DBModel' suffix to distinguish these persistence models
from the Pydantic domain/state models (Task, Plan, TaskRecord, ...).

Each entity is stored whole as a JSONB payload; the columns next to it are
only the ones the repositories filter or sort on.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from sqlalchemy import Column, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskDBModel(SQLModel, table=True):
    """
    Persistence model for Tasks.
    Maps 1-to-1 with the 'tasks' table in Postgres.
    """

    __tablename__ = "tasks"

    task_id: str = Field(primary_key=True)
    type: str = Field(index=True)
    status: str = Field(index=True)

    # The full TaskRecord (context, constraints, metadata)
    data: Dict[str, Any] = Field(sa_column=Column(JSONB, nullable=False))

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class PlanDBModel(SQLModel, table=True):
    """
    Persistence model for Plans (proposals).
    Maps 1-to-1 with the 'plans' table in Postgres.
    """

    __tablename__ = "plans"

    plan_id: str = Field(primary_key=True)
    task_id: str = Field(index=True)
    status: str = Field(index=True)

    # The full PlanRecord (steps, risks, metadata)
    data: Dict[str, Any] = Field(sa_column=Column(JSONB, nullable=False))

    created_at: datetime = Field(default_factory=_utcnow)


class DecisionDBModel(SQLModel, table=True):
    """
    Persistence model for Decisions. Rows are never updated.
    """

    __tablename__ = "decisions"

    decision_id: str = Field(primary_key=True)
    task_id: str = Field(index=True)
    plan_id: Optional[str] = Field(default=None, index=True)
    decided_by: Optional[str] = None

    data: Dict[str, Any] = Field(sa_column=Column(JSONB, nullable=False))

    created_at: datetime = Field(default_factory=_utcnow)


class ResultDBModel(SQLModel, table=True):
    """
    Persistence model for execution Results (one row per attempt).
    """

    __tablename__ = "results"

    result_id: str = Field(primary_key=True)
    task_id: str = Field(index=True)
    plan_id: str = Field(index=True)

    data: Dict[str, Any] = Field(sa_column=Column(JSONB, nullable=False))

    created_at: datetime = Field(default_factory=_utcnow)


class ApprovalPatternDBModel(SQLModel, table=True):
    """
    Aggregated approval/rejection counts per (category, approach, project).
    """

    __tablename__ = "approval_patterns"
    # One row per key; a NULL project_id is the global pattern and counts as a value.
    __table_args__ = (
        UniqueConstraint(
            "category",
            "approach_type",
            "project_id",
            name="uq_approval_patterns_key",
            postgresql_nulls_not_distinct=True,
        ),
    )

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    category: str = Field(index=True)
    approach_type: str = Field(index=True)
    project_id: Optional[str] = Field(default=None, index=True)

    approved_count: int = Field(default=0)
    rejected_count: int = Field(default=0)
    avg_time_to_decision: int = Field(default=0)
    common_rejection_reasons: List[str] = Field(
        default_factory=list, sa_column=Column(JSONB, nullable=False)
    )

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
