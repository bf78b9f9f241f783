"""
Approval Pattern Tracking

Aggregates human approve/reject decisions per (task category, approach,
project) so the planning side can learn:
- which approaches get approved more often
- the most common rejection reasons
- how long humans take to decide
"""

import threading
import uuid
from abc import ABC, abstractmethod
from collections import Counter
from typing import Dict, List, Optional, Tuple

from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from ..state.models import (
    ApproachStats,
    ApprovalObservation,
    ApprovalPattern,
    PatternStats,
    utcnow,
)
from ..infrastructure.database.tables import ApprovalPatternDBModel
from ..infrastructure.database.connection import get_engine

MAX_REJECTION_REASONS = 10


def merge_observation(pattern: ApprovalPattern, observation: ApprovalObservation) -> ApprovalPattern:
    """Folds one observation into an existing pattern (running average, capped reasons)."""
    total = pattern.total + 1
    reasons = list(pattern.common_rejection_reasons)
    if not observation.approved and observation.rejection_reason:
        if observation.rejection_reason not in reasons:
            reasons = (reasons + [observation.rejection_reason])[-MAX_REJECTION_REASONS:]

    return pattern.model_copy(
        update={
            "approved_count": pattern.approved_count + (1 if observation.approved else 0),
            "rejected_count": pattern.rejected_count + (0 if observation.approved else 1),
            "avg_time_to_decision": round(
                (pattern.avg_time_to_decision * (total - 1) + observation.minutes_to_decision) / total
            ),
            "common_rejection_reasons": reasons,
            "updated_at": utcnow(),
        }
    )


class PatternRepository(ABC):
    """
    Defines how the learning loop stores approval patterns.
    Statistics are computed here from list_patterns() so every backend
    reports them the same way.
    """

    @abstractmethod
    def record(self, observation: ApprovalObservation) -> ApprovalPattern:
        """Upserts the pattern matching the observation's (category, approach, project)."""
        pass

    @abstractmethod
    def list_patterns(
        self, category: Optional[str] = None, project_id: Optional[str] = None
    ) -> List[ApprovalPattern]:
        """
        Lists patterns. With a project_id, project-specific and global
        (project-less) patterns are both returned.
        """
        pass

    def find(
        self, category: str, approach: str, project_id: Optional[str] = None
    ) -> Optional[ApprovalPattern]:
        for pattern in self.list_patterns(category=category, project_id=project_id):
            if pattern.approach_type == approach and pattern.project_id == project_id:
                return pattern
        return None

    def get_stats(self, category: str, project_id: Optional[str] = None) -> Optional[PatternStats]:
        patterns = self.list_patterns(category=category, project_id=project_id)
        if not patterns:
            return None

        total_decisions = sum(p.total for p in patterns)
        total_approved = sum(p.approved_count for p in patterns)
        total_time = sum(p.avg_time_to_decision * p.total for p in patterns)
        reasons = Counter(r for p in patterns for r in p.common_rejection_reasons)

        approaches = sorted(
            (
                ApproachStats(
                    approach=p.approach_type,
                    approval_rate=p.approved_count / p.total if p.total else 0.0,
                    count=p.total,
                )
                for p in patterns
            ),
            key=lambda stats: stats.approval_rate,
            reverse=True,
        )

        return PatternStats(
            category=category,
            total_decisions=total_decisions,
            approval_rate=total_approved / total_decisions if total_decisions else 0.0,
            avg_time_to_decision=round(total_time / total_decisions) if total_decisions else 0,
            top_approaches=approaches[:5],
            common_rejections=[reason for reason, _ in reasons.most_common(5)],
        )

    def get_most_successful_approach(
        self, category: str, project_id: Optional[str] = None, min_decisions: int = 3
    ) -> Optional[str]:
        stats = self.get_stats(category, project_id)
        if not stats:
            return None
        best = next((a for a in stats.top_approaches if a.count >= min_decisions), None)
        return best.approach if best else None

    def is_approach_risky(
        self,
        category: str,
        approach: str,
        project_id: Optional[str] = None,
        threshold: float = 0.3,
    ) -> Tuple[bool, float, List[str]]:
        """Returns (risky, rejection_rate, reasons). Risky means rejection rate above threshold."""
        pattern = self.find(category, approach, project_id)
        if pattern is None or pattern.total == 0:
            return False, 0.0, []
        rejection_rate = pattern.rejected_count / pattern.total
        return rejection_rate > threshold, rejection_rate, list(pattern.common_rejection_reasons)


class InMemoryPatternRepository(PatternRepository):
    def __init__(self):
        self._store: Dict[Tuple[str, str, Optional[str]], ApprovalPattern] = {}
        self._lock = threading.Lock()

    def record(self, observation: ApprovalObservation) -> ApprovalPattern:
        key = (observation.category, observation.approach, observation.project_id)
        with self._lock:
            existing = self._store.get(key) or ApprovalPattern(
                id=str(uuid.uuid4()),
                category=observation.category,
                approach_type=observation.approach,
                project_id=observation.project_id,
            )
            pattern = merge_observation(existing, observation)
            self._store[key] = pattern
        return pattern.model_copy(deep=True)

    def list_patterns(self, category=None, project_id=None) -> List[ApprovalPattern]:
        with self._lock:
            patterns = [
                pattern
                for pattern in self._store.values()
                if (category is None or pattern.category == category)
                and (project_id is None or pattern.project_id in (project_id, None))
            ]
        patterns.sort(key=lambda p: (p.category, p.approach_type))
        return [pattern.model_copy(deep=True) for pattern in patterns]


class PostgresPatternRepository(PatternRepository):
    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine or get_engine()

    def record(self, observation: ApprovalObservation) -> ApprovalPattern:
        now = utcnow()
        with Session(self.engine) as db:
            # Ensure the row exists, then lock it for the read-merge-write.
            db.connection().execute(
                insert(ApprovalPatternDBModel)
                .values(
                    id=uuid.uuid4(),
                    category=observation.category,
                    approach_type=observation.approach,
                    project_id=observation.project_id,
                    approved_count=0,
                    rejected_count=0,
                    avg_time_to_decision=0,
                    common_rejection_reasons=[],
                    created_at=now,
                    updated_at=now,
                )
                .on_conflict_do_nothing(constraint="uq_approval_patterns_key")
            )
            statement = (
                select(ApprovalPatternDBModel)
                .where(
                    ApprovalPatternDBModel.category == observation.category,
                    ApprovalPatternDBModel.approach_type == observation.approach,
                    ApprovalPatternDBModel.project_id == observation.project_id
                    if observation.project_id is not None
                    else ApprovalPatternDBModel.project_id.is_(None),
                )
                .with_for_update()
            )
            row = db.exec(statement).one()

            pattern = merge_observation(self._to_pattern(row), observation)
            row.approved_count = pattern.approved_count
            row.rejected_count = pattern.rejected_count
            row.avg_time_to_decision = pattern.avg_time_to_decision
            row.common_rejection_reasons = pattern.common_rejection_reasons
            row.updated_at = pattern.updated_at
            db.add(row)
            db.commit()
            return pattern

    def list_patterns(self, category=None, project_id=None) -> List[ApprovalPattern]:
        with Session(self.engine) as db:
            statement = select(ApprovalPatternDBModel).order_by(
                ApprovalPatternDBModel.category, ApprovalPatternDBModel.approach_type
            )
            if category is not None:
                statement = statement.where(ApprovalPatternDBModel.category == category)
            if project_id is not None:
                statement = statement.where(
                    (ApprovalPatternDBModel.project_id == project_id)
                    | ApprovalPatternDBModel.project_id.is_(None)
                )
            return [self._to_pattern(row) for row in db.exec(statement).all()]

    @staticmethod
    def _to_pattern(row: ApprovalPatternDBModel) -> ApprovalPattern:
        return ApprovalPattern(
            id=str(row.id),
            category=row.category,
            approach_type=row.approach_type,
            approved_count=row.approved_count or 0,
            rejected_count=row.rejected_count or 0,
            avg_time_to_decision=row.avg_time_to_decision or 0,
            common_rejection_reasons=list(row.common_rejection_reasons or []),
            project_id=row.project_id,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
