from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from ..domain.models import Decision
from ..state.models import DecisionRecord
from ..services.exceptions import DuplicateRecordError, NotFoundError
from ..infrastructure.database.tables import DecisionDBModel
from ..infrastructure.database.connection import get_engine


class DecisionRepository(ABC):
    """
    Append-only store of human decisions.
    No update(): a decision is never changed once recorded.
    """

    @abstractmethod
    def create(self, decision: Decision, decided_by: Optional[str] = None) -> DecisionRecord:
        pass

    @abstractmethod
    def get(self, decision_id: str) -> DecisionRecord:
        """
        Retrieves a decision by ID.
        Raises NotFoundError if not found.
        """
        pass

    @abstractmethod
    def list(self, task_id: Optional[str] = None) -> List[DecisionRecord]:
        """Lists decisions in the order they were recorded."""
        pass

    @abstractmethod
    def delete(self, decision_id: str) -> bool:
        pass


class InMemoryDecisionRepository(DecisionRepository):
    def __init__(self):
        self._store: Dict[str, DecisionRecord] = {}

    def create(self, decision: Decision, decided_by: Optional[str] = None) -> DecisionRecord:
        if decision.id in self._store:
            raise DuplicateRecordError("decision", decision.id)
        record = DecisionRecord(**decision.model_dump(), decided_by=decided_by)
        self._store[decision.id] = record
        return record.model_copy(deep=True)

    def get(self, decision_id: str) -> DecisionRecord:
        if decision_id not in self._store:
            raise NotFoundError("decision", decision_id)
        return self._store[decision_id].model_copy(deep=True)

    def list(self, task_id=None) -> List[DecisionRecord]:
        return [
            record.model_copy(deep=True)
            for record in self._store.values()
            if task_id is None or record.task_id == task_id
        ]

    def delete(self, decision_id: str) -> bool:
        if decision_id in self._store:
            del self._store[decision_id]
            return True
        return False


class PostgresDecisionRepository(DecisionRepository):
    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine or get_engine()

    def create(self, decision: Decision, decided_by: Optional[str] = None) -> DecisionRecord:
        record = DecisionRecord(**decision.model_dump(), decided_by=decided_by)

        with Session(self.engine) as db:
            if db.get(DecisionDBModel, record.id) is not None:
                raise DuplicateRecordError("decision", record.id)
            db.add(
                DecisionDBModel(
                    decision_id=record.id,
                    task_id=record.task_id,
                    plan_id=record.plan_id,
                    decided_by=decided_by,
                    data=record.model_dump(mode="json"),
                    created_at=record.created_at,
                )
            )
            db.commit()

        return record

    def get(self, decision_id: str) -> DecisionRecord:
        with Session(self.engine) as db:
            row = db.get(DecisionDBModel, decision_id)
            if not row:
                raise NotFoundError("decision", decision_id)
            return DecisionRecord.model_validate(row.data)

    def list(self, task_id=None) -> List[DecisionRecord]:
        with Session(self.engine) as db:
            statement = select(DecisionDBModel).order_by(DecisionDBModel.created_at)
            if task_id is not None:
                statement = statement.where(DecisionDBModel.task_id == task_id)
            return [DecisionRecord.model_validate(row.data) for row in db.exec(statement).all()]

    def delete(self, decision_id: str) -> bool:
        with Session(self.engine) as db:
            row = db.get(DecisionDBModel, decision_id)
            if row:
                db.delete(row)
                db.commit()
                return True
            return False
