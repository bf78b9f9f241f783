from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from ..domain.models import Plan
from ..state.models import PlanRecord, PlanStatus
from ..services.exceptions import DuplicateRecordError, NotFoundError
from ..infrastructure.database.tables import PlanDBModel
from ..infrastructure.database.connection import get_engine


class PlanRepository(ABC):
    """
    Defines how the application accesses plans (proposals).
    """

    @abstractmethod
    def create(self, plan: Plan) -> PlanRecord:
        """Stores a new plan with status 'proposed'."""
        pass

    @abstractmethod
    def create_many(self, plans: Sequence[Plan]) -> List[PlanRecord]:
        """
        Stores several plans at once.
        Either every plan is stored or none is.
        """
        pass

    @abstractmethod
    def get(self, plan_id: str) -> PlanRecord:
        """
        Retrieves a plan by ID.
        Raises NotFoundError if not found.
        """
        pass

    @abstractmethod
    def list(
        self, task_id: Optional[str] = None, status: Optional[PlanStatus] = None
    ) -> List[PlanRecord]:
        """Lists plans, newest first."""
        pass

    @abstractmethod
    def update(self, plan_id: str, changes: Dict[str, Any]) -> PlanRecord:
        """Applies a partial update (status, metadata) and returns the new record."""
        pass

    def update_status(self, plan_id: str, status: PlanStatus) -> PlanRecord:
        return self.update(plan_id, {"status": PlanStatus(status)})

    @abstractmethod
    def delete(self, plan_id: str) -> bool:
        pass


def _apply_changes(record: PlanRecord, changes: Dict[str, Any]) -> PlanRecord:
    # Re-validate so partial updates cannot smuggle in malformed data
    return PlanRecord.model_validate({**record.model_dump(), **changes})


class InMemoryPlanRepository(PlanRepository):
    """
    Uses in-memory dictionary for plan storage for testing/dev purposes.
    """

    def __init__(self):
        self._store: Dict[str, PlanRecord] = {}

    def create(self, plan: Plan) -> PlanRecord:
        return self.create_many([plan])[0]

    def create_many(self, plans: Sequence[Plan]) -> List[PlanRecord]:
        # Check everything first so a duplicate leaves the store untouched
        seen = set()
        for plan in plans:
            if plan.id in self._store or plan.id in seen:
                raise DuplicateRecordError("plan", plan.id)
            seen.add(plan.id)

        records = [PlanRecord(**plan.model_dump()) for plan in plans]
        for record in records:
            self._store[record.id] = record
        return [record.model_copy(deep=True) for record in records]

    def get(self, plan_id: str) -> PlanRecord:
        if plan_id not in self._store:
            raise NotFoundError("plan", plan_id)
        return self._store[plan_id].model_copy(deep=True)

    def list(self, task_id=None, status=None) -> List[PlanRecord]:
        records = [
            record
            for record in self._store.values()
            if (task_id is None or record.task_id == task_id)
            and (status is None or record.status == status)
        ]
        records.sort(key=lambda record: record.created_at, reverse=True)
        return [record.model_copy(deep=True) for record in records]

    def update(self, plan_id: str, changes: Dict[str, Any]) -> PlanRecord:
        record = _apply_changes(self.get(plan_id), changes)
        self._store[plan_id] = record
        return record.model_copy(deep=True)

    def delete(self, plan_id: str) -> bool:
        if plan_id in self._store:
            del self._store[plan_id]
            return True
        return False


class PostgresPlanRepository(PlanRepository):
    """
    PostgreSQL + JSONB storage for plans.
    """

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine or get_engine()

    def create(self, plan: Plan) -> PlanRecord:
        return self.create_many([plan])[0]

    def create_many(self, plans: Sequence[Plan]) -> List[PlanRecord]:
        records = [PlanRecord(**plan.model_dump()) for plan in plans]

        # One session, one commit: a failure rolls back every insert
        with Session(self.engine) as db:
            for record in records:
                if db.get(PlanDBModel, record.id) is not None:
                    raise DuplicateRecordError("plan", record.id)
                db.add(
                    PlanDBModel(
                        plan_id=record.id,
                        task_id=record.task_id,
                        status=record.status.value,
                        data=record.model_dump(mode="json"),
                        created_at=record.created_at,
                    )
                )
            db.commit()

        return records

    def get(self, plan_id: str) -> PlanRecord:
        with Session(self.engine) as db:
            row = db.get(PlanDBModel, plan_id)
            if not row:
                raise NotFoundError("plan", plan_id)
            return PlanRecord.model_validate(row.data)

    def list(self, task_id=None, status=None) -> List[PlanRecord]:
        with Session(self.engine) as db:
            statement = select(PlanDBModel).order_by(PlanDBModel.created_at.desc())
            if task_id is not None:
                statement = statement.where(PlanDBModel.task_id == task_id)
            if status is not None:
                statement = statement.where(PlanDBModel.status == PlanStatus(status).value)
            return [PlanRecord.model_validate(row.data) for row in db.exec(statement).all()]

    def update(self, plan_id: str, changes: Dict[str, Any]) -> PlanRecord:
        with Session(self.engine) as db:
            row = db.get(PlanDBModel, plan_id)
            if not row:
                raise NotFoundError("plan", plan_id)

            record = _apply_changes(PlanRecord.model_validate(row.data), changes)
            row.status = record.status.value
            row.data = record.model_dump(mode="json")
            db.add(row)
            db.commit()
            return record

    def delete(self, plan_id: str) -> bool:
        with Session(self.engine) as db:
            row = db.get(PlanDBModel, plan_id)
            if row:
                db.delete(row)
                db.commit()
                return True
            return False
