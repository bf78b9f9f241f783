from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from ..domain.models import Result
from ..state.models import ResultRecord
from ..services.exceptions import DuplicateRecordError, NotFoundError
from ..infrastructure.database.tables import ResultDBModel
from ..infrastructure.database.connection import get_engine


class ResultRepository(ABC):
    """
    Store of execution results. One row per execution attempt.
    """

    @abstractmethod
    def create(self, result: Result) -> ResultRecord:
        pass

    @abstractmethod
    def get(self, result_id: str) -> ResultRecord:
        """
        Retrieves a result by ID.
        Raises NotFoundError if not found.
        """
        pass

    @abstractmethod
    def list(
        self, task_id: Optional[str] = None, plan_id: Optional[str] = None
    ) -> List[ResultRecord]:
        """Lists results, newest first."""
        pass

    @abstractmethod
    def delete(self, result_id: str) -> bool:
        pass


class InMemoryResultRepository(ResultRepository):
    def __init__(self):
        self._store: Dict[str, ResultRecord] = {}

    def create(self, result: Result) -> ResultRecord:
        if result.id in self._store:
            raise DuplicateRecordError("result", result.id)
        record = ResultRecord(**result.model_dump())
        self._store[result.id] = record
        return record.model_copy(deep=True)

    def get(self, result_id: str) -> ResultRecord:
        if result_id not in self._store:
            raise NotFoundError("result", result_id)
        return self._store[result_id].model_copy(deep=True)

    def list(self, task_id=None, plan_id=None) -> List[ResultRecord]:
        records = [
            record
            for record in self._store.values()
            if (task_id is None or record.task_id == task_id)
            and (plan_id is None or record.plan_id == plan_id)
        ]
        records.sort(key=lambda record: record.created_at, reverse=True)
        return [record.model_copy(deep=True) for record in records]

    def delete(self, result_id: str) -> bool:
        if result_id in self._store:
            del self._store[result_id]
            return True
        return False


class PostgresResultRepository(ResultRepository):
    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine or get_engine()

    def create(self, result: Result) -> ResultRecord:
        record = ResultRecord(**result.model_dump())

        with Session(self.engine) as db:
            if db.get(ResultDBModel, record.id) is not None:
                raise DuplicateRecordError("result", record.id)
            db.add(
                ResultDBModel(
                    result_id=record.id,
                    task_id=record.task_id,
                    plan_id=record.plan_id,
                    data=record.model_dump(mode="json"),
                    created_at=record.created_at,
                )
            )
            db.commit()

        return record

    def get(self, result_id: str) -> ResultRecord:
        with Session(self.engine) as db:
            row = db.get(ResultDBModel, result_id)
            if not row:
                raise NotFoundError("result", result_id)
            return ResultRecord.model_validate(row.data)

    def list(self, task_id=None, plan_id=None) -> List[ResultRecord]:
        with Session(self.engine) as db:
            statement = select(ResultDBModel).order_by(ResultDBModel.created_at.desc())
            if task_id is not None:
                statement = statement.where(ResultDBModel.task_id == task_id)
            if plan_id is not None:
                statement = statement.where(ResultDBModel.plan_id == plan_id)
            return [ResultRecord.model_validate(row.data) for row in db.exec(statement).all()]

    def delete(self, result_id: str) -> bool:
        with Session(self.engine) as db:
            row = db.get(ResultDBModel, result_id)
            if row:
                db.delete(row)
                db.commit()
                return True
            return False
