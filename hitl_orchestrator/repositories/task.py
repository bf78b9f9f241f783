from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

# Domain & Infra Imports
from ..domain.models import Task, TaskType
from ..state.models import TaskRecord, TaskStatus, utcnow
from ..services.exceptions import DuplicateRecordError, NotFoundError
from ..infrastructure.database.tables import TaskDBModel
from ..infrastructure.database.connection import get_engine


class TaskRepository(ABC):
    """
    Defines how the application accesses tasks.
    The WorkflowEngine only ever changes a task's status through this interface;
    the rest of the row is written once on create.
    """

    @abstractmethod
    def create(self, task: Task) -> TaskRecord:
        """Stores a new task with status 'pending'."""
        pass

    @abstractmethod
    def get(self, task_id: str) -> TaskRecord:
        """
        Retrieves a task by ID.
        Raises NotFoundError if not found.
        """
        pass

    @abstractmethod
    def list(
        self,
        status: Optional[TaskStatus] = None,
        type: Optional[TaskType] = None,
        limit: Optional[int] = None,
    ) -> List[TaskRecord]:
        """Lists tasks, newest first."""
        pass

    @abstractmethod
    def update_status(self, task_id: str, status: TaskStatus) -> TaskRecord:
        pass

    @abstractmethod
    def delete(self, task_id: str) -> bool:
        """Deletes a task. Returns True if found and deleted."""
        pass


class InMemoryTaskRepository(TaskRepository):
    """
    Uses in-memory dictionary for task storage for testing/dev purposes.
    """

    def __init__(self):
        self._store: Dict[str, TaskRecord] = {}

    def create(self, task: Task) -> TaskRecord:
        if task.id in self._store:
            raise DuplicateRecordError("task", task.id)
        record = TaskRecord(**task.model_dump())
        self._store[task.id] = record
        return record.model_copy(deep=True)

    def get(self, task_id: str) -> TaskRecord:
        if task_id not in self._store:
            raise NotFoundError("task", task_id)
        return self._store[task_id].model_copy(deep=True)

    def list(self, status=None, type=None, limit=None) -> List[TaskRecord]:
        records = [
            record
            for record in self._store.values()
            if (status is None or record.status == status)
            and (type is None or record.type == type)
        ]
        records.sort(key=lambda record: record.created_at, reverse=True)
        if limit is not None:
            records = records[:limit]
        return [record.model_copy(deep=True) for record in records]

    def update_status(self, task_id: str, status: TaskStatus) -> TaskRecord:
        if task_id not in self._store:
            raise NotFoundError("task", task_id)
        record = self._store[task_id].model_copy(
            update={"status": TaskStatus(status), "updated_at": utcnow()}
        )
        self._store[task_id] = record
        return record.model_copy(deep=True)

    def delete(self, task_id: str) -> bool:
        if task_id in self._store:
            del self._store[task_id]
            return True
        return False


class PostgresTaskRepository(TaskRepository):
    """
    PostgreSQL + JSONB storage for tasks.
    """

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine or get_engine()

    def create(self, task: Task) -> TaskRecord:
        record = TaskRecord(**task.model_dump())

        with Session(self.engine) as db:
            if db.get(TaskDBModel, task.id) is not None:
                raise DuplicateRecordError("task", task.id)
            db.add(
                TaskDBModel(
                    task_id=record.id,
                    type=record.type.value,
                    status=record.status.value,
                    data=record.model_dump(mode="json"),
                    created_at=record.created_at,
                    updated_at=record.updated_at,
                )
            )
            db.commit()

        return record

    def get(self, task_id: str) -> TaskRecord:
        with Session(self.engine) as db:
            row = db.get(TaskDBModel, task_id)
            if not row:
                raise NotFoundError("task", task_id)
            return self._to_record(row)

    def list(self, status=None, type=None, limit=None) -> List[TaskRecord]:
        with Session(self.engine) as db:
            statement = select(TaskDBModel).order_by(TaskDBModel.created_at.desc())
            if status is not None:
                statement = statement.where(TaskDBModel.status == TaskStatus(status).value)
            if type is not None:
                statement = statement.where(TaskDBModel.type == TaskType(type).value)
            if limit is not None:
                statement = statement.limit(limit)
            return [self._to_record(row) for row in db.exec(statement).all()]

    def update_status(self, task_id: str, status: TaskStatus) -> TaskRecord:
        with Session(self.engine) as db:
            row = db.get(TaskDBModel, task_id)
            if not row:
                raise NotFoundError("task", task_id)

            # Keep the JSON blob and the status column in agreement
            record = self._to_record(row).model_copy(
                update={"status": TaskStatus(status), "updated_at": utcnow()}
            )
            row.status = record.status.value
            row.data = record.model_dump(mode="json")
            row.updated_at = record.updated_at
            db.add(row)
            db.commit()
            return record

    def delete(self, task_id: str) -> bool:
        with Session(self.engine) as db:
            row = db.get(TaskDBModel, task_id)
            if row:
                db.delete(row)
                db.commit()
                return True
            return False

    @staticmethod
    def _to_record(row: TaskDBModel) -> TaskRecord:
        # Deserialize JSONB back into the Pydantic record
        return TaskRecord.model_validate(row.data)
