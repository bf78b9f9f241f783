"""
Dependency Injection Wiring (Composition Root).

This module acts as the central "container" for the application's services.
It is responsible for:
1. Instantiating the core Singleton services (Stores, State Machine, Agents, Engine).
2. Wiring them together (e.g., injecting the stores and agents into the Engine).
3. Managing the lifecycle of these objects using @lru_cache to ensure
   they are created only once per application process.

The WorkflowStateMachine owns the in-memory transition history, so exactly
one instance is shared by the whole process.
"""


from functools import lru_cache
from fastapi import Depends

from ..config import settings
from ..llm.interface import LLMProvider
from ..llm.adapters.openai_adapter import OpenAIAdapter
from ..repositories.task import TaskRepository, InMemoryTaskRepository, PostgresTaskRepository
from ..repositories.plan import PlanRepository, InMemoryPlanRepository, PostgresPlanRepository
from ..repositories.decision import (
    DecisionRepository,
    InMemoryDecisionRepository,
    PostgresDecisionRepository,
)
from ..repositories.result import ResultRepository, InMemoryResultRepository, PostgresResultRepository
from ..repositories.pattern import PatternRepository, InMemoryPatternRepository, PostgresPatternRepository
from ..execution.engine import WorkflowEngine
from ..execution.executor import ExecutionAgent, SimulatedExecutionAgent
from ..execution.planner import PlanningAgent, LLMPlanningAgent
from ..execution.quality_gates import QualityGateEvaluator
from ..execution.state_machine import WorkflowStateMachine


def _use_postgres() -> bool:
    return settings.STORAGE_BACKEND == "postgres"


# LLM Provider (Singleton)
@lru_cache()
def get_llm_provider() -> LLMProvider:
    return OpenAIAdapter(
        api_key=settings.OPENAI_API_KEY,
        model_name=settings.OPENAI_MODEL
    )


# State Machine (Singleton)
# Note: the transition history lives in this instance, it must be shared!
@lru_cache()
def get_state_machine() -> WorkflowStateMachine:
    return WorkflowStateMachine()


# Stores (Singletons)
# Note: In-memory storage must be a singleton so data persists across requests!
@lru_cache()
def get_task_repository() -> TaskRepository:
    return PostgresTaskRepository() if _use_postgres() else InMemoryTaskRepository()


@lru_cache()
def get_plan_repository() -> PlanRepository:
    return PostgresPlanRepository() if _use_postgres() else InMemoryPlanRepository()


@lru_cache()
def get_decision_repository() -> DecisionRepository:
    return PostgresDecisionRepository() if _use_postgres() else InMemoryDecisionRepository()


@lru_cache()
def get_result_repository() -> ResultRepository:
    return PostgresResultRepository() if _use_postgres() else InMemoryResultRepository()


@lru_cache()
def get_pattern_repository() -> PatternRepository:
    return PostgresPatternRepository() if _use_postgres() else InMemoryPatternRepository()


# Collaborators (Singletons)
@lru_cache()
def get_planner(llm: LLMProvider = Depends(get_llm_provider)) -> PlanningAgent:
    return LLMPlanningAgent(llm_provider=llm)


@lru_cache()
def get_executor() -> ExecutionAgent:
    return SimulatedExecutionAgent()


# The Engine (Singleton Service)
@lru_cache()
def get_workflow_engine(
    state_machine: WorkflowStateMachine = Depends(get_state_machine),
    tasks: TaskRepository = Depends(get_task_repository),
    plans: PlanRepository = Depends(get_plan_repository),
    decisions: DecisionRepository = Depends(get_decision_repository),
    results: ResultRepository = Depends(get_result_repository),
    patterns: PatternRepository = Depends(get_pattern_repository),
    planner: PlanningAgent = Depends(get_planner),
    executor: ExecutionAgent = Depends(get_executor),
) -> WorkflowEngine:
    return WorkflowEngine(
        state_machine=state_machine,
        task_repository=tasks,
        plan_repository=plans,
        decision_repository=decisions,
        result_repository=results,
        planner=planner,
        executor=executor,
        pattern_repository=patterns,
        quality_gates=QualityGateEvaluator(coverage_threshold=settings.COVERAGE_THRESHOLD),
    )
