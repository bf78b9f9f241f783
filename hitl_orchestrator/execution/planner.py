"""
Planner - Proposal Generation Layer

The planning agent turns a Task into candidate Plans for a human to review.
The engine only depends on the PlanningAgent contract; LLMPlanningAgent is the
production implementation and wraps the LLMProvider with a Jinja2 prompt.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from typing import List, Optional

from ..config import settings
from ..domain.models import Plan, PlanMetadata, PlanStep, Risk, StepValidation, Task
from ..llm.interface import LLMProvider
from ..schemas.proposals import ProposalBatch, ProposalDraft
from ..state.models import utcnow
from .prompts import Template, render

logger = logging.getLogger(__name__)

MIN_PLAN_DURATION = 30


class PlanningAgent(ABC):
    @abstractmethod
    async def generate_plans(self, task: Task, feedback: Optional[str] = None) -> List[Plan]:
        """
        Produces at least one Plan for the task.
        feedback carries the human's reasons from a previous rejection, if any.
        """
        pass


class LLMPlanningAgent(PlanningAgent):
    def __init__(
        self,
        llm_provider: LLMProvider,
        plans_per_task: int = settings.PLANS_PER_TASK,
        temperature: float = settings.LLM_TEMPERATURE,
    ):
        self.llm = llm_provider
        self.plans_per_task = plans_per_task
        self.temperature = temperature

    async def generate_plans(self, task: Task, feedback: Optional[str] = None) -> List[Plan]:
        system_prompt = render(
            Template.PLAN_GENERATION,
            task=task,
            feedback=feedback,
            count=self.plans_per_task,
            min_duration=MIN_PLAN_DURATION,
        )
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": task.description},
        ]

        # Errors propagate: the engine decides how a failed planning call is reported.
        batch = await self.llm.generate_structured_output(
            messages=messages,
            response_model=ProposalBatch,
            temperature=self.temperature,
        )

        plans = [self._to_plan(task, draft) for draft in batch.proposals[: self.plans_per_task]]
        logger.info(f"Generated {len(plans)} proposals for task {task.id}")
        return plans

    def _to_plan(self, task: Task, draft: ProposalDraft) -> Plan:
        """Assigns ids and maps 1-based step numbers to step ids."""
        step_ids = [f"step-{index:03d}" for index in range(1, len(draft.steps) + 1)]

        steps = []
        for index, draft_step in enumerate(draft.steps):
            dependencies = [
                step_ids[number - 1]
                for number in draft_step.depends_on
                if 1 <= number <= len(step_ids) and number - 1 != index
            ]
            steps.append(
                PlanStep(
                    id=step_ids[index],
                    agent=draft_step.agent,
                    action=draft_step.action[:200],
                    inputs=draft_step.inputs,
                    outputs=draft_step.outputs,
                    validation=StepValidation(
                        command=draft_step.command,
                        success_criteria=draft_step.success_criteria,
                    ),
                    dependencies=dependencies,
                )
            )

        return Plan(
            id=f"plan-{uuid.uuid4()}",
            task_id=task.id,
            approach=draft.approach,
            reasoning=draft.reasoning,
            steps=steps,
            estimated_duration=max(draft.estimated_duration, MIN_PLAN_DURATION),
            risks=[Risk(**risk.model_dump()) for risk in draft.risks],
            metadata=PlanMetadata(created_at=utcnow()),
        )
