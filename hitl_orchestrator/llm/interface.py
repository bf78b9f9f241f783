"""
LLM Provider Port

The planning agent talks to a language model only through LLMProvider. A
provider receives chat messages and must hand back an instance of the pydantic
model it was asked for (ProposalBatch for plan generation), never raw text.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Type, TypeVar

from pydantic import BaseModel

# The structured response type a caller asks for.
T = TypeVar("T", bound=BaseModel)

# {"role": "system" | "user" | "assistant", "content": "..."}
ChatMessage = Dict[str, str]


class LLMProvider(ABC):
    @abstractmethod
    async def generate_structured_output(
        self,
        messages: List[ChatMessage],
        response_model: Type[T],
        temperature: float = 0.0,
    ) -> T:
        """
        Returns a validated response_model instance built from the model's answer.

        Providers raise when no parsed response comes back (refusal, transport
        error, missing credentials); callers decide how that is reported.
        """
        pass
