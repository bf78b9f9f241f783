from typing import List, Optional, Type

from openai import AsyncOpenAI

from ..interface import ChatMessage, LLMProvider, T
from ...config import settings


class OpenAIAdapter(LLMProvider):
    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = settings.OPENAI_MODEL,
        max_retries: int = settings.MAX_RETRIES,
    ):
        self.api_key = api_key
        self.model_name = model_name
        self.max_retries = max_retries
        self._client: Optional[AsyncOpenAI] = None

    @property
    def client(self) -> AsyncOpenAI:
        # Built on first use: a missing key only breaks planning, not the whole app.
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self.api_key, max_retries=self.max_retries)
        return self._client

    async def generate_structured_output(
        self,
        messages: List[ChatMessage],
        response_model: Type[T],
        temperature: float = 0.0,
    ) -> T:
        completion = await self.client.beta.chat.completions.parse(
            model=self.model_name,
            messages=messages,
            response_format=response_model,
            temperature=temperature,
        )

        message = completion.choices[0].message
        if message.parsed is None:
            raise RuntimeError(
                f"{self.model_name} returned no parsable {response_model.__name__}: "
                f"{message.refusal or 'empty response'}"
            )
        return message.parsed
