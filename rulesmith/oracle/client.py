"""
Generation Oracle - The LLM behind every synthesis stage.

The pipeline treats the oracle as untrusted: it returns a raw chat
completion dict and the extraction layer decides what, if anything, is
usable. Transport resilience (rate limits, dropped connections) is handled
here; content resilience is not.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable
import asyncio
import logging

from openai import AsyncOpenAI, APIConnectionError, RateLimitError

logger = logging.getLogger(__name__)

Message = dict[str, Any]


@dataclass(frozen=True)
class FunctionSchema:
    """A function the oracle is asked (and forced) to call."""
    name: str
    description: str
    parameters: dict[str, Any] = field(default_factory=dict)

    def as_tool(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    def as_tool_choice(self) -> dict[str, Any]:
        return {"type": "function", "function": {"name": self.name}}


@runtime_checkable
class GenerationOracle(Protocol):
    """Anything that turns chat messages into a raw completion."""

    async def invoke(self, messages: list[Message], schema: FunctionSchema | None = None) -> Any:
        ...


class OpenAIOracle:
    """
    Oracle backed by any OpenAI-compatible chat completions endpoint.

    Usage:
        oracle = OpenAIOracle(api_key="...", base_url="http://localhost:1234/v1",
                              model="gpt-4o-mini")
        raw = await oracle.invoke(messages, schema)
    """

    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        model: str = "gpt-4o-mini",
        temperature: float = 0.7,
        max_retries: int = 5,
        client: AsyncOpenAI | None = None,
    ):
        self._client = client or AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.model = model
        self.temperature = temperature
        self.max_retries = max_retries

    @classmethod
    def from_settings(cls, settings) -> OpenAIOracle:
        """Build from an OracleSettings group."""
        return cls(
            api_key=settings.api_key,
            base_url=settings.base_url or None,
            model=settings.model_name,
            temperature=settings.temperature,
            max_retries=settings.max_retries,
        )

    async def invoke(self, messages: list[Message], schema: FunctionSchema | None = None) -> dict[str, Any]:
        """
        Send one chat completion request.

        With a schema, the function is offered as the only tool and the
        oracle is forced to call it. Returns the completion as a plain dict.
        """
        kwargs: dict[str, Any] = {}
        if schema is not None:
            kwargs["tools"] = [schema.as_tool()]
            kwargs["tool_choice"] = schema.as_tool_choice()

        last_error: Exception | None = None
        for attempt in range(self.max_retries):
            try:
                logger.debug("Oracle call %s (attempt %d)", schema.name if schema else "text", attempt + 1)
                completion = await self._client.chat.completions.create(
                    model=self.model,
                    messages=messages,
                    temperature=self.temperature,
                    **kwargs,
                )
                return completion.model_dump()
            except (RateLimitError, APIConnectionError) as e:
                last_error = e
                if attempt == self.max_retries - 1:
                    break
                wait_time = 2 ** attempt
                logger.warning("Retryable oracle error: %s (waiting %ds)", e, wait_time)
                await asyncio.sleep(wait_time)

        raise last_error or RuntimeError("Oracle was configured with zero retries")
