"""Oracle - LLM transport behind the synthesis stages."""

from .client import (
    FunctionSchema,
    GenerationOracle,
    OpenAIOracle,
    Message,
)

__all__ = [
    "FunctionSchema",
    "GenerationOracle",
    "OpenAIOracle",
    "Message",
]
