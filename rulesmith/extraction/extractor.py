"""
Structured Response Extractor - Recovers {rules, explanation} from an oracle reply.

The extractor is an ordered chain of adapters, each mapping one response
envelope to a payload dict:
1. native tool call       choices[0].message.tool_calls[0].function.arguments
2. legacy function call   choices[0].message.function_call.arguments
3. free-text content      direct parse, then call/fenced/bare literals + repair

The first adapter producing a dict wins. String arguments always go through
the repair chain before an adapter gives up.

A heuristic natural-language reading (extract_heuristic) exists for stages
that accept a degraded result. extract() never uses it: an unvalidatable
rules array is worse than an explicit GenerationFailure.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable
import json
import logging
import re

from ..rule_schema.errors import GenerationFailure
from ..rule_schema.models import RuleObject
from .repair import RepairError, parse_lenient

logger = logging.getLogger(__name__)

Adapter = Callable[[dict[str, Any]], "dict[str, Any] | None"]

_CALL_LITERAL = re.compile(r"[A-Za-z_$][\w$]*\s*\(\s*(\{[\s\S]*\})\s*\)")
_FENCED = re.compile(r"```(?:json|javascript|js)?\s*([\[{][\s\S]*?[\]}])\s*```", re.IGNORECASE)
_BARE_OBJECT = re.compile(r"\{[\s\S]*\}")
_NAME_LINE = re.compile(r"^\s*(?:name|title)\s*[:：]\s*(.+)$", re.IGNORECASE | re.MULTILINE)


@dataclass
class ExtractedRules:
    """Canonical shape every adapter result is reduced to."""
    rules: list[RuleObject]
    explanation: str
    payload: dict[str, Any] = field(default_factory=dict)


@dataclass
class HeuristicExtraction:
    """Best-effort reading of a plain-prose oracle reply."""
    name: str | None
    paragraphs: list[str]
    keywords: list[str]
    content: str


# =============================================================================
# Envelope helpers
# =============================================================================

def _as_dict(value: Any) -> Any:
    if hasattr(value, "model_dump"):
        return value.model_dump()
    return value


def message_of(raw: Any) -> dict[str, Any]:
    """
    Find the message dict inside a raw oracle response.

    Accepts a chat completion (dict or SDK object), a bare message dict or a
    plain string.
    """
    raw = _as_dict(raw)
    if isinstance(raw, str):
        return {"content": raw}
    if not isinstance(raw, dict):
        return {}
    choices = raw.get("choices")
    if isinstance(choices, list) and choices:
        first = _as_dict(choices[0])
        if isinstance(first, dict):
            message = _as_dict(first.get("message"))
            if isinstance(message, dict):
                return message
        return {}
    return raw


def content_text(message: dict[str, Any]) -> str:
    """Flatten message content (string or list of text parts) into a string."""
    content = message.get("content")
    if isinstance(content, list):
        parts = []
        for part in content:
            part = _as_dict(part)
            if isinstance(part, dict) and isinstance(part.get("text"), str):
                parts.append(part["text"])
            elif isinstance(part, str):
                parts.append(part)
        return "\n".join(parts)
    return content if isinstance(content, str) else ""


def load_arguments(arguments: Any) -> dict[str, Any] | None:
    """Turn call arguments (dict or almost-JSON string) into a dict."""
    if isinstance(arguments, dict):
        return arguments
    if not isinstance(arguments, str) or not arguments.strip():
        return None
    try:
        parsed = parse_lenient(arguments)
    except RepairError:
        logger.debug("Call arguments could not be repaired: %.200s", arguments)
        return None
    return parsed if isinstance(parsed, dict) else None


def _unwrap(payload: dict[str, Any] | None) -> dict[str, Any] | None:
    """Unwrap a {name, arguments} call object serialized into the content."""
    if payload and "arguments" in payload and "name" in payload and "rules" not in payload:
        return load_arguments(payload["arguments"])
    return payload


# =============================================================================
# Adapters
# =============================================================================

def native_tool_call_adapter(message: dict[str, Any]) -> dict[str, Any] | None:
    tool_calls = message.get("tool_calls") or []
    if not isinstance(tool_calls, list) or not tool_calls:
        return None
    call = _as_dict(tool_calls[0])
    function = _as_dict(call.get("function")) if isinstance(call, dict) else None
    if not isinstance(function, dict):
        return None
    return load_arguments(function.get("arguments"))


def legacy_function_call_adapter(message: dict[str, Any]) -> dict[str, Any] | None:
    function_call = _as_dict(message.get("function_call"))
    if not isinstance(function_call, dict):
        return None
    return load_arguments(function_call.get("arguments"))


def _literal_candidates(content: str) -> Iterable[str]:
    for pattern in (_CALL_LITERAL, _FENCED):
        match = pattern.search(content)
        if match:
            yield match.group(1)
    match = _BARE_OBJECT.search(content)
    if match:
        yield match.group(0)
    yield content


def content_adapter(message: dict[str, Any]) -> dict[str, Any] | None:
    content = content_text(message).strip()
    if not content:
        return None

    try:
        direct = json.loads(content)
    except ValueError:
        direct = None
    if isinstance(direct, dict):
        return _unwrap(direct)

    for candidate in _literal_candidates(content):
        try:
            parsed = parse_lenient(candidate)
        except RepairError:
            continue
        if isinstance(parsed, dict):
            return _unwrap(parsed)
    return None


DEFAULT_ADAPTERS: tuple[Adapter, ...] = (
    native_tool_call_adapter,
    legacy_function_call_adapter,
    content_adapter,
)


# =============================================================================
# Extractor
# =============================================================================

class StructuredResponseExtractor:
    """
    Maps a raw oracle response to the canonical {rules, explanation} shape.

    Usage:
        extractor = StructuredResponseExtractor()
        extracted = extractor.extract(raw_response)
        rules = extracted.rules
    """

    def __init__(self, adapters: Iterable[Adapter] | None = None):
        self.adapters = list(adapters) if adapters is not None else list(DEFAULT_ADAPTERS)

    def extract_payload(self, raw: Any, stage: str = "synthesis") -> dict[str, Any]:
        """
        Return the first structured payload any adapter recovers.

        Raises GenerationFailure when every adapter fails.
        """
        message = message_of(raw)
        for adapter in self.adapters:
            payload = adapter(message)
            if payload:
                logger.debug("Payload recovered by %s", getattr(adapter, "__name__", adapter))
                return payload
        raise GenerationFailure(
            "No structured payload could be recovered from the oracle response",
            stage=stage,
            raw=raw,
        )

    def extract(self, raw: Any, stage: str = "synthesis") -> ExtractedRules:
        """
        Recover a non-empty rules array and its explanation.

        Zero rules is a GenerationFailure, never a valid result.
        """
        payload = self.extract_payload(raw, stage=stage)
        rules = payload.get("rules")
        if not isinstance(rules, list) or not rules:
            raise GenerationFailure("Oracle response contained no rules", stage=stage, raw=raw)

        explanation = payload.get("explanation", "")
        if not isinstance(explanation, str):
            explanation = json.dumps(explanation, ensure_ascii=False)
        return ExtractedRules(rules=rules, explanation=explanation, payload=payload)

    def extract_heuristic(self, raw: Any, vocabulary: Iterable[str] = ()) -> HeuristicExtraction:
        """Read a prose reply by paragraph structure and vocabulary presence."""
        content = content_text(message_of(raw))
        lowered = content.lower()
        paragraphs = [p.strip() for p in content.split("\n") if len(p.strip()) > 10]
        keywords = [term for term in vocabulary if term.lower() in lowered]
        name_match = _NAME_LINE.search(content)
        return HeuristicExtraction(
            name=name_match.group(1).strip() if name_match else None,
            paragraphs=paragraphs[:3],
            keywords=keywords,
            content=content,
        )
