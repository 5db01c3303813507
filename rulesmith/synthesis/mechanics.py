"""
Mechanics Analyzer - Advisory mechanic keywords for reference retrieval.

Never raises: an empty list means "no mechanics known" and every later
stage proceeds unfiltered.
"""

from __future__ import annotations
from typing import Any, Iterable
import logging

from ..extraction.extractor import StructuredResponseExtractor, content_text, message_of
from ..oracle.client import GenerationOracle
from ..rule_schema.errors import GenerationFailure
from ..rule_schema.models import SubjectDescription
from .prompts import IDENTIFY_MECHANICS, MECHANIC_VOCABULARY, AuthoringPrompts

logger = logging.getLogger(__name__)


def _clean(values: Any) -> list[str]:
    if not isinstance(values, list):
        return []
    seen: list[str] = []
    for value in values:
        if isinstance(value, str) and value.strip() and value.strip() not in seen:
            seen.append(value.strip())
    return seen


class MechanicsAnalyzer:
    """
    Asks the oracle which mechanics a subject involves.

    Usage:
        analyzer = MechanicsAnalyzer(oracle)
        mechanics = await analyzer.analyze(subject)  # e.g. ["attack bonus"]
    """

    def __init__(
        self,
        oracle: GenerationOracle,
        extractor: StructuredResponseExtractor | None = None,
        vocabulary: Iterable[str] = MECHANIC_VOCABULARY,
    ):
        self.oracle = oracle
        self.extractor = extractor or StructuredResponseExtractor()
        self.vocabulary = tuple(vocabulary)

    async def analyze(self, subject: SubjectDescription) -> list[str]:
        messages = [
            {"role": "system", "content": AuthoringPrompts.mechanics_system(self.vocabulary)},
            {"role": "user", "content": AuthoringPrompts.mechanics_user(subject)},
        ]
        try:
            raw = await self.oracle.invoke(messages, IDENTIFY_MECHANICS)
        except Exception as e:
            logger.warning("Mechanics analysis failed for %r, continuing without: %s", subject.name, e)
            return []

        try:
            payload = self.extractor.extract_payload(raw, stage="mechanics")
        except GenerationFailure:
            return self._degraded(raw)

        mechanics = _clean(payload.get("mechanics"))
        logger.info("Identified mechanics for %r: %s", subject.name, mechanics)
        return mechanics

    def _degraded(self, raw: Any) -> list[str]:
        """Vocabulary scan of a prose reply; empty when there is no text at all."""
        if not content_text(message_of(raw)).strip():
            logger.warning("Mechanics reply had no usable content")
            return []
        heuristic = self.extractor.extract_heuristic(raw, self.vocabulary)
        logger.warning("Mechanics reply was unstructured, vocabulary scan found %s", heuristic.keywords)
        return heuristic.keywords
