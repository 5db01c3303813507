"""
Rule Synthesis Stage - Builds the generation prompt and extracts the rule set.

The stage:
1. Rejects inconsistent requests before any oracle call
2. Builds the prompt (custom requirements > mechanics guidance; examples always)
3. Invokes the oracle through the generateRuleElements schema
4. Extracts and validates the rules

Any failure after step 1 is a GenerationFailure; no partial result survives.
"""

from __future__ import annotations
from typing import Sequence
import logging

from ..extraction.extractor import StructuredResponseExtractor
from ..knowledge.corpus import KnowledgeCorpus
from ..oracle.client import GenerationOracle
from ..rule_schema.errors import GenerationFailure
from ..rule_schema.models import (
    GenerationRequest,
    ReferenceExample,
    SubjectDescription,
    SynthesisResult,
)
from ..rule_schema.validation import validate_rules
from .prompts import GENERATE_RULE_ELEMENTS, AuthoringPrompts

logger = logging.getLogger(__name__)


class RuleSynthesizer:
    """
    Turns a subject description into a validated SynthesisResult.

    Usage:
        synthesizer = RuleSynthesizer(oracle, corpus)
        result = await synthesizer.synthesize(subject, request, mechanics, examples)
    """

    def __init__(
        self,
        oracle: GenerationOracle,
        corpus: KnowledgeCorpus | None = None,
        extractor: StructuredResponseExtractor | None = None,
    ):
        self.oracle = oracle
        self.corpus = corpus or KnowledgeCorpus()
        self.extractor = extractor or StructuredResponseExtractor()

    def build_messages(
        self,
        subject: SubjectDescription,
        request: GenerationRequest,
        mechanics: Sequence[str] = (),
        examples: Sequence[ReferenceExample] = (),
    ) -> list[dict[str, str]]:
        system = AuthoringPrompts.synthesis_system(
            self.corpus.full_text(),
            request.has_custom_requirements,
            request.side_effect_mode,
        )
        user = AuthoringPrompts.synthesis_user(subject, request, mechanics, examples)
        return [
            {"role": "system", "content": system},
            {"role": "user", "content": user},
        ]

    async def synthesize(
        self,
        subject: SubjectDescription,
        request: GenerationRequest,
        mechanics: Sequence[str] = (),
        examples: Sequence[ReferenceExample] = (),
    ) -> SynthesisResult:
        request.check()
        messages = self.build_messages(subject, request, mechanics, examples)

        logger.info("Synthesizing rules for %r (%d mechanics, %d examples)",
                    subject.name, len(mechanics), len(examples))
        try:
            raw = await self.oracle.invoke(messages, GENERATE_RULE_ELEMENTS)
        except Exception as e:
            raise GenerationFailure(f"Oracle call failed: {e}", stage="synthesis") from e

        extracted = self.extractor.extract(raw, stage="synthesis")

        validation = validate_rules(extracted.rules)
        if not validation.valid:
            raise GenerationFailure(
                "Generated rules failed validation: " + "; ".join(validation.errors),
                stage="synthesis",
                raw=raw,
            )
        for warning in validation.warnings:
            logger.warning("Synthesized rule warning: %s", warning)

        logger.info("Synthesized %d rules for %r", len(extracted.rules), subject.name)
        return SynthesisResult(
            rules=extracted.rules,
            explanation=extracted.explanation,
            reference_examples=list(examples),
            mechanics=list(mechanics),
        )
