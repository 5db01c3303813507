"""
Corrective Regeneration Loop - Feeds host validation signals back to the oracle.

A corrective pass always produces a complete replacement rule set. It never
patches the prior set, and it never hands the prior set back unchanged as a
"fix". A failed pass leaves the last committed rules in place; the operator
retries or accepts the outstanding signals.
"""

from __future__ import annotations
from typing import Sequence
import json
import logging

from ..extraction.extractor import StructuredResponseExtractor
from ..knowledge.corpus import KnowledgeCorpus
from ..oracle.client import GenerationOracle
from ..rule_schema.errors import GenerationFailure, PreconditionError
from ..rule_schema.models import (
    ReferenceExample,
    RuleObject,
    SubjectDescription,
    SynthesisResult,
    ValidationSignal,
)
from ..rule_schema.validation import validate_rules
from .prompts import FIX_RULE_ELEMENTS, AuthoringPrompts

logger = logging.getLogger(__name__)

FIX_HEADER = "[Corrective review]"
ORIGINAL_HEADER = "[Original explanation]"


def compose_explanation(fix_explanation: str, prior_explanation: str) -> str:
    """Prepend the fix explanation so both survive for audit."""
    return f"{FIX_HEADER}\n{fix_explanation}\n\n{ORIGINAL_HEADER}\n{prior_explanation}"


def _canonical(rules: Sequence[RuleObject]) -> str:
    return json.dumps(list(rules), sort_keys=True, ensure_ascii=False)


class CorrectiveLoop:
    """
    Produces a repaired SynthesisResult from prior rules and captured signals.

    Usage:
        loop = CorrectiveLoop(oracle, corpus)
        fixed = await loop.review_and_fix(subject, outcome.committed_rules, outcome.signals)
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

    async def review_and_fix(
        self,
        subject: SubjectDescription,
        prior_rules: Sequence[RuleObject],
        signals: Sequence[ValidationSignal],
        prior_explanation: str = "",
        reference_examples: Sequence[ReferenceExample] = (),
    ) -> SynthesisResult:
        if not signals:
            raise PreconditionError("A corrective pass needs at least one validation signal")

        messages = [
            {"role": "system", "content": AuthoringPrompts.review_system(self.corpus.full_text())},
            {"role": "user", "content": AuthoringPrompts.review_user(
                subject, prior_rules, signals, prior_explanation, reference_examples,
            )},
        ]

        logger.info("Corrective pass for %r over %d signals", subject.name, len(signals))
        try:
            raw = await self.oracle.invoke(messages, FIX_RULE_ELEMENTS)
        except Exception as e:
            raise GenerationFailure(f"Oracle call failed: {e}", stage="corrective") from e

        extracted = self.extractor.extract(raw, stage="corrective")

        if _canonical(extracted.rules) == _canonical(prior_rules):
            raise GenerationFailure("Corrective pass returned the prior rules unchanged", stage="corrective", raw=raw)

        validation = validate_rules(extracted.rules)
        if not validation.valid:
            raise GenerationFailure(
                "Corrected rules failed validation: " + "; ".join(validation.errors),
                stage="corrective",
                raw=raw,
            )

        logger.info("Corrective pass replaced %d rules with %d", len(prior_rules), len(extracted.rules))
        return SynthesisResult(
            rules=extracted.rules,
            explanation=compose_explanation(extracted.explanation, prior_explanation),
            reference_examples=list(reference_examples),
        )
