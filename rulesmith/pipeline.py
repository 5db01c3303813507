"""
Rule Authoring Pipeline - Wires the stages into the operator-facing flow.

    synthesize:      mechanics -> references -> rules (-> side-effect plans)
    apply:           transactional commit + validation window
    review_and_fix:  corrective pass over captured signals

Every collaborator is injected; build_pipeline() assembles the defaults from
an AppConfig.
"""

from __future__ import annotations
from dataclasses import replace
from typing import Sequence
import logging

from .commit.controller import ApplyController
from .commit.monitor import LoggerValidationChannel, ValidationChannel, ValidationWindowMonitor
from .commit.store import DocumentStore, InMemoryDocumentStore, JsonDocumentStore
from .config import AppConfig, load_config
from .extraction.extractor import StructuredResponseExtractor
from .knowledge.corpus import KnowledgeCorpus
from .knowledge.index import InMemoryReferenceIndex, JsonReferenceIndex, ReferenceIndex
from .oracle.client import GenerationOracle, OpenAIOracle
from .rule_schema.models import (
    ApplyOutcome,
    GenerationRequest,
    RuleObject,
    SideEffectMode,
    SubjectDescription,
    SynthesisResult,
    ValidationSignal,
)
from .synthesis.corrective import CorrectiveLoop
from .synthesis.mechanics import MechanicsAnalyzer
from .synthesis.retriever import ReferenceRetriever
from .synthesis.side_effects import SideEffectPlanner
from .synthesis.synthesizer import RuleSynthesizer

logger = logging.getLogger(__name__)


class RuleAuthoringPipeline:
    """
    The full authoring flow for one subject at a time.

    Usage:
        pipeline = build_pipeline(oracle=oracle, store=store)
        result = await pipeline.synthesize(subject, GenerationRequest())
        outcome = await pipeline.apply(subject, result)
        if outcome.has_signals:
            result = await pipeline.review_and_fix(subject, result, outcome.signals)
    """

    def __init__(
        self,
        analyzer: MechanicsAnalyzer,
        retriever: ReferenceRetriever,
        synthesizer: RuleSynthesizer,
        planner: SideEffectPlanner,
        controller: ApplyController,
        corrective: CorrectiveLoop,
    ):
        self.analyzer = analyzer
        self.retriever = retriever
        self.synthesizer = synthesizer
        self.planner = planner
        self.controller = controller
        self.corrective = corrective

    @property
    def store(self) -> DocumentStore:
        return self.controller.store

    async def synthesize(
        self,
        subject: SubjectDescription,
        request: GenerationRequest | None = None,
        use_mechanics: bool = True,
    ) -> SynthesisResult:
        request = request or GenerationRequest()
        request.check()

        mechanics: list[str] = []
        if use_mechanics:
            analyzed = subject
            if request.ignore_original_description:
                analyzed = replace(subject, description=request.custom_requirements.strip())
            mechanics = await self.analyzer.analyze(analyzed)

        examples = await self.retriever.retrieve(subject.entity_kind, mechanics)
        result = await self.synthesizer.synthesize(subject, request, mechanics, examples)

        if request.side_effect_mode == SideEffectMode.DISCRETE_EFFECT:
            plans = await self.planner.plan(subject, result.rules, request.side_effect_mode)
            result = replace(result, side_effect_plans=plans)
        return result

    async def apply(
        self,
        subject: SubjectDescription,
        result: SynthesisResult,
        correlation_id: str | None = None,
        append: bool = False,
    ) -> ApplyOutcome:
        return await self.controller.apply(
            subject,
            result.rules,
            result.side_effect_plans,
            correlation_id=correlation_id,
            append=append,
        )

    async def review_and_fix(
        self,
        subject: SubjectDescription,
        result: SynthesisResult,
        signals: Sequence[ValidationSignal],
        prior_rules: Sequence[RuleObject] | None = None,
    ) -> SynthesisResult:
        """
        Replace the rule set after the host reported problems.

        prior_rules defaults to the result's rules; pass the committed rules
        when linking rewrote them.
        """
        return await self.corrective.review_and_fix(
            subject,
            list(prior_rules) if prior_rules is not None else result.rules,
            signals,
            prior_explanation=result.explanation,
            reference_examples=result.reference_examples,
        )


def build_pipeline(
    config: AppConfig | None = None,
    oracle: GenerationOracle | None = None,
    index: ReferenceIndex | None = None,
    store: DocumentStore | None = None,
    channel: ValidationChannel | None = None,
    corpus: KnowledgeCorpus | None = None,
) -> RuleAuthoringPipeline:
    """Assemble a pipeline, filling every collaborator not given from config."""
    config = config or load_config()

    if oracle is None:
        oracle = OpenAIOracle.from_settings(config.oracle)
    if corpus is None:
        corpus = KnowledgeCorpus.from_file(config.corpus_path) if config.corpus_path else KnowledgeCorpus()
    if index is None:
        if config.retrieval.index_path:
            index = JsonReferenceIndex(config.retrieval.index_path)
        else:
            index = InMemoryReferenceIndex()
    if store is None:
        store = JsonDocumentStore(config.store.data_dir) if config.store.data_dir else InMemoryDocumentStore()
    if channel is None:
        channel = LoggerValidationChannel(config.monitor.host_logger)

    extractor = StructuredResponseExtractor()
    monitor = ValidationWindowMonitor(
        channel,
        window_seconds=config.monitor.window_seconds,
        markers=config.monitor.markers,
    )

    return RuleAuthoringPipeline(
        analyzer=MechanicsAnalyzer(oracle, extractor),
        retriever=ReferenceRetriever(
            index,
            max_examples=config.retrieval.max_examples,
            min_relevance=config.retrieval.min_relevance,
        ),
        synthesizer=RuleSynthesizer(oracle, corpus, extractor),
        planner=SideEffectPlanner(oracle, corpus, extractor),
        controller=ApplyController(store, monitor),
        corrective=CorrectiveLoop(oracle, corpus, extractor),
    )
