"""
Side-Effect Planner - Designs effect documents for transient parts of a subject.

Only active in discrete-effect mode. A static keyword heuristic decides
whether the subject's effect is partly transient and which effect classes
it suggests; the oracle then designs one effect per suggestion.

This stage never blocks the pipeline:
- out-of-enumeration durations or rarities fall back to class defaults
- traits are always dropped (effect documents carry no tags)
- an oracle failure produces a deterministic default plan
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Sequence
import logging
import re

from ..extraction.extractor import StructuredResponseExtractor
from ..knowledge.corpus import KnowledgeCorpus
from ..oracle.client import GenerationOracle
from ..rule_schema.errors import GenerationFailure
from ..rule_schema.models import (
    EffectDuration,
    EffectType,
    RuleObject,
    SideEffectMode,
    SideEffectPlan,
    SubjectDescription,
)
from ..rule_schema.validation import has_discriminant
from .prompts import DESIGN_EFFECT, AuthoringPrompts

logger = logging.getLogger(__name__)

EFFECT_NAME_PREFIX = "Effect: "

VALID_EXPIRIES = frozenset({"turn-start", "turn-end", None})
VALID_UNITS = frozenset({"unlimited", "encounter", "rounds", "minutes", "hours", "days"})
VALID_RARITIES = frozenset({"common", "uncommon", "rare", "unique"})


def _one_of(value: Any, allowed: frozenset) -> bool:
    # Oracle output may put lists or dicts here; those are never valid.
    return (value is None or isinstance(value, str)) and value in allowed


# =============================================================================
# Transient-effect heuristic
# =============================================================================

EFFECT_KEYWORDS = (
    "buff", "debuff", "effect", "aura", "emanation", "choose", "toggle", "activate",
    "you can", "target", "ally", "allies", "enemy", "enemies", "within", "stance",
    "lasts", "until",
)
FREQUENCY_KEYWORDS = (
    "each turn", "per round", "once per", "per minute", "per hour", "per day",
    "per encounter", "frequency",
)
CONDITION_KEYWORDS = (
    "when you", "if you", "while you", "on a success", "on a failure",
    "critical success", "critical failure",
)

_TYPE_KEYWORDS: list[tuple[EffectType, tuple[str, ...], str, str]] = [
    (EffectType.TOGGLE, ("activate", "toggle", "you can"), "", "Switchable effect state"),
    (EffectType.AURA, ("aura", "emanation", "within"), " Aura", "Effect on creatures inside the aura"),
    (EffectType.STANCE, ("stance",), " Stance", "Stance effect"),
    (EffectType.TARGET, ("target", "ally", "allies", "enemy", "enemies"), "", "Effect applied to a target"),
    (EffectType.DURATION, ("duration", "lasts", "for 1 minute", "rounds"), "", "Effect with a duration"),
]


@dataclass
class EffectSuggestion:
    """One transient effect the heuristic thinks the subject needs."""
    effect_type: EffectType
    name: str
    description: str


@dataclass
class EffectAnalysis:
    """Result of the transient-effect heuristic."""
    needs_effect: bool
    suggestions: list[EffectSuggestion] = field(default_factory=list)
    reasoning: str = ""


TransientEffectHeuristic = Callable[[SubjectDescription], EffectAnalysis]


def _mentions(text: str, keywords: Sequence[str]) -> bool:
    """Whole-word match, so "ally" does not fire inside "critically"."""
    return any(re.search(rf"\b{re.escape(k)}\b", text) for k in keywords)


def analyze_transient_effects(subject: SubjectDescription) -> EffectAnalysis:
    """
    Keyword heuristic over the subject's description.

    Suggests at most one effect per class; falls back to a general effect
    when transience is implied but no class matches.
    """
    text = subject.description.lower()
    has_frequency = _mentions(text, FREQUENCY_KEYWORDS)
    has_condition = _mentions(text, CONDITION_KEYWORDS)
    if not (_mentions(text, EFFECT_KEYWORDS) or has_frequency or has_condition):
        return EffectAnalysis(needs_effect=False, reasoning="Effect applies directly, no effect document needed")

    suggestions: list[EffectSuggestion] = []
    for effect_type, keywords, suffix, description in _TYPE_KEYWORDS:
        if _mentions(text, keywords):
            suggestions.append(EffectSuggestion(
                effect_type=effect_type,
                name=f"{EFFECT_NAME_PREFIX}{subject.name}{suffix}",
                description=description,
            ))

    if (has_frequency or has_condition) and not any(s.effect_type == EffectType.DURATION for s in suggestions):
        suggestions.append(EffectSuggestion(
            effect_type=EffectType.DURATION,
            name=f"{EFFECT_NAME_PREFIX}{subject.name}",
            description="Temporary effect triggered by a condition or limited by frequency",
        ))

    if not suggestions:
        suggestions.append(EffectSuggestion(
            effect_type=EffectType.GENERAL,
            name=f"{EFFECT_NAME_PREFIX}{subject.name}",
            description="General effect",
        ))

    return EffectAnalysis(
        needs_effect=True,
        suggestions=suggestions,
        reasoning=f"{len(suggestions)} effect document(s) needed",
    )


# =============================================================================
# Normalization
# =============================================================================

def default_duration(effect_type: EffectType) -> EffectDuration:
    """Class default: toggleable effects are unlimited, time-boxed ones are short."""
    if effect_type.is_persistent:
        return EffectDuration(expiry=None, sustained=False, unit="unlimited", value=-1)
    if effect_type == EffectType.TARGET:
        return EffectDuration(expiry="turn-start", sustained=False, unit="minutes", value=1)
    if effect_type == EffectType.DURATION:
        return EffectDuration(expiry="turn-start", sustained=False, unit="rounds", value=1)
    return EffectDuration(expiry="turn-start", sustained=False, unit="unlimited", value=-1)


def normalize_duration(raw: Any, effect_type: EffectType) -> EffectDuration:
    """Replace every out-of-enumeration field with the class default."""
    default = default_duration(effect_type)
    if not isinstance(raw, dict):
        return default

    expiry = raw.get("expiry", default.expiry)
    if not _one_of(expiry, VALID_EXPIRIES):
        logger.warning("Invalid effect expiry %r, using %r", expiry, default.expiry)
        expiry = default.expiry

    unit = raw.get("unit")
    value = raw.get("value")
    if not _one_of(unit, VALID_UNITS):
        if unit is not None:
            logger.warning("Invalid effect duration unit %r, using %r", unit, default.unit)
        unit, value = default.unit, default.value
    elif unit == "unlimited":
        value = -1
    elif isinstance(value, bool) or not isinstance(value, int) or value < 1:
        value = default.value if default.value >= 1 else 1

    sustained = raw.get("sustained", False)
    return EffectDuration(
        expiry=expiry,
        sustained=sustained if isinstance(sustained, bool) else False,
        unit=unit,
        value=value,
    )


def effect_name(name: str) -> str:
    name = name.strip()
    return name if name.startswith(EFFECT_NAME_PREFIX) else f"{EFFECT_NAME_PREFIX}{name}"


def _level(value: Any, fallback: int) -> int:
    if isinstance(value, int) and not isinstance(value, bool) and value >= 1:
        return value
    return fallback


# =============================================================================
# Planner
# =============================================================================

class SideEffectPlanner:
    """
    Plans the effect documents a rule set depends on.

    Usage:
        planner = SideEffectPlanner(oracle)
        plans = await planner.plan(subject, rules, SideEffectMode.DISCRETE_EFFECT)
    """

    def __init__(
        self,
        oracle: GenerationOracle,
        corpus: KnowledgeCorpus | None = None,
        extractor: StructuredResponseExtractor | None = None,
        heuristic: TransientEffectHeuristic = analyze_transient_effects,
    ):
        self.oracle = oracle
        self.corpus = corpus or KnowledgeCorpus()
        self.extractor = extractor or StructuredResponseExtractor()
        self.heuristic = heuristic

    async def plan(
        self,
        subject: SubjectDescription,
        rules: Sequence[RuleObject],
        mode: SideEffectMode = SideEffectMode.DISCRETE_EFFECT,
    ) -> list[SideEffectPlan]:
        if mode != SideEffectMode.DISCRETE_EFFECT:
            return []

        analysis = self.heuristic(subject)
        if not analysis.needs_effect:
            logger.info("No side effects for %r: %s", subject.name, analysis.reasoning)
            return []

        plans = []
        for suggestion in analysis.suggestions:
            plans.append(await self._design(subject, rules, suggestion))
        logger.info("Planned %d side effects for %r", len(plans), subject.name)
        return plans

    async def _design(
        self,
        subject: SubjectDescription,
        rules: Sequence[RuleObject],
        suggestion: EffectSuggestion,
    ) -> SideEffectPlan:
        messages = [
            {"role": "system", "content": AuthoringPrompts.effect_system(self.corpus.full_text())},
            {"role": "user", "content": AuthoringPrompts.effect_user(
                subject,
                suggestion.effect_type.value,
                suggestion.name,
                suggestion.description,
                rules,
            )},
        ]
        try:
            raw = await self.oracle.invoke(messages, DESIGN_EFFECT)
            payload = self.extractor.extract_payload(raw, stage="side_effects")
        except GenerationFailure as e:
            logger.warning("Effect design unusable for %r, using default plan: %s", suggestion.name, e)
            return self.default_plan(subject, suggestion)
        except Exception as e:
            logger.warning("Effect design failed for %r, using default plan: %s", suggestion.name, e)
            return self.default_plan(subject, suggestion)

        return self.normalize(subject, suggestion, payload)

    def normalize(
        self,
        subject: SubjectDescription,
        suggestion: EffectSuggestion,
        payload: dict[str, Any],
    ) -> SideEffectPlan:
        """Coerce an oracle-designed effect into a committable plan."""
        name = payload.get("name")
        description = payload.get("description")
        raw_rules = payload.get("rules")
        rules = [r for r in raw_rules if has_discriminant(r)] if isinstance(raw_rules, list) else []
        if isinstance(raw_rules, list) and len(rules) != len(raw_rules):
            logger.warning("Dropped %d effect rules without a key", len(raw_rules) - len(rules))

        rarity = payload.get("rarity", "common")
        if not _one_of(rarity, VALID_RARITIES):
            rarity = "common"

        return SideEffectPlan(
            name=effect_name(name if isinstance(name, str) and name.strip() else suggestion.name),
            description=description if isinstance(description, str) and description else self._granted_by(subject, suggestion),
            duration=normalize_duration(payload.get("duration"), suggestion.effect_type),
            rules=rules,
            traits=[],
            rarity=rarity,
            effect_type=suggestion.effect_type,
            level=_level(payload.get("level"), _level(subject.level, 1)),
        )

    def default_plan(self, subject: SubjectDescription, suggestion: EffectSuggestion) -> SideEffectPlan:
        """Deterministic plan built from the suggestion alone."""
        return SideEffectPlan(
            name=effect_name(suggestion.name),
            description=self._granted_by(subject, suggestion),
            duration=default_duration(suggestion.effect_type),
            rules=[],
            traits=[],
            rarity="common",
            effect_type=suggestion.effect_type,
            level=_level(subject.level, 1),
        )

    @staticmethod
    def _granted_by(subject: SubjectDescription, suggestion: EffectSuggestion) -> str:
        return f"Granted by {subject.name}. {suggestion.description}"
