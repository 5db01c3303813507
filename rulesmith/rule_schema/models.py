"""
Authoring data model.

Rule objects themselves stay plain dicts (a tagged union over the "key"
discriminant); everything around them is a dataclass.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
import re
import time

from .errors import PreconditionError

RuleObject = dict[str, Any]

DISCRIMINANT = "key"

_HTML_TAG = re.compile(r"<[^>]*>")


def strip_html(text: str) -> str:
    """Remove markup tags and surrounding whitespace."""
    return _HTML_TAG.sub("", text or "").strip()


class SideEffectMode(str, Enum):
    """How transient parts of a subject's effect are represented."""
    TOGGLE = "toggle"  # in-rule toggle, no extra documents
    DISCRETE_EFFECT = "discrete-effect"  # separate effect documents


class EffectType(str, Enum):
    """Classes of transient effect suggested by the shape heuristic."""
    TOGGLE = "toggle"
    AURA = "aura"
    STANCE = "stance"
    TARGET = "target"
    DURATION = "duration"
    GENERAL = "general"

    @property
    def is_persistent(self) -> bool:
        """Toggleable effects last until switched off; the rest are time-boxed."""
        return self in {EffectType.TOGGLE, EffectType.AURA, EffectType.STANCE}


@dataclass(frozen=True)
class SubjectDescription:
    """
    Immutable input of one authoring session.

    Created once from the subject's stored document.
    """
    name: str
    entity_kind: str
    description: str = ""
    level: int | None = None
    traits: tuple[str, ...] = ()
    document_id: str | None = None

    @classmethod
    def from_document(cls, doc: dict[str, Any], document_id: str | None = None) -> SubjectDescription:
        """Build a subject from a stored document dict."""
        system = doc.get("system") or {}
        description = (system.get("description") or {}).get("value") or doc.get("description") or ""
        if isinstance(description, dict):
            description = description.get("value", "")
        level = (system.get("level") or {}).get("value", doc.get("level"))
        traits = (system.get("traits") or {}).get("value", doc.get("traits")) or ()
        return cls(
            name=doc.get("name", ""),
            entity_kind=doc.get("type", doc.get("entity_kind", "")),
            description=strip_html(description),
            level=level,
            traits=tuple(traits),
            document_id=document_id or doc.get("_id") or doc.get("id"),
        )


@dataclass
class GenerationRequest:
    """Operator-supplied overrides for one synthesis run."""
    custom_requirements: str | None = None
    ignore_original_description: bool = False
    side_effect_mode: SideEffectMode = SideEffectMode.TOGGLE

    @property
    def has_custom_requirements(self) -> bool:
        return bool(self.custom_requirements and self.custom_requirements.strip())

    def check(self):
        """Reject inconsistent requests before anything is sent to the oracle."""
        if self.ignore_original_description and not self.has_custom_requirements:
            raise PreconditionError(
                "ignore_original_description requires non-empty custom_requirements"
            )


@dataclass
class ReferenceExample:
    """An existing entity whose rules are shown to the oracle as a style reference."""
    id: str
    name: str
    entity_kind: str
    source_label: str
    rules: list[RuleObject]
    description: str = ""
    relevance_score: float = 0.0
    matched_keywords: list[str] = field(default_factory=list)


@dataclass
class EffectDuration:
    """Duration block of an effect document."""
    expiry: str | None = "turn-start"
    sustained: bool = False
    unit: str = "unlimited"
    value: int = -1

    def to_dict(self) -> dict[str, Any]:
        return {
            "expiry": self.expiry,
            "sustained": self.sustained,
            "unit": self.unit,
            "value": self.value,
        }


@dataclass
class SideEffectPlan:
    """
    An effect document to create before the main rule set can reference it.

    Traits are always empty after normalization: effect documents do not
    carry tags.
    """
    name: str
    description: str
    duration: EffectDuration
    rules: list[RuleObject] = field(default_factory=list)
    traits: list[str] = field(default_factory=list)
    rarity: str = "common"
    effect_type: EffectType = EffectType.GENERAL
    level: int = 1


@dataclass(frozen=True)
class SynthesisResult:
    """
    Output of the synthesis stage or of a corrective pass.

    Superseded, never merged, by each corrective pass.
    """
    rules: list[RuleObject]
    explanation: str
    reference_examples: list[ReferenceExample] = field(default_factory=list)
    side_effect_plans: list[SideEffectPlan] = field(default_factory=list)
    mechanics: list[str] = field(default_factory=list)


@dataclass
class CreatedSideEffect:
    """Result of committing one SideEffectPlan."""
    name: str
    stable_reference: str
    container_id: str
    document_id: str
    effect_type: EffectType = EffectType.GENERAL


@dataclass
class ValidationSignal:
    """A diagnostic captured from the host's validation channel."""
    message: str
    captured_at: float = field(default_factory=time.time)
    correlation_id: str | None = None


@dataclass
class ApplyOutcome:
    """Result of a successful apply call."""
    committed_rules: list[RuleObject]
    created_side_effects: list[CreatedSideEffect] = field(default_factory=list)
    signals: list[ValidationSignal] = field(default_factory=list)
    transitions: list[Any] = field(default_factory=list)

    @property
    def has_signals(self) -> bool:
        """True when the host reported validation problems during the window."""
        return len(self.signals) > 0
