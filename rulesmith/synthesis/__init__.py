"""
Synthesis - The oracle-facing stages of the authoring pipeline.

Mechanics -> references -> rules (-> side effects), and the corrective pass
that replaces a rule set after the host reports problems.
"""

from .mechanics import MechanicsAnalyzer
from .retriever import ReferenceRetriever, MECHANIC_RULE_HINTS, score_entry
from .synthesizer import RuleSynthesizer
from .side_effects import (
    SideEffectPlanner,
    EffectSuggestion,
    EffectAnalysis,
    analyze_transient_effects,
    default_duration,
    normalize_duration,
)
from .corrective import CorrectiveLoop, compose_explanation
from .prompts import (
    AuthoringPrompts,
    MECHANIC_VOCABULARY,
    IDENTIFY_MECHANICS,
    GENERATE_RULE_ELEMENTS,
    DESIGN_EFFECT,
    FIX_RULE_ELEMENTS,
)

__all__ = [
    "MechanicsAnalyzer",
    "ReferenceRetriever",
    "MECHANIC_RULE_HINTS",
    "score_entry",
    "RuleSynthesizer",
    "SideEffectPlanner",
    "EffectSuggestion",
    "EffectAnalysis",
    "analyze_transient_effects",
    "default_duration",
    "normalize_duration",
    "CorrectiveLoop",
    "compose_explanation",
    "AuthoringPrompts",
    "MECHANIC_VOCABULARY",
    "IDENTIFY_MECHANICS",
    "GENERATE_RULE_ELEMENTS",
    "DESIGN_EFFECT",
    "FIX_RULE_ELEMENTS",
]
