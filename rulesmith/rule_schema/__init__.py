"""Rule schema - data model, validation and error taxonomy."""

from .models import (
    DISCRIMINANT,
    RuleObject,
    SubjectDescription,
    GenerationRequest,
    SideEffectMode,
    EffectType,
    EffectDuration,
    ReferenceExample,
    SideEffectPlan,
    SynthesisResult,
    CreatedSideEffect,
    ValidationSignal,
    ApplyOutcome,
    strip_html,
)
from .validation import (
    ValidationResult,
    validate_rules,
    ensure_valid_rules,
    has_discriminant,
    REQUIRED_FIELDS,
    COMMON_RULE_KINDS,
)
from .errors import (
    RulesmithError,
    GenerationFailure,
    PreconditionError,
    InvalidRuleError,
    CommitFailure,
)

__all__ = [
    "DISCRIMINANT",
    "RuleObject",
    "SubjectDescription",
    "GenerationRequest",
    "SideEffectMode",
    "EffectType",
    "EffectDuration",
    "ReferenceExample",
    "SideEffectPlan",
    "SynthesisResult",
    "CreatedSideEffect",
    "ValidationSignal",
    "ApplyOutcome",
    "strip_html",
    "ValidationResult",
    "validate_rules",
    "ensure_valid_rules",
    "has_discriminant",
    "REQUIRED_FIELDS",
    "COMMON_RULE_KINDS",
    "RulesmithError",
    "GenerationFailure",
    "PreconditionError",
    "InvalidRuleError",
    "CommitFailure",
]
