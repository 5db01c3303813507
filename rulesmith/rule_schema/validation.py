"""
Rule Validation - Structural checks for generated rule objects.

Validates only the minimal shared contract:
1. Each rule is an object
2. Each rule carries the "key" discriminant
3. The handful of kinds the pipeline inspects have their required fields

Everything else in a rule object is passed through untouched.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Iterable

from .errors import InvalidRuleError
from .models import DISCRIMINANT

# Kinds the pipeline inspects, with the fields they cannot do without.
REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    "FlatModifier": ("selector",),
    "DamageDice": ("selector",),
}

COMMON_RULE_KINDS: frozenset[str] = frozenset({
    "ActiveEffectLike",
    "FlatModifier",
    "DamageDice",
    "AdjustModifier",
    "GrantItem",
    "RollOption",
    "Resistance",
    "Weakness",
    "Immunity",
    "ActorTraits",
    "BaseSpeed",
    "Sense",
    "TempHP",
    "FastHealing",
    "Regeneration",
    "AdjustStrike",
    "Strike",
    "TokenImage",
    "TokenLight",
    "Aura",
    "ChoiceSet",
    "ItemAlteration",
    "CriticalSpecialization",
    "MultipleAttackPenalty",
    "AdjustDegreeOfSuccess",
    "RollTwice",
    "DexterityModifierCap",
    "MartialProficiency",
    "CreatureSize",
    "Note",
    "EphemeralEffect",
})


@dataclass
class ValidationResult:
    """Result of validation, with errors and warnings."""
    valid: bool
    errors: list[str]
    warnings: list[str]


def validate_rules(rules: Any) -> ValidationResult:
    """
    Validate a list of rule objects.

    Unknown kinds only produce warnings: the rule catalog evolves outside
    this package.
    """
    errors: list[str] = []
    warnings: list[str] = []

    if not isinstance(rules, list):
        return ValidationResult(valid=False, errors=["Rules must be a list"], warnings=[])

    for i, rule in enumerate(rules, start=1):
        errors.extend(_validate_rule(i, rule, warnings))

    return ValidationResult(
        valid=len(errors) == 0,
        errors=errors,
        warnings=warnings,
    )


def _validate_rule(index: int, rule: Any, warnings: list[str]) -> list[str]:
    """Validate one rule object."""
    if not isinstance(rule, dict):
        return [f"Rule {index} must be an object"]

    kind = rule.get(DISCRIMINANT)
    if not kind or not isinstance(kind, str):
        return [f"Rule {index} is missing the required '{DISCRIMINANT}' field"]

    errors = []
    for field_name in REQUIRED_FIELDS.get(kind, ()):
        if not rule.get(field_name):
            errors.append(f"Rule {index} ({kind}) is missing the '{field_name}' field")

    if kind not in COMMON_RULE_KINDS:
        warnings.append(f"Rule {index} uses an uncommon kind '{kind}'")
    if kind == "FlatModifier" and "value" not in rule and "formula" not in rule:
        warnings.append(f"Rule {index} (FlatModifier) has neither 'value' nor 'formula'")

    return errors


def has_discriminant(rule: Any) -> bool:
    """Check the one field every rule object must carry."""
    return isinstance(rule, dict) and isinstance(rule.get(DISCRIMINANT), str) and bool(rule[DISCRIMINANT])


def ensure_valid_rules(rules: Iterable[Any]):
    """Raise InvalidRuleError unless every rule passes validation."""
    result = validate_rules(list(rules))
    if not result.valid:
        raise InvalidRuleError(result.errors)
