"""
Authoring Prompts - Prompt text and function schemas for every oracle call.

Four calls exist, each forced through one function schema:
- identifyMechanics     mechanic keywords for retrieval
- generateRuleElements  the rule set itself
- designEffect          one side-effect document per suggestion
- fixRuleElements       corrective pass over signalled rules

Prompt precedence for synthesis:
1. Custom requirements, when given, override everything else
2. Mechanics guidance only without custom requirements
3. Reference examples whenever present, as structure references only
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, Sequence
import json

from ..oracle.client import FunctionSchema
from ..rule_schema.models import (
    GenerationRequest,
    ReferenceExample,
    RuleObject,
    SideEffectMode,
    SubjectDescription,
    ValidationSignal,
)

MECHANIC_VOCABULARY: tuple[str, ...] = (
    "attack bonus", "damage bonus", "ac bonus", "saving throw bonus", "skill bonus",
    "extra damage", "damage dice", "persistent damage", "splash damage",
    "resistance", "weakness", "immunity",
    "speed bonus", "fly speed", "climb speed", "swim speed",
    "apply condition", "grant condition", "remove condition",
    "darkvision", "scent", "tremorsense",
    "extra action", "reaction", "free action",
    "light", "aura",
    "healing", "regeneration", "fast healing", "temporary hp",
    "skill proficiency", "add trait",
    "strike bonus", "spell attack", "spell dc",
    "critical",
)


_RULES_ARRAY = {
    "type": "array",
    "description": "Rule objects; each must carry the 'key' field naming its rule kind",
    "minItems": 1,
    "items": {
        "type": "object",
        "properties": {"key": {"type": "string", "description": "Rule kind, e.g. FlatModifier"}},
        "required": ["key"],
    },
}

IDENTIFY_MECHANICS = FunctionSchema(
    name="identifyMechanics",
    description="Identify the game mechanics an entity's description involves",
    parameters={
        "type": "object",
        "properties": {
            "mechanics": {
                "type": "array",
                "description": "Mechanic keywords",
                "items": {"type": "string"},
            },
        },
        "required": ["mechanics"],
    },
)

GENERATE_RULE_ELEMENTS = FunctionSchema(
    name="generateRuleElements",
    description="Generate the rule objects that automate an entity",
    parameters={
        "type": "object",
        "properties": {
            "rules": _RULES_ARRAY,
            "explanation": {
                "type": "string",
                "description": "What each rule does and why it was chosen",
            },
        },
        "required": ["rules", "explanation"],
    },
)

DESIGN_EFFECT = FunctionSchema(
    name="designEffect",
    description="Design one effect document for a transient part of an entity",
    parameters={
        "type": "object",
        "properties": {
            "name": {"type": "string"},
            "description": {"type": "string"},
            "level": {"type": "integer"},
            "duration": {
                "type": "object",
                "properties": {
                    "expiry": {"type": ["string", "null"], "enum": ["turn-start", "turn-end", None]},
                    "sustained": {"type": "boolean"},
                    "unit": {
                        "type": "string",
                        "enum": ["unlimited", "encounter", "rounds", "minutes", "hours", "days"],
                    },
                    "value": {"type": "integer"},
                },
            },
            "rules": {"type": "array", "items": {"type": "object"}},
            "rarity": {"type": "string", "enum": ["common", "uncommon", "rare", "unique"]},
        },
        "required": ["name", "duration", "rules"],
    },
)

FIX_RULE_ELEMENTS = FunctionSchema(
    name="fixRuleElements",
    description="Return a corrected, complete replacement rule set",
    parameters={
        "type": "object",
        "properties": {
            "rules": _RULES_ARRAY,
            "explanation": {
                "type": "string",
                "description": "Which problems were found and how they were fixed",
            },
        },
        "required": ["rules", "explanation"],
    },
)


def _subject_block(subject: SubjectDescription) -> str:
    return (
        f"- Name: {subject.name}\n"
        f"- Kind: {subject.entity_kind}\n"
        f"- Level: {subject.level if subject.level is not None else 'N/A'}\n"
        f"- Traits: {', '.join(subject.traits) or 'N/A'}"
    )


def _json(value) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False)


@dataclass
class AuthoringPrompts:
    """
    Builders for the system and user messages of each oracle call.

    All methods are pure; the stage classes turn their output into messages.
    """

    @staticmethod
    def mechanics_system(vocabulary: Iterable[str] = MECHANIC_VOCABULARY) -> str:
        terms = "\n".join(f"- {term}" for term in vocabulary)
        return f"""You are a tabletop rules expert. Extract the game mechanics an entity's
description involves, as short English keywords.

Common mechanic categories:
{terms}

Return only mechanics that are actually present. Use identifyMechanics."""

    @staticmethod
    def mechanics_user(subject: SubjectDescription) -> str:
        return f"""Entity:
{_subject_block(subject)}

Description:
{subject.description}

List the mechanics this entity involves."""

    @staticmethod
    def synthesis_system(
        corpus_text: str,
        has_custom_requirements: bool,
        side_effect_mode: SideEffectMode = SideEffectMode.TOGGLE,
    ) -> str:
        prompt = f"""You are a rules automation expert. Turn an entity's description into the
rule objects that automate it.

{corpus_text}

"""
        if has_custom_requirements:
            prompt += """The operator supplied custom requirements. They are the highest priority:
follow them exactly, even where they conflict with the entity's description,
and use the description only to fill gaps they leave open.

"""
        if side_effect_mode == SideEffectMode.TOGGLE:
            prompt += """Express transient or switchable parts of the effect inside these rules,
with a toggleable RollOption and predicates on it. Do not rely on separate
effect documents.

"""
        else:
            prompt += """Transient parts of the effect will be created as separate effect documents.
Generate only the permanent rules of the entity itself.

"""
        prompt += """Principles:
1. Every rule object carries the "key" field
2. Use the correct selector for every modifier
3. Use predicates for conditional effects
4. Rule objects must be valid JSON
5. Return the result with generateRuleElements"""
        return prompt

    @staticmethod
    def synthesis_user(
        subject: SubjectDescription,
        request: GenerationRequest,
        mechanics: Sequence[str] = (),
        examples: Sequence[ReferenceExample] = (),
    ) -> str:
        prompt = f"Generate rule objects for this entity:\n\n{_subject_block(subject)}\n\n"

        if not request.ignore_original_description:
            prompt += f"Description:\n{subject.description}\n\n"

        if request.has_custom_requirements:
            prompt += (
                "CUSTOM REQUIREMENTS (highest priority):\n"
                f"{request.custom_requirements.strip()}\n\n"
                "These requirements win over the description wherever the two conflict.\n\n"
            )
        elif mechanics:
            prompt += "Identified mechanics:\n"
            prompt += "".join(f"- {m}\n" for m in mechanics)
            prompt += "\nMake sure each of these mechanics is covered by a rule.\n\n"

        if examples:
            prompt += "Reference examples (existing entities with similar mechanics):\n\n"
            for example in examples:
                prompt += f"### {example.name} ({example.source_label})\n"
                if example.description:
                    prompt += f"{example.description[:200]}\n"
                prompt += f"```json\n{_json(example.rules)}\n```\n\n"
            prompt += (
                "These examples show rule structure and style only. Do not copy them; "
                "generate rules for this entity.\n\n"
            )

        prompt += "Return the rules and an explanation with generateRuleElements."
        return prompt

    @staticmethod
    def effect_system(corpus_text: str) -> str:
        return f"""You design effect documents: separate entities holding the transient part
of another entity's effect.

{corpus_text}

Effect documents carry no traits. Duration expiry is "turn-start", "turn-end"
or null; unit is one of unlimited, encounter, rounds, minutes, hours, days.
Toggleable effects (stances, auras, toggles) last unlimited with value -1.
Return the effect with designEffect."""

    @staticmethod
    def effect_user(
        subject: SubjectDescription,
        effect_type: str,
        suggestion_name: str,
        suggestion_description: str,
        rules: Sequence[RuleObject] = (),
    ) -> str:
        return f"""Source entity:
{_subject_block(subject)}

Description:
{subject.description}

Rules already on the source entity:
```json
{_json(list(rules))}
```

Design the "{effect_type}" effect "{suggestion_name}": {suggestion_description}"""

    @staticmethod
    def review_system(corpus_text: str) -> str:
        return f"""You fix rule objects that the host rule engine reported as invalid.

{corpus_text}

Your job:
1. Read each validation message
2. Find the rule and field it refers to
3. Fix it according to the reference above
4. Keep the intent of every rule unchanged

Common problems: misspelled fields (selector vs selectors), wrong value types,
missing required fields, unknown rule kinds, malformed predicates, invalid
enumerated values such as dieSize "1d6".

Return the complete corrected rule set with fixRuleElements."""

    @staticmethod
    def review_user(
        subject: SubjectDescription,
        prior_rules: Sequence[RuleObject],
        signals: Sequence[ValidationSignal],
        prior_explanation: str = "",
        examples: Sequence[ReferenceExample] = (),
    ) -> str:
        messages = "\n".join(f"- {s.message}" for s in signals)
        prompt = f"""Fix the rule objects of this entity:

{_subject_block(subject)}

Current rules:
```json
{_json(list(prior_rules))}
```

Validation messages from the host:
{messages}
"""
        if prior_explanation:
            prompt += f"\nOriginal explanation:\n{prior_explanation}\n"
        if examples:
            prompt += "\nWorking examples:\n"
            for example in examples:
                prompt += f"### {example.name}\n```json\n{_json(example.rules)}\n```\n"
        prompt += "\nReturn the complete replacement rule set and what you changed."
        return prompt
