"""
Knowledge Corpus - Static rule-kind reference injected into prompts.

The corpus is a read-only markdown block. Synthesis and corrective prompts
embed it verbatim; stages that only need one rule kind can fetch a section.
Sections are "### " headings; selector and predicate guidance live under
"## Selectors" and "## Predicates".
"""

from __future__ import annotations
from pathlib import Path
import re

from ..rule_schema.validation import COMMON_RULE_KINDS


DEFAULT_CORPUS = """
# Rule Objects Reference

Rule objects automate an entity's effect. Each rule object is a JSON object
and MUST carry a "key" field naming its rule kind. Every other field depends
on the kind.

## Core Concepts

### Value types
- String: double-quoted text, e.g. "agile"
- Number: 2 or -1, never quoted
- Boolean: true or false, never quoted
- Array: ["agile", "elf"]
- Expressions: strings such as "@actor.level" resolve at runtime

### Effect documents
Some effects belong in a separate effect document instead of the entity:
- toggleable stances and auras (unlimited duration, paired with a RollOption toggle)
- buffs or debuffs applied to another creature
- time-boxed effects with a duration in rounds or minutes
Apart from auras, effect documents are applied by the player and are linked
from the entity's description with @UUID[...]. Auras reference their effect
through the "effects" list of the Aura rule.

## Selectors

### Attack selectors
- "strike-attack-roll", "melee-strike-attack-roll", "ranged-strike-attack-roll"
- "spell-attack-roll"

### Damage selectors
- "strike-damage", "melee-strike-damage", "ranged-strike-damage"
- "spell-damage"

### Defense selectors
- "ac", "fortitude", "reflex", "will", "saving-throw"

### General selectors
- "all", "damage", "check", "perception", and every skill slug

## Predicates

Predicates gate when a rule applies. An array is an AND of its conditions:
"predicate": ["self:effect:rage", "target:trait:undead"]
Use {"or": [...]} and {"not": "..."} for other logic. Conditions use the
subject:category:value form with the subjects self, target and origin.

## Rule Kinds

### FlatModifier
Adds a fixed modifier to checks, AC, damage or DCs.
{"key": "FlatModifier", "selector": "strike-attack-roll", "value": 2, "type": "circumstance"}
- selector (required): what is modified
- value: number or expression
- type: circumstance, status, item or untyped
- predicate, label: optional

### DamageDice
Adds extra damage dice.
{"key": "DamageDice", "selector": "strike-damage", "diceNumber": 1, "dieSize": "d6", "damageType": "fire"}
- selector (required)
- dieSize must be one of "d4", "d6", "d8", "d10", "d12"; never "1d6"

### AdjustModifier
Changes an existing modifier selected by slug.
{"key": "AdjustModifier", "selector": "strike-damage", "slug": "sneak-attack", "mode": "add", "value": 1}

### GrantItem
Grants another item (feat, condition, effect) while this one is owned.
{"key": "GrantItem", "uuid": "Compendium.pf2e.conditionitems.Item.Frightened"}

### RollOption
Adds a roll option, optionally a toggle shown on the character sheet.
{"key": "RollOption", "domain": "all", "option": "raging", "toggleable": true}

### Resistance
{"key": "Resistance", "type": "fire", "value": 5}

### Weakness
{"key": "Weakness", "type": "cold-iron", "value": 5}

### Immunity
{"key": "Immunity", "type": "sleep"}

### ActorTraits
{"key": "ActorTraits", "add": ["undead"]}

### BaseSpeed
{"key": "BaseSpeed", "selector": "fly", "value": 30}

### Sense
{"key": "Sense", "selector": "darkvision"}

### TempHP
{"key": "TempHP", "value": "@actor.level"}

### FastHealing
{"key": "FastHealing", "value": 5}

### Regeneration
{"key": "FastHealing", "type": "regeneration", "value": 10, "deactivatedBy": ["acid"]}

### AdjustStrike
{"key": "AdjustStrike", "mode": "add", "property": "weapon-traits", "value": "deadly-d8", "definition": ["item:melee"]}

### Strike
{"key": "Strike", "category": "unarmed", "damage": {"base": {"damageType": "slashing", "dice": 1, "die": "d6"}}}

### TokenLight
{"key": "TokenLight", "value": {"bright": 20, "dim": 40}}

### Aura
{"key": "Aura", "slug": "protective-aura", "radius": 10, "effects": [{"uuid": "Item.effectId"}]}
- effects: effect documents applied to creatures inside the aura

### ChoiceSet
{"key": "ChoiceSet", "flag": "damageType", "choices": [{"label": "Fire", "value": "fire"}]}
Other rules reference the choice with "{item|flags.system.rulesSelections.damageType}".

### ItemAlteration
{"key": "ItemAlteration", "itemType": "weapon", "mode": "add", "property": "traits", "value": "magical"}

### CriticalSpecialization
{"key": "CriticalSpecialization", "predicate": ["item:group:sword"]}

### MultipleAttackPenalty
{"key": "MultipleAttackPenalty", "selector": "strike-attack-roll", "value": -4}

### AdjustDegreeOfSuccess
{"key": "AdjustDegreeOfSuccess", "selector": "reflex", "adjustment": {"success": "one-degree-better"}}

### RollTwice
{"key": "RollTwice", "selector": "perception", "keep": "higher"}

### DexterityModifierCap
{"key": "DexterityModifierCap", "value": 3}

### MartialProficiency
{"key": "MartialProficiency", "slug": "firearms", "definition": ["item:group:firearm"], "value": 1}

### CreatureSize
{"key": "CreatureSize", "value": "large"}

### Note
{"key": "Note", "selector": "strike-attack-roll", "title": "Special Note", "text": "..."}
A note only explains; never use it in place of a real modifier or condition.

### EphemeralEffect
{"key": "EphemeralEffect", "affects": "target", "selectors": ["strike-attack-roll"], "uuid": "Compendium.pf2e.conditionitems.Item.Off-Guard"}

### ActiveEffectLike
{"key": "ActiveEffectLike", "mode": "add", "path": "system.skills.acrobatics.rank", "value": 1}
- mode: add, subtract, override, upgrade or downgrade
- path must be a valid actor data path
""".strip()


def _heading_pattern(title: str) -> re.Pattern:
    return re.compile(rf"^###\s+(?:\d+\.\s+)?{re.escape(title)}\b", re.IGNORECASE)


class KnowledgeCorpus:
    """
    Read-only knowledge text.

    Usage:
        corpus = KnowledgeCorpus()
        prompt += corpus.full_text()
        flat = corpus.section("FlatModifier")
    """

    def __init__(self, text: str | None = None):
        self._text = text if text is not None else DEFAULT_CORPUS
        self._lines = self._text.split("\n")

    @classmethod
    def from_file(cls, path: str | Path) -> KnowledgeCorpus:
        return cls(Path(path).read_text(encoding="utf-8"))

    def full_text(self) -> str:
        return self._text

    def section(self, kind: str) -> str:
        """
        Return the "### <kind>" section, heading included.

        Empty string when the corpus has no such section.
        """
        pattern = _heading_pattern(kind)
        result: list[str] = []
        capturing = False
        for line in self._lines:
            if capturing:
                if line.startswith("#"):
                    break
                result.append(line)
            elif pattern.match(line):
                capturing = True
                result.append(line)
        return "\n".join(result).strip()

    def selectors(self) -> str:
        return self._chapter("Selectors")

    def predicates(self) -> str:
        return self._chapter("Predicates")

    def common_kinds(self) -> list[str]:
        return sorted(COMMON_RULE_KINDS)

    def _chapter(self, title: str) -> str:
        result: list[str] = []
        capturing = False
        for line in self._lines:
            if line.startswith("## "):
                if capturing:
                    break
                capturing = line[3:].strip().lower().startswith(title.lower())
            if capturing:
                result.append(line)
        return "\n".join(result).strip()
