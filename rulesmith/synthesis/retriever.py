"""
Reference Example Retriever - Ranks existing entities as style references.

Scoring, per mechanic keyword:
- +0.5 when the keyword (or one of its rule-kind hints) appears in the title
- +0.2 when it appears in the body (rules text + description)
The total is capped at 1.0. Scores below min_relevance are dropped; ties
break on rule count, more rules first.

Retrieval is advisory: any index failure yields an empty list, and an entry
that cannot be scored is skipped.
"""

from __future__ import annotations
from typing import Sequence
import json
import logging

from ..knowledge.index import IndexEntry, ReferenceIndex
from ..rule_schema.models import ReferenceExample

logger = logging.getLogger(__name__)

TITLE_WEIGHT = 0.5
BODY_WEIGHT = 0.2

# Mechanic keyword -> rule-kind fragments that reveal it inside stored rules.
MECHANIC_RULE_HINTS: dict[str, list[str]] = {
    "attack bonus": ["FlatModifier", "selector:attack"],
    "damage bonus": ["FlatModifier", "DamageDice", "selector:damage"],
    "ac bonus": ["FlatModifier", "selector:ac"],
    "saving throw bonus": ["FlatModifier", "selector:saving-throw"],
    "skill bonus": ["FlatModifier", "selector:skill"],
    "extra damage": ["DamageDice", "RollOption"],
    "damage dice": ["DamageDice"],
    "persistent damage": ["DamageDice", "persistent"],
    "resistance": ["Resistance"],
    "weakness": ["Weakness"],
    "immunity": ["Immunity"],
    "speed bonus": ["BaseSpeed", "FlatModifier", "selector:speed"],
    "fly speed": ["BaseSpeed", "fly"],
    "climb speed": ["BaseSpeed", "climb"],
    "swim speed": ["BaseSpeed", "swim"],
    "apply condition": ["GrantItem", "condition"],
    "grant condition": ["GrantItem", "condition"],
    "darkvision": ["Sense", "darkvision"],
    "light": ["TokenLight"],
    "aura": ["Aura"],
    "healing": ["FastHealing", "Regeneration"],
    "regeneration": ["Regeneration"],
    "fast healing": ["FastHealing"],
    "temporary hp": ["TempHP"],
    "add trait": ["AdjustStrike", "trait"],
    "strike bonus": ["FlatModifier", "selector:strike"],
    "critical": ["CriticalSpecialization", "criticalSuccess"],
}


def _terms(keyword: str) -> list[str]:
    lowered = keyword.lower()
    return [lowered] + [h.lower() for h in MECHANIC_RULE_HINTS.get(lowered, [])]


def _body_text(entry: IndexEntry) -> str:
    # Rules are flattened without quotes so "selector":"attack" matches selector:attack.
    rules_text = json.dumps(entry.rules, separators=(",", ":")).replace('"', "")
    return f"{rules_text} {entry.description}".lower()


def score_entry(entry: IndexEntry, keywords: Sequence[str]) -> tuple[float, list[str]]:
    """Return (relevance score, matched keywords) for one entry."""
    title = entry.name.lower()
    body = _body_text(entry)
    score = 0.0
    matched: list[str] = []
    for keyword in keywords:
        terms = _terms(keyword)
        hit = False
        if any(t in title for t in terms):
            score += TITLE_WEIGHT
            hit = True
        if any(t in body for t in terms):
            score += BODY_WEIGHT
            hit = True
        if hit:
            matched.append(keyword)
    return min(score, 1.0), matched


class ReferenceRetriever:
    """
    Finds existing entities of the same kind whose rules match the mechanics.

    Usage:
        retriever = ReferenceRetriever(index)
        examples = await retriever.retrieve("feat", ["attack bonus"])
    """

    def __init__(
        self,
        index: ReferenceIndex,
        max_examples: int = 5,
        min_relevance: float = 0.2,
    ):
        self.index = index
        self.max_examples = max_examples
        self.min_relevance = min_relevance

    async def retrieve(self, entity_kind: str, keywords: Sequence[str]) -> list[ReferenceExample]:
        if not keywords:
            logger.debug("No mechanics known, skipping reference retrieval")
            return []

        try:
            entries = list(await self.index.search(entity_kind, ("name", "type", "rules", "description")))
        except Exception as e:
            logger.warning("Reference index unavailable, continuing without examples: %s", e)
            return []

        scored: list[ReferenceExample] = []
        for entry in entries:
            if entry.type != entity_kind or not entry.rules or not entry.name:
                continue
            try:
                score, matched = score_entry(entry, keywords)
            except (AttributeError, TypeError, ValueError) as e:
                logger.warning("Skipping unreadable index entry %r: %s", entry.id, e)
                continue
            if score < self.min_relevance:
                continue
            scored.append(ReferenceExample(
                id=entry.id,
                name=entry.name,
                entity_kind=entry.type,
                source_label=entry.source_label,
                rules=entry.rules,
                description=entry.description,
                relevance_score=round(score, 4),
                matched_keywords=matched,
            ))

        scored.sort(key=lambda e: (-e.relevance_score, -len(e.rules)))
        results = scored[:self.max_examples]
        logger.info("Found %d reference examples for %s %s", len(results), entity_kind, list(keywords))
        return results
