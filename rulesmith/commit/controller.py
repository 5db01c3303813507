"""
Apply Controller - Transactional commit of a rule set and its side effects.

One apply call:
1. Validates every rule (main set and side-effect plans) before persistence
2. Creates the planned side effects one by one
3. Links their references into the rule set and description
4. Commits the rule set to the subject with a single update
5. Keeps a validation window open around and after that update

If any side effect fails to create, or the call is cancelled meanwhile,
every side effect created so far is deleted in reverse order and the
subject is never touched. A failed update rolls the side effects back too.

State machine:
    IDLE -> CREATING_SIDE_EFFECTS -> ROLLING_BACK -> FAILED
                                  -> LINKING_REFERENCES -> COMMITTING -> MONITORING -> DONE
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Sequence
import asyncio
import copy
import logging

from ..rule_schema.errors import CommitFailure, PreconditionError
from ..rule_schema.models import (
    DISCRIMINANT,
    ApplyOutcome,
    CreatedSideEffect,
    EffectType,
    RuleObject,
    SideEffectPlan,
    SubjectDescription,
)
from ..rule_schema.validation import ensure_valid_rules
from .monitor import ValidationWindowMonitor
from .store import DocumentStore

logger = logging.getLogger(__name__)

CONTAINER_SUFFIX = " - Effects"


class ApplyState(Enum):
    """States of one apply call."""
    IDLE = "idle"
    CREATING_SIDE_EFFECTS = "creating_side_effects"
    ROLLING_BACK = "rolling_back"
    FAILED = "failed"
    LINKING_REFERENCES = "linking_references"
    COMMITTING = "committing"
    MONITORING = "monitoring"
    DONE = "done"


@dataclass
class _Batch:
    """Side effects created by one apply call, for rollback."""
    created: list[CreatedSideEffect] = field(default_factory=list)
    container_id: str | None = None
    container_created: bool = False


def reference_link(effect: CreatedSideEffect) -> str:
    return f"@UUID[{effect.stable_reference}]{{{effect.name}}}"


def link_references(
    rules: Sequence[RuleObject],
    created: Sequence[CreatedSideEffect],
    description: str = "",
) -> tuple[list[RuleObject], str]:
    """
    Rewrite rules and description to point at created side effects.

    Aura effects go into the "effects" list of every Aura rule; any other
    effect (or an aura with no Aura rule to carry it) gets a Note rule and
    a reference line in the description. With nothing created, the rules
    come back as they are.
    """
    if not created:
        return list(rules), description

    linked = copy.deepcopy(list(rules))
    aura_rules = [r for r in linked if r.get(DISCRIMINANT) == "Aura"]
    lines = []

    for effect in created:
        if effect.effect_type == EffectType.AURA and aura_rules:
            for aura in aura_rules:
                effects = aura.get("effects")
                if not isinstance(effects, list):
                    effects = []
                entry = {"uuid": effect.stable_reference}
                if entry not in effects:
                    effects.append(entry)
                aura["effects"] = effects
            continue

        linked.append({
            DISCRIMINANT: "Note",
            "selector": "all",
            "title": effect.name,
            "text": reference_link(effect),
        })
        lines.append(f"<p><strong>Effect</strong>: {reference_link(effect)}</p>")

    if lines:
        description = "\n".join([description, *lines]) if description else "\n".join(lines)
    return linked, description


class ApplyController:
    """
    Commits rule sets with all-or-nothing side-effect creation.

    Usage:
        controller = ApplyController(store, monitor)
        outcome = await controller.apply(subject, result.rules, result.side_effect_plans)
        if outcome.has_signals:
            ...  # offer the corrective pass
    """

    def __init__(self, store: DocumentStore, monitor: ValidationWindowMonitor):
        self.store = store
        self.monitor = monitor

    async def apply(
        self,
        subject: SubjectDescription,
        rules: Sequence[RuleObject],
        side_effect_plans: Sequence[SideEffectPlan] | None = None,
        correlation_id: str | None = None,
        append: bool = False,
    ) -> ApplyOutcome:
        """
        Apply a rule set to the subject's stored document.

        Raises:
            InvalidRuleError: a rule failed validation; nothing was persisted
            PreconditionError: the subject has no stored document
            CommitFailure: persistence failed; side effects were rolled back
        """
        transitions: list[ApplyState] = [ApplyState.IDLE]
        plans = list(side_effect_plans or [])

        # Nothing below this block may run for an invalid batch.
        if subject.document_id is None:
            raise PreconditionError(f"Subject {subject.name!r} has no stored document to apply to")
        if not rules:
            raise PreconditionError("Cannot apply an empty rule set")
        ensure_valid_rules(rules)
        for plan in plans:
            ensure_valid_rules(plan.rules)

        try:
            current = await self.store.get(subject.document_id)
        except Exception as e:
            transitions.append(ApplyState.FAILED)
            raise CommitFailure(f"Could not read subject document: {e}", transitions=transitions) from e
        if current is None:
            raise PreconditionError(f"Subject document {subject.document_id} not found")

        batch = _Batch()
        if plans:
            self._move(transitions, ApplyState.CREATING_SIDE_EFFECTS)
            try:
                await self._create_side_effects(subject, plans, batch)
            except asyncio.CancelledError:
                logger.warning("Apply cancelled while creating side effects, rolling back")
                await self._rollback(batch, transitions)
                raise
            except Exception as e:
                rolled_back, errors = await self._rollback(batch, transitions)
                self._move(transitions, ApplyState.FAILED)
                raise CommitFailure(
                    f"Side effect creation failed: {e}",
                    rolled_back=rolled_back,
                    rollback_errors=errors,
                    transitions=transitions,
                ) from e

        self._move(transitions, ApplyState.LINKING_REFERENCES)
        linked, description = link_references(rules, batch.created, current.get("description", "") or "")
        final_rules = list(current.get("rules") or []) + linked if append else linked
        update: dict[str, Any] = {"rules": final_rules}
        if batch.created and description != current.get("description", ""):
            update["description"] = description

        self._move(transitions, ApplyState.COMMITTING)
        committed = False
        try:
            async with self.monitor.watch(correlation_id) as capture:
                await self.store.update(subject.document_id, update)
                committed = True
                self._move(transitions, ApplyState.MONITORING)
        except asyncio.CancelledError:
            if not committed:
                await self._rollback(batch, transitions)
            raise
        except Exception as e:
            if committed:
                raise
            rolled_back, errors = await self._rollback(batch, transitions)
            self._move(transitions, ApplyState.FAILED)
            raise CommitFailure(
                f"Rule set update failed: {e}",
                rolled_back=rolled_back,
                rollback_errors=errors,
                transitions=transitions,
            ) from e

        self._move(transitions, ApplyState.DONE)
        logger.info("Applied %d rules to %r (%d side effects, %d signals)",
                    len(final_rules), subject.name, len(batch.created), len(capture))
        return ApplyOutcome(
            committed_rules=final_rules,
            created_side_effects=list(batch.created),
            signals=capture.signals,
            transitions=transitions,
        )

    async def _create_side_effects(
        self,
        subject: SubjectDescription,
        plans: Sequence[SideEffectPlan],
        batch: _Batch,
    ):
        container_name = f"{subject.name}{CONTAINER_SUFFIX}"
        existing = await self.store.find("container", container_name)
        if existing is not None:
            batch.container_id = existing.id
        else:
            container = await self.store.create("container", {"name": container_name, "type": "Item"})
            batch.container_id = container.id
            batch.container_created = True

        for plan in plans:
            stored = await self.store.create("effect", self._effect_data(subject, plan, batch.container_id))
            batch.created.append(CreatedSideEffect(
                name=plan.name,
                stable_reference=stored.stable_reference,
                container_id=batch.container_id,
                document_id=stored.id,
                effect_type=plan.effect_type,
            ))
            logger.debug("Created side effect %r as %s", plan.name, stored.stable_reference)

    @staticmethod
    def _effect_data(subject: SubjectDescription, plan: SideEffectPlan, container_id: str) -> dict[str, Any]:
        return {
            "name": plan.name,
            "type": "effect",
            "container": container_id,
            "source": subject.document_id,
            "description": plan.description,
            "duration": plan.duration.to_dict(),
            "level": plan.level,
            "rules": copy.deepcopy(plan.rules),
            "traits": {"rarity": plan.rarity, "value": []},
        }

    async def _rollback(self, batch: _Batch, transitions: list[ApplyState]) -> tuple[list[str], list[str]]:
        """Delete the batch in reverse creation order; never raises."""
        self._move(transitions, ApplyState.ROLLING_BACK)
        rolled_back: list[str] = []
        errors: list[str] = []

        doc_ids = [effect.document_id for effect in reversed(batch.created)]
        if batch.container_created and batch.container_id:
            doc_ids.append(batch.container_id)

        for doc_id in doc_ids:
            try:
                await self.store.delete(doc_id)
                rolled_back.append(doc_id)
            except Exception as e:
                logger.error("Rollback could not delete %s: %s", doc_id, e)
                errors.append(f"{doc_id}: {e}")

        batch.created.clear()
        logger.warning("Rolled back %d documents (%d failures)", len(rolled_back), len(errors))
        return rolled_back, errors

    @staticmethod
    def _move(transitions: list[ApplyState], state: ApplyState):
        logger.debug("Apply state %s -> %s", transitions[-1].value, state.value)
        transitions.append(state)
