"""
Tests for the transactional apply controller.

Tests:
- Validation before any persistence call
- Round-trip commit without side effects
- Side-effect creation, reference linking and append mode
- Rollback on creation failure, update failure and cancellation
"""

import asyncio
import pytest

from ..commit import ApplyController, ApplyState, ValidationWindowMonitor, link_references
from ..rule_schema import (
    CommitFailure,
    CreatedSideEffect,
    EffectDuration,
    EffectType,
    InvalidRuleError,
    PreconditionError,
    SideEffectPlan,
    SubjectDescription,
)
from .fakes import SUBJECT_ID, FlakyStore


RULES = [{"key": "FlatModifier", "selector": "attack", "value": 2}]
EXISTING_RULES = [{"key": "Note", "selector": "all", "text": "old"}]


def plan(name, effect_type=EffectType.TARGET, rules=None):
    return SideEffectPlan(
        name=name,
        description=f"{name} description",
        duration=EffectDuration(unit="rounds", value=1),
        rules=rules if rules is not None else [{"key": "FlatModifier", "selector": "ac", "value": 1}],
        effect_type=effect_type,
    )


def created(name, effect_type, ref):
    return CreatedSideEffect(name=name, stable_reference=ref, container_id="c1", document_id=ref, effect_type=effect_type)


@pytest.fixture
def flaky_store(subject_document):
    def _make(**kwargs):
        store = FlakyStore(**kwargs)
        store.put(SUBJECT_ID, "subject", dict(subject_document, rules=EXISTING_RULES))
        return store
    return _make


class TestPreconditions:
    """Nothing is persisted for a rejected batch."""

    def test_rule_without_key_rejected(self, controller, store, subject):
        with pytest.raises(InvalidRuleError):
            asyncio.run(controller.apply(subject, RULES + [{"selector": "ac"}]))

        assert store.operations == []

    def test_plan_rule_without_key_rejected(self, controller, store, subject):
        bad = plan("Effect: Bad", rules=[{"value": 1}])

        with pytest.raises(InvalidRuleError):
            asyncio.run(controller.apply(subject, RULES, [plan("Effect: Good"), bad]))

        assert store.operations == []

    def test_empty_rules_rejected(self, controller, subject):
        with pytest.raises(PreconditionError):
            asyncio.run(controller.apply(subject, []))

    def test_subject_without_document(self, controller):
        with pytest.raises(PreconditionError):
            asyncio.run(controller.apply(SubjectDescription(name="Loose", entity_kind="feat"), RULES))

    def test_unknown_document(self, controller):
        subject = SubjectDescription(name="Ghost", entity_kind="feat", document_id="missing")

        with pytest.raises(PreconditionError):
            asyncio.run(controller.apply(subject, RULES))


class TestCommit:
    """Tests for successful apply calls."""

    def test_round_trip_without_side_effects(self, controller, store, subject):
        """With no side effects the committed rules equal the input."""
        outcome = asyncio.run(controller.apply(subject, RULES))

        assert outcome.committed_rules == RULES
        assert outcome.created_side_effects == []
        assert outcome.signals == []
        assert not outcome.has_signals
        assert store.documents[SUBJECT_ID]["rules"] == RULES
        assert store.operations == [("update", SUBJECT_ID)]
        assert outcome.transitions == [
            ApplyState.IDLE,
            ApplyState.LINKING_REFERENCES,
            ApplyState.COMMITTING,
            ApplyState.MONITORING,
            ApplyState.DONE,
        ]

    def test_append_keeps_existing_rules_first(self, flaky_store, monitor, subject):
        store = flaky_store()

        outcome = asyncio.run(ApplyController(store, monitor).apply(subject, RULES, append=True))

        assert outcome.committed_rules == EXISTING_RULES + RULES

    def test_replace_drops_existing_rules(self, flaky_store, monitor, subject):
        store = flaky_store()

        outcome = asyncio.run(ApplyController(store, monitor).apply(subject, RULES))

        assert store.documents[SUBJECT_ID]["rules"] == RULES
        assert outcome.committed_rules == RULES

    def test_side_effects_created_and_linked(self, controller, store, subject):
        aura_rules = [{"key": "Aura", "radius": 30, "slug": "battle-cry"}]
        plans = [plan("Effect: Battle Cry Aura", EffectType.AURA), plan("Effect: Battle Cry", EffectType.TARGET)]

        outcome = asyncio.run(controller.apply(subject, aura_rules, plans))

        effects = store.of_kind("effect")
        containers = store.of_kind("container")
        assert len(effects) == 2
        assert [c["name"] for c in containers.values()] == ["Battle Cry - Effects"]
        assert all(e["traits"]["value"] == [] for e in effects.values())

        aura_ref = outcome.created_side_effects[0].stable_reference
        target = outcome.created_side_effects[1]
        committed = store.documents[SUBJECT_ID]
        assert committed["rules"][0]["effects"] == [{"uuid": aura_ref}]
        assert committed["rules"][1]["key"] == "Note"
        assert committed["rules"][1]["text"] == f"@UUID[{target.stable_reference}]{{Effect: Battle Cry}}"
        assert f"@UUID[{target.stable_reference}]" in committed["description"]
        assert aura_ref.startswith("Item.")

    def test_existing_container_is_reused(self, controller, store, subject):
        store.put("container-1", "container", {"name": "Battle Cry - Effects"})

        outcome = asyncio.run(controller.apply(subject, RULES, [plan("Effect: Battle Cry")]))

        assert outcome.created_side_effects[0].container_id == "container-1"
        assert len(store.of_kind("container")) == 1


class TestLinkReferences:
    """Tests for link_references()."""

    def test_nothing_created_is_identity(self):
        rules, description = link_references(RULES, [], "desc")

        assert rules == RULES
        assert description == "desc"

    def test_aura_without_aura_rule_becomes_note(self):
        rules, description = link_references(RULES, [created("Effect: Glow", EffectType.AURA, "Item.a")])

        assert rules[-1]["key"] == "Note"
        assert description == "<p><strong>Effect</strong>: @UUID[Item.a]{Effect: Glow}</p>"

    def test_input_is_not_mutated(self):
        aura = [{"key": "Aura", "radius": 10}]

        link_references(aura, [created("Effect: Glow", EffectType.AURA, "Item.a")])

        assert "effects" not in aura[0]


class TestRollback:
    """All-or-nothing side-effect creation."""

    @pytest.mark.parametrize("failing", [1, 2, 3])
    def test_creation_failure_leaves_no_side_effects(self, flaky_store, monitor, subject, failing):
        store = flaky_store(fail_on_effect=failing)
        plans = [plan(f"Effect: {i}") for i in range(1, 4)]

        with pytest.raises(CommitFailure) as exc_info:
            asyncio.run(ApplyController(store, monitor).apply(subject, RULES, plans))

        assert store.of_kind("effect") == {}
        assert store.of_kind("container") == {}
        assert store.documents[SUBJECT_ID]["rules"] == EXISTING_RULES
        assert ("update", SUBJECT_ID) not in store.operations
        assert len(exc_info.value.rolled_back) == failing  # created effects plus the container
        assert exc_info.value.transitions[-2:] == [ApplyState.ROLLING_BACK, ApplyState.FAILED]

    def test_update_failure_rolls_back(self, flaky_store, monitor, subject):
        store = flaky_store(fail_update=True)

        with pytest.raises(CommitFailure) as exc_info:
            asyncio.run(ApplyController(store, monitor).apply(subject, RULES, [plan("Effect: A")]))

        assert store.of_kind("effect") == {}
        assert store.documents[SUBJECT_ID]["rules"] == EXISTING_RULES
        assert ApplyState.COMMITTING in exc_info.value.transitions

    def test_rollback_errors_are_reported(self, flaky_store, monitor, subject):
        store = flaky_store(fail_on_effect=2, fail_delete=True)

        with pytest.raises(CommitFailure) as exc_info:
            asyncio.run(ApplyController(store, monitor).apply(subject, RULES, [plan("A"), plan("B")]))

        assert exc_info.value.rolled_back == []
        assert len(exc_info.value.rollback_errors) == 2

    def test_cancellation_rolls_back(self, flaky_store, monitor, subject):
        store = flaky_store(block_on_effect=2)
        controller = ApplyController(store, monitor)

        async def scenario():
            task = asyncio.create_task(controller.apply(subject, RULES, [plan("A"), plan("B")]))
            while store.effect_attempts < 2:
                await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(scenario())

        assert store.of_kind("effect") == {}
        assert store.of_kind("container") == {}
        assert store.documents[SUBJECT_ID]["rules"] == EXISTING_RULES

    def test_store_read_failure(self, monitor, subject):
        class Unreachable(FlakyStore):
            async def get(self, doc_id):
                raise ConnectionError("store offline")

        with pytest.raises(CommitFailure):
            asyncio.run(ApplyController(Unreachable(), monitor).apply(subject, RULES))


class TestMonitoredCommit:
    """The validation window wraps the update."""

    def test_signals_during_update_are_reported(self, subject, subject_document, channel):
        from .fakes import HostSimulatingStore

        store = HostSimulatingStore(channel)
        store.put(SUBJECT_ID, "subject", subject_document)
        controller = ApplyController(store, ValidationWindowMonitor(channel, window_seconds=0))

        outcome = asyncio.run(controller.apply(
            subject, [{"key": "DamageDice", "selector": "strike-damage", "dieSize": "1d6"}],
        ))

        assert outcome.has_signals
        assert len(outcome.signals) == 1
        assert "dieSize must be one of" in outcome.signals[0].message
        assert channel.subscriber_count == 0
