"""
Pytest fixtures for Rulesmith tests.
"""

import pytest

from ..commit.controller import ApplyController
from ..commit.monitor import InMemoryValidationChannel, ValidationWindowMonitor
from ..commit.store import InMemoryDocumentStore
from ..config import load_config
from ..knowledge.index import IndexEntry, InMemoryReferenceIndex
from ..pipeline import build_pipeline
from ..rule_schema.models import SubjectDescription
from .fakes import SUBJECT_ID, ScriptedOracle, tool_call_reply


@pytest.fixture
def subject_document() -> dict:
    """Stored document of the subject under authoring."""
    return {
        "name": "Battle Cry",
        "type": "feat",
        "description": "<p>You grant +2 to attack rolls while active.</p>",
        "level": 2,
        "traits": ["general"],
        "rules": [],
    }


@pytest.fixture
def subject(subject_document) -> SubjectDescription:
    return SubjectDescription.from_document(subject_document, document_id=SUBJECT_ID)


@pytest.fixture
def store(subject_document) -> InMemoryDocumentStore:
    """In-memory store seeded with the subject document."""
    store = InMemoryDocumentStore()
    store.put(SUBJECT_ID, "subject", subject_document)
    return store


@pytest.fixture
def channel() -> InMemoryValidationChannel:
    return InMemoryValidationChannel()


@pytest.fixture
def monitor(channel) -> ValidationWindowMonitor:
    """Monitor with a zero-length window so tests never sleep."""
    return ValidationWindowMonitor(channel, window_seconds=0)


@pytest.fixture
def controller(store, monitor) -> ApplyController:
    return ApplyController(store, monitor)


@pytest.fixture
def reference_entries() -> list[IndexEntry]:
    return [
        IndexEntry(
            id="ref-1",
            name="Inspiring Attack Bonus",
            type="feat",
            rules=[{"key": "FlatModifier", "selector": "strike-attack-roll", "value": 1}],
            description="Allies gain a bonus.",
            source_label="Core Feats",
        ),
        IndexEntry(
            id="ref-2",
            name="Toughness",
            type="feat",
            rules=[{"key": "ActiveEffectLike", "mode": "add", "path": "system.attributes.hp.max", "value": 5}],
            source_label="Core Feats",
        ),
        IndexEntry(
            id="ref-3",
            name="Rage",
            type="action",
            rules=[{"key": "FlatModifier", "selector": "damage", "value": 2}],
            source_label="Core Actions",
        ),
    ]


@pytest.fixture
def index(reference_entries) -> InMemoryReferenceIndex:
    return InMemoryReferenceIndex(reference_entries)


@pytest.fixture
def config():
    """Configuration from defaults only, with the window shortened."""
    return load_config(environ={}, monitor={"window_seconds": 0})


@pytest.fixture
def scenario_a_oracle() -> ScriptedOracle:
    """Oracle scripted for a plain attack-bonus feat."""
    return ScriptedOracle({
        "identifyMechanics": [tool_call_reply("identifyMechanics", {"mechanics": ["attack bonus"]})],
        "generateRuleElements": [tool_call_reply("generateRuleElements", {
            "rules": [{
                "key": "FlatModifier",
                "selector": "attack",
                "value": 2,
                "predicate": ["battle-cry"],
            }],
            "explanation": "A +2 modifier to attack rolls while the toggle is on.",
        })],
    })


@pytest.fixture
def make_pipeline(config, index, channel):
    """Factory building a pipeline around a scripted oracle and a given store."""
    def _make(oracle, store, **kwargs):
        return build_pipeline(
            config=config,
            oracle=oracle,
            index=kwargs.pop("index", index),
            store=store,
            channel=kwargs.pop("channel", channel),
            **kwargs,
        )
    return _make
