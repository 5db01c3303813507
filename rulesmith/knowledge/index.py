"""
Reference Index - Read-only catalog of existing entities and their rules.

The retriever scans it for style references. Two implementations:
- InMemoryReferenceIndex: entries handed in directly (tests, embedding hosts)
- JsonReferenceIndex: a JSON export of a compendium, loaded once on first search

Neither is ever written by the pipeline, so both are shared without locking.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Protocol, runtime_checkable
import asyncio
import json
import logging

from ..rule_schema.models import RuleObject, strip_html

logger = logging.getLogger(__name__)


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


@dataclass
class IndexEntry:
    """One indexed entity."""
    id: str
    name: str
    type: str
    rules: list[RuleObject] = field(default_factory=list)
    description: str = ""
    source_label: str = "Unknown"

    @classmethod
    def from_document(cls, doc: dict[str, Any], source_label: str = "Unknown") -> IndexEntry:
        """Accept either a flat entry or a stored document with a `system` block."""
        system = doc.get("system") or {}
        description = (system.get("description") or {}).get("value", doc.get("description", ""))
        if isinstance(description, dict):
            description = description.get("value", "")
        rules = system.get("rules", doc.get("rules"))
        return cls(
            id=str(doc.get("_id") or doc.get("id") or doc.get("name") or ""),
            name=_text(doc.get("name")),
            type=_text(doc.get("type")),
            rules=[r for r in rules if isinstance(r, dict)] if isinstance(rules, list) else [],
            description=strip_html(_text(description)),
            source_label=_text(doc.get("source_label", doc.get("pack"))) or source_label,
        )


@runtime_checkable
class ReferenceIndex(Protocol):
    """Searchable read-only entity catalog."""

    async def search(self, kind: str, fields: Iterable[str] = ()) -> Iterable[IndexEntry]:
        ...


class InMemoryReferenceIndex:
    """Index over a fixed list of entries."""

    def __init__(self, entries: Iterable[IndexEntry] = ()):
        self._entries = list(entries)

    @classmethod
    def from_documents(cls, docs: Iterable[dict[str, Any]], source_label: str = "Unknown") -> InMemoryReferenceIndex:
        return cls(IndexEntry.from_document(d, source_label) for d in docs)

    async def search(self, kind: str, fields: Iterable[str] = ()) -> list[IndexEntry]:
        return [e for e in self._entries if e.type == kind]

    def __len__(self) -> int:
        return len(self._entries)


class JsonReferenceIndex:
    """
    Index backed by a JSON file holding a list of documents.

    Usage:
        index = JsonReferenceIndex("data/feats.json", source_label="Core Feats")
        entries = await index.search("feat")
    """

    def __init__(self, path: str | Path, source_label: str | None = None):
        self.path = Path(path)
        self.source_label = source_label or self.path.stem
        self._entries: list[IndexEntry] | None = None

    def _load_sync(self) -> list[IndexEntry]:
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if isinstance(data, dict):
            data = data.get("entries", [])
        entries = [IndexEntry.from_document(d, self.source_label) for d in data if isinstance(d, dict)]
        logger.info("Loaded %d reference entries from %s", len(entries), self.path)
        return entries

    async def search(self, kind: str, fields: Iterable[str] = ()) -> list[IndexEntry]:
        if self._entries is None:
            self._entries = await asyncio.to_thread(self._load_sync)
        return [e for e in self._entries if e.type == kind]
