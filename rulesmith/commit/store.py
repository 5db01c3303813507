"""
Document Store - Persistence the apply stage commits to.

The subject is one stored document; side effects are created as separate
"effect" documents grouped under a per-subject "container" document.

Implementations:
- InMemoryDocumentStore: dict-backed, records every operation
- JsonDocumentStore: one JSON file per document under a data directory
"""

from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable
import asyncio
import copy
import json
import logging
import uuid

from ..rule_schema.errors import RulesmithError

logger = logging.getLogger(__name__)

_REFERENCE_PREFIX = {"container": "Folder"}


class StoreError(RulesmithError):
    """Raised by a store when an operation cannot be carried out."""


@dataclass(frozen=True)
class StoredDocument:
    """Handle to a created document."""
    id: str
    stable_reference: str


def _new_id() -> str:
    return uuid.uuid4().hex[:16]


def stable_reference(kind: str, doc_id: str) -> str:
    return f"{_REFERENCE_PREFIX.get(kind, 'Item')}.{doc_id}"


@runtime_checkable
class DocumentStore(Protocol):
    """Key-value document persistence."""

    async def create(self, kind: str, data: dict[str, Any]) -> StoredDocument:
        ...

    async def update(self, doc_id: str, partial: dict[str, Any]) -> None:
        ...

    async def delete(self, doc_id: str) -> None:
        ...

    async def get(self, doc_id: str) -> dict[str, Any] | None:
        ...

    async def find(self, kind: str, name: str) -> StoredDocument | None:
        ...


class InMemoryDocumentStore:
    """
    Dict-backed store.

    Every mutating call is appended to `operations` as (op, id) so callers
    can see exactly what was persisted.
    """

    def __init__(self):
        self.documents: dict[str, dict[str, Any]] = {}
        self.kinds: dict[str, str] = {}
        self.operations: list[tuple[str, str]] = []

    def put(self, doc_id: str, kind: str, data: dict[str, Any]) -> StoredDocument:
        """Seed a document directly, outside the recorded operations."""
        self.documents[doc_id] = copy.deepcopy(data)
        self.kinds[doc_id] = kind
        return StoredDocument(id=doc_id, stable_reference=stable_reference(kind, doc_id))

    def of_kind(self, kind: str) -> dict[str, dict[str, Any]]:
        return {i: d for i, d in self.documents.items() if self.kinds.get(i) == kind}

    async def create(self, kind: str, data: dict[str, Any]) -> StoredDocument:
        doc_id = _new_id()
        stored = self.put(doc_id, kind, data)
        self.operations.append(("create", doc_id))
        return stored

    async def update(self, doc_id: str, partial: dict[str, Any]) -> None:
        if doc_id not in self.documents:
            raise StoreError(f"Document not found: {doc_id}")
        self.documents[doc_id].update(copy.deepcopy(partial))
        self.operations.append(("update", doc_id))

    async def delete(self, doc_id: str) -> None:
        if doc_id not in self.documents:
            raise StoreError(f"Document not found: {doc_id}")
        del self.documents[doc_id]
        del self.kinds[doc_id]
        self.operations.append(("delete", doc_id))

    async def get(self, doc_id: str) -> dict[str, Any] | None:
        doc = self.documents.get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def find(self, kind: str, name: str) -> StoredDocument | None:
        for doc_id, data in self.of_kind(kind).items():
            if data.get("name") == name:
                return StoredDocument(id=doc_id, stable_reference=stable_reference(kind, doc_id))
        return None


class JsonDocumentStore:
    """
    File-based store, one `<id>.json` per document.

    Usage:
        store = JsonDocumentStore(data_dir="~/.rulesmith/documents")
        doc = await store.create("effect", {"name": "Effect: Rage"})
    """

    def __init__(self, data_dir: str | Path | None = None):
        if data_dir is None:
            data_dir = Path.home() / ".rulesmith" / "documents"
        self.data_dir = Path(data_dir).expanduser()
        self.data_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, doc_id: str) -> Path:
        return self.data_dir / f"{doc_id}.json"

    def _read(self, doc_id: str) -> dict[str, Any] | None:
        path = self._path(doc_id)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _write(self, doc_id: str, entry: dict[str, Any]):
        with open(self._path(doc_id), "w", encoding="utf-8") as f:
            json.dump(entry, f, ensure_ascii=False, indent=2)

    async def create(self, kind: str, data: dict[str, Any]) -> StoredDocument:
        doc_id = _new_id()
        await asyncio.to_thread(self._write, doc_id, {"id": doc_id, "kind": kind, "data": data})
        logger.debug("Created %s document %s", kind, doc_id)
        return StoredDocument(id=doc_id, stable_reference=stable_reference(kind, doc_id))

    async def update(self, doc_id: str, partial: dict[str, Any]) -> None:
        entry = await asyncio.to_thread(self._read, doc_id)
        if entry is None:
            raise StoreError(f"Document not found: {doc_id}")
        entry["data"].update(partial)
        await asyncio.to_thread(self._write, doc_id, entry)

    async def delete(self, doc_id: str) -> None:
        path = self._path(doc_id)
        if not path.exists():
            raise StoreError(f"Document not found: {doc_id}")
        await asyncio.to_thread(path.unlink)

    async def get(self, doc_id: str) -> dict[str, Any] | None:
        entry = await asyncio.to_thread(self._read, doc_id)
        return entry["data"] if entry else None

    async def find(self, kind: str, name: str) -> StoredDocument | None:
        for path in self.data_dir.glob("*.json"):
            entry = await asyncio.to_thread(self._read, path.stem)
            if entry and entry.get("kind") == kind and entry["data"].get("name") == name:
                return StoredDocument(id=entry["id"], stable_reference=stable_reference(kind, entry["id"]))
        return None

    async def import_document(self, kind: str, data: dict[str, Any], doc_id: str | None = None) -> StoredDocument:
        """Store an existing document under its own id (or a fresh one)."""
        doc_id = doc_id or data.get("_id") or data.get("id") or _new_id()
        await asyncio.to_thread(self._write, doc_id, {"id": doc_id, "kind": kind, "data": data})
        return StoredDocument(id=doc_id, stable_reference=stable_reference(kind, doc_id))
