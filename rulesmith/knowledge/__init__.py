"""Knowledge - Read-only corpus text and reference index shared by all sessions."""

from .corpus import KnowledgeCorpus, DEFAULT_CORPUS
from .index import (
    IndexEntry,
    ReferenceIndex,
    InMemoryReferenceIndex,
    JsonReferenceIndex,
)

__all__ = [
    "KnowledgeCorpus",
    "DEFAULT_CORPUS",
    "IndexEntry",
    "ReferenceIndex",
    "InMemoryReferenceIndex",
    "JsonReferenceIndex",
]
