"""
Commit - Transactional apply, persistence and post-commit validation window.
"""

from .controller import ApplyController, ApplyState, link_references, reference_link
from .monitor import (
    ValidationChannel,
    ValidationWindowMonitor,
    InMemoryValidationChannel,
    LoggerValidationChannel,
    SignalCapture,
    DEFAULT_MARKERS,
)
from .store import (
    DocumentStore,
    StoredDocument,
    InMemoryDocumentStore,
    JsonDocumentStore,
    StoreError,
)

__all__ = [
    "ApplyController",
    "ApplyState",
    "link_references",
    "reference_link",
    "ValidationChannel",
    "ValidationWindowMonitor",
    "InMemoryValidationChannel",
    "LoggerValidationChannel",
    "SignalCapture",
    "DEFAULT_MARKERS",
    "DocumentStore",
    "StoredDocument",
    "InMemoryDocumentStore",
    "JsonDocumentStore",
    "StoreError",
]
