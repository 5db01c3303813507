"""
Session Module - In-memory authoring sessions.

A session is one operator working on one subject: synthesize, apply,
optionally correct and apply again. Sessions are never persisted; the only
durable effect of a session is what apply wrote to the document store.
"""

from .manager import SessionManager, AuthoringSession, SessionStatus

__all__ = [
    "SessionManager",
    "AuthoringSession",
    "SessionStatus",
]
