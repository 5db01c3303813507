"""
Session Manager - In-memory authoring sessions.

LIFECYCLE:
1. Operator opens a session for one subject document
2. synthesize -> review -> apply, optionally review_and_fix -> apply again
3. Operator closes the session; nothing of it outlives the process

Operations on one session never interleave: each session owns a lock and
every stage call runs under it. Different sessions run concurrently.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
import asyncio
import time
import uuid

from ..pipeline import RuleAuthoringPipeline
from ..rule_schema.errors import CommitFailure, GenerationFailure, PreconditionError
from ..rule_schema.models import (
    ApplyOutcome,
    GenerationRequest,
    SubjectDescription,
    SynthesisResult,
    ValidationSignal,
)


class SessionStatus(Enum):
    """Status of an authoring session."""
    CREATED = "created"  # Subject loaded, nothing generated yet
    SYNTHESIZED = "synthesized"  # Result awaiting operator review
    APPLIED = "applied"  # Committed with no outstanding signals
    SIGNALS_PENDING = "signals_pending"  # Committed, host reported problems
    FAILED = "failed"  # Last operation failed
    CLOSED = "closed"


@dataclass
class AuthoringSession:
    """
    One operator's work on one subject.

    Holds the latest result, the latest apply outcome and the signals a
    corrective pass may consume.
    """
    session_id: str
    subject: SubjectDescription
    created_at: float

    status: SessionStatus = SessionStatus.CREATED
    request: GenerationRequest = field(default_factory=GenerationRequest)
    result: SynthesisResult | None = None
    outcome: ApplyOutcome | None = None
    signals: list[ValidationSignal] = field(default_factory=list)
    last_error: str | None = None
    history: list[str] = field(default_factory=list)

    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def is_active(self) -> bool:
        return self.status != SessionStatus.CLOSED

    @property
    def correlation_id(self) -> str:
        return self.session_id


class SessionManager:
    """
    Creates sessions and runs pipeline operations on them.

    Usage:
        manager = SessionManager(pipeline)
        session = manager.create_session(subject)
        result = await manager.synthesize(session.session_id, request)
        outcome = await manager.apply(session.session_id)
    """

    def __init__(self, pipeline: RuleAuthoringPipeline):
        self.pipeline = pipeline
        self._sessions: dict[str, AuthoringSession] = {}

    def create_session(self, subject: SubjectDescription) -> AuthoringSession:
        session = AuthoringSession(
            session_id=str(uuid.uuid4()),
            subject=subject,
            created_at=time.time(),
        )
        self._sessions[session.session_id] = session
        return session

    def get_session(self, session_id: str) -> AuthoringSession | None:
        return self._sessions.get(session_id)

    def _require(self, session_id: str) -> AuthoringSession:
        session = self._sessions.get(session_id)
        if session is None or not session.is_active():
            raise KeyError(session_id)
        return session

    async def synthesize(
        self,
        session_id: str,
        request: GenerationRequest | None = None,
        use_mechanics: bool = True,
    ) -> SynthesisResult:
        session = self._require(session_id)
        async with session.lock:
            session.request = request or GenerationRequest()
            try:
                result = await self.pipeline.synthesize(session.subject, session.request, use_mechanics)
            except (GenerationFailure, PreconditionError) as e:
                self._fail(session, e)
                raise
            session.result = result
            session.status = SessionStatus.SYNTHESIZED
            session.last_error = None
            session.history.append("synthesize")
            return result

    async def apply(self, session_id: str, append: bool = False) -> ApplyOutcome:
        session = self._require(session_id)
        async with session.lock:
            if session.result is None:
                raise PreconditionError("Nothing to apply: synthesize first")
            try:
                outcome = await self.pipeline.apply(
                    session.subject,
                    session.result,
                    correlation_id=session.correlation_id,
                    append=append,
                )
            except (CommitFailure, PreconditionError) as e:
                self._fail(session, e)
                raise
            session.outcome = outcome
            session.signals = outcome.signals
            session.status = SessionStatus.SIGNALS_PENDING if outcome.has_signals else SessionStatus.APPLIED
            session.last_error = None
            session.history.append("apply")
            return outcome

    async def review_and_fix(self, session_id: str) -> SynthesisResult:
        session = self._require(session_id)
        async with session.lock:
            if session.result is None:
                raise PreconditionError("Nothing to review: synthesize first")
            prior_rules = session.outcome.committed_rules if session.outcome else None
            try:
                fixed = await self.pipeline.review_and_fix(
                    session.subject, session.result, session.signals, prior_rules=prior_rules,
                )
            except (GenerationFailure, PreconditionError) as e:
                session.last_error = str(e)
                raise
            session.result = fixed
            session.signals = []
            session.status = SessionStatus.SYNTHESIZED
            session.last_error = None
            session.history.append("review_and_fix")
            return fixed

    def close_session(self, session_id: str) -> bool:
        """Close and forget a session. Returns False if it did not exist."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.status = SessionStatus.CLOSED
        session.result = None
        session.outcome = None
        session.signals = []
        return True

    def list_active_sessions(self) -> list[str]:
        return [sid for sid, s in self._sessions.items() if s.is_active()]

    def cleanup_stale_sessions(self, max_age_seconds: int = 3600) -> int:
        """Close sessions older than max_age_seconds. Returns how many."""
        now = time.time()
        stale = [sid for sid, s in self._sessions.items() if now - s.created_at > max_age_seconds]
        for session_id in stale:
            self.close_session(session_id)
        return len(stale)

    @staticmethod
    def _fail(session: AuthoringSession, error: Exception):
        session.status = SessionStatus.FAILED
        session.last_error = str(error)
        session.history.append(f"failed: {type(error).__name__}")

    def stats(self) -> dict[str, Any]:
        counts: dict[str, int] = {}
        for session in self._sessions.values():
            counts[session.status.value] = counts.get(session.status.value, 0) + 1
        return {"sessions": len(self._sessions), "by_status": counts}
