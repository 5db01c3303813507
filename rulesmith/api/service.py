"""
API Service - Business logic layer between the HTTP surface and the pipeline.

The service:
1. Opens sessions on stored subject documents
2. Runs synthesize / apply / review on them
3. Maps pipeline errors to structured error responses

Framework-agnostic: the FastAPI app is a thin shell over it.
"""

from __future__ import annotations
from dataclasses import dataclass, field
import logging

from .schemas import (
    ApplyRequest,
    ApplyResponse,
    CreatedSideEffectInfo,
    CreateSessionRequest,
    DurationInfo,
    ErrorCode,
    ErrorResponse,
    ReferenceExampleInfo,
    SessionResponse,
    SessionStatus,
    SideEffectPlanInfo,
    SignalInfo,
    SynthesisResponse,
    SynthesizeRequest,
)
from ..pipeline import RuleAuthoringPipeline, build_pipeline
from ..rule_schema.errors import CommitFailure, GenerationFailure, InvalidRuleError, PreconditionError
from ..rule_schema.models import (
    GenerationRequest,
    SideEffectMode,
    SubjectDescription,
    SynthesisResult,
)
from ..session import AuthoringSession, SessionManager

logger = logging.getLogger(__name__)


def _error(code: ErrorCode, error: Exception | str, **details) -> ErrorResponse:
    return ErrorResponse(error=str(error), error_code=code, details=details or None)


def _session_not_found(session_id: str) -> ErrorResponse:
    return _error(ErrorCode.SESSION_NOT_FOUND, f"Session {session_id} not found")


@dataclass
class AuthoringService:
    """
    Main API service.

    Usage:
        service = AuthoringService(pipeline=pipeline)
        session = await service.create_session(CreateSessionRequest(document_id="feat-1"))
        result = await service.synthesize(session.session_id, SynthesizeRequest())
        outcome = await service.apply(session.session_id, ApplyRequest())
    """
    pipeline: RuleAuthoringPipeline = field(default_factory=build_pipeline)
    session_manager: SessionManager | None = None

    def __post_init__(self):
        if self.session_manager is None:
            self.session_manager = SessionManager(self.pipeline)

    async def create_session(self, request: CreateSessionRequest) -> SessionResponse | ErrorResponse:
        doc = await self.pipeline.store.get(request.document_id)
        if doc is None:
            return _error(ErrorCode.PRECONDITION_FAILED, f"Document {request.document_id} not found")
        subject = SubjectDescription.from_document(doc, document_id=request.document_id)
        session = self.session_manager.create_session(subject)
        logger.info("Opened session %s on %r", session.session_id, subject.name)
        return self._session_to_response(session)

    def get_session(self, session_id: str) -> SessionResponse | ErrorResponse:
        session = self.session_manager.get_session(session_id)
        if session is None:
            return _session_not_found(session_id)
        return self._session_to_response(session)

    async def synthesize(self, session_id: str, request: SynthesizeRequest) -> SynthesisResponse | ErrorResponse:
        generation = GenerationRequest(
            custom_requirements=request.custom_requirements,
            ignore_original_description=request.ignore_original_description,
            side_effect_mode=SideEffectMode(request.side_effect_mode.value),
        )
        try:
            result = await self.session_manager.synthesize(session_id, generation, request.use_mechanics)
        except KeyError:
            return _session_not_found(session_id)
        except PreconditionError as e:
            return _error(ErrorCode.PRECONDITION_FAILED, e)
        except GenerationFailure as e:
            return _error(ErrorCode.GENERATION_FAILED, e, stage=e.stage)
        return self._result_to_response(session_id, result)

    async def apply(self, session_id: str, request: ApplyRequest) -> ApplyResponse | ErrorResponse:
        try:
            outcome = await self.session_manager.apply(session_id, append=request.append)
        except KeyError:
            return _session_not_found(session_id)
        except InvalidRuleError as e:
            return _error(ErrorCode.PRECONDITION_FAILED, e, errors=e.errors)
        except PreconditionError as e:
            return _error(ErrorCode.PRECONDITION_FAILED, e)
        except CommitFailure as e:
            return _error(
                ErrorCode.COMMIT_FAILED, e,
                rolled_back=e.rolled_back,
                rollback_errors=e.rollback_errors,
                transitions=[s.value for s in e.transitions],
            )

        return ApplyResponse(
            session_id=session_id,
            committed_rules=outcome.committed_rules,
            created_side_effects=[
                CreatedSideEffectInfo(
                    name=c.name,
                    stable_reference=c.stable_reference,
                    container_id=c.container_id,
                    document_id=c.document_id,
                    effect_type=c.effect_type.value,
                )
                for c in outcome.created_side_effects
            ],
            signals=[SignalInfo.model_validate(s) for s in outcome.signals],
            has_signals=outcome.has_signals,
            transitions=[s.value for s in outcome.transitions],
        )

    async def review(self, session_id: str) -> SynthesisResponse | ErrorResponse:
        try:
            result = await self.session_manager.review_and_fix(session_id)
        except KeyError:
            return _session_not_found(session_id)
        except PreconditionError as e:
            return _error(ErrorCode.PRECONDITION_FAILED, e)
        except GenerationFailure as e:
            return _error(ErrorCode.GENERATION_FAILED, e, stage=e.stage)
        return self._result_to_response(session_id, result)

    def end_session(self, session_id: str) -> bool:
        return self.session_manager.close_session(session_id)

    def list_sessions(self) -> list[str]:
        return self.session_manager.list_active_sessions()

    # =========================================================================
    # Conversions
    # =========================================================================

    @staticmethod
    def _session_to_response(session: AuthoringSession) -> SessionResponse:
        return SessionResponse(
            session_id=session.session_id,
            status=SessionStatus(session.status.value),
            subject_name=session.subject.name,
            entity_kind=session.subject.entity_kind,
            document_id=session.subject.document_id,
            has_result=session.result is not None,
            pending_signals=[SignalInfo.model_validate(s) for s in session.signals],
            last_error=session.last_error,
            created_at=session.created_at,
        )

    @staticmethod
    def _result_to_response(session_id: str, result: SynthesisResult) -> SynthesisResponse:
        return SynthesisResponse(
            session_id=session_id,
            rules=result.rules,
            explanation=result.explanation,
            mechanics=result.mechanics,
            reference_examples=[ReferenceExampleInfo.model_validate(e) for e in result.reference_examples],
            side_effect_plans=[
                SideEffectPlanInfo(
                    name=p.name,
                    description=p.description,
                    effect_type=p.effect_type.value,
                    duration=DurationInfo.model_validate(p.duration),
                    rules=p.rules,
                    rarity=p.rarity,
                    level=p.level,
                )
                for p in result.side_effect_plans
            ],
        )
