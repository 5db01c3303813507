"""
Tests for the API layer.

Tests:
- Service flow: open session, synthesize, apply, review
- Error mapping to structured codes
- Session manager bookkeeping
- OpenAPI schema of the FastAPI app
"""

import asyncio
import time
import pytest

from ..api.schemas import (
    ERROR_STATUS_CODES,
    ApplyRequest,
    CreateSessionRequest,
    ErrorCode,
    ErrorResponse,
    SessionStatus,
    SideEffectModeName,
    SynthesizeRequest,
)
from ..api.service import AuthoringService
from ..commit.monitor import InMemoryValidationChannel
from ..session import SessionManager
from ..session import SessionStatus as ManagerStatus
from .fakes import (
    SUBJECT_ID,
    FlakyStore,
    HostSimulatingStore,
    ScriptedOracle,
    text_reply,
    tool_call_reply,
)


BAD_DICE = [{"key": "DamageDice", "selector": "strike-damage", "dieSize": "1d6"}]
FIXED_DICE = [{"key": "DamageDice", "selector": "strike-damage", "dieSize": "d6", "diceNumber": 1}]


def dice_oracle():
    return ScriptedOracle({
        "identifyMechanics": [tool_call_reply("identifyMechanics", {"mechanics": ["damage dice"]})],
        "generateRuleElements": [tool_call_reply("generateRuleElements", {
            "rules": BAD_DICE, "explanation": "Extra d6 on strikes.",
        })],
        "fixRuleElements": [tool_call_reply("fixRuleElements", {
            "rules": FIXED_DICE, "explanation": "dieSize takes a bare die face.",
        })],
    })


@pytest.fixture
def service(make_pipeline, scenario_a_oracle, store):
    """Service over the plain attack-bonus scenario."""
    return AuthoringService(pipeline=make_pipeline(scenario_a_oracle, store))


@pytest.fixture
def signal_service(make_pipeline, subject_document):
    """Service whose store reports a bad dieSize after every commit."""
    channel = InMemoryValidationChannel()
    store = HostSimulatingStore(channel)
    store.put(SUBJECT_ID, "subject", subject_document)
    return AuthoringService(pipeline=make_pipeline(dice_oracle(), store, channel=channel))


def open_session(service):
    return asyncio.run(service.create_session(CreateSessionRequest(document_id=SUBJECT_ID)))


class TestAuthoringService:
    """Tests for AuthoringService."""

    def test_create_session(self, service):
        response = open_session(service)

        assert response.status == SessionStatus.CREATED
        assert response.subject_name == "Battle Cry"
        assert response.entity_kind == "feat"
        assert response.document_id == SUBJECT_ID
        assert not response.has_result

    def test_create_session_unknown_document(self, service):
        response = asyncio.run(service.create_session(CreateSessionRequest(document_id="nope")))

        assert isinstance(response, ErrorResponse)
        assert response.error_code == ErrorCode.PRECONDITION_FAILED

    def test_get_nonexistent_session(self, service):
        response = service.get_session("nonexistent-id")

        assert hasattr(response, "error")
        assert response.error_code == "SESSION_NOT_FOUND"

    def test_synthesize_and_apply(self, service, store):
        session_id = open_session(service).session_id

        async def scenario():
            synthesized = await service.synthesize(session_id, SynthesizeRequest())
            applied = await service.apply(session_id, ApplyRequest())
            return synthesized, applied

        synthesized, applied = asyncio.run(scenario())

        assert synthesized.mechanics == ["attack bonus"]
        assert synthesized.reference_examples[0].name == "Inspiring Attack Bonus"
        assert applied.committed_rules == synthesized.rules
        assert not applied.has_signals
        assert applied.transitions[-1] == "done"
        assert service.get_session(session_id).status == SessionStatus.APPLIED
        assert store.documents[SUBJECT_ID]["rules"] == synthesized.rules

    def test_apply_before_synthesize(self, service):
        session_id = open_session(service).session_id

        response = asyncio.run(service.apply(session_id, ApplyRequest()))

        assert response.error_code == ErrorCode.PRECONDITION_FAILED

    def test_ignore_description_without_requirements(self, service, scenario_a_oracle):
        session_id = open_session(service).session_id

        response = asyncio.run(service.synthesize(
            session_id, SynthesizeRequest(ignore_original_description=True),
        ))

        assert response.error_code == ErrorCode.PRECONDITION_FAILED
        assert scenario_a_oracle.calls == []

    def test_generation_failure(self, make_pipeline, store):
        oracle = ScriptedOracle({
            "identifyMechanics": [text_reply("")],
            "generateRuleElements": [text_reply("No idea, sorry.")],
        })
        service = AuthoringService(pipeline=make_pipeline(oracle, store))
        session_id = open_session(service).session_id

        response = asyncio.run(service.synthesize(session_id, SynthesizeRequest()))

        assert response.error_code == ErrorCode.GENERATION_FAILED
        assert response.details == {"stage": "synthesis"}
        assert ERROR_STATUS_CODES[response.error_code] == 502
        session = service.get_session(session_id)
        assert session.status == SessionStatus.FAILED
        assert session.last_error

    def test_commit_failure(self, make_pipeline, subject_document):
        store = FlakyStore(fail_update=True)
        store.put(SUBJECT_ID, "subject", subject_document)
        oracle = ScriptedOracle({
            "identifyMechanics": [tool_call_reply("identifyMechanics", {"mechanics": []})],
            "generateRuleElements": [tool_call_reply("generateRuleElements", {
                "rules": [{"key": "FlatModifier", "selector": "attack", "value": 2}], "explanation": "",
            })],
        })
        service = AuthoringService(pipeline=make_pipeline(oracle, store))
        session_id = open_session(service).session_id

        async def scenario():
            await service.synthesize(session_id, SynthesizeRequest())
            return await service.apply(session_id, ApplyRequest())

        response = asyncio.run(scenario())

        assert response.error_code == ErrorCode.COMMIT_FAILED
        assert ERROR_STATUS_CODES[response.error_code] == 409
        assert response.details["transitions"][-1] == "failed"

    def test_signals_then_review(self, signal_service):
        session_id = open_session(signal_service).session_id

        async def scenario():
            await signal_service.synthesize(session_id, SynthesizeRequest())
            first = await signal_service.apply(session_id, ApplyRequest())
            pending = signal_service.get_session(session_id)
            reviewed = await signal_service.review(session_id)
            second = await signal_service.apply(session_id, ApplyRequest())
            return first, pending, reviewed, second

        first, pending, reviewed, second = asyncio.run(scenario())

        assert first.has_signals
        assert "dieSize" in first.signals[0].message
        assert first.signals[0].correlation_id == session_id
        assert pending.status == SessionStatus.SIGNALS_PENDING
        assert len(pending.pending_signals) == 1
        assert reviewed.rules == FIXED_DICE
        assert reviewed.explanation.startswith("[Corrective review]")
        assert not second.has_signals

    def test_review_without_signals(self, service):
        session_id = open_session(service).session_id

        async def scenario():
            await service.synthesize(session_id, SynthesizeRequest())
            return await service.review(session_id)

        assert asyncio.run(scenario()).error_code == ErrorCode.PRECONDITION_FAILED

    def test_discrete_effect_mode_is_passed_through(self, service, scenario_a_oracle, store):
        store.put("feat-rally", "subject", {
            "name": "Rally", "type": "feat", "description": "Choose one ally; they gain a +1 bonus.",
        })
        scenario_a_oracle.script["designEffect"] = [tool_call_reply("designEffect", {
            "name": "Rally", "rules": [], "duration": {"unit": "minutes", "value": 1},
        })]
        session_id = asyncio.run(service.create_session(CreateSessionRequest(document_id="feat-rally"))).session_id

        response = asyncio.run(service.synthesize(
            session_id, SynthesizeRequest(side_effect_mode=SideEffectModeName.DISCRETE_EFFECT),
        ))

        assert [p.name for p in response.side_effect_plans] == ["Effect: Rally"]
        assert response.side_effect_plans[0].duration.unit == "minutes"

    def test_end_and_list_sessions(self, service):
        session_id = open_session(service).session_id
        assert service.list_sessions() == [session_id]

        assert service.end_session(session_id)
        assert not service.end_session(session_id)
        assert service.list_sessions() == []
        assert asyncio.run(service.apply(session_id, ApplyRequest())).error_code == ErrorCode.SESSION_NOT_FOUND


class TestSessionManager:
    """Tests for SessionManager bookkeeping."""

    def test_cleanup_stale_sessions(self, make_pipeline, scenario_a_oracle, store, subject):
        manager = SessionManager(make_pipeline(scenario_a_oracle, store))
        old = manager.create_session(subject)
        old.created_at = time.time() - 7200
        fresh = manager.create_session(subject)

        assert manager.cleanup_stale_sessions(max_age_seconds=3600) == 1
        assert manager.list_active_sessions() == [fresh.session_id]

    def test_stats(self, make_pipeline, scenario_a_oracle, store, subject):
        manager = SessionManager(make_pipeline(scenario_a_oracle, store))
        session = manager.create_session(subject)
        manager.create_session(subject)

        asyncio.run(manager.synthesize(session.session_id))

        assert manager.stats() == {"sessions": 2, "by_status": {"synthesized": 1, "created": 1}}
        assert session.history == ["synthesize"]
        assert session.status == ManagerStatus.SYNTHESIZED

    def test_closed_session_is_rejected(self, make_pipeline, scenario_a_oracle, store, subject):
        manager = SessionManager(make_pipeline(scenario_a_oracle, store))
        session = manager.create_session(subject)
        manager.close_session(session.session_id)

        with pytest.raises(KeyError):
            asyncio.run(manager.synthesize(session.session_id))


class TestErrorCodes:
    """Tests for error code coverage."""

    def test_every_code_has_a_status(self):
        for code in ErrorCode:
            assert code in ERROR_STATUS_CODES
            assert code.value == code.value.upper()

    def test_error_response_serializes(self):
        error = ErrorResponse(error="boom", error_code=ErrorCode.COMMIT_FAILED, details={"rolled_back": []})

        data = error.model_dump(mode="json")

        assert data["error_code"] == "COMMIT_FAILED"
        assert data["api_version"] == "v1"


class TestOpenAPISchema:
    """Tests for the FastAPI app."""

    @pytest.fixture
    def app(self, service):
        from ..api.app import create_app
        return create_app(service)

    def test_routes(self, app):
        paths = {route.path for route in app.routes}

        for path in [
            "/api/v1/sessions",
            "/api/v1/sessions/{session_id}",
            "/api/v1/sessions/{session_id}/synthesize",
            "/api/v1/sessions/{session_id}/apply",
            "/api/v1/sessions/{session_id}/review",
            "/api/v1/health",
        ]:
            assert path in paths, f"Missing route: {path}"

    def test_response_models_in_schema(self, app):
        from fastapi.openapi.utils import get_openapi

        schema = get_openapi(title=app.title, version=app.version, routes=app.routes)
        schemas = schema["components"]["schemas"]

        for name in ["SessionResponse", "SynthesisResponse", "ApplyResponse", "ErrorResponse"]:
            assert name in schemas, f"Missing schema: {name}"
        assert "200" in schema["paths"]["/api/v1/sessions/{session_id}/apply"]["post"]["responses"]
