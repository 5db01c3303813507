"""
FastAPI Application - REST API for the authoring flow.

Endpoints:
    POST   /api/v1/sessions                  Open a session on a stored subject
    GET    /api/v1/sessions                  List active sessions
    GET    /api/v1/sessions/{id}             Get session status
    DELETE /api/v1/sessions/{id}             Close session
    POST   /api/v1/sessions/{id}/synthesize  Generate a rule set for review
    POST   /api/v1/sessions/{id}/apply       Commit the reviewed rule set
    POST   /api/v1/sessions/{id}/review      Corrective pass over captured signals

All responses are JSON with explicit Pydantic schemas.
"""

from typing import Optional, Union
import os

from .. import __version__

ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*").split(",")


def create_app(service=None):
    """
    Create the FastAPI application.

    Args:
        service: Optional AuthoringService instance (creates new if not provided)

    Returns:
        FastAPI application instance
    """
    try:
        from fastapi import FastAPI, Body
        from fastapi.middleware.cors import CORSMiddleware
        from fastapi.responses import JSONResponse
    except ImportError:
        raise ImportError(
            "FastAPI not installed. Install with: pip install fastapi uvicorn"
        )

    from .service import AuthoringService
    from .schemas import (
        # Request models
        CreateSessionRequest,
        SynthesizeRequest,
        ApplyRequest,
        # Response models
        SessionResponse,
        SynthesisResponse,
        ApplyResponse,
        ErrorResponse,
        SessionListResponse,
        EndSessionResponse,
        HealthResponse,
        ERROR_STATUS_CODES,
    )

    app = FastAPI(
        title="Rulesmith API",
        description="""
Rule authoring with a generation oracle, reference retrieval and a
transactional commit.

## Flow

1. `POST /sessions` with the id of a stored subject document
2. `POST /synthesize` and review the returned rules
3. `POST /apply` commits them; `has_signals=true` means the host complained
4. `POST /review` runs a corrective pass, then apply again

## Error Codes

| Code | Status | Description |
|------|--------|-------------|
| `GENERATION_FAILED` | 502 | Oracle output could not be used |
| `PRECONDITION_FAILED` | 400 | Request rejected before any oracle or store call |
| `COMMIT_FAILED` | 409 | Persistence failed, side effects rolled back |
| `SESSION_NOT_FOUND` | 404 | Session does not exist |
        """,
        version=__version__,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    api_service = service or AuthoringService()

    # =========================================================================
    # Error helpers
    # =========================================================================

    def make_error_response(error: ErrorResponse) -> JSONResponse:
        """Turn a service error into a JSONResponse with the mapped status."""
        return JSONResponse(
            status_code=ERROR_STATUS_CODES.get(error.error_code, 400),
            content=error.model_dump(mode="json"),
        )

    def respond(response):
        if isinstance(response, ErrorResponse):
            return make_error_response(response)
        return response

    # =========================================================================
    # Session Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/sessions",
        response_model=SessionResponse,
        responses={400: {"model": ErrorResponse, "description": "Unknown subject document"}},
        tags=["Sessions"],
        summary="Open an authoring session",
    )
    async def create_session(request: CreateSessionRequest) -> Union[SessionResponse, JSONResponse]:
        """Open a session on a subject document already in the store."""
        return respond(await api_service.create_session(request))

    @app.get(
        "/api/v1/sessions/{session_id}",
        response_model=SessionResponse,
        responses={404: {"model": ErrorResponse}},
        tags=["Sessions"],
        summary="Get session status",
    )
    async def get_session(session_id: str) -> Union[SessionResponse, JSONResponse]:
        return respond(api_service.get_session(session_id))

    @app.delete(
        "/api/v1/sessions/{session_id}",
        response_model=EndSessionResponse,
        tags=["Sessions"],
        summary="Close a session",
    )
    async def end_session(session_id: str) -> EndSessionResponse:
        success = api_service.end_session(session_id)
        return EndSessionResponse(success=success, session_id=session_id)

    @app.get(
        "/api/v1/sessions",
        response_model=SessionListResponse,
        tags=["Sessions"],
        summary="List active sessions",
    )
    async def list_sessions() -> SessionListResponse:
        sessions = api_service.list_sessions()
        return SessionListResponse(sessions=sessions, count=len(sessions))

    # =========================================================================
    # Authoring Endpoints
    # =========================================================================

    @app.post(
        "/api/v1/sessions/{session_id}/synthesize",
        response_model=SynthesisResponse,
        responses={
            400: {"model": ErrorResponse},
            404: {"model": ErrorResponse},
            502: {"model": ErrorResponse, "description": "Oracle output unusable"},
        },
        tags=["Authoring"],
        summary="Generate a rule set",
    )
    async def synthesize(
        session_id: str,
        request: Optional[SynthesizeRequest] = Body(None),
    ) -> Union[SynthesisResponse, JSONResponse]:
        """
        Generate a rule set for the session's subject.

        Nothing is persisted; the result waits for operator review.
        """
        return respond(await api_service.synthesize(session_id, request or SynthesizeRequest()))

    @app.post(
        "/api/v1/sessions/{session_id}/apply",
        response_model=ApplyResponse,
        responses={
            400: {"model": ErrorResponse},
            404: {"model": ErrorResponse},
            409: {"model": ErrorResponse, "description": "Commit failed and was rolled back"},
        },
        tags=["Authoring"],
        summary="Commit the current rule set",
    )
    async def apply(
        session_id: str,
        request: Optional[ApplyRequest] = Body(None),
    ) -> Union[ApplyResponse, JSONResponse]:
        """
        Create side effects, link them, write the rules and watch the
        validation channel for the configured window.
        """
        return respond(await api_service.apply(session_id, request or ApplyRequest()))

    @app.post(
        "/api/v1/sessions/{session_id}/review",
        response_model=SynthesisResponse,
        responses={
            400: {"model": ErrorResponse, "description": "No signals to review"},
            404: {"model": ErrorResponse},
            502: {"model": ErrorResponse},
        },
        tags=["Authoring"],
        summary="Corrective pass over captured signals",
    )
    async def review(session_id: str) -> Union[SynthesisResponse, JSONResponse]:
        return respond(await api_service.review(session_id))

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get(
        "/api/v1/health",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        """Health check endpoint for load balancers."""
        return HealthResponse(status="healthy", service="rulesmith", version=__version__)

    @app.get("/", tags=["System"])
    async def root():
        return {
            "name": "Rulesmith API",
            "version": __version__,
            "docs": "/api/docs",
            "health": "/api/v1/health",
        }

    return app
