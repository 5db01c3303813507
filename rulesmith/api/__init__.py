"""
API Module - HTTP interface for operators.

The operator:
1. Opens a session on a stored subject document
2. Synthesizes a rule set and reviews it
3. Applies it and inspects captured validation signals
4. Optionally runs a corrective pass and applies again

All state is session-scoped and in memory.
"""

from .schemas import (
    # Requests
    CreateSessionRequest,
    SynthesizeRequest,
    ApplyRequest,
    # Responses
    SessionResponse,
    SynthesisResponse,
    ApplyResponse,
    ErrorResponse,
    ErrorCode,
)
from .service import AuthoringService
from .app import create_app

__all__ = [
    # Requests
    "CreateSessionRequest",
    "SynthesizeRequest",
    "ApplyRequest",
    # Responses
    "SessionResponse",
    "SynthesisResponse",
    "ApplyResponse",
    "ErrorResponse",
    "ErrorCode",
    # Service
    "AuthoringService",
    "create_app",
]
