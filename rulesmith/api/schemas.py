"""
Pydantic Schemas for API - Request/response models for OpenAPI.

Error Codes:
- GENERATION_FAILED: the oracle produced nothing usable (retry is up to the operator)
- PRECONDITION_FAILED: request rejected before any oracle or store call
- COMMIT_FAILED: persistence failed; side effects were rolled back
- SESSION_NOT_FOUND: session does not exist or was closed
"""

from enum import Enum
from typing import Optional, Any
from pydantic import BaseModel, Field


# =============================================================================
# Enums
# =============================================================================

class SessionStatus(str, Enum):
    """Session status values."""
    CREATED = "created"
    SYNTHESIZED = "synthesized"
    APPLIED = "applied"
    SIGNALS_PENDING = "signals_pending"
    FAILED = "failed"
    CLOSED = "closed"


class SideEffectModeName(str, Enum):
    """How transient effects are represented."""
    TOGGLE = "toggle"
    DISCRETE_EFFECT = "discrete-effect"


class ErrorCode(str, Enum):
    """Structured error codes."""
    GENERATION_FAILED = "GENERATION_FAILED"
    PRECONDITION_FAILED = "PRECONDITION_FAILED"
    COMMIT_FAILED = "COMMIT_FAILED"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    INTERNAL_ERROR = "INTERNAL_ERROR"


ERROR_STATUS_CODES: dict[ErrorCode, int] = {
    ErrorCode.GENERATION_FAILED: 502,
    ErrorCode.PRECONDITION_FAILED: 400,
    ErrorCode.COMMIT_FAILED: 409,
    ErrorCode.SESSION_NOT_FOUND: 404,
    ErrorCode.INTERNAL_ERROR: 500,
}


# =============================================================================
# Shared Models
# =============================================================================

class ReferenceExampleInfo(BaseModel):
    """A reference example shown to the oracle."""
    id: str
    name: str
    entity_kind: str
    source_label: str
    relevance_score: float
    matched_keywords: list[str] = Field(default_factory=list)
    rules: list[dict[str, Any]] = Field(default_factory=list)

    model_config = {"from_attributes": True}


class DurationInfo(BaseModel):
    expiry: Optional[str] = None
    sustained: bool = False
    unit: str = "unlimited"
    value: int = -1

    model_config = {"from_attributes": True}


class SideEffectPlanInfo(BaseModel):
    """A planned effect document."""
    name: str
    description: str
    effect_type: str
    duration: DurationInfo
    rules: list[dict[str, Any]] = Field(default_factory=list)
    rarity: str = "common"
    level: int = 1


class CreatedSideEffectInfo(BaseModel):
    """An effect document created by apply."""
    name: str
    stable_reference: str
    container_id: str
    document_id: str
    effect_type: str


class SignalInfo(BaseModel):
    """A validation message captured after a commit."""
    message: str
    captured_at: float
    correlation_id: Optional[str] = None

    model_config = {"from_attributes": True}


# =============================================================================
# Request Models
# =============================================================================

class CreateSessionRequest(BaseModel):
    """Open a session on a stored subject document."""
    document_id: str = Field(..., description="Id of the subject document in the store")


class SynthesizeRequest(BaseModel):
    """Generate a rule set for the session's subject."""
    custom_requirements: Optional[str] = Field(None, description="Operator requirements, highest priority")
    ignore_original_description: bool = Field(False, description="Requires custom_requirements")
    side_effect_mode: SideEffectModeName = SideEffectModeName.TOGGLE
    use_mechanics: bool = True


class ApplyRequest(BaseModel):
    """Commit the session's current result."""
    append: bool = Field(False, description="Keep existing stored rules ahead of the new ones")


# =============================================================================
# Response Models
# =============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str = Field(..., description="Human-readable error message")
    error_code: ErrorCode = Field(..., description="Machine-readable error code")
    details: Optional[dict[str, Any]] = Field(None, description="Additional error context")
    api_version: str = Field("v1", description="API version")


class SessionResponse(BaseModel):
    """Response containing session information."""
    session_id: str
    status: SessionStatus
    subject_name: str
    entity_kind: str
    document_id: Optional[str] = None
    has_result: bool = False
    pending_signals: list[SignalInfo] = Field(default_factory=list)
    last_error: Optional[str] = None
    created_at: float = 0.0
    api_version: str = "v1"


class SynthesisResponse(BaseModel):
    """A rule set awaiting review."""
    session_id: str
    rules: list[dict[str, Any]]
    explanation: str
    mechanics: list[str] = Field(default_factory=list)
    reference_examples: list[ReferenceExampleInfo] = Field(default_factory=list)
    side_effect_plans: list[SideEffectPlanInfo] = Field(default_factory=list)
    api_version: str = "v1"


class ApplyResponse(BaseModel):
    """Outcome of committing a rule set."""
    session_id: str
    committed_rules: list[dict[str, Any]]
    created_side_effects: list[CreatedSideEffectInfo] = Field(default_factory=list)
    signals: list[SignalInfo] = Field(default_factory=list)
    has_signals: bool = False
    transitions: list[str] = Field(default_factory=list)
    api_version: str = "v1"


class SessionListResponse(BaseModel):
    """Response listing active sessions."""
    sessions: list[str]
    count: int


class EndSessionResponse(BaseModel):
    """Response after closing a session."""
    success: bool
    session_id: str


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    service: str
    version: str
