"""
Error taxonomy for the authoring pipeline.

- GenerationFailure: the oracle produced nothing usable
- PreconditionError: request rejected before any oracle or store call
- InvalidRuleError: a rule object failed validation before commit
- CommitFailure: persistence failed, side effects of the batch rolled back

Observed validation signals are NOT an error; they are reported on a
successful ApplyOutcome.
"""

from __future__ import annotations
from typing import Any


class RulesmithError(Exception):
    """Base class for all pipeline errors."""


class GenerationFailure(RulesmithError):
    """Raised when no extraction strategy yields a usable structure."""

    def __init__(self, message: str, stage: str = "synthesis", raw: Any = None):
        self.stage = stage
        self.raw = raw
        super().__init__(message)


class PreconditionError(RulesmithError):
    """Raised before any oracle or persistence call."""


class InvalidRuleError(PreconditionError):
    """Raised when rule objects fail structural validation."""

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Rule validation failed with {len(errors)} error(s): " + "; ".join(errors))


class CommitFailure(RulesmithError):
    """
    Raised when committing a rule set or its side effects fails.

    The subject's stored rules are left at their pre-commit value and every
    side effect created in the same batch has been deleted (best-effort;
    see rollback_errors).
    """

    def __init__(
        self,
        message: str,
        rolled_back: list[str] | None = None,
        rollback_errors: list[str] | None = None,
        transitions: list[Any] | None = None,
    ):
        self.rolled_back = rolled_back or []
        self.rollback_errors = rollback_errors or []
        self.transitions = transitions or []
        super().__init__(message)
