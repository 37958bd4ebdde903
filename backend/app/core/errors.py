"""Domain error taxonomy for scene, turn-order, roll and resolution operations.

Every error carries a stable ``error_code`` and the HTTP status the API maps
it to. ``retryable`` marks failures the caller may simply re-issue.
"""
from __future__ import annotations

from typing import Any


class SceneEngineError(Exception):
    """Base class for domain errors raised by the orchestration core."""

    error_code = "SCENE_ENGINE_ERROR"
    http_status = 400
    retryable = False

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = {k: v for k, v in details.items() if v is not None}


class NotFoundError(SceneEngineError):
    error_code = "NOT_FOUND"
    http_status = 404


class ConflictError(SceneEngineError):
    """Duplicate live scene, participant already in a live scene, or duplicate active tracker."""
    error_code = "CONFLICT"
    http_status = 409


class InvalidStateError(SceneEngineError):
    error_code = "INVALID_STATE"
    http_status = 409


class PermissionDeniedError(SceneEngineError):
    """Caller lacks the campaign role or character ownership the operation requires."""
    error_code = "PERMISSION_DENIED"
    http_status = 403


class NotYourTurnError(SceneEngineError):
    error_code = "NOT_YOUR_TURN"
    http_status = 409


class EmptyLedgerError(SceneEngineError):
    error_code = "EMPTY_LEDGER"
    http_status = 400


class AlreadyResolvingError(SceneEngineError):
    error_code = "ALREADY_RESOLVING"
    http_status = 409


class NoActiveTrackerError(SceneEngineError):
    """No active turn tracker for the scene; callers treat this as freeform mode."""
    error_code = "NO_ACTIVE_TRACKER"
    http_status = 404


class NarratorFailure(SceneEngineError):
    """Narrator call failed, timed out, or returned an unusable result. Scene stays RESOLVING."""
    error_code = "NARRATOR_FAILURE"
    http_status = 503
    retryable = True


class ConcurrentUpdateError(SceneEngineError):
    """Optimistic-versioning retry budget exhausted on a contended row."""
    error_code = "CONCURRENT_UPDATE"
    http_status = 409
    retryable = True


class InvalidInputError(SceneEngineError):
    """Request data that cannot be normalized (empty action text, empty turn order)."""
    error_code = "INVALID_INPUT"
    http_status = 400
