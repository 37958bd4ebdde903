"""Error logging with scene context, and the JSON error envelope every API failure is rendered in."""
from __future__ import annotations

import logging
from typing import Any

logger = logging.getLogger(__name__)


def log_error_with_context(
    error: Exception,
    node_name: str,
    campaign_id: str | None = None,
    scene_id: str | None = None,
    operation: str | None = None,
    extra_context: dict[str, Any] | None = None,
) -> None:
    """Log ``error`` with its stack trace and key=value context.

    node_name is the subsystem ('resolution', 'turn_order', 'api', ...);
    operation is a function name or request path.
    """
    context: dict[str, Any] = {
        "campaign_id": campaign_id,
        "scene_id": scene_id,
        "operation": operation,
    }
    context.update(extra_context or {})
    rendered = " ".join(f"{k}={v}" for k, v in context.items() if v is not None) or "no context"
    logger.error(
        "node=%s error=%s: %s %s",
        node_name,
        type(error).__name__,
        error,
        rendered,
        exc_info=error,
        extra={"node_name": node_name, **{k: v for k, v in context.items() if k not in _RESERVED_LOG_KEYS}},
    )


# LogRecord attributes that may not be overwritten through ``extra``
_RESERVED_LOG_KEYS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


def create_error_response(
    error_code: str,
    message: str,
    node: str | None = None,
    details: dict[str, Any] | None = None,
    retryable: bool | None = None,
) -> dict[str, Any]:
    """Build the ``{error_code, message, node?, retryable?, details?}`` body returned for failures."""
    response: dict[str, Any] = {"error_code": error_code, "message": message}
    if node:
        response["node"] = node
    if retryable is not None:
        response["retryable"] = retryable
    if details:
        response["details"] = details
    return response
