"""Structured logging helpers (PII-safe)."""

from typing import Any


def build_log_context(
    *,
    identity_id: str | None = None,
    planner_id: str | None = None,
    executor_id: str | None = None,
    request_id: str | None = None,
    route: str | None = None,
    method: str | None = None,
    status_code: int | None = None,
) -> dict[str, Any]:
    """Return a log context dict carrying only opaque identifiers."""
    context: dict[str, Any] = {}
    if identity_id:
        context["identity_id"] = identity_id
    if planner_id:
        context["planner_id"] = planner_id
    if executor_id:
        context["executor_id"] = executor_id
    if request_id:
        context["request_id"] = request_id
    if route:
        context["route"] = route
    if method:
        context["method"] = method
    if status_code is not None:
        context["status_code"] = status_code
    return context
