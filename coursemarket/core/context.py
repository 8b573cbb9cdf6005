"""Request context carried through contextvars.

The logging pipeline merges every non-empty value here into each event, so a
log line emitted deep inside the ledger still names the request, the caller
and the course it concerns.
"""

from contextvars import ContextVar
from typing import Any
from uuid import UUID, uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
course_id_var: ContextVar[str | None] = ContextVar("course_id", default=None)
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)

_OPTIONAL_VARS: dict[str, ContextVar[str | None]] = {
    "user_id": user_id_var,
    "course_id": course_id_var,
    "trace_id": trace_id_var,
}


def _as_str(value: str | UUID | None) -> str | None:
    return str(value) if value is not None else None


def get_request_id() -> str:
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Use the caller's request id, or mint one. Returns the id in effect."""
    rid = request_id or str(uuid4())
    request_id_var.set(rid)
    return rid


def set_user_id(user_id: str | UUID | None) -> None:
    """Record the authenticated caller."""
    user_id_var.set(_as_str(user_id))


def set_course_id(course_id: str | UUID | None) -> None:
    """Record the course a request operates on."""
    course_id_var.set(_as_str(course_id))


def set_trace_id(trace_id: str | None) -> None:
    trace_id_var.set(trace_id)


def get_context() -> dict[str, Any]:
    """All non-empty context values."""
    context: dict[str, Any] = {}
    if request_id := get_request_id():
        context["request_id"] = request_id
    for name, var in _OPTIONAL_VARS.items():
        if value := var.get():
            context[name] = value
    return context


def clear_context() -> None:
    """Reset every value at the end of a request."""
    request_id_var.set("")
    for var in _OPTIONAL_VARS.values():
        var.set(None)
