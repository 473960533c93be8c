"""Session Log Context.

contextvars-backed binding of the screener session and the query being
answered, so every log line emitted during a query carries both IDs.
"""

import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


_session_id_var: ContextVar[str] = ContextVar("session_id", default="")
_query_id_var: ContextVar[str] = ContextVar("query_id", default="")
_extra_context_var: ContextVar[dict] = ContextVar("extra_context", default={})


def generate_id() -> str:
    """Generate a short unique ID."""
    return uuid.uuid4().hex[:12]


def get_session_id() -> str:
    """Get the current session ID from context."""
    return _session_id_var.get()


def get_query_id() -> str:
    """Get the current query ID from context."""
    return _query_id_var.get()


def get_context_dict() -> dict[str, Any]:
    """Get all context variables as a dictionary for log binding."""
    ctx = {}
    session_id = _session_id_var.get()
    if session_id:
        ctx["session_id"] = session_id
    query_id = _query_id_var.get()
    if query_id:
        ctx["query_id"] = query_id
    extra = _extra_context_var.get()
    if extra:
        ctx.update(extra)
    return ctx


@dataclass
class SessionLogContext:
    """Context manager binding session and query IDs to log entries.

    Previous values are restored on exit, so contexts nest.

    Example:
        with SessionLogContext(session_id="s-1"):
            logger.info("screen finished")  # includes session_id, query_id
    """

    session_id: str = ""
    query_id: str = ""
    extra: dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    _tokens: list = field(default_factory=list, repr=False)

    def __post_init__(self):
        if not self.query_id:
            self.query_id = generate_id()

    def __enter__(self) -> "SessionLogContext":
        self._tokens = [
            (_session_id_var, _session_id_var.set(self.session_id)),
            (_query_id_var, _query_id_var.set(self.query_id)),
            (_extra_context_var, _extra_context_var.set(self.extra.copy())),
        ]
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since context was created."""
        delta = datetime.now(timezone.utc) - self.started_at
        return delta.total_seconds() * 1000

    def bind(self, **kwargs: Any) -> None:
        """Add extra key-value pairs to the context."""
        current = _extra_context_var.get()
        _extra_context_var.set({**current, **kwargs})
        self.extra.update(kwargs)
