"""TracerGuard — assigns the correlation id and reports request timing."""

from __future__ import annotations

import uuid
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from guard_chain.guards.base import Guard
from guard_chain.observer import ChainEvent, safe_record
from guard_chain.result import GuardResult

if TYPE_CHECKING:
    from guard_chain.context import RequestContext

_MAX_INBOUND_LENGTH = 128


def _new_id() -> str:
    return uuid.uuid4().hex


def _acceptable(value: str) -> bool:
    return 0 < len(value) <= _MAX_INBOUND_LENGTH and value.isprintable() and " " not in value


class TracerGuard(Guard):
    """Purely observational guard; it never fails.

    Reuses a well-formed inbound correlation id from *header* or generates
    a new one, stores it in ``context.trace_id``, optionally mirrors it on
    the response, and emits ``request.start`` / ``request.end`` events.

    Parameters:
        header:      Header carrying the correlation id in both directions.
        echo:        Mirror the id onto the response.
        emit_events: Emit start/end events to the chain's observer.
        id_factory:  Generates new ids.
        name:        Unique guard name.
    """

    _guard_type = "tracer"
    _guard_description = "Assigns a correlation id and records request timing"

    def __init__(
        self,
        *,
        header: str = "X-Request-ID",
        echo: bool = True,
        emit_events: bool = True,
        id_factory: Callable[[], str] = _new_id,
        name: str = "tracer",
    ) -> None:
        self._name = name
        self.header = header
        self.echo = echo
        self.emit_events = emit_events
        self._id_factory = id_factory

    @property
    def name(self) -> str:
        return self._name

    def export(self) -> dict[str, Any]:
        data = super().export()
        data["config"] = {
            "header": self.header,
            "echo": self.echo,
            "emit_events": self.emit_events,
        }
        return data

    async def attempt(self, context: RequestContext) -> GuardResult:
        inbound = (context.header(self.header) or "").strip()
        if not context.trace_id:
            context.trace_id = inbound if _acceptable(inbound) else self._id_factory()
        if self.echo:
            context.response_headers[self.header] = context.trace_id
        self._emit("request.start", context, {"method": context.method, "path": context.path})
        return GuardResult.allow(self.name)

    def finish(self, context: RequestContext, status: int, elapsed_ms: float) -> None:
        self._emit(
            "request.end",
            context,
            {
                "method": context.method,
                "path": context.path,
                "status": status,
                "elapsed_ms": round(elapsed_ms, 3),
            },
        )

    def _emit(self, name: str, context: RequestContext, data: dict[str, Any]) -> None:
        if self.emit_events and self.observer is not None:
            safe_record(self.observer, ChainEvent(name, context.trace_id, data))
