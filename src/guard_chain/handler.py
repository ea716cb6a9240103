"""ErrorHandler — the single place that writes failure responses."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from guard_chain._internal.clock import Clock, SystemClock
from guard_chain.errors import ErrorKind, GuardError
from guard_chain.observer import ChainEvent, NullObserver, Observer, safe_record

if TYPE_CHECKING:
    from guard_chain.context import RequestContext
    from guard_chain.response import ResponseSink

STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTHENTICATION: 401,
    ErrorKind.AUTHORIZATION: 403,
    ErrorKind.RATE_LIMIT: 429,
    ErrorKind.CACHE: 500,
    ErrorKind.INTERNAL: 500,
}

REDACTED_MESSAGE = "Internal server error"


class ErrorHandler:
    """Maps a :class:`GuardError` onto a JSON response.

    Parameters:
        observer:   Receives one ``request.error`` event per failure, always
                    carrying the real message.
        production: Replace internal-error messages in the response body
                    with a generic string.
        clock:      Injectable clock for the body ``timestamp``.
        status_map: Overrides for the kind → status table.
    """

    def __init__(
        self,
        *,
        observer: Observer | None = None,
        production: bool = False,
        clock: Clock | None = None,
        status_map: dict[ErrorKind, int] | None = None,
    ) -> None:
        self.observer: Observer = observer or NullObserver()
        self.production = production
        self._clock = clock or SystemClock()
        self._status = {**STATUS_BY_KIND, **(status_map or {})}

    def status_for(self, error: GuardError) -> int:
        return self._status.get(error.kind, 500)

    def render(self, error: GuardError, context: RequestContext) -> dict[str, Any]:
        """Build the JSON-serializable failure body."""
        message = error.message
        if error.kind is ErrorKind.INTERNAL and self.production:
            message = REDACTED_MESSAGE
        timestamp = self._clock.now().isoformat().replace("+00:00", "Z")
        return {
            "error": message,
            "code": error.code,
            "traceId": context.trace_id,
            "timestamp": timestamp,
            **error.to_body(),
        }

    async def handle(
        self, error: GuardError, context: RequestContext, response: ResponseSink
    ) -> None:
        status = self.status_for(error)
        self._report(error, context, status)

        response.set_status(status)
        response.set_header("Content-Type", "application/json")
        if error.kind is ErrorKind.RATE_LIMIT:
            response.set_header("Retry-After", str(error.detail.get("retry_after", 0)))
        elif error.kind is ErrorKind.AUTHENTICATION:
            response.set_header("WWW-Authenticate", "Bearer")
        response.send_body(self.render(error, context))

    def _report(self, error: GuardError, context: RequestContext, status: int) -> None:
        data: dict[str, Any] = {
            "kind": error.kind.value,
            "code": error.code,
            "message": error.message,
            "guard": error.guard_name,
            "status": status,
            "method": context.method,
            "path": context.path,
        }
        if error.cause is not None:
            data["exception"] = repr(error.cause)
        safe_record(self.observer, ChainEvent("request.error", context.trace_id, data))
