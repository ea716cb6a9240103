"""GuardChain — the central orchestrator."""

from __future__ import annotations

import functools
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from guard_chain.context import RequestContext
from guard_chain.errors import GuardError
from guard_chain.handler import ErrorHandler
from guard_chain.observer import ChainEvent, LoggingObserver, Observer, safe_record
from guard_chain.response import Response, StoredResponse
from guard_chain.result import GuardResult
from guard_chain.settings import GuardChainSettings

if TYPE_CHECKING:
    from guard_chain.guards.base import Guard
    from guard_chain.response import ResponseSink

logger = logging.getLogger(__name__)

# The business handler receives the context and may be sync or async.
Handler = Callable[[RequestContext], Any]
Protected = Callable[..., Awaitable[Any]]


class GuardChain:
    """Holds an ordered, immutable sequence of guards plus one error handler.

    Guards execute in **registration order**, one at a time.  The first
    failure stops the chain and goes to the error handler; nothing after
    it runs, the business handler included.

    Chains are never mutated after construction.  :meth:`use` and
    :meth:`clone` return new chains, so a base chain can be shared by many
    routes and extended independently by each.

    Parameters:
        guards:        Initial guard sequence.
        error_handler: Centralized failure sink.  Defaults to an
                       :class:`ErrorHandler` configured from *settings*.
        observer:      Receives trace, error and degraded-guard events.
                       Defaults to a :class:`LoggingObserver`.
        settings:      Environment settings; read from ``GUARD_CHAIN_*``
                       variables when omitted.
    """

    def __init__(
        self,
        guards: tuple[Guard, ...] | list[Guard] = (),
        *,
        error_handler: ErrorHandler | None = None,
        observer: Observer | None = None,
        settings: GuardChainSettings | None = None,
    ) -> None:
        self._settings = settings or GuardChainSettings()
        if observer is None:
            observer = error_handler.observer if error_handler else LoggingObserver()
        self._observer: Observer = observer
        self._error_handler = error_handler or ErrorHandler(
            observer=observer, production=self._settings.production
        )
        self._guards: tuple[Guard, ...] = tuple(guards)
        for guard in self._guards:
            guard.bind(self._observer)

    # ── composition ──────────────────────────────────────────

    def use(self, *guards: Guard) -> GuardChain:
        """Return a new chain with *guards* appended.  ``self`` is unchanged."""
        return GuardChain(
            self._guards + guards,
            error_handler=self._error_handler,
            observer=self._observer,
            settings=self._settings,
        )

    def clone(self) -> GuardChain:
        """Return an independent chain with the same guards and error handler."""
        return self.use()

    # ── execution ────────────────────────────────────────────

    def protect(self, handler: Handler) -> Protected:
        """Wrap *handler* so every call runs through the chain first.

        The returned coroutine function takes an optional
        :class:`RequestContext` and an optional response sink and returns
        the sink.  A fresh context and :class:`Response` are created when
        the host server supplies none.
        """

        @functools.wraps(handler)
        async def protected(
            context: RequestContext | None = None,
            response: ResponseSink | None = None,
        ) -> ResponseSink:
            ctx = context if context is not None else RequestContext()
            sink: ResponseSink = response if response is not None else Response()
            await self.run(ctx, sink, handler)
            return sink

        return protected

    async def run(self, context: RequestContext, response: ResponseSink, handler: Handler) -> None:
        """Execute the chain and *handler* for one request."""
        started = time.perf_counter()
        attempted: list[Guard] = []
        status = 500
        try:
            for guard in self._guards:
                attempted.append(guard)
                result = await self._attempt(guard, context)
                if result.error is not None:
                    status = await self._fail(result.error, context, response)
                    return
                if result.response is not None:
                    result.response.write_to(response, context.response_headers)
                    status = result.response.status
                    return

            try:
                value = handler(context)
                if inspect.isawaitable(value):
                    value = await value
            except Exception as exc:
                error = GuardError.from_exception("handler", exc)
                status = await self._fail(error, context, response)
                return

            outcome = self._write_outcome(value, context, response)
            status = outcome.status
            await self._settle(attempted, context, outcome)
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            for guard in attempted:
                try:
                    guard.finish(context, status, elapsed_ms)
                except Exception:
                    logger.warning("finish failed for guard %s", guard.name, exc_info=True)

    async def _attempt(self, guard: Guard, context: RequestContext) -> GuardResult:
        try:
            return await guard.attempt(context)
        except Exception as exc:
            return GuardResult.deny(GuardError.from_exception(guard.name, exc))

    async def _fail(
        self, error: GuardError, context: RequestContext, response: ResponseSink
    ) -> int:
        for name, value in context.response_headers.items():
            response.set_header(name, value)
        await self._error_handler.handle(error, context, response)
        return self._error_handler.status_for(error)

    def _write_outcome(
        self, value: Any, context: RequestContext, response: ResponseSink
    ) -> StoredResponse:
        if value is None:
            # The handler wrote to the sink itself. Snapshot before the
            # chain's own headers land so settle() never sees them.
            snapshot = getattr(response, "snapshot", None)
            outcome = snapshot() if callable(snapshot) else StoredResponse()
            for name, header_value in context.response_headers.items():
                response.set_header(name, header_value)
            return outcome

        outcome = _to_stored_response(value)
        outcome.write_to(response, context.response_headers)
        return outcome

    async def _settle(
        self, attempted: list[Guard], context: RequestContext, outcome: StoredResponse
    ) -> None:
        for guard in reversed(attempted):
            try:
                await guard.settle(context, outcome)
            except Exception as exc:
                logger.debug("settle failed for guard %s", guard.name, exc_info=True)
                safe_record(
                    self._observer,
                    ChainEvent(
                        "guard.degraded",
                        context.trace_id,
                        {"guard": guard.name, "phase": "settle", "exception": repr(exc)},
                    ),
                )

    # ── introspection ────────────────────────────────────────

    @property
    def guards(self) -> tuple[Guard, ...]:
        return self._guards

    @property
    def error_handler(self) -> ErrorHandler:
        return self._error_handler

    @property
    def observer(self) -> Observer:
        return self._observer

    def __len__(self) -> int:
        return len(self._guards)

    def get_guard(self, name: str) -> Guard | None:
        """Look up a registered guard by its ``name``."""
        for guard in self._guards:
            if guard.name == name:
                return guard
        return None

    def list_guards(self) -> list[str]:
        """Return the names of all guards in chain order."""
        return [g.name for g in self._guards]

    def export(self) -> dict[str, Any]:
        """Return a JSON-serializable snapshot of all guards."""
        guards = [g.export() for g in self._guards]
        return {
            "guards": guards,
            "guard_count": len(guards),
        }


def _to_stored_response(value: Any) -> StoredResponse:
    """Normalize a handler's return value into a response snapshot."""
    if isinstance(value, StoredResponse):
        return value
    if isinstance(value, tuple) and value and isinstance(value[0], int):
        body = value[1] if len(value) > 1 else None
        headers = dict(value[2]) if len(value) > 2 and value[2] else {}
        return StoredResponse(value[0], headers, body)
    return StoredResponse(200, {}, value)
