"""Guard ABC — the single abstraction every pipeline stage implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from guard_chain.context import RequestContext
    from guard_chain.observer import Observer
    from guard_chain.response import StoredResponse
    from guard_chain.result import GuardResult


class Guard(ABC):
    """Base class for every guard.

    Subclasses **must** define a ``name`` property (or class attribute) and
    implement ``attempt``.

    Override ``settle`` to run logic *after* the business handler resolved
    without error (the response cache stores or invalidates there).

    Guards may:
    * Read the payload sections and ``context.principal``.
    * **Write** to ``context.state`` to pass data to downstream guards.
    * Report recoverable problems through ``self.observer`` (injected by
      the chain).

    Guards must never write to the response themselves; a guard that wants
    to end the request early returns ``GuardResult.respond``.

    Class Variables:
        _guard_type: Type identifier for serialization (e.g., "rate_limit").
        _guard_version: Version string for the guard's export schema.
        _guard_description: Human-readable description of the guard.
    """

    _guard_type: ClassVar[str] = "base"
    _guard_version: ClassVar[str] = "1.0"
    _guard_description: ClassVar[str] = ""

    observer: Observer | None = None

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this guard instance."""
        ...

    @abstractmethod
    async def attempt(self, context: RequestContext) -> GuardResult:
        """Run this stage.  Return allow, deny or an early response."""
        ...

    async def settle(self, context: RequestContext, outcome: StoredResponse) -> None:
        """Called after the business handler succeeded.  Default: no-op."""
        return None

    def finish(self, context: RequestContext, status: int, elapsed_ms: float) -> None:
        """Called once the request completed, on success and failure alike."""
        return None

    def bind(self, observer: Observer) -> None:
        """Called by the chain so the guard can report degraded operation."""
        self.observer = observer

    # ── introspection ─────────────────────────────────────────

    def _detect_phases(self) -> list[str]:
        """Return which phases this guard takes part in."""
        phases = ["attempt"]
        if type(self).settle is not Guard.settle:
            phases.append("settle")
        if type(self).finish is not Guard.finish:
            phases.append("finish")
        return phases

    def export(self) -> dict[str, Any]:
        """Return a JSON-serializable snapshot of this guard.

        Subclasses should call ``super().export()`` and populate the
        ``"config"`` key in the returned dict.
        """
        return {
            "name": self.name,
            "type": self._guard_type,
            "version": self._guard_version,
            "description": self._guard_description,
            "phases": self._detect_phases(),
            "config": {},
        }
