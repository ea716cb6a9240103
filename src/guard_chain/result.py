"""GuardResult — the outcome of a single guard attempt."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from guard_chain.errors import GuardError
    from guard_chain.response import StoredResponse


@dataclass(frozen=True)
class GuardResult:
    """Immutable result returned by a guard's ``attempt``.

    Attributes:
        allowed:    ``True`` if the guard lets the request continue.
        guard_name: Name of the guard that produced this result.
        error:      The failure; always set when ``allowed`` is ``False``.
        response:   Early response that ends the chain successfully without
                    running the business handler (cache hit).
    """

    allowed: bool
    guard_name: str = ""
    error: GuardError | None = None
    response: StoredResponse | None = None

    def __post_init__(self) -> None:
        if not self.allowed and self.error is None:
            raise ValueError("a denied GuardResult must carry a GuardError")

    @property
    def short_circuits(self) -> bool:
        return self.allowed and self.response is not None

    # ── Factory helpers ──────────────────────────────────────

    @staticmethod
    def allow(guard_name: str = "") -> GuardResult:
        return GuardResult(allowed=True, guard_name=guard_name)

    @staticmethod
    def deny(error: GuardError) -> GuardResult:
        return GuardResult(allowed=False, guard_name=error.guard_name, error=error)

    @staticmethod
    def respond(guard_name: str, response: StoredResponse) -> GuardResult:
        return GuardResult(allowed=True, guard_name=guard_name, response=response)
