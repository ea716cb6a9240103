"""CustomGuard — wrap any callable as a guard without subclassing."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from guard_chain._internal.awaitables import resolve
from guard_chain.errors import ErrorKind, GuardError
from guard_chain.guards.base import Guard
from guard_chain.result import GuardResult

if TYPE_CHECKING:
    from guard_chain.context import RequestContext

# The check callable can be sync or async.  It receives a RequestContext
# and returns True (allow), False or a reason string (deny), or a GuardError.
CheckFn = Callable[["RequestContext"], Any]


class CustomGuard(Guard):
    """Wraps a plain callable as a guard — no subclassing required.

    Parameters:
        name:        Unique guard name.
        check:       Callable ``(context) -> bool | str | GuardError``.
                     May be sync or async.
        kind:        Error kind used for ``False`` / string verdicts.
        code:        Machine code used for ``False`` / string verdicts.
        deny_reason: Message returned when the check returns ``False``.
    """

    _guard_type = "custom"
    _guard_description = "Custom callable-based guard"

    def __init__(
        self,
        *,
        name: str,
        check: CheckFn,
        kind: ErrorKind = ErrorKind.AUTHORIZATION,
        code: str = "CHECK_FAILED",
        deny_reason: str = "Custom guard check failed",
    ) -> None:
        self._name = name
        self._check = check
        self.kind = ErrorKind(kind)
        self.code = code
        self._deny_reason = deny_reason

    @property
    def name(self) -> str:
        return self._name

    def export(self) -> dict[str, Any]:
        data = super().export()
        data["config"] = {
            "kind": self.kind.value,
            "code": self.code,
            "deny_reason": self._deny_reason,
        }
        return data

    async def attempt(self, context: RequestContext) -> GuardResult:
        verdict = await resolve(self._check(context))

        if isinstance(verdict, GuardError):
            return GuardResult.deny(verdict)
        if isinstance(verdict, str):
            return GuardResult.deny(
                GuardError(self.kind, verdict or self._deny_reason, self.code, {}, self.name)
            )
        if verdict:
            return GuardResult.allow(self.name)
        return GuardResult.deny(
            GuardError(self.kind, self._deny_reason, self.code, {}, self.name)
        )
