"""GuardError — the single failure value every guard produces.

Failures are plain data rather than an exception hierarchy: a ``kind``
discriminator plus kind-specific ``detail``.  The centralized
:class:`~guard_chain.handler.ErrorHandler` dispatches on ``kind`` through
a lookup table.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    RATE_LIMIT = "rate_limit"
    CACHE = "cache"
    INTERNAL = "internal"


@dataclass(frozen=True)
class GuardError:
    """Immutable description of why a request was stopped.

    Attributes:
        kind:       Error category; decides the response status.
        message:    Human-readable explanation.
        code:       Machine-readable code (``RATE_LIMITED``, ``NO_CREDENTIAL``...).
        detail:     Kind-specific structured data (``errors`` for validation,
                    ``retry_after`` for rate limiting).
        guard_name: Name of the guard that produced the error.
        cause:      Original exception for internal errors.  Never rendered
                    into a response, only reported to the observer.
    """

    kind: ErrorKind
    message: str
    code: str
    detail: dict[str, Any] = field(default_factory=dict)
    guard_name: str = ""
    cause: BaseException | None = field(default=None, compare=False, repr=False)

    # ── Factory helpers ──────────────────────────────────────

    @staticmethod
    def validation(guard_name: str, errors: list[dict[str, Any]]) -> GuardError:
        count = len(errors)
        noun = "field" if count == 1 else "fields"
        return GuardError(
            ErrorKind.VALIDATION,
            f"Request validation failed: {count} invalid {noun}",
            "VALIDATION_FAILED",
            {"errors": errors},
            guard_name,
        )

    @staticmethod
    def authentication(
        guard_name: str, message: str, code: str = "INVALID_CREDENTIAL", **detail: Any
    ) -> GuardError:
        return GuardError(ErrorKind.AUTHENTICATION, message, code, detail, guard_name)

    @staticmethod
    def authorization(
        guard_name: str, message: str, code: str = "FORBIDDEN", **detail: Any
    ) -> GuardError:
        return GuardError(ErrorKind.AUTHORIZATION, message, code, detail, guard_name)

    @staticmethod
    def rate_limit(guard_name: str, message: str, retry_after: int, **detail: Any) -> GuardError:
        return GuardError(
            ErrorKind.RATE_LIMIT,
            message,
            "RATE_LIMITED",
            {"retry_after": retry_after, **detail},
            guard_name,
        )

    @staticmethod
    def cache(guard_name: str, message: str, cause: BaseException | None = None) -> GuardError:
        return GuardError(ErrorKind.CACHE, message, "CACHE_UNAVAILABLE", {}, guard_name, cause)

    @staticmethod
    def internal(
        guard_name: str,
        message: str,
        code: str = "INTERNAL_ERROR",
        cause: BaseException | None = None,
    ) -> GuardError:
        return GuardError(ErrorKind.INTERNAL, message, code, {}, guard_name, cause)

    @staticmethod
    def from_exception(guard_name: str, exc: BaseException) -> GuardError:
        message = str(exc) or type(exc).__name__
        return GuardError.internal(guard_name, message, cause=exc)

    # ── rendering ────────────────────────────────────────────

    def to_body(self) -> dict[str, Any]:
        """Kind-specific response body fields."""
        if self.kind is ErrorKind.VALIDATION:
            return {"errors": list(self.detail.get("errors", []))}
        if self.kind is ErrorKind.RATE_LIMIT:
            return {"retryAfter": self.detail.get("retry_after", 0)}
        return {}
