"""Custom exceptions for the guard_chain package.

Guard failures that reach the caller are :class:`~guard_chain.errors.GuardError`
values, not exceptions.  The exceptions below cover misconfiguration,
backend failures and the verifier contract.
"""

from __future__ import annotations


class GuardChainError(Exception):
    """Base exception for all guard_chain errors."""


class GuardConfigError(GuardChainError):
    """Raised when a guard is misconfigured."""

    def __init__(self, guard_name: str, message: str) -> None:
        self.guard_name = guard_name
        super().__init__(f"Guard '{guard_name}' misconfigured: {message}")


class StoreError(GuardChainError):
    """Raised when a store operation fails."""

    def __init__(self, operation: str, detail: str = "") -> None:
        self.operation = operation
        msg = f"Store error during '{operation}'"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class CredentialError(GuardChainError):
    """Raised by a strategy or token verifier when a credential is rejected."""

    def __init__(self, reason: str, code: str = "INVALID_CREDENTIAL") -> None:
        self.reason = reason
        self.code = code
        super().__init__(reason)
