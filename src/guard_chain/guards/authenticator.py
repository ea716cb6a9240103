"""AuthenticatorGuard — resolves a Principal through ordered strategies."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from guard_chain.errors import GuardError
from guard_chain.exceptions import CredentialError, GuardConfigError
from guard_chain.guards.base import Guard
from guard_chain.result import GuardResult

if TYPE_CHECKING:
    from guard_chain.auth.cache import VerificationCache
    from guard_chain.auth.strategies import AuthStrategy
    from guard_chain.context import RequestContext


class AuthenticatorGuard(Guard):
    """Authenticates the request with the first strategy that finds a credential.

    Strategies are tried in declared order.  Only the *absence* of a
    credential moves on to the next strategy: once a strategy has
    extracted a credential, its verdict is final and a failed verification
    rejects the request without consulting later strategies.

    On success ``context.principal`` is set and the winning strategy's
    name is written to ``context.state["auth_strategy"]``.

    Parameters:
        strategies: Ordered credential strategies.
        cache:      Optional :class:`VerificationCache` for successful
                    verifications.
        name:       Unique guard name.
    """

    _guard_type = "authenticator"
    _guard_description = "Resolves the caller's identity from request credentials"

    def __init__(
        self,
        strategies: list[AuthStrategy],
        *,
        cache: VerificationCache | None = None,
        name: str = "authenticator",
    ) -> None:
        if not strategies:
            raise GuardConfigError(name, "at least one strategy is required")
        self._name = name
        self.strategies = list(strategies)
        self.cache = cache

    @property
    def name(self) -> str:
        return self._name

    def export(self) -> dict[str, Any]:
        data = super().export()
        data["config"] = {
            "strategies": [s.export() for s in self.strategies],
            "cache_ttl_seconds": self.cache.ttl_seconds if self.cache else None,
        }
        return data

    async def attempt(self, context: RequestContext) -> GuardResult:
        for strategy in self.strategies:
            credential = strategy.extract(context)
            if credential is None:
                continue

            principal = self.cache.get(strategy.name, credential) if self.cache else None
            if principal is None:
                try:
                    principal = await strategy.verify(credential)
                except CredentialError as exc:
                    return GuardResult.deny(
                        GuardError.authentication(
                            self.name, exc.reason, exc.code, strategy=strategy.name
                        )
                    )
                if self.cache is not None:
                    principal = self.cache.put_if_absent(strategy.name, credential, principal)

            context.principal = principal
            context.state["auth_strategy"] = strategy.name
            return GuardResult.allow(self.name)

        return GuardResult.deny(
            GuardError.authentication(self.name, "no credential provided", "NO_CREDENTIAL")
        )
